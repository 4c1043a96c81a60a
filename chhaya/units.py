# -*- coding: utf-8 -*-

"""

Code-unit → physical-unit conversion factors.

RAMSES stores every quantity in code units defined by three numbers found in the
snapshot info file: unit_l [cm], unit_d [g/cm^3] and unit_t [s]. All other
factors are derived from them. The projection engine works in code units and
multiplies the finished maps by the factor returned from `getunit`.

"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Tuple

from .exceptions import UnitMismatchError

# cgs constants
PC = 3.0856775814913673e18
KPC = 1.0e3 * PC
MPC = 1.0e6 * PC
AU = 1.495978707e13
MSOL = 1.98847e33
YR = 3.15576e7
M_H = 1.6735575e-24
K_B = 1.380649e-16

STANDARD = "standard"

UNIT_DIMENSIONS: Dict[str, str] = {
    "cm": "length",
    "m": "length",
    "km": "length",
    "au": "length",
    "pc": "length",
    "kpc": "length",
    "Mpc": "length",
    "g": "mass",
    "kg": "mass",
    "Msol": "mass",
    "g_cm3": "density",
    "kg_m3": "density",
    "Msol_pc3": "density",
    "nH": "density",
    "g_cm2": "surface_density",
    "Msol_pc2": "surface_density",
    "Msol_kpc2": "surface_density",
    "cm_s": "velocity",
    "m_s": "velocity",
    "km_s": "velocity",
    "s": "time",
    "yr": "time",
    "Myr": "time",
    "Gyr": "time",
    "cm3": "volume",
    "pc3": "volume",
    "kpc3": "volume",
    "Ba": "pressure",
    "K": "temperature",
    "radian": "angle",
}

VARIABLE_DIMENSIONS: Dict[str, str] = {
    "x": "length",
    "y": "length",
    "z": "length",
    "r_cylinder": "length",
    "r_sphere": "length",
    "rho": "density",
    "mass": "mass",
    "sd": "surface_density",
    "volume": "volume",
    "vx": "velocity",
    "vy": "velocity",
    "vz": "velocity",
    "v": "velocity",
    "vr_cylinder": "velocity",
    "vphi_cylinder": "velocity",
    "vr_sphere": "velocity",
    "cs": "velocity",
    "sigma_x": "velocity",
    "sigma_y": "velocity",
    "sigma_z": "velocity",
    "sigma": "velocity",
    "sigma_r_cylinder": "velocity",
    "sigma_phi_cylinder": "velocity",
    "vx2": "velocity_squared",
    "vy2": "velocity_squared",
    "vz2": "velocity_squared",
    "v2": "velocity_squared",
    "vr_cylinder2": "velocity_squared",
    "vphi_cylinder2": "velocity_squared",
    "p": "pressure",
    "T": "temperature",
    "phi": "angle",
}


@dataclass
class Scales:
    """
    Conversion factors from code units to named physical units.

    Args:
        unit_l: code length in cm
        unit_d: code density in g/cm^3
        unit_t: code time in s
    """

    unit_l: float = 1.0
    unit_d: float = 1.0
    unit_t: float = 1.0
    factors: Dict[str, float] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        unit_v = self.unit_l / self.unit_t
        unit_m = self.unit_d * self.unit_l ** 3
        unit_sd = self.unit_d * self.unit_l

        self.factors = {
            "cm": self.unit_l,
            "m": self.unit_l / 1.0e2,
            "km": self.unit_l / 1.0e5,
            "au": self.unit_l / AU,
            "pc": self.unit_l / PC,
            "kpc": self.unit_l / KPC,
            "Mpc": self.unit_l / MPC,
            "g": unit_m,
            "kg": unit_m / 1.0e3,
            "Msol": unit_m / MSOL,
            "g_cm3": self.unit_d,
            "kg_m3": self.unit_d * 1.0e3,
            "Msol_pc3": self.unit_d * PC ** 3 / MSOL,
            "nH": self.unit_d / M_H,
            "g_cm2": unit_sd,
            "Msol_pc2": unit_sd * PC ** 2 / MSOL,
            "Msol_kpc2": unit_sd * KPC ** 2 / MSOL,
            "cm_s": unit_v,
            "m_s": unit_v / 1.0e2,
            "km_s": unit_v / 1.0e5,
            "s": self.unit_t,
            "yr": self.unit_t / YR,
            "Myr": self.unit_t / (1.0e6 * YR),
            "Gyr": self.unit_t / (1.0e9 * YR),
            "cm3": self.unit_l ** 3,
            "pc3": (self.unit_l / PC) ** 3,
            "kpc3": (self.unit_l / KPC) ** 3,
            "Ba": self.unit_d * unit_v ** 2,
            "K": unit_v ** 2 * M_H / K_B,
            "radian": 1.0,
        }

    @classmethod
    def from_meta(cls, meta: Dict) -> "Scales":
        """
        Build scales from a RAMSES/osyris metadata dictionary (keys unit_l, unit_d, unit_t).
        Missing keys fall back to 1.0, i.e. code units.
        """
        return cls(
            unit_l=float(meta.get("unit_l", 1.0)),
            unit_d=float(meta.get("unit_d", 1.0)),
            unit_t=float(meta.get("unit_t", 1.0)),
        )

    def factor(self, unit: str) -> float:
        if unit == STANDARD:
            return 1.0
        try:
            return self.factors[unit]
        except KeyError:
            raise UnitMismatchError(f"Unknown unit '{unit}'. Known units: {sorted(self.factors)}")


def length_factor(scales: Scales, unit: str) -> float:
    """
    Factor converting a code length into `unit`; raises if `unit` is not a length.
    """
    if unit != STANDARD and UNIT_DIMENSIONS.get(unit) != "length":
        raise UnitMismatchError(f"Unit '{unit}' is not a length unit.")
    return scales.factor(unit)


def getunit(scales: Scales, variable: str, unit: str = STANDARD) -> Tuple[float, str]:
    """
    Resolve the factor and label for expressing `variable` in `unit`.

    Args:
        scales: conversion table of the dataset
        variable: variable name (e.g. 'rho', 'vx2', 'sigma_z')
        unit: unit symbol or 'standard' for code units

    Returns:
        (factor, label), where map_in_unit = map_in_code_units * factor

    Raises:
        UnitMismatchError if the unit's dimension does not match the variable's.
    """
    if unit == STANDARD:
        return 1.0, STANDARD

    if unit not in UNIT_DIMENSIONS:
        raise UnitMismatchError(f"Unknown unit '{unit}' requested for variable '{variable}'.")

    var_dim = VARIABLE_DIMENSIONS.get(variable)
    unit_dim = UNIT_DIMENSIONS[unit]

    if var_dim is None:
        raise UnitMismatchError(
            f"Variable '{variable}' has no known dimension; only 'standard' units are supported for it (got '{unit}')."
        )

    if var_dim == "velocity_squared":
        if unit_dim != "velocity":
            raise UnitMismatchError(
                f"Variable '{variable}' is a squared velocity; expected a velocity unit, got '{unit}' ({unit_dim})."
            )
        return scales.factor(unit) ** 2, f"{unit}^2"

    if var_dim != unit_dim:
        raise UnitMismatchError(
            f"Variable '{variable}' has dimension '{var_dim}' but unit '{unit}' is '{unit_dim}'."
        )

    return scales.factor(unit), unit
