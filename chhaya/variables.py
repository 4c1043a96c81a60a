# -*- coding: utf-8 -*-

"""

Variable catalogue: what kind of map each requested name produces, and how
cell-level values are derived from a cell table.

"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .dataset import CellTable
from .exceptions import ConfigurationError


class VariableKind(Enum):
    WEIGHT = "weight"          # mass-like, taken straight from a weight-only raster
    PLAIN = "plain"            # data-weighted raster divided by the weight raster
    RADIUS = "radius"          # analytic per-pixel distance from the data centre
    ANGLE = "angle"            # analytic per-pixel azimuth around the data centre
    DISPERSION = "dispersion"  # sqrt(<v^2> - <v>^2) from two PLAIN rasters


WEIGHT_VARIABLES = ("sd", "mass")
RADIUS_VARIABLES = ("r_cylinder", "r_sphere")
ANGLE_VARIABLES = ("phi",)

DISPERSION_MOMENTS: Dict[str, Tuple[str, str]] = {
    "sigma_x": ("vx", "vx2"),
    "sigma_y": ("vy", "vy2"),
    "sigma_z": ("vz", "vz2"),
    "sigma": ("v", "v2"),
    "sigma_r_cylinder": ("vr_cylinder", "vr_cylinder2"),
    "sigma_phi_cylinder": ("vphi_cylinder", "vphi_cylinder2"),
}


@dataclass(frozen=True)
class ResolvedVariable:
    name: str
    kind: VariableKind
    moments: Optional[Tuple[str, str]] = None


def resolve_variable(name: str) -> ResolvedVariable:
    if name in WEIGHT_VARIABLES:
        return ResolvedVariable(name, VariableKind.WEIGHT)
    if name in RADIUS_VARIABLES:
        return ResolvedVariable(name, VariableKind.RADIUS)
    if name in ANGLE_VARIABLES:
        return ResolvedVariable(name, VariableKind.ANGLE)
    if name in DISPERSION_MOMENTS:
        return ResolvedVariable(name, VariableKind.DISPERSION, DISPERSION_MOMENTS[name])
    return ResolvedVariable(name, VariableKind.PLAIN)


def resolve_variables(names: Iterable[str]) -> List[ResolvedVariable]:
    """
    Resolve requested names once, dropping duplicates and appending the first and
    second moment variables every dispersion map needs.
    """
    resolved: List[ResolvedVariable] = []
    seen = set()

    def add(name: str) -> None:
        if name not in seen:
            seen.add(name)
            resolved.append(resolve_variable(name))

    names = list(names)
    for name in names:
        add(name)
    for name in names:
        for moment in DISPERSION_MOMENTS.get(name, ()):
            add(moment)

    return resolved


def _safe_divide(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """
    Element-wise a / b with 0 wherever b == 0.
    """
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    return np.divide(a, b, out=np.zeros(np.broadcast(a, b).shape), where=b != 0)


def cell_size(table: CellTable) -> np.ndarray:
    return table.boxlen / 2.0 ** table.column("level")


def positions(table: CellTable, center: Optional[Sequence[float]] = None) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Cell centre positions in code length, relative to `center` (given in box units).
    """
    center = (0.0, 0.0, 0.0) if center is None else center
    size = 2.0 ** table.column("level")
    return tuple(
        (table.column(axis) - 0.5) / size * table.boxlen - c * table.boxlen
        for axis, c in zip(("cx", "cy", "cz"), center)
    )


def getvar(table: CellTable, name: str, center: Optional[Sequence[float]] = None) -> np.ndarray:
    """
    Return a per-cell quantity in code units.

    Args:
        table: cell table
        name: raw column or derived quantity name
        center: reference centre in box units for position-dependent quantities

    Raises:
        ConfigurationError if `name` is neither a column nor a known derived quantity.
    """
    if name in ("x", "y", "z"):
        return positions(table, center)["xyz".index(name)]

    if name == "volume":
        return cell_size(table) ** 3

    if name in ("mass", "sd"):
        if "rho" not in table:
            raise ConfigurationError(f"Variable '{name}' needs the density column 'rho'.")
        return table.column("rho") * cell_size(table) ** 3

    if name in ("vx2", "vy2", "vz2"):
        return table.column(name[:2]) ** 2

    if name == "v2":
        return table.column("vx") ** 2 + table.column("vy") ** 2 + table.column("vz") ** 2

    if name == "v":
        return np.sqrt(getvar(table, "v2"))

    if name in ("r_cylinder", "r_sphere", "vr_cylinder", "vphi_cylinder", "vr_sphere"):
        x, y, z = positions(table, center)
        r_cyl = np.sqrt(x ** 2 + y ** 2)
        if name == "r_cylinder":
            return r_cyl
        r_sph = np.sqrt(x ** 2 + y ** 2 + z ** 2)
        if name == "r_sphere":
            return r_sph
        vx, vy = table.column("vx"), table.column("vy")
        if name == "vr_cylinder":
            return _safe_divide(x * vx + y * vy, r_cyl)
        if name == "vphi_cylinder":
            return _safe_divide(x * vy - y * vx, r_cyl)
        return _safe_divide(x * vx + y * vy + z * table.column("vz"), r_sph)

    if name in ("vr_cylinder2", "vphi_cylinder2"):
        return getvar(table, name[:-1], center=center) ** 2

    if name == "cs":
        return np.sqrt(_safe_divide(table.gamma * table.column("p"), table.column("rho")))

    if name == "T":
        return _safe_divide(table.column("p"), table.column("rho"))

    if name in table:
        return np.asarray(table.column(name), dtype=float)

    raise ConfigurationError(f"Unknown variable '{name}': not a column of the cell table nor a derived quantity.")
