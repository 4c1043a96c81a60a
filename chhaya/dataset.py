# -*- coding: utf-8 -*-

"""

──────────────────────────────────────────────────────────────────────────────
Cell table
──────────────────────────────────────────────────────────────────────────────
A minimal column store of AMR cells as consumed by the projection engine:

 - integer grid coordinates `cx`, `cy`, `cz` (1-based, on the cell's own level
   grid, so the cell centre sits at (c - 0.5) / 2**level in box units)
 - integer refinement `level`
 - any number of float columns in code units (`rho`, `vx`, `vy`, `vz`, `p`, ...)

Snapshots are read with osyris and converted into this layout by
`CellTable.from_osyris`.

"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
import osyris

from .exceptions import ConfigurationError
from .units import Scales

logger = logging.getLogger("chhaya")

GRID_COLUMNS = ("cx", "cy", "cz", "level")

# osyris field name -> (column name(s), cgs unit used for conversion, code unit attribute)
SCALAR_FIELDS = {
    "density": ("rho", "g/cm**3"),
    "pressure": ("p", "g/(cm*s**2)"),
}
VECTOR_FIELDS = {
    "velocity": (("vx", "vy", "vz"), "cm/s"),
}


class CellTable:
    """
    Column store of AMR cells.

    Args:
        columns: mapping column name -> 1D array, all of equal length
        boxlen: box length in code units
        lmin, lmax: coarsest/finest refinement level (default: from the `level` column)
        scales: code -> physical unit factors
        gamma: adiabatic index (used for the sound speed)
    """

    def __init__(
        self,
        columns: Dict[str, np.ndarray],
        boxlen: float = 1.0,
        lmin: Optional[int] = None,
        lmax: Optional[int] = None,
        scales: Optional[Scales] = None,
        gamma: float = 5.0 / 3.0,
    ):
        self._columns: Dict[str, np.ndarray] = {}

        nrows = None
        for name, values in columns.items():
            arr = np.asarray(values)
            if name in GRID_COLUMNS:
                arr = arr.astype(np.int64)
            if nrows is None:
                nrows = len(arr)
            elif len(arr) != nrows:
                raise ConfigurationError(
                    f"Column '{name}' has length {len(arr)}, expected {nrows} like the other columns."
                )
            self._columns[name] = arr

        self._nrows = nrows or 0

        for name in GRID_COLUMNS:
            if name not in self._columns:
                raise ConfigurationError(f"Cell table is missing the required column '{name}'.")

        self.boxlen = float(boxlen)
        self.scales = scales if scales is not None else Scales()
        self.gamma = float(gamma)

        levels = self._columns["level"]
        self.lmin = int(lmin) if lmin is not None else (int(levels.min()) if self._nrows else 0)
        self.lmax = int(lmax) if lmax is not None else (int(levels.max()) if self._nrows else 0)

    def __len__(self) -> int:
        return self._nrows

    def __contains__(self, name: str) -> bool:
        return name in self._columns

    def keys(self) -> List[str]:
        return list(self._columns.keys())

    def column(self, name: str) -> np.ndarray:
        try:
            return self._columns[name]
        except KeyError:
            raise ConfigurationError(f"Column '{name}' not found in cell table (available: {self.keys()}).")

    def levels(self) -> List[int]:
        return sorted(int(lvl) for lvl in np.unique(self._columns["level"]))

    def select(self, mask: np.ndarray) -> "CellTable":
        """
        Return a new table holding the rows where `mask` is True.
        """
        mask = np.asarray(mask, dtype=bool)
        if len(mask) != self._nrows:
            raise ConfigurationError(
                f"Mask length {len(mask)} does not match cell table length {self._nrows}."
            )
        return CellTable(
            {name: arr[mask] for name, arr in self._columns.items()},
            boxlen=self.boxlen,
            lmin=self.lmin,
            lmax=self.lmax,
            scales=self.scales,
            gamma=self.gamma,
        )

    @classmethod
    def from_osyris(cls, data) -> "CellTable":
        """
        Convert a loaded osyris dataset (with a 'mesh' group) into a cell table in code units.

        Cell centres are turned into integer level-grid coordinates with
        c = rint(position / dx + 0.5).
        """
        if "mesh" not in data:
            raise ConfigurationError("Dataset does not contain a 'mesh' group.")

        meta = getattr(data, "meta", {}) or {}
        scales = Scales.from_meta(meta)
        unit_v = scales.unit_l / scales.unit_t

        mesh = data["mesh"]

        level = np.asarray(mesh["level"].values, dtype=np.int64)
        dx = _values_in(mesh["dx"], "cm")
        px, py, pz = _extract_vector(mesh["position"], "cm")

        columns: Dict[str, np.ndarray] = {
            "cx": np.rint(px / dx + 0.5).astype(np.int64),
            "cy": np.rint(py / dx + 0.5).astype(np.int64),
            "cz": np.rint(pz / dx + 0.5).astype(np.int64),
            "level": level,
        }

        code_units = {
            "g/cm**3": scales.unit_d,
            "g/(cm*s**2)": scales.unit_d * unit_v ** 2,
            "cm/s": unit_v,
        }

        for field_name, (column, unit) in SCALAR_FIELDS.items():
            if field_name in mesh:
                columns[column] = _values_in(mesh[field_name], unit) / code_units[unit]

        for field_name, (names, unit) in VECTOR_FIELDS.items():
            if field_name in mesh:
                for name, comp in zip(names, _extract_vector(mesh[field_name], unit)):
                    columns[name] = comp / code_units[unit]

        known = {"level", "dx", "position", "cpu", *SCALAR_FIELDS, *VECTOR_FIELDS}
        for key in _mesh_keys(mesh):
            if key in known:
                continue
            try:
                values = np.asarray(mesh[key].values, dtype=float)
            except (AttributeError, TypeError, ValueError):
                values = None
            if values is None or values.ndim != 1 or len(values) != len(level):
                logger.debug("Skipping non-scalar mesh field '%s'", key)
                continue
            columns[key] = values

        return cls(
            columns,
            boxlen=float(meta.get("boxlen", 1.0)),
            lmin=meta.get("levelmin"),
            lmax=meta.get("levelmax"),
            scales=scales,
            gamma=float(meta.get("gamma", 5.0 / 3.0)),
        )


def _mesh_keys(mesh) -> Iterable[str]:
    try:
        return list(mesh.keys())
    except AttributeError:
        return []


def _values_in(array, unit: str) -> np.ndarray:
    """
    Magnitudes of an osyris array expressed in `unit`. Arrays without unit
    support are taken as already being in that unit.
    """
    try:
        array = array.to(unit)
    except AttributeError:
        pass
    return np.asarray(array.values, dtype=float)


def _extract_vector(vec_field, unit: str) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Extract x, y, z components of an osyris vector field as float arrays in `unit`.
    """
    try:
        return (
            _values_in(vec_field.x, unit),
            _values_in(vec_field.y, unit),
            _values_in(vec_field.z, unit),
        )
    except AttributeError:
        pass

    try:
        return (
            _values_in(vec_field["x"], unit),
            _values_in(vec_field["y"], unit),
            _values_in(vec_field["z"], unit),
        )
    except (KeyError, TypeError) as e:
        raise RuntimeError("Unable to extract vector components from osyris field; incompatible format.") from e


def open_snapshot(output_num: int, input_folder: str):
    """
    Load a RAMSES snapshot with osyris. Errors propagate.
    """
    return osyris.RamsesDataset(output_num, path=input_folder).load()


def read_cell_table(output_num: int, input_folder: str) -> Optional[CellTable]:
    """
    Load a RAMSES snapshot with osyris and convert it to a cell table.
    On failure, logs the error and returns None (so caller can handle).
    """
    try:
        data = open_snapshot(output_num, input_folder)
    except Exception as e:
        logger.error("Failed to load output %s from '%s': %s", output_num, input_folder, e)
        logger.debug("Exception details:", exc_info=True)
        return None

    try:
        return CellTable.from_osyris(data)
    except (ConfigurationError, RuntimeError) as e:
        logger.error("Output %s could not be converted to a cell table: %s", output_num, e)
        return None


def list_mesh_fields(data) -> List[str]:
    """
    Best-effort list of the field names in an osyris dataset's mesh.
    """
    if data is None or "mesh" not in data:
        return []
    unique_fields: List[str] = []
    for f in _mesh_keys(data["mesh"]):
        if f not in unique_fields:
            unique_fields.append(f)
    return unique_fields
