#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

──────────────────────────────────────────────────────────────────────────────
Description
──────────────────────────────────────────────────────────────────────────────
Runs projections of RAMSES snapshots and stores the resulting 2D maps in HDF5
files, one file per snapshot and direction:

    <prefix>_<nnnnn>_<direction>.h5
        /maps/<variable>      float64 map, attrs: unit, weighting, mode
        root attrs            grid metadata (res, extent, ranges, ...) and the
                              generator command, timestamp and version

──────────────────────────────────────────────────────────────────────────────
IT SUPPORTS:
──────────────────────────────────────────────────────────────────────────────
 - AMR level filtering (--level-start/--level-end)
 - Normalized spatial ranges (--x-range/--y-range/--z-range)
 - Mass, volume or unweighted projections, averaged or summed
 - Field discovery (--list-fields) and dry-run mode (--dry-run)
 - Per-snapshot parallel processing (see parallel.py)

"""


from __future__ import annotations

import argparse
import logging
import os
import shlex
import sys
import time
from typing import Iterable, List, Optional, Tuple

import numpy as np
import h5py as h5

from .dataset import CellTable, list_mesh_fields, open_snapshot, read_cell_table
from .projection import ProjectionResult, projection

__version__ = "1.0.0"


def setup_logging(verbose: bool) -> None:
    """
    Configure global logging.

    Args:
        verbose: If True, set DEBUG level, otherwise INFO.
    """

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(message)s",
        datefmt="%H:%M:%S",
    )

    logging.getLogger("h5py").setLevel(logging.WARNING)


logger = logging.getLogger("chhaya")


def parse_output_numbers(arg: str) -> List[int]:
    """
    Parse output numbers strings like '5', '1,3,5', or '2-7' into a list of ints.

    Args:
        arg: user-provided string

    Returns:
        List of ints representing snapshot/output numbers.

    Raises:
        argparse.ArgumentTypeError on invalid format.
    """

    if "-" in arg and "," in arg:
        raise argparse.ArgumentTypeError("Do not mix ranges and lists; use either 'a-b' or 'a,b,c'.")

    if "-" in arg:
        try:
            start, end = map(int, arg.split("-", 1))
        except ValueError:
            raise argparse.ArgumentTypeError("Invalid range; use 'start-end'.")
        if end < start:
            raise argparse.ArgumentTypeError("Range end must be >= start.")
        return list(range(start, end + 1))

    if "," in arg:
        nums = []
        for x in arg.split(","):
            x = x.strip()
            if x == "":
                continue
            try:
                nums.append(int(x))
            except ValueError:
                raise argparse.ArgumentTypeError(f"Invalid integer in list: '{x}'")
        return nums

    try:
        return [int(arg)]
    except ValueError:
        raise argparse.ArgumentTypeError("Output number must be an integer.")


def parse_norm_range(arg: Optional[str]) -> Tuple[Optional[float], Optional[float]]:
    """
    Parse normalized axis range spec: 'min:max', ':max', 'min:', or ':'.

    Returns (min_norm, max_norm) where each entry is a float in [0,1], or None when not provided.
    """

    if arg is None:
        return (None, None)

    s = arg.strip()

    if s == "":
        return (None, None)

    if ":" not in s:
        raise argparse.ArgumentTypeError("Axis range must be 'min:max' (e.g., 0.2:0.8, :0.6, 0.1:, :).")

    left, right = s.split(":", 1)
    try:
        minv = float(left) if left.strip() != "" else 0.0
        maxv = float(right) if right.strip() != "" else 1.0
    except ValueError:
        raise argparse.ArgumentTypeError(f"Axis range bounds must be numbers, got '{s}'.")

    if not (0.0 <= minv <= 1.0 and 0.0 <= maxv <= 1.0):
        raise argparse.ArgumentTypeError("Axis normalized bounds must be within [0, 1].")

    if minv > maxv:
        raise argparse.ArgumentTypeError("Axis min cannot be greater than axis max.")

    return (minv, maxv)


def parse_fields_arg(arg: Optional[str]) -> Optional[List[str]]:
    """
    Parse a comma-separated list (variables, units).

    Returns None if user didn't pass anything (means use defaults).
    """

    if arg is None:
        return None

    fields = [f.strip() for f in arg.split(",") if f.strip() != ""]

    return fields if fields else None


def _as_str(value) -> str:
    return value.decode() if isinstance(value, bytes) else str(value)


def write_projection(result: ProjectionResult, path: str, float_dtype: str = "f8") -> None:
    """
    Store a projection result in an HDF5 file (overwrites `path`).
    """
    with h5.File(path, "w") as f:
        maps = f.create_group("maps", track_order=True)
        for name, arr in result.maps.items():
            ds = maps.create_dataset(name, data=np.asarray(arr, dtype=float_dtype))
            ds.attrs["unit"] = result.maps_unit[name]
            ds.attrs["weighting"] = result.maps_weight[name]
            ds.attrs["mode"] = result.maps_mode[name]

        f.create_dataset("range1", data=np.asarray(result.range1, dtype=float_dtype))
        f.create_dataset("range2", data=np.asarray(result.range2, dtype=float_dtype))

        f.attrs["direction"] = result.direction
        f.attrs["res"] = result.res
        f.attrs["pixsize"] = result.pixsize
        f.attrs["boxlen"] = result.boxlen
        f.attrs["ratio"] = result.ratio
        f.attrs["lmin"] = result.lmin
        f.attrs["lmax"] = result.lmax
        f.attrs["lmax_projected"] = result.lmax_projected
        f.attrs["ranges"] = np.asarray(result.ranges, dtype=float_dtype)
        f.attrs["extent"] = np.asarray(result.extent, dtype=float_dtype)
        f.attrs["extent_center"] = np.asarray(result.extent_center, dtype=float_dtype)

        f.attrs["generator_command"] = shlex.join(sys.argv)
        f.attrs["generator_timestamp"] = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
        f.attrs["generator_version"] = __version__


def read_projection(path: str) -> ProjectionResult:
    """
    Load a file written by `write_projection` back into a ProjectionResult.
    """
    with h5.File(path, "r") as f:
        maps = {}
        maps_unit = {}
        maps_weight = {}
        maps_mode = {}
        for name, ds in f["maps"].items():
            maps[name] = ds[()]
            maps_unit[name] = _as_str(ds.attrs["unit"])
            maps_weight[name] = _as_str(ds.attrs["weighting"])
            maps_mode[name] = _as_str(ds.attrs["mode"])

        a = f.attrs
        return ProjectionResult(
            maps=maps,
            maps_unit=maps_unit,
            maps_weight=maps_weight,
            maps_mode=maps_mode,
            lmax_projected=int(a["lmax_projected"]),
            lmin=int(a["lmin"]),
            lmax=int(a["lmax"]),
            ranges=[float(v) for v in a["ranges"]],
            extent=[float(v) for v in a["extent"]],
            extent_center=[float(v) for v in a["extent_center"]],
            ratio=float(a["ratio"]),
            res=int(a["res"]),
            pixsize=float(a["pixsize"]),
            boxlen=float(a["boxlen"]),
            range1=f["range1"][()],
            range2=f["range2"][()],
            direction=_as_str(a["direction"]),
        )


class ProjectionRunner:
    """
    Project RAMSES (osyris) outputs and write the maps to HDF5.

    Small methods perform single steps (loading, level filtering, projection,
    writing) so each can be tested on its own.
    """

    def __init__(
        self,
        input_folder: str,
        output_prefix: str = "projection",
        variables: Optional[List[str]] = None,
        units: Optional[List[str]] = None,
        direction: str = "z",
        res: Optional[int] = None,
        weighting: str = "mass",
        mode: str = "standard",
        level_start: Optional[int] = None,
        level_end: Optional[int] = None,
        x_range_norm: Tuple[Optional[float], Optional[float]] = (None, None),
        y_range_norm: Tuple[Optional[float], Optional[float]] = (None, None),
        z_range_norm: Tuple[Optional[float], Optional[float]] = (None, None),
        enhanced: bool = False,
        max_threads: int = 1,
        dry_run: bool = False,
        output_directory: Optional[str] = None,
        verbose: bool = False,
    ):
        self.input_folder = input_folder
        self.output_prefix = output_prefix

        # None => defaults
        self.variables = variables if variables else ["sd", "rho"]
        self.units = units

        self.direction = direction
        self.res = res
        self.weighting = weighting
        self.mode = mode

        # Level bounds (None => no filter)
        self.level_start = level_start
        self.level_end = level_end

        # normalized ranges (None/None => full box)
        self.x_range_norm = x_range_norm
        self.y_range_norm = y_range_norm
        self.z_range_norm = z_range_norm

        self.enhanced = enhanced
        self.max_threads = max_threads
        self.dry_run = dry_run
        self.output_directory = output_directory
        self.verbose = verbose

        self.float_dtype = "f8"

    def read_data(self, output_num: int) -> Optional[CellTable]:
        """
        Load a snapshot as a cell table; None (with an error log) on failure.
        """
        return read_cell_table(output_num, self.input_folder)

    def _filter_levels(self, levels: Iterable[int]) -> List[int]:
        """
        Apply level_start/level_end filters to the list/iterable of levels.
        """
        levels = list(levels)
        if self.level_start is not None:
            levels = [lvl for lvl in levels if lvl >= self.level_start]
        if self.level_end is not None:
            levels = [lvl for lvl in levels if lvl <= self.level_end]
        return levels

    def _build_level_mask(self, table: CellTable) -> Optional[np.ndarray]:
        """
        Cell mask for the level filter, or None when no level filter is set.
        """
        if self.level_start is None and self.level_end is None:
            return None
        return np.isin(table.column("level"), self._filter_levels(table.levels()))

    @staticmethod
    def _range_spec(r: Tuple[Optional[float], Optional[float]]) -> Optional[List[Optional[float]]]:
        if r == (None, None):
            return None
        return [r[0], r[1]]

    def output_path(self, output_num: int) -> str:
        folder = self.output_directory or self.input_folder
        return os.path.join(folder, f"{self.output_prefix}_{output_num:05d}_{self.direction}.h5")

    def project_one(self, table: CellTable) -> ProjectionResult:
        """
        Run the configured projection on a loaded cell table.
        """
        return projection(
            table,
            self.variables,
            self.units,
            res=self.res,
            mask=self._build_level_mask(table),
            direction=self.direction,
            weighting=self.weighting,
            mode=self.mode,
            xrange=self._range_spec(self.x_range_norm),
            yrange=self._range_spec(self.y_range_norm),
            zrange=self._range_spec(self.z_range_norm),
            enhanced=self.enhanced,
            max_threads=self.max_threads,
            verbose=self.verbose,
        )

    def process_output(self, output_num: int) -> Optional[str]:
        """
        Read, project and write a single output.

        Returns the written path, or None when the output was skipped or failed.
        Exceptions are logged so callers (parallel runner) can continue.
        """
        table = self.read_data(output_num)
        if table is None:
            logger.warning("No data for output %s; skipping.", output_num)
            return None

        levels = self._filter_levels(table.levels())
        logger.info("Levels to project for output %s: %s", output_num, levels)

        path = self.output_path(output_num)

        if self.dry_run:
            logger.info(
                "[dry-run] Would write file '%s' with maps: %s (levels: %s, direction: %s).",
                path,
                self.variables,
                levels,
                self.direction,
            )
            return None

        t0 = time.time()
        try:
            result = self.project_one(table)
            if self.output_directory:
                os.makedirs(self.output_directory, exist_ok=True)
            write_projection(result, path, float_dtype=self.float_dtype)
            logger.info("DONE: Saved '%s' in %.2fs", path, time.time() - t0)
            return path
        except Exception as e:
            logger.exception("Failed to project/write output %s: %s", output_num, e)
            return None


def list_fields_for_snapshot(input_folder: str, output_num: int) -> List[str]:
    """
    Load one snapshot and return a best-effort list of available fields found in mesh.
    """
    try:
        ds = open_snapshot(output_num, input_folder)
    except Exception as e:
        logger.error("Failed to load output %s for field listing: %s", output_num, e)
        return []

    if ds is None or "mesh" not in ds:
        logger.warning("No 'mesh' found in snapshot %s; cannot list fields.", output_num)
        return []

    return list_mesh_fields(ds)
