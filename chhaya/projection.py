# -*- coding: utf-8 -*-

"""

──────────────────────────────────────────────────────────────────────────────
Projection
──────────────────────────────────────────────────────────────────────────────
Projects a cell table onto a 2D raster along x, y or z.

 - every cell is binned on the target grid level by level (see levels.py)
 - data maps are weighted averages (mode 'standard') or raw weighted sums
   (mode 'sum'); weighting by mass, volume or unity
 - 'sd' and 'mass' come from the mass raster, velocity dispersions from the
   first and second moment rasters, 'r_cylinder', 'r_sphere' and 'phi' are
   evaluated at pixel centres
 - work is spread over a thread pool, either across variables within a level
   or across levels

Each call owns its rasters and its ProjectionContext, so concurrent calls from
different threads do not interfere.

"""

from __future__ import annotations

import concurrent.futures
import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union

import numpy as np

from .dataset import CellTable
from .exceptions import ConfigurationError, UnitMismatchError
from .geometry import (
    GridGeometry,
    build_geometry,
    check_direction,
    prepare_data_center,
    prepare_ranges,
    resolve_resolution,
    thickness_mask,
)
from .levels import LevelInputs, ProjectionContext, allocate_rasters, process_amr_level
from .strategy import should_use_variable_threading
from .units import STANDARD, UNIT_DIMENSIONS, getunit
from .variables import VariableKind, _safe_divide, getvar, resolve_variables

logger = logging.getLogger("chhaya")

WEIGHTINGS = ("mass", "volume", "none")
MODES = ("standard", "sum")

MASS_RASTER = "_mass"


@dataclass
class ProjectionResult:
    maps: Dict[str, np.ndarray]
    maps_unit: Dict[str, str]
    maps_weight: Dict[str, str]
    maps_mode: Dict[str, str]
    lmax_projected: int
    lmin: int
    lmax: int
    ranges: List[float]
    extent: List[float]
    extent_center: List[float]
    ratio: float
    res: int
    pixsize: float
    boxlen: float
    range1: np.ndarray
    range2: np.ndarray
    direction: str

    def __getitem__(self, name: str) -> np.ndarray:
        try:
            return self.maps[name]
        except KeyError:
            raise KeyError(f"No map '{name}' in projection (available: {list(self.maps)}).")

    def __contains__(self, name: str) -> bool:
        return name in self.maps

    def keys(self) -> List[str]:
        return list(self.maps)


# ──────────────────────────────────────────────────────────────
# Map post-processing
# ──────────────────────────────────────────────────────────────

def weighted_average(data_raster: np.ndarray, weight_raster: np.ndarray) -> np.ndarray:
    """
    Per-pixel data / weight, 0 where the weight is 0.
    """
    return _safe_divide(data_raster, weight_raster)


def _check_moment_units(mean_unit: str, mean_sq_unit: str) -> None:
    if mean_sq_unit != STANDARD and not mean_sq_unit.endswith("^2"):
        raise UnitMismatchError(f"Second moment unit '{mean_sq_unit}' is not a squared velocity unit.")
    base = mean_sq_unit[:-2] if mean_sq_unit.endswith("^2") else mean_sq_unit
    for label, unit in (("First moment", mean_unit), ("Second moment", base)):
        if unit != STANDARD and UNIT_DIMENSIONS.get(unit) != "velocity":
            raise UnitMismatchError(f"{label} unit '{unit}' is not a velocity unit.")


def dispersion_map(
    mean: np.ndarray,
    mean_sq: np.ndarray,
    mean_factor: float = 1.0,
    mean_sq_factor: float = 1.0,
    mean_unit: Optional[str] = None,
    mean_sq_unit: Optional[str] = None,
) -> np.ndarray:
    """
    sqrt(max(0, <v^2> - <v>^2)) in code units.

    Args:
        mean: first moment map, in units given by mean_factor
        mean_sq: second moment map, in units given by mean_sq_factor
        mean_factor, mean_sq_factor: code -> map unit factors of the inputs;
            both maps are divided by them before combining
        mean_unit, mean_sq_unit: optional unit labels (as returned by getunit),
            checked to be a velocity and a squared velocity

    Raises:
        UnitMismatchError for unit labels of the wrong dimension,
        ConfigurationError for maps of different shape.
    """
    if mean_unit is not None and mean_sq_unit is not None:
        _check_moment_units(mean_unit, mean_sq_unit)

    mean = np.asarray(mean, dtype=float) / mean_factor
    mean_sq = np.asarray(mean_sq, dtype=float) / mean_sq_factor
    if mean.shape != mean_sq.shape:
        raise ConfigurationError(
            f"Moment maps differ in shape: {mean.shape} vs {mean_sq.shape}."
        )
    return np.sqrt(np.maximum(0.0, mean_sq - mean ** 2))


def radius_map(geometry: GridGeometry) -> np.ndarray:
    """
    Distance of each pixel centre from the data centre, in code length.
    """
    x, y = geometry.pixel_centers()
    return np.hypot(x[:, np.newaxis], y[np.newaxis, :])


def angle_map(geometry: GridGeometry) -> np.ndarray:
    """
    Azimuth of each pixel centre around the data centre, in [0, 2pi).
    """
    x, y = geometry.pixel_centers()
    X, Y = np.meshgrid(x, y, indexing="ij")

    phi = np.zeros(X.shape, dtype=np.float64)
    pos = X > 0
    neg = X < 0
    phi[pos] = np.arctan(Y[pos] / X[pos])
    phi[neg] = np.arctan(Y[neg] / X[neg]) + np.pi
    phi[(X == 0) & (Y > 0)] = np.pi / 2
    phi[(X == 0) & (Y < 0)] = 3 * np.pi / 2

    phi[phi < 0] += 2 * np.pi
    phi[phi >= 2 * np.pi] -= 2 * np.pi
    return phi


# ──────────────────────────────────────────────────────────────
# Projection
# ──────────────────────────────────────────────────────────────

def _normalize_units(variables: List[str], units) -> List[str]:
    if units is None:
        return [STANDARD] * len(variables)
    if isinstance(units, str):
        return [units] * len(variables)
    units = list(units)
    if len(units) == 1:
        return units * len(variables)
    if len(units) != len(variables):
        raise ConfigurationError(
            f"Got {len(units)} units for {len(variables)} variables; give one unit or one per variable."
        )
    return units


def _weights(cells: CellTable, weighting: str) -> np.ndarray:
    if weighting == "mass":
        if "rho" not in cells:
            raise ConfigurationError("Weighting 'mass' needs the density column 'rho'.")
        return getvar(cells, "mass")
    if weighting == "volume":
        return getvar(cells, "volume")
    return np.ones(len(cells), dtype=np.float64)


def projection(
    table: CellTable,
    variables: Union[str, Sequence[str]],
    units: Optional[Union[str, Sequence[str]]] = None,
    *,
    lmax: Optional[int] = None,
    res: Optional[float] = None,
    pxsize=None,
    mask: Optional[np.ndarray] = None,
    direction: str = "z",
    weighting: str = "mass",
    weight_unit: str = STANDARD,
    mode: str = "standard",
    xrange=None,
    yrange=None,
    zrange=None,
    center=(0.0, 0.0, 0.0),
    range_unit: str = STANDARD,
    data_center=None,
    data_center_unit: str = STANDARD,
    enhanced: bool = False,
    max_threads: int = 1,
    verbose: bool = False,
    show_progress: bool = False,
    context: Optional[ProjectionContext] = None,
) -> ProjectionResult:
    """
    Project cell data onto a 2D map.

    Args:
        table: cell table to project
        variables: variable name(s), raw columns or derived quantities
        units: one unit for all maps or one per variable ('standard' = code units)
        lmax: level defining the default resolution 2**lmax (default: table.lmax)
        res: pixels per box side
        pxsize: pixel size, number in code length or (value, unit); overrides res
        mask: boolean array selecting cells, same length as the table
        direction: 'x', 'y' or 'z'
        weighting: 'mass', 'volume' or 'none'
        weight_unit: unit of the weights; scales the sums in mode 'sum'
        mode: 'standard' (weighted average) or 'sum' (weighted sum)
        xrange, yrange, zrange: [min, max] relative to `center`, in `range_unit`
        center: range centre, 3 entries or 'bc' for the box centre
        range_unit: 'standard' (box fraction) or a length unit
        data_center: reference for radius/angle maps (default: `center`)
        data_center_unit: unit of `data_center`
        enhanced: spread cells over neighbouring pixels (gap filling)
        max_threads: maximum number of threads
        verbose: log a summary of the call at INFO
        show_progress: log each finished level at INFO
        context: optional ProjectionContext (e.g. with a status callback)

    Returns:
        ProjectionResult

    Raises:
        ConfigurationError for invalid options, UnitMismatchError for units that
        do not fit a variable.
    """
    t0 = time.time()

    if isinstance(variables, str):
        variables = [variables]
    variables = list(variables)
    if not variables:
        raise ConfigurationError("No variables requested.")
    units = _normalize_units(variables, units)

    check_direction(direction)
    if weighting not in WEIGHTINGS:
        raise ConfigurationError(f"Unknown weighting '{weighting}': use one of {WEIGHTINGS}.")
    if mode not in MODES:
        raise ConfigurationError(f"Unknown mode '{mode}': use one of {MODES}.")

    if mask is not None:
        mask = np.asarray(mask, dtype=bool)
        if len(mask) != len(table):
            raise ConfigurationError(
                f"Mask length {len(mask)} does not match the number of cells {len(table)}."
            )

    scales = table.scales
    lmax_projected = table.lmax if lmax is None else int(lmax)
    res = resolve_resolution(table.boxlen, lmax_projected, res=res, pxsize=pxsize, scales=scales)
    ranges, center_norm = prepare_ranges(table.boxlen, scales, xrange, yrange, zrange, center, range_unit)
    dc = prepare_data_center(table.boxlen, scales, center_norm, data_center, data_center_unit)
    geometry = build_geometry(direction, dc, res, table.boxlen, ranges)

    # unit checks before any binning
    conversions = [getunit(scales, name, unit) for name, unit in zip(variables, units)]
    weight_factor = 1.0
    if weighting != "none":
        weight_factor, _ = getunit(scales, weighting, weight_unit)
    elif weight_unit != STANDARD:
        raise ConfigurationError("weight_unit has no meaning with weighting 'none'.")

    keep = thickness_mask(table.column(geometry.z_coord), table.column("level"), geometry.rangez, lmax_projected)
    if mask is not None:
        keep &= mask
    cells = table.select(keep)

    resolved = resolve_variables(variables)
    weight = _weights(cells, weighting)

    data = {v.name: getvar(cells, v.name, center=dc) for v in resolved if v.kind is VariableKind.PLAIN}
    weight_only: Dict[str, np.ndarray] = {}
    needs_mass = any(v.kind is VariableKind.WEIGHT for v in resolved)
    if needs_mass and weighting != "mass":
        weight_only[MASS_RASTER] = getvar(cells, "mass")

    levels = cells.levels()
    inputs = LevelInputs(
        x=cells.column(geometry.x_coord),
        y=cells.column(geometry.y_coord),
        level=cells.column("level"),
        weight=weight,
        data=data,
        weight_only=weight_only,
    )
    weight_map = np.zeros(geometry.shape, dtype=np.float64)
    imaps = allocate_rasters(inputs.names(), geometry.shape)

    context = context if context is not None else ProjectionContext()

    n_tasks = len(inputs.names())
    if should_use_variable_threading(n_tasks, max_threads, len(levels), len(cells)):
        strategy = "variable-parallel"
    elif max_threads > 1 and len(levels) > 1:
        strategy = "level-parallel"
    else:
        strategy = "sequential"

    if verbose:
        logger.info(
            "Projection of %s along %s | weighting: %s | mode: %s",
            ", ".join(variables), direction, weighting, mode,
        )
        logger.info(
            "Resolution %d | map %dx%d | pixel size %.6g | %d cells on %d level(s) | %s",
            res, geometry.length1, geometry.length2, geometry.pixsize, len(cells), len(levels), strategy,
        )

    def run_level(level: int, executor=None) -> int:
        return process_amr_level(
            level, inputs, geometry.range1, geometry.range2, res,
            weight_map, imaps, context, executor=executor, enhanced=enhanced,
        )

    def progress(level: int, ncells: int) -> None:
        if show_progress:
            logger.info("Level %d projected (%d cells)", level, ncells)

    if strategy == "variable-parallel":
        with concurrent.futures.ThreadPoolExecutor(max_workers=max_threads) as ex:
            for level in levels:
                progress(level, run_level(level, ex))
    elif strategy == "level-parallel":
        with concurrent.futures.ThreadPoolExecutor(max_workers=min(max_threads, len(levels))) as ex:
            futures = {ex.submit(run_level, level): level for level in levels}
            for future in concurrent.futures.as_completed(futures):
                progress(futures[future], future.result())
    else:
        for level in levels:
            progress(level, run_level(level))

    mass_raster = weight_map if weighting == "mass" else imaps.get(MASS_RASTER)

    maps: Dict[str, np.ndarray] = {}
    maps_unit: Dict[str, str] = {}
    maps_weight: Dict[str, str] = {}
    maps_mode: Dict[str, str] = {}

    def averaged_or_summed(name: str) -> np.ndarray:
        if mode == "standard":
            return weighted_average(imaps[name], weight_map)
        return imaps[name] * weight_factor

    kinds = {v.name: v for v in resolved}
    for name, (factor, label) in zip(variables, conversions):
        var = kinds[name]
        tags = (weighting, mode)

        if var.kind is VariableKind.WEIGHT:
            if name == "sd":
                raw = mass_raster / geometry.pixsize ** 2
                tags = ("none", "none")
            else:
                raw = mass_raster.copy()
                tags = ("none", "sum")
        elif var.kind is VariableKind.PLAIN:
            raw = averaged_or_summed(name)
        elif var.kind is VariableKind.DISPERSION:
            first, second = var.moments
            raw = dispersion_map(
                weighted_average(imaps[first], weight_map),
                weighted_average(imaps[second], weight_map),
            )
        elif var.kind is VariableKind.RADIUS:
            raw = radius_map(geometry)
            tags = ("none", "none")
        else:
            raw = angle_map(geometry)
            tags = ("none", "none")

        maps[name] = raw * factor
        maps_unit[name] = label
        maps_weight[name], maps_mode[name] = tags

    # moment maps behind each dispersion, in the dispersion's velocity unit
    for name, unit in zip(variables, units):
        var = kinds[name]
        if var.kind is not VariableKind.DISPERSION:
            continue
        for moment in var.moments:
            if moment in maps:
                continue
            factor, label = getunit(scales, moment, unit)
            maps[moment] = averaged_or_summed(moment) * factor
            maps_unit[moment] = label
            maps_weight[moment], maps_mode[moment] = weighting, mode

    if verbose:
        logger.info("Projection finished in %.2fs", time.time() - t0)

    return ProjectionResult(
        maps=maps,
        maps_unit=maps_unit,
        maps_weight=maps_weight,
        maps_mode=maps_mode,
        lmax_projected=lmax_projected,
        lmin=table.lmin,
        lmax=table.lmax,
        ranges=list(ranges),
        extent=geometry.extent,
        extent_center=geometry.extent_center,
        ratio=geometry.ratio,
        res=res,
        pixsize=geometry.pixsize,
        boxlen=table.boxlen,
        range1=geometry.range1,
        range2=geometry.range2,
        direction=direction,
    )
