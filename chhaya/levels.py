# -*- coding: utf-8 -*-

"""

──────────────────────────────────────────────────────────────────────────────
Per-level AMR accumulation
──────────────────────────────────────────────────────────────────────────────
Cells of one refinement level are moved from their own level grid onto the
target raster grid and binned:

    scaled   = (raw - 0.5) / 2**level * res + 0.5
    fcorrect = 1 / (res / 2**level)**2

Each histogram is multiplied by `fcorrect` before it is added to the shared
rasters, so a coarse cell covering several output pixels contributes its weight
per unit pixel area. All shared rasters are allocated up front and every merge
into them happens under the projection context's lock.

"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import numpy as np

from .exceptions import ConfigurationError
from .histograms import hist2d_data_adaptive, hist2d_weight_adaptive, hist2d_weight_enhanced

logger = logging.getLogger("chhaya")

StatusCallback = Callable[[int, str], None]


class ProjectionContext:
    """
    State of a single projection call: accumulation lock, per-level counters and
    timings, and an optional status callback receiving (level, message).
    """

    def __init__(self, status_callback: Optional[StatusCallback] = None):
        self.lock = threading.Lock()
        self.status_callback = status_callback
        self.level_cells: Dict[int, int] = {}
        self.level_timings: Dict[int, float] = {}
        self.skipped_levels: List[int] = []
        self._stats_lock = threading.Lock()

    def report(self, level: int, message: str) -> None:
        logger.debug("Level %d: %s", level, message)
        if self.status_callback is not None:
            self.status_callback(level, message)

    def record(self, level: int, ncells: int, elapsed: float) -> None:
        with self._stats_lock:
            self.level_cells[level] = self.level_cells.get(level, 0) + ncells
            self.level_timings[level] = self.level_timings.get(level, 0.0) + elapsed

    def skip(self, level: int) -> None:
        with self._stats_lock:
            self.skipped_levels.append(level)
        self.report(level, "no cells, skipped")

    @property
    def total_cells(self) -> int:
        return sum(self.level_cells.values())


@dataclass
class LevelInputs:
    """
    Read-only per-cell arrays shared by all level tasks.

    Args:
        x, y: raw level-grid coordinates along the two plane axes
        level: refinement level of each cell
        weight: weighting column
        data: name -> values, accumulated as data * weight
        weight_only: name -> values, accumulated as plain weights
    """

    x: np.ndarray
    y: np.ndarray
    level: np.ndarray
    weight: np.ndarray
    data: Dict[str, np.ndarray] = field(default_factory=dict)
    weight_only: Dict[str, np.ndarray] = field(default_factory=dict)

    def names(self) -> List[str]:
        return list(self.data) + list(self.weight_only)


def allocate_rasters(names: Iterable[str], shape: Tuple[int, int]) -> Dict[str, np.ndarray]:
    return {name: np.zeros(shape, dtype=np.float64) for name in names}


def _check_shape(name: str, level: int, raster: np.ndarray, expected: Tuple[int, int]) -> None:
    if raster.shape != tuple(expected):
        raise ConfigurationError(
            f"Raster for '{name}' at level {level} has shape {raster.shape}, expected {tuple(expected)}."
        )


def process_amr_level(
    level: int,
    inputs: LevelInputs,
    range1: np.ndarray,
    range2: np.ndarray,
    res: int,
    weight_map: np.ndarray,
    imaps: Dict[str, np.ndarray],
    context: ProjectionContext,
    executor=None,
    enhanced: bool = False,
) -> int:
    """
    Bin all cells of one level into the shared rasters.

    Args:
        level: refinement level to process
        inputs: shared per-cell arrays
        range1, range2: pixel sequences of the target grid
        res: pixels per box side
        weight_map: shared weight raster, updated in place
        imaps: shared per-variable rasters, updated in place; must already hold a
               slot for every name in `inputs`
        context: projection context (lock, counters, status)
        executor: optional concurrent.futures executor for the per-variable tasks
        enhanced: spread cells over neighbouring pixels instead of point binning

    Returns:
        number of cells processed

    Raises:
        ConfigurationError on a missing raster slot or a raster shape mismatch.
    """
    missing = [name for name in inputs.names() if name not in imaps]
    if missing:
        raise ConfigurationError(f"No raster allocated for {missing} before processing level {level}.")

    expected = (len(range1), len(range2))
    _check_shape("weight", level, weight_map, expected)
    for name in inputs.names():
        _check_shape(name, level, imaps[name], expected)

    sel = inputs.level == level
    ncells = int(np.count_nonzero(sel))
    if ncells == 0:
        context.skip(level)
        return 0

    t0 = time.time()

    size = 2.0 ** level
    scale_factor = res / size
    fcorrect = 1.0 / scale_factor ** 2
    x = (inputs.x[sel] - 0.5) / size * res + 0.5
    y = (inputs.y[sel] - 0.5) / size * res + 0.5
    w = inputs.weight[sel]
    ranges = (range1, range2)

    def histogram(weights: np.ndarray, data: Optional[np.ndarray] = None) -> np.ndarray:
        if enhanced:
            return hist2d_weight_enhanced(x, y, ranges, weights, scale_factor, data=data)
        if data is None:
            return hist2d_weight_adaptive(x, y, ranges, weights, res)
        return hist2d_data_adaptive(x, y, ranges, weights, data, res)

    def merge(name: str, target: np.ndarray, h: np.ndarray) -> None:
        _check_shape(name, level, h, expected)
        h *= fcorrect
        with context.lock:
            target += h

    merge("weight", weight_map, histogram(w))

    def run(name: str, values: np.ndarray, weighted: bool) -> None:
        h = histogram(w, values) if weighted else histogram(values)
        merge(name, imaps[name], h)

    jobs = [(name, values[sel], True) for name, values in inputs.data.items()]
    jobs += [(name, values[sel], False) for name, values in inputs.weight_only.items()]

    if executor is not None and len(jobs) > 1:
        futures = [executor.submit(run, *job) for job in jobs]
        for future in futures:
            future.result()
    else:
        for job in jobs:
            run(*job)

    elapsed = time.time() - t0
    context.record(level, ncells, elapsed)
    context.report(level, f"{ncells} cells in {elapsed:.3f}s")
    return ncells
