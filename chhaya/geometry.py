# -*- coding: utf-8 -*-

"""

──────────────────────────────────────────────────────────────────────────────
Output grid geometry
──────────────────────────────────────────────────────────────────────────────
Turns user-facing spatial options (ranges, centre, unit, direction, resolution
or pixel size) into the fixed raster the projection engine fills:

 - normalised ranges [xmin, xmax, ymin, ymax, zmin, zmax] in box units [0, 1]
 - the two plane axes and the depth axis for a projection direction
 - pixel sequences along both plane axes: 1-based cell coordinates of the
   target-resolution grid, r1+1 .. r2 with r1 = floor(min * res), r2 = ceil(max * res)
 - physical extent, extent relative to the data centre, aspect ratio

"""

from __future__ import annotations

import math
import numbers
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from .exceptions import ConfigurationError
from .units import STANDARD, Scales, length_factor

BOX_CENTER = ("bc", "boxcenter")

# direction -> (plane axis 1, plane axis 2, depth axis) as indices into (x, y, z)
AXIS_SLOTS = {
    "z": (0, 1, 2),
    "y": (0, 2, 1),
    "x": (1, 2, 0),
}
GRID_COORDS = ("cx", "cy", "cz")

RangeSpec = Optional[Sequence[Optional[float]]]
CenterSpec = Union[str, Sequence[Union[float, str, None]]]


@dataclass
class GridGeometry:
    direction: str
    x_coord: str
    y_coord: str
    z_coord: str
    res: int
    pixsize: float
    boxlen: float
    range1: np.ndarray
    range2: np.ndarray
    length1: int
    length2: int
    extent: List[float]
    extent_center: List[float]
    ratio: float
    center1: float
    center2: float
    center_depth: float
    rangez: Tuple[float, float]

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.length1, self.length2)

    def pixel_centers(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Pixel-centre coordinates along both plane axes, in code length, relative
        to the data centre.
        """
        x = (np.arange(self.length1) + 0.5) * self.pixsize - self.center1
        y = (np.arange(self.length2) + 0.5) * self.pixsize - self.center2
        return x, y


def check_direction(direction: str) -> None:
    if direction not in AXIS_SLOTS:
        raise ConfigurationError(f"Invalid direction '{direction}': use one of {sorted(AXIS_SLOTS)}.")


def resolve_resolution(
    boxlen: float,
    lmax: int,
    res: Optional[float] = None,
    pxsize: Optional[Union[float, Sequence]] = None,
    scales: Optional[Scales] = None,
) -> int:
    """
    Number of pixels across the full box. Priority: pxsize > res > 2**lmax.

    Args:
        boxlen: box length in code units
        lmax: finest level, used when neither res nor pxsize is given
        res: pixels per box side
        pxsize: pixel size, either a number in code length or (value, unit)
        scales: unit table for pxsize units
    """
    if pxsize is not None:
        if isinstance(pxsize, numbers.Real):
            value, unit = float(pxsize), STANDARD
        else:
            value, unit = float(pxsize[0]), (pxsize[1] if len(pxsize) > 1 and pxsize[1] is not None else STANDARD)
        if value <= 0:
            raise ConfigurationError(f"Pixel size must be positive, got {value}.")
        px_code = value / length_factor(scales if scales is not None else Scales(), unit)
        res = boxlen / px_code
    elif res is None:
        res = 2 ** int(lmax)

    res = int(math.ceil(res))
    if res < 1:
        raise ConfigurationError(f"Resolution must be at least 1 pixel, got {res}.")
    return res


def _range_conv(boxlen: float, scales: Optional[Scales], unit: str) -> float:
    """
    Divisor turning a length in `unit` into box units. 'standard' ranges are
    already box fractions.
    """
    if unit == STANDARD:
        return 1.0
    return boxlen * length_factor(scales if scales is not None else Scales(), unit)


def _resolve_center(center: CenterSpec, conv: float) -> List[Optional[float]]:
    if isinstance(center, str):
        center = [center]
    center = list(center)

    if len(center) == 1:
        if center[0] in BOX_CENTER:
            return [0.5 * conv] * 3
        raise ConfigurationError(f"A single-entry center must be one of {BOX_CENTER}, got {center[0]!r}.")

    if len(center) != 3:
        raise ConfigurationError(f"center needs 3 entries, got {len(center)}.")

    resolved: List[Optional[float]] = []
    for c in center:
        if c in BOX_CENTER:
            resolved.append(0.5 * conv)
        elif c is None:
            resolved.append(None)
        else:
            resolved.append(float(c))
    return resolved


def prepare_ranges(
    boxlen: float,
    scales: Optional[Scales],
    xrange: RangeSpec = None,
    yrange: RangeSpec = None,
    zrange: RangeSpec = None,
    center: CenterSpec = (0.0, 0.0, 0.0),
    range_unit: str = STANDARD,
) -> Tuple[List[float], List[float]]:
    """
    Convert ranges given relative to `center` into normalised box coordinates.

    Returns:
        (ranges, center_norm): [xmin, xmax, ymin, ymax, zmin, zmax] clipped to
        [0, 1], and the centre in box units.
    """
    conv = _range_conv(boxlen, scales, range_unit)
    center_r = [0.0 if c is None else c for c in _resolve_center(center, conv)]

    ranges: List[float] = []
    for axis, spec, c in zip("xyz", (xrange, yrange, zrange), center_r):
        lo, hi = (None, None) if spec is None else (spec[0], spec[1])
        lo_n = 0.0 if lo is None else (float(lo) + c) / conv
        hi_n = 1.0 if hi is None else (float(hi) + c) / conv
        lo_n = min(max(lo_n, 0.0), 1.0)
        hi_n = min(max(hi_n, 0.0), 1.0)
        if lo_n > hi_n:
            raise ConfigurationError(f"{axis}range minimum {lo_n:.6g} exceeds maximum {hi_n:.6g} (box units).")
        ranges.extend([lo_n, hi_n])

    return ranges, [c / conv for c in center_r]


def prepare_data_center(
    boxlen: float,
    scales: Optional[Scales],
    center_norm: Sequence[float],
    data_center: Optional[CenterSpec] = None,
    data_center_unit: str = STANDARD,
) -> List[float]:
    """
    Reference centre for radius/angle maps and position-dependent variables, in
    box units. Defaults to the range centre; missing entries fall back to it.
    """
    if data_center is None:
        return list(center_norm)

    conv = _range_conv(boxlen, scales, data_center_unit)
    resolved = _resolve_center(data_center, conv)
    return [cn if c is None else c / conv for c, cn in zip(resolved, center_norm)]


def build_geometry(
    direction: str,
    data_center: Sequence[float],
    res: int,
    boxlen: float,
    ranges: Sequence[float],
) -> GridGeometry:
    """
    Compute the raster layout for one projection.

    Args:
        direction: 'x', 'y' or 'z' (the axis integrated over)
        data_center: reference centre in box units
        res: pixels per box side
        boxlen: box length in code units
        ranges: normalised [xmin, xmax, ymin, ymax, zmin, zmax]
    """
    check_direction(direction)
    a, b, d = AXIS_SLOTS[direction]

    r1 = math.floor(ranges[2 * a] * res)
    r2 = max(math.ceil(ranges[2 * a + 1] * res), r1 + 1)
    r3 = math.floor(ranges[2 * b] * res)
    r4 = max(math.ceil(ranges[2 * b + 1] * res), r3 + 1)

    pixsize = boxlen / res
    rl1 = data_center[a] * res
    rl2 = data_center[b] * res

    return GridGeometry(
        direction=direction,
        x_coord=GRID_COORDS[a],
        y_coord=GRID_COORDS[b],
        z_coord=GRID_COORDS[d],
        res=res,
        pixsize=pixsize,
        boxlen=boxlen,
        range1=np.arange(r1 + 1, r2 + 1, dtype=np.float64),
        range2=np.arange(r3 + 1, r4 + 1, dtype=np.float64),
        length1=r2 - r1,
        length2=r4 - r3,
        extent=[r1 * pixsize, r2 * pixsize, r3 * pixsize, r4 * pixsize],
        extent_center=[(r1 - rl1) * pixsize, (r2 - rl1) * pixsize, (r3 - rl2) * pixsize, (r4 - rl2) * pixsize],
        ratio=(r2 - r1) / (r4 - r3),
        center1=data_center[a] * boxlen - r1 * pixsize,
        center2=data_center[b] * boxlen - r3 * pixsize,
        center_depth=data_center[d] * boxlen,
        rangez=(ranges[2 * d], ranges[2 * d + 1]),
    )


def thickness_mask(depth: np.ndarray, levels: np.ndarray, rangez: Sequence[float], lmax: int) -> np.ndarray:
    """
    Select cells inside the depth range, compared on each cell's own level grid.

    A zero-thickness range (zmin == zmax) selects a slice with a tolerance of half
    a finest-level cell.
    """
    depth = np.asarray(depth)
    scale = 2.0 ** np.asarray(levels)
    zmin, zmax = rangez
    mask = np.ones(len(depth), dtype=bool)

    if zmin != zmax:
        if zmin != 0.0:
            mask &= depth >= np.floor(zmin * scale)
        if zmax != 1.0:
            mask &= depth <= np.ceil(zmax * scale)
    else:
        tol = 1.0 / 2 ** (lmax + 1)
        mask &= (depth >= np.floor((zmin - tol) * scale)) & (depth <= np.ceil((zmax + tol) * scale))

    return mask
