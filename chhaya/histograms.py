# -*- coding: utf-8 -*-

"""

──────────────────────────────────────────────────────────────────────────────
Histogram primitives
──────────────────────────────────────────────────────────────────────────────
Fixed-resolution 2D binning of weighted cell data.

All primitives share one index rule. For an axis described by an ascending,
evenly spaced sequence `edges` and an accumulator with `n` bins along it:

    index = rint((coord - edges[0]) / step)      clamped to [0, n - 1]

Points outside the sequence are pinned to the first/last bin instead of being
dropped, so the total weight that goes in always comes out.

Two storage strategies are provided:
 - dense: a preallocated (nx, ny) float64 array
 - sparse: a {(i, j): value} dict that only holds visited bins, used above
   SPARSE_RESOLUTION_THRESHOLD to bound memory

Both sum each bin sequentially in input order, so the sparse path converted with
`sparse_to_dense` is bit-identical to the dense path.

"""

from __future__ import annotations

import math
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

SparseHist = Dict[Tuple[int, int], float]

SPARSE_RESOLUTION_THRESHOLD = 2048


def _axis_params(edges) -> Tuple[float, float]:
    """
    Return (minimum, step) of an evenly spaced bin sequence.
    """
    edges = np.asarray(edges, dtype=float)
    if edges.size == 0:
        raise ValueError("Bin sequence is empty.")
    step = float(edges[1] - edges[0]) if edges.size > 1 else 1.0
    return float(edges[0]), step


def bin_indices(coord, edges, n_bins: int) -> np.ndarray:
    """
    Map coordinates onto 0-based bin indices with edge saturation.

    Args:
        coord: coordinates along one axis
        edges: evenly spaced sequence describing the axis
        n_bins: number of bins of the accumulator along this axis

    Returns:
        integer array of indices in [0, n_bins - 1]
    """
    rmin, step = _axis_params(edges)
    idx = np.rint((np.asarray(coord, dtype=float) - rmin) / step)
    return np.clip(idx, 0, n_bins - 1).astype(np.intp)


def _flat_indices(x, y, range1, range2, nx: int, ny: int) -> np.ndarray:
    ix = bin_indices(x, range1, nx)
    iy = bin_indices(y, range2, ny)
    return ix * ny + iy


def _values(w, data) -> np.ndarray:
    w = np.asarray(w, dtype=float)
    if data is None:
        return w
    return np.asarray(data, dtype=float) * w


# ──────────────────────────────────────────────────────────────
# Dense primitives
# ──────────────────────────────────────────────────────────────

def fast_hist2d_weight(h: np.ndarray, x, y, w, range1, range2) -> np.ndarray:
    """
    Accumulate `w[i]` into the bin holding (x[i], y[i]).

    Args:
        h: accumulator of shape (len(range1), len(range2)), modified in place
        x, y: coordinates
        w: weight per point
        range1, range2: bin sequences along x and y

    Returns:
        h
    """
    nx, ny = h.shape
    flat = _flat_indices(x, y, range1, range2, nx, ny)
    h += np.bincount(flat, weights=_values(w, None), minlength=nx * ny).reshape(nx, ny)
    return h


def fast_hist2d_data(h: np.ndarray, x, y, data, w, range1, range2) -> np.ndarray:
    """
    Accumulate `data[i] * w[i]` into the bin holding (x[i], y[i]).

    The result divided by the matching `fast_hist2d_weight` histogram gives the
    weighted mean of `data` per bin.
    """
    nx, ny = h.shape
    flat = _flat_indices(x, y, range1, range2, nx, ny)
    h += np.bincount(flat, weights=_values(w, data), minlength=nx * ny).reshape(nx, ny)
    return h


# ──────────────────────────────────────────────────────────────
# Sparse primitives
# ──────────────────────────────────────────────────────────────

def fast_hist2d_sparse(
    sparse: SparseHist,
    x,
    y,
    w,
    range1,
    range2,
    nx: int,
    ny: int,
    data=None,
) -> SparseHist:
    """
    Sparse counterpart of `fast_hist2d_weight` / `fast_hist2d_data`.

    Only visited bins are stored. The dict is not safe to share between
    concurrent writers: use one dict per task.

    Args:
        sparse: {(i, j): value} accumulator, modified in place
        x, y: coordinates
        w: weight per point
        range1, range2: bin sequences along x and y
        nx, ny: number of bins along x and y
        data: optional values; when given, `data * w` is accumulated

    Returns:
        sparse
    """
    flat = _flat_indices(x, y, range1, range2, nx, ny)
    if flat.size == 0:
        return sparse

    values = _values(w, data)
    keys, inverse = np.unique(flat, return_inverse=True)
    sums = np.bincount(inverse.ravel(), weights=values, minlength=keys.size)

    for key, value in zip(keys.tolist(), sums.tolist()):
        ij = divmod(key, ny)
        sparse[ij] = sparse.get(ij, 0.0) + value

    return sparse


def sparse_to_dense(sparse: SparseHist, nx: int, ny: int) -> np.ndarray:
    """
    Scatter a sparse histogram into a zero-filled (nx, ny) array.
    """
    h = np.zeros((nx, ny), dtype=np.float64)
    if not sparse:
        return h

    idx = np.fromiter((k for ij in sparse.keys() for k in ij), dtype=np.intp, count=2 * len(sparse))
    idx = idx.reshape(-1, 2)
    h[idx[:, 0], idx[:, 1]] = np.fromiter(sparse.values(), dtype=np.float64, count=len(sparse))
    return h


# ──────────────────────────────────────────────────────────────
# Adaptive dense/sparse selection
# ──────────────────────────────────────────────────────────────

def use_sparse(resolution: int) -> bool:
    return resolution > SPARSE_RESOLUTION_THRESHOLD


def hist2d_weight_adaptive(x, y, ranges: Sequence, w, resolution: int) -> np.ndarray:
    """
    Weight histogram on a fresh (len(range1), len(range2)) array, going through a
    sparse dict when `resolution` exceeds SPARSE_RESOLUTION_THRESHOLD.
    """
    range1, range2 = ranges
    nx, ny = len(range1), len(range2)

    if use_sparse(resolution):
        sparse = fast_hist2d_sparse({}, x, y, w, range1, range2, nx, ny)
        return sparse_to_dense(sparse, nx, ny)

    return fast_hist2d_weight(np.zeros((nx, ny), dtype=np.float64), x, y, w, range1, range2)


def hist2d_data_adaptive(x, y, ranges: Sequence, w, data, resolution: int) -> np.ndarray:
    """
    Data-weighted histogram (sum of data * w per bin), dense or sparse by resolution.
    """
    range1, range2 = ranges
    nx, ny = len(range1), len(range2)

    if use_sparse(resolution):
        sparse = fast_hist2d_sparse({}, x, y, w, range1, range2, nx, ny, data=data)
        return sparse_to_dense(sparse, nx, ny)

    return fast_hist2d_data(np.zeros((nx, ny), dtype=np.float64), x, y, data, w, range1, range2)


# ──────────────────────────────────────────────────────────────
# Enhanced coverage (gap filling)
# ──────────────────────────────────────────────────────────────

def coverage_radius_for(scale_factor: float) -> float:
    """
    Spreading radius in pixels for an AMR level whose cells span `scale_factor`
    output pixels per side. Coarse levels spread further; clamped to [0.5, 2].
    """
    return max(0.5, min(2.0, 0.5 * scale_factor))


def fast_hist2d_weight_enhanced(
    h: np.ndarray,
    x,
    y,
    w,
    range1,
    range2,
    coverage_radius: float,
    data=None,
) -> np.ndarray:
    """
    Spread each point over all bins within `coverage_radius` pixels.

    Every bin in reach gets a share proportional to
    max(0.1, 1 - (distance / radius)^2); the shares are normalised so that each
    point deposits exactly its own weight. A point with no bin in reach (far
    outside the grid) falls back to the clamped nearest bin.

    The stencil is walked one integer offset at a time, each offset handled for
    all points at once with np.bincount.
    """
    nx, ny = h.shape
    rmin1, step1 = _axis_params(range1)
    rmin2, step2 = _axis_params(range2)
    radius = float(coverage_radius)

    cx = (np.asarray(x, dtype=float) - rmin1) / step1
    cy = (np.asarray(y, dtype=float) - rmin2) / step2
    values = _values(w, data)
    if cx.size == 0:
        return h

    base_i = np.floor(cx - radius).astype(np.int64)
    base_j = np.floor(cy - radius).astype(np.int64)
    offsets = range(int(math.ceil(2.0 * radius)) + 2)

    def stencil(di: int, dj: int):
        ii = base_i + di
        jj = base_j + dj
        dist = np.hypot(ii - cx, jj - cy)
        inside = (dist <= radius) & (ii >= 0) & (ii < nx) & (jj >= 0) & (jj < ny)
        falloff = np.where(inside, np.maximum(0.1, 1.0 - (dist / radius) ** 2), 0.0)
        return ii, jj, inside, falloff

    # pass 1: per-point normalisation
    total = np.zeros(cx.size, dtype=np.float64)
    for di in offsets:
        for dj in offsets:
            total += stencil(di, dj)[3]

    covered = total > 0
    share = np.zeros(cx.size, dtype=np.float64)
    share[covered] = values[covered] / total[covered]

    # pass 2: deposit
    flat = np.zeros(nx * ny, dtype=np.float64)
    for di in offsets:
        for dj in offsets:
            ii, jj, inside, falloff = stencil(di, dj)
            if inside.any():
                flat += np.bincount(
                    ii[inside] * ny + jj[inside],
                    weights=share[inside] * falloff[inside],
                    minlength=nx * ny,
                )

    if not covered.all():
        far = ~covered
        ix = np.clip(np.rint(cx[far]).astype(np.int64), 0, nx - 1)
        iy = np.clip(np.rint(cy[far]).astype(np.int64), 0, ny - 1)
        flat += np.bincount(ix * ny + iy, weights=values[far], minlength=nx * ny)

    h += flat.reshape(nx, ny)
    return h


def hist2d_weight_enhanced(
    x,
    y,
    ranges: Sequence,
    w,
    scale_factor: float,
    data: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Gap-filling histogram on a fresh array, radius taken from the level scale factor.
    """
    range1, range2 = ranges
    h = np.zeros((len(range1), len(range2)), dtype=np.float64)
    return fast_hist2d_weight_enhanced(h, x, y, w, range1, range2, coverage_radius_for(scale_factor), data=data)
