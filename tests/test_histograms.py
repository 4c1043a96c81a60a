"""
Unit tests for the histogram primitives.

These tests verify that:
1. Dense binning conserves the total weight, also for points outside the grid
2. Sparse and dense accumulation give identical rasters
3. Out-of-range points saturate onto the edge bins
4. Gap-filling binning conserves weight and falls back to the nearest bin

"""

import numpy as np
import pytest

from chhaya.histograms import (
    SPARSE_RESOLUTION_THRESHOLD,
    bin_indices,
    coverage_radius_for,
    fast_hist2d_data,
    fast_hist2d_sparse,
    fast_hist2d_weight,
    fast_hist2d_weight_enhanced,
    hist2d_data_adaptive,
    hist2d_weight_adaptive,
    hist2d_weight_enhanced,
    sparse_to_dense,
)

# ──────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────

def random_points(n, nx, ny, seed=0, spill=0.0):
    rng = np.random.default_rng(seed)
    x = rng.uniform(1 - spill, nx + spill, n)
    y = rng.uniform(1 - spill, ny + spill, n)
    w = rng.uniform(0.1, 5.0, n)
    return x, y, w


# ──────────────────────────────────────────────────────────────
# Index rule
# ──────────────────────────────────────────────────────────────

def test_bin_indices_round_half_to_even():
    edges = np.arange(1, 5, dtype=float)
    assert bin_indices([1.0, 1.5, 2.5, 4.0], edges, 4).tolist() == [0, 0, 2, 3]


def test_edge_clamping_pinned():
    range1 = np.arange(1, 5, dtype=float)
    range2 = np.arange(1, 5, dtype=float)
    h = np.zeros((4, 4))
    fast_hist2d_weight(h, [-10.0, 100.0, 2.0], [1.0, 1.0, 100.0], [1.0, 2.0, 3.0], range1, range2)

    assert h[0, 0] == 1.0
    assert h[3, 0] == 2.0
    assert h[1, 3] == 3.0
    assert h.sum() == 6.0


# ──────────────────────────────────────────────────────────────
# Dense primitives
# ──────────────────────────────────────────────────────────────

@pytest.mark.parametrize("nx, ny", [(1, 1), (4, 7), (32, 32)])
def test_weight_histogram_conserves_mass(nx, ny):
    x, y, w = random_points(500, nx, ny, spill=3.0)
    h = fast_hist2d_weight(np.zeros((nx, ny)), x, y, w, np.arange(1, nx + 1), np.arange(1, ny + 1))
    assert h.shape == (nx, ny)
    assert np.isclose(h.sum(), w.sum())


def test_data_histogram_is_data_times_weight():
    range1 = np.arange(1, 4, dtype=float)
    h = np.zeros((3, 3))
    fast_hist2d_data(h, [1.0, 1.0, 3.0], [2.0, 2.0, 3.0], [2.0, 4.0, 1.0], [1.0, 0.5, 3.0], range1, range1)

    assert h[0, 1] == 2.0 * 1.0 + 4.0 * 0.5
    assert h[2, 2] == 3.0


def test_histograms_accumulate_in_place():
    r = np.arange(1, 3, dtype=float)
    h = np.ones((2, 2))
    out = fast_hist2d_weight(h, [1.0], [1.0], [2.0], r, r)
    assert out is h
    assert h[0, 0] == 3.0


# ──────────────────────────────────────────────────────────────
# Sparse / dense equivalence
# ──────────────────────────────────────────────────────────────

def test_sparse_matches_dense():
    nx, ny = 16, 9
    x, y, w = random_points(2000, nx, ny, seed=3, spill=1.0)
    data = np.linspace(-1.0, 1.0, len(x))
    range1, range2 = np.arange(1, nx + 1), np.arange(1, ny + 1)

    dense = fast_hist2d_data(np.zeros((nx, ny)), x, y, data, w, range1, range2)
    sparse = fast_hist2d_sparse({}, x, y, w, range1, range2, nx, ny, data=data)

    assert np.array_equal(sparse_to_dense(sparse, nx, ny), dense)


def test_sparse_only_stores_visited_bins():
    r = np.arange(1, 101, dtype=float)
    sparse = fast_hist2d_sparse({}, [5.0, 5.0, 50.0], [7.0, 7.0, 1.0], [1.0, 2.0, 4.0], r, r, 100, 100)
    assert sparse == {(4, 6): 3.0, (49, 0): 4.0}


@pytest.mark.parametrize("resolution", [64, SPARSE_RESOLUTION_THRESHOLD, SPARSE_RESOLUTION_THRESHOLD + 1, 8192])
def test_adaptive_paths_agree(resolution):
    nx, ny = 12, 20
    x, y, w = random_points(1000, nx, ny, seed=7)
    data = np.cos(x)
    ranges = (np.arange(1, nx + 1), np.arange(1, ny + 1))

    dense_w = fast_hist2d_weight(np.zeros((nx, ny)), x, y, w, *ranges)
    dense_d = fast_hist2d_data(np.zeros((nx, ny)), x, y, data, w, *ranges)

    assert np.array_equal(hist2d_weight_adaptive(x, y, ranges, w, resolution), dense_w)
    assert np.array_equal(hist2d_data_adaptive(x, y, ranges, w, data, resolution), dense_d)


def test_sparse_to_dense_empty():
    h = sparse_to_dense({}, 3, 2)
    assert h.shape == (3, 2)
    assert not h.any()


# ──────────────────────────────────────────────────────────────
# Enhanced coverage
# ──────────────────────────────────────────────────────────────

def test_coverage_radius_grows_with_scale_factor():
    assert coverage_radius_for(0.25) == 0.5
    assert coverage_radius_for(1.0) == 0.5
    assert coverage_radius_for(2.0) == 1.0
    assert coverage_radius_for(16.0) == 2.0


@pytest.mark.parametrize("radius", [0.5, 1.0, 2.0])
def test_enhanced_conserves_mass(radius):
    nx, ny = 10, 10
    x, y, w = random_points(300, nx, ny, seed=11, spill=2.0)
    h = fast_hist2d_weight_enhanced(np.zeros((nx, ny)), x, y, w, np.arange(1, nx + 1), np.arange(1, ny + 1), radius)
    assert np.isclose(h.sum(), w.sum())


def test_enhanced_spreads_over_neighbours():
    r = np.arange(1, 6, dtype=float)
    h = fast_hist2d_weight_enhanced(np.zeros((5, 5)), [3.0], [3.0], [1.0], r, r, 1.0)
    assert np.count_nonzero(h) == 5
    assert h[2, 2] > h[1, 2] > 0
    assert np.isclose(h.sum(), 1.0)


def test_enhanced_small_radius_matches_point_binning():
    r = np.arange(1, 5, dtype=float)
    x, y, w = [1.0, 3.0, 4.0], [2.0, 2.0, 4.0], [1.0, 2.0, 3.0]
    spread = fast_hist2d_weight_enhanced(np.zeros((4, 4)), x, y, w, r, r, 0.5)
    point = fast_hist2d_weight(np.zeros((4, 4)), x, y, w, r, r)
    assert np.allclose(spread, point)


def test_enhanced_off_centre_point_shares():
    r = np.arange(1, 9, dtype=float)
    px, py, radius = 4.3, 5.6, 1.5
    h = fast_hist2d_weight_enhanced(np.zeros((8, 8)), [px], [py], [2.0], r, r, radius)

    ii, jj = np.meshgrid(np.arange(8), np.arange(8), indexing="ij")
    dist = np.hypot(ii - (px - 1), jj - (py - 1))
    falloff = np.where(dist <= radius, np.maximum(0.1, 1 - (dist / radius) ** 2), 0.0)
    assert np.allclose(h, 2.0 * falloff / falloff.sum())


def test_enhanced_points_deposit_independently():
    nx, ny = 12, 9
    r1, r2 = np.arange(1, nx + 1), np.arange(1, ny + 1)
    x, y, w = random_points(40, nx, ny, seed=5, spill=3.0)
    together = fast_hist2d_weight_enhanced(np.zeros((nx, ny)), x, y, w, r1, r2, 2.0)
    apart = np.zeros((nx, ny))
    for k in range(len(x)):
        apart = fast_hist2d_weight_enhanced(apart, x[k:k + 1], y[k:k + 1], w[k:k + 1], r1, r2, 2.0)
    assert np.allclose(together, apart)


def test_enhanced_far_point_falls_back_to_edge_bin():
    r = np.arange(1, 5, dtype=float)
    h = fast_hist2d_weight_enhanced(np.zeros((4, 4)), [-100.0], [2.0], [7.0], r, r, 0.5)
    assert h[0, 1] == 7.0
    assert h.sum() == 7.0


def test_enhanced_data_variant():
    r = np.arange(1, 5, dtype=float)
    ranges = (r, r)
    weights = hist2d_weight_enhanced([2.0], [2.0], ranges, [2.0], 4.0)
    data = hist2d_weight_enhanced([2.0], [2.0], ranges, [2.0], 4.0, data=np.array([3.0]))
    assert np.allclose(data, 3.0 * weights)
