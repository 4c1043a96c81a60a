# -*- coding: utf-8 -*-

"""

Choice between variable-parallel and level-parallel accumulation.

"""

from __future__ import annotations


def should_use_variable_threading(
    n_variables: int,
    max_threads: int,
    n_amr_levels: int = 1,
    total_cells: int = 0,
) -> bool:
    """
    True when the variables of each level should be histogrammed concurrently.

    Args:
        n_variables: number of rasters accumulated per level
        max_threads: maximum number of threads of the call
        n_amr_levels: number of non-empty levels
        total_cells: number of cells being projected
    """
    if max_threads <= 1 or n_variables <= 1:
        return False
    if n_variables >= max_threads:
        return True

    # work per variable against twice the work per level
    levels = max(n_amr_levels, 1)
    return total_cells / n_variables > 2 * total_cells / levels
