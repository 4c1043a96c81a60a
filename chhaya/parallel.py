#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

Parallel execution utilities for chhaya: one process per snapshot.

"""

from __future__ import annotations

from functools import partial
from typing import List, Optional, Tuple

import logging
import time
import concurrent.futures

from .converter import ProjectionRunner, setup_logging

logger = logging.getLogger("chhaya")


def process_single_output(
    output_num: int,
    input_folder: str,
    output_prefix: str,
    variables: Optional[List[str]],
    units: Optional[List[str]],
    direction: str,
    res: Optional[int],
    weighting: str,
    mode: str,
    level_start: Optional[int],
    level_end: Optional[int],
    x_range_norm: Tuple[Optional[float], Optional[float]],
    y_range_norm: Tuple[Optional[float], Optional[float]],
    z_range_norm: Tuple[Optional[float], Optional[float]],
    enhanced: bool,
    max_threads: int,
    dry_run: bool,
    verbose: bool,
    output_directory: Optional[str] = None,
) -> Optional[str]:
    """
    Worker function executed in each process. It configures logging and runs the
    projection of a single snapshot number.

    Args:
        output_num: Snapshot/output number being processed.
        input_folder: Root input directory containing RAMSES outputs.
        output_prefix: File prefix for output files.
        variables, units: Maps to produce and their units.
        direction, res, weighting, mode: Projection options.
        level_start, level_end: Optional AMR level filtering.
        x_range_norm, y_range_norm, z_range_norm: Optional normalized ranges.
        enhanced: Gap-filling binning.
        max_threads: Threads used inside the projection.
        dry_run: Flag to skip writing output files.
        verbose: Flag for verbose logging.
        output_directory: Optional directory to save output files. If None, uses input_folder.

    Returns:
        Written path or None.
    """
    setup_logging(verbose)

    try:
        runner = ProjectionRunner(
            input_folder=input_folder,
            output_prefix=output_prefix,
            variables=variables,
            units=units,
            direction=direction,
            res=res,
            weighting=weighting,
            mode=mode,
            level_start=level_start,
            level_end=level_end,
            x_range_norm=x_range_norm,
            y_range_norm=y_range_norm,
            z_range_norm=z_range_norm,
            enhanced=enhanced,
            max_threads=max_threads,
            dry_run=dry_run,
            output_directory=output_directory,
            verbose=verbose,
        )
        return runner.process_output(output_num)
    except Exception:
        # other workers keep going
        logger.exception("[worker %s] Unexpected worker error", output_num)
        return None


def run_parallel_projection(
    output_numbers: List[int],
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
    verbose: bool = False,
    nproc: Optional[int] = None,
    output_directory: Optional[str] = None,
) -> List[Optional[str]]:
    """
    High-level runner that dispatches the projection of multiple outputs.

    Parameters:
    - output_numbers: List of snapshot numbers to project.
    - nproc: Number of processes. None or <= 0 means serial execution; otherwise
             up to min(nproc, number of outputs) workers.
    - the remaining options are passed to ProjectionRunner.

    Behavior:
    - Attempts parallel execution using the specified number of workers.
    - On parallel execution failure, falls back to serial processing per output,
      continuing on errors without stopping the entire process.

    Returns:
    - written path (or None) per output number, in input order
    """

    if nproc is not None and nproc > 0:
        nworkers = min(nproc, len(output_numbers))
    else:
        nworkers = 1

    logger.info("Starting on %d worker(s) for outputs %s", nworkers, output_numbers)
    t0 = time.time()

    worker = partial(
        process_single_output,
        input_folder=input_folder,
        output_prefix=output_prefix,
        variables=variables,
        units=units,
        direction=direction,
        res=res,
        weighting=weighting,
        mode=mode,
        level_start=level_start,
        level_end=level_end,
        x_range_norm=x_range_norm,
        y_range_norm=y_range_norm,
        z_range_norm=z_range_norm,
        enhanced=enhanced,
        max_threads=max_threads,
        dry_run=dry_run,
        verbose=verbose,
        output_directory=output_directory,
    )

    results: List[Optional[str]] = []

    if nworkers == 1:
        results = [worker(num) for num in output_numbers]
    else:
        try:
            with concurrent.futures.ProcessPoolExecutor(max_workers=nworkers) as ex:
                results = list(ex.map(worker, output_numbers))
        except Exception as e:
            logger.error("Parallel execution failed: %s", e)
            logger.info("Falling back to serial execution...")

            results = []
            for num in output_numbers:
                try:
                    results.append(worker(num))
                except Exception as ew:
                    logger.exception("Serial worker failed for output %s: %s", num, ew)
                    results.append(None)

    logger.info("Total elapsed: %.2fs", time.time() - t0)
    return results
