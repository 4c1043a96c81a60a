#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

─────────────────────────────────────────────────────────────
Example Usage of Chhaya
─────────────────────────────────────────────────────────────

This script demonstrates how to use the projection engine:

1. Projecting a small synthetic two-level cell table
2. Listing available fields in real snapshots
3. Performing a dry-run with `ProjectionRunner` (no files written)

─────────────────────────────────────────────────────────────

"""

from typing import List

import numpy as np

from chhaya import CellTable, projection
from chhaya.converter import ProjectionRunner, list_fields_for_snapshot

# ──────────────────────────────────────────────────────────────
# Configuration
# ──────────────────────────────────────────────────────────────

RAMSES_OUTPUT_ROOT = "ramses_outputs/sedov_3d"

SNAPSHOT_NUMBERS = [1, 2]

VARIABLES = ["sd", "rho", "sigma_z"]

DRY_RUN = True

OUTPUT_DIR = None  # e.g. "projections"; None writes next to the input


# ──────────────────────────────────────────────────────────────
# Helper Functions
# ──────────────────────────────────────────────────────────────


def synthetic_table() -> CellTable:
    """
    Level-1 grid (2x2x2 cells) with one cell refined to level 2.
    """
    cx, cy, cz, level = [], [], [], []
    for i in (1, 2):
        for j in (1, 2):
            for k in (1, 2):
                if (i, j, k) == (1, 1, 1):
                    continue
                cx.append(i)
                cy.append(j)
                cz.append(k)
                level.append(1)
    for i in (1, 2):
        for j in (1, 2):
            for k in (1, 2):
                cx.append(i)
                cy.append(j)
                cz.append(k)
                level.append(2)

    n = len(level)
    rng = np.random.default_rng(0)
    return CellTable(
        {
            "cx": cx,
            "cy": cy,
            "cz": cz,
            "level": level,
            "rho": rng.uniform(0.5, 2.0, n),
            "vx": rng.normal(size=n),
            "vy": rng.normal(size=n),
            "vz": rng.normal(size=n),
        }
    )


def print_maps(names: List[str], result) -> None:
    for name in names:
        m = result[name]
        print(f"  {name:8s} [{result.maps_unit[name]}] min={m.min():.4g} max={m.max():.4g}")


# ──────────────────────────────────────────────────────────────
# Main Example Workflow
# ──────────────────────────────────────────────────────────────

def main():

    print("=== Chhaya Example Usage ===\n")

    result = projection(synthetic_table(), VARIABLES, res=8, direction="z", max_threads=2, verbose=True)
    print(f"Synthetic projection: {result['sd'].shape} pixels, extent {result.extent}")
    print_maps(VARIABLES, result)

    for num in SNAPSHOT_NUMBERS:
        fields = list_fields_for_snapshot(RAMSES_OUTPUT_ROOT, num)
        print(f"\nSnapshot {num}: fields {', '.join(fields) if fields else 'None'}")

        runner = ProjectionRunner(
            input_folder=RAMSES_OUTPUT_ROOT,
            output_prefix="example",
            variables=VARIABLES,
            dry_run=DRY_RUN,
            output_directory=OUTPUT_DIR,
        )
        path = runner.process_output(num)
        if path:
            print(f"Wrote {path}")

    print("\nSet DRY_RUN = False to write HDF5 files.")


# ──────────────────────────────────────────────────────────────
# Entry Point
# ──────────────────────────────────────────────────────────────

if __name__ == "__main__":
    main()
