#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

──────────────────────────────────────────────────────────────────────────────
CLI QUICK START (copy–paste, then tweak)
──────────────────────────────────────────────────────────────────────────────
Example run (surface density and mass-weighted density of a sub-volume):

    chhaya \
        --base-dir ./simulations \
        --folder-name output_dir \
        --numbers 1,3,5-7 \
        --output-prefix projection \
        --vars sd,rho --units Msol_pc2,nH \
        --direction z --res 512 \
        --x-range 0.25:0.75 --y-range 0.25:0.75 \
        --threads 4 --verbose

Exploration mode :

    # Lists fields Osyris sees in the mesh (no projection happens)
    chhaya --base-dir ./simulations --folder-name output_dir -n 5 --list-fields

    # Dry-run: show the plan, but don't write .h5 files
    chhaya --base-dir ./simulations --folder-name output_dir -n 5 --dry-run --verbose

Required args:

    --base-dir         Path to your RAMSES run root directory.
    --folder-name      Subfolder inside base-dir containing outputs.
    -n / --numbers     Output numbers to process. Formats:
                       "7" or "3,5,9" or "10-15"

Optional args:

    --output-prefix / -o   Prefix for output files (default: projection)
    --output-dir           Where to write files (default: the input folder)
    --vars / --units       Comma-separated maps and units (one unit or one per map)
    --direction            Projection axis x, y or z (default: z)
    --res                  Pixels per box side (default: 2**levelmax)
    --weighting / --mode   mass|volume|none, standard|sum
    --level-start / --level-end     AMR level filter (inclusive)
    --x-range / --y-range / --z-range   Normalized ranges [0,1] over box length
    --enhanced             Gap-filling binning for coarse levels
    --threads              Threads per projection
    --nproc                Snapshots processed in parallel
    --verbose              step-by-step narration
    --list-fields          Only list available mesh fields and exit
    --dry-run              Run everything except the projection and write step

"""


import os
import argparse
import logging
import sys

from .converter import parse_output_numbers, parse_norm_range, parse_fields_arg, list_fields_for_snapshot
from .geometry import AXIS_SLOTS
from .parallel import run_parallel_projection, setup_logging
from .projection import MODES, WEIGHTINGS

logger = logging.getLogger("chhaya")


def non_negative_int(val: str) -> int:
    try:
        iv = int(val)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid integer value: {val}")
    if iv < 0:
        raise argparse.ArgumentTypeError(f"Invalid value: {val}. Must be non-negative.")
    return iv


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="2D projections of RAMSES AMR outputs")

    # Required inputs
    parser.add_argument("--base-dir", type=str, required=True, help="Base directory containing simulation folders (REQUIRED)")
    parser.add_argument("--folder-name", type=str, required=True, help="Folder inside base_dir to process (REQUIRED)")
    parser.add_argument("-n", "--numbers", type=parse_output_numbers, required=True, help="Output numbers like '1', '1,3,5' or '2-7' (REQUIRED)")

    # Output
    parser.add_argument("-o", "--output-prefix", dest="output_prefix", default="projection", help="Output file prefix (default: projection)")
    parser.add_argument("--output-dir", dest="output_dir", default=None, help="Directory for output files (default: input folder)")

    # Maps
    parser.add_argument("--vars", type=parse_fields_arg, default=None, help="Comma-separated variables to project (default: sd,rho)")
    parser.add_argument("--units", type=parse_fields_arg, default=None, help="Comma-separated units, one for all or one per variable (default: standard)")
    parser.add_argument("--direction", choices=sorted(AXIS_SLOTS), default="z", help="Projection axis (default: z)")
    parser.add_argument("--res", type=non_negative_int, default=None, help="Pixels per box side (default: 2**levelmax)")
    parser.add_argument("--weighting", choices=WEIGHTINGS, default="mass", help="Weighting (default: mass)")
    parser.add_argument("--mode", choices=MODES, default="standard", help="standard = weighted average, sum = weighted sum")

    # Level selection and ranges
    parser.add_argument("--level-start", type=non_negative_int, default=None, help="Minimum AMR level to include (inclusive). Optional.")
    parser.add_argument("--level-end", type=non_negative_int, default=None, help="Maximum AMR level to include (inclusive). Optional.")
    parser.add_argument("--x-range", type=parse_norm_range, default=None, help="Normalized x range 'min:max' (e.g., 0.2:0.8, :0.7, 0.1:, :).")
    parser.add_argument("--y-range", type=parse_norm_range, default=None, help="Normalized y range 'min:max'.")
    parser.add_argument("--z-range", type=parse_norm_range, default=None, help="Normalized z range 'min:max'.")

    # Execution
    parser.add_argument("--enhanced", action="store_true", help="Spread coarse cells over neighbouring pixels.")
    parser.add_argument("--threads", type=non_negative_int, default=1, help="Threads per projection (default: 1)")
    parser.add_argument("--nproc", type=non_negative_int, default=None, help="Snapshots processed in parallel (default: serial)")

    parser.add_argument("--list-fields", action="store_true", help="List available fields in the first requested snapshot and exit.")

    # Utility flags
    parser.add_argument("--dry-run", action="store_true", help="Print plan without writing files.")
    parser.add_argument("--verbose", action="store_true", help="Verbose logging.")

    return parser


def main() -> int:

    """
    Parse CLI args and run the projection pipeline.
    """

    parser = build_parser()
    args = parser.parse_args()

    setup_logging(args.verbose)

    input_folder = os.path.join(os.path.abspath(args.base_dir), args.folder_name)

    if not os.path.exists(input_folder):
        logger.error("Input folder not found: %s", input_folder)
        return 1

    if args.level_start is not None and args.level_end is not None:
        if args.level_end < args.level_start:
            parser.error(f"Invalid level range: end ({args.level_end}) < start ({args.level_start}).")

    if args.res == 0:
        parser.error("--res must be at least 1.")

    if args.units and args.vars and len(args.units) not in (1, len(args.vars)):
        parser.error(f"--units needs one entry or {len(args.vars)} entries, got {len(args.units)}.")

    def norm_default(r):
        return (None, None) if r is None else r

    if args.list_fields:
        first_num = args.numbers[0]
        logger.info("Listing fields for snapshot %s in folder '%s'...", first_num, input_folder)
        fields = list_fields_for_snapshot(input_folder, first_num)

        if fields:
            print("Available fields (best-effort):")
            for f in fields:
                print(" -", f)
        else:
            print("No fields discovered (see logs for details).")
        return 0

    try:
        run_parallel_projection(
            output_numbers=args.numbers,
            input_folder=input_folder,
            output_prefix=args.output_prefix,
            variables=args.vars,
            units=args.units,
            direction=args.direction,
            res=args.res,
            weighting=args.weighting,
            mode=args.mode,
            level_start=args.level_start,
            level_end=args.level_end,
            x_range_norm=norm_default(args.x_range),
            y_range_norm=norm_default(args.y_range),
            z_range_norm=norm_default(args.z_range),
            enhanced=args.enhanced,
            max_threads=max(args.threads, 1),
            dry_run=args.dry_run,
            verbose=args.verbose,
            nproc=args.nproc,
            output_directory=args.output_dir,
        )
    except Exception as e:
        logger.exception("FATAL: Unexpected error: %s", e)
        raise

    return 0


if __name__ == "__main__":
    sys.exit(main())
