# -*- coding: utf-8 -*-

"""

Chhaya: AMR-aware 2D projections of RAMSES outputs
===================================================

──────────────────────────────────────────────────────────────────────────────
Description
──────────────────────────────────────────────────────────────────────────────
Chhaya projects RAMSES adaptive-mesh cell data along x, y or z onto a regular
2D raster: surface density, mass- or volume-weighted averages, weighted sums,
velocity dispersions and geometric maps.

──────────────────────────────────────────────────────────────────────────────
WHY THIS EXISTS
──────────────────────────────────────────────────────────────────────────────
- AMR cells have different sizes per refinement level. Binning them onto one
  grid needs per-level rescaling and an area correction so that coarse and fine
  cells contribute consistently.
- Large rasters and many variables benefit from sparse storage and threading.

"""

from .converter import (
    ProjectionRunner,
    parse_output_numbers,
    parse_norm_range,
    parse_fields_arg,
    list_fields_for_snapshot,
    read_projection,
    write_projection,
)

from .dataset import CellTable, read_cell_table
from .exceptions import ConfigurationError, UnitMismatchError
from .levels import ProjectionContext

from .parallel import (
    process_single_output,
    run_parallel_projection,
)

from .projection import (
    ProjectionResult,
    projection,
    weighted_average,
    dispersion_map,
    radius_map,
    angle_map,
)

from .strategy import should_use_variable_threading
from .units import Scales, getunit
from .variables import getvar

__version__ = "1.0.0"
