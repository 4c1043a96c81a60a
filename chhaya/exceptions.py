# -*- coding: utf-8 -*-

"""

Exception types raised by chhaya.

"""


class ConfigurationError(ValueError):
    """
    A projection request that cannot be carried out as configured: a mask of the
    wrong length, an unknown weighting or direction, a missing column, or an
    output raster whose shape does not match the grid.
    """


class UnitMismatchError(ConfigurationError):
    """
    A unit whose dimension does not match the quantity it is applied to.
    """
