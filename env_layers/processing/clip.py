#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Spatial clipping of raster grids.

Clipping only truncates rows and columns: the output keeps the source cell
size, spatial reference, dtype and missing sentinel, and its origin moves by
whole cells. Every source cell whose area overlaps the requested box is kept.
"""
import math
from typing import Tuple, Union

from env_layers.core.config import SNAP_TOLERANCE
from env_layers.core.exceptions import NoOverlap
from env_layers.core.grid import BoundingBox, GridGeometry, RasterGrid
from env_layers.core.logging_config import get_module_logger

# Initialize logger
logger = get_module_logger(__name__)

BoxLike = Union[BoundingBox, Tuple[float, float, float, float]]


def clip_window(geometry: GridGeometry, bbox: BoxLike,
                layer: str = "<grid>") -> Tuple[int, int, int, int]:
    """
    Compute the row/column window of a grid covered by a box.

    Parameters
    ----------
    geometry : GridGeometry
        Geometry of the grid to clip.
    bbox : BoundingBox or tuple
        Requested extent ``(xmin, ymin, xmax, ymax)``.
    layer : str, optional
        Layer name used in the error message.

    Returns
    -------
    tuple
        ``(row_start, row_stop, col_start, col_stop)``, stop exclusive.

    Raises
    ------
    NoOverlap
        If the box and the grid extent share no area.
    """
    box = BoundingBox.coerce(bbox)
    extent = geometry.bounds
    overlap = extent.intersection(box)
    if overlap is None:
        raise NoOverlap(layer, box, extent)

    x0, y0 = geometry.origin
    xres, yres = geometry.cell_size

    col_start = int(math.floor((overlap.xmin - x0) / xres + SNAP_TOLERANCE))
    col_stop = int(math.ceil((overlap.xmax - x0) / xres - SNAP_TOLERANCE))
    row_start = int(math.floor((y0 - overlap.ymax) / yres + SNAP_TOLERANCE))
    row_stop = int(math.ceil((y0 - overlap.ymin) / yres - SNAP_TOLERANCE))

    col_start = max(0, min(col_start, geometry.cols - 1))
    row_start = max(0, min(row_start, geometry.rows - 1))
    col_stop = max(col_start + 1, min(col_stop, geometry.cols))
    row_stop = max(row_start + 1, min(row_stop, geometry.rows))

    return row_start, row_stop, col_start, col_stop


def clip(grid: RasterGrid, bbox: BoxLike) -> RasterGrid:
    """
    Restrict a grid to the part of its extent inside a bounding box.

    Parameters
    ----------
    grid : RasterGrid
        Grid to clip.
    bbox : BoundingBox or tuple
        Requested extent.

    Returns
    -------
    RasterGrid
        New grid aligned to the source cells.
    """
    row_start, row_stop, col_start, col_stop = clip_window(grid.geometry, bbox, layer=grid.name)

    values = grid.values[row_start:row_stop, col_start:col_stop]
    geometry = grid.geometry.window(row_start, row_stop, col_start, col_stop)

    logger.debug(f"Clipped {grid.name!r} from {grid.shape} to {values.shape}")
    return RasterGrid(grid.name, values, geometry, grid.nodata)
