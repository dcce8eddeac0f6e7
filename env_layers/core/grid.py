#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Grid data model for the environmental layer extraction pipeline.

A ``RasterGrid`` is one band of numeric cells on a regular north-up grid.
Its ``GridGeometry`` carries the spatial reference, the top-left origin, the
cell size and the row/column counts; its missing-value sentinel travels with
it so that missing cells can be told apart from valid ones in every stage.
"""
import math
from dataclasses import dataclass
from typing import Optional, Tuple, Union

import numpy as np

from env_layers.core.config import GEOMETRY_TOLERANCE, SNAP_TOLERANCE


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned extent ``(xmin, ymin, xmax, ymax)``."""
    xmin: float
    ymin: float
    xmax: float
    ymax: float

    def __post_init__(self):
        if not (self.xmin < self.xmax and self.ymin < self.ymax):
            raise ValueError(
                f"Invalid bounding box {tuple(self)}: expected xmin < xmax and ymin < ymax"
            )

    def __iter__(self):
        return iter((self.xmin, self.ymin, self.xmax, self.ymax))

    @classmethod
    def coerce(cls, bbox: Union["BoundingBox", Tuple[float, float, float, float]]) -> "BoundingBox":
        if isinstance(bbox, cls):
            return bbox
        xmin, ymin, xmax, ymax = (float(v) for v in bbox)
        return cls(xmin, ymin, xmax, ymax)

    def intersection(self, other: "BoundingBox") -> Optional["BoundingBox"]:
        """Return the overlap of two boxes, or None when it has no area."""
        xmin = max(self.xmin, other.xmin)
        ymin = max(self.ymin, other.ymin)
        xmax = min(self.xmax, other.xmax)
        ymax = min(self.ymax, other.ymax)
        if xmin >= xmax or ymin >= ymax:
            return None
        return BoundingBox(xmin, ymin, xmax, ymax)

    def contains(self, x: float, y: float) -> bool:
        return self.xmin <= x <= self.xmax and self.ymin <= y <= self.ymax


def _close(a: float, b: float) -> bool:
    return math.isclose(a, b, rel_tol=GEOMETRY_TOLERANCE, abs_tol=GEOMETRY_TOLERANCE)


@dataclass(frozen=True)
class GridGeometry:
    """
    Placement of a regular north-up grid.

    Attributes
    ----------
    crs : str or None
        Spatial reference, as a WKT/PROJ/EPSG string.
    origin : tuple
        ``(x, y)`` of the top-left corner of the top-left cell.
    cell_size : tuple
        ``(xres, yres)``, both positive.
    rows, cols : int
        Grid dimensions.
    """
    crs: Optional[str]
    origin: Tuple[float, float]
    cell_size: Tuple[float, float]
    rows: int
    cols: int

    def __post_init__(self):
        if self.cell_size[0] <= 0 or self.cell_size[1] <= 0:
            raise ValueError(f"Cell size must be positive: {self.cell_size}")
        if self.rows < 1 or self.cols < 1:
            raise ValueError(f"Grid must have at least one cell: {self.rows}x{self.cols}")

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.rows, self.cols)

    @property
    def bounds(self) -> BoundingBox:
        x0, y0 = self.origin
        xres, yres = self.cell_size
        return BoundingBox(x0, y0 - self.rows * yres, x0 + self.cols * xres, y0)

    def mismatch(self, other: "GridGeometry") -> Optional[Tuple[str, object, object]]:
        """
        Compare two geometries attribute by attribute.

        Returns
        -------
        tuple or None
            ``(attribute, expected, actual)`` for the first differing
            attribute, with ``self`` as the expected side; None if identical.
        """
        if self.crs != other.crs:
            return ("spatial reference", self.crs, other.crs)
        if not (_close(self.cell_size[0], other.cell_size[0])
                and _close(self.cell_size[1], other.cell_size[1])):
            return ("cell size", self.cell_size, other.cell_size)
        if (self.rows, self.cols) != (other.rows, other.cols):
            return ("dimensions", self.shape, other.shape)
        if not (_close(self.origin[0], other.origin[0])
                and _close(self.origin[1], other.origin[1])):
            return ("origin", self.origin, other.origin)
        return None

    def cell_index(self, x: float, y: float) -> Optional[Tuple[int, int]]:
        """
        Locate the cell containing a point.

        A point on an inner cell edge belongs to the cell to its right
        (below, for rows), even when the division lands just short of the
        edge. Points on the maximum edges of the extent belong to the last
        row/column. Returns None for points outside the extent.
        """
        if not self.bounds.contains(x, y):
            return None
        x0, y0 = self.origin
        xres, yres = self.cell_size
        col = int(math.floor((x - x0) / xres + SNAP_TOLERANCE))
        row = int(math.floor((y0 - y) / yres + SNAP_TOLERANCE))
        return min(max(row, 0), self.rows - 1), min(max(col, 0), self.cols - 1)

    def window(self, row_start: int, row_stop: int, col_start: int, col_stop: int) -> "GridGeometry":
        """Geometry of a sub-grid aligned to this grid's cells."""
        x0, y0 = self.origin
        xres, yres = self.cell_size
        return GridGeometry(
            crs=self.crs,
            origin=(x0 + col_start * xres, y0 - row_start * yres),
            cell_size=self.cell_size,
            rows=row_stop - row_start,
            cols=col_stop - col_start,
        )


class RasterGrid:
    """
    One band of numeric cells with its geometry and missing sentinel.

    The value array is copied and made read-only on construction, so a grid
    can be shared between threads and stacks without defensive copies.
    """

    __slots__ = ("name", "geometry", "nodata", "_values", "_mask")

    def __init__(self, name: str, values: np.ndarray, geometry: GridGeometry,
                 nodata: Optional[float] = None):
        arr = np.array(values, copy=True)
        if arr.ndim != 2:
            raise ValueError(f"Grid {name!r} must be 2D, got shape {arr.shape}")
        if arr.shape != geometry.shape:
            raise ValueError(
                f"Grid {name!r} has shape {arr.shape} but geometry declares {geometry.shape}"
            )
        if not np.issubdtype(arr.dtype, np.number):
            raise TypeError(f"Grid {name!r} must hold numeric values, got {arr.dtype}")
        arr.setflags(write=False)

        self.name = name
        self.geometry = geometry
        self.nodata = nodata
        self._values = arr
        self._mask = None

    @property
    def values(self) -> np.ndarray:
        return self._values

    @property
    def shape(self) -> Tuple[int, int]:
        return self._values.shape

    @property
    def dtype(self) -> np.dtype:
        return self._values.dtype

    @property
    def bounds(self) -> BoundingBox:
        return self.geometry.bounds

    @property
    def valid_mask(self) -> np.ndarray:
        """Boolean array, True where the cell holds a real value."""
        if self._mask is None:
            mask = np.ones(self._values.shape, dtype=bool)
            if self.nodata is not None and not (isinstance(self.nodata, float)
                                                and math.isnan(self.nodata)):
                mask &= self._values != self.nodata
            if np.issubdtype(self._values.dtype, np.floating):
                mask &= ~np.isnan(self._values)
            mask.setflags(write=False)
            self._mask = mask
        return self._mask

    def is_valid(self, row: int, col: int) -> bool:
        return bool(self.valid_mask[row, col])

    def masked_float(self) -> np.ndarray:
        """Float64 copy of the values with missing cells set to NaN."""
        out = self._values.astype(np.float64)
        out[~self.valid_mask] = np.nan
        return out

    def renamed(self, name: str) -> "RasterGrid":
        return RasterGrid(name, self._values, self.geometry, self.nodata)

    def __repr__(self):
        return (f"RasterGrid(name={self.name!r}, shape={self.shape}, "
                f"dtype={self.dtype}, nodata={self.nodata!r})")
