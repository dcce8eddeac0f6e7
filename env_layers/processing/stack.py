#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Multi-band raster stack.

A stack is an ordered, read-only mapping from band name to ``RasterGrid``
in which every member shares one grid geometry. Band names are resolved
once, when the stack is built; later stages address bands by name only.
"""
from collections import OrderedDict
from collections.abc import Mapping
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping as MappingType, Optional, Sequence, Tuple, Union

import numpy as np

from env_layers.core.exceptions import DuplicateBand, GeometryMismatch
from env_layers.core.grid import GridGeometry, RasterGrid
from env_layers.core.logging_config import get_module_logger

# Initialize logger
logger = get_module_logger(__name__)

NamedGrids = Union[MappingType[str, RasterGrid], Iterable[Tuple[str, RasterGrid]], Iterable[RasterGrid]]


def iter_named_grids(named_grids: NamedGrids) -> Iterator[Tuple[str, RasterGrid]]:
    """
    Normalise the accepted band inputs to ``(name, grid)`` pairs.

    Accepts a mapping, a sequence of ``(name, grid)`` pairs, or a sequence of
    grids (named by ``grid.name``).
    """
    if isinstance(named_grids, Mapping):
        yield from named_grids.items()
        return
    for item in named_grids:
        if isinstance(item, RasterGrid):
            yield item.name, item
        else:
            name, grid = item
            yield name, grid


def validate_geometry(named_grids: NamedGrids) -> "OrderedDict[str, RasterGrid]":
    """
    Check that all grids share one geometry and have distinct names.

    Returns
    -------
    OrderedDict
        Grids keyed by band name, in input order.

    Raises
    ------
    DuplicateBand
        On the first repeated band name.
    GeometryMismatch
        On the first band whose geometry differs from the first band's.
    """
    bands: "OrderedDict[str, RasterGrid]" = OrderedDict()
    reference: Optional[GridGeometry] = None

    for name, grid in iter_named_grids(named_grids):
        if not isinstance(grid, RasterGrid):
            raise TypeError(f"Band {name!r} is not a RasterGrid: {type(grid).__name__}")
        if name in bands:
            raise DuplicateBand(name)
        if reference is None:
            reference = grid.geometry
        else:
            diff = reference.mismatch(grid.geometry)
            if diff is not None:
                attribute, expected, actual = diff
                raise GeometryMismatch(name, attribute, expected, actual)
        bands[name] = grid

    return bands


class RasterStack(Mapping):
    """
    Immutable ordered collection of same-geometry bands.

    Use ``RasterStack.build`` to construct one.
    """

    def __init__(self, bands: "OrderedDict[str, RasterGrid]", geometry: GridGeometry):
        self._bands = MappingProxyType(bands)
        self._names = tuple(bands)
        self._geometry = geometry

    @classmethod
    def build(cls, named_grids: NamedGrids) -> "RasterStack":
        """
        Assemble a stack, preserving band order.

        Parameters
        ----------
        named_grids : mapping or sequence
            Bands as a mapping, ``(name, grid)`` pairs or named grids.

        Returns
        -------
        RasterStack
            The assembled stack.
        """
        bands = validate_geometry(named_grids)
        if not bands:
            raise ValueError("Cannot build a stack without bands")

        # Band names are the stack's schema; grids carry the same name
        bands = OrderedDict(
            (name, grid if grid.name == name else grid.renamed(name))
            for name, grid in bands.items()
        )
        geometry = next(iter(bands.values())).geometry
        logger.info(f"Built stack of {len(bands)} bands with shape {geometry.shape}")
        return cls(bands, geometry)

    def __getitem__(self, name: str) -> RasterGrid:
        return self._bands[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._names)

    def __len__(self) -> int:
        return len(self._names)

    def __repr__(self):
        return f"RasterStack(bands={list(self._names)}, shape={self._geometry.shape})"

    @property
    def geometry(self) -> GridGeometry:
        return self._geometry

    @property
    def band_names(self) -> Tuple[str, ...]:
        return self._names

    def nodata_for(self, band: str) -> Optional[float]:
        return self._bands[band].nodata

    def select(self, names: Sequence[str]) -> "RasterStack":
        """Sub-stack holding the named bands, in the requested order."""
        missing = [n for n in names if n not in self._bands]
        if missing:
            raise KeyError(f"Bands not in stack: {missing}")
        return RasterStack.build([(n, self._bands[n]) for n in names])

    def to_array(self) -> np.ndarray:
        """
        Stack the bands into a ``(bands, rows, cols)`` float64 array.

        Missing cells are NaN.
        """
        return np.stack([self._bands[n].masked_float() for n in self._names])

    def valid_mask(self) -> np.ndarray:
        """``(bands, rows, cols)`` boolean array of valid cells."""
        return np.stack([self._bands[n].valid_mask for n in self._names])
