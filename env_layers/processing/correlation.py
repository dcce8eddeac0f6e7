#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Correlation analysis for predictor selection.

Pairwise Pearson correlations are computed over the cells that are valid in
both layers of a pair. Redundant layers are then pruned greedily in input
order, so the retained set depends on the order the layers were given in:
callers that need a reproducible selection must fix that order.
"""
import warnings
from typing import Iterator, List, Sequence, Tuple

import numpy as np
import pandas as pd

from env_layers.core.config import DEFAULT_CORRELATION_THRESHOLD, MIN_CORRELATION_CELLS
from env_layers.core.exceptions import DegenerateCorrelation
from env_layers.core.logging_config import get_module_logger
from env_layers.processing.stack import NamedGrids, validate_geometry
from env_layers.utils.utils import timer

# Initialize logger
logger = get_module_logger(__name__)


class CorrelationMatrix:
    """
    Symmetric matrix of pairwise correlations between named layers.

    The diagonal is exactly 1. Off-diagonal entries are NaN when the pair
    shares fewer than ``MIN_CORRELATION_CELLS`` valid cells or when either
    layer is constant over the shared cells.
    """

    def __init__(self, names: Sequence[str], values: np.ndarray):
        names = tuple(names)
        arr = np.array(values, dtype=np.float64, copy=True)
        if arr.shape != (len(names), len(names)):
            raise ValueError(f"Matrix shape {arr.shape} does not match {len(names)} names")
        if len(set(names)) != len(names):
            raise ValueError(f"Layer names must be unique: {list(names)}")

        # Mirror the upper triangle so the matrix is symmetric bit for bit
        upper = np.triu_indices(len(names), k=1)
        arr[(upper[1], upper[0])] = arr[upper]
        np.fill_diagonal(arr, 1.0)
        arr.setflags(write=False)

        self._names = names
        self._index = {name: i for i, name in enumerate(names)}
        self._values = arr

    @property
    def names(self) -> Tuple[str, ...]:
        return self._names

    @property
    def values(self) -> np.ndarray:
        return self._values

    def __len__(self) -> int:
        return len(self._names)

    def get(self, a: str, b: str) -> float:
        return float(self._values[self._index[a], self._index[b]])

    def pairs(self) -> Iterator[Tuple[str, str, float]]:
        """Yield ``(a, b, r)`` for every pair with ``a`` before ``b``."""
        n = len(self._names)
        for i in range(n):
            for j in range(i + 1, n):
                yield self._names[i], self._names[j], float(self._values[i, j])

    def degenerate_pairs(self) -> List[Tuple[str, str]]:
        return [(a, b) for a, b, r in self.pairs() if np.isnan(r)]

    def high_pairs(self, threshold: float = DEFAULT_CORRELATION_THRESHOLD) -> List[Tuple[str, str, float]]:
        """Pairs whose absolute correlation exceeds ``threshold``."""
        return [(a, b, r) for a, b, r in self.pairs() if abs(r) > threshold]

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self._values, index=list(self._names), columns=list(self._names))

    def __repr__(self):
        return f"CorrelationMatrix(names={list(self._names)})"


@timer
def correlate(grids: NamedGrids) -> CorrelationMatrix:
    """
    Compute pairwise Pearson correlations between same-geometry layers.

    Parameters
    ----------
    grids : RasterStack, mapping or sequence
        Named grids sharing one geometry, in the order that later drives
        ``select_non_redundant``.

    Returns
    -------
    CorrelationMatrix
        Matrix over the layer names, in input order.

    Raises
    ------
    GeometryMismatch, DuplicateBand
        If the grids do not form a valid stack.
    """
    bands = validate_geometry(grids)
    if not bands:
        raise ValueError("Cannot correlate an empty set of layers")

    names = list(bands)
    logger.info(f"Computing correlations between {len(names)} layers")

    # One column per layer, missing cells as NaN; pandas drops NaN pairwise
    frame = pd.DataFrame({name: grid.masked_float().ravel() for name, grid in bands.items()})
    corr = frame.corr(method="pearson", min_periods=MIN_CORRELATION_CELLS)

    matrix = CorrelationMatrix(names, corr.loc[names, names].to_numpy())

    for a, b in matrix.degenerate_pairs():
        message = (f"Correlation between {a!r} and {b!r} is undefined "
                   f"(fewer than {MIN_CORRELATION_CELLS} shared valid cells or zero variance)")
        logger.warning(message)
        warnings.warn(message, DegenerateCorrelation, stacklevel=2)

    return matrix


def select_non_redundant(matrix: CorrelationMatrix,
                         threshold: float = DEFAULT_CORRELATION_THRESHOLD) -> List[str]:
    """
    Greedily drop layers that are highly correlated with an earlier layer.

    Layers are visited in matrix order. For each retained layer, every later
    layer not yet dropped whose absolute correlation with it exceeds
    ``threshold`` is dropped. A dropped layer never causes further drops, and
    undefined (NaN) correlations never exceed the threshold.

    The result depends on the input order: the same layers given in a
    different order can retain a different subset.

    Parameters
    ----------
    matrix : CorrelationMatrix
        Correlations between the candidate layers.
    threshold : float, optional
        Absolute correlation above which a pair is redundant, by default 0.6.

    Returns
    -------
    list
        Retained layer names, in matrix order.
    """
    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"Threshold must be in [0, 1], got {threshold}")

    names = matrix.names
    values = matrix.values
    dropped = set()

    for i, name in enumerate(names):
        if name in dropped:
            continue
        for j in range(i + 1, len(names)):
            other = names[j]
            if other in dropped:
                continue
            r = values[i, j]
            if not np.isnan(r) and abs(r) > threshold:
                dropped.add(other)
                logger.info(f"Dropping {other!r}: |r| = {abs(r):.3f} with {name!r} "
                            f"exceeds {threshold}")

    retained = [name for name in names if name not in dropped]
    logger.info(f"Retained {len(retained)} of {len(names)} layers: {retained}")
    return retained
