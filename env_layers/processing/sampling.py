#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Point sampling of raster stacks.

Each point is mapped to the stack cell that contains it (nearest-cell
lookup, no interpolation) and every band is read at that cell. Points
outside the stack extent and cells holding the missing sentinel produce a
value explicitly flagged as missing; nothing is coerced to zero.
"""
from collections import OrderedDict
from dataclasses import dataclass
from typing import Iterable, List, NamedTuple, Optional, Sequence

import pandas as pd

from env_layers.core.config import EXPORT_CONFIG
from env_layers.core.logging_config import get_module_logger
from env_layers.processing.stack import RasterStack
from env_layers.utils.utils import round_half_away, timer

# Initialize logger
logger = get_module_logger(__name__)


@dataclass(frozen=True)
class SamplePoint:
    """A location to sample, in the stack's spatial reference."""
    id: str
    x: float
    y: float

    @property
    def lon(self) -> float:
        return self.x

    @property
    def lat(self) -> float:
        return self.y


class SampleValue(NamedTuple):
    """One band's value at one point; ``value`` is None when missing."""
    value: Optional[float]
    is_missing: bool


MISSING = SampleValue(None, True)


@dataclass(frozen=True)
class ExtractionRow:
    """Sampled values for one point, keyed by band name in stack order."""
    point_id: str
    x: float
    y: float
    values: "OrderedDict[str, SampleValue]"

    @property
    def is_complete(self) -> bool:
        return not any(v.is_missing for v in self.values.values())

    def value(self, band: str) -> Optional[float]:
        return self.values[band].value


def _cell_value(raw, precision: Optional[int]) -> float:
    value = raw.item() if hasattr(raw, "item") else raw
    if precision is not None:
        return round_half_away(float(value), precision)
    return value


@timer
def sample(stack: RasterStack, points: Sequence[SamplePoint],
           precision: Optional[int] = None) -> List[ExtractionRow]:
    """
    Extract every band of a stack at each point.

    Parameters
    ----------
    stack : RasterStack
        Stack to sample.
    points : sequence of SamplePoint
        Points in the stack's spatial reference.
    precision : int, optional
        Decimal digits to round each value to (half away from zero).
        None leaves values unrounded.

    Returns
    -------
    list of ExtractionRow
        One row per point, in input order.
    """
    if precision is not None and (isinstance(precision, bool) or not isinstance(precision, int)
                                  or precision < 0):
        raise ValueError(f"Precision must be a non-negative integer, got {precision!r}")

    geometry = stack.geometry
    bands = [(name, stack[name].values, stack[name].valid_mask) for name in stack.band_names]

    rows = []
    outside = 0
    for point in points:
        cell = geometry.cell_index(point.x, point.y)
        values: "OrderedDict[str, SampleValue]" = OrderedDict()

        if cell is None:
            outside += 1
            for name, _, _ in bands:
                values[name] = MISSING
        else:
            r, c = cell
            for name, arr, mask in bands:
                if mask[r, c]:
                    values[name] = SampleValue(_cell_value(arr[r, c], precision), False)
                else:
                    values[name] = MISSING

        rows.append(ExtractionRow(point.id, point.x, point.y, values))

    if outside:
        logger.warning(f"{outside} of {len(rows)} points fall outside the stack extent")
    logger.info(f"Sampled {len(stack)} bands at {len(rows)} points")
    return rows


def drop_incomplete(rows: Iterable[ExtractionRow]) -> List[ExtractionRow]:
    """Remove rows holding at least one missing value, keeping order."""
    rows = list(rows)
    kept = [row for row in rows if row.is_complete]
    if len(kept) < len(rows):
        logger.info(f"Dropped {len(rows) - len(kept)} incomplete rows")
    return kept


def rows_to_frame(rows: Sequence[ExtractionRow], band_names: Sequence[str]) -> pd.DataFrame:
    """
    Build a table with columns id, x, y, then one column per band.

    Band columns use the nullable ``Float64`` dtype, so missing values stay
    ``<NA>`` instead of turning into a number.
    """
    id_col = EXPORT_CONFIG.get("id_column", "id")
    x_col = EXPORT_CONFIG.get("x_column", "x")
    y_col = EXPORT_CONFIG.get("y_column", "y")

    clash = {id_col, x_col, y_col} & set(band_names)
    if clash:
        raise ValueError(f"Band names clash with coordinate columns: {sorted(clash)}")

    data = OrderedDict()
    data[id_col] = pd.Series([row.point_id for row in rows], dtype="object")
    data[x_col] = pd.Series([row.x for row in rows], dtype="float64")
    data[y_col] = pd.Series([row.y for row in rows], dtype="float64")
    for band in band_names:
        data[band] = pd.array(
            [pd.NA if row.values[band].is_missing else row.values[band].value for row in rows],
            dtype="Float64",
        )

    return pd.DataFrame(data)


def sample_to_frame(stack: RasterStack, points: Sequence[SamplePoint],
                    precision: Optional[int] = None,
                    drop_missing: bool = False) -> pd.DataFrame:
    """Sample a stack and return the table directly."""
    rows = sample(stack, points, precision=precision)
    if drop_missing:
        rows = drop_incomplete(rows)
    return rows_to_frame(rows, stack.band_names)
