#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Input/output handling for the environmental layer extraction pipeline.

This module handles loading and saving single-band GeoTIFF layers, reading
sample points, and exporting the extraction table, the correlation matrix
and run metadata.
"""
import os
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
import rasterio
from rasterio.transform import Affine
from rasterio.windows import Window

from env_layers.core.config import DEFAULT_NODATA_VALUE, EXPORT_CONFIG
from env_layers.core.grid import BoundingBox, GridGeometry, RasterGrid
from env_layers.core.logging_config import get_module_logger

# Initialize logger
logger = get_module_logger(__name__)

PathLike = Union[str, Path]


def _geometry_from_dataset(src) -> GridGeometry:
    transform = src.transform
    if transform.b != 0 or transform.d != 0:
        raise ValueError(f"Rotated rasters are not supported: {src.name}")
    if transform.e >= 0:
        raise ValueError(f"Only north-up rasters are supported: {src.name}")

    return GridGeometry(
        crs=src.crs.to_string() if src.crs else None,
        origin=(transform.c, transform.f),
        cell_size=(transform.a, -transform.e),
        rows=src.height,
        cols=src.width,
    )


def _resolve_nodata(nodata: Optional[float], dtype: np.dtype, path: PathLike) -> Optional[float]:
    if nodata is not None:
        return nodata

    if np.issubdtype(dtype, np.integer):
        info = np.iinfo(dtype)
        if not info.min <= DEFAULT_NODATA_VALUE <= info.max:
            logger.warning(f"No nodata value found in {path} and the default does not fit "
                           f"{dtype}; treating every cell as valid")
            return None
        default = int(DEFAULT_NODATA_VALUE)
    else:
        default = DEFAULT_NODATA_VALUE

    logger.warning(f"No nodata value found in {path}, using default: {default}")
    return default


def load_raster(path: PathLike, bbox: Optional[BoundingBox] = None,
                name: Optional[str] = None) -> RasterGrid:
    """
    Load the first band of a raster file.

    Parameters
    ----------
    path : str or Path
        Path to a raster readable by rasterio (GeoTIFF in the cache).
    bbox : BoundingBox, optional
        When given, only the cells overlapping the box are read; the window
        follows the same alignment rules as ``processing.clip.clip``.
    name : str, optional
        Band name for the grid; defaults to the ``layer`` tag or file stem.

    Returns
    -------
    RasterGrid
        The loaded grid.
    """
    # Local import: clip depends on the grid model only
    from env_layers.processing.clip import clip_window

    logger.debug(f"Loading raster from {path}")

    with rasterio.open(path) as src:
        geometry = _geometry_from_dataset(src)
        band_name = name or src.tags().get("layer") or Path(path).stem

        if bbox is not None:
            row_start, row_stop, col_start, col_stop = clip_window(
                geometry, BoundingBox.coerce(bbox), layer=band_name
            )
            window = Window(col_start, row_start, col_stop - col_start, row_stop - row_start)
            arr = src.read(1, window=window)
            geometry = geometry.window(row_start, row_stop, col_start, col_stop)
        else:
            arr = src.read(1)

        nodata = _resolve_nodata(src.nodata, arr.dtype, path)

    grid = RasterGrid(band_name, arr, geometry, nodata)
    logger.debug(f"Loaded raster {band_name!r} with shape {arr.shape}, "
                 f"{int(np.sum(grid.valid_mask))} valid cells")
    return grid


def inspect_raster(path: PathLike) -> GridGeometry:
    """
    Check that a file is a usable raster without reading its cells.

    Opens the dataset and checks the band count, the transform and the
    band dtype.

    Returns
    -------
    GridGeometry
        Geometry of the raster.

    Raises
    ------
    ValueError
        If the raster has no band, a non-numeric band or a rotated or
        south-up transform.
    rasterio.errors.RasterioError
        If the file cannot be opened as a raster.
    """
    with rasterio.open(path) as src:
        if src.count < 1:
            raise ValueError(f"Raster has no bands: {path}")
        dtype = np.dtype(src.dtypes[0])
        if not np.issubdtype(dtype, np.number):
            raise ValueError(f"Raster band is not numeric ({dtype}): {path}")
        return _geometry_from_dataset(src)


def save_raster(grid: RasterGrid, path: PathLike) -> str:
    """
    Write a grid to a single-band GeoTIFF with its sentinel embedded.

    Parameters
    ----------
    grid : RasterGrid
        Grid to write.
    path : str or Path
        Output path.

    Returns
    -------
    str
        Path to the saved raster.
    """
    output_dir = os.path.dirname(str(path))
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)

    geometry = grid.geometry
    xres, yres = geometry.cell_size
    transform = Affine(xres, 0.0, geometry.origin[0],
                       0.0, -yres, geometry.origin[1])

    with rasterio.open(
        path,
        'w',
        driver='GTiff',
        height=geometry.rows,
        width=geometry.cols,
        count=1,
        dtype=str(grid.dtype),
        crs=geometry.crs,
        transform=transform,
        nodata=grid.nodata,
    ) as dst:
        dst.write(grid.values, 1)
        dst.update_tags(layer=grid.name)

    logger.debug(f"Saved raster {grid.name!r} to {path}")
    return str(path)


def load_points(path: PathLike) -> List["SamplePoint"]:
    """
    Read sample points from a CSV file.

    The file needs an ``id`` column plus ``x``/``lon``/``longitude`` and
    ``y``/``lat``/``latitude`` columns, in the stack's spatial reference.
    """
    from env_layers.processing.sampling import SamplePoint

    df = pd.read_csv(path)
    columns = {c.lower(): c for c in df.columns}

    def pick(candidates: Sequence[str], role: str) -> str:
        for candidate in candidates:
            if candidate in columns:
                return columns[candidate]
        raise ValueError(f"Points file {path} has no {role} column "
                         f"(expected one of {list(candidates)})")

    id_col = pick(["id", "point_id"], "identifier")
    x_col = pick(["x", "lon", "longitude"], "longitude")
    y_col = pick(["y", "lat", "latitude"], "latitude")

    if df[[x_col, y_col]].isna().any().any():
        raise ValueError(f"Points file {path} has rows without coordinates")

    points = [
        SamplePoint(str(pid), float(x), float(y))
        for pid, x, y in zip(df[id_col], df[x_col], df[y_col])
    ]
    logger.info(f"Loaded {len(points)} sample points from {path}")
    return points


def export_features(df: pd.DataFrame, output_path: PathLike) -> None:
    """
    Export a table to CSV, writing missing values as the configured token.

    Parameters
    ----------
    df : pd.DataFrame
        Table to export.
    output_path : str or Path
        Path to output CSV file.
    """
    output_dir = os.path.dirname(str(output_path))
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)

    na_rep = EXPORT_CONFIG.get('na_rep', '')

    # Check if we should export in chunks
    if EXPORT_CONFIG.get('chunk_export', True) and len(df) > EXPORT_CONFIG.get('chunk_size', 10000):
        chunk_size = EXPORT_CONFIG.get('chunk_size', 10000)
        n_chunks = (len(df) + chunk_size - 1) // chunk_size

        logger.info(f"Exporting {len(df)} rows in {n_chunks} chunks of size {chunk_size}")

        # Export first chunk with header
        df.iloc[:chunk_size].to_csv(output_path, index=False, na_rep=na_rep)

        # Export remaining chunks without header
        for i in range(1, n_chunks):
            start_idx = i * chunk_size
            end_idx = min((i + 1) * chunk_size, len(df))
            df.iloc[start_idx:end_idx].to_csv(
                output_path,
                mode='a',
                header=False,
                index=False,
                na_rep=na_rep,
            )
    else:
        logger.info(f"Exporting {len(df)} rows to {output_path}")
        df.to_csv(output_path, index=False, na_rep=na_rep)


def export_table(rows: Sequence["ExtractionRow"], band_names: Sequence[str],
                 output_path: PathLike) -> pd.DataFrame:
    """
    Export extraction rows: id, x, y, then one column per band in stack order.

    Returns
    -------
    pd.DataFrame
        The exported table.
    """
    from env_layers.processing.sampling import rows_to_frame

    df = rows_to_frame(rows, band_names)
    export_features(df, output_path)
    return df


def save_correlation_matrix(matrix: "CorrelationMatrix", output_path: PathLike) -> None:
    """Write a correlation matrix to CSV; undefined entries are left empty."""
    output_dir = os.path.dirname(str(output_path))
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)

    matrix.to_frame().to_csv(
        output_path,
        index_label="layer",
        na_rep=EXPORT_CONFIG.get('na_rep', ''),
    )
    logger.info(f"Saved correlation matrix to {output_path}")


def save_metadata(
    stack: "RasterStack",
    requested_layers: Sequence[str],
    rows: Sequence["ExtractionRow"],
    output_path: PathLike,
    matrix: Optional["CorrelationMatrix"] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Save metadata about the stack and the extraction run.

    Parameters
    ----------
    stack : RasterStack
        The stack that was sampled.
    requested_layers : list
        Layer names requested before correlation pruning.
    rows : list
        Extraction rows that were exported.
    output_path : str or Path
        Path to output JSON file.
    matrix : CorrelationMatrix, optional
        Correlation matrix, included when available.
    extra : dict, optional
        Additional run parameters to record.
    """
    geometry = stack.geometry
    bounds = geometry.bounds

    band_stats = {}
    for name, grid in stack.items():
        valid = grid.values[grid.valid_mask]
        band_stats[name] = {
            'valid_cells': int(valid.size),
            'total_cells': int(grid.values.size),
            'min': float(np.min(valid)) if valid.size else None,
            'max': float(np.max(valid)) if valid.size else None,
            'mean': float(np.mean(valid)) if valid.size else None,
            'nodata': None if grid.nodata is None else float(grid.nodata),
            'dtype': str(grid.dtype),
        }

    missing_rows = sum(1 for row in rows if not row.is_complete)

    metadata = {
        'timestamp': datetime.now().isoformat(),
        'geometry': {
            'crs': geometry.crs,
            'origin': list(geometry.origin),
            'cell_size': list(geometry.cell_size),
            'shape': [geometry.rows, geometry.cols],
            'bounds': list(bounds),
        },
        'layers': {
            'requested': list(requested_layers),
            'retained': list(stack.band_names),
            'dropped': [n for n in requested_layers if n not in stack.band_names],
        },
        'bands': band_stats,
        'extraction_info': {
            'rows': len(rows),
            'rows_with_missing': missing_rows,
        },
    }
    if matrix is not None:
        metadata['correlation'] = {
            'names': list(matrix.names),
            'degenerate_pairs': [list(pair) for pair in matrix.degenerate_pairs()],
        }
    if extra:
        metadata['parameters'] = extra

    output_dir = os.path.dirname(str(output_path))
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)

    with open(output_path, 'w') as f:
        json.dump(metadata, f, indent=2, default=str)

    logger.info(f"Saved metadata to {output_path}")
