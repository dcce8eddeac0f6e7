#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Configuration settings for the environmental layer extraction pipeline.

This module centralizes the constants used across the acquisition, processing
and export modules, and defines ``PipelineConfig``, the validated set of
parameters for one pipeline run.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from env_layers.core.exceptions import ConfigurationError

# General configuration
DEFAULT_NODATA_VALUE: float = -9999.0
DEFAULT_LAYER_VERSION: str = "latest"
DEFAULT_CORRELATION_THRESHOLD: float = 0.6
MIN_CORRELATION_CELLS: int = 2   # Fewer shared valid cells -> NaN entry
GEOMETRY_TOLERANCE: float = 1e-9  # Relative tolerance for origin/cell size
SNAP_TOLERANCE: float = 1e-9      # Cell fractions treated as float noise on cell edges
N_JOBS: int = 4                   # Parallel layer fetches

# Path configuration
DEFAULT_CACHE_DIR: Path = Path.home() / ".cache" / "env_layers"
DEFAULT_OUTPUT_DIR: Path = Path.cwd() / "output"

# Cache configuration
CACHE_CONFIG: Dict[str, Any] = {
    "file_suffix": ".tif",
    "staging_suffix": ".part",
    "hash_length": 8,        # Characters of the key hash kept in file names
}

# HTTP provider configuration
HTTP_CONFIG: Dict[str, Any] = {
    "timeout": 60,
    "url_template": "{base_url}/{layer_id}/{version}.tif",
    "chunk_size": 1 << 20,
}

# Export configuration
EXPORT_CONFIG: Dict[str, Any] = {
    "na_rep": "",            # Token written for missing values
    "chunk_export": True,    # Export in chunks for large tables
    "chunk_size": 10000,     # Rows per chunk when exporting
    "id_column": "id",
    "x_column": "x",
    "y_column": "y",
}

# Performance tuning
PERFORMANCE_CONFIG: Dict[str, Any] = {
    "use_parallel": True,
    "prefer": "threads",     # Fetches are I/O bound
}

# Logging configuration
LOGGING_CONFIG: Dict[str, Any] = {
    "level": "INFO",  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    "log_to_file": False,
    "log_file": DEFAULT_OUTPUT_DIR / "extraction.log",
    "log_format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}


def parse_layer_spec(reference: str) -> Tuple[str, str]:
    """
    Split a layer reference of the form ``id`` or ``id@version``.

    Parameters
    ----------
    reference : str
        Layer reference.

    Returns
    -------
    tuple
        ``(layer_id, version)``; version defaults to ``DEFAULT_LAYER_VERSION``.
    """
    if not isinstance(reference, str) or not reference.strip():
        raise ConfigurationError(f"Invalid layer reference: {reference!r}")

    layer_id, sep, version = reference.strip().rpartition("@")
    if not sep:
        return version, DEFAULT_LAYER_VERSION
    if not layer_id or not version:
        raise ConfigurationError(f"Invalid layer reference: {reference!r}")
    return layer_id, version


@dataclass
class PipelineConfig:
    """
    Parameters for one run of the extraction pipeline.

    ``layers`` holds ``(layer_id, version)`` pairs in the order that drives
    the greedy correlation pruning.
    """
    layers: List[Tuple[str, str]]
    bbox: Tuple[float, float, float, float]
    threshold: float = DEFAULT_CORRELATION_THRESHOLD
    select_layers: bool = True
    precision: Optional[int] = None
    drop_incomplete: bool = False
    cache_dir: Path = field(default_factory=lambda: DEFAULT_CACHE_DIR)
    n_jobs: int = N_JOBS

    def __post_init__(self):
        self.layers = [
            parse_layer_spec(item) if isinstance(item, str) else tuple(item)
            for item in self.layers
        ]
        try:
            self.bbox = tuple(float(v) for v in self.bbox)
            self.threshold = float(self.threshold)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid numeric parameter: {e}") from e
        self.cache_dir = Path(self.cache_dir) if self.cache_dir is not None else DEFAULT_CACHE_DIR
        self.validate()

    def validate(self) -> None:
        """Raise ``ConfigurationError`` on the first invalid parameter."""
        if not self.layers:
            raise ConfigurationError("At least one layer must be requested")
        for item in self.layers:
            if len(item) != 2 or not all(isinstance(v, str) and v for v in item):
                raise ConfigurationError(f"Invalid layer reference: {item!r}")

        # Bands are named by layer id, so one id can be requested only once
        seen = set()
        for layer_id, version in self.layers:
            if layer_id in seen:
                raise ConfigurationError(
                    f"Layer {layer_id!r} is requested more than once "
                    f"(again as {layer_id}@{version})"
                )
            seen.add(layer_id)

        if len(self.bbox) != 4:
            raise ConfigurationError(f"Bounding box needs 4 values, got {len(self.bbox)}")
        xmin, ymin, xmax, ymax = self.bbox
        if not (xmin < xmax and ymin < ymax):
            raise ConfigurationError(
                f"Bounding box must satisfy xmin < xmax and ymin < ymax: {self.bbox}"
            )

        if not 0.0 <= float(self.threshold) <= 1.0:
            raise ConfigurationError(f"Correlation threshold must be in [0, 1]: {self.threshold}")

        if self.precision is not None:
            if isinstance(self.precision, bool) or not isinstance(self.precision, int) \
                    or self.precision < 0:
                raise ConfigurationError(
                    f"Precision must be a non-negative integer: {self.precision!r}"
                )

        if self.n_jobs == 0:
            raise ConfigurationError("n_jobs must not be 0")

    @property
    def layer_names(self) -> List[str]:
        return [layer_id for layer_id, _ in self.layers]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PipelineConfig":
        """Build a config from a plain mapping, rejecting unknown keys."""
        known = {
            "layers", "bbox", "threshold", "select_layers", "precision",
            "drop_incomplete", "cache_dir", "n_jobs",
        }
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {sorted(unknown)}")
        if "layers" not in data or "bbox" not in data:
            raise ConfigurationError("Configuration requires 'layers' and 'bbox'")
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: Union[str, Path],
                  overrides: Optional[Dict[str, Any]] = None) -> "PipelineConfig":
        """
        Load a config from a YAML file.

        Parameters
        ----------
        path : str or Path
            YAML file with a top-level mapping.
        overrides : dict, optional
            Values that replace the file's entries (``None`` values are skipped).
        """
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file must hold a mapping: {path}")
        for key, value in (overrides or {}).items():
            if value is not None:
                data[key] = value
        return cls.from_dict(data)
