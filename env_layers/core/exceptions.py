#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Error types for the environmental layer extraction pipeline.

Acquisition errors propagate to the caller unchanged. Geometry errors are
fatal to the operation that raised them. Degenerate correlations are only
reported, through the ``warnings`` module.
"""
from typing import Any, Optional


class EnvLayersError(Exception):
    """Base error for the package."""
    pass


class LayerNotFound(EnvLayersError):
    """Raised when a provider has no layer for the requested identifier."""

    def __init__(self, layer_id: str, version: Optional[str] = None, detail: str = ""):
        self.layer_id = layer_id
        self.version = version
        message = f"Layer not found: {layer_id!r}"
        if version is not None:
            message += f" (version {version!r})"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class DownloadFailure(EnvLayersError):
    """Raised on a transient I/O or network fault while fetching a layer."""

    def __init__(self, layer_id: str, version: Optional[str] = None,
                 reason: Any = None):
        self.layer_id = layer_id
        self.version = version
        self.reason = reason
        message = f"Failed to fetch layer {layer_id!r}"
        if version is not None:
            message += f" (version {version!r})"
        if reason is not None:
            message += f": {reason}"
        super().__init__(message)


class GeometryMismatch(EnvLayersError):
    """Raised when a band's grid geometry differs from the rest of a stack."""

    def __init__(self, band: str, attribute: str, expected: Any, actual: Any):
        self.band = band
        self.attribute = attribute
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Band {band!r} has mismatched {attribute}: expected {expected!r}, got {actual!r}"
        )


class DuplicateBand(EnvLayersError):
    """Raised when two bands in a stack share a name."""

    def __init__(self, band: str):
        self.band = band
        super().__init__(f"Duplicate band name: {band!r}")


class NoOverlap(EnvLayersError):
    """Raised when a clip box does not intersect a grid's extent."""

    def __init__(self, layer: str, bbox: Any, extent: Any = None):
        self.layer = layer
        self.bbox = bbox
        self.extent = extent
        message = f"Bounding box {tuple(bbox)} does not overlap layer {layer!r}"
        if extent is not None:
            message += f" with extent {tuple(extent)}"
        super().__init__(message)


class CatalogError(EnvLayersError):
    """Raised when a layer catalog cannot be read."""
    pass


class ConfigurationError(EnvLayersError, ValueError):
    """Raised when pipeline parameters are invalid."""
    pass


class DegenerateCorrelation(UserWarning):
    """Emitted when a correlation entry is undefined (reported as NaN)."""
    pass
