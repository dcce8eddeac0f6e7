#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Layer catalog.

The catalog lists the layers a provider can serve, with their metadata. It
is queried by filter only; acquisition itself goes through a provider.
"""
import abc
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import yaml

from env_layers.core.config import DEFAULT_LAYER_VERSION
from env_layers.core.exceptions import CatalogError
from env_layers.core.logging_config import get_module_logger

# Initialize logger
logger = get_module_logger(__name__)


@dataclass(frozen=True)
class LayerMetadata:
    """Description of one catalog layer."""
    id: str
    unit: str = ""
    description: str = ""
    resolution: Optional[float] = None
    version: str = DEFAULT_LAYER_VERSION

    @property
    def reference(self) -> str:
        """``id@version`` form accepted by the pipeline configuration."""
        return f"{self.id}@{self.version}"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


Predicate = Callable[[LayerMetadata], bool]


class LayerCatalog(abc.ABC):
    """Queryable listing of available layers."""

    @abc.abstractmethod
    def list(self, predicate: Optional[Predicate] = None) -> List[LayerMetadata]:
        """Return the layers for which ``predicate`` is true (all if None)."""


class YamlCatalog(LayerCatalog):
    """
    Catalog read from a YAML manifest.

    The manifest holds a ``layers`` list; each entry needs an ``id`` and may
    give ``unit``, ``description``, ``resolution`` and ``version``::

        layers:
          - id: bio1
            unit: degC
            description: Annual mean temperature
            resolution: 0.0083333
            version: "2.1"
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._layers: Optional[List[LayerMetadata]] = None

    def _load(self) -> List[LayerMetadata]:
        try:
            with open(self.path, "r") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise CatalogError(f"Cannot read catalog {self.path}: {e}") from e

        entries = data.get("layers") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            raise CatalogError(f"Catalog {self.path} must contain a 'layers' list")

        layers = []
        seen = set()
        for i, entry in enumerate(entries):
            if not isinstance(entry, dict) or not entry.get("id"):
                raise CatalogError(f"Catalog entry {i} in {self.path} has no 'id'")
            unknown = set(entry) - {"id", "unit", "description", "resolution", "version"}
            if unknown:
                raise CatalogError(f"Catalog entry {entry['id']!r} has unknown keys: {sorted(unknown)}")

            resolution = entry.get("resolution")
            try:
                resolution = float(resolution) if resolution is not None else None
            except (TypeError, ValueError) as e:
                raise CatalogError(f"Catalog entry {entry['id']!r} has invalid resolution") from e

            layer = LayerMetadata(
                id=str(entry["id"]),
                unit=str(entry.get("unit", "")),
                description=str(entry.get("description", "")),
                resolution=resolution,
                version=str(entry.get("version", DEFAULT_LAYER_VERSION)),
            )
            if (layer.id, layer.version) in seen:
                raise CatalogError(f"Catalog lists {layer.reference} more than once")
            seen.add((layer.id, layer.version))
            layers.append(layer)

        logger.debug(f"Loaded {len(layers)} layers from catalog {self.path}")
        return layers

    def list(self, predicate: Optional[Predicate] = None) -> List[LayerMetadata]:
        if self._layers is None:
            self._layers = self._load()
        if predicate is None:
            return list(self._layers)
        return [layer for layer in self._layers if predicate(layer)]
