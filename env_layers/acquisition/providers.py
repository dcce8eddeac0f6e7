#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Layer providers.

A provider resolves a layer identifier and version to raster bytes or to a
local file path. Providers never retry: a missing layer raises
``LayerNotFound`` and a transient fault raises ``DownloadFailure``, and the
caller decides what to do next.
"""
import abc
from pathlib import Path
from typing import Optional, Union
from urllib.parse import quote

import requests

from env_layers.core.config import CACHE_CONFIG, HTTP_CONFIG
from env_layers.core.exceptions import DownloadFailure, LayerNotFound
from env_layers.core.logging_config import get_module_logger

# Initialize logger
logger = get_module_logger(__name__)

Resolved = Union[bytes, Path]


class LayerProvider(abc.ABC):
    """Resolves ``(layer_id, version)`` to raster bytes or a local path."""

    @abc.abstractmethod
    def resolve(self, layer_id: str, version: str) -> Resolved:
        """Return the layer's raster as bytes or as a path to a local file."""


class LocalDirectoryProvider(LayerProvider):
    """
    Serves layers from a directory tree.

    A layer is looked up as ``<root>/<layer_id>/<version>.tif`` and then as
    ``<root>/<layer_id>.tif``.
    """

    def __init__(self, root: Union[str, Path], suffix: Optional[str] = None):
        self.root = Path(root)
        self.suffix = suffix or CACHE_CONFIG["file_suffix"]

    def _candidates(self, layer_id: str, version: str):
        return [
            self.root / layer_id / f"{version}{self.suffix}",
            self.root / f"{layer_id}{self.suffix}",
        ]

    def resolve(self, layer_id: str, version: str) -> Path:
        if not self.root.is_dir():
            raise DownloadFailure(layer_id, version, f"source directory {self.root} is not available")

        root = self.root.resolve()
        for candidate in self._candidates(layer_id, version):
            try:
                candidate.resolve().relative_to(root)
            except ValueError:
                raise LayerNotFound(layer_id, version, "identifier escapes the source directory")
            if candidate.is_file():
                logger.debug(f"Resolved {layer_id}@{version} to {candidate}")
                return candidate

        raise LayerNotFound(layer_id, version, f"no file under {self.root}")


class HttpLayerProvider(LayerProvider):
    """
    Downloads layers over HTTP.

    The URL is built from ``url_template`` with ``base_url``, ``layer_id``
    and ``version``. A 404 response means the layer does not exist; any
    other failure is reported as a download failure.
    """

    def __init__(self, base_url: str, url_template: Optional[str] = None,
                 timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.url_template = url_template or HTTP_CONFIG["url_template"]
        self.timeout = timeout if timeout is not None else HTTP_CONFIG["timeout"]
        self.session = session or requests.Session()

    def url_for(self, layer_id: str, version: str) -> str:
        return self.url_template.format(
            base_url=self.base_url,
            layer_id=quote(layer_id, safe=""),
            version=quote(version, safe=""),
        )

    def resolve(self, layer_id: str, version: str) -> bytes:
        url = self.url_for(layer_id, version)
        logger.info(f"Downloading {layer_id}@{version} from {url}")

        try:
            response = self.session.get(url, timeout=self.timeout, stream=True)
        except requests.RequestException as e:
            raise DownloadFailure(layer_id, version, e) from e

        try:
            if response.status_code == 404:
                raise LayerNotFound(layer_id, version, f"{url} returned 404")
            try:
                response.raise_for_status()
                chunks = [
                    chunk for chunk in response.iter_content(chunk_size=HTTP_CONFIG["chunk_size"])
                    if chunk
                ]
            except requests.RequestException as e:
                raise DownloadFailure(layer_id, version, e) from e
        finally:
            response.close()

        payload = b"".join(chunks)
        if not payload:
            raise DownloadFailure(layer_id, version, f"{url} returned an empty body")

        logger.debug(f"Downloaded {len(payload)} bytes for {layer_id}@{version}")
        return payload
