#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Local raster cache.

Layers fetched from a provider are persisted under a storage directory,
keyed by ``(layer_id, version)``. A key is fetched at most once at a time:
concurrent callers for the same key wait for the in-flight fetch and then
read the committed file. Writes are staged in the cache directory and
committed with an atomic rename, so a failed or interrupted fetch leaves
no entry behind.
"""
import hashlib
import json
import os
import re
import shutil
import tempfile
import threading
import weakref
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple, Union

from rasterio.errors import RasterioError

from env_layers.acquisition.providers import LayerProvider
from env_layers.core.config import CACHE_CONFIG, DEFAULT_LAYER_VERSION
from env_layers.core.exceptions import DownloadFailure
from env_layers.core.grid import BoundingBox, RasterGrid
from env_layers.core.io import inspect_raster, load_raster
from env_layers.core.logging_config import get_module_logger

# Initialize logger
logger = get_module_logger(__name__)

CacheKey = Tuple[str, str]

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def _safe_name(text: str) -> str:
    return _UNSAFE_CHARS.sub("_", text).strip("._") or "layer"


class RasterCache:
    """
    Persistent cache of layers in front of a ``LayerProvider``.

    Parameters
    ----------
    root : str or Path
        Storage directory; created if needed.
    provider : LayerProvider, optional
        Source consulted on cache misses. Without one, the cache only
        serves, lists and evicts existing entries.
    """

    def __init__(self, root: Union[str, Path], provider: Optional[LayerProvider] = None):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.provider = provider
        # A key's lock lives only while some caller holds it
        self._locks: "weakref.WeakValueDictionary[CacheKey, threading.Lock]" = \
            weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()
        self._staging: Set[Path] = set()

    def _key_lock(self, key: CacheKey) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def path_for(self, layer_id: str, version: str = DEFAULT_LAYER_VERSION) -> Path:
        """Location of the cached raster for a key."""
        digest = hashlib.sha1(f"{layer_id}\0{version}".encode("utf-8")).hexdigest()
        digest = digest[:CACHE_CONFIG["hash_length"]]
        name = f"{_safe_name(layer_id)}__{_safe_name(version)}__{digest}"
        return self.root / f"{name}{CACHE_CONFIG['file_suffix']}"

    @staticmethod
    def _sidecar(path: Path) -> Path:
        return path.with_suffix(".json")

    def contains(self, layer_id: str, version: str = DEFAULT_LAYER_VERSION) -> bool:
        return self.path_for(layer_id, version).is_file()

    def fetch(self, layer_id: str, version: str = DEFAULT_LAYER_VERSION,
              bbox: Optional[BoundingBox] = None) -> RasterGrid:
        """
        Return a layer, fetching it from the provider on a cache miss.

        Parameters
        ----------
        layer_id : str
            Layer identifier.
        version : str, optional
            Layer version, by default ``"latest"``.
        bbox : BoundingBox, optional
            Read only the cells overlapping this box (windowed read).

        Returns
        -------
        RasterGrid
            The cached layer, named after ``layer_id``.

        Raises
        ------
        LayerNotFound, DownloadFailure
            Propagated from the provider, without retry.
        NoOverlap
            If ``bbox`` does not intersect the layer.
        """
        path = self.path_for(layer_id, version)

        # Held through the read so an eviction cannot remove the file under it
        with self._key_lock((layer_id, version)):
            if path.is_file():
                logger.debug(f"Cache hit for {layer_id}@{version}")
            else:
                logger.info(f"Cache miss for {layer_id}@{version}, fetching")
                self._download(layer_id, version, path)

            return load_raster(path, bbox=bbox, name=layer_id)

    def _download(self, layer_id: str, version: str, path: Path) -> None:
        if self.provider is None:
            raise DownloadFailure(layer_id, version, "layer is not cached and no provider is configured")
        resolved = self.provider.resolve(layer_id, version)

        fd, staging = tempfile.mkstemp(
            prefix=f".{path.stem}.", suffix=CACHE_CONFIG["staging_suffix"], dir=str(self.root)
        )
        staging_path = Path(staging)
        sidecar = self._sidecar(path)
        with self._locks_guard:
            self._staging.add(staging_path)
        try:
            try:
                with os.fdopen(fd, "wb") as f:
                    if isinstance(resolved, (bytes, bytearray)):
                        f.write(resolved)
                    else:
                        with open(resolved, "rb") as src:
                            shutil.copyfileobj(src, f)
            except OSError as e:
                raise DownloadFailure(layer_id, version, e) from e

            # Reject payloads that are not usable rasters before committing;
            # only the header is read, the cells stay on disk
            try:
                inspect_raster(staging_path)
            except (RasterioError, ValueError) as e:
                raise DownloadFailure(layer_id, version, f"payload is not a valid raster: {e}") from e

            with open(sidecar, "w") as f:
                json.dump({
                    "layer_id": layer_id,
                    "version": version,
                    "fetched_at": datetime.now().isoformat(),
                    "size": staging_path.stat().st_size,
                }, f, indent=2)

            os.replace(staging_path, path)
        except BaseException:
            staging_path.unlink(missing_ok=True)
            if not path.is_file():
                sidecar.unlink(missing_ok=True)
            raise
        finally:
            with self._locks_guard:
                self._staging.discard(staging_path)

        logger.info(f"Cached {layer_id}@{version} at {path}")

    def evict(self, layer_id: str, version: str = DEFAULT_LAYER_VERSION) -> bool:
        """
        Remove one entry.

        Returns
        -------
        bool
            True if an entry was removed.
        """
        path = self.path_for(layer_id, version)
        with self._key_lock((layer_id, version)):
            if not path.is_file():
                return False
            path.unlink()
            self._sidecar(path).unlink(missing_ok=True)
        logger.info(f"Evicted {layer_id}@{version} from cache")
        return True

    def entries(self) -> List[Dict[str, object]]:
        """Describe the committed entries, sorted by layer and version."""
        found = []
        for sidecar in self.root.glob("*.json"):
            raster = sidecar.with_suffix(CACHE_CONFIG["file_suffix"])
            if not raster.is_file():
                continue
            with open(sidecar, "r") as f:
                info = json.load(f)
            info["path"] = str(raster)
            found.append(info)
        return sorted(found, key=lambda e: (e["layer_id"], e["version"]))

    def _sweep_staging(self) -> int:
        """Remove staging files left by interrupted fetches."""
        with self._locks_guard:
            active = set(self._staging)
        swept = 0
        for staging in self.root.glob(f".*{CACHE_CONFIG['staging_suffix']}"):
            if staging in active:
                continue
            staging.unlink(missing_ok=True)
            swept += 1
        if swept:
            logger.info(f"Removed {swept} stale staging files from {self.root}")
        return swept

    def clear(self) -> int:
        """
        Remove every entry and any stale staging files.

        Staging files of fetches still running in this cache are kept.

        Returns
        -------
        int
            Number of entries removed.
        """
        removed = 0
        for entry in self.entries():
            if self.evict(entry["layer_id"], entry["version"]):
                removed += 1
        self._sweep_staging()
        logger.info(f"Cleared {removed} entries from {self.root}")
        return removed
