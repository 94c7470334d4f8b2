"""Filesystem blob provider.

Payloads live under ``<root>/data/<key>``; each object's envelope is a JSON
sidecar at ``<root>/meta/<key>.json``. Keys may contain ``/`` and map to
nested directories. Files are written to a temporary name and renamed into
place, so readers never observe a partial payload.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import os
import time
from pathlib import Path, PurePosixPath
from typing import Optional

from ..config.providers import BlobConfig
from ..errors import DecodeError, InvalidKeyError, NotFoundError, ReadOnlyError, StorageError
from ..interfaces import BlobProvider, ObjectInfo, ProviderHealth, ProviderStatus

logger = logging.getLogger(__name__)


def _write_atomic(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.tmp")
    tmp.write_bytes(data)
    os.replace(tmp, path)


class FilesystemBlobProvider(BlobProvider[BlobConfig]):
    """Blobs as files under ``config.path``."""

    def __init__(self, config: BlobConfig):
        super().__init__(config)
        self._root: Optional[Path] = None

    async def initialize(self) -> None:
        if not self.config.path:
            raise ValueError("Filesystem blob storage requires path")
        self._root = Path(self.config.path).expanduser()
        (self._root / "data").mkdir(parents=True, exist_ok=True)
        (self._root / "meta").mkdir(parents=True, exist_ok=True)
        self._initialized = True
        logger.info(f"Filesystem blob store ready at {self._root}")

    async def shutdown(self) -> None:
        self._root = None
        self._initialized = False

    async def health_check(self) -> ProviderHealth:
        if self._root is None:
            return ProviderHealth(
                status=ProviderStatus.UNAVAILABLE,
                message="Root directory not initialized",
            )
        start = time.perf_counter()
        writable = os.access(self._root / "data", os.W_OK)
        latency = (time.perf_counter() - start) * 1000
        if not writable:
            return ProviderHealth(
                status=ProviderStatus.DEGRADED,
                latency_ms=latency,
                message=f"{self._root} is not writable",
            )
        return ProviderHealth(status=ProviderStatus.HEALTHY, latency_ms=latency)

    @property
    def root(self) -> Path:
        if self._root is None:
            raise StorageError("Filesystem blob store not initialized")
        return self._root

    def _relative(self, key: str) -> PurePosixPath:
        path = PurePosixPath(key)
        if not key or path.is_absolute() or any(p in ("", ".", "..") for p in key.split("/")):
            raise InvalidKeyError(f"invalid blob key: {key!r}")
        return path

    def _data_path(self, key: str) -> Path:
        return self.root / "data" / self._relative(key)

    def _meta_path(self, key: str) -> Path:
        rel = self._relative(key)
        return self.root / "meta" / rel.parent / f"{rel.name}.json"

    def _read_info(self, key: str) -> ObjectInfo:
        try:
            raw = json.loads(self._meta_path(key).read_text())
        except FileNotFoundError:
            raise NotFoundError(f"object not found: {key}") from None
        except ValueError as e:
            raise DecodeError(f"corrupt metadata for {key}: {e}") from e
        return ObjectInfo(
            key=key,
            content_type=raw.get("content_type", ""),
            size=raw.get("size", 0),
            etag=raw.get("etag", ""),
            metadata=dict(raw.get("metadata", {})),
        )

    def _get(self, key: str) -> tuple[bytes, ObjectInfo]:
        try:
            data = self._data_path(key).read_bytes()
        except FileNotFoundError:
            raise NotFoundError(f"object not found: {key}") from None
        return data, self._read_info(key)

    def _put(self, key: str, data: bytes, info: ObjectInfo) -> None:
        sidecar = {
            "content_type": info.content_type,
            "size": len(data),
            "etag": hashlib.md5(data).hexdigest(),
            "metadata": dict(info.metadata),
        }
        _write_atomic(self._data_path(key), data)
        _write_atomic(self._meta_path(key), json.dumps(sidecar).encode("utf-8"))

    def _delete(self, key: str) -> None:
        try:
            self._data_path(key).unlink()
        except FileNotFoundError:
            raise NotFoundError(f"object not found: {key}") from None
        self._meta_path(key).unlink(missing_ok=True)

    async def get(self, key: str) -> tuple[bytes, ObjectInfo]:
        try:
            return await asyncio.to_thread(self._get, key)
        except OSError as e:
            raise StorageError(f"read {key} failed: {e}") from e

    async def put(self, key: str, data: bytes, info: ObjectInfo) -> None:
        try:
            await asyncio.to_thread(self._put, key, bytes(data), info)
        except PermissionError as e:
            raise ReadOnlyError(f"write {key} failed: {e}") from e
        except OSError as e:
            raise StorageError(f"write {key} failed: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._delete, key)
        except PermissionError as e:
            raise ReadOnlyError(f"delete {key} failed: {e}") from e
        except OSError as e:
            raise StorageError(f"delete {key} failed: {e}") from e

    async def exists(self, key: str) -> bool:
        return self._data_path(key).is_file()

    async def list(self, prefix: str = "", limit: int = 0) -> list[ObjectInfo]:
        data_root = self.root / "data"
        infos = []
        for path in sorted(data_root.rglob("*")):
            await asyncio.sleep(0)
            if not path.is_file() or path.name.startswith("."):
                continue
            key = path.relative_to(data_root).as_posix()
            if not key.startswith(prefix):
                continue
            try:
                infos.append(self._read_info(key))
            except NotFoundError:
                # Payload written, sidecar not yet
                continue
            if limit > 0 and len(infos) >= limit:
                break
        return infos
