from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path, PurePosixPath
from typing import Any

from bookmark_sync.infrastructure.storage.base import StorageError

logger = logging.getLogger(__name__)


class FileSystemObjectStore:
    """JSON object store backed by a local directory.

    Keys are POSIX-style relative paths. Each write lands in a temporary file
    that is moved into place, so readers never see a half-written object.
    """

    def __init__(self, root: str | os.PathLike[str]) -> None:
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        relative = PurePosixPath(key)
        if not key or relative.is_absolute() or ".." in relative.parts:
            msg = f"Invalid object key: {key!r}"
            raise StorageError(msg, key=key)
        return self.root.joinpath(*relative.parts)

    def _read(self, path: Path) -> Any | None:
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        return json.loads(raw)

    def _write(self, path: Path, payload: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _list(self, prefix: str) -> list[str]:
        if not self.root.exists():
            return []
        keys = []
        for path in self.root.rglob("*"):
            if not path.is_file() or path.name.startswith("."):
                continue
            key = path.relative_to(self.root).as_posix()
            if key.startswith(prefix):
                keys.append(key)
        return sorted(keys)

    async def read_json(self, key: str) -> Any | None:
        path = self._path(key)
        try:
            return await asyncio.to_thread(self._read, path)
        except ValueError as exc:
            msg = f"Object {key} is not valid JSON"
            raise StorageError(msg, key=key) from exc
        except OSError as exc:
            msg = f"Failed to read {key}: {exc}"
            raise StorageError(msg, key=key) from exc

    async def write_json(self, key: str, value: Any) -> None:
        path = self._path(key)
        try:
            payload = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            msg = f"Object {key} is not JSON serializable"
            raise StorageError(msg, key=key) from exc
        try:
            await asyncio.to_thread(self._write, path, payload)
        except OSError as exc:
            logger.warning("filesystem_store_write_failed", extra={"key": key, "error": str(exc)})
            msg = f"Failed to write {key}: {exc}"
            raise StorageError(msg, key=key) from exc

    async def delete_object(self, key: str) -> None:
        path = self._path(key)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as exc:
            msg = f"Failed to delete {key}: {exc}"
            raise StorageError(msg, key=key) from exc

    async def list_objects(self, prefix: str) -> list[str]:
        try:
            return await asyncio.to_thread(self._list, prefix)
        except OSError as exc:
            msg = f"Failed to list {prefix}: {exc}"
            raise StorageError(msg, key=prefix) from exc
