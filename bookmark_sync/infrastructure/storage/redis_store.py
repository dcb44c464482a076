from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import TYPE_CHECKING, Any

from bookmark_sync.infrastructure.redis import get_redis, redis_key
from bookmark_sync.infrastructure.storage.base import StorageError

if TYPE_CHECKING:
    from bookmark_sync.config import RedisConfig

logger = logging.getLogger(__name__)

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


class RedisObjectStore:
    """JSON object store on plain Redis strings.

    Writes are unconditional ``SET`` calls; the engine never relies on
    ``NX`` or transactions so it behaves like a blob store would.
    """

    def __init__(self, cfg: RedisConfig, client: Any | None = None) -> None:
        self.cfg = cfg
        self._client = client
        self._lock = asyncio.Lock()
        self._timeout = max(0.05, float(cfg.operation_timeout_sec))

    async def _get_client(self) -> Any:
        if self._client:
            return self._client

        async with self._lock:
            if self._client:
                return self._client
            try:
                self._client = await get_redis(self.cfg)
            except Exception as exc:
                msg = f"Redis unavailable: {exc}"
                raise StorageError(msg) from exc
            return self._client

    def _key(self, key: str) -> str:
        return redis_key(self.cfg.prefix, key)

    async def read_json(self, key: str) -> Any | None:
        client = await self._get_client()
        full_key = self._key(key)
        try:
            raw = await asyncio.wait_for(client.get(full_key), timeout=self._timeout)
        except Exception as exc:
            logger.warning(
                "redis_store_get_failed",
                extra={"key": full_key, "error": str(exc)},
            )
            msg = f"Failed to read {key}: {exc}"
            raise StorageError(msg, key=key) from exc

        if raw is None:
            return None

        try:
            return json.loads(raw)
        except ValueError as exc:
            msg = f"Object {key} is not valid JSON"
            raise StorageError(msg, key=key) from exc

    async def write_json(self, key: str, value: Any) -> None:
        client = await self._get_client()
        full_key = self._key(key)
        try:
            payload = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            msg = f"Object {key} is not JSON serializable"
            raise StorageError(msg, key=key) from exc

        try:
            await asyncio.wait_for(client.set(full_key, payload), timeout=self._timeout)
        except Exception as exc:
            logger.warning(
                "redis_store_set_failed",
                extra={"key": full_key, "error": str(exc)},
            )
            msg = f"Failed to write {key}: {exc}"
            raise StorageError(msg, key=key) from exc

    async def delete_object(self, key: str) -> None:
        client = await self._get_client()
        full_key = self._key(key)
        try:
            await asyncio.wait_for(client.delete(full_key), timeout=self._timeout)
        except Exception as exc:
            msg = f"Failed to delete {key}: {exc}"
            raise StorageError(msg, key=key) from exc

    async def list_objects(self, prefix: str) -> list[str]:
        client = await self._get_client()
        namespace = f"{self.cfg.prefix}:"
        pattern = namespace + _GLOB_SPECIAL.sub(r"\\\1", prefix) + "*"
        keys: list[str] = []
        try:
            async for full_key in client.scan_iter(match=pattern):
                keys.append(full_key[len(namespace) :])
        except Exception as exc:
            msg = f"Failed to list {prefix}: {exc}"
            raise StorageError(msg, key=prefix) from exc
        return sorted(keys)
