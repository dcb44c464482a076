"""Object storage port.

The engine only needs four JSON primitives and deliberately no conditional
write: mutual exclusion is layered on top by the distributed lock.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


class StorageError(Exception):
    """An object store operation failed (other than the object being absent)."""

    def __init__(self, message: str, *, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


@runtime_checkable
class ObjectStore(Protocol):
    async def read_json(self, key: str) -> Any | None:
        """Return the decoded object, or ``None`` when the key does not exist."""
        ...

    async def write_json(self, key: str, value: Any) -> None: ...

    async def delete_object(self, key: str) -> None:
        """Delete *key*; deleting an absent key is not an error."""
        ...

    async def list_objects(self, prefix: str) -> list[str]:
        """Return every key starting with *prefix*, sorted."""
        ...
