from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from types import TracebackType
from typing import Any

Document = dict[str, Any]


class KeyValueStore(ABC):
    """Durable key-value backend grouped into named collections.

    Values are JSON-compatible dicts.  Keys within a collection sort
    lexicographically, and ``scan`` honours that order, so callers that
    need chronological reads encode time into the key.

    The default ``atomic()`` is a no-op; backends that can roll back
    override it so a block of writes lands all-or-nothing.
    """

    # ── Lifecycle ────────────────────────────────────────────────────

    @abstractmethod
    async def init(self) -> None:
        """Create tables / files (idempotent)."""
        ...

    @abstractmethod
    async def reset(self) -> None:
        """Drop all data and recreate from scratch."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release any held resources (connections, file handles)."""
        ...

    async def __aenter__(self) -> KeyValueStore:
        await self.init()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        """Group several writes into one commit."""
        yield

    # ── Documents ────────────────────────────────────────────────────

    @abstractmethod
    async def get(self, collection: str, key: str) -> Document | None:
        """Return the document at *key*, or ``None``."""
        ...

    @abstractmethod
    async def put(self, collection: str, key: str, value: Document) -> None:
        """Insert or replace the document at *key*."""
        ...

    @abstractmethod
    async def delete(self, collection: str, key: str) -> bool:
        """Remove *key*; return whether it existed."""
        ...

    @abstractmethod
    async def get_many(self, collection: str, keys: list[str]) -> dict[str, Document]:
        """Return the documents for *keys* (missing keys are skipped)."""
        ...

    @abstractmethod
    async def scan(
        self,
        collection: str,
        *,
        reverse: bool = False,
        limit: int | None = None,
    ) -> list[tuple[str, Document]]:
        """Return ``(key, document)`` pairs in key order."""
        ...

    @abstractmethod
    async def count(self, collection: str) -> int:
        """Number of documents in *collection*."""
        ...

    @abstractmethod
    async def clear(self, collection: str) -> int:
        """Delete every document in *collection*; return how many."""
        ...

    async def get_all(self, collection: str) -> dict[str, Document]:
        """Every document in *collection*, keyed by key."""
        return dict(await self.scan(collection))
