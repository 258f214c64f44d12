from __future__ import annotations

import copy
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar

from context_recall.store.base import Document, KeyValueStore

_Undo = dict[tuple[str, str], Document | None]


class InMemoryKeyValueStore(KeyValueStore):
    """Store backed by plain Python dicts.

    Documents are deep-copied on the way in and out so callers never
    share mutable state with the store.  ``atomic()`` keeps an undo log
    of the keys written by the task that opened it and restores only
    those keys if the block raises; writes from other tasks are kept.
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, Document]] = {}
        self._undo: ContextVar[_Undo | None] = ContextVar(
            f"kv_undo_{id(self)}", default=None
        )

    # ── Lifecycle ────────────────────────────────────────────────────

    async def init(self) -> None:
        pass

    async def reset(self) -> None:
        self._collections = {}

    async def close(self) -> None:
        pass

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        if self._undo.get() is not None:
            # Nested blocks join the outer one.
            yield
            return
        undo: _Undo = {}
        token = self._undo.set(undo)
        try:
            yield
        except BaseException:
            self._rollback(undo)
            raise
        finally:
            self._undo.reset(token)

    def _remember(self, collection: str, key: str) -> None:
        undo = self._undo.get()
        if undo is None or (collection, key) in undo:
            return
        undo[(collection, key)] = self._collections.get(collection, {}).get(key)

    def _rollback(self, undo: _Undo) -> None:
        for (collection, key), previous in undo.items():
            bucket = self._collections.setdefault(collection, {})
            if previous is None:
                bucket.pop(key, None)
            else:
                bucket[key] = previous
            if not bucket:
                del self._collections[collection]

    # ── Documents ────────────────────────────────────────────────────

    async def get(self, collection: str, key: str) -> Document | None:
        value = self._collections.get(collection, {}).get(key)
        return copy.deepcopy(value) if value is not None else None

    async def put(self, collection: str, key: str, value: Document) -> None:
        self._remember(collection, key)
        self._collections.setdefault(collection, {})[key] = copy.deepcopy(value)

    async def delete(self, collection: str, key: str) -> bool:
        self._remember(collection, key)
        return self._collections.get(collection, {}).pop(key, None) is not None

    async def get_many(self, collection: str, keys: list[str]) -> dict[str, Document]:
        bucket = self._collections.get(collection, {})
        return {k: copy.deepcopy(bucket[k]) for k in keys if k in bucket}

    async def scan(
        self,
        collection: str,
        *,
        reverse: bool = False,
        limit: int | None = None,
    ) -> list[tuple[str, Document]]:
        bucket = self._collections.get(collection, {})
        keys = sorted(bucket, reverse=reverse)
        if limit is not None:
            keys = keys[:limit]
        return [(k, copy.deepcopy(bucket[k])) for k in keys]

    async def count(self, collection: str) -> int:
        return len(self._collections.get(collection, {}))

    async def clear(self, collection: str) -> int:
        for key in list(self._collections.get(collection, {})):
            self._remember(collection, key)
        return len(self._collections.pop(collection, {}))
