from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar
from pathlib import Path

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from context_recall.db.models import Base, KeyValueEntry
from context_recall.models.utils import utcnow
from context_recall.errors import StorageError
from context_recall.store.base import Document, KeyValueStore

logger = logging.getLogger(__name__)


class SQLiteKeyValueStore(KeyValueStore):
    """Store backed by a single SQLite file via SQLAlchemy + aiosqlite.

    Every document lives in the ``kv_entries`` table keyed by
    ``(collection, key)``.  Driver errors surface as
    :class:`~context_recall.errors.StorageError`.
    """

    def __init__(self, path: str | Path = ":memory:") -> None:
        if str(path) == ":memory:":
            # One shared connection, otherwise each session sees an empty db.
            self._engine = create_async_engine(
                "sqlite+aiosqlite:///:memory:", echo=False, poolclass=StaticPool
            )
        else:
            Path(path).expanduser().parent.mkdir(parents=True, exist_ok=True)
            self._engine = create_async_engine(
                f"sqlite+aiosqlite:///{Path(path).expanduser()}", echo=False
            )
        self.path = str(path)
        self._session_factory = async_sessionmaker(self._engine, expire_on_commit=False)
        # Only the task that opened atomic() writes through its session.
        self._scoped_session: ContextVar[AsyncSession | None] = ContextVar(
            f"kv_session_{id(self)}", default=None
        )

    @asynccontextmanager
    async def _auto_session(self) -> AsyncIterator[AsyncSession]:
        """Yield the scoped session if inside ``atomic()``, else a fresh
        auto-committing session that is closed after use."""
        scoped = self._scoped_session.get()
        if scoped is not None:
            yield scoped
            return
        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            raise StorageError(str(exc)) from exc
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    # ── Lifecycle ────────────────────────────────────────────────────

    async def init(self) -> None:
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as exc:
            raise StorageError(f"cannot open {self.path}: {exc}") from exc

    async def reset(self) -> None:
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.drop_all)
        except SQLAlchemyError as exc:
            raise StorageError(str(exc)) from exc
        await self.init()

    async def close(self) -> None:
        await self._engine.dispose()

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        if self._scoped_session.get() is not None:
            yield
            return
        session = self._session_factory()
        token = self._scoped_session.set(session)
        try:
            yield
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            raise StorageError(str(exc)) from exc
        except BaseException:
            await session.rollback()
            raise
        finally:
            await session.close()
            self._scoped_session.reset(token)

    # ── Documents ────────────────────────────────────────────────────

    async def get(self, collection: str, key: str) -> Document | None:
        async with self._auto_session() as s:
            row = await s.get(KeyValueEntry, (collection, key))
            return dict(row.value) if row is not None else None

    async def put(self, collection: str, key: str, value: Document) -> None:
        now = utcnow()
        stmt = insert(KeyValueEntry).values(
            collection=collection,
            key=key,
            value=value,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[KeyValueEntry.collection, KeyValueEntry.key],
            set_={"value": stmt.excluded.value, "updated_at": now},
        )
        async with self._auto_session() as s:
            await s.execute(stmt)

    async def delete(self, collection: str, key: str) -> bool:
        async with self._auto_session() as s:
            result = await s.execute(
                delete(KeyValueEntry).where(
                    KeyValueEntry.collection == collection,
                    KeyValueEntry.key == key,
                )
            )
            return bool(result.rowcount)

    async def get_many(self, collection: str, keys: list[str]) -> dict[str, Document]:
        if not keys:
            return {}
        async with self._auto_session() as s:
            result = await s.execute(
                select(KeyValueEntry.key, KeyValueEntry.value).where(
                    KeyValueEntry.collection == collection,
                    KeyValueEntry.key.in_(keys),
                )
            )
            return {key: dict(value) for key, value in result.all()}

    async def scan(
        self,
        collection: str,
        *,
        reverse: bool = False,
        limit: int | None = None,
    ) -> list[tuple[str, Document]]:
        order = KeyValueEntry.key.desc() if reverse else KeyValueEntry.key.asc()
        stmt = (
            select(KeyValueEntry.key, KeyValueEntry.value)
            .where(KeyValueEntry.collection == collection)
            .order_by(order)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._auto_session() as s:
            result = await s.execute(stmt)
            return [(key, dict(value)) for key, value in result.all()]

    async def count(self, collection: str) -> int:
        async with self._auto_session() as s:
            result = await s.execute(
                select(func.count())
                .select_from(KeyValueEntry)
                .where(KeyValueEntry.collection == collection)
            )
            return int(result.scalar_one())

    async def clear(self, collection: str) -> int:
        async with self._auto_session() as s:
            result = await s.execute(
                delete(KeyValueEntry).where(KeyValueEntry.collection == collection)
            )
            return int(result.rowcount or 0)
