"""Shared ID and clock helpers for all domain models."""

from __future__ import annotations

import hashlib
import uuid
from datetime import UTC, datetime


def generate_id() -> str:
    """Return a new random UUID string (v4).

    Every model that needs a default ``id`` should use this single
    factory so the generation strategy can be changed in one place.
    """
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(UTC)


def content_hash(text: str) -> str:
    """SHA-256 hex digest used to key cached embedding vectors."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def to_epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def from_epoch_ms(value: int | float) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=UTC)
