"""Exception taxonomy for the memory and relevance engine.

Only :class:`StorageError` raised from ``PersistentMemoryStore.init()`` is
meant to reach callers.  Everything else is absorbed at a component boundary
and turned into a safe default (score 0, empty map, prompt unchanged).
"""


class ContextRecallError(Exception):
    """Base class for all context_recall errors."""


class ValidationError(ContextRecallError, ValueError):
    """Raised at the public boundary for an empty or malformed query."""

    def __init__(self, message: str | None = None):
        self.message = (
            f"Invalid input: {message}" if message else "Invalid input"
        )
        super().__init__(self.message)


class TransientProviderError(ContextRecallError):
    """The embedding provider failed; safe to retry later."""

    def __init__(self, message: str | None = None):
        self.message = (
            f"Embedding provider failed: {message}"
            if message
            else "Embedding provider failed"
        )
        super().__init__(self.message)


class ProviderUnavailableError(TransientProviderError):
    """The circuit breaker is open, the provider was not called."""

    def __init__(self, retry_in: float | None = None):
        self.retry_in = retry_in
        detail = "circuit breaker open"
        if retry_in is not None:
            detail += f", retry in {retry_in:.1f}s"
        super().__init__(detail)


class StorageError(ContextRecallError):
    """The key-value backend failed."""

    def __init__(self, message: str | None = None):
        self.message = f"Storage failed: {message}" if message else "Storage failed"
        super().__init__(self.message)


class BackpressureError(ContextRecallError):
    """The embedding request queue is at capacity; retry later."""

    retryable = True

    def __init__(self, capacity: int, retry_after: float | None = None):
        self.capacity = capacity
        self.retry_after = retry_after
        self.message = f"Embedding queue full ({capacity} pending requests)"
        super().__init__(self.message)
