"""Circuit breaker guarding the embedding provider.

States::

    CLOSED ──(failure_threshold consecutive failures)──▶ OPEN
    OPEN ──(cooldown elapsed)──▶ HALF_OPEN   (exactly one probe allowed)
    HALF_OPEN ──(probe succeeds)──▶ CLOSED    (counters and cooldown reset)
    HALF_OPEN ──(probe fails)──▶ OPEN         (cooldown doubled, capped)

While OPEN no provider call is made at all.  Every transition starts a new
generation; results from calls admitted under an earlier generation do not
move the breaker, so only the HALF_OPEN probe can close it.
"""

from __future__ import annotations

import enum
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


class BreakerState(enum.StrEnum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class BreakerSnapshot:
    state: BreakerState
    consecutive_failures: int
    cooldown_seconds: float
    retry_in: float | None
    total_failures: int
    total_short_circuits: int


class CircuitBreaker:
    def __init__(
        self,
        failure_threshold: int = 5,
        cooldown_seconds: float = 60.0,
        max_cooldown_seconds: float = 900.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        name: str = "embedding",
    ) -> None:
        self._failure_threshold = max(1, failure_threshold)
        self._base_cooldown = max(0.0, cooldown_seconds)
        self._max_cooldown = max(self._base_cooldown, max_cooldown_seconds)
        self._clock = clock
        self._name = name

        self._state = BreakerState.CLOSED
        self._consecutive_failures = 0
        self._cooldown = self._base_cooldown
        self._reopen_at = 0.0
        self._probe_in_flight = False
        self._generation = 0

        self._total_failures = 0
        self._total_short_circuits = 0

    @property
    def state(self) -> BreakerState:
        self._refresh()
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def reopen_at(self) -> float:
        return self._reopen_at

    def retry_in(self) -> float | None:
        if self.state is not BreakerState.OPEN:
            return None
        return max(0.0, self._reopen_at - self._clock())

    def allow_request(self) -> bool:
        """Whether a provider call may go ahead right now."""
        return self.admit() is not None

    def admit(self) -> int | None:
        """Admit one provider call, returning its ticket or ``None``.

        In HALF_OPEN the first caller becomes the probe; everyone else is
        short-circuited until the probe reports back.  The ticket is the
        state generation at admission; results reported with a ticket from
        an earlier generation are ignored.
        """
        state = self.state
        if state is BreakerState.CLOSED:
            return self._generation
        if state is BreakerState.HALF_OPEN and not self._probe_in_flight:
            self._probe_in_flight = True
            return self._generation
        self._total_short_circuits += 1
        return None

    def is_current(self, ticket: int | None) -> bool:
        """Whether a call admitted with *ticket* still belongs to this state."""
        self._refresh()
        return ticket is not None and ticket == self._generation

    def release_probe(self, ticket: int | None = None) -> None:
        """Give back a probe slot whose call never reached the provider."""
        if ticket is not None and not self.is_current(ticket):
            return
        if self._state is BreakerState.HALF_OPEN:
            self._probe_in_flight = False

    def record_success(self, ticket: int | None = None) -> None:
        if ticket is not None and not self.is_current(ticket):
            logger.debug("Circuit %s ignoring stale success", self._name)
            return
        if self._state is not BreakerState.CLOSED:
            logger.info("Circuit %s closed after successful probe", self._name)
        self._consecutive_failures = 0
        self._cooldown = self._base_cooldown
        self._probe_in_flight = False
        self._transition(BreakerState.CLOSED)

    def record_failure(
        self,
        error: BaseException | str | None = None,
        *,
        ticket: int | None = None,
    ) -> None:
        self._total_failures += 1
        if ticket is not None and not self.is_current(ticket):
            logger.debug("Circuit %s ignoring stale failure: %s", self._name, error)
            return
        self._consecutive_failures += 1

        if self._state is BreakerState.HALF_OPEN:
            self._probe_in_flight = False
            self._cooldown = min(self._cooldown * 2, self._max_cooldown)
            self._open()
            logger.warning(
                "Circuit %s probe failed, reopening for %.1fs: %s",
                self._name,
                self._cooldown,
                error,
            )
        elif (
            self._state is BreakerState.CLOSED
            and self._consecutive_failures >= self._failure_threshold
        ):
            self._open()
            logger.warning(
                "Circuit %s opened after %d consecutive failures: %s",
                self._name,
                self._consecutive_failures,
                error,
            )

    def reset(self) -> None:
        self._generation += 1
        self._consecutive_failures = 0
        self._cooldown = self._base_cooldown
        self._probe_in_flight = False
        self._reopen_at = 0.0
        self._transition(BreakerState.CLOSED)

    def snapshot(self) -> BreakerSnapshot:
        return BreakerSnapshot(
            state=self.state,
            consecutive_failures=self._consecutive_failures,
            cooldown_seconds=self._cooldown,
            retry_in=self.retry_in(),
            total_failures=self._total_failures,
            total_short_circuits=self._total_short_circuits,
        )

    def _open(self) -> None:
        self._reopen_at = self._clock() + self._cooldown
        self._transition(BreakerState.OPEN)

    def _refresh(self) -> None:
        if self._state is BreakerState.OPEN and self._clock() >= self._reopen_at:
            self._transition(BreakerState.HALF_OPEN)

    def _transition(self, new: BreakerState) -> None:
        if new is not self._state:
            logger.debug("Circuit %s: %s -> %s", self._name, self._state, new)
            self._state = new
            self._generation += 1
