"""Polling state machine that waits for a zone to reach a target state.

The backend has no push mechanism, so convergence is observed by reading
the zone repeatedly:

    PENDING --read: target state--------------> ACTIVE / DELETED (done)
    PENDING --read: pending state-------------> PENDING (sleep min interval)
    PENDING --read: retryable error-----------> PENDING (sleep backoff)
    PENDING --read: fatal error / odd state---> ERROR (PollFatalError)
    PENDING --deadline passed-----------------> ERROR (PollTimeout)
    PENDING --cancel event set----------------> ERROR (PollCancelled)

No transition leaves a terminal state; a poller runs at most once.

Clock and sleep are injectable so ticks can be driven deterministically in
tests. The only suspension points are the initial delay and the sleeps
between ticks. Cancellation is checked at tick boundaries and never
interrupts an in-flight read.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from azure.core.exceptions import ResourceNotFoundError

from .classifier import RetryDecision, classify
from .config import Phase, PollConfig
from .errors import PollCancelled, PollFatalError, PollTimeout
from .models import ZoneDescriptor
from .state import LifecycleState, UnknownStateError, resolve_state

logger = logging.getLogger(__name__)

# Jitter added on top of retry backoff, as a fraction of the backoff
RETRY_JITTER_FRACTION = 0.2

# Bound on the first read when the initial delay used up the whole timeout
FIRST_READ_GRACE_SECONDS = 1.0

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]
StateResolver = Callable[[str], LifecycleState]
Classifier = Callable[[BaseException, Phase], RetryDecision]


@dataclass(frozen=True)
class PollOutcome:
    """Result of a poll that reached a target state."""

    state: LifecycleState
    descriptor: ZoneDescriptor | None  # None when the zone is gone (DELETED)
    reads: int
    retries: int
    elapsed_seconds: float


class _ReadDeadlineExceeded(Exception):
    """A read was still in flight when its deadline passed."""


class ZoneStatePoller:
    """Drives one zone from PENDING to a target state, or to ERROR."""

    def __init__(
        self,
        read: Callable[[], ZoneDescriptor],
        config: PollConfig,
        phase: Phase,
        *,
        zone_id: str,
        state_resolver: StateResolver = resolve_state,
        classifier: Classifier = classify,
        clock: Clock = time.monotonic,
        sleep: Sleep | None = None,
        cancel: asyncio.Event | None = None,
    ) -> None:
        """Initialize the poller.

        Args:
            read: Blocking call returning the current zone. Runs in an executor.
            config: Validated polling parameters.
            phase: Lifecycle phase being waited on (for classification and logs).
            zone_id: ID of the zone being polled.
            state_resolver: Maps the raw zone status to a LifecycleState.
            classifier: Decides whether a read error is retryable.
            clock: Monotonic clock in seconds.
            sleep: Coroutine used to wait between ticks. Defaults to a sleep
                that wakes early when ``cancel`` is set.
            cancel: Optional event the caller sets to abort at the next tick.
        """
        self._read_zone = read
        self._config = config
        self._phase = phase
        self._zone_id = zone_id
        self._resolve = state_resolver
        self._classify = classifier
        self._clock = clock
        self._sleep = sleep or self._interruptible_sleep
        self._cancel = cancel

        self._state = LifecycleState.PENDING
        self._last_observed: LifecycleState | None = None
        self._reads = 0
        self._retries = 0
        self._started = False

    @property
    def state(self) -> LifecycleState:
        """Current machine state (PENDING until the poll terminates)."""
        return self._state

    @property
    def reads(self) -> int:
        """Number of reads issued so far."""
        return self._reads

    @property
    def retries(self) -> int:
        """Number of retryable read errors absorbed so far."""
        return self._retries

    async def run(self) -> PollOutcome:
        """Poll until a target state, a fatal error, cancellation or the deadline.

        Returns:
            PollOutcome describing the target state reached.

        Raises:
            PollTimeout: If the deadline passes before a target state is observed.
            PollFatalError: On a non-retryable read error or an unexpected state.
            PollCancelled: If the cancel event is set.
            RuntimeError: If the poller has already run.
        """
        if self._started:
            raise RuntimeError("ZoneStatePoller can only run once")
        self._started = True

        start = self._clock()
        deadline = start + self._config.timeout_seconds

        try:
            return await self._poll(start, deadline)
        except (PollTimeout, PollFatalError, PollCancelled) as e:
            self._state = LifecycleState.ERROR
            logger.error(
                "Polling failed",
                extra={
                    "zone_id": self._zone_id,
                    "phase": self._phase.value,
                    "reads": self._reads,
                    "retries": self._retries,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            raise

    async def _poll(self, start: float, deadline: float) -> PollOutcome:
        if self._config.delay_seconds > 0:
            await self._pause(self._config.delay_seconds, deadline)

        while True:
            self._check_cancelled(start)

            now = self._clock()
            # The first read is always issued: timeout >= delay is a PollConfig invariant.
            # It is bounded by FIRST_READ_GRACE_SECONDS when no time remains.
            if self._reads and now >= deadline:
                raise PollTimeout(self._last_observed, now - start, self._config.timeout_seconds)

            try:
                descriptor, observed = await self._tick(deadline - now)
            except _ReadDeadlineExceeded as e:
                raise PollTimeout(
                    self._last_observed,
                    self._clock() - start,
                    self._config.timeout_seconds,
                ) from e
            except PollFatalError:
                raise
            except Exception as e:
                if self._classify(e, self._phase) == RetryDecision.FAIL:
                    raise PollFatalError(
                        f"reading zone {self._zone_id} failed",
                        cause=e,
                        last_state=self._last_observed,
                    ) from e

                self._retries += 1
                backoff = self._retry_backoff()
                logger.warning(
                    "Zone read failed, retrying",
                    extra={
                        "zone_id": self._zone_id,
                        "phase": self._phase.value,
                        "attempt": self._retries,
                        "wait_seconds": backoff,
                        "error": str(e),
                    },
                )
                await self._pause(backoff, deadline)
                continue

            self._last_observed = observed

            if observed in self._config.targets:
                self._state = observed
                elapsed = self._clock() - start
                logger.info(
                    "Zone reached target state",
                    extra={
                        "zone_id": self._zone_id,
                        "phase": self._phase.value,
                        "state": observed.value,
                        "reads": self._reads,
                        "elapsed_seconds": elapsed,
                    },
                )
                return PollOutcome(
                    state=observed,
                    descriptor=descriptor,
                    reads=self._reads,
                    retries=self._retries,
                    elapsed_seconds=elapsed,
                )

            if observed in self._config.pendings:
                logger.debug(
                    "Zone still pending",
                    extra={
                        "zone_id": self._zone_id,
                        "phase": self._phase.value,
                        "state": observed.value,
                        "reads": self._reads,
                    },
                )
                await self._pause(self._config.min_interval_seconds, deadline)
                continue

            expected = sorted(s.value for s in self._config.targets | self._config.pendings)
            raise PollFatalError(
                f"zone {self._zone_id} entered unexpected state {observed.value}, "
                f"expected one of {expected}",
                last_state=observed,
            )

    async def _tick(self, remaining: float) -> tuple[ZoneDescriptor | None, LifecycleState]:
        """Issue one read and resolve the observed lifecycle state.

        A missing zone is observed as DELETED. Errors raised by the read
        itself, including its own TimeoutError, propagate unchanged.

        Raises:
            _ReadDeadlineExceeded: If the read outlives ``remaining`` seconds.
        """
        self._reads += 1
        loop = asyncio.get_running_loop()
        logger.debug(
            "Reading zone status",
            extra={"zone_id": self._zone_id, "phase": self._phase.value, "tick": self._reads},
        )

        read = loop.run_in_executor(None, self._read_zone)
        try:
            descriptor = await asyncio.wait_for(
                read,
                timeout=remaining if remaining > 0 else FIRST_READ_GRACE_SECONDS,
            )
        except ResourceNotFoundError:
            return None, LifecycleState.DELETED
        except TimeoutError as e:
            # wait_for cancels the read on expiry; otherwise the read raised this itself
            if read.done() and not read.cancelled() and read.exception() is e:
                raise
            raise _ReadDeadlineExceeded() from e

        try:
            return descriptor, self._resolve(descriptor.status)
        except UnknownStateError as e:
            raise PollFatalError(
                f"zone {self._zone_id} reported an unrecognized status",
                cause=e,
                last_state=self._last_observed,
            ) from e

    def _retry_backoff(self) -> float:
        """Exponential backoff with jitter, never shorter than the minimum interval."""
        base = self._config.min_interval_seconds * (2 ** (self._retries - 1))
        backoff = min(base, self._config.max_interval_seconds)
        jitter = random.uniform(0, backoff * RETRY_JITTER_FRACTION)
        return max(backoff + jitter, self._config.min_interval_seconds)

    async def _pause(self, seconds: float, deadline: float) -> None:
        """Sleep for ``seconds``, but never past the deadline."""
        wait = min(seconds, deadline - self._clock())
        if wait > 0:
            await self._sleep(wait)

    def _check_cancelled(self, start: float) -> None:
        if self._cancel is not None and self._cancel.is_set():
            raise PollCancelled(self._clock() - start)

    async def _interruptible_sleep(self, seconds: float) -> None:
        if self._cancel is None:
            await asyncio.sleep(seconds)
            return

        try:
            await asyncio.wait_for(self._cancel.wait(), timeout=seconds)
        except TimeoutError:
            # Normal timeout, continue to next tick
            pass
