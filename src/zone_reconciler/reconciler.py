"""Zone lifecycle reconciliation.

This module drives a DNS zone on an eventually-consistent backend through
its lifecycle:
1. Issue the create/update/delete call (fails immediately on any error)
2. Unless status checks are skipped, poll until ACTIVE or DELETED
3. Return the freshly observed zone, or a Diagnostic describing the failure

The reconciler holds no mutable state of its own. Concurrent reconciles of
distinct zones may share one instance and one client; reconciles of the
same zone ID must be serialized by the caller.

SECURITY: Every poll is bound to an explicit deadline so a zone stuck in
PENDING can never hang the caller.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, TypeVar

from azure.core.exceptions import ResourceNotFoundError

from .classifier import classify
from .client import ZoneClient
from .config import Phase, PollConfig, ReconcilerConfig
from .errors import (
    ClientCallFailed,
    Diagnostic,
    Operation,
    ReconcileError,
    ZoneGone,
)
from .importer import parse_import_id
from .models import ZoneDelta, ZoneDescriptor, ZoneSpec
from .poller import Classifier, Clock, PollOutcome, Sleep, StateResolver, ZoneStatePoller
from .state import LifecycleState, resolve_state

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ReconcileResult:
    """Result of a single reconcile call.

    Exactly one of ``descriptor`` and ``diagnostic`` is set once the call returns.
    """

    operation: Operation
    zone_id: str | None = None
    descriptor: ZoneDescriptor | None = None
    diagnostic: Diagnostic | None = None
    reads: int = 0
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None

    @property
    def duration_seconds(self) -> float:
        """Calculate duration in seconds."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def success(self) -> bool:
        """Check if reconciliation succeeded."""
        return self.diagnostic is None

    @property
    def gone(self) -> bool:
        """True if the zone was found absent; the local record is stale."""
        return isinstance(self.diagnostic.error if self.diagnostic else None, ZoneGone)


class ZoneReconciler:
    """Reconciles DNS zones against a zone client.

    Each public coroutine corresponds to one lifecycle phase and returns a
    ReconcileResult. Failures never raise; they are reported as Diagnostics.
    Only task cancellation (``asyncio.CancelledError``) propagates.
    """

    def __init__(
        self,
        client: ZoneClient,
        config: ReconcilerConfig | None = None,
        *,
        state_resolver: StateResolver = resolve_state,
        classifier: Classifier = classify,
        clock: Clock = time.monotonic,
        sleep: Sleep | None = None,
    ) -> None:
        """Initialize reconciler.

        Args:
            client: Ready-to-use zone client. Never mutated by the reconciler.
            config: Validated configuration (defaults apply when omitted).
            state_resolver: Maps raw zone status to LifecycleState.
            classifier: Decides whether a poll read error is retryable.
            clock: Monotonic clock used for poll deadlines.
            sleep: Sleep coroutine used between poll ticks.
        """
        self._client = client
        self._config = config or ReconcilerConfig()
        self._resolve = state_resolver
        self._classify = classifier
        self._clock = clock
        self._sleep = sleep

    @property
    def config(self) -> ReconcilerConfig:
        """Get the reconciler configuration."""
        return self._config

    async def reconcile_create(
        self,
        spec: ZoneSpec,
        poll: PollConfig | None = None,
        skip_status_check: bool | None = None,
        cancel: asyncio.Event | None = None,
    ) -> ReconcileResult:
        """Create a zone and wait for it to become ACTIVE.

        If polling fails after the backend assigned an ID, the result still
        carries that ID: the zone exists remotely and is not rolled back.

        Args:
            spec: Desired zone.
            poll: Polling parameters; defaults to the configured create timeouts.
            skip_status_check: Return after a single read without polling.
            cancel: Event the caller may set to abort polling.
        """
        result = ReconcileResult(operation=Operation.CREATE)
        logger.debug("Creating zone", extra={"zone_name": spec.name})

        try:
            created = await self._call(self._client.create, spec)
        except Exception as e:
            return self._fail(result, ClientCallFailed(Operation.CREATE, e), cause=e)

        result.zone_id = created.id
        logger.info("Zone created", extra={"zone_id": created.id, "zone_name": spec.name})

        return await self._converge(result, Phase.CREATE, poll, skip_status_check, cancel)

    async def reconcile_update(
        self,
        zone_id: str,
        delta: ZoneDelta,
        poll: PollConfig | None = None,
        skip_status_check: bool | None = None,
        cancel: asyncio.Event | None = None,
    ) -> ReconcileResult:
        """Apply a patch to a zone and wait for it to become ACTIVE again.

        An empty patch never reaches the backend's update call; the zone is
        only re-read.
        """
        result = ReconcileResult(operation=Operation.UPDATE, zone_id=zone_id)

        if delta.is_empty:
            logger.info("No zone fields changed, skipping update", extra={"zone_id": zone_id})
            return await self._read_into(result)

        logger.debug(
            "Updating zone",
            extra={"zone_id": zone_id, "changed_fields": delta.changed_fields()},
        )

        try:
            await self._call(self._client.update, zone_id, delta)
        except ResourceNotFoundError as e:
            return self._fail(result, ZoneGone(zone_id, e), cause=e)
        except Exception as e:
            return self._fail(result, ClientCallFailed(Operation.UPDATE, e), cause=e)

        return await self._converge(result, Phase.UPDATE, poll, skip_status_check, cancel)

    async def reconcile_delete(
        self,
        zone_id: str,
        poll: PollConfig | None = None,
        skip_status_check: bool | None = None,
        cancel: asyncio.Event | None = None,
    ) -> ReconcileResult:
        """Delete a zone and wait for it to disappear.

        Deleting a zone that is already gone succeeds.
        """
        result = ReconcileResult(operation=Operation.DELETE, zone_id=zone_id)
        deleted = ZoneDescriptor(id=zone_id, status=LifecycleState.DELETED.value)

        try:
            await self._call(self._client.delete, zone_id)
        except ResourceNotFoundError:
            logger.info("Zone already deleted", extra={"zone_id": zone_id})
            return self._succeed(result, deleted)
        except Exception as e:
            return self._fail(result, ClientCallFailed(Operation.DELETE, e), cause=e)

        if self._skip(skip_status_check):
            logger.info("Zone deletion requested, status check disabled", extra={"zone_id": zone_id})
            return self._succeed(result, deleted)

        try:
            await self._poll(result, zone_id, Phase.DELETE, poll, cancel)
        except ReconcileError as e:
            return self._fail(result, e)

        logger.info("Zone deleted", extra={"zone_id": zone_id, "reads": result.reads})
        return self._succeed(result, deleted)

    async def reconcile_read(self, zone_id: str) -> ReconcileResult:
        """Refresh a zone from the backend.

        A missing zone is reported as a ZoneGone diagnostic (``result.gone``)
        so the caller can drop its local record.
        """
        return await self._read_into(ReconcileResult(operation=Operation.READ, zone_id=zone_id))

    async def reconcile_import(self, import_id: str) -> ReconcileResult:
        """Adopt an existing zone from ``<id>`` or ``<id>:<project_id>``."""
        result = ReconcileResult(operation=Operation.IMPORT)

        try:
            parsed = parse_import_id(import_id)
        except ReconcileError as e:
            return self._fail(result, e)

        result.zone_id = parsed.zone_id
        result = await self._read_into(result)

        # The backend's own project wins; the import hint only fills a gap
        if result.descriptor is not None and result.descriptor.project_id is None:
            result.descriptor = result.descriptor.with_changes(project_id=parsed.project_id)

        return result

    async def _converge(
        self,
        result: ReconcileResult,
        phase: Phase,
        poll: PollConfig | None,
        skip_status_check: bool | None,
        cancel: asyncio.Event | None,
    ) -> ReconcileResult:
        """Wait for a created or updated zone to become ACTIVE."""
        # SAFETY: callers set zone_id before converging
        assert result.zone_id is not None, "converge requires an assigned zone ID"

        if self._skip(skip_status_check):
            return await self._read_into(result)

        try:
            outcome = await self._poll(result, result.zone_id, phase, poll, cancel)
        except ReconcileError as e:
            return self._fail(result, e)

        # SAFETY: ACTIVE is only observed from a successful read
        assert outcome.descriptor is not None, "target state observed without a zone"
        logger.info(
            "Zone is active",
            extra={
                "zone_id": result.zone_id,
                "phase": phase.value,
                "reads": outcome.reads,
                "elapsed_seconds": outcome.elapsed_seconds,
            },
        )
        return self._succeed(result, outcome.descriptor)

    async def _poll(
        self,
        result: ReconcileResult,
        zone_id: str,
        phase: Phase,
        poll: PollConfig | None,
        cancel: asyncio.Event | None,
    ) -> PollOutcome:
        poller = ZoneStatePoller(
            lambda: self._client.get(zone_id),
            poll or self._config.poll_config(phase),
            phase,
            zone_id=zone_id,
            state_resolver=self._resolve,
            classifier=self._classify,
            clock=self._clock,
            sleep=self._sleep,
            cancel=cancel,
        )
        logger.debug("Waiting for zone", extra={"zone_id": zone_id, "phase": phase.value})

        try:
            return await poller.run()
        finally:
            result.reads += poller.reads

    async def _read_into(self, result: ReconcileResult) -> ReconcileResult:
        """Read the zone once and complete the result with it."""
        # SAFETY: every caller assigns the zone ID first
        assert result.zone_id is not None, "read requires a zone ID"

        result.reads += 1
        try:
            descriptor = await self._call(self._client.get, result.zone_id)
        except ResourceNotFoundError as e:
            return self._fail(result, ZoneGone(result.zone_id, e), cause=e)
        except Exception as e:
            return self._fail(result, ClientCallFailed(Operation.READ, e), cause=e)

        logger.debug(
            "Retrieved zone",
            extra={"zone_id": result.zone_id, "status": descriptor.status},
        )
        return self._succeed(result, descriptor)

    def _skip(self, skip_status_check: bool | None) -> bool:
        if skip_status_check is None:
            return self._config.skip_status_check
        return skip_status_check

    async def _call(self, fn: Callable[..., T], *args: Any) -> T:
        """Run a blocking client call in the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn, *args)

    def _succeed(self, result: ReconcileResult, descriptor: ZoneDescriptor) -> ReconcileResult:
        result.descriptor = descriptor
        result.diagnostic = None
        result.end_time = datetime.now(UTC)
        return result

    def _fail(
        self,
        result: ReconcileResult,
        error: ReconcileError,
        cause: BaseException | None = None,
    ) -> ReconcileResult:
        if cause is not None and error.__cause__ is None:
            error.__cause__ = cause

        result.descriptor = None
        result.diagnostic = Diagnostic(
            operation=result.operation,
            zone_id=result.zone_id,
            error=error,
        )
        result.end_time = datetime.now(UTC)

        log = logger.info if isinstance(error, ZoneGone) else logger.error
        log(
            result.diagnostic.summary,
            extra={
                "zone_id": result.zone_id,
                "operation": result.operation.value,
                "error_kind": error.kind.value,
                "duration_seconds": result.duration_seconds,
            },
        )
        return result
