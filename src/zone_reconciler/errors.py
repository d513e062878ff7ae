"""Error taxonomy and structured diagnostics for zone reconciliation.

Every failure that leaves a reconcile call is wrapped in a Diagnostic
carrying the operation, the zone ID (when known) and the underlying error.
Timeouts stay distinguishable from fatal errors so callers can decide
whether a later retry is worthwhile.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .state import LifecycleState


class Operation(str, Enum):
    """Public reconcile operations."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    IMPORT = "import"


class DiagnosticKind(str, Enum):
    """Coarse classification of a reconcile failure."""

    CLIENT_CALL_FAILED = "client_call_failed"
    NOT_FOUND = "not_found"
    POLL_TIMEOUT = "poll_timeout"
    POLL_FATAL = "poll_fatal"
    CANCELLED = "cancelled"
    MALFORMED_IMPORT_ID = "malformed_import_id"


class ReconcileError(Exception):
    """Base class for all reconcile failures."""

    kind: DiagnosticKind = DiagnosticKind.CLIENT_CALL_FAILED


class ClientCallFailed(ReconcileError):
    """Raised when the initial create, update or delete call fails."""

    kind = DiagnosticKind.CLIENT_CALL_FAILED

    def __init__(self, operation: Operation, cause: BaseException) -> None:
        super().__init__(f"{operation.value} call failed: {cause}")
        self.operation = operation
        self.cause = cause


class ZoneGone(ReconcileError):
    """Raised when a read finds the zone absent on the backend."""

    kind = DiagnosticKind.NOT_FOUND

    def __init__(self, zone_id: str, cause: BaseException | None = None) -> None:
        super().__init__(f"zone {zone_id} not found")
        self.zone_id = zone_id
        self.cause = cause


class PollTimeout(ReconcileError):
    """Raised when polling hits its deadline before reaching a target state."""

    kind = DiagnosticKind.POLL_TIMEOUT

    def __init__(
        self,
        last_state: LifecycleState | None,
        elapsed_seconds: float,
        timeout_seconds: float,
    ) -> None:
        last = last_state.value if last_state is not None else "never observed"
        super().__init__(
            f"timeout after {elapsed_seconds:.3f}s (limit {timeout_seconds}s), "
            f"last state: {last}"
        )
        self.last_state = last_state
        self.elapsed_seconds = elapsed_seconds
        self.timeout_seconds = timeout_seconds


class PollFatalError(ReconcileError):
    """Raised when a poll read fails with a non-retryable error or an unexpected state."""

    kind = DiagnosticKind.POLL_FATAL

    def __init__(
        self,
        message: str,
        *,
        cause: BaseException | None = None,
        last_state: LifecycleState | None = None,
    ) -> None:
        super().__init__(message if cause is None else f"{message}: {cause}")
        self.cause = cause
        self.last_state = last_state


class PollCancelled(ReconcileError):
    """Raised when the caller cancels a reconcile while it is polling."""

    kind = DiagnosticKind.CANCELLED

    def __init__(self, elapsed_seconds: float) -> None:
        super().__init__(f"cancelled after {elapsed_seconds:.3f}s")
        self.elapsed_seconds = elapsed_seconds


class MalformedImportID(ReconcileError):
    """Raised when an import ID is not ``<id>`` or ``<id>:<project_id>``."""

    kind = DiagnosticKind.MALFORMED_IMPORT_ID

    def __init__(self, raw: str) -> None:
        super().__init__(
            f"unexpected format of ID ({raw}), expected zone <id> or <id>:<project_id>"
        )
        self.raw = raw


# Wording per operation, used to build human-readable summaries
_ACTION_VERBS: dict[Operation, str] = {
    Operation.CREATE: "creating",
    Operation.READ: "retrieving",
    Operation.UPDATE: "updating",
    Operation.DELETE: "deleting",
    Operation.IMPORT: "importing",
}

_WAIT_TARGETS: dict[Operation, str] = {
    Operation.CREATE: "active",
    Operation.UPDATE: "active",
    Operation.DELETE: "deleted",
}


@dataclass(frozen=True)
class Diagnostic:
    """Structured failure record returned by every reconcile operation."""

    operation: Operation
    zone_id: str | None
    error: ReconcileError

    @property
    def kind(self) -> DiagnosticKind:
        return self.error.kind

    @property
    def is_timeout(self) -> bool:
        return self.kind == DiagnosticKind.POLL_TIMEOUT

    @property
    def resource_created(self) -> bool:
        """True if a create failed after the backend assigned an ID.

        The zone exists remotely and must be tracked, it is not rolled back.
        """
        return self.operation == Operation.CREATE and self.zone_id is not None

    @property
    def summary(self) -> str:
        """Human-readable one-line description of the failure."""
        zone = f"dns zone {self.zone_id}" if self.zone_id else "dns zone"

        if self.kind in (
            DiagnosticKind.POLL_TIMEOUT,
            DiagnosticKind.POLL_FATAL,
            DiagnosticKind.CANCELLED,
        ) and self.operation in _WAIT_TARGETS:
            target = _WAIT_TARGETS[self.operation]
            return f"Error waiting for {zone} to become {target}: {self.error}"

        return f"Error {_ACTION_VERBS[self.operation]} {zone}: {self.error}"

    def __str__(self) -> str:
        return self.summary
