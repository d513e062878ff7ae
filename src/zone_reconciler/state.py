"""Zone lifecycle states and the backend status resolver."""

from __future__ import annotations

from enum import Enum


class LifecycleState(str, Enum):
    """Lifecycle states reported by the DNS backend.

    PENDING is only ever a waypoint. ACTIVE and DELETED are the terminal
    states a reconcile call converges to; ERROR ends polling with a failure.
    """

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    DELETED = "DELETED"
    ERROR = "ERROR"


class UnknownStateError(ValueError):
    """Raised when the backend reports a status with no lifecycle mapping."""

    pass


def resolve_state(status: str | None) -> LifecycleState:
    """Map a backend zone status string to a LifecycleState.

    Args:
        status: Raw status as returned by the zone API (case-insensitive).

    Returns:
        The matching LifecycleState.

    Raises:
        UnknownStateError: If the status is empty or not recognized.
    """
    if not status:
        raise UnknownStateError("Zone status is empty")

    try:
        return LifecycleState(status.strip().upper())
    except ValueError as e:
        raise UnknownStateError(f"Unknown zone status: {status!r}") from e
