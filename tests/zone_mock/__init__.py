"""Zone API mock for reconciler testing.

Provides an in-memory zone client with scripted status transitions,
call counters and error injection, plus a fake clock for driving poll
ticks deterministically.

Usage:
    from zone_mock import FakeClock, MockZoneClient

    client = MockZoneClient(statuses=["PENDING", "ACTIVE"])
    clock = FakeClock()
    reconciler = ZoneReconciler(client, clock=clock, sleep=clock.sleep)
    result = await reconciler.reconcile_create(ZoneSpec(name="example.com."))

    assert client.get_calls == 2
"""

from .clock import FakeClock
from .zones import MockZoneClient, http_error, not_found

__all__ = [
    "FakeClock",
    "MockZoneClient",
    "http_error",
    "not_found",
]
