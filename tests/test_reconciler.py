"""Tests for the zone reconciler.

These tests use MockZoneClient and a fake clock to drive full
create/update/delete/read flows without a real backend.
"""

from __future__ import annotations

import asyncio
import time

import pytest
from zone_mock import FakeClock, MockZoneClient, http_error, not_found

from zone_reconciler.config import Phase, PollConfig, ReconcilerConfig
from zone_reconciler.errors import (
    ClientCallFailed,
    DiagnosticKind,
    MalformedImportID,
    Operation,
    PollTimeout,
    ZoneGone,
)
from zone_reconciler.models import ZoneDelta, ZoneDescriptor, ZoneSpec
from zone_reconciler.reconciler import ReconcileResult, ZoneReconciler

ZONE = ZoneDescriptor(
    id="z1",
    name="zone1",
    email="admin@example.com",
    ttl=300,
    type="PRIMARY",
    status="ACTIVE",
)


def _reconciler(
    client: MockZoneClient,
    clock: FakeClock,
    config: ReconcilerConfig | None = None,
) -> ZoneReconciler:
    return ZoneReconciler(client, config, clock=clock, sleep=clock.sleep)


def _assert_exactly_one(result: ReconcileResult) -> None:
    assert (result.descriptor is None) != (result.diagnostic is None)
    assert result.end_time is not None


class TestReconcileCreate:
    """Tests for reconcile_create."""

    @pytest.mark.asyncio
    async def test_create_polls_until_active(self, clock: FakeClock) -> None:
        """Test create of zone1 converging after PENDING, PENDING, ACTIVE."""
        client = MockZoneClient(["PENDING", "PENDING", "ACTIVE"])
        reconciler = _reconciler(client, clock)

        result = await reconciler.reconcile_create(ZoneSpec(name="zone1", ttl=300))

        _assert_exactly_one(result)
        assert result.success
        assert result.descriptor is not None
        assert result.descriptor.id == "z1"
        assert result.descriptor.ttl == 300
        assert result.descriptor.status == "ACTIVE"
        assert client.create_calls == 1
        assert client.get_calls == 3
        assert result.reads == 3
        assert clock.sleeps == [5.0, 3.0, 3.0]

    @pytest.mark.asyncio
    async def test_create_call_failure(self, clock: FakeClock) -> None:
        """Test that a failed create call is reported without polling."""
        client = MockZoneClient(create_error=http_error(400, "bad request"))
        reconciler = _reconciler(client, clock)

        result = await reconciler.reconcile_create(ZoneSpec(name="zone1"))

        _assert_exactly_one(result)
        assert result.diagnostic is not None
        assert result.diagnostic.kind == DiagnosticKind.CLIENT_CALL_FAILED
        assert result.diagnostic.operation == Operation.CREATE
        assert result.diagnostic.zone_id is None
        assert result.diagnostic.resource_created is False
        assert isinstance(result.diagnostic.error, ClientCallFailed)
        assert "bad request" in result.diagnostic.summary
        assert client.get_calls == 0
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_create_timeout_keeps_zone_id(self, clock: FakeClock) -> None:
        """Test that a create whose poll times out still reports the assigned ID."""
        client = MockZoneClient(["PENDING"])
        config = ReconcilerConfig(create_timeout_seconds=20)
        reconciler = _reconciler(client, clock, config)

        result = await reconciler.reconcile_create(ZoneSpec(name="zone1"))

        _assert_exactly_one(result)
        diagnostic = result.diagnostic
        assert diagnostic is not None
        assert diagnostic.is_timeout
        assert diagnostic.zone_id == "z1"
        assert diagnostic.resource_created is True
        assert result.zone_id == "z1"
        assert diagnostic.summary.startswith("Error waiting for dns zone z1 to become active")
        assert isinstance(diagnostic.error, PollTimeout)

    @pytest.mark.asyncio
    async def test_create_poll_fatal_error(self, clock: FakeClock) -> None:
        client = MockZoneClient(["PENDING", http_error(403, "forbidden")])
        reconciler = _reconciler(client, clock)

        result = await reconciler.reconcile_create(ZoneSpec(name="zone1"))

        assert result.diagnostic is not None
        assert result.diagnostic.kind == DiagnosticKind.POLL_FATAL
        assert not result.diagnostic.is_timeout
        assert client.get_calls == 2

    @pytest.mark.asyncio
    async def test_create_client_read_timeout_is_not_a_poll_timeout(
        self, clock: FakeClock
    ) -> None:
        """Test that a socket timeout from the client's read is reported as a fatal poll error."""
        client = MockZoneClient(["PENDING", TimeoutError("socket read timed out")])
        reconciler = _reconciler(client, clock)

        result = await reconciler.reconcile_create(ZoneSpec(name="zone1"))

        _assert_exactly_one(result)
        assert result.diagnostic is not None
        assert result.diagnostic.kind == DiagnosticKind.POLL_FATAL
        assert not result.diagnostic.is_timeout
        assert result.diagnostic.resource_created is True
        assert "socket read timed out" in result.diagnostic.summary
        assert client.get_calls == 2

    @pytest.mark.asyncio
    async def test_create_skip_status_check(self, clock: FakeClock) -> None:
        """Test that skipping status checks does one read and no waiting."""
        client = MockZoneClient(["PENDING"])
        reconciler = _reconciler(client, clock)

        result = await reconciler.reconcile_create(ZoneSpec(name="zone1"), skip_status_check=True)

        assert result.success
        assert result.descriptor is not None
        assert result.descriptor.status == "PENDING"
        assert client.get_calls == 1
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_skip_status_check_from_config(self, clock: FakeClock) -> None:
        client = MockZoneClient(["PENDING"])
        reconciler = _reconciler(client, clock, ReconcilerConfig(skip_status_check=True))

        result = await reconciler.reconcile_create(ZoneSpec(name="zone1"))

        assert result.success
        assert client.get_calls == 1

    @pytest.mark.asyncio
    async def test_explicit_poll_config_overrides_defaults(self, clock: FakeClock) -> None:
        client = MockZoneClient(["PENDING", "ACTIVE"])
        reconciler = _reconciler(client, clock)
        poll = PollConfig.for_phase(
            Phase.CREATE, 30, delay_seconds=1, min_interval_seconds=2, max_interval_seconds=2
        )

        result = await reconciler.reconcile_create(ZoneSpec(name="zone1"), poll=poll)

        assert result.success
        assert clock.sleeps == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_create_times_out_promptly_on_real_clock(self) -> None:
        """Test that a stuck zone fails within roughly the 50ms timeout."""
        client = MockZoneClient(["PENDING"])
        reconciler = ZoneReconciler(client)
        poll = PollConfig.for_phase(
            Phase.CREATE, 0.05, delay_seconds=0.01, min_interval_seconds=0.01
        )

        start = time.monotonic()
        result = await reconciler.reconcile_create(ZoneSpec(name="zone1"), poll=poll)
        elapsed = time.monotonic() - start

        assert result.diagnostic is not None
        assert result.diagnostic.is_timeout
        assert 0.045 <= elapsed < 0.2

    @pytest.mark.asyncio
    async def test_create_cancelled(self, clock: FakeClock) -> None:
        """Test that cancellation is reported distinctly from a timeout."""
        client = MockZoneClient(["PENDING"])
        cancel = asyncio.Event()
        cancel.set()
        reconciler = _reconciler(client, clock)

        result = await reconciler.reconcile_create(ZoneSpec(name="zone1"), cancel=cancel)

        assert result.diagnostic is not None
        assert result.diagnostic.kind == DiagnosticKind.CANCELLED
        assert not result.diagnostic.is_timeout
        assert result.diagnostic.resource_created is True
        assert client.get_calls == 0


class TestReconcileUpdate:
    """Tests for reconcile_update."""

    @pytest.mark.asyncio
    async def test_empty_delta_skips_update_call(self, clock: FakeClock) -> None:
        """Test the no-op path: nothing changed, so only a read is issued."""
        client = MockZoneClient(["ACTIVE"], initial=ZONE)
        reconciler = _reconciler(client, clock)
        delta = ZoneDelta.between(ZONE, ZoneSpec(name="zone1", ttl=300))

        result = await reconciler.reconcile_update("z1", delta)

        _assert_exactly_one(result)
        assert result.success
        assert client.update_calls == 0
        assert client.get_calls == 1
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_update_polls_until_active(self, clock: FakeClock) -> None:
        client = MockZoneClient(["PENDING", "ACTIVE"], initial=ZONE)
        reconciler = _reconciler(client, clock)

        result = await reconciler.reconcile_update("z1", ZoneDelta(ttl=600))

        assert result.success
        assert result.descriptor is not None
        assert result.descriptor.ttl == 600
        assert client.update_calls == 1
        assert client.updates == [ZoneDelta(ttl=600)]
        assert result.reads == 2

    @pytest.mark.asyncio
    async def test_update_call_failure(self, clock: FakeClock) -> None:
        client = MockZoneClient(initial=ZONE, update_error=http_error(409, "conflict"))
        reconciler = _reconciler(client, clock)

        result = await reconciler.reconcile_update("z1", ZoneDelta(ttl=600))

        assert result.diagnostic is not None
        assert result.diagnostic.kind == DiagnosticKind.CLIENT_CALL_FAILED
        assert result.diagnostic.operation == Operation.UPDATE
        assert result.diagnostic.summary.startswith("Error updating dns zone z1")
        assert client.get_calls == 0

    @pytest.mark.asyncio
    async def test_update_missing_zone_is_gone(self, clock: FakeClock) -> None:
        client = MockZoneClient()
        reconciler = _reconciler(client, clock)

        result = await reconciler.reconcile_update("z1", ZoneDelta(ttl=600))

        assert result.gone
        assert result.diagnostic is not None
        assert result.diagnostic.kind == DiagnosticKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_no_op_update_on_missing_zone_is_gone(self, clock: FakeClock) -> None:
        client = MockZoneClient()
        reconciler = _reconciler(client, clock)

        result = await reconciler.reconcile_update("z1", ZoneDelta())

        assert result.gone
        assert client.update_calls == 0

    @pytest.mark.asyncio
    async def test_update_timeout(self, clock: FakeClock) -> None:
        client = MockZoneClient(["PENDING"], initial=ZONE)
        reconciler = _reconciler(client, clock, ReconcilerConfig(update_timeout_seconds=15))

        result = await reconciler.reconcile_update("z1", ZoneDelta(description="new"))

        assert result.diagnostic is not None
        assert result.diagnostic.is_timeout
        assert result.diagnostic.operation == Operation.UPDATE
        assert result.diagnostic.summary.startswith(
            "Error waiting for dns zone z1 to become active"
        )

    @pytest.mark.asyncio
    async def test_update_skip_status_check(self, clock: FakeClock) -> None:
        client = MockZoneClient(["PENDING"], initial=ZONE)
        reconciler = _reconciler(client, clock)

        result = await reconciler.reconcile_update(
            "z1", ZoneDelta(email="ops@example.com"), skip_status_check=True
        )

        assert result.success
        assert result.descriptor is not None
        assert result.descriptor.email == "ops@example.com"
        assert client.get_calls == 1
        assert clock.sleeps == []


class TestReconcileDelete:
    """Tests for reconcile_delete."""

    @pytest.mark.asyncio
    async def test_delete_absent_zone_is_idempotent(self, clock: FakeClock) -> None:
        """Test that deleting an already-absent zone succeeds every time."""
        client = MockZoneClient()
        reconciler = _reconciler(client, clock)

        first = await reconciler.reconcile_delete("z1")
        second = await reconciler.reconcile_delete("z1")

        for result in (first, second):
            _assert_exactly_one(result)
            assert result.success
            assert result.descriptor is not None
            assert result.descriptor.status == "DELETED"
        assert client.delete_calls == 2
        assert client.get_calls == 0

    @pytest.mark.asyncio
    async def test_delete_polls_until_gone(self, clock: FakeClock) -> None:
        client = MockZoneClient(["ACTIVE", "PENDING", not_found()], initial=ZONE)
        reconciler = _reconciler(client, clock)

        result = await reconciler.reconcile_delete("z1")

        assert result.success
        assert result.descriptor is not None
        assert result.descriptor.id == "z1"
        assert result.descriptor.status == "DELETED"
        assert result.reads == 3

    @pytest.mark.asyncio
    async def test_delete_call_failure(self, clock: FakeClock) -> None:
        client = MockZoneClient(initial=ZONE, delete_error=http_error(500, "server error"))
        reconciler = _reconciler(client, clock)

        result = await reconciler.reconcile_delete("z1")

        assert result.diagnostic is not None
        assert result.diagnostic.kind == DiagnosticKind.CLIENT_CALL_FAILED
        assert result.diagnostic.summary.startswith("Error deleting dns zone z1")

    @pytest.mark.asyncio
    async def test_delete_timeout(self, clock: FakeClock) -> None:
        client = MockZoneClient(["ACTIVE"], initial=ZONE)
        reconciler = _reconciler(client, clock, ReconcilerConfig(delete_timeout_seconds=12))

        result = await reconciler.reconcile_delete("z1")

        assert result.diagnostic is not None
        assert result.diagnostic.is_timeout
        assert result.diagnostic.summary.startswith(
            "Error waiting for dns zone z1 to become deleted"
        )

    @pytest.mark.asyncio
    async def test_delete_skip_status_check(self, clock: FakeClock) -> None:
        client = MockZoneClient(["ACTIVE"], initial=ZONE)
        reconciler = _reconciler(client, clock)

        result = await reconciler.reconcile_delete("z1", skip_status_check=True)

        assert result.success
        assert client.delete_calls == 1
        assert client.get_calls == 0


class TestReconcileRead:
    """Tests for reconcile_read and reconcile_import."""

    @pytest.mark.asyncio
    async def test_read(self, clock: FakeClock) -> None:
        client = MockZoneClient(["ACTIVE"], initial=ZONE)
        reconciler = _reconciler(client, clock)

        result = await reconciler.reconcile_read("z1")

        assert result.success
        assert result.descriptor == ZONE
        assert not result.gone

    @pytest.mark.asyncio
    async def test_read_missing_zone_is_gone(self, clock: FakeClock) -> None:
        """Test that NotFound on read is reported distinctly from a failure."""
        client = MockZoneClient()
        reconciler = _reconciler(client, clock)

        result = await reconciler.reconcile_read("z1")

        _assert_exactly_one(result)
        assert result.gone
        assert result.diagnostic is not None
        assert isinstance(result.diagnostic.error, ZoneGone)

    @pytest.mark.asyncio
    async def test_read_failure_is_not_gone(self, clock: FakeClock) -> None:
        client = MockZoneClient([http_error(500)], initial=ZONE)
        reconciler = _reconciler(client, clock)

        result = await reconciler.reconcile_read("z1")

        assert not result.gone
        assert result.diagnostic is not None
        assert result.diagnostic.kind == DiagnosticKind.CLIENT_CALL_FAILED
        assert result.diagnostic.summary.startswith("Error retrieving dns zone z1")

    @pytest.mark.asyncio
    async def test_import_with_project(self, clock: FakeClock) -> None:
        client = MockZoneClient(["ACTIVE"], initial=ZONE)
        reconciler = _reconciler(client, clock)

        result = await reconciler.reconcile_import("z1:project-a")

        assert result.success
        assert result.zone_id == "z1"
        assert result.descriptor is not None
        assert result.descriptor.project_id == "project-a"

    @pytest.mark.asyncio
    async def test_import_keeps_backend_project(self, clock: FakeClock) -> None:
        client = MockZoneClient(["ACTIVE"], initial=ZONE.with_changes(project_id="owner"))
        reconciler = _reconciler(client, clock)

        result = await reconciler.reconcile_import("z1:project-a")

        assert result.descriptor is not None
        assert result.descriptor.project_id == "owner"

    @pytest.mark.asyncio
    async def test_import_malformed_id(self, clock: FakeClock) -> None:
        client = MockZoneClient(["ACTIVE"], initial=ZONE)
        reconciler = _reconciler(client, clock)

        result = await reconciler.reconcile_import("z1:p:extra")

        assert result.diagnostic is not None
        assert result.diagnostic.kind == DiagnosticKind.MALFORMED_IMPORT_ID
        assert isinstance(result.diagnostic.error, MalformedImportID)
        assert client.get_calls == 0


class TestConcurrentReconciles:
    """Tests for sharing one reconciler across distinct zones."""

    @pytest.mark.asyncio
    async def test_distinct_zones_in_parallel(self) -> None:
        clients = [
            MockZoneClient(["PENDING", "ACTIVE"], zone_id=f"z{i}") for i in range(3)
        ]
        poll = PollConfig.for_phase(
            Phase.CREATE, 5, delay_seconds=0, min_interval_seconds=0.01
        )

        results = await asyncio.gather(
            *(
                ZoneReconciler(client).reconcile_create(ZoneSpec(name=f"zone{i}"), poll=poll)
                for i, client in enumerate(clients)
            )
        )

        assert [r.zone_id for r in results] == ["z0", "z1", "z2"]
        assert all(r.success for r in results)
