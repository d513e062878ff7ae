"""Contract for the DNS zone client consumed by the reconciler.

The client is a synchronous, ready-to-use object in the style of the Azure
SDK management clients: authentication, region selection and wire encoding
are its concern, not the reconciler's. The reconciler never mutates it and
may share one instance across concurrent reconciles of distinct zones.

Errors are azure-core exceptions:
- ``ResourceNotFoundError`` when the zone does not exist
- ``HttpResponseError`` (with ``status_code``) for any other HTTP failure
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .models import ZoneDelta, ZoneDescriptor, ZoneSpec


@runtime_checkable
class ZoneClient(Protocol):
    """Create/read/update/delete operations against the zone API."""

    def create(self, spec: ZoneSpec) -> ZoneDescriptor:
        """Create a zone and return it with its backend-assigned ID."""
        ...

    def get(self, zone_id: str) -> ZoneDescriptor:
        """Fetch the current zone, raising ResourceNotFoundError if absent."""
        ...

    def update(self, zone_id: str, delta: ZoneDelta) -> ZoneDescriptor:
        """Apply a patch to the zone."""
        ...

    def delete(self, zone_id: str) -> None:
        """Request deletion of the zone."""
        ...
