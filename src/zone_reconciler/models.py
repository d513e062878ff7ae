"""Pydantic models for DNS zones with validation.

These models provide:
1. Type-safe parsing of desired zone state (YAML or dict)
2. Validation at the boundary (fail fast, fail loudly)
3. A typed update patch computed once from observed and desired state
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, Field, field_validator

from .state import LifecycleState, resolve_state

VALID_ZONE_TYPES = {"PRIMARY", "SECONDARY"}


def _normalize_zone_type(v: str | None) -> str | None:
    if v is None or v == "":
        return None
    upper = v.upper()
    if upper not in VALID_ZONE_TYPES:
        raise ValueError(f"type must be one of {sorted(VALID_ZONE_TYPES)}")
    return upper


class ZoneSpec(BaseModel):
    """Desired state of a DNS zone, as requested by the caller."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    name: Annotated[str, Field(min_length=1, max_length=255)]
    email: str | None = None
    ttl: Annotated[int, Field(ge=1)] | None = None
    description: str | None = None
    type: str | None = None
    masters: frozenset[str] = Field(default_factory=frozenset)
    attributes: dict[str, str] = Field(default_factory=dict)

    # Passed through to the backend on create only
    value_specs: dict[str, str] = Field(default_factory=dict, alias="valueSpecs")
    project_id: str | None = Field(None, alias="projectId")

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str | None) -> str | None:
        return _normalize_zone_type(v)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if any(c.isspace() for c in v):
            raise ValueError("zone name cannot contain whitespace")
        return v


class ZoneDescriptor(BaseModel):
    """A zone as last observed on the backend.

    The ID is assigned by the backend on create and never changes.
    Reads and updates return a fresh descriptor rather than mutating this one.
    """

    model_config = {"extra": "ignore", "frozen": True, "populate_by_name": True}

    id: Annotated[str, Field(min_length=1)]
    name: str = ""
    email: str | None = None
    ttl: int | None = None
    description: str | None = None
    type: str | None = None
    masters: frozenset[str] = Field(default_factory=frozenset)
    attributes: dict[str, str] = Field(default_factory=dict)
    project_id: str | None = Field(None, alias="projectId")
    status: str = LifecycleState.PENDING.value

    @property
    def lifecycle_state(self) -> LifecycleState:
        """Lifecycle state derived from the raw backend status."""
        return resolve_state(self.status)

    def with_changes(self, **updates: Any) -> ZoneDescriptor:
        """Return a copy with the given fields replaced."""
        return self.model_copy(update=updates)


class ZoneDelta(BaseModel):
    """Typed patch of the zone fields that can be updated in place.

    A field left as None is untouched. An empty description clears it.
    """

    model_config = {"extra": "forbid", "frozen": True}

    email: str | None = None
    ttl: Annotated[int, Field(ge=1)] | None = None
    description: str | None = None
    masters: frozenset[str] | None = None

    @property
    def is_empty(self) -> bool:
        """True when the patch touches no mutable field."""
        return self == _EMPTY_DELTA

    def changed_fields(self) -> list[str]:
        """Names of the fields this patch sets."""
        return sorted(self.model_dump(exclude_none=True))

    def to_update_options(self) -> dict[str, Any]:
        """Render the patch as update options for the zone API."""
        options: dict[str, Any] = self.model_dump(exclude_none=True)
        if "masters" in options:
            options["masters"] = sorted(options["masters"])
        return options

    @classmethod
    def between(cls, current: ZoneDescriptor, desired: ZoneSpec) -> ZoneDelta:
        """Compute the patch that moves ``current`` towards ``desired``.

        Args:
            current: Last observed zone.
            desired: Requested zone state.

        Returns:
            Patch containing only the mutable fields that differ.
        """
        changes: dict[str, Any] = {}

        if desired.email is not None and desired.email != current.email:
            changes["email"] = desired.email

        # TTL is computed by the backend when not requested
        if desired.ttl is not None and desired.ttl != current.ttl:
            changes["ttl"] = desired.ttl

        if (desired.description or "") != (current.description or ""):
            changes["description"] = desired.description or ""

        if desired.masters != current.masters:
            changes["masters"] = desired.masters

        return cls(**changes)


_EMPTY_DELTA = ZoneDelta()


def immutable_changes(current: ZoneDescriptor, desired: ZoneSpec) -> list[str]:
    """List immutable fields whose desired value differs from the observed zone.

    The backend only sets name, type, attributes and project at creation
    time; changing one of them means replacing the zone. Unset optional values (type, project) are treated as "backend decides"
    and never count as a change.
    """
    changed: list[str] = []

    if desired.name != current.name:
        changed.append("name")

    if desired.type is not None and desired.type != current.type:
        changed.append("type")

    if desired.attributes and desired.attributes != current.attributes:
        changed.append("attributes")

    if desired.project_id is not None and desired.project_id != current.project_id:
        changed.append("project_id")

    return changed
