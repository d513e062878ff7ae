"""Configuration management with validation.

Polling parameters are validated at construction time so that an invalid
configuration fails before any remote call is issued.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from .state import LifecycleState


class Phase(str, Enum):
    """Lifecycle phases that poll for state."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Defaults match the 10 minute create/update/delete timeouts of the zone resource
DEFAULT_CREATE_TIMEOUT_SECONDS = 600.0
DEFAULT_UPDATE_TIMEOUT_SECONDS = 600.0
DEFAULT_DELETE_TIMEOUT_SECONDS = 600.0

DEFAULT_POLL_DELAY_SECONDS = 5.0
DEFAULT_POLL_MIN_INTERVAL_SECONDS = 3.0
DEFAULT_POLL_MAX_INTERVAL_SECONDS = 10.0

# Upper bound for any single polling timeout (24h)
MAX_POLL_TIMEOUT_SECONDS = 24 * 60 * 60

# Spec files are small YAML documents
MAX_SPEC_FILE_SIZE_BYTES = 1024 * 1024

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class PollConfig:
    """Per-operation polling parameters.

    Attributes:
        targets: States that end the poll successfully.
        pendings: States that keep the poll going.
        timeout_seconds: Hard deadline measured from the start of the poll.
        delay_seconds: Grace period before the first read.
        min_interval_seconds: Floor on the time between two reads.
        max_interval_seconds: Ceiling on retry backoff between two reads.
    """

    targets: frozenset[LifecycleState]
    pendings: frozenset[LifecycleState]
    timeout_seconds: float
    delay_seconds: float = DEFAULT_POLL_DELAY_SECONDS
    min_interval_seconds: float = DEFAULT_POLL_MIN_INTERVAL_SECONDS
    max_interval_seconds: float = DEFAULT_POLL_MAX_INTERVAL_SECONDS

    def __post_init__(self) -> None:
        # Accept any iterable of states but store frozensets
        object.__setattr__(self, "targets", frozenset(self.targets))
        object.__setattr__(self, "pendings", frozenset(self.pendings))

        errors: list[str] = []

        if not self.targets:
            errors.append("at least one target state is required")

        overlap = self.targets & self.pendings
        if overlap:
            names = sorted(s.value for s in overlap)
            errors.append(f"states cannot be both target and pending: {names}")

        if self.delay_seconds < 0:
            errors.append(f"delay must not be negative: {self.delay_seconds}")

        if self.timeout_seconds < self.delay_seconds:
            errors.append(
                f"timeout ({self.timeout_seconds}s) must not be shorter than "
                f"delay ({self.delay_seconds}s)"
            )
        elif self.timeout_seconds > MAX_POLL_TIMEOUT_SECONDS:
            errors.append(f"timeout cannot exceed {MAX_POLL_TIMEOUT_SECONDS}s")

        if self.min_interval_seconds <= 0:
            errors.append(f"min interval must be positive: {self.min_interval_seconds}")
        elif self.max_interval_seconds < self.min_interval_seconds:
            errors.append(
                f"max interval ({self.max_interval_seconds}s) must not be shorter than "
                f"min interval ({self.min_interval_seconds}s)"
            )

        if errors:
            error_msg = "Poll configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def for_phase(
        cls,
        phase: Phase,
        timeout_seconds: float,
        *,
        delay_seconds: float = DEFAULT_POLL_DELAY_SECONDS,
        min_interval_seconds: float = DEFAULT_POLL_MIN_INTERVAL_SECONDS,
        max_interval_seconds: float = DEFAULT_POLL_MAX_INTERVAL_SECONDS,
    ) -> PollConfig:
        """Build the poll configuration a lifecycle phase waits with.

        Create and update wait for ACTIVE while the zone is PENDING.
        Delete waits for DELETED while the zone is still ACTIVE or PENDING.
        """
        targets: Iterable[LifecycleState]
        pendings: Iterable[LifecycleState]
        match phase:
            case Phase.CREATE | Phase.UPDATE:
                targets = {LifecycleState.ACTIVE}
                pendings = {LifecycleState.PENDING}
            case Phase.DELETE:
                targets = {LifecycleState.DELETED}
                pendings = {LifecycleState.ACTIVE, LifecycleState.PENDING}

        return cls(
            targets=frozenset(targets),
            pendings=frozenset(pendings),
            timeout_seconds=timeout_seconds,
            delay_seconds=delay_seconds,
            min_interval_seconds=min_interval_seconds,
            max_interval_seconds=max_interval_seconds,
        )


@dataclass(frozen=True)
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"

    # Structured JSON output to stdout
    json_output: bool = True

    def __post_init__(self) -> None:
        if self.level.upper() not in VALID_LOG_LEVELS:
            raise ConfigurationError(
                f"LOG_LEVEL must be one of {list(VALID_LOG_LEVELS)}: {self.level}"
            )

    @property
    def level_number(self) -> int:
        return logging.getLevelName(self.level.upper())


@dataclass(frozen=True)
class ReconcilerConfig:
    """Reconciler configuration, usually loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing mid-reconcile.
    """

    create_timeout_seconds: float = DEFAULT_CREATE_TIMEOUT_SECONDS
    update_timeout_seconds: float = DEFAULT_UPDATE_TIMEOUT_SECONDS
    delete_timeout_seconds: float = DEFAULT_DELETE_TIMEOUT_SECONDS

    poll_delay_seconds: float = DEFAULT_POLL_DELAY_SECONDS
    poll_min_interval_seconds: float = DEFAULT_POLL_MIN_INTERVAL_SECONDS
    poll_max_interval_seconds: float = DEFAULT_POLL_MAX_INTERVAL_SECONDS

    # Return right after the remote call without waiting for ACTIVE/DELETED
    skip_status_check: bool = False

    logging_config: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self) -> None:
        # Building every phase's PollConfig surfaces all invariant violations
        for phase in Phase:
            self.poll_config(phase)

    def timeout_for(self, phase: Phase) -> float:
        """Get the polling timeout configured for a phase."""
        match phase:
            case Phase.CREATE:
                return self.create_timeout_seconds
            case Phase.UPDATE:
                return self.update_timeout_seconds
            case Phase.DELETE:
                return self.delete_timeout_seconds

    def poll_config(self, phase: Phase) -> PollConfig:
        """Build the default PollConfig for a phase."""
        return PollConfig.for_phase(
            phase,
            self.timeout_for(phase),
            delay_seconds=self.poll_delay_seconds,
            min_interval_seconds=self.poll_min_interval_seconds,
            max_interval_seconds=self.poll_max_interval_seconds,
        )

    @classmethod
    def from_env(cls) -> ReconcilerConfig:
        """Load configuration from environment variables.

        Environment Variables:
            ZONE_CREATE_TIMEOUT: Seconds to wait for a new zone to become ACTIVE (default: 600)
            ZONE_UPDATE_TIMEOUT: Seconds to wait for an updated zone to become ACTIVE
                (default: 600)
            ZONE_DELETE_TIMEOUT: Seconds to wait for a zone to be DELETED (default: 600)
            POLL_DELAY: Seconds before the first status read (default: 5)
            POLL_MIN_INTERVAL: Minimum seconds between status reads (default: 3)
            POLL_MAX_INTERVAL: Maximum retry backoff in seconds (default: 10)
            DISABLE_STATUS_CHECK: If "true", never wait for the zone status (default: false)
            LOG_LEVEL: Root log level (default: INFO)
            ENABLE_JSON_LOGGING: Emit JSON log lines (default: true)
        """

        def get_float(key: str, default: float) -> float:
            value = os.environ.get(key)
            if value is None or value == "":
                return default
            try:
                return float(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be a number: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        return cls(
            create_timeout_seconds=get_float("ZONE_CREATE_TIMEOUT", DEFAULT_CREATE_TIMEOUT_SECONDS),
            update_timeout_seconds=get_float("ZONE_UPDATE_TIMEOUT", DEFAULT_UPDATE_TIMEOUT_SECONDS),
            delete_timeout_seconds=get_float("ZONE_DELETE_TIMEOUT", DEFAULT_DELETE_TIMEOUT_SECONDS),
            poll_delay_seconds=get_float("POLL_DELAY", DEFAULT_POLL_DELAY_SECONDS),
            poll_min_interval_seconds=get_float(
                "POLL_MIN_INTERVAL", DEFAULT_POLL_MIN_INTERVAL_SECONDS
            ),
            poll_max_interval_seconds=get_float(
                "POLL_MAX_INTERVAL", DEFAULT_POLL_MAX_INTERVAL_SECONDS
            ),
            skip_status_check=get_bool("DISABLE_STATUS_CHECK", False),
            logging_config=LoggingConfig(
                level=os.environ.get("LOG_LEVEL", "INFO") or "INFO",
                json_output=get_bool("ENABLE_JSON_LOGGING", True),
            ),
        )
