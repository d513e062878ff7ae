"""Import ID parsing for adopting existing zones."""

from __future__ import annotations

from dataclasses import dataclass

from .errors import MalformedImportID

IMPORT_ID_SEPARATOR = ":"


@dataclass(frozen=True)
class ImportID:
    """A parsed import ID; the project is set when importing across projects."""

    zone_id: str
    project_id: str | None = None


def parse_import_id(raw: str) -> ImportID:
    """Parse ``<id>`` or ``<id>:<project_id>``.

    Raises:
        MalformedImportID: If the zone ID is empty or there are extra separators.
    """
    parts = raw.split(IMPORT_ID_SEPARATOR)
    if not parts[0] or len(parts) > 2:
        raise MalformedImportID(raw)

    if len(parts) == 2:
        if not parts[1]:
            raise MalformedImportID(raw)
        return ImportID(zone_id=parts[0], project_id=parts[1])

    return ImportID(zone_id=parts[0])
