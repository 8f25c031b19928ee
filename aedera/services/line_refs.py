"""
Line references as decoded at the API edge.

Clients identify rows that are not persisted yet with temporary ids
("new_<random>"). Raw ids are decoded once, here, into either a
PersistedRef or a PendingRef; the reconciler never looks at id prefixes.
"""

from __future__ import annotations

from dataclasses import dataclass

from aedera.core.exceptions import ValidationError
from aedera.models.scenario import LINE_ID_MAX_LENGTH

TEMP_ID_PREFIX = "new_"


@dataclass(frozen=True)
class PersistedRef:
    """A real line id (it may or may not exist in storage yet)."""

    line_id: str


@dataclass(frozen=True)
class PendingRef:
    """A client token for a line that only exists once this batch creates it."""

    token: str


LineRef = PersistedRef | PendingRef


def decode_line_ref(raw, field: str = "id") -> LineRef | None:
    """Decode a raw id value. Blank values decode to None.

    Raises:
        ValidationError: If a real id does not fit the id column.
    """
    if raw is None:
        return None
    value = str(raw).strip()
    if not value:
        return None
    if value.startswith(TEMP_ID_PREFIX):
        return PendingRef(value)
    if len(value) > LINE_ID_MAX_LENGTH:
        raise ValidationError(
            f"{field} must be at most {LINE_ID_MAX_LENGTH} characters",
            details={"field": field},
        )
    return PersistedRef(value)
