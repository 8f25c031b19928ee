"""
WBS key builder.

Turns a line's raw per-level classification map into the canonical,
order-sensitive composite key used to group and sort BOQ lines:

    build_wbs_key(["LOTTO", "OPERA"], {"OPERA": " 02 ", "LOTTO": "A"}, "LINE")
    -> "LOTTO=A|OPERA=02"

Only the project's required levels participate, in their configured order.
LINE rows must populate every required level; GROUP rows may leave gaps,
which render as empty segments ("LOTTO=A|OPERA=").
"""

from aedera.core.exceptions import ValidationError
from aedera.models.scenario import ROW_TYPE_GROUP

WBS_KEY_SEPARATOR = "|"


def clean_wbs_map(raw) -> dict[str, str]:
    """Normalise a client-supplied WBS map: string keys and trimmed string values."""
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValidationError("wbs must be an object of level -> value")
    cleaned = {}
    for key, value in raw.items():
        level = str(key).strip()
        if not level:
            continue
        cleaned[level] = "" if value is None else str(value).strip()
    return cleaned


def build_wbs_key(required_levels: list[str], wbs: dict, row_type: str) -> str:
    """Build the composite WBS key for one line.

    Args:
        required_levels: Ordered level keys that are enabled and required.
        wbs: Per-level value map (values are trimmed here as well).
        row_type: LINE or GROUP.

    Returns:
        "level=value" pairs joined by WBS_KEY_SEPARATOR, in required_levels order.

    Raises:
        ValidationError: For LINE rows, when a required level is blank.
    """
    segments = []
    for level in required_levels:
        value = wbs.get(level)
        value = "" if value is None else str(value).strip()
        if not value and row_type != ROW_TYPE_GROUP:
            raise ValidationError(
                f"missing required WBS level: {level}",
                details={"level": level},
            )
        segments.append(f"{level}={value}")
    return WBS_KEY_SEPARATOR.join(segments)
