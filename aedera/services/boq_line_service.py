"""
BOQ line service layer: bulk reconciliation, listing and deletion.

bulk_upsert_lines() maps a client batch onto persisted rows of one
scenario version in a single transaction. A batch may mix:

  - rows without id or with a temporary id ("new_..."): created
  - rows whose real id already exists in the version: updated
  - rows whose real id does not exist yet (client replay of a deleted row): created
    with that id preserved

and parent references may point at rows that the same batch creates.
Those links cannot be written at insert time, so the batch runs in
strict phases inside one transaction:

  a. creates, linking only parents that already exist
  b. updates, same rule
  c. fixups for parents given as temporary ids (temp → real map from a.)
  d. fixups for parents given as real ids that a. created

Every item is validated and the resulting parent graph is checked for
cycles before the first write, so validation failures never leave
partial state behind.
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass

from sqlalchemy import select, update

from aedera.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from aedera.models import db
from aedera.models.scenario import (
    QTY_SOURCES,
    ROW_TYPE_GROUP,
    ROW_TYPE_LINE,
    ROW_TYPES,
    SORT_INDEX_MAX,
    BoqLine,
    ScenarioVersion,
)
from aedera.services.helpers.scoped_queries import get_scoped
from aedera.services.line_refs import PendingRef, PersistedRef, decode_line_ref
from aedera.services.wbs_key import build_wbs_key, clean_wbs_map
from aedera.services.wbs_settings_service import list_required_levels

logger = logging.getLogger(__name__)

CLIENT_KEY_MAX_LENGTH = 100

# Parent reference kinds
PARENT_NONE = "none"
PARENT_IMMEDIATE = "immediate"
PARENT_TEMP = "temp"
PARENT_DEFERRED_REAL = "deferred_real"


@dataclass
class _BatchItem:
    index: int
    ref: PersistedRef | PendingRef | None
    parent_ref: PersistedRef | PendingRef | None
    client_key: str | None
    values: dict
    action: str = ""
    line_id: str | None = None
    parent_kind: str = PARENT_NONE
    parent_id: str | None = None
    parent_token: str | None = None


# ── Value normalisation ───────────────────────────────────────────────────────


def _clean_str(value) -> str:
    return "" if value is None else str(value).strip()


def _clean_optional(value) -> str | None:
    cleaned = _clean_str(value)
    return cleaned or None


def _to_number(raw, field_name: str) -> float:
    """Parse a required numeric field; blank means 0."""
    value = _to_optional_number(raw, field_name)
    return 0.0 if value is None else value


def _to_optional_number(raw, field_name: str) -> float | None:
    """Parse an optional numeric field; blank means None."""
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise ValidationError(f"Invalid number: {raw}", details={"field": field_name})
    if isinstance(raw, str):
        if not raw.strip():
            return None
        raw = raw.strip()
    try:
        number = float(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid number: {raw}", details={"field": field_name}) from None
    if not math.isfinite(number):
        raise ValidationError(f"Invalid number: {raw}", details={"field": field_name})
    return number


def _clamp_sort_index(raw) -> int:
    try:
        value = int(float(raw))
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(0, min(value, SORT_INDEX_MAX))


def _normalize_row_type(raw) -> str:
    value = _clean_str(raw).upper()
    if not value:
        return ROW_TYPE_LINE
    if value not in ROW_TYPES:
        raise ValidationError(f"Invalid row_type: {raw}", details={"field": "row_type"})
    return value


def _normalize_qty_source(raw) -> str:
    value = _clean_str(raw).upper()
    if not value:
        return "MANUAL"
    if value not in QTY_SOURCES:
        raise ValidationError(f"Invalid qty_source: {raw}", details={"field": "qty_source"})
    return value


def _prepare_item(index: int, raw, required_levels: list[str]) -> _BatchItem:
    """Validate one client row and compute its server-side values."""
    if not isinstance(raw, dict):
        raise ValidationError("each item must be an object", details={"index": index})
    try:
        ref = decode_line_ref(raw.get("id"), "id")
        parent_ref = decode_line_ref(raw.get("parent_line_id"), "parent_line_id")
        row_type = _normalize_row_type(raw.get("row_type"))

        wbs = clean_wbs_map(raw.get("wbs"))
        wbs_key = build_wbs_key(required_levels, wbs, row_type)

        tariff_code = _clean_str(raw.get("tariff_code"))
        description = _clean_optional(raw.get("description"))
        if row_type == ROW_TYPE_LINE and not tariff_code:
            raise ValidationError(
                "tariff_code is required for LINE rows", details={"field": "tariff_code"},
            )
        if row_type == ROW_TYPE_GROUP and not tariff_code and not description:
            raise ValidationError("GROUP rows require tariff_code or description")

        if row_type == ROW_TYPE_GROUP:
            qty = unit_price = amount = 0.0
        else:
            qty = _to_number(raw.get("qty"), "qty")
            unit_price = _to_number(raw.get("unit_price"), "unit_price")
            amount = qty * unit_price
            if not math.isfinite(amount):
                raise ValidationError(
                    f"Invalid number: {qty} * {unit_price}", details={"field": "amount"},
                )

        client_key = _clean_optional(raw.get("client_key"))
        if client_key and len(client_key) > CLIENT_KEY_MAX_LENGTH:
            raise ValidationError(
                f"client_key must be at most {CLIENT_KEY_MAX_LENGTH} characters",
                details={"field": "client_key"},
            )

        values = {
            "wbs": wbs,
            "wbs_key": wbs_key,
            "tariff_code": tariff_code,
            "description": description,
            "unit_of_measure": _clean_optional(raw.get("unit_of_measure")),
            "qty": qty,
            "unit_price": unit_price,
            "amount": amount,
            "row_type": row_type,
            "sort_index": _clamp_sort_index(raw.get("sort_index")),
            "qty_model_suggested": _to_optional_number(
                raw.get("qty_model_suggested"), "qty_model_suggested"
            ),
            "qty_source": _normalize_qty_source(raw.get("qty_source")),
            "margin_pct": _to_optional_number(raw.get("margin_pct"), "margin_pct"),
            "package_code": _clean_optional(raw.get("package_code")),
            "material_code": _clean_optional(raw.get("material_code")),
            "supplier_id": _clean_optional(raw.get("supplier_id")),
        }
    except ValidationError as exc:
        raise ValidationError(str(exc), details={"index": index, **exc.details}) from exc

    return _BatchItem(
        index=index,
        ref=ref,
        parent_ref=parent_ref,
        client_key=client_key,
        values=values,
    )


# ── Version gate ──────────────────────────────────────────────────────────────


def _require_writable_version(project_id: int, version_id: str) -> ScenarioVersion:
    """Load and row-lock a version that accepts line writes.

    Raises:
        NotFoundError: Missing, in another project, or archived.
        ForbiddenError: The version is LOCKED.
    """
    version = get_scoped(ScenarioVersion, version_id, project_id=project_id, for_update=True)
    if version.is_archived:
        raise NotFoundError(resource="ScenarioVersion", resource_id=version_id)
    if version.is_locked:
        raise ForbiddenError("version is locked")
    return version


# ── Planning ──────────────────────────────────────────────────────────────────


def _plan_batch(version: ScenarioVersion, items: list[_BatchItem]) -> dict[str, BoqLine]:
    """Assign create/update actions and classify parent references.

    Returns the existing lines of the version keyed by id.
    """
    existing = {
        line.id: line
        for line in db.session.execute(
            select(BoqLine).where(BoqLine.version_id == version.id)
        ).scalars()
    }
    by_client_key = {line.client_key: line for line in existing.values() if line.client_key}

    seen_ids: set[str] = set()
    seen_client_keys: set[str] = set()
    pending: dict[str, _BatchItem] = {}
    preserved_ids: set[str] = set()

    for item in items:
        if item.client_key:
            if item.client_key in seen_client_keys:
                raise ValidationError(
                    f"duplicate client_key in batch: {item.client_key}",
                    details={"index": item.index},
                )
            seen_client_keys.add(item.client_key)

        if isinstance(item.ref, PersistedRef):
            line_id = item.ref.line_id
            if line_id in existing:
                item.action = "update"
            else:
                if db.session.get(BoqLine, line_id) is not None:
                    raise ValidationError(
                        f"line {line_id} belongs to another version",
                        details={"index": item.index},
                    )
                item.action = "create"
                preserved_ids.add(line_id)
            item.line_id = line_id
        else:
            if isinstance(item.ref, PendingRef):
                if item.ref.token in pending:
                    raise ValidationError(
                        f"duplicate id in batch: {item.ref.token}",
                        details={"index": item.index},
                    )
                pending[item.ref.token] = item
            match = by_client_key.get(item.client_key) if item.client_key else None
            if match is not None:
                item.action = "update"
                item.line_id = match.id
            else:
                item.action = "create"
                item.line_id = str(uuid.uuid4())

        if item.line_id in seen_ids:
            raise ValidationError(
                f"duplicate id in batch: {item.line_id}", details={"index": item.index},
            )
        seen_ids.add(item.line_id)

        if item.client_key:
            owner = by_client_key.get(item.client_key)
            if owner is not None and owner.id != item.line_id:
                raise ValidationError(
                    f"client_key {item.client_key} is used by another line",
                    details={"index": item.index},
                )

    for item in items:
        _classify_parent(item, existing, pending, preserved_ids)

    _check_for_cycles(existing, items, pending)
    return existing


def _classify_parent(item, existing, pending, preserved_ids) -> None:
    ref = item.parent_ref
    if ref is None:
        item.parent_kind = PARENT_NONE
        return

    if isinstance(ref, PendingRef):
        if item.ref == ref:
            raise ValidationError("a line cannot be its own parent", details={"index": item.index})
        if ref.token in pending:
            item.parent_kind = PARENT_TEMP
            item.parent_token = ref.token
        else:
            item.parent_kind = PARENT_NONE
        return

    parent_id = ref.line_id
    if parent_id == item.line_id:
        raise ValidationError("a line cannot be its own parent", details={"index": item.index})
    if parent_id in preserved_ids:
        item.parent_kind = PARENT_DEFERRED_REAL
    elif parent_id in existing:
        item.parent_kind = PARENT_IMMEDIATE
    elif db.session.get(BoqLine, parent_id) is not None:
        raise ValidationError(
            f"parent line {parent_id} belongs to another version",
            details={"index": item.index},
        )
    else:
        raise ValidationError(
            f"parent line {parent_id} not found", details={"index": item.index},
        )
    item.parent_id = parent_id


def _check_for_cycles(existing, items, pending) -> None:
    """Reject batches whose resulting parent graph contains a cycle."""
    parent_of = {line_id: line.parent_line_id for line_id, line in existing.items()}
    for item in items:
        if item.parent_kind == PARENT_TEMP:
            parent_of[item.line_id] = pending[item.parent_token].line_id
        elif item.parent_kind in (PARENT_IMMEDIATE, PARENT_DEFERRED_REAL):
            parent_of[item.line_id] = item.parent_id
        else:
            parent_of[item.line_id] = None

    done: set[str] = set()
    for start in parent_of:
        path: list[str] = []
        on_path: set[str] = set()
        node = start
        while node is not None and node not in done:
            if node in on_path:
                raise ValidationError(
                    "parent references form a cycle", details={"line_id": node},
                )
            on_path.add(node)
            path.append(node)
            node = parent_of.get(node)
        done.update(path)


# ── Public API ────────────────────────────────────────────────────────────────


def list_lines(project_id: int, version_id: str) -> list[dict]:
    """Return the lines of a version ordered by sort_index, wbs_key, tariff_code.

    Raises:
        NotFoundError: Version missing or in another project.
    """
    version = get_scoped(ScenarioVersion, version_id, project_id=project_id)
    lines = db.session.execute(
        select(BoqLine)
        .where(BoqLine.version_id == version.id)
        .order_by(BoqLine.sort_index, BoqLine.wbs_key, BoqLine.tariff_code, BoqLine.id)
    ).scalars().all()
    return [line.to_dict() for line in lines]


def bulk_upsert_lines(project_id: int, version_id: str, items: list) -> dict:
    """Reconcile a batch of client rows onto the lines of one DRAFT version.

    Args:
        project_id: Owning project.
        version_id: Target ScenarioVersion.
        items: Client row dicts (id, parent_line_id, wbs, tariff_code, qty, ...).

    Returns:
        {"created": int, "updated": int}

    Raises:
        NotFoundError: Version missing, in another project, or archived.
        ForbiddenError: Version is LOCKED.
        ValidationError: Any item is invalid; nothing is written.
    """
    version = _require_writable_version(project_id, version_id)
    required_levels = list_required_levels(project_id)

    batch = [_prepare_item(i, raw, required_levels) for i, raw in enumerate(items or [])]
    if not batch:
        return {"created": 0, "updated": 0}

    existing = _plan_batch(version, batch)
    creates = [item for item in batch if item.action == "create"]
    updates = [item for item in batch if item.action == "update"]

    try:
        lines_by_id = dict(existing)
        temp_to_real: dict[str, str] = {}

        # a. creates
        for item in creates:
            line = BoqLine(
                id=item.line_id,
                project_id=project_id,
                version_id=version.id,
                parent_line_id=item.parent_id if item.parent_kind == PARENT_IMMEDIATE else None,
                client_key=item.client_key,
                **item.values,
            )
            db.session.add(line)
            lines_by_id[line.id] = line
            if isinstance(item.ref, PendingRef):
                temp_to_real[item.ref.token] = line.id
        db.session.flush()

        # b. updates
        for item in updates:
            line = lines_by_id[item.line_id]
            for attr, value in item.values.items():
                setattr(line, attr, value)
            if item.client_key:
                line.client_key = item.client_key
            line.parent_line_id = item.parent_id if item.parent_kind == PARENT_IMMEDIATE else None
            if isinstance(item.ref, PendingRef):
                temp_to_real[item.ref.token] = line.id
        db.session.flush()

        # c. deferred temporary-id parents
        for item in batch:
            if item.parent_kind != PARENT_TEMP:
                continue
            real_parent = temp_to_real.get(item.parent_token)
            if real_parent is None:
                continue
            lines_by_id[item.line_id].parent_line_id = real_parent

        # d. deferred real-id parents created in this batch
        for item in batch:
            if item.parent_kind == PARENT_DEFERRED_REAL:
                lines_by_id[item.line_id].parent_line_id = item.parent_id

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "BOQ batch reconciled project_id=%s version_id=%s created=%s updated=%s",
        project_id, version_id, len(creates), len(updates),
    )
    return {"created": len(creates), "updated": len(updates)}


def delete_line(project_id: int, line_id: str) -> dict:
    """Delete one line and promote its direct children to root.

    Grandchildren keep their parent (a direct child, which still exists).

    Returns:
        {"deleted": line_id, "reparented": <number of children promoted>}

    Raises:
        NotFoundError: Line not in this project, or its version is missing or archived.
        ForbiddenError: The owning version is LOCKED.
    """
    line = get_scoped(BoqLine, line_id, project_id=project_id)
    version = _require_writable_version(project_id, line.version_id)

    try:
        result = db.session.execute(
            update(BoqLine)
            .where(BoqLine.parent_line_id == line.id)
            .values(parent_line_id=None)
        )
        reparented = result.rowcount or 0
        db.session.delete(line)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "BOQ line deleted id=%s version_id=%s reparented=%s",
        line_id, version.id, reparented,
    )
    return {"deleted": line_id, "reparented": reparented}
