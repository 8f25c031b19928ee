"""
WBS level settings service.

Reads the per-project classification levels consumed by the BOQ line
reconciler and lets the settings screen upsert them in bulk. The WBS
taxonomy tree itself (allowed values, assignments) is managed elsewhere.
"""

import logging
import math

from sqlalchemy import select

from aedera.core.exceptions import NotFoundError, ValidationError
from aedera.models import db
from aedera.models.project import Project
from aedera.models.scenario import SORT_INDEX_MAX
from aedera.models.wbs import WbsLevelSetting

logger = logging.getLogger(__name__)


def _clean_key(value) -> str:
    return "" if value is None else str(value).strip()


def _to_sort_index(raw, index: int) -> int | None:
    """Parse a finite number into a clamped integer sort index; blank means not supplied."""
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    number = math.nan
    if not isinstance(raw, bool):
        try:
            number = float(raw)
        except (TypeError, ValueError):
            pass
    if not math.isfinite(number):
        raise ValidationError(
            f"Invalid number: {raw}", details={"index": index, "field": "sort_index"},
        )
    return max(-SORT_INDEX_MAX, min(int(number), SORT_INDEX_MAX))


def list_levels(project_id: int) -> list[dict]:
    """Return every level setting of a project ordered by sort_index, level_key."""
    rows = db.session.execute(
        select(WbsLevelSetting)
        .where(WbsLevelSetting.project_id == project_id)
        .order_by(WbsLevelSetting.sort_index, WbsLevelSetting.level_key)
    ).scalars().all()
    return [r.to_dict() for r in rows]


def list_required_levels(project_id: int) -> list[str]:
    """Return the ordered level keys that are both enabled and required."""
    rows = db.session.execute(
        select(WbsLevelSetting.level_key)
        .where(
            WbsLevelSetting.project_id == project_id,
            WbsLevelSetting.enabled.is_(True),
            WbsLevelSetting.required.is_(True),
        )
        .order_by(WbsLevelSetting.sort_index, WbsLevelSetting.level_key)
    ).scalars().all()
    return list(rows)


def bulk_upsert_levels(project_id: int, items: list[dict]) -> dict:
    """Upsert level settings by (project_id, level_key).

    Blank keys are dropped and the first occurrence of a duplicated key
    wins. Only attributes present in an item are written on update; new
    rows default to enabled=True, required=False, sort_index=0.

    Returns:
        {"upserted": <number of rows written>}

    Raises:
        NotFoundError: If the project does not exist.
        ValidationError: A sort_index is not a finite number; nothing is written.
    """
    if db.session.get(Project, project_id) is None:
        raise NotFoundError(resource="Project", resource_id=project_id)

    seen = set()
    clean = []
    for index, item in enumerate(items or []):
        level_key = _clean_key(item.get("level_key"))
        if not level_key or level_key in seen:
            continue
        seen.add(level_key)
        sort_index = _to_sort_index(item.get("sort_index"), index)
        clean.append((level_key, sort_index, item))

    if not clean:
        return {"upserted": 0}

    existing = {
        row.level_key: row
        for row in db.session.execute(
            select(WbsLevelSetting).where(WbsLevelSetting.project_id == project_id)
        ).scalars()
    }

    try:
        for level_key, sort_index, item in clean:
            row = existing.get(level_key)
            if row is None:
                row = WbsLevelSetting(
                    project_id=project_id,
                    level_key=level_key,
                    enabled=True,
                    required=False,
                    sort_index=0,
                )
                db.session.add(row)
            if isinstance(item.get("enabled"), bool):
                row.enabled = item["enabled"]
            if isinstance(item.get("required"), bool):
                row.required = item["required"]
            if sort_index is not None:
                row.sort_index = sort_index
            if "ifc_param_key" in item:
                row.ifc_param_key = _clean_key(item["ifc_param_key"]) or None
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("WBS levels upserted project_id=%s count=%s", project_id, len(clean))
    return {"upserted": len(clean)}
