"""
Scenario version service layer.

Owns the lifecycle of ScenarioVersion rows and the per-(project, scenario)
active-version pointer:

    create → (clone) → freeze (LOCKED) ; archive/restore ; set active

Rules:
  - project_id is always an explicit parameter; every lookup is scoped by it.
  - db.session.commit() happens only in this file (and the other services).
  - version_no is allocated as max+1; the unique constraint on
    (project_id, scenario, version_no) is the backstop, and a collision
    is retried with a fresh max read.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from aedera.core.exceptions import ConflictError, NotFoundError, ValidationError
from aedera.models import db
from aedera.models.project import Project
from aedera.models.scenario import (
    SCENARIO_ALIASES,
    SCENARIO_TYPES,
    VERSION_STATUS_DRAFT,
    VERSION_STATUS_LOCKED,
    BoqLine,
    ScenarioActiveVersion,
    ScenarioVersion,
)
from aedera.services.helpers.scoped_queries import get_scoped

logger = logging.getLogger(__name__)

DEFAULT_VERSION_NO_MAX_ATTEMPTS = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_scenario(raw) -> str:
    """Map user input (any case, legacy aliases) onto a SCENARIO_TYPES value.

    Raises:
        ValidationError: If the value is not a known scenario type.
    """
    value = "" if raw is None else str(raw).strip().upper()
    value = SCENARIO_ALIASES.get(value, value)
    if value not in SCENARIO_TYPES:
        raise ValidationError(f"Invalid scenario type: {raw}")
    return value


# ── Internal helpers ──────────────────────────────────────────────────────────


def _get_active_pointer(project_id: int, scenario: str) -> ScenarioActiveVersion | None:
    return db.session.execute(
        select(ScenarioActiveVersion).where(
            ScenarioActiveVersion.project_id == project_id,
            ScenarioActiveVersion.scenario == scenario,
        )
    ).scalar_one_or_none()


def _next_version_no(project_id: int, scenario: str) -> int:
    current = db.session.execute(
        select(func.max(ScenarioVersion.version_no)).where(
            ScenarioVersion.project_id == project_id,
            ScenarioVersion.scenario == scenario,
        )
    ).scalar()
    return (current or 0) + 1


def _line_count(version_id: str) -> int:
    return db.session.execute(
        select(func.count()).select_from(BoqLine).where(BoqLine.version_id == version_id)
    ).scalar_one()


def _serialize(version: ScenarioVersion, active_version_id: str | None) -> dict:
    data = version.to_dict()
    data["is_active"] = version.id == active_version_id
    return data


def _insert_with_next_no(project_id: int, scenario: str, populate) -> ScenarioVersion:
    """Allocate the next version_no and persist the version built by `populate`.

    `populate(version_no)` must add the new ScenarioVersion (and any child
    rows) to the session and return it. The first version of a scenario
    also becomes its active version. On a unique-constraint collision the
    whole unit is rolled back and retried with a fresh max read.

    Raises:
        ConflictError: If every attempt collided.
    """
    max_attempts = current_app.config.get(
        "VERSION_NO_MAX_ATTEMPTS", DEFAULT_VERSION_NO_MAX_ATTEMPTS
    )
    version_no = None
    for attempt in range(1, max_attempts + 1):
        version_no = _next_version_no(project_id, scenario)
        try:
            version = populate(version_no)
            db.session.flush()
            if _get_active_pointer(project_id, scenario) is None:
                db.session.add(ScenarioActiveVersion(
                    project_id=project_id,
                    scenario=scenario,
                    version_id=version.id,
                ))
                db.session.flush()
            db.session.commit()
            return version
        except IntegrityError as exc:
            db.session.rollback()
            logger.warning(
                "Version number collision project_id=%s scenario=%s version_no=%s attempt=%s: %s",
                project_id, scenario, version_no, attempt, exc.orig,
            )
        except Exception:
            db.session.rollback()
            raise
    raise ConflictError("ScenarioVersion", "version_no", str(version_no))


# ── Reads ─────────────────────────────────────────────────────────────────────


def list_versions(project_id: int, scenario: str, include_archived: bool = False) -> dict:
    """Return the active pointer and the versions of one scenario, version_no ascending.

    Returns:
        {"scenario": str, "active_version_id": str | None, "versions": [dict, ...]}
    """
    scenario = normalize_scenario(scenario)
    pointer = _get_active_pointer(project_id, scenario)
    active_version_id = pointer.version_id if pointer else None

    stmt = (
        select(ScenarioVersion)
        .where(
            ScenarioVersion.project_id == project_id,
            ScenarioVersion.scenario == scenario,
        )
        .order_by(ScenarioVersion.version_no)
    )
    if not include_archived:
        stmt = stmt.where(ScenarioVersion.archived_at.is_(None))
    versions = db.session.execute(stmt).scalars().all()

    return {
        "scenario": scenario,
        "active_version_id": active_version_id,
        "versions": [_serialize(v, active_version_id) for v in versions],
    }


def get_version(project_id: int, version_id: str) -> dict:
    """Return one version with its active flag and line count.

    Raises:
        NotFoundError: If the version does not exist in this project.
    """
    version = get_scoped(ScenarioVersion, version_id, project_id=project_id)
    pointer = _get_active_pointer(project_id, version.scenario)
    data = _serialize(version, pointer.version_id if pointer else None)
    data["line_count"] = _line_count(version.id)
    return data


# ── Mutations ─────────────────────────────────────────────────────────────────


def create_version(
    project_id: int,
    scenario: str,
    name: str | None = None,
    notes: str | None = None,
    user_id: str | None = None,
) -> dict:
    """Create a DRAFT version numbered max+1 for (project, scenario).

    Becomes the active version only when the scenario has no active
    pointer yet; an existing pointer is never overwritten.

    Raises:
        ValidationError: Unknown scenario type.
        NotFoundError: Project does not exist.
        ConflictError: version_no allocation kept colliding.
    """
    scenario = normalize_scenario(scenario)
    if db.session.get(Project, project_id) is None:
        raise NotFoundError(resource="Project", resource_id=project_id)

    clean_name = (name or "").strip()

    def populate(version_no):
        version = ScenarioVersion(
            project_id=project_id,
            scenario=scenario,
            version_no=version_no,
            status=VERSION_STATUS_DRAFT,
            name=clean_name or f"{scenario} v{version_no}",
            notes=notes,
            created_by_user_id=user_id,
        )
        db.session.add(version)
        return version

    version = _insert_with_next_no(project_id, scenario, populate)
    logger.info(
        "ScenarioVersion created id=%s project_id=%s scenario=%s version_no=%s",
        version.id, project_id, scenario, version.version_no,
    )
    pointer = _get_active_pointer(project_id, scenario)
    return _serialize(version, pointer.version_id if pointer else None)


def clone_version(
    project_id: int,
    base_version_id: str,
    name: str | None = None,
    notes: str | None = None,
    user_id: str | None = None,
) -> dict:
    """Create the next DRAFT version of the base's scenario with a copy of its lines.

    Lines get fresh ids and keep every scalar field; parent links are reset
    to root. Version and line copies are committed as one transaction.

    Raises:
        NotFoundError: Base version missing, in another project, or archived.
        ConflictError: version_no allocation kept colliding.
    """
    base = get_scoped(ScenarioVersion, base_version_id, project_id=project_id)
    if base.is_archived:
        raise NotFoundError(resource="ScenarioVersion", resource_id=base_version_id)

    scenario = base.scenario
    base_id = base.id
    clean_name = (name or "").strip()
    copied = {"lines": 0}

    def populate(version_no):
        version = ScenarioVersion(
            project_id=project_id,
            scenario=scenario,
            version_no=version_no,
            status=VERSION_STATUS_DRAFT,
            name=clean_name or f"{scenario} v{version_no}",
            notes=notes,
            derived_from_version_id=base_id,
            created_by_user_id=user_id,
        )
        db.session.add(version)
        db.session.flush()

        source_lines = db.session.execute(
            select(BoqLine).where(BoqLine.version_id == base_id)
        ).scalars().all()
        for src in source_lines:
            clone = BoqLine(
                project_id=project_id,
                version_id=version.id,
                parent_line_id=None,
            )
            for field in BoqLine.COPY_FIELDS:
                value = getattr(src, field)
                setattr(clone, field, dict(value) if field == "wbs" and value else value)
            db.session.add(clone)
        copied["lines"] = len(source_lines)
        return version

    version = _insert_with_next_no(project_id, scenario, populate)
    logger.info(
        "ScenarioVersion cloned id=%s from=%s project_id=%s version_no=%s lines=%s",
        version.id, base_id, project_id, version.version_no, copied["lines"],
    )
    pointer = _get_active_pointer(project_id, scenario)
    return _serialize(version, pointer.version_id if pointer else None)


def freeze_version(project_id: int, version_id: str, user_id: str | None = None) -> dict:
    """Lock a version so its lines become immutable.

    Freezing an already LOCKED version is a no-op that keeps the original
    lock stamps.

    Raises:
        NotFoundError: Version missing or in another project.
        ValidationError: The version owns no lines.
    """
    version = get_scoped(ScenarioVersion, version_id, project_id=project_id, for_update=True)
    if version.is_locked:
        return version.to_dict()

    if _line_count(version.id) == 0:
        raise ValidationError("cannot freeze an empty version")

    try:
        version.status = VERSION_STATUS_LOCKED
        version.locked_at = _utcnow()
        version.locked_by_user_id = user_id
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("ScenarioVersion frozen id=%s project_id=%s by=%s", version_id, project_id, user_id)
    return version.to_dict()


def set_archived(
    project_id: int,
    version_id: str,
    archived: bool,
    user_id: str | None = None,
) -> dict:
    """Archive or restore a version. archived_at and archived_by_user_id move together.

    Raises:
        NotFoundError: Version missing or in another project.
        ValidationError: Archiving the version that is currently active.
    """
    version = get_scoped(ScenarioVersion, version_id, project_id=project_id)

    if archived:
        pointer = _get_active_pointer(project_id, version.scenario)
        if pointer is not None and pointer.version_id == version.id:
            raise ValidationError(
                "cannot archive the active version; set another version active first",
                details={"version_id": version.id},
            )
        if version.is_archived:
            return version.to_dict()
        version.archived_at = _utcnow()
        version.archived_by_user_id = user_id
    else:
        if not version.is_archived:
            return version.to_dict()
        version.archived_at = None
        version.archived_by_user_id = None

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "ScenarioVersion %s id=%s project_id=%s by=%s",
        "archived" if archived else "restored", version_id, project_id, user_id,
    )
    return version.to_dict()


def set_active_version(project_id: int, version_id: str) -> dict:
    """Point the (project, scenario-of-version) baseline at this version.

    Raises:
        NotFoundError: Version missing, in another project, or archived.
    """
    version = get_scoped(ScenarioVersion, version_id, project_id=project_id)
    if version.is_archived:
        raise NotFoundError(resource="ScenarioVersion", resource_id=version_id)

    try:
        pointer = _get_active_pointer(project_id, version.scenario)
        if pointer is None:
            pointer = ScenarioActiveVersion(project_id=project_id, scenario=version.scenario)
            db.session.add(pointer)
        pointer.version_id = version.id
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Active version set project_id=%s scenario=%s version_id=%s",
        project_id, version.scenario, version.id,
    )
    return pointer.to_dict()
