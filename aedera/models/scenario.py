"""
Aedera Scenario Platform
Scenario versioning & bill-of-quantities models.

Models:
    - ScenarioVersion: numbered snapshot of one scenario track (tender, cost, ...)
    - ScenarioActiveVersion: per (project, scenario) pointer to the baseline version
    - BoqLine: bill-of-quantities row, organised as a tree inside one version

Chain: Project → ScenarioVersion → BoqLine (→ BoqLine parent)
"""

import uuid
from datetime import datetime, timezone

from aedera.models import db


# ── Constants ────────────────────────────────────────────────────────────────

SCENARIO_TYPES = ("TENDER", "OPERATIONAL", "COST", "FORECAST")
SCENARIO_ALIASES = {
    "GARA": "TENDER",
    "OPERATIVO": "OPERATIONAL",
    "COSTI": "COST",
}

VERSION_STATUS_DRAFT = "DRAFT"
VERSION_STATUS_LOCKED = "LOCKED"
VERSION_STATUSES = {VERSION_STATUS_DRAFT, VERSION_STATUS_LOCKED}

ROW_TYPE_LINE = "LINE"
ROW_TYPE_GROUP = "GROUP"
ROW_TYPES = {ROW_TYPE_LINE, ROW_TYPE_GROUP}

QTY_SOURCES = {"MANUAL", "MODEL", "MODEL_PLUS_MARGIN", "IMPORT"}

LINE_ID_MAX_LENGTH = 64
SORT_INDEX_MAX = 2_147_483_647


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class ScenarioVersion(db.Model):
    """
    One numbered version of a project's scenario track.

    Lifecycle: DRAFT → LOCKED (freeze). Archiving is an orthogonal flag
    carried by archived_at/archived_by_user_id and never deletes the row.
    version_no is allocated as max+1 per (project, scenario) and the
    unique constraint is the backstop for concurrent allocations.
    """

    __tablename__ = "scenario_versions"
    __table_args__ = (
        db.UniqueConstraint(
            "project_id", "scenario", "version_no",
            name="uq_scenario_versions_project_scenario_no",
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    scenario = db.Column(
        db.String(20), nullable=False,
        comment="TENDER | OPERATIONAL | COST | FORECAST",
    )
    version_no = db.Column(db.Integer, nullable=False)
    status = db.Column(
        db.String(10), nullable=False, default=VERSION_STATUS_DRAFT,
        comment="DRAFT | LOCKED",
    )
    name = db.Column(db.String(200), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    derived_from_version_id = db.Column(
        db.String(36),
        db.ForeignKey("scenario_versions.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_by_user_id = db.Column(db.String(64), nullable=True)
    locked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    locked_by_user_id = db.Column(db.String(64), nullable=True)
    archived_at = db.Column(db.DateTime(timezone=True), nullable=True)
    archived_by_user_id = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    lines = db.relationship(
        "BoqLine", backref="version", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    @property
    def is_locked(self):
        return self.status == VERSION_STATUS_LOCKED

    @property
    def is_archived(self):
        return self.archived_at is not None

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "scenario": self.scenario,
            "version_no": self.version_no,
            "status": self.status,
            "name": self.name,
            "notes": self.notes,
            "derived_from_version_id": self.derived_from_version_id,
            "created_by_user_id": self.created_by_user_id,
            "locked_at": _iso(self.locked_at),
            "locked_by_user_id": self.locked_by_user_id,
            "archived_at": _iso(self.archived_at),
            "archived_by_user_id": self.archived_by_user_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<ScenarioVersion {self.scenario} v{self.version_no} ({self.status})>"


class ScenarioActiveVersion(db.Model):
    """Baseline pointer: exactly one row per (project, scenario)."""

    __tablename__ = "scenario_active_versions"
    __table_args__ = (
        db.UniqueConstraint("project_id", "scenario", name="uq_scenario_active_project_scenario"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    scenario = db.Column(db.String(20), nullable=False)
    version_id = db.Column(
        db.String(36),
        db.ForeignKey("scenario_versions.id", ondelete="CASCADE"),
        nullable=False,
    )
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    def to_dict(self):
        return {
            "project_id": self.project_id,
            "scenario": self.scenario,
            "version_id": self.version_id,
            "updated_at": _iso(self.updated_at),
        }


class BoqLine(db.Model):
    """
    Bill-of-quantities row inside a scenario version.

    LINE rows are priced leaves; GROUP rows are headers whose quantities
    are forced to zero. parent_line_id links rows of the same version
    into a tree. amount is always qty * unit_price as computed server-side.
    """

    __tablename__ = "boq_lines"
    __table_args__ = (
        db.UniqueConstraint("version_id", "client_key", name="uq_boq_lines_version_client_key"),
        db.Index("ix_boq_lines_version_sort", "version_id", "sort_index"),
    )

    id = db.Column(db.String(LINE_ID_MAX_LENGTH), primary_key=True, default=_uuid)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    version_id = db.Column(
        db.String(36),
        db.ForeignKey("scenario_versions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    parent_line_id = db.Column(
        db.String(LINE_ID_MAX_LENGTH),
        db.ForeignKey("boq_lines.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    client_key = db.Column(
        db.String(100), nullable=True,
        comment="Client idempotency key; retried batches update instead of duplicating",
    )

    # Classification
    wbs = db.Column(db.JSON, nullable=False, default=dict)
    wbs_key = db.Column(db.String(500), nullable=False, default="")
    tariff_code = db.Column(db.String(100), nullable=False, default="")
    description = db.Column(db.Text, nullable=True)
    unit_of_measure = db.Column(db.String(30), nullable=True)

    # Pricing
    qty = db.Column(db.Float, nullable=False, default=0.0)
    unit_price = db.Column(db.Float, nullable=False, default=0.0)
    amount = db.Column(db.Float, nullable=False, default=0.0)

    row_type = db.Column(db.String(10), nullable=False, default=ROW_TYPE_LINE, comment="LINE | GROUP")
    sort_index = db.Column(db.Integer, nullable=False, default=0)

    qty_model_suggested = db.Column(db.Float, nullable=True)
    qty_source = db.Column(
        db.String(30), nullable=False, default="MANUAL",
        comment="MANUAL | MODEL | MODEL_PLUS_MARGIN | IMPORT",
    )
    margin_pct = db.Column(db.Float, nullable=True)
    package_code = db.Column(db.String(100), nullable=True)
    material_code = db.Column(db.String(100), nullable=True)
    supplier_id = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    # Scalar columns copied verbatim when a version is cloned.
    COPY_FIELDS = (
        "wbs", "wbs_key", "tariff_code", "description", "unit_of_measure",
        "qty", "unit_price", "amount", "row_type", "sort_index",
        "qty_model_suggested", "qty_source", "margin_pct",
        "package_code", "material_code", "supplier_id",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "version_id": self.version_id,
            "parent_line_id": self.parent_line_id,
            "client_key": self.client_key,
            "wbs": dict(self.wbs or {}),
            "wbs_key": self.wbs_key,
            "tariff_code": self.tariff_code,
            "description": self.description,
            "unit_of_measure": self.unit_of_measure,
            "qty": self.qty,
            "unit_price": self.unit_price,
            "amount": self.amount,
            "row_type": self.row_type,
            "sort_index": self.sort_index,
            "qty_model_suggested": self.qty_model_suggested,
            "qty_source": self.qty_source,
            "margin_pct": self.margin_pct,
            "package_code": self.package_code,
            "material_code": self.material_code,
            "supplier_id": self.supplier_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<BoqLine {self.id} {self.row_type} {self.tariff_code!r}>"
