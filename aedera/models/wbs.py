"""
WBS level settings: per-project classification levels.

A project configures an ordered list of levels (e.g. LOTTO, OPERA, CAPITOLO).
BOQ lines consult only the levels that are both enabled and required, in
sort order, when building their composite WBS key.
"""

from datetime import datetime, timezone

from aedera.models import db


class WbsLevelSetting(db.Model):
    """One classification level of a project's work breakdown structure."""

    __tablename__ = "wbs_level_settings"
    __table_args__ = (
        db.UniqueConstraint("project_id", "level_key", name="uq_wbs_level_project_key"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    level_key = db.Column(db.String(50), nullable=False)
    enabled = db.Column(db.Boolean, nullable=False, default=True)
    required = db.Column(db.Boolean, nullable=False, default=False)
    sort_index = db.Column(db.Integer, nullable=False, default=0)
    ifc_param_key = db.Column(
        db.String(200), nullable=True,
        comment="IFC property that feeds this level when classifying model elements",
    )

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "level_key": self.level_key,
            "enabled": self.enabled,
            "required": self.required,
            "sort_index": self.sort_index,
            "ifc_param_key": self.ifc_param_key,
        }

    def __repr__(self):
        return f"<WbsLevelSetting {self.project_id}:{self.level_key}>"
