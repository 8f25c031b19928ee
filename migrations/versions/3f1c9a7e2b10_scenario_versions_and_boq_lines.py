"""scenario_versions_and_boq_lines

Create projects, wbs_level_settings, scenario_versions,
scenario_active_versions and boq_lines.

Revision ID: 3f1c9a7e2b10
Revises:
Create Date: 2026-10-18 09:30:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "3f1c9a7e2b10"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("code", sa.String(length=50), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("code"),
        )

    if "wbs_level_settings" not in existing_tables:
        op.create_table(
            "wbs_level_settings",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("level_key", sa.String(length=50), nullable=False),
            sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("required", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("sort_index", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("ifc_param_key", sa.String(length=200), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "level_key", name="uq_wbs_level_project_key"),
        )
        op.create_index(
            "ix_wbs_level_settings_project_id", "wbs_level_settings", ["project_id"],
        )

    if "scenario_versions" not in existing_tables:
        op.create_table(
            "scenario_versions",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("scenario", sa.String(length=20), nullable=False),
            sa.Column("version_no", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=10), nullable=False, server_default="DRAFT"),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("derived_from_version_id", sa.String(length=36), nullable=True),
            sa.Column("created_by_user_id", sa.String(length=64), nullable=True),
            sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("locked_by_user_id", sa.String(length=64), nullable=True),
            sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("archived_by_user_id", sa.String(length=64), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(
                ["derived_from_version_id"], ["scenario_versions.id"], ondelete="SET NULL",
            ),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint(
                "project_id", "scenario", "version_no",
                name="uq_scenario_versions_project_scenario_no",
            ),
        )
        op.create_index(
            "ix_scenario_versions_project_id", "scenario_versions", ["project_id"],
        )

    if "scenario_active_versions" not in existing_tables:
        op.create_table(
            "scenario_active_versions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("scenario", sa.String(length=20), nullable=False),
            sa.Column("version_id", sa.String(length=36), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["version_id"], ["scenario_versions.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint(
                "project_id", "scenario", name="uq_scenario_active_project_scenario",
            ),
        )
        op.create_index(
            "ix_scenario_active_versions_project_id", "scenario_active_versions", ["project_id"],
        )

    if "boq_lines" not in existing_tables:
        op.create_table(
            "boq_lines",
            sa.Column("id", sa.String(length=64), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("version_id", sa.String(length=36), nullable=False),
            sa.Column("parent_line_id", sa.String(length=64), nullable=True),
            sa.Column("client_key", sa.String(length=100), nullable=True),
            sa.Column("wbs", sa.JSON(), nullable=False),
            sa.Column("wbs_key", sa.String(length=500), nullable=False, server_default=""),
            sa.Column("tariff_code", sa.String(length=100), nullable=False, server_default=""),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("unit_of_measure", sa.String(length=30), nullable=True),
            sa.Column("qty", sa.Float(), nullable=False, server_default="0"),
            sa.Column("unit_price", sa.Float(), nullable=False, server_default="0"),
            sa.Column("amount", sa.Float(), nullable=False, server_default="0"),
            sa.Column("row_type", sa.String(length=10), nullable=False, server_default="LINE"),
            sa.Column("sort_index", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("qty_model_suggested", sa.Float(), nullable=True),
            sa.Column("qty_source", sa.String(length=30), nullable=False, server_default="MANUAL"),
            sa.Column("margin_pct", sa.Float(), nullable=True),
            sa.Column("package_code", sa.String(length=100), nullable=True),
            sa.Column("material_code", sa.String(length=100), nullable=True),
            sa.Column("supplier_id", sa.String(length=64), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["version_id"], ["scenario_versions.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["parent_line_id"], ["boq_lines.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("version_id", "client_key", name="uq_boq_lines_version_client_key"),
        )
        op.create_index("ix_boq_lines_project_id", "boq_lines", ["project_id"])
        op.create_index("ix_boq_lines_version_id", "boq_lines", ["version_id"])
        op.create_index("ix_boq_lines_parent_line_id", "boq_lines", ["parent_line_id"])
        op.create_index("ix_boq_lines_version_sort", "boq_lines", ["version_id", "sort_index"])


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "boq_lines" in existing_tables:
        op.drop_index("ix_boq_lines_version_sort", table_name="boq_lines")
        op.drop_index("ix_boq_lines_parent_line_id", table_name="boq_lines")
        op.drop_index("ix_boq_lines_version_id", table_name="boq_lines")
        op.drop_index("ix_boq_lines_project_id", table_name="boq_lines")
        op.drop_table("boq_lines")

    if "scenario_active_versions" in existing_tables:
        op.drop_index("ix_scenario_active_versions_project_id", table_name="scenario_active_versions")
        op.drop_table("scenario_active_versions")

    if "scenario_versions" in existing_tables:
        op.drop_index("ix_scenario_versions_project_id", table_name="scenario_versions")
        op.drop_table("scenario_versions")

    if "wbs_level_settings" in existing_tables:
        op.drop_index("ix_wbs_level_settings_project_id", table_name="wbs_level_settings")
        op.drop_table("wbs_level_settings")

    if "projects" in existing_tables:
        op.drop_table("projects")
