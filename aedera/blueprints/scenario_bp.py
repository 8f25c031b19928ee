"""
Scenario versions & BOQ lines

Blueprint: scenario_bp
Prefix: /api/v1

Endpoints:
  Scenario versions:
    GET/POST  /projects/<pid>/scenarios/<scenario>/versions         -- List/create versions
    GET       /projects/<pid>/scenario-versions/<vid>               -- Single version
    POST      /projects/<pid>/scenario-versions/<vid>/clone         -- Next version with copied lines
    POST      /projects/<pid>/scenario-versions/<vid>/freeze        -- Lock (DRAFT → LOCKED)
    POST      /projects/<pid>/scenario-versions/<vid>/archive       -- Archive / restore
    POST      /projects/<pid>/scenario-versions/<vid>/activate      -- Set baseline version

  BOQ lines:
    GET       /projects/<pid>/scenario-versions/<vid>/lines              -- Ordered lines
    POST      /projects/<pid>/scenario-versions/<vid>/lines/bulk-upsert  -- Reconcile a batch
    DELETE    /projects/<pid>/boq-lines/<line_id>                        -- Delete + reparent children

Authentication and project-role checks run before these routes; the
service layer still re-validates version state (locked / archived).
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from aedera.blueprints import register_error_handlers
from aedera.services import boq_line_service, scenario_version_service
from aedera.utils.errors import E, api_error

logger = logging.getLogger(__name__)

scenario_bp = Blueprint("scenario", __name__, url_prefix="/api/v1")
register_error_handlers(scenario_bp)


def _actor() -> str:
    """Extract actor identifier from request headers for audit purposes."""
    return request.headers.get("X-User", "system")


def _flag(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in ("1", "true", "yes", "all")


# ------------------------------------------------------------------
#  Scenario versions
# ------------------------------------------------------------------

@scenario_bp.route("/projects/<int:project_id>/scenarios/<scenario>/versions", methods=["GET"])
def list_versions_route(project_id, scenario):
    """List versions of a scenario with the active pointer."""
    include_archived = _flag(request.args.get("include_archived"))
    result = scenario_version_service.list_versions(project_id, scenario, include_archived)
    return jsonify(result), 200


@scenario_bp.route("/projects/<int:project_id>/scenarios/<scenario>/versions", methods=["POST"])
def create_version_route(project_id, scenario):
    """Create the next DRAFT version of a scenario."""
    data = request.get_json(silent=True) or {}
    version = scenario_version_service.create_version(
        project_id,
        scenario,
        name=data.get("name"),
        notes=data.get("notes"),
        user_id=_actor(),
    )
    return jsonify(version), 201


@scenario_bp.route("/projects/<int:project_id>/scenario-versions/<version_id>", methods=["GET"])
def get_version_route(project_id, version_id):
    return jsonify(scenario_version_service.get_version(project_id, version_id)), 200


@scenario_bp.route(
    "/projects/<int:project_id>/scenario-versions/<version_id>/clone", methods=["POST"]
)
def clone_version_route(project_id, version_id):
    """Clone a version (lines copied, hierarchy reset) into the next version number."""
    data = request.get_json(silent=True) or {}
    version = scenario_version_service.clone_version(
        project_id,
        version_id,
        name=data.get("name"),
        notes=data.get("notes"),
        user_id=_actor(),
    )
    return jsonify(version), 201


@scenario_bp.route(
    "/projects/<int:project_id>/scenario-versions/<version_id>/freeze", methods=["POST"]
)
def freeze_version_route(project_id, version_id):
    version = scenario_version_service.freeze_version(project_id, version_id, user_id=_actor())
    return jsonify(version), 200


@scenario_bp.route(
    "/projects/<int:project_id>/scenario-versions/<version_id>/archive", methods=["POST"]
)
def archive_version_route(project_id, version_id):
    """Archive (archived=true, default) or restore (archived=false) a version."""
    data = request.get_json(silent=True) or {}
    archived = data.get("archived", True)
    if not isinstance(archived, bool):
        return api_error(E.VALIDATION_INVALID, "archived must be a boolean")
    version = scenario_version_service.set_archived(
        project_id, version_id, archived, user_id=_actor(),
    )
    return jsonify(version), 200


@scenario_bp.route(
    "/projects/<int:project_id>/scenario-versions/<version_id>/activate", methods=["POST"]
)
def activate_version_route(project_id, version_id):
    pointer = scenario_version_service.set_active_version(project_id, version_id)
    return jsonify(pointer), 200


# ------------------------------------------------------------------
#  BOQ lines
# ------------------------------------------------------------------

@scenario_bp.route(
    "/projects/<int:project_id>/scenario-versions/<version_id>/lines", methods=["GET"]
)
def list_lines_route(project_id, version_id):
    lines = boq_line_service.list_lines(project_id, version_id)
    return jsonify({"lines": lines, "total": len(lines)}), 200


@scenario_bp.route(
    "/projects/<int:project_id>/scenario-versions/<version_id>/lines/bulk-upsert",
    methods=["POST"],
)
def bulk_upsert_lines_route(project_id, version_id):
    """Reconcile a batch of grid rows (new, temporary-id and existing) in one transaction.

    Body: {"items": [{id?, parent_line_id?, row_type, wbs, tariff_code, qty, unit_price, ...}]}
    Returns: {"created": n, "updated": m}
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_REQUIRED, "JSON object body is required")
    items = data.get("items")
    if not isinstance(items, list):
        return api_error(E.VALIDATION_REQUIRED, "items must be a list")
    max_items = current_app.config.get("BOQ_BULK_MAX_ITEMS", 5000)
    if len(items) > max_items:
        return api_error(
            E.VALIDATION_INVALID,
            f"batch too large: {len(items)} items (max {max_items})",
        )

    result = boq_line_service.bulk_upsert_lines(project_id, version_id, items)
    return jsonify(result), 200


@scenario_bp.route("/projects/<int:project_id>/boq-lines/<line_id>", methods=["DELETE"])
def delete_line_route(project_id, line_id):
    result = boq_line_service.delete_line(project_id, line_id)
    return jsonify(result), 200
