"""
WBS level settings

Blueprint: wbs_bp
Prefix: /api/v1

Endpoints:
    GET  /projects/<pid>/wbs-levels   -- Ordered level settings
    PUT  /projects/<pid>/wbs-levels   -- Bulk upsert {items: [{level_key, enabled?, required?, sort_index?}]}
"""

import logging

from flask import Blueprint, jsonify, request

from aedera.blueprints import register_error_handlers
from aedera.services import wbs_settings_service
from aedera.utils.errors import E, api_error

logger = logging.getLogger(__name__)

wbs_bp = Blueprint("wbs", __name__, url_prefix="/api/v1")
register_error_handlers(wbs_bp)


@wbs_bp.route("/projects/<int:project_id>/wbs-levels", methods=["GET"])
def list_levels_route(project_id):
    levels = wbs_settings_service.list_levels(project_id)
    return jsonify({"levels": levels}), 200


@wbs_bp.route("/projects/<int:project_id>/wbs-levels", methods=["PUT"])
def upsert_levels_route(project_id):
    data = request.get_json(silent=True) or {}
    items = data.get("items")
    if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
        return api_error(E.VALIDATION_REQUIRED, "items must be a list of objects")
    return jsonify(wbs_settings_service.bulk_upsert_levels(project_id, items)), 200
