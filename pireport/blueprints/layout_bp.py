"""Report layout blueprint - saved grouping / display policies.

Endpoints:
  GET    /api/v1/report-layouts
  POST   /api/v1/report-layouts
  GET    /api/v1/report-layouts/<id>
  PUT    /api/v1/report-layouts/<id>
  DELETE /api/v1/report-layouts/<id>
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from pireport.blueprints import paginate_query, register_error_handlers
from pireport.models import db
from pireport.models.report_layout import ReportLayout
from pireport.services import report_service
from pireport.utils.errors import E, api_error
from pireport.utils.helpers import db_commit_or_error, get_or_404

logger = logging.getLogger(__name__)

layout_bp = Blueprint("layout", __name__, url_prefix="/api/v1/report-layouts")
register_error_handlers(layout_bp)


@layout_bp.route("", methods=["GET"])
def list_layouts():
    items, total = paginate_query(ReportLayout.query.order_by(ReportLayout.name))
    return jsonify({"items": [layout.to_dict() for layout in items], "total": total}), 200


@layout_bp.route("", methods=["POST"])
def create_layout():
    """Body: {name, description?, group_by?, field_policies?, governance?}"""
    data = request.get_json(silent=True) or {}
    name = (data.get("name") or "").strip()
    if not name:
        return api_error(E.VALIDATION_REQUIRED, "name is required")
    if ReportLayout.query.filter_by(name=name).first():
        return api_error(E.CONFLICT_DUPLICATE, f"Layout {name!r} already exists")

    layout = report_service.create_layout(data)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(layout.to_dict()), 201


@layout_bp.route("/<int:layout_id>", methods=["GET"])
def get_layout(layout_id):
    layout, err = get_or_404(ReportLayout, layout_id)
    if err:
        return err
    return jsonify(layout.to_dict()), 200


@layout_bp.route("/<int:layout_id>", methods=["PUT"])
def update_layout(layout_id):
    layout, err = get_or_404(ReportLayout, layout_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    new_name = (data.get("name") or "").strip()
    if new_name and new_name != layout.name and ReportLayout.query.filter_by(name=new_name).first():
        return api_error(E.CONFLICT_DUPLICATE, f"Layout {new_name!r} already exists")

    report_service.update_layout(layout, data)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(layout.to_dict()), 200


@layout_bp.route("/<int:layout_id>", methods=["DELETE"])
def delete_layout(layout_id):
    layout, err = get_or_404(ReportLayout, layout_id)
    if err:
        return err
    db.session.delete(layout)
    err = db_commit_or_error()
    if err:
        return err
    logger.info("Deleted report layout %s", layout_id)
    return jsonify({"message": "Layout deleted"}), 200
