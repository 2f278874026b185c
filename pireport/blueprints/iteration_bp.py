"""Iteration blueprint - snapshots, classification and reports.

Endpoint groups:
  Iterations       GET  /api/v1/pi/<pi>/iterations
  Snapshot         PUT  /api/v1/pi/<pi>/iterations/<n>/snapshot
                   GET  /api/v1/pi/<pi>/iterations/<n>/snapshot
  Close            POST /api/v1/pi/<pi>/iterations/<n>/close
  Classification   POST /api/v1/pi/<pi>/iterations/<n>/classify
                   GET  /api/v1/pi/<pi>/iterations/<n>/classification
  Report           GET  /api/v1/pi/<pi>/iterations/<n>/report
                        ?show_all=&include_at_risk=&group_by=&layout=

Services flush; this blueprint commits.
"""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from pireport.blueprints import register_error_handlers
from pireport.core.exceptions import NotFoundError
from pireport.services import snapshot_store
from pireport.services.classification_service import classify_iteration, read_classification
from pireport.services.report_service import build_iteration_report
from pireport.utils.errors import E, api_error
from pireport.utils.helpers import db_commit_or_error, parse_bool_arg

logger = logging.getLogger(__name__)

iteration_bp = Blueprint("iteration", __name__, url_prefix="/api/v1/pi")
register_error_handlers(iteration_bp)

_ITERATION_URL = "/<int:pi_number>/iterations/<int:iteration>"


@iteration_bp.route("/<int:pi_number>/iterations", methods=["GET"])
def list_iterations(pi_number):
    headers = snapshot_store.list_iterations(pi_number)
    return jsonify({"pi_number": pi_number, "iterations": [h.to_dict() for h in headers]}), 200


# ═════════════════════════════════════════════════════════════════════════
# Snapshot
# ═════════════════════════════════════════════════════════════════════════


@iteration_bp.route(f"{_ITERATION_URL}/snapshot", methods=["PUT"])
def put_snapshot(pi_number, iteration):
    """Ingest the tracker export for one iteration.

    Body: {"items": [{"Key": ..., "Issue Type": ..., ...}, ...]}
          or the bare list of rows.
    Returns: snapshot header (201 on first ingest, 200 on replace).
    """
    data = request.get_json(silent=True)
    rows = data.get("items") if isinstance(data, dict) else data
    if not isinstance(rows, list):
        return api_error(E.VALIDATION_REQUIRED, "items must be a list of records")
    if not all(isinstance(r, dict) for r in rows):
        return api_error(E.VALIDATION_INVALID, "every record must be an object")

    existed = snapshot_store.get_snapshot_header(pi_number, iteration) is not None
    header = snapshot_store.save_snapshot(pi_number, iteration, rows)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(header.to_dict()), 200 if existed else 201


@iteration_bp.route(f"{_ITERATION_URL}/snapshot", methods=["GET"])
def get_snapshot(pi_number, iteration):
    header = snapshot_store.get_snapshot_header(pi_number, iteration)
    if header is None:
        raise NotFoundError("Snapshot", f"PI {pi_number} / Iteration {iteration}")
    body = header.to_dict()
    body["items"] = [row.to_dict() for row in header.items]
    return jsonify(body), 200


@iteration_bp.route(f"{_ITERATION_URL}/close", methods=["POST"])
def close_iteration(pi_number, iteration):
    """Make the iteration's snapshot read-only."""
    header = snapshot_store.close_iteration(pi_number, iteration)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(header.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════
# Classification
# ═════════════════════════════════════════════════════════════════════════


@iteration_bp.route(f"{_ITERATION_URL}/classify", methods=["POST"])
def classify(pi_number, iteration):
    """Recompute the classification cache of one iteration."""
    result = classify_iteration(
        pi_number, iteration,
        baseline_iteration=current_app.config.get("BASELINE_ITERATION", 1),
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(result.to_dict()), 200


@iteration_bp.route(f"{_ITERATION_URL}/classification", methods=["GET"])
def get_classification(pi_number, iteration):
    records = read_classification(pi_number, iteration)
    if not records:
        raise NotFoundError("Classification", f"PI {pi_number} / Iteration {iteration}")
    badge = request.args.get("badge")
    items = [r.to_dict() for r in records.values() if not badge or r.badge.value == badge.upper()]
    return jsonify({
        "pi_number": pi_number,
        "iteration": iteration,
        "total": len(items),
        "items": items,
    }), 200


# ═════════════════════════════════════════════════════════════════════════
# Report
# ═════════════════════════════════════════════════════════════════════════


@iteration_bp.route(f"{_ITERATION_URL}/report", methods=["GET"])
def get_report(pi_number, iteration):
    """Build the grouped change report.

    Query params:
        show_all         - skip changes-only filtering and orphan pruning
        include_at_risk  - keep at-risk items without other changes (default true)
        group_by         - portfolio | commitment | value_stream | risk_rating | category
        layout           - name of a saved report layout
    """
    try:
        show_all = parse_bool_arg("show_all", False)
        include_at_risk = parse_bool_arg("include_at_risk", True)
    except ValueError as exc:
        return api_error(E.VALIDATION_INVALID, str(exc))

    report = build_iteration_report(
        pi_number,
        iteration,
        config=current_app.config,
        show_all=show_all,
        include_at_risk=include_at_risk,
        group_by=request.args.get("group_by") or None,
        layout_name=request.args.get("layout") or None,
    )
    return jsonify(report.to_dict()), 200
