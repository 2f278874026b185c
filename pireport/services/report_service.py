"""
Report Service

Loads snapshots and the classification cache from the database, resolves
the governance policy and display layout, and runs the pure report
pipeline.

Usage:
    from pireport.services.report_service import build_iteration_report
    report = build_iteration_report(15, 3, config=current_app.config, show_all=False)
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from pireport.core.exceptions import NotFoundError, PreconditionError, ValidationError
from pireport.models import db
from pireport.models.report_layout import ReportLayout
from pireport.services.classification_service import read_classification
from pireport.services.governance_filter import GovernancePolicy
from pireport.services.report_pipeline import IterationReport, ReportOptions, run_report_pipeline
from pireport.services.report_structure import GROUPABLE_FIELDS, parse_field_policies
from pireport.services.snapshot_store import get_previous_snapshot, get_snapshot

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Layouts
# ═════════════════════════════════════════════════════════════════════════════

def get_layout_by_name(name: str) -> ReportLayout:
    layout = ReportLayout.query.filter_by(name=name).first()
    if layout is None:
        raise NotFoundError("ReportLayout", name)
    return layout


def _validate_layout_payload(data: Mapping[str, Any], *, partial: bool) -> dict:
    clean: dict[str, Any] = {}
    if "name" in data or not partial:
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValidationError("name is required")
        clean["name"] = name
    if "description" in data:
        clean["description"] = str(data.get("description") or "")
    if "group_by" in data:
        group_by = data.get("group_by") or "portfolio"
        if group_by not in GROUPABLE_FIELDS:
            raise ValidationError(
                f"Cannot group by {group_by!r}", details={"allowed": list(GROUPABLE_FIELDS)},
            )
        clean["group_by"] = group_by
    if "field_policies" in data:
        policies = parse_field_policies(data.get("field_policies"))
        clean["field_policies"] = {name: p.to_dict() for name, p in policies.items()}
    if "governance" in data:
        governance = data.get("governance") or {}
        if not isinstance(governance, Mapping):
            raise ValidationError("governance must be an object")
        allowed = ("excluded_categories", "exclusion_bypass_prefixes", "show_all_portfolios")
        unknown = sorted(set(governance) - set(allowed))
        if unknown:
            raise ValidationError("Unknown governance keys", details={"unknown": unknown})
        clean["governance"] = dict(governance)
    return clean


def create_layout(data: Mapping[str, Any]) -> ReportLayout:
    clean = _validate_layout_payload(data, partial=False)
    layout = ReportLayout(name=clean.pop("name"))
    for attr, value in clean.items():
        setattr(layout, attr, value)
    db.session.add(layout)
    db.session.flush()
    logger.info("Created report layout %s", layout.name)
    return layout


def update_layout(layout: ReportLayout, data: Mapping[str, Any]) -> ReportLayout:
    for attr, value in _validate_layout_payload(data, partial=True).items():
        setattr(layout, attr, value)
    db.session.flush()
    return layout


# ═════════════════════════════════════════════════════════════════════════════
# Report
# ═════════════════════════════════════════════════════════════════════════════

def build_iteration_report(
    pi_number: int,
    iteration: int,
    *,
    config: Mapping[str, Any],
    show_all: bool = False,
    include_at_risk: bool = True,
    group_by: str | None = None,
    layout_name: str | None = None,
) -> IterationReport:
    """Run the pipeline for one iteration.

    Raises:
        PreconditionError: missing snapshot, or missing classification
            cache for a non-baseline iteration.
        NotFoundError: ``layout_name`` does not exist.
    """
    baseline_iteration = int(config.get("BASELINE_ITERATION", 1))
    layout = get_layout_by_name(layout_name) if layout_name else None

    policy = GovernancePolicy.from_config(config, layout.governance if layout else None)
    field_policies = parse_field_policies(layout.field_policies) if layout else {}
    options = ReportOptions(
        show_all=show_all,
        include_at_risk=include_at_risk,
        group_by=group_by or (layout.group_by if layout else "portfolio"),
        field_policies=field_policies,
        baseline_iteration=baseline_iteration,
    )

    current = get_snapshot(pi_number, iteration)
    records = read_classification(pi_number, iteration)
    if iteration > baseline_iteration and not records:
        raise PreconditionError(
            resource=f"Classification PI {pi_number} / Iteration {iteration}",
            remediation=f"Run classify for iteration {iteration} first.",
        )
    previous = get_previous_snapshot(pi_number, iteration, baseline_iteration=baseline_iteration)

    return run_report_pipeline(current, previous, records, options, policy)
