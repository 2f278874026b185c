"""
Iteration Report Pipeline

Runs the classification-and-visibility stages in order over in-memory
snapshots and a classification cache:

    drop unparented dependencies
    -> governance filter
    -> set aside duplicates + show-all portfolio items
    -> changes-only filter          (skipped at baseline / show_all)
    -> dependency visibility
    -> orphan pruning               (skipped at baseline / show_all)
    -> bypass re-inclusion
    -> change details
    -> field policies + grouping

Pure: no database access, no app context. A run either returns a complete
report or raises.

Usage:
    from pireport.services.report_pipeline import ReportOptions, run_report_pipeline
    report = run_report_pipeline(current, previous, records, ReportOptions(), policy)
    report.to_dict()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Mapping

from pireport.core.exceptions import PreconditionError
from pireport.services.badge_classifier import BASELINE_NOTE, badge_distribution
from pireport.services.bypass_reinclusion import reinclude_bypass
from pireport.services.change_detail import build_change_detail
from pireport.services.changes_filter import apply_changes_only_filter
from pireport.services.dependency_visibility import resolve_dependency_visibility
from pireport.services.governance_filter import (
    GovernancePolicy,
    apply_governance_filter,
    separate_bypass,
)
from pireport.services.orphan_pruner import prune_orphans
from pireport.services.report_structure import (
    FieldPolicy,
    ReportDependency,
    ReportGroup,
    ReportItem,
    apply_field_policies,
    group_items,
)
from pireport.services.report_types import (
    Badge,
    ClassificationRecord,
    Snapshot,
    TrackedItem,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReportOptions:
    """Caller switches for one report run."""
    show_all: bool = False
    include_at_risk: bool = True
    group_by: str = "portfolio"
    field_policies: Mapping[str, FieldPolicy] = field(default_factory=dict)
    baseline_iteration: int = 1


@dataclass
class ReportSummary:
    total_items: int = 0
    total_dependencies: int = 0
    group_count: int = 0
    items_with_dependencies: int = 0
    dropped_dependencies: int = 0
    hidden_dependencies: int = 0
    pruned_items: int = 0
    bypass_items: int = 0
    badge_distribution: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "total_items": self.total_items,
            "total_dependencies": self.total_dependencies,
            "group_count": self.group_count,
            "items_with_dependencies": self.items_with_dependencies,
            "dropped_dependencies": self.dropped_dependencies,
            "hidden_dependencies": self.hidden_dependencies,
            "pruned_items": self.pruned_items,
            "bypass_items": self.bypass_items,
            "badge_distribution": dict(self.badge_distribution),
        }


@dataclass
class IterationReport:
    pi_number: int
    iteration: int
    is_baseline: bool
    title: str
    generated_at: datetime
    group_by: str
    groups: list[ReportGroup]
    summary: ReportSummary

    def items(self) -> list[ReportItem]:
        return [entry for group in self.groups for entry in group.items]

    def to_dict(self) -> dict:
        return {
            "metadata": {
                "pi_number": self.pi_number,
                "iteration": self.iteration,
                "is_baseline": self.is_baseline,
                "title": self.title,
                "generated_at": self.generated_at.isoformat(),
                "group_by": self.group_by,
            },
            "groups": [g.to_dict() for g in self.groups],
            "summary": self.summary.to_dict(),
        }


def report_title(pi_number: int, iteration: int, is_baseline: bool) -> str:
    if is_baseline:
        return f"PI {pi_number} - Full Governance Report"
    return f"PI {pi_number} - Iteration {iteration} Changes"


def drop_unparented(snapshot: Snapshot) -> tuple[Snapshot, int]:
    """Remove dependencies whose parent epic is not in the snapshot."""
    parents = {i.key for i in snapshot.items}
    kept = tuple(d for d in snapshot.dependencies if d.parent_key in parents)
    dropped = len(snapshot.dependencies) - len(kept)
    if dropped:
        logger.warning(
            "Dropped %d dependencies with unknown parent in PI %s / Iteration %s",
            dropped, snapshot.pi_number, snapshot.iteration,
        )
    return replace(snapshot, dependencies=kept), dropped


def _default_record(item: TrackedItem, iteration: int, is_baseline: bool) -> ClassificationRecord:
    return ClassificationRecord(
        key=item.key,
        iteration=iteration,
        badge=Badge.NONE,
        status_note=BASELINE_NOTE if is_baseline else "",
        issue_type=item.issue_type,
        is_at_risk=item.is_at_risk,
        is_iteration_risk=item.is_due_in(iteration),
        include_in_governance=item.governance,
    )


def run_report_pipeline(
    current: Snapshot,
    previous: Snapshot | None,
    records: Mapping[str, ClassificationRecord],
    options: ReportOptions,
    policy: GovernancePolicy,
    *,
    generated_at: datetime | None = None,
) -> IterationReport:
    """Build the grouped report for ``current``.

    Raises:
        PreconditionError: non-baseline iteration with an empty
            classification cache.
    """
    iteration = current.iteration
    is_baseline = iteration <= options.baseline_iteration
    skip_changes_filter = is_baseline or options.show_all
    log_extra = {"pi_number": current.pi_number, "iteration": iteration}

    if not is_baseline and not records:
        raise PreconditionError(
            resource=f"Classification PI {current.pi_number} / Iteration {iteration}",
            remediation=f"Run classify for iteration {iteration} first.",
        )

    logger.info(
        "Building report PI %s / Iteration %s (show_all=%s, include_at_risk=%s)",
        current.pi_number, iteration, options.show_all, options.include_at_risk,
        extra=log_extra,
    )

    snapshot, dropped = drop_unparented(current)
    eligible = apply_governance_filter(snapshot, records, policy)
    split = separate_bypass(eligible, policy)

    working = split.regular
    if not skip_changes_filter:
        working = apply_changes_only_filter(working, records, options.include_at_risk)

    visibility = resolve_dependency_visibility(working, previous, records, iteration)
    working = visibility.snapshot

    pruned: frozenset[str] = frozenset()
    if not skip_changes_filter:
        prune = prune_orphans(working, records)
        working, pruned = prune.snapshot, prune.removed_keys

    merge = reinclude_bypass(working, split, iteration)
    working = merge.snapshot
    dep_visibility = {**visibility.visible, **merge.visibility}

    prev_by_key = previous.items_by_key() if previous is not None else {}
    deps_by_parent: dict[str, list[ReportDependency]] = {}
    for dep in working.dependencies:
        deps_by_parent.setdefault(dep.parent_key, []).append(
            ReportDependency(
                item=dep,
                visibility=dep_visibility[dep.key],
                is_bypass=dep.key in merge.dependency_keys,
            )
        )

    entries: list[ReportItem] = []
    for item in apply_field_policies(working.items, options.field_policies):
        record = merge.records.get(item.key) or records.get(item.key)
        if record is None:
            record = _default_record(item, iteration, is_baseline)
        entries.append(
            ReportItem(
                item=item,
                record=record,
                change_detail=build_change_detail(item, prev_by_key.get(item.key), iteration),
                dependencies=sorted(deps_by_parent.get(item.key, []), key=lambda d: d.item.key),
                is_bypass=item.key in merge.item_keys,
            )
        )

    groups = group_items(entries, options.group_by, options.field_policies.get(options.group_by))

    summary = ReportSummary(
        total_items=len(entries),
        total_dependencies=sum(len(e.dependencies) for e in entries),
        group_count=len(groups),
        items_with_dependencies=sum(1 for e in entries if e.dependencies),
        dropped_dependencies=dropped,
        hidden_dependencies=len(visibility.hidden),
        pruned_items=len(pruned),
        bypass_items=sum(1 for e in entries if e.is_bypass),
        badge_distribution=badge_distribution({e.item.key: e.record for e in entries}),
    )

    logger.info(
        "Report PI %s / Iteration %s: %d items, %d dependencies, %d groups",
        current.pi_number, iteration, summary.total_items, summary.total_dependencies, summary.group_count,
        extra=log_extra,
    )

    return IterationReport(
        pi_number=current.pi_number,
        iteration=iteration,
        is_baseline=is_baseline,
        title=report_title(current.pi_number, iteration, is_baseline),
        generated_at=generated_at or datetime.now(timezone.utc),
        group_by=options.group_by,
        groups=groups,
        summary=summary,
    )
