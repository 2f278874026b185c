"""
Badge Classifier

Diffs each item of iteration N against its record in iteration N-1 and
assigns exactly one badge plus a status note. Pure functions; persisting the
result is the classification service's job.

Priority (first match wins):
    NEW -> DONE -> PENDING -> DEF -> CANCELED -> ATRISK -> CHG -> OVERDUE -> NONE

``is_iteration_risk`` (target iteration == current iteration, item still
open) is computed for every item independently of the badge, so an item can
carry CHG and iteration risk at once. OVERDUE is only the badge when nothing
else applies.

Usage:
    from pireport.services.badge_classifier import classify_snapshot
    records = classify_snapshot(current, previous)
    records["E-1"].badge   # -> Badge.DONE
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Mapping

from pireport.services.change_detail import build_change_detail
from pireport.services.report_types import (
    Badge,
    ClassificationRecord,
    Snapshot,
    WorkItem,
)

logger = logging.getLogger(__name__)

BASELINE_NOTE = "Baseline"


def _tracked_field_changes(current: WorkItem, previous: WorkItem, iteration: int) -> list[str]:
    return build_change_detail(current, previous, iteration).changed_fields


def classify_item(
    current: WorkItem,
    previous: WorkItem | None,
    iteration: int,
    *,
    baseline: bool = False,
    previous_record: ClassificationRecord | None = None,
) -> ClassificationRecord:
    """Classify one item against its previous-iteration record.

    Args:
        current: The item as of ``iteration``.
        previous: The same key in iteration - 1, or None when first seen.
        iteration: Current iteration number.
        baseline: True for the first iteration of a PI; every item gets
            NONE since there is nothing to diff against.
        previous_record: Cached classification of iteration - 1, used to
            carry ``added_in_iteration`` forward.
    """
    is_iteration_risk = current.is_due_in(iteration)
    base = dict(
        key=current.key,
        iteration=iteration,
        issue_type=current.issue_type,
        is_at_risk=current.is_at_risk,
        is_iteration_risk=is_iteration_risk,
        include_in_governance=current.governance,
    )

    if previous_record is not None and previous_record.added_in_iteration is not None:
        base["added_in_iteration"] = previous_record.added_in_iteration
    elif previous is None or baseline:
        base["added_in_iteration"] = iteration
    else:
        base["added_in_iteration"] = iteration - 1

    if baseline:
        return ClassificationRecord(badge=Badge.NONE, status_note=BASELINE_NOTE, **base)

    if previous is None:
        return ClassificationRecord(
            badge=Badge.NEW, status_note="New this iteration", is_new=True,
            qualifying_reasons=("new",), **base,
        )

    if current.is_done:
        if previous.is_done:
            return ClassificationRecord(
                badge=Badge.DONE, status_note="Already closed",
                qualifying_reasons=("already closed",), **base,
            )
        return ClassificationRecord(
            badge=Badge.DONE, status_note="Closed this iteration",
            closed_this_iteration=True, qualifying_reasons=("closed",), **base,
        )

    if current.is_pending_acceptance and not previous.is_pending_acceptance:
        return ClassificationRecord(
            badge=Badge.PENDING, status_note="Pending acceptance this iteration",
            qualifying_reasons=("pending acceptance",), **base,
        )

    if current.is_deferred:
        if previous.is_deferred:
            return ClassificationRecord(
                badge=Badge.DEF, status_note="Already deferred",
                qualifying_reasons=("already deferred",), **base,
            )
        return ClassificationRecord(
            badge=Badge.DEF, status_note=f"{current.commitment.value} this iteration",
            deferred_this_iteration=True, qualifying_reasons=("deferred",), **base,
        )

    if current.is_canceled:
        if previous.is_canceled:
            return ClassificationRecord(
                badge=Badge.CANCELED, status_note="Already canceled",
                qualifying_reasons=("already canceled",), **base,
            )
        return ClassificationRecord(
            badge=Badge.CANCELED, status_note="Canceled this iteration",
            canceled_this_iteration=True, qualifying_reasons=("canceled",), **base,
        )

    if current.is_at_risk:
        return ClassificationRecord(
            badge=Badge.ATRISK, status_note=f"At risk ({current.risk_rating.value})",
            qualifying_reasons=("at risk",), **base,
        )

    changed = _tracked_field_changes(current, previous, iteration)
    if changed:
        return ClassificationRecord(
            badge=Badge.CHG, status_note="Changed: " + ", ".join(changed),
            qualifying_reasons=tuple(f"{name} changed" for name in changed), **base,
        )

    if is_iteration_risk:
        return ClassificationRecord(
            badge=Badge.OVERDUE, status_note=f"Due in iteration {iteration}",
            qualifying_reasons=("iteration risk",), **base,
        )

    return ClassificationRecord(badge=Badge.NONE, **base)


def classify_snapshot(
    current: Snapshot,
    previous: Snapshot | None,
    *,
    baseline: bool = False,
    previous_records: Mapping[str, ClassificationRecord] | None = None,
) -> dict[str, ClassificationRecord]:
    """Classify every epic and dependency of ``current``.

    With no previous snapshot the run is treated as a baseline.
    """
    baseline = baseline or previous is None
    prev_by_key = previous.all_by_key() if previous is not None else {}
    prev_records = previous_records or {}

    records: dict[str, ClassificationRecord] = {}
    for item in (*current.items, *current.dependencies):
        records[item.key] = classify_item(
            item,
            prev_by_key.get(item.key),
            current.iteration,
            baseline=baseline,
            previous_record=prev_records.get(item.key),
        )

    logger.info(
        "Classified %d records for PI %s / Iteration %s",
        len(records), current.pi_number, current.iteration,
        extra={"pi_number": current.pi_number, "iteration": current.iteration},
    )
    return records


def badge_distribution(records: Mapping[str, ClassificationRecord]) -> dict[str, int]:
    """Count records per badge; every badge is present, zero included."""
    counts = Counter(r.badge.value for r in records.values())
    return {badge.value: counts.get(badge.value, 0) for badge in Badge}
