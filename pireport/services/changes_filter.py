"""
Changes-Only Filter

Narrows a non-baseline iteration to the epics relevant to a "what changed"
report. Dependencies are candidates only when their parent survives; their
final visibility is decided later by the dependency visibility resolver.

Skipped by the pipeline for baseline iterations and in show-all mode.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Mapping

from pireport.services.report_types import (
    Badge,
    ClassificationRecord,
    Snapshot,
    TrackedItem,
)

logger = logging.getLogger(__name__)


def epic_inclusion_reason(
    item: TrackedItem,
    record: ClassificationRecord | None,
    include_at_risk: bool,
) -> str | None:
    """Reason the epic belongs in a changes-only report, or None to exclude.

    First match governs.
    """
    badge = record.badge if record is not None else Badge.NONE

    if badge is Badge.ATRISK:
        return "at risk" if include_at_risk else None
    if badge is Badge.DONE:
        return "done"
    if badge is Badge.DEF and record.already_deferred:
        return "already deferred"
    if badge is Badge.CANCELED:
        return "canceled"
    if badge is not Badge.NONE:
        return f"badge {badge.value}"
    if record is not None and record.is_iteration_risk:
        return "iteration risk"
    if include_at_risk and item.is_at_risk:
        return "at-risk rating"
    return None


def apply_changes_only_filter(
    snapshot: Snapshot,
    records: Mapping[str, ClassificationRecord],
    include_at_risk: bool,
) -> Snapshot:
    """Keep included epics and the dependencies whose parent is included."""
    included_keys: set[str] = set()
    for item in snapshot.items:
        reason = epic_inclusion_reason(item, records.get(item.key), include_at_risk)
        if reason is not None:
            included_keys.add(item.key)

    items = tuple(i for i in snapshot.items if i.key in included_keys)
    dependencies = tuple(d for d in snapshot.dependencies if d.parent_key in included_keys)

    logger.info(
        "Changes-only filter: %d -> %d epics, %d -> %d dependencies",
        len(snapshot.items), len(items), len(snapshot.dependencies), len(dependencies),
    )
    return replace(snapshot, items=items, dependencies=dependencies)
