"""
Orphan Pruner

After dependency visibility is resolved, drops epics that were only kept
for at-risk dependencies which then turned out to be hidden. A pruned epic
takes its remaining dependencies with it.

Kept when any of:
    - a real change (NEW/CHG/DONE/DEF badge, this-iteration closure,
      deferral or cancellation, iteration risk)
    - already closed / already deferred (continuity)
    - its own rating is amber/red
    - at least one visible dependency rated amber/red
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Mapping

from pireport.services.report_types import (
    Badge,
    ClassificationRecord,
    Snapshot,
    TrackedItem,
)

logger = logging.getLogger(__name__)

_CHANGE_BADGES = frozenset({Badge.NEW, Badge.CHG, Badge.DONE, Badge.DEF})


def has_real_change(record: ClassificationRecord | None) -> bool:
    if record is None:
        return False
    return (
        record.badge in _CHANGE_BADGES
        or record.is_new
        or record.closed_this_iteration
        or record.deferred_this_iteration
        or record.canceled_this_iteration
        or record.is_iteration_risk
    )


def is_orphan(
    item: TrackedItem,
    record: ClassificationRecord | None,
    at_risk_dependency_count: int,
) -> bool:
    if has_real_change(record):
        return False
    if record is not None and (record.already_closed or record.already_deferred):
        return False
    if item.is_at_risk:
        return False
    return at_risk_dependency_count == 0


@dataclass(frozen=True)
class PruneResult:
    snapshot: Snapshot
    removed_keys: frozenset[str]


def prune_orphans(snapshot: Snapshot, records: Mapping[str, ClassificationRecord]) -> PruneResult:
    """Remove orphaned epics and their dependencies.

    ``snapshot`` must already hold only the visible dependencies.
    """
    at_risk_deps: dict[str, int] = {}
    for dep in snapshot.dependencies:
        if dep.is_at_risk:
            at_risk_deps[dep.parent_key] = at_risk_deps.get(dep.parent_key, 0) + 1

    removed = frozenset(
        item.key
        for item in snapshot.items
        if is_orphan(item, records.get(item.key), at_risk_deps.get(item.key, 0))
    )
    if not removed:
        logger.debug("No orphaned epics found")
        return PruneResult(snapshot=snapshot, removed_keys=removed)

    for key in sorted(removed):
        logger.debug("Removing %s: no changes, no at-risk rating, no visible at-risk dependencies", key)

    items = tuple(i for i in snapshot.items if i.key not in removed)
    dependencies = tuple(d for d in snapshot.dependencies if d.parent_key not in removed)
    logger.info(
        "Removed %d orphaned epics (%d items total)",
        len(removed), len(snapshot.items) + len(snapshot.dependencies) - len(items) - len(dependencies),
    )
    return PruneResult(
        snapshot=replace(snapshot, items=items, dependencies=dependencies),
        removed_keys=removed,
    )
