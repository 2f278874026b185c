"""
Bypass Re-inclusion

Merges show-all portfolio items, set aside before the changes-only filter,
back into the result. They get a minimal classification: no badge, only
the iteration-risk flag. Their dependencies come back only when the parent
is present and carry at most a RISK badge.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Mapping

from pireport.services.dependency_visibility import DependencyVisibility
from pireport.services.governance_filter import BypassSplit
from pireport.services.report_types import (
    Badge,
    ClassificationRecord,
    DependencyBadge,
    Snapshot,
    TrackedItem,
)

logger = logging.getLogger(__name__)

BYPASS_RULE = "show_all_portfolio"


def bypass_record(item: TrackedItem, iteration: int) -> ClassificationRecord:
    return ClassificationRecord(
        key=item.key,
        iteration=iteration,
        badge=Badge.NONE,
        issue_type=item.issue_type,
        is_at_risk=item.is_at_risk,
        is_iteration_risk=item.is_due_in(iteration),
        include_in_governance=item.governance,
    )


@dataclass(frozen=True)
class BypassMerge:
    snapshot: Snapshot
    records: Mapping[str, ClassificationRecord]
    visibility: Mapping[str, DependencyVisibility]
    item_keys: frozenset[str]
    dependency_keys: frozenset[str]


def reinclude_bypass(snapshot: Snapshot, split: BypassSplit, iteration: int) -> BypassMerge:
    """Append bypass epics, then bypass dependencies whose parent is present."""
    present = {i.key for i in snapshot.items}
    present_deps = {d.key for d in snapshot.dependencies}

    items = list(snapshot.items)
    records: dict[str, ClassificationRecord] = {}
    for item in split.bypass_items:
        if item.key in present:
            continue
        items.append(item)
        present.add(item.key)
        records[item.key] = bypass_record(item, iteration)

    dependencies = list(snapshot.dependencies)
    visibility: dict[str, DependencyVisibility] = {}
    for dep in split.bypass_dependencies:
        if dep.parent_key not in present or dep.key in present_deps:
            continue
        dependencies.append(dep)
        present_deps.add(dep.key)
        at_risk = dep.is_due_in(iteration) and not dep.is_dependency_deferred
        visibility[dep.key] = DependencyVisibility(
            key=dep.key,
            parent_key=dep.parent_key,
            should_show=True,
            badges=(DependencyBadge.RISK,) if at_risk else (),
            rule=BYPASS_RULE,
            is_iteration_risk=at_risk,
        )

    if records or visibility:
        logger.info("Added %d show-all portfolio epics + %d dependencies", len(records), len(visibility))

    return BypassMerge(
        snapshot=replace(snapshot, items=tuple(items), dependencies=tuple(dependencies)),
        records=records,
        visibility=visibility,
        item_keys=frozenset(records),
        dependency_keys=frozenset(visibility),
    )
