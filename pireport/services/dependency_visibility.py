"""
Dependency Visibility Resolver

Decides, per dependency, whether it is shown and which display badges it
carries. Modelled as an ordered decision table evaluated top to bottom,
first match wins:

    | Condition                                   | show  | badges      |
    |---------------------------------------------|-------|-------------|
    | canceled in a prior iteration               | no    |             |
    | canceled this iteration                     | yes   | CANCELED    |
    | deferred this iteration                     | yes   | DEF         |
    | deferred in a prior iteration               | yes   | DEF         |
    | done this iteration, parent has changes     | yes   | CHG, DONE   |
    | done this iteration, parent at-risk only    | no    |             |
    | done previously, parent has changes         | yes   | DONE        |
    | done previously, parent at-risk only        | no    |             |
    | otherwise                                   | yes   |             |

A shown dependency that is due this iteration and still open gets RISK
prepended. Hidden dependencies are removed from the result set.

Usage:
    from pireport.services.dependency_visibility import resolve_dependency_visibility
    result = resolve_dependency_visibility(filtered, previous, records, iteration=3)
    result.visible["D-2"].badges   # -> (DependencyBadge.CHG, DependencyBadge.DONE)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable, Mapping

from pireport.services.report_types import (
    Badge,
    ClassificationRecord,
    DependencyBadge,
    DependencyItem,
    Snapshot,
    WorkItem,
)

logger = logging.getLogger(__name__)

HIDE_CANCELED_PREVIOUSLY = "Canceled in previous iteration"
HIDE_DONE_THIS_ITERATION = "Done this iteration, parent at-risk only"
HIDE_DONE_PREVIOUSLY = "Done previously, parent at-risk only"


@dataclass(frozen=True)
class DependencyTransition:
    """State transition flags of one dependency between N-1 and N.

    A dependency missing from N-1 counts as previously not done, not
    canceled and not deferred.
    """
    is_done: bool = False
    was_done: bool = False
    is_canceled: bool = False
    was_canceled: bool = False
    is_deferred: bool = False
    was_deferred: bool = False
    is_iteration_risk: bool = False

    @classmethod
    def between(cls, current: WorkItem, previous: WorkItem | None, iteration: int) -> "DependencyTransition":
        return cls(
            is_done=current.is_done,
            was_done=previous is not None and previous.is_done,
            is_canceled=current.is_canceled,
            was_canceled=previous is not None and previous.is_canceled,
            is_deferred=current.is_dependency_deferred,
            was_deferred=previous is not None and previous.is_dependency_deferred,
            is_iteration_risk=current.is_due_in(iteration) and not current.is_dependency_deferred,
        )

    @property
    def done_this_iteration(self) -> bool:
        return self.is_done and not self.was_done

    @property
    def done_previously(self) -> bool:
        return self.is_done and self.was_done

    @property
    def canceled_this_iteration(self) -> bool:
        return self.is_canceled and not self.was_canceled

    @property
    def canceled_previously(self) -> bool:
        return self.is_canceled and self.was_canceled

    @property
    def deferred_this_iteration(self) -> bool:
        return self.is_deferred and not self.was_deferred

    @property
    def deferred_previously(self) -> bool:
        return self.is_deferred and self.was_deferred


@dataclass(frozen=True)
class VisibilityRule:
    """One row of the decision table."""
    name: str
    applies: Callable[[DependencyTransition, bool], bool]
    should_show: bool
    badges: tuple[DependencyBadge, ...] = ()
    hide_reason: str = ""


VISIBILITY_RULES: tuple[VisibilityRule, ...] = (
    VisibilityRule(
        "canceled_previously",
        lambda t, parent_changed: t.canceled_previously,
        should_show=False, hide_reason=HIDE_CANCELED_PREVIOUSLY,
    ),
    VisibilityRule(
        "canceled_this_iteration",
        lambda t, parent_changed: t.canceled_this_iteration,
        should_show=True, badges=(DependencyBadge.CANCELED,),
    ),
    VisibilityRule(
        "deferred_this_iteration",
        lambda t, parent_changed: t.deferred_this_iteration,
        should_show=True, badges=(DependencyBadge.DEF,),
    ),
    VisibilityRule(
        "deferred_previously",
        lambda t, parent_changed: t.deferred_previously,
        should_show=True, badges=(DependencyBadge.DEF,),
    ),
    VisibilityRule(
        "done_this_iteration_parent_changed",
        lambda t, parent_changed: t.done_this_iteration and parent_changed,
        should_show=True, badges=(DependencyBadge.CHG, DependencyBadge.DONE),
    ),
    VisibilityRule(
        "done_this_iteration_parent_at_risk_only",
        lambda t, parent_changed: t.done_this_iteration,
        should_show=False, hide_reason=HIDE_DONE_THIS_ITERATION,
    ),
    VisibilityRule(
        "done_previously_parent_changed",
        lambda t, parent_changed: t.done_previously and parent_changed,
        should_show=True, badges=(DependencyBadge.DONE,),
    ),
    VisibilityRule(
        "done_previously_parent_at_risk_only",
        lambda t, parent_changed: t.done_previously,
        should_show=False, hide_reason=HIDE_DONE_PREVIOUSLY,
    ),
    VisibilityRule(
        "default",
        lambda t, parent_changed: True,
        should_show=True,
    ),
)


@dataclass(frozen=True)
class DependencyVisibility:
    """Resolved visibility of one dependency."""
    key: str
    parent_key: str
    should_show: bool
    badges: tuple[DependencyBadge, ...] = ()
    hide_reason: str = ""
    rule: str = ""
    is_iteration_risk: bool = False

    def to_dict(self) -> dict:
        return {
            "should_show": self.should_show,
            "badges": [b.value for b in self.badges],
            "hide_reason": self.hide_reason,
            "is_iteration_risk": self.is_iteration_risk,
        }


def parent_has_changes(record: ClassificationRecord | None) -> bool:
    """NEW / CHG badge or a this-iteration closure or deferral.

    An ATRISK badge alone never counts.
    """
    if record is None:
        return False
    return (
        record.badge in (Badge.NEW, Badge.CHG)
        or record.closed_this_iteration
        or record.deferred_this_iteration
    )


def decide(transition: DependencyTransition, parent_changed: bool) -> VisibilityRule:
    for rule in VISIBILITY_RULES:
        if rule.applies(transition, parent_changed):
            return rule
    raise AssertionError("decision table has no default row")


def resolve_one(
    dependency: DependencyItem,
    previous: WorkItem | None,
    parent_record: ClassificationRecord | None,
    iteration: int,
) -> DependencyVisibility:
    transition = DependencyTransition.between(dependency, previous, iteration)
    rule = decide(transition, parent_has_changes(parent_record))

    badges = rule.badges
    if rule.should_show and transition.is_iteration_risk:
        badges = (DependencyBadge.RISK, *badges)

    return DependencyVisibility(
        key=dependency.key,
        parent_key=dependency.parent_key,
        should_show=rule.should_show,
        badges=badges,
        hide_reason=rule.hide_reason,
        rule=rule.name,
        is_iteration_risk=transition.is_iteration_risk,
    )


@dataclass(frozen=True)
class VisibilityResult:
    snapshot: Snapshot
    visible: Mapping[str, DependencyVisibility]
    hidden: Mapping[str, DependencyVisibility]


def resolve_dependency_visibility(
    snapshot: Snapshot,
    previous: Snapshot | None,
    records: Mapping[str, ClassificationRecord],
    iteration: int,
) -> VisibilityResult:
    """Apply the decision table to every dependency of ``snapshot``.

    Returns the snapshot with hidden dependencies removed, plus the resolved
    visibility of both the kept and the hidden ones.
    """
    prev_by_key = previous.dependencies_by_key() if previous is not None else {}
    visible: dict[str, DependencyVisibility] = {}
    hidden: dict[str, DependencyVisibility] = {}

    for dep in snapshot.dependencies:
        outcome = resolve_one(dep, prev_by_key.get(dep.key), records.get(dep.parent_key), iteration)
        if outcome.should_show:
            visible[dep.key] = outcome
        else:
            hidden[dep.key] = outcome
            logger.debug("%s: hidden (%s)", dep.key, outcome.hide_reason)

    if hidden:
        logger.info("Hidden %d dependencies based on visibility rules", len(hidden))

    kept = tuple(d for d in snapshot.dependencies if d.key in visible)
    return VisibilityResult(
        snapshot=replace(snapshot, dependencies=kept),
        visible=visible,
        hidden=hidden,
    )
