"""
Tests for the changes-only filter.

Covers:
    - Inclusion reason per badge (first match governs)
    - include_at_risk switch for ATRISK badges and the rating fallback
    - Dependencies follow their parent
"""

import pytest

from pireport.services.changes_filter import apply_changes_only_filter, epic_inclusion_reason
from pireport.services.report_types import (
    Badge,
    ClassificationRecord,
    DependencyItem,
    RiskRating,
    Snapshot,
    TrackedItem,
)


def _rec(key, badge=Badge.NONE, **kw):
    return ClassificationRecord(key=key, iteration=2, badge=badge, **kw)


class TestEpicInclusionReason:
    @pytest.mark.parametrize("badge", [Badge.NEW, Badge.CHG, Badge.PENDING, Badge.OVERDUE, Badge.DONE, Badge.CANCELED])
    def test_badged_items_are_included(self, badge):
        item = TrackedItem(key="E-1")
        assert epic_inclusion_reason(item, _rec("E-1", badge), include_at_risk=False) is not None

    def test_at_risk_badge_follows_switch(self):
        item = TrackedItem(key="E-1", risk_rating=RiskRating.RED)
        rec = _rec("E-1", Badge.ATRISK)
        assert epic_inclusion_reason(item, rec, include_at_risk=True) == "at risk"
        assert epic_inclusion_reason(item, rec, include_at_risk=False) is None

    def test_already_deferred_is_included(self):
        rec = _rec("E-1", Badge.DEF)
        assert epic_inclusion_reason(TrackedItem(key="E-1"), rec, False) == "already deferred"

    def test_deferred_this_iteration_is_included(self):
        rec = _rec("E-1", Badge.DEF, deferred_this_iteration=True)
        assert epic_inclusion_reason(TrackedItem(key="E-1"), rec, False) == "badge DEF"

    def test_iteration_risk_without_badge(self):
        rec = _rec("E-1", is_iteration_risk=True)
        assert epic_inclusion_reason(TrackedItem(key="E-1"), rec, False) == "iteration risk"

    def test_rating_fallback_only_with_include_at_risk(self):
        item = TrackedItem(key="E-1", risk_rating=RiskRating.AMBER)
        assert epic_inclusion_reason(item, _rec("E-1"), True) == "at-risk rating"
        assert epic_inclusion_reason(item, _rec("E-1"), False) is None

    def test_missing_record_is_treated_as_none(self):
        assert epic_inclusion_reason(TrackedItem(key="E-1"), None, True) is None


class TestApplyChangesOnlyFilter:
    def test_amber_both_iterations_excluded_without_at_risk(self):
        """E-2 never carries a badge other than ATRISK and is dropped when at-risk is off."""
        snap = Snapshot(
            pi_number=15, iteration=2,
            items=(TrackedItem(key="E-2", risk_rating=RiskRating.AMBER),),
        )
        records = {"E-2": _rec("E-2", Badge.ATRISK, is_at_risk=True)}
        assert apply_changes_only_filter(snap, records, include_at_risk=False).items == ()
        assert len(apply_changes_only_filter(snap, records, include_at_risk=True).items) == 1

    def test_dependencies_follow_parent(self):
        snap = Snapshot(
            pi_number=15, iteration=2,
            items=(TrackedItem(key="E-1"), TrackedItem(key="E-2")),
            dependencies=(
                DependencyItem(key="D-1", parent_key="E-1"),
                DependencyItem(key="D-2", parent_key="E-2"),
            ),
        )
        records = {"E-1": _rec("E-1", Badge.CHG), "E-2": _rec("E-2")}
        result = apply_changes_only_filter(snap, records, include_at_risk=True)
        assert [i.key for i in result.items] == ["E-1"]
        assert [d.key for d in result.dependencies] == ["D-1"]
