"""
Tests for the badge classifier.

Covers:
    - Priority chain NEW -> DONE -> PENDING -> DEF -> CANCELED -> ATRISK -> CHG -> OVERDUE -> NONE
    - Already/this-iteration distinctions for DONE, DEF and CANCELED
    - Iteration risk layered on top of the primary badge
    - Baseline runs, added_in_iteration carry-forward
    - Monotonic continuity of DEF / CANCELED across iterations
    - Badge distribution
"""

import pytest

from pireport.services.badge_classifier import (
    BASELINE_NOTE,
    badge_distribution,
    classify_item,
    classify_snapshot,
)
from pireport.services.report_types import (
    Badge,
    ClassificationRecord,
    Commitment,
    DependencyItem,
    IssueType,
    RiskRating,
    Snapshot,
    TrackedItem,
)


# ═════════════════════════════════════════════════════════════════════════════
# Test helpers
# ═════════════════════════════════════════════════════════════════════════════

def _epic(key="E-1", **kw):
    kw.setdefault("status", "In Progress")
    kw.setdefault("commitment", Commitment.COMMITTED)
    kw.setdefault("iteration_label", "Iteration 5")
    return TrackedItem(key=key, **kw)


def _snapshot(iteration, items=(), dependencies=()):
    return Snapshot(pi_number=15, iteration=iteration, items=tuple(items), dependencies=tuple(dependencies))


# ═════════════════════════════════════════════════════════════════════════════
# Priority chain
# ═════════════════════════════════════════════════════════════════════════════

class TestPriorityChain:
    """One badge per item, first matching rule wins."""

    def test_first_seen_is_new(self):
        rec = classify_item(_epic(), None, 2)
        assert rec.badge is Badge.NEW
        assert rec.is_new
        assert rec.added_in_iteration == 2

    def test_closed_this_iteration(self):
        rec = classify_item(_epic(status="Closed"), _epic(status="Open"), 2)
        assert rec.badge is Badge.DONE
        assert rec.closed_this_iteration
        assert not rec.already_closed

    def test_already_closed(self):
        rec = classify_item(_epic(status="Done"), _epic(status="Done"), 3)
        assert rec.badge is Badge.DONE
        assert not rec.closed_this_iteration
        assert rec.already_closed
        assert rec.status_note == "Already closed"

    def test_done_beats_at_risk_and_changes(self):
        prev = _epic(risk_rating=RiskRating.GREEN)
        curr = _epic(status="Done", risk_rating=RiskRating.RED, iteration_label="Iteration 2")
        assert classify_item(curr, prev, 2).badge is Badge.DONE

    def test_pending_acceptance_transition(self):
        rec = classify_item(_epic(status="Pending Acceptance"), _epic(), 2)
        assert rec.badge is Badge.PENDING
        assert rec.is_pending_closure_this_iteration

    def test_pending_acceptance_without_transition_is_not_pending(self):
        prev = _epic(status="Pending Acceptance")
        rec = classify_item(_epic(status="Pending Acceptance"), prev, 3)
        assert rec.badge is Badge.NONE

    def test_deferred_this_iteration(self):
        rec = classify_item(_epic(commitment=Commitment.DEFERRED), _epic(), 2)
        assert rec.badge is Badge.DEF
        assert rec.deferred_this_iteration
        assert rec.status_note == "Deferred this iteration"

    def test_traded_counts_as_deferred(self):
        rec = classify_item(_epic(commitment=Commitment.TRADED), _epic(), 2)
        assert rec.badge is Badge.DEF

    def test_never_committed_is_not_deferred(self):
        item = _epic(commitment=Commitment.NOT_COMMITTED)
        rec = classify_item(item, item, 3)
        assert rec.badge is Badge.NONE
        assert not rec.already_deferred

    def test_committed_to_not_committed_is_chg(self):
        rec = classify_item(_epic(commitment=Commitment.NOT_COMMITTED), _epic(), 3)
        assert rec.badge is Badge.CHG
        assert rec.qualifying_reasons == ("commitment changed",)

    def test_canceled_this_iteration(self):
        rec = classify_item(_epic(commitment=Commitment.CANCELED), _epic(), 2)
        assert rec.badge is Badge.CANCELED
        assert rec.canceled_this_iteration

    def test_at_risk_beats_field_changes(self):
        prev = _epic(risk_note="late vendor")
        curr = _epic(risk_rating=RiskRating.AMBER, risk_note="vendor still late")
        rec = classify_item(curr, prev, 2)
        assert rec.badge is Badge.ATRISK
        assert rec.is_at_risk

    def test_field_change_is_chg(self):
        prev = _epic(fix_versions="R1")
        curr = _epic(fix_versions="R2")
        rec = classify_item(curr, prev, 2)
        assert rec.badge is Badge.CHG
        assert rec.qualifying_reasons == ("fix_versions changed",)

    def test_blank_to_green_is_not_a_change(self):
        rec = classify_item(_epic(risk_rating=RiskRating.GREEN), _epic(), 2)
        assert rec.badge is Badge.NONE

    def test_due_without_other_change_is_overdue(self):
        item = _epic(iteration_label="Iteration 2")
        rec = classify_item(item, item, 2)
        assert rec.badge is Badge.OVERDUE
        assert rec.is_iteration_risk

    def test_iteration_risk_layers_onto_chg(self):
        prev = _epic(iteration_label="Iteration 3")
        curr = _epic(iteration_label="Iteration 2")
        rec = classify_item(curr, prev, 2)
        assert rec.badge is Badge.CHG
        assert rec.is_iteration_risk

    def test_unchanged_is_none(self):
        item = _epic()
        rec = classify_item(item, item, 2)
        assert rec.badge is Badge.NONE
        assert rec.qualifying_reasons == ()

    def test_dependency_keeps_issue_type(self):
        dep = DependencyItem(key="D-1", parent_key="E-1")
        rec = classify_item(dep, None, 2)
        assert rec.issue_type is IssueType.DEPENDENCY

    @pytest.mark.parametrize("current,previous", [
        (_epic(), None),
        (_epic(status="Done"), _epic()),
        (_epic(commitment=Commitment.CANCELED), _epic(commitment=Commitment.CANCELED)),
        (_epic(risk_rating=RiskRating.RED), _epic()),
        (_epic(iteration_label="junk"), _epic()),
        (_epic(), _epic()),
    ])
    def test_exactly_one_badge(self, current, previous):
        rec = classify_item(current, previous, 2)
        assert isinstance(rec.badge, Badge)


class TestScenarios:
    def test_open_then_closed_is_done_this_iteration(self):
        it1 = _snapshot(1, [_epic("E-1", status="Open")])
        it2 = _snapshot(2, [_epic("E-1", status="Closed")])
        rec = classify_snapshot(it2, it1)["E-1"]
        assert rec.badge is Badge.DONE
        assert rec.closed_this_iteration


class TestBaseline:
    def test_baseline_gives_none(self):
        it1 = _snapshot(1, [_epic("E-1", risk_rating=RiskRating.RED)])
        records = classify_snapshot(it1, None)
        assert records["E-1"].badge is Badge.NONE
        assert records["E-1"].status_note == BASELINE_NOTE
        assert records["E-1"].added_in_iteration == 1

    def test_baseline_still_flags_iteration_risk(self):
        it1 = _snapshot(1, [_epic("E-1", iteration_label="Iteration 1")])
        assert classify_snapshot(it1, None)["E-1"].is_iteration_risk

    def test_explicit_baseline_with_previous(self):
        prev = _snapshot(1, [_epic("E-1", status="Open")])
        curr = _snapshot(2, [_epic("E-1", status="Done")])
        assert classify_snapshot(curr, prev, baseline=True)["E-1"].badge is Badge.NONE


class TestAddedInIteration:
    def test_carried_from_previous_record(self):
        prev_rec = ClassificationRecord(key="E-1", iteration=2, added_in_iteration=1)
        item = _epic()
        rec = classify_item(item, item, 3, previous_record=prev_rec)
        assert rec.added_in_iteration == 1

    def test_defaults_to_previous_iteration_without_cache(self):
        item = _epic()
        assert classify_item(item, item, 3).added_in_iteration == 2


class TestMonotonicContinuity:
    """DEF / CANCELED stay flagged until the commitment moves away."""

    def _run(self, commitments):
        snapshots = [
            _snapshot(n + 1, [_epic("E-1", commitment=c)]) for n, c in enumerate(commitments)
        ]
        records = []
        previous = None
        prev_records = None
        for snap in snapshots:
            recs = classify_snapshot(snap, previous, previous_records=prev_records)
            records.append(recs["E-1"])
            previous, prev_records = snap, recs
        return records

    def test_deferred_persists(self):
        recs = self._run([Commitment.COMMITTED, Commitment.DEFERRED, Commitment.DEFERRED, Commitment.TRADED])
        assert recs[1].badge is Badge.DEF and recs[1].deferred_this_iteration
        assert recs[2].badge is Badge.DEF and recs[2].already_deferred
        assert recs[3].badge is Badge.DEF and recs[3].already_deferred

    def test_canceled_persists(self):
        recs = self._run([Commitment.COMMITTED, Commitment.CANCELED, Commitment.CANCELED])
        assert recs[1].canceled_this_iteration
        assert recs[2].badge is Badge.CANCELED and recs[2].already_canceled

    def test_recommitted_leaves_def(self):
        recs = self._run([Commitment.COMMITTED, Commitment.DEFERRED, Commitment.COMMITTED])
        assert recs[2].badge is Badge.CHG
        assert recs[2].added_in_iteration == 1


class TestBadgeDistribution:
    def test_every_badge_present(self):
        records = {
            "E-1": ClassificationRecord(key="E-1", iteration=2, badge=Badge.NEW),
            "E-2": ClassificationRecord(key="E-2", iteration=2, badge=Badge.NEW),
            "E-3": ClassificationRecord(key="E-3", iteration=2, badge=Badge.DONE),
        }
        dist = badge_distribution(records)
        assert set(dist) == {b.value for b in Badge}
        assert dist["NEW"] == 2
        assert dist["DONE"] == 1
        assert dist["CHG"] == 0
