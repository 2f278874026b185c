"""
Tests for report record types and tracker-row ingestion.

Covers:
    - Iteration label extraction (pattern match, bare numbers, unknowns)
    - Enum parsing for risk rating, commitment and governance flag
    - WorkItem derived state (done, deferred, due-in-iteration)
    - parse_snapshot_rows: aliases, skipped issue types, error collection
    - ClassificationRecord derived flags
"""

import pytest

from pireport.core.exceptions import ValidationError
from pireport.services.report_types import (
    Badge,
    ClassificationRecord,
    Commitment,
    DependencyItem,
    InclusionFlag,
    IssueType,
    RiskRating,
    TrackedItem,
    extract_iteration_number,
    parse_commitment,
    parse_inclusion_flag,
    parse_risk_rating,
    parse_snapshot_rows,
)


class TestExtractIterationNumber:
    @pytest.mark.parametrize("label,expected", [
        ("PI 15 - Iteration 3", 3),
        ("iteration 12", 12),
        ("Iteration2", 2),
        ("3", 3),
        ("Iter 4", 4),
        (5, 5),
    ])
    def test_extracts_number(self, label, expected):
        assert extract_iteration_number(label) == expected

    @pytest.mark.parametrize("label", [None, "", "   ", "Unknown", "Iteration unknown", "PI 15 - 3"])
    def test_unparseable_is_none(self, label):
        assert extract_iteration_number(label) is None


class TestEnumParsing:
    def test_risk_rating_aliases(self):
        assert parse_risk_rating("") is RiskRating.NONE
        assert parse_risk_rating(None) is RiskRating.NONE
        assert parse_risk_rating("Yellow") is RiskRating.AMBER
        assert parse_risk_rating("RED") is RiskRating.RED
        assert parse_risk_rating("Green - on track") is RiskRating.GREEN

    def test_risk_rating_unknown_raises(self):
        with pytest.raises(ValueError):
            parse_risk_rating("purple")

    def test_rating_order(self):
        ranks = [r.rank for r in (RiskRating.NONE, RiskRating.GREEN, RiskRating.AMBER, RiskRating.RED)]
        assert ranks == sorted(ranks)
        assert RiskRating.AMBER.is_at_risk and RiskRating.RED.is_at_risk
        assert not RiskRating.GREEN.is_at_risk

    def test_commitment_aliases(self):
        assert parse_commitment("Committed  After   Plan") is Commitment.COMMITTED_AFTER_PLAN
        assert parse_commitment("cancelled") is Commitment.CANCELED
        assert parse_commitment(None) is Commitment.BLANK

    def test_commitment_unknown_raises(self):
        with pytest.raises(ValueError):
            parse_commitment("maybe")

    def test_inclusion_flag(self):
        assert parse_inclusion_flag(True) is InclusionFlag.INCLUDE
        assert parse_inclusion_flag("No") is InclusionFlag.EXCLUDE
        assert parse_inclusion_flag("") is InclusionFlag.UNSPECIFIED
        with pytest.raises(ValueError):
            parse_inclusion_flag("perhaps")


class TestWorkItemState:
    def test_done_statuses(self):
        assert TrackedItem(key="E-1", status="Closed").is_done
        assert TrackedItem(key="E-1", status=" done ").is_done
        assert not TrackedItem(key="E-1", status="In Progress").is_done

    def test_deferred_and_canceled(self):
        assert TrackedItem(key="E-1", commitment=Commitment.TRADED).is_deferred
        assert not TrackedItem(key="E-1", commitment=Commitment.NOT_COMMITTED).is_deferred
        assert TrackedItem(key="E-1", commitment=Commitment.NOT_COMMITTED).is_dependency_deferred
        assert not TrackedItem(key="E-1", commitment=Commitment.TRADED).is_dependency_deferred
        assert TrackedItem(key="E-1", commitment=Commitment.CANCELED).is_canceled

    def test_due_in_iteration(self):
        item = TrackedItem(key="E-1", status="In Progress", iteration_label="Iteration 3")
        assert item.is_due_in(3)
        assert not item.is_due_in(4)

    def test_closed_item_is_not_due(self):
        item = TrackedItem(key="E-1", status="Done", iteration_label="Iteration 3")
        assert not item.is_due_in(3)

    def test_unknown_label_is_not_due(self):
        assert not TrackedItem(key="E-1", iteration_label="TBD").is_due_in(3)

    def test_to_dict_flattens_enums(self):
        data = DependencyItem(key="D-1", parent_key="E-1", risk_rating=RiskRating.RED).to_dict()
        assert data["risk_rating"] == "Red"
        assert data["issue_type"] == "Dependency"
        assert data["parent_key"] == "E-1"


class TestParseSnapshotRows:
    def test_tracker_column_names(self):
        snapshot = parse_snapshot_rows(15, 3, [
            {"Key": "E-1", "Issue Type": "Epic", "RAG": "Amber",
             "PI Commitment": "Committed", "End Iteration Name": "Iteration 3",
             "Portfolio Initiative": "Payments"},
            {"Key": "D-1", "Issue Type": "Dependency", "Parent Key": "E-1", "Status": "Open"},
        ])
        epic = snapshot.items_by_key()["E-1"]
        assert epic.risk_rating is RiskRating.AMBER
        assert epic.commitment is Commitment.COMMITTED
        assert epic.target_iteration == 3
        assert epic.portfolio == "Payments"
        assert snapshot.dependencies_by_key()["D-1"].parent_key == "E-1"

    def test_first_non_blank_iteration_column_wins(self):
        snapshot = parse_snapshot_rows(15, 3, [
            {"Key": "E-1", "End Iteration Name": "", "PI Target Iteration": "Iteration 4"},
        ])
        assert snapshot.items[0].target_iteration == 4

    def test_missing_issue_type_defaults_to_epic(self):
        snapshot = parse_snapshot_rows(15, 1, [{"key": "E-1"}])
        assert snapshot.items[0].issue_type is IssueType.EPIC

    def test_untracked_issue_types_are_skipped(self):
        snapshot = parse_snapshot_rows(15, 1, [
            {"Key": "E-1", "Issue Type": "Epic"},
            {"Key": "S-1", "Issue Type": "Story"},
        ])
        assert [i.key for i in snapshot.items] == ["E-1"]
        assert snapshot.dependencies == ()

    def test_errors_are_collected_by_key(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_snapshot_rows(15, 1, [
                {"Key": "E-1", "RAG": "Purple"},
                {"Key": "E-2", "PI Commitment": "Someday"},
                {"Summary": "no key"},
            ])
        details = exc_info.value.details
        assert set(details) == {"E-1", "E-2", "row 2"}
        assert "3 invalid" in str(exc_info.value)

    def test_duplicate_key_is_an_error(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_snapshot_rows(15, 1, [{"Key": "E-1"}, {"Key": "E-1"}])
        assert exc_info.value.details == {"E-1": "duplicate key in snapshot"}


class TestClassificationRecordFlags:
    def test_already_closed(self):
        rec = ClassificationRecord(key="E-1", iteration=2, badge=Badge.DONE)
        assert rec.already_closed
        closed_now = ClassificationRecord(key="E-1", iteration=2, badge=Badge.DONE, closed_this_iteration=True)
        assert not closed_now.already_closed

    def test_pending_closure_proxy(self):
        rec = ClassificationRecord(key="E-1", iteration=2, badge=Badge.PENDING)
        assert rec.already_pending_closure
        assert not rec.is_pending_closure_this_iteration
        noted = ClassificationRecord(
            key="E-1", iteration=2, badge=Badge.PENDING,
            status_note="Pending acceptance this iteration",
        )
        assert noted.is_pending_closure_this_iteration

    def test_to_dict_lists_derived_flags(self):
        data = ClassificationRecord(
            key="E-1", iteration=2, badge=Badge.DEF, qualifying_reasons=("already deferred",),
        ).to_dict()
        assert data["badge"] == "DEF"
        assert data["already_deferred"] is True
        assert data["qualifying_reasons"] == ["already deferred"]
