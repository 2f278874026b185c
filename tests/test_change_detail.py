"""
Tests for the change detail builder.

Covers:
    - Iteration retarget direction (pulled in / pushed out / unknown)
    - Rating mitigation, newly at risk, blank -> green suppression
    - Risk note noise suppression and note history
    - Commitment direction flags, fix version and program increment changes
"""

from pireport.services.change_detail import (
    build_change_detail,
    is_blank_to_status_only_note,
    is_status_only_note,
)
from pireport.services.report_types import Commitment, RiskRating, TrackedItem


def _epic(**kw):
    return TrackedItem(key="E-5", **kw)


class TestIterationDirection:
    def test_pulled_in(self):
        detail = build_change_detail(
            _epic(iteration_label="Iteration 2"), _epic(iteration_label="Iteration 3"), 3,
        )
        assert detail.iteration_changed
        assert detail.iteration_pulled_in
        assert not detail.iteration_pushed_out
        assert detail.previous_iteration == "Iteration 3"

    def test_pushed_out(self):
        detail = build_change_detail(
            _epic(iteration_label="Iteration 5"), _epic(iteration_label="Iteration 4"), 3,
        )
        assert detail.iteration_pushed_out

    def test_unparseable_label_has_no_direction(self):
        detail = build_change_detail(
            _epic(iteration_label="Backlog"), _epic(iteration_label="Iteration 4"), 3,
        )
        assert detail.iteration_changed
        assert not detail.iteration_pulled_in
        assert not detail.iteration_pushed_out

    def test_first_assignment_is_not_a_change(self):
        detail = build_change_detail(_epic(iteration_label="Iteration 4"), _epic(), 3)
        assert not detail.iteration_changed


class TestRating:
    def test_mitigated(self):
        detail = build_change_detail(
            _epic(risk_rating=RiskRating.GREEN), _epic(risk_rating=RiskRating.RED), 3,
        )
        assert detail.rag_changed and detail.rag_mitigated
        assert (detail.previous_rag, detail.current_rag) == ("Red", "Green")

    def test_newly_at_risk(self):
        detail = build_change_detail(
            _epic(risk_rating=RiskRating.AMBER), _epic(risk_rating=RiskRating.GREEN), 3,
        )
        assert detail.rag_newly_at_risk

    def test_amber_to_red_is_plain_change(self):
        detail = build_change_detail(
            _epic(risk_rating=RiskRating.RED), _epic(risk_rating=RiskRating.AMBER), 3,
        )
        assert detail.rag_changed
        assert not detail.rag_mitigated and not detail.rag_newly_at_risk

    def test_blank_to_green_suppressed(self):
        detail = build_change_detail(_epic(risk_rating=RiskRating.GREEN), _epic(), 3)
        assert not detail.rag_changed
        assert not detail.has_changes

    def test_persistent_red(self):
        item = _epic(risk_rating=RiskRating.RED, risk_note="vendor late")
        detail = build_change_detail(item, item, 3)
        assert detail.rag_unchanged_from_previous
        assert not detail.has_changes
        assert [n.note for n in detail.rag_notes] == ["vendor late"]


class TestRiskNote:
    def test_status_only_notes(self):
        assert is_status_only_note("Green")
        assert is_status_only_note("On Track")
        assert is_status_only_note("green - nothing to report")
        assert not is_status_only_note("Blocked by vendor")
        assert is_blank_to_status_only_note("", "on track")
        assert not is_blank_to_status_only_note("late", "on track")

    def test_blank_to_on_track_suppressed(self):
        detail = build_change_detail(_epic(risk_note="On track"), _epic(), 3)
        assert not detail.rag_note_changed

    def test_note_history_keeps_previous(self):
        detail = build_change_detail(
            _epic(risk_rating=RiskRating.AMBER, risk_note="slipping"),
            _epic(risk_rating=RiskRating.AMBER, risk_note="watching"),
            3,
        )
        assert detail.rag_note_changed
        assert [(n.iteration, n.note, n.is_current) for n in detail.rag_notes] == [
            (3, "slipping", True),
            (2, "watching", False),
        ]

    def test_no_history_when_not_at_risk(self):
        detail = build_change_detail(_epic(risk_note="fine"), _epic(risk_note="meh"), 3)
        assert detail.rag_note_changed
        assert detail.rag_notes == []


class TestOtherFields:
    def test_commitment_to_committed(self):
        detail = build_change_detail(
            _epic(commitment=Commitment.COMMITTED_AFTER_PLAN), _epic(commitment=Commitment.NOT_COMMITTED), 3,
        )
        assert detail.commitment_changed and detail.commitment_to_committed

    def test_commitment_from_committed(self):
        detail = build_change_detail(
            _epic(commitment=Commitment.DEFERRED), _epic(commitment=Commitment.COMMITTED), 3,
        )
        assert detail.commitment_from_committed

    def test_within_committed_superset_has_no_direction(self):
        detail = build_change_detail(
            _epic(commitment=Commitment.COMMITTED_AFTER_PLAN), _epic(commitment=Commitment.COMMITTED), 3,
        )
        assert detail.commitment_changed
        assert not detail.commitment_to_committed and not detail.commitment_from_committed

    def test_fix_versions_always_surfaced(self):
        detail = build_change_detail(_epic(fix_versions="R7"), _epic(fix_versions="R7"), 3)
        assert detail.fix_versions == "R7"
        assert not detail.fix_versions_changed

    def test_fix_versions_change(self):
        detail = build_change_detail(_epic(fix_versions="R8"), _epic(fix_versions="R7"), 3)
        assert detail.fix_versions_changed
        assert detail.changed_fields == ["fix_versions"]

    def test_depends_on_change(self):
        detail = build_change_detail(_epic(depends_on="Team B"), _epic(depends_on="Team A"), 3)
        assert detail.depends_on_changed
        assert "depends_on" in detail.changed_fields

    def test_program_increment_from_blank(self):
        detail = build_change_detail(_epic(program_increment="PI 15"), _epic(), 3)
        assert detail.program_increment_changed and detail.program_increment_from_blank

    def test_missing_previous_compares_against_blanks(self):
        detail = build_change_detail(_epic(commitment=Commitment.COMMITTED, iteration_label="Iteration 3"), None, 3)
        assert detail.commitment_to_committed
        assert not detail.iteration_changed

    def test_to_dict_shape(self):
        data = build_change_detail(
            _epic(iteration_label="Iteration 2"), _epic(iteration_label="Iteration 3"), 3,
        ).to_dict()
        assert data["has_changes"] is True
        assert data["changed_fields"] == ["iteration"]
        assert data["iteration"]["pulled_in"] is True
        assert data["rag_note"]["history"] == []
