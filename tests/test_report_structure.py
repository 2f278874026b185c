"""
Tests for report structuring: field policies, group ordering, grouping.
"""

import pytest

from pireport.core.exceptions import ValidationError
from pireport.services.change_detail import ChangeDetail
from pireport.services.report_structure import (
    UNASSIGNED,
    UNRANKED,
    FieldPolicy,
    ReportItem,
    apply_field_policies,
    group_items,
    order_groups,
    parse_field_policies,
)
from pireport.services.report_types import ClassificationRecord, Commitment, TrackedItem


def _entry(key, **kw):
    return ReportItem(
        item=TrackedItem(key=key, **kw),
        record=ClassificationRecord(key=key, iteration=2),
        change_detail=ChangeDetail(),
    )


class TestFieldPolicy:
    def test_display_map_hides_only_false(self):
        policy = FieldPolicy(display_map={"Deferred": False, "Committed": True})
        assert not policy.is_displayed("Deferred")
        assert policy.is_displayed("Committed")
        assert policy.is_displayed("Traded")

    def test_rank_defaults_to_unranked(self):
        policy = FieldPolicy(order_map={"Payments": 1})
        assert policy.rank("Payments") == 1
        assert policy.rank("Lending") == UNRANKED

    def test_from_dict_coerces_ranks(self):
        policy = FieldPolicy.from_dict({"order_map": {"A": "2"}})
        assert policy.order_map == {"A": 2}
        assert policy.has_custom_order

    def test_from_dict_rejects_bad_rank(self):
        with pytest.raises(ValidationError):
            FieldPolicy.from_dict({"order_map": {"A": "first"}})

    def test_from_dict_rejects_non_mapping(self):
        with pytest.raises(ValidationError):
            FieldPolicy.from_dict({"display_map": ["A"]})

    def test_parse_unknown_field(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_field_policies({"summary": {}})
        assert "portfolio" in exc_info.value.details["allowed"]


class TestApplyFieldPolicies:
    def test_hidden_values_drop_items(self):
        items = [
            TrackedItem(key="E-1", commitment=Commitment.COMMITTED),
            TrackedItem(key="E-2", commitment=Commitment.DEFERRED),
            TrackedItem(key="E-3"),
        ]
        policies = {"commitment": FieldPolicy(display_map={"Deferred": False, UNASSIGNED: False})}
        assert [i.key for i in apply_field_policies(items, policies)] == ["E-1"]

    def test_no_policies_keeps_everything(self):
        items = [TrackedItem(key="E-1")]
        assert apply_field_policies(items, {}) == items


class TestOrdering:
    def test_alphabetical_by_default(self):
        assert order_groups(["b", "C", "a"], None) == ["C", "a", "b"]

    def test_explicit_rank_with_alphabetical_ties(self):
        policy = FieldPolicy(order_map={"Zeta": 1, "Beta": 2, "Alpha": 2})
        assert order_groups(["Gamma", "Alpha", "Zeta", "Beta", "Delta"], policy) == [
            "Zeta", "Alpha", "Beta", "Delta", "Gamma",
        ]


class TestGroupItems:
    def test_groups_and_sorts_items(self):
        entries = [
            _entry("E-3", portfolio="Payments"),
            _entry("E-1", portfolio="Payments"),
            _entry("E-2", portfolio=""),
            _entry("E-4", portfolio="Lending"),
        ]
        groups = group_items(entries, "portfolio")
        assert [g.name for g in groups] == ["Lending", "Payments", UNASSIGNED]
        assert [e.item.key for e in groups[1].items] == ["E-1", "E-3"]

    def test_group_by_enum_field(self):
        groups = group_items([_entry("E-1", commitment=Commitment.COMMITTED)], "commitment")
        assert groups[0].name == "Committed"

    def test_invalid_group_by(self):
        with pytest.raises(ValidationError):
            group_items([], "summary")

    def test_to_dict(self):
        data = group_items([_entry("E-1", portfolio="Payments")], "portfolio")[0].to_dict()
        assert data["name"] == "Payments"
        assert data["items"][0]["badge"] == "NONE"
        assert data["items"][0]["dependencies"] == []
