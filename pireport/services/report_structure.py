"""
Report Structuring / Grouping

Turns the final item set into the ordered, grouped output the rendering
layer consumes, and applies per-field display policies from a saved report
layout.

Ordering:
    - no order map: groups sorted alphabetically
    - order map: groups sorted by rank, unranked values last (rank 999),
      ties alphabetical
    - items inside a group sorted by key
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from pireport.core.exceptions import ValidationError
from pireport.services.change_detail import ChangeDetail
from pireport.services.dependency_visibility import DependencyVisibility
from pireport.services.report_types import (
    ClassificationRecord,
    DependencyItem,
    TrackedItem,
)

logger = logging.getLogger(__name__)

UNASSIGNED = "Unassigned"
UNRANKED = 999

# Fields a layout may group by or filter on
GROUPABLE_FIELDS = ("portfolio", "commitment", "value_stream", "risk_rating", "category")


# ═════════════════════════════════════════════════════════════════════════════
# Field display policies
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class FieldPolicy:
    """Display and ordering policy for one field.

    ``display_map`` hides values mapped to False; values not listed stay
    visible. ``order_map`` ranks values for grouping.
    """
    display_map: Mapping[str, bool] = field(default_factory=dict)
    order_map: Mapping[str, int] = field(default_factory=dict)

    @property
    def has_custom_order(self) -> bool:
        return bool(self.order_map)

    def is_displayed(self, value: str) -> bool:
        return self.display_map.get(value, True) is not False

    def rank(self, value: str) -> int:
        return self.order_map.get(value, UNRANKED)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "FieldPolicy":
        data = data or {}
        display = data.get("display_map") or {}
        order = data.get("order_map") or {}
        if not isinstance(display, Mapping) or not isinstance(order, Mapping):
            raise ValidationError("display_map and order_map must be objects")
        try:
            order_map = {str(k): int(v) for k, v in order.items()}
        except (TypeError, ValueError):
            raise ValidationError("order_map ranks must be integers") from None
        return cls(
            display_map={str(k): bool(v) for k, v in display.items()},
            order_map=order_map,
        )

    def to_dict(self) -> dict:
        return {"display_map": dict(self.display_map), "order_map": dict(self.order_map)}


def parse_field_policies(data: Mapping[str, Any] | None) -> dict[str, FieldPolicy]:
    """Validate a ``{field_name: {display_map, order_map}}`` mapping."""
    policies: dict[str, FieldPolicy] = {}
    for name, value in (data or {}).items():
        if name not in GROUPABLE_FIELDS:
            raise ValidationError(
                f"Unknown field {name!r}",
                details={"allowed": list(GROUPABLE_FIELDS)},
            )
        policies[name] = FieldPolicy.from_dict(value)
    return policies


def apply_field_policies(
    items: Iterable[TrackedItem],
    policies: Mapping[str, FieldPolicy],
) -> list[TrackedItem]:
    """Drop items whose value for any configured field is hidden."""
    kept = []
    for item in items:
        if all(p.is_displayed(item.field_value(name) or UNASSIGNED) for name, p in policies.items()):
            kept.append(item)
    return kept


def order_groups(names: Iterable[str], policy: FieldPolicy | None) -> list[str]:
    if policy is not None and policy.has_custom_order:
        return sorted(names, key=lambda n: (policy.rank(n), n))
    return sorted(names)


# ═════════════════════════════════════════════════════════════════════════════
# Output structure
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class ReportDependency:
    item: DependencyItem
    visibility: DependencyVisibility
    is_bypass: bool = False

    def to_dict(self) -> dict:
        data = self.item.to_dict()
        data.update(self.visibility.to_dict())
        data["is_bypass"] = self.is_bypass
        return data


@dataclass
class ReportItem:
    item: TrackedItem
    record: ClassificationRecord
    change_detail: ChangeDetail
    dependencies: list[ReportDependency] = field(default_factory=list)
    is_bypass: bool = False

    def to_dict(self) -> dict:
        data = self.item.to_dict()
        data["badge"] = self.record.badge.value
        data["classification"] = self.record.to_dict()
        data["changes"] = self.change_detail.to_dict()
        data["dependencies"] = [d.to_dict() for d in self.dependencies]
        data["is_bypass"] = self.is_bypass
        return data


@dataclass
class ReportGroup:
    name: str
    items: list[ReportItem] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"name": self.name, "items": [i.to_dict() for i in self.items]}


def group_items(
    items: Iterable[ReportItem],
    group_by: str,
    policy: FieldPolicy | None = None,
) -> list[ReportGroup]:
    """Group by ``group_by`` field value ("Unassigned" when blank)."""
    if group_by not in GROUPABLE_FIELDS:
        raise ValidationError(
            f"Cannot group by {group_by!r}",
            details={"allowed": list(GROUPABLE_FIELDS)},
        )

    buckets: dict[str, list[ReportItem]] = {}
    for entry in items:
        name = entry.item.field_value(group_by) or UNASSIGNED
        buckets.setdefault(name, []).append(entry)

    groups = [
        ReportGroup(name=name, items=sorted(buckets[name], key=lambda e: e.item.key))
        for name in order_groups(buckets, policy)
    ]
    logger.debug("Grouped %d groups by %s", len(groups), group_by)
    return groups
