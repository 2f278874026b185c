"""
Governance Filter

Drops items that fail organisational inclusion policy, then sets aside
duplicates and "show all" portfolio items before the changes-only filter.

Rules, per item:
    1. Explicit governance flag "No"              -> drop
    2. Dependency whose parent's flag is "No"     -> drop
    3. Category in the exclusion set (case-insensitive)
       and portfolio not starting with a bypass prefix -> drop

The policy is an explicit value built from app config (and optionally a
saved report layout); nothing here reads global state.

Usage:
    from pireport.services.governance_filter import GovernancePolicy, apply_governance_filter
    policy = GovernancePolicy.from_config(current_app.config)
    eligible = apply_governance_filter(snapshot, records, policy)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping

from pireport.services.report_types import (
    ClassificationRecord,
    DependencyItem,
    InclusionFlag,
    Snapshot,
    TrackedItem,
    WorkItem,
)

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDED_CATEGORIES = ("klo", "quality", "klo/quality")
DEFAULT_EXCLUSION_BYPASS_PREFIXES = ("INFOSEC",)
DEFAULT_SHOW_ALL_PORTFOLIOS = (
    "RAC: REGULATORY & COMPLIANCE",
    "RCM AUTOMATION",
    "INFOSEC",
)


def _as_list(value: Any) -> list[str]:
    """Accept a list or a comma-separated string."""
    if value is None:
        return []
    if isinstance(value, str):
        parts = value.split(",")
    else:
        parts = list(value)
    return [str(p).strip() for p in parts if str(p).strip()]


@dataclass(frozen=True)
class GovernancePolicy:
    """Category exclusion and bypass lists applied to every report run."""
    excluded_categories: frozenset[str] = frozenset(DEFAULT_EXCLUDED_CATEGORIES)
    exclusion_bypass_prefixes: tuple[str, ...] = DEFAULT_EXCLUSION_BYPASS_PREFIXES
    show_all_portfolios: tuple[str, ...] = DEFAULT_SHOW_ALL_PORTFOLIOS

    @classmethod
    def from_config(cls, config: Mapping[str, Any], overrides: Mapping[str, Any] | None = None) -> "GovernancePolicy":
        """Build from app config keys, then apply per-layout overrides.

        Override keys mirror the dataclass field names; a missing or empty
        override keeps the configured value.
        """
        excluded = _as_list(config.get("GOVERNANCE_EXCLUDED_CATEGORIES", DEFAULT_EXCLUDED_CATEGORIES))
        prefixes = _as_list(config.get("GOVERNANCE_EXCLUSION_BYPASS_PREFIXES", DEFAULT_EXCLUSION_BYPASS_PREFIXES))
        show_all = _as_list(config.get("GOVERNANCE_SHOW_ALL_PORTFOLIOS", DEFAULT_SHOW_ALL_PORTFOLIOS))

        overrides = overrides or {}
        if overrides.get("excluded_categories"):
            excluded = _as_list(overrides["excluded_categories"])
        if overrides.get("exclusion_bypass_prefixes"):
            prefixes = _as_list(overrides["exclusion_bypass_prefixes"])
        if overrides.get("show_all_portfolios"):
            show_all = _as_list(overrides["show_all_portfolios"])

        return cls(
            excluded_categories=frozenset(c.lower() for c in excluded),
            exclusion_bypass_prefixes=tuple(p.upper() for p in prefixes),
            show_all_portfolios=tuple(show_all),
        )

    def is_category_excluded(self, item: WorkItem) -> bool:
        category = item.category.strip().lower()
        if category not in self.excluded_categories:
            return False
        portfolio = item.portfolio.strip().upper()
        return not portfolio.startswith(self.exclusion_bypass_prefixes)

    def is_show_all_portfolio(self, portfolio: str) -> bool:
        text = (portfolio or "").strip().upper()
        if not text:
            return False
        return any(keyword.upper() in text for keyword in self.show_all_portfolios)

    def to_dict(self) -> dict:
        return {
            "excluded_categories": sorted(self.excluded_categories),
            "exclusion_bypass_prefixes": list(self.exclusion_bypass_prefixes),
            "show_all_portfolios": list(self.show_all_portfolios),
        }


# ═════════════════════════════════════════════════════════════════════════════
# Governance filter
# ═════════════════════════════════════════════════════════════════════════════

def _inclusion_flag(item: WorkItem, records: Mapping[str, ClassificationRecord]) -> InclusionFlag:
    record = records.get(item.key)
    if record is not None and record.include_in_governance is not InclusionFlag.UNSPECIFIED:
        return record.include_in_governance
    return item.governance


def apply_governance_filter(
    snapshot: Snapshot,
    records: Mapping[str, ClassificationRecord],
    policy: GovernancePolicy,
) -> Snapshot:
    """Return the subset of ``snapshot`` eligible for any report.

    Pure set reduction: order is preserved, nothing is added.
    """
    items_by_key = snapshot.items_by_key()

    def parent_excluded(dep: DependencyItem) -> bool:
        parent = items_by_key.get(dep.parent_key)
        if parent is not None:
            return _inclusion_flag(parent, records) is InclusionFlag.EXCLUDE
        record = records.get(dep.parent_key)
        return record is not None and record.is_excluded_by_governance

    def eligible(item: WorkItem) -> bool:
        if _inclusion_flag(item, records) is InclusionFlag.EXCLUDE:
            return False
        if isinstance(item, DependencyItem) and parent_excluded(item):
            return False
        return not policy.is_category_excluded(item)

    items = tuple(i for i in snapshot.items if eligible(i))
    dependencies = tuple(d for d in snapshot.dependencies if eligible(d))

    excluded = len(snapshot.items) + len(snapshot.dependencies) - len(items) - len(dependencies)
    if excluded:
        logger.info("Governance filter: excluded %d items", excluded)
    return replace(snapshot, items=items, dependencies=dependencies)


# ═════════════════════════════════════════════════════════════════════════════
# Duplicates and show-all portfolios
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class BypassSplit:
    """Result of setting aside duplicates and show-all portfolio items."""
    regular: Snapshot
    bypass_items: tuple[TrackedItem, ...] = ()
    bypass_dependencies: tuple[DependencyItem, ...] = ()
    duplicate_keys: frozenset[str] = field(default_factory=frozenset)


def _duplicate_keys(items: Iterable[TrackedItem]) -> frozenset[str]:
    return frozenset(i.key for i in items if i.is_duplicate)


def separate_bypass(snapshot: Snapshot, policy: GovernancePolicy) -> BypassSplit:
    """Drop duplicate epics (and their dependencies); split off show-all items.

    Show-all portfolio items skip the changes-only filter and are merged
    back at the end of the pipeline.
    """
    duplicates = _duplicate_keys(snapshot.items)
    for key in sorted(duplicates):
        logger.debug("Excluding %s: resolution is Duplicate", key)

    regular_items: list[TrackedItem] = []
    regular_deps: list[DependencyItem] = []
    bypass_items: list[TrackedItem] = []
    bypass_deps: list[DependencyItem] = []

    for item in snapshot.items:
        if item.key in duplicates:
            continue
        target = bypass_items if policy.is_show_all_portfolio(item.portfolio) else regular_items
        target.append(item)

    for dep in snapshot.dependencies:
        if dep.parent_key in duplicates:
            continue
        target = bypass_deps if policy.is_show_all_portfolio(dep.portfolio) else regular_deps
        target.append(dep)

    if bypass_items:
        logger.info(
            "Show-all portfolios (%s): %d epics + %d dependencies",
            ", ".join(policy.show_all_portfolios), len(bypass_items), len(bypass_deps),
        )
    if duplicates:
        logger.info("Excluded %d duplicate epics", len(duplicates))

    return BypassSplit(
        regular=replace(snapshot, items=tuple(regular_items), dependencies=tuple(regular_deps)),
        bypass_items=tuple(bypass_items),
        bypass_dependencies=tuple(bypass_deps),
        duplicate_keys=duplicates,
    )
