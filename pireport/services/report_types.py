"""
Report Types - typed records for snapshots and derived classifications.

A snapshot holds the epics ("tracked items") and their dependencies as the
issue tracker exported them for one iteration of a program increment (PI).
Raw rows are validated once, here, into frozen dataclasses; every later
stage works on these types only.

Usage:
    from pireport.services.report_types import Badge, parse_snapshot_rows

    snapshot = parse_snapshot_rows(15, 3, rows)
    snapshot.items_by_key()["E-1"].target_iteration   # -> 3
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Iterable, Mapping

from pireport.core.exceptions import ValidationError

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Enums
# ═════════════════════════════════════════════════════════════════════════════

class Badge(str, Enum):
    """Single status badge per (item, iteration)."""
    NEW = "NEW"
    CHG = "CHG"
    DONE = "DONE"
    PENDING = "PENDING"
    DEF = "DEF"
    CANCELED = "CANCELED"
    OVERDUE = "OVERDUE"
    ATRISK = "ATRISK"
    NONE = "NONE"


class DependencyBadge(str, Enum):
    """Display badges attached to a visible dependency."""
    RISK = "RISK"
    CHG = "CHG"
    DONE = "DONE"
    DEF = "DEF"
    CANCELED = "CANCELED"


class IssueType(str, Enum):
    EPIC = "Epic"
    DEPENDENCY = "Dependency"


class RiskRating(str, Enum):
    """RAG rating, ordered none < green < amber < red."""
    NONE = ""
    GREEN = "Green"
    AMBER = "Amber"
    RED = "Red"

    @property
    def rank(self) -> int:
        return _RATING_RANK[self]

    @property
    def is_at_risk(self) -> bool:
        return self in (RiskRating.AMBER, RiskRating.RED)


_RATING_RANK = {
    RiskRating.NONE: 0,
    RiskRating.GREEN: 1,
    RiskRating.AMBER: 2,
    RiskRating.RED: 3,
}


class Commitment(str, Enum):
    """PI commitment state of an item."""
    COMMITTED = "Committed"
    COMMITTED_AFTER_PLAN = "Committed After Plan"
    NOT_COMMITTED = "Not Committed"
    DEFERRED = "Deferred"
    CANCELED = "Canceled"
    TRADED = "Traded"
    BLANK = ""


COMMITTED_STATES = frozenset({Commitment.COMMITTED, Commitment.COMMITTED_AFTER_PLAN})
DEFERRED_STATES = frozenset({Commitment.DEFERRED, Commitment.TRADED})
# Dependencies treat "Not Committed" as deferred; "Traded" is not.
DEPENDENCY_DEFERRED_STATES = frozenset({Commitment.NOT_COMMITTED, Commitment.DEFERRED})
CANCELED_STATES = frozenset({Commitment.CANCELED})


class InclusionFlag(str, Enum):
    """Explicit governance-inclusion tri-state."""
    INCLUDE = "Yes"
    EXCLUDE = "No"
    UNSPECIFIED = ""


# Tracker statuses (compared upper-cased)
DONE_STATUSES = frozenset({"DONE", "CLOSED"})
PENDING_ACCEPTANCE_STATUS = "PENDING ACCEPTANCE"


# ═════════════════════════════════════════════════════════════════════════════
# Value parsing
# ═════════════════════════════════════════════════════════════════════════════

_ITERATION_RE = re.compile(r"iteration\s*(\d+)", re.IGNORECASE)
_SINGLE_NUMBER_RE = re.compile(r"^\D*(\d+)\D*$")


def extract_iteration_number(label: Any) -> int | None:
    """Pull the iteration number out of a free-text label.

    "PI 15 - Iteration 3" -> 3, "3" -> 3, "Iter 4" -> 4.
    Returns None for blank, "unknown" or ambiguous labels.
    """
    if label is None:
        return None
    if isinstance(label, int) and not isinstance(label, bool):
        return label
    text = str(label).strip()
    if not text or "unknown" in text.lower():
        return None
    match = _ITERATION_RE.search(text)
    if match:
        return int(match.group(1))
    match = _SINGLE_NUMBER_RE.match(text)
    if match:
        return int(match.group(1))
    return None


def _clean(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def parse_risk_rating(value: Any) -> RiskRating:
    text = _clean(value).lower()
    if not text:
        return RiskRating.NONE
    if text in ("amber", "yellow"):
        return RiskRating.AMBER
    if text == "red":
        return RiskRating.RED
    if "green" in text:
        return RiskRating.GREEN
    raise ValueError(f"unknown risk rating {value!r}")


_COMMITMENT_ALIASES = {
    "committed": Commitment.COMMITTED,
    "committed after plan": Commitment.COMMITTED_AFTER_PLAN,
    "committed after planning": Commitment.COMMITTED_AFTER_PLAN,
    "not committed": Commitment.NOT_COMMITTED,
    "deferred": Commitment.DEFERRED,
    "canceled": Commitment.CANCELED,
    "cancelled": Commitment.CANCELED,
    "traded": Commitment.TRADED,
    "": Commitment.BLANK,
}


def parse_commitment(value: Any) -> Commitment:
    text = " ".join(_clean(value).lower().split())
    try:
        return _COMMITMENT_ALIASES[text]
    except KeyError:
        raise ValueError(f"unknown commitment {value!r}") from None


def parse_inclusion_flag(value: Any) -> InclusionFlag:
    if isinstance(value, bool):
        return InclusionFlag.INCLUDE if value else InclusionFlag.EXCLUDE
    text = _clean(value).lower()
    if text in ("yes", "y", "true", "include"):
        return InclusionFlag.INCLUDE
    if text in ("no", "n", "false", "exclude"):
        return InclusionFlag.EXCLUDE
    if not text:
        return InclusionFlag.UNSPECIFIED
    raise ValueError(f"unknown governance flag {value!r}")


# ═════════════════════════════════════════════════════════════════════════════
# Item records
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class WorkItem:
    """Fields shared by epics and dependencies."""
    key: str
    summary: str = ""
    status: str = ""
    risk_rating: RiskRating = RiskRating.NONE
    risk_note: str = ""
    commitment: Commitment = Commitment.BLANK
    iteration_label: str = ""
    depends_on: str = ""
    fix_versions: str = ""
    program_increment: str = ""
    portfolio: str = ""
    category: str = ""
    value_stream: str = ""
    governance: InclusionFlag = InclusionFlag.UNSPECIFIED
    resolution: str = ""

    @property
    def target_iteration(self) -> int | None:
        return extract_iteration_number(self.iteration_label)

    @property
    def normalized_status(self) -> str:
        return self.status.strip().upper()

    @property
    def is_done(self) -> bool:
        return self.normalized_status in DONE_STATUSES

    @property
    def is_pending_acceptance(self) -> bool:
        return self.normalized_status == PENDING_ACCEPTANCE_STATUS

    @property
    def is_deferred(self) -> bool:
        return self.commitment in DEFERRED_STATES

    @property
    def is_dependency_deferred(self) -> bool:
        return self.commitment in DEPENDENCY_DEFERRED_STATES

    @property
    def is_canceled(self) -> bool:
        return self.commitment in CANCELED_STATES

    @property
    def is_at_risk(self) -> bool:
        return self.risk_rating.is_at_risk

    @property
    def is_duplicate(self) -> bool:
        return self.resolution.strip().lower() == "duplicate"

    def is_due_in(self, iteration: int) -> bool:
        """Target iteration is ``iteration`` and the item is still open."""
        target = self.target_iteration
        if target is None or target != iteration:
            return False
        return not (self.is_done or self.is_canceled or self.is_deferred)

    def field_value(self, name: str) -> str:
        """Display value of a field, used for grouping and display policies."""
        value = getattr(self, name)
        if isinstance(value, Enum):
            return value.value
        return str(value)

    def to_dict(self) -> dict:
        data = asdict(self)
        for name, value in data.items():
            if isinstance(value, Enum):
                data[name] = value.value
        data["issue_type"] = self.issue_type.value
        data["target_iteration"] = self.target_iteration
        return data


@dataclass(frozen=True)
class TrackedItem(WorkItem):
    """A parent-level work unit (epic)."""
    parent_initiative: str = ""

    @property
    def issue_type(self) -> IssueType:
        return IssueType.EPIC


@dataclass(frozen=True)
class DependencyItem(WorkItem):
    """A sub-item owned by exactly one epic via ``parent_key``."""
    parent_key: str = ""

    @property
    def issue_type(self) -> IssueType:
        return IssueType.DEPENDENCY


@dataclass(frozen=True)
class Snapshot:
    """Every epic and dependency record of one iteration."""
    pi_number: int
    iteration: int
    items: tuple[TrackedItem, ...] = ()
    dependencies: tuple[DependencyItem, ...] = ()

    def items_by_key(self) -> dict[str, TrackedItem]:
        return {i.key: i for i in self.items}

    def dependencies_by_key(self) -> dict[str, DependencyItem]:
        return {d.key: d for d in self.dependencies}

    def all_by_key(self) -> dict[str, WorkItem]:
        merged: dict[str, WorkItem] = dict(self.items_by_key())
        merged.update(self.dependencies_by_key())
        return merged


# ═════════════════════════════════════════════════════════════════════════════
# Classification record (derived cache entry)
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ClassificationRecord:
    """Badge and timing flags for one (item, iteration)."""
    key: str
    iteration: int
    badge: Badge = Badge.NONE
    status_note: str = ""
    issue_type: IssueType = IssueType.EPIC
    is_new: bool = False
    is_at_risk: bool = False
    is_iteration_risk: bool = False
    closed_this_iteration: bool = False
    deferred_this_iteration: bool = False
    canceled_this_iteration: bool = False
    qualifying_reasons: tuple[str, ...] = ()
    include_in_governance: InclusionFlag = InclusionFlag.UNSPECIFIED
    added_in_iteration: int | None = None

    @property
    def already_closed(self) -> bool:
        return self.badge is Badge.DONE and not self.closed_this_iteration

    @property
    def already_deferred(self) -> bool:
        return self.badge is Badge.DEF and not self.deferred_this_iteration

    @property
    def already_canceled(self) -> bool:
        return self.badge is Badge.CANCELED and not self.canceled_this_iteration

    @property
    def is_pending_closure_this_iteration(self) -> bool:
        return self.badge is Badge.PENDING and (
            "this iteration" in self.status_note or self.closed_this_iteration
        )

    @property
    def already_pending_closure(self) -> bool:
        # closed_this_iteration stands in for a pending-since flag the
        # tracker export does not carry.
        return self.badge is Badge.PENDING and not self.closed_this_iteration

    @property
    def is_excluded_by_governance(self) -> bool:
        return self.include_in_governance is InclusionFlag.EXCLUDE

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "iteration": self.iteration,
            "badge": self.badge.value,
            "status_note": self.status_note,
            "issue_type": self.issue_type.value,
            "is_new": self.is_new,
            "is_at_risk": self.is_at_risk,
            "is_iteration_risk": self.is_iteration_risk,
            "closed_this_iteration": self.closed_this_iteration,
            "deferred_this_iteration": self.deferred_this_iteration,
            "canceled_this_iteration": self.canceled_this_iteration,
            "already_closed": self.already_closed,
            "already_deferred": self.already_deferred,
            "already_canceled": self.already_canceled,
            "pending_closure_this_iteration": self.is_pending_closure_this_iteration,
            "already_pending_closure": self.already_pending_closure,
            "qualifying_reasons": list(self.qualifying_reasons),
            "include_in_governance": self.include_in_governance.value,
            "added_in_iteration": self.added_in_iteration,
        }


# ═════════════════════════════════════════════════════════════════════════════
# Ingestion
# ═════════════════════════════════════════════════════════════════════════════

# Tracker export column names -> record field names
_FIELD_ALIASES: dict[str, str] = {
    "Key": "key",
    "Issue Type": "issue_type",
    "Parent Key": "parent_key",
    "Summary": "summary",
    "Status": "status",
    "RAG": "risk_rating",
    "rag": "risk_rating",
    "RAG Note": "risk_note",
    "rag_note": "risk_note",
    "PI Commitment": "commitment",
    "End Iteration Name": "iteration_label",
    "PI Target Iteration": "iteration_label",
    "Depends on Valuestream": "depends_on",
    "Fix Versions": "fix_versions",
    "Program Increment": "program_increment",
    "Portfolio Initiative": "portfolio",
    "Program Initiative": "parent_initiative",
    "Allocation": "category",
    "Value Stream/Org": "value_stream",
    "Include in Governance": "governance",
    "Resolution": "resolution",
}

_TEXT_FIELDS = (
    "summary", "status", "risk_note", "iteration_label", "depends_on",
    "fix_versions", "program_increment", "portfolio", "category",
    "value_stream", "resolution",
)


def _normalize_row(row: Mapping[str, Any]) -> dict[str, Any]:
    normalized: dict[str, Any] = {}
    for name, value in row.items():
        target = _FIELD_ALIASES.get(name, name)
        # First non-blank wins ("End Iteration Name" over "PI Target Iteration")
        if target in normalized and _clean(normalized[target]):
            continue
        normalized[target] = value
    return normalized


def parse_issue_type(value: Any) -> IssueType | None:
    text = _clean(value).lower()
    if text == "epic":
        return IssueType.EPIC
    if text == "dependency":
        return IssueType.DEPENDENCY
    return None


def parse_work_item(row: Mapping[str, Any]) -> TrackedItem | DependencyItem | None:
    """Validate one raw row.

    Returns None for issue types the report does not track (stories, tasks).
    Raises ValueError on a missing key or an unknown enum value.
    """
    data = _normalize_row(row)
    key = _clean(data.get("key"))
    if not key:
        raise ValueError("key is required")

    issue_type = parse_issue_type(data.get("issue_type") or "Epic")
    if issue_type is None:
        return None

    kwargs: dict[str, Any] = {name: _clean(data.get(name)) for name in _TEXT_FIELDS}
    kwargs["key"] = key
    kwargs["risk_rating"] = parse_risk_rating(data.get("risk_rating"))
    kwargs["commitment"] = parse_commitment(data.get("commitment"))
    kwargs["governance"] = parse_inclusion_flag(data.get("governance"))

    if issue_type is IssueType.DEPENDENCY:
        return DependencyItem(parent_key=_clean(data.get("parent_key")), **kwargs)
    return TrackedItem(parent_initiative=_clean(data.get("parent_initiative")), **kwargs)


def parse_snapshot_rows(pi_number: int, iteration: int, rows: Iterable[Mapping[str, Any]]) -> Snapshot:
    """Validate raw tracker rows into a Snapshot.

    Raises:
        ValidationError: listing every invalid row, keyed by item key (or
            ``row <n>`` when the key itself is missing).
    """
    items: list[TrackedItem] = []
    dependencies: list[DependencyItem] = []
    errors: dict[str, str] = {}
    seen: set[str] = set()
    skipped = 0

    for index, row in enumerate(rows):
        label = _clean(_normalize_row(row).get("key")) or f"row {index}"
        try:
            item = parse_work_item(row)
        except ValueError as exc:
            errors[label] = str(exc)
            continue
        if item is None:
            skipped += 1
            continue
        if item.key in seen:
            errors[item.key] = "duplicate key in snapshot"
            continue
        seen.add(item.key)
        if isinstance(item, DependencyItem):
            dependencies.append(item)
        else:
            items.append(item)

    if errors:
        raise ValidationError(
            f"{len(errors)} invalid record(s) in PI {pi_number} / Iteration {iteration}",
            details=errors,
        )
    if skipped:
        logger.debug("Skipped %d untracked issue type rows", skipped)

    return Snapshot(
        pi_number=pi_number,
        iteration=iteration,
        items=tuple(items),
        dependencies=tuple(dependencies),
    )
