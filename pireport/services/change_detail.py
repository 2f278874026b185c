"""
Change Detail Builder

Field-level before/after comparison of an item against its record in the
previous iteration, for display (strikethrough / highlight) by the
rendering layer. Independent of any visibility decision.

Noise suppression:
    - blank -> green rating is not a rating change
    - blank -> "green" / "on track" note is not a note change
    - iteration / fix version / depends-on changes only count when the
      previous value was filled in

Usage:
    from pireport.services.change_detail import build_change_detail
    detail = build_change_detail(current, previous, iteration=3)
    detail.iteration_pulled_in
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from pireport.services.report_types import (
    COMMITTED_STATES,
    RiskRating,
    WorkItem,
    extract_iteration_number,
)

logger = logging.getLogger(__name__)

_STATUS_ONLY_NOTES = frozenset({"green", "on track", "no issues"})
_STATUS_ONLY_PREFIXES = ("green -", "green:")


def is_status_only_note(note: str) -> bool:
    """True for notes that merely restate a green status."""
    text = (note or "").strip().lower()
    return text in _STATUS_ONLY_NOTES or text.startswith(_STATUS_ONLY_PREFIXES)


def is_blank_to_green(previous: RiskRating, current: RiskRating) -> bool:
    return previous is RiskRating.NONE and current is RiskRating.GREEN


def is_blank_to_status_only_note(previous: str, current: str) -> bool:
    return not (previous or "").strip() and is_status_only_note(current)


@dataclass
class RiskNoteEntry:
    iteration: int
    note: str
    is_current: bool

    def to_dict(self) -> dict:
        return {"iteration": self.iteration, "note": self.note, "is_current": self.is_current}


@dataclass
class ChangeDetail:
    """Display-oriented diff of one item between two iterations."""
    has_changes: bool = False

    iteration_changed: bool = False
    iteration_pulled_in: bool = False
    iteration_pushed_out: bool = False
    previous_iteration: str | None = None
    current_iteration: str | None = None

    rag_changed: bool = False
    rag_mitigated: bool = False
    rag_newly_at_risk: bool = False
    rag_unchanged_from_previous: bool = False
    previous_rag: str | None = None
    current_rag: str | None = None

    rag_note_changed: bool = False
    previous_rag_note: str | None = None
    current_rag_note: str | None = None
    rag_notes: list[RiskNoteEntry] = field(default_factory=list)

    depends_on_changed: bool = False
    previous_depends_on: str | None = None
    current_depends_on: str | None = None

    fix_versions: str | None = None
    fix_versions_changed: bool = False
    previous_fix_versions: str | None = None
    current_fix_versions: str | None = None

    commitment_changed: bool = False
    commitment_to_committed: bool = False
    commitment_from_committed: bool = False
    previous_commitment: str | None = None
    current_commitment: str | None = None

    program_increment_changed: bool = False
    program_increment_from_blank: bool = False
    previous_program_increment: str | None = None
    current_program_increment: str | None = None

    @property
    def changed_fields(self) -> list[str]:
        flags = (
            ("iteration", self.iteration_changed),
            ("rag", self.rag_changed),
            ("rag_note", self.rag_note_changed),
            ("depends_on", self.depends_on_changed),
            ("fix_versions", self.fix_versions_changed),
            ("commitment", self.commitment_changed),
            ("program_increment", self.program_increment_changed),
        )
        return [name for name, changed in flags if changed]

    def to_dict(self) -> dict:
        return {
            "has_changes": self.has_changes,
            "changed_fields": self.changed_fields,
            "iteration": {
                "changed": self.iteration_changed,
                "pulled_in": self.iteration_pulled_in,
                "pushed_out": self.iteration_pushed_out,
                "previous": self.previous_iteration,
                "current": self.current_iteration,
            },
            "rag": {
                "changed": self.rag_changed,
                "mitigated": self.rag_mitigated,
                "newly_at_risk": self.rag_newly_at_risk,
                "unchanged_from_previous": self.rag_unchanged_from_previous,
                "previous": self.previous_rag,
                "current": self.current_rag,
            },
            "rag_note": {
                "changed": self.rag_note_changed,
                "previous": self.previous_rag_note,
                "current": self.current_rag_note,
                "history": [n.to_dict() for n in self.rag_notes],
            },
            "depends_on": {
                "changed": self.depends_on_changed,
                "previous": self.previous_depends_on,
                "current": self.current_depends_on,
            },
            "fix_versions": {
                "value": self.fix_versions,
                "changed": self.fix_versions_changed,
                "previous": self.previous_fix_versions,
                "current": self.current_fix_versions,
            },
            "commitment": {
                "changed": self.commitment_changed,
                "to_committed": self.commitment_to_committed,
                "from_committed": self.commitment_from_committed,
                "previous": self.previous_commitment,
                "current": self.current_commitment,
            },
            "program_increment": {
                "changed": self.program_increment_changed,
                "from_blank": self.program_increment_from_blank,
                "previous": self.previous_program_increment,
                "current": self.current_program_increment,
            },
        }


def _apply_iteration(detail: ChangeDetail, key: str, prev_label: str, curr_label: str) -> None:
    if curr_label == prev_label or not prev_label:
        return
    detail.has_changes = True
    detail.iteration_changed = True
    detail.previous_iteration = prev_label
    detail.current_iteration = curr_label

    prev_num = extract_iteration_number(prev_label)
    curr_num = extract_iteration_number(curr_label)
    if prev_num is None or curr_num is None:
        logger.debug("%s: iteration %r -> %r (direction unknown)", key, prev_label, curr_label)
        return
    if curr_num < prev_num:
        detail.iteration_pulled_in = True
    elif curr_num > prev_num:
        detail.iteration_pushed_out = True


def _apply_rating(detail: ChangeDetail, previous: WorkItem, current: WorkItem, iteration: int) -> None:
    prev_rating, curr_rating = previous.risk_rating, current.risk_rating

    if curr_rating is not prev_rating and not is_blank_to_green(prev_rating, curr_rating):
        detail.has_changes = True
        detail.rag_changed = True
        detail.previous_rag = prev_rating.value
        detail.current_rag = curr_rating.value
        if prev_rating.is_at_risk and curr_rating is RiskRating.GREEN:
            detail.rag_mitigated = True
        elif curr_rating.is_at_risk and not prev_rating.is_at_risk:
            detail.rag_newly_at_risk = True
    elif curr_rating.is_at_risk and curr_rating is prev_rating:
        detail.rag_unchanged_from_previous = True

    prev_note, curr_note = previous.risk_note, current.risk_note
    if curr_note != prev_note and not is_blank_to_status_only_note(prev_note, curr_note):
        detail.has_changes = True
        detail.rag_note_changed = True
        detail.previous_rag_note = prev_note
        detail.current_rag_note = curr_note

    if not curr_rating.is_at_risk:
        return
    if curr_note:
        detail.rag_notes.append(RiskNoteEntry(iteration=iteration, note=curr_note, is_current=True))
    if prev_note and prev_note != curr_note and (detail.rag_note_changed or prev_rating.is_at_risk):
        detail.rag_notes.append(RiskNoteEntry(iteration=iteration - 1, note=prev_note, is_current=False))


def _apply_commitment(detail: ChangeDetail, previous: WorkItem, current: WorkItem) -> None:
    if current.commitment is previous.commitment:
        return
    detail.has_changes = True
    detail.commitment_changed = True
    detail.previous_commitment = previous.commitment.value
    detail.current_commitment = current.commitment.value

    was_committed = previous.commitment in COMMITTED_STATES
    is_committed = current.commitment in COMMITTED_STATES
    if is_committed and not was_committed:
        detail.commitment_to_committed = True
    elif was_committed and not is_committed:
        detail.commitment_from_committed = True


def build_change_detail(current: WorkItem, previous: WorkItem | None, iteration: int) -> ChangeDetail:
    """Compare every tracked field of ``current`` against ``previous``.

    A missing previous record compares against blanks, so a first-seen item
    only reports fields that are set (commitment, program increment, notes).
    """
    prev = previous if previous is not None else WorkItem(key=current.key)
    detail = ChangeDetail()

    _apply_iteration(detail, current.key, prev.iteration_label, current.iteration_label)
    _apply_rating(detail, prev, current, iteration)

    if current.depends_on != prev.depends_on and prev.depends_on:
        detail.depends_on_changed = True
        detail.previous_depends_on = prev.depends_on
        detail.current_depends_on = current.depends_on

    if current.fix_versions:
        detail.fix_versions = current.fix_versions
        detail.current_fix_versions = current.fix_versions
    if current.fix_versions != prev.fix_versions and prev.fix_versions:
        detail.has_changes = True
        detail.fix_versions_changed = True
        detail.previous_fix_versions = prev.fix_versions
        detail.current_fix_versions = current.fix_versions

    _apply_commitment(detail, prev, current)

    if current.program_increment != prev.program_increment:
        detail.has_changes = True
        detail.program_increment_changed = True
        detail.previous_program_increment = prev.program_increment
        detail.current_program_increment = current.program_increment
        detail.program_increment_from_blank = not prev.program_increment

    return detail
