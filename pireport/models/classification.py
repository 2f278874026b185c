"""
Classification cache model.

Models:
    - ClassificationEntry: persisted ClassificationRecord per
      (pi_number, iteration, key). Rewritten wholesale per iteration.
"""

import json
from datetime import UTC, datetime

from pireport.models import db
from pireport.services.report_types import (
    Badge,
    ClassificationRecord,
    IssueType,
    InclusionFlag,
)


class ClassificationEntry(db.Model):
    """Derived badge and timing flags for one item in one iteration."""

    __tablename__ = "classification_entries"
    __table_args__ = (
        db.UniqueConstraint("pi_number", "iteration", "key", name="uq_classification_key"),
        db.Index("idx_classification_iteration", "pi_number", "iteration"),
    )

    id = db.Column(db.Integer, primary_key=True)
    pi_number = db.Column(db.Integer, nullable=False)
    iteration = db.Column(db.Integer, nullable=False)
    key = db.Column(db.String(64), nullable=False)
    issue_type = db.Column(db.String(20), nullable=False, default=IssueType.EPIC.value)

    badge = db.Column(db.String(10), nullable=False, default=Badge.NONE.value)
    status_note = db.Column(db.String(255), default="")
    is_new = db.Column(db.Boolean, nullable=False, default=False)
    is_at_risk = db.Column(db.Boolean, nullable=False, default=False)
    is_iteration_risk = db.Column(db.Boolean, nullable=False, default=False)
    closed_this_iteration = db.Column(db.Boolean, nullable=False, default=False)
    deferred_this_iteration = db.Column(db.Boolean, nullable=False, default=False)
    canceled_this_iteration = db.Column(db.Boolean, nullable=False, default=False)
    qualifying_reasons_json = db.Column(db.Text, default="[]")
    include_in_governance = db.Column(db.String(5), default="", comment="'' | Yes | No")
    added_in_iteration = db.Column(db.Integer, nullable=True)

    computed_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )

    # ── Helpers ──────────────────────────────────────────────────────────

    @property
    def qualifying_reasons(self) -> list:
        try:
            return json.loads(self.qualifying_reasons_json or "[]")
        except (json.JSONDecodeError, TypeError):
            return []

    @classmethod
    def from_record(cls, pi_number: int, record: ClassificationRecord) -> "ClassificationEntry":
        return cls(
            pi_number=pi_number,
            iteration=record.iteration,
            key=record.key,
            issue_type=record.issue_type.value,
            badge=record.badge.value,
            status_note=record.status_note,
            is_new=record.is_new,
            is_at_risk=record.is_at_risk,
            is_iteration_risk=record.is_iteration_risk,
            closed_this_iteration=record.closed_this_iteration,
            deferred_this_iteration=record.deferred_this_iteration,
            canceled_this_iteration=record.canceled_this_iteration,
            qualifying_reasons_json=json.dumps(list(record.qualifying_reasons)),
            include_in_governance=record.include_in_governance.value,
            added_in_iteration=record.added_in_iteration,
        )

    def to_record(self) -> ClassificationRecord:
        return ClassificationRecord(
            key=self.key,
            iteration=self.iteration,
            badge=Badge(self.badge),
            status_note=self.status_note or "",
            issue_type=IssueType(self.issue_type),
            is_new=self.is_new,
            is_at_risk=self.is_at_risk,
            is_iteration_risk=self.is_iteration_risk,
            closed_this_iteration=self.closed_this_iteration,
            deferred_this_iteration=self.deferred_this_iteration,
            canceled_this_iteration=self.canceled_this_iteration,
            qualifying_reasons=tuple(self.qualifying_reasons),
            include_in_governance=InclusionFlag(self.include_in_governance or ""),
            added_in_iteration=self.added_in_iteration,
        )

    def __repr__(self):
        return f"<ClassificationEntry PI {self.pi_number} / It {self.iteration} {self.key}: {self.badge}>"
