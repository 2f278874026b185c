"""
Snapshot domain model.

Models:
    - IterationSnapshot: header per (pi_number, iteration); closed snapshots
      are read-only.
    - SnapshotItem: one epic or dependency record as exported by the tracker.
"""

from datetime import UTC, datetime

from pireport.models import db
from pireport.services.report_types import (
    DependencyItem,
    IssueType,
    TrackedItem,
    WorkItem,
    parse_commitment,
    parse_inclusion_flag,
    parse_risk_rating,
)

# Columns copied one-to-one between SnapshotItem and the record dataclasses
_TEXT_COLUMNS = (
    "summary", "status", "risk_note", "iteration_label", "depends_on",
    "fix_versions", "program_increment", "portfolio", "category",
    "value_stream", "resolution",
)


class IterationSnapshot(db.Model):
    """Header row for the tracker export of one iteration."""

    __tablename__ = "iteration_snapshots"
    __table_args__ = (
        db.UniqueConstraint("pi_number", "iteration", name="uq_snapshot_pi_iteration"),
    )

    id = db.Column(db.Integer, primary_key=True)
    pi_number = db.Column(db.Integer, nullable=False, index=True)
    iteration = db.Column(db.Integer, nullable=False)
    item_count = db.Column(db.Integer, nullable=False, default=0)
    dependency_count = db.Column(db.Integer, nullable=False, default=0)
    captured_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )
    closed_at = db.Column(
        db.DateTime(timezone=True), nullable=True,
        comment="Set once the iteration is closed; the snapshot is read-only after",
    )

    items = db.relationship(
        "SnapshotItem", backref="snapshot", lazy="select",
        cascade="all, delete-orphan", order_by="SnapshotItem.id",
    )

    @property
    def is_closed(self) -> bool:
        return self.closed_at is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "pi_number": self.pi_number,
            "iteration": self.iteration,
            "item_count": self.item_count,
            "dependency_count": self.dependency_count,
            "is_closed": self.is_closed,
            "captured_at": self.captured_at.isoformat() if self.captured_at else None,
            "closed_at": self.closed_at.isoformat() if self.closed_at else None,
        }

    def __repr__(self):
        return f"<IterationSnapshot PI {self.pi_number} / Iteration {self.iteration}>"


class SnapshotItem(db.Model):
    """One epic or dependency row of a snapshot."""

    __tablename__ = "snapshot_items"
    __table_args__ = (
        db.UniqueConstraint("snapshot_id", "key", name="uq_snapshot_item_key"),
        db.Index("idx_snapshot_item_parent", "snapshot_id", "parent_key"),
    )

    id = db.Column(db.Integer, primary_key=True)
    snapshot_id = db.Column(
        db.Integer,
        db.ForeignKey("iteration_snapshots.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    key = db.Column(db.String(64), nullable=False)
    issue_type = db.Column(db.String(20), nullable=False, comment="Epic | Dependency")
    parent_key = db.Column(db.String(64), default="", comment="Dependencies only")
    parent_initiative = db.Column(db.String(255), default="", comment="Epics only")

    summary = db.Column(db.Text, default="")
    status = db.Column(db.String(50), default="")
    risk_rating = db.Column(db.String(10), default="", comment="'' | Green | Amber | Red")
    risk_note = db.Column(db.Text, default="")
    commitment = db.Column(db.String(30), default="")
    iteration_label = db.Column(db.String(100), default="")
    depends_on = db.Column(db.String(255), default="")
    fix_versions = db.Column(db.String(255), default="")
    program_increment = db.Column(db.String(50), default="")
    portfolio = db.Column(db.String(255), default="")
    category = db.Column(db.String(100), default="")
    value_stream = db.Column(db.String(255), default="")
    governance = db.Column(db.String(5), default="", comment="'' | Yes | No")
    resolution = db.Column(db.String(50), default="")

    @classmethod
    def from_record(cls, record: WorkItem) -> "SnapshotItem":
        row = cls(
            key=record.key,
            issue_type=record.issue_type.value,
            risk_rating=record.risk_rating.value,
            commitment=record.commitment.value,
            governance=record.governance.value,
            parent_key=getattr(record, "parent_key", ""),
            parent_initiative=getattr(record, "parent_initiative", ""),
        )
        for name in _TEXT_COLUMNS:
            setattr(row, name, getattr(record, name))
        return row

    def to_record(self) -> TrackedItem | DependencyItem:
        kwargs = {name: getattr(self, name) or "" for name in _TEXT_COLUMNS}
        kwargs.update(
            key=self.key,
            risk_rating=parse_risk_rating(self.risk_rating),
            commitment=parse_commitment(self.commitment),
            governance=parse_inclusion_flag(self.governance),
        )
        if self.issue_type == IssueType.DEPENDENCY.value:
            return DependencyItem(parent_key=self.parent_key or "", **kwargs)
        return TrackedItem(parent_initiative=self.parent_initiative or "", **kwargs)

    def to_dict(self) -> dict:
        return self.to_record().to_dict()

    def __repr__(self):
        return f"<SnapshotItem {self.key} ({self.issue_type})>"
