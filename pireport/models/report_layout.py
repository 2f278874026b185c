"""
Report layout model.

Models:
    - ReportLayout: saved grouping field, per-field display/order policies
      and optional governance overrides, referenced by name from report
      requests.
"""

import json
from datetime import UTC, datetime

from pireport.models import db


def _loads(text: str | None, default):
    try:
        return json.loads(text) if text else default
    except (json.JSONDecodeError, TypeError):
        return default


class ReportLayout(db.Model):
    __tablename__ = "report_layouts"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    description = db.Column(db.Text, default="")
    group_by = db.Column(db.String(30), nullable=False, default="portfolio")
    field_policies_json = db.Column(
        db.Text, default="{}",
        comment="JSON: {field: {display_map: {value: bool}, order_map: {value: rank}}}",
    )
    governance_json = db.Column(
        db.Text, default="{}",
        comment="JSON: {excluded_categories, exclusion_bypass_prefixes, show_all_portfolios}",
    )
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    @property
    def field_policies(self) -> dict:
        return _loads(self.field_policies_json, {})

    @field_policies.setter
    def field_policies(self, value: dict) -> None:
        self.field_policies_json = json.dumps(value or {})

    @property
    def governance(self) -> dict:
        return _loads(self.governance_json, {})

    @governance.setter
    def governance(self, value: dict) -> None:
        self.governance_json = json.dumps(value or {})

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "group_by": self.group_by,
            "field_policies": self.field_policies,
            "governance": self.governance,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<ReportLayout {self.name}>"
