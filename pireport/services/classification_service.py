"""
Classification Service

Persisted classification cache plus the "classify iteration" operation that
recomputes it. The cache is recompute-and-overwrite: an iteration's entries
are deleted and rewritten in one flush, never patched.

Usage:
    from pireport.services.classification_service import classify_iteration
    result = classify_iteration(15, 3)
    db.session.commit()
    result.distribution   # {"NEW": 2, "CHG": 5, ...}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping

from pireport.core.exceptions import PreconditionError
from pireport.models import db
from pireport.models.classification import ClassificationEntry
from pireport.services.badge_classifier import badge_distribution, classify_snapshot
from pireport.services.report_types import ClassificationRecord
from pireport.services.snapshot_store import get_snapshot, get_snapshot_header

logger = logging.getLogger(__name__)


def read_classification(pi_number: int, iteration: int) -> dict[str, ClassificationRecord]:
    """Cached records for one iteration keyed by item key (empty if none)."""
    entries = (
        ClassificationEntry.query
        .filter_by(pi_number=pi_number, iteration=iteration)
        .order_by(ClassificationEntry.key)
        .all()
    )
    return {e.key: e.to_record() for e in entries}


def write_classification(
    pi_number: int,
    iteration: int,
    records: Mapping[str, ClassificationRecord],
) -> int:
    """Replace the whole cache of one iteration. Returns rows written."""
    deleted = (
        ClassificationEntry.query
        .filter_by(pi_number=pi_number, iteration=iteration)
        .delete(synchronize_session=False)
    )
    # Old rows must be gone before the unique (pi, iteration, key) rows return
    db.session.flush()
    for key in sorted(records):
        db.session.add(ClassificationEntry.from_record(pi_number, records[key]))
    db.session.flush()

    logger.info(
        "Classification PI %s / Iteration %s: replaced %d entries with %d",
        pi_number, iteration, deleted, len(records),
        extra={"pi_number": pi_number, "iteration": iteration},
    )
    return len(records)


@dataclass(frozen=True)
class ClassifyResult:
    pi_number: int
    iteration: int
    is_baseline: bool
    records: Mapping[str, ClassificationRecord]

    @property
    def distribution(self) -> dict[str, int]:
        return badge_distribution(self.records)

    def to_dict(self) -> dict:
        return {
            "pi_number": self.pi_number,
            "iteration": self.iteration,
            "is_baseline": self.is_baseline,
            "classified": len(self.records),
            "badge_distribution": self.distribution,
        }


def classify_iteration(pi_number: int, iteration: int, *, baseline_iteration: int = 1) -> ClassifyResult:
    """Recompute and persist the classification cache of one iteration.

    Raises:
        PreconditionError: the iteration's snapshot, or for a non-baseline
            iteration the previous one, was never ingested.
    """
    current = get_snapshot(pi_number, iteration)
    is_baseline = iteration <= baseline_iteration

    previous = None
    previous_records: dict[str, ClassificationRecord] = {}
    if not is_baseline:
        if get_snapshot_header(pi_number, iteration - 1) is None:
            raise PreconditionError(
                resource=f"Snapshot PI {pi_number} / Iteration {iteration - 1}",
                remediation=f"Ingest the tracker export for iteration {iteration - 1} before classifying {iteration}.",
            )
        previous = get_snapshot(pi_number, iteration - 1)
        previous_records = read_classification(pi_number, iteration - 1)

    records = classify_snapshot(
        current, previous, baseline=is_baseline, previous_records=previous_records,
    )
    write_classification(pi_number, iteration, records)
    return ClassifyResult(
        pi_number=pi_number, iteration=iteration, is_baseline=is_baseline, records=records,
    )
