"""
Snapshot Store

Database-backed reader/writer for iteration snapshots. Services flush;
callers (blueprints, CLI) commit.

Usage:
    from pireport.services.snapshot_store import save_snapshot, get_snapshot
    header = save_snapshot(15, 2, rows)
    db.session.commit()
    snapshot = get_snapshot(15, 2)
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any, Iterable, Mapping

from pireport.core.exceptions import ConflictError, NotFoundError, PreconditionError
from pireport.models import db
from pireport.models.snapshot import IterationSnapshot, SnapshotItem
from pireport.services.report_types import IssueType, Snapshot, parse_snapshot_rows

logger = logging.getLogger(__name__)


def _label(pi_number: int, iteration: int) -> str:
    return f"PI {pi_number} / Iteration {iteration}"


def get_snapshot_header(pi_number: int, iteration: int) -> IterationSnapshot | None:
    return IterationSnapshot.query.filter_by(pi_number=pi_number, iteration=iteration).first()


def save_snapshot(pi_number: int, iteration: int, rows: Iterable[Mapping[str, Any]]) -> IterationSnapshot:
    """Validate and store the tracker export for one iteration.

    Re-ingesting an open iteration replaces its items; a closed iteration is
    read-only.

    Raises:
        ValidationError: a row failed validation (nothing is written).
        ConflictError: the iteration is closed.
    """
    snapshot = parse_snapshot_rows(pi_number, iteration, rows)

    header = get_snapshot_header(pi_number, iteration)
    if header is not None and header.is_closed:
        raise ConflictError("Snapshot", "iteration", _label(pi_number, iteration))

    if header is None:
        header = IterationSnapshot(pi_number=pi_number, iteration=iteration)
        db.session.add(header)
    else:
        header.items.clear()
        # Old rows must be gone before the unique (snapshot_id, key) rows return
        db.session.flush()
        header.captured_at = datetime.now(UTC)

    for record in (*snapshot.items, *snapshot.dependencies):
        header.items.append(SnapshotItem.from_record(record))
    header.item_count = len(snapshot.items)
    header.dependency_count = len(snapshot.dependencies)
    db.session.flush()

    logger.info(
        "Stored snapshot %s: %d epics, %d dependencies",
        _label(pi_number, iteration), header.item_count, header.dependency_count,
        extra={"pi_number": pi_number, "iteration": iteration},
    )
    return header


def _to_snapshot(header: IterationSnapshot) -> Snapshot:
    records = [row.to_record() for row in header.items]
    return Snapshot(
        pi_number=header.pi_number,
        iteration=header.iteration,
        items=tuple(r for r in records if r.issue_type is IssueType.EPIC),
        dependencies=tuple(r for r in records if r.issue_type is IssueType.DEPENDENCY),
    )


def get_snapshot(pi_number: int, iteration: int) -> Snapshot:
    """Load a stored snapshot.

    Raises:
        PreconditionError: nothing was ingested for the iteration.
    """
    header = get_snapshot_header(pi_number, iteration)
    if header is None:
        raise PreconditionError(
            resource=f"Snapshot {_label(pi_number, iteration)}",
            remediation=f"Ingest the tracker export for iteration {iteration} first.",
        )
    return _to_snapshot(header)


def get_previous_snapshot(pi_number: int, iteration: int, *, baseline_iteration: int = 1) -> Snapshot | None:
    """Snapshot of iteration - 1, or None at or before the baseline or when never ingested."""
    if iteration <= baseline_iteration:
        return None
    header = get_snapshot_header(pi_number, iteration - 1)
    return _to_snapshot(header) if header is not None else None


def close_iteration(pi_number: int, iteration: int) -> IterationSnapshot:
    """Mark an iteration's snapshot read-only. Closing twice is a no-op."""
    header = get_snapshot_header(pi_number, iteration)
    if header is None:
        raise NotFoundError("Snapshot", _label(pi_number, iteration))
    if header.closed_at is None:
        header.closed_at = datetime.now(UTC)
        db.session.flush()
        logger.info("Closed %s", _label(pi_number, iteration))
    return header


def list_iterations(pi_number: int) -> list[IterationSnapshot]:
    return (
        IterationSnapshot.query
        .filter_by(pi_number=pi_number)
        .order_by(IterationSnapshot.iteration)
        .all()
    )
