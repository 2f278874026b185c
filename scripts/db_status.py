#!/usr/bin/env python3
"""Show stored iterations and cache sizes per program increment."""
from pireport import create_app
from pireport.models import db
from pireport.models.classification import ClassificationEntry
from pireport.models.snapshot import IterationSnapshot

app = create_app()
with app.app_context():
    headers = IterationSnapshot.query.order_by(
        IterationSnapshot.pi_number, IterationSnapshot.iteration,
    ).all()
    if not headers:
        print("    No snapshots stored")
    for h in headers:
        cached = db.session.query(ClassificationEntry).filter_by(
            pi_number=h.pi_number, iteration=h.iteration,
        ).count()
        state = "closed" if h.is_closed else "open"
        label = f"PI {h.pi_number} / Iteration {h.iteration} "
        print(f"    {label:.<32} {h.item_count:>4} epics {h.dependency_count:>4} deps "
              f"{cached:>5} classified  [{state}]")
