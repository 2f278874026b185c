"""
Flask CLI commands.

    flask classify-iteration 15 3
    flask iteration-report 15 3 --show-all --layout exec-summary
"""

import json
import logging

import click
from flask import current_app

from pireport.core.exceptions import NotFoundError, PreconditionError, ValidationError
from pireport.models import db

logger = logging.getLogger(__name__)


def register_cli(app):
    """Attach the report commands to ``app.cli``."""

    @app.cli.command("classify-iteration")
    @click.argument("pi_number", type=int)
    @click.argument("iteration", type=int)
    def classify_iteration_cmd(pi_number, iteration):
        """Recompute the classification cache for one iteration."""
        from pireport.services.classification_service import classify_iteration

        try:
            result = classify_iteration(
                pi_number, iteration,
                baseline_iteration=current_app.config.get("BASELINE_ITERATION", 1),
            )
        except PreconditionError as exc:
            raise click.ClickException(str(exc)) from exc
        db.session.commit()

        click.echo(f"Classified {len(result.records)} records for PI {pi_number} / Iteration {iteration}")
        for badge, count in result.distribution.items():
            if count:
                click.echo(f"  {badge:<9} {count}")

    @app.cli.command("iteration-report")
    @click.argument("pi_number", type=int)
    @click.argument("iteration", type=int)
    @click.option("--show-all", is_flag=True, help="Skip changes-only filtering.")
    @click.option("--exclude-at-risk", is_flag=True, help="Drop at-risk items without other changes.")
    @click.option("--group-by", default=None, help="Grouping field (default: portfolio).")
    @click.option("--layout", "layout_name", default=None, help="Saved report layout name.")
    def iteration_report_cmd(pi_number, iteration, show_all, exclude_at_risk, group_by, layout_name):
        """Print the grouped change report as JSON."""
        from pireport.services.report_service import build_iteration_report

        try:
            report = build_iteration_report(
                pi_number,
                iteration,
                config=current_app.config,
                show_all=show_all,
                include_at_risk=not exclude_at_risk,
                group_by=group_by,
                layout_name=layout_name,
            )
        except (PreconditionError, NotFoundError, ValidationError) as exc:
            raise click.ClickException(str(exc)) from exc

        click.echo(json.dumps(report.to_dict(), indent=2))
