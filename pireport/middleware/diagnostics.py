"""
Startup diagnostics - runs once when the Flask app starts.

Checks the database, counts stored snapshots and logs a summary banner
including the active governance policy.
"""

import logging
import sys

from flask import Flask
from sqlalchemy.exc import SQLAlchemyError

from pireport.models import db

logger = logging.getLogger(__name__)


def run_startup_diagnostics(app: Flask):
    """Run diagnostic checks during app startup (inside app context)."""
    if app.config.get("TESTING"):
        return

    issues: list[str] = []

    with app.app_context():
        py = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"

        # ── Database connectivity ────────────────────────────────────
        db_status = "ok"
        db_uri = str(app.config.get("SQLALCHEMY_DATABASE_URI", ""))
        db_type = "PostgreSQL" if "postgresql" in db_uri else "SQLite" if "sqlite" in db_uri else "unknown"
        try:
            db.session.execute(db.text("SELECT 1"))
        except SQLAlchemyError as exc:
            db_status = "FAILED"
            issues.append(f"Database unreachable: {exc}")

        # ── Schema / stored snapshots ────────────────────────────────
        snapshot_count = "?"
        try:
            from sqlalchemy import inspect as sa_inspect
            tables = sa_inspect(db.engine).get_table_names()
            if "iteration_snapshots" not in tables:
                issues.append("Snapshot tables missing - run 'flask db upgrade'")
            else:
                snapshot_count = db.session.execute(
                    db.text("SELECT COUNT(*) FROM iteration_snapshots")
                ).scalar()
        except SQLAlchemyError:
            issues.append("Schema inspection failed")

        excluded = ", ".join(app.config.get("GOVERNANCE_EXCLUDED_CATEGORIES", []))
        show_all = ", ".join(app.config.get("GOVERNANCE_SHOW_ALL_PORTFOLIOS", []))

        banner = f"""
╔══════════════════════════════════════════════════════════════╗
║  PI Change Report - Startup Diagnostics                      ║
╠══════════════════════════════════════════════════════════════╣
║  Python      : {py:<46s}║
║  Debug       : {str(app.debug):<46s}║
║  Database    : {f'{db_type} ({db_status})':<46s}║
║  Snapshots   : {str(snapshot_count):<46s}║
║  Baseline    : {'Iteration ' + str(app.config.get('BASELINE_ITERATION', 1)):<46s}║
║  Excluded    : {excluded[:46]:<46s}║
║  Show-all    : {show_all[:46]:<46s}║
╚══════════════════════════════════════════════════════════════╝"""
        logger.info(banner)

        if issues:
            logger.warning("Startup issues detected:")
            for issue in issues:
                logger.warning("  ⚠ %s", issue)
        else:
            logger.info("✅ All startup checks passed")
