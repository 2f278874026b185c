"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter instance
is created in pireport/__init__.py with no default limits; this module
applies limits per route category.

Usage:
    from pireport.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

# Blueprint name -> limit string
BLUEPRINT_LIMITS = {
    "iteration": "120/minute",
    "layout": "60/minute",
}


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Iteration endpoints:  120/minute (ingest, classify, report)
        - Layout endpoints:     60/minute
        - Health check:         exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name, limit in BLUEPRINT_LIMITS.items():
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(limit)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured - %s",
        ", ".join(f"{name}: {limit}" for name, limit in BLUEPRINT_LIMITS.items()),
    )
