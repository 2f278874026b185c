"""
PI Change Report
Blueprint registry helpers.
"""

import logging

from flask import request

from pireport.core.exceptions import (
    ConflictError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from pireport.utils.errors import exception_error

logger = logging.getLogger(__name__)


def paginate_query(query, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to a SQLAlchemy query.

    Query params:
        limit  - max items (default 200, capped at max_limit)
        offset - starting position (default 0)

    Returns:
        (items_list, total_count)
    """
    total = query.count()
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = query.limit(limit).offset(offset).all()
    return items, total


def register_error_handlers(bp):
    """Map the service exception types to the standard error envelope."""

    @bp.errorhandler(NotFoundError)
    @bp.errorhandler(ValidationError)
    @bp.errorhandler(ConflictError)
    def _handle_service_error(error):
        return exception_error(error)

    @bp.errorhandler(PreconditionError)
    def _handle_precondition(error: PreconditionError):
        logger.info("Precondition failed on %s: %s", request.endpoint, error)
        return exception_error(error)
