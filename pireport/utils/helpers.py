"""Shared blueprint helpers.

get_or_404:          tuple-return lookup, NOT abort
parse_bool_arg:      query-string flags ("1", "true", "yes" / "0", "false", "no")
db_commit_or_error:  commit, or rollback and return an error tuple
"""
import logging

from flask import request
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from pireport.models import db
from pireport.utils.errors import E, api_error

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def get_or_404(model, pk, label=None):
    """Fetch by primary key.

    Returns ``(obj, None)`` or ``(None, error_response)``:

        layout, err = get_or_404(ReportLayout, layout_id)
        if err:
            return err
    """
    obj = db.session.get(model, pk)
    if obj is None:
        return None, api_error(E.NOT_FOUND, f"{label or model.__name__} id={pk} not found")
    return obj, None


def parse_bool_arg(name, default=False):
    """Read a boolean query-string flag; blank or absent gives ``default``.

    Raises ValueError on anything that is not a recognised true/false word.
    """
    raw = request.args.get(name)
    if raw is None or not raw.strip():
        return default
    text = raw.strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be true or false, got {raw!r}")


# ── Database commit helper ───────────────────────────────────────────────────

def db_commit_or_error():
    """Commit the session. Services flush; blueprints call this.

        err = db_commit_or_error()
        if err:
            return err

    IntegrityError -> 409 (unique key race, e.g. two ingests of one iteration)
    other SQLAlchemyError -> 500
    """
    try:
        db.session.commit()
        return None
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        return api_error(E.CONFLICT_DUPLICATE, "Duplicate or constraint violation")
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Database error on commit")
        return api_error(E.DATABASE, "Database error")
