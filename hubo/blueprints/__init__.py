"""
Hubo
Blueprint registry and shared blueprint helpers.
"""

import logging

from flask import request
from sqlalchemy.exc import SQLAlchemyError

from hubo.core.exceptions import HuboError, ValidationError
from hubo.models import db
from hubo.utils.errors import E, api_error


def paginate_query(query, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to a SQLAlchemy query.

    Query params:
        limit   max items (default 200, capped at max_limit)
        offset  starting position (default 0)

    Returns:
        (items_list, total_count)
    """
    total = query.count()
    try:
        limit = max(min(int(request.args.get("limit", default_limit)), max_limit), 1)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = query.limit(limit).offset(offset).all()
    return items, total


def json_body() -> dict:
    """Request JSON as a dict; a missing or unparsable body reads as {}.

    Raises:
        ValidationError: the body is JSON but not an object.
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object", details={"body": "invalid"})
    return data


def register_error_handlers(bp):
    """Map service-layer exceptions to JSON responses for one blueprint.

    Any HuboError rolls back the session and answers with its own code,
    so an aborted mutation never leaves a half-flushed project or task.
    """
    logger = logging.getLogger(bp.import_name)

    @bp.errorhandler(HuboError)
    def _handle_service_error(error: HuboError):
        db.session.rollback()
        if error.code == E.UPSTREAM:
            logger.warning("Task generation failed endpoint=%s: %s", request.endpoint, error)
        return api_error(error.code, str(error), details=error.details)

    @bp.errorhandler(SQLAlchemyError)
    def _handle_database(error: SQLAlchemyError):
        db.session.rollback()
        logger.exception("Database error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.DATABASE, "Database error")
