"""JSON error bodies for the Hubo API.

Every non-2xx response produced by a blueprint has the shape::

    {"error": "<message>", "code": "ERR_...", "details": {...}}

``details`` is omitted when empty. For a refused advance it holds the
AdvanceResult (reason, previous_stage...), for a validation failure the
offending fields.
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Error codes returned in the ``code`` field."""

    BUSINESS_RULE = "ERR_BUSINESS_RULE"            # bad payload / rule broken
    UNRECOGNIZED_STAGE = "ERR_UNRECOGNIZED_STAGE"  # project.backlog outside the sequence
    NOT_FOUND = "ERR_NOT_FOUND"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"          # project not eligible to advance
    UPSTREAM = "ERR_UPSTREAM"                      # task generator failed
    DATABASE = "ERR_DATABASE"
    METHOD_NOT_ALLOWED = "ERR_METHOD_NOT_ALLOWED"
    RATE_LIMITED = "ERR_RATE_LIMITED"
    INTERNAL = "ERR_INTERNAL"


HTTP_STATUS: dict[str, int] = {
    E.BUSINESS_RULE: 422,
    E.UNRECOGNIZED_STAGE: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT_STATE: 409,
    E.UPSTREAM: 502,
    E.DATABASE: 500,
    E.METHOD_NOT_ALLOWED: 405,
    E.RATE_LIMITED: 429,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Build ``(response, status)`` for a Flask view.

    The status defaults to ``HTTP_STATUS[code]`` and to 422 for codes
    not listed there.
    """
    body = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or HTTP_STATUS.get(code, 422)
