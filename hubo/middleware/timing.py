"""
Request timing middleware.

Before each request: start a timer, assign ``g.request_id`` (honouring an
incoming X-Request-ID) and expose the project/task ids from the URL on ``g``
for RequestContextFilter.

After each request: add X-Request-ID / X-Request-Duration-Ms headers and
write one access line (DEBUG normally, WARNING when slow, ERROR on 5xx).
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

_QUIET_PREFIX = "/api/v1/health"

DEFAULT_SLOW_REQUEST_MS = 1000


def init_request_timing(app: Flask):
    """Register before/after hooks for request timing."""
    slow_ms = app.config.get("SLOW_REQUEST_MS", DEFAULT_SLOW_REQUEST_MS)

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        view_args = request.view_args or {}
        g.project_id = view_args.get("project_id")
        g.task_id = view_args.get("task_id")

    @app.after_request
    def _log_request(response):
        start = g.get("request_start")
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"

        if request.path.startswith(_QUIET_PREFIX):
            return response

        extra = {
            "method": request.method,
            "path": request.path,
            "status": response.status_code,
            "duration_ms": round(duration_ms, 1),
            "remote_addr": request.remote_addr,
        }
        if response.status_code >= 500:
            level = logging.ERROR
        elif duration_ms > slow_ms:
            level = logging.WARNING
        else:
            level = logging.DEBUG
        logger.log(level, "%s %s -> %d", request.method, request.path,
                   response.status_code, extra=extra)
        return response
