"""
Per-blueprint rate limits (Flask-Limiter).

The Limiter is created in hubo/__init__.py without default limits; this
module attaches one limit string per blueprint, read from app config so a
deployment can tighten the endpoints that reach the task generator
without touching plain CRUD.
"""

import logging

logger = logging.getLogger(__name__)

# blueprint name -> config key holding its limit
_BLUEPRINT_LIMITS = {
    "progression": "PROGRESSION_RATE_LIMIT",
    "projects": "CRUD_RATE_LIMIT",
    "tasks": "CRUD_RATE_LIMIT",
}


def init_rate_limits(app, limiter):
    """Attach configured limits to blueprints; health probes stay exempt.

    Skipped entirely when TESTING is set.
    """
    if app.config.get("TESTING"):
        logger.debug("Rate limiter disabled (TESTING=True)")
        return

    applied = {}
    for bp_name, config_key in _BLUEPRINT_LIMITS.items():
        bp = app.blueprints.get(bp_name)
        limit = app.config.get(config_key)
        if bp is None or not limit:
            continue
        limiter.limit(limit)(bp)
        applied[bp_name] = limit

    health = app.blueprints.get("health")
    if health is not None:
        limiter.exempt(health)

    logger.info("Rate limits applied: %s", applied)
