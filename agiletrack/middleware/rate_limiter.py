"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in agiletrack/__init__.py with no default
limits; this module applies granular limits per route category.

Usage:
    from agiletrack.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

WRITE_LIMIT = "120/minute"
READ_LIMIT = "300/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Auth endpoints:   AUTH_RATE_LIMIT (credential stuffing guard)
        - Domain endpoints: WRITE_LIMIT for mutations, READ_LIMIT for GETs
        - Health check:     exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("auth")
    if bp:
        limiter.limit(app.config.get("AUTH_RATE_LIMIT", "10 per minute"))(bp)

    for bp_name in ("organizations", "projects", "tasks", "finance", "reports", "dashboard"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT, methods=["POST", "PUT", "PATCH", "DELETE"])(bp)
            limiter.limit(READ_LIMIT, methods=["GET"])(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured — writes: %s, reads: %s", WRITE_LIMIT, READ_LIMIT)
