"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in app/__init__.py with no default limits;
this module applies granular limits per route category.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

JOURNEY_LIMIT = "120/minute"
SIGNAL_LIMIT = "300/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Journey admin endpoints:  120/minute
        - Notifications / jobs:      120/minute
        - Completion signals:       300/minute (machine-to-machine bursts)
        - Health check:             exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("journeys")
    if bp:
        limiter.limit(JOURNEY_LIMIT)(bp)

    bp = app.blueprints.get("notifications")
    if bp:
        limiter.limit(JOURNEY_LIMIT)(bp)

    bp = app.blueprints.get("completion_signals")
    if bp:
        limiter.limit(SIGNAL_LIMIT)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — journeys: %s, signals: %s", JOURNEY_LIMIT, SIGNAL_LIMIT,
    )
