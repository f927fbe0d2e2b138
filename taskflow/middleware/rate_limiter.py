"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in taskflow/__init__.py with no default
limits; this module applies limits per route category.

Usage:
    from taskflow.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import request

logger = logging.getLogger(__name__)

WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

_WRITE_BLUEPRINTS = ("projects", "tasks", "comments", "users")


def _is_read_request() -> bool:
    return request.method not in WRITE_METHODS


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Auth endpoints:   RATELIMIT_AUTH  (default 20/minute)
        - Write endpoints:  RATELIMIT_WRITE (default 120/minute, reads exempt)
        - Health check:     exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled")
        return

    auth_limit = app.config.get("RATELIMIT_AUTH", "20/minute")
    write_limit = app.config.get("RATELIMIT_WRITE", "120/minute")

    bp = app.blueprints.get("auth")
    if bp:
        limiter.limit(auth_limit)(bp)

    for bp_name in _WRITE_BLUEPRINTS:
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(write_limit, exempt_when=_is_read_request)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured: auth: %s, write: %s", auth_limit, write_limit)
