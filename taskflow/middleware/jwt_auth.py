"""
JWT Auth Middleware — Bearer token extraction and route guards.

``init_jwt_middleware`` stores the raw bearer token on ``g.jwt_token`` for
every API request. Routes opt in to authentication with decorators:

    @bp.route("/api/projects", methods=["GET"])
    @require_auth
    def list_projects():
        identity = current_identity()
        ...

    @bp.route("/api/users/<int:user_id>", methods=["DELETE"])
    @require_auth
    @authorize("admin")
    def delete_user(user_id):
        ...

Failures raise AuthenticationError / AuthorizationError; the app-level
handlers turn them into 401 / 403 bodies.
"""

import functools
import logging

from flask import g, request

from taskflow.core.exceptions import AuthenticationError, AuthorizationError
from taskflow.services import identity_service

logger = logging.getLogger(__name__)


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    token = auth_header[7:].strip()
    return token or None


def init_jwt_middleware(app):
    """Register the token extraction hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_token = None
        g.identity = None
        if request.path.startswith("/api/"):
            g.jwt_token = _bearer_token()


def current_identity() -> identity_service.Identity:
    """Identity resolved by ``require_auth`` for this request."""
    identity = getattr(g, "identity", None)
    if identity is None:
        raise AuthenticationError("Not authorized to access this route. Please login.")
    return identity


def require_auth(f):
    """Decorator: resolve the bearer token to an active user or fail with 401."""

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        token = getattr(g, "jwt_token", None)
        if token is None:
            token = _bearer_token()
        g.identity = identity_service.verify(token)
        return f(*args, **kwargs)

    return decorated


def authorize(*roles: str):
    """
    Decorator: restrict a route to the given global roles.

    Must be stacked below ``require_auth``.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            identity = current_identity()
            if identity.role not in roles:
                logger.warning(
                    "User %s denied: role '%s' not in %s on %s",
                    identity.id, identity.role, roles, f.__name__,
                    extra={"user_id": identity.id},
                )
                raise AuthorizationError(
                    f"User role '{identity.role}' is not authorized to access this route"
                )
            return f(*args, **kwargs)
        return decorated
    return decorator
