from __future__ import annotations

from functools import wraps
import logging

from flask import request, g, abort, current_app

from services.errors import AuthenticationFailure
from utils.origin import host_from_header

logger = logging.getLogger(__name__)


def auth_service():
    """The AuthService wired by create_app()."""
    return current_app.extensions["auth"]


def jwt_required():
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            auth = request.headers.get("Authorization", "")
            if not auth.startswith("Bearer "):
                abort(401)
            token = auth.split(" ", 1)[1].strip()
            service = auth_service()
            try:
                decoded = service.decode_access_token(token)
            except AuthenticationFailure as e:
                logger.info("Bearer token rejected: %s", e.reason)
                abort(401)

            user = service.credentials.find_by_id(decoded.get("sub"))
            if not user:
                abort(401)
            g.current_user = user
            g.current_user_roles = decoded.get("roles", user.roles or [])
            g.current_token_jti = decoded.get("jti")
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def roles_required(required_roles: list[str]):
    """
    Allow access if the user has ANY of the required roles.
    Deny (403) only if there is NO overlap between user_roles and required_roles.
    """
    req = set(required_roles or [])

    def decorator(fn):
        @wraps(fn)
        @jwt_required()
        def wrapper(*args, **kwargs):
            user_roles = set(getattr(g, "current_user_roles", []))
            if not (user_roles & req):
                abort(403, description="Insufficient role")
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def origin_required():
    """
    CSRF gate for the cookie endpoints: the request's Origin (or Referer) host
    must equal the trusted origin host. The reason is logged, never returned.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            declared = host_from_header(request.headers.get("Origin")) or host_from_header(
                request.headers.get("Referer")
            )
            error = auth_service().origin_guard.validate(declared)
            if error:
                logger.warning(error)
                abort(403)
            return fn(*args, **kwargs)

        return wrapper

    return decorator
