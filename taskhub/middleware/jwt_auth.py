"""
JWT Auth Middleware — parses the Bearer token and loads the principal.

Sets ``g.current_user`` to the active ``User`` named by the token's ``sub``
claim, or ``None``.  Invalid or expired tokens leave the request anonymous;
the route decorators decide whether anonymous access is allowed.

Chain order:
  jwt_auth.py  →  tenant_context.py  →  route handler
"""

import logging
from functools import wraps

import jwt as pyjwt
from flask import g, request

from taskhub.models import db
from taskhub.models.auth import User, UserRole
from taskhub.services.jwt_service import decode_access_token
from taskhub.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.current_user = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        if path.startswith(JWT_SKIP_PREFIXES):
            return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]  # Strip "Bearer "
        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            logger.info("Expired access token on %s", path)
            return
        except pyjwt.InvalidTokenError:
            logger.warning("Invalid access token on %s", path)
            return

        user = db.session.get(User, payload.get("sub"))
        if user is None or not user.is_active:
            logger.warning("Token subject %s not found or inactive", payload.get("sub"))
            return
        g.current_user = user


def require_roles(*roles):
    """Route decorator: 401 when anonymous, 403 when the role is not allowed."""

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return api_error(E.UNAUTHORIZED, "Authentication required")
            if user.role not in roles:
                logger.warning(
                    "Role %s denied on %s", user.role, request.path,
                    extra={"user_id": user.id, "path": request.path},
                )
                return api_error(E.FORBIDDEN, "Insufficient privileges")
            return fn(*args, **kwargs)
        return wrapper
    return decorator


require_super_user = require_roles(UserRole.SUPER_USER)
