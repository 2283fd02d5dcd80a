"""
JWT Auth Middleware: parses the Bearer token and sets g.jwt_*.

A missing or invalid token leaves g.jwt_user_id as None; the
login_required / require_permission decorators turn that into a 401.
Expired tokens are flagged on g.jwt_error so the 401 body can say so.
"""

import logging

import jwt as pyjwt
from flask import g, request

from app.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)


# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/auth/login",
    "/api/v1/auth/refresh",
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_user_id = None
        g.jwt_tenant_id = None
        g.jwt_role = None
        g.jwt_error = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]

        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            g.jwt_error = "Token expired"
            return
        except pyjwt.InvalidTokenError as exc:
            logger.debug("Rejected bearer token on %s: %s", path, exc)
            g.jwt_error = "Invalid token"
            return

        g.jwt_user_id = payload.get("sub")
        g.jwt_tenant_id = payload.get("tenant_id")
        g.jwt_role = payload.get("role")
