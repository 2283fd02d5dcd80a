"""
Tenant Context Middleware: resolves the JWT subject into g.tenant and g.current_user.

Chain order:
  jwt_auth.py  ->  tenant_context.py  ->  route handler

Tokens pointing at a missing or deactivated tenant are refused with 403.
Tokens whose user no longer exists, moved tenant, or was deactivated leave
g.current_user unset, so protected routes answer 401.
"""

import logging

from flask import g, request

from app.models import db
from app.models.auth import Tenant, User
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def init_tenant_context(app):
    """Register tenant context middleware as a before_request hook."""

    @app.before_request
    def _tenant_context():
        g.tenant = None
        g.current_user = None

        if not request.path.startswith("/api/v1/"):
            return None

        tenant_id = getattr(g, "jwt_tenant_id", None)
        user_id = getattr(g, "jwt_user_id", None)
        if tenant_id is None or user_id is None:
            return None

        tenant = db.session.get(Tenant, tenant_id)
        if tenant is None:
            logger.warning("JWT tenant_id %s not found in DB", tenant_id)
            return api_error(E.FORBIDDEN, "Tenant not found")
        if not tenant.is_active:
            logger.warning("JWT tenant_id %s is deactivated", tenant_id)
            return api_error(E.FORBIDDEN, "Tenant account is deactivated")

        user = db.session.get(User, user_id)
        if user is None or user.tenant_id != tenant.id or not user.is_active:
            logger.info("JWT subject %s is no longer an active user of tenant %s", user_id, tenant_id)
            g.jwt_error = "User inactive or not found"
            return None

        g.tenant = tenant
        g.current_user = user
        return None

    logger.info("Tenant context middleware installed")
