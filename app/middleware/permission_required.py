"""
Permission Decorators: JWT-aware RBAC decorators for route protection.

Usage:
    @bp.route("/orders", methods=["POST"])
    @require_permission("processos.criar")
    def create_order():
        ...

    @bp.route("/reports/<report_type>", methods=["GET"])
    @require_permission("relatorios.todos", "relatorios.setor")
    def get_report(report_type):
        ...

require_permission passes when the user holds ANY of the listed codenames.
Both decorators answer 401 when no authenticated user is present.
"""

import functools
import logging

from flask import g

from app.services.permission_service import has_any_permission
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def _unauthenticated():
    return api_error(E.UNAUTHORIZED, getattr(g, "jwt_error", None) or "Authentication required")


def login_required(f):
    """Decorator: require an authenticated, active user."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if getattr(g, "current_user", None) is None:
            return _unauthenticated()
        return f(*args, **kwargs)
    return decorated


def require_permission(*codenames: str):
    """
    Decorator: require the current user's role to grant at least one codename.

    Args:
        codenames: Permission codenames, e.g. "processos.mover"
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return _unauthenticated()

            if not has_any_permission(user.role, codenames):
                logger.warning(
                    "User %s denied: missing any of %s on %s",
                    user.id, codenames, f.__name__,
                )
                return api_error(
                    E.FORBIDDEN,
                    "Permission denied",
                    details={"required_any": list(codenames), "role": user.role},
                )

            return f(*args, **kwargs)
        return decorated
    return decorator
