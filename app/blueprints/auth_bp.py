"""
Auth Blueprint: JWT authentication endpoints.

  POST /api/v1/auth/login        Email + password + tenant slug -> JWT pair
  POST /api/v1/auth/refresh      Refresh token -> new JWT pair (rotation)
  POST /api/v1/auth/logout       Revoke refresh token (or every session)
  GET  /api/v1/auth/me           Current user, tenant and permissions
  POST /api/v1/auth/me/password  Change own password
"""

import logging

import jwt as pyjwt
from flask import Blueprint, g, jsonify, request

from app.core.exceptions import AuthenticationError
from app.middleware.permission_required import login_required
from app.models import db
from app.models.auth import User
from app.services.jwt_service import (
    create_session,
    decode_refresh_token,
    generate_token_pair,
    get_active_session,
    hash_token,
    revoke_all_user_sessions,
    revoke_session,
    revoke_session_by_token,
    rotate_session,
)
from app.services.permission_service import get_role_permissions
from app.services.user_service import authenticate_user, change_password as change_user_password
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


def _token_response(tokens: dict, user=None):
    body = {
        "access_token": tokens["access_token"],
        "refresh_token": tokens["refresh_token"],
        "token_type": tokens["token_type"],
        "expires_in": tokens["expires_in"],
    }
    if user is not None:
        body["user"] = user.to_dict()
        body["permissions"] = sorted(get_role_permissions(user.role))
    return body


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/login
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate with email + password, return JWT pair.

    Body: { "email": "...", "password": "...", "tenant_slug": "..." }
    """
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    tenant_slug = (data.get("tenant_slug") or "").strip()

    if not email or not password:
        return api_error(E.VALIDATION_REQUIRED, "Email and password are required")
    if not tenant_slug:
        return api_error(E.VALIDATION_REQUIRED, "tenant_slug is required")

    user = authenticate_user(tenant_slug, email, password)

    tokens = generate_token_pair(user)
    create_session(user, tokens, request.remote_addr, request.headers.get("User-Agent", ""))
    logger.info("User %s logged in (tenant=%s)", user.id, user.tenant_id)
    return jsonify(_token_response(tokens, user)), 200


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/refresh
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/refresh", methods=["POST"])
def refresh():
    """
    Exchange a refresh token for a new token pair (token rotation).

    Body: { "refresh_token": "..." }
    """
    data = request.get_json(silent=True) or {}
    refresh_token = data.get("refresh_token") or ""
    if not refresh_token:
        return api_error(E.VALIDATION_REQUIRED, "Refresh token is required")

    try:
        payload = decode_refresh_token(refresh_token)
    except pyjwt.InvalidTokenError:
        raise AuthenticationError("Invalid or expired refresh token")

    session = get_active_session(payload.get("sub"), hash_token(refresh_token))
    if session is None:
        raise AuthenticationError("Session not found or revoked")
    if session.is_expired:
        revoke_session(session)
        raise AuthenticationError("Session expired")

    user = db.session.get(User, payload.get("sub"))
    if user is None or not user.is_active or not user.tenant.is_active:
        revoke_session(session)
        raise AuthenticationError("User inactive or not found")

    tokens = rotate_session(session, user, request.remote_addr, request.headers.get("User-Agent", ""))
    return jsonify(_token_response(tokens)), 200


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/logout
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/logout", methods=["POST"])
def logout():
    """
    Revoke the given refresh token, or every session of the bearer.

    Body: { "refresh_token": "..." }  (optional)
    """
    data = request.get_json(silent=True) or {}
    refresh_token = data.get("refresh_token") or ""

    if refresh_token:
        revoked = 1 if revoke_session_by_token(hash_token(refresh_token)) else 0
    elif g.get("current_user") is not None:
        revoked = revoke_all_user_sessions(g.current_user.id)
    else:
        return api_error(E.UNAUTHORIZED, "Authentication required")

    return jsonify({"message": "Logged out successfully", "sessions_revoked": revoked}), 200


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/me
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    user = g.current_user
    return jsonify({
        "user": user.to_dict(),
        "tenant": g.tenant.to_dict(),
        "permissions": sorted(get_role_permissions(user.role)),
    }), 200


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/me/password
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/me/password", methods=["POST"])
@login_required
def change_own_password():
    """
    Change the current user's password. Revokes every refresh session.

    Body: { "current_password": "...", "new_password": "..." }
    """
    data = request.get_json(silent=True) or {}
    current_pw = data.get("current_password") or ""
    new_pw = data.get("new_password") or ""
    if not current_pw or not new_pw:
        return api_error(E.VALIDATION_REQUIRED, "Both current and new password are required")

    change_user_password(g.current_user, g.current_user.id, new_pw, current_password=current_pw)
    return jsonify({"message": "Password changed successfully"}), 200
