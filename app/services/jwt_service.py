"""
JWT Service: token generation, verification, refresh sessions.

Access token:  15 minutes (JWT_ACCESS_EXPIRES)
Refresh token: 7 days     (JWT_REFRESH_EXPIRES)
Algorithm:     HS256

Access token payload:
{
    "sub": "<user_id>",
    "tenant_id": "<tenant_id>",
    "role": "admin" | "supervisor" | "operator" | "reader",
    "type": "access",
    "iat", "exp", "jti"
}

Refresh tokens are never stored raw; the sessions table keeps their
SHA-256 hash so a session can be revoked or rotated.
"""

import hashlib
import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from app.models import db
from app.models.auth import Session


# ─── Defaults ────────────────────────────────────────────────
DEFAULT_ACCESS_EXPIRES = 900       # 15 minutes
DEFAULT_REFRESH_EXPIRES = 604800   # 7 days
ALGORITHM = "HS256"


def _get_secret():
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_access_expires():
    return current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES)


def _get_refresh_expires():
    return current_app.config.get("JWT_REFRESH_EXPIRES", DEFAULT_REFRESH_EXPIRES)


# ═══════════════════════════════════════════════════════════════
# Token Generation
# ═══════════════════════════════════════════════════════════════
def generate_access_token(user_id: str, tenant_id: str, role: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "tenant_id": tenant_id,
        "role": role,
        "type": "access",
        "iat": now,
        "exp": now + timedelta(seconds=_get_access_expires()),
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)


def generate_refresh_token(user_id: str, tenant_id: str) -> tuple[str, str, datetime]:
    """
    Generate a long-lived refresh token.
    Returns: (raw_token, token_hash, expires_at)
    """
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(seconds=_get_refresh_expires())
    payload = {
        "sub": user_id,
        "tenant_id": tenant_id,
        "type": "refresh",
        "iat": now,
        "exp": expires_at,
        "jti": str(uuid.uuid4()),
    }
    raw_token = jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)
    return raw_token, hash_token(raw_token), expires_at


def generate_token_pair(user) -> dict:
    access_token = generate_access_token(user.id, user.tenant_id, user.role)
    refresh_token, token_hash, expires_at = generate_refresh_token(user.id, user.tenant_id)
    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_hash": token_hash,
        "expires_at": expires_at,
        "token_type": "Bearer",
        "expires_in": _get_access_expires(),
    }


# ═══════════════════════════════════════════════════════════════
# Token Verification
# ═══════════════════════════════════════════════════════════════
def decode_token(token: str, expected_type: str = "access") -> dict:
    """
    Decode and verify a JWT.

    Raises jwt.exceptions on failure (ExpiredSignatureError, InvalidTokenError, ...).
    """
    payload = jwt.decode(token, _get_secret(), algorithms=[ALGORITHM])
    if payload.get("type") != expected_type:
        raise jwt.InvalidTokenError(f"Expected {expected_type} token, got {payload.get('type')}")
    return payload


def decode_access_token(token: str) -> dict:
    return decode_token(token, expected_type="access")


def decode_refresh_token(token: str) -> dict:
    return decode_token(token, expected_type="refresh")


def hash_token(token: str) -> str:
    """SHA-256 hash of a token (never store raw refresh tokens)."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


# ═══════════════════════════════════════════════════════════════
# Session Management
# ═══════════════════════════════════════════════════════════════
def create_session(user, tokens: dict, ip_address: str | None, user_agent: str | None) -> Session:
    session = Session(
        user_id=user.id,
        token_hash=tokens["token_hash"],
        ip_address=ip_address,
        user_agent=(user_agent or "")[:500],
        expires_at=tokens["expires_at"],
    )
    db.session.add(session)
    db.session.commit()
    return session


def get_active_session(user_id: str, token_hash: str) -> Session | None:
    return Session.query.filter_by(user_id=user_id, token_hash=token_hash, is_active=True).first()


def rotate_session(old_session: Session, user, ip_address: str | None, user_agent: str | None) -> dict:
    """
    Invalidate *old_session* and issue a fresh token pair in one commit.

    Rotation prevents refresh-token reuse.
    """
    tokens = generate_token_pair(user)
    old_session.is_active = False
    old_session.last_used_at = datetime.now(timezone.utc)
    db.session.add(Session(
        user_id=user.id,
        token_hash=tokens["token_hash"],
        ip_address=ip_address,
        user_agent=(user_agent or "")[:500],
        expires_at=tokens["expires_at"],
    ))
    db.session.commit()
    return tokens


def revoke_session(session: Session) -> None:
    session.is_active = False
    db.session.commit()


def revoke_session_by_token(token_hash: str) -> bool:
    """Revoke the active session holding *token_hash*; False if none matched."""
    session = Session.query.filter_by(token_hash=token_hash, is_active=True).first()
    if session is None:
        return False
    session.is_active = False
    db.session.commit()
    return True


def revoke_all_user_sessions(user_id: str) -> int:
    count = Session.query.filter_by(user_id=user_id, is_active=True).update({"is_active": False})
    db.session.commit()
    return count
