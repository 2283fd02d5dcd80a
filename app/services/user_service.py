"""
User Service: CRUD, password management and login.
"""

import logging
from datetime import datetime, timezone

from email_validator import EmailNotValidError, validate_email

from app.core.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from app.models import db
from app.models.audit import diff_fields, write_audit
from app.models.auth import ROLES, Session, Tenant, User
from app.models.client import Client
from app.models.notification import Notification
from app.services.permission_service import check_permission
from app.services.settings_service import get_or_create_settings
from app.utils.crypto import hash_password, verify_password

logger = logging.getLogger(__name__)


_EDITABLE = ("name", "email", "role", "department", "team", "is_active")


def _normalize_email(email: str) -> str:
    try:
        return validate_email(email or "", check_deliverability=False).normalized.lower()
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e}", details={"email": "invalid"}) from e


def _check_password_policy(tenant_id, password: str) -> None:
    min_len = get_or_create_settings(tenant_id).min_password_length or 0
    if not password or len(password) < min_len:
        raise ValidationError(
            f"Password must have at least {min_len} characters", details={"password": f"min {min_len}"},
        )


def _resolve_clients(tenant_id, client_ids) -> list[Client]:
    clients = []
    for cid in client_ids or []:
        client = Client.get_for_tenant(tenant_id, cid)
        if client is None:
            raise NotFoundError(resource="Client", resource_id=cid)
        clients.append(client)
    return clients


def _load_user(tenant_id, user_id) -> User:
    user = db.session.get(User, user_id)
    if user is None or user.tenant_id != tenant_id:
        raise NotFoundError(resource="User", resource_id=user_id)
    return user


# ═══════════════════════════════════════════════════════════════
# User CRUD
# ═══════════════════════════════════════════════════════════════
def create_user(actor, data: dict) -> dict:
    check_permission(actor, "usuarios.criar")

    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    email = _normalize_email(data.get("email"))
    role = data.get("role") or "reader"
    if role not in ROLES:
        raise ValidationError("Invalid role", details={"role": list(ROLES)})
    _check_password_policy(actor.tenant_id, data.get("password"))

    tenant = db.session.get(Tenant, actor.tenant_id)
    if tenant.max_users and User.query.filter_by(tenant_id=tenant.id).count() >= tenant.max_users:
        raise ValidationError(f"User limit reached ({tenant.max_users})")
    if User.query.filter_by(tenant_id=tenant.id, email=email).first() is not None:
        raise ConflictError(resource="User", field="email", value=email)

    clients = _resolve_clients(tenant.id, data.get("linked_client_ids"))

    user = User(
        tenant_id=tenant.id,
        name=name,
        email=email,
        password_hash=hash_password(data["password"]),
        role=role,
        department=data.get("department"),
        team=data.get("team"),
        is_active=data.get("is_active", True),
    )
    user.linked_clients = clients
    db.session.add(user)
    db.session.flush()
    write_audit(entity_type="user", entity_id=user.id, action="create", actor=actor,
                diff={"email": {"old": None, "new": email}, "role": {"old": None, "new": role}})
    db.session.commit()
    logger.info("User %s created (role=%s) by user=%s", user.email, role, actor.id)
    return user.to_dict()


def get_user(actor, user_id) -> dict:
    if actor.id != user_id:
        check_permission(actor, "usuarios.visualizar")
    return _load_user(actor.tenant_id, user_id).to_dict()


def list_users(actor, role: str | None = None, active: bool | None = None) -> list[dict]:
    check_permission(actor, "usuarios.visualizar")
    q = User.query.filter_by(tenant_id=actor.tenant_id)
    if role:
        q = q.filter_by(role=role)
    if active is not None:
        q = q.filter_by(is_active=active)
    return [u.to_dict() for u in q.order_by(User.name).all()]


def update_user(actor, user_id, data: dict) -> dict:
    check_permission(actor, "usuarios.editar")
    user = _load_user(actor.tenant_id, user_id)

    values = {f: data[f] for f in _EDITABLE if f in data}
    if "name" in values and not (values["name"] or "").strip():
        raise ValidationError("name is required", details={"name": "required"})
    if "email" in values:
        values["email"] = _normalize_email(values["email"])
        dup = User.query.filter(
            User.tenant_id == actor.tenant_id, User.email == values["email"], User.id != user.id,
        ).first()
        if dup is not None:
            raise ConflictError(resource="User", field="email", value=values["email"])
    if "role" in values and values["role"] not in ROLES:
        raise ValidationError("Invalid role", details={"role": list(ROLES)})
    if user.id == actor.id and (values.get("is_active") is False or values.get("role", user.role) != user.role):
        raise ValidationError("You cannot deactivate or change the role of your own account")

    clients = None
    if "linked_client_ids" in data:
        clients = _resolve_clients(actor.tenant_id, data["linked_client_ids"])

    changes = diff_fields(user, values, values.keys())
    if clients is not None:
        old_ids = user.linked_client_ids
        user.linked_clients = clients
        if old_ids != user.linked_client_ids:
            changes["linked_client_ids"] = {"old": old_ids, "new": user.linked_client_ids}
    if values.get("is_active") is False:
        Session.query.filter_by(user_id=user.id, is_active=True).update({"is_active": False})

    if changes:
        write_audit(entity_type="user", entity_id=user.id, action="update", actor=actor, diff=changes)
    db.session.commit()
    logger.info("User %s updated by user=%s fields=%s", user.id, actor.id, sorted(changes))
    return user.to_dict()


def delete_user(actor, user_id) -> None:
    """Delete a user. Movement history keeps the denormalised user name."""
    check_permission(actor, "usuarios.excluir")
    user = _load_user(actor.tenant_id, user_id)
    if user.id == actor.id:
        raise ValidationError("You cannot delete your own account")

    Notification.query.filter_by(recipient_user_id=user.id).delete(synchronize_session=False)
    write_audit(entity_type="user", entity_id=user.id, action="delete", actor=actor,
                diff={"email": {"old": user.email, "new": None}})
    db.session.delete(user)
    db.session.commit()
    logger.info("User %s deleted by user=%s", user_id, actor.id)


def change_password(actor, user_id, new_password: str, current_password: str | None = None) -> None:
    """
    Change a password.

    Own password: always allowed, but the current password must match.
    Another user's password: requires usuarios.editar.
    """
    if user_id != actor.id:
        check_permission(actor, "usuarios.editar")
        user = _load_user(actor.tenant_id, user_id)
    else:
        user = actor
        if not verify_password(current_password or "", user.password_hash):
            raise ValidationError("Current password is incorrect", details={"current_password": "invalid"})

    _check_password_policy(actor.tenant_id, new_password)
    user.password_hash = hash_password(new_password)
    Session.query.filter_by(user_id=user.id, is_active=True).update({"is_active": False})
    write_audit(entity_type="user", entity_id=user.id, action="user.change_password", actor=actor)
    db.session.commit()
    logger.info("Password changed for user=%s by user=%s", user.id, actor.id)


# ═══════════════════════════════════════════════════════════════
# Login
# ═══════════════════════════════════════════════════════════════
def authenticate_user(tenant_slug: str, email: str, password: str) -> User:
    """Authenticate with tenant slug + email + password. Returns User on success."""
    tenant = Tenant.query.filter_by(slug=tenant_slug).first()
    if tenant is None or not tenant.is_active:
        raise AuthenticationError()

    user = User.query.filter_by(tenant_id=tenant.id, email=(email or "").strip().lower()).first()
    if user is None or not verify_password(password or "", user.password_hash):
        logger.warning("Failed login for %s on tenant %s", email, tenant_slug)
        raise AuthenticationError()
    if not user.is_active:
        raise AuthenticationError("Account is inactive")

    user.last_login_at = datetime.now(timezone.utc)
    db.session.commit()
    return user
