"""
Settings Service: per-tenant system settings and branding.

The integration API key is encrypted with Fernet before it is stored and
is never returned in clear.
"""

import logging

from app.core.exceptions import ValidationError
from app.models import db
from app.models.audit import diff_fields, write_audit
from app.models.auth import Tenant
from app.models.settings import BACKUP_FREQUENCIES, SystemSettings
from app.services.permission_service import check_permission
from app.utils.crypto import encrypt_secret

logger = logging.getLogger(__name__)


# Payload section -> {payload key: column}
_SECTIONS = {
    "notifications": {
        "email": "email_notifications",
        "push": "push_notifications",
        "delay_warning_days": "delay_warning_days",
        "due_warning_days": "due_warning_days",
    },
    "backup": {
        "automatic": "automatic_backup",
        "frequency": "backup_frequency",
        "retention_months": "retention_months",
    },
    "security": {
        "session_timeout_minutes": "session_timeout_minutes",
        "max_login_attempts": "max_login_attempts",
        "min_password_length": "min_password_length",
    },
    "integrations": {
        "webhook_url": "webhook_url",
        "send_updates": "send_updates",
    },
}

_INT_COLUMNS = {
    "delay_warning_days", "due_warning_days", "retention_months",
    "session_timeout_minutes", "max_login_attempts", "min_password_length",
}
_BOOL_COLUMNS = {"email_notifications", "push_notifications", "automatic_backup", "send_updates"}

_BRANDING_FIELDS = ("name", "logo_url", "primary_color", "secondary_color", "domain")


def get_or_create_settings(tenant_id) -> SystemSettings:
    settings = SystemSettings.query.filter_by(tenant_id=tenant_id).first()
    if settings is None:
        settings = SystemSettings(tenant_id=tenant_id)
        db.session.add(settings)
        db.session.flush()
    return settings


def get_settings(actor) -> dict:
    check_permission(actor, "configuracoes.editar")
    settings = get_or_create_settings(actor.tenant_id)
    db.session.commit()
    return settings.to_dict()


def _coerce_value(column, value):
    if column in _INT_COLUMNS:
        try:
            value = int(value)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"{column} must be an integer", details={column: "invalid"}) from exc
        if value < 0:
            raise ValidationError(f"{column} must not be negative", details={column: "min 0"})
        return value
    if column in _BOOL_COLUMNS:
        if not isinstance(value, bool):
            raise ValidationError(f"{column} must be a boolean", details={column: "invalid"})
        return value
    if column == "backup_frequency" and value not in BACKUP_FREQUENCIES:
        raise ValidationError("Invalid backup frequency", details={column: sorted(BACKUP_FREQUENCIES)})
    if column == "webhook_url":
        if value and not str(value).startswith(("http://", "https://")):
            raise ValidationError("webhook_url must be an http(s) URL", details={column: "invalid"})
        return value or None
    return value


def update_settings(actor, data: dict) -> dict:
    """Partial update; payload mirrors the sections of SystemSettings.to_dict()."""
    check_permission(actor, "configuracoes.editar")
    settings = get_or_create_settings(actor.tenant_id)

    values = {}
    for section, mapping in _SECTIONS.items():
        payload = data.get(section) or {}
        if not isinstance(payload, dict):
            raise ValidationError(f"{section} must be an object", details={section: "invalid"})
        for key, column in mapping.items():
            if key in payload:
                values[column] = _coerce_value(column, payload[key])

    changes = diff_fields(settings, values, values.keys())

    api_key = (data.get("integrations") or {}).get("api_key")
    if api_key is not None:
        settings.api_key_encrypted = encrypt_secret(api_key) if api_key else None
        changes["api_key"] = {"old": "***", "new": "***" if api_key else None}

    if changes:
        write_audit(entity_type="settings", entity_id=settings.id, action="update", actor=actor, diff=changes)
    db.session.commit()
    logger.info("Settings updated for tenant=%s fields=%s", actor.tenant_id, sorted(changes))
    return settings.to_dict()


def update_branding(actor, data: dict) -> dict:
    check_permission(actor, "branding.editar")
    tenant = db.session.get(Tenant, actor.tenant_id)
    if not tenant.allow_customization:
        raise ValidationError("Branding customization is disabled for this tenant")
    values = {f: data[f] for f in _BRANDING_FIELDS if f in data}
    if "name" in values and not (values["name"] or "").strip():
        raise ValidationError("name is required", details={"name": "required"})
    changes = diff_fields(tenant, values, values.keys())
    if changes:
        write_audit(entity_type="tenant", entity_id=tenant.id, action="update", actor=actor, diff=changes)
    db.session.commit()
    logger.info("Branding updated for tenant=%s", tenant.id)
    return tenant.to_dict()
