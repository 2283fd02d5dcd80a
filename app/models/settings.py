"""
ProcessFlow
Per-tenant system settings.

Models:
    - SystemSettings: notification, backup and integration configuration
"""

from app.models import db
from app.models.base import _utcnow, _uuid, iso


BACKUP_FREQUENCIES = {"daily", "weekly", "monthly"}


class SystemSettings(db.Model):
    """One row per tenant, created lazily on first read."""

    __tablename__ = "system_settings"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    tenant_id = db.Column(
        db.String(36), db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, unique=True,
    )

    # Notifications
    email_notifications = db.Column(db.Boolean, default=True)
    push_notifications = db.Column(db.Boolean, default=True)
    delay_warning_days = db.Column(db.Integer, default=3)
    due_warning_days = db.Column(db.Integer, default=7)

    # Backup
    automatic_backup = db.Column(db.Boolean, default=True)
    backup_frequency = db.Column(db.String(10), default="weekly")
    retention_months = db.Column(db.Integer, default=12)

    # Security
    session_timeout_minutes = db.Column(db.Integer, default=240)
    max_login_attempts = db.Column(db.Integer, default=5)
    min_password_length = db.Column(db.Integer, default=8)

    # Integrations
    webhook_url = db.Column(db.String(500), nullable=True)
    api_key_encrypted = db.Column(db.Text, nullable=True, comment="Fernet token")
    send_updates = db.Column(db.Boolean, default=False)

    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        # The API key is never serialised in clear
        return {
            "notifications": {
                "email": self.email_notifications,
                "push": self.push_notifications,
                "delay_warning_days": self.delay_warning_days,
                "due_warning_days": self.due_warning_days,
            },
            "backup": {
                "automatic": self.automatic_backup,
                "frequency": self.backup_frequency,
                "retention_months": self.retention_months,
            },
            "security": {
                "session_timeout_minutes": self.session_timeout_minutes,
                "max_login_attempts": self.max_login_attempts,
                "min_password_length": self.min_password_length,
            },
            "integrations": {
                "webhook_url": self.webhook_url,
                "api_key_set": bool(self.api_key_encrypted),
                "send_updates": self.send_updates,
            },
            "updated_at": iso(self.updated_at),
        }
