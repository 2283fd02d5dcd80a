"""
ProcessFlow
Audit domain model.

Models:
    - AuditLog: immutable, append-only audit trail for mutations.
"""

import json
from datetime import UTC, datetime

from app.models import db
from app.models.base import iso


# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ENTITY_TYPES = {"user", "stage", "client", "order", "settings", "tenant"}

AUDIT_ACTIONS = {
    # Order lifecycle
    "order.move",
    "order.finalize",
    # Stage pipeline
    "stage.reorder",
    "stage.set_transitions",
    # Users
    "user.change_password",
    # Generic
    "create",
    "update",
    "delete",
}


class AuditLog(db.Model):
    """
    Immutable audit trail for every mutation.

    One row per action.  ``diff_json`` carries an old→new snapshot
    for field-level changes.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_actor", "actor"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.String(36),
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    # Polymorphic entity reference
    entity_type = db.Column(
        db.String(30), nullable=False,
        comment="user | stage | client | order | settings",
    )
    entity_id = db.Column(db.String(36), nullable=False)

    # What happened
    action = db.Column(
        db.String(60), nullable=False,
        comment="create | update | delete | order.move | ...",
    )
    actor = db.Column(
        db.String(200), nullable=False, default="system",
        comment="Display name or 'system'",
    )
    actor_user_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Change payload
    diff_json = db.Column(db.Text, default="{}", comment="JSON: {field: {old, new}}")

    # Timestamp (immutable)
    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )

    # ── Helpers ──────────────────────────────────────────────────────────

    @property
    def diff(self) -> dict:
        """Deserialise *diff_json* to a Python dict."""
        try:
            return json.loads(self.diff_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor": self.actor,
            "actor_user_id": self.actor_user_id,
            "diff": self.diff,
            "timestamp": iso(self.timestamp),
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    entity_type: str,
    entity_id: str,
    action: str,
    actor=None,
    tenant_id: str | None = None,
    diff: dict | None = None,
) -> AuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control.

    *actor* is a User (or None for system jobs); its tenant is used when
    *tenant_id* is not given.
    """
    if tenant_id is None and actor is not None:
        tenant_id = actor.tenant_id

    log = AuditLog(
        tenant_id=tenant_id,
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor=actor.name if actor is not None else "system",
        actor_user_id=actor.id if actor is not None else None,
        diff_json=json.dumps(diff or {}, default=str),
    )
    db.session.add(log)
    db.session.flush()
    return log


def diff_fields(obj, data: dict, fields) -> dict:
    """Apply *data* to *obj* for the given *fields*; return {field: {old, new}} for changes."""
    changes = {}
    for field in fields:
        if field not in data:
            continue
        old = getattr(obj, field)
        new = data[field]
        if old != new:
            changes[field] = {"old": old, "new": new}
            setattr(obj, field, new)
    return changes
