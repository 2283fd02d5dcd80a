"""
ProcessFlow
Pipeline domain model.

Models:
    - Stage: ordered, coloured pipeline step an order moves through
    - StageTransition: optional allowed-move adjacency between stages

A stage without outgoing StageTransition rows accepts moves to any stage.
"""

from app.models import db
from app.models.base import TenantModel, _utcnow, _uuid, iso


class Stage(TenantModel):
    """Pipeline step (etapa)."""

    __tablename__ = "stages"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "name", name="uq_stage_tenant_name"),
        db.Index("ix_stages_tenant_sort", "tenant_id", "sort_order"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, default="")
    color = db.Column(db.String(20), default="#3B82F6")
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, default=True)
    is_terminal = db.Column(db.Boolean, default=False, comment="Orders here count as delivered")

    # Per-stage configuration
    allow_edit = db.Column(db.Boolean, default=True)
    notify_after_days = db.Column(db.Integer, default=0, comment="0 disables stalled-order alerts")
    is_mandatory = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    outgoing = db.relationship(
        "StageTransition",
        foreign_keys="StageTransition.from_stage_id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def allowed_target_ids(self) -> list[str]:
        return sorted(t.to_stage_id for t in self.outgoing)

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "description": self.description,
            "color": self.color,
            "sort_order": self.sort_order,
            "is_active": self.is_active,
            "is_terminal": self.is_terminal,
            "settings": {
                "allow_edit": self.allow_edit,
                "notify_after_days": self.notify_after_days,
                "is_mandatory": self.is_mandatory,
            },
            "allowed_target_ids": self.allowed_target_ids,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<Stage {self.sort_order}: {self.name}>"


class StageTransition(db.Model):
    """Allowed move from one stage to another."""

    __tablename__ = "stage_transitions"
    __table_args__ = (
        db.UniqueConstraint("from_stage_id", "to_stage_id", name="uq_stage_transition"),
    )

    id = db.Column(db.Integer, primary_key=True)
    from_stage_id = db.Column(
        db.String(36), db.ForeignKey("stages.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    to_stage_id = db.Column(
        db.String(36), db.ForeignKey("stages.id", ondelete="CASCADE"), nullable=False,
    )
