"""
ProcessFlow
Client domain model.
"""

from app.models import db
from app.models.base import TenantModel, _utcnow, _uuid, iso


class Client(TenantModel):
    """Customer organisation or person orders are sold to."""

    __tablename__ = "clients"
    __table_args__ = (
        db.Index("ix_clients_tenant_name", "tenant_id", "name"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(200))
    phone = db.Column(db.String(50))
    address = db.Column(db.String(500))
    document = db.Column(db.String(30), comment="CPF/CNPJ")
    notes = db.Column(db.Text, default="")
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # Readers linked to this client
    linked_users = db.relationship("User", secondary="user_clients", back_populates="linked_clients")

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "document": self.document,
            "notes": self.notes,
            "is_active": self.is_active,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<Client {self.name}>"
