"""
ProcessFlow
Chat domain model.

Models:
    - ChatMessage: one message between a client and the admin team
    - ChatConversation: per-client summary with the unread counter

Invariants: at most one conversation per (tenant, client); unread_count
equals the number of unread messages sent by the client.
"""

from app.models import db
from app.models.base import TenantModel, _utcnow, _uuid, iso


SENDERS = {"client", "admin"}


class ChatMessage(TenantModel):
    __tablename__ = "chat_messages"
    __table_args__ = (
        db.Index("ix_chat_messages_tenant_client", "tenant_id", "client_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    client_id = db.Column(
        db.String(36), db.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False,
    )
    client_name = db.Column(db.String(200), nullable=False)
    sender = db.Column(db.String(10), nullable=False)
    body = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "sender": self.sender,
            "body": self.body,
            "is_read": self.is_read,
            "created_at": iso(self.created_at),
        }


class ChatConversation(TenantModel):
    __tablename__ = "chat_conversations"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "client_id", name="uq_conversation_tenant_client"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    client_id = db.Column(
        db.String(36), db.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False,
    )
    client_name = db.Column(db.String(200), nullable=False)
    last_message = db.Column(db.Text, default="")
    last_message_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    unread_count = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, default=True)

    def to_dict(self):
        return {
            "id": self.id,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "last_message": self.last_message,
            "last_message_at": iso(self.last_message_at),
            "unread_count": self.unread_count,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<ChatConversation {self.client_name} unread={self.unread_count}>"
