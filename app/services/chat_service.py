"""
Chat Service: client ↔ admin messaging.

Keeps two invariants on every write:
  - one ChatConversation per (tenant, client)
  - conversation.unread_count == number of unread messages sent by the client

Readers only reach the conversations of their linked clients and always
send as "client".
"""

import logging
from datetime import datetime, timezone

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.chat import SENDERS, ChatConversation, ChatMessage
from app.models.client import Client
from app.services.permission_service import check_permission

logger = logging.getLogger(__name__)


def _check_client_access(actor, client_id):
    if actor.role == "reader" and client_id not in actor.linked_client_ids:
        raise NotFoundError(resource="Client", resource_id=client_id)


def _get_client(actor, client_id) -> Client:
    client = Client.get_for_tenant(actor.tenant_id, client_id)
    if client is None:
        raise NotFoundError(resource="Client", resource_id=client_id)
    _check_client_access(actor, client_id)
    return client


def _conversation_for(tenant_id, client_id):
    return ChatConversation.query_for_tenant(tenant_id).filter_by(client_id=client_id).first()


def unread_client_messages(tenant_id, client_id) -> int:
    return ChatMessage.query_for_tenant(tenant_id).filter_by(
        client_id=client_id, sender="client", is_read=False,
    ).count()


def send_message(actor, client_id, body, sender="admin") -> dict:
    """
    Append a message and update (or create) the client's conversation.

    Returns:
        {"message": {...}, "conversation": {...}}
    """
    check_permission(actor, "clientes.visualizar")
    if actor.role == "reader":
        sender = "client"
    if sender not in SENDERS:
        raise ValidationError("Invalid sender", details={"sender": sorted(SENDERS)})
    body = (body or "").strip()
    if not body:
        raise ValidationError("Message body is required", details={"body": "required"})
    client = _get_client(actor, client_id)

    now = datetime.now(timezone.utc)
    message = ChatMessage(
        tenant_id=actor.tenant_id,
        client_id=client.id,
        client_name=client.name,
        sender=sender,
        body=body,
        is_read=False,
        created_at=now,
    )
    db.session.add(message)

    conversation = _conversation_for(actor.tenant_id, client.id)
    if conversation is None:
        conversation = ChatConversation(
            tenant_id=actor.tenant_id,
            client_id=client.id,
            client_name=client.name,
            unread_count=0,
            is_active=True,
        )
        db.session.add(conversation)
    conversation.last_message = body
    conversation.last_message_at = now
    if sender == "client":
        conversation.unread_count = (conversation.unread_count or 0) + 1

    db.session.commit()
    logger.info("Chat message for client=%s from %s by user=%s", client.id, sender, actor.id)
    return {"message": message.to_dict(), "conversation": conversation.to_dict()}


def mark_message_read(actor, message_id) -> dict:
    check_permission(actor, "clientes.visualizar")
    message = ChatMessage.get_for_tenant(actor.tenant_id, message_id)
    if message is None:
        raise NotFoundError(resource="ChatMessage", resource_id=message_id)
    _check_client_access(actor, message.client_id)

    if not message.is_read:
        message.is_read = True
        if message.sender == "client":
            conversation = _conversation_for(actor.tenant_id, message.client_id)
            if conversation is not None and conversation.unread_count > 0:
                conversation.unread_count -= 1
        db.session.commit()
    return message.to_dict()


def mark_conversation_read(actor, conversation_id) -> dict:
    """Zero the unread counter and flip every unread client message, atomically."""
    check_permission(actor, "clientes.visualizar")
    conversation = ChatConversation.get_for_tenant(actor.tenant_id, conversation_id)
    if conversation is None:
        raise NotFoundError(resource="ChatConversation", resource_id=conversation_id)
    _check_client_access(actor, conversation.client_id)

    flipped = (
        ChatMessage.query_for_tenant(actor.tenant_id)
        .filter_by(client_id=conversation.client_id, sender="client", is_read=False)
        .update({"is_read": True}, synchronize_session="fetch")
    )
    conversation.unread_count = 0
    db.session.commit()
    logger.info("Conversation %s marked read (%d messages)", conversation.id, flipped)
    return conversation.to_dict()


def list_conversations(actor) -> list[dict]:
    check_permission(actor, "clientes.visualizar")
    q = ChatConversation.query_for_tenant(actor.tenant_id)
    if actor.role == "reader":
        q = q.filter(ChatConversation.client_id.in_(actor.linked_client_ids or [""]))
    return [c.to_dict() for c in q.order_by(ChatConversation.last_message_at.desc()).all()]


def list_messages(actor, client_id) -> list[dict]:
    check_permission(actor, "clientes.visualizar")
    _get_client(actor, client_id)
    messages = (
        ChatMessage.query_for_tenant(actor.tenant_id)
        .filter_by(client_id=client_id)
        .order_by(ChatMessage.created_at)
        .all()
    )
    return [m.to_dict() for m in messages]
