"""
Client Service: customer CRUD.

A rename is propagated to the denormalised client_name on orders, chat
messages and the chat conversation. Delete is blocked while orders
reference the client.
"""

import logging

from email_validator import EmailNotValidError, validate_email

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models import db
from app.models.audit import diff_fields, write_audit
from app.models.chat import ChatConversation, ChatMessage
from app.models.client import Client
from app.models.order import Order
from app.services.permission_service import check_permission

logger = logging.getLogger(__name__)


_EDITABLE = ("name", "email", "phone", "address", "document", "notes", "is_active")


def _load(actor, client_id) -> Client:
    client = Client.get_for_tenant(actor.tenant_id, client_id)
    if client is None:
        raise NotFoundError(resource="Client", resource_id=client_id)
    return client


def _validate(values: dict) -> None:
    if "name" in values:
        values["name"] = (values["name"] or "").strip()
        if not values["name"]:
            raise ValidationError("name is required", details={"name": "required"})
    if values.get("email"):
        try:
            values["email"] = validate_email(values["email"], check_deliverability=False).normalized
        except EmailNotValidError as e:
            raise ValidationError(f"Invalid email: {e}", details={"email": "invalid"}) from e


def list_clients(actor, term: str | None = None) -> list[dict]:
    check_permission(actor, "clientes.visualizar")
    q = Client.query_for_tenant(actor.tenant_id)
    if actor.role == "reader":
        q = q.filter(Client.id.in_(actor.linked_client_ids or [""]))
    if term:
        q = q.filter(Client.name.ilike(f"%{term.strip()}%"))
    return [c.to_dict() for c in q.order_by(Client.name).all()]


def get_client(actor, client_id) -> dict:
    check_permission(actor, "clientes.visualizar")
    if actor.role == "reader" and client_id not in actor.linked_client_ids:
        raise NotFoundError(resource="Client", resource_id=client_id)
    client = _load(actor, client_id)
    d = client.to_dict()
    d["order_count"] = Order.query_for_tenant(actor.tenant_id).filter_by(client_id=client.id).count()
    return d


def create_client(actor, data: dict) -> dict:
    check_permission(actor, "clientes.criar")
    values = {f: data[f] for f in _EDITABLE if f in data}
    values.setdefault("name", "")
    _validate(values)
    client = Client(tenant_id=actor.tenant_id, **values)
    db.session.add(client)
    db.session.flush()
    write_audit(entity_type="client", entity_id=client.id, action="create", actor=actor,
                diff={"name": {"old": None, "new": client.name}})
    db.session.commit()
    logger.info("Client %s created by user=%s", client.name, actor.id)
    return client.to_dict()


def update_client(actor, client_id, data: dict) -> dict:
    check_permission(actor, "clientes.editar")
    client = _load(actor, client_id)
    values = {f: data[f] for f in _EDITABLE if f in data}
    _validate(values)

    changes = diff_fields(client, values, values.keys())
    if "name" in changes:
        new_name = client.name
        Order.query_for_tenant(actor.tenant_id).filter_by(client_id=client.id).update(
            {"client_name": new_name}, synchronize_session="fetch",
        )
        ChatMessage.query_for_tenant(actor.tenant_id).filter_by(client_id=client.id).update(
            {"client_name": new_name}, synchronize_session="fetch",
        )
        ChatConversation.query_for_tenant(actor.tenant_id).filter_by(client_id=client.id).update(
            {"client_name": new_name}, synchronize_session="fetch",
        )
    if changes:
        write_audit(entity_type="client", entity_id=client.id, action="update", actor=actor, diff=changes)
    db.session.commit()
    logger.info("Client %s updated by user=%s fields=%s", client.id, actor.id, sorted(changes))
    return client.to_dict()


def delete_client(actor, client_id) -> None:
    check_permission(actor, "clientes.excluir")
    client = _load(actor, client_id)
    linked = Order.query_for_tenant(actor.tenant_id).filter_by(client_id=client.id).count()
    if linked:
        raise ConflictError(
            resource="Client", field="orders", value=str(linked),
            message=f"Client '{client.name}' has {linked} linked order(s)",
        )
    ChatMessage.query_for_tenant(actor.tenant_id).filter_by(client_id=client.id).delete(synchronize_session=False)
    ChatConversation.query_for_tenant(actor.tenant_id).filter_by(client_id=client.id).delete(synchronize_session=False)
    write_audit(entity_type="client", entity_id=client.id, action="delete", actor=actor,
                diff={"name": {"old": client.name, "new": None}})
    db.session.delete(client)
    db.session.commit()
    logger.info("Client %s deleted by user=%s", client_id, actor.id)
