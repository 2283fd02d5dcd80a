"""
ProcessFlow
Order Service: CRUD, search, kanban board and delivery calendar.

Stage changes never happen here; they go through
app.services.order_lifecycle.move_order so the history stays consistent.
Readers only ever see orders of the clients linked to their account.
"""

import calendar
import logging
from datetime import date, datetime, timezone

from sqlalchemy import func, or_

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models import db
from app.models.audit import diff_fields, write_audit
from app.models.auth import Tenant, User
from app.models.client import Client
from app.models.order import PHYSICAL_LOCATIONS, PRIORITIES, Order
from app.models.pipeline import Stage
from app.services.notification import NotificationService
from app.services.order_lifecycle import append_movement, initial_stage
from app.services.permission_service import check_permission
from app.utils.helpers import parse_date, parse_date_input, parse_decimal, parse_list

logger = logging.getLogger(__name__)


_TEXT_FIELDS = ("salesperson", "product", "packaging", "freight_type", "notes")
_LIST_FIELDS = ("courtesies", "shortages", "tags")
_DATE_FIELDS = ("sale_date", "first_payment_date", "expected_delivery_date")


# ═══════════════════════════════════════════════════════════════
# Scoping
# ═══════════════════════════════════════════════════════════════

def scoped_order_query(actor):
    """Orders visible to *actor*: its tenant, narrowed to linked clients for readers."""
    q = Order.query_for_tenant(actor.tenant_id)
    if actor.role == "reader":
        q = q.filter(Order.client_id.in_(actor.linked_client_ids or [""]))
    return q


def get_order(actor, order_id, include_history=True):
    check_permission(actor, "processos.visualizar")
    order = scoped_order_query(actor).filter(Order.id == order_id).first()
    if order is None:
        raise NotFoundError(resource="Order", resource_id=order_id)
    return order.to_dict(include_history=include_history)


def _load_for_write(actor, order_id) -> Order:
    order = Order.get_for_tenant(actor.tenant_id, order_id)
    if order is None:
        raise NotFoundError(resource="Order", resource_id=order_id)
    return order


def _resolve_client(tenant_id, client_id) -> Client:
    if not client_id:
        raise ValidationError("client_id is required", details={"client_id": "required"})
    client = Client.get_for_tenant(tenant_id, client_id)
    if client is None:
        raise NotFoundError(resource="Client", resource_id=client_id)
    return client


def _resolve_assignee(tenant_id, assignee_id):
    if not assignee_id:
        return None
    user = db.session.get(User, assignee_id)
    if user is None or user.tenant_id != tenant_id:
        raise NotFoundError(resource="User", resource_id=assignee_id)
    return user.id


def _check_number_unique(tenant_id, order_number, exclude_id=None):
    q = Order.query_for_tenant(tenant_id).filter(Order.order_number == order_number)
    if exclude_id:
        q = q.filter(Order.id != exclude_id)
    if q.first() is not None:
        raise ConflictError(resource="Order", field="order_number", value=order_number)


def _coerce(data: dict) -> dict:
    """Normalise payload values; only keys present in *data* are returned."""
    out = {}
    for f in _TEXT_FIELDS:
        if f in data:
            out[f] = (data[f] or "").strip() if isinstance(data[f], str) else (data[f] or "")
    for f in _LIST_FIELDS:
        if f in data:
            out[f] = parse_list(data[f], f)
    for f in _DATE_FIELDS:
        if f in data:
            out[f] = parse_date_input(data[f], f)
    if "quantity" in data:
        try:
            out["quantity"] = int(data["quantity"])
        except (TypeError, ValueError) as exc:
            raise ValidationError("quantity must be an integer", details={"quantity": "invalid"}) from exc
        if out["quantity"] < 1:
            raise ValidationError("quantity must be at least 1", details={"quantity": "min 1"})
    if "total_value" in data:
        out["total_value"] = parse_decimal(data["total_value"], "total_value")
    if "priority" in data:
        if data["priority"] not in PRIORITIES:
            raise ValidationError("Invalid priority", details={"priority": sorted(PRIORITIES)})
        out["priority"] = data["priority"]
    if "physical_location" in data:
        if data["physical_location"] not in PHYSICAL_LOCATIONS:
            raise ValidationError(
                "Invalid physical location", details={"physical_location": sorted(PHYSICAL_LOCATIONS)},
            )
        out["physical_location"] = data["physical_location"]
    return out


# ═══════════════════════════════════════════════════════════════
# Create / Update / Delete
# ═══════════════════════════════════════════════════════════════

def create_order(actor, data: dict) -> dict:
    check_permission(actor, "processos.criar")

    order_number = (data.get("order_number") or "").strip()
    if not order_number:
        raise ValidationError("order_number is required", details={"order_number": "required"})
    if not data.get("expected_delivery_date"):
        raise ValidationError(
            "expected_delivery_date is required", details={"expected_delivery_date": "required"},
        )
    client = _resolve_client(actor.tenant_id, data.get("client_id"))
    _check_number_unique(actor.tenant_id, order_number)

    tenant = db.session.get(Tenant, actor.tenant_id)
    if tenant.max_orders and Order.query_for_tenant(actor.tenant_id).count() >= tenant.max_orders:
        raise ValidationError(f"Order limit reached ({tenant.max_orders})")

    if data.get("current_stage_id"):
        stage = Stage.get_for_tenant(actor.tenant_id, data["current_stage_id"])
        if stage is None:
            raise NotFoundError(resource="Stage", resource_id=data["current_stage_id"])
        if not stage.is_active:
            raise ValidationError(
                f"Stage '{stage.name}' is inactive", details={"current_stage_id": "inactive"},
            )
    else:
        stage = initial_stage(actor.tenant_id)
        if stage is None:
            raise ValidationError("No active stage configured")

    values = _coerce(data)
    now = datetime.now(timezone.utc)
    order = Order(
        tenant_id=actor.tenant_id,
        order_number=order_number,
        client_id=client.id,
        client_name=client.name,
        current_stage_id=stage.id,
        assignee_id=_resolve_assignee(actor.tenant_id, data.get("assignee_id")),
        created_at=now,
        updated_at=now,
        **values,
    )
    if stage.is_terminal:
        order.delivered_at = now
        order.physical_location = "delivered"
    db.session.add(order)
    append_movement(
        order,
        previous_stage_id=None,
        new_stage_id=stage.id,
        actor=actor,
        comment=data.get("comment") or "Pedido criado",
        new_location=order.physical_location or "yard",
        at=now,
    )
    db.session.flush()
    write_audit(entity_type="order", entity_id=order.id, action="create", actor=actor,
                diff={"order_number": {"old": None, "new": order_number}})
    db.session.commit()
    logger.info("Order %s created by user=%s", order_number, actor.id)
    return order.to_dict(include_history=True)


def update_order(actor, order_id, data: dict) -> dict:
    check_permission(actor, "processos.editar")
    order = _load_for_write(actor, order_id)

    if "current_stage_id" in data and data["current_stage_id"] != order.current_stage_id:
        raise ValidationError(
            "Stage changes must use the move operation",
            details={"current_stage_id": "use POST /orders/<id>/move"},
        )
    stage = order.current_stage
    if stage is not None and not stage.allow_edit and actor.role != "admin":
        raise ValidationError(f"Orders in stage '{stage.name}' cannot be edited")

    if "delivered_at" in data:
        if data["delivered_at"] in (None, ""):
            if order.delivered_at is not None:
                raise ValidationError(
                    "delivered_at cannot be cleared once the order was delivered",
                    details={"delivered_at": "already set"},
                )
        elif parse_date(data["delivered_at"]) is None:
            raise ValidationError("Invalid date for delivered_at", details={"delivered_at": "invalid date"})

    values = _coerce(data)
    if "expected_delivery_date" in data and values.get("expected_delivery_date") is None:
        raise ValidationError(
            "expected_delivery_date is required", details={"expected_delivery_date": "required"},
        )

    if "order_number" in data:
        number = (data["order_number"] or "").strip()
        if not number:
            raise ValidationError("order_number is required", details={"order_number": "required"})
        _check_number_unique(actor.tenant_id, number, exclude_id=order.id)
        values["order_number"] = number

    if "client_id" in data and data["client_id"] != order.client_id:
        client = _resolve_client(actor.tenant_id, data["client_id"])
        values["client_id"] = client.id
        values["client_name"] = client.name
    if "assignee_id" in data:
        values["assignee_id"] = _resolve_assignee(actor.tenant_id, data["assignee_id"])

    changes = diff_fields(order, values, values.keys())

    if "delivered_at" in data:
        old = order.delivered_at
        if data["delivered_at"] in (None, ""):
            order.delivered_at = None
        else:
            d = parse_date(data["delivered_at"])
            order.delivered_at = datetime(d.year, d.month, d.day, tzinfo=timezone.utc)
        if old != order.delivered_at:
            changes["delivered_at"] = {"old": old, "new": order.delivered_at}

    order.updated_at = datetime.now(timezone.utc)
    if changes:
        write_audit(entity_type="order", entity_id=order.id, action="update", actor=actor, diff=changes)
    db.session.commit()
    logger.info("Order %s updated by user=%s fields=%s", order.order_number, actor.id, sorted(changes))
    return order.to_dict(include_history=True)


def delete_order(actor, order_id) -> None:
    check_permission(actor, "processos.excluir")
    order = _load_for_write(actor, order_id)
    number = order.order_number
    NotificationService.delete_for_order(order.id)
    write_audit(entity_type="order", entity_id=order.id, action="delete", actor=actor,
                diff={"order_number": {"old": number, "new": None}})
    db.session.delete(order)
    db.session.commit()
    logger.info("Order %s deleted by user=%s", number, actor.id)


# ═══════════════════════════════════════════════════════════════
# Queries
# ═══════════════════════════════════════════════════════════════

def _apply_filters(q, filters: dict):
    if filters.get("stages"):
        q = q.filter(Order.current_stage_id.in_(parse_list(filters["stages"], "stages")))
    if filters.get("salespeople"):
        q = q.filter(Order.salesperson.in_(parse_list(filters["salespeople"], "salespeople")))
    if filters.get("clients"):
        q = q.filter(Order.client_id.in_(parse_list(filters["clients"], "clients")))
    if filters.get("locations"):
        q = q.filter(Order.physical_location.in_(parse_list(filters["locations"], "locations")))
    if filters.get("priorities"):
        q = q.filter(Order.priority.in_(parse_list(filters["priorities"], "priorities")))
    if filters.get("assignee_id"):
        q = q.filter(Order.assignee_id == filters["assignee_id"])
    date_from = parse_date(filters.get("date_from"))
    date_to = parse_date(filters.get("date_to"))
    if date_from:
        q = q.filter(Order.sale_date >= date_from)
    if date_to:
        q = q.filter(Order.sale_date <= date_to)
    return q


def _search_clause(term: str):
    like = f"%{term.lower()}%"
    return or_(
        func.lower(Order.order_number).like(like),
        func.lower(Order.client_name).like(like),
        func.lower(Order.salesperson).like(like),
        func.lower(Order.product).like(like),
    )


def list_orders(actor, filters: dict | None = None) -> list[dict]:
    """Orders visible to the actor, newest first, with optional filters and search."""
    check_permission(actor, "processos.visualizar")
    filters = filters or {}
    q = _apply_filters(scoped_order_query(actor), filters)
    if filters.get("q"):
        q = q.filter(_search_clause(filters["q"].strip()))
    orders = q.order_by(Order.created_at.desc()).all()

    # Tags are a JSON list; filter in Python to stay portable across backends
    tags = parse_list(filters.get("tags"), "tags") if filters.get("tags") else []
    if tags:
        orders = [o for o in orders if set(tags) & set(o.tags or [])]
    return [o.to_dict() for o in orders]


def search_orders(actor, term: str) -> list[dict]:
    """Case-insensitive match on order number, client name, salesperson or product."""
    term = (term or "").strip()
    if not term:
        return []
    return list_orders(actor, {"q": term})


def orders_by_stage(actor) -> list[dict]:
    """Kanban board: every active stage in order with the orders sitting in it."""
    check_permission(actor, "processos.visualizar")
    stages = (
        Stage.query_for_tenant(actor.tenant_id)
        .filter_by(is_active=True)
        .order_by(Stage.sort_order, Stage.name)
        .all()
    )
    orders = scoped_order_query(actor).order_by(Order.expected_delivery_date).all()
    by_stage: dict[str, list] = {s.id: [] for s in stages}
    for o in orders:
        if o.current_stage_id in by_stage:
            by_stage[o.current_stage_id].append(o.to_dict())
    return [
        {"stage": s.to_dict(), "count": len(by_stage[s.id]), "orders": by_stage[s.id]}
        for s in stages
    ]


def orders_calendar(actor, year: int, month: int) -> dict:
    """Orders grouped by expected delivery day for one month."""
    check_permission(actor, "processos.visualizar")
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12", details={"month": month})
    first = date(year, month, 1)
    last = date(year, month, calendar.monthrange(year, month)[1])
    orders = (
        scoped_order_query(actor)
        .filter(Order.expected_delivery_date >= first, Order.expected_delivery_date <= last)
        .order_by(Order.expected_delivery_date, Order.order_number)
        .all()
    )
    days: dict[str, list] = {}
    for o in orders:
        days.setdefault(o.expected_delivery_date.isoformat(), []).append(o.to_dict())
    return {"year": year, "month": month, "days": days, "total": len(orders)}
