"""
ProcessFlow
Scheduled Jobs.

Concrete job implementations.

Jobs:
    - overdue_scanner: "delay" alerts for late orders, "due" alerts for orders due soon
    - stalled_order_scanner: "stalled" alerts for orders idle longer than their stage allows
    - demo_auto_mover: DEMO_MODE only; moves a random order to simulate activity
"""

from __future__ import annotations

import logging
import random
from datetime import date, datetime, timedelta, timezone
from typing import Any

from app.models import db
from app.models.auth import Tenant, User
from app.models.notification import Notification
from app.models.order import Order
from app.models.pipeline import Stage
from app.services.metrics import days_in_stage
from app.services.notification import NotificationService
from app.services.scheduler_service import register_job
from app.services.settings_service import get_or_create_settings

logger = logging.getLogger(__name__)


ALERT_ROLES = ("admin", "supervisor")


def _start_of_today() -> datetime:
    now = datetime.now(timezone.utc)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def _already_notified_today(order_id, type_) -> bool:
    return Notification.query.filter(
        Notification.order_id == order_id,
        Notification.type == type_,
        Notification.created_at >= _start_of_today(),
    ).first() is not None


def _open_orders(tenant_id):
    terminal_ids = [s.id for s in Stage.query_for_tenant(tenant_id).filter_by(is_terminal=True).all()]
    q = Order.query_for_tenant(tenant_id).filter(Order.delivered_at.is_(None))
    if terminal_ids:
        q = q.filter(Order.current_stage_id.notin_(terminal_ids))
    return q


def _active_tenants():
    return Tenant.query.filter_by(is_active=True).all()


# ═══════════════════════════════════════════════════════════════════════════
#  Job 1: Overdue Scanner
# ═══════════════════════════════════════════════════════════════════════════

@register_job("overdue_scanner")
def scan_overdue_orders(app) -> dict[str, Any]:
    """Alert admins and supervisors about late orders and orders due soon."""
    results = {"orders_overdue": 0, "orders_due_soon": 0, "notifications_created": 0}
    today = date.today()

    for tenant in _active_tenants():
        settings = get_or_create_settings(tenant.id)
        due_limit = today + timedelta(days=settings.due_warning_days or 0)

        for order in _open_orders(tenant.id).all():
            if order.expected_delivery_date < today:
                results["orders_overdue"] += 1
                if _already_notified_today(order.id, "delay"):
                    continue
                late = (today - order.expected_delivery_date).days
                created = NotificationService.broadcast_to_roles(
                    tenant_id=tenant.id,
                    roles=ALERT_ROLES,
                    title="Pedido atrasado",
                    message=f"O pedido {order.order_number} está {late} dia(s) atrasado.",
                    type="delay",
                    order_id=order.id,
                )
                results["notifications_created"] += len(created)
            elif order.expected_delivery_date <= due_limit:
                results["orders_due_soon"] += 1
                if _already_notified_today(order.id, "due"):
                    continue
                created = NotificationService.broadcast_to_roles(
                    tenant_id=tenant.id,
                    roles=ALERT_ROLES,
                    title="Entrega próxima",
                    message=(f"O pedido {order.order_number} vence em "
                             f"{order.expected_delivery_date.strftime('%d/%m/%Y')}."),
                    type="due",
                    order_id=order.id,
                )
                results["notifications_created"] += len(created)

    db.session.commit()
    logger.info("Overdue scanner: %s", results)
    return results


# ═══════════════════════════════════════════════════════════════════════════
#  Job 2: Stalled Order Scanner
# ═══════════════════════════════════════════════════════════════════════════

@register_job("stalled_order_scanner")
def scan_stalled_orders(app) -> dict[str, Any]:
    """Alert when an order sat in a stage longer than the stage's notify_after_days."""
    results = {"orders_stalled": 0, "notifications_created": 0}
    now = datetime.now(timezone.utc)

    for tenant in _active_tenants():
        stages = {s.id: s for s in Stage.query_for_tenant(tenant.id).all()}
        for order in _open_orders(tenant.id).all():
            stage = stages.get(order.current_stage_id)
            if stage is None or not stage.notify_after_days:
                continue
            idle = days_in_stage(order, now)
            if idle <= stage.notify_after_days:
                continue
            results["orders_stalled"] += 1
            if _already_notified_today(order.id, "stalled"):
                continue
            created = NotificationService.broadcast_to_roles(
                tenant_id=tenant.id,
                roles=ALERT_ROLES,
                title="Processo parado",
                message=f"O pedido {order.order_number} está há {idle} dias na etapa {stage.name}.",
                type="stalled",
                order_id=order.id,
            )
            results["notifications_created"] += len(created)

    db.session.commit()
    logger.info("Stalled order scanner: %s", results)
    return results


# ═══════════════════════════════════════════════════════════════════════════
#  Job 3: Demo auto mover
# ═══════════════════════════════════════════════════════════════════════════

@register_job("demo_auto_mover")
def demo_auto_move(app, rng: random.Random | None = None) -> dict[str, Any]:
    """Demo only: move one random order per tenant to another allowed stage."""
    from app.services.order_lifecycle import available_transitions, move_order

    if not app.config.get("DEMO_MODE"):
        return {"skipped": True, "reason": "DEMO_MODE disabled", "moved": 0}

    rng = rng or random.Random()
    moved = []
    for tenant in _active_tenants():
        admin = (
            User.query.filter_by(tenant_id=tenant.id, role="admin", is_active=True)
            .order_by(User.created_at)
            .first()
        )
        orders = Order.query_for_tenant(tenant.id).order_by(Order.order_number).all()
        if admin is None or not orders:
            continue
        order = rng.choice(orders)
        targets = [s for s in available_transitions(order) if s.id != order.current_stage_id]
        if not targets:
            continue
        target = rng.choice(targets)
        result = move_order(admin, order.id, target.id, "Movimentação automática (demo)", automatic=True)
        moved.append(result)

    logger.info("Demo auto mover moved %d order(s)", len(moved))
    return {"skipped": False, "moved": len(moved), "moves": moved}
