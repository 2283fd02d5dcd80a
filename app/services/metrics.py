"""
Dashboard Metrics Engine.

recompute_metrics() is a pure function over already-loaded orders and
stages; dashboard_metrics() loads the actor's visible orders and calls it.

Usage:
    from app.services.metrics import dashboard_metrics
    data = dashboard_metrics(current_user)
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone

from app.models.pipeline import Stage
from app.services.order_service import scoped_order_query
from app.services.permission_service import check_permission


# Not derived from data yet; exposed as fixed values
AVERAGE_CYCLE_DAYS = 7
LEAD_CONVERSION_RATE = 85
STAGE_TARGET = 50


@dataclass
class DashboardMetrics:
    total_orders: int = 0
    active_orders: int = 0
    completed_orders: int = 0
    overdue_orders: int = 0
    month_revenue: float = 0.0
    average_cycle_days: int = AVERAGE_CYCLE_DAYS
    lead_conversion_rate: int = LEAD_CONVERSION_RATE
    bottlenecks: list[dict] = field(default_factory=list)
    stage_targets: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


# ═════════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════════

def safe_pct(numerator: int, denominator: int) -> float:
    """Zero-safe percentage."""
    return round((numerator / denominator) * 100, 1) if denominator else 0.0


def days_in_stage(order, now: datetime) -> int:
    last = order.last_movement
    since = last.created_at if last is not None else order.created_at
    if since is None:
        return 0
    if since.tzinfo is None:
        since = since.replace(tzinfo=timezone.utc)
    return max((now - since).days, 0)


# ═════════════════════════════════════════════════════════════════════════════
# Core
# ═════════════════════════════════════════════════════════════════════════════

def recompute_metrics(orders, stages, *, today: date | None = None) -> DashboardMetrics:
    """
    Aggregate dashboard figures.

    - active: current stage not terminal (unknown stages count as active)
    - completed: total - active
    - overdue: expected delivery before today and not yet delivered
    - month_revenue: sum of total_value for sales in the current month and year
    """
    today = today or date.today()
    now = datetime.now(timezone.utc)
    terminal_ids = {s.id for s in stages if s.is_terminal}

    total = len(orders)
    active = sum(1 for o in orders if o.current_stage_id not in terminal_ids)
    overdue = sum(
        1 for o in orders
        if o.expected_delivery_date and o.expected_delivery_date < today and o.delivered_at is None
    )
    revenue = sum(
        float(o.total_value or 0) for o in orders
        if o.sale_date and o.sale_date.year == today.year and o.sale_date.month == today.month
    )

    bottlenecks = []
    targets = []
    for s in sorted(stages, key=lambda s: (s.sort_order, s.name)):
        in_stage = [o for o in orders if o.current_stage_id == s.id]
        ages = [days_in_stage(o, now) for o in in_stage]
        bottlenecks.append({
            "stage_id": s.id,
            "stage": s.name,
            "color": s.color,
            "count": len(in_stage),
            "average_days": round(sum(ages) / len(ages), 1) if ages else 0,
        })
        targets.append({
            "stage_id": s.id,
            "target": STAGE_TARGET,
            "current": len(in_stage),
            "percent": safe_pct(len(in_stage), STAGE_TARGET),
        })

    return DashboardMetrics(
        total_orders=total,
        active_orders=active,
        completed_orders=total - active,
        overdue_orders=overdue,
        month_revenue=round(revenue, 2),
        bottlenecks=bottlenecks,
        stage_targets=targets,
    )


def dashboard_metrics(actor, *, today: date | None = None) -> dict:
    check_permission(actor, "processos.visualizar")
    orders = scoped_order_query(actor).all()
    stages = Stage.query_for_tenant(actor.tenant_id).all()
    return recompute_metrics(orders, stages, today=today).to_dict()
