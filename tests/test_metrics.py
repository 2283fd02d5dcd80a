"""
Dashboard metrics tests.
"""

from datetime import date

import pytest

from app.core.exceptions import PermissionDeniedError
from app.services.metrics import (
    AVERAGE_CYCLE_DAYS,
    LEAD_CONVERSION_RATE,
    STAGE_TARGET,
    dashboard_metrics,
    recompute_metrics,
    safe_pct,
)
from app.services.order_lifecycle import move_order


def test_safe_pct():
    assert safe_pct(1, 4) == 25.0
    assert safe_pct(3, 0) == 0.0


def test_empty_inputs():
    m = recompute_metrics([], [], today=date(2024, 2, 16))
    assert m.total_orders == 0
    assert m.active_orders == 0
    assert m.month_revenue == 0.0
    assert m.bottlenecks == []


class TestDashboard:
    def test_counts_for_seeded_tenant(self, admin):
        m = dashboard_metrics(admin, today=date(2024, 2, 16))
        assert m["total_orders"] == 5
        assert m["active_orders"] == 4
        assert m["completed_orders"] == 1
        assert m["overdue_orders"] == 1
        assert m["month_revenue"] == 25000.0

    def test_fixed_figures(self, admin):
        m = dashboard_metrics(admin)
        assert m["average_cycle_days"] == AVERAGE_CYCLE_DAYS
        assert m["lead_conversion_rate"] == LEAD_CONVERSION_RATE
        assert all(t["target"] == STAGE_TARGET for t in m["stage_targets"])

    def test_revenue_follows_sale_month(self, admin):
        m = dashboard_metrics(admin, today=date(2024, 1, 31))
        assert m["month_revenue"] == 80500.0

    def test_bottlenecks_follow_pipeline_order(self, admin):
        m = dashboard_metrics(admin)
        assert [b["stage_id"] for b in m["bottlenecks"]] == [
            "etapa-lead", "etapa-venda", "etapa-pagamento",
            "etapa-producao", "etapa-expedicao", "etapa-entrega",
        ]
        by_stage = {b["stage_id"]: b["count"] for b in m["bottlenecks"]}
        assert by_stage["etapa-venda"] == 1
        assert by_stage["etapa-expedicao"] == 0

    def test_move_to_terminal_updates_counts(self, admin, operator):
        move_order(operator, "processo-001", "etapa-entrega")
        m = dashboard_metrics(admin, today=date(2024, 2, 16))
        assert m["active_orders"] == 3
        assert m["completed_orders"] == 2
        assert m["overdue_orders"] == 0

    def test_reader_metrics_are_scoped(self, reader):
        m = dashboard_metrics(reader)
        assert m["total_orders"] == 2

    def test_requires_view_permission(self, admin):
        admin.role = "guest"
        with pytest.raises(PermissionDeniedError):
            dashboard_metrics(admin)
