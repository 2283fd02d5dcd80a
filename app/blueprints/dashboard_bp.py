"""
Dashboard Metrics Blueprint.

Order-pipeline KPIs for the tenant (reader-scoped for readers).
"""

from flask import Blueprint, g, jsonify

from app.middleware.permission_required import require_permission
from app.services.metrics import dashboard_metrics

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/v1/dashboard")


@dashboard_bp.route("/metrics", methods=["GET"])
@require_permission("processos.visualizar")
def metrics():
    """Totals, overdue count, month revenue, per-stage bottlenecks and targets."""
    return jsonify(dashboard_metrics(g.current_user)), 200
