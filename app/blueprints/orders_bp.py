"""
Orders Blueprint: order CRUD, stage moves and board views.

  GET    /api/v1/orders                    list with filters
  POST   /api/v1/orders                    create (initial stage + first movement)
  GET    /api/v1/orders/search?q=          free-text search
  GET    /api/v1/orders/board              kanban grouping by stage
  GET    /api/v1/orders/calendar           ?year=&month= by expected delivery date
  GET    /api/v1/orders/<id>               detail with history
  PUT    /api/v1/orders/<id>               update (no stage changes)
  DELETE /api/v1/orders/<id>               delete
  POST   /api/v1/orders/<id>/move          { "target_stage_id", "comment", "new_location" }
  GET    /api/v1/orders/<id>/history       movement list + consistency flag
  GET    /api/v1/orders/<id>/transitions   stages the order may move to

Mutation responses carry the refreshed dashboard metrics under "metrics".

List filters (query string, comma separated where plural):
    stages, salespeople, clients, locations, priorities, tags,
    assignee_id, date_from, date_to, q
"""

from datetime import date

from flask import Blueprint, g, jsonify, request

from app.core.exceptions import NotFoundError
from app.middleware.permission_required import login_required, require_permission
from app.models.order import Order
from app.services import order_service as svc
from app.services.metrics import dashboard_metrics
from app.services.order_lifecycle import available_transitions, move_order, verify_history
from app.utils.errors import E, api_error

orders_bp = Blueprint("orders", __name__, url_prefix="/api/v1/orders")

_FILTER_KEYS = ("stages", "salespeople", "clients", "locations", "priorities", "tags",
                "assignee_id", "date_from", "date_to", "q")


def _with_metrics(body: dict) -> dict:
    body["metrics"] = dashboard_metrics(g.current_user)
    return body


def _visible_order(order_id) -> Order:
    order = svc.scoped_order_query(g.current_user).filter(Order.id == order_id).first()
    if order is None:
        raise NotFoundError(resource="Order", resource_id=order_id)
    return order


# ═══════════════════════════════════════════════════════════════
# Collection
# ═══════════════════════════════════════════════════════════════

@orders_bp.route("", methods=["GET"])
@require_permission("processos.visualizar")
def list_orders():
    filters = {k: request.args[k] for k in _FILTER_KEYS if request.args.get(k)}
    return jsonify(svc.list_orders(g.current_user, filters))


@orders_bp.route("", methods=["POST"])
@login_required
def create_order():
    data = request.get_json(silent=True) or {}
    order = svc.create_order(g.current_user, data)
    return jsonify(_with_metrics({"order": order})), 201


@orders_bp.route("/search", methods=["GET"])
@require_permission("processos.visualizar")
def search_orders():
    return jsonify(svc.search_orders(g.current_user, request.args.get("q", "")))


@orders_bp.route("/board", methods=["GET"])
@require_permission("processos.visualizar")
def board():
    return jsonify(svc.orders_by_stage(g.current_user))


@orders_bp.route("/calendar", methods=["GET"])
@require_permission("processos.visualizar")
def calendar_view():
    today = date.today()
    year = request.args.get("year", today.year, type=int)
    month = request.args.get("month", today.month, type=int)
    return jsonify(svc.orders_calendar(g.current_user, year, month))


# ═══════════════════════════════════════════════════════════════
# Single order
# ═══════════════════════════════════════════════════════════════

@orders_bp.route("/<order_id>", methods=["GET"])
@require_permission("processos.visualizar")
def get_order(order_id):
    return jsonify(svc.get_order(g.current_user, order_id))


@orders_bp.route("/<order_id>", methods=["PUT", "PATCH"])
@login_required
def update_order(order_id):
    data = request.get_json(silent=True) or {}
    order = svc.update_order(g.current_user, order_id, data)
    return jsonify(_with_metrics({"order": order}))


@orders_bp.route("/<order_id>", methods=["DELETE"])
@login_required
def delete_order(order_id):
    svc.delete_order(g.current_user, order_id)
    return jsonify(_with_metrics({"deleted": True, "id": order_id}))


@orders_bp.route("/<order_id>/move", methods=["POST"])
@login_required
def move(order_id):
    data = request.get_json(silent=True) or {}
    target = data.get("target_stage_id")
    if not target:
        return api_error(E.VALIDATION_REQUIRED, "target_stage_id is required")
    result = move_order(
        g.current_user,
        order_id,
        target,
        data.get("comment"),
        new_location=data.get("new_location"),
    )
    return jsonify(_with_metrics(result))


@orders_bp.route("/<order_id>/history", methods=["GET"])
@require_permission("processos.visualizar")
def history(order_id):
    order = _visible_order(order_id)
    return jsonify({
        "order_id": order.id,
        "order_number": order.order_number,
        "current_stage_id": order.current_stage_id,
        "consistent": verify_history(order),
        "movements": [m.to_dict() for m in order.movements],
    })


@orders_bp.route("/<order_id>/transitions", methods=["GET"])
@require_permission("processos.visualizar")
def transitions(order_id):
    order = _visible_order(order_id)
    return jsonify({
        "order_id": order.id,
        "current_stage_id": order.current_stage_id,
        "available": [s.to_dict() for s in available_transitions(order)],
    })
