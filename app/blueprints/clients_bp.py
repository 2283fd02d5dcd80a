"""
Clients Blueprint: customer CRUD.

  GET    /api/v1/clients          list (?q= name search; readers see linked clients only)
  POST   /api/v1/clients          create
  GET    /api/v1/clients/<id>     detail with order_count
  PUT    /api/v1/clients/<id>     update (rename propagates to orders and chat)
  DELETE /api/v1/clients/<id>     delete (409 while orders reference it)
"""

from flask import Blueprint, g, jsonify, request

from app.middleware.permission_required import login_required, require_permission
from app.services import client_service as svc

clients_bp = Blueprint("clients", __name__, url_prefix="/api/v1/clients")


@clients_bp.route("", methods=["GET"])
@require_permission("clientes.visualizar")
def list_clients():
    return jsonify(svc.list_clients(g.current_user, term=request.args.get("q")))


@clients_bp.route("", methods=["POST"])
@login_required
def create_client():
    data = request.get_json(silent=True) or {}
    return jsonify(svc.create_client(g.current_user, data)), 201


@clients_bp.route("/<client_id>", methods=["GET"])
@require_permission("clientes.visualizar")
def get_client(client_id):
    return jsonify(svc.get_client(g.current_user, client_id))


@clients_bp.route("/<client_id>", methods=["PUT", "PATCH"])
@login_required
def update_client(client_id):
    data = request.get_json(silent=True) or {}
    return jsonify(svc.update_client(g.current_user, client_id, data))


@clients_bp.route("/<client_id>", methods=["DELETE"])
@login_required
def delete_client(client_id):
    svc.delete_client(g.current_user, client_id)
    return jsonify({"deleted": True, "id": client_id})
