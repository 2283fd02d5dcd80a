"""
Users Blueprint: tenant user administration.

  GET    /api/v1/users                 list (filters: role, active)
  POST   /api/v1/users                 create
  GET    /api/v1/users/<id>            detail
  PUT    /api/v1/users/<id>            update (role, active flag, linked clients, ...)
  DELETE /api/v1/users/<id>            delete
  POST   /api/v1/users/<id>/password   set another user's password
"""

from flask import Blueprint, g, jsonify, request

from app.middleware.permission_required import login_required, require_permission
from app.services import user_service as svc
from app.utils.errors import E, api_error

users_bp = Blueprint("users", __name__, url_prefix="/api/v1/users")


@users_bp.route("", methods=["GET"])
@require_permission("usuarios.visualizar")
def list_users():
    active = request.args.get("active")
    active_flag = None if active is None else active.lower() in ("1", "true", "yes")
    return jsonify(svc.list_users(g.current_user, role=request.args.get("role"), active=active_flag))


@users_bp.route("", methods=["POST"])
@login_required
def create_user():
    data = request.get_json(silent=True) or {}
    return jsonify(svc.create_user(g.current_user, data)), 201


@users_bp.route("/<user_id>", methods=["GET"])
@login_required
def get_user(user_id):
    return jsonify(svc.get_user(g.current_user, user_id))


@users_bp.route("/<user_id>", methods=["PUT", "PATCH"])
@login_required
def update_user(user_id):
    data = request.get_json(silent=True) or {}
    return jsonify(svc.update_user(g.current_user, user_id, data))


@users_bp.route("/<user_id>", methods=["DELETE"])
@login_required
def delete_user(user_id):
    svc.delete_user(g.current_user, user_id)
    return jsonify({"deleted": True, "id": user_id})


@users_bp.route("/<user_id>/password", methods=["POST"])
@login_required
def set_password(user_id):
    """Body: { "new_password": "...", "current_password": "..." (own account only) }"""
    data = request.get_json(silent=True) or {}
    if not data.get("new_password"):
        return api_error(E.VALIDATION_REQUIRED, "new_password is required")
    svc.change_password(
        g.current_user, user_id, data["new_password"], current_password=data.get("current_password"),
    )
    return jsonify({"message": "Password changed successfully"})
