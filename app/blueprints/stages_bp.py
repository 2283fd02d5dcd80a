"""
Stages Blueprint: pipeline configuration.

  GET    /api/v1/stages                    list (?active=true hides inactive)
  POST   /api/v1/stages                    create (appended at the end)
  PUT    /api/v1/stages/<id>               update
  DELETE /api/v1/stages/<id>               delete (409 while orders sit in it)
  POST   /api/v1/stages/reorder            { "ordered_ids": [...] }
  PUT    /api/v1/stages/<id>/transitions   { "target_ids": [...] } ([] = unrestricted)
"""

from flask import Blueprint, g, jsonify, request

from app.middleware.permission_required import login_required
from app.services import stage_service as svc
from app.utils.errors import E, api_error

stages_bp = Blueprint("stages", __name__, url_prefix="/api/v1/stages")


@stages_bp.route("", methods=["GET"])
@login_required
def list_stages():
    only_active = request.args.get("active", "").lower() in ("1", "true", "yes")
    return jsonify(svc.list_stages(g.current_user, include_inactive=not only_active))


@stages_bp.route("", methods=["POST"])
@login_required
def create_stage():
    data = request.get_json(silent=True) or {}
    return jsonify(svc.create_stage(g.current_user, data)), 201


@stages_bp.route("/reorder", methods=["POST"])
@login_required
def reorder_stages():
    data = request.get_json(silent=True) or {}
    if not isinstance(data.get("ordered_ids"), list):
        return api_error(E.VALIDATION_REQUIRED, "ordered_ids (list) is required")
    return jsonify(svc.reorder_stages(g.current_user, data["ordered_ids"]))


@stages_bp.route("/<stage_id>", methods=["PUT", "PATCH"])
@login_required
def update_stage(stage_id):
    data = request.get_json(silent=True) or {}
    return jsonify(svc.update_stage(g.current_user, stage_id, data))


@stages_bp.route("/<stage_id>", methods=["DELETE"])
@login_required
def delete_stage(stage_id):
    svc.delete_stage(g.current_user, stage_id)
    return jsonify({"deleted": True, "id": stage_id})


@stages_bp.route("/<stage_id>/transitions", methods=["PUT"])
@login_required
def set_transitions(stage_id):
    data = request.get_json(silent=True) or {}
    target_ids = data.get("target_ids", [])
    if not isinstance(target_ids, list):
        return api_error(E.VALIDATION_INVALID, "target_ids must be a list")
    return jsonify(svc.set_transitions(g.current_user, stage_id, target_ids))
