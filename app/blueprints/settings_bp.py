"""
Settings Blueprint: tenant settings and branding.

  GET /api/v1/settings            notification, backup, security and integration settings
  PUT /api/v1/settings            partial update by section
  GET /api/v1/settings/branding   tenant name, logo and colours (any signed-in user)
  PUT /api/v1/settings/branding   update branding
"""

from flask import Blueprint, g, jsonify, request

from app.middleware.permission_required import login_required
from app.services import settings_service as svc

settings_bp = Blueprint("settings", __name__, url_prefix="/api/v1/settings")


@settings_bp.route("", methods=["GET"])
@login_required
def get_settings():
    return jsonify(svc.get_settings(g.current_user))


@settings_bp.route("", methods=["PUT", "PATCH"])
@login_required
def update_settings():
    data = request.get_json(silent=True) or {}
    return jsonify(svc.update_settings(g.current_user, data))


@settings_bp.route("/branding", methods=["GET"])
@login_required
def get_branding():
    t = g.tenant
    return jsonify({
        "name": t.name,
        "logo_url": t.logo_url,
        "primary_color": t.primary_color,
        "secondary_color": t.secondary_color,
        "domain": t.domain,
        "allow_customization": t.allow_customization,
    })


@settings_bp.route("/branding", methods=["PUT", "PATCH"])
@login_required
def update_branding():
    data = request.get_json(silent=True) or {}
    return jsonify(svc.update_branding(g.current_user, data))
