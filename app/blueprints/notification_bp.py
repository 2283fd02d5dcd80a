"""
ProcessFlow
Notification & Scheduling Blueprint.

Provides:
    - The current user's notifications (list, unread count, mark read)
    - Scheduled job management (list, trigger, toggle); admin only
"""

from __future__ import annotations

import logging

from flask import Blueprint, g, jsonify, request

from app.middleware.permission_required import login_required, require_permission
from app.services.notification import NotificationService
from app.services.scheduler_service import SchedulerService
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notifications", __name__, url_prefix="/api/v1")

JOB_ADMIN_PERMISSION = "configuracoes.editar"


# ═══════════════════════════════════════════════════════════════════════════
#  NOTIFICATIONS
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/notifications", methods=["GET"])
@login_required
def list_notifications():
    """
    Query params:
        unread_only  true to hide read notifications
        limit        page size (default 50, max 200)
        offset       rows to skip
    """
    unread_only = request.args.get("unread_only", "").lower() in ("1", "true", "yes")
    limit = min(200, max(1, request.args.get("limit", 50, type=int)))
    offset = max(0, request.args.get("offset", 0, type=int))

    items, total = NotificationService.list_for_user(
        g.current_user, unread_only=unread_only, limit=limit, offset=offset,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread_count": NotificationService.unread_count(g.current_user),
    })


@notification_bp.route("/notifications/unread-count", methods=["GET"])
@login_required
def unread_count():
    return jsonify({"unread_count": NotificationService.unread_count(g.current_user)})


@notification_bp.route("/notifications/<notification_id>/read", methods=["POST", "PATCH"])
@login_required
def mark_read(notification_id):
    notif = NotificationService.mark_read(g.current_user, notification_id)
    return jsonify(notif.to_dict())


@notification_bp.route("/notifications/read-all", methods=["POST"])
@login_required
def mark_all_read():
    count = NotificationService.mark_all_read(g.current_user)
    return jsonify({"marked_read": count})


# ═══════════════════════════════════════════════════════════════════════════
#  SCHEDULED JOBS
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/jobs", methods=["GET"])
@require_permission(JOB_ADMIN_PERMISSION)
def list_jobs():
    SchedulerService.ensure_jobs_registered()
    return jsonify(SchedulerService.list_jobs())


@notification_bp.route("/jobs/<job_name>/run", methods=["POST"])
@require_permission(JOB_ADMIN_PERMISSION)
def run_job(job_name):
    logger.info("Job %s triggered manually by user=%s", job_name, g.current_user.id)
    result = SchedulerService.run_job(job_name)
    status = 200 if result["status"] == "success" else 500
    return jsonify(result), status


@notification_bp.route("/jobs/<job_name>/toggle", methods=["POST"])
@require_permission(JOB_ADMIN_PERMISSION)
def toggle_job(job_name):
    """Body: { "enabled": true|false }"""
    data = request.get_json(silent=True) or {}
    if "enabled" not in data:
        return api_error(E.VALIDATION_REQUIRED, "enabled is required")
    SchedulerService.ensure_jobs_registered()
    return jsonify(SchedulerService.toggle_job(job_name, bool(data["enabled"])))
