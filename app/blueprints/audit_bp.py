"""
ProcessFlow
Audit blueprint.

Endpoints:
    GET  /api/v1/audit               list / filter the tenant's audit logs
    GET  /api/v1/audit/<int:log_id>  single audit entry
"""

from flask import Blueprint, g, jsonify, request

from app.middleware.permission_required import require_permission
from app.models.audit import AuditLog
from app.utils.errors import E, api_error

audit_bp = Blueprint("audit", __name__, url_prefix="/api/v1")


# ── List / filter ────────────────────────────────────────────────────────────

@audit_bp.route("/audit", methods=["GET"])
@require_permission("logs.visualizar")
def list_audit_logs():
    """
    Return paginated audit logs of the current tenant, newest first.

    Query params:
        entity_type  filter by entity type (order, user, stage, client, settings, tenant)
        entity_id    filter by entity PK
        action       filter by action string (prefix match)
        actor_id     filter by acting user id
        page         page number (default 1)
        per_page     items per page (default 50, max 200)
    """
    q = AuditLog.query.filter(AuditLog.tenant_id == g.current_user.tenant_id)

    entity_type = request.args.get("entity_type")
    if entity_type:
        q = q.filter(AuditLog.entity_type == entity_type)

    entity_id = request.args.get("entity_id")
    if entity_id:
        q = q.filter(AuditLog.entity_id == entity_id)

    action = request.args.get("action")
    if action:
        q = q.filter(AuditLog.action.startswith(action))

    actor_id = request.args.get("actor_id")
    if actor_id:
        q = q.filter(AuditLog.actor_user_id == actor_id)

    q = q.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())

    page = max(1, request.args.get("page", 1, type=int))
    per_page = min(200, max(1, request.args.get("per_page", 50, type=int)))

    paginated = q.paginate(page=page, per_page=per_page, error_out=False)

    return jsonify({
        "audit_logs": [log.to_dict() for log in paginated.items],
        "total": paginated.total,
        "page": paginated.page,
        "per_page": paginated.per_page,
        "pages": paginated.pages,
    })


# ── Single entry ─────────────────────────────────────────────────────────────

@audit_bp.route("/audit/<int:log_id>", methods=["GET"])
@require_permission("logs.visualizar")
def get_audit_log(log_id):
    log = AuditLog.query.filter_by(id=log_id, tenant_id=g.current_user.tenant_id).first()
    if not log:
        return api_error(E.NOT_FOUND, "Audit log not found")
    return jsonify(log.to_dict())
