"""
Reports Blueprint.

  GET /api/v1/reports                   available report types
  GET /api/v1/reports/<type>            JSON report
  GET /api/v1/reports/<type>?format=xlsx|csv   file download

Filters: stage_id, salesperson, date_from, date_to (sale date range).
"""

from datetime import datetime

from flask import Blueprint, Response, g, jsonify, request, send_file

from app.middleware.permission_required import require_permission
from app.services.report_service import (
    REPORT_TYPES,
    build_report,
    export_report_csv,
    export_report_xlsx,
)
from app.utils.errors import E, api_error

reporting_bp = Blueprint("reports", __name__, url_prefix="/api/v1/reports")

_FILTER_KEYS = ("stage_id", "salesperson", "date_from", "date_to")
REPORT_PERMISSIONS = ("relatorios.todos", "relatorios.setor")


@reporting_bp.route("", methods=["GET"])
@require_permission(*REPORT_PERMISSIONS)
def report_types():
    return jsonify({"types": list(REPORT_TYPES)}), 200


@reporting_bp.route("/<report_type>", methods=["GET"])
@require_permission(*REPORT_PERMISSIONS)
def get_report(report_type):
    fmt = request.args.get("format", "json").lower()
    if fmt not in ("json", "xlsx", "csv"):
        return api_error(E.VALIDATION_INVALID, "format must be json, xlsx or csv")

    filters = {k: request.args[k] for k in _FILTER_KEYS if request.args.get(k)}
    report = build_report(g.current_user, report_type, filters)

    if fmt == "json":
        return jsonify(report), 200

    stamp = datetime.now().strftime("%Y%m%d")
    if fmt == "xlsx":
        return send_file(
            export_report_xlsx(report),
            as_attachment=True,
            download_name=f"report_{report_type}_{stamp}.xlsx",
            mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        )
    return Response(
        export_report_csv(report),
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename=report_{report_type}_{stamp}.csv"},
    )
