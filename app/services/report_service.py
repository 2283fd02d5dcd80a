"""
Report Service: tabular reports and their xlsx/csv exports.

Report types:
    orders       one row per order
    sales        revenue grouped by salesperson
    production   load per stage (count, overdue, average days in stage)
    bottlenecks  share of open orders sitting in each stage
    conversion   how many orders ever reached each stage

Holders of relatorios.todos see the whole tenant. Holders of only
relatorios.setor see their own scope: readers their linked clients,
everyone else the orders assigned to or sold by them.
"""

import csv
import io
import logging
from datetime import date, datetime, timezone

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from sqlalchemy import or_

from app.core.exceptions import ValidationError
from app.models.order import Order
from app.models.pipeline import Stage
from app.services.metrics import days_in_stage, safe_pct
from app.services.permission_service import check_permission, has_permission
from app.utils.helpers import parse_date

logger = logging.getLogger(__name__)


REPORT_TYPES = ("orders", "sales", "production", "bottlenecks", "conversion")

HEADER_FILL = PatternFill(start_color="1E3A5F", end_color="1E3A5F", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)


# ═════════════════════════════════════════════════════════════════════════════
# Data
# ═════════════════════════════════════════════════════════════════════════════

def _report_query(actor, filters: dict):
    q = Order.query_for_tenant(actor.tenant_id)
    if not has_permission(actor.role, "relatorios.todos"):
        if actor.role == "reader":
            q = q.filter(Order.client_id.in_(actor.linked_client_ids or [""]))
        else:
            q = q.filter(or_(Order.assignee_id == actor.id, Order.salesperson == actor.name))
    if filters.get("stage_id"):
        q = q.filter(Order.current_stage_id == filters["stage_id"])
    if filters.get("salesperson"):
        q = q.filter(Order.salesperson == filters["salesperson"])
    date_from = parse_date(filters.get("date_from"))
    date_to = parse_date(filters.get("date_to"))
    if date_from:
        q = q.filter(Order.sale_date >= date_from)
    if date_to:
        q = q.filter(Order.sale_date <= date_to)
    return q


def _summary(orders, terminal_ids) -> dict:
    revenue = sum(float(o.total_value or 0) for o in orders)
    completed = sum(1 for o in orders if o.current_stage_id in terminal_ids)
    return {
        "total_orders": len(orders),
        "active_orders": len(orders) - completed,
        "completed_orders": completed,
        "total_revenue": round(revenue, 2),
        "average_ticket": round(revenue / len(orders), 2) if orders else 0.0,
    }


def _orders_rows(orders, stages_by_id, today, now):
    columns = ["order_number", "client", "salesperson", "stage", "sale_date",
               "expected_delivery_date", "delivered_at", "total_value", "priority",
               "physical_location", "overdue"]
    rows = []
    for o in sorted(orders, key=lambda o: o.order_number):
        stage = stages_by_id.get(o.current_stage_id)
        rows.append([
            o.order_number,
            o.client_name,
            o.salesperson,
            stage.name if stage else o.current_stage_id,
            o.sale_date.isoformat() if o.sale_date else "",
            o.expected_delivery_date.isoformat() if o.expected_delivery_date else "",
            o.delivered_at.date().isoformat() if o.delivered_at else "",
            float(o.total_value or 0),
            o.priority,
            o.physical_location,
            bool(o.expected_delivery_date and o.expected_delivery_date < today and not o.delivered_at),
        ])
    return columns, rows


def _sales_rows(orders, stages_by_id, today, now):
    columns = ["salesperson", "orders", "revenue", "average_ticket"]
    groups: dict[str, list] = {}
    for o in orders:
        groups.setdefault(o.salesperson or "-", []).append(float(o.total_value or 0))
    rows = [
        [name, len(vals), round(sum(vals), 2), round(sum(vals) / len(vals), 2)]
        for name, vals in groups.items()
    ]
    rows.sort(key=lambda r: (-r[2], r[0]))
    return columns, rows


def _production_rows(orders, stages_by_id, today, now):
    columns = ["stage", "orders", "overdue", "average_days_in_stage"]
    rows = []
    for s in sorted(stages_by_id.values(), key=lambda s: s.sort_order):
        in_stage = [o for o in orders if o.current_stage_id == s.id]
        ages = [days_in_stage(o, now) for o in in_stage]
        overdue = sum(1 for o in in_stage
                      if o.expected_delivery_date and o.expected_delivery_date < today and not o.delivered_at)
        rows.append([s.name, len(in_stage), overdue, round(sum(ages) / len(ages), 1) if ages else 0])
    return columns, rows


def _bottleneck_rows(orders, stages_by_id, today, now):
    columns = ["stage", "color", "orders", "share_percent"]
    open_orders = [o for o in orders if not (stages_by_id.get(o.current_stage_id)
                                             and stages_by_id[o.current_stage_id].is_terminal)]
    rows = []
    for s in sorted(stages_by_id.values(), key=lambda s: s.sort_order):
        if s.is_terminal:
            continue
        count = sum(1 for o in open_orders if o.current_stage_id == s.id)
        rows.append([s.name, s.color, count, safe_pct(count, len(open_orders))])
    rows.sort(key=lambda r: -r[2])
    return columns, rows


def _conversion_rows(orders, stages_by_id, today, now):
    columns = ["stage", "orders_reached", "conversion_percent"]
    reached: dict[str, set] = {sid: set() for sid in stages_by_id}
    for o in orders:
        for m in o.movements:
            if m.new_stage_id in reached:
                reached[m.new_stage_id].add(o.id)
    ordered = sorted(stages_by_id.values(), key=lambda s: s.sort_order)
    base = len(reached[ordered[0].id]) if ordered else 0
    return columns, [
        [s.name, len(reached[s.id]), safe_pct(len(reached[s.id]), base)] for s in ordered
    ]


_BUILDERS = {
    "orders": _orders_rows,
    "sales": _sales_rows,
    "production": _production_rows,
    "bottlenecks": _bottleneck_rows,
    "conversion": _conversion_rows,
}


def build_report(actor, report_type: str, filters: dict | None = None, *, today: date | None = None) -> dict:
    check_permission(actor, "relatorios.todos", "relatorios.setor")
    if report_type not in _BUILDERS:
        raise ValidationError(f"Unknown report type: {report_type}", details={"type": list(REPORT_TYPES)})
    filters = filters or {}
    today = today or date.today()
    now = datetime.now(timezone.utc)

    orders = _report_query(actor, filters).all()
    stages_by_id = {s.id: s for s in Stage.query_for_tenant(actor.tenant_id).all()}
    terminal_ids = {sid for sid, s in stages_by_id.items() if s.is_terminal}

    columns, rows = _BUILDERS[report_type](orders, stages_by_id, today, now)
    logger.info("Report %s built for user=%s (%d rows)", report_type, actor.id, len(rows))
    return {
        "type": report_type,
        "generated_by": actor.name,
        "generated_at": now.isoformat(),
        "scope": "all" if has_permission(actor.role, "relatorios.todos") else "own",
        "filters": filters,
        "summary": _summary(orders, terminal_ids),
        "columns": columns,
        "rows": rows,
    }


# ═════════════════════════════════════════════════════════════════════════════
# Export
# ═════════════════════════════════════════════════════════════════════════════

def _apply_header_style(ws, row: int, col_count: int) -> None:
    for col in range(1, col_count + 1):
        cell = ws.cell(row=row, column=col)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)


def _auto_width(ws) -> None:
    """Auto-size column widths based on content (capped at 60 chars)."""
    for col in ws.columns:
        max_len = 0
        col_letter = get_column_letter(col[0].column)
        for cell in col:
            if cell.value is not None:
                max_len = max(max_len, min(len(str(cell.value)), 60))
        ws.column_dimensions[col_letter].width = max(max_len + 4, 12)


def export_report_xlsx(report: dict) -> io.BytesIO:
    """
    Two sheets: "Summary" (key/value) and "Data" (columns + rows).
    Returns a BytesIO buffer ready for Flask send_file.
    """
    wb = Workbook()

    ws = wb.active
    ws.title = "Summary"
    ws["A1"] = f"ProcessFlow report: {report['type']}"
    ws["A1"].font = Font(size=16, bold=True)
    ws["A2"] = f"Generated by {report['generated_by']} at {report['generated_at']}"
    ws["A2"].font = Font(size=10, italic=True, color="666666")
    row = 4
    for key, value in report["summary"].items():
        ws.cell(row=row, column=1, value=key).font = Font(bold=True)
        ws.cell(row=row, column=2, value=value)
        row += 1
    _auto_width(ws)

    data = wb.create_sheet("Data")
    data.append(report["columns"])
    _apply_header_style(data, 1, len(report["columns"]))
    for r in report["rows"]:
        data.append(r)
    data.freeze_panes = "A2"
    _auto_width(data)

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf


def export_report_csv(report: dict) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(report["columns"])
    for r in report["rows"]:
        writer.writerow(r)
    return buf.getvalue()
