# Overview: Flask API routes for reports; parses input and returns JSON or CSV responses.

from flask import Blueprint, Response, current_app, jsonify, request

from ..decorators import require_auth
from ..services import reporting_service
from ..services.reporting_service import EXPORT_TYPES, ReportError, parse_report_date
from ..time_utils import utcnow
from ..validation import optional_int


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _year_month() -> tuple[int, int]:
    today = utcnow().date()
    year = optional_int(request.args.get("year"), "year", today.year)
    month = optional_int(request.args.get("month"), "month", today.month)
    return year, month


@reports_bp.get("/daily")
@require_auth
def daily_report_route():
    try:
        day = parse_report_date(request.args.get("date"))
        report = reporting_service.daily_report(day)
    except ReportError as e:
        return jsonify({"error": str(e)}), 400
    current_app.logger.info("Daily report generated for %s", day)
    return jsonify({"success": True, "report": report}), 200


@reports_bp.get("/monthly")
@require_auth
def monthly_report_route():
    year, month = _year_month()
    try:
        report = reporting_service.monthly_report(year, month)
    except ReportError as e:
        return jsonify({"error": str(e)}), 400
    current_app.logger.info("Monthly report generated for %04d-%02d", year, month)
    return jsonify({"success": True, "report": report}), 200


@reports_bp.get("/revenue")
@require_auth
def revenue_report_route():
    period = optional_int(request.args.get("period"), "period", 30)
    try:
        report = reporting_service.revenue_report(period)
    except ReportError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"success": True, "report": report}), 200


@reports_bp.get("/export/<kind>")
@require_auth
def export_report_route(kind):
    if kind not in EXPORT_TYPES:
        return jsonify({"error": "Invalid report type"}), 400

    try:
        if kind == "daily":
            csv_text = reporting_service.export_orders_csv(kind, day=parse_report_date(request.args.get("date")))
        else:
            year, month = _year_month()
            csv_text = reporting_service.export_orders_csv(kind, year=year, month=month)
    except ReportError as e:
        return jsonify({"error": str(e)}), 400

    filename = f"{kind}_report_{utcnow().date().isoformat()}.csv"
    current_app.logger.info("Report exported: %s (%d rows)", kind, csv_text.count("\n") - 1)
    return Response(
        csv_text,
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
