# Overview: Read-only reporting over orders (daily, monthly, revenue, payment stats, CSV).

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal

from sqlalchemy import case, func

from ..extensions import db
from ..models import Order
from ..models.orders import (
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_PENDING,
    ORDER_STATUS_PROCESSING,
    PAYMENT_STATUS_FAILED,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PENDING,
)
from ..time_utils import to_utc_z, utcnow


EXPORT_TYPES = ("daily", "monthly")

CSV_HEADER = "Token,Roll Number,Total Pages,Color Pages,B&W Pages,Price,Status,Created At"

MAX_REVENUE_PERIOD_DAYS = 366


class ReportError(Exception):
    """Raised when report parameters are invalid."""
    pass


def _money(value) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(Decimal("0.01"))


def _day_range(day: date) -> tuple[datetime, datetime]:
    start = datetime(day.year, day.month, day.day)
    return start, start + timedelta(days=1)


def _month_range(year: int, month: int) -> tuple[datetime, datetime]:
    if not 1 <= month <= 12:
        raise ReportError("month must be between 1 and 12")
    if not 1970 <= year <= 9999:
        raise ReportError("year is out of range")
    start = datetime(year, month, 1)
    end = datetime(year + 1, 1, 1) if month == 12 else datetime(year, month + 1, 1)
    return start, end


def parse_report_date(value: str | None) -> date:
    if not value:
        return utcnow().date()
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise ReportError("date must be YYYY-MM-DD")


def _summary(start: datetime, end: datetime) -> dict:
    row = db.session.query(
        func.count(Order.id).label("total_orders"),
        func.coalesce(func.sum(Order.total_pages), 0).label("total_pages"),
        func.coalesce(func.sum(Order.color_pages), 0).label("color_pages"),
        func.coalesce(func.sum(Order.bw_pages), 0).label("bw_pages"),
        func.sum(Order.price).label("total_revenue"),
        func.sum(case((Order.status == ORDER_STATUS_COMPLETED, 1), else_=0)).label("completed_orders"),
        func.sum(case((Order.status == ORDER_STATUS_PENDING, 1), else_=0)).label("pending_orders"),
        func.sum(case((Order.status == ORDER_STATUS_PROCESSING, 1), else_=0)).label("processing_orders"),
    ).filter(
        Order.created_at >= start,
        Order.created_at < end,
    ).one()

    total_orders = int(row.total_orders or 0)
    revenue = _money(row.total_revenue)
    return {
        "totalOrders": total_orders,
        "totalPages": int(row.total_pages or 0),
        "colorPages": int(row.color_pages or 0),
        "bwPages": int(row.bw_pages or 0),
        "totalRevenue": str(revenue),
        "averageOrderValue": str(_money(revenue / total_orders)) if total_orders else "0.00",
        "completedOrders": int(row.completed_orders or 0),
        "pendingOrders": int(row.pending_orders or 0),
        "processingOrders": int(row.processing_orders or 0),
    }


def _breakdown(start: datetime, end: datetime, fmt: str) -> list:
    period_expr = func.strftime(fmt, Order.created_at)
    return (
        db.session.query(
            period_expr.label("period"),
            func.count(Order.id).label("orders"),
            func.coalesce(func.sum(Order.total_pages), 0).label("pages"),
            func.sum(Order.price).label("revenue"),
        )
        .filter(Order.created_at >= start, Order.created_at < end)
        .group_by("period")
        .order_by("period")
        .all()
    )


def daily_report(day: date) -> dict:
    start, end = _day_range(day)
    return {
        "date": day.isoformat(),
        "summary": _summary(start, end),
        "hourlyBreakdown": [
            {"hour": int(row.period), "orders": int(row.orders), "revenue": str(_money(row.revenue))}
            for row in _breakdown(start, end, "%H")
        ],
    }


def monthly_report(year: int, month: int) -> dict:
    start, end = _month_range(year, month)
    return {
        "year": year,
        "month": month,
        "summary": _summary(start, end),
        "dailyBreakdown": [
            {
                "date": row.period,
                "orders": int(row.orders),
                "pages": int(row.pages or 0),
                "revenue": str(_money(row.revenue)),
            }
            for row in _breakdown(start, end, "%Y-%m-%d")
        ],
    }


def revenue_report(period_days: int = 30, *, now: datetime | None = None) -> dict:
    if period_days < 1 or period_days > MAX_REVENUE_PERIOD_DAYS:
        raise ReportError(f"period must be between 1 and {MAX_REVENUE_PERIOD_DAYS} days")

    now = now or utcnow()
    start = datetime(now.year, now.month, now.day) - timedelta(days=period_days)

    day_expr = func.strftime("%Y-%m-%d", Order.created_at)
    rows = (
        db.session.query(
            day_expr.label("day"),
            func.count(Order.id).label("orders"),
            func.sum(Order.price).label("revenue"),
            func.coalesce(func.sum(Order.total_pages), 0).label("total_pages"),
            func.coalesce(func.sum(Order.color_pages), 0).label("color_pages"),
            func.coalesce(func.sum(Order.bw_pages), 0).label("bw_pages"),
        )
        .filter(Order.created_at >= start)
        .group_by("day")
        .order_by(day_expr.desc())
        .all()
    )

    total_revenue = sum((_money(r.revenue) for r in rows), Decimal("0.00"))
    total_orders = sum(int(r.orders) for r in rows)
    return {
        "period": f"{period_days} days",
        "totalRevenue": str(total_revenue),
        "totalOrders": total_orders,
        "averageOrderValue": str(_money(total_revenue / total_orders)) if total_orders else "0.00",
        "dailyData": [
            {
                "date": r.day,
                "orders": int(r.orders),
                "revenue": str(_money(r.revenue)),
                "averageOrderValue": str(_money(_money(r.revenue) / int(r.orders))) if r.orders else "0.00",
                "totalPages": int(r.total_pages or 0),
                "colorPages": int(r.color_pages or 0),
                "bwPages": int(r.bw_pages or 0),
            }
            for r in rows
        ],
    }


def payment_stats(days: int = 30, *, now: datetime | None = None) -> dict:
    now = now or utcnow()
    since = now - timedelta(days=days)

    row = db.session.query(
        func.count(Order.id).label("total_orders"),
        func.sum(case((Order.payment_status == PAYMENT_STATUS_PAID, 1), else_=0)).label("paid"),
        func.sum(case((Order.payment_status == PAYMENT_STATUS_PENDING, 1), else_=0)).label("pending"),
        func.sum(case((Order.payment_status == PAYMENT_STATUS_FAILED, 1), else_=0)).label("failed"),
        func.sum(case((Order.payment_status == PAYMENT_STATUS_PAID, Order.price), else_=0)).label("revenue"),
    ).filter(Order.created_at >= since).one()

    total = int(row.total_orders or 0)
    paid = int(row.paid or 0)
    return {
        "totalOrders": total,
        "paidOrders": paid,
        "pendingOrders": int(row.pending or 0),
        "failedOrders": int(row.failed or 0),
        "totalRevenue": str(_money(row.revenue)),
        "conversionRate": f"{paid / total * 100:.2f}" if total else "0.00",
    }


def export_orders_csv(
    kind: str,
    *,
    day: date | None = None,
    year: int | None = None,
    month: int | None = None,
) -> str:
    """
    Orders in a day or month as CSV, newest first.

    Values are joined with commas and not quoted; every exported field is
    system-generated except roll_number.
    """
    if kind == "daily":
        start, end = _day_range(day or utcnow().date())
    elif kind == "monthly":
        today = utcnow().date()
        start, end = _month_range(year or today.year, month or today.month)
    else:
        raise ReportError("Invalid report type")

    orders = (
        db.session.query(Order)
        .filter(Order.created_at >= start, Order.created_at < end)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )
    lines = [CSV_HEADER]
    for order in orders:
        lines.append(",".join(str(v) for v in (
            order.token,
            order.roll_number,
            order.total_pages,
            order.color_pages,
            order.bw_pages,
            order.price_decimal,
            order.status,
            to_utc_z(order.created_at),
        )))
    return "\n".join(lines) + "\n"
