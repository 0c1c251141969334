"""
营收统计服务
只统计支付状态编号为 2（已支付）的预订，按 created_at 归入统计周期，
并与上一周期比较得出涨跌趋势
"""
import calendar
import logging
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backoffice.models.entities import Booking, PaymentStatus
from backoffice_core.errors import UpstreamError, ValidationFailedError

logger = logging.getLogger(__name__)

PAID_STATUS_NUMBER = 2
PERIODS = ("daily", "weekly", "monthly", "annually")


# ============== 周期计算 ==============

def period_key(day: date, period: str) -> str:
    """YYYY-MM-DD / YYYY-Www (ISO 周) / YYYY-MM / YYYY"""
    if period == "daily":
        return day.isoformat()
    if period == "weekly":
        iso_year, week, _ = day.isocalendar()
        return f"{iso_year}-W{week:02d}"
    if period == "monthly":
        return f"{day.year}-{day.month:02d}"
    return str(day.year)


def period_start(day: date, period: str) -> date:
    if period == "daily":
        return day
    if period == "weekly":
        return day - timedelta(days=day.weekday())
    if period == "monthly":
        return day.replace(day=1)
    return date(day.year, 1, 1)


def previous_period_day(day: date, period: str) -> date:
    """上一周期内的某一天"""
    if period == "daily":
        return day - timedelta(days=1)
    if period == "weekly":
        return day - timedelta(days=7)
    if period == "monthly":
        return day.replace(day=1) - timedelta(days=1)
    return date(day.year - 1, 1, 1)


def report_window(year: int, month: Optional[int]) -> Tuple[date, date]:
    """统计窗口 [start, end)"""
    if month is None:
        return date(year, 1, 1), date(year + 1, 1, 1)
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day) + timedelta(days=1)


def parse_revenue_params(period: Optional[str], year: Optional[str],
                         month: Optional[str]) -> Tuple[str, int, Optional[int]]:
    """校验查询参数：period 必填，year 默认今年，month 可选 (1-12)"""
    if period not in PERIODS:
        raise ValidationFailedError(
            "Invalid period type",
            [f"Period type must be one of: {', '.join(PERIODS)}"],
        )

    if year in (None, ""):
        parsed_year = date.today().year
    else:
        try:
            parsed_year = int(year)
        except ValueError:
            raise ValidationFailedError("Invalid year", ["Year must be a number"])
        if not 1 < parsed_year < 9999:
            raise ValidationFailedError("Invalid year", ["Year is out of range"])

    parsed_month = None
    if month not in (None, ""):
        try:
            parsed_month = int(month)
        except ValueError:
            raise ValidationFailedError("Invalid month", ["Month must be a number"])
        if not 1 <= parsed_month <= 12:
            raise ValidationFailedError("Invalid month", ["Month must be between 1 and 12"])

    return period, parsed_year, parsed_month


# ============== 统计 ==============

def _paid_bookings(db: Session, start: date, end: date):
    try:
        return (
            db.query(Booking.booking_amount, Booking.created_at)
            .join(PaymentStatus, PaymentStatus.id == Booking.payment_status_id)
            .filter(
                PaymentStatus.number == PAID_STATUS_NUMBER,
                Booking.created_at >= datetime.combine(start, time.min),
                Booking.created_at < datetime.combine(end, time.min),
            )
            .order_by(Booking.created_at)
            .all()
        )
    except SQLAlchemyError as e:
        logger.error(f"Revenue query failed: {e}")
        raise UpstreamError("Data store request failed", ["The data store rejected the request"])


def _trend(revenue: Decimal, previous: Optional[Dict[str, Any]]) -> Tuple[int, Optional[str]]:
    if previous is None or previous["revenue"] <= 0:
        return 0, None
    change = (revenue - previous["revenue"]) / previous["revenue"] * 100
    return abs(round(change)), "up" if change >= 0 else "down"


def revenue_summary(db: Session, period: str, year: int,
                    month: Optional[int] = None) -> Dict[str, Any]:
    """
    按周期汇总已支付预订的营收

    Returns:
        {summary: [{period, revenue, count, percentage, trend}], total_revenue,
         average_revenue, period_type}
    """
    start, end = report_window(year, month)
    # 多取一个周期，用于计算窗口内第一个周期的趋势
    fetch_from = period_start(previous_period_day(start, period), period)

    buckets: Dict[str, Dict[str, Any]] = {}
    in_window = set()
    for amount, created_at in _paid_bookings(db, fetch_from, end):
        day = created_at.date()
        key = period_key(day, period)
        bucket = buckets.setdefault(key, {"revenue": Decimal("0"), "count": 0, "day": day})
        bucket["revenue"] += amount
        bucket["count"] += 1
        if start <= day < end:
            in_window.add(key)

    summary = []
    for key in sorted(in_window):
        bucket = buckets[key]
        previous = buckets.get(period_key(previous_period_day(bucket["day"], period), period))
        percentage, trend = _trend(bucket["revenue"], previous)
        summary.append({
            "period": key,
            "revenue": bucket["revenue"],
            "count": bucket["count"],
            "percentage": percentage,
            "trend": trend,
        })

    total = sum((item["revenue"] for item in summary), Decimal("0"))
    average = (total / len(summary)).quantize(Decimal("0.01")) if summary else Decimal("0")
    return {
        "summary": summary,
        "total_revenue": total,
        "average_revenue": average,
        "period_type": period,
    }
