"""
Analytics ingestion and reporting over the page_views, analytics_events,
search_logs and api_logs tables.

Time bucketing happens in Python so the same reports run on Postgres and
SQLite.
"""

import logging
import re
from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import distinct, func, or_
from sqlalchemy.orm import Session

from app.models import AnalyticsEvent, ApiLog, Booking, BookingStatus, Lawyer, PageView, Payment, PaymentStatus, SearchLog

logger = logging.getLogger(__name__)

DEFAULT_RANGE_DAYS = 7
GRANULARITY_FORMATS = {
    "hour": "%Y-%m-%d %H:00",
    "day": "%Y-%m-%d",
    "month": "%Y-%m",
}
MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def parse_user_agent(user_agent: Optional[str]) -> dict:
    ua = (user_agent or "").lower()

    if re.search(r"mobile", ua):
        device = "mobile"
    elif re.search(r"tablet|ipad", ua):
        device = "tablet"
    else:
        device = "desktop"

    browser = "other"
    for name, pattern in (("chrome", r"chrome"), ("firefox", r"firefox"), ("safari", r"safari"),
                          ("edge", r"edge"), ("opera", r"opera|opr")):
        if re.search(pattern, ua):
            browser = name
            break

    os_name = "other"
    for name, pattern in (("windows", r"windows"), ("mac", r"mac"), ("linux", r"linux"),
                          ("android", r"android"), ("ios", r"ios|iphone|ipad")):
        if re.search(pattern, ua):
            os_name = name
            break

    return {"device": device, "browser": browser, "os": os_name}


def resolve_range(start_date: Optional[datetime], end_date: Optional[datetime]) -> tuple[datetime, datetime]:
    end = end_date or datetime.utcnow()
    start = start_date or end - timedelta(days=DEFAULT_RANGE_DAYS)
    return start, end


def _percent(part: float, whole: float) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


# =====================================================
# INGESTION
# =====================================================

def track_page_view(db: Session, *, session_id: str, path: str, user_id: Optional[str] = None,
                    referrer: Optional[str] = None, duration: Optional[int] = None,
                    user_agent: Optional[str] = None, ip: Optional[str] = None) -> PageView:
    view = PageView(
        user_id=user_id,
        session_id=session_id,
        path=path,
        referrer=referrer,
        duration=duration,
        user_agent=(user_agent or "")[:500],
        ip=ip,
        **parse_user_agent(user_agent),
    )
    db.add(view)
    db.commit()
    return view


def track_event(db: Session, *, event: str, user_id: Optional[str] = None, session_id: Optional[str] = None,
                category: Optional[str] = None, properties: Optional[dict] = None) -> AnalyticsEvent:
    record = AnalyticsEvent(
        user_id=user_id,
        session_id=session_id,
        event=event,
        category=category,
        properties=properties or {},
    )
    db.add(record)
    db.commit()
    return record


def track_search(db: Session, *, query: str, user_id: Optional[str] = None, filters: Optional[dict] = None,
                 results_count: Optional[int] = None, selected_result_id: Optional[str] = None,
                 selected_result_position: Optional[int] = None) -> SearchLog:
    record = SearchLog(
        user_id=user_id,
        query=query,
        filters=filters or {},
        results_count=results_count,
        selected_result_id=selected_result_id,
        selected_result_position=selected_result_position,
    )
    db.add(record)
    db.commit()
    return record


# =====================================================
# ADMIN REPORTS
# =====================================================

def dashboard_metrics(db: Session, start: datetime, end: datetime) -> dict:
    in_range = (PageView.timestamp >= start, PageView.timestamp <= end)

    page_views = db.query(func.count(PageView.id)).filter(*in_range).scalar() or 0
    unique_visitors = db.query(func.count(distinct(PageView.session_id))).filter(*in_range).scalar() or 0

    top_events = (
        db.query(AnalyticsEvent.event, func.count(AnalyticsEvent.id).label("count"))
        .filter(AnalyticsEvent.timestamp >= start, AnalyticsEvent.timestamp <= end)
        .group_by(AnalyticsEvent.event)
        .order_by(func.count(AnalyticsEvent.id).desc())
        .limit(10).all()
    )
    api_errors = db.query(func.count(ApiLog.id)).filter(
        ApiLog.timestamp >= start, ApiLog.timestamp <= end, ApiLog.status_code >= 500
    ).scalar() or 0
    top_pages = (
        db.query(PageView.path, func.count(PageView.id).label("views"))
        .filter(*in_range)
        .group_by(PageView.path)
        .order_by(func.count(PageView.id).desc())
        .limit(10).all()
    )
    devices = db.query(PageView.device, func.count(PageView.id)).filter(*in_range).group_by(PageView.device).all()

    return {
        "page_views": page_views,
        "unique_visitors": unique_visitors,
        "top_events": [{"event": event, "count": count} for event, count in top_events],
        "api_errors": api_errors,
        "top_pages": [{"path": path, "views": views} for path, views in top_pages],
        "device_breakdown": {device or "unknown": count for device, count in devices},
    }


def page_view_series(db: Session, start: datetime, end: datetime, granularity: str = "day") -> list[dict]:
    fmt = GRANULARITY_FORMATS.get(granularity, GRANULARITY_FORMATS["day"])
    rows = db.query(PageView.timestamp, PageView.session_id).filter(
        PageView.timestamp >= start, PageView.timestamp <= end
    ).all()

    views = defaultdict(int)
    sessions = defaultdict(set)
    for timestamp, session_id in rows:
        bucket = timestamp.strftime(fmt)
        views[bucket] += 1
        sessions[bucket].add(session_id)

    return [
        {"period": bucket, "views": views[bucket], "unique_visitors": len(sessions[bucket])}
        for bucket in sorted(views)
    ]


def search_metrics(db: Session, start: datetime, end: datetime) -> dict:
    in_range = (SearchLog.timestamp >= start, SearchLog.timestamp <= end)

    total = db.query(func.count(SearchLog.id)).filter(*in_range).scalar() or 0
    zero_results = db.query(func.count(SearchLog.id)).filter(*in_range, SearchLog.results_count == 0).scalar() or 0

    normalized = func.lower(SearchLog.query)
    top_queries = (
        db.query(normalized.label("query"), func.count(SearchLog.id), func.avg(SearchLog.results_count))
        .filter(*in_range)
        .group_by(normalized)
        .order_by(func.count(SearchLog.id).desc())
        .limit(20).all()
    )

    return {
        "total_searches": total,
        "zero_results_count": zero_results,
        "zero_results_rate": _percent(zero_results, total),
        "top_queries": [
            {"query": query, "count": count, "avg_results": round(float(avg or 0), 1)}
            for query, count, avg in top_queries
        ],
    }


def api_metrics(db: Session, start: datetime, end: datetime) -> dict:
    in_range = (ApiLog.timestamp >= start, ApiLog.timestamp <= end)

    durations = sorted(
        d for (d,) in db.query(ApiLog.duration_ms).filter(*in_range).all() if d is not None
    )
    total = db.query(func.count(ApiLog.id)).filter(*in_range).scalar() or 0
    errors = db.query(func.count(ApiLog.id)).filter(*in_range, ApiLog.status_code >= 400).scalar() or 0

    p95 = durations[min(len(durations) - 1, int(len(durations) * 0.95))] if durations else 0
    avg_duration = round(sum(durations) / len(durations), 2) if durations else 0

    top_endpoints = (
        db.query(ApiLog.method, ApiLog.path, func.count(ApiLog.id), func.avg(ApiLog.duration_ms))
        .filter(*in_range)
        .group_by(ApiLog.method, ApiLog.path)
        .order_by(func.count(ApiLog.id).desc())
        .limit(20).all()
    )
    error_breakdown = (
        db.query(ApiLog.status_code, func.count(ApiLog.id))
        .filter(*in_range, ApiLog.status_code >= 400)
        .group_by(ApiLog.status_code)
        .order_by(func.count(ApiLog.id).desc())
        .all()
    )

    return {
        "total_requests": total,
        "avg_duration": avg_duration,
        "p95_duration": p95,
        "error_rate": _percent(errors, total),
        "top_endpoints": [
            {"method": method, "path": path, "count": count, "avg_duration": round(float(avg or 0), 2)}
            for method, path, count, avg in top_endpoints
        ],
        "error_breakdown": [{"status_code": code, "count": count} for code, count in error_breakdown],
    }


def cleanup_old_data(db: Session, days_to_keep: int = 90) -> dict:
    cutoff = datetime.utcnow() - timedelta(days=days_to_keep)
    deleted = {}
    for name, model in (("page_views", PageView), ("events", AnalyticsEvent),
                        ("searches", SearchLog), ("api_logs", ApiLog)):
        deleted[name] = db.query(model).filter(model.timestamp < cutoff).delete(synchronize_session=False)
    db.commit()
    logger.info(f"Analytics cleanup before {cutoff.isoformat()}: {deleted}")
    return deleted


# =====================================================
# LAWYER DASHBOARD
# =====================================================

def _month_key(value) -> tuple[int, int]:
    return value.year, value.month


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def _trend(current: float, previous: float) -> dict:
    return {
        "trend": "up" if current >= previous else "down",
        "trend_percentage": round((current - previous) / previous * 100) if previous else 100,
    }


def lawyer_dashboard(db: Session, lawyer: Lawyer) -> dict:
    """Profile views, bookings and earnings for the last six months."""
    now = datetime.utcnow()
    this_month = _month_key(now)
    first_month = _shift_month(*this_month, -5)
    start = datetime(first_month[0], first_month[1], 1)
    previous_start = datetime(*_shift_month(*first_month, -6), 1)

    profile_match = or_(*[PageView.path.contains(key) for key in (lawyer.id, lawyer.slug) if key])
    view_times = [
        ts for (ts,) in db.query(PageView.timestamp).filter(profile_match, PageView.timestamp >= start).all()
    ]
    previous_views = db.query(func.count(PageView.id)).filter(
        profile_match, PageView.timestamp >= previous_start, PageView.timestamp < start
    ).scalar() or 0

    bookings = db.query(Booking).filter(Booking.lawyer_id == lawyer.id, Booking.scheduled_date >= start.date()).all()
    booking_ids = [b.id for b in bookings]
    paid = {
        p.booking_id: p.amount
        for p in db.query(Payment).filter(Payment.booking_id.in_(booking_ids), Payment.status == PaymentStatus.COMPLETED)
    } if booking_ids else {}

    months = {}
    for offset in range(6):
        year, month = _shift_month(*first_month, offset)
        months[(year, month)] = {"month": MONTH_NAMES[month - 1], "year": year, "views": 0, "bookings": 0, "earnings": Decimal("0")}

    for ts in view_times:
        if _month_key(ts) in months:
            months[_month_key(ts)]["views"] += 1
    for booking in bookings:
        bucket = months.get(_month_key(booking.scheduled_date))
        if bucket is None:
            continue
        bucket["bookings"] += 1
        if booking.status == BookingStatus.COMPLETED and booking.id in paid:
            bucket["earnings"] += paid[booking.id]

    last_month = _shift_month(*this_month, -1)
    current = months[this_month]
    previous = months.get(last_month, {"views": 0, "earnings": Decimal("0")})
    total_views = len(view_times)

    return {
        "lawyer_id": lawyer.id,
        "profile_views": {
            "total": total_views,
            "this_month": current["views"],
            "last_month": previous["views"],
            **_trend(total_views, previous_views),
        },
        "bookings": {
            "total": len(bookings),
            "booking_rate": round(_percent(len(bookings), total_views)),
        },
        "earnings": {
            "this_month": current["earnings"],
            "last_month": previous["earnings"],
            "total": sum((m["earnings"] for m in months.values()), Decimal("0")),
            **_trend(float(current["earnings"]), float(previous["earnings"])),
        },
        "monthly": list(months.values()),
    }
