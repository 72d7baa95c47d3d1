from datetime import datetime
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.auth.dependencies import get_lawyer_profile, get_optional_user, require_admin, require_lawyer
from app.database import get_db
from app.models import User
from app.rate_limiter import client_ip, general_limiter
from app.services import analytics_service
from app.utils.response import success_response

router = APIRouter(prefix="/analytics", tags=["Analytics"])


class PageViewCreate(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=100)
    path: str = Field(..., min_length=1, max_length=500)
    referrer: Optional[str] = None
    duration: Optional[int] = Field(None, ge=0)


class EventCreate(BaseModel):
    event: str = Field(..., min_length=1, max_length=100)
    category: Optional[str] = None
    session_id: Optional[str] = None
    properties: Optional[Dict[str, Any]] = None


class SearchCreate(BaseModel):
    query: str = Field(..., min_length=1, max_length=500)
    filters: Optional[Dict[str, Any]] = None
    results_count: Optional[int] = Field(None, ge=0)
    selected_result_id: Optional[str] = None
    selected_result_position: Optional[int] = None


class CleanupRequest(BaseModel):
    days_to_keep: int = Field(90, ge=1)


# =====================================================
# TRACKING
# =====================================================

@router.post("/pageview", status_code=status.HTTP_201_CREATED)
def track_page_view(
    data: PageViewCreate,
    request: Request,
    current_user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
    _: None = Depends(general_limiter),
):
    analytics_service.track_page_view(
        db,
        user_id=current_user.id if current_user else None,
        user_agent=request.headers.get("User-Agent"),
        ip=client_ip(request),
        **data.dict(),
    )
    return success_response(message="Page view tracked")


@router.post("/event", status_code=status.HTTP_201_CREATED)
def track_event(
    data: EventCreate,
    current_user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
    _: None = Depends(general_limiter),
):
    analytics_service.track_event(db, user_id=current_user.id if current_user else None, **data.dict())
    return success_response(message="Event tracked")


@router.post("/search", status_code=status.HTTP_201_CREATED)
def track_search(
    data: SearchCreate,
    current_user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
    _: None = Depends(general_limiter),
):
    analytics_service.track_search(db, user_id=current_user.id if current_user else None, **data.dict())
    return success_response(message="Search tracked")


# =====================================================
# REPORTS
# =====================================================

@router.get("/dashboard")
def dashboard(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db)
):
    start, end = analytics_service.resolve_range(start_date, end_date)
    data = analytics_service.dashboard_metrics(db, start, end)
    return success_response(data, meta={"start_date": start.isoformat(), "end_date": end.isoformat()})


@router.get("/pageviews")
def page_views(
    granularity: Literal["hour", "day", "month"] = "day",
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db)
):
    start, end = analytics_service.resolve_range(start_date, end_date)
    return success_response(analytics_service.page_view_series(db, start, end, granularity))


@router.get("/search")
def search_report(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db)
):
    start, end = analytics_service.resolve_range(start_date, end_date)
    return success_response(analytics_service.search_metrics(db, start, end))


@router.get("/api")
def api_report(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db)
):
    start, end = analytics_service.resolve_range(start_date, end_date)
    return success_response(analytics_service.api_metrics(db, start, end))


@router.post("/cleanup")
def cleanup(
    data: Optional[CleanupRequest] = None,
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db)
):
    deleted = analytics_service.cleanup_old_data(db, data.days_to_keep if data else 90)
    return success_response(deleted, "Analytics data cleaned up")


@router.get("/lawyer-dashboard")
def lawyer_dashboard(
    current_user: User = Depends(require_lawyer()),
    db: Session = Depends(get_db)
):
    lawyer = get_lawyer_profile(db, current_user)
    return success_response(analytics_service.lawyer_dashboard(db, lawyer))
