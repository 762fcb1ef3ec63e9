"""
api/routes/v1/analytics.py -- Read-only usage analytics.

Routes:
  GET /api/v1/analytics/summary          -- totals, recent signups, completeness, provenance
  GET /api/v1/analytics/demographics     -- gender distribution and age buckets
  GET /api/v1/analytics/registrations    -- daily signups for the last ?days=N (1..365, default 30)

All routes require authentication and never write.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from accounts import analytics
from accounts.analytics import MAX_TREND_DAYS
from api.models import DailyCount, DemographicsResponse, RegistrationTrendResponse, SummaryResponse
from auth.dependencies import get_current_account_id

router = APIRouter()


@router.get("/analytics/summary", response_model=SummaryResponse)
def summary(request: Request, account_id: str = Depends(get_current_account_id)) -> SummaryResponse:
    return SummaryResponse(**analytics.registration_summary(request.app.state.account_store))


@router.get("/analytics/demographics", response_model=DemographicsResponse)
def demographics(request: Request, account_id: str = Depends(get_current_account_id)) -> DemographicsResponse:
    return DemographicsResponse(**analytics.demographics(request.app.state.account_store))


@router.get("/analytics/registrations", response_model=RegistrationTrendResponse)
def registrations(
    request: Request,
    days: int = Query(default=30, ge=1, le=MAX_TREND_DAYS),
    account_id: str = Depends(get_current_account_id),
) -> RegistrationTrendResponse:
    """Per-day signup counts, oldest first. Days without signups report 0."""
    series = analytics.registration_trend(request.app.state.account_store, days=days)
    return RegistrationTrendResponse(days=days, series=[DailyCount(**point) for point in series])
