from __future__ import annotations

import logging
from collections.abc import Callable, Iterator

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from game_analytics.core.errors import InvalidParameterError, UpstreamQueryError
from game_analytics.db.session import get_session_factory
from game_analytics.services.aggregates import (
    SnapshotFilters,
    build_overview_snapshot,
    build_realtime_snapshot,
    build_subscription_churn,
)
from game_analytics.services.cohorts import (
    CohortFilters,
    build_cohort_conversion_analytics,
    build_cohort_engagement_analytics,
    build_daily_cohort_overview,
)
from game_analytics.services.funnels import (
    FunnelFilters,
    build_custom_funnel_analytics,
    build_funnel_analytics,
    build_funnels_overview,
    get_funnel_definition,
)
from game_analytics.services.retention import build_retention_analytics
from game_analytics.services.revenue import build_ltv_curve, build_revenue_analytics
from game_analytics.services.trends import (
    ProductFilters,
    TopSpenderFilters,
    TrendFilters,
    build_dau_trend,
    build_hourly_activity,
    build_hourly_revenue,
    build_ltv_distribution,
    build_new_users_trend,
    build_product_performance,
    build_revenue_breakdown,
    build_revenue_trend,
    build_top_spenders,
)

router = APIRouter(prefix="/analytics", tags=["analytics"])
logger = logging.getLogger(__name__)


class CustomFunnelRequest(BaseModel):
    events: list[str] = Field(default_factory=list)
    days: int | None = None


def _get_db_session() -> Iterator[Session]:
    try:
        session_factory = get_session_factory()
    except RuntimeError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


def _safe_build(operation: str, builder: Callable[..., dict], *args) -> dict:
    try:
        return builder(*args)
    except InvalidParameterError as exc:
        logger.warning(
            "analytics_invalid_parameter",
            extra={"operation": operation, "constraint": exc.constraint},
        )
        raise HTTPException(
            status_code=422,
            detail={"message": exc.message, "constraint": exc.constraint},
        ) from exc
    except UpstreamQueryError as exc:
        logger.exception("analytics_upstream_unavailable", extra={"operation": operation})
        raise HTTPException(
            status_code=503,
            detail="Event store is temporarily unavailable. Retry the request later.",
        ) from exc


@router.get("/cohorts/retention")
def cohort_retention(
    weeks: int | None = Query(default=None),
    session: Session = Depends(_get_db_session),
) -> dict:
    return _safe_build("cohort_retention", build_retention_analytics, session, CohortFilters(weeks=weeks))


@router.get("/cohorts/revenue")
def cohort_revenue(
    weeks: int | None = Query(default=None),
    session: Session = Depends(_get_db_session),
) -> dict:
    return _safe_build("cohort_revenue", build_revenue_analytics, session, CohortFilters(weeks=weeks))


@router.get("/cohorts/ltv-curve")
def cohort_ltv_curve(session: Session = Depends(_get_db_session)) -> dict:
    return _safe_build("cohort_ltv_curve", build_ltv_curve, session, CohortFilters())


@router.get("/cohorts/conversion")
def cohort_conversion(
    weeks: int | None = Query(default=None),
    session: Session = Depends(_get_db_session),
) -> dict:
    return _safe_build("cohort_conversion", build_cohort_conversion_analytics, session, CohortFilters(weeks=weeks))


@router.get("/cohorts/engagement")
def cohort_engagement(
    weeks: int | None = Query(default=None),
    session: Session = Depends(_get_db_session),
) -> dict:
    return _safe_build("cohort_engagement", build_cohort_engagement_analytics, session, CohortFilters(weeks=weeks))


@router.get("/cohorts/daily")
def cohort_daily(
    days: int | None = Query(default=None),
    session: Session = Depends(_get_db_session),
) -> dict:
    return _safe_build("cohort_daily", build_daily_cohort_overview, session, CohortFilters(days=days))


@router.get("/funnels/overview")
def funnels_overview(
    days: int | None = Query(default=None),
    session: Session = Depends(_get_db_session),
) -> dict:
    return _safe_build("funnels_overview", build_funnels_overview, session, FunnelFilters(days=days))


@router.post("/funnels/custom")
def custom_funnel(payload: CustomFunnelRequest, session: Session = Depends(_get_db_session)) -> dict:
    return _safe_build(
        "custom_funnel",
        build_custom_funnel_analytics,
        session,
        payload.events,
        FunnelFilters(days=payload.days),
    )


@router.get("/funnels/{key}")
def funnel(
    key: str,
    days: int | None = Query(default=None),
    session: Session = Depends(_get_db_session),
) -> dict:
    if get_funnel_definition(key) is None:
        raise HTTPException(status_code=404, detail=f"Funnel '{key}' not found")
    return _safe_build("funnel", build_funnel_analytics, session, key, FunnelFilters(days=days))


@router.get("/overview")
def overview(session: Session = Depends(_get_db_session)) -> dict:
    return _safe_build("overview", build_overview_snapshot, session, SnapshotFilters())


@router.get("/realtime")
def realtime(session: Session = Depends(_get_db_session)) -> dict:
    return _safe_build("realtime", build_realtime_snapshot, session, SnapshotFilters())


@router.get("/subscriptions/churn")
def subscription_churn(session: Session = Depends(_get_db_session)) -> dict:
    return _safe_build("subscription_churn", build_subscription_churn, session, SnapshotFilters())


@router.get("/trends/dau")
def dau_trend(
    days: int | None = Query(default=None),
    session: Session = Depends(_get_db_session),
) -> dict:
    return _safe_build("dau_trend", build_dau_trend, session, TrendFilters(days=days))


@router.get("/trends/revenue")
def revenue_trend(
    days: int | None = Query(default=None),
    session: Session = Depends(_get_db_session),
) -> dict:
    return _safe_build("revenue_trend", build_revenue_trend, session, TrendFilters(days=days))


@router.get("/trends/new-users")
def new_users_trend(
    days: int | None = Query(default=None),
    session: Session = Depends(_get_db_session),
) -> dict:
    return _safe_build("new_users_trend", build_new_users_trend, session, TrendFilters(days=days))


@router.get("/revenue/breakdown")
def revenue_breakdown(
    days: int | None = Query(default=None),
    session: Session = Depends(_get_db_session),
) -> dict:
    return _safe_build("revenue_breakdown", build_revenue_breakdown, session, TrendFilters(days=days))


@router.get("/revenue/ltv-distribution")
def ltv_distribution(session: Session = Depends(_get_db_session)) -> dict:
    return _safe_build("ltv_distribution", build_ltv_distribution, session, TrendFilters())


@router.get("/revenue/top-spenders")
def top_spenders(
    limit: int | None = Query(default=None),
    session: Session = Depends(_get_db_session),
) -> dict:
    return _safe_build("top_spenders", build_top_spenders, session, TopSpenderFilters(limit=limit))


@router.get("/revenue/products")
def product_performance(
    days: int | None = Query(default=None),
    limit: int | None = Query(default=None),
    session: Session = Depends(_get_db_session),
) -> dict:
    return _safe_build(
        "product_performance",
        build_product_performance,
        session,
        ProductFilters(days=days, limit=limit),
    )


@router.get("/revenue/hourly")
def hourly_revenue(
    days: int | None = Query(default=None),
    session: Session = Depends(_get_db_session),
) -> dict:
    return _safe_build("hourly_revenue", build_hourly_revenue, session, TrendFilters(days=days))


@router.get("/activity/hourly")
def hourly_activity(
    days: int | None = Query(default=None),
    session: Session = Depends(_get_db_session),
) -> dict:
    return _safe_build("hourly_activity", build_hourly_activity, session, TrendFilters(days=days))
