from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from game_analytics.core.config import settings
from game_analytics.core.time_windows import (
    CohortWindow,
    current_epoch,
    get_daily_cohorts,
    get_weekly_cohorts,
)
from game_analytics.services.event_store import EventStore, Registration
from game_analytics.services.rates import percent, round_half_up, round_whole, safe_ratio
from game_analytics.services.validation import resolve_now, resolve_window

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CohortFilters:
    weeks: int | None = None
    days: int | None = None
    day_offsets: tuple[int, ...] | None = None
    now: int | None = None


@dataclass(frozen=True)
class Cohort:
    window: CohortWindow
    members: tuple[Registration, ...]

    @property
    def label(self) -> str:
        return self.window.label

    @property
    def size(self) -> int:
        return len(self.members)

    @property
    def member_ids(self) -> frozenset[str]:
        return frozenset(member.id for member in self.members)


def build_cohort(store: EventStore, window: CohortWindow) -> Cohort:
    return Cohort(window=window, members=tuple(store.registrations_in_range(window.start, window.end)))


def resolve_weekly_windows(filters: CohortFilters) -> tuple[list[CohortWindow], int]:
    weeks = resolve_window(
        "weeks",
        filters.weeks,
        settings.default_cohort_weeks,
        settings.max_cohort_weeks,
        days_per_unit=7,
    )
    now = resolve_now(filters.now, current_epoch())
    return get_weekly_cohorts(weeks, now), now


def resolve_daily_windows(filters: CohortFilters) -> tuple[list[CohortWindow], int]:
    days = resolve_window(
        "days",
        filters.days,
        settings.default_daily_cohort_days,
        settings.max_daily_cohort_days,
    )
    now = resolve_now(filters.now, current_epoch())
    return get_daily_cohorts(days, now), now


def build_cohort_conversion_analytics(session: Session, filters: CohortFilters) -> dict:
    windows, _ = resolve_weekly_windows(filters)
    store = EventStore(session)
    items = []
    for window in windows:
        cohort = build_cohort(store, window)
        paying_users = 0
        subscribed_users = 0
        total_revenue = Decimal("0")
        for member in cohort.members:
            revenue = store.sum_completed_purchase_revenue(user_id=member.id)
            if revenue > 0:
                paying_users += 1
                total_revenue += revenue
            if store.user_has_subscription(member.id):
                subscribed_users += 1
        items.append(
            {
                "cohortLabel": cohort.label,
                "cohortSize": cohort.size,
                "payingUsers": paying_users,
                "payerConversion": percent(paying_users, cohort.size),
                "subscribedUsers": subscribed_users,
                "subscriptionConversion": percent(subscribed_users, cohort.size),
                "totalRevenue": round_half_up(total_revenue),
                "arpu": safe_ratio(total_revenue, cohort.size),
                "arppu": safe_ratio(total_revenue, paying_users),
            }
        )
    return {"cohorts": items}


def build_cohort_engagement_analytics(session: Session, filters: CohortFilters) -> dict:
    windows, _ = resolve_weekly_windows(filters)
    store = EventStore(session)
    items = []
    for window in windows:
        cohort = build_cohort(store, window)
        session_count = 0
        total_duration = 0
        for member in cohort.members:
            sessions = store.sessions_for_user(member.id)
            session_count += len(sessions)
            total_duration += sum(item.duration for item in sessions)
        items.append(
            {
                "cohortLabel": cohort.label,
                "cohortSize": cohort.size,
                "avgSessions": safe_ratio(session_count, cohort.size),
                "avgSessionDuration": round_whole(Decimal(total_duration) / cohort.size) if cohort.size else 0,
            }
        )
    return {"cohorts": items}


def build_daily_cohort_overview(session: Session, filters: CohortFilters) -> dict:
    windows, _ = resolve_daily_windows(filters)
    store = EventStore(session)
    items = []
    for window in windows:
        cohort = build_cohort(store, window)
        paying_users = 0
        total_revenue = Decimal("0")
        session_count = 0
        for member in cohort.members:
            revenue = store.sum_completed_purchase_revenue(user_id=member.id)
            if revenue > 0:
                paying_users += 1
                total_revenue += revenue
            session_count += store.count_sessions(player_id=member.id)
        items.append(
            {
                "date": cohort.label,
                "cohortSize": cohort.size,
                "payingUsers": paying_users,
                "conversionRate": percent(paying_users, cohort.size),
                "totalRevenue": round_half_up(total_revenue),
                "ltv": safe_ratio(total_revenue, cohort.size),
                "avgSessions": safe_ratio(session_count, cohort.size),
            }
        )
    logger.debug("daily_cohort_overview_built", extra={"cohorts": len(items)})
    return {"period": f"{len(windows)} days", "cohorts": items}
