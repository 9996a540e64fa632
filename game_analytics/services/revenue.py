"""Cumulative revenue and LTV per cohort, counted from each member's registration."""
from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy.orm import Session

from game_analytics.core.config import settings
from game_analytics.core.time_windows import (
    SECONDS_PER_DAY,
    CohortWindow,
    cumulative_offset_elapsed,
    current_epoch,
    day_window,
    utc_date_label,
)
from game_analytics.services.cohorts import Cohort, CohortFilters, build_cohort, resolve_weekly_windows
from game_analytics.services.event_store import EventStore
from game_analytics.services.rates import round_half_up, safe_ratio
from game_analytics.services.validation import resolve_day_offsets, resolve_now

logger = logging.getLogger(__name__)

# The pooled LTV-curve cohort stops this many days before now.
_LTV_CURVE_MIN_AGE_DAYS = 90


def build_revenue_analytics(session: Session, filters: CohortFilters) -> dict:
    offsets = resolve_day_offsets(filters.day_offsets, settings.revenue_day_offsets)
    windows, now = resolve_weekly_windows(filters)
    store = EventStore(session)

    items = []
    for window in windows:
        cohort = build_cohort(store, window)
        revenue, ltv = compute_revenue_rows(store, cohort, offsets, now)
        items.append(
            {
                "cohortLabel": cohort.label,
                "cohortSize": cohort.size,
                "revenue": revenue,
                "ltv": ltv,
            }
        )
    logger.info("cohort_revenue_built", extra={"cohorts": len(items), "offsets": len(offsets)})
    return {"revenueDays": offsets, "cohorts": items}


def build_ltv_curve(session: Session, filters: CohortFilters) -> dict:
    offsets = resolve_day_offsets(filters.day_offsets, settings.ltv_curve_day_offsets)
    now = resolve_now(filters.now, current_epoch())
    start = now - settings.max_lookback_days * SECONDS_PER_DAY
    end = now - _LTV_CURVE_MIN_AGE_DAYS * SECONDS_PER_DAY
    window = CohortWindow(f"{utc_date_label(start)} - {utc_date_label(end)}", start, end)

    store = EventStore(session)
    cohort = build_cohort(store, window)
    _, ltv = compute_revenue_rows(store, cohort, offsets, now)
    return {
        "daysToTrack": offsets,
        "ltvCurve": ltv,
        "cohortSize": cohort.size,
        "cohortPeriod": cohort.label,
    }


def compute_revenue_rows(
    store: EventStore,
    cohort: Cohort,
    offsets: list[int],
    now: int,
) -> tuple[list[float | None], list[float | None]]:
    revenue_row: list[float | None] = []
    ltv_row: list[float | None] = []
    for offset in offsets:
        # Cutoff is registration + offset days, so this closes a day before the
        # retention cell for the same offset. Keep the two rules separate.
        if cohort.size == 0 or not cumulative_offset_elapsed(cohort.window, offset, now):
            revenue_row.append(None)
            ltv_row.append(None)
            continue
        total = Decimal("0")
        for member in cohort.members:
            cutoff = day_window(member.registered_at, offset).start
            total += store.sum_completed_purchase_revenue(user_id=member.id, before=cutoff)
        revenue_row.append(round_half_up(total))
        ltv_row.append(safe_ratio(total, cohort.size))
    return revenue_row, ltv_row
