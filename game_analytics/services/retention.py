"""Day-N retention per cohort, anchored at each member's own registration time."""
from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from game_analytics.core.config import settings
from game_analytics.core.time_windows import cohort_offset_elapsed, day_window
from game_analytics.services.cohorts import Cohort, CohortFilters, build_cohort, resolve_weekly_windows
from game_analytics.services.event_store import EventStore, Registration
from game_analytics.services.rates import percent
from game_analytics.services.validation import resolve_day_offsets

logger = logging.getLogger(__name__)


def build_retention_analytics(session: Session, filters: CohortFilters) -> dict:
    offsets = resolve_day_offsets(filters.day_offsets, settings.retention_day_offsets)
    windows, now = resolve_weekly_windows(filters)
    store = EventStore(session)

    items = []
    for window in windows:
        cohort = build_cohort(store, window)
        items.append(
            {
                "cohortLabel": cohort.label,
                "cohortSize": cohort.size,
                "retention": compute_retention_row(store, cohort, offsets, now),
            }
        )
    logger.info("cohort_retention_built", extra={"cohorts": len(items), "offsets": len(offsets)})
    return {"retentionDays": offsets, "cohorts": items}


def compute_retention_row(store: EventStore, cohort: Cohort, offsets: list[int], now: int) -> list[float | None]:
    row: list[float | None] = []
    for offset in offsets:
        if cohort.size == 0 or not cohort_offset_elapsed(cohort.window, offset, now):
            row.append(None)
            continue
        retained = sum(1 for member in cohort.members if _member_returned(store, member, offset))
        row.append(percent(retained, cohort.size))
    return row


def _member_returned(store: EventStore, member: Registration, offset: int) -> bool:
    window = day_window(member.registered_at, offset)
    return store.user_has_session_in_range(member.id, window.start, window.end)
