"""Epoch-second window arithmetic shared by every cohort and funnel computation.

All "has enough time passed" decisions go through `has_elapsed`.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone

SECONDS_PER_DAY = 86400
SECONDS_PER_WEEK = 7 * SECONDS_PER_DAY


@dataclass(frozen=True)
class TimeWindow:
    start: int
    end: int

    def contains(self, timestamp: int) -> bool:
        return self.start <= timestamp < self.end


@dataclass(frozen=True)
class CohortWindow:
    label: str
    start: int
    end: int

    @property
    def window(self) -> TimeWindow:
        return TimeWindow(self.start, self.end)


def current_epoch() -> int:
    return int(time.time())


def day_window(anchor: int, day_offset: int) -> TimeWindow:
    start = anchor + day_offset * SECONDS_PER_DAY
    return TimeWindow(start, start + SECONDS_PER_DAY)


def has_elapsed(anchor: int, day_offset: int, now: int) -> bool:
    return day_window(anchor, day_offset).end <= now


def cohort_offset_elapsed(cohort: CohortWindow, day_offset: int, now: int) -> bool:
    # The latest member registers just before cohort.end, so that boundary is the anchor.
    return has_elapsed(cohort.end, day_offset, now)


def trailing_window(days: int, now: int) -> TimeWindow:
    return TimeWindow(now - days * SECONDS_PER_DAY, now)


def utc_midnight(timestamp: int) -> int:
    return timestamp - timestamp % SECONDS_PER_DAY


def utc_date_label(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d")


def get_weekly_cohorts(weeks: int, now: int) -> list[CohortWindow]:
    cohorts: list[CohortWindow] = []
    for index in range(weeks):
        end = now - index * SECONDS_PER_WEEK
        start = end - SECONDS_PER_WEEK
        cohorts.append(CohortWindow(f"Week of {utc_date_label(start)}", start, end))
    cohorts.reverse()
    return cohorts


def get_daily_cohorts(days: int, now: int) -> list[CohortWindow]:
    today = utc_midnight(now)
    cohorts: list[CohortWindow] = []
    for index in range(days - 1, -1, -1):
        start = today - index * SECONDS_PER_DAY
        cohorts.append(CohortWindow(utc_date_label(start), start, start + SECONDS_PER_DAY))
    return cohorts


def utc_day_buckets(window: TimeWindow) -> list[TimeWindow]:
    buckets: list[TimeWindow] = []
    cursor = utc_midnight(window.start)
    while cursor < window.end:
        buckets.append(TimeWindow(max(cursor, window.start), min(cursor + SECONDS_PER_DAY, window.end)))
        cursor += SECONDS_PER_DAY
    return buckets


def cumulative_offset_elapsed(cohort: CohortWindow, day_offset: int, now: int) -> bool:
    # Totals "as of day d" stop at the start of day d, i.e. when day d - 1 closes.
    return has_elapsed(cohort.end, day_offset - 1, now)
