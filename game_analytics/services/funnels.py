"""Conversion funnels over a trailing lookback window.

Steps are counted independently as distinct users. A step whose counter comes
back empty may be replaced by a calibrated estimate from the step before it;
such steps are returned with ``estimated=True``.
"""
from __future__ import annotations

import logging
import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from game_analytics.core.config import settings
from game_analytics.core.errors import InvalidParameterError
from game_analytics.core.time_windows import TimeWindow, current_epoch, trailing_window
from game_analytics.services.event_store import EventStore
from game_analytics.services.rates import percent
from game_analytics.services.validation import resolve_now, resolve_window

logger = logging.getLogger(__name__)

StepCounter = Callable[[EventStore, TimeWindow], int]

CUSTOM_FUNNEL_KEY = "custom"
_MIN_CUSTOM_STEPS = 2


@dataclass(frozen=True)
class FunnelStep:
    key: str
    label: str
    counter: StepCounter
    fallback_ratio: float | None = None


@dataclass(frozen=True)
class FunnelDefinition:
    key: str
    name: str
    short_name: str
    steps: tuple[FunnelStep, ...]


@dataclass(frozen=True)
class FunnelFilters:
    days: int | None = None
    now: int | None = None


@dataclass(frozen=True)
class StepCount:
    key: str
    label: str
    count: int
    estimated: bool


def _registrations(store: EventStore, window: TimeWindow) -> int:
    return store.count_registrations(window.start, window.end)


def _first_time_purchasers(store: EventStore, window: TimeWindow) -> int:
    return store.count_first_time_purchasers(window.start, window.end)


def _subscribers(store: EventStore, window: TimeWindow) -> int:
    return store.count_distinct_subscribers(window.start, window.end)


def _event(event_type: str) -> StepCounter:
    def counter(store: EventStore, window: TimeWindow) -> int:
        return store.count_distinct_users_with_event(event_type, window.start, window.end)

    return counter


def _step(key: str, label: str, counter: StepCounter | None = None, ratio: float | None = None) -> FunnelStep:
    return FunnelStep(key=key, label=label, counter=counter or _event(key), fallback_ratio=ratio)


_REGISTERED = _step("registration", "Registered", _registrations)

PREDEFINED_FUNNELS: dict[str, FunnelDefinition] = {
    definition.key: definition
    for definition in (
        FunnelDefinition(
            key="tutorial",
            name="Tutorial Completion Funnel",
            short_name="Tutorial",
            steps=(
                _step("tutorial_started", "Started Tutorial", ratio=1.0),
                _step("tutorial_step_1", "Completed Step 1", ratio=0.9),
                _step("tutorial_step_2", "Completed Step 2", ratio=0.85),
                _step("tutorial_step_3", "Completed Step 3", ratio=0.9),
                _step("tutorial_completed", "Completed Tutorial", ratio=0.95),
                _step("first_match_started", "First Match Started"),
                _step("first_match_completed", "First Match Completed"),
            ),
        ),
        FunnelDefinition(
            key="first-purchase",
            name="First Purchase Funnel",
            short_name="First Purchase",
            steps=(
                _REGISTERED,
                _step("store_viewed", "Viewed Store", ratio=0.4),
                _step("offer_viewed", "Viewed Offer", ratio=0.6),
                _step("checkout_started", "Started Checkout", ratio=0.3),
                _step("purchase_completed", "Completed Purchase", _first_time_purchasers),
            ),
        ),
        FunnelDefinition(
            key="battle-pass",
            name="Battle Pass Conversion Funnel",
            short_name="Battle Pass",
            steps=(
                _REGISTERED,
                _step("battle_pass_viewed", "Viewed Battle Pass", ratio=0.5),
                _step("battle_pass_progress", "Earned XP", ratio=0.7),
                _step("battle_pass_level_5", "Reached Level 5", ratio=0.4),
                _step("battle_pass_purchased", "Purchased Premium"),
            ),
        ),
        FunnelDefinition(
            key="subscription",
            name="Subscription Conversion Funnel",
            short_name="Subscription",
            steps=(
                _REGISTERED,
                _step("subscription_viewed", "Viewed Subscription", ratio=0.2),
                _step("subscription_tier_selected", "Selected Tier", ratio=0.4),
                _step("subscription_purchased", "Subscribed", _subscribers),
            ),
        ),
        FunnelDefinition(
            key="social",
            name="Social Engagement Funnel",
            short_name="Social",
            steps=(
                _REGISTERED,
                _step("profile_viewed", "Viewed Own Profile", ratio=0.6),
                _step("friend_added", "Added Friend"),
                _step("clan_joined", "Joined Clan"),
                _step("social_match", "Played with Friends", ratio=0.3),
            ),
        ),
        FunnelDefinition(
            key="ranked",
            name="Ranked Progression Funnel",
            short_name="Ranked",
            steps=(
                _REGISTERED,
                _step("first_match_completed", "First Match"),
                _step("placement_started", "Started Placement", ratio=0.7),
                _step("placement_completed", "Completed Placement", ratio=0.6),
                _step("ranked_match_10", "10 Ranked Matches"),
                _step("ranked_promotion", "First Promotion", ratio=0.4),
            ),
        ),
    )
}


def get_funnel_definition(key: str) -> FunnelDefinition | None:
    return PREDEFINED_FUNNELS.get(key.strip().lower())


def resolve_funnel_window(filters: FunnelFilters) -> tuple[int, TimeWindow]:
    days = resolve_window("days", filters.days, settings.default_funnel_days, settings.max_funnel_days)
    now = resolve_now(filters.now, current_epoch())
    return days, trailing_window(days, now)


def build_funnel_analytics(session: Session, key: str, filters: FunnelFilters) -> dict:
    definition = get_funnel_definition(key)
    if definition is None:
        raise InvalidParameterError("funnel_key", f"Unknown funnel '{key}'", {"known": sorted(PREDEFINED_FUNNELS)})
    days, window = resolve_funnel_window(filters)
    counts = count_funnel_steps(EventStore(session), definition, window, settings.funnel_ratio_overrides)
    return _funnel_payload(definition.key, definition.name, days, counts)


def build_custom_funnel_analytics(session: Session, events: Sequence[str], filters: FunnelFilters) -> dict:
    event_types = _validate_custom_events(events)
    days, window = resolve_funnel_window(filters)
    definition = FunnelDefinition(
        key=CUSTOM_FUNNEL_KEY,
        name="Custom Funnel",
        short_name="Custom",
        steps=tuple(_step(event_type, event_type) for event_type in event_types),
    )
    counts = count_funnel_steps(EventStore(session), definition, window, {})
    return _funnel_payload(definition.key, definition.name, days, counts)


def build_funnels_overview(session: Session, filters: FunnelFilters) -> dict:
    days, window = resolve_funnel_window(filters)
    store = EventStore(session)
    overrides = settings.funnel_ratio_overrides
    funnels = []
    for definition in PREDEFINED_FUNNELS.values():
        summary = summarize_steps(count_funnel_steps(store, definition, window, overrides))
        funnels.append({"key": definition.key, "name": definition.short_name, **summary})
    return {
        "period": f"{days} days",
        "totalUsers": _registrations(store, window),
        "funnels": funnels,
    }


def count_funnel_steps(
    store: EventStore,
    definition: FunnelDefinition,
    window: TimeWindow,
    overrides: dict[str, float],
) -> list[StepCount]:
    resolved: list[StepCount] = []
    for index, step in enumerate(definition.steps):
        count = step.counter(store, window)
        estimated = False
        ratio = overrides.get(f"{definition.key}.{step.key}", step.fallback_ratio)
        if count == 0 and ratio is not None:
            if index == 0:
                prior = _registrations(store, window)
            else:
                prior = resolved[index - 1].count
            count = math.floor(Decimal(prior) * Decimal(str(ratio)))
            estimated = True
            logger.info(
                "funnel_step_estimated",
                extra={"funnel": definition.key, "step": step.key, "ratio": ratio, "value": count},
            )
        resolved.append(StepCount(key=step.key, label=step.label, count=count, estimated=estimated))
    logger.debug("funnel_built", extra={"funnel": definition.key, "steps": len(resolved)})
    return resolved


def build_step_rows(counts: Sequence[StepCount]) -> list[dict]:
    if not counts:
        return []
    first = counts[0].count
    rows = []
    for index, item in enumerate(counts):
        if index == 0:
            dropoff = 0.0
        else:
            previous = counts[index - 1].count
            # Growth between steps is an instrumentation anomaly, reported as zero drop-off.
            dropoff = max(0.0, percent(previous - item.count, previous))
        rows.append(
            {
                "step": item.label,
                "count": item.count,
                "conversionRate": percent(item.count, first),
                "dropoffRate": dropoff,
                "estimated": item.estimated,
            }
        )
    return rows


def summarize_steps(counts: Sequence[StepCount]) -> dict:
    first = counts[0].count if counts else 0
    last = counts[-1].count if counts else 0
    return {
        "totalStarted": first,
        "totalCompleted": last,
        "overallConversion": percent(last, first),
    }


def _funnel_payload(key: str, name: str, days: int, counts: Sequence[StepCount]) -> dict:
    return {
        "name": name,
        "key": key,
        "period": f"{days} days",
        **summarize_steps(counts),
        "steps": build_step_rows(counts),
    }


def _validate_custom_events(events: Sequence[str] | None) -> list[str]:
    if events is None or isinstance(events, str):
        raise InvalidParameterError("events_list", "'events' must be a list of event types")
    event_types = list(events)
    if len(event_types) < _MIN_CUSTOM_STEPS:
        raise InvalidParameterError(
            "events_min_steps",
            f"At least {_MIN_CUSTOM_STEPS} event types are required",
            {"received": len(event_types)},
        )
    cleaned = []
    for event_type in event_types:
        if not isinstance(event_type, str) or not event_type.strip():
            raise InvalidParameterError("events_non_empty", "Event types must be non-empty strings")
        cleaned.append(event_type.strip())
    return cleaned
