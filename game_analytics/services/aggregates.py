from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from game_analytics.core.config import settings
from game_analytics.core.time_windows import SECONDS_PER_DAY, CohortWindow, current_epoch
from game_analytics.db.models import SubscriptionStatus
from game_analytics.services.cohorts import build_cohort
from game_analytics.services.event_store import EventStore, SubscriptionPoint
from game_analytics.services.rates import percent, round_half_up, round_whole, safe_ratio
from game_analytics.services.retention import compute_retention_row
from game_analytics.services.validation import resolve_now

# Pooled cohort for snapshot retention: registered 62..32 days ago so D30 has closed.
_SNAPSHOT_COHORT_OLDEST_DAYS = 62
_SNAPSHOT_COHORT_NEWEST_DAYS = 32
_SNAPSHOT_RETENTION_DAYS = (1, 7, 30)
_CHURNED_STATUSES = {SubscriptionStatus.CANCELLED, SubscriptionStatus.EXPIRED}


@dataclass(frozen=True)
class SnapshotFilters:
    now: int | None = None


def build_overview_snapshot(session: Session, filters: SnapshotFilters) -> dict:
    now = resolve_now(filters.now, current_epoch())
    store = EventStore(session)
    day_ago = now - SECONDS_PER_DAY
    month_ago = now - 30 * SECONDS_PER_DAY

    revenue_total = store.sum_completed_purchase_revenue(before=now)
    total_users = store.count_registrations(end=now)
    revenue_by_payer = store.completed_revenue_by_user(before=now)
    paying_users = len(revenue_by_payer)
    payer_mean = sum(revenue_by_payer.values(), Decimal("0")) / paying_users if paying_users else Decimal("0")

    month_sessions = store.sessions_in_range(month_ago, now)
    closed_durations = [item.duration for item in month_sessions if item.end_time is not None]
    active_players = {item.player_id for item in month_sessions}

    retention = _snapshot_retention(store, now)

    return {
        "timestamp": now,
        "dau": store.count_distinct_users_with_session(day_ago, now),
        "mau": store.count_distinct_users_with_session(month_ago, now),
        "newUsersToday": store.count_registrations(day_ago, now),
        "onlineNow": store.count_online_users(now - settings.online_window_seconds),
        "sessionsToday": store.count_sessions(day_ago, now),
        "revenueToday": round_half_up(store.sum_completed_purchase_revenue(since=day_ago, before=now)),
        "revenueWeek": round_half_up(store.sum_completed_purchase_revenue(since=now - 7 * SECONDS_PER_DAY, before=now)),
        "revenueMonth": round_half_up(store.sum_completed_purchase_revenue(since=month_ago, before=now)),
        "revenueTotal": round_half_up(revenue_total),
        "totalUsers": total_users,
        "payingUsers": paying_users,
        "arpu": safe_ratio(revenue_total, total_users),
        "arppu": round_half_up(payer_mean),
        "ltv": estimate_ltv(payer_mean),
        "conversionRate": percent(paying_users, total_users),
        "avgSessionLength": _mean_whole(closed_durations, 1),
        "sessionsPerUser": safe_ratio(len(month_sessions), len(active_players)),
        "retentionD1": retention[0],
        "retentionD7": retention[1],
        "retentionD30": retention[2],
    }


def estimate_ltv(arppu: float | Decimal) -> float:
    """Rough LTV for the dashboard card, not a survival-model estimate.

    Takes the unrounded per-payer mean; only the product is rounded.
    """
    return round_half_up(
        Decimal(str(arppu)) * settings.ltv_estimate_months * Decimal(str(settings.ltv_estimate_retention_factor))
    )


def build_realtime_snapshot(session: Session, filters: SnapshotFilters) -> dict:
    now = resolve_now(filters.now, current_epoch())
    store = EventStore(session)
    day_ago = now - SECONDS_PER_DAY
    return {
        "timestamp": now,
        "onlineNow": store.count_online_users(now - settings.online_window_seconds),
        "sessionsToday": store.count_sessions(day_ago, now),
        "revenueToday": round_half_up(store.sum_completed_purchase_revenue(since=day_ago, before=now)),
    }


def build_subscription_churn(session: Session, filters: SnapshotFilters) -> dict:
    now = resolve_now(filters.now, current_epoch())
    by_tier: dict[str, list[SubscriptionPoint]] = defaultdict(list)
    for item in EventStore(session).subscriptions():
        by_tier[item.tier].append(item)

    churn_by_tier = []
    mrr_by_tier = []
    total_mrr = Decimal("0")
    for tier in sorted(by_tier):
        items = by_tier[tier]
        active = [item for item in items if _is_active(item, now)]
        churned = sum(1 for item in items if item.status in _CHURNED_STATUSES)
        lengths = [_subscription_length(item) for item in items]
        churn_by_tier.append(
            {
                "tier": tier,
                "totalSubscribers": len(items),
                "activeSubscribers": len(active),
                "churned": churned,
                "churnRate": percent(churned, len(items)),
                "avgSubscriptionDays": _mean_whole(lengths, SECONDS_PER_DAY),
            }
        )
        if active:
            tier_mrr = Decimal(sum(item.price_cents for item in active)) / 100
            total_mrr += tier_mrr
            mrr_by_tier.append({"tier": tier, "subscribers": len(active), "mrr": round_half_up(tier_mrr)})

    return {
        "churnByTier": churn_by_tier,
        "mrr": {
            "total": round_half_up(total_mrr),
            "byTier": mrr_by_tier,
            "arr": round_half_up(total_mrr * 12),
        },
    }


def _snapshot_retention(store: EventStore, now: int) -> list[float]:
    window = CohortWindow(
        "snapshot",
        now - _SNAPSHOT_COHORT_OLDEST_DAYS * SECONDS_PER_DAY,
        now - _SNAPSHOT_COHORT_NEWEST_DAYS * SECONDS_PER_DAY,
    )
    cohort = build_cohort(store, window)
    row = compute_retention_row(store, cohort, list(_SNAPSHOT_RETENTION_DAYS), now)
    # Aggregate cards always show a number; an empty cohort reads as 0.
    return [value if value is not None else 0.0 for value in row]


def _is_active(item: SubscriptionPoint, now: int) -> bool:
    return item.status == SubscriptionStatus.ACTIVE and item.expires_at > now


def _subscription_length(item: SubscriptionPoint) -> int:
    end = item.cancelled_at if item.cancelled_at is not None else item.expires_at
    return max(0, end - item.started_at)


def _mean_whole(values: list[int], unit: int) -> int:
    if not values:
        return 0
    return round_whole(Decimal(sum(values)) / (len(values) * unit))
