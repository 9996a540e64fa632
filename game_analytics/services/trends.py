from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from game_analytics.core.config import settings
from game_analytics.core.time_windows import (
    SECONDS_PER_DAY,
    TimeWindow,
    current_epoch,
    trailing_window,
    utc_date_label,
    utc_day_buckets,
)
from game_analytics.services.event_store import EventStore, PurchasePoint
from game_analytics.services.rates import percent, round_half_up, safe_ratio
from game_analytics.services.validation import resolve_count, resolve_now, resolve_window

_LTV_BRACKETS: list[tuple[str, Decimal | None]] = [
    ("$0.01-$4.99", Decimal("5")),
    ("$5-$19.99", Decimal("20")),
    ("$20-$49.99", Decimal("50")),
    ("$50-$99.99", Decimal("100")),
    ("$100-$499.99", Decimal("500")),
    ("$500+", None),
]
_ZERO_BRACKET = "$0"
_SECONDS_PER_HOUR = 3600
_HOURS_PER_DAY = 24


@dataclass(frozen=True)
class TrendFilters:
    days: int | None = None
    now: int | None = None


@dataclass(frozen=True)
class TopSpenderFilters:
    limit: int | None = None
    now: int | None = None


@dataclass(frozen=True)
class ProductFilters:
    days: int | None = None
    limit: int | None = None
    now: int | None = None


def _resolve_trend_window(filters: TrendFilters) -> tuple[int, TimeWindow]:
    days = resolve_window("days", filters.days, settings.default_funnel_days, settings.max_lookback_days)
    now = resolve_now(filters.now, current_epoch())
    return days, trailing_window(days, now)


def build_dau_trend(session: Session, filters: TrendFilters) -> dict:
    days, window = _resolve_trend_window(filters)
    store = EventStore(session)
    data = [
        {
            "date": utc_date_label(bucket.start),
            "dau": store.count_distinct_users_with_session(bucket.start, bucket.end),
        }
        for bucket in utc_day_buckets(window)
    ]
    return {"period": f"{days} days", "data": data}


def build_revenue_trend(session: Session, filters: TrendFilters) -> dict:
    days, window = _resolve_trend_window(filters)
    purchases = EventStore(session).completed_purchases_in_range(window.start, window.end)
    revenue_by_date: dict[str, Decimal] = defaultdict(Decimal)
    transactions_by_date: dict[str, int] = defaultdict(int)
    for item in purchases:
        label = utc_date_label(item.created_at)
        revenue_by_date[label] += item.amount
        transactions_by_date[label] += 1

    data = []
    cumulative = Decimal("0")
    for bucket in utc_day_buckets(window):
        label = utc_date_label(bucket.start)
        revenue = revenue_by_date.get(label, Decimal("0"))
        cumulative += revenue
        data.append(
            {
                "date": label,
                "revenue": round_half_up(revenue),
                "transactions": transactions_by_date.get(label, 0),
                "cumulative": round_half_up(cumulative),
            }
        )
    return {"period": f"{days} days", "data": data}


def build_new_users_trend(session: Session, filters: TrendFilters) -> dict:
    days, window = _resolve_trend_window(filters)
    store = EventStore(session)
    daily = [
        {"date": utc_date_label(bucket.start), "count": store.count_registrations(bucket.start, bucket.end)}
        for bucket in utc_day_buckets(window)
    ]
    total_new = sum(item["count"] for item in daily)
    return {
        "period": f"{days} days",
        "totalNew": total_new,
        "avgPerDay": safe_ratio(total_new, days),
        "daily": daily,
    }


def build_revenue_breakdown(session: Session, filters: TrendFilters) -> dict:
    days, window = _resolve_trend_window(filters)
    revenue_by_type: dict[str, Decimal] = defaultdict(Decimal)
    count_by_type: dict[str, int] = defaultdict(int)
    for item in EventStore(session).completed_purchases_in_range(window.start, window.end):
        revenue_by_type[item.product_type] += item.amount
        count_by_type[item.product_type] += 1

    total_revenue = sum(revenue_by_type.values(), Decimal("0"))
    ordered = sorted(revenue_by_type.items(), key=lambda pair: (-pair[1], pair[0]))
    return {
        "period": f"{days} days",
        "totalRevenue": round_half_up(total_revenue),
        "breakdown": [
            {
                "productType": product_type,
                "revenue": round_half_up(revenue),
                "count": count_by_type[product_type],
                "percentage": percent(revenue, total_revenue),
            }
            for product_type, revenue in ordered
        ],
    }


def build_ltv_distribution(session: Session, filters: TrendFilters) -> dict:
    now = resolve_now(filters.now, current_epoch())
    totals = EventStore(session).completed_revenue_by_user(before=now)
    counts = {label: 0 for label in [_ZERO_BRACKET, *(label for label, _ in _LTV_BRACKETS)]}
    for total in totals.values():
        counts[ltv_bracket(total)] += 1

    total_users = len(totals)
    return {
        "distribution": [
            {"bracket": label, "userCount": count, "percentage": percent(count, total_users)}
            for label, count in counts.items()
        ],
        "totalUsers": total_users,
    }


def ltv_bracket(total: Decimal) -> str:
    if total <= 0:
        return _ZERO_BRACKET
    for label, upper in _LTV_BRACKETS:
        if upper is None or total < upper:
            return label
    return _LTV_BRACKETS[-1][0]


def build_top_spenders(session: Session, filters: TopSpenderFilters) -> dict:
    limit = resolve_count("limit", filters.limit, settings.default_top_spenders, settings.max_top_spenders)
    now = resolve_now(filters.now, current_epoch())
    spenders = EventStore(session).top_spenders(limit, before=now)
    return {
        "spenders": [
            {
                "rank": rank,
                "userId": item.user_id,
                "username": item.username,
                "totalSpent": round_half_up(item.amount),
                "purchaseCount": item.purchase_count,
                "avgPurchase": safe_ratio(item.amount, item.purchase_count),
                "lastPurchase": item.last_purchase,
            }
            for rank, item in enumerate(spenders, start=1)
        ],
    }


def build_product_performance(session: Session, filters: ProductFilters) -> dict:
    days, window = _resolve_trend_window(TrendFilters(days=filters.days, now=filters.now))
    limit = resolve_count("limit", filters.limit, settings.default_product_limit, settings.max_product_limit)
    grouped: dict[tuple[str, str | None], list[PurchasePoint]] = defaultdict(list)
    for item in EventStore(session).completed_purchases_in_range(window.start, window.end):
        grouped[(item.product_type, item.product_id)].append(item)

    totals = {key: sum((item.amount for item in items), Decimal("0")) for key, items in grouped.items()}
    ranked = sorted(grouped, key=lambda key: (-totals[key], key[0], key[1] or ""))[:limit]

    products = []
    for product_type, product_id in ranked:
        items = grouped[(product_type, product_id)]
        revenue = totals[(product_type, product_id)]
        buyers = len({item.user_id for item in items})
        products.append(
            {
                "productType": product_type,
                "productId": product_id,
                "sales": len(items),
                "revenue": round_half_up(revenue),
                "avgPrice": safe_ratio(revenue, len(items)),
                "uniqueBuyers": buyers,
                "revenuePerBuyer": safe_ratio(revenue, buyers),
            }
        )
    return {"period": f"{days} days", "products": products}


def build_hourly_activity(session: Session, filters: TrendFilters) -> dict:
    days, window = _resolve_hourly_window(filters)
    players_by_hour: dict[int, set[str]] = defaultdict(set)
    players_by_clock_hour: dict[int, set[str]] = defaultdict(set)
    for item in EventStore(session).sessions_in_range(window.start, window.end):
        players_by_hour[_hour_of_day(item.start_time)].add(item.player_id)
        players_by_clock_hour[item.start_time // _SECONDS_PER_HOUR].add(item.player_id)

    peak = max((len(players) for players in players_by_clock_hour.values()), default=0)
    return {
        "period": f"{days} days",
        "peakCCU": peak,
        "byHour": [
            {"hour": hour, "users": len(players_by_hour.get(hour, ()))} for hour in range(_HOURS_PER_DAY)
        ],
    }


def build_hourly_revenue(session: Session, filters: TrendFilters) -> dict:
    days, window = _resolve_hourly_window(filters)
    revenue_by_hour: dict[int, Decimal] = defaultdict(Decimal)
    transactions_by_hour: dict[int, int] = defaultdict(int)
    for item in EventStore(session).completed_purchases_in_range(window.start, window.end):
        hour = _hour_of_day(item.created_at)
        revenue_by_hour[hour] += item.amount
        transactions_by_hour[hour] += 1

    hourly = []
    for hour in range(_HOURS_PER_DAY):
        revenue = revenue_by_hour.get(hour, Decimal("0"))
        transactions = transactions_by_hour.get(hour, 0)
        hourly.append(
            {
                "hour": hour,
                "revenue": round_half_up(revenue),
                "transactions": transactions,
                "avgTransaction": safe_ratio(revenue, transactions),
            }
        )
    return {"period": f"{days} days", "hourly": hourly}


def _resolve_hourly_window(filters: TrendFilters) -> tuple[int, TimeWindow]:
    days = resolve_window("days", filters.days, settings.default_hourly_days, settings.max_hourly_days)
    now = resolve_now(filters.now, current_epoch())
    return days, trailing_window(days, now)


def _hour_of_day(timestamp: int) -> int:
    # UTC hour, 0..23
    return (timestamp % SECONDS_PER_DAY) // _SECONDS_PER_HOUR
