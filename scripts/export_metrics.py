#!/usr/bin/env python3
"""Prints one analytics computation as JSON.

Exit codes: 0 on success, 2 when a parameter is rejected, 1 when the event store fails.
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from game_analytics.core.config import settings  # noqa: E402
from game_analytics.core.errors import InvalidParameterError, UpstreamQueryError  # noqa: E402
from game_analytics.core.logging import setup_logging  # noqa: E402
from game_analytics.db.session import get_session  # noqa: E402
from game_analytics.services import aggregates, cohorts, funnels, retention, revenue, trends  # noqa: E402


def _cohort_filters(args: argparse.Namespace) -> cohorts.CohortFilters:
    return cohorts.CohortFilters(weeks=args.weeks, days=args.days, now=args.now)


def _funnel_filters(args: argparse.Namespace) -> funnels.FunnelFilters:
    return funnels.FunnelFilters(days=args.days, now=args.now)


def _trend_filters(args: argparse.Namespace) -> trends.TrendFilters:
    return trends.TrendFilters(days=args.days, now=args.now)


def _snapshot_filters(args: argparse.Namespace) -> aggregates.SnapshotFilters:
    return aggregates.SnapshotFilters(now=args.now)


def _parse_events(raw_value: str | None) -> list[str]:
    if not raw_value:
        return []
    return [item.strip() for item in raw_value.split(",") if item.strip()]


METRICS: dict[str, Callable[[Session, argparse.Namespace], dict]] = {
    "retention": lambda s, a: retention.build_retention_analytics(s, _cohort_filters(a)),
    "revenue": lambda s, a: revenue.build_revenue_analytics(s, _cohort_filters(a)),
    "ltv-curve": lambda s, a: revenue.build_ltv_curve(s, _cohort_filters(a)),
    "cohort-conversion": lambda s, a: cohorts.build_cohort_conversion_analytics(s, _cohort_filters(a)),
    "cohort-engagement": lambda s, a: cohorts.build_cohort_engagement_analytics(s, _cohort_filters(a)),
    "cohort-daily": lambda s, a: cohorts.build_daily_cohort_overview(s, _cohort_filters(a)),
    "funnel": lambda s, a: funnels.build_funnel_analytics(s, a.funnel, _funnel_filters(a)),
    "custom-funnel": lambda s, a: funnels.build_custom_funnel_analytics(s, _parse_events(a.events), _funnel_filters(a)),
    "funnels-overview": lambda s, a: funnels.build_funnels_overview(s, _funnel_filters(a)),
    "overview": lambda s, a: aggregates.build_overview_snapshot(s, _snapshot_filters(a)),
    "realtime": lambda s, a: aggregates.build_realtime_snapshot(s, _snapshot_filters(a)),
    "subscription-churn": lambda s, a: aggregates.build_subscription_churn(s, _snapshot_filters(a)),
    "dau-trend": lambda s, a: trends.build_dau_trend(s, _trend_filters(a)),
    "revenue-trend": lambda s, a: trends.build_revenue_trend(s, _trend_filters(a)),
    "new-users": lambda s, a: trends.build_new_users_trend(s, _trend_filters(a)),
    "revenue-breakdown": lambda s, a: trends.build_revenue_breakdown(s, _trend_filters(a)),
    "ltv-distribution": lambda s, a: trends.build_ltv_distribution(s, _trend_filters(a)),
    "top-spenders": lambda s, a: trends.build_top_spenders(s, trends.TopSpenderFilters(limit=a.limit, now=a.now)),
    "product-performance": lambda s, a: trends.build_product_performance(
        s, trends.ProductFilters(days=a.days, limit=a.limit, now=a.now)
    ),
    "hourly-activity": lambda s, a: trends.build_hourly_activity(s, _trend_filters(a)),
    "hourly-revenue": lambda s, a: trends.build_hourly_revenue(s, _trend_filters(a)),
}


@contextmanager
def _open_session(database_url: str | None) -> Iterator[Session]:
    if not database_url:
        with get_session() as session:
            yield session
        return
    engine = create_engine(database_url)
    session = sessionmaker(bind=engine)()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        engine.dispose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Export a game analytics metric as JSON.")
    parser.add_argument("metric", choices=sorted(METRICS))
    parser.add_argument("--weeks", type=int, default=None)
    parser.add_argument("--days", type=int, default=None)
    parser.add_argument("--limit", type=int, default=None, help="Row limit for ranked metrics")
    parser.add_argument("--funnel", default="tutorial", help="Predefined funnel key for the 'funnel' metric")
    parser.add_argument("--events", default=None, help="Comma-separated event types for 'custom-funnel'")
    parser.add_argument("--now", type=int, default=None, help="Evaluate as of this epoch timestamp")
    parser.add_argument("--database-url", default=None)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(settings.log_level)
    try:
        with _open_session(args.database_url) as session:
            result = METRICS[args.metric](session, args)
    except InvalidParameterError as exc:
        print(f"invalid parameter ({exc.constraint}): {exc.message}", file=sys.stderr)
        return 2
    except UpstreamQueryError as exc:
        print(f"event store unavailable: {exc.message}", file=sys.stderr)
        return 1
    except RuntimeError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    print(json.dumps(result, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
