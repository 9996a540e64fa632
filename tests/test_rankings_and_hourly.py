import unittest

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from game_analytics.core.errors import InvalidParameterError
from game_analytics.db.base import Base
from game_analytics.db.models import PlayerSession, Purchase, PurchaseStatus, User
from game_analytics.services.trends import (
    ProductFilters,
    TopSpenderFilters,
    TrendFilters,
    build_hourly_activity,
    build_hourly_revenue,
    build_product_performance,
    build_top_spenders,
)

DAY = 86400
HOUR = 3600
# 2026-01-01 00:00:00 UTC
NOW = 1767225600


def _purchase(
    user_id: str,
    cents: int,
    created_at: int,
    product_type: str = "gems",
    product_id: str | None = "pack_small",
    status: PurchaseStatus = PurchaseStatus.COMPLETED,
) -> Purchase:
    return Purchase(
        user_id=user_id,
        product_type=product_type,
        product_id=product_id,
        price_cents=cents,
        status=status,
        created_at=created_at,
    )


class RankingTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine("sqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine)

    def tearDown(self) -> None:
        Base.metadata.drop_all(self.engine)
        self.engine.dispose()

    def test_top_spenders_ranked_by_completed_revenue(self) -> None:
        with self.Session() as session:
            session.add_all(
                [
                    User(id="a", username="alice", registered_at=NOW - 30 * DAY),
                    User(id="b", username="bob", registered_at=NOW - 30 * DAY),
                    User(id="c", username="carol", registered_at=NOW - 30 * DAY),
                    _purchase("a", 1000, NOW - 5 * DAY),
                    _purchase("a", 501, NOW - DAY),
                    _purchase("b", 2000, NOW - 100),
                    _purchase("c", 9999, NOW - 100, status=PurchaseStatus.PENDING),
                    _purchase("c", 50000, NOW + 10),
                ]
            )
            session.commit()

            result = build_top_spenders(session, TopSpenderFilters(limit=2, now=NOW))

        self.assertEqual(
            result["spenders"],
            [
                {
                    "rank": 1,
                    "userId": "b",
                    "username": "bob",
                    "totalSpent": 20.0,
                    "purchaseCount": 1,
                    "avgPurchase": 20.0,
                    "lastPurchase": NOW - 100,
                },
                {
                    "rank": 2,
                    "userId": "a",
                    "username": "alice",
                    "totalSpent": 15.01,
                    "purchaseCount": 2,
                    "avgPurchase": 7.51,
                    "lastPurchase": NOW - DAY,
                },
            ],
        )

    def test_top_spenders_limit_is_bounded(self) -> None:
        with self.Session() as session:
            with self.assertRaises(InvalidParameterError) as ctx:
                build_top_spenders(session, TopSpenderFilters(limit=101, now=NOW))

        self.assertEqual(ctx.exception.constraint, "limit_max")

    def test_top_spenders_empty_store(self) -> None:
        with self.Session() as session:
            result = build_top_spenders(session, TopSpenderFilters(now=NOW))

        self.assertEqual(result, {"spenders": []})

    def test_product_performance_groups_by_type_and_id(self) -> None:
        with self.Session() as session:
            session.add_all(
                [
                    _purchase("u1", 499, NOW - DAY),
                    _purchase("u2", 499, NOW - 2 * DAY),
                    _purchase("u1", 499, NOW - 100),
                    _purchase("u3", 999, NOW - 100, product_type="battle_pass", product_id="season_1"),
                    _purchase("u4", 99999, NOW - 20 * DAY, product_type="bundle", product_id="whale"),
                ]
            )
            session.commit()

            result = build_product_performance(session, ProductFilters(days=7, now=NOW))

        self.assertEqual(result["period"], "7 days")
        self.assertEqual(
            result["products"],
            [
                {
                    "productType": "gems",
                    "productId": "pack_small",
                    "sales": 3,
                    "revenue": 14.97,
                    "avgPrice": 4.99,
                    "uniqueBuyers": 2,
                    "revenuePerBuyer": 7.49,
                },
                {
                    "productType": "battle_pass",
                    "productId": "season_1",
                    "sales": 1,
                    "revenue": 9.99,
                    "avgPrice": 9.99,
                    "uniqueBuyers": 1,
                    "revenuePerBuyer": 9.99,
                },
            ],
        )

    def test_product_performance_respects_limit(self) -> None:
        with self.Session() as session:
            session.add_all(
                [
                    _purchase("u1", 499, NOW - DAY),
                    _purchase("u3", 999, NOW - 100, product_type="battle_pass", product_id="season_1"),
                ]
            )
            session.commit()

            result = build_product_performance(session, ProductFilters(days=7, limit=1, now=NOW))

        self.assertEqual([item["productId"] for item in result["products"]], ["season_1"])


class HourlyTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine("sqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine)

    def tearDown(self) -> None:
        Base.metadata.drop_all(self.engine)
        self.engine.dispose()

    def test_hourly_activity_and_peak_concurrency(self) -> None:
        with self.Session() as session:
            session.add_all(
                [
                    PlayerSession(player_id="u1", start_time=NOW - DAY + 2 * HOUR + 10, end_time=None),
                    PlayerSession(player_id="u2", start_time=NOW - DAY + 2 * HOUR + 500, end_time=None),
                    PlayerSession(player_id="u3", start_time=NOW - 2 * DAY + 2 * HOUR + 1, end_time=None),
                    PlayerSession(player_id="u1", start_time=NOW - DAY + 15 * HOUR, end_time=None),
                    PlayerSession(player_id="old", start_time=NOW - 5 * DAY, end_time=None),
                ]
            )
            session.commit()

            result = build_hourly_activity(session, TrendFilters(days=2, now=NOW))

        self.assertEqual(result["period"], "2 days")
        self.assertEqual(result["peakCCU"], 2)
        self.assertEqual(len(result["byHour"]), 24)
        by_hour = {item["hour"]: item["users"] for item in result["byHour"]}
        self.assertEqual(by_hour[2], 3)
        self.assertEqual(by_hour[15], 1)
        self.assertEqual(by_hour[0], 0)

    def test_hourly_activity_empty_window(self) -> None:
        with self.Session() as session:
            result = build_hourly_activity(session, TrendFilters(now=NOW))

        self.assertEqual(result["period"], "7 days")
        self.assertEqual(result["peakCCU"], 0)
        self.assertTrue(all(item["users"] == 0 for item in result["byHour"]))

    def test_hourly_revenue_distribution(self) -> None:
        with self.Session() as session:
            session.add_all(
                [
                    _purchase("u1", 250, NOW - DAY + 3 * HOUR),
                    _purchase("u2", 751, NOW - DAY + 3 * HOUR + 60),
                    _purchase("u3", 1000, NOW - DAY + 20 * HOUR),
                    _purchase("u4", 800, NOW - DAY + 20 * HOUR, status=PurchaseStatus.REFUNDED),
                ]
            )
            session.commit()

            result = build_hourly_revenue(session, TrendFilters(days=1, now=NOW))

        by_hour = {item["hour"]: item for item in result["hourly"]}
        self.assertEqual(len(by_hour), 24)
        self.assertEqual(by_hour[3], {"hour": 3, "revenue": 10.01, "transactions": 2, "avgTransaction": 5.01})
        self.assertEqual(by_hour[20], {"hour": 20, "revenue": 10.0, "transactions": 1, "avgTransaction": 10.0})
        self.assertEqual(by_hour[0], {"hour": 0, "revenue": 0.0, "transactions": 0, "avgTransaction": 0.0})

    def test_hourly_window_is_bounded(self) -> None:
        with self.Session() as session:
            with self.assertRaises(InvalidParameterError) as ctx:
                build_hourly_revenue(session, TrendFilters(days=31, now=NOW))

        self.assertEqual(ctx.exception.constraint, "days_max")


if __name__ == "__main__":
    unittest.main()
