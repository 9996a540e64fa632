import unittest

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from game_analytics.db.base import Base
from game_analytics.db.models import (
    PlayerSession,
    Purchase,
    PurchaseStatus,
    Subscription,
    SubscriptionStatus,
    User,
)
from game_analytics.services.cohorts import (
    CohortFilters,
    build_cohort_conversion_analytics,
    build_cohort_engagement_analytics,
    build_daily_cohort_overview,
)

DAY = 86400
# 2026-01-01 00:00:00 UTC
NOW = 1767225600


class CohortExtrasTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine("sqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine)
        with self.Session() as session:
            session.add_all(
                [
                    User(id="u1", registered_at=NOW - 2 * DAY),
                    User(id="u2", registered_at=NOW - 3 * DAY),
                    User(id="u3", registered_at=NOW - DAY),
                    Purchase(user_id="u1", product_type="gems", price_cents=1000, status=PurchaseStatus.COMPLETED, created_at=NOW - DAY),
                    Purchase(user_id="u1", product_type="gems", price_cents=500, status=PurchaseStatus.COMPLETED, created_at=NOW - 100),
                    Purchase(user_id="u3", product_type="gems", price_cents=800, status=PurchaseStatus.PENDING, created_at=NOW - 100),
                    Subscription(
                        user_id="u2",
                        tier="plus",
                        status=SubscriptionStatus.ACTIVE,
                        price_cents=499,
                        started_at=NOW - DAY,
                        expires_at=NOW + 29 * DAY,
                        created_at=NOW - DAY,
                    ),
                    PlayerSession(player_id="u1", start_time=NOW - DAY, end_time=NOW - DAY + 600),
                    PlayerSession(player_id="u1", start_time=NOW - 60, end_time=None),
                    PlayerSession(player_id="u2", start_time=NOW - 2 * DAY, end_time=NOW - 2 * DAY + 300),
                ]
            )
            session.commit()

    def tearDown(self) -> None:
        Base.metadata.drop_all(self.engine)
        self.engine.dispose()

    def test_cohort_conversion(self) -> None:
        with self.Session() as session:
            result = build_cohort_conversion_analytics(session, CohortFilters(weeks=2, now=NOW))

        self.assertEqual(result["cohorts"][0]["cohortSize"], 0)
        self.assertEqual(result["cohorts"][0]["arppu"], 0.0)
        latest = result["cohorts"][-1]
        self.assertEqual(
            latest,
            {
                "cohortLabel": "Week of 2025-12-25",
                "cohortSize": 3,
                "payingUsers": 1,
                "payerConversion": 33.33,
                "subscribedUsers": 1,
                "subscriptionConversion": 33.33,
                "totalRevenue": 15.0,
                "arpu": 5.0,
                "arppu": 15.0,
            },
        )

    def test_cohort_engagement_counts_open_sessions_as_zero_duration(self) -> None:
        with self.Session() as session:
            result = build_cohort_engagement_analytics(session, CohortFilters(weeks=1, now=NOW))

        self.assertEqual(
            result["cohorts"],
            [{"cohortLabel": "Week of 2025-12-25", "cohortSize": 3, "avgSessions": 1.0, "avgSessionDuration": 300}],
        )

    def test_cohort_engagement_rounds_half_duration_up(self) -> None:
        with self.Session() as session:
            session.add_all(
                [
                    User(id="w1", registered_at=NOW - 10 * DAY),
                    User(id="w2", registered_at=NOW - 9 * DAY),
                    PlayerSession(player_id="w1", start_time=NOW - 9 * DAY, end_time=NOW - 9 * DAY + 5),
                ]
            )
            session.commit()

            result = build_cohort_engagement_analytics(session, CohortFilters(weeks=2, now=NOW))

        older = result["cohorts"][0]
        self.assertEqual(older["cohortSize"], 2)
        self.assertEqual(older["avgSessions"], 0.5)
        self.assertEqual(older["avgSessionDuration"], 3)

    def test_daily_cohort_overview(self) -> None:
        with self.Session() as session:
            result = build_daily_cohort_overview(session, CohortFilters(days=3, now=NOW + 3600))

        self.assertEqual(result["period"], "3 days")
        self.assertEqual([item["date"] for item in result["cohorts"]], ["2025-12-30", "2025-12-31", "2026-01-01"])
        by_date = {item["date"]: item for item in result["cohorts"]}
        self.assertEqual(
            by_date["2025-12-30"],
            {
                "date": "2025-12-30",
                "cohortSize": 1,
                "payingUsers": 1,
                "conversionRate": 100.0,
                "totalRevenue": 15.0,
                "ltv": 15.0,
                "avgSessions": 2.0,
            },
        )
        self.assertEqual(by_date["2025-12-31"]["payingUsers"], 0)
        self.assertEqual(by_date["2026-01-01"]["cohortSize"], 0)
        self.assertEqual(by_date["2026-01-01"]["conversionRate"], 0.0)


if __name__ == "__main__":
    unittest.main()
