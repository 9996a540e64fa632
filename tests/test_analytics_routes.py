import time
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from game_analytics.api.routes import analytics as analytics_routes
from game_analytics.core.errors import UpstreamQueryError
from game_analytics.db.base import Base
from game_analytics.db.models import PlayerEvent, PlayerSession, Purchase, PurchaseStatus, User
from game_analytics.main import create_app

DAY = 86400


class AnalyticsRoutesTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine)
        self.app = create_app()

        def override_db_session():
            session = self.SessionLocal()
            try:
                yield session
            finally:
                session.close()

        self.app.dependency_overrides[analytics_routes._get_db_session] = override_db_session
        self.client = TestClient(self.app)

    def tearDown(self) -> None:
        self.app.dependency_overrides.clear()
        Base.metadata.drop_all(self.engine)
        self.engine.dispose()

    def _seed(self) -> None:
        now = int(time.time())
        with self.SessionLocal() as session:
            session.add_all(
                [
                    User(id="u1", registered_at=now - 20 * DAY),
                    User(id="u2", registered_at=now - 2 * DAY),
                    PlayerSession(player_id="u1", start_time=now - 19 * DAY + 60, end_time=now - 19 * DAY + 660),
                    PlayerSession(player_id="u2", start_time=now - 60, end_time=None),
                    PlayerEvent(player_id="u1", event_type="tutorial_started", timestamp=now - 10 * DAY),
                    PlayerEvent(player_id="u2", event_type="tutorial_started", timestamp=now - DAY),
                    Purchase(user_id="u1", product_type="gems", price_cents=499, status=PurchaseStatus.COMPLETED, created_at=now - 100),
                ]
            )
            session.commit()

    def test_cohort_retention_contract(self) -> None:
        self._seed()

        response = self.client.get("/analytics/cohorts/retention", params={"weeks": 4})

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["retentionDays"], [1, 3, 7, 14, 30])
        self.assertEqual(len(payload["cohorts"]), 4)
        self.assertEqual(sum(item["cohortSize"] for item in payload["cohorts"]), 2)
        for item in payload["cohorts"]:
            self.assertEqual(set(item), {"cohortLabel", "cohortSize", "retention"})
            self.assertTrue(item["cohortLabel"].startswith("Week of "))

    def test_invalid_parameter_maps_to_422_with_constraint(self) -> None:
        response = self.client.get("/analytics/cohorts/revenue", params={"weeks": 0})

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["detail"]["constraint"], "weeks_positive")

    def test_non_integer_query_is_rejected(self) -> None:
        response = self.client.get("/analytics/cohorts/retention", params={"weeks": "many"})

        self.assertEqual(response.status_code, 422)

    def test_predefined_funnel_and_unknown_key(self) -> None:
        self._seed()

        response = self.client.get("/analytics/funnels/tutorial", params={"days": 30})
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["key"], "tutorial")
        self.assertEqual(payload["steps"][0]["count"], 2)
        self.assertFalse(payload["steps"][0]["estimated"])

        missing = self.client.get("/analytics/funnels/arena")
        self.assertEqual(missing.status_code, 404)

    def test_funnels_overview_route_is_not_shadowed(self) -> None:
        response = self.client.get("/analytics/funnels/overview")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()["funnels"]), 6)

    def test_custom_funnel(self) -> None:
        self._seed()

        rejected = self.client.post("/analytics/funnels/custom", json={"events": ["tutorial_started"]})
        self.assertEqual(rejected.status_code, 422)
        self.assertEqual(rejected.json()["detail"]["constraint"], "events_min_steps")

        response = self.client.post(
            "/analytics/funnels/custom",
            json={"events": ["tutorial_started", "tutorial_completed"], "days": 7},
        )
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["period"], "7 days")
        self.assertEqual([step["count"] for step in payload["steps"]], [1, 0])

    def test_snapshot_routes(self) -> None:
        self._seed()

        overview = self.client.get("/analytics/overview")
        self.assertEqual(overview.status_code, 200)
        self.assertEqual(overview.json()["totalUsers"], 2)
        self.assertEqual(overview.json()["revenueToday"], 4.99)

        for path in (
            "/analytics/realtime",
            "/analytics/subscriptions/churn",
            "/analytics/cohorts/ltv-curve",
            "/analytics/cohorts/conversion",
            "/analytics/cohorts/engagement",
            "/analytics/cohorts/daily",
            "/analytics/trends/dau",
            "/analytics/trends/revenue",
            "/analytics/trends/new-users",
            "/analytics/revenue/breakdown",
            "/analytics/revenue/ltv-distribution",
        ):
            with self.subTest(path=path):
                self.assertEqual(self.client.get(path).status_code, 200)

    def test_upstream_failure_maps_to_503(self) -> None:
        with patch.object(analytics_routes, "build_overview_snapshot", side_effect=UpstreamQueryError("boom")):
            response = self.client.get("/analytics/overview")

        self.assertEqual(response.status_code, 503)
        self.assertIn("temporarily unavailable", response.json()["detail"])

    def test_ranking_and_hourly_routes(self) -> None:
        self._seed()

        spenders = self.client.get("/analytics/revenue/top-spenders", params={"limit": 5})
        products = self.client.get("/analytics/revenue/products", params={"days": 7})
        hourly_revenue = self.client.get("/analytics/revenue/hourly")
        hourly_activity = self.client.get("/analytics/activity/hourly", params={"days": 3})

        self.assertEqual(spenders.status_code, 200)
        self.assertEqual(spenders.json()["spenders"][0]["userId"], "u1")
        self.assertEqual(spenders.json()["spenders"][0]["totalSpent"], 4.99)
        self.assertEqual(products.status_code, 200)
        self.assertEqual(products.json()["products"][0]["sales"], 1)
        self.assertEqual(hourly_revenue.status_code, 200)
        self.assertEqual(sum(item["transactions"] for item in hourly_revenue.json()["hourly"]), 1)
        self.assertEqual(hourly_activity.status_code, 200)
        self.assertEqual(hourly_activity.json()["peakCCU"], 1)
        self.assertEqual(len(hourly_activity.json()["byHour"]), 24)

    def test_ranking_limit_maps_to_422(self) -> None:
        response = self.client.get("/analytics/revenue/products", params={"limit": 0})

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["detail"]["constraint"], "limit_positive")

    def test_missing_database_configuration_maps_to_503(self) -> None:
        self.app.dependency_overrides.clear()
        with patch.object(analytics_routes, "get_session_factory", side_effect=RuntimeError("DATABASE_URL is not configured")):
            response = self.client.get("/analytics/realtime")

        self.assertEqual(response.status_code, 503)
        self.assertIn("DATABASE_URL", response.json()["detail"])


if __name__ == "__main__":
    unittest.main()
