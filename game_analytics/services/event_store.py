"""Read-only query surface over the registrations, sessions, purchases and custom events tables."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import Select, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from game_analytics.core.errors import UpstreamQueryError
from game_analytics.db.models import (
    PlayerEvent,
    PlayerSession,
    Purchase,
    PurchaseStatus,
    Subscription,
    SubscriptionStatus,
    User,
)
from game_analytics.services.rates import cents_to_dollars

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Registration:
    id: str
    registered_at: int


@dataclass(frozen=True)
class SessionPoint:
    player_id: str
    start_time: int
    end_time: int | None

    @property
    def duration(self) -> int:
        if self.end_time is None:
            return 0
        return max(0, self.end_time - self.start_time)


@dataclass(frozen=True)
class PurchasePoint:
    user_id: str
    product_type: str
    amount: Decimal
    created_at: int
    product_id: str | None = None


@dataclass(frozen=True)
class SpenderTotal:
    user_id: str
    username: str | None
    amount: Decimal
    purchase_count: int
    last_purchase: int


@dataclass(frozen=True)
class SubscriptionPoint:
    user_id: str
    tier: str
    status: SubscriptionStatus
    price_cents: int
    started_at: int
    expires_at: int
    cancelled_at: int | None


class EventStore:
    def __init__(self, session: Session) -> None:
        self._session = session

    def registrations_in_range(self, start: int, end: int) -> list[Registration]:
        query = (
            select(User.id, User.registered_at)
            .where(User.registered_at >= start, User.registered_at < end)
            .order_by(User.registered_at.asc(), User.id.asc())
        )
        rows = self._fetch_all("registrations_in_range", query)
        return [Registration(id=row.id, registered_at=int(row.registered_at)) for row in rows]

    def count_registrations(self, start: int | None = None, end: int | None = None) -> int:
        query = select(func.count(User.id))
        if start is not None:
            query = query.where(User.registered_at >= start)
        if end is not None:
            query = query.where(User.registered_at < end)
        return self._count("count_registrations", query)

    def count_distinct_users_with_session(self, start: int, end: int) -> int:
        query = select(func.count(func.distinct(PlayerSession.player_id))).where(
            PlayerSession.start_time >= start,
            PlayerSession.start_time < end,
        )
        return self._count("count_distinct_users_with_session", query)

    def count_distinct_users_with_event(self, event_type: str, since: int, until: int | None = None) -> int:
        query = select(func.count(func.distinct(PlayerEvent.player_id))).where(
            PlayerEvent.event_type == event_type,
            PlayerEvent.timestamp >= since,
        )
        if until is not None:
            query = query.where(PlayerEvent.timestamp < until)
        return self._count("count_distinct_users_with_event", query)

    def count_distinct_users_with_completed_purchase(self, since: int, until: int | None = None) -> int:
        query = select(func.count(func.distinct(Purchase.user_id))).where(
            Purchase.status == PurchaseStatus.COMPLETED,
            Purchase.created_at >= since,
        )
        if until is not None:
            query = query.where(Purchase.created_at < until)
        return self._count("count_distinct_users_with_completed_purchase", query)

    def count_first_time_purchasers(self, since: int, until: int | None = None) -> int:
        first_purchase = (
            select(Purchase.user_id, func.min(Purchase.created_at).label("first_at"))
            .where(Purchase.status == PurchaseStatus.COMPLETED)
            .group_by(Purchase.user_id)
            .subquery()
        )
        query = select(func.count()).select_from(first_purchase).where(first_purchase.c.first_at >= since)
        if until is not None:
            query = query.where(first_purchase.c.first_at < until)
        return self._count("count_first_time_purchasers", query)

    def count_distinct_subscribers(self, since: int, until: int | None = None) -> int:
        query = select(func.count(func.distinct(Subscription.user_id))).where(Subscription.created_at >= since)
        if until is not None:
            query = query.where(Subscription.created_at < until)
        return self._count("count_distinct_subscribers", query)

    def sum_completed_purchase_revenue(
        self,
        user_id: str | None = None,
        before: int | None = None,
        since: int | None = None,
    ) -> Decimal:
        query = select(func.coalesce(func.sum(Purchase.price_cents), 0)).where(
            Purchase.status == PurchaseStatus.COMPLETED
        )
        if user_id is not None:
            query = query.where(Purchase.user_id == user_id)
        if before is not None:
            query = query.where(Purchase.created_at < before)
        if since is not None:
            query = query.where(Purchase.created_at >= since)
        return cents_to_dollars(self._count("sum_completed_purchase_revenue", query))

    def user_has_session_in_range(self, user_id: str, start: int, end: int) -> bool:
        query = (
            select(PlayerSession.id)
            .where(
                PlayerSession.player_id == user_id,
                PlayerSession.start_time >= start,
                PlayerSession.start_time < end,
            )
            .limit(1)
        )
        return self._scalar("user_has_session_in_range", query) is not None

    def user_has_subscription(self, user_id: str) -> bool:
        query = select(Subscription.id).where(Subscription.user_id == user_id).limit(1)
        return self._scalar("user_has_subscription", query) is not None

    def count_sessions(
        self,
        start: int | None = None,
        end: int | None = None,
        player_id: str | None = None,
    ) -> int:
        query = select(func.count(PlayerSession.id))
        if start is not None:
            query = query.where(PlayerSession.start_time >= start)
        if end is not None:
            query = query.where(PlayerSession.start_time < end)
        if player_id is not None:
            query = query.where(PlayerSession.player_id == player_id)
        return self._count("count_sessions", query)

    def count_online_users(self, active_since: int) -> int:
        query = select(func.count(func.distinct(PlayerSession.player_id))).where(
            or_(PlayerSession.end_time.is_(None), PlayerSession.end_time >= active_since)
        )
        return self._count("count_online_users", query)

    def sessions_in_range(self, start: int, end: int, player_id: str | None = None) -> list[SessionPoint]:
        query = select(PlayerSession.player_id, PlayerSession.start_time, PlayerSession.end_time).where(
            PlayerSession.start_time >= start,
            PlayerSession.start_time < end,
        )
        if player_id is not None:
            query = query.where(PlayerSession.player_id == player_id)
        rows = self._fetch_all("sessions_in_range", query.order_by(PlayerSession.start_time.asc()))
        return [
            SessionPoint(player_id=row.player_id, start_time=int(row.start_time), end_time=row.end_time)
            for row in rows
        ]

    def sessions_for_user(self, user_id: str) -> list[SessionPoint]:
        query = (
            select(PlayerSession.player_id, PlayerSession.start_time, PlayerSession.end_time)
            .where(PlayerSession.player_id == user_id)
            .order_by(PlayerSession.start_time.asc())
        )
        rows = self._fetch_all("sessions_for_user", query)
        return [
            SessionPoint(player_id=row.player_id, start_time=int(row.start_time), end_time=row.end_time)
            for row in rows
        ]

    def completed_purchases_in_range(self, start: int, end: int) -> list[PurchasePoint]:
        query = (
            select(
                Purchase.id,
                Purchase.user_id,
                Purchase.product_type,
                Purchase.product_id,
                Purchase.price_cents,
                Purchase.created_at,
            )
            .where(
                Purchase.status == PurchaseStatus.COMPLETED,
                Purchase.created_at >= start,
                Purchase.created_at < end,
            )
            .order_by(Purchase.created_at.asc())
        )
        points: list[PurchasePoint] = []
        for row in self._fetch_all("completed_purchases_in_range", query):
            if row.price_cents is None:
                raise self._malformed("completed_purchases_in_range", "purchase without price", purchase_id=row.id)
            points.append(
                PurchasePoint(
                    user_id=row.user_id,
                    product_type=row.product_type,
                    amount=cents_to_dollars(row.price_cents),
                    created_at=int(row.created_at),
                    product_id=row.product_id,
                )
            )
        return points

    def completed_revenue_by_user(self, before: int | None = None) -> dict[str, Decimal]:
        query = select(Purchase.user_id, func.sum(Purchase.price_cents).label("total_cents")).where(
            Purchase.status == PurchaseStatus.COMPLETED
        )
        if before is not None:
            query = query.where(Purchase.created_at < before)
        query = query.group_by(Purchase.user_id)
        rows = self._fetch_all("completed_revenue_by_user", query)
        return {row.user_id: cents_to_dollars(row.total_cents) for row in rows}

    def top_spenders(self, limit: int, before: int | None = None) -> list[SpenderTotal]:
        total_cents = func.sum(Purchase.price_cents)
        query = (
            select(
                User.id,
                User.username,
                total_cents.label("total_cents"),
                func.count(Purchase.id).label("purchase_count"),
                func.max(Purchase.created_at).label("last_purchase"),
            )
            .select_from(Purchase)
            .join(User, User.id == Purchase.user_id)
            .where(Purchase.status == PurchaseStatus.COMPLETED)
        )
        if before is not None:
            query = query.where(Purchase.created_at < before)
        query = (
            query.group_by(User.id, User.username)
            .order_by(total_cents.desc(), User.id.asc())
            .limit(limit)
        )
        rows = self._fetch_all("top_spenders", query)
        return [
            SpenderTotal(
                user_id=row.id,
                username=row.username,
                amount=cents_to_dollars(row.total_cents),
                purchase_count=int(row.purchase_count),
                last_purchase=int(row.last_purchase),
            )
            for row in rows
        ]

    def subscriptions(self) -> list[SubscriptionPoint]:
        query = select(Subscription).order_by(Subscription.tier.asc(), Subscription.id.asc())
        try:
            records = self._session.execute(query).scalars().all()
        except SQLAlchemyError as exc:
            raise self._failed("subscriptions", exc) from exc
        return [
            SubscriptionPoint(
                user_id=record.user_id,
                tier=record.tier,
                status=record.status,
                price_cents=record.price_cents or 0,
                started_at=record.started_at,
                expires_at=record.expires_at,
                cancelled_at=record.cancelled_at,
            )
            for record in records
        ]

    def _fetch_all(self, operation: str, query: Select) -> list:
        try:
            return list(self._session.execute(query).all())
        except SQLAlchemyError as exc:
            raise self._failed(operation, exc) from exc

    def _scalar(self, operation: str, query: Select):
        try:
            return self._session.execute(query).scalar()
        except SQLAlchemyError as exc:
            raise self._failed(operation, exc) from exc

    def _count(self, operation: str, query: Select) -> int:
        value = self._scalar(operation, query)
        return int(value or 0)

    @staticmethod
    def _failed(operation: str, exc: SQLAlchemyError) -> UpstreamQueryError:
        logger.exception(
            "event_store_query_failed",
            extra={"operation": operation, "error_type": exc.__class__.__name__},
        )
        return UpstreamQueryError(
            "Event store query failed",
            details={"operation": operation, "error_type": exc.__class__.__name__},
        )

    @staticmethod
    def _malformed(operation: str, reason: str, **context) -> UpstreamQueryError:
        logger.error("event_store_malformed_row", extra={"operation": operation, "reason": reason, **context})
        return UpstreamQueryError(
            "Event store returned a malformed row",
            details={"operation": operation, "reason": reason, **context},
        )
