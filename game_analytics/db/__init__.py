from game_analytics.db.base import Base
from game_analytics.db.models import (
    PlayerEvent,
    PlayerSession,
    Purchase,
    PurchaseStatus,
    Subscription,
    SubscriptionStatus,
    User,
)

__all__ = [
    "Base",
    "PlayerEvent",
    "PlayerSession",
    "Purchase",
    "PurchaseStatus",
    "Subscription",
    "SubscriptionStatus",
    "User",
]
