from __future__ import annotations

from collections.abc import Iterable

from game_analytics.core.config import settings
from game_analytics.core.errors import InvalidParameterError


def resolve_count(name: str, value: int | None, default: int, maximum: int) -> int:
    if value is None:
        value = default
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidParameterError(f"{name}_integer", f"'{name}' must be an integer", {name: value})
    if value < 1:
        raise InvalidParameterError(f"{name}_positive", f"'{name}' must be at least 1", {name: value})
    if value > maximum:
        raise InvalidParameterError(
            f"{name}_max",
            f"'{name}' must be less than or equal to {maximum}",
            {name: value, "maximum": maximum},
        )
    return value


def resolve_window(name: str, value: int | None, default: int, maximum: int, *, days_per_unit: int = 1) -> int:
    value = resolve_count(name, value, default, maximum)
    if value * days_per_unit > settings.max_lookback_days:
        raise InvalidParameterError(
            "max_lookback_days",
            f"Requested window exceeds {settings.max_lookback_days} days",
            {name: value, "max_lookback_days": settings.max_lookback_days},
        )
    return value


def resolve_day_offsets(offsets: Iterable[int] | None, default: list[int]) -> list[int]:
    values = list(default if offsets is None else offsets)
    if not values:
        raise InvalidParameterError("day_offsets_non_empty", "At least one day offset is required")
    for value in values:
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise InvalidParameterError(
                "day_offsets_non_negative",
                "Day offsets must be non-negative integers",
                {"offset": value},
            )
    return values


def resolve_now(now: int | None, current: int) -> int:
    if now is None:
        return current
    if isinstance(now, bool) or not isinstance(now, int) or now < 0:
        raise InvalidParameterError("now_epoch", "'now' must be a non-negative epoch timestamp", {"now": now})
    return now
