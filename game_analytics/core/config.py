from pydantic_settings import BaseSettings, SettingsConfigDict


def _parse_day_offsets(raw_value: str | None) -> list[int]:
    if not raw_value:
        return []
    offsets: list[int] = []
    for item in raw_value.split(","):
        candidate = item.strip()
        if not candidate:
            continue
        try:
            value = int(candidate)
        except ValueError:
            continue
        if value >= 0 and value not in offsets:
            offsets.append(value)
    return sorted(offsets)


def _parse_ratio_overrides(raw_value: str | None) -> dict[str, float]:
    if not raw_value:
        return {}
    overrides: dict[str, float] = {}
    for item in raw_value.split(","):
        key, sep, value = item.partition("=")
        key = key.strip().lower()
        if not sep or "." not in key:
            continue
        try:
            ratio = float(value.strip())
        except ValueError:
            continue
        if 0 <= ratio <= 1:
            overrides[key] = ratio
    return overrides


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str | None = None
    database_pool_size: int = 5
    database_max_overflow: int = 5
    database_pool_timeout_seconds: int = 30
    database_pool_recycle_seconds: int = 1800

    default_cohort_weeks: int = 8
    max_cohort_weeks: int = 12
    default_daily_cohort_days: int = 30
    max_daily_cohort_days: int = 60
    default_funnel_days: int = 30
    max_funnel_days: int = 90
    max_lookback_days: int = 180
    default_hourly_days: int = 7
    max_hourly_days: int = 30
    default_top_spenders: int = 20
    max_top_spenders: int = 100
    default_product_limit: int = 20
    max_product_limit: int = 50

    retention_days: str = "1,3,7,14,30"
    revenue_days: str = "1,7,14,30,60,90"
    ltv_curve_days: str = "1,3,7,14,30,60,90,180"

    # Rough LTV for the overview card: ARPPU * months * retention factor.
    ltv_estimate_months: int = 6
    ltv_estimate_retention_factor: float = 0.3
    online_window_seconds: int = 300

    # FUNNEL_FALLBACK_RATIOS=tutorial.tutorial_step_1=0.9,first-purchase.store_viewed=0.4
    funnel_fallback_ratios: str | None = None

    env: str = "dev"
    log_level: str = "info"

    @property
    def retention_day_offsets(self) -> list[int]:
        return _parse_day_offsets(self.retention_days)

    @property
    def revenue_day_offsets(self) -> list[int]:
        return _parse_day_offsets(self.revenue_days)

    @property
    def ltv_curve_day_offsets(self) -> list[int]:
        return _parse_day_offsets(self.ltv_curve_days)

    @property
    def funnel_ratio_overrides(self) -> dict[str, float]:
        return _parse_ratio_overrides(self.funnel_fallback_ratios)

settings = Settings()
