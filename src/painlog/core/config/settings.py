"""Application settings and analytics thresholds loaded from environment variables."""

from __future__ import annotations

import datetime as dt
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """PainLog Insights server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Server
    # Loopback by default: diary data is personal health data and there is no auth layer.
    painlog_host: str = "127.0.0.1"
    painlog_port: int = 8011
    painlog_log_level: str = "info"
    painlog_allow_insecure_bind: bool = False

    # Free-text understanding service (MCP). Empty URL -> local rule-based analysis only.
    text_service_url: str = ""
    text_service_timeout_s: float = 20.0
    text_fallback_enabled: bool = True

    # Lexicon
    lexicon_locale: str = "pt_BR"
    lexicon_path: str = ""

    # Diary data (JSON export produced by the diary data store)
    diary_export_path: str = ""


class AnalyticsConfig(BaseSettings):
    """Every threshold used by the analytics engine.

    Instances are passed explicitly to each engine; tests override fields by
    keyword, deployments through ``PAINLOG_ANALYTICS_*`` environment variables.
    """

    model_config = {
        "env_prefix": "PAINLOG_ANALYTICS_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "frozen": True,
    }

    # Correlation
    min_paired_samples: int = 3
    high_significance_cutoff: float = 0.6
    medium_significance_cutoff: float = 0.3
    categorical_min_occurrences: int = 3
    categorical_high_rate: float = 0.6
    categorical_medium_rate: float = 0.3
    categorical_high_coefficient: float = 0.8
    categorical_medium_coefficient: float = 0.5
    categorical_low_coefficient: float = 0.2

    # Trend
    trend_min_points: int = 3
    trend_slope_threshold: float = 0.2
    trend_confidence_cap: float = 0.9
    trend_confidence_saturation: int = 30
    # +1: higher value is worse (rising = WORSENING); -1: higher value is better.
    metric_polarity: dict[str, int] = Field(
        default_factory=lambda: {
            "pain": 1,
            "fatigue": 1,
            "crisisIntensity": 1,
            "sleepQuality": -1,
        }
    )

    # Patterns
    pattern_min_frequency: int = 2
    trigger_support_threshold: float = 0.4
    sequence_crisis_rate_threshold: float = 0.4

    # Risk ladder
    risk_critical_intensity: float = 8.0
    risk_high_intensity: float = 6.0
    risk_medium_intensity: float = 4.0
    risk_high_frequency_per_week: float = 4.0
    risk_medium_frequency_per_week: float = 2.0
    poor_sleep_cutoff: float = 3.0
    high_pain_cutoff: float = 7.0
    medium_sleep_cutoff: float = 4.0
    medium_pain_cutoff: float = 6.0
    poor_sleep_rate_threshold: float = 0.3
    poor_sleep_rate_high: float = 0.6
    risk_factor_confidence_high: float = 0.85
    risk_factor_confidence_medium: float = 0.65

    # Insight aggregation
    insight_pattern_min_strength: float = 0.5
    insight_pattern_min_frequency: int = 3
    insight_pattern_high_strength: float = 0.7
    insight_trend_min_confidence: float = 0.2
    critical_confidence_cutoff: float = 0.8
    predictive_alert_min_strength: float = 0.6
    predictive_alert_min_coefficient: float = 0.7
    key_finding_min_confidence: float = 0.6
    max_key_findings: int = 5
    comprehensive_review_high_impact_count: int = 2
    pattern_guidance_count: int = 3
    positive_vocabulary: tuple[str, ...] = (
        "improv",
        "better",
        "positive",
        "reduc",
        "decreas",
        "relief",
    )

    # Text insights
    text_min_length: int = 5
    text_positive_ratio_high: float = 0.7
    text_positive_ratio_low: float = 0.3
    text_urgency_cutoff: float = 7.0
    text_clinical_relevance_cutoff: float = 7.0
    text_recurring_entity_min: int = 2

    # Summary
    min_records: int = 3

    # IANA zone of the diary's user. Exported epoch timestamps and offset-aware
    # timestamps are converted to it before hour-of-day bucketing.
    diary_timezone: str = "UTC"

    @field_validator("diary_timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        if value.upper() != "UTC":
            try:
                ZoneInfo(value)
            except (ZoneInfoNotFoundError, ValueError):
                raise ValueError(f"Unknown time zone: {value!r}") from None
        return value

    def polarity(self, metric: str) -> int:
        """Polarity sign for ``metric`` (unknown metrics count as higher-is-worse)."""
        return self.metric_polarity.get(metric, 1)

    def tzinfo(self) -> dt.tzinfo:
        if self.diary_timezone.upper() == "UTC":
            return dt.timezone.utc
        return ZoneInfo(self.diary_timezone)


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()


def get_analytics_config(**overrides) -> AnalyticsConfig:
    """Create an AnalyticsConfig, applying keyword overrides on top of the environment."""
    return AnalyticsConfig(**overrides)
