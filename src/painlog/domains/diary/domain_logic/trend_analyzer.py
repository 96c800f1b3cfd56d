"""Linear trend detection over diary metric series.

Fits an ordinary least-squares line over chronological index (not calendar
gap, so irregular logging does not distort the slope) and classifies the
direction using the configured polarity of each metric.
"""

from __future__ import annotations

import logging
import statistics
from typing import Any

from painlog.core.config.settings import AnalyticsConfig
from painlog.domains.diary.domain_logic.models import (
    MetricSeries,
    TrendDirection,
    TrendResult,
)

logger = logging.getLogger(__name__)


class TrendAnalyzer:
    """Computes trends and descriptive statistics for metric series.

    Usage::

        analyzer = TrendAnalyzer(config)
        trend = analyzer.analyze_trend(window.metric("pain"))
    """

    def __init__(self, config: AnalyticsConfig) -> None:
        self._config = config

    def analyze_trend(self, series: MetricSeries) -> TrendResult:
        """Classify the trend of a single metric.

        ``slope`` and ``weekly_change`` are reported in the metric's own units
        (a rising sleep-quality score has a positive slope); ``direction`` is
        classified on the polarity-adjusted slope, so rising sleep quality is
        IMPROVING while rising pain is WORSENING.

        Returns:
            TrendResult; STABLE with zero slope and confidence when the series
            has fewer than ``trend_min_points`` points.
        """
        values = series.values
        n = len(values)
        if n < self._config.trend_min_points:
            return TrendResult(
                metric_name=series.name,
                slope=0.0,
                direction=TrendDirection.STABLE,
                confidence=0.0,
                weekly_change=0.0,
                sample_size=n,
                insufficient_data=True,
            )

        slope = ols_slope(values)
        oriented = slope * self._config.polarity(series.name)
        threshold = self._config.trend_slope_threshold
        if oriented > threshold:
            direction = TrendDirection.WORSENING
        elif oriented < -threshold:
            direction = TrendDirection.IMPROVING
        else:
            direction = TrendDirection.STABLE

        return TrendResult(
            metric_name=series.name,
            slope=slope,
            direction=direction,
            confidence=self.confidence(n),
            weekly_change=slope * 7,
            sample_size=n,
        )

    def confidence(self, sample_size: int) -> float:
        """Non-decreasing in sample size, capped."""
        cfg = self._config
        return min(cfg.trend_confidence_cap, sample_size / cfg.trend_confidence_saturation)

    def describe(self, series: MetricSeries) -> dict[str, Any]:
        """Descriptive statistics for the report (mean, median, spread).

        Returns:
            Dict with: metric, data_points, and either status "unavailable" or
            current, mean, median, min, max, std_dev, volatility.
        """
        values = series.values
        if not values:
            return {"metric": series.name, "data_points": 0, "status": "unavailable"}

        mean_val = statistics.fmean(values)
        std_val = statistics.stdev(values) if len(values) > 1 else 0.0
        volatility = std_val / mean_val if mean_val > 0 else 0.0
        return {
            "metric": series.name,
            "data_points": len(values),
            "current": round(values[-1], 2),
            "mean": round(mean_val, 2),
            "median": round(statistics.median(values), 2),
            "min": round(min(values), 2),
            "max": round(max(values), 2),
            "std_dev": round(std_val, 2),
            "volatility": round(volatility, 4),
        }


def ols_slope(values: list[float]) -> float:
    """Least-squares slope of ``values`` against their index 0..n-1."""
    if len(values) < 2:
        return 0.0
    return statistics.linear_regression(range(len(values)), values).slope
