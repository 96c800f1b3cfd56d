"""Composite risk scoring from crisis frequency, intensity and association signals."""

from __future__ import annotations

import datetime as dt
import logging
from typing import Iterable

from painlog.core.config.settings import AnalyticsConfig
from painlog.domains.diary.domain_logic.models import (
    Impact,
    MetricSeries,
    RiskAssessment,
    RiskFactor,
    RiskTier,
    Significance,
)

logger = logging.getLogger(__name__)


class RiskScorer:
    """Maps crisis statistics and correlation signals onto an ordered risk tier.

    Every condition of the ladder is non-decreasing in crisis frequency and
    average intensity, so raising either never lowers the tier.
    """

    def __init__(self, config: AnalyticsConfig) -> None:
        self._config = config

    def score_risk(
        self,
        crisis_frequency: float,
        avg_intensity: float,
        correlation_signals: Iterable[Significance | Impact],
        *,
        crisis_count: int = 0,
        sleep_series: MetricSeries | None = None,
        pain_series: MetricSeries | None = None,
    ) -> RiskAssessment:
        """Compute the risk assessment.

        Args:
            crisis_frequency: Crisis episodes per week over the window.
            avg_intensity: Mean crisis intensity (0-10).
            correlation_signals: Significance/impact of each usable association.
            crisis_count: Number of crises, reported as factor frequency.
            sleep_series: Optional sleep-quality series for sleep factors.
            pain_series: Optional pain series paired with next-day sleep.
        """
        cfg = self._config
        levels = [s.value for s in correlation_signals]
        high = levels.count("HIGH")
        medium_plus = high + levels.count("MEDIUM")

        if high >= 1 and (
            avg_intensity >= cfg.risk_critical_intensity
            or crisis_frequency > cfg.risk_high_frequency_per_week
        ):
            tier = RiskTier.CRITICAL
        elif (
            medium_plus >= 2
            or avg_intensity >= cfg.risk_high_intensity
            or crisis_frequency > cfg.risk_high_frequency_per_week
        ):
            tier = RiskTier.HIGH
        elif (
            medium_plus >= 1
            or avg_intensity >= cfg.risk_medium_intensity
            or crisis_frequency > cfg.risk_medium_frequency_per_week
        ):
            tier = RiskTier.MEDIUM
        else:
            tier = RiskTier.LOW

        factors = self._crisis_factors(crisis_frequency, avg_intensity, crisis_count)
        if sleep_series is not None:
            factors.extend(self.sleep_factors(sleep_series, pain_series))

        contributing = [f.factor_name for f in factors]
        if high:
            contributing.append(f"{high} strong association(s) between tracked factors")
        logger.debug("Risk tier %s from %d factor(s)", tier.name, len(factors))

        return RiskAssessment(
            tier=tier,
            contributing_factors=tuple(contributing),
            score=self._numeric_score(crisis_frequency, avg_intensity, high, medium_plus - high),
            factors=tuple(factors),
            crisis_frequency=crisis_frequency,
            avg_intensity=avg_intensity,
        )

    def sleep_factors(
        self, sleep: MetricSeries, pain: MetricSeries | None = None
    ) -> list[RiskFactor]:
        """Sleep-related risk factors (low sleep quality, poor sleep before pain)."""
        cfg = self._config
        values = sleep.values
        if not values:
            return []

        factors: list[RiskFactor] = []
        poor_days = [day for day, value in sleep.points if value <= cfg.poor_sleep_cutoff]
        poor_rate = len(poor_days) / len(values)
        if poor_rate > cfg.poor_sleep_rate_threshold:
            factors.append(RiskFactor(
                factor_name="Sleep quality consistently low",
                impact=Impact.HIGH if poor_rate > cfg.poor_sleep_rate_high else Impact.MEDIUM,
                frequency=len(poor_days),
                recommendation="Establish a sleep hygiene routine",
            ))

        if pain is not None:
            pain_by_day = pain.as_mapping()
            next_day = dt.timedelta(days=1)
            followed = sum(
                1 for day in poor_days
                if pain_by_day.get(day + next_day, -1.0) >= cfg.high_pain_cutoff
            )
            if followed:
                factors.append(RiskFactor(
                    factor_name="Poor sleep followed by high next-day pain",
                    impact=Impact.HIGH if followed > 2 else Impact.MEDIUM,
                    frequency=followed,
                    recommendation="Prioritize quality sleep to prevent crises",
                ))
        return factors

    def _crisis_factors(
        self, crisis_frequency: float, avg_intensity: float, crisis_count: int
    ) -> list[RiskFactor]:
        cfg = self._config
        factors: list[RiskFactor] = []
        if crisis_frequency > cfg.risk_medium_frequency_per_week:
            factors.append(RiskFactor(
                factor_name="Frequent crisis episodes",
                impact=(
                    Impact.HIGH
                    if crisis_frequency > cfg.risk_high_frequency_per_week
                    else Impact.MEDIUM
                ),
                frequency=crisis_count,
                recommendation="Discuss a crisis prevention plan with your care team",
            ))
        if avg_intensity >= cfg.risk_high_intensity:
            factors.append(RiskFactor(
                factor_name="High average crisis intensity",
                impact=(
                    Impact.HIGH
                    if avg_intensity >= cfg.risk_critical_intensity
                    else Impact.MEDIUM
                ),
                frequency=crisis_count,
                recommendation="Review your rescue medication plan with your doctor",
            ))
        return factors

    def _numeric_score(
        self, crisis_frequency: float, avg_intensity: float, high: int, medium: int
    ) -> float:
        """0-10 score: intensity up to 4, frequency up to 3, signals up to 3."""
        cfg = self._config
        intensity_part = 4.0 * max(0.0, min(avg_intensity, 10.0)) / 10.0
        frequency_part = 3.0 * min(1.0, max(0.0, crisis_frequency) / cfg.risk_high_frequency_per_week)
        signal_part = min(3.0, 1.5 * high + 0.75 * medium)
        return round(intensity_part + frequency_part + signal_part, 2)
