"""Pairwise association between diary metrics.

Pearson correlation over date-aligned numeric series, and a categorical
pseudo-correlation for "label present" vs "outcome happened" questions
(e.g. evening mood vs crisis on the same day).
"""

from __future__ import annotations

import datetime as dt
import math
import statistics
from typing import Mapping

from painlog.core.config.settings import AnalyticsConfig
from painlog.domains.diary.domain_logic.models import (
    CorrelationResult,
    MetricSeries,
    Significance,
)


class CorrelationEngine:
    """Computes CorrelationResults; pure functions of their inputs.

    Usage::

        engine = CorrelationEngine(config)
        result = engine.correlate(sleep.shifted(1), pain)
    """

    def __init__(self, config: AnalyticsConfig) -> None:
        self._config = config

    def correlate(self, series_a: MetricSeries, series_b: MetricSeries) -> CorrelationResult:
        """Pearson's r over values sharing a date (inner join on date)."""
        b_values = series_b.as_mapping()
        pairs = [(va, b_values[day]) for day, va in series_a.points if day in b_values]
        n = len(pairs)

        if n < self._config.min_paired_samples:
            return CorrelationResult(
                variable_a=series_a.name,
                variable_b=series_b.name,
                coefficient=0.0,
                significance=Significance.LOW,
                sample_size=n,
                insufficient_data=True,
            )

        coefficient = pearson([a for a, _ in pairs], [b for _, b in pairs])
        return CorrelationResult(
            variable_a=series_a.name,
            variable_b=series_b.name,
            coefficient=coefficient,
            significance=self.significance(coefficient),
            sample_size=n,
        )

    def correlate_categorical_with_boolean(
        self,
        category_label: str,
        category_days: Mapping[dt.date, str],
        outcome_days: Mapping[dt.date, bool],
        *,
        outcome_name: str = "crisis",
    ) -> CorrelationResult:
        """Outcome rate on days carrying ``category_label``, mapped to a pseudo-r.

        Args:
            category_label: The label under test (e.g. an evening mood).
            category_days: Label observed per date.
            outcome_days: Whether the outcome happened per date; dates missing
                here count as "no outcome".
            outcome_name: Name of the outcome variable in the result.
        """
        matching = [day for day, label in category_days.items() if label == category_label]
        n = len(matching)
        variable_a = f"mood:{category_label}"

        if n < self._config.categorical_min_occurrences:
            return CorrelationResult(
                variable_a=variable_a,
                variable_b=outcome_name,
                coefficient=0.0,
                significance=Significance.LOW,
                sample_size=n,
                insufficient_data=True,
                method="categorical",
            )

        rate = sum(1 for day in matching if outcome_days.get(day, False)) / n
        cfg = self._config
        if rate > cfg.categorical_high_rate:
            coefficient, significance = cfg.categorical_high_coefficient, Significance.HIGH
        elif rate > cfg.categorical_medium_rate:
            coefficient, significance = cfg.categorical_medium_coefficient, Significance.MEDIUM
        else:
            coefficient, significance = cfg.categorical_low_coefficient, Significance.LOW

        return CorrelationResult(
            variable_a=variable_a,
            variable_b=outcome_name,
            coefficient=coefficient,
            significance=significance,
            sample_size=n,
            method="categorical",
        )

    def significance(self, coefficient: float) -> Significance:
        magnitude = abs(coefficient)
        if magnitude > self._config.high_significance_cutoff:
            return Significance.HIGH
        if magnitude > self._config.medium_significance_cutoff:
            return Significance.MEDIUM
        return Significance.LOW


def pearson(xs: list[float], ys: list[float]) -> float:
    """Pearson's r; 0.0 when either side has no variance."""
    n = len(xs)
    if n == 0 or n != len(ys):
        return 0.0
    mean_x = statistics.fmean(xs)
    mean_y = statistics.fmean(ys)
    # Centered sums keep the result symmetric in (xs, ys) bit for bit.
    sxy = sum((x - mean_x) * (y - mean_y) for x, y in zip(xs, ys))
    sxx = sum((x - mean_x) ** 2 for x in xs)
    syy = sum((y - mean_y) ** 2 for y in ys)
    denominator = math.sqrt(sxx * syy)
    if denominator == 0:
        return 0.0
    return max(-1.0, min(1.0, sxy / denominator))
