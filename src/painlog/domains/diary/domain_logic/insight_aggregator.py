"""Merges analytic results and text-derived insights into a ranked insight set.

Steps: convert results that clear their thresholds into Insights, merge the
externally supplied ones, deduplicate, categorize, rank, then derive
recommendations and predictive alerts.
"""

from __future__ import annotations

import logging
from typing import Iterable

from painlog.core.config.settings import AnalyticsConfig
from painlog.domains.diary.domain_logic.models import (
    AggregatedInsights,
    CorrelationResult,
    Impact,
    Insight,
    InsightCategory,
    InsightGroups,
    InsightType,
    PatternKind,
    PatternResult,
    PredictiveAlert,
    RiskFactor,
    Significance,
    TrendDirection,
    TrendResult,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Display labels and advice templates
# ---------------------------------------------------------------------------

METRIC_LABELS = {
    "pain": "pain",
    "nextDayPain": "next-day pain",
    "sleepQuality": "sleep quality",
    "fatigue": "fatigue",
    "crisisIntensity": "crisis intensity",
    "crisis": "crisis occurrence",
}

PATTERN_TOPICS = {
    PatternKind.TEMPORAL_HOUR: "temporal",
    PatternKind.TEMPORAL_WEEKDAY: "temporal",
    PatternKind.TRIGGER: "trigger",
    PatternKind.TRIGGER_SYMPTOM: "trigger",
    PatternKind.MOOD_SEQUENCE: "mood",
    PatternKind.SYMPTOM_CLUSTER: "symptom",
    PatternKind.MEDICATION_RESPONSE: "medication",
}

ACTIONABLE_PATTERNS = {
    PatternKind.TEMPORAL_HOUR,
    PatternKind.TEMPORAL_WEEKDAY,
    PatternKind.TRIGGER,
    PatternKind.TRIGGER_SYMPTOM,
    PatternKind.MOOD_SEQUENCE,
}

# (insight type, topic) -> advice; (type, None) is the fallback for a type.
ADVICE_TEMPLATES: dict[tuple[InsightType, str | None], str] = {
    (InsightType.CORRELATION, "mood"): (
        "Practice emotional-management techniques: your mood is linked to your crises"
    ),
    (InsightType.CORRELATION, "sleep"): (
        "Improve your sleep hygiene: sleep quality is linked to your pain levels"
    ),
    (InsightType.CORRELATION, None): (
        "Keep tracking the linked factors and review them with your care team"
    ),
    (InsightType.TREND, None): "Talk to your medical team about the worsening trend",
    (InsightType.PATTERN, "temporal"): (
        "Plan preventive measures ahead of the times when crises usually start"
    ),
    (InsightType.PATTERN, "trigger"): "Identify and avoid the triggers that precede your crises",
    (InsightType.PATTERN, "mood"): "Watch for the mood sequences that tend to precede a crisis",
    (InsightType.PATTERN, None): "Share the recurring patterns in your diary with your care team",
    (InsightType.ANOMALY, None): "Seek medical evaluation for the high-urgency episodes you described",
    (InsightType.PREDICTION, None): "Review the flagged risk factors with your care team",
}

COMPREHENSIVE_REVIEW_ADVICE = "Schedule a comprehensive review of your treatment plan"
PATTERN_GUIDANCE_ADVICE = "Use the detected patterns to plan your self-care routine"

_IMPACT_RANK = {Impact.HIGH: 2, Impact.MEDIUM: 1, Impact.LOW: 0}


def metric_label(variable: str) -> str:
    if variable.startswith("mood:"):
        return f"evening mood '{variable[5:]}'"
    return METRIC_LABELS.get(variable, variable)


def sentence_case(text: str) -> str:
    """Upper-case the first character only (labels keep their own casing)."""
    return text[:1].upper() + text[1:]


class InsightAggregator:
    """Single place that decides which results become insights and how they rank.

    Usage::

        aggregator = InsightAggregator(config)
        aggregated = aggregator.aggregate(correlations, trends, patterns, factors, text_insights)
    """

    def __init__(self, config: AnalyticsConfig) -> None:
        self._config = config

    def aggregate(
        self,
        correlations: Iterable[CorrelationResult] = (),
        trends: Iterable[TrendResult] = (),
        patterns: Iterable[PatternResult] = (),
        risk_factors: Iterable[RiskFactor] = (),
        external_insights: Iterable[Insight] = (),
    ) -> AggregatedInsights:
        correlations = list(correlations)
        patterns = list(patterns)
        risk_factors = list(risk_factors)

        converted: list[Insight] = []
        converted.extend(i for i in map(self.from_correlation, correlations) if i)
        converted.extend(i for i in map(self.from_trend, trends) if i)
        converted.extend(i for i in map(self.from_pattern, patterns) if i)
        converted.extend(i for i in map(self.from_risk_factor, risk_factors) if i)
        converted.extend(external_insights)

        insights = deduplicate(converted)
        groups = self.categorize(insights)
        ranked = groups.all()
        return AggregatedInsights(
            insights=ranked,
            groups=groups,
            recommendations=self.recommendations(ranked, risk_factors),
            predictive_alerts=self.predictive_alerts(patterns, correlations),
        )

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def from_correlation(self, result: CorrelationResult) -> Insight | None:
        if result.insufficient_data or result.significance is Significance.LOW:
            return None
        names = (result.variable_a, result.variable_b)
        if any(n.startswith("mood:") for n in names):
            topic = "mood"
        elif any("sleep" in n.lower() for n in names):
            topic = "sleep"
        else:
            topic = None

        label_a, label_b = metric_label(result.variable_a), metric_label(result.variable_b)
        if result.method == "categorical":
            text = (
                f"{sentence_case(label_a)} is associated with {label_b} "
                f"({result.significance.value} association)"
            )
        else:
            relation = "rise together" if result.coefficient > 0 else "move in opposite directions"
            text = (
                f"{sentence_case(label_a)} and {label_b} {relation} "
                f"(r = {result.coefficient:+.2f}, {result.significance.value})"
            )
        high = result.significance is Significance.HIGH
        return Insight(
            type=InsightType.CORRELATION,
            confidence=abs(result.coefficient),
            impact=Impact.HIGH if high else Impact.MEDIUM,
            text=text,
            evidence=(f"{result.sample_size} paired observations",),
            actionable=high,
            topic=topic,
        )

    def from_trend(self, result: TrendResult) -> Insight | None:
        if result.insufficient_data or result.confidence < self._config.insight_trend_min_confidence:
            return None
        label = sentence_case(metric_label(result.metric_name))
        if result.direction is TrendDirection.IMPROVING:
            text = f"{label} shows improvement ({result.weekly_change:+.1f} points per week)"
            impact = Impact.MEDIUM
        elif result.direction is TrendDirection.WORSENING:
            text = f"{label} is getting worse ({result.weekly_change:+.1f} points per week)"
            impact = Impact.HIGH
        else:
            text = f"{label} has remained stable"
            impact = Impact.LOW
        return Insight(
            type=InsightType.TREND,
            confidence=result.confidence,
            impact=impact,
            text=text,
            evidence=(f"{result.sample_size} data points",),
            actionable=result.direction is TrendDirection.WORSENING,
            topic=result.metric_name,
        )

    def from_pattern(self, result: PatternResult) -> Insight | None:
        cfg = self._config
        if (
            result.strength <= cfg.insight_pattern_min_strength
            or result.frequency < cfg.insight_pattern_min_frequency
        ):
            return None
        return Insight(
            type=InsightType.PATTERN,
            confidence=result.strength,
            impact=Impact.HIGH if result.strength > cfg.insight_pattern_high_strength else Impact.MEDIUM,
            text=result.description,
            evidence=result.supporting_examples,
            actionable=result.kind in ACTIONABLE_PATTERNS,
            topic=PATTERN_TOPICS.get(result.kind),
        )

    def from_risk_factor(self, factor: RiskFactor) -> Insight | None:
        if factor.impact is Impact.LOW:
            return None
        cfg = self._config
        confidence = (
            cfg.risk_factor_confidence_high
            if factor.impact is Impact.HIGH
            else cfg.risk_factor_confidence_medium
        )
        return Insight(
            type=InsightType.PREDICTION,
            confidence=confidence,
            impact=factor.impact,
            text=factor.factor_name,
            evidence=(f"observed {factor.frequency} time(s)",),
            actionable=True,
            topic="sleep" if "sleep" in factor.factor_name.lower() else "risk",
        )

    # ------------------------------------------------------------------
    # Categorization
    # ------------------------------------------------------------------

    def category(self, insight: Insight) -> InsightCategory:
        """Exclusive category, checked in CRITICAL > WARNING > POSITIVE order."""
        if insight.impact is Impact.HIGH and (
            insight.type is InsightType.ANOMALY
            or insight.confidence > self._config.critical_confidence_cutoff
        ):
            return InsightCategory.CRITICAL
        if insight.impact is Impact.HIGH and insight.actionable:
            return InsightCategory.WARNING
        text = insight.text.casefold()
        if any(word in text for word in self._config.positive_vocabulary):
            return InsightCategory.POSITIVE
        return InsightCategory.NEUTRAL

    def categorize(self, insights: Iterable[Insight]) -> InsightGroups:
        buckets: dict[InsightCategory, list[Insight]] = {c: [] for c in InsightCategory}
        for insight in insights:
            buckets[self.category(insight)].append(insight)
        ranked = {c: tuple(sorted(items, key=lambda i: -i.confidence)) for c, items in buckets.items()}
        return InsightGroups(
            critical=ranked[InsightCategory.CRITICAL],
            warning=ranked[InsightCategory.WARNING],
            positive=ranked[InsightCategory.POSITIVE],
            neutral=ranked[InsightCategory.NEUTRAL],
        )

    # ------------------------------------------------------------------
    # Recommendations and alerts
    # ------------------------------------------------------------------

    def recommendations(
        self, insights: Iterable[Insight], risk_factors: Iterable[RiskFactor] = ()
    ) -> tuple[str, ...]:
        insights = list(insights)
        advice: list[str] = []
        for insight in insights:
            if not insight.actionable:
                continue
            template = ADVICE_TEMPLATES.get((insight.type, insight.topic)) or ADVICE_TEMPLATES.get(
                (insight.type, None)
            )
            if template:
                advice.append(template)
        advice.extend(f.recommendation for f in risk_factors if f.impact is not Impact.LOW)

        high_impact = sum(1 for i in insights if i.impact is Impact.HIGH)
        if high_impact > self._config.comprehensive_review_high_impact_count:
            advice.append(COMPREHENSIVE_REVIEW_ADVICE)
        pattern_count = sum(1 for i in insights if i.type is InsightType.PATTERN)
        if pattern_count > self._config.pattern_guidance_count:
            advice.append(PATTERN_GUIDANCE_ADVICE)
        return tuple(dict.fromkeys(advice))

    def predictive_alerts(
        self,
        patterns: Iterable[PatternResult],
        correlations: Iterable[CorrelationResult] = (),
    ) -> tuple[PredictiveAlert, ...]:
        cfg = self._config
        alerts: list[PredictiveAlert] = []
        for pattern in patterns:
            if pattern.strength <= cfg.predictive_alert_min_strength:
                continue
            if pattern.kind is PatternKind.MOOD_SEQUENCE:
                first, second = pattern.subject
                alerts.append(PredictiveAlert(
                    kind="crisis",
                    description=f"Crisis risk after evenings '{first}' then '{second}'",
                    probability=pattern.strength,
                    urgency=(
                        Impact.HIGH
                        if pattern.strength > cfg.insight_pattern_high_strength
                        else Impact.MEDIUM
                    ),
                    recommendation="Use your preventive strategies as soon as this mood sequence appears",
                    timeframe="next 24 hours",
                ))
            elif pattern.kind in (PatternKind.TEMPORAL_HOUR, PatternKind.TEMPORAL_WEEKDAY):
                when = pattern.subject[0]
                alerts.append(PredictiveAlert(
                    kind="temporal",
                    description=f"Higher crisis risk around {when}",
                    probability=pattern.strength,
                    urgency=Impact.MEDIUM,
                    recommendation=f"Plan preventive measures ahead of {when}",
                    timeframe=when,
                ))

        for result in correlations:
            if (
                result.method == "categorical"
                and result.significance is Significance.HIGH
                and result.coefficient > cfg.predictive_alert_min_coefficient
            ):
                alerts.append(PredictiveAlert(
                    kind="behavioral",
                    description=f"{sentence_case(metric_label(result.variable_a))} signals elevated crisis risk",
                    probability=result.coefficient,
                    urgency=Impact.MEDIUM,
                    recommendation="Use emotional-regulation techniques when this mood appears",
                    timeframe="same day",
                ))
        return tuple(alerts)


def deduplicate(insights: Iterable[Insight]) -> list[Insight]:
    """Collapse insights with the same type and text, keeping the most confident."""
    kept: dict[tuple[InsightType, str], Insight] = {}
    for insight in insights:
        key = (insight.type, " ".join(insight.text.casefold().split()))
        current = kept.get(key)
        if current is None or insight.confidence > current.confidence:
            kept[key] = insight
    return list(kept.values())


def rank_key(insight: Insight) -> tuple[int, float]:
    """Sort key for key findings: impact first, then confidence (descending)."""
    return (-_IMPACT_RANK[insight.impact], -insight.confidence)
