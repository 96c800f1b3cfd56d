"""Tests for InsightAggregator — conversion, categorization, advice and alerts."""

from __future__ import annotations

from painlog.domains.diary.domain_logic.insight_aggregator import (
    COMPREHENSIVE_REVIEW_ADVICE,
    InsightAggregator,
    deduplicate,
    rank_key,
)
from painlog.domains.diary.domain_logic.models import (
    CorrelationResult,
    Impact,
    Insight,
    InsightCategory,
    InsightType,
    PatternKind,
    PatternResult,
    RiskFactor,
    Significance,
    TrendDirection,
    TrendResult,
)


def _correlation(coefficient: float, significance: Significance, **kwargs) -> CorrelationResult:
    defaults = dict(variable_a="sleepQuality", variable_b="nextDayPain", sample_size=10)
    defaults.update(kwargs)
    return CorrelationResult(coefficient=coefficient, significance=significance, **defaults)


def _trend(direction: TrendDirection, confidence: float = 0.5, **kwargs) -> TrendResult:
    defaults = dict(metric_name="pain", slope=0.5, weekly_change=3.5, sample_size=15)
    defaults.update(kwargs)
    return TrendResult(direction=direction, confidence=confidence, **defaults)


def _pattern(kind: PatternKind, strength: float, frequency: int = 4, subject=("x",)) -> PatternResult:
    return PatternResult(
        kind=kind,
        description=f"{kind.value} pattern",
        frequency=frequency,
        strength=strength,
        subject=subject,
    )


class TestConversion:
    def test_low_or_insufficient_correlations_are_dropped(self, config):
        aggregator = InsightAggregator(config)
        assert aggregator.from_correlation(_correlation(0.2, Significance.LOW)) is None
        insufficient = _correlation(0.0, Significance.LOW, insufficient_data=True)
        assert aggregator.from_correlation(insufficient) is None

    def test_high_correlation(self, config):
        insight = InsightAggregator(config).from_correlation(_correlation(-0.85, Significance.HIGH))
        assert insight.type is InsightType.CORRELATION
        assert insight.impact is Impact.HIGH
        assert insight.confidence == 0.85
        assert insight.actionable
        assert insight.topic == "sleep"
        assert "move in opposite directions" in insight.text

    def test_categorical_mood_correlation(self, config):
        result = _correlation(
            0.8, Significance.HIGH, variable_a="mood:Ansioso", variable_b="crisis", method="categorical"
        )
        insight = InsightAggregator(config).from_correlation(result)
        assert insight.topic == "mood"
        assert "Ansioso" in insight.text

    def test_trends(self, config):
        aggregator = InsightAggregator(config)
        worse = aggregator.from_trend(_trend(TrendDirection.WORSENING))
        assert worse.impact is Impact.HIGH and worse.actionable
        assert "getting worse" in worse.text
        better = aggregator.from_trend(_trend(TrendDirection.IMPROVING, slope=-0.5, weekly_change=-3.5))
        assert "shows improvement" in better.text
        assert aggregator.from_trend(_trend(TrendDirection.STABLE, confidence=0.1)) is None
        assert aggregator.from_trend(_trend(TrendDirection.STABLE, insufficient_data=True)) is None

    def test_pattern_thresholds(self, config):
        aggregator = InsightAggregator(config)
        assert aggregator.from_pattern(_pattern(PatternKind.TRIGGER, 0.5)) is None
        assert aggregator.from_pattern(_pattern(PatternKind.TRIGGER, 0.9, frequency=2)) is None
        insight = aggregator.from_pattern(_pattern(PatternKind.TRIGGER, 0.8))
        assert insight.impact is Impact.HIGH
        assert insight.topic == "trigger"
        assert insight.actionable

    def test_risk_factor_becomes_prediction(self, config):
        factor = RiskFactor("Sleep quality consistently low", Impact.HIGH, 5, "Establish a sleep hygiene routine")
        insight = InsightAggregator(config).from_risk_factor(factor)
        assert insight.type is InsightType.PREDICTION
        assert insight.confidence == config.risk_factor_confidence_high
        assert insight.topic == "sleep"


class TestCategorization:
    def test_critical(self, config):
        aggregator = InsightAggregator(config)
        anomaly = Insight(InsightType.ANOMALY, 0.5, Impact.HIGH, "Severe episode")
        confident = Insight(InsightType.CORRELATION, 0.85, Impact.HIGH, "Strong link")
        assert aggregator.category(anomaly) is InsightCategory.CRITICAL
        assert aggregator.category(confident) is InsightCategory.CRITICAL

    def test_warning(self, config):
        insight = Insight(InsightType.TREND, 0.5, Impact.HIGH, "Pain is getting worse", actionable=True)
        assert InsightAggregator(config).category(insight) is InsightCategory.WARNING

    def test_positive_vocabulary(self, config):
        insight = Insight(InsightType.TREND, 0.5, Impact.MEDIUM, "Pain shows improvement")
        assert InsightAggregator(config).category(insight) is InsightCategory.POSITIVE

    def test_categories_are_exclusive(self, config):
        # High-impact, confident and worded positively: CRITICAL wins
        insight = Insight(InsightType.TREND, 0.9, Impact.HIGH, "Sleep improved sharply", actionable=True)
        groups = InsightAggregator(config).categorize([insight])
        assert groups.critical == (insight,)
        assert groups.positive == ()
        assert groups.warning == ()

    def test_sorted_by_confidence_within_group(self, config):
        insights = [
            Insight(InsightType.PATTERN, 0.3, Impact.LOW, "a"),
            Insight(InsightType.PATTERN, 0.7, Impact.LOW, "b"),
            Insight(InsightType.PATTERN, 0.5, Impact.LOW, "c"),
        ]
        groups = InsightAggregator(config).categorize(insights)
        assert [i.text for i in groups.neutral] == ["b", "c", "a"]


class TestAggregate:
    def test_external_insights_survive(self, config):
        external = Insight(InsightType.ANOMALY, 0.9, Impact.HIGH, "2 note(s) describe high-urgency situations", actionable=True, source="text")
        result = InsightAggregator(config).aggregate(external_insights=[external])
        assert result.insights == (external,)
        assert result.groups.critical == (external,)
        assert "Seek medical evaluation for the high-urgency episodes you described" in result.recommendations

    def test_deduplicates_by_type_and_text(self):
        weak = Insight(InsightType.PATTERN, 0.4, Impact.MEDIUM, "Recurring  themes")
        strong = Insight(InsightType.PATTERN, 0.8, Impact.MEDIUM, "recurring themes")
        other_type = Insight(InsightType.TREND, 0.5, Impact.MEDIUM, "recurring themes")
        assert deduplicate([weak, strong, other_type]) == [strong, other_type]

    def test_recommendations_from_templates_and_factors(self, config):
        correlations = [
            _correlation(-0.85, Significance.HIGH),
            _correlation(0.8, Significance.HIGH, variable_a="mood:Ansioso", variable_b="crisis", method="categorical"),
        ]
        trends = [_trend(TrendDirection.WORSENING)]
        factors = [RiskFactor("Frequent crisis episodes", Impact.HIGH, 6, "Discuss a crisis prevention plan with your care team")]
        result = InsightAggregator(config).aggregate(correlations, trends, [], factors)
        recs = result.recommendations
        assert "Improve your sleep hygiene: sleep quality is linked to your pain levels" in recs
        assert "Practice emotional-management techniques: your mood is linked to your crises" in recs
        assert "Talk to your medical team about the worsening trend" in recs
        assert "Discuss a crisis prevention plan with your care team" in recs
        assert COMPREHENSIVE_REVIEW_ADVICE in recs
        assert len(recs) == len(set(recs))

    def test_predictive_alerts(self, config):
        patterns = [
            _pattern(PatternKind.MOOD_SEQUENCE, 0.8, subject=("Triste", "Ansioso")),
            _pattern(PatternKind.TEMPORAL_HOUR, 0.65, subject=("14:00",)),
            _pattern(PatternKind.TRIGGER, 0.9),
            _pattern(PatternKind.TEMPORAL_WEEKDAY, 0.5, subject=("Monday",)),
        ]
        categorical = _correlation(0.8, Significance.HIGH, variable_a="mood:Ansioso", variable_b="crisis", method="categorical")
        alerts = InsightAggregator(config).predictive_alerts(patterns, [categorical])
        assert [a.kind for a in alerts] == ["crisis", "temporal", "behavioral"]
        assert alerts[0].urgency is Impact.HIGH
        assert alerts[0].probability == 0.8
        assert alerts[1].timeframe == "14:00"


class TestRankKey:
    def test_impact_then_confidence(self):
        insights = [
            Insight(InsightType.PATTERN, 0.9, Impact.MEDIUM, "a"),
            Insight(InsightType.PATTERN, 0.6, Impact.HIGH, "b"),
            Insight(InsightType.PATTERN, 0.8, Impact.HIGH, "c"),
        ]
        assert [i.text for i in sorted(insights, key=rank_key)] == ["c", "b", "a"]
