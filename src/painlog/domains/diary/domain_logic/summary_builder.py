"""Report orchestration: normalize, analyse, score, aggregate, summarize.

SmartSummaryBuilder is created per report request with explicitly injected
engines and configuration. It is the single place where analyzer failures
are turned into default results, so one failing stage never removes another
stage's contribution from the report.
"""

from __future__ import annotations

import asyncio
import logging
import statistics
from typing import Any, Callable, Iterable, TypeVar

from painlog.core.config.settings import AnalyticsConfig
from painlog.core.lexicon.loader import Lexicon
from painlog.core.textinsight.models import TextAnalysis, TextBatchResult, TextItem
from painlog.core.textinsight.service import TextInsightService
from painlog.domains.diary.domain_logic.correlation_engine import CorrelationEngine
from painlog.domains.diary.domain_logic.insight_aggregator import (
    InsightAggregator,
    metric_label,
    rank_key,
    sentence_case,
)
from painlog.domains.diary.domain_logic.models import (
    AVAILABLE,
    UNAVAILABLE,
    AggregatedInsights,
    AnalysisReport,
    CorrelationResult,
    Insight,
    NormalizedWindow,
    RiskAssessment,
    RiskTier,
    Significance,
    SmartSummary,
    StageOutcome,
    StageStatus,
    TrendDirection,
    TrendResult,
)
from painlog.domains.diary.domain_logic.pattern_miner import WEEKDAYS, PatternMiner
from painlog.domains.diary.domain_logic.record_normalizer import RecordNormalizer
from painlog.domains.diary.domain_logic.rescue_medication import RescueMedicationAnalyzer
from painlog.domains.diary.domain_logic.risk_scorer import RiskScorer
from painlog.domains.diary.domain_logic.text_insights import insights_from_text
from painlog.domains.diary.domain_logic.trend_analyzer import TrendAnalyzer

logger = logging.getLogger(__name__)

T = TypeVar("T")

TREND_METRICS = ("pain", "sleepQuality", "fatigue", "crisisIntensity")
# Numeric pairs correlated on shared dates: (metric, metric, shift of second in days).
CORRELATION_PAIRS = (
    ("sleepQuality", "pain", 1),
    ("pain", "fatigue", 0),
    ("sleepQuality", "fatigue", 0),
)


class SmartSummaryBuilder:
    """Builds the AnalysisReport for one user and period.

    Usage::

        builder = SmartSummaryBuilder.create(config, lexicon, text_service=service)
        report = await builder.build(raw_payloads, period={"start": ..., "end": ...})
    """

    def __init__(
        self,
        config: AnalyticsConfig,
        *,
        normalizer: RecordNormalizer,
        correlation_engine: CorrelationEngine,
        trend_analyzer: TrendAnalyzer,
        pattern_miner: PatternMiner,
        risk_scorer: RiskScorer,
        insight_aggregator: InsightAggregator,
        text_service: TextInsightService | None = None,
        medication_analyzer: RescueMedicationAnalyzer | None = None,
        parallel: bool = False,
    ) -> None:
        self._config = config
        self._normalizer = normalizer
        self._correlations = correlation_engine
        self._trends = trend_analyzer
        self._patterns = pattern_miner
        self._risk = risk_scorer
        self._aggregator = insight_aggregator
        self._text_service = text_service
        self._medications = medication_analyzer
        self._parallel = parallel

    @classmethod
    def create(
        cls,
        config: AnalyticsConfig,
        lexicon: Lexicon | None = None,
        *,
        text_service: TextInsightService | None = None,
        parallel: bool = False,
    ) -> SmartSummaryBuilder:
        """Wire the default engines for one report run."""
        return cls(
            config,
            normalizer=RecordNormalizer(lexicon, tz=config.tzinfo()),
            correlation_engine=CorrelationEngine(config),
            trend_analyzer=TrendAnalyzer(config),
            pattern_miner=PatternMiner(config),
            risk_scorer=RiskScorer(config),
            insight_aggregator=InsightAggregator(config),
            text_service=text_service,
            medication_analyzer=RescueMedicationAnalyzer(lexicon) if lexicon else None,
            parallel=parallel,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def build(
        self,
        payloads: Iterable[dict[str, Any]],
        *,
        period: dict[str, str | None] | None = None,
        upstream_aggregates: dict[str, Any] | None = None,
    ) -> AnalysisReport:
        """Run the whole pipeline over an immutable snapshot of raw payloads.

        Never raises for bad data: fewer than ``min_records`` usable days
        produce an explicit insufficient-data report. Cancellation of the
        calling task propagates and aborts the external text call.
        """
        period = dict(period or {})
        upstream = dict(upstream_aggregates or {})
        window = self._normalizer.normalize(list(payloads))

        if len(window.records) < self._config.min_records:
            logger.info(
                "Insufficient data for report: %d usable day(s), %d required",
                len(window.records),
                self._config.min_records,
            )
            return self._insufficient_report(window, period, upstream)

        text_items = self.text_items(window)
        text_task: asyncio.Task[TextBatchResult] | None = None
        if self._text_service is not None and text_items:
            text_task = asyncio.create_task(self._text_service.analyze(text_items))

        try:
            outcomes: list[StageOutcome] = []
            (correlations, c_out), (trends, t_out), (patterns, p_out) = await asyncio.gather(
                self._stage("correlations", self.compute_correlations, window, default=[]),
                self._stage("trends", self.compute_trends, window, default=[]),
                self._stage("patterns", self._patterns.mine, window, default=[]),
            )
            outcomes += [c_out, t_out, p_out]

            crisis_count, avg_intensity, frequency = crisis_statistics(window)
            signals = [c.significance for c in correlations if not c.insufficient_data]
            risk, r_out = await self._stage(
                "risk",
                lambda: self._risk.score_risk(
                    frequency,
                    avg_intensity,
                    signals,
                    crisis_count=crisis_count,
                    sleep_series=window.metric("sleepQuality"),
                    pain_series=window.metric("pain"),
                ),
                default=RiskAssessment(tier=RiskTier.LOW),
            )
            outcomes.append(r_out)

            text_result, text_insights, x_out = await self._text_branch(text_task)
        finally:
            if text_task is not None and not text_task.done():
                text_task.cancel()
        outcomes.append(x_out)

        aggregated, a_out = await self._stage(
            "insights",
            lambda: self._aggregator.aggregate(
                correlations, trends, patterns, risk.factors, text_insights
            ),
            default=AggregatedInsights(),
        )
        outcomes.append(a_out)

        summary = self.summarize(window, correlations, trends, risk, aggregated)
        return AnalysisReport(
            period=period,
            aggregates=self.aggregates(window, upstream, crisis_count, avg_intensity, frequency),
            correlation_results=tuple(correlations),
            trend_results=tuple(trends),
            pattern_results=tuple(patterns),
            risk_factors=risk.factors,
            smart_summary=summary,
            chart_series=self.chart_series(window, correlations, text_result.analyses),
            data_availability=self.data_availability(window, text_items),
            stage_outcomes=tuple(outcomes),
            normalization_warnings=window.warnings,
            text_analysis_source=text_result.source,
        )

    # ------------------------------------------------------------------
    # Analyses
    # ------------------------------------------------------------------

    def compute_correlations(self, window: NormalizedWindow) -> list[CorrelationResult]:
        results = []
        for name_a, name_b, shift in CORRELATION_PAIRS:
            series_b = window.metric(name_b)
            if shift:
                # Value of day d+shift is moved onto day d.
                series_b = series_b.shifted(-shift, name="nextDayPain" if name_b == "pain" else None)
            results.append(self._correlations.correlate(window.metric(name_a), series_b))

        moods = {r.date: r.evening_mood for r in window.records if r.evening_mood}
        crisis_days = {r.date: r.has_crisis for r in window.records}
        for label in dict.fromkeys(moods.values()):
            results.append(
                self._correlations.correlate_categorical_with_boolean(label, moods, crisis_days)
            )
        return results

    def compute_trends(self, window: NormalizedWindow) -> list[TrendResult]:
        return [self._trends.analyze_trend(window.metric(name)) for name in TREND_METRICS]

    def text_items(self, window: NormalizedWindow) -> list[TextItem]:
        items = []
        for record in window.records:
            for entry in record.entries:
                notes = entry.notes
                if notes and len(notes.strip()) >= self._config.text_min_length:
                    items.append(TextItem(text=notes.strip(), date=record.date.isoformat()))
        return items

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    def summarize(
        self,
        window: NormalizedWindow,
        correlations: list[CorrelationResult],
        trends: list[TrendResult],
        risk: RiskAssessment,
        aggregated: AggregatedInsights,
    ) -> SmartSummary:
        cfg = self._config
        ranked = sorted(aggregated.insights, key=rank_key)
        key_findings = tuple(
            i.text for i in ranked if i.confidence >= cfg.key_finding_min_confidence
        )[: cfg.max_key_findings]

        groups = aggregated.groups
        concerning = len(groups.critical) + len(groups.warning)
        if len(groups.positive) > concerning:
            outlook = "positive"
        elif concerning > len(groups.positive):
            outlook = "negative"
        else:
            outlook = "neutral"

        usable = [t for t in trends if not t.insufficient_data]
        progress = {
            "improving": tuple(t.metric_name for t in usable if t.direction is TrendDirection.IMPROVING),
            "worsening": tuple(t.metric_name for t in usable if t.direction is TrendDirection.WORSENING),
            "stable": tuple(t.metric_name for t in usable if t.direction is TrendDirection.STABLE),
        }

        return SmartSummary(
            executive_summary=self.executive_summary(window, correlations, trends, risk),
            key_findings=key_findings,
            insight_groups=groups,
            recommendations=aggregated.recommendations,
            predictive_alerts=aggregated.predictive_alerts,
            risk_assessment=risk,
            insufficient_data=False,
            overall_outlook=outlook,
            progress_indicators=progress,
        )

    def executive_summary(
        self,
        window: NormalizedWindow,
        correlations: list[CorrelationResult],
        trends: list[TrendResult],
        risk: RiskAssessment,
    ) -> str:
        crisis_count = len(window.crises)
        text = (
            f"Over {len(window.records)} days of diary entries, "
            f"{crisis_count} crisis episode(s) were recorded"
        )
        if any(c.intensity is not None for c in window.crises):
            text += f" with an average intensity of {crisis_statistics(window)[1]:.1f}/10"
        text += "."

        top_correlation = _first_max(
            (c for c in correlations
             if not c.insufficient_data and c.significance is not Significance.LOW),
            key=lambda c: abs(c.coefficient),
        )
        top_trend = _first_max(
            (t for t in trends if not t.insufficient_data and t.direction is not TrendDirection.STABLE),
            key=lambda t: (t.confidence, abs(t.slope)),
        )
        if top_correlation is not None:
            text += (
                f" The strongest association links {metric_label(top_correlation.variable_a)} "
                f"and {metric_label(top_correlation.variable_b)} "
                f"({top_correlation.significance.value}, coefficient {top_correlation.coefficient:+.2f})."
            )
        if top_trend is not None:
            word = "improving" if top_trend.direction is TrendDirection.IMPROVING else "worsening"
            text += (
                f" {sentence_case(metric_label(top_trend.metric_name))} is {word} "
                f"({top_trend.weekly_change:+.1f} points per week)."
            )
        if top_correlation is None and top_trend is None:
            text += " No statistically meaningful associations or trends were found in this period."
        text += f" Overall risk: {risk.tier.name}."
        return text

    # ------------------------------------------------------------------
    # Renderer payload
    # ------------------------------------------------------------------

    def aggregates(
        self,
        window: NormalizedWindow,
        upstream: dict[str, Any],
        crisis_count: int,
        avg_intensity: float,
        frequency: float,
    ) -> dict[str, Any]:
        pain = window.metric("pain").values
        locations = window.label_counts.get("locations", {})
        triggers = window.label_counts.get("triggers", {})
        rescue = self._medications.analyze_crises(window.crises) if self._medications else []
        return {
            "upstream": upstream,
            "total_days": len(window.records),
            "crisis_episodes": crisis_count,
            "average_pain": round(statistics.fmean(pain), 1) if pain else None,
            "average_crisis_intensity": round(avg_intensity, 1) if crisis_count else None,
            "crisis_frequency_per_week": round(frequency, 2),
            "pain_points": [
                {"location": k, "count": v}
                for k, v in sorted(locations.items(), key=lambda kv: -kv[1])
            ],
            "triggers": [
                {"trigger": k, "count": v}
                for k, v in sorted(triggers.items(), key=lambda kv: -kv[1])
            ],
            "pain_evolution": [
                {"date": d.isoformat(), "pain": round(v, 1)} for d, v in window.metric("pain").points
            ],
            "rescue_medications": rescue,
            "metric_statistics": {name: self._trends.describe(window.metric(name)) for name in TREND_METRICS},
            "skipped_entries": window.skipped_entries,
        }

    def chart_series(
        self,
        window: NormalizedWindow,
        correlations: list[CorrelationResult],
        analyses: Iterable[TextAnalysis] = (),
    ) -> dict[str, Any]:
        """Date-aligned arrays (``None`` where a day has no value)."""
        days = [r.date for r in window.records]
        charts: dict[str, Any] = {"dates": [d.isoformat() for d in days]}
        for name in TREND_METRICS:
            values = window.metric(name).as_mapping()
            charts[name] = [_round(values.get(d)) for d in days]
        charts["crisis_days"] = [r.has_crisis for r in window.records]

        sentiment: dict[str, list[float]] = {}
        urgency: dict[str, float] = {}
        entities: dict[str, int] = {}
        for analysis in analyses:
            sign = {"POSITIVE": 1.0, "NEGATIVE": -1.0}.get(analysis.sentiment_label, 0.0)
            sentiment.setdefault(analysis.date, []).append(sign * analysis.sentiment_score)
            urgency[analysis.date] = max(urgency.get(analysis.date, 0.0), analysis.urgency)
            for entity in analysis.entities:
                entities[entity.entity] = entities.get(entity.entity, 0) + 1
        iso_days = charts["dates"]
        charts["sentiment"] = [
            _round(statistics.fmean(sentiment[d])) if d in sentiment else None for d in iso_days
        ]
        charts["urgency"] = [_round(urgency.get(d)) for d in iso_days]
        charts["entity_cloud"] = [
            {"entity": k, "count": v} for k, v in sorted(entities.items(), key=lambda kv: -kv[1])
        ]
        charts["correlation_matrix"] = [
            {
                "a": c.variable_a,
                "b": c.variable_b,
                "coefficient": round(c.coefficient, 3),
                "significance": c.significance.value,
                "sample_size": c.sample_size,
            }
            for c in correlations
            if c.method == "pearson"
        ]
        charts["weekday_profile"] = self.weekday_profile(window)
        return charts

    def weekday_profile(self, window: NormalizedWindow) -> list[dict[str, Any]]:
        cfg = self._config
        pain = window.metric("pain").as_mapping()
        sleep = window.metric("sleepQuality").as_mapping()
        buckets: dict[int, list] = {}
        for record in window.records:
            buckets.setdefault(record.date.weekday(), []).append(record)

        profile = []
        for weekday in sorted(buckets):
            records = buckets[weekday]
            pains = [pain[r.date] for r in records if r.date in pain]
            sleeps = [sleep[r.date] for r in records if r.date in sleep]
            crises = sum(len(r.crises) for r in records)
            avg_pain = statistics.fmean(pains) if pains else None
            avg_sleep = statistics.fmean(sleeps) if sleeps else None
            profile.append({
                "weekday": WEEKDAYS[weekday],
                "days": len(records),
                "average_pain": _round(avg_pain),
                "average_sleep_quality": _round(avg_sleep),
                "crises": crises,
                "risk_level": weekday_risk_level(cfg, avg_sleep, avg_pain),
            })
        return profile

    def data_availability(
        self, window: NormalizedWindow, text_items: list[TextItem]
    ) -> dict[str, str]:
        availability = {
            name: AVAILABLE if window.metric(name).available else UNAVAILABLE
            for name in TREND_METRICS
        }
        has_mood = any(r.evening_mood for r in window.records)
        availability["mood"] = AVAILABLE if has_mood else UNAVAILABLE
        availability["free_text"] = AVAILABLE if text_items else UNAVAILABLE
        return availability

    def data_quality(self, payloads: Iterable[dict[str, Any]]) -> dict[str, Any]:
        """Pre-flight check: is there enough usable data, and what is missing."""
        window = self._normalizer.normalize(list(payloads))
        text_items = self.text_items(window)
        availability = self.data_availability(window, text_items)
        usable = len(window.records)

        warnings = []
        if usable < self._config.min_records:
            warnings.append(
                f"Only {usable} usable day(s); at least {self._config.min_records} "
                "are needed for a complete analysis"
            )
        if window.skipped_entries:
            warnings.append(f"{window.skipped_entries} entries could not be read and were skipped")

        suggestions = []
        if not text_items:
            suggestions.append("Add free-text notes to your entries to enable text insights")
        for name, state in availability.items():
            if state == UNAVAILABLE and name != "free_text":
                suggestions.append(f"No {metric_label(name)} answers recorded; related analyses are unavailable")

        return {
            "usable_days": usable,
            "skipped_entries": window.skipped_entries,
            "sufficient": usable >= self._config.min_records,
            "warnings": warnings,
            "suggestions": suggestions,
            "normalization_warnings": window.warnings,
            "data_availability": availability,
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _stage(
        self, name: str, fn: Callable[..., T], *args: Any, default: T
    ) -> tuple[T, StageOutcome]:
        """Run one analysis; any failure yields ``default`` and an ERROR outcome."""
        try:
            if self._parallel:
                value = await asyncio.to_thread(fn, *args)
            else:
                value = fn(*args)
        except Exception as exc:
            logger.exception("Analysis stage %s failed; using default result", name)
            return default, StageOutcome(stage=name, status=StageStatus.ERROR, error=str(exc))

        if isinstance(value, list) and value and all(
            getattr(v, "insufficient_data", False) for v in value
        ):
            return value, StageOutcome(stage=name, status=StageStatus.INSUFFICIENT_DATA)
        return value, StageOutcome(stage=name, status=StageStatus.OK)

    async def _text_branch(
        self, task: asyncio.Task[TextBatchResult] | None
    ) -> tuple[TextBatchResult, list[Insight], StageOutcome]:
        if task is None:
            return TextBatchResult(), [], StageOutcome(stage="text", status=StageStatus.INSUFFICIENT_DATA)
        try:
            result = await task
            insights = insights_from_text(result.analyses, self._config)
        except Exception as exc:
            logger.exception("Text insight branch failed; continuing without text insights")
            return (
                TextBatchResult(errors=(str(exc),)),
                [],
                StageOutcome(stage="text", status=StageStatus.ERROR, error=str(exc)),
            )
        if result.errors:
            return result, insights, StageOutcome(
                stage="text", status=StageStatus.ERROR, error="; ".join(result.errors)
            )
        return result, insights, StageOutcome(stage="text", status=StageStatus.OK)

    def _insufficient_report(
        self, window: NormalizedWindow, period: dict[str, str | None], upstream: dict[str, Any]
    ) -> AnalysisReport:
        cfg = self._config
        summary = SmartSummary(
            executive_summary=(
                f"Insufficient data: {len(window.records)} diary day(s) recorded, "
                f"at least {cfg.min_records} are needed for analysis."
            ),
            risk_assessment=RiskAssessment(tier=RiskTier.LOW),
            insufficient_data=True,
        )
        crisis_count, avg_intensity, frequency = crisis_statistics(window)
        return AnalysisReport(
            period=period,
            aggregates=self.aggregates(window, upstream, crisis_count, avg_intensity, frequency),
            correlation_results=(),
            trend_results=(),
            pattern_results=(),
            risk_factors=(),
            smart_summary=summary,
            chart_series=self.chart_series(window, []),
            data_availability=self.data_availability(window, self.text_items(window)),
            stage_outcomes=(StageOutcome(stage="analysis", status=StageStatus.INSUFFICIENT_DATA),),
            normalization_warnings=window.warnings,
        )


def weekday_risk_level(
    cfg: AnalyticsConfig, avg_sleep: float | None, avg_pain: float | None
) -> str:
    """High when sleep is poor and pain is high together; medium when either leans bad."""
    poor_sleep = avg_sleep is not None and avg_sleep <= cfg.poor_sleep_cutoff
    high_pain = avg_pain is not None and avg_pain >= cfg.high_pain_cutoff
    if poor_sleep and high_pain:
        return "high"
    if (avg_sleep is not None and avg_sleep <= cfg.medium_sleep_cutoff) or (
        avg_pain is not None and avg_pain >= cfg.medium_pain_cutoff
    ):
        return "medium"
    return "low"


def crisis_statistics(window: NormalizedWindow) -> tuple[int, float, float]:
    """(crisis count, mean intensity, crises per week over the window span)."""
    crises = window.crises
    intensities = [c.intensity for c in crises if c.intensity is not None]
    avg_intensity = statistics.fmean(intensities) if intensities else 0.0
    if not window.records:
        return len(crises), avg_intensity, 0.0
    span_days = (window.records[-1].date - window.records[0].date).days + 1
    return len(crises), avg_intensity, len(crises) / span_days * 7


def _first_max(items: Iterable[T], key: Callable[[T], Any]) -> T | None:
    best: T | None = None
    for item in items:
        if best is None or key(item) > key(best):
            best = item
    return best


def _round(value: float | None) -> float | None:
    return None if value is None else round(value, 2)
