"""Diary analytics value objects, enums and serialization helpers.

Every object here is immutable and computed fresh per report run from an
immutable input snapshot; nothing is persisted by the engine.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Union

# Marker used wherever a metric has no source observations in the window.
UNAVAILABLE = "unavailable"
AVAILABLE = "available"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class QuizKind(str, Enum):
    MORNING = "morning"
    EVENING = "evening"
    EMERGENCY = "emergency"


class Significance(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class Impact(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class TrendDirection(str, Enum):
    IMPROVING = "IMPROVING"
    WORSENING = "WORSENING"
    STABLE = "STABLE"


class InsightType(str, Enum):
    PATTERN = "PATTERN"
    TREND = "TREND"
    CORRELATION = "CORRELATION"
    ANOMALY = "ANOMALY"
    PREDICTION = "PREDICTION"


class InsightCategory(str, Enum):
    CRITICAL = "CRITICAL"
    WARNING = "WARNING"
    POSITIVE = "POSITIVE"
    NEUTRAL = "NEUTRAL"


class RiskTier(IntEnum):
    """Totally ordered risk severity (LOW < MEDIUM < HIGH < CRITICAL)."""

    LOW = 0
    MEDIUM = 1
    HIGH = 2
    CRITICAL = 3


class PatternKind(str, Enum):
    TEMPORAL_HOUR = "temporal_hour"
    TEMPORAL_WEEKDAY = "temporal_weekday"
    TRIGGER = "trigger"
    TRIGGER_SYMPTOM = "trigger_symptom"
    MOOD_SEQUENCE = "mood_sequence"
    SYMPTOM_CLUSTER = "symptom_cluster"
    MEDICATION_RESPONSE = "medication_response"


class StageStatus(str, Enum):
    OK = "ok"
    INSUFFICIENT_DATA = "insufficient_data"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Normalized input
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MorningEntry:
    timestamp: dt.datetime | None = None
    pain: float | None = None
    sleep_quality: float | None = None
    fatigue: float | None = None
    locations: tuple[str, ...] = ()
    notes: str | None = None
    kind: QuizKind = field(default=QuizKind.MORNING, init=False)


@dataclass(frozen=True)
class EveningEntry:
    timestamp: dt.datetime | None = None
    pain: float | None = None
    sleep_quality: float | None = None
    fatigue: float | None = None
    mood: str | None = None
    symptoms: tuple[str, ...] = ()
    locations: tuple[str, ...] = ()
    notes: str | None = None
    kind: QuizKind = field(default=QuizKind.EVENING, init=False)


@dataclass(frozen=True)
class EmergencyEntry:
    timestamp: dt.datetime | None = None
    intensity: float | None = None
    locations: tuple[str, ...] = ()
    triggers: tuple[str, ...] = ()
    symptoms: tuple[str, ...] = ()
    medication_response: str | None = None
    rescue_medication: str | None = None
    notes: str | None = None
    kind: QuizKind = field(default=QuizKind.EMERGENCY, init=False)


QuizEntry = Union[MorningEntry, EveningEntry, EmergencyEntry]


@dataclass(frozen=True)
class DailyRecord:
    """All questionnaire entries of one calendar date."""

    date: dt.date
    entries: tuple[QuizEntry, ...] = ()

    @property
    def crises(self) -> tuple[EmergencyEntry, ...]:
        return tuple(e for e in self.entries if isinstance(e, EmergencyEntry))

    @property
    def has_crisis(self) -> bool:
        return any(isinstance(e, EmergencyEntry) for e in self.entries)

    @property
    def evening_mood(self) -> str | None:
        """Mood label of the last evening entry that reported one."""
        moods = [e.mood for e in self.entries if isinstance(e, EveningEntry) and e.mood]
        return moods[-1] if moods else None


@dataclass(frozen=True)
class MetricSeries:
    """Chronologically ordered ``(date, value)`` pairs for one metric."""

    name: str
    points: tuple[tuple[dt.date, float], ...] = ()

    @property
    def available(self) -> bool:
        return bool(self.points)

    @property
    def dates(self) -> list[dt.date]:
        return [d for d, _ in self.points]

    @property
    def values(self) -> list[float]:
        return [v for _, v in self.points]

    def as_mapping(self) -> dict[dt.date, float]:
        return dict(self.points)

    def shifted(self, days: int, name: str | None = None) -> MetricSeries:
        """Move every point ``days`` calendar days (negative = earlier)."""
        delta = dt.timedelta(days=days)
        return MetricSeries(
            name=name or self.name,
            points=tuple((d + delta, v) for d, v in self.points),
        )


@dataclass(frozen=True)
class CrisisEvent:
    date: dt.date
    timestamp: dt.datetime | None
    intensity: float | None
    locations: tuple[str, ...] = ()
    triggers: tuple[str, ...] = ()
    symptoms: tuple[str, ...] = ()
    medication_response: str | None = None
    rescue_medication: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class NormalizationWarning:
    date: str | None
    kind: str | None
    reason: str


@dataclass(frozen=True)
class NormalizedWindow:
    """Output of RecordNormalizer for one report window."""

    records: tuple[DailyRecord, ...] = ()
    series: dict[str, MetricSeries] = field(default_factory=dict)
    crises: tuple[CrisisEvent, ...] = ()
    label_counts: dict[str, dict[str, int]] = field(default_factory=dict)
    warnings: tuple[NormalizationWarning, ...] = ()
    skipped_entries: int = 0

    def metric(self, name: str) -> MetricSeries:
        return self.series.get(name, MetricSeries(name=name))


# ---------------------------------------------------------------------------
# Analysis results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CorrelationResult:
    variable_a: str
    variable_b: str
    coefficient: float
    significance: Significance
    sample_size: int
    insufficient_data: bool = False
    method: str = "pearson"


@dataclass(frozen=True)
class TrendResult:
    metric_name: str
    slope: float
    direction: TrendDirection
    confidence: float
    weekly_change: float
    sample_size: int = 0
    insufficient_data: bool = False


@dataclass(frozen=True)
class PatternResult:
    kind: PatternKind
    description: str
    frequency: int
    strength: float
    supporting_examples: tuple[str, ...] = ()
    subject: tuple[str, ...] = ()
    significance: Significance | None = None


@dataclass(frozen=True)
class RiskFactor:
    factor_name: str
    impact: Impact
    frequency: int
    recommendation: str


@dataclass(frozen=True)
class RiskAssessment:
    tier: RiskTier
    contributing_factors: tuple[str, ...] = ()
    score: float = 0.0
    factors: tuple[RiskFactor, ...] = ()
    crisis_frequency: float = 0.0
    avg_intensity: float = 0.0


@dataclass(frozen=True)
class Insight:
    type: InsightType
    confidence: float
    impact: Impact
    text: str
    evidence: tuple[str, ...] = ()
    actionable: bool = False
    topic: str | None = None
    source: str = "analytics"


@dataclass(frozen=True)
class InsightGroups:
    critical: tuple[Insight, ...] = ()
    warning: tuple[Insight, ...] = ()
    positive: tuple[Insight, ...] = ()
    neutral: tuple[Insight, ...] = ()

    def all(self) -> tuple[Insight, ...]:
        return self.critical + self.warning + self.positive + self.neutral


@dataclass(frozen=True)
class PredictiveAlert:
    kind: str
    description: str
    probability: float
    urgency: Impact
    recommendation: str
    timeframe: str


@dataclass(frozen=True)
class AggregatedInsights:
    """InsightAggregator output consumed by the summary builder."""

    insights: tuple[Insight, ...] = ()
    groups: InsightGroups = field(default_factory=InsightGroups)
    recommendations: tuple[str, ...] = ()
    predictive_alerts: tuple[PredictiveAlert, ...] = ()


@dataclass(frozen=True)
class SmartSummary:
    executive_summary: str
    key_findings: tuple[str, ...] = ()
    insight_groups: InsightGroups = field(default_factory=InsightGroups)
    recommendations: tuple[str, ...] = ()
    predictive_alerts: tuple[PredictiveAlert, ...] = ()
    risk_assessment: RiskAssessment = field(
        default_factory=lambda: RiskAssessment(tier=RiskTier.LOW)
    )
    insufficient_data: bool = False
    overall_outlook: str = "neutral"
    progress_indicators: dict[str, tuple[str, ...]] = field(default_factory=dict)


@dataclass(frozen=True)
class StageOutcome:
    stage: str
    status: StageStatus
    error: str | None = None


@dataclass(frozen=True)
class AnalysisReport:
    """Fully resolved structure handed to the document renderer."""

    period: dict[str, str | None]
    aggregates: dict[str, Any]
    correlation_results: tuple[CorrelationResult, ...]
    trend_results: tuple[TrendResult, ...]
    pattern_results: tuple[PatternResult, ...]
    risk_factors: tuple[RiskFactor, ...]
    smart_summary: SmartSummary
    chart_series: dict[str, Any]
    data_availability: dict[str, str]
    stage_outcomes: tuple[StageOutcome, ...] = ()
    normalization_warnings: tuple[NormalizationWarning, ...] = ()
    text_analysis_source: str = "none"

    def to_dict(self) -> dict[str, Any]:
        return to_serializable(self)


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def to_serializable(value: Any) -> Any:
    """Convert value objects into JSON-compatible structures (field order kept)."""
    if isinstance(value, RiskTier):
        return value.name
    if isinstance(value, Enum):
        return value.value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_serializable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, (dt.date, dt.datetime)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(to_serializable(k)): to_serializable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_serializable(v) for v in value]
    if isinstance(value, float):
        return round(value, 4)
    return value
