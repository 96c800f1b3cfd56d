"""Turns per-note text analyses into batch-level Insights."""

from __future__ import annotations

from collections import Counter
from typing import Iterable

from painlog.core.config.settings import AnalyticsConfig
from painlog.core.textinsight.models import TextAnalysis
from painlog.domains.diary.domain_logic.models import Impact, Insight, InsightType


def insights_from_text(analyses: Iterable[TextAnalysis], config: AnalyticsConfig) -> list[Insight]:
    analyses = list(analyses)
    if not analyses:
        return []

    total = len(analyses)
    insights: list[Insight] = []

    positive = sum(1 for a in analyses if a.sentiment_label == "POSITIVE")
    positive_ratio = positive / total
    if positive_ratio > config.text_positive_ratio_high:
        insights.append(Insight(
            type=InsightType.PATTERN,
            confidence=0.8,
            impact=Impact.MEDIUM,
            text=f"Predominantly positive notes ({positive_ratio:.0%} of {total})",
            evidence=(f"{positive} positive notes",),
            topic="sentiment",
            source="text",
        ))
    elif positive_ratio < config.text_positive_ratio_low:
        negative = sum(1 for a in analyses if a.sentiment_label == "NEGATIVE")
        insights.append(Insight(
            type=InsightType.PATTERN,
            confidence=0.8,
            impact=Impact.HIGH,
            text=f"Notes are predominantly negative or neutral ({negative} of {total} negative)",
            evidence=(f"{positive} positive notes",),
            actionable=True,
            topic="sentiment",
            source="text",
        ))

    urgent = [a for a in analyses if a.urgency > config.text_urgency_cutoff]
    if urgent:
        insights.append(Insight(
            type=InsightType.ANOMALY,
            confidence=0.9,
            impact=Impact.HIGH,
            text=f"{len(urgent)} note(s) describe high-urgency situations",
            evidence=tuple(dict.fromkeys(a.date for a in urgent)),
            actionable=True,
            topic="urgency",
            source="text",
        ))

    mean_relevance = sum(a.clinical_relevance for a in analyses) / total
    if mean_relevance > config.text_clinical_relevance_cutoff:
        insights.append(Insight(
            type=InsightType.PATTERN,
            confidence=0.7,
            impact=Impact.MEDIUM,
            text=f"Notes carry high clinical relevance (mean {mean_relevance:.1f}/10)",
            topic="clinical",
            source="text",
        ))

    mentions = Counter(e.entity for a in analyses for e in a.entities)
    recurring = [e for e, n in mentions.items() if n >= config.text_recurring_entity_min]
    if recurring:
        insights.append(Insight(
            type=InsightType.PATTERN,
            confidence=0.7,
            impact=Impact.MEDIUM,
            text=f"Recurring themes in notes: {', '.join(recurring[:5])}",
            evidence=tuple(f"{e}: {mentions[e]} mentions" for e in recurring[:5]),
            topic="themes",
            source="text",
        ))
    return insights
