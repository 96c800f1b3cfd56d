"""Request/response models for the free-text understanding service."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class TextItem:
    """One free-text note submitted for analysis."""

    text: str
    date: str  # ISO date of the diary entry

    def to_dict(self) -> dict[str, str]:
        return {"text": self.text, "date": self.date}


@dataclass(frozen=True)
class TextEntity:
    """Entity extracted from a note (symptom, body part, medication...)."""

    entity: str
    type: str
    confidence: float = 0.7


@dataclass(frozen=True)
class TextAnalysis:
    """Per-item analysis returned by the text service (or the local fallback)."""

    date: str
    sentiment_label: str  # POSITIVE | NEGATIVE | NEUTRAL
    sentiment_score: float
    urgency: float  # 0-10
    clinical_relevance: float  # 0-10
    entities: tuple[TextEntity, ...] = ()
    source: str = "remote"

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, date: str, source: str = "remote") -> TextAnalysis:
        """Parse one item of the service response.

        Raises:
            ValueError: if a required field is missing or not numeric.
        """
        sentiment = data.get("sentiment") or {}
        label = str(sentiment.get("label", data.get("sentiment_label", ""))).upper()
        if label not in ("POSITIVE", "NEGATIVE", "NEUTRAL"):
            raise ValueError(f"Unknown sentiment label: {label!r}")
        score = float(sentiment.get("score", data.get("sentiment_score", 0.5)))
        urgency = float(data["urgency"])
        relevance = float(data.get("clinical_relevance", 0.0))
        entities = tuple(
            TextEntity(
                entity=str(e.get("entity", "")),
                type=str(e.get("type", "")),
                confidence=float(e.get("confidence", 0.7)),
            )
            for e in data.get("entities", [])
            if isinstance(e, dict) and e.get("entity")
        )
        return cls(
            date=str(data.get("date", date)),
            sentiment_label=label,
            sentiment_score=_clamp(score, 0.0, 1.0),
            urgency=_clamp(urgency, 0.0, 10.0),
            clinical_relevance=_clamp(relevance, 0.0, 10.0),
            entities=entities,
            source=source,
        )


@dataclass(frozen=True)
class TextBatchResult:
    """Outcome of analysing a batch of notes.

    ``source`` is ``remote`` when every item came from the service, ``mixed`` when
    some items were filled in locally, ``fallback`` when the whole batch was
    analysed locally and ``none`` when no analysis was possible.
    """

    analyses: tuple[TextAnalysis, ...] = ()
    source: str = "none"
    errors: tuple[str, ...] = field(default_factory=tuple)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))
