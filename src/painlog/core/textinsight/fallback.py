"""Rule-based text analysis used when the text service is unavailable."""

from __future__ import annotations

from painlog.core.lexicon.loader import Lexicon
from painlog.core.textinsight.models import TextAnalysis, TextEntity, TextItem

_URGENCY_WEIGHTS = {"critical": 3.0, "high": 2.0, "medium": 1.0, "low": -1.0}
_RELEVANCE_WEIGHTS = {"high": 2.0, "medium": 1.0, "low": -0.5}
_MAX_ENTITIES = 5


class LocalTextAnalyzer:
    """Keyword-driven sentiment, urgency, relevance and entity extraction."""

    def __init__(self, lexicon: Lexicon) -> None:
        self._lexicon = lexicon

    def analyze(self, item: TextItem) -> TextAnalysis:
        text = item.text.lower()
        label, score = self._sentiment(text)
        return TextAnalysis(
            date=item.date,
            sentiment_label=label,
            sentiment_score=score,
            urgency=_weighted_score(text, self._lexicon.urgency, _URGENCY_WEIGHTS),
            clinical_relevance=_weighted_score(
                text, self._lexicon.clinical_relevance, _RELEVANCE_WEIGHTS
            ),
            entities=self._entities(text),
            source="local",
        )

    def analyze_batch(self, items: list[TextItem]) -> list[TextAnalysis]:
        return [self.analyze(item) for item in items]

    def _sentiment(self, text: str) -> tuple[str, float]:
        positive = sum(1 for word in self._lexicon.positive_words if word in text)
        negative = sum(1 for word in self._lexicon.negative_words if word in text)
        if positive > negative:
            return "POSITIVE", min(0.9, 0.6 + positive * 0.1)
        if negative > positive:
            return "NEGATIVE", min(0.9, 0.6 + negative * 0.1)
        return "NEUTRAL", 0.5

    def _entities(self, text: str) -> tuple[TextEntity, ...]:
        found: list[TextEntity] = []
        seen: set[tuple[str, str]] = set()
        for entity_type, words in self._lexicon.entities.items():
            for word in words:
                if word in text and (word, entity_type) not in seen:
                    seen.add((word, entity_type))
                    found.append(TextEntity(entity=word, type=entity_type))
        return tuple(found[:_MAX_ENTITIES])


def _weighted_score(
    text: str, groups: dict[str, tuple[str, ...]], weights: dict[str, float]
) -> float:
    score = 0.0
    for level, words in groups.items():
        weight = weights.get(level, 0.0)
        score += weight * sum(1 for word in words if word in text)
    return max(0.0, min(10.0, score))
