"""Lexicon loader — reads localized keyword vocabularies from YAML."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

# Shipped lexicons live under src/painlog/domains/diary/lexicons/
LEXICON_DIR = Path(__file__).resolve().parent.parent.parent / "domains" / "diary" / "lexicons"


class LexiconError(Exception):
    """A lexicon file is missing or does not have the expected structure."""


@dataclass(frozen=True)
class Lexicon:
    """Keyword vocabularies used by rule-based text and medication analysis.

    All keywords are stored lower-cased; matching is substring-based on
    lower-cased text, so multi-word phrases work as-is.
    """

    locale: str
    positive_words: tuple[str, ...] = ()
    negative_words: tuple[str, ...] = ()
    urgency: dict[str, tuple[str, ...]] = field(default_factory=dict)
    clinical_relevance: dict[str, tuple[str, ...]] = field(default_factory=dict)
    entities: dict[str, tuple[str, ...]] = field(default_factory=dict)
    anatomical_points: tuple[str, ...] = ()
    known_medications: tuple[str, ...] = ()
    otc_medications: tuple[str, ...] = ()
    prescribed_medications: tuple[str, ...] = ()
    medication_risk_patterns: dict[str, str] = field(default_factory=dict)

    def is_anatomical_point(self, label: str) -> bool:
        """Whether a checkbox label names a body location."""
        needle = label.strip().casefold()
        return any(point.casefold() == needle for point in self.anatomical_points)


def load_lexicon(locale: str = "pt_BR", path: str | Path | None = None) -> Lexicon:
    """Load a lexicon by locale from the shipped directory, or from an explicit path."""
    lexicon_path = Path(path).expanduser() if path else LEXICON_DIR / f"{locale}.yaml"
    if not lexicon_path.is_file():
        raise LexiconError(f"Lexicon file not found: {lexicon_path}")
    lexicon = load_lexicon_file(lexicon_path)
    logger.info("Loaded lexicon %s from %s", lexicon.locale, lexicon_path)
    return lexicon


def load_lexicon_file(path: Path) -> Lexicon:
    """Parse a YAML file into a Lexicon instance."""
    with open(path, encoding="utf-8") as f:
        data: dict[str, Any] = yaml.safe_load(f) or {}

    if not isinstance(data, dict) or "locale" not in data:
        raise LexiconError(f"Lexicon {path} must be a mapping with a 'locale' key")

    sentiment = data.get("sentiment", {})
    medications = data.get("medications", {})

    return Lexicon(
        locale=str(data["locale"]),
        positive_words=_words(sentiment.get("positive")),
        negative_words=_words(sentiment.get("negative")),
        urgency=_groups(data.get("urgency")),
        clinical_relevance=_groups(data.get("clinical_relevance")),
        entities=_groups(data.get("entities")),
        anatomical_points=tuple(str(p) for p in data.get("anatomical_points", [])),
        known_medications=_words(medications.get("known")),
        otc_medications=_words(medications.get("otc")),
        prescribed_medications=_words(medications.get("prescribed")),
        medication_risk_patterns={
            str(k): str(v) for k, v in (medications.get("risk_patterns") or {}).items()
        },
    )


def _words(values: Any) -> tuple[str, ...]:
    return tuple(str(v).lower() for v in (values or []))


def _groups(values: Any) -> dict[str, tuple[str, ...]]:
    return {str(k): _words(v) for k, v in (values or {}).items()}
