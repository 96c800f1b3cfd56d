"""Rescue-medication extraction from crisis free text."""

from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass
from typing import Iterable

from painlog.core.lexicon.loader import Lexicon
from painlog.domains.diary.domain_logic.models import CrisisEvent

logger = logging.getLogger(__name__)

HIGH_RISK_FLAGS = {"interaction", "self_medication", "excessive_use"}
MEDIUM_RISK_FLAGS = {"high_dose", "side_effect", "ineffective"}


@dataclass(frozen=True)
class MedicationMention:
    date: str
    medications: tuple[str, ...]
    risk_flags: tuple[str, ...]
    text: str


@dataclass(frozen=True)
class RescueMedicationSummary:
    medication: str
    frequency: int
    dates: tuple[str, ...]
    category: str  # otc | prescribed | unknown
    risk_level: str  # low | medium | high
    risk_flags: tuple[str, ...] = ()


class RescueMedicationAnalyzer:
    """Finds known medication names and risky-use phrases in crisis notes."""

    def __init__(self, lexicon: Lexicon) -> None:
        self._lexicon = lexicon
        self._known = {_fold(name): name for name in lexicon.known_medications}
        self._risk_patterns = {
            flag: re.compile(pattern, re.IGNORECASE)
            for flag, pattern in lexicon.medication_risk_patterns.items()
        }

    def analyze_text(self, text: str, date: str) -> MedicationMention:
        folded = _fold(text)
        medications = tuple(
            dict.fromkeys(display_name(name) for key, name in self._known.items() if key in folded)
        )
        flags = tuple(
            flag for flag, pattern in self._risk_patterns.items() if pattern.search(text.lower())
        )
        return MedicationMention(date=date, medications=medications, risk_flags=flags, text=text)

    def analyze_crises(self, crises: Iterable[CrisisEvent]) -> list[RescueMedicationSummary]:
        mentions = [
            self.analyze_text(crisis.rescue_medication, crisis.date.isoformat())
            for crisis in crises
            if crisis.rescue_medication
        ]
        return self.consolidate(mentions)

    def consolidate(self, mentions: Iterable[MedicationMention]) -> list[RescueMedicationSummary]:
        """One summary per medication, most frequently used first."""
        grouped: dict[str, list[MedicationMention]] = {}
        for mention in mentions:
            for medication in mention.medications:
                grouped.setdefault(medication, []).append(mention)

        summaries = []
        for medication, group in grouped.items():
            flags = tuple(dict.fromkeys(f for m in group for f in m.risk_flags))
            summaries.append(RescueMedicationSummary(
                medication=medication,
                frequency=len(group),
                dates=tuple(m.date for m in group),
                category=self.categorize(medication),
                risk_level=risk_level(flags),
                risk_flags=flags,
            ))
        return sorted(summaries, key=lambda s: -s.frequency)

    def categorize(self, medication: str) -> str:
        folded = _fold(medication)
        if any(_fold(name) in folded for name in self._lexicon.otc_medications):
            return "otc"
        if any(_fold(name) in folded for name in self._lexicon.prescribed_medications):
            return "prescribed"
        return "unknown"


def risk_level(flags: Iterable[str]) -> str:
    flags = set(flags)
    if flags & HIGH_RISK_FLAGS:
        return "high"
    if flags & MEDIUM_RISK_FLAGS:
        return "medium"
    return "low"


def display_name(name: str) -> str:
    """Accent-free, capitalized medication name."""
    return _fold(name).capitalize()


def _fold(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text.lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))
