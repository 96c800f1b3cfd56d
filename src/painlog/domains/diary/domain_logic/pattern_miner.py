"""Pattern detection over a normalized diary window.

Detectors are independent of each other. Each returns PatternResults with a
frequency of at least ``pattern_min_frequency``, sorted by strength then
frequency (descending); ties keep first-encountered order.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Iterable

from painlog.core.config.settings import AnalyticsConfig
from painlog.domains.diary.domain_logic.models import (
    CrisisEvent,
    DailyRecord,
    EmergencyEntry,
    EveningEntry,
    NormalizedWindow,
    PatternKind,
    PatternResult,
    Significance,
)

logger = logging.getLogger(__name__)

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
_MAX_EXAMPLES = 5


class PatternMiner:
    """Mines temporal, trigger, mood-sequence, symptom and medication patterns.

    Usage::

        miner = PatternMiner(config)
        patterns = miner.mine(window)
    """

    def __init__(self, config: AnalyticsConfig) -> None:
        self._config = config

    def mine(self, window: NormalizedWindow) -> list[PatternResult]:
        """Run every detector and merge the results deterministically."""
        results = (
            self.detect_temporal_clusters(window.crises)
            + self.detect_trigger_associations(window.crises)
            + self.detect_mood_sequences(window.records)
            + self.detect_symptom_clusters(window.records)
            + self.detect_medication_responses(window.crises)
        )
        logger.debug("Mined %d patterns from %d crises", len(results), len(window.crises))
        return _ranked(results)

    # ------------------------------------------------------------------
    # Temporal clustering
    # ------------------------------------------------------------------

    def detect_temporal_clusters(self, crises: Iterable[CrisisEvent]) -> list[PatternResult]:
        """Peak hour-of-day and peak day-of-week of crisis episodes."""
        crises = list(crises)
        total = len(crises)
        if not total:
            return []

        by_hour: dict[int, list[CrisisEvent]] = {}
        by_weekday: dict[int, list[CrisisEvent]] = {}
        for crisis in crises:
            if crisis.timestamp is not None:
                by_hour.setdefault(crisis.timestamp.hour, []).append(crisis)
            by_weekday.setdefault(crisis.date.weekday(), []).append(crisis)

        results: list[PatternResult] = []
        peak = _peak_bucket(by_hour)
        if peak is not None and len(by_hour[peak]) >= self._config.pattern_min_frequency:
            count = len(by_hour[peak])
            label = f"{peak:02d}:00"
            results.append(PatternResult(
                kind=PatternKind.TEMPORAL_HOUR,
                description=f"Crises cluster around {label} ({count} of {total} episodes)",
                frequency=count,
                strength=count / total,
                supporting_examples=_example_dates(c.date for c in by_hour[peak]),
                subject=(label,),
            ))

        peak = _peak_bucket(by_weekday)
        if peak is not None and len(by_weekday[peak]) >= self._config.pattern_min_frequency:
            count = len(by_weekday[peak])
            name = WEEKDAYS[peak]
            results.append(PatternResult(
                kind=PatternKind.TEMPORAL_WEEKDAY,
                description=f"Crises happen most often on {name} ({count} of {total} episodes)",
                frequency=count,
                strength=count / total,
                supporting_examples=_example_dates(c.date for c in by_weekday[peak]),
                subject=(name,),
            ))
        return _ranked(results)

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def detect_trigger_associations(self, crises: Iterable[CrisisEvent]) -> list[PatternResult]:
        """Trigger prevalence plus trigger -> symptom support.

        ``support = countWithBoth / countWithTrigger``; a pair is reported when
        the trigger appears in enough crises and support clears the threshold.
        """
        crises = list(crises)
        total = len(crises)
        cfg = self._config
        min_freq = cfg.pattern_min_frequency

        with_trigger: dict[str, list[CrisisEvent]] = {}
        for crisis in crises:
            for trigger in crisis.triggers:
                with_trigger.setdefault(trigger, []).append(crisis)

        results: list[PatternResult] = []
        for trigger, carrying in with_trigger.items():
            count = len(carrying)
            if count < min_freq:
                continue
            results.append(PatternResult(
                kind=PatternKind.TRIGGER,
                description=f"Trigger '{trigger}' was reported in {count} of {total} crises",
                frequency=count,
                strength=count / total,
                supporting_examples=_example_dates(c.date for c in carrying),
                subject=(trigger,),
            ))

            with_both: dict[str, list[CrisisEvent]] = {}
            for crisis in carrying:
                for symptom in crisis.symptoms:
                    with_both.setdefault(symptom, []).append(crisis)
            for symptom, both in with_both.items():
                support = len(both) / count
                if len(both) < min_freq or support <= cfg.trigger_support_threshold:
                    continue
                results.append(PatternResult(
                    kind=PatternKind.TRIGGER_SYMPTOM,
                    description=(
                        f"'{trigger}' came with '{symptom}' in {support:.0%} "
                        f"of the crises where it was reported"
                    ),
                    frequency=len(both),
                    strength=support,
                    supporting_examples=_example_dates(c.date for c in both),
                    subject=(trigger, symptom),
                    significance=self._tier(support),
                ))
        return _ranked(results)

    # ------------------------------------------------------------------
    # Mood sequences
    # ------------------------------------------------------------------

    def detect_mood_sequences(self, records: Iterable[DailyRecord]) -> list[PatternResult]:
        """Two consecutive evening moods followed by a crisis on the third day.

        Windows slide over consecutive recorded days in date order, so days
        without a diary record in between do not break a window.
        """
        ordered = sorted(records, key=lambda r: r.date)

        stats: dict[tuple[str, str], list[int]] = {}
        crisis_days: dict[tuple[str, str], list[dt.date]] = {}
        for first, second, third in zip(ordered, ordered[1:], ordered[2:]):
            first_mood, second_mood = first.evening_mood, second.evening_mood
            if first_mood is None or second_mood is None:
                continue
            key = (first_mood, second_mood)
            counts = stats.setdefault(key, [0, 0])
            counts[0] += 1
            if third.has_crisis:
                counts[1] += 1
                crisis_days.setdefault(key, []).append(third.date)

        results: list[PatternResult] = []
        for (first_mood, second_mood), (occurrences, with_crisis) in stats.items():
            if occurrences < self._config.pattern_min_frequency:
                continue
            rate = with_crisis / occurrences
            if rate <= self._config.sequence_crisis_rate_threshold:
                continue
            results.append(PatternResult(
                kind=PatternKind.MOOD_SEQUENCE,
                description=(
                    f"Evenings '{first_mood}' then '{second_mood}' were followed by a "
                    f"crisis {with_crisis} of {occurrences} times"
                ),
                frequency=occurrences,
                strength=rate,
                supporting_examples=_example_dates(crisis_days.get((first_mood, second_mood), [])),
                subject=(first_mood, second_mood),
            ))
        return _ranked(results)

    # ------------------------------------------------------------------
    # Symptom clusters
    # ------------------------------------------------------------------

    def detect_symptom_clusters(self, records: Iterable[DailyRecord]) -> list[PatternResult]:
        """Unordered symptom pairs reported together within one entry.

        ``strength = count / total entries in the window``, entries without
        symptoms included.
        """
        pair_counts: dict[tuple[str, str], list[dt.date]] = {}
        total_entries = 0
        for record in records:
            for entry in record.entries:
                total_entries += 1
                if not isinstance(entry, (EveningEntry, EmergencyEntry)) or not entry.symptoms:
                    continue
                symptoms = list(dict.fromkeys(entry.symptoms))
                for i, first in enumerate(symptoms):
                    for second in symptoms[i + 1:]:
                        pair = (first, second) if first <= second else (second, first)
                        pair_counts.setdefault(pair, []).append(record.date)

        results: list[PatternResult] = []
        for (first, second), dates in pair_counts.items():
            count = len(dates)
            if count < self._config.pattern_min_frequency:
                continue
            results.append(PatternResult(
                kind=PatternKind.SYMPTOM_CLUSTER,
                description=f"'{first}' and '{second}' were reported together in {count} entries",
                frequency=count,
                strength=count / total_entries,
                supporting_examples=_example_dates(dates),
                subject=(first, second),
            ))
        return _ranked(results)

    # ------------------------------------------------------------------
    # Rescue medication response
    # ------------------------------------------------------------------

    def detect_medication_responses(self, crises: Iterable[CrisisEvent]) -> list[PatternResult]:
        """Recurring rescue-medication responses with their mean crisis intensity."""
        by_response: dict[str, list[CrisisEvent]] = {}
        for crisis in crises:
            if crisis.medication_response:
                by_response.setdefault(crisis.medication_response, []).append(crisis)
        total = sum(len(group) for group in by_response.values())

        results: list[PatternResult] = []
        for response, group in by_response.items():
            count = len(group)
            if count < self._config.pattern_min_frequency:
                continue
            intensities = [c.intensity for c in group if c.intensity is not None]
            mean_text = (
                f" (mean intensity {sum(intensities) / len(intensities):.1f}/10)"
                if intensities else ""
            )
            results.append(PatternResult(
                kind=PatternKind.MEDICATION_RESPONSE,
                description=(
                    f"Medication response '{response}' in {count} of {total} crises{mean_text}"
                ),
                frequency=count,
                strength=count / total,
                supporting_examples=_example_dates(c.date for c in group),
                subject=(response,),
            ))
        return _ranked(results)

    def _tier(self, support: float) -> Significance:
        if support > self._config.high_significance_cutoff:
            return Significance.HIGH
        if support > self._config.medium_significance_cutoff:
            return Significance.MEDIUM
        return Significance.LOW


def _peak_bucket(buckets: dict[int, list[CrisisEvent]]) -> int | None:
    """Bucket with the highest count; the first one encountered wins ties."""
    peak: int | None = None
    for key, items in buckets.items():
        if peak is None or len(items) > len(buckets[peak]):
            peak = key
    return peak


def _ranked(results: list[PatternResult]) -> list[PatternResult]:
    return sorted(results, key=lambda r: (-r.strength, -r.frequency))


def _example_dates(dates: Iterable[dt.date]) -> tuple[str, ...]:
    unique = list(dict.fromkeys(d.isoformat() for d in dates))
    return tuple(unique[:_MAX_EXAMPLES])
