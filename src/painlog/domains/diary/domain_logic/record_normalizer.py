"""Converts raw questionnaire payloads into DailyRecords and MetricSeries.

Raw payloads are whatever the diary data store exported: one dict per date
with a list of quizzes, each quiz holding answers keyed by small numeric
question identifiers whose meaning depends on the questionnaire kind. This
module is the only place those identifiers are interpreted.
"""

from __future__ import annotations

import datetime as dt
import logging
from collections import OrderedDict
from typing import Any, Iterable

from painlog.core.lexicon.loader import Lexicon
from painlog.domains.diary.domain_logic.models import (
    CrisisEvent,
    DailyRecord,
    EmergencyEntry,
    EveningEntry,
    MetricSeries,
    MorningEntry,
    NormalizationWarning,
    NormalizedWindow,
    QuizEntry,
    QuizKind,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Questionnaire field maps: question id -> (field name, answer type)
# ---------------------------------------------------------------------------

SCALE = "scale"
LABEL = "label"
LABELS = "labels"
TEXT = "text"

MORNING_FIELDS: dict[str, tuple[str, str]] = {
    "1": ("pain", SCALE),
    "2": ("sleep_quality", SCALE),
    "3": ("fatigue", SCALE),
    "4": ("locations", LABELS),
    "5": ("notes", TEXT),
}

EVENING_FIELDS: dict[str, tuple[str, str]] = {
    "1": ("pain", SCALE),
    "2": ("pain", SCALE),
    "3": ("fatigue", SCALE),
    "4": ("sleep_quality", SCALE),
    "5": ("locations", LABELS),
    "6": ("symptoms", LABELS),
    "8": ("notes", TEXT),
    "9": ("mood", LABEL),
}

EMERGENCY_FIELDS: dict[str, tuple[str, str]] = {
    "1": ("intensity", SCALE),
    "2": ("rescue_medication", TEXT),
    "3": ("symptoms", LABELS),
    "4": ("locations", LABELS),
    "5": ("triggers", LABELS),
    "6": ("symptoms", LABELS),
    "7": ("medication_response", LABEL),
    "8": ("notes", TEXT),
}

FIELD_MAPS = {
    QuizKind.MORNING: MORNING_FIELDS,
    QuizKind.EVENING: EVENING_FIELDS,
    QuizKind.EMERGENCY: EMERGENCY_FIELDS,
}

KIND_ALIASES = {
    "morning": QuizKind.MORNING,
    "matinal": QuizKind.MORNING,
    "evening": QuizKind.EVENING,
    "night": QuizKind.EVENING,
    "noturno": QuizKind.EVENING,
    "emergency": QuizKind.EMERGENCY,
    "crisis": QuizKind.EMERGENCY,
    "emergencial": QuizKind.EMERGENCY,
}

# Named keys accepted in place of question ids.
NAMED_FIELDS: dict[str, tuple[str, str]] = {
    "pain": ("pain", SCALE),
    "sleep_quality": ("sleep_quality", SCALE),
    "sleepQuality": ("sleep_quality", SCALE),
    "fatigue": ("fatigue", SCALE),
    "intensity": ("intensity", SCALE),
    "mood": ("mood", LABEL),
    "medication_response": ("medication_response", LABEL),
    "medicationResponse": ("medication_response", LABEL),
    "locations": ("locations", LABELS),
    "symptoms": ("symptoms", LABELS),
    "triggers": ("triggers", LABELS),
    "notes": ("notes", TEXT),
    "rescue_medication": ("rescue_medication", TEXT),
    "rescueMedication": ("rescue_medication", TEXT),
}

_ENTRY_TYPES = {
    QuizKind.MORNING: MorningEntry,
    QuizKind.EVENING: EveningEntry,
    QuizKind.EMERGENCY: EmergencyEntry,
}

# Metric name -> entry attributes feeding it (same-date values are averaged).
METRIC_SOURCES: dict[str, tuple[str, ...]] = {
    "pain": ("pain", "intensity"),
    "sleepQuality": ("sleep_quality",),
    "fatigue": ("fatigue",),
    "crisisIntensity": ("intensity",),
}

LABEL_FIELDS = ("locations", "symptoms", "triggers", "mood", "medication_response")


class MalformedRecordError(ValueError):
    """A single payload or entry cannot be normalized."""


class RecordNormalizer:
    """Pure transform from raw payloads to a NormalizedWindow.

    Malformed payloads and entries are skipped and reported as warnings;
    they never abort the batch.
    """

    def __init__(self, lexicon: Lexicon | None = None, tz: dt.tzinfo | None = None) -> None:
        self._lexicon = lexicon
        self._tz = tz

    def normalize(self, payloads: Iterable[dict[str, Any]]) -> NormalizedWindow:
        by_date: dict[dt.date, list[QuizEntry]] = {}
        warnings: list[NormalizationWarning] = []
        skipped = 0

        for payload in payloads:
            try:
                day, quizzes = _split_payload(payload, self._tz)
            except MalformedRecordError as exc:
                skipped += 1
                warnings.append(NormalizationWarning(_raw_date(payload), None, str(exc)))
                continue

            for quiz in quizzes:
                try:
                    entry = self.parse_entry(quiz)
                except MalformedRecordError as exc:
                    skipped += 1
                    kind = quiz.get("kind", quiz.get("tipo")) if isinstance(quiz, dict) else None
                    warnings.append(
                        NormalizationWarning(day.isoformat(), _opt_str(kind), str(exc))
                    )
                    continue
                by_date.setdefault(day, []).append(entry)

        if warnings:
            logger.warning("Skipped %d malformed diary entries", skipped)

        records = tuple(
            DailyRecord(date=day, entries=tuple(by_date[day])) for day in sorted(by_date)
        )
        return NormalizedWindow(
            records=records,
            series=build_metric_series(records),
            crises=extract_crises(records),
            label_counts=count_labels(records),
            warnings=tuple(warnings),
            skipped_entries=skipped,
        )

    def parse_entry(self, quiz: Any) -> QuizEntry:
        """Turn one raw quiz into a typed entry.

        Raises:
            MalformedRecordError: unknown kind, missing answers or invalid values.
        """
        if not isinstance(quiz, dict):
            raise MalformedRecordError(f"Quiz must be an object, got {type(quiz).__name__}")

        raw_kind = quiz.get("kind", quiz.get("tipo"))
        kind = KIND_ALIASES.get(str(raw_kind).strip().lower()) if raw_kind else None
        if kind is None:
            raise MalformedRecordError(f"Unknown questionnaire kind: {raw_kind!r}")

        answers = quiz.get("answers", quiz.get("respostas"))
        if not isinstance(answers, dict) or not answers:
            raise MalformedRecordError("Quiz has no answers")

        field_map = FIELD_MAPS[kind]
        entry_type = _ENTRY_TYPES[kind]
        allowed = set(entry_type.__dataclass_fields__) - {"kind", "timestamp"}

        scales: dict[str, list[float]] = {}
        values: dict[str, Any] = {}
        lists: dict[str, list[str]] = {}

        for key, raw in answers.items():
            key = str(key)
            target = field_map.get(key) or NAMED_FIELDS.get(key)
            if target is None:
                continue
            name, answer_type = target

            # Emergency question 2 holds either a pain score or rescue-medication text.
            if kind is QuizKind.EMERGENCY and key == "2" and _is_number(raw):
                name, answer_type = "intensity", SCALE

            if name not in allowed:
                continue
            if answer_type == SCALE:
                scales.setdefault(name, []).append(_parse_scale(key, raw))
            elif answer_type == LABEL:
                label = _parse_label(key, raw)
                if label is not None:
                    values[name] = label
            elif answer_type == LABELS:
                lists.setdefault(name, []).extend(_parse_labels(key, raw))
            else:
                text = _parse_text(key, raw)
                if text:
                    values[name] = text

            if self._lexicon is not None and isinstance(raw, list) and name != "locations":
                points = [v for v in raw if isinstance(v, str) and self._lexicon.is_anatomical_point(v)]
                if points and "locations" in allowed:
                    lists.setdefault("locations", []).extend(points)

        if not scales and not values and not lists:
            raise MalformedRecordError("Quiz has no recognised answers")

        kwargs: dict[str, Any] = dict(values)
        for name, numbers in scales.items():
            kwargs[name] = sum(numbers) / len(numbers)
        for name, labels in lists.items():
            kwargs[name] = tuple(OrderedDict.fromkeys(labels))
        kwargs["timestamp"] = _parse_timestamp(quiz.get("timestamp"), self._tz)
        return entry_type(**kwargs)


# ---------------------------------------------------------------------------
# Derivations from DailyRecords
# ---------------------------------------------------------------------------

def build_metric_series(records: Iterable[DailyRecord]) -> dict[str, MetricSeries]:
    """One chronologically ordered series per metric, same-date values averaged."""
    series: dict[str, MetricSeries] = {}
    for metric, attributes in METRIC_SOURCES.items():
        points: list[tuple[dt.date, float]] = []
        for record in records:
            values = [
                getattr(entry, attr)
                for entry in record.entries
                for attr in attributes
                if getattr(entry, attr, None) is not None
            ]
            if values:
                points.append((record.date, sum(values) / len(values)))
        series[metric] = MetricSeries(name=metric, points=tuple(points))
    return series


def extract_crises(records: Iterable[DailyRecord]) -> tuple[CrisisEvent, ...]:
    return tuple(
        CrisisEvent(
            date=record.date,
            timestamp=entry.timestamp,
            intensity=entry.intensity,
            locations=entry.locations,
            triggers=entry.triggers,
            symptoms=entry.symptoms,
            medication_response=entry.medication_response,
            rescue_medication=entry.rescue_medication,
            notes=entry.notes,
        )
        for record in records
        for entry in record.crises
    )


def count_labels(records: Iterable[DailyRecord]) -> dict[str, dict[str, int]]:
    """Frequency table per multi-choice field, keyed by label (first-seen order)."""
    counts: dict[str, dict[str, int]] = {name: {} for name in LABEL_FIELDS}
    for record in records:
        for entry in record.entries:
            for name in LABEL_FIELDS:
                value = getattr(entry, name, None)
                if value is None:
                    continue
                labels = (value,) if isinstance(value, str) else value
                for label in labels:
                    counts[name][label] = counts[name].get(label, 0) + 1
    return counts


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------

def _split_payload(payload: Any, tz: dt.tzinfo | None = None) -> tuple[dt.date, list[Any]]:
    if not isinstance(payload, dict):
        raise MalformedRecordError(f"Payload must be an object, got {type(payload).__name__}")
    day = parse_date(payload.get("date", payload.get("data")), tz)
    if day is None:
        raise MalformedRecordError(f"Unparseable date: {_raw_date(payload)!r}")
    quizzes = payload.get("quizzes", [])
    if not isinstance(quizzes, list):
        raise MalformedRecordError("'quizzes' must be a list")
    return day, quizzes


def parse_date(value: Any, tz: dt.tzinfo | None = None) -> dt.date | None:
    if isinstance(value, dt.datetime):
        return _localize(value, tz).date()
    if isinstance(value, dt.date):
        return value
    if isinstance(value, str):
        try:
            return dt.date.fromisoformat(value[:10])
        except ValueError:
            return None
    if isinstance(value, dict) and "seconds" in value:
        timestamp = _parse_timestamp(value, tz)
        return timestamp.date() if timestamp else None
    return None


def _parse_timestamp(value: Any, tz: dt.tzinfo | None = None) -> dt.datetime | None:
    """Parse a quiz timestamp into the diary's local time.

    Naive values are taken as already local. Offset-aware values and exported
    epoch timestamps are converted to ``tz`` (UTC when unset).
    """
    if value is None:
        return None
    if isinstance(value, dt.datetime):
        return _localize(value, tz)
    if isinstance(value, str):
        try:
            parsed = dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as exc:
            raise MalformedRecordError(f"Unparseable timestamp: {value!r}") from exc
        return _localize(parsed, tz)
    if isinstance(value, dict) and isinstance(value.get("seconds"), (int, float)):
        # Exported store timestamps ({"seconds": ..., "nanoseconds": ...}).
        return dt.datetime.fromtimestamp(value["seconds"], tz=tz or dt.timezone.utc)
    raise MalformedRecordError(f"Unparseable timestamp: {value!r}")


def _localize(value: dt.datetime, tz: dt.tzinfo | None) -> dt.datetime:
    if tz is None or value.tzinfo is None:
        return value
    return value.astimezone(tz)


def _is_number(raw: Any) -> bool:
    return isinstance(raw, (int, float)) and not isinstance(raw, bool)


def _parse_scale(key: str, raw: Any) -> float:
    if isinstance(raw, str):
        try:
            raw = float(raw.strip())
        except ValueError:
            raise MalformedRecordError(f"Answer {key} is not numeric: {raw!r}") from None
    if not _is_number(raw):
        raise MalformedRecordError(f"Answer {key} is not numeric: {raw!r}")
    value = float(raw)
    if not 0.0 <= value <= 10.0:
        raise MalformedRecordError(f"Answer {key} out of 0-10 range: {value}")
    return value


def _parse_label(key: str, raw: Any) -> str | None:
    if isinstance(raw, list) and len(raw) == 1:
        raw = raw[0]
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise MalformedRecordError(f"Answer {key} is not a label: {raw!r}")
    return raw.strip() or None


def _parse_labels(key: str, raw: Any) -> list[str]:
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, list) or not all(isinstance(v, str) for v in raw):
        raise MalformedRecordError(f"Answer {key} is not a label list: {raw!r}")
    return [v.strip() for v in raw if v.strip()]


def _parse_text(key: str, raw: Any) -> str | None:
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise MalformedRecordError(f"Answer {key} is not text: {raw!r}")
    return raw.strip() or None


def _raw_date(payload: Any) -> str | None:
    if isinstance(payload, dict):
        return _opt_str(payload.get("date", payload.get("data")))
    return None


def _opt_str(value: Any) -> str | None:
    return None if value is None else str(value)
