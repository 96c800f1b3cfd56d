"""Tests for RecordNormalizer — raw questionnaire payloads to DailyRecords."""

from __future__ import annotations

import datetime as dt

import pytest

from painlog.domains.diary.domain_logic.models import (
    EmergencyEntry,
    EveningEntry,
    MorningEntry,
    QuizKind,
)
from painlog.domains.diary.domain_logic.record_normalizer import (
    MalformedRecordError,
    RecordNormalizer,
    parse_date,
)


def _day(date: str, *quizzes: dict) -> dict:
    return {"date": date, "quizzes": list(quizzes)}


def _quiz(kind: str, answers: dict, timestamp: str | None = None) -> dict:
    quiz = {"kind": kind, "answers": answers}
    if timestamp:
        quiz["timestamp"] = timestamp
    return quiz


class TestParseEntry:
    def test_morning_fields(self):
        entry = RecordNormalizer().parse_entry(
            _quiz("morning", {"1": 6, "2": 4, "3": "5", "4": ["Costas"], "5": " acordei mal "})
        )
        assert isinstance(entry, MorningEntry)
        assert entry.kind is QuizKind.MORNING
        assert entry.pain == 6.0
        assert entry.sleep_quality == 4.0
        assert entry.fatigue == 5.0
        assert entry.locations == ("Costas",)
        assert entry.notes == "acordei mal"

    def test_evening_pain_questions_are_averaged(self):
        entry = RecordNormalizer().parse_entry(
            _quiz("evening", {"1": 4, "2": 6, "6": ["Náusea", "Náusea"], "9": ["Ansioso"]})
        )
        assert isinstance(entry, EveningEntry)
        assert entry.pain == 5.0
        assert entry.symptoms == ("Náusea",)
        assert entry.mood == "Ansioso"

    def test_emergency_numeric_question_two_is_intensity(self):
        entry = RecordNormalizer().parse_entry(_quiz("emergency", {"1": 9, "2": 7}))
        assert isinstance(entry, EmergencyEntry)
        assert entry.intensity == 8.0
        assert entry.rescue_medication is None

    def test_emergency_text_question_two_is_rescue_medication(self):
        entry = RecordNormalizer().parse_entry(
            _quiz("emergency", {"1": 8, "2": "dipirona 1g", "5": ["Estresse"], "7": "Melhorou"})
        )
        assert entry.intensity == 8.0
        assert entry.rescue_medication == "dipirona 1g"
        assert entry.triggers == ("Estresse",)
        assert entry.medication_response == "Melhorou"

    def test_aliases_and_named_fields(self):
        entry = RecordNormalizer().parse_entry(
            {"tipo": "noturno", "respostas": {"pain": 3, "sleepQuality": 7, "mood": "Calmo"}}
        )
        assert isinstance(entry, EveningEntry)
        assert entry.pain == 3.0
        assert entry.sleep_quality == 7.0
        assert entry.mood == "Calmo"

    def test_lexicon_body_parts_become_locations(self, lexicon):
        entry = RecordNormalizer(lexicon).parse_entry(
            _quiz("emergency", {"1": 7, "3": ["Cabeça", "Náusea"]})
        )
        assert entry.symptoms == ("Cabeça", "Náusea")
        assert entry.locations == ("Cabeça",)

    def test_timestamp_formats(self):
        normalizer = RecordNormalizer()
        iso = normalizer.parse_entry(_quiz("emergency", {"1": 5}, "2026-02-03T14:30:00Z"))
        assert iso.timestamp == dt.datetime(2026, 2, 3, 14, 30, tzinfo=dt.timezone.utc)
        exported = normalizer.parse_entry(
            {"kind": "emergency", "answers": {"1": 5}, "timestamp": {"seconds": 0, "nanoseconds": 0}}
        )
        assert exported.timestamp == dt.datetime(1970, 1, 1, tzinfo=dt.timezone.utc)

    @pytest.mark.parametrize(
        "quiz",
        [
            {"kind": "lunch", "answers": {"1": 3}},
            {"kind": "morning", "answers": {}},
            {"kind": "morning", "answers": {"1": 11}},
            {"kind": "morning", "answers": {"1": "muito"}},
            {"kind": "morning", "answers": {"99": 3}},
            {"kind": "morning", "answers": {"1": 3}, "timestamp": "yesterday"},
            "not a quiz",
        ],
    )
    def test_malformed_entries_raise(self, quiz):
        with pytest.raises(MalformedRecordError):
            RecordNormalizer().parse_entry(quiz)


class TestNormalize:
    def test_records_are_chronological_and_merged_per_date(self):
        window = RecordNormalizer().normalize([
            _day("2026-02-03", _quiz("morning", {"1": 2})),
            _day("2026-02-01", _quiz("morning", {"1": 6})),
            _day("2026-02-01", _quiz("evening", {"1": 4})),
        ])
        assert [r.date for r in window.records] == [dt.date(2026, 2, 1), dt.date(2026, 2, 3)]
        assert len(window.records[0].entries) == 2
        # Same-date values are averaged
        assert window.metric("pain").points == (
            (dt.date(2026, 2, 1), 5.0),
            (dt.date(2026, 2, 3), 2.0),
        )

    def test_crisis_intensity_feeds_pain_and_crisis_series(self):
        window = RecordNormalizer().normalize([
            _day("2026-02-01", _quiz("morning", {"1": 4}), _quiz("emergency", {"1": 8})),
        ])
        assert window.metric("pain").values == [6.0]
        assert window.metric("crisisIntensity").values == [8.0]
        assert window.crises[0].intensity == 8.0

    def test_unreported_metric_is_unavailable(self):
        window = RecordNormalizer().normalize([_day("2026-02-01", _quiz("morning", {"1": 4}))])
        assert window.metric("pain").available
        assert not window.metric("sleepQuality").available
        assert not window.metric("unknown").available

    def test_label_frequency_table(self):
        window = RecordNormalizer().normalize([
            _day("2026-02-01", _quiz("emergency", {"1": 7, "5": ["Estresse", "Calor"]})),
            _day("2026-02-02", _quiz("emergency", {"1": 6, "5": ["Estresse"]})),
        ])
        assert window.label_counts["triggers"] == {"Estresse": 2, "Calor": 1}

    def test_malformed_items_are_skipped_with_warnings(self):
        window = RecordNormalizer().normalize([
            "garbage",
            {"date": "not-a-date", "quizzes": []},
            _day("2026-02-01", _quiz("morning", {"1": 42}), _quiz("morning", {"1": 3})),
            _day("2026-02-02", _quiz("evening", {"1": 5})),
        ])
        assert len(window.records) == 2
        assert window.skipped_entries == 3
        assert len(window.warnings) == 3
        assert window.warnings[2].date == "2026-02-01"
        assert window.warnings[2].kind == "morning"

    def test_portuguese_date_key(self):
        window = RecordNormalizer().normalize([
            {"data": "2026-02-01", "quizzes": [_quiz("matinal", {"1": 3})]},
        ])
        assert window.records[0].date == dt.date(2026, 2, 1)


class TestParseDate:
    def test_supported_shapes(self):
        assert parse_date("2026-02-01") == dt.date(2026, 2, 1)
        assert parse_date("2026-02-01T10:00:00Z") == dt.date(2026, 2, 1)
        assert parse_date(dt.datetime(2026, 2, 1, 10)) == dt.date(2026, 2, 1)
        assert parse_date({"seconds": 86400}) == dt.date(1970, 1, 2)

    def test_unparseable_returns_none(self):
        assert parse_date("yesterday") is None
        assert parse_date(None) is None
        assert parse_date(42) is None


SAO_PAULO = dt.timezone(dt.timedelta(hours=-3))


class TestDiaryTimezone:
    def test_exported_timestamp_in_local_hours(self):
        seconds = dt.datetime(2026, 2, 3, 18, 0, tzinfo=dt.timezone.utc).timestamp()
        entry = RecordNormalizer(tz=SAO_PAULO).parse_entry(
            {"kind": "emergency", "answers": {"1": 5}, "timestamp": {"seconds": seconds}}
        )
        assert entry.timestamp.hour == 15
        assert entry.timestamp.utcoffset() == dt.timedelta(hours=-3)

    def test_aware_iso_timestamp_converted(self):
        entry = RecordNormalizer(tz=SAO_PAULO).parse_entry(
            _quiz("emergency", {"1": 5}, "2026-02-03T14:30:00Z")
        )
        assert (entry.timestamp.hour, entry.timestamp.minute) == (11, 30)

    def test_naive_timestamp_taken_as_local(self):
        entry = RecordNormalizer(tz=SAO_PAULO).parse_entry(
            _quiz("emergency", {"1": 5}, "2026-02-03T14:30:00")
        )
        assert entry.timestamp == dt.datetime(2026, 2, 3, 14, 30)

    def test_exported_date_uses_local_calendar_day(self):
        seconds = dt.datetime(2026, 2, 4, 1, 0, tzinfo=dt.timezone.utc).timestamp()
        assert parse_date({"seconds": seconds}) == dt.date(2026, 2, 4)
        assert parse_date({"seconds": seconds}, SAO_PAULO) == dt.date(2026, 2, 3)
        window = RecordNormalizer(tz=SAO_PAULO).normalize([
            {"date": {"seconds": seconds}, "quizzes": [_quiz("morning", {"1": 3})]},
        ])
        assert window.records[0].date == dt.date(2026, 2, 3)
