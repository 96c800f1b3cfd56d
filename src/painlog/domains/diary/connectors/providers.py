"""Concrete DiaryDataProvider implementations."""

from __future__ import annotations

import copy
import datetime as dt
import json
import logging
from pathlib import Path
from typing import Any

from painlog.domains.diary.domain_logic.record_normalizer import MalformedRecordError, parse_date

logger = logging.getLogger(__name__)


class InMemoryDiaryProvider:
    """Serves payloads held in memory, keyed by user id."""

    def __init__(self, records_by_user: dict[str, list[dict[str, Any]]] | None = None) -> None:
        self._records = records_by_user or {}

    async def get_diary_records(
        self,
        user_id: str,
        start: dt.date | None = None,
        end: dt.date | None = None,
    ) -> list[dict[str, Any]]:
        return _select(self._records.get(user_id, []), start, end)

    @property
    def data_source(self) -> str:
        return "memory"

    def get_provenance(self) -> dict[str, str]:
        total = sum(len(v) for v in self._records.values())
        return {
            "data_source": self.data_source,
            "data_source_note": f"In-memory diary snapshot ({total} daily payloads).",
        }


class JsonExportDiaryProvider:
    """Reads a JSON export of the diary store.

    Accepted layouts: ``{"users": {"<user_id>": [payload, ...]}}`` or a bare
    list of payloads (single-user export, served for any user id). The file is
    re-read on every call so each report sees a fresh snapshot.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path).expanduser()

    async def get_diary_records(
        self,
        user_id: str,
        start: dt.date | None = None,
        end: dt.date | None = None,
    ) -> list[dict[str, Any]]:
        data = self._load()
        if isinstance(data, list):
            records = data
        else:
            records = (data.get("users") or {}).get(user_id, [])
        return _select(records, start, end)

    @property
    def data_source(self) -> str:
        return "json_export"

    def get_provenance(self) -> dict[str, str]:
        return {
            "data_source": self.data_source,
            "data_source_note": f"Diary export read from {self._path.name}.",
        }

    def _load(self) -> Any:
        if not self._path.is_file():
            logger.warning("Diary export not found: %s", self._path)
            return []
        with open(self._path, encoding="utf-8") as f:
            return json.load(f)


def _select(
    records: list[dict[str, Any]], start: dt.date | None, end: dt.date | None
) -> list[dict[str, Any]]:
    """Copy of the payloads within [start, end]; undated payloads pass through.

    Undated payloads are kept so the normalizer can report them as malformed.
    """
    selected = []
    for payload in records:
        try:
            day = parse_date(payload.get("date", payload.get("data"))) if isinstance(payload, dict) else None
        except MalformedRecordError:
            day = None
        if day is not None and ((start and day < start) or (end and day > end)):
            continue
        selected.append(copy.deepcopy(payload))
    return selected
