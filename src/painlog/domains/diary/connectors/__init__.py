"""Diary data connectors — read-only access to raw questionnaire records."""

from __future__ import annotations

import datetime as dt
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class DiaryDataProvider(Protocol):
    """Abstract interface for retrieving raw diary payloads.

    Tools call these methods without knowing which store holds the diary.
    Implementations return a snapshot the engine may not write back to.
    """

    async def get_diary_records(
        self,
        user_id: str,
        start: dt.date | None = None,
        end: dt.date | None = None,
    ) -> list[dict[str, Any]]:
        """Raw per-date payloads for a user, oldest first, within [start, end]."""
        ...

    @property
    def data_source(self) -> str:
        """Label for the active data source: 'memory' or 'json_export'."""
        ...

    def get_provenance(self) -> dict[str, str]:
        """Return provenance metadata suitable for merging into the report."""
        ...
