"""MCP tools for diary report analytics.

``diary_smart_summary`` runs the full analytics pipeline for a user and
period and returns the renderer payload as JSON. Runs are coordinated per
(user, period): a newer request cancels the one still in flight.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import json
import logging
import time
from typing import Any, Awaitable, Callable, Hashable, TypeVar

from fastmcp import FastMCP

from painlog.domains.diary.connectors import DiaryDataProvider
from painlog.domains.diary.domain_logic.models import to_serializable
from painlog.domains.diary.domain_logic.summary_builder import SmartSummaryBuilder

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ReportSupersededError(Exception):
    """A newer run for the same user and period replaced this one."""


class ReportRunCoordinator:
    """Keeps at most one in-flight report run per key.

    Starting a run for a key cancels the previous run for that key; the
    superseded caller gets ``ReportSupersededError``. Nothing is persisted
    mid-pipeline, so a cancelled run leaves no partial state behind.
    """

    def __init__(self) -> None:
        self._runs: dict[Hashable, asyncio.Task] = {}

    def in_flight(self, key: Hashable) -> bool:
        task = self._runs.get(key)
        return task is not None and not task.done()

    async def run(self, key: Hashable, coro: Awaitable[T]) -> T:
        previous = self._runs.get(key)
        if previous is not None and not previous.done():
            logger.info("Superseding in-flight report run for %s", key)
            previous.cancel()

        task = asyncio.ensure_future(coro)
        self._runs[key] = task
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if self._runs.get(key) is task:
                del self._runs[key]

        if task.cancelled():
            raise ReportSupersededError(f"Report run for {key} was superseded")
        return task.result()


def register_report_tools(
    mcp: FastMCP,
    provider: DiaryDataProvider,
    builder_factory: Callable[[], SmartSummaryBuilder],
    coordinator: ReportRunCoordinator | None = None,
) -> None:
    """Register diary report analytics tools on the MCP server."""
    runs = coordinator or ReportRunCoordinator()

    @mcp.tool
    async def diary_smart_summary(
        user_id: str,
        start_date: str | None = None,
        end_date: str | None = None,
        upstream_aggregates: dict[str, Any] | None = None,
    ) -> str:
        """Analyse a user's diary over a period and return the report payload.

        Computes correlations (sleep vs next-day pain, mood vs crises), trends,
        crisis patterns, a risk assessment and a prioritized smart summary.
        Always returns a complete structure; sparse data is flagged as
        insufficient rather than failing.

        Args:
            user_id: Diary owner.
            start_date: First day (YYYY-MM-DD), inclusive. Optional.
            end_date: Last day (YYYY-MM-DD), inclusive. Optional.
            upstream_aggregates: Pre-computed aggregates (medications, doctors...)
                passed through to the renderer unchanged.
        """
        started = time.monotonic()
        try:
            start, end = _parse_period(start_date, end_date)
        except ValueError as exc:
            return json.dumps({"status": "error", "error": str(exc)})

        records = await provider.get_diary_records(user_id, start, end)
        builder = builder_factory()
        period = {"start": start_date, "end": end_date}
        try:
            report = await runs.run(
                (user_id, start_date, end_date),
                builder.build(records, period=period, upstream_aggregates=upstream_aggregates),
            )
        except ReportSupersededError:
            return json.dumps({
                "status": "superseded",
                "message": "A newer report request for this period replaced this one.",
            })

        logger.info(
            "Built diary report for %s (%d payloads) in %.1f ms",
            user_id,
            len(records),
            (time.monotonic() - started) * 1000,
        )
        return json.dumps(
            {
                "status": "insufficient_data" if report.smart_summary.insufficient_data else "ok",
                "data_provenance": provider.get_provenance(),
                "report": report.to_dict(),
            },
            ensure_ascii=False,
        )

    @mcp.tool
    async def diary_data_quality(
        user_id: str,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> str:
        """Check whether a user's diary has enough usable data for a report.

        Args:
            user_id: Diary owner.
            start_date: First day (YYYY-MM-DD), inclusive. Optional.
            end_date: Last day (YYYY-MM-DD), inclusive. Optional.
        """
        try:
            start, end = _parse_period(start_date, end_date)
        except ValueError as exc:
            return json.dumps({"status": "error", "error": str(exc)})

        records = await provider.get_diary_records(user_id, start, end)
        builder = builder_factory()
        quality = builder.data_quality(records)
        return json.dumps({"status": "ok", **to_serializable(quality)}, ensure_ascii=False)


def _parse_period(start_date: str | None, end_date: str | None) -> tuple[dt.date | None, dt.date | None]:
    start = dt.date.fromisoformat(start_date) if start_date else None
    end = dt.date.fromisoformat(end_date) if end_date else None
    if start and end and start > end:
        raise ValueError(f"start_date {start_date} is after end_date {end_date}")
    return start, end
