"""Timeout and fallback policy around the text understanding service."""

from __future__ import annotations

import asyncio
import logging

from painlog.core.textinsight.client import (
    TextInsightMCPClient,
    TextServiceError,
    TextServiceTimeoutError,
)
from painlog.core.textinsight.fallback import LocalTextAnalyzer
from painlog.core.textinsight.models import TextAnalysis, TextBatchResult, TextItem

logger = logging.getLogger(__name__)


class TextInsightService:
    """Analyses diary notes, never blocking longer than ``timeout_s``.

    Remote analysis is preferred. On timeout or service failure the whole batch
    is analysed by the local rule-based analyzer (when one is configured);
    items the service rejected individually are filled in locally as well.
    Cancellation of the calling task propagates and aborts the remote call.
    """

    def __init__(
        self,
        client: TextInsightMCPClient | None,
        local_analyzer: LocalTextAnalyzer | None,
        *,
        timeout_s: float = 20.0,
    ) -> None:
        self._client = client
        self._local = local_analyzer
        self._timeout_s = timeout_s

    async def analyze(self, items: list[TextItem]) -> TextBatchResult:
        if not items:
            return TextBatchResult()

        if self._client is None:
            return self._fallback(items, errors=())

        try:
            remote = await asyncio.wait_for(
                self._client.analyze_texts(items), timeout=self._timeout_s
            )
        except asyncio.TimeoutError:
            error = TextServiceTimeoutError(
                f"Text service did not answer within {self._timeout_s:g}s"
            )
            logger.warning("%s; degrading to local analysis", error)
            return self._fallback(items, errors=(str(error),))
        except TextServiceError as exc:
            logger.warning("Text service unavailable (%s); degrading to local analysis", exc)
            return self._fallback(items, errors=(str(exc),))

        analyses: list[TextAnalysis] = []
        missing = 0
        for item, analysis in zip(items, remote):
            if analysis is None:
                missing += 1
                if self._local is not None:
                    analyses.append(self._local.analyze(item))
                continue
            analyses.append(analysis)

        errors: tuple[str, ...] = ()
        if missing:
            errors = (f"{missing} of {len(items)} notes could not be analysed remotely",)
            logger.info(errors[0])
        source = "remote" if not missing else ("mixed" if analyses else "none")
        return TextBatchResult(analyses=tuple(analyses), source=source, errors=errors)

    def _fallback(self, items: list[TextItem], *, errors: tuple[str, ...]) -> TextBatchResult:
        if self._local is None:
            return TextBatchResult(source="none", errors=errors)
        return TextBatchResult(
            analyses=tuple(self._local.analyze_batch(items)),
            source="fallback",
            errors=errors,
        )
