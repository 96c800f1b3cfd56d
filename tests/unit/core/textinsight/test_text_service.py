"""Tests for TextInsightService — timeout, fallback and cancellation policy."""

from __future__ import annotations

import asyncio

import pytest

from painlog.core.textinsight.client import TextInsightMCPClient
from painlog.core.textinsight.fallback import LocalTextAnalyzer
from painlog.core.textinsight.models import TextItem
from painlog.core.textinsight.service import TextInsightService


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


ITEMS = [
    TextItem(text="dor insuportável, tomei dipirona", date="2026-02-01"),
    TextItem(text="dia bom e tranquilo", date="2026-02-02"),
    TextItem(text="cansaço e ansiedade no trabalho", date="2026-02-03"),
]


class TestRemoteAnalysis:
    def test_remote_success(self, mock_text_client, lexicon):
        service = TextInsightService(mock_text_client, LocalTextAnalyzer(lexicon))
        result = _run(service.analyze(ITEMS))
        assert result.source == "remote"
        assert result.errors == ()
        assert len(result.analyses) == 3
        assert all(a.source == "remote" for a in result.analyses)

    def test_empty_batch(self, mock_text_client, mock_mcp_client):
        result = _run(TextInsightService(mock_text_client, None).analyze([]))
        assert result.analyses == ()
        assert result.source == "none"
        assert mock_mcp_client.calls == []

    def test_partial_failure_filled_locally(self, make_mcp_client, lexicon):
        client = TextInsightMCPClient(make_mcp_client(failing_items={1}))
        service = TextInsightService(client, LocalTextAnalyzer(lexicon))
        result = _run(service.analyze(ITEMS))
        assert result.source == "mixed"
        assert [a.source for a in result.analyses] == ["remote", "local", "remote"]
        assert "1 of 3" in result.errors[0]

    def test_partial_failure_without_fallback_keeps_the_rest(self, make_mcp_client):
        client = TextInsightMCPClient(make_mcp_client(failing_items={0}))
        result = _run(TextInsightService(client, None).analyze(ITEMS))
        assert len(result.analyses) == 2
        assert result.source == "mixed"


class TestDegradation:
    def test_no_client_uses_local_analyzer(self, lexicon):
        result = _run(TextInsightService(None, LocalTextAnalyzer(lexicon)).analyze(ITEMS))
        assert result.source == "fallback"
        assert result.errors == ()
        assert all(a.source == "local" for a in result.analyses)

    def test_connection_failure_falls_back(self, make_mcp_client, lexicon):
        client = TextInsightMCPClient(make_mcp_client(raise_on_call=OSError("refused")))
        result = _run(TextInsightService(client, LocalTextAnalyzer(lexicon)).analyze(ITEMS))
        assert result.source == "fallback"
        assert len(result.analyses) == 3
        assert result.errors

    def test_failure_without_fallback_yields_nothing(self, make_mcp_client):
        client = TextInsightMCPClient(make_mcp_client(raise_on_call=OSError("refused")))
        result = _run(TextInsightService(client, None).analyze(ITEMS))
        assert result.source == "none"
        assert result.analyses == ()
        assert result.errors

    def test_timeout_is_enforced(self, make_mcp_client, lexicon):
        mock = make_mcp_client(delay_s=5.0)
        service = TextInsightService(
            TextInsightMCPClient(mock), LocalTextAnalyzer(lexicon), timeout_s=0.05
        )
        result = _run(service.analyze(ITEMS))
        assert result.source == "fallback"
        assert "did not answer" in result.errors[0]
        # The slow remote call was aborted, not left running
        assert mock.cancelled is True


class TestCancellation:
    def test_cancelling_caller_aborts_remote_call(self, make_mcp_client, lexicon):
        mock = make_mcp_client(delay_s=5.0)
        service = TextInsightService(
            TextInsightMCPClient(mock), LocalTextAnalyzer(lexicon), timeout_s=30.0
        )

        async def _scenario():
            task = asyncio.ensure_future(service.analyze(ITEMS))
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        _run(_scenario())
        assert mock.cancelled is True


class TestLocalAnalyzer:
    def test_negative_urgent_note(self, lexicon):
        analysis = LocalTextAnalyzer(lexicon).analyze(ITEMS[0])
        assert analysis.sentiment_label == "NEGATIVE"
        assert analysis.urgency > 0.0
        assert analysis.clinical_relevance > 0
        assert {e.entity for e in analysis.entities} >= {"dor", "dipirona"}

    def test_positive_note(self, lexicon):
        analysis = LocalTextAnalyzer(lexicon).analyze(ITEMS[1])
        assert analysis.sentiment_label == "POSITIVE"
        assert 0.6 < analysis.sentiment_score <= 0.9

    def test_neutral_note(self, lexicon):
        analysis = LocalTextAnalyzer(lexicon).analyze(TextItem(text="xyz abc", date="2026-02-01"))
        assert analysis.sentiment_label == "NEUTRAL"
        assert analysis.sentiment_score == 0.5
        assert analysis.urgency == 0.0

    def test_scores_stay_in_range(self, en_lexicon):
        text = " ".join(["unbearable emergency desperate help me"] * 5)
        analysis = LocalTextAnalyzer(en_lexicon).analyze(TextItem(text=text, date="2026-02-01"))
        assert 0.0 <= analysis.urgency <= 10.0
        assert 0.0 <= analysis.clinical_relevance <= 10.0

    def test_at_most_five_entities(self, en_lexicon):
        text = "pain crisis anxiety nausea head neck back arm medication today"
        analysis = LocalTextAnalyzer(en_lexicon).analyze(TextItem(text=text, date="2026-02-01"))
        assert len(analysis.entities) == 5
