"""Shared test fixtures for PainLog Insights tests."""

from __future__ import annotations

import asyncio
import json
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TEXT_SERVICE_URL", "")
    monkeypatch.setenv("DIARY_EXPORT_PATH", "")
    monkeypatch.setenv("LEXICON_LOCALE", "pt_BR")
    monkeypatch.setenv("LEXICON_PATH", "")
    for key in list(os.environ):
        if key.startswith("PAINLOG_ANALYTICS_"):
            monkeypatch.delenv(key)

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from painlog.core.config.settings import AnalyticsConfig  # noqa: E402
from painlog.core.lexicon.loader import Lexicon, load_lexicon  # noqa: E402


@pytest.fixture
def config() -> AnalyticsConfig:
    """Analytics thresholds at their defaults."""
    return AnalyticsConfig()


@pytest.fixture
def lexicon() -> Lexicon:
    """Shipped Portuguese lexicon."""
    return load_lexicon("pt_BR")


@pytest.fixture
def en_lexicon() -> Lexicon:
    """Shipped English lexicon."""
    return load_lexicon("en")


# ---------------------------------------------------------------------------
# Mock text-service MCP client
# ---------------------------------------------------------------------------

# One analysed note in the text service response format.
_DEFAULT_ANALYSIS: dict[str, Any] = {
    "sentiment": {"label": "NEGATIVE", "score": 0.8},
    "urgency": 4,
    "clinical_relevance": 6,
    "entities": [{"entity": "dor", "type": "SYMPTOM", "confidence": 0.9}],
}


@dataclass
class _TextBlock:
    """Mimics fastmcp content block structure."""

    type: str
    text: str


class MockMCPClient:
    """Mock fastmcp.Client that answers like the text understanding server.

    Suitable for injecting into TextInsightMCPClient for unit and integration
    tests without needing a running text service.

    Args:
        analysis: Result returned for every analysed note.
        failing_items: Indices answered with a per-item error.
        delay_s: Seconds to sleep before answering (timeout tests).
        raise_on_call: Exception raised by every call (connection failures).
        raw_response: Payload returned verbatim instead of the normal envelope.
    """

    def __init__(
        self,
        analysis: dict[str, Any] | None = None,
        failing_items: set[int] | None = None,
        delay_s: float = 0.0,
        raise_on_call: Exception | None = None,
        raw_response: Any = None,
    ) -> None:
        self._analysis = analysis or _DEFAULT_ANALYSIS
        self._failing = failing_items or set()
        self._delay_s = delay_s
        self._raise = raise_on_call
        self._raw = raw_response
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.cancelled = False

    async def call_tool(self, tool_name: str, arguments: dict[str, Any]) -> list[Any]:
        self.calls.append((tool_name, arguments))
        if self._delay_s:
            try:
                await asyncio.sleep(self._delay_s)
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        if self._raise is not None:
            raise self._raise
        if self._raw is not None:
            return [_TextBlock(type="text", text=self._raw)]

        if tool_name == "analyze_texts":
            results = []
            for index, item in enumerate(arguments.get("items", [])):
                if index in self._failing:
                    results.append({"error": {"message": "model could not classify note"}})
                else:
                    results.append({**self._analysis, "date": item["date"]})
            payload: dict[str, Any] = {"status": "ok", "results": results}
        elif tool_name == "health_check":
            payload = {"status": "ok", "model": "mock"}
        else:
            payload = {"status": "error", "error": f"Unknown tool: {tool_name}"}
        return [_TextBlock(type="text", text=json.dumps(payload))]

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        pass


@pytest.fixture
def mock_mcp_client() -> MockMCPClient:
    """Create a MockMCPClient with the default analysis."""
    return MockMCPClient()


@pytest.fixture
def make_mcp_client():
    """Factory for MockMCPClient instances with custom behaviour."""
    return MockMCPClient


@pytest.fixture
def mock_text_client(mock_mcp_client: MockMCPClient):
    """Create a TextInsightMCPClient backed by MockMCPClient."""
    from painlog.core.textinsight.client import TextInsightMCPClient

    return TextInsightMCPClient(mock_mcp_client)
