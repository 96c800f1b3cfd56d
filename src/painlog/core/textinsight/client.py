"""MCP client for the free-text understanding service.

The service classifies diary notes (sentiment, urgency, clinical relevance,
entities). It is reached through fastmcp.Client; the model behind it is not
part of this package.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from painlog.core.textinsight.models import TextAnalysis, TextItem

logger = logging.getLogger(__name__)

ANALYZE_TOOL = "analyze_texts"


class TextInsightMCPClient:
    """Client for the text understanding MCP server.

    Usage::

        from fastmcp import Client
        mcp = Client("http://127.0.0.1:8012/mcp")
        text_client = TextInsightMCPClient(mcp)

        analyses = await text_client.analyze_texts([TextItem("dor forte", "2026-02-01")])
    """

    def __init__(self, mcp_client: Any) -> None:
        """Initialise with a fastmcp.Client (or compatible)."""
        self._client = mcp_client

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def analyze_texts(self, items: list[TextItem]) -> list[TextAnalysis | None]:
        """Analyse a batch of notes.

        Returns one entry per input item, in input order. Items the service
        could not analyse come back as ``None``; a per-item failure never fails
        the batch. Whole-batch failures raise a ``TextServiceError``.
        """
        if not items:
            return []

        parsed = await self._call_tool(
            ANALYZE_TOOL, {"items": [item.to_dict() for item in items]}
        )
        results = parsed.get("results")
        if not isinstance(results, list):
            raise TextServiceResponseError(
                f"Missing or invalid 'results' in response from {ANALYZE_TOOL}"
            )

        analyses: list[TextAnalysis | None] = []
        for index, item in enumerate(items):
            raw = results[index] if index < len(results) else None
            analyses.append(_parse_item(raw, item))
        return analyses

    async def health_check(self) -> dict[str, Any]:
        """Verify the text service is reachable and report status."""
        return await self._call_tool("health_check", {})

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _call_tool(
        self, tool_name: str, arguments: dict[str, Any]
    ) -> dict[str, Any]:
        """Call a tool on the text service and return the parsed JSON object."""
        logger.debug("Calling text service tool %s", tool_name)

        try:
            async with self._client:
                result = await self._client.call_tool(tool_name, arguments)
        except Exception:
            logger.exception("Failed to call text service tool %s", tool_name)
            raise TextServiceConnectionError(
                f"Failed to call text service tool '{tool_name}'. "
                "Is the text understanding server running?"
            ) from None

        if not result:
            raise TextServiceResponseError(f"Empty response from {tool_name}")

        payload = _extract_payload(result)
        if payload is None:
            raise TextServiceResponseError(
                f"No usable content in response from {tool_name}"
            )

        if isinstance(payload, str):
            try:
                parsed: Any = json.loads(payload)
            except (json.JSONDecodeError, TypeError) as exc:
                raise TextServiceResponseError(
                    f"Invalid JSON from {tool_name}: {exc}"
                ) from exc
        else:
            parsed = payload

        if not isinstance(parsed, dict):
            raise TextServiceResponseError(
                f"Expected JSON object from {tool_name}, got {type(parsed).__name__}"
            )

        if parsed.get("status") == "error":
            raise TextServiceResponseError(
                f"Text service returned error: {_format_error(parsed.get('error'))}"
            )

        return parsed


# ------------------------------------------------------------------
# Exceptions
# ------------------------------------------------------------------

class TextServiceError(Exception):
    """Base exception for the free-text service (service unavailable)."""


# Name used by the analytics pipeline for any text-service outage.
ExternalServiceUnavailable = TextServiceError


class TextServiceConnectionError(TextServiceError):
    """Could not reach the text service."""


class TextServiceResponseError(TextServiceError):
    """Response from the text service was unexpected."""


class TextServiceTimeoutError(TextServiceError):
    """The text service did not answer within the configured timeout."""


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _parse_item(raw: Any, item: TextItem) -> TextAnalysis | None:
    if not isinstance(raw, dict):
        return None
    if raw.get("error") is not None:
        logger.warning(
            "Text service could not analyse note from %s: %s",
            item.date,
            _format_error(raw.get("error")),
        )
        return None
    try:
        return TextAnalysis.from_dict(raw, date=item.date)
    except (KeyError, TypeError, ValueError) as exc:
        logger.warning("Discarding malformed analysis for note from %s: %s", item.date, exc)
        return None


def _extract_payload(result: Any) -> Any | None:
    """Extract a usable payload from a fastmcp tool result.

    Accepts a CallToolResult (``.data`` / ``.content``), a list of content blocks,
    a single block, a raw string or an already-parsed dict.
    """
    if isinstance(result, dict):
        return result
    if isinstance(result, str):
        return result

    data = getattr(result, "data", None)
    if isinstance(data, dict):
        return data
    content = getattr(result, "content", None)
    if isinstance(content, list):
        result = content

    if isinstance(result, list):
        for block in result:
            payload = _payload_from_block(block, prefer_json=True)
            if payload is not None:
                return payload
        for block in result:
            payload = _payload_from_block(block, prefer_json=False)
            if payload is not None:
                return payload
        return None

    payload = _payload_from_block(result, prefer_json=True)
    if payload is not None:
        return payload
    return _payload_from_block(result, prefer_json=False)


def _payload_from_block(block: Any, *, prefer_json: bool) -> Any | None:
    """Extract payload from a single content block."""
    if isinstance(block, dict):
        if prefer_json:
            for key in ("data", "json"):
                if key in block:
                    return block[key]
        return block.get("text")

    if prefer_json:
        for attr in ("data", "json"):
            value = getattr(block, attr, None)
            if value is not None:
                return value
        return None

    if hasattr(block, "text"):
        return block.text
    if isinstance(block, str):
        return block
    return None


def _format_error(error: Any) -> str:
    """Format an error payload into a human-readable string."""
    if error is None:
        return "Unknown error"
    if isinstance(error, str):
        return error
    if isinstance(error, dict):
        msg = error.get("message") or error.get("code")
        return msg if isinstance(msg, str) and msg else str(error)
    return str(error)
