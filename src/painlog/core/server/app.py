"""PainLog Insights MCP Server — application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import asyncio
import logging

from fastmcp import FastMCP

from painlog.core.config.settings import AnalyticsConfig, get_analytics_config, get_settings
from painlog.core.lexicon.loader import load_lexicon
from painlog.core.textinsight.client import TextInsightMCPClient, TextServiceError
from painlog.core.textinsight.fallback import LocalTextAnalyzer
from painlog.core.textinsight.service import TextInsightService
from painlog.domains.diary.connectors import DiaryDataProvider
from painlog.domains.diary.connectors.providers import (
    InMemoryDiaryProvider,
    JsonExportDiaryProvider,
)
from painlog.domains.diary.domain_logic.summary_builder import SmartSummaryBuilder
from painlog.domains.diary.tools.report_tools import register_report_tools

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def create_app(
    *,
    diary_provider_override: DiaryDataProvider | None = None,
    text_client_override: TextInsightMCPClient | None = None,
    analytics_config_override: AnalyticsConfig | None = None,
) -> FastMCP:
    """Create and configure the PainLog Insights MCP server.

    This is the main application factory. It:
    1. Creates the FastMCP server instance
    2. Loads analytics thresholds and the keyword lexicon
    3. Creates the text understanding client (remote + local fallback)
    4. Initializes the diary data provider
    5. Registers all tools
    """
    settings = get_settings()
    analytics_config = analytics_config_override or get_analytics_config()

    # --- Server instance ---
    server = FastMCP(
        "PainLog Insights",
        instructions=(
            "Health-diary analytics server. Turns weeks of morning, evening and "
            "crisis questionnaires into correlations, trends, crisis patterns, "
            "a risk assessment and a prioritized report summary. Outputs are "
            "descriptive statistics, not clinical decisions."
        ),
    )

    # --- Lexicon ---
    lexicon = load_lexicon(settings.lexicon_locale, settings.lexicon_path or None)

    # --- Text understanding service ---
    if text_client_override is not None:
        text_client: TextInsightMCPClient | None = text_client_override
    elif settings.text_service_url:
        from fastmcp import Client as MCPClient

        text_client = TextInsightMCPClient(MCPClient(settings.text_service_url))
        logger.info("Text service client configured for %s", settings.text_service_url)
    else:
        text_client = None
        logger.info("No TEXT_SERVICE_URL configured — notes are analysed locally")

    local_analyzer = LocalTextAnalyzer(lexicon) if settings.text_fallback_enabled else None
    text_service = TextInsightService(
        text_client, local_analyzer, timeout_s=settings.text_service_timeout_s
    )

    # --- Diary data provider ---
    if diary_provider_override is not None:
        provider = diary_provider_override
    elif settings.diary_export_path:
        provider = JsonExportDiaryProvider(settings.diary_export_path)
        logger.info("Using diary export at %s", settings.diary_export_path)
    else:
        provider = InMemoryDiaryProvider()
        logger.warning("No DIARY_EXPORT_PATH configured — serving an empty diary")

    # --- Register tools ---
    @server.tool
    async def health_check() -> dict:
        """Check server health, including reachability of the text service."""
        text_service_status = "not_configured"
        if text_client is not None:
            try:
                await asyncio.wait_for(
                    text_client.health_check(), timeout=settings.text_service_timeout_s
                )
                text_service_status = "ok"
            except (TextServiceError, asyncio.TimeoutError) as exc:
                logger.warning("Text service health check failed: %s", exc)
                text_service_status = "unreachable"

        return {
            "status": "ok",
            "server": "PainLog Insights",
            "version": VERSION,
            "lexicon": lexicon.locale,
            "text_service_url": settings.text_service_url or None,
            "text_service": text_service_status,
            "text_fallback_enabled": local_analyzer is not None,
            "data_source": provider.data_source,
        }

    def builder_factory() -> SmartSummaryBuilder:
        # Fresh engines per report request.
        return SmartSummaryBuilder.create(analytics_config, lexicon, text_service=text_service)

    register_report_tools(server, provider, builder_factory)
    logger.info("Diary report tools registered")

    return server


# Module-level instance for FastMCP discovery.
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
