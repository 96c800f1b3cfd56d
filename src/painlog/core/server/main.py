"""Run the diary analytics server: ``painlog-server`` or ``python -m painlog.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from painlog.core.config.settings import Settings, get_settings
from painlog.core.server.app import create_app

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _is_loopback_host(host: str) -> bool:
    """True for hostnames and IP literals (bracketed IPv6 included) that stay on this machine."""
    host = host.strip().strip("[]").rstrip(".").lower()
    if host == "localhost":
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def _check_bind(settings: Settings) -> None:
    # Diary answers are health data and the tools have no auth layer.
    if settings.painlog_allow_insecure_bind or _is_loopback_host(settings.painlog_host):
        return
    raise RuntimeError(
        f"Diary analytics server will not listen on non-loopback host {settings.painlog_host!r}: "
        "its tools expose health diary data without authentication. "
        "Set PAINLOG_ALLOW_INSECURE_BIND=true only behind an authenticating proxy."
    )


def run() -> None:
    """Serve the diary report tools over Streamable HTTP."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.painlog_log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    logger = logging.getLogger(__name__)

    _check_bind(settings)
    if settings.painlog_allow_insecure_bind and not _is_loopback_host(settings.painlog_host):
        logger.warning("Insecure bind allowed: serving diary data on %s", settings.painlog_host)

    logger.info(
        "PainLog Insights listening on %s:%d (lexicon %s, diary source %s)",
        settings.painlog_host,
        settings.painlog_port,
        settings.lexicon_locale,
        settings.diary_export_path or "in-memory",
    )
    create_app().run(
        transport="streamable-http",
        host=settings.painlog_host,
        port=settings.painlog_port,
    )


if __name__ == "__main__":
    run()
