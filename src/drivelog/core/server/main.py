"""drivelog server entry point — ``python -m drivelog.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from drivelog.core.config.settings import get_settings
from drivelog.core.server.app import create_app


def _is_loopback_host(host: str) -> bool:
    if host in {"localhost"}:
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def run() -> None:
    """Start the drivelog MCP server with Streamable HTTP transport."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.drivelog_log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    logger = logging.getLogger(__name__)
    if not settings.drivelog_allow_insecure_bind and not _is_loopback_host(settings.drivelog_host):
        raise RuntimeError(
            "Refusing to bind drivelog to a non-loopback host without an auth layer. "
            "Set DRIVELOG_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )
    logger.info(
        "Starting drivelog server on %s:%d",
        settings.drivelog_host,
        settings.drivelog_port,
    )

    mcp = create_app()
    mcp.run(
        transport="streamable-http",
        host=settings.drivelog_host,
        port=settings.drivelog_port,
    )


if __name__ == "__main__":
    run()
