"""Entry point for the Contract Packet Wizard service.

Creates the FastAPI application, configures logging, and starts the
uvicorn server.
"""

from __future__ import annotations

import structlog
import uvicorn
from fastapi import FastAPI

from contract_packet.api import create_app
from contract_packet.config import Settings, get_settings
from contract_packet.logging_setup import setup_logging

logger = structlog.get_logger(__name__)


def build_app(settings: Settings | None = None) -> FastAPI:
    """Construct the fully-configured application."""
    settings = settings or get_settings()
    setup_logging(settings.log_level, json_logs=settings.environment != "development")

    app = create_app(settings)

    base_url = f"http://{settings.host}:{settings.port}"
    if settings.host == "0.0.0.0":
        base_url = f"http://localhost:{settings.port}"

    logger.info(
        "application_ready",
        service=settings.service_name,
        version=settings.service_version,
        state_store=settings.state_store_path or "memory",
        docs_url=f"{base_url}/docs",
    )

    return app


def main() -> None:
    """Launch the Contract Packet Wizard server."""
    settings = get_settings()
    app = build_app(settings)
    logger.info("server_starting", host=settings.host, port=settings.port)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
