"""FastAPI application for the agent chat backend.

This module is a thin **presentation layer**.  Business logic lives in
``agentchat.application``; every service is built once in the lifespan and
reached through ``app.state.services``.
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from agentchat import __version__
from agentchat.config import Settings, get_settings
from agentchat.logging_config import setup_logging
from agentchat.presentation.routes import auth, chat, documents
from agentchat.services import Services, build_services
from agentchat.telemetry import instrument_agents, setup_telemetry

ServicesFactory = Callable[[Settings], Services]


def create_app(settings: Settings | None = None, services_factory: ServicesFactory | None = None) -> FastAPI:
    """Build the FastAPI app.

    Args:
        settings: Settings to use; ``get_settings()`` when omitted.
        services_factory: Builds the service container at startup.  Tests
            pass one that injects fake model backends.
    """
    settings = settings or get_settings()
    setup_logging(level=settings.log_level, json=settings.log_json)

    def default_factory(s: Settings) -> Services:
        return build_services(s, instrument=instrument_agents(s))

    factory = services_factory or default_factory

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Set up and tear down services around the application lifetime."""
        settings.validate_runtime()
        services = factory(settings)
        services.connect()
        app.state.settings = settings
        app.state.services = services
        logger.info("Application startup complete")
        yield
        await services.shutdown()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Agent Chat Backend",
        description="Streaming multi-step tool-calling chat with artifact documents.",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["x-vercel-ai-data-stream"],
    )
    app.include_router(chat.router)
    app.include_router(auth.router)
    app.include_router(documents.router)

    setup_telemetry(app, settings)
    return app


def run() -> None:
    """Console entrypoint: serve the app with uvicorn."""
    import uvicorn

    uvicorn.run("agentchat.main:create_app", factory=True, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
