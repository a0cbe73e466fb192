"""Main FastAPI application."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bridge import __version__
from bridge.api.endpoints import router
from bridge.config import Settings
from bridge.container import BridgeContainer, build_container
from bridge.utils.logging import LogConfig, get_logger, setup_logging

logger = get_logger(__name__)


def create_app(container: BridgeContainer | None = None) -> FastAPI:
    """Create the application.

    Args:
        container: Pre-built components. When omitted, settings are loaded from
            the environment at startup and the container is built then.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if container is not None:
            app.state.container = container
            yield
            return

        settings = Settings.from_env()
        setup_logging(LogConfig(level=settings.log_level))
        app.state.container = build_container(settings)
        try:
            yield
        finally:
            await app.state.container.aclose()
            logger.info("Bridge shut down")

    app = FastAPI(
        title="Slack AI Bridge",
        description=(
            "Turns natural-language instructions from Slack or HTTP into Slack actions "
            "by letting a language model call Slack functions."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        openapi_tags=[
            {"name": "API", "description": "Process a natural-language instruction over HTTP (API key required)."},
            {"name": "Slack", "description": "Slack Events API receiver (signed requests only)."},
            {"name": "Health", "description": "Service health monitoring and status checks."},
        ],
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("bridge.main:app", host="0.0.0.0", port=8000, log_level="info")
