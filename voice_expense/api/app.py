"""
FastAPI application entry point.

Run with:
    uvicorn --factory voice_expense.api.app:create_app
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI

from voice_expense import __version__
from voice_expense.api.errors import register_error_handlers
from voice_expense.api.routes import router
from voice_expense.audit import configure_logging
from voice_expense.config import AppSettings, get_settings
from voice_expense.pipeline import AppComponents, create_app_components

logger = structlog.get_logger(__name__)


def create_app(
    components: Optional[AppComponents] = None,
    app_settings: Optional[AppSettings] = None,
) -> FastAPI:
    """Build the API. Components are created from settings unless given."""
    app_settings = app_settings or get_settings().app
    configure_logging(debug=app_settings.debug_mode)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("api_started", environment=app_settings.app_environment)
        yield
        runner = app.state.components.runner
        if runner.pending_count:
            logger.info("api_draining_pipelines", pending=runner.pending_count)
        await runner.drain()

    app = FastAPI(
        title="Voice Expense API",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.components = components or create_app_components()
    app.state.app_settings = app_settings

    register_error_handlers(app)
    app.include_router(router)

    @app.get("/health", tags=["health"])
    async def health() -> dict:
        return {"status": "ok"}

    return app
