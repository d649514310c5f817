from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from loguru import logger

from ..services.orchestrator import AnalysisOrchestrator
from .routes import router
from .sessions import SessionManager
from .settings import Settings, get_settings


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure FastAPI instance."""
    settings = settings or get_settings()
    orchestrator = AnalysisOrchestrator(settings)
    sessions = SessionManager()

    @asynccontextmanager
    async def _lifespan(_: FastAPI) -> AsyncIterator[None]:
        try:
            statuses = await orchestrator.warmup()
            logger.info(
                "Worker warmup complete: {}",
                {name: status.ready for name, status in statuses.items()},
            )
        except Exception:  # noqa: BLE001
            logger.exception("Worker warmup failed")
        yield

    app = FastAPI(title="ScoreLens Worker", version="0.1.0", lifespan=_lifespan)
    app.state.settings = settings
    app.state.orchestrator = orchestrator
    app.state.session_manager = sessions
    app.include_router(router)
    return app


app = create_app()
