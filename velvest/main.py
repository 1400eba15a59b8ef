"""
Velvest - FastAPI Application Entry Point

Owns the session's engine and ingest pipeline, and exposes snapshots to a
presentation client over HTTP.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI

from velvest import __version__
from velvest.analysis.engine import AnalysisEngine, EngineConfig
from velvest.analysis.pipeline import IngestPipeline
from velvest.api.routes import router as api_router
from velvest.config import Settings, settings as default_settings
from velvest.logging_config import configure_logging

logger = structlog.get_logger(__name__)


# =============================================================================
# Application Factory
# =============================================================================


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Build the HTTP app.

    The engine and pipeline are created when the app starts and stopped on
    shutdown. Records arrive through POST /api/replay, or from a capture
    producer attached to app.state.pipeline.
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        # Startup
        engine = AnalysisEngine(EngineConfig.from_settings(settings))
        pipeline = IngestPipeline(engine, queue_size=settings.queue_size).start()
        app.state.engine = engine
        app.state.pipeline = pipeline

        logger.info(
            "velvest_starting",
            version=__version__,
            host=settings.host,
            port=settings.port,
            suspicious_ports=sorted(settings.suspicious_ports),
            log_capacity=settings.log_capacity,
        )

        yield

        # Shutdown
        pipeline.stop(drain=False, timeout=5.0)
        logger.info("velvest_shutdown")

    app = FastAPI(
        title="Velvest",
        description="Live network traffic counters, top talkers and anomaly log",
        version=__version__,
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health_check() -> dict:
        """Service status."""
        pipeline = getattr(app.state, "pipeline", None)
        return {
            "status": "healthy",
            "service": "velvest",
            "version": __version__,
            "pipeline_running": bool(pipeline and pipeline.running),
        }

    app.include_router(api_router, prefix="/api")
    return app


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    configure_logging(default_settings)
    uvicorn.run(
        create_app(),
        host=default_settings.host,
        port=default_settings.port,
        log_level=default_settings.log_level.lower(),
    )
