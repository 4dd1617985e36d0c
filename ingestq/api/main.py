"""
FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from starlette.middleware.base import BaseHTTPMiddleware

from ingestq import __version__
from ingestq.api.middleware import request_context_middleware
from ingestq.api.routes import dispatch_router, health_router
from ingestq.config import get_settings
from ingestq.observability.logging import setup_logging
from ingestq.observability.metrics import setup_metrics
from ingestq.observability.tracing import instrument_fastapi, setup_tracing
from ingestq.queue.base import Queue
from ingestq.queue.sqlite import LocalQueue

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Owns the queue for the lifetime of the app: it is connected on startup
    and disconnected on every shutdown path.
    """
    setup_logging()
    setup_metrics()
    setup_tracing()

    async with app.state.queue as queue:
        result = await queue.connect()
        if result.err is not None:
            logger.error(
                "Unable to connect queue on startup",
                extra={"err": result.err.model_dump(mode="json")},
            )
        logger.info("Application started")

        yield

    logger.info("Application shutdown")


def create_app(queue: Queue | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        queue: Queue to publish into. Defaults to a LocalQueue on the
            configured file.

    Returns:
        FastAPI: The configured application instance.
    """
    app = FastAPI(
        title="Ingestion Queue API",
        description="Accepts URLs and queues them for fetching",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Queues connect lazily, so the app is usable even without lifespan events.
    app.state.queue = queue if queue is not None else LocalQueue()

    app.add_middleware(
        BaseHTTPMiddleware,
        dispatch=request_context_middleware,
    )

    app.include_router(health_router)
    app.include_router(dispatch_router)

    instrument_fastapi(app)

    return app


def run() -> None:
    """Run the API server."""
    settings = get_settings()
    app = create_app()

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


# Create app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    run()
