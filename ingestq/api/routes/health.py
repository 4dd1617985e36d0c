"""
Health check routes.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from ingestq import __version__
from ingestq.api.dependencies import get_queue
from ingestq.observability.metrics import get_metrics
from ingestq.queue.base import Queue
from ingestq.types.api import HealthResponse

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Report service status and whether the queue is connected.",
)
async def health_check(queue: Queue = Depends(get_queue)) -> HealthResponse:
    """
    Perform a health check.

    The queue connects lazily, so "idle" just means nothing has used it yet.
    """
    return HealthResponse(
        status="healthy",
        version=__version__,
        queue="connected" if queue.is_connected else "idle",
        timestamp=datetime.now(timezone.utc),
    )


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check if the service is ready to receive traffic.",
)
async def readiness_check(queue: Queue = Depends(get_queue)) -> dict:
    """
    Readiness probe endpoint.

    Connects the queue if needed; ready once the connection is established.
    """
    result = await queue.connect()
    if result.err is not None:
        return {"ready": False, "error": result.err.name}
    return {"ready": True}


@router.get(
    "/live",
    summary="Liveness check",
    description="Check if the service is alive.",
)
async def liveness_check() -> dict:
    """Liveness probe endpoint."""
    return {"alive": True}


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics.",
)
async def metrics() -> Response:
    """Expose Prometheus metrics."""
    metrics_collector = get_metrics()
    return Response(
        content=metrics_collector.get_metrics(),
        media_type=metrics_collector.get_content_type(),
    )
