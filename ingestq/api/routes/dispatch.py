"""
Dispatch routes: accept URLs and publish them to the fetch queue.
"""

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ingestq.api.dependencies import get_queue
from ingestq.constants import LOG_KEY_ERROR, RESPONSE_UNKNOWN_CONTENT_TYPE
from ingestq.dispatch.publisher import publish
from ingestq.dispatch.urls import inspect_url
from ingestq.observability.metrics import get_metrics
from ingestq.queue.base import Queue
from ingestq.types.api import DispatchResponse
from ingestq.types.message import FetchRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Dispatch"])


@router.post(
    "/",
    response_model=DispatchResponse,
    status_code=status.HTTP_200_OK,
    summary="Dispatch a URL",
    description="Classify the URL in the request body and queue it for fetching.",
)
async def dispatch_url(
    request: Request,
    queue: Queue = Depends(get_queue),
) -> DispatchResponse:
    """
    Dispatch a URL.

    The raw request body is the URL. URLs that don't classify as a known
    content type are rejected; accepted ones are published with retries.

    Args:
        request: The incoming request.
        queue: Queue that receives fetch requests.

    Returns:
        DispatchResponse describing what was queued.

    Raises:
        HTTPException: 400 if the URL is rejected, 500 if publishing failed.
    """
    url = (await request.body()).decode("utf-8", errors="replace")

    inspection = inspect_url(url)
    if inspection.content_type is None:
        logger.info(
            "Rejected URL",
            extra={
                "url": url,
                "checks": {str(name): asdict(outcome) for name, outcome in inspection.checks.items()},
            },
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=RESPONSE_UNKNOWN_CONTENT_TYPE,
        )

    fetch_request = FetchRequest(url=url, content_type=inspection.content_type)

    result = await publish(queue, fetch_request.to_message())
    if result.err is not None:
        logger.error(
            "Unable to publish fetch request",
            extra={LOG_KEY_ERROR: result.err.model_dump(mode="json")},
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=result.err.model_dump(mode="json"),
        )

    get_metrics().record_message_sent(fetch_request.content_type.value)

    return DispatchResponse(
        url=url,
        content_type=fetch_request.content_type,
        attempts=result.ok,
    )
