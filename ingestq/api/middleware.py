"""
Request middleware: request ids, logging context and request metrics.
"""

import time
import uuid
from collections.abc import Awaitable, Callable

from fastapi import Request, Response

from ingestq.constants import LOG_KEY_REQUEST_ID, REQUEST_ID_HEADER
from ingestq.observability.logging import bind_context, clear_context
from ingestq.observability.metrics import get_metrics


async def request_context_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    """
    Bind a request id to the logging context for the duration of a request.

    A client supplied X-Request-ID is reused, otherwise one is generated.
    The id is echoed back on the response.
    """
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    request.state.request_id = request_id

    clear_context()
    bind_context(**{LOG_KEY_REQUEST_ID: request_id})

    start = time.perf_counter()
    try:
        response = await call_next(request)
    finally:
        clear_context()

    get_metrics().record_api_request(
        method=request.method,
        endpoint=request.url.path,
        status=response.status_code,
        duration_seconds=time.perf_counter() - start,
    )
    response.headers[REQUEST_ID_HEADER] = request_id
    return response
