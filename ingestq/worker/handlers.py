"""
Message handler registry and implementations.

Messages are consumed at most once - a message whose handler fails is
logged and dropped, never put back on the queue.
"""

import logging
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ValidationError

from ingestq.constants import ContentType
from ingestq.types.message import FetchRequest, JsonValue

logger = logging.getLogger(__name__)


class HandlerResult(BaseModel):
    """Outcome of handling one message."""

    success: bool
    output: dict[str, Any] | None = None
    error: str | None = None


# Type alias for fetch request handler functions
FetchHandler = Callable[[FetchRequest], Awaitable[HandlerResult]]

# Handler registry
_handlers: dict[str, FetchHandler] = {}


def register_handler(content_type: str) -> Callable[[FetchHandler], FetchHandler]:
    """
    Decorator to register a handler for a content type.

    Args:
        content_type: The content type this handler processes.

    Returns:
        Decorator function.

    Example:
        @register_handler(ContentType.TWITTER_POST)
        async def handle_twitter_post(request: FetchRequest) -> HandlerResult:
            ...
    """
    def decorator(handler: FetchHandler) -> FetchHandler:
        _handlers[str(content_type)] = handler
        logger.debug(f"Registered handler for content type: {content_type}")
        return handler
    return decorator


def get_handler(content_type: str) -> FetchHandler | None:
    """Get the handler for a content type, or None if not found."""
    return _handlers.get(str(content_type))


def list_handlers() -> list[str]:
    """List all registered content types."""
    return list(_handlers.keys())


@register_handler(ContentType.TWITTER_POST)
async def handle_twitter_post(request: FetchRequest) -> HandlerResult:
    """
    Accept a request to fetch a single post.

    Fetching is done by a downstream service; here the request is only
    acknowledged.
    """
    logger.info("Fetch requested", extra={"url": request.url})
    return HandlerResult(
        success=True,
        output={"url": request.url, "content_type": request.content_type.value},
    )


async def handle_message(message: JsonValue) -> HandlerResult:
    """
    Handle a received message using the appropriate handler.

    Args:
        message: The decoded message taken off the queue.

    Returns:
        HandlerResult from the handler, or a failed result if the message
        isn't a fetch request, has no handler, or the handler raised.
    """
    try:
        request = FetchRequest.model_validate(message)
    except ValidationError as e:
        logger.warning(
            "Received message is not a fetch request",
            extra={"payload": message, "error": str(e)},
        )
        return HandlerResult(success=False, error="Message is not a fetch request")

    handler = get_handler(request.content_type)
    if handler is None:
        logger.error(f"No handler for content type: {request.content_type}")
        return HandlerResult(
            success=False,
            error=f"No handler registered for content type: {request.content_type}",
        )

    try:
        return await handler(request)
    except Exception as e:
        logger.exception(
            "Handler raised exception",
            extra={"url": request.url, "error": str(e)},
        )
        return HandlerResult(success=False, error=f"Handler exception: {e}")
