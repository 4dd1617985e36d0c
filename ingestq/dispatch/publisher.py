"""
Bounded-retry publishing into a queue.

The sole entry point the ingestion path uses to commit validated work.
"""

import asyncio
import logging

from opentelemetry.trace import Status, StatusCode

from ingestq.config import get_settings
from ingestq.constants import (
    ERROR_PUBLISH_EXHAUSTED,
    LOG_KEY_ATTEMPT,
    LOG_KEY_ERROR,
    LOG_KEY_PAYLOAD,
    NON_RETRYABLE_ERRORS,
    SPAN_PUBLISH,
)
from ingestq.observability.metrics import get_metrics
from ingestq.observability.tracing import get_tracer
from ingestq.queue.base import Queue
from ingestq.types.error import SimpleError, new_simple_error
from ingestq.types.message import JsonValue
from ingestq.types.result import Result

logger = logging.getLogger(__name__)


def may_retry(err: SimpleError) -> bool:
    """
    Decide whether a failed send may be attempted again.

    Caller-input errors and bugs are never retried, nor is anything flagged
    as overloaded (even if also flagged retryable). An explicit
    `retryable=False` is honoured; an unset flag counts as retryable.
    """
    if err.name in NON_RETRYABLE_ERRORS:
        return False
    if err.overloaded:
        return False
    return err.retryable is not False


async def publish(
    queue: Queue,
    message: JsonValue,
    *,
    max_attempts: int | None = None,
    retry_delay: float | None = None,
) -> Result[int]:
    """
    Send a message, retrying failed attempts after a fixed delay.

    Every failed attempt is logged with the error, the payload and the
    1-based attempt number. A success logs once at debug level and stops.
    There is no backoff or jitter, and no delay after the final attempt.

    Args:
        queue: Queue to publish into.
        message: JSON value to send.
        max_attempts: Attempts before giving up. Defaults to settings (5).
        retry_delay: Seconds between attempts. Defaults to settings (0.5).

    Returns:
        Result holding the number of attempts used, or the error. Once every
        attempt has failed the error is PublishRetriesExhausted with the last
        send error as its cause. Non-retryable errors are returned as-is.
    """
    settings = get_settings()
    if max_attempts is None:
        max_attempts = settings.publish_max_attempts
    if retry_delay is None:
        retry_delay = settings.publish_retry_delay_seconds

    metrics = get_metrics()
    last_err: SimpleError | None = None

    with get_tracer().start_as_current_span(SPAN_PUBLISH) as span:
        for attempt in range(1, max_attempts + 1):
            result = await queue.send(message)
            metrics.record_publish_attempt(result.err is None)

            if result.err is None:
                span.set_attribute("publish.attempts", attempt)
                logger.debug(
                    "Published message to queue",
                    extra={LOG_KEY_PAYLOAD: message, LOG_KEY_ATTEMPT: attempt},
                )
                return Result.success(attempt)

            last_err = result.err
            logger.warning(
                "Error while publishing message to queue",
                extra={
                    LOG_KEY_ERROR: result.err.model_dump(mode="json"),
                    LOG_KEY_PAYLOAD: message,
                    LOG_KEY_ATTEMPT: attempt,
                },
            )

            if not may_retry(result.err):
                span.set_status(Status(StatusCode.ERROR, result.err.name))
                metrics.record_publish_failure(result.err.name)
                return Result.failure(result.err)

            if attempt < max_attempts:
                await asyncio.sleep(retry_delay)

        span.set_status(Status(StatusCode.ERROR, ERROR_PUBLISH_EXHAUSTED))

    metrics.record_publish_failure(ERROR_PUBLISH_EXHAUSTED)
    return Result.failure(
        new_simple_error(
            "unable to publish message to queue",
            name=ERROR_PUBLISH_EXHAUSTED,
            cause=last_err,
            context={"attempts": max_attempts},
        )
    )
