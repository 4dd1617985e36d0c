"""
Worker process for consuming fetch requests.

The worker takes messages off the queue one at a time and passes each to
a handler. Delivery is at most once: a message whose handling fails is
logged and not redelivered.
"""

import asyncio
import logging
import signal
import time
from typing import Awaitable, Callable

from ingestq.config import get_settings
from ingestq.constants import LOG_KEY_ERROR, LOG_KEY_PAYLOAD, LOG_KEY_WORKER_ID, SPAN_HANDLE_MESSAGE
from ingestq.observability.logging import setup_logging
from ingestq.observability.metrics import get_metrics
from ingestq.observability.tracing import get_tracer
from ingestq.queue.base import Queue
from ingestq.queue.sqlite import LocalQueue
from ingestq.types.message import JsonValue
from ingestq.types.result import Result
from ingestq.worker.handlers import HandlerResult, handle_message

logger = logging.getLogger(__name__)

MessageHandler = Callable[[JsonValue], Awaitable[HandlerResult]]


class Worker:
    """
    Queue consumer that receives and handles messages.

    Features:
    - Blocking receive; an idle worker waits on the queue, not a timer
    - Graceful shutdown on SIGTERM/SIGINT, cancelling any pending receive
    - Pause after receive failures so a broken store isn't hammered
    """

    def __init__(
        self,
        queue: Queue,
        handler: MessageHandler | None = None,
        worker_id: str | None = None,
        poll_interval: float | None = None,
    ):
        """
        Initialize the worker.

        Args:
            queue: Queue to consume from.
            handler: Called with each received message. Defaults to the
                content type handler registry.
            worker_id: Unique worker identifier. Defaults to hostname + PID.
            poll_interval: Seconds to pause after a failed receive.
        """
        settings = get_settings()

        self.queue = queue
        self.handler = handler or handle_message
        self.worker_id = worker_id or settings.worker_id
        self.poll_interval = (
            settings.queue_poll_interval_seconds if poll_interval is None else poll_interval
        )

        self._running = False
        self._receive_task: asyncio.Task[Result[JsonValue]] | None = None
        self._metrics = get_metrics()

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the worker. Returns once the worker has been stopped."""
        logger.info("Worker starting", extra={LOG_KEY_WORKER_ID: self.worker_id})

        self._running = True

        while self._running:
            self._receive_task = asyncio.create_task(self.queue.receive())
            try:
                result = await self._receive_task
            except asyncio.CancelledError:
                # stop() cancels the pending receive; anything else is ours
                if self._running:
                    raise
                break
            finally:
                self._receive_task = None

            if result.err is not None:
                logger.error(
                    "Error receiving message from queue",
                    extra={
                        LOG_KEY_WORKER_ID: self.worker_id,
                        LOG_KEY_ERROR: result.err.model_dump(mode="json"),
                    },
                )
                self._metrics.record_receive_failure(self.worker_id, result.err.name)
                await asyncio.sleep(self.poll_interval)
                continue

            await self._handle(result.ok)

        logger.info("Worker stopped", extra={LOG_KEY_WORKER_ID: self.worker_id})

    async def stop(self) -> None:
        """Stop the worker gracefully. A message being handled is finished first."""
        logger.info("Worker stopping", extra={LOG_KEY_WORKER_ID: self.worker_id})
        self._running = False
        if self._receive_task is not None:
            self._receive_task.cancel()

    async def _handle(self, message: JsonValue) -> None:
        """
        Handle a single message.

        Handler exceptions are logged; the message is gone from the queue
        either way.
        """
        start_time = time.time()
        self._metrics.record_message_received(self.worker_id)

        with get_tracer().start_as_current_span(SPAN_HANDLE_MESSAGE) as span:
            span.set_attribute("worker_id", self.worker_id)

            try:
                outcome = await self.handler(message)
            except Exception:
                logger.exception(
                    "Exception handling message",
                    extra={LOG_KEY_WORKER_ID: self.worker_id, LOG_KEY_PAYLOAD: message},
                )
                status = "error"
            else:
                if outcome.success:
                    status = "succeeded"
                    logger.debug(
                        "Message handled",
                        extra={LOG_KEY_WORKER_ID: self.worker_id, "output": outcome.output},
                    )
                else:
                    status = "failed"
                    logger.warning(
                        "Message handling failed",
                        extra={
                            LOG_KEY_WORKER_ID: self.worker_id,
                            LOG_KEY_PAYLOAD: message,
                            "error": outcome.error,
                        },
                    )

            span.set_attribute("status", status)

        self._metrics.record_message_handled(
            worker_id=self.worker_id,
            status=status,
            duration_seconds=time.time() - start_time,
        )


async def run_async() -> None:
    """Run the worker asynchronously."""
    setup_logging()

    async with LocalQueue() as queue:
        connect_result = await queue.connect()
        if connect_result.err is not None:
            logger.error(
                "Unable to connect to queue",
                extra={LOG_KEY_ERROR: connect_result.err.model_dump(mode="json")},
            )
            return

        worker = Worker(queue)

        # Handle shutdown signals
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(
                sig,
                lambda: asyncio.create_task(worker.stop())
            )

        await worker.start()


def run() -> None:
    """Run the worker."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
