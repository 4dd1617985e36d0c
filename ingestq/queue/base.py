"""
Queue capability contract.

Backends (the SQLite reference queue, the in-memory double, a hosted broker)
satisfy this protocol structurally. Callers depend on `Queue` only.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from types import TracebackType
from typing import Protocol, Self, runtime_checkable

from ingestq.types.message import JsonValue
from ingestq.types.result import Result

logger = logging.getLogger(__name__)


@runtime_checkable
class Queue(Protocol):
    """
    FIFO queue for buffered work passing.

    Each message is a JSON value and is consumed by exactly one receiver.
    Every operation reports failure through the returned Result.
    Implementations are async context managers whose exit disconnects.
    """

    @property
    def is_connected(self) -> bool:
        """Whether the backing resource is currently held."""
        ...

    async def connect(self) -> Result[None]:
        """
        Initiate a connection to the queue.

        May be a no-op depending on the backend, but should always be called.
        Calling it while already connected must be harmless.
        """
        ...

    async def disconnect(self) -> Result[None]:
        """
        Shut down the connection to the queue.

        Succeeds without doing anything if the queue was never connected.
        """
        ...

    async def send(self, message: JsonValue) -> Result[None]:
        """
        Send a message onto the tail of the queue.

        Args:
            message: Message to send. Must be JSON serializable, otherwise a
                MessageMustBeJson error is returned and nothing is stored.
        """
        ...

    async def receive(self) -> Result[JsonValue]:
        """
        Remove and return the oldest message.

        Waits without deadline until a message is available. Wrap in
        `asyncio.wait_for` to bound the wait; abandoning it claims nothing.
        Disconnecting the queue fails a pending receive with ReceiveFailure.
        """
        ...

    async def size(self) -> Result[int]:
        """Count the messages waiting to be received."""
        ...

    async def __aenter__(self) -> Self:
        ...

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        ...


async def release(queue: Queue) -> None:
    """Disconnect a queue, logging instead of raising if that fails."""
    result = await queue.disconnect()
    if result.err is not None:
        logger.warning(
            "Error while disconnecting queue",
            extra={"err": result.err.model_dump(mode="json")},
        )


@asynccontextmanager
async def connected(queue: Queue) -> AsyncGenerator[Result[Queue], None]:
    """
    Connect a queue for the duration of a block.

    Yields the connect Result; the queue itself is in `ok` on success.
    The queue is disconnected on every exit path, including a failed connect.

    Example:
        async with connected(LocalQueue("work.db")) as result:
            if result.err is not None:
                ...
            await result.ok.send({"hello": "world"})
    """
    connect_result = await queue.connect()
    try:
        if connect_result.err is not None:
            yield Result.failure(connect_result.err)
        else:
            yield Result.success(queue)
    finally:
        await release(queue)
