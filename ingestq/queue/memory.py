"""
In-process Queue implementation.

Keeps encoded messages in a deque and wakes waiting receivers when a message
arrives instead of polling. Useful as a test double and for single-process
deployments that don't need persistence.
"""

import asyncio
from collections import deque
from types import TracebackType
from typing import Self

from ingestq.constants import ERROR_RECEIVE_FAILURE
from ingestq.queue.base import release
from ingestq.queue.codec import decode_message, encode_message
from ingestq.types.error import new_simple_error
from ingestq.types.message import JsonValue
from ingestq.types.result import Result


class MemoryQueue:
    """
    In-memory FIFO queue. Messages are held as their JSON encoding.

    Like a LocalQueue on ":memory:", contents last only as long as the
    connection: disconnecting drops them and fails any pending receive.
    """

    def __init__(self) -> None:
        self._messages: deque[str] = deque()
        self._available = asyncio.Condition()
        self._connected = False
        # Bumped on every disconnect so waiting receivers notice it
        self._generation = 0

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await release(self)

    async def connect(self) -> Result[None]:
        self._connected = True
        return Result.success()

    async def disconnect(self) -> Result[None]:
        async with self._available:
            if self._connected:
                self._connected = False
                self._messages.clear()
                self._generation += 1
                self._available.notify_all()
        return Result.success()

    async def send(self, message: JsonValue) -> Result[None]:
        self._connected = True

        encoded = encode_message(message)
        if encoded.err is not None:
            return Result.failure(encoded.err)

        async with self._available:
            self._messages.append(encoded.ok)
            self._available.notify_all()

        return Result.success()

    async def receive(self) -> Result[JsonValue]:
        self._connected = True

        async with self._available:
            generation = self._generation
            await self._available.wait_for(
                lambda: len(self._messages) > 0 or self._generation != generation
            )
            if self._generation != generation:
                return Result.failure(
                    new_simple_error(
                        "queue was disconnected while waiting for a message",
                        name=ERROR_RECEIVE_FAILURE,
                    )
                )
            body = self._messages.popleft()

        return decode_message(body)

    async def size(self) -> Result[int]:
        return Result.success(len(self._messages))
