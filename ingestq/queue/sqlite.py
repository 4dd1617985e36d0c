"""
SQLite-backed FIFO queue.

The reference Queue implementation. Messages live in a single table; a receive
claims the oldest row with one DELETE ... RETURNING statement, so the store's
own transaction is what guarantees a row is delivered at most once.
"""

import asyncio
import logging
from types import TracebackType
from typing import Any, Self

from sqlalchemy import Delete, Insert, delete, event, func, insert, select
from sqlalchemy.engine import URL, Row
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from ingestq.config import get_settings
from ingestq.constants import (
    ERROR_QUEUE_CONNECT,
    ERROR_QUEUE_DISCONNECT,
    ERROR_RECEIVE_FAILURE,
    ERROR_SEND_FAILURE,
    MEMORY_FILENAME,
)
from ingestq.queue.base import release
from ingestq.queue.codec import decode_message, encode_message
from ingestq.queue.models import Base, QueuedMessage
from ingestq.types.error import new_simple_error, simplify_error
from ingestq.types.message import JsonValue
from ingestq.types.result import Result

logger = logging.getLogger(__name__)


def _disable_driver_transactions(dbapi_connection: Any, connection_record: Any) -> None:
    # Stop the driver from emitting its own deferred BEGIN.
    dbapi_connection.isolation_level = None


def _begin_immediate(conn: Any) -> None:
    # Take the write lock up front; contention then waits on the busy timeout
    # instead of failing halfway through a claim.
    conn.exec_driver_sql("BEGIN IMMEDIATE")


async def _run_to_completion(future: asyncio.Future) -> None:
    """Wait until `future` is done, absorbing cancellations of the waiter."""
    while not future.done():
        try:
            await asyncio.shield(future)
        except asyncio.CancelledError:
            continue
        except Exception:
            # Left on the future for the caller to inspect.
            break


def build_claim_query() -> Delete:
    """Delete the row with the smallest id and return it."""
    oldest = select(func.min(QueuedMessage.id)).scalar_subquery()
    return (
        delete(QueuedMessage)
        .where(QueuedMessage.id == oldest)
        .returning(QueuedMessage.id, QueuedMessage.body)
    )


def build_insert_query() -> Insert:
    """Append a row. SQLite assigns the id unless one is given."""
    return insert(QueuedMessage)


class LocalQueue:
    """
    SQLite-backed FIFO queue.

    One instance owns exactly one store connection. Concurrent tasks using the
    same instance take turns on it; separate instances (or processes) pointed
    at the same file are serialized by SQLite's locking.

    A filename of ":memory:" or "" keeps the queue in memory for the lifetime
    of the connection.
    """

    def __init__(
        self,
        filename: str | None = None,
        *,
        poll_interval: float | None = None,
        busy_timeout: float | None = None,
    ):
        """
        Initialize the queue. No connection is made until first use.

        Args:
            filename: SQLite file backing the queue. Defaults to settings.
            poll_interval: Seconds to wait between claims on an empty queue.
            busy_timeout: Seconds to wait for a lock held by another connection.
        """
        settings = get_settings()

        self._filename = settings.queue_filename if filename is None else filename
        self._poll_interval = (
            settings.queue_poll_interval_seconds if poll_interval is None else poll_interval
        )
        self._busy_timeout = (
            settings.queue_busy_timeout_seconds if busy_timeout is None else busy_timeout
        )

        self._engine: AsyncEngine | None = None
        self._connection: AsyncConnection | None = None
        self._claim_query: Delete | None = None
        self._insert_query: Insert | None = None
        self._lock = asyncio.Lock()

    @property
    def filename(self) -> str:
        return self._filename

    @property
    def in_memory(self) -> bool:
        return self._filename in ("", MEMORY_FILENAME)

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    @property
    def poll_interval(self) -> float:
        return self._poll_interval

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await release(self)

    def _create_engine(self) -> AsyncEngine:
        connect_args = {"timeout": self._busy_timeout}
        if self.in_memory:
            # A single shared connection keeps the in-memory database alive.
            engine = create_async_engine(
                URL.create("sqlite+aiosqlite", database=MEMORY_FILENAME),
                poolclass=StaticPool,
                connect_args=connect_args,
            )
        else:
            engine = create_async_engine(
                URL.create("sqlite+aiosqlite", database=self._filename),
                poolclass=NullPool,
                connect_args=connect_args,
            )

        event.listen(engine.sync_engine, "connect", _disable_driver_transactions)
        event.listen(engine.sync_engine, "begin", _begin_immediate)
        return engine

    def _prepare(self, query: Any) -> Any:
        # Compiling against the live dialect surfaces unsupported constructs
        # (e.g. RETURNING on an old SQLite) at connect time.
        query.compile(dialect=self._engine.dialect)
        return query

    async def connect(self) -> Result[None]:
        """Open the store, create the schema and prepare the queries."""
        async with self._lock:
            return await self._connect_locked()

    async def _connect_locked(self) -> Result[None]:
        if self._connection is not None:
            return Result.success()

        def fail(message: str, e: Exception) -> Result[None]:
            return Result.failure(
                new_simple_error(
                    message,
                    name=ERROR_QUEUE_CONNECT,
                    cause=simplify_error(e),
                    context={"filename": self._filename},
                )
            )

        try:
            self._engine = self._create_engine()
            self._connection = await self._engine.connect()
        except Exception as e:
            await self._teardown_after_failure()
            return fail("unable to open underlying sqlite database", e)

        try:
            async with self._connection.begin():
                await self._connection.run_sync(Base.metadata.create_all)
        except Exception as e:
            await self._teardown_after_failure()
            return fail("unable to create underlying sqlite table", e)

        try:
            self._claim_query = self._prepare(build_claim_query())
        except Exception as e:
            await self._teardown_after_failure()
            return fail("unable to cache query used to receive messages", e)

        try:
            self._insert_query = self._prepare(build_insert_query())
        except Exception as e:
            await self._teardown_after_failure()
            return fail("unable to cache query used to send messages", e)

        logger.info("Queue connected", extra={"database": self._filename})
        return Result.success()

    async def send(self, message: JsonValue) -> Result[None]:
        """Append a message to the tail of the queue."""
        async with self._lock:
            connect_result = await self._connect_locked()
            if connect_result.err is not None:
                return connect_result

            encoded = encode_message(message)
            if encoded.err is not None:
                return Result.failure(encoded.err)

            try:
                async with self._connection.begin():
                    await self._connection.execute(self._insert_query, {"body": encoded.ok})
            except Exception as e:
                return Result.failure(
                    new_simple_error(
                        "unable to send message",
                        name=ERROR_SEND_FAILURE,
                        cause=simplify_error(e),
                    )
                )

        return Result.success()

    async def receive(self) -> Result[JsonValue]:
        """
        Claim the oldest message, polling until one is available.

        The claim deletes and returns the row in one transaction. Between
        empty claims the call sleeps for the poll interval; there is no
        overall deadline.

        A cancelled receive claims nothing: a claim already in flight runs to
        completion and any row it took is put back under its original id.
        """
        async with self._lock:
            connect_result = await self._connect_locked()
        if connect_result.err is not None:
            return Result.failure(connect_result.err)

        while True:
            async with self._lock:
                if self._connection is None:
                    return Result.failure(
                        new_simple_error(
                            "queue was disconnected while waiting for a message",
                            name=ERROR_RECEIVE_FAILURE,
                        )
                    )

                # Interrupting a statement would invalidate the connection.
                claim = asyncio.ensure_future(self._claim())
                try:
                    row = await asyncio.shield(claim)
                except asyncio.CancelledError:
                    await self._abandon_claim(claim)
                    raise
                except Exception as e:
                    return Result.failure(
                        new_simple_error(
                            "unable to get new message",
                            name=ERROR_RECEIVE_FAILURE,
                            cause=simplify_error(e),
                        )
                    )

            if row is not None:
                return decode_message(row.body)

            await asyncio.sleep(self._poll_interval)

    async def _claim(self) -> Row | None:
        async with self._connection.begin():
            rows = await self._connection.execute(self._claim_query)
            return rows.one_or_none()

    async def _abandon_claim(self, claim: "asyncio.Future[Row | None]") -> None:
        """
        Wait out a claim whose receiver went away, restoring what it took.

        Further cancellations of the receiver are held off until the row is
        back in the table; the caller re-raises once this returns.
        """
        await _run_to_completion(claim)
        # A failed claim took nothing.
        if claim.cancelled() or claim.exception() is not None:
            return

        row = claim.result()
        if row is None:
            return

        await _run_to_completion(asyncio.ensure_future(self._restore(row)))

    async def _restore(self, row: Row) -> None:
        try:
            async with self._connection.begin():
                await self._connection.execute(
                    self._insert_query, {"id": row.id, "body": row.body}
                )
        except Exception:
            logger.exception(
                "Unable to restore message claimed by an abandoned receive",
                extra={"database": self._filename, "message_id": row.id},
            )

    async def size(self) -> Result[int]:
        """Count the messages waiting in the queue."""
        async with self._lock:
            connect_result = await self._connect_locked()
            if connect_result.err is not None:
                return Result.failure(connect_result.err)

            try:
                async with self._connection.begin():
                    rows = await self._connection.execute(
                        select(func.count()).select_from(QueuedMessage)
                    )
                    return Result.success(rows.scalar_one())
            except Exception as e:
                return Result.failure(
                    new_simple_error(
                        "unable to count messages",
                        name=ERROR_RECEIVE_FAILURE,
                        cause=simplify_error(e),
                    )
                )

    async def disconnect(self) -> Result[None]:
        """Close the store connection. Succeeds if never connected."""
        async with self._lock:
            if self._engine is None:
                return Result.success()

            try:
                await self._teardown()
            except Exception as e:
                return Result.failure(
                    new_simple_error(
                        "unable to close underlying sqlite database",
                        name=ERROR_QUEUE_DISCONNECT,
                        cause=simplify_error(e),
                        context={"filename": self._filename},
                    )
                )

        logger.info("Queue disconnected", extra={"database": self._filename})
        return Result.success()

    async def _teardown(self) -> None:
        connection, engine = self._connection, self._engine
        self._connection = None
        self._engine = None
        self._claim_query = None
        self._insert_query = None

        try:
            if connection is not None:
                await connection.close()
        finally:
            if engine is not None:
                await engine.dispose()

    async def _teardown_after_failure(self) -> None:
        try:
            await self._teardown()
        except Exception:
            logger.exception(
                "Error closing sqlite database after failed connect",
                extra={"database": self._filename},
            )

    def __repr__(self) -> str:
        return f"LocalQueue(filename={self._filename!r}, connected={self.is_connected})"
