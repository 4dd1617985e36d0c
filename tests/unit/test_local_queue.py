"""
Unit tests for the SQLite-backed queue.
"""

import asyncio
import logging
from pathlib import Path

import pytest
from sqlalchemy import text

from ingestq.constants import (
    ERROR_QUEUE_CONNECT,
    ERROR_RECEIVE_FAILURE,
)
from ingestq.queue import LocalQueue, MemoryQueue, connected

POLL_INTERVAL = 0.01


class TestLocalQueueConfiguration:
    """Tests for construction and properties."""

    def test_defaults_from_settings(self, monkeypatch: pytest.MonkeyPatch):
        """Test that unspecified options come from configuration."""
        monkeypatch.setenv("QUEUE_POLL_INTERVAL_SECONDS", "0.2")

        queue = LocalQueue()

        assert queue.filename == ":memory:"
        assert queue.in_memory is True
        assert queue.poll_interval == 0.2
        assert queue.is_connected is False

    @pytest.mark.parametrize("filename, in_memory", [(":memory:", True), ("", True), ("q.db", False)])
    def test_in_memory(self, filename: str, in_memory: bool):
        """Test which filenames keep the queue in memory."""
        assert LocalQueue(filename).in_memory is in_memory

    def test_repr(self):
        """Test the debug representation."""
        assert repr(LocalQueue("q.db")) == "LocalQueue(filename='q.db', connected=False)"


class TestLocalQueueConnect:
    """Tests for connection handling."""

    @pytest.mark.asyncio
    async def test_unopenable_file(self, tmp_path: Path):
        """Test that a database that can't be opened is reported, not raised."""
        filename = str(tmp_path / "missing" / "dir" / "queue.db")
        queue = LocalQueue(filename)

        result = await queue.connect()

        assert result.err is not None
        assert result.err.name == ERROR_QUEUE_CONNECT
        assert result.err.message == "unable to open underlying sqlite database"
        assert result.err.context == {"filename": filename}
        assert result.err.cause is not None
        assert queue.is_connected is False

    @pytest.mark.asyncio
    async def test_send_reports_connect_failure(self, tmp_path: Path):
        """Test that operations surface the connect error."""
        queue = LocalQueue(str(tmp_path / "missing" / "queue.db"))

        result = await queue.send({"a": 1})

        assert result.err.name == ERROR_QUEUE_CONNECT

    @pytest.mark.asyncio
    async def test_claim_query_preparation_failure(self, monkeypatch: pytest.MonkeyPatch):
        """Test that a receive query that can't be built fails the connect."""
        def broken() -> None:
            raise RuntimeError("no RETURNING support")

        monkeypatch.setattr("ingestq.queue.sqlite.build_claim_query", broken)
        queue = LocalQueue(":memory:")

        result = await queue.connect()

        assert result.err.name == ERROR_QUEUE_CONNECT
        assert result.err.message == "unable to cache query used to receive messages"
        assert result.err.cause.name == "RuntimeError"
        assert queue.is_connected is False

    @pytest.mark.asyncio
    async def test_insert_query_preparation_failure(self, monkeypatch: pytest.MonkeyPatch):
        """Test that a send query that can't be built fails the connect."""
        def broken() -> None:
            raise RuntimeError("unsupported")

        monkeypatch.setattr("ingestq.queue.sqlite.build_insert_query", broken)
        queue = LocalQueue(":memory:")

        result = await queue.connect()

        assert result.err.message == "unable to cache query used to send messages"
        assert queue.is_connected is False

    @pytest.mark.asyncio
    async def test_connect_is_idempotent(self, local_queue: LocalQueue):
        """Test that connecting twice keeps the existing connection and data."""
        assert (await local_queue.connect()).err is None
        assert (await local_queue.send("kept")).err is None

        assert (await local_queue.connect()).err is None

        assert (await local_queue.size()).ok == 1

    @pytest.mark.asyncio
    async def test_context_manager_disconnects(self, queue_file: str):
        """Test that leaving the block releases the connection."""
        async with LocalQueue(queue_file) as queue:
            assert (await queue.send("x")).err is None
            assert queue.is_connected is True

        assert queue.is_connected is False


class TestLocalQueueMessages:
    """Tests for send and receive."""

    @pytest.mark.asyncio
    async def test_receive_removes_message(self, local_queue: LocalQueue):
        """Test that a received message is gone from the store."""
        await local_queue.send({"n": 1})
        await local_queue.send({"n": 2})

        result = await local_queue.receive()

        assert result.ok == {"n": 1}
        assert (await local_queue.size()).ok == 1

    @pytest.mark.asyncio
    async def test_file_persists_across_instances(self, queue_file: str):
        """Test that messages outlive the instance that sent them."""
        async with LocalQueue(queue_file) as producer:
            assert (await producer.send({"persisted": True})).err is None

        async with LocalQueue(queue_file, poll_interval=POLL_INTERVAL) as consumer:
            result = await asyncio.wait_for(consumer.receive(), 5)

        assert result.ok == {"persisted": True}

    @pytest.mark.asyncio
    async def test_reconnects_after_disconnect(self, file_queue: LocalQueue):
        """Test that using a disconnected queue connects it again."""
        await file_queue.send("first")
        assert (await file_queue.disconnect()).err is None

        assert (await file_queue.send("second")).err is None

        assert file_queue.is_connected is True
        assert (await file_queue.size()).ok == 2

    @pytest.mark.asyncio
    async def test_in_memory_contents_end_with_connection(self, local_queue: LocalQueue):
        """Test that an in-memory queue starts empty after reconnecting."""
        await local_queue.send("lost")
        await local_queue.disconnect()

        assert (await local_queue.size()).ok == 0

    @pytest.mark.asyncio
    async def test_in_memory_queues_are_independent(self):
        """Test that two in-memory queues don't share storage."""
        async with LocalQueue(":memory:") as a, LocalQueue(":memory:") as b:
            await a.send("only in a")

            assert (await a.size()).ok == 1
            assert (await b.size()).ok == 0

    @pytest.mark.asyncio
    async def test_abandoned_receive_claims_nothing(self, local_queue: LocalQueue):
        """Test that a receive cancelled by a timeout leaves later messages alone."""
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(local_queue.receive(), POLL_INTERVAL * 5)

        await local_queue.send("after timeout")

        assert (await local_queue.size()).ok == 1
        result = await asyncio.wait_for(local_queue.receive(), 5)
        assert result.ok == "after timeout"

    @pytest.mark.asyncio
    async def test_cancelled_claim_is_restored(
        self, local_queue: LocalQueue, monkeypatch: pytest.MonkeyPatch
    ):
        """Test that a message claimed by an abandoned receive goes back in place."""
        await local_queue.send("first")
        await local_queue.send("second")

        original_claim = LocalQueue._claim

        async def slow_claim(self):
            row = await original_claim(self)
            await asyncio.sleep(0.05)
            return row

        monkeypatch.setattr(LocalQueue, "_claim", slow_claim)

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(local_queue.receive(), 0.01)

        monkeypatch.setattr(LocalQueue, "_claim", original_claim)

        assert (await local_queue.size()).ok == 2
        assert (await local_queue.receive()).ok == "first"
        assert (await local_queue.receive()).ok == "second"

    @pytest.mark.asyncio
    async def test_repeatedly_cancelled_claim_is_restored(
        self, local_queue: LocalQueue, monkeypatch: pytest.MonkeyPatch
    ):
        """Test that cancelling a receive again while it is being abandoned loses nothing."""
        await local_queue.send({"n": 1})

        original_claim = LocalQueue._claim

        async def slow_claim(self):
            row = await original_claim(self)
            await asyncio.sleep(0.05)
            return row

        monkeypatch.setattr(LocalQueue, "_claim", slow_claim)

        pending = asyncio.create_task(local_queue.receive())
        await asyncio.sleep(0.01)
        pending.cancel()
        await asyncio.sleep(0.01)
        pending.cancel()

        with pytest.raises(asyncio.CancelledError):
            await pending

        monkeypatch.setattr(LocalQueue, "_claim", original_claim)

        assert (await local_queue.size()).ok == 1
        result = await asyncio.wait_for(local_queue.receive(), 5)
        assert result.ok == {"n": 1}

    @pytest.mark.asyncio
    async def test_disconnect_while_waiting(self, local_queue: LocalQueue):
        """Test that a pending receive fails once the queue is disconnected."""
        assert (await local_queue.connect()).err is None
        pending = asyncio.create_task(local_queue.receive())
        await asyncio.sleep(POLL_INTERVAL * 3)

        assert (await local_queue.disconnect()).err is None
        result = await asyncio.wait_for(pending, 5)

        assert result.err.name == ERROR_RECEIVE_FAILURE
        assert result.err.message == "queue was disconnected while waiting for a message"

    @pytest.mark.asyncio
    async def test_claim_failure(self, monkeypatch: pytest.MonkeyPatch):
        """Test that a claim the store rejects is reported as a receive failure."""
        monkeypatch.setattr(
            "ingestq.queue.sqlite.build_claim_query",
            lambda: text("DELETE FROM missing_table RETURNING body"),
        )

        async with LocalQueue(":memory:") as queue:
            result = await queue.receive()

        assert result.err.name == ERROR_RECEIVE_FAILURE
        assert result.err.message == "unable to get new message"
        assert result.err.cause is not None


class TestConnected:
    """Tests for the connected() helper."""

    @pytest.mark.asyncio
    async def test_yields_connected_queue(self):
        """Test that the queue is usable inside the block and released after."""
        queue = LocalQueue(":memory:")

        async with connected(queue) as result:
            assert result.err is None
            assert result.ok is queue
            assert queue.is_connected is True

        assert queue.is_connected is False

    @pytest.mark.asyncio
    async def test_yields_connect_error(self, tmp_path: Path):
        """Test that a failed connect is handed to the block instead of raised."""
        queue = LocalQueue(str(tmp_path / "missing" / "queue.db"))

        async with connected(queue) as result:
            assert result.ok is None
            assert result.err.name == ERROR_QUEUE_CONNECT

        assert queue.is_connected is False

    @pytest.mark.asyncio
    async def test_releases_on_exception(self):
        """Test that the queue is disconnected when the block raises."""
        queue = MemoryQueue()

        with pytest.raises(RuntimeError):
            async with connected(queue):
                raise RuntimeError("boom")

        assert queue.is_connected is False

    @pytest.mark.asyncio
    async def test_logs_disconnect_failure(self, caplog: pytest.LogCaptureFixture):
        """Test that a failed disconnect is logged rather than raised."""
        from ingestq.types.error import new_simple_error
        from ingestq.types.result import Result

        class StuckQueue(MemoryQueue):
            async def disconnect(self):
                return Result.failure(new_simple_error("stuck"))

        caplog.set_level(logging.WARNING, logger="ingestq.queue.base")

        async with connected(StuckQueue()) as result:
            assert result.err is None

        [record] = [r for r in caplog.records if r.name == "ingestq.queue.base"]
        assert record.err["message"] == "stuck"
