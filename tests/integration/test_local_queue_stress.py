"""
Stress tests for several LocalQueue instances sharing one SQLite file.
"""

import asyncio
import json
from collections import Counter
from pathlib import Path

import pytest

from ingestq.queue import LocalQueue

INSTANCES = 4
MESSAGES_PER_PRODUCER = 50
TIMEOUT = 60.0


class TestSharedFileStress:
    """Independent queue instances on one file act as one queue."""

    @pytest.mark.asyncio
    async def test_every_message_delivered_exactly_once(self, tmp_path: Path):
        """Test that concurrent producers and consumers neither lose nor duplicate messages."""
        filename = str(tmp_path / "shared.db")
        queues = [LocalQueue(filename, poll_interval=0.005) for _ in range(INSTANCES)]

        sent = [
            {"producer": p, "seq": i}
            for p in range(INSTANCES)
            for i in range(MESSAGES_PER_PRODUCER)
        ]

        async def produce(queue: LocalQueue, producer: int) -> None:
            for i in range(MESSAGES_PER_PRODUCER):
                result = await queue.send({"producer": producer, "seq": i})
                assert result.err is None

        async def consume(queue: LocalQueue, count: int) -> list:
            received = []
            for _ in range(count):
                result = await queue.receive()
                assert result.err is None
                received.append(result.ok)
            return received

        try:
            # Create the schema once so instances don't race to create it.
            assert (await queues[0].connect()).err is None

            results = await asyncio.wait_for(
                asyncio.gather(
                    *(produce(q, p) for p, q in enumerate(queues)),
                    *(consume(q, MESSAGES_PER_PRODUCER) for q in queues),
                ),
                TIMEOUT,
            )
        finally:
            for queue in queues:
                await queue.disconnect()

        received = [message for batch in results[INSTANCES:] for message in batch]

        assert len(received) == len(sent)
        assert Counter(json.dumps(m, sort_keys=True) for m in received) == Counter(
            json.dumps(m, sort_keys=True) for m in sent
        )

    @pytest.mark.asyncio
    async def test_each_producer_order_is_preserved(self, tmp_path: Path):
        """Test that a single consumer sees each producer's messages in send order."""
        filename = str(tmp_path / "ordered.db")
        producers = [LocalQueue(filename) for _ in range(INSTANCES)]
        consumer = LocalQueue(filename)

        try:
            assert (await consumer.connect()).err is None

            async def produce(queue: LocalQueue, producer: int) -> None:
                for i in range(MESSAGES_PER_PRODUCER):
                    assert (await queue.send({"producer": producer, "seq": i})).err is None

            await asyncio.wait_for(
                asyncio.gather(*(produce(q, p) for p, q in enumerate(producers))),
                TIMEOUT,
            )

            size = await consumer.size()
            assert size.ok == INSTANCES * MESSAGES_PER_PRODUCER

            seen: dict[int, list[int]] = {p: [] for p in range(INSTANCES)}
            for _ in range(INSTANCES * MESSAGES_PER_PRODUCER):
                result = await asyncio.wait_for(consumer.receive(), TIMEOUT)
                seen[result.ok["producer"]].append(result.ok["seq"])
        finally:
            for queue in [*producers, consumer]:
                await queue.disconnect()

        for sequence in seen.values():
            assert sequence == list(range(MESSAGES_PER_PRODUCER))
