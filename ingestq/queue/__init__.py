"""
Queue module.
Contains the queue contract and its backends.
"""

from ingestq.queue.base import Queue, connected, release
from ingestq.queue.memory import MemoryQueue
from ingestq.queue.sqlite import LocalQueue

__all__ = [
    "Queue",
    "connected",
    "release",
    "LocalQueue",
    "MemoryQueue",
]
