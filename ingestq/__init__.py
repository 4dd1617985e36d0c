"""
Ingestion Queue

Decouples an ingestion endpoint from downstream work through a durable FIFO queue
with atomic claim-on-dequeue and bounded-retry publishing.
"""

__version__ = "1.0.0"
