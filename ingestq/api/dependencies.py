"""
FastAPI dependencies.
"""

from fastapi import Request

from ingestq.queue.base import Queue


def get_queue(request: Request) -> Queue:
    """Return the queue owned by the running application."""
    return request.app.state.queue
