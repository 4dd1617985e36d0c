"""
API request and response type definitions.
"""

from datetime import datetime

from pydantic import BaseModel

from ingestq.constants import ContentType


class DispatchResponse(BaseModel):
    """Response body after a URL was published to the queue."""

    url: str
    content_type: ContentType
    attempts: int
    message: str = "URL dispatched"


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    queue: str
    timestamp: datetime

