"""
Message type definitions for work passed through the queue.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, JsonValue

from ingestq.constants import ContentType

# A JSON object, the usual shape of a queued message
JsonObject = dict[str, Any]


class FetchRequest(BaseModel):
    """
    Unit of work published by the ingestion endpoint.
    Asks a downstream fetcher to retrieve the content behind `url`.
    """

    model_config = ConfigDict(populate_by_name=True)

    url: str
    content_type: ContentType = Field(alias="contentType")

    def to_message(self) -> JsonObject:
        """Render the request as a JSON object for the queue."""
        return self.model_dump(mode="json", by_alias=True)


__all__ = ["FetchRequest", "JsonObject", "JsonValue"]
