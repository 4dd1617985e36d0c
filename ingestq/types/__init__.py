"""
Type definitions for the ingestion queue.
Contains the result/error model and message types shared by all modules.
"""

from ingestq.types.api import (
    DispatchResponse,
    HealthResponse,
)
from ingestq.types.error import (
    SimpleError,
    new_simple_bug,
    new_simple_error,
    simplify_error,
)
from ingestq.types.message import FetchRequest, JsonObject, JsonValue
from ingestq.types.result import Result

__all__ = [
    # Error model
    "SimpleError",
    "Result",
    "new_simple_error",
    "new_simple_bug",
    "simplify_error",
    # Message types
    "FetchRequest",
    "JsonObject",
    "JsonValue",
    # API types
    "DispatchResponse",
    "HealthResponse",
]
