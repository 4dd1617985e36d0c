"""
Wire codec for queued messages.

Each stored record is the exact JSON encoding of the caller's message. Encoding
is strict: anything that would not decode back to an equal value is rejected
before it can reach storage.
"""

import json
from typing import Any

from ingestq.constants import ERROR_MESSAGE_MUST_BE_JSON
from ingestq.types.error import new_simple_bug, new_simple_error, simplify_error
from ingestq.types.message import JsonValue
from ingestq.types.result import Result


def encode_message(message: Any) -> Result[str]:
    """
    Encode a message as JSON text.

    Rejects NaN and infinities, unencodable types, circular structures, and
    values that survive encoding but decode to something else (tuples,
    non-string keys).

    Returns:
        Result holding the encoded text, or a MessageMustBeJson error.
    """
    try:
        encoded = json.dumps(message, allow_nan=False, separators=(",", ":"))
    except (TypeError, ValueError, RecursionError) as e:
        return Result.failure(
            new_simple_error(
                "message must be valid json",
                name=ERROR_MESSAGE_MUST_BE_JSON,
                cause=simplify_error(e),
                context={"message": repr(message)},
            )
        )

    if json.loads(encoded) != message:
        return Result.failure(
            new_simple_error(
                "message must be valid json",
                name=ERROR_MESSAGE_MUST_BE_JSON,
                context={"message": repr(message), "encoded": encoded},
            )
        )

    return Result.success(encoded)


def decode_message(encoded: str) -> Result[JsonValue]:
    """
    Decode a stored record.

    Only validated encodings are ever stored, so a decode failure is a bug.
    """
    try:
        return Result.success(json.loads(encoded))
    except (TypeError, ValueError) as e:
        return Result.failure(
            new_simple_bug(
                "received message is not valid json",
                cause=simplify_error(e),
                context={"received": encoded},
            )
        )
