"""
Error descriptor definitions.

A SimpleError is plain data: it survives being relayed through boundaries that
sanitize or discard exception objects (process pools, RPC, JSON logs). Failures
travel as SimpleError values inside a Result instead of being raised.
"""

import traceback
from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationError

from ingestq.constants import ERROR_BUG, ERROR_SIMPLE


class SimpleError(BaseModel):
    """
    JSON serializable error descriptor.

    `message` must be a static string; dynamic values belong in `context`.
    The `simple` field is the discriminant used to recognise a descriptor
    once it has been reduced to a plain mapping.
    """

    model_config = ConfigDict(frozen=True)

    name: str = ERROR_SIMPLE
    message: str
    stack: str = ""
    cause: "SimpleError | None" = None
    context: dict[str, Any] | None = None
    retryable: bool | None = None
    # Resource exhaustion. Never retried, even when also marked retryable.
    overloaded: bool | None = None
    # Raised on the other side of a process boundary.
    remote: bool | None = None
    simple: Literal[True] = True


def new_simple_error(
    message: str,
    *,
    name: str | None = None,
    cause: SimpleError | None = None,
    context: dict[str, Any] | None = None,
    retryable: bool | None = None,
    overloaded: bool | None = None,
    remote: bool | None = None,
    stack: str | None = None,
) -> SimpleError:
    """
    Create a new SimpleError.

    Args:
        message: Static message describing the failure.
        name: Error category. Defaults to "SimpleError".
        cause: Descriptor of the failure that led to this one.
        context: JSON object with values specific to this occurrence.
        retryable: Whether the failed procedure may be retried.
        overloaded: Whether the failure was caused by resource exhaustion.
        remote: Whether the failure originated across a process boundary.
        stack: Traceback text. Captured from the caller when omitted.

    Returns:
        The new SimpleError.
    """
    if not stack:
        stack = "".join(traceback.format_stack()[:-1])

    return SimpleError(
        name=name if name is not None else ERROR_SIMPLE,
        message=message,
        stack=stack,
        cause=cause,
        context=context,
        retryable=retryable,
        overloaded=overloaded,
        remote=remote,
    )


def _simplify_unknown(value: Any) -> SimpleError:
    return new_simple_error(
        "received error that isn't error-like",
        context={"attempted_stringify": repr(value)},
    )


def simplify_error(err: Any) -> SimpleError:
    """
    Return the given error as a SimpleError.

    Intended for except clauses, so that whatever was caught leaves as a
    descriptor. A SimpleError is returned unchanged, a mapping carrying the
    descriptor discriminant is validated back into one, and an exception is
    wrapped along with its chained causes.
    """
    if isinstance(err, SimpleError):
        return err

    if isinstance(err, Mapping):
        if err.get("simple") is not True:
            return _simplify_unknown(err)
        try:
            return SimpleError.model_validate(dict(err))
        except ValidationError:
            return _simplify_unknown(err)

    if not isinstance(err, BaseException):
        return _simplify_unknown(err)

    chained = err.__cause__
    if chained is None and not err.__suppress_context__:
        chained = err.__context__

    cause = simplify_error(chained) if chained is not None else None

    return new_simple_error(
        str(err),
        name=type(err).__name__,
        cause=cause,
        stack="".join(traceback.format_exception(err)),
    )


def new_simple_bug(
    message: str,
    *,
    context: dict[str, Any] | None = None,
    cause: SimpleError | None = None,
) -> SimpleError:
    """
    Create a SimpleError describing a bug in the program.

    Bugs carry the "Bug" name and a "BUG: " prefix so broken invariants stand
    out from expected operational failures in traces and logs.
    """
    return new_simple_error(
        f"BUG: {message}",
        name=ERROR_BUG,
        context=context,
        cause=cause,
    )
