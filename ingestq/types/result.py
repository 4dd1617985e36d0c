"""
Result type for passing values and errors around without try/except.
"""

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, model_validator

from ingestq.types.error import SimpleError

T = TypeVar("T")


class Result(BaseModel, Generic[T]):
    """
    Holds either a success value (`ok`) or an error descriptor (`err`).

    Callers branch on `err` rather than catching exceptions. A success may
    carry None as its value, so the absence of `err` is what marks success.
    Inspired by Rust's Result.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    ok: T | None = None
    err: SimpleError | None = None

    @model_validator(mode="after")
    def _check_exclusive(self) -> "Result[T]":
        if self.ok is not None and self.err is not None:
            raise ValueError("a result holds either a value or an error, not both")
        return self

    @classmethod
    def success(cls, value: T = None) -> "Result[T]":
        """Create a successful result."""
        return cls(ok=value)

    @classmethod
    def failure(cls, err: SimpleError) -> "Result[T]":
        """Create a failed result."""
        return cls(err=err)

    @property
    def is_ok(self) -> bool:
        return self.err is None

    @property
    def is_err(self) -> bool:
        return self.err is not None
