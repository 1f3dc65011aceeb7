"""Result<T> pattern — domain functions return this instead of raising exceptions for normal flow."""
from __future__ import annotations
from typing import Any, TypeVar, Generic, Optional

T = TypeVar("T")

# Error codes carried by failed results; the API layer maps them to HTTP statuses.
INVALID_POSITION = "invalid_position"
NO_MODULES_FOUND = "no_modules_found"
INVALID_EVENT = "invalid_event"
MISSING_PARAMETER = "missing_parameter"
VALIDATION_ERROR = "validation_error"
NOT_FOUND = "not_found"
FORBIDDEN = "forbidden"
LOCKED = "locked"


class Result(Generic[T]):
    def __init__(
        self,
        is_success: bool,
        value: Optional[T] = None,
        error: Optional[str] = None,
        code: Optional[str] = None,
        field: Optional[str] = None,
    ):
        self.is_success = is_success
        self.value = value
        self.error = error
        self.code = code
        self.field = field

    @classmethod
    def ok(cls, value: T) -> "Result[T]":
        return cls(is_success=True, value=value)

    @classmethod
    def fail(cls, error: str, code: str = VALIDATION_ERROR, field: Optional[str] = None) -> "Result[Any]":
        return cls(is_success=False, error=error, code=code, field=field)

    @classmethod
    def propagate(cls, other: "Result[Any]") -> "Result[Any]":
        """Re-wrap a failed result so its code and field survive a layer boundary."""
        return cls(is_success=False, error=other.error, code=other.code, field=other.field)

    def __repr__(self) -> str:
        if self.is_success:
            return f"Result.ok({self.value!r})"
        return f"Result.fail({self.error!r}, code={self.code!r})"
