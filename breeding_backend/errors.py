"""
Domain errors and the Result wrapper used at the breeding service boundary.

Key principles:
- Pure breeding logic never produces InfraError; it only comes from repository call sites
- Errors are exceptions so internals can raise them, but public services return a Result
- Validation/conflict/not-found messages are farmer-actionable and shown verbatim
"""

from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, TypeVar

T = TypeVar("T")

GENERIC_RETRY_MESSAGE = "A temporary problem occurred. Please try again later."


class DomainError(Exception):
    """Base class for every error surfaced by the breeding core."""

    kind = "DomainError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def public_message(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "message": self.public_message}

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and self.to_dict() == other.to_dict()

    def __hash__(self) -> int:
        return hash((self.kind, self.message))


class ValidationError(DomainError):
    """Invalid input, illegal transition, or out-of-order / future-dated event."""

    kind = "ValidationError"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.field:
            data["field"] = self.field
        return data


class Conflict(DomainError):
    kind = "Conflict"


class NotFound(DomainError):
    kind = "NotFound"

    def __init__(self, entity: str, id: Any):
        super().__init__(f"{entity} not found: {id}")
        self.entity = entity
        self.id = id

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"entity": self.entity, "id": self.id})
        return data


class InfraError(DomainError):
    """Repository / I/O failure. The only kind an external caller may retry."""

    kind = "InfraError"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause

    @property
    def public_message(self) -> str:
        return GENERIC_RETRY_MESSAGE


class StaleAggregateError(Exception):
    """Raised by repositories when the stored version does not match the expected one."""

    def __init__(self, cattle_id: int, expected_version: int, stored_version: Optional[int]):
        super().__init__(
            f"Breeding aggregate for cattle {cattle_id} was modified concurrently "
            f"(expected version {expected_version}, found {stored_version})"
        )
        self.cattle_id = cattle_id
        self.expected_version = expected_version
        self.stored_version = stored_version


@dataclass(frozen=True)
class Result(Generic[T]):
    """Tagged success/failure value. Exactly one of value/error is meaningful."""

    value: Optional[T] = None
    error: Optional[DomainError] = None

    @classmethod
    def ok(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def err(cls, error: DomainError) -> "Result[T]":
        return cls(error=error)

    @property
    def is_ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value
