from __future__ import annotations

from dataclasses import dataclass, field
from functools import wraps

from django.db import DatabaseError, IntegrityError


class DomainError(Exception):
    """Base class for errors surfaced to callers of the settlement core."""

    default_code = "domain_error"

    def __init__(self, message: str, *, code: str | None = None, **detail):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.detail = detail

    def as_dict(self) -> dict:
        return {
            "error": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "detail": {key: _jsonable(value) for key, value in self.detail.items()},
        }


class ValidationError(DomainError):
    default_code = "invalid"


class InvalidStateError(DomainError):
    default_code = "invalid_state"


class ConflictError(DomainError):
    default_code = "conflict"


class PersistenceError(DomainError):
    default_code = "persistence"


@dataclass(frozen=True)
class EncodingWarning:
    """Non-fatal problem found while writing a bank file. Returned, never raised."""

    message: str
    code: str = "warning"
    row: int | None = None
    allocation_id: int | None = None
    detail: dict = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "row": self.row,
            "allocation_id": self.allocation_id,
            "detail": {key: _jsonable(value) for key, value in self.detail.items()},
        }


def _jsonable(value):
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return str(value)


def translate_storage_errors(conflict_message: str = "Concurrent update detected; re-fetch and retry."):
    """
    Map storage failures raised inside a service call onto the domain taxonomy.

    IntegrityError means a uniqueness guard fired under concurrency -> ConflictError.
    Any other DatabaseError -> PersistenceError. Domain errors pass through.
    """

    def decorator(func):
        @wraps(func)
        def _wrapped(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except IntegrityError as exc:
                raise ConflictError(conflict_message, code="integrity", cause=str(exc)) from exc
            except DatabaseError as exc:
                raise PersistenceError("Storage failure; nothing was applied.", cause=str(exc)) from exc

        return _wrapped

    return decorator
