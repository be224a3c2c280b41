"""
Domain error taxonomy.

Services raise these and the application maps each kind to one HTTP status
and a JSON envelope (see ``main.py``).
"""
from __future__ import annotations

from typing import Dict, List, Optional


class DomainError(Exception):
    """Base class for errors that map to a client-facing response."""

    status_code = 400
    kind = "DomainError"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationFailed(DomainError):
    """A request was well-formed JSON but broke a domain rule."""

    status_code = 400
    kind = "ValidationError"

    def __init__(self, message: str, errors: Optional[Dict[str, List[str]]] = None) -> None:
        super().__init__(message)
        self.errors: Dict[str, List[str]] = errors or {}

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationFailed":
        return cls(message, {field: [message]})


class NotFound(DomainError):
    """Entity does not exist, or belongs to another user."""

    status_code = 404
    kind = "NotFound"


class Conflict(DomainError):
    """Unique constraint violation (label name, user email)."""

    status_code = 409
    kind = "Conflict"


class Unauthorized(DomainError):
    status_code = 401
    kind = "Unauthorized"
