from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic.alias_generators import to_camel

_LOCATION_SOURCES = {"body", "query", "path", "header", "cookie"}
_VALUE_ERROR_PREFIX = "Value error, "


def _field_key(loc: Sequence[Any]) -> str:
    """
    Pick the field name out of a pydantic error location, e.g.
    ('body', 'taskIds', 0) -> 'taskIds', ('path', 'task_id') -> 'taskId'.
    """
    parts = list(loc)
    if parts and parts[0] in _LOCATION_SOURCES:
        source = parts.pop(0)
    else:
        source = "body"
    for part in parts:
        if isinstance(part, str):
            return to_camel(part) if "_" in part else part
    return source


# PUBLIC_INTERFACE
def field_errors(errors: Iterable[Mapping[str, Any]]) -> Dict[str, List[str]]:
    """
    Group pydantic/FastAPI validation errors by field.

    Args:
        errors: items as returned by ``RequestValidationError.errors()``.

    Returns:
        Dict mapping camelCase field name to its list of messages.
    """
    grouped: Dict[str, List[str]] = {}
    for err in errors:
        key = _field_key(err.get("loc", ()))
        msg = str(err.get("msg", "Invalid value"))
        if msg.startswith(_VALUE_ERROR_PREFIX):
            msg = msg[len(_VALUE_ERROR_PREFIX):]
        bucket = grouped.setdefault(key, [])
        if msg not in bucket:
            bucket.append(msg)
    return grouped


# PUBLIC_INTERFACE
def error_envelope(
    error: str,
    message: str,
    errors: Optional[Dict[str, List[str]]] = None,
) -> Dict[str, Any]:
    """
    Build the JSON body shared by every error response.

    Returns:
        Dict with keys: error, message and, for validation failures, errors.
    """
    body: Dict[str, Any] = {"error": error, "message": message}
    if errors:
        body["errors"] = errors
    return body
