"""Exception type carrying an HTTP status, plus error message helpers."""

from collections.abc import Iterable
from typing import Any

_REQUEST_LOCATIONS = ("body", "query", "path", "header", "cookie")
_VALUE_ERROR_PREFIX = "Value error, "


class ApiError(Exception):
    """Error with an HTTP status code and a client-facing message.

    Raised by services and routes; the API layer renders it into the
    ``{"success": false, "error": {...}}`` envelope.

    Args:
        message: Human-readable message returned to the client.
        status_code: HTTP status to respond with.
    """

    def __init__(self, message: str, status_code: int = 500) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def status(self) -> str:
        """``"fail"`` for client errors, ``"error"`` for server errors."""
        return "fail" if 400 <= self.status_code < 500 else "error"


def describe_validation_errors(errors: Iterable[dict[str, Any]]) -> str:
    """Flatten pydantic error dicts into ``"field: message, ..."``.

    Request location prefixes such as ``body`` are dropped from the field
    path, and custom validator messages lose pydantic's ``Value error``
    prefix.
    """
    parts = []
    for error in errors:
        loc = [str(p) for p in error.get("loc", ())]
        if loc and loc[0] in _REQUEST_LOCATIONS:
            loc = loc[1:]
        message = str(error.get("msg", "Invalid value")).removeprefix(
            _VALUE_ERROR_PREFIX
        )
        parts.append(f"{'.'.join(loc)}: {message}" if loc else message)
    return ", ".join(parts)
