"""Error taxonomy shared by the commit service, the HTTP layer and the client.

Each error carries the HTTP status it maps to, so the server can translate
it in one exception handler and the client can rebuild it from a response.
"""

from __future__ import annotations

from typing import Optional


class BoardError(Exception):
    """Base class for every failure the board surfaces to callers."""

    status_code: int = 500
    default_message = "Internal Server Error"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        return {"error": self.message}


class AuthenticationError(BoardError):
    status_code = 401
    default_message = "Unauthorized"


class AuthorizationError(BoardError):
    status_code = 403
    default_message = "You do not have permission to modify tasks in this project."


class NotFoundError(BoardError):
    status_code = 404
    default_message = "Not found"


class ValidationError(BoardError):
    status_code = 400
    default_message = "Invalid input data"


class PersistenceError(BoardError):
    status_code = 500
    default_message = "Internal Server Error"


_BY_STATUS: dict[int, type[BoardError]] = {
    cls.status_code: cls
    for cls in (AuthenticationError, AuthorizationError, NotFoundError, ValidationError)
}


def error_for_status(status_code: int, message: Optional[str] = None) -> BoardError:
    """Rebuild the matching :class:`BoardError` for an HTTP status code."""
    cls = _BY_STATUS.get(status_code, PersistenceError if status_code >= 500 else BoardError)
    err = cls(message)
    if cls is BoardError:
        err.status_code = status_code
    return err
