"""
Result values returned by every voting-core operation.

Operations never raise across their public boundary. They return an
``ActionResult`` carrying a success flag, a user-facing message and, on
failure, an ``ErrorKind`` the HTTP layer maps to a status code.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel

GENERIC_ERROR_MESSAGE = "An error occurred. Please try again."


class ErrorKind(str, Enum):
    """Failure taxonomy shared by all services."""
    NOT_FOUND = "not_found"          # student or record absent
    CONFLICT = "conflict"            # already voted, duplicate vote, email taken
    RATE_LIMITED = "rate_limited"    # OTP cooldown or hourly cap
    VALIDATION = "validation"        # malformed input, client-correctable
    TRANSIENT = "transient"          # store or delivery failure
    CLOSED = "closed"                # voting is not open


# HTTP status used by the routes for each kind
STATUS_CODES = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.VALIDATION: 400,
    ErrorKind.TRANSIENT: 503,
    ErrorKind.CLOSED: 403,
}


class ActionResult(BaseModel):
    """Outcome of a single core operation."""
    success: bool
    message: str = ""
    kind: Optional[ErrorKind] = None

    @classmethod
    def ok(cls, message: str = "", **fields):
        return cls(success=True, message=message, **fields)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str, **fields):
        return cls(success=False, message=message, kind=kind, **fields)

    @property
    def status_code(self) -> int:
        if self.success or self.kind is None:
            return 200
        return STATUS_CODES[self.kind]
