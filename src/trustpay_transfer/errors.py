"""
Error taxonomy for the transfer workflow.

Everything the bank client or a validator can fail with is expressed as a
TransferError carrying an ErrorKind, an optional form field and a message
that is safe to show to the user.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(Enum):
    FORMAT = "format"
    RESOLUTION = "resolution"
    LIMIT = "limit"
    AUTHORIZATION = "authorization"
    NETWORK = "network"
    SESSION = "session"


class TransferError(Exception):
    kind: ErrorKind = ErrorKind.NETWORK

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "field": self.field, "message": self.message}


class FormatError(TransferError):
    kind = ErrorKind.FORMAT


class ResolutionError(TransferError):
    kind = ErrorKind.RESOLUTION


class LimitError(TransferError):
    kind = ErrorKind.LIMIT


class AuthorizationError(TransferError):
    kind = ErrorKind.AUTHORIZATION


class PinLockedError(AuthorizationError):
    """HTTP 423 from the transfers endpoint: too many PIN attempts."""


class NetworkError(TransferError):
    """Transport failure; retryable by the user."""

    kind = ErrorKind.NETWORK


class BackendError(NetworkError):
    """The backend answered but rejected the request."""

    def __init__(self, message: str, status_code: int, field: Optional[str] = None) -> None:
        super().__init__(message, field=field)
        self.status_code = status_code


class SessionExpiredError(TransferError):
    kind = ErrorKind.SESSION


class IllegalTransitionError(Exception):
    """Raised when a workflow or gate transition is not allowed from the current state."""

    def __init__(self, current: Any, target: Any) -> None:
        super().__init__(f"Cannot move from {getattr(current, 'value', current)} to {getattr(target, 'value', target)}")
        self.current = current
        self.target = target
