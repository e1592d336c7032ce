"""Typed failures raised by the workflow engine and their transport mapping."""

from enum import StrEnum

from pydantic import BaseModel


class ErrorKind(StrEnum):
    """Stable machine-readable failure kinds."""

    UNAUTHORIZED = "unauthorized"
    SESSION_INVALIDATED = "session_invalidated"
    ACCOUNT_DISABLED = "account_disabled"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    INVALID_INPUT = "invalid_input"
    UPLOAD_FAILED = "upload_failed"


class ErrorCode:
    """Error codes for specific error conditions."""

    ERR_UNAUTHORIZED = "ERR_UNAUTHORIZED"
    ERR_SESSION_INVALIDATED = "ERR_SESSION_INVALIDATED"
    ERR_ACCOUNT_DISABLED = "ERR_ACCOUNT_DISABLED"
    ERR_FORBIDDEN = "ERR_FORBIDDEN"
    ERR_NOT_FOUND = "ERR_NOT_FOUND"
    ERR_INVALID_STATE_TRANSITION = "ERR_INVALID_STATE_TRANSITION"
    ERR_INVALID_INPUT = "ERR_INVALID_INPUT"
    ERR_UPLOAD_FAILED = "ERR_UPLOAD_FAILED"
    ERR_UNKNOWN = "ERR_UNKNOWN"


class WorkflowError(Exception):
    """Base class for every failure an engine operation reports to its caller."""

    kind: ErrorKind = ErrorKind.INVALID_STATE

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class UnauthorizedError(WorkflowError):
    """No actor, or the presented credentials are invalid."""

    kind = ErrorKind.UNAUTHORIZED


class SessionInvalidatedError(UnauthorizedError):
    """The token was valid but a newer session replaced it."""

    kind = ErrorKind.SESSION_INVALIDATED


class AccountDisabledError(WorkflowError):
    kind = ErrorKind.ACCOUNT_DISABLED


class ForbiddenError(WorkflowError):
    """The actor lacks the role or ownership required for the action."""

    kind = ErrorKind.FORBIDDEN


class NotFoundError(WorkflowError):
    kind = ErrorKind.NOT_FOUND


class InvalidStateError(WorkflowError):
    """The entity is not in a state that permits the requested transition."""

    kind = ErrorKind.INVALID_STATE


class ConflictError(InvalidStateError):
    """A concurrent transition won the race; reported as an invalid state."""


class InvalidInputError(WorkflowError):
    """Missing or malformed payload fields."""

    kind = ErrorKind.INVALID_INPUT


class UploadFailedError(WorkflowError):
    kind = ErrorKind.UPLOAD_FAILED


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    kind: str
    message: str
    suggestion: str


_CODES: dict[ErrorKind, str] = {
    ErrorKind.UNAUTHORIZED: ErrorCode.ERR_UNAUTHORIZED,
    ErrorKind.SESSION_INVALIDATED: ErrorCode.ERR_SESSION_INVALIDATED,
    ErrorKind.ACCOUNT_DISABLED: ErrorCode.ERR_ACCOUNT_DISABLED,
    ErrorKind.FORBIDDEN: ErrorCode.ERR_FORBIDDEN,
    ErrorKind.NOT_FOUND: ErrorCode.ERR_NOT_FOUND,
    ErrorKind.INVALID_STATE: ErrorCode.ERR_INVALID_STATE_TRANSITION,
    ErrorKind.INVALID_INPUT: ErrorCode.ERR_INVALID_INPUT,
    ErrorKind.UPLOAD_FAILED: ErrorCode.ERR_UPLOAD_FAILED,
}

_SUGGESTIONS: dict[ErrorKind, str] = {
    ErrorKind.UNAUTHORIZED: "Log in again and retry with a valid token.",
    ErrorKind.SESSION_INVALIDATED: "Your session was opened on another device. Log in again to continue.",
    ErrorKind.ACCOUNT_DISABLED: "Contact an administrator to reactivate your account.",
    ErrorKind.FORBIDDEN: "Ask the assigned worker or a supervisor to perform this action.",
    ErrorKind.NOT_FOUND: "Check the identifier and try again.",
    ErrorKind.INVALID_STATE: "Reload the task to see its current state before retrying.",
    ErrorKind.INVALID_INPUT: "Correct the highlighted fields and submit again.",
    ErrorKind.UPLOAD_FAILED: "The images could not be stored. Please try again in a moment.",
}

_HTTP_STATUS: dict[ErrorKind, int] = {
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.SESSION_INVALIDATED: 401,
    ErrorKind.ACCOUNT_DISABLED: 403,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_STATE: 409,
    ErrorKind.INVALID_INPUT: 422,
    ErrorKind.UPLOAD_FAILED: 502,
}


def http_status_for(kind: ErrorKind) -> int:
    """Map a failure kind to the HTTP status the transport layer returns."""
    return _HTTP_STATUS.get(kind, 500)


def to_error_response(exception: Exception) -> ErrorResponse:
    """Build the structured response for an exception raised by an engine operation.

    Args:
        exception: The exception raised during execution

    Returns:
        ErrorResponse with code, kind, message and suggestion
    """
    if isinstance(exception, WorkflowError):
        return ErrorResponse(
            code=_CODES[exception.kind],
            kind=exception.kind.value,
            message=exception.message,
            suggestion=_SUGGESTIONS[exception.kind],
        )

    return ErrorResponse(
        code=ErrorCode.ERR_UNKNOWN,
        kind="unknown",
        message="An unexpected error occurred.",
        suggestion="Please try again later. If the problem persists, contact support.",
    )
