"""Error taxonomy for backend synchronization and user-facing classification."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel


class SyncError(Exception):
    """Base class for failures scoped to a single user action."""

    code: str = "ERR_UNKNOWN"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class NetworkError(SyncError):
    """Transport failure talking to the backend."""

    code = "ERR_NETWORK_ERROR"


class BackendError(SyncError):
    """The backend rejected a request."""

    code = "ERR_BACKEND"

    def __init__(self, message: str, *, code: str | None = None, status: int = 0) -> None:
        super().__init__(message, code=code)
        self.status = status


class RecordNotFoundError(BackendError):
    """The addressed record does not exist (or is not visible to the user)."""

    code = "ERR_NOT_FOUND"


class ConstraintViolationError(BackendError):
    """A write violated a uniqueness or validation constraint."""

    code = "ERR_CONSTRAINT_VIOLATION"


class NotAuthenticatedError(SyncError):
    """No user is signed in."""

    code = "ERR_NOT_AUTHENTICATED"


class PartialWorkflowFailure(SyncError):
    """A multi-step workflow stopped after some of its steps had already been applied.

    Nothing is rolled back: the caller sees which steps landed and can retry.
    """

    code = "ERR_PARTIAL_WORKFLOW"

    def __init__(
        self,
        message: str,
        *,
        completed_steps: list[str] | None = None,
        failed_step: str | None = None,
        cause: Exception | None = None,
        failures: dict[str, Exception] | None = None,
    ) -> None:
        super().__init__(message)
        self.completed_steps = completed_steps or []
        self.failed_step = failed_step
        self.cause = cause
        self.failures = failures or {}


class ErrorCategory(Enum):
    """Categories of errors surfaced to the user."""

    NETWORK_ERROR = "network_error"
    NOT_AUTHENTICATED = "not_authenticated"
    NOT_FOUND = "not_found"
    CONSTRAINT_VIOLATION = "constraint_violation"
    PARTIAL_WORKFLOW = "partial_workflow"
    PERMISSION_DENIED = "permission_denied"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode:
    """Error codes for specific error conditions."""

    # Transport errors
    ERR_NETWORK_ERROR = NetworkError.code

    # Backend errors
    ERR_BACKEND = BackendError.code
    ERR_NOT_FOUND = RecordNotFoundError.code
    ERR_CONSTRAINT_VIOLATION = ConstraintViolationError.code
    ERR_PERMISSION_DENIED = "ERR_PERMISSION_DENIED"

    # Session errors
    ERR_NOT_AUTHENTICATED = NotAuthenticatedError.code

    # Workflow errors
    ERR_PARTIAL_WORKFLOW = PartialWorkflowFailure.code

    # Coupon errors
    ERR_COUPON_NOT_FOUND = "ERR_COUPON_NOT_FOUND"
    ERR_COUPON_EXPIRED = "ERR_COUPON_EXPIRED"
    ERR_COUPON_EXHAUSTED = "ERR_COUPON_EXHAUSTED"
    ERR_COUPON_ALREADY_USED = "ERR_COUPON_ALREADY_USED"

    # Generic errors
    ERR_UNKNOWN = "ERR_UNKNOWN"


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    message: str
    suggestion: str
    severity: ErrorSeverity


_ERROR_PATTERNS: dict[
    Literal["network", "auth", "permission"],
    dict[str, list[str] | set[str]],
] = {
    "network": {
        "phrases": [
            "connection",
            "timeout",
            "network",
            "503",
            "502",
            "504",
            "unreachable",
        ],
        "exception_types": {"ConnectionError", "TimeoutError", "ConnectError", "ReadTimeout"},
    },
    "auth": {
        "phrases": [
            "not authenticated",
            "no user logged in",
            "unauthorized",
            "invalid token",
            "401",
        ],
        "exception_types": {"AuthenticationError"},
    },
    "permission": {
        "phrases": ["permission denied", "forbidden", "403"],
        "exception_types": {"PermissionError"},
    },
}


def _match_error_pattern(
    *,
    error_str: str,
    exception_type: str,
    pattern_type: Literal["network", "auth", "permission"],
) -> bool:
    """Return True if the error matches the configured pattern type."""
    patterns = _ERROR_PATTERNS[pattern_type]
    return any(phrase in error_str for phrase in patterns["phrases"]) or exception_type in patterns["exception_types"]


def classify_error(exception: Exception) -> tuple[ErrorCategory, str]:
    """Classify an exception and return a user-friendly message.

    Typed sync errors are classified by type; anything else falls back to
    message and exception-name patterns.

    Args:
        exception: The exception raised by the failed operation

    Returns:
        Tuple of (ErrorCategory, user_friendly_message)
    """
    if isinstance(exception, NetworkError):
        return ErrorCategory.NETWORK_ERROR, "Network error occurred. Please check your connection and try again."
    if isinstance(exception, NotAuthenticatedError):
        return ErrorCategory.NOT_AUTHENTICATED, "You are signed out. Please sign in again."
    if isinstance(exception, RecordNotFoundError):
        return ErrorCategory.NOT_FOUND, "This item no longer exists."
    if isinstance(exception, ConstraintViolationError):
        return ErrorCategory.CONSTRAINT_VIOLATION, str(exception) or "This change conflicts with existing data."
    if isinstance(exception, PartialWorkflowFailure):
        return ErrorCategory.PARTIAL_WORKFLOW, "The operation was only partially applied. Please try again."

    error_str = str(exception).lower()
    exception_type = type(exception).__name__

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="network"):
        return ErrorCategory.NETWORK_ERROR, "Network error occurred. Please check your connection and try again."

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="auth"):
        return ErrorCategory.NOT_AUTHENTICATED, "You are signed out. Please sign in again."

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="permission"):
        return ErrorCategory.PERMISSION_DENIED, "You don't have permission for this action."

    return ErrorCategory.UNKNOWN, "An unexpected error occurred. Please try again later."


def classify_error_with_response(exception: Exception) -> ErrorResponse:  # noqa: PLR0911
    """Classify an error and return a structured response with recovery suggestions.

    Args:
        exception: The exception raised during execution

    Returns:
        ErrorResponse with code, message, suggestion, and severity
    """
    if isinstance(exception, NetworkError):
        return ErrorResponse(
            code=ErrorCode.ERR_NETWORK_ERROR,
            message="Network error occurred.",
            suggestion="Please check your connection and try again.",
            severity=ErrorSeverity.MEDIUM,
        )

    if isinstance(exception, NotAuthenticatedError):
        return ErrorResponse(
            code=ErrorCode.ERR_NOT_AUTHENTICATED,
            message="You are not signed in.",
            suggestion="Sign in and try again.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, PartialWorkflowFailure):
        return ErrorResponse(
            code=ErrorCode.ERR_PARTIAL_WORKFLOW,
            message="The operation was only partially applied.",
            suggestion="Retry the operation; steps that already succeeded are safe to repeat.",
            severity=ErrorSeverity.HIGH,
        )

    if isinstance(exception, SyncError):
        category, message = classify_error(exception)
        severity = ErrorSeverity.LOW if category is ErrorCategory.NOT_FOUND else ErrorSeverity.MEDIUM
        return ErrorResponse(
            code=exception.code,
            message=message,
            suggestion="Refresh the page and try again.",
            severity=severity,
        )

    error_str = str(exception).lower()
    exception_type = type(exception).__name__

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="network"):
        return ErrorResponse(
            code=ErrorCode.ERR_NETWORK_ERROR,
            message="Network error occurred.",
            suggestion="Please check your connection and try again.",
            severity=ErrorSeverity.MEDIUM,
        )

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="permission"):
        return ErrorResponse(
            code=ErrorCode.ERR_PERMISSION_DENIED,
            message="You don't have permission for this action.",
            suggestion="Ask the project owner for access if you think this is an error.",
            severity=ErrorSeverity.MEDIUM,
        )

    return ErrorResponse(
        code=ErrorCode.ERR_UNKNOWN,
        message="An unexpected error occurred.",
        suggestion="Please try again later. If the problem persists, contact support.",
        severity=ErrorSeverity.MEDIUM,
    )
