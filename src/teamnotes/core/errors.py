"""Error taxonomy and classifier.

Every failure that crosses a component boundary is normalized into a
TeamNotesError carrying a stable ErrorCode, a severity, a retryable flag and
a user-facing message. ``classify_error`` is the single place where raw
exceptions (store error codes, Python built-ins, plain messages) are mapped
onto the taxonomy; the RetryExecutor decides retries from its result.

Exports:
    ErrorCode: Stable error codes.
    ErrorSeverity: low / medium / high / critical.
    TeamNotesError: The one exception type raised by this package.
    StoreError: Exception type persistence collaborators raise, with a store code.
    classify_error: Normalize any exception into a TeamNotesError.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Classified error codes."""

    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    ABORTED = "ABORTED"
    AUTH_ERROR = "AUTH_ERROR"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    RESOURCE_EXHAUSTED = "RESOURCE_EXHAUSTED"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


_USER_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.NETWORK_ERROR: (
        "Network connection issue. Please check your internet connection and try again."
    ),
    ErrorCode.TIMEOUT_ERROR: "The request timed out. Please try again.",
    ErrorCode.ABORTED: "The operation was interrupted. Please try again.",
    ErrorCode.AUTH_ERROR: (
        "Authentication error. Please refresh the page and sign in again."
    ),
    ErrorCode.PERMISSION_DENIED: "You do not have permission to perform this action.",
    ErrorCode.VALIDATION_ERROR: "Some of the provided information is invalid.",
    ErrorCode.NOT_FOUND: "The requested item could not be found.",
    ErrorCode.ALREADY_EXISTS: "This item already exists.",
    ErrorCode.RESOURCE_EXHAUSTED: (
        "Service temporarily unavailable due to high demand. "
        "Please try again in a few minutes."
    ),
    ErrorCode.UNKNOWN_ERROR: (
        "An unexpected error occurred. Please try again or contact support "
        "if the problem continues."
    ),
}


class TeamNotesError(Exception):
    """Classified error raised by every teamnotes component.

    Attributes:
        message: Developer-facing description.
        code: ErrorCode for programmatic branching.
        retryable: Whether the RetryExecutor may re-run the operation.
        severity: ErrorSeverity used for logging and surfacing.
        user_message: Message safe to show to end users.
        details: Extra structured context (ids, field names).
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        *,
        retryable: bool = False,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        user_message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.retryable = retryable
        self.severity = severity
        self.user_message = user_message or _USER_MESSAGES[code]
        self.details = details or {}

    def __repr__(self) -> str:
        return (
            f"TeamNotesError(code={self.code.value}, retryable={self.retryable}, "
            f"severity={self.severity.value}, message={self.message!r})"
        )

    # ── Constructors for errors raised by the engine itself ──────────────

    @classmethod
    def not_found(cls, message: str, **details: Any) -> TeamNotesError:
        return cls(
            message,
            ErrorCode.NOT_FOUND,
            severity=ErrorSeverity.MEDIUM,
            details=details,
        )

    @classmethod
    def validation(cls, message: str, **details: Any) -> TeamNotesError:
        return cls(
            message,
            ErrorCode.VALIDATION_ERROR,
            severity=ErrorSeverity.LOW,
            user_message=message,
            details=details,
        )

    @classmethod
    def permission_denied(cls, message: str, **details: Any) -> TeamNotesError:
        return cls(
            message,
            ErrorCode.PERMISSION_DENIED,
            severity=ErrorSeverity.HIGH,
            details=details,
        )

    @classmethod
    def already_exists(cls, message: str, **details: Any) -> TeamNotesError:
        return cls(
            message,
            ErrorCode.ALREADY_EXISTS,
            severity=ErrorSeverity.LOW,
            user_message=message,
            details=details,
        )


class StoreError(Exception):
    """Error raised by persistence collaborators.

    ``code`` is the store's own kebab-case error code, e.g. ``unavailable``
    or ``permission-denied``.
    """

    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(message or code)
        self.code = code


# store code -> (ErrorCode, retryable, severity)
STORE_CODE_MAP: dict[str, tuple[ErrorCode, bool, ErrorSeverity]] = {
    "unavailable": (ErrorCode.NETWORK_ERROR, True, ErrorSeverity.MEDIUM),
    "aborted": (ErrorCode.ABORTED, True, ErrorSeverity.MEDIUM),
    "deadline-exceeded": (ErrorCode.TIMEOUT_ERROR, True, ErrorSeverity.MEDIUM),
    "permission-denied": (ErrorCode.PERMISSION_DENIED, False, ErrorSeverity.HIGH),
    "unauthenticated": (ErrorCode.AUTH_ERROR, False, ErrorSeverity.HIGH),
    "resource-exhausted": (ErrorCode.RESOURCE_EXHAUSTED, False, ErrorSeverity.MEDIUM),
    "not-found": (ErrorCode.NOT_FOUND, False, ErrorSeverity.MEDIUM),
    "already-exists": (ErrorCode.ALREADY_EXISTS, False, ErrorSeverity.LOW),
    "invalid-argument": (ErrorCode.VALIDATION_ERROR, False, ErrorSeverity.LOW),
}


def _classify_message(message: str) -> tuple[ErrorCode, bool, ErrorSeverity]:
    lowered = message.lower()
    if "network" in lowered or "fetch" in lowered:
        return ErrorCode.NETWORK_ERROR, True, ErrorSeverity.MEDIUM
    if "timeout" in lowered or "timed out" in lowered:
        return ErrorCode.TIMEOUT_ERROR, True, ErrorSeverity.MEDIUM
    if "permission" in lowered:
        return ErrorCode.PERMISSION_DENIED, False, ErrorSeverity.HIGH
    if "auth" in lowered:
        return ErrorCode.AUTH_ERROR, False, ErrorSeverity.HIGH
    if "validation" in lowered:
        return ErrorCode.VALIDATION_ERROR, False, ErrorSeverity.LOW
    return ErrorCode.UNKNOWN_ERROR, False, ErrorSeverity.MEDIUM


def classify_error(error: BaseException) -> TeamNotesError:
    """Normalize any exception into a TeamNotesError.

    Precedence: already-classified errors pass through; store error codes;
    Python built-in exception types; message keywords; UNKNOWN_ERROR.

    The original exception is attached as ``__cause__``.

    Args:
        error: Exception raised by an operation.

    Returns:
        TeamNotesError describing the failure.
    """
    if isinstance(error, TeamNotesError):
        return error

    message = str(error) or type(error).__name__

    store_code = getattr(error, "code", None)
    if isinstance(store_code, str) and store_code.lower() in STORE_CODE_MAP:
        code, retryable, severity = STORE_CODE_MAP[store_code.lower()]
    elif isinstance(error, TimeoutError):
        code, retryable, severity = (
            ErrorCode.TIMEOUT_ERROR, True, ErrorSeverity.MEDIUM,
        )
    elif isinstance(error, ConnectionError):
        code, retryable, severity = (
            ErrorCode.NETWORK_ERROR, True, ErrorSeverity.MEDIUM,
        )
    elif isinstance(error, PermissionError):
        code, retryable, severity = (
            ErrorCode.PERMISSION_DENIED, False, ErrorSeverity.HIGH,
        )
    else:
        code, retryable, severity = _classify_message(message)

    classified = TeamNotesError(
        message,
        code,
        retryable=retryable,
        severity=severity,
        details={"original_type": type(error).__name__},
    )
    classified.__cause__ = error
    return classified
