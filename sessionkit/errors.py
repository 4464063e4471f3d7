"""Error types for sessionkit.

Two styles coexist:

- Exceptions (``SessionKitError`` and subclasses) for store and gateway
  operations that callers are expected to handle or let bubble.
- ``Result`` values (``Ok`` / ``Err``) for local file I/O, where a failed
  write should be inspected rather than raised.
"""

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")
E = TypeVar("E")


class SessionKitError(Exception):
    """Base class for all sessionkit errors.

    Attributes:
        message: Human-readable description
        code: Stable machine-readable error code
        context: Extra details for logging
    """

    code = "SESSIONKIT_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.context = context or {}


class ValidationError(SessionKitError, ValueError):
    """Input failed a checkpoint or session validation rule."""

    code = "VALIDATION_FAILED"


class NoActiveSessionError(ValidationError):
    """An operation needed a current session and workspace state."""

    code = "NO_ACTIVE_SESSION"

    def __init__(self, message: str = "No active session to checkpoint"):
        super().__init__(message)


class ConfigurationError(SessionKitError, ValueError):
    """A configuration value is out of range or the wrong type."""

    code = "INVALID_CONFIGURATION"


class GatewayError(SessionKitError):
    """The persistence server rejected a request or could not be reached.

    Attributes:
        status_code: HTTP status, or None for transport failures
    """

    code = "GATEWAY_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context=context)
        self.status_code = status_code


class OperationInProgressError(SessionKitError):
    """The same operation is already running and does not accept joiners."""

    code = "OPERATION_IN_PROGRESS"

    def __init__(self, operation: str):
        super().__init__(
            f"{operation} is already in progress",
            context={"operation": operation},
        )
        self.operation = operation


# ============================================================================
# Result type for local I/O
# ============================================================================


@dataclass(frozen=True)
class FileError:
    """Failure details for a local file operation."""

    code: str
    message: str
    context: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_err(self):
        raise ValueError("Called unwrap_err on Ok")


@dataclass(frozen=True)
class Err(Generic[E]):
    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self):
        raise ValueError(f"Called unwrap on Err: {self.error}")

    def unwrap_err(self) -> E:
        return self.error


Result = Ok[T] | Err[E]


def format_error(error: SessionKitError | FileError | BaseException) -> str:
    """Render an error for terminal output."""
    if isinstance(error, GatewayError) and error.status_code is not None:
        return f"Error: {error.message} (HTTP {error.status_code})"
    message = getattr(error, "message", None) or str(error)
    return f"Error: {message}"
