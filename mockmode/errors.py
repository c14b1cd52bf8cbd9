"""Exception hierarchy for mockmode.

Every registry error carries:
- error_code: an ErrorCode for programmatic handling
- context: the service name and operation that failed
- suggestions: actionable steps to resolve the issue

Example:
    try:
        registry.enable_service("tracker")
    except ServiceNotRegistered as e:
        print(e.format_verbose())
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Error codes for mockmode.

    - M1xx: Registration errors
    - M2xx: Lookup errors
    - M3xx: Interceptor installation errors
    - M4xx: Concurrency errors
    - M5xx: Interception layer errors
    - M6xx: Configuration errors
    - M9xx: Unknown/internal errors
    """

    INVALID_DEFINITION = "M101"
    SERVICE_NOT_REGISTERED = "M201"
    INSTALLATION_FAILED = "M301"
    OPERATION_IN_PROGRESS = "M401"
    NO_MATCHING_INTERCEPTOR = "M501"
    MOCK_TIMEOUT = "M502"
    INVALID_CONFIG = "M601"
    UNKNOWN = "M999"

    @property
    def category(self) -> str:
        """Get the error category name."""
        code_num = int(self.value[1:])
        if code_num < 200:
            return "registration"
        elif code_num < 300:
            return "lookup"
        elif code_num < 400:
            return "installation"
        elif code_num < 500:
            return "concurrency"
        elif code_num < 600:
            return "interception"
        elif code_num < 700:
            return "config"
        else:
            return "unknown"


class MockModeError(Exception):
    """Base exception for all mockmode errors.

    Attributes:
        error_code: Unique ErrorCode for this error type
        message: Human-readable error description
        service: Name of the service involved (if any)
        context: Extra details about the failure
        suggestions: Actionable steps to resolve the issue
        recoverable: Whether retrying the call can succeed
        cause: The underlying exception (if any)
    """

    error_code: ErrorCode = ErrorCode.UNKNOWN
    default_message: str = "An unexpected mocking error occurred"
    default_suggestions: list[str] = []

    def __init__(
        self,
        message: str | None = None,
        service: str | None = None,
        cause: BaseException | None = None,
        recoverable: bool = False,
        suggestions: list[str] | None = None,
        **context: Any,
    ) -> None:
        self.message = message or self.default_message
        self.service = service
        self.cause = cause
        self.recoverable = recoverable
        self.context = context
        self._suggestions = suggestions
        super().__init__(self.message)

    @property
    def suggestions(self) -> list[str]:
        """Get actionable suggestions for resolving this error."""
        if self._suggestions is not None:
            return self._suggestions
        return self.default_suggestions.copy()

    def __str__(self) -> str:
        parts = [f"[{self.error_code.value}] {self.message}"]
        if self.service:
            parts.append(f"service={self.service}")
        return " | ".join(parts)

    def format_verbose(self) -> str:
        """Format error with full details including suggestions."""
        lines = [f"Error [{self.error_code.value}]: {self.message}"]

        if self.service:
            lines.append(f"Service: {self.service}")
        for key, value in self.context.items():
            lines.append(f"{key}: {value}")
        if self.cause is not None:
            lines.append(f"Caused by: {type(self.cause).__name__}: {self.cause}")

        if self.suggestions:
            lines.append("")
            lines.append("Suggestions:")
            for suggestion in self.suggestions:
                lines.append(f"  - {suggestion}")

        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for serialization."""
        return {
            "error_code": self.error_code.value,
            "error_type": self.__class__.__name__,
            "message": self.message,
            "service": self.service,
            "recoverable": self.recoverable,
            "suggestions": self.suggestions,
            "context": dict(self.context),
            "cause": str(self.cause) if self.cause else None,
        }


class InvalidServiceDefinition(MockModeError):
    """A service definition does not provide the required capabilities.

    Raised by register_service when the definition has no callable
    create_interceptors, or its cleanup hook is not callable.
    """

    error_code = ErrorCode.INVALID_DEFINITION
    default_message = "Invalid service definition"
    default_suggestions = [
        "Give the definition a create_interceptors(config) method",
        "If the definition has a cleanup attribute it must be callable",
        "Use mockmode.MockService to build definitions from a setup function",
    ]


class ServiceNotRegistered(MockModeError):
    """No service is registered under the requested name."""

    error_code = ErrorCode.SERVICE_NOT_REGISTERED
    default_message = "Mock service not registered"
    default_suggestions = [
        "Call register_service(name, definition) before enabling it",
        "Check the service name for typos (names are case-sensitive)",
        "Check the mocks section of your config file",
    ]


class InterceptorInstallationFailed(MockModeError):
    """Installing one spec of a batch failed; the batch was rolled back."""

    error_code = ErrorCode.INSTALLATION_FAILED
    default_message = "Failed to install interceptor"
    default_suggestions = [
        "Check the method, url and response of the spec at the reported index",
        "Interceptor urls must be a string, a compiled regex or a predicate",
    ]

    def __init__(
        self,
        message: str | None = None,
        index: int = 0,
        **kwargs: Any,
    ) -> None:
        self.index = index
        super().__init__(message=message, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["index"] = self.index
        return result


class ServiceOperationInProgress(MockModeError):
    """An enable/disable for the same service is already running."""

    error_code = ErrorCode.OPERATION_IN_PROGRESS
    default_message = "Another operation on this service is in progress"
    default_suggestions = [
        "Retry once the current enable/disable call has finished",
        "Do not enable or disable a service from inside its own create_interceptors",
    ]

    def __init__(self, message: str | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("recoverable", True)
        super().__init__(message=message, **kwargs)


class MockError(MockModeError):
    """Base exception for interception layer errors."""

    error_code = ErrorCode.UNKNOWN
    default_message = "Mock interception error"


class NoMatchingInterceptor(MockError):
    """Raised when no interceptor matches a request and passthrough is off."""

    error_code = ErrorCode.NO_MATCHING_INTERCEPTOR
    default_message = "No interceptor matches the request"
    default_suggestions = [
        "Check that the service owning this URL is enabled",
        "Check method and url of the installed interceptors",
        "One-shot interceptors are consumed by their first match",
    ]


class MockTimeoutError(MockError):
    """Raised when an interceptor simulates a timeout."""

    error_code = ErrorCode.MOCK_TIMEOUT
    default_message = "Mock timeout"


class ConfigError(MockModeError):
    """Mock configuration could not be loaded or resolved."""

    error_code = ErrorCode.INVALID_CONFIG
    default_message = "Invalid mock configuration"
    default_suggestions = [
        "Check the YAML syntax of the config file",
        "Service definitions are import paths like 'myapp.mocks:tracker'",
        "Make sure the module is importable from the current environment",
    ]
