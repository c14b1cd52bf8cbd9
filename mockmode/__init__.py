"""mockmode: switchable simulated external services.

Register mock services by name, then enable or disable them at runtime.
Enabling a service installs its HTTP interceptors in front of httpx so that
application code talking to the real API gets canned answers instead:

- MockContext ties together the interception layer, the engine, the
  service registry, the global mode flag and the state inspector
- MockService and Scope build service definitions from a base URL
- bind_environment wires MOCK_MODE / MOCK_SERVICES / MOCK_CONFIG_FILE
- setup_mocks / teardown_mocks are the entry points for tests

Example:
    >>> from mockmode import MockContext, MockService, success_response
    >>>
    >>> def setup_tracker(scope, config):
    ...     scope.get("/rest/api/2/project").reply(200, json=[{"key": "DEMO"}]).persist()
    >>>
    >>> with MockContext() as mocks:
    ...     mocks.registry.register_service(
    ...         "tracker", MockService("tracker", "https://tracker.test", setup_tracker)
    ...     )
    ...     mocks.registry.enable_service("tracker")
    ...     httpx.get("https://tracker.test/rest/api/2/project").json()
    [{'key': 'DEMO'}]

Configuration (mocks.yaml):
    mocks:
      tracker:
        definition: myapp.mocks.tracker:tracker_service
        config:
          mode: slow
"""

from mockmode.bootstrap import (
    MockSettings,
    ServiceConfig,
    bind_environment,
    configure_logging_from_settings,
    enable_mocking_for_environment,
    initialize_mock_services,
    load_service_config,
    resolve_definition,
)
from mockmode.context import MockContext, get_default_context, reset_default_context
from mockmode.engine import Handle, InterceptorEngine
from mockmode.errors import (
    ConfigError,
    ErrorCode,
    InterceptorInstallationFailed,
    InvalidServiceDefinition,
    MockError,
    MockModeError,
    MockTimeoutError,
    NoMatchingInterceptor,
    ServiceNotRegistered,
    ServiceOperationInProgress,
)
from mockmode.inspector import MockState, ServiceState, StateInspector, VerificationResult
from mockmode.interception import (
    InterceptionLayer,
    Interceptor,
    InterceptorSpec,
    MockedResponse,
    ResponseSequence,
)
from mockmode.log import configure_logging, log_context
from mockmode.mode import GlobalModeController
from mockmode.registry import (
    BulkResult,
    CleanupResult,
    RegistryEntry,
    ServiceDefinition,
    ServiceRegistry,
)
from mockmode.services import (
    MockService,
    Scope,
    error_response,
    generate_id,
    success_response,
    validate_required_fields,
)
from mockmode.testing import (
    MockHandle,
    get_mock_state,
    isolated_context,
    setup_mocks,
    teardown_mocks,
    verify_mock_state,
)

__version__ = "0.1.0"

__all__ = [
    # Context
    "MockContext",
    "get_default_context",
    "reset_default_context",
    # Interception
    "InterceptionLayer",
    "Interceptor",
    "InterceptorSpec",
    "MockedResponse",
    "ResponseSequence",
    "InterceptorEngine",
    "Handle",
    # Registry
    "ServiceRegistry",
    "ServiceDefinition",
    "RegistryEntry",
    "BulkResult",
    "CleanupResult",
    "GlobalModeController",
    # Inspection
    "StateInspector",
    "MockState",
    "ServiceState",
    "VerificationResult",
    # Service building
    "MockService",
    "Scope",
    "error_response",
    "success_response",
    "validate_required_fields",
    "generate_id",
    # Environment
    "MockSettings",
    "ServiceConfig",
    "bind_environment",
    "configure_logging_from_settings",
    "enable_mocking_for_environment",
    "initialize_mock_services",
    "load_service_config",
    "resolve_definition",
    # Test harness
    "MockHandle",
    "setup_mocks",
    "teardown_mocks",
    "isolated_context",
    "get_mock_state",
    "verify_mock_state",
    # Errors
    "ErrorCode",
    "MockModeError",
    "InvalidServiceDefinition",
    "ServiceNotRegistered",
    "InterceptorInstallationFailed",
    "ServiceOperationInProgress",
    "MockError",
    "NoMatchingInterceptor",
    "MockTimeoutError",
    "ConfigError",
    # Logging
    "configure_logging",
    "log_context",
]
