"""MockContext: one complete mocking setup with an explicit lifecycle.

A context owns an InterceptionLayer, the InterceptorEngine on top of it, a
ServiceRegistry, the GlobalModeController and a StateInspector. Components
receive the context (or its parts) explicitly; nothing is created at import
time.

Example:
    >>> with MockContext() as mocks:
    ...     mocks.registry.register_service("tracker", tracker_definition)
    ...     mocks.registry.enable_service("tracker")
    ...     run_code_under_test()
    ... # every interceptor is gone and the registry is empty here
"""

from __future__ import annotations

import logging
from typing import Any

from mockmode.engine import InterceptorEngine
from mockmode.inspector import StateInspector
from mockmode.interception import InterceptionLayer
from mockmode.mode import GlobalModeController
from mockmode.registry import ServiceRegistry

logger = logging.getLogger(__name__)


class MockContext:
    """Container for the mocking components.

    Attributes:
        layer: The interception layer in front of httpx
        engine: Installs interceptors into the layer
        registry: Service name -> lifecycle state
        mode: Global mock mode flag
        inspector: Snapshots, verification and hard reset
    """

    layer: InterceptionLayer
    engine: InterceptorEngine
    registry: ServiceRegistry
    mode: GlobalModeController
    inspector: StateInspector

    def __init__(self, allow_passthrough: bool = True) -> None:
        self._allow_passthrough = allow_passthrough
        self._initialized = False
        self.init()

    def init(self) -> None:
        """Build fresh components, discarding any previous ones."""
        if self._initialized:
            self.layer.clear()
        self.layer = InterceptionLayer(allow_passthrough=self._allow_passthrough)
        self.engine = InterceptorEngine(self.layer)
        self.registry = ServiceRegistry(self.engine)
        self.mode = GlobalModeController()
        self.inspector = StateInspector(self.registry, self.mode)
        self._initialized = True
        logger.debug("Mock context initialized")

    def reset(self) -> None:
        """Hard reset: clear interceptors, forget services, turn mock mode off."""
        self.inspector.clean_all()
        self.registry.clear()
        self.mode.set_global_mock_mode(False)
        logger.debug("Mock context reset")

    def __enter__(self) -> MockContext:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.reset()


_default_context: MockContext | None = None


def get_default_context() -> MockContext:
    """Process-wide context, created on first use."""
    global _default_context
    if _default_context is None:
        _default_context = MockContext()
    return _default_context


def reset_default_context() -> None:
    """Reset and drop the process-wide context."""
    global _default_context
    if _default_context is not None:
        _default_context.reset()
    _default_context = None
