"""Test harness helpers.

These are the supported entry points for test code: they go through the
registry so its bookkeeping always matches what is installed.

Example:
    >>> handle = setup_mocks(context, ["tracker"], {"tracker": {"mode": "slow"}})
    >>> assert handle.is_active("tracker")
    >>> ...
    >>> teardown_mocks(context)
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from mockmode.context import MockContext
from mockmode.inspector import MockState, VerificationResult
from mockmode.registry import BulkResult

logger = logging.getLogger(__name__)


class MockHandle:
    """Returned by setup_mocks; controls the services it enabled."""

    def __init__(self, context: MockContext, services: Sequence[str]) -> None:
        self._context = context
        self._services = list(services)

    @property
    def services(self) -> list[str]:
        return self._services.copy()

    def disable(self) -> None:
        """Disable the services this handle enabled."""
        for name in self._services:
            self._context.registry.disable_service(name)

    def get_active_services(self) -> list[str]:
        return self._context.registry.get_active_services()

    def is_active(self, name: str) -> bool:
        return self._context.registry.is_service_active(name)


def setup_mocks(
    context: MockContext,
    services: Sequence[str],
    config: dict[str, dict[str, Any]] | None = None,
) -> MockHandle:
    """Enable the given services for a test or feature.

    Raises:
        ServiceNotRegistered: If a name is unknown. Services enabled before
            it stay enabled; teardown_mocks removes them.
    """
    config = config or {}
    logger.info("Enabling mocking for: %s", ", ".join(services))
    for name in services:
        context.registry.enable_service(name, config.get(name))
    return MockHandle(context, services)


def teardown_mocks(context: MockContext) -> BulkResult:
    """Disable everything, then hard-reset the interception layer."""
    report = context.registry.disable_all()
    context.inspector.clean_all()
    return report


@contextmanager
def isolated_context(allow_passthrough: bool = False) -> Iterator[MockContext]:
    """Fresh MockContext for one test, torn down and reset on exit."""
    context = MockContext(allow_passthrough=allow_passthrough)
    try:
        yield context
    finally:
        teardown_mocks(context)
        context.reset()


def get_mock_state(context: MockContext) -> MockState:
    return context.inspector.get_current_state()


def verify_mock_state(context: MockContext, expected_services: Sequence[str]) -> VerificationResult:
    return context.inspector.verify_mock_state(expected_services)
