"""Read-only views over the registry, plus the hard reset.

Example:
    >>> inspector = StateInspector(registry, mode)
    >>> state = inspector.get_current_state()
    >>> state.services["tracker"].active
    True
    >>> inspector.verify_mock_state(["tracker"]).is_valid
    True
    >>> inspector.clean_all()
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from mockmode.mode import GlobalModeController
from mockmode.registry import ServiceRegistry

logger = logging.getLogger(__name__)

SUMMARY_VALUE_LIMIT = 60


@dataclass
class ServiceState:
    """Snapshot of one registry entry."""

    active: bool
    config_summary: dict[str, Any] = field(default_factory=dict)
    handle_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "active": self.active,
            "config_summary": dict(self.config_summary),
            "handle_count": self.handle_count,
        }


@dataclass
class MockState:
    """Snapshot of the whole mocking state."""

    mock_mode_enabled: bool
    services: dict[str, ServiceState] = field(default_factory=dict)
    interceptor_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "mock_mode_enabled": self.mock_mode_enabled,
            "services": {name: s.to_dict() for name, s in self.services.items()},
            "interceptor_count": self.interceptor_count,
        }


@dataclass
class VerificationResult:
    """Comparison of expected and actual active services."""

    is_valid: bool
    missing_services: list[str] = field(default_factory=list)
    extra_services: list[str] = field(default_factory=list)
    active_services: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "missing_services": list(self.missing_services),
            "extra_services": list(self.extra_services),
            "active_services": list(self.active_services),
        }


def summarize_config(config: dict[str, Any] | None) -> dict[str, Any]:
    """Reduce a config to printable scalars.

    Containers become their size, long strings are truncated.
    """
    if not config:
        return {}
    summary: dict[str, Any] = {}
    for key, value in config.items():
        if value is None or isinstance(value, (bool, int, float)):
            summary[key] = value
        elif isinstance(value, str):
            if len(value) > SUMMARY_VALUE_LIMIT:
                value = value[: SUMMARY_VALUE_LIMIT - 3] + "..."
            summary[key] = value
        elif isinstance(value, (list, tuple, set, frozenset, dict)):
            summary[key] = f"<{type(value).__name__} len={len(value)}>"
        else:
            summary[key] = f"<{type(value).__name__}>"
    return summary


class StateInspector:
    """Diagnostics and test assertions over a registry."""

    def __init__(self, registry: ServiceRegistry, mode: GlobalModeController) -> None:
        self._registry = registry
        self._mode = mode

    def get_current_state(self) -> MockState:
        """Take a snapshot. Has no side effects."""
        engine = self._registry.engine
        with self._registry.lock:
            services = {}
            for name in self._registry.service_names():
                entry = self._registry.get_entry(name)
                if entry is None:
                    continue
                services[name] = ServiceState(
                    active=entry.active,
                    config_summary=summarize_config(entry.last_config),
                    handle_count=sum(1 for h in entry.handles if engine.installed(h)),
                )
            return MockState(
                mock_mode_enabled=self._mode.is_global_mock_mode(),
                services=services,
                interceptor_count=self._registry.engine.interceptor_count(),
            )

    def clean_all(self) -> None:
        """Remove every interceptor and mark every service inactive.

        Cleanup hooks are not run. Never raises.
        """
        with self._registry.lock:
            self._registry.engine.remove_everything()
            self._registry.force_inactive()
        logger.info("All interceptors cleaned")

    def verify_mock_state(self, expected_names: Iterable[str]) -> VerificationResult:
        """Compare expected names with the services that are actually active."""
        expected = list(expected_names)
        active = self._registry.get_active_services()
        missing = [name for name in expected if name not in active]
        extra = [name for name in active if name not in expected]
        return VerificationResult(
            is_valid=not missing and not extra,
            missing_services=missing,
            extra_services=extra,
            active_services=active,
        )

    def get_status(self) -> dict[str, Any]:
        """Compact status for debugging output."""
        state = self.get_current_state()
        return {
            "global_mock_mode": state.mock_mode_enabled,
            "active_services": [n for n, s in state.services.items() if s.active],
            "total_services": len(state.services),
            "total_interceptors": state.interceptor_count,
        }
