"""Service registry: the authoritative name -> mock service lifecycle table.

Each registered service moves between two states::

    Registered(inactive)  <->  Registered(active)

Enabling asks the service definition for interceptor specs, installs them
through the InterceptorEngine and records the returned handles on the
entry. Disabling removes exactly those handles and runs the definition's
cleanup hook. Bulk operations walk services in registration order and never
stop at the first failure.

Example:
    >>> registry = ServiceRegistry(InterceptorEngine())
    >>> registry.register_service("tracker", tracker_definition)
    >>> registry.enable_service("tracker", {"mode": "slow"})
    >>> registry.get_active_services()
    ['tracker']
    >>> registry.disable_service("tracker")
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Iterable, Sequence
from dataclasses import dataclass, field
from threading import RLock
from typing import Any, Protocol, Union, runtime_checkable

from mockmode.engine import Handle, InterceptorEngine
from mockmode.errors import (
    InterceptorInstallationFailed,
    InvalidServiceDefinition,
    ServiceNotRegistered,
    ServiceOperationInProgress,
)
from mockmode.interception import InterceptorSpec
from mockmode.log import log_context

logger = logging.getLogger(__name__)


SpecsResult = Union[Sequence[InterceptorSpec], Awaitable[Sequence[InterceptorSpec]]]


@runtime_checkable
class ServiceDefinition(Protocol):
    """Capabilities a mock service must provide.

    create_interceptors may be a coroutine function. A definition may also
    provide a synchronous cleanup() hook; it is optional and best-effort.
    """

    name: str

    def create_interceptors(self, config: dict[str, Any]) -> SpecsResult: ...


@dataclass
class CleanupResult:
    """Outcome of running a definition's cleanup hook."""

    ok: bool = True
    error: Exception | None = None


@dataclass
class RegistryEntry:
    """Per-service record.

    Attributes:
        name: Registry key
        definition: Current service definition
        active: Whether the service is mocked right now
        handles: Handles of the interceptors installed for the service
        last_config: Config of the last successful enable
        installed_by: Definition that produced the live handles; differs from
            definition after a re-registration until the next disable
        in_flight: An enable/disable for this entry is running
    """

    name: str
    definition: Any
    active: bool = False
    handles: set[Handle] = field(default_factory=set)
    last_config: dict[str, Any] | None = None
    installed_by: Any = None
    in_flight: bool = False


@dataclass
class BulkResult:
    """Report of an enable_all/disable_all call."""

    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, Exception] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "succeeded": list(self.succeeded),
            "failed": {name: str(error) for name, error in self.failed.items()},
        }


def validate_definition(name: str, definition: Any) -> None:
    """Check a definition provides the ServiceDefinition capabilities.

    Raises:
        InvalidServiceDefinition: If the name or definition is unusable
    """
    if not isinstance(name, str) or not name.strip():
        raise InvalidServiceDefinition(
            f"Service name must be a non-empty string, got {name!r}",
            service=str(name),
        )
    if not callable(getattr(definition, "create_interceptors", None)):
        raise InvalidServiceDefinition(
            f"Definition for '{name}' has no callable create_interceptors",
            service=name,
            definition_type=type(definition).__name__,
        )
    cleanup = getattr(definition, "cleanup", None)
    if cleanup is not None and not callable(cleanup):
        raise InvalidServiceDefinition(
            f"Definition for '{name}' has a cleanup attribute that is not callable",
            service=name,
        )


class ServiceRegistry:
    """Maps service names to their definitions and installed interceptors.

    All bookkeeping happens under one re-entrant lock. Each entry also
    carries an operation flag: an enable or disable for a name whose
    previous operation has not finished is rejected with
    ServiceOperationInProgress rather than queued.
    """

    def __init__(self, engine: InterceptorEngine) -> None:
        self._engine = engine
        self._entries: dict[str, RegistryEntry] = {}
        self._lock = RLock()

    @property
    def engine(self) -> InterceptorEngine:
        return self._engine

    @property
    def lock(self) -> RLock:
        """Lock guarding the entries map; hold it for consistent reads."""
        return self._lock

    def register_service(self, name: str, definition: Any) -> None:
        """Register or replace a service definition.

        Replacing a definition does not touch the entry's active flag or
        handles; interceptors of the old definition stay installed until the
        service is disabled.

        Raises:
            InvalidServiceDefinition: If the definition lacks create_interceptors
        """
        validate_definition(name, definition)
        with self._lock:
            entry = self._entries.get(name)
            if entry is None:
                self._entries[name] = RegistryEntry(name=name, definition=definition)
                logger.debug("Mock service registered: %s", name)
                return
            entry.definition = definition
        logger.warning(
            "Mock service '%s' re-registered; active=%s, existing interceptors kept until disabled",
            name,
            entry.active,
        )

    def unregister_service(self, name: str) -> None:
        """Disable a service if needed, then drop its entry.

        Raises:
            ServiceNotRegistered: If the name is unknown
        """
        with self._lock:
            if name not in self._entries:
                raise ServiceNotRegistered(f"Mock service '{name}' not found", service=name)
        self.disable_service(name)
        with self._lock:
            self._entries.pop(name, None)
        logger.debug("Mock service unregistered: %s", name)

    def enable_service(
        self, name: str, config: dict[str, Any] | None = None
    ) -> frozenset[Handle]:
        """Install a service's interceptors.

        Enabling an active service with an equal config does nothing while
        all of its interceptors are live; with a different config, or after
        one-shot interceptors were consumed, the service is disabled and
        enabled again. If create_interceptors is a coroutine function it is
        run to completion with asyncio.run; inside a running event loop use
        enable_service_async instead.

        Returns:
            Handles now installed for the service

        Raises:
            ServiceNotRegistered: If the name is unknown
            ServiceOperationInProgress: If the service is mid enable/disable
            InterceptorInstallationFailed: If installation failed (rolled back)
        """
        config = dict(config or {})
        entry = self._begin(name)
        try:
            with log_context(service=name):
                if self._refresh_if_current(entry, config):
                    return frozenset(entry.handles)
                result = entry.definition.create_interceptors(config)
                if inspect.isawaitable(result):
                    result = _run_awaitable(name, result)
                self._activate(entry, _normalize_specs(name, result), config)
                return frozenset(entry.handles)
        finally:
            self._end(entry)

    async def enable_service_async(
        self, name: str, config: dict[str, Any] | None = None
    ) -> frozenset[Handle]:
        """Async variant of enable_service.

        Awaits create_interceptors before committing anything, so no other
        operation can observe a half-applied enable.
        """
        config = dict(config or {})
        entry = self._begin(name)
        try:
            with log_context(service=name):
                if self._refresh_if_current(entry, config):
                    return frozenset(entry.handles)
                result = entry.definition.create_interceptors(config)
                if inspect.isawaitable(result):
                    result = await result
                self._activate(entry, _normalize_specs(name, result), config)
                return frozenset(entry.handles)
        finally:
            self._end(entry)

    def disable_service(self, name: str) -> bool:
        """Remove a service's interceptors and run its cleanup hook.

        Unknown and inactive services are a no-op.

        Returns:
            True if the service was active and is now disabled

        Raises:
            ServiceOperationInProgress: If the service is mid enable/disable
        """
        entry = self._begin(name, missing_ok=True)
        if entry is None:
            logger.debug("Disable ignored, mock service '%s' is not registered", name)
            return False
        try:
            with log_context(service=name):
                if not entry.active:
                    logger.debug("Disable ignored, mock service '%s' is not active", name)
                    return False
                self._deactivate(entry)
                return True
        finally:
            self._end(entry)

    def toggle_service(self, name: str, config: dict[str, Any] | None = None) -> bool:
        """Disable an active service or enable an inactive one.

        Returns:
            The new active state
        """
        if self.is_service_active(name):
            self.disable_service(name)
            return False
        self.enable_service(name, config)
        return True

    def enable_all(self, config_map: dict[str, dict[str, Any]] | None = None) -> BulkResult:
        """Enable every registered service, in registration order."""
        config_map = config_map or {}
        report = BulkResult()
        for name in self.service_names():
            try:
                self.enable_service(name, config_map.get(name))
            except Exception as e:
                logger.error("Failed to enable mock service '%s': %s", name, e)
                report.failed[name] = e
            else:
                report.succeeded.append(name)
        return report

    async def enable_all_async(
        self, config_map: dict[str, dict[str, Any]] | None = None
    ) -> BulkResult:
        """Async variant of enable_all."""
        config_map = config_map or {}
        report = BulkResult()
        for name in self.service_names():
            try:
                await self.enable_service_async(name, config_map.get(name))
            except Exception as e:
                logger.error("Failed to enable mock service '%s': %s", name, e)
                report.failed[name] = e
            else:
                report.succeeded.append(name)
        return report

    def disable_all(self) -> BulkResult:
        """Disable every registered service, in registration order."""
        report = BulkResult()
        for name in self.service_names():
            try:
                self.disable_service(name)
            except Exception as e:
                logger.error("Failed to disable mock service '%s': %s", name, e)
                report.failed[name] = e
            else:
                report.succeeded.append(name)
        return report

    def service_names(self) -> list[str]:
        """All registered names in registration order."""
        with self._lock:
            return list(self._entries)

    def get_entry(self, name: str) -> RegistryEntry | None:
        with self._lock:
            return self._entries.get(name)

    def get_active_services(self) -> list[str]:
        """Names of active services in registration order."""
        with self._lock:
            return [name for name, entry in self._entries.items() if entry.active]

    def is_service_active(self, name: str) -> bool:
        with self._lock:
            entry = self._entries.get(name)
            return entry is not None and entry.active

    def force_inactive(self) -> None:
        """Mark every entry inactive without removing anything.

        Only for the hard reset, which has already cleared the layer.
        """
        with self._lock:
            for entry in self._entries.values():
                entry.active = False
                entry.handles = set()
                entry.installed_by = None
                entry.last_config = None

    def clear(self) -> None:
        """Forget every entry."""
        with self._lock:
            self._entries.clear()

    def _begin(self, name: str, missing_ok: bool = False) -> RegistryEntry | None:
        with self._lock:
            entry = self._entries.get(name)
            if entry is None:
                if missing_ok:
                    return None
                raise ServiceNotRegistered(f"Mock service '{name}' not found", service=name)
            if entry.in_flight:
                raise ServiceOperationInProgress(
                    f"An enable/disable of mock service '{name}' is already running",
                    service=name,
                )
            entry.in_flight = True
            return entry

    def _end(self, entry: RegistryEntry) -> None:
        with self._lock:
            entry.in_flight = False

    def _refresh_if_current(self, entry: RegistryEntry, config: dict[str, Any]) -> bool:
        """Handle enable of an already active entry.

        The same config is a no-op only while every interceptor the entry
        installed is still live. One-shot interceptors that already answered
        a request are reinstalled.

        Returns:
            True if nothing more needs doing
        """
        if not entry.active:
            return False
        if entry.last_config == config:
            if all(self._engine.installed(h) for h in entry.handles):
                logger.debug("Mock service '%s' already active with the same config", entry.name)
                return True
            logger.info("Mock service '%s' has consumed interceptors, re-enabling", entry.name)
            self._deactivate(entry)
            return False
        logger.info("Mock service '%s' config changed, re-enabling", entry.name)
        self._deactivate(entry)
        return False

    def _activate(
        self,
        entry: RegistryEntry,
        specs: list[InterceptorSpec],
        config: dict[str, Any],
    ) -> None:
        try:
            handles = self._engine.install(specs)
        except InterceptorInstallationFailed as e:
            e.service = entry.name
            raise
        with self._lock:
            entry.handles = handles
            entry.active = True
            entry.last_config = config
            entry.installed_by = entry.definition
        if specs:
            logger.info("Mock service enabled: %s (%d interceptors)", entry.name, len(handles))
        else:
            logger.info("Mock service enabled: %s (no interceptors)", entry.name)

    def _deactivate(self, entry: RegistryEntry) -> None:
        self._engine.remove(entry.handles)
        result = _run_cleanup(entry.name, entry.installed_by or entry.definition)
        with self._lock:
            entry.handles = set()
            entry.active = False
            entry.installed_by = None
        if result.ok:
            logger.info("Mock service disabled: %s", entry.name)
        else:
            logger.info("Mock service disabled: %s (cleanup failed)", entry.name)


def _normalize_specs(name: str, result: Any) -> list[InterceptorSpec]:
    if result is None or isinstance(result, (str, bytes)) or not isinstance(result, Iterable):
        raise InvalidServiceDefinition(
            f"create_interceptors for '{name}' must return a sequence of "
            f"InterceptorSpec, got {type(result).__name__}",
            service=name,
        )
    return list(result)


def _run_awaitable(name: str, awaitable: Awaitable[Any]) -> Any:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(_await(awaitable))

    close = getattr(awaitable, "close", None)
    if close is not None:
        close()
    raise RuntimeError(
        f"create_interceptors for '{name}' is asynchronous and an event loop is "
        "running; use enable_service_async"
    )


async def _await(awaitable: Awaitable[Any]) -> Any:
    return await awaitable


def _run_cleanup(name: str, definition: Any) -> CleanupResult:
    cleanup = getattr(definition, "cleanup", None)
    if cleanup is None:
        return CleanupResult()
    try:
        outcome = cleanup()
        if inspect.isawaitable(outcome):
            close = getattr(outcome, "close", None)
            if close is not None:
                close()
            raise TypeError("cleanup() must be synchronous")
    except Exception as e:
        logger.warning("Cleanup failed for mock service '%s'", name, exc_info=True)
        return CleanupResult(ok=False, error=e)
    return CleanupResult()
