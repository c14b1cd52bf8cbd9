"""Environment binding: turn process configuration into registry calls.

Settings come from ``MOCK_*`` environment variables (or a ``.env`` file):

- ``MOCK_MODE=true``: set global mock mode and enable every registered service
- ``MOCK_SERVICES=tracker,mailer``: enable only the listed services
- ``MOCK_CONFIG_FILE=mocks.yaml``: where service definitions and configs live

Config file (mocks.yaml)::

    mocks:
      tracker:
        definition: myapp.mocks.tracker:tracker_service
        config:
          mode: slow
      mailer:
        definition: myapp.mocks.mail:mail_service
        enabled: false
"""

from __future__ import annotations

import importlib
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from mockmode.context import MockContext, get_default_context
from mockmode.errors import ConfigError
from mockmode.log import configure_logging
from mockmode.registry import BulkResult

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class MockSettings(BaseSettings):
    """Process configuration for mockmode."""

    model_config = SettingsConfigDict(
        env_prefix="MOCK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    mode: bool = False
    services: str = ""
    config_file: str | None = None
    log_level: str = "INFO"
    log_json: bool = False

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = str(v).upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Valid: {sorted(VALID_LOG_LEVELS)}")
        return level

    @property
    def service_names(self) -> list[str]:
        """MOCK_SERVICES split on commas, blanks dropped."""
        return [name.strip() for name in self.services.split(",") if name.strip()]


def configure_logging_from_settings(settings: MockSettings | None = None) -> logging.Logger:
    """Apply MOCK_LOG_LEVEL and MOCK_LOG_JSON to the mockmode logger."""
    settings = settings or MockSettings()
    return configure_logging(level=settings.log_level, json_format=settings.log_json)


class ServiceConfig(BaseModel):
    """One entry of the ``mocks`` section of the config file."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = True
    definition: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)

    @field_validator("definition")
    @classmethod
    def validate_definition(cls, v: str | None) -> str | None:
        if v is not None and ":" not in v:
            raise ValueError(f"definition must look like 'package.module:attribute', got {v!r}")
        return v


def load_service_config(config_path: str | Path) -> dict[str, ServiceConfig]:
    """Load the ``mocks`` section of a YAML config file.

    A missing file or a file without a ``mocks`` section yields an empty dict.

    Raises:
        ConfigError: If the file is not valid YAML or an entry is malformed
    """
    path = Path(config_path)
    if not path.exists():
        logger.debug("Mock config file not found: %s", path)
        return {}

    try:
        with open(path) as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Cannot parse {path}: {e}", cause=e, path=str(path)) from e

    if not raw_config:
        return {}
    if not isinstance(raw_config, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level", path=str(path))
    if "mocks" not in raw_config:
        return {}

    mocks = raw_config["mocks"] or {}
    if not isinstance(mocks, dict):
        raise ConfigError(f"The mocks section of {path} must be a mapping", path=str(path))

    result: dict[str, ServiceConfig] = {}
    for service_name, service_config in mocks.items():
        if not isinstance(service_config, dict):
            continue
        try:
            result[str(service_name)] = ServiceConfig(**service_config)
        except ValidationError as e:
            raise ConfigError(
                f"Invalid config for mock service '{service_name}'",
                service=str(service_name),
                cause=e,
                path=str(path),
            ) from e

    return result


def resolve_definition(import_path: str) -> Any:
    """Import a service definition from ``package.module:attribute``.

    If the attribute has no create_interceptors but is callable, it is
    treated as a factory and called without arguments.

    Raises:
        ConfigError: If the module or attribute cannot be found
    """
    module_name, _, attr_path = import_path.partition(":")
    if not module_name or not attr_path:
        raise ConfigError(f"Invalid definition path: {import_path!r}")

    try:
        target: Any = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"Cannot import {module_name}", cause=e, definition=import_path) from e

    for attr in attr_path.split("."):
        try:
            target = getattr(target, attr)
        except AttributeError as e:
            raise ConfigError(
                f"{module_name} has no attribute {attr_path}", cause=e, definition=import_path
            ) from e

    if not hasattr(target, "create_interceptors") and callable(target):
        target = target()
    return target


def initialize_mock_services(
    context: MockContext, service_config: dict[str, ServiceConfig]
) -> list[str]:
    """Register every enabled service that names a definition.

    Returns:
        Names that were registered
    """
    registered: list[str] = []
    for name, entry in service_config.items():
        if not entry.enabled:
            logger.debug("Mock service '%s' disabled in config, not registering", name)
            continue
        if entry.definition is None:
            continue
        context.registry.register_service(name, resolve_definition(entry.definition))
        registered.append(name)
    logger.info("Mock services registered: %s", ", ".join(registered) or "none")
    return registered


def enable_mocking_for_environment(
    context: MockContext,
    config: dict[str, dict[str, Any]] | None = None,
    settings: MockSettings | None = None,
) -> BulkResult:
    """Enable services according to the settings.

    Global mode sets the mode flag and enables everything registered;
    otherwise only the services named in MOCK_SERVICES are enabled. Failures
    are collected, not raised.
    """
    settings = settings or MockSettings()
    config = config or {}

    if settings.mode:
        logger.info("Global mock mode requested by environment")
        context.mode.set_global_mock_mode(True)
        return context.registry.enable_all(config)

    report = BulkResult()
    names = settings.service_names
    if not names:
        return report

    logger.info("Enabling specific mock services: %s", ", ".join(names))
    for name in names:
        try:
            context.registry.enable_service(name, config.get(name))
        except Exception as e:
            logger.error("Failed to enable mock service '%s': %s", name, e)
            report.failed[name] = e
        else:
            report.succeeded.append(name)
    return report


def bind_environment(
    context: MockContext | None = None,
    settings: MockSettings | None = None,
    config: dict[str, dict[str, Any]] | None = None,
) -> BulkResult:
    """Full start-up: load the config file, register services, enable per env.

    Configs passed in ``config`` take precedence over those in the file.
    """
    context = context or get_default_context()
    settings = settings or MockSettings()

    merged: dict[str, dict[str, Any]] = {}
    if settings.config_file:
        service_config = load_service_config(settings.config_file)
        initialize_mock_services(context, service_config)
        merged = {name: dict(entry.config) for name, entry in service_config.items()}
    merged.update(config or {})

    return enable_mocking_for_environment(context, merged, settings)
