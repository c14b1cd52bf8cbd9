"""Pytest fixtures for mockmode tests."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest

from mockmode.context import MockContext
from mockmode.engine import InterceptorEngine
from mockmode.interception import InterceptionLayer
from mockmode.log import ROOT_LOGGER
from mockmode.registry import ServiceRegistry
from tests.fake_services import RecordingService, make_mailer, tracker_service

MOCKS_YAML = """\
mocks:
  tracker:
    definition: tests.fake_services:tracker_service
    config:
      mode: slow
  mailer:
    definition: tests.fake_services:make_mailer
  archived:
    definition: tests.fake_services:tracker_service
    enabled: false
  config_only:
    config:
      retries: 2
"""


@pytest.fixture(autouse=True)
def restore_mockmode_logger() -> Iterator[None]:
    """configure_logging detaches the mockmode logger from the root; undo that."""
    logger = logging.getLogger(ROOT_LOGGER)
    saved = (list(logger.handlers), logger.propagate, logger.level)
    yield
    logger.handlers[:] = saved[0]
    logger.propagate = saved[1]
    logger.setLevel(saved[2])


@pytest.fixture
def layer() -> Iterator[InterceptionLayer]:
    """Interception layer with passthrough off; cleared (and unpatched) afterwards."""
    layer = InterceptionLayer(allow_passthrough=False)
    yield layer
    layer.clear()


@pytest.fixture
def engine(layer: InterceptionLayer) -> InterceptorEngine:
    return InterceptorEngine(layer)


@pytest.fixture
def registry(engine: InterceptorEngine) -> ServiceRegistry:
    return ServiceRegistry(engine)


@pytest.fixture
def context() -> Iterator[MockContext]:
    """Fresh context that never touches the network."""
    with MockContext(allow_passthrough=False) as ctx:
        yield ctx


@pytest.fixture
def populated_context(context: MockContext) -> MockContext:
    """Context with tracker and mailer registered, nothing enabled."""
    context.registry.register_service("tracker", tracker_service)
    context.registry.register_service("mailer", make_mailer())
    return context


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """No MOCK_* variables and no stray .env file; returns the working directory."""
    for var in ("MOCK_MODE", "MOCK_SERVICES", "MOCK_CONFIG_FILE", "MOCK_LOG_LEVEL", "MOCK_LOG_JSON"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def config_file(clean_env: Path) -> Path:
    path = clean_env / "mocks.yaml"
    path.write_text(MOCKS_YAML)
    return path


@pytest.fixture
def recording() -> RecordingService:
    return RecordingService("recorder")

