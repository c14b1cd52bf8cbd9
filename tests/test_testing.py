"""Tests for the test harness helpers."""

from __future__ import annotations

import httpx
import pytest

from mockmode.context import MockContext
from mockmode.errors import NoMatchingInterceptor, ServiceNotRegistered
from mockmode.testing import (
    get_mock_state,
    isolated_context,
    setup_mocks,
    teardown_mocks,
    verify_mock_state,
)
from tests.fake_services import TRACKER_URL, RecordingService, make_mailer, tracker_service


class TestSetupMocks:
    def test_enables_requested_services(self, populated_context: MockContext) -> None:
        handle = setup_mocks(populated_context, ["tracker"], {"tracker": {"mode": "slow"}})

        assert handle.services == ["tracker"]
        assert handle.is_active("tracker")
        assert not handle.is_active("mailer")
        assert handle.get_active_services() == ["tracker"]
        entry = populated_context.registry.get_entry("tracker")
        assert entry is not None
        assert entry.last_config == {"mode": "slow"}

    def test_handle_disable(self, populated_context: MockContext) -> None:
        populated_context.registry.enable_service("mailer")
        handle = setup_mocks(populated_context, ["tracker"])

        handle.disable()

        assert populated_context.registry.get_active_services() == ["mailer"]

    def test_unknown_service(self, populated_context: MockContext) -> None:
        with pytest.raises(ServiceNotRegistered):
            setup_mocks(populated_context, ["tracker", "ghost"])
        assert populated_context.registry.get_active_services() == ["tracker"]


class TestTeardownMocks:
    def test_disables_and_clears(self, populated_context: MockContext) -> None:
        cleanup_seen = RecordingService("extra")
        populated_context.registry.register_service("extra", cleanup_seen)
        setup_mocks(populated_context, ["tracker", "extra"])

        report = teardown_mocks(populated_context)

        assert report.ok
        assert cleanup_seen.cleanup_calls == 1
        assert populated_context.registry.get_active_services() == []
        assert populated_context.engine.interceptor_count() == 0


class TestStateHelpers:
    def test_state_and_verify(self, populated_context: MockContext) -> None:
        setup_mocks(populated_context, ["tracker", "mailer"])

        state = get_mock_state(populated_context)
        assert state.services["tracker"].active
        assert state.services["mailer"].active

        assert verify_mock_state(populated_context, ["tracker", "mailer"]).is_valid
        assert not verify_mock_state(populated_context, ["tracker"]).is_valid


class TestIsolatedContext:
    def test_tears_down_on_exit(self) -> None:
        original = httpx.HTTPTransport.handle_request

        with isolated_context() as context:
            context.registry.register_service("tracker", tracker_service)
            context.registry.register_service("mailer", make_mailer())
            setup_mocks(context, ["tracker"])
            assert httpx.get(f"{TRACKER_URL}/rest/api/2/project").status_code == 200
            with pytest.raises(NoMatchingInterceptor):
                httpx.get("https://unmocked.test/")

        assert context.registry.service_names() == []
        assert context.engine.interceptor_count() == 0
        assert httpx.HTTPTransport.handle_request is original

    def test_tears_down_on_error(self) -> None:
        with pytest.raises(RuntimeError):
            with isolated_context() as context:
                context.registry.register_service("svc", RecordingService("svc"))
                context.registry.enable_service("svc")
                raise RuntimeError("test failed")

        assert context.engine.interceptor_count() == 0
