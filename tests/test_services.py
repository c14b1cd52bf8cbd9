"""Tests for service definition building blocks."""

from __future__ import annotations

import re
from typing import Any

import httpx
import pytest

from mockmode.context import MockContext
from mockmode.errors import MockTimeoutError, NoMatchingInterceptor
from mockmode.interception import InterceptionLayer, InterceptorSpec, MockedResponse
from mockmode.registry import validate_definition
from mockmode.services import (
    MockService,
    Scope,
    error_response,
    generate_id,
    success_response,
    validate_required_fields,
)
from tests.fake_services import MAILER_URL, TRACKER_URL


class TestScope:
    def test_builds_specs_in_order(self) -> None:
        scope = Scope("https://api.test/")
        scope.get("/users").reply(200, json=[])
        scope.post("users").reply(201, json={"id": 1}).persist()
        scope.any("/health").reply(204)

        specs = scope.specs
        assert [(s.method, s.url) for s in specs] == [
            ("GET", "https://api.test/users"),
            ("POST", "https://api.test/users"),
            ("*", "https://api.test/health"),
        ]
        assert [s.persistent for s in specs] == [False, True, False]

    def test_put_patch_delete(self) -> None:
        scope = Scope("https://api.test")
        scope.put("/a").reply()
        scope.patch("/a").reply()
        scope.delete("/a").reply()
        assert [s.method for s in scope.specs] == ["PUT", "PATCH", "DELETE"]

    def test_header_and_query_requirements(self) -> None:
        scope = Scope("https://api.test")
        scope.get("/search").with_header("Authorization", "Bearer t").with_query_param("q", "x").reply()

        spec = scope.specs[0]
        assert spec.headers == {"Authorization": "Bearer t"}
        assert spec.query_params == {"q": "x"}

    def test_regex_path_stays_on_base_origin(self) -> None:
        scope = Scope("https://api.test")
        builder = scope.get(re.compile(r"^/users/\d+$")).reply(200, json={"id": 1})

        spec = builder.spec
        assert spec is not None
        assert spec.matches(httpx.Request("GET", "https://api.test/users/42"))
        assert not spec.matches(httpx.Request("GET", "https://other.test/users/42"))
        assert not spec.matches(httpx.Request("GET", "https://api.test/users/me"))

    def test_shared_headers_reused_across_replies(self) -> None:
        headers = {"X-Api-Version": "2"}
        scope = Scope("https://api.test")
        scope.get("/json").reply(200, json={"ok": True}, headers=headers)
        scope.get("/text").reply(200, text="ok", headers=headers)

        json_spec, text_spec = scope.specs
        assert headers == {"X-Api-Version": "2"}
        assert isinstance(text_spec.response, MockedResponse)
        assert text_spec.response.headers["Content-Type"] == "text/plain"
        assert isinstance(json_spec.response, MockedResponse)
        assert json_spec.response.headers["Content-Type"] == "application/json"

    def test_persist_before_reply(self) -> None:
        with pytest.raises(ValueError):
            Scope("https://api.test").get("/a").persist()

    def test_reply_twice(self) -> None:
        builder = Scope("https://api.test").get("/a").reply()
        with pytest.raises(ValueError, match="already set"):
            builder.reply(500)

    def test_reply_variants(self) -> None:
        scope = Scope("https://api.test")
        scope.get("/error").reply_error(503, "down", "UNAVAILABLE")
        scope.get("/slow").times_out(after_ms=100)
        scope.get("/flaky").reply_sequence([MockedResponse(status=500), MockedResponse(status=200)])
        scope.get("/dynamic").reply_with(lambda request: (200, request.url.path))

        error, slow, flaky, dynamic = scope.specs
        assert isinstance(error.response, MockedResponse)
        assert error.response.json_body == {
            "errorMessages": ["down"],
            "errors": {},
            "code": "UNAVAILABLE",
            "status": 503,
        }
        assert isinstance(slow.response, MockedResponse)
        assert slow.response.timeout is True
        assert callable(dynamic.response)
        assert flaky.response is not None

    def test_end_to_end(self, layer: InterceptionLayer) -> None:
        scope = Scope("https://api.test")
        scope.get("/slow").times_out()
        scope.get("/flaky").reply_sequence(
            [MockedResponse(status=500), MockedResponse(status=200)]
        ).persist()
        for spec in scope.specs:
            layer.add(spec)

        with httpx.Client(transport=layer.transport()) as client:
            assert client.get("https://api.test/flaky").status_code == 500
            assert client.get("https://api.test/flaky").status_code == 200
            with pytest.raises(MockTimeoutError):
                client.get("https://api.test/slow")


class TestMockService:
    def test_is_valid_definition(self) -> None:
        service = MockService("svc", "https://svc.test", lambda scope, config: None)
        validate_definition("svc", service)
        assert repr(service) == "MockService(name='svc', base_url='https://svc.test')"

    def test_declared_and_returned_specs(self) -> None:
        extra = InterceptorSpec(method="GET", url="https://svc.test/extra", response=MockedResponse())

        def setup(scope: Scope, config: dict[str, Any]) -> list[InterceptorSpec]:
            scope.get("/declared").reply()
            return [extra]

        specs = MockService("svc", "https://svc.test", setup).create_interceptors({})

        assert isinstance(specs, list)
        assert [s.url for s in specs] == ["https://svc.test/declared", "https://svc.test/extra"]

    def test_base_url_override_and_custom_interceptors(self) -> None:
        custom = InterceptorSpec(method="GET", url="https://elsewhere.test/", response=MockedResponse())

        def setup(scope: Scope, config: dict[str, Any]) -> None:
            scope.get("/ping").reply()

        service = MockService("svc", "https://svc.test", setup)
        specs = service.create_interceptors(
            {"base_url": "http://localhost:9000", "custom_interceptors": [custom]}
        )

        assert isinstance(specs, list)
        assert [s.url for s in specs] == ["http://localhost:9000/ping", "https://elsewhere.test/"]

    def test_setup_sees_config(self) -> None:
        seen: list[dict[str, Any]] = []
        service = MockService("svc", "https://svc.test", lambda scope, config: seen.append(config))

        service.create_interceptors({"mode": "slow"})

        assert seen == [{"mode": "slow"}]

    @pytest.mark.asyncio
    async def test_async_setup(self) -> None:
        async def setup(scope: Scope, config: dict[str, Any]) -> None:
            scope.get("/ping").reply()

        result = MockService("svc", "https://svc.test", setup).create_interceptors({})

        specs = await result  # type: ignore[misc]
        assert [s.url for s in specs] == ["https://svc.test/ping"]

    def test_cleanup_hook(self) -> None:
        calls: list[str] = []
        service = MockService("svc", "https://svc.test", lambda s, c: None, on_cleanup=lambda: calls.append("x"))
        service.cleanup()
        MockService("plain", "https://plain.test", lambda s, c: None).cleanup()
        assert calls == ["x"]


class TestTrackerAndMailer:
    def test_tracker_answers(self, populated_context: MockContext) -> None:
        populated_context.registry.enable_service("tracker")

        with httpx.Client() as client:
            projects = client.get(f"{TRACKER_URL}/rest/api/2/project")
            created = client.post(f"{TRACKER_URL}/rest/api/2/issue", json={"fields": {"summary": "Bug"}})
            rejected = client.post(f"{TRACKER_URL}/rest/api/2/issue", json={"fields": {}})

        assert projects.json()[0]["key"] == "DEMO"
        assert created.status_code == 201
        assert created.json()["key"].startswith("DEMO-")
        assert rejected.status_code == 400
        assert rejected.json()["code"] == "VALIDATION_ERROR"

    def test_mailer_only(self, populated_context: MockContext) -> None:
        populated_context.registry.enable_service("mailer")

        with httpx.Client() as client:
            sent = client.post(f"{MAILER_URL}/api/email/send", json={"to": "a@example.com"})
            assert sent.json() == {"success": True, "data": {"id": "EMAIL-1"}}
            with pytest.raises(NoMatchingInterceptor):
                client.get(f"{TRACKER_URL}/rest/api/2/project")

    def test_disable_stops_answering(self, populated_context: MockContext) -> None:
        registry = populated_context.registry
        registry.enable_service("tracker")
        registry.enable_service("mailer")
        registry.disable_service("tracker")

        with httpx.Client() as client:
            with pytest.raises(NoMatchingInterceptor):
                client.get(f"{TRACKER_URL}/rest/api/2/project")


class TestResponseHelpers:
    def test_error_response(self) -> None:
        response = error_response(404, "Issue not found")
        assert response.status == 404
        assert response.json_body == {
            "errorMessages": ["Issue not found"],
            "errors": {},
            "code": "MOCK_ERROR",
            "status": 404,
        }

    def test_success_response(self) -> None:
        assert success_response([1], total=1) == {"success": True, "data": [1], "total": 1}

    def test_validate_required_fields(self) -> None:
        ok = validate_required_fields({"to": "a", "subject": "b"}, ["to", "subject"])
        assert ok.is_valid is True

        missing = validate_required_fields({"to": "a", "subject": ""}, ["to", "subject", "body"])
        assert missing.is_valid is False
        assert missing.missing_fields == ["subject", "body"]
        assert missing.message == "Missing required fields: subject, body"

        assert validate_required_fields(None, ["to"]).missing_fields == ["to"]

    def test_generate_id(self) -> None:
        assert re.fullmatch(r"MOCK-\d+-\d{1,3}", generate_id())
        assert generate_id("EMAIL").startswith("EMAIL-")
