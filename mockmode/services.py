"""Building blocks for service definitions.

Concrete mock services live with the application that needs them. This
module gives them a common shape:

- Scope: fluent builder for the interceptors of one base URL
- MockService: a ServiceDefinition built from a base URL and a setup function
- Response helpers shared by most fake APIs

Example:
    >>> def setup_mailer(scope, config):
    ...     scope.post("/api/email/send").reply(200, json=success_response({"id": "EMAIL-1"})).persist()
    ...     scope.get("/api/email/sent").reply(200, json=success_response([])).persist()
    >>>
    >>> mailer = MockService("mailer", "https://mock-email.test", setup_mailer)
    >>> registry.register_service("mailer", mailer)
"""

from __future__ import annotations

import inspect
import logging
import random
import re
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Union

import httpx

from mockmode.interception import InterceptorSpec, MockedResponse, ResponseSequence

logger = logging.getLogger(__name__)

SetupResult = Union[None, Sequence[InterceptorSpec], Awaitable[Union[None, Sequence[InterceptorSpec]]]]
SetupFunction = Callable[["Scope", dict[str, Any]], SetupResult]


class _PathPattern:
    """URL predicate: same origin as the base URL and path matching a regex."""

    def __init__(self, base_url: str, pattern: re.Pattern[str]) -> None:
        self._base = httpx.URL(base_url)
        self.pattern = pattern
        self.__name__ = f"{base_url}/{pattern.pattern}/"

    def __call__(self, url: httpx.URL) -> bool:
        if (self._base.scheme, self._base.host, self._base.port) != (url.scheme, url.host, url.port):
            return False
        return self.pattern.search(url.path) is not None


class SpecBuilder:
    """Fluent builder for one interceptor.

    The spec is added to its scope when a reply is set; persist() may be
    chained afterwards.

    Example:
        >>> scope.get("/rest/api/2/project").with_header("Authorization", "Bearer t").reply(
        ...     200, json=[{"key": "DEMO"}]
        ... ).persist()
    """

    def __init__(self, scope: Scope, method: str, path: str | re.Pattern[str]) -> None:
        self._scope = scope
        self._method = method
        self._path = path
        self._headers: dict[str, str] = {}
        self._query_params: dict[str, str] = {}
        self._spec: InterceptorSpec | None = None

    def with_header(self, key: str, value: str) -> SpecBuilder:
        """Require specific header value."""
        self._headers[key] = value
        return self

    def with_query_param(self, key: str, value: str) -> SpecBuilder:
        """Require specific query parameter."""
        self._query_params[key] = value
        return self

    def reply(
        self,
        status: int = 200,
        json: dict[str, Any] | list[Any] | None = None,
        text: str | None = None,
        body: bytes | None = None,
        headers: dict[str, str] | None = None,
        delay_ms: float = 0,
    ) -> SpecBuilder:
        """Answer with a fixed response."""
        return self._set_response(
            MockedResponse(
                status=status,
                json_body=json,
                text_body=text,
                body=body,
                headers=headers or {},
                delay_ms=delay_ms,
            )
        )

    def reply_with(self, factory: Callable[[httpx.Request], Any]) -> SpecBuilder:
        """Answer with whatever the factory returns for each request."""
        return self._set_response(factory)

    def reply_sequence(
        self, responses: list[MockedResponse], repeat_last: bool = True
    ) -> SpecBuilder:
        """Answer successive requests with successive responses."""
        return self._set_response(ResponseSequence(responses, repeat_last=repeat_last))

    def reply_error(
        self,
        status: int = 500,
        message: str = "Internal Server Error",
        code: str = "MOCK_ERROR",
    ) -> SpecBuilder:
        """Answer with a standard error body."""
        return self._set_response(error_response(status, message, code))

    def times_out(self, after_ms: float = 30000) -> SpecBuilder:
        """Simulate a timeout."""
        return self._set_response(MockedResponse(timeout=True, delay_ms=after_ms))

    def persist(self) -> SpecBuilder:
        """Keep answering after the first match."""
        if self._spec is None:
            raise ValueError("persist() must follow a reply")
        self._spec.persistent = True
        return self

    @property
    def spec(self) -> InterceptorSpec | None:
        return self._spec

    def _set_response(self, response: Any) -> SpecBuilder:
        if self._spec is not None:
            raise ValueError(f"Reply already set for {self._spec.describe()}")
        if isinstance(self._path, re.Pattern):
            url: Any = _PathPattern(self._scope.base_url, self._path)
        else:
            url = self._scope.base_url + "/" + self._path.lstrip("/")
        self._spec = InterceptorSpec(
            method=self._method,
            url=url,
            response=response,
            headers=dict(self._headers),
            query_params=dict(self._query_params),
        )
        self._scope.add(self._spec)
        return self


class Scope:
    """Collects interceptor specs for one base URL, in declaration order."""

    def __init__(self, base_url: str) -> None:
        self._base_url = base_url.rstrip("/")
        self._specs: list[InterceptorSpec] = []

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def specs(self) -> list[InterceptorSpec]:
        return self._specs.copy()

    def add(self, spec: InterceptorSpec) -> None:
        self._specs.append(spec)

    def get(self, path: str | re.Pattern[str]) -> SpecBuilder:
        return SpecBuilder(self, "GET", path)

    def post(self, path: str | re.Pattern[str]) -> SpecBuilder:
        return SpecBuilder(self, "POST", path)

    def put(self, path: str | re.Pattern[str]) -> SpecBuilder:
        return SpecBuilder(self, "PUT", path)

    def patch(self, path: str | re.Pattern[str]) -> SpecBuilder:
        return SpecBuilder(self, "PATCH", path)

    def delete(self, path: str | re.Pattern[str]) -> SpecBuilder:
        return SpecBuilder(self, "DELETE", path)

    def any(self, path: str | re.Pattern[str]) -> SpecBuilder:
        """Match any HTTP method."""
        return SpecBuilder(self, "*", path)


class MockService:
    """A service definition built from a base URL and a setup function.

    The setup function receives a fresh Scope and the enable config. It may
    declare interceptors on the scope, return extra specs, or both; it may
    also be a coroutine function. A ``base_url`` key in the config overrides
    the default base URL, and specs listed under ``custom_interceptors`` are
    appended after the declared ones.

    Attributes:
        name: Service name
        base_url: Default base URL of the simulated API
    """

    def __init__(
        self,
        name: str,
        base_url: str,
        setup: SetupFunction,
        on_cleanup: Callable[[], None] | None = None,
    ) -> None:
        self.name = name
        self.base_url = base_url
        self._setup = setup
        self._on_cleanup = on_cleanup

    def create_interceptors(
        self, config: dict[str, Any]
    ) -> list[InterceptorSpec] | Awaitable[list[InterceptorSpec]]:
        scope = Scope(config.get("base_url") or self.base_url)
        logger.debug("Setting up %s interceptors for %s", self.name, scope.base_url)
        result = self._setup(scope, config)
        if inspect.isawaitable(result):
            return self._collect_async(scope, result, config)
        return self._collect(scope, result, config)

    def cleanup(self) -> None:
        if self._on_cleanup is not None:
            self._on_cleanup()

    async def _collect_async(
        self, scope: Scope, pending: Awaitable[Any], config: dict[str, Any]
    ) -> list[InterceptorSpec]:
        return self._collect(scope, await pending, config)

    def _collect(
        self, scope: Scope, returned: Sequence[InterceptorSpec] | None, config: dict[str, Any]
    ) -> list[InterceptorSpec]:
        specs = scope.specs
        if returned:
            specs.extend(returned)
        specs.extend(config.get("custom_interceptors") or [])
        logger.debug("%s mock service: %d interceptors", self.name, len(specs))
        return specs

    def __repr__(self) -> str:
        return f"MockService(name={self.name!r}, base_url={self.base_url!r})"


@dataclass
class FieldValidation:
    """Result of validate_required_fields."""

    is_valid: bool
    missing_fields: list[str] = field(default_factory=list)
    message: str = "Validation passed"


def error_response(status: int, message: str, code: str = "MOCK_ERROR") -> MockedResponse:
    """Standard error response used by the simulated APIs."""
    return MockedResponse(
        status=status,
        json_body={
            "errorMessages": [message],
            "errors": {},
            "code": code,
            "status": status,
        },
    )


def success_response(data: Any, **meta: Any) -> dict[str, Any]:
    """Standard success envelope."""
    return {"success": True, "data": data, **meta}


def validate_required_fields(data: dict[str, Any] | None, required: Sequence[str]) -> FieldValidation:
    """Check that every required field is present and truthy."""
    data = data or {}
    missing = [name for name in required if not data.get(name)]
    if missing:
        return FieldValidation(
            is_valid=False,
            missing_fields=missing,
            message=f"Missing required fields: {', '.join(missing)}",
        )
    return FieldValidation(is_valid=True)


def generate_id(prefix: str = "MOCK") -> str:
    """Random identifier like ``MOCK-1700000000000-123``."""
    return f"{prefix}-{int(time.time() * 1000)}-{random.randint(0, 999)}"
