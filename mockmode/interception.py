"""Request interception for httpx.

This module is the network-facing half of mockmode:
- InterceptorSpec describes one rule (method + URL matcher + response)
- InterceptionLayer keeps the ordered table of live interceptors
- While the layer holds interceptors, the default httpx transports are
  patched so that every client in the process is routed through it

Example:
    >>> layer = InterceptionLayer()
    >>> layer.add(InterceptorSpec(
    ...     method="GET",
    ...     url="https://tracker.test/rest/api/2/project",
    ...     response=MockedResponse(json_body=[{"key": "DEMO"}]),
    ...     persistent=True,
    ... ))
    >>> httpx.get("https://tracker.test/rest/api/2/project").json()
    [{'key': 'DEMO'}]
    >>> layer.clear()
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import re
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Any, Union

import httpx

from mockmode.errors import MockError, MockTimeoutError, NoMatchingInterceptor

logger = logging.getLogger(__name__)

# Layers that emptied while another patch sat on top of theirs, keyed by
# the methods they installed. Unwound once the patch above is restored.
_detached_layers: dict[tuple[Any, Any], InterceptionLayer] = {}
_patch_lock = Lock()

ANY_METHOD = "*"


@dataclass
class MockedResponse:
    """A canned HTTP response.

    Attributes:
        status: HTTP status code
        headers: Response headers
        body: Raw response body
        json_body: JSON response body (takes precedence over text_body)
        text_body: Text response body
        delay_ms: Delay before returning response (milliseconds)
        raise_error: Exception to raise instead of returning response
        timeout: Simulate a timeout
    """

    status: int = 200
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes | None = None
    json_body: dict[str, Any] | list[Any] | None = None
    text_body: str | None = None
    delay_ms: float = 0
    raise_error: Exception | None = None
    timeout: bool = False

    def __post_init__(self) -> None:
        self.headers = dict(self.headers)
        if "content-type" not in {k.lower() for k in self.headers}:
            if self.json_body is not None:
                self.headers["Content-Type"] = "application/json"
            elif self.text_body is not None:
                self.headers["Content-Type"] = "text/plain"

    def get_body(self) -> bytes:
        """Get the response body as bytes."""
        if self.body is not None:
            return self.body
        if self.json_body is not None:
            return json.dumps(self.json_body).encode("utf-8")
        if self.text_body is not None:
            return self.text_body.encode("utf-8")
        return b""

    def to_httpx_response(self, request: httpx.Request) -> httpx.Response:
        """Convert to httpx.Response."""
        return httpx.Response(
            status_code=self.status,
            headers=self.headers,
            content=self.get_body(),
            request=request,
        )


class ResponseSequence:
    """A sequence of responses returned in order by one persistent interceptor.

    Example:
        >>> sequence = ResponseSequence([
        ...     MockedResponse(status=503),
        ...     MockedResponse(status=200, json_body={"ok": True}),
        ... ])
    """

    def __init__(
        self,
        responses: list[MockedResponse],
        repeat_last: bool = True,
    ) -> None:
        if not responses:
            raise ValueError("Response sequence cannot be empty")
        self._responses = responses
        self._repeat_last = repeat_last
        self._index = 0
        self._lock = Lock()

    def next(self) -> MockedResponse:
        """Get the next response in the sequence."""
        with self._lock:
            if self._index >= len(self._responses):
                if self._repeat_last:
                    return self._responses[-1]
                raise MockError("Response sequence exhausted")
            response = self._responses[self._index]
            self._index += 1
            return response

    def reset(self) -> None:
        """Reset the sequence to the beginning."""
        with self._lock:
            self._index = 0

    @property
    def remaining(self) -> int:
        """Number of responses remaining before repetition."""
        return max(0, len(self._responses) - self._index)


ResponseFactory = Union[
    MockedResponse,
    ResponseSequence,
    httpx.Response,
    Callable[[httpx.Request], Any],
]
UrlMatcher = Union[str, re.Pattern[str], Callable[[httpx.URL], bool]]


@dataclass
class InterceptorSpec:
    """One request-interception rule.

    Attributes:
        method: HTTP method to match, or "*" for any method
        url: Full URL (or bare path, matched on any host), a compiled regex
            searched in the full URL, or a predicate on httpx.URL
        response: What to answer with. Callables receive the request and may
            return a MockedResponse, an httpx.Response or a
            (status, body[, headers]) tuple; async callables are awaited on
            async clients
        persistent: Keep answering after the first match (one-shot otherwise)
        headers: Request headers that must be present with these values
        query_params: Query parameters that must be present with these values
    """

    method: str
    url: UrlMatcher
    response: ResponseFactory
    persistent: bool = False
    headers: dict[str, str] = field(default_factory=dict)
    query_params: dict[str, str] = field(default_factory=dict)

    def validate(self) -> None:
        """Check the spec can be installed.

        Raises:
            TypeError: If a field has an unsupported type
            ValueError: If a field has an unusable value
        """
        if not isinstance(self.method, str) or not self.method.strip():
            raise ValueError(f"Invalid HTTP method: {self.method!r}")
        if isinstance(self.url, str):
            if not self.url:
                raise ValueError("Interceptor url cannot be empty")
            httpx.URL(self.url)
        elif not isinstance(self.url, re.Pattern) and not callable(self.url):
            raise TypeError(
                f"Interceptor url must be a string, regex or predicate, got {type(self.url).__name__}"
            )
        if not isinstance(
            self.response, (MockedResponse, ResponseSequence, httpx.Response)
        ) and not callable(self.response):
            raise TypeError(
                f"Unsupported response type: {type(self.response).__name__}"
            )

    def matches(self, request: httpx.Request) -> bool:
        """Check if request matches this spec."""
        if self.method != ANY_METHOD and self.method.upper() != request.method.upper():
            return False

        if not self._url_matches(request.url):
            return False

        for key, value in self.headers.items():
            if request.headers.get(key) != value:
                return False

        for key, value in self.query_params.items():
            if value not in request.url.params.get_list(key):
                return False

        return True

    def _url_matches(self, url: httpx.URL) -> bool:
        if isinstance(self.url, re.Pattern):
            return self.url.search(str(url)) is not None
        if callable(self.url):
            return bool(self.url(url))

        expected = httpx.URL(self.url)
        if expected.host:
            if (expected.scheme, expected.host, expected.port) != (url.scheme, url.host, url.port):
                return False
        if _normalize_path(expected.path) != _normalize_path(url.path):
            return False
        for key, value in expected.params.multi_items():
            if value not in url.params.get_list(key):
                return False
        return True

    def describe(self) -> str:
        """Short human-readable form, used in logs and state dumps."""
        if isinstance(self.url, re.Pattern):
            target = f"/{self.url.pattern}/"
        elif callable(self.url):
            target = getattr(self.url, "__name__", "<predicate>")
        else:
            target = self.url
        return f"{self.method.upper()} {target}"


def _normalize_path(path: str) -> str:
    return path.rstrip("/") or "/"


@dataclass
class Interceptor:
    """A spec that is live in an InterceptionLayer.

    Attributes:
        id: Unique identifier within the layer
        spec: The installed spec
        call_count: Number of requests this interceptor answered
        calls: Record of those requests
        created_at: When the interceptor was added
    """

    id: str
    spec: InterceptorSpec
    call_count: int = 0
    calls: list[dict[str, Any]] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def persistent(self) -> bool:
        return self.spec.persistent

    def record_call(self, request: httpx.Request) -> None:
        """Record a call to this interceptor."""
        self.call_count += 1
        self.calls.append(
            {
                "timestamp": datetime.now().isoformat(),
                "method": request.method,
                "url": str(request.url),
                "headers": dict(request.headers),
                "body": _request_body(request),
            }
        )


def _request_body(request: httpx.Request) -> str:
    try:
        return request.content.decode("utf-8", errors="ignore")
    except httpx.RequestNotRead:
        return "<stream>"


class InterceptionLayer:
    """Ordered table of live interceptors in front of httpx.

    The first interceptor (in installation order) whose spec matches a
    request answers it. One-shot interceptors are removed when they answer.
    Requests nobody matches are recorded and either sent on to the real
    transport (allow_passthrough) or rejected with NoMatchingInterceptor.

    While the layer is non-empty, httpx.HTTPTransport.handle_request and
    httpx.AsyncHTTPTransport.handle_async_request are patched; the previous
    methods are restored when the layer empties. If another patch sits on
    top by then, the empty layer only delegates to what it replaced and is
    unwound once the patch above is restored. Use transport() or
    async_transport() to route a single client through the layer instead.
    """

    def __init__(self, allow_passthrough: bool = True) -> None:
        self._interceptors: list[Interceptor] = []
        self._unmatched_requests: list[dict[str, Any]] = []
        self._lock = Lock()
        self._allow_passthrough = allow_passthrough
        self._saved_methods: tuple[Any, Any] | None = None
        self._patched_methods: tuple[Any, Any] | None = None

    @property
    def allow_passthrough(self) -> bool:
        return self._allow_passthrough

    @allow_passthrough.setter
    def allow_passthrough(self, value: bool) -> None:
        self._allow_passthrough = value

    @property
    def is_patching(self) -> bool:
        """Whether the httpx transports are currently routed through this layer."""
        return self._patched_methods is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._interceptors)

    @property
    def interceptors(self) -> list[Interceptor]:
        """Live interceptors in match order."""
        with self._lock:
            return self._interceptors.copy()

    def get(self, interceptor_id: str) -> Interceptor | None:
        with self._lock:
            for interceptor in self._interceptors:
                if interceptor.id == interceptor_id:
                    return interceptor
            return None

    def add(self, spec: InterceptorSpec) -> Interceptor:
        """Validate a spec and append it to the table.

        Raises:
            TypeError, ValueError: If the spec is invalid
        """
        spec.validate()
        interceptor = Interceptor(id=uuid.uuid4().hex, spec=spec)
        with self._lock:
            self._interceptors.append(interceptor)
            self._patch()
        logger.debug("Interceptor added: %s (%s)", spec.describe(), interceptor.id)
        return interceptor

    def discard(self, interceptor_id: str) -> bool:
        """Remove an interceptor by id. Returns False if it was not live."""
        with self._lock:
            for i, interceptor in enumerate(self._interceptors):
                if interceptor.id == interceptor_id:
                    del self._interceptors[i]
                    if not self._interceptors:
                        self._unpatch()
                    return True
            return False

    def clear(self) -> int:
        """Remove every interceptor and forget unmatched requests.

        Returns:
            Number of interceptors removed
        """
        with self._lock:
            removed = len(self._interceptors)
            self._interceptors.clear()
            self._unmatched_requests.clear()
            self._unpatch()
        return removed

    def pending(self) -> list[Interceptor]:
        """One-shot interceptors that have not been consumed yet."""
        with self._lock:
            return [i for i in self._interceptors if not i.persistent]

    def unmatched_requests(self) -> list[dict[str, Any]]:
        """Requests that no interceptor matched."""
        with self._lock:
            return self._unmatched_requests.copy()

    def _claim(self, request: httpx.Request) -> Interceptor | None:
        """Find the answering interceptor, consuming it if one-shot."""
        with self._lock:
            for i, interceptor in enumerate(self._interceptors):
                if interceptor.spec.matches(request):
                    interceptor.record_call(request)
                    if not interceptor.persistent:
                        del self._interceptors[i]
                        if not self._interceptors:
                            self._unpatch()
                    return interceptor

            self._unmatched_requests.append(
                {
                    "timestamp": datetime.now().isoformat(),
                    "method": request.method,
                    "url": str(request.url),
                    "headers": dict(request.headers),
                }
            )
            return None

    def handle_request(
        self,
        request: httpx.Request,
        passthrough: Callable[[], httpx.Response] | None = None,
    ) -> httpx.Response:
        """Answer a request from the interceptor table.

        Raises:
            NoMatchingInterceptor: If nothing matches and the request cannot pass through
            MockTimeoutError: If the interceptor simulates a timeout
        """
        interceptor = self._claim(request)
        if interceptor is None:
            if passthrough is not None and self._allow_passthrough:
                logger.debug("Passing through %s %s", request.method, request.url)
                return passthrough()
            raise NoMatchingInterceptor(
                f"No interceptor matches {request.method} {request.url}"
            )

        result = _call_factory(interceptor.spec.response, request)
        if inspect.isawaitable(result):
            close = getattr(result, "close", None)
            if close is not None:
                close()
            raise MockError(
                f"Interceptor {interceptor.spec.describe()} has an async response "
                "factory and cannot answer a synchronous client"
            )
        response = _coerce_response(result)
        if isinstance(response, httpx.Response):
            response.request = request
            return response

        _check_special(response, request)
        if response.delay_ms > 0:
            time.sleep(response.delay_ms / 1000)
        return response.to_httpx_response(request)

    async def handle_request_async(
        self,
        request: httpx.Request,
        passthrough: Callable[[], Awaitable[httpx.Response]] | None = None,
    ) -> httpx.Response:
        """Answer a request from an async client."""
        interceptor = self._claim(request)
        if interceptor is None:
            if passthrough is not None and self._allow_passthrough:
                logger.debug("Passing through %s %s", request.method, request.url)
                return await passthrough()
            raise NoMatchingInterceptor(
                f"No interceptor matches {request.method} {request.url}"
            )

        result = _call_factory(interceptor.spec.response, request)
        if inspect.isawaitable(result):
            result = await result
        response = _coerce_response(result)
        if isinstance(response, httpx.Response):
            response.request = request
            return response

        _check_special(response, request)
        if response.delay_ms > 0:
            await asyncio.sleep(response.delay_ms / 1000)
        return response.to_httpx_response(request)

    def transport(self) -> httpx.MockTransport:
        """Create an httpx transport answered only by this layer.

        Example:
            >>> client = httpx.Client(transport=layer.transport())
        """
        return httpx.MockTransport(self.handle_request)

    def async_transport(self) -> httpx.MockTransport:
        """Create an async httpx transport answered only by this layer."""
        return httpx.MockTransport(self.handle_request_async)

    def _patch(self) -> None:
        if self._patched_methods is not None:
            # Still in the httpx call chain; take it back from the detached set.
            with _patch_lock:
                _detached_layers.pop(self._patched_methods, None)
            return

        layer = self
        original_sync = httpx.HTTPTransport.handle_request
        original_async = httpx.AsyncHTTPTransport.handle_async_request

        def handle_request(transport: httpx.HTTPTransport, request: httpx.Request) -> httpx.Response:
            if len(layer) == 0:
                return original_sync(transport, request)
            return layer.handle_request(
                request, passthrough=lambda: original_sync(transport, request)
            )

        async def handle_async_request(
            transport: httpx.AsyncHTTPTransport, request: httpx.Request
        ) -> httpx.Response:
            if len(layer) == 0:
                return await original_async(transport, request)
            return await layer.handle_request_async(
                request, passthrough=lambda: original_async(transport, request)
            )

        httpx.HTTPTransport.handle_request = handle_request  # type: ignore[method-assign]
        httpx.AsyncHTTPTransport.handle_async_request = handle_async_request  # type: ignore[method-assign]
        self._saved_methods = (original_sync, original_async)
        self._patched_methods = (handle_request, handle_async_request)
        logger.debug("httpx transports patched")

    def _unpatch(self) -> None:
        if self._patched_methods is None or self._saved_methods is None:
            return

        with _patch_lock:
            current = (
                httpx.HTTPTransport.handle_request,
                httpx.AsyncHTTPTransport.handle_async_request,
            )
            if current != self._patched_methods:
                # Patched over; an empty layer only delegates until the patch above is gone.
                logger.warning(
                    "httpx transports were re-patched by another owner, "
                    "restoring them once that patch is removed"
                )
                _detached_layers[self._patched_methods] = self
                return

            current = self._restore()
            while current in _detached_layers:
                current = _detached_layers.pop(current)._restore()
        logger.debug("httpx transports restored")

    def _restore(self) -> tuple[Any, Any]:
        """Put back the methods this layer replaced and return them."""
        saved = self._saved_methods
        assert saved is not None
        httpx.HTTPTransport.handle_request, httpx.AsyncHTTPTransport.handle_async_request = (  # type: ignore[method-assign]
            saved
        )
        self._saved_methods = None
        self._patched_methods = None
        return saved


def _call_factory(factory: ResponseFactory, request: httpx.Request) -> Any:
    if isinstance(factory, ResponseSequence):
        return factory.next()
    if isinstance(factory, (MockedResponse, httpx.Response)):
        return factory
    return factory(request)


def _coerce_response(result: Any) -> MockedResponse | httpx.Response:
    if isinstance(result, (MockedResponse, httpx.Response)):
        return result
    if isinstance(result, ResponseSequence):
        return result.next()
    if isinstance(result, tuple) and 2 <= len(result) <= 3:
        status, body = result[0], result[1]
        headers = dict(result[2]) if len(result) == 3 else {}
        if isinstance(body, (dict, list)):
            return MockedResponse(status=status, json_body=body, headers=headers)
        if isinstance(body, bytes):
            return MockedResponse(status=status, body=body, headers=headers)
        if body is None:
            return MockedResponse(status=status, headers=headers)
        return MockedResponse(status=status, text_body=str(body), headers=headers)
    raise MockError(f"Response factory returned unsupported value: {type(result).__name__}")


def _check_special(response: MockedResponse, request: httpx.Request) -> None:
    if response.raise_error is not None:
        raise response.raise_error
    if response.timeout:
        raise MockTimeoutError(
            f"Mock timeout after {response.delay_ms}ms for {request.method} {request.url}"
        )
