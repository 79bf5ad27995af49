"""Shared test helpers"""

import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from zkp_identity.api_client import APIGateway
from zkp_identity.session import SessionManager
from zkp_identity.storage import MemoryStorage

BASE_URL = "http://testserver"
T0 = 1_700_000_000_000


class FakeClock:
    """Millisecond clock the tests move by hand"""

    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class RecordingBackend:
    """
    httpx.MockTransport handler returning canned answers per path

    routes maps "METHOD /path" to (status, body) or to a callable
    taking the request and returning an httpx.Response.
    """

    def __init__(self, routes: Optional[Dict[str, Any]] = None):
        self.routes = routes or {}
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(f"{request.method} {request.url.path}")
        if route is None:
            return httpx.Response(404, json={"error": "not found"})
        if callable(route):
            return route(request)
        status, body = route
        return httpx.Response(status, json=body)

    def body(self, index: int = -1) -> Dict[str, Any]:
        return json.loads(self.requests[index].content)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def session(storage: MemoryStorage, clock: FakeClock) -> SessionManager:
    return SessionManager(storage, clock=clock)


@pytest.fixture
def navigations() -> List[str]:
    return []


@pytest.fixture
def make_gateway(session: SessionManager, navigations: List[str]) -> Callable[..., APIGateway]:
    def factory(backend: RecordingBackend, **kwargs: Any) -> APIGateway:
        return APIGateway(
            session,
            base_url=BASE_URL,
            on_unauthorized=navigations.append,
            transport=backend.transport,
            **kwargs,
        )
    return factory
