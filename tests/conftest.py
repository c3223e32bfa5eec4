# -*- coding: utf-8 -*-

"""
Common fixtures and utilities for testing Token Relay.

Provides test isolation from external services and global state.
All tests MUST be completely isolated from the network: backends are
simulated with httpx.MockTransport.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import httpx
import pytest
import pytest_asyncio

from tokenrelay.credential_store import MemoryCredentialStore
from tokenrelay.http_client import AuthHttpClient
from tokenrelay.notifier import RecordingNotifier
from tokenrelay.transport import HttpxTransport

BASE_URL = "http://api.test/v1/api"
BASE_PATH = "/v1/api"

LOGIN_PATH = "/access/login"
LOGOUT_PATH = "/access/logout"
REFRESH_PATH = "/access/handlerRefreshToken"

Handler = Callable[[httpx.Request], Union[httpx.Response, Awaitable[httpx.Response]]]


# =============================================================================
# Response Factories
# =============================================================================

def token_body(access_token: str, refresh_token: str, user_id: Optional[str] = None) -> Dict[str, Any]:
    """Login/refresh success body wrapped in the backend's envelope."""
    meta: Dict[str, Any] = {"tokens": {"access_token": access_token, "refresh_token": refresh_token}}
    if user_id is not None:
        meta["user_id"] = user_id
    return {"message": "OK", "status": 200, "metaData": meta}


def expired_response() -> httpx.Response:
    return httpx.Response(401, json={"status": 401, "message": "jwt expired"})


def unauthorized_response(message: str = "Invalid request") -> httpx.Response:
    return httpx.Response(401, json={"status": 401, "message": message})


def bearer_of(request: httpx.Request) -> Optional[str]:
    value = request.headers.get("authorization", "")
    return value[len("Bearer "):] if value.startswith("Bearer ") else None


# =============================================================================
# Fake Backend
# =============================================================================

class FakeApi:
    """
    Scripted backend served through httpx.MockTransport.

    Handlers are registered per path (relative to BASE_URL) and may be
    plain functions or coroutines. Every request is recorded.
    """

    def __init__(self):
        self.handlers: Dict[str, Handler] = {}
        self.requests: List[httpx.Request] = []

    def on(self, path: str, handler: Handler) -> None:
        self.handlers[path] = handler

    def requests_to(self, path: str) -> List[httpx.Request]:
        return [request for request in self.requests if self._relative(request) == path]

    @staticmethod
    def _relative(request: httpx.Request) -> str:
        path = request.url.path
        return path[len(BASE_PATH):] if path.startswith(BASE_PATH) else path

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        # Every network call is a suspension point
        await asyncio.sleep(0)

        handler = self.handlers.get(self._relative(request))
        if handler is None:
            return httpx.Response(404, json={"status": 404, "message": "Not found"})

        result = handler(request)
        if inspect.isawaitable(result):
            result = await result
        return result

    def make_client(self, store=None, notifier=None, **kwargs) -> AuthHttpClient:
        shared = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(self))
        transport = HttpxTransport(BASE_URL, shared_client=shared)
        return AuthHttpClient(transport, store=store, notifier=notifier, **kwargs)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def fake_api():
    """Returns an empty FakeApi."""
    return FakeApi()


@pytest.fixture
def notifier():
    """Notifier that records every message."""
    return RecordingNotifier()


@pytest.fixture
def logged_in_store():
    """Credential store holding an A1/R1 session for user U1."""
    return MemoryCredentialStore({"access_token": "A1", "refresh_token": "R1", "user_id": "U1"})


@pytest_asyncio.fixture
async def make_client(fake_api, notifier):
    """
    Factory for clients wired to fake_api.

    Clients are closed after the test.
    """
    created: List[AuthHttpClient] = []

    def _create(store=None, **kwargs) -> AuthHttpClient:
        client = fake_api.make_client(store=store, notifier=notifier, **kwargs)
        created.append(client)
        return client

    yield _create

    for client in created:
        await client.close()
        await client.transport.client.aclose()
