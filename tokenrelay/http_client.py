# -*- coding: utf-8 -*-

# Token Relay
# Copyright (C) 2025 Jwadow
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""
Authenticated HTTP client with transparent token refresh.

Every call goes through the same pipeline:

    augment(request) -> transport.send() -> classifier.on_success()
                                        \\-> classifier.classify_failure()
                                              ├─ expired token: coordinator.await_refresh(), replay once
                                              └─ otherwise: classifier.on_failure(), raise

Callers never deal with tokens: login() stores them, every request
carries them, an expired access token is refreshed once for all
concurrent requests, and logout() drops them.
"""

from typing import Any, Dict, Optional

import httpx
from loguru import logger

from tokenrelay.augmenter import RequestAugmenter
from tokenrelay.classifier import ResponseClassifier
from tokenrelay.config import (
    API_TARGETS,
    CLIENT_ID_HEADER,
    DEFAULT_TARGET,
    REFRESH_GRACE_PERIOD,
    REFRESH_TOKEN_HEADER,
    REQUEST_TIMEOUT,
    RESPONSE_ENVELOPE_KEY,
)
from tokenrelay.credential_store import CredentialStore
from tokenrelay.exceptions import ClientError
from tokenrelay.models import AuthEndpoints, RequestDescriptor, TokenPayload, parse_token_payload
from tokenrelay.notifier import LoggingNotifier, Notifier
from tokenrelay.refresh import RefreshCoordinator
from tokenrelay.token_state import TokenState
from tokenrelay.transport import HttpxTransport, Transport, decode_body


class AuthHttpClient:
    """
    HTTP client for one backend that manages its own session.

    Attributes:
        token_state: Current session (mirrored to the credential store)
        transport: Request transport
        augmenter: Adds credentials to outgoing requests
        classifier: Applies session side effects of call outcomes
        coordinator: Single-flight refresh state machine
        endpoints: Auth endpoint catalog

    Example:
        >>> async with create_client("main") as client:
        ...     await client.login(email="user@example.com", password="secret")
        ...     response = await client.get("/profile")
        ...     await client.logout()
    """

    def __init__(
        self,
        transport: Transport,
        store: Optional[CredentialStore] = None,
        notifier: Optional[Notifier] = None,
        endpoints: Optional[AuthEndpoints] = None,
        grace_period: float = REFRESH_GRACE_PERIOD,
        client_id_header: str = CLIENT_ID_HEADER,
        refresh_token_header: str = REFRESH_TOKEN_HEADER,
        envelope_key: str = RESPONSE_ENVELOPE_KEY,
    ):
        """
        Initializes the client and restores a stored session, if any.

        Args:
            transport: Transport bound to the backend
            store: Credential store (in-memory if omitted)
            notifier: Sink for generic failure messages (log if omitted)
            endpoints: Auth endpoint catalog
            grace_period: Seconds a settled refresh stays joinable
            client_id_header: Header carrying the user id
            refresh_token_header: Header carrying the refresh token
            envelope_key: Success envelope key of login/refresh payloads
        """
        self.transport = transport
        self.endpoints = endpoints if endpoints is not None else AuthEndpoints()
        self.refresh_token_header = refresh_token_header
        self.envelope_key = envelope_key

        self.token_state = TokenState(store)
        self.augmenter = RequestAugmenter(self.token_state, client_id_header)
        self.classifier = ResponseClassifier(
            self.token_state,
            notifier if notifier is not None else LoggingNotifier(),
            self.endpoints,
            envelope_key=envelope_key,
        )
        self.coordinator = RefreshCoordinator(self.token_state, self._call_refresh_endpoint, grace_period)

    @property
    def is_authenticated(self) -> bool:
        return self.token_state.is_authenticated

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """
        Executes an authenticated request.

        An expired access token is refreshed (once for all concurrent
        requests) and the request is replayed once with the new token.

        Args:
            method: HTTP method (GET, POST, etc.)
            path: Path relative to the backend base URL
            json: JSON body
            params: Query parameters
            headers: Extra headers

        Returns:
            httpx.Response of the original call or of its replay

        Raises:
            ValidationError: 422 from the server
            UnauthorizedError: 401 that could not be recovered (session cleared)
            RefreshFailure: The token refresh failed (session cleared)
            HttpStatusError: Any other non-2xx status
            TransportError: No response (network failure, timeout)
        """
        descriptor = RequestDescriptor(
            method=method.upper(),
            path=path,
            headers=dict(headers or {}),
            json=json,
            params=params,
        )
        return await self._dispatch(descriptor)

    async def get(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", path, **kwargs)

    async def patch(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PATCH", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", path, **kwargs)

    async def login(self, **credentials: Any) -> httpx.Response:
        """Posts credentials to the login endpoint; the session is stored on success."""
        return await self.post(self.endpoints.login, json=credentials)

    async def logout(self) -> httpx.Response:
        """Calls the logout endpoint; the session is dropped on success."""
        return await self.post(self.endpoints.logout, json={})

    async def force_refresh(self) -> str:
        """
        Refreshes the access token now.

        Returns:
            New access token

        Raises:
            RefreshFailure: If the refresh failed (session cleared)
        """
        return await self.coordinator.force_refresh()

    async def _dispatch(self, descriptor: RequestDescriptor, bearer_token: Optional[str] = None) -> httpx.Response:
        prepared = self.augmenter.augment(descriptor)
        if bearer_token is not None:
            prepared = prepared.with_bearer(bearer_token)

        try:
            response = await self.transport.send(prepared)
        except ClientError as error:
            return await self._handle_failure(prepared, error)

        self.classifier.on_success(prepared, response)
        return response

    async def _handle_failure(self, prepared: RequestDescriptor, error: ClientError) -> httpx.Response:
        kind = self.classifier.classify_failure(error)

        if self.classifier.is_refresh_eligible(prepared, kind):
            logger.debug(f"{prepared.method} {prepared.path} hit an expired token, waiting for refresh")
            access_token = await self.coordinator.await_refresh(prepared.bearer_token)
            # The session may have moved on (e.g. a new login) since the refresh settled
            current_token = self.token_state.access_token
            if current_token and current_token != prepared.bearer_token:
                access_token = current_token
            return await self._dispatch(prepared.as_replay(), bearer_token=access_token)

        failure = self.classifier.on_failure(prepared, error, kind)
        if failure is error:
            raise error
        raise failure from error

    async def _call_refresh_endpoint(self, refresh_token: str) -> TokenPayload:
        """Performs the refresh request. Used by the coordinator only."""
        response = await self._dispatch(
            RequestDescriptor(
                method="POST",
                path=self.endpoints.refresh_token,
                headers={self.refresh_token_header: refresh_token},
                json={},
            )
        )
        return parse_token_payload(decode_body(response), self.envelope_key)

    async def close(self) -> None:
        await self.coordinator.close()
        await self.transport.close()

    async def __aenter__(self) -> "AuthHttpClient":
        """Async context manager support."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Closes the client when exiting context."""
        await self.close()


def create_client(
    target: str = DEFAULT_TARGET,
    store: Optional[CredentialStore] = None,
    notifier: Optional[Notifier] = None,
    base_url: Optional[str] = None,
    timeout: float = REQUEST_TIMEOUT,
    shared_client: Optional[httpx.AsyncClient] = None,
    **kwargs: Any,
) -> AuthHttpClient:
    """
    Builds a client for one of the configured backends.

    Each target gets its own client and therefore its own session and
    refresh state. Pass a separate store per target when persisting.

    Args:
        target: Name from API_TARGETS ("main" or "coin")
        store: Credential store for this target
        notifier: Sink for generic failure messages
        base_url: Overrides the target's configured base URL
        timeout: Timeout of a single call in seconds
        shared_client: Optional shared httpx.AsyncClient
        **kwargs: Passed to AuthHttpClient

    Raises:
        ValueError: If the target is unknown and no base_url is given
    """
    if base_url is None:
        if target not in API_TARGETS:
            raise ValueError(f"Unknown API target: {target} (expected one of {', '.join(API_TARGETS)})")
        base_url = API_TARGETS[target]

    logger.debug(f"Creating client for target={target}, base_url={base_url}")
    transport = HttpxTransport(base_url, timeout=timeout, shared_client=shared_client)
    return AuthHttpClient(transport, store=store, notifier=notifier, **kwargs)
