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
Data models shared by the request pipeline.

- RequestDescriptor: an outgoing call, kept around long enough to replay it
- AuthEndpoints: paths of the login, logout and refresh-token calls
- TokenPayload: tokens extracted from a login or refresh response
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional

from tokenrelay.config import (
    LOGIN_PATH,
    LOGOUT_PATH,
    REFRESH_TOKEN_PATH,
    RESPONSE_ENVELOPE_KEY,
)
from tokenrelay.exceptions import TokenPayloadError

AUTHORIZATION_HEADER = "Authorization"
BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class RequestDescriptor:
    """
    Everything needed to (re)send a request.

    Descriptors are never mutated in place: the augmenter and the replay
    path build modified copies with with_headers() and with_bearer().

    Attributes:
        method: HTTP method (GET, POST, etc.)
        path: Path relative to the client's base URL
        headers: Request headers
        json: JSON body, if any
        params: Query parameters, if any
        is_replay: True for the single re-send after a token refresh
    """
    method: str
    path: str
    headers: Dict[str, str] = field(default_factory=dict)
    json: Any = None
    params: Optional[Dict[str, Any]] = None
    is_replay: bool = False

    def get_header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None

    def with_headers(self, **updates: str) -> "RequestDescriptor":
        """
        Returns a copy with the given headers set.

        Existing headers with the same name in any letter case are replaced.
        Keyword names use underscores for dashes (x_client_id -> x-client-id).
        """
        return self.with_header_map({name.replace("_", "-"): value for name, value in updates.items()})

    def with_header_map(self, updates: Dict[str, str]) -> "RequestDescriptor":
        """Same as with_headers() for header names that are not identifiers."""
        lowered = {name.lower() for name in updates}
        headers = {key: value for key, value in self.headers.items() if key.lower() not in lowered}
        headers.update(updates)
        return replace(self, headers=headers)

    def with_bearer(self, access_token: str) -> "RequestDescriptor":
        """Returns a copy authorized with the given access token."""
        return self.with_header_map({AUTHORIZATION_HEADER: f"{BEARER_PREFIX}{access_token}"})

    def as_replay(self) -> "RequestDescriptor":
        """Marks the descriptor as the one-time replay of a failed call."""
        return replace(self, is_replay=True)

    @property
    def bearer_token(self) -> Optional[str]:
        """Access token carried by the Authorization header, if any."""
        value = self.get_header(AUTHORIZATION_HEADER)
        if not value or not value.startswith(BEARER_PREFIX):
            return None
        return value[len(BEARER_PREFIX):]


@dataclass(frozen=True)
class AuthEndpoints:
    """Paths of the auth calls the classifier and coordinator react to."""
    login: str = LOGIN_PATH
    logout: str = LOGOUT_PATH
    refresh_token: str = REFRESH_TOKEN_PATH

    def is_login(self, descriptor: RequestDescriptor) -> bool:
        return descriptor.path == self.login

    def is_logout(self, descriptor: RequestDescriptor) -> bool:
        return descriptor.path == self.logout

    def is_refresh(self, descriptor: RequestDescriptor) -> bool:
        return descriptor.path == self.refresh_token


@dataclass(frozen=True)
class TokenPayload:
    """Tokens issued by a single login or refresh call."""
    access_token: str
    refresh_token: str
    user_id: Optional[str] = None


def parse_token_payload(payload: Any, envelope_key: str = RESPONSE_ENVELOPE_KEY) -> TokenPayload:
    """
    Extracts tokens from a login or refresh response body.

    Accepts both the bare shape and the backend's success envelope:

        {"tokens": {"access_token": "...", "refresh_token": "..."}, "user_id": "..."}
        {"message": "...", "metaData": {"tokens": {...}, "user_id": "..."}}

    Args:
        payload: Decoded JSON body
        envelope_key: Key of the success envelope

    Returns:
        Parsed TokenPayload

    Raises:
        TokenPayloadError: If either token is missing or empty
    """
    data = payload
    if isinstance(data, dict) and envelope_key and isinstance(data.get(envelope_key), dict):
        data = data[envelope_key]

    tokens = data.get("tokens") if isinstance(data, dict) else None
    if not isinstance(tokens, dict):
        raise TokenPayloadError("Response does not contain tokens", body=payload)

    access_token = tokens.get("access_token")
    refresh_token = tokens.get("refresh_token")
    if not access_token or not refresh_token:
        raise TokenPayloadError("Response does not contain both access_token and refresh_token", body=payload)

    user_id = data.get("user_id")
    return TokenPayload(
        access_token=str(access_token),
        refresh_token=str(refresh_token),
        user_id=str(user_id) if user_id is not None else None,
    )
