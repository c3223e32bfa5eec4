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
Response classification.

Looks at the outcome of every call and decides what it means for the
session:
- login success: start a session from the returned tokens
- logout success: drop the session
- failure: sort into a FailureKind, notify the user where appropriate,
  force logout on unrecoverable 401, and promote the raw transport error
  to the typed exception the caller sees
"""

from enum import Enum
from typing import Any, Iterable, Optional

import httpx
from loguru import logger

from tokenrelay.config import EXPIRED_TOKEN_MARKERS, EXPIRED_TOKEN_NAME, RESPONSE_ENVELOPE_KEY
from tokenrelay.exceptions import (
    ClientError,
    HttpStatusError,
    TokenExpiredError,
    TransportError,
    UnauthorizedError,
    ValidationError,
)
from tokenrelay.models import AuthEndpoints, RequestDescriptor, parse_token_payload
from tokenrelay.notifier import Notifier, NullNotifier
from tokenrelay.token_state import TokenState
from tokenrelay.transport import decode_body

HTTP_UNAUTHORIZED = 401
HTTP_UNPROCESSABLE_ENTITY = 422


class FailureKind(str, Enum):
    """What a failed call means for the client."""
    VALIDATION = "validation"
    UNAUTHORIZED_EXPIRED = "unauthorized_expired"
    UNAUTHORIZED = "unauthorized"
    HTTP = "http"
    TRANSPORT = "transport"


class StateUpdate(str, Enum):
    """Effect of a successful call on the session."""
    NONE = "none"
    SESSION_STARTED = "session_started"
    SESSION_CLEARED = "session_cleared"


def is_expired_token_error(
    body: Any,
    expired_name: str = EXPIRED_TOKEN_NAME,
    markers: Iterable[str] = EXPIRED_TOKEN_MARKERS,
) -> bool:
    """
    Tells an expired access token apart from other 401 reasons.

    Matches when the body (or its "data" member) has name/code equal to
    expired_name, or when its message contains one of the markers.

    Example:
        >>> is_expired_token_error({"message": "jwt expired"})
        True
        >>> is_expired_token_error({"message": "Invalid credentials"})
        False
    """
    lowered_markers = [marker.lower() for marker in markers]

    def _message_matches(message: Any) -> bool:
        return isinstance(message, str) and any(marker in message.lower() for marker in lowered_markers)

    if isinstance(body, str):
        return _message_matches(body)
    if not isinstance(body, dict):
        return False

    candidates = [body]
    if isinstance(body.get("data"), dict):
        candidates.append(body["data"])

    for candidate in candidates:
        if expired_name and expired_name in (candidate.get("name"), candidate.get("code")):
            return True
        if _message_matches(candidate.get("message")):
            return True
    return False


def extract_error_message(error: ClientError) -> str:
    """Prefers the server's message field, falls back to the error's own text."""
    body = error.body
    if isinstance(body, dict):
        message = body.get("message")
        if isinstance(message, str) and message:
            return message
    return error.message


class ResponseClassifier:
    """
    Applies the session side effects of call outcomes.

    Attributes:
        token_state: Session state to update
        notifier: Sink for generic failure messages
        endpoints: Auth endpoint catalog
    """

    def __init__(
        self,
        token_state: TokenState,
        notifier: Optional[Notifier] = None,
        endpoints: Optional[AuthEndpoints] = None,
        envelope_key: str = RESPONSE_ENVELOPE_KEY,
        expired_token_name: str = EXPIRED_TOKEN_NAME,
        expired_token_markers: Iterable[str] = EXPIRED_TOKEN_MARKERS,
    ):
        self.token_state = token_state
        self.notifier = notifier if notifier is not None else NullNotifier()
        self.endpoints = endpoints if endpoints is not None else AuthEndpoints()
        self.envelope_key = envelope_key
        self.expired_token_name = expired_token_name
        self.expired_token_markers = list(expired_token_markers)

    def on_success(self, descriptor: RequestDescriptor, response: httpx.Response) -> StateUpdate:
        """
        Updates the session after a successful login or logout.

        Raises:
            TokenPayloadError: If a login response carries no tokens
        """
        if self.endpoints.is_login(descriptor):
            try:
                payload = parse_token_payload(decode_body(response), self.envelope_key)
            except ClientError as e:
                e.descriptor = descriptor
                raise
            self.token_state.set_session(payload.access_token, payload.refresh_token, payload.user_id)
            return StateUpdate.SESSION_STARTED

        if self.endpoints.is_logout(descriptor):
            self.token_state.clear()
            return StateUpdate.SESSION_CLEARED

        return StateUpdate.NONE

    def classify_failure(self, error: ClientError) -> FailureKind:
        if isinstance(error, TransportError) or error.status_code is None:
            return FailureKind.TRANSPORT
        if error.status_code == HTTP_UNPROCESSABLE_ENTITY:
            return FailureKind.VALIDATION
        if error.status_code == HTTP_UNAUTHORIZED:
            if is_expired_token_error(error.body, self.expired_token_name, self.expired_token_markers):
                return FailureKind.UNAUTHORIZED_EXPIRED
            return FailureKind.UNAUTHORIZED
        return FailureKind.HTTP

    def is_refresh_eligible(self, descriptor: RequestDescriptor, kind: FailureKind) -> bool:
        """
        Only an expired token on an ordinary first attempt is refreshed.

        The refresh call itself and replays are excluded so a refresh can
        never trigger another refresh.
        """
        return (
            kind is FailureKind.UNAUTHORIZED_EXPIRED
            and not descriptor.is_replay
            and not self.endpoints.is_refresh(descriptor)
        )

    def on_failure(self, descriptor: RequestDescriptor, error: ClientError, kind: FailureKind) -> ClientError:
        """
        Applies side effects of a failure that will reach the caller.

        Args:
            descriptor: Request that failed
            error: Raw error from the transport
            kind: Result of classify_failure()

        Returns:
            The exception to raise to the caller
        """
        message = extract_error_message(error)

        if kind is FailureKind.VALIDATION:
            return self._promote(error, ValidationError, message, descriptor)

        if kind in (FailureKind.UNAUTHORIZED, FailureKind.UNAUTHORIZED_EXPIRED):
            logger.warning(f"{descriptor.method} {descriptor.path} unauthorized ({message}), forcing logout")
            self.token_state.clear()
            error_class = TokenExpiredError if kind is FailureKind.UNAUTHORIZED_EXPIRED else UnauthorizedError
            return self._promote(error, error_class, message, descriptor)

        logger.error(f"{descriptor.method} {descriptor.path} failed: {message}")
        self.notifier.notify(message)
        if kind is FailureKind.HTTP:
            return self._promote(error, HttpStatusError, message, descriptor)
        error.descriptor = descriptor
        return error

    @staticmethod
    def _promote(
        error: ClientError,
        error_class: type,
        message: str,
        descriptor: RequestDescriptor,
    ) -> HttpStatusError:
        return error_class(message, status_code=error.status_code, body=error.body, descriptor=descriptor)
