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
Exceptions raised by the authenticated client.

    ClientError
    ├── TransportError          network failure or timeout, no response
    ├── HttpStatusError         non-2xx response
    │   ├── ValidationError     422, caller-actionable
    │   └── UnauthorizedError   401 that was not recovered by a refresh
    │       └── TokenExpiredError
    ├── RefreshFailure          refresh call failed, session was dropped
    └── TokenPayloadError       login/refresh response without tokens
"""

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from tokenrelay.models import RequestDescriptor
    from tokenrelay.network_errors import NetworkErrorInfo


class ClientError(Exception):
    """
    Base class for all client errors.

    Attributes:
        message: Human-readable description
        status_code: HTTP status, None when no response was received
        body: Decoded response body (dict for JSON, str otherwise)
        descriptor: Request that failed, if known
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Any = None,
        descriptor: Optional["RequestDescriptor"] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body
        self.descriptor = descriptor


class TransportError(ClientError):
    """The request never produced a response (DNS, connect, timeout...)."""

    def __init__(
        self,
        message: str,
        info: Optional["NetworkErrorInfo"] = None,
        descriptor: Optional["RequestDescriptor"] = None,
    ):
        super().__init__(message, descriptor=descriptor)
        self.info = info


class HttpStatusError(ClientError):
    """The server answered with a non-2xx status."""


class ValidationError(HttpStatusError):
    """The server rejected the input (422)."""


class UnauthorizedError(HttpStatusError):
    """The server rejected the credentials (401)."""


class TokenExpiredError(UnauthorizedError):
    """The access token expired and could not be refreshed for this call."""


class RefreshFailure(ClientError):
    """
    Refreshing the access token failed.

    Raised to every request that was waiting for the refresh. The session
    has already been cleared when this is raised.
    """


class TokenPayloadError(ClientError, ValueError):
    """A login or refresh response did not carry the expected tokens."""
