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
Request transport.

Sends a RequestDescriptor and either returns the 2xx response or raises:
- HttpStatusError: the server answered with another status
- TransportError: no response (DNS, connect, timeout...)

Supports both an owned httpx.AsyncClient and a shared application-level
client with connection pooling.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx
from loguru import logger

from tokenrelay.config import REQUEST_TIMEOUT
from tokenrelay.exceptions import HttpStatusError, TransportError
from tokenrelay.models import RequestDescriptor
from tokenrelay.network_errors import classify_network_error

DEFAULT_HEADERS = {"Content-Type": "application/json"}


def decode_body(response: httpx.Response) -> Any:
    """Returns the JSON body, or the raw text when it is not JSON."""
    try:
        return response.json()
    except ValueError:
        return response.text


class Transport(ABC):
    """Interface the client sends requests through."""

    @abstractmethod
    async def send(self, descriptor: RequestDescriptor) -> httpx.Response:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class HttpxTransport(Transport):
    """
    httpx-based transport bound to one backend.

    Attributes:
        base_url: Backend base URL; descriptor paths are relative to it
        timeout: Timeout of a single call in seconds
        client: httpx client (owned or shared)

    Example:
        >>> transport = HttpxTransport("https://api.example.com/v1/api")
        >>> response = await transport.send(RequestDescriptor("GET", "/profile"))
        >>> await transport.close()
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = REQUEST_TIMEOUT,
        shared_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initializes the transport.

        Args:
            base_url: Backend base URL
            timeout: Timeout of a single call in seconds
            shared_client: Optional shared httpx.AsyncClient. It is used as-is
                          (its own base_url and timeout apply) and is NOT
                          closed by close().
        """
        self.base_url = base_url
        self.timeout = timeout
        self._owns_client = shared_client is None
        self.client: Optional[httpx.AsyncClient] = shared_client

    def _get_client(self) -> httpx.AsyncClient:
        """Returns the shared client or lazily creates an owned one."""
        if not self._owns_client:
            return self.client

        if self.client is None or self.client.is_closed:
            logger.debug(f"Creating HTTP client for {self.base_url} (timeout={self.timeout}s)")
            self.client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(timeout=self.timeout),
                headers=DEFAULT_HEADERS,
            )
        return self.client

    async def send(self, descriptor: RequestDescriptor) -> httpx.Response:
        client = self._get_client()

        try:
            response = await client.request(
                descriptor.method,
                descriptor.path,
                json=descriptor.json,
                params=descriptor.params,
                headers=descriptor.headers,
            )
        except httpx.RequestError as e:
            info = classify_network_error(e)
            logger.warning(f"{descriptor.method} {descriptor.path} failed: {info.technical_details}")
            raise TransportError(info.user_message, info=info, descriptor=descriptor) from e

        if response.is_success:
            logger.debug(f"{descriptor.method} {descriptor.path} -> {response.status_code}")
            return response

        logger.debug(f"{descriptor.method} {descriptor.path} -> {response.status_code}")
        raise HttpStatusError(
            f"Request failed with status code {response.status_code}",
            status_code=response.status_code,
            body=decode_body(response),
            descriptor=descriptor,
        )

    async def close(self) -> None:
        """
        Closes the HTTP client if this instance owns it.

        Errors during close are logged and not propagated so they cannot
        mask an exception that is already unwinding.
        """
        if not self._owns_client:
            return

        if self.client and not self.client.is_closed:
            try:
                await self.client.aclose()
            except Exception as e:
                logger.warning(f"Error closing HTTP client: {e}")
