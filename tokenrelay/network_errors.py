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
Network error classification.

Converts transport-level exceptions raised by httpx into a short,
user-readable description that the client can surface through the
notifier, plus technical details for the logs.

Architecture:
- ErrorCategory: Enum of network failure types
- NetworkErrorInfo: Structured information about an error
- classify_network_error(): Analyzes exceptions and returns NetworkErrorInfo
"""

import socket
from dataclasses import dataclass
from enum import Enum

import httpx


class ErrorCategory(str, Enum):
    """Categories of network errors seen by the client."""
    DNS_RESOLUTION = "dns_resolution"
    CONNECTION_REFUSED = "connection_refused"
    CONNECTION_RESET = "connection_reset"
    TIMEOUT_CONNECT = "timeout_connect"
    TIMEOUT_READ = "timeout_read"
    SSL_ERROR = "ssl_error"
    PROXY_ERROR = "proxy_error"
    TOO_MANY_REDIRECTS = "too_many_redirects"
    UNKNOWN = "unknown"


@dataclass
class NetworkErrorInfo:
    """
    Structured information about a network error.

    Attributes:
        category: Error category for classification
        user_message: Short, non-technical message shown to the user
        technical_details: Exception type and text for logging
        is_timeout: Whether the call ran out of time
    """
    category: ErrorCategory
    user_message: str
    technical_details: str
    is_timeout: bool = False


def classify_network_error(error: Exception) -> NetworkErrorInfo:
    """
    Classifies a network error and returns structured information.

    Args:
        error: The exception that occurred (typically httpx.RequestError)

    Returns:
        NetworkErrorInfo with classification and user-facing message

    Example:
        >>> try:
        ...     response = await client.get("/profile")
        ... except httpx.RequestError as e:
        ...     info = classify_network_error(e)
        ...     logger.error(f"[{info.category}] {info.user_message}")
    """
    technical_details = f"{type(error).__name__}: {error}"

    if isinstance(error, httpx.ConnectError):
        return _classify_connect_error(error, technical_details)

    if isinstance(error, httpx.TimeoutException):
        if isinstance(error, httpx.ConnectTimeout):
            return NetworkErrorInfo(
                category=ErrorCategory.TIMEOUT_CONNECT,
                user_message="Connection timeout - the server did not respond.",
                technical_details=technical_details,
                is_timeout=True,
            )
        return NetworkErrorInfo(
            category=ErrorCategory.TIMEOUT_READ,
            user_message="Request timeout - the server took too long to answer.",
            technical_details=technical_details,
            is_timeout=True,
        )

    if isinstance(error, httpx.TooManyRedirects):
        return NetworkErrorInfo(
            category=ErrorCategory.TOO_MANY_REDIRECTS,
            user_message="Too many redirects - the server is redirecting in a loop.",
            technical_details=technical_details,
        )

    if isinstance(error, httpx.ProxyError):
        return NetworkErrorInfo(
            category=ErrorCategory.PROXY_ERROR,
            user_message="Proxy connection failed - check the proxy settings.",
            technical_details=technical_details,
        )

    return NetworkErrorInfo(
        category=ErrorCategory.UNKNOWN,
        user_message="Network request failed - check your internet connection.",
        technical_details=technical_details,
    )


def _classify_connect_error(error: httpx.ConnectError, technical_details: str) -> NetworkErrorInfo:
    """
    Classifies httpx.ConnectError into specific subcategories.

    Args:
        error: The ConnectError exception
        technical_details: Technical error string for logging

    Returns:
        NetworkErrorInfo with specific classification
    """
    error_str = str(error)
    cause = error.__cause__

    if cause and isinstance(cause, socket.gaierror):
        errno = getattr(cause, "errno", None)
        return NetworkErrorInfo(
            category=ErrorCategory.DNS_RESOLUTION,
            user_message="DNS resolution failed - cannot resolve the server address.",
            technical_details=f"{technical_details} (errno: {errno})",
        )

    if "Connection refused" in error_str or "ECONNREFUSED" in error_str:
        return NetworkErrorInfo(
            category=ErrorCategory.CONNECTION_REFUSED,
            user_message="Connection refused - the server is not accepting connections.",
            technical_details=technical_details,
        )

    if "Connection reset" in error_str or "ECONNRESET" in error_str:
        return NetworkErrorInfo(
            category=ErrorCategory.CONNECTION_RESET,
            user_message="Connection reset - the server closed the connection.",
            technical_details=technical_details,
        )

    if "SSL" in error_str or "TLS" in error_str or "certificate" in error_str.lower():
        return NetworkErrorInfo(
            category=ErrorCategory.SSL_ERROR,
            user_message="SSL/TLS error - secure connection could not be established.",
            technical_details=technical_details,
        )

    return NetworkErrorInfo(
        category=ErrorCategory.UNKNOWN,
        user_message="Connection failed - unable to reach the server.",
        technical_details=technical_details,
    )
