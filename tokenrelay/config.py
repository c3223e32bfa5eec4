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
Token Relay configuration.

Centralized storage for all settings and constants.
Loads environment variables and provides typed access to them.
"""

import os
from pathlib import Path
from typing import Dict, List

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _get_float(var_name: str, default: float) -> float:
    """
    Reads a float setting from the environment.

    Empty values fall back to the default so that `VAR=` in .env
    behaves like an unset variable.
    """
    raw = os.getenv(var_name, "").strip()
    if not raw:
        return default
    return float(raw)


def _get_list(var_name: str, default: str) -> List[str]:
    """Reads a comma-separated setting, dropping empty items."""
    raw = os.getenv(var_name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


# ==================================================================================================
# Backend Targets
# ==================================================================================================

# Base URL of the main API
API_ENDPOINT_MAIN: str = os.getenv("API_ENDPOINT_MAIN", "http://localhost:3000/v1/api")

# Base URL of the coin API (second backend with its own session)
API_ENDPOINT_COIN: str = os.getenv("API_ENDPOINT_COIN", "http://localhost:3001/v1/api")

# Named targets accepted by create_client() and the CLI
API_TARGETS: Dict[str, str] = {
    "main": API_ENDPOINT_MAIN,
    "coin": API_ENDPOINT_COIN,
}

DEFAULT_TARGET: str = "main"

# ==================================================================================================
# Timeouts
# ==================================================================================================

# Timeout for a single HTTP call (seconds)
# Covers connect, read, write and pool waits
REQUEST_TIMEOUT: float = _get_float("REQUEST_TIMEOUT", 10.0)

# How long a settled refresh stays joinable (seconds)
# Requests that raced the same expiry and fail shortly after the refresh
# finished reuse its result instead of refreshing again.
# Set to 0 to return to idle immediately after each refresh.
REFRESH_GRACE_PERIOD: float = _get_float("REFRESH_GRACE_PERIOD", 10.0)

# ==================================================================================================
# Auth Endpoints
# ==================================================================================================

LOGIN_PATH: str = os.getenv("LOGIN_PATH", "/access/login")
LOGOUT_PATH: str = os.getenv("LOGOUT_PATH", "/access/logout")
REFRESH_TOKEN_PATH: str = os.getenv("REFRESH_TOKEN_PATH", "/access/handlerRefreshToken")

# ==================================================================================================
# Headers and Payloads
# ==================================================================================================

# Header carrying the user id next to the bearer token
CLIENT_ID_HEADER: str = os.getenv("CLIENT_ID_HEADER", "x-client-id")

# Header carrying the refresh token on refresh calls
REFRESH_TOKEN_HEADER: str = os.getenv("REFRESH_TOKEN_HEADER", "x-rtoken-id")

# Key of the success envelope wrapping login/refresh payloads
# ({"message": "...", "metaData": {"tokens": {...}, "user_id": "..."}})
RESPONSE_ENVELOPE_KEY: str = os.getenv("RESPONSE_ENVELOPE_KEY", "metaData")

# Error name sent by the backend when the access token has expired
EXPIRED_TOKEN_NAME: str = os.getenv("EXPIRED_TOKEN_NAME", "EXPIRED_TOKEN")

# Substrings of a 401 error message that identify an expired access token
# Matched case-insensitively
EXPIRED_TOKEN_MARKERS: List[str] = _get_list("EXPIRED_TOKEN_MARKERS", "jwt expired,token expired")

# ==================================================================================================
# Credential Storage
# ==================================================================================================

# JSON file used by the CLI to keep the session between runs
_raw_creds_file = os.getenv("CREDENTIALS_FILE", "") or str(Path.home() / ".tokenrelay" / "credentials.json")
CREDENTIALS_FILE: str = str(Path(_raw_creds_file).expanduser())

# ==================================================================================================
# Logging
# ==================================================================================================

# Log level for the application
# Available levels: TRACE, DEBUG, INFO, WARNING, ERROR, CRITICAL
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# ==================================================================================================
# Application Version
# ==================================================================================================

APP_VERSION: str = "1.0.0"
APP_TITLE: str = "Token Relay"
