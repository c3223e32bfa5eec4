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
In-process session state mirrored to a credential store.

One TokenState belongs to one client instance. It is read by the
augmenter and mutated only by the classifier (login/logout/forced logout)
and the refresh coordinator (refresh success/failure).
"""

from typing import Optional

from loguru import logger

from tokenrelay.credential_store import (
    ACCESS_TOKEN_KEY,
    REFRESH_TOKEN_KEY,
    USER_ID_KEY,
    CredentialStore,
    MemoryCredentialStore,
)


class TokenState:
    """
    Current access token, refresh token and user id.

    Invariant: access_token and refresh_token are either both empty or
    both set by the same login/refresh call. Every mutation is written
    through to the credential store.

    Attributes:
        access_token: Short-lived bearer token ("" when logged out)
        refresh_token: Token used to obtain a new access token ("" when logged out)
        user_id: Identity sent in the client id header ("" when unknown)

    Example:
        >>> state = TokenState(FileCredentialStore("~/.tokenrelay/credentials.json"))
        >>> state.is_authenticated
        False
        >>> state.set_session("A1", "R1", "U1")
        >>> state.access_token
        'A1'
    """

    def __init__(self, store: Optional[CredentialStore] = None):
        """
        Initializes the state and hydrates it from the store.

        Args:
            store: Credential store to mirror to (in-memory if omitted)
        """
        self._store = store if store is not None else MemoryCredentialStore()
        self._access_token = ""
        self._refresh_token = ""
        self._user_id = ""
        self._load_from_store()

    def _load_from_store(self) -> None:
        access_token = self._store.get(ACCESS_TOKEN_KEY)
        refresh_token = self._store.get(REFRESH_TOKEN_KEY)

        if bool(access_token) != bool(refresh_token):
            # Half a session cannot be used or refreshed
            logger.warning("Stored credentials are incomplete, clearing them")
            self._store.clear()
            return

        self._access_token = access_token
        self._refresh_token = refresh_token
        self._user_id = self._store.get(USER_ID_KEY)
        if self._access_token:
            logger.debug(f"Session restored from credential store (user_id={self._user_id or '-'})")

    @property
    def store(self) -> CredentialStore:
        return self._store

    @property
    def access_token(self) -> str:
        return self._access_token

    @property
    def refresh_token(self) -> str:
        return self._refresh_token

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def is_authenticated(self) -> bool:
        return bool(self._access_token)

    def set_session(self, access_token: str, refresh_token: str, user_id: Optional[str]) -> None:
        """
        Stores the tokens and identity issued by a login call.

        Raises:
            ValueError: If either token is empty
        """
        self._check_pair(access_token, refresh_token)
        self._access_token = access_token
        self._refresh_token = refresh_token
        self._user_id = user_id or ""

        self._store.set(ACCESS_TOKEN_KEY, access_token)
        self._store.set(REFRESH_TOKEN_KEY, refresh_token)
        self._store.set(USER_ID_KEY, self._user_id)
        logger.info(f"Session started (user_id={self._user_id or '-'})")

    def update_tokens(self, access_token: str, refresh_token: str) -> None:
        """
        Replaces both tokens after a refresh. The user id is kept.

        Raises:
            ValueError: If either token is empty
        """
        self._check_pair(access_token, refresh_token)
        self._access_token = access_token
        self._refresh_token = refresh_token

        self._store.set(ACCESS_TOKEN_KEY, access_token)
        self._store.set(REFRESH_TOKEN_KEY, refresh_token)
        logger.debug("Tokens updated after refresh")

    def clear(self) -> None:
        """Drops the session from memory and from the store."""
        had_session = self.is_authenticated
        self._access_token = ""
        self._refresh_token = ""
        self._user_id = ""
        self._store.clear()
        if had_session:
            logger.info("Session cleared")

    @staticmethod
    def _check_pair(access_token: str, refresh_token: str) -> None:
        if not access_token or not refresh_token:
            raise ValueError("Access token and refresh token must both be set")
