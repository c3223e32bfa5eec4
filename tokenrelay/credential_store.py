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
Durable key-value storage for session credentials.

Keys used by the client: access_token, refresh_token, user_id.
Absent keys read as an empty string.

Backends:
- MemoryCredentialStore: process-local, for tests and short scripts
- FileCredentialStore: JSON file, preserves unrelated keys
- SqliteCredentialStore: auth_kv table in an SQLite database
"""

import json
import sqlite3
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Tuple

from loguru import logger

ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"
USER_ID_KEY = "user_id"

CREDENTIAL_KEYS: Tuple[str, ...] = (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, USER_ID_KEY)


class CredentialStore(ABC):
    """get/set/clear contract consumed by TokenState."""

    @abstractmethod
    def get(self, key: str) -> str:
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def clear(self) -> None:
        """Removes every credential key."""
        raise NotImplementedError


class MemoryCredentialStore(CredentialStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._values: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str:
        return self._values.get(key, "")

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def clear(self) -> None:
        for key in CREDENTIAL_KEYS:
            self._values.pop(key, None)


class FileCredentialStore(CredentialStore):
    """
    Stores credentials in a JSON file.

    The file is re-read on every access so that several processes
    (for example two CLI invocations) see each other's updates.
    Keys other than the credential keys are preserved on write.
    """

    def __init__(self, path: str):
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> Dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(f"Credentials file is not valid JSON, ignoring it: {self._path} ({e})")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Credentials file does not contain an object, ignoring it: {self._path}")
            return {}
        return data

    def _write_all(self, data: Dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        tmp_path.replace(self._path)
        logger.debug(f"Credentials saved to {self._path}")

    def get(self, key: str) -> str:
        value = self._read_all().get(key)
        return str(value) if value else ""

    def set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def clear(self) -> None:
        data = self._read_all()
        if not any(key in data for key in CREDENTIAL_KEYS):
            return
        for key in CREDENTIAL_KEYS:
            data.pop(key, None)
        self._write_all(data)


class SqliteCredentialStore(CredentialStore):
    """
    Stores credentials in an auth_kv(key, value) table.

    The table is created on first use. Each operation opens its own
    connection so the store can be shared with other tools that write
    the same database.
    """

    def __init__(self, db_path: str, namespace: str = "tokenrelay"):
        self._db_path = Path(db_path).expanduser()
        self._namespace = namespace
        self._ensure_table()

    def _connect(self) -> sqlite3.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        return sqlite3.connect(str(self._db_path))

    def _ensure_table(self) -> None:
        conn = self._connect()
        try:
            conn.execute("CREATE TABLE IF NOT EXISTS auth_kv (key TEXT PRIMARY KEY, value TEXT NOT NULL)")
            conn.commit()
        finally:
            conn.close()

    def _qualified(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    def get(self, key: str) -> str:
        conn = self._connect()
        try:
            row = conn.execute("SELECT value FROM auth_kv WHERE key = ?", (self._qualified(key),)).fetchone()
        finally:
            conn.close()
        return row[0] if row else ""

    def set(self, key: str, value: str) -> None:
        conn = self._connect()
        try:
            conn.execute(
                "INSERT INTO auth_kv (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (self._qualified(key), value),
            )
            conn.commit()
        finally:
            conn.close()
        logger.debug(f"Credentials saved to SQLite key: {self._qualified(key)}")

    def clear(self) -> None:
        conn = self._connect()
        try:
            conn.executemany(
                "DELETE FROM auth_kv WHERE key = ?",
                [(self._qualified(key),) for key in CREDENTIAL_KEYS],
            )
            conn.commit()
        finally:
            conn.close()
