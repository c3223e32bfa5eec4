# -*- coding: utf-8 -*-

"""
Unit tests for credential stores.
Tests the memory, JSON file and SQLite backends against the same contract.
"""

import json
import sqlite3

import pytest

from tokenrelay.credential_store import (
    FileCredentialStore,
    MemoryCredentialStore,
    SqliteCredentialStore,
)


@pytest.fixture(params=["memory", "file", "sqlite"])
def store(request, tmp_path):
    """Each store backend, empty."""
    if request.param == "memory":
        return MemoryCredentialStore()
    if request.param == "file":
        return FileCredentialStore(str(tmp_path / "credentials.json"))
    return SqliteCredentialStore(str(tmp_path / "auth.db"))


class TestCredentialStoreContract:
    """Behavior shared by every backend."""

    def test_missing_key_reads_as_empty(self, store):
        """
        What it does: Reads a key that was never written.
        Purpose: Ensure absent keys are "" rather than None or an error.
        """
        assert store.get("access_token") == ""

    def test_set_then_get(self, store):
        """
        What it does: Writes and reads back a value.
        Purpose: Ensure values survive a round trip.
        """
        store.set("access_token", "A1")
        store.set("access_token", "A2")

        assert store.get("access_token") == "A2"

    def test_clear_removes_credentials(self, store):
        """
        What it does: Clears a store holding a full session.
        Purpose: Ensure every credential key reads as empty afterwards.
        """
        store.set("access_token", "A1")
        store.set("refresh_token", "R1")
        store.set("user_id", "U1")

        store.clear()

        assert store.get("access_token") == ""
        assert store.get("refresh_token") == ""
        assert store.get("user_id") == ""


class TestFileCredentialStore:
    """Tests for the JSON file backend."""

    def test_writes_json_file(self, tmp_path):
        """
        What it does: Writes a token and inspects the file.
        Purpose: Ensure the file is plain JSON other tools can read.
        """
        path = tmp_path / "nested" / "credentials.json"
        store = FileCredentialStore(str(path))

        store.set("access_token", "A1")

        assert json.loads(path.read_text(encoding="utf-8")) == {"access_token": "A1"}
        assert not path.with_suffix(".json.tmp").exists()

    def test_sees_updates_from_other_instances(self, tmp_path):
        """
        What it does: Writes through one instance, reads through another.
        Purpose: Ensure the file is re-read so separate processes share the session.
        """
        path = str(tmp_path / "credentials.json")
        writer = FileCredentialStore(path)
        reader = FileCredentialStore(path)
        assert reader.get("access_token") == ""

        writer.set("access_token", "A1")

        assert reader.get("access_token") == "A1"

    def test_preserves_unrelated_keys(self, tmp_path):
        """
        What it does: Clears a file that also holds other settings.
        Purpose: Ensure only credential keys are removed.
        """
        path = tmp_path / "credentials.json"
        path.write_text(json.dumps({"theme": "dark", "access_token": "A1", "refresh_token": "R1"}))
        store = FileCredentialStore(str(path))

        store.clear()

        assert json.loads(path.read_text(encoding="utf-8")) == {"theme": "dark"}

    def test_invalid_json_is_ignored(self, tmp_path):
        """
        What it does: Reads a corrupted credentials file.
        Purpose: Ensure it is treated as empty instead of crashing.
        """
        path = tmp_path / "credentials.json"
        path.write_text("{not json")
        store = FileCredentialStore(str(path))

        assert store.get("access_token") == ""

    def test_clear_without_file_does_not_create_it(self, tmp_path):
        """
        What it does: Clears a store whose file does not exist.
        Purpose: Ensure logout without a session leaves the disk untouched.
        """
        path = tmp_path / "credentials.json"
        store = FileCredentialStore(str(path))

        store.clear()

        assert not path.exists()

    def test_expands_user_home(self, tmp_path, monkeypatch):
        """
        What it does: Passes a ~ path.
        Purpose: Ensure the default ~/.tokenrelay location resolves to the home directory.
        """
        monkeypatch.setenv("HOME", str(tmp_path))
        store = FileCredentialStore("~/.tokenrelay/credentials.json")

        assert store.path == tmp_path / ".tokenrelay" / "credentials.json"


class TestSqliteCredentialStore:
    """Tests for the SQLite backend."""

    def test_creates_auth_kv_table(self, tmp_path):
        """
        What it does: Opens a new database.
        Purpose: Ensure the auth_kv table exists and holds namespaced keys.
        """
        db_path = tmp_path / "auth.db"
        store = SqliteCredentialStore(str(db_path), namespace="main")

        store.set("access_token", "A1")

        conn = sqlite3.connect(str(db_path))
        try:
            rows = conn.execute("SELECT key, value FROM auth_kv").fetchall()
        finally:
            conn.close()
        assert rows == [("main:access_token", "A1")]

    def test_namespaces_are_isolated(self, tmp_path):
        """
        What it does: Uses two namespaces in one database.
        Purpose: Ensure each target keeps its own session.
        """
        db_path = str(tmp_path / "auth.db")
        main_store = SqliteCredentialStore(db_path, namespace="main")
        coin_store = SqliteCredentialStore(db_path, namespace="coin")

        main_store.set("access_token", "A1")
        coin_store.set("access_token", "C1")
        coin_store.clear()

        assert main_store.get("access_token") == "A1"
        assert coin_store.get("access_token") == ""

    def test_persists_across_instances(self, tmp_path):
        """
        What it does: Reopens the database with a new instance.
        Purpose: Ensure the session survives a restart.
        """
        db_path = str(tmp_path / "auth.db")
        SqliteCredentialStore(db_path).set("refresh_token", "R1")

        assert SqliteCredentialStore(db_path).get("refresh_token") == "R1"
