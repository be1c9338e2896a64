"""Tests for session token persistence."""
import os

import pytest

from pkctl.session import TokenStore
from pkctl.session import token_store as token_store_module


@pytest.fixture
def store(node_path):
    return TokenStore.open(node_path)


class TestTokenStore:

    def test_read_absent_token(self, store):
        assert store.read() is None

    def test_create_then_read(self, store):
        store.create("abc123")
        assert store.read() == "abc123"

    def test_create_replaces_existing(self, store):
        store.create("first")
        store.create("second")
        assert store.read() == "second"

    def test_token_file_is_private(self, store):
        store.create("abc123")
        assert (store.path.stat().st_mode & 0o777) == 0o600

    def test_empty_token_file_is_absent(self, store):
        store.path.write_text("  \n")
        assert store.read() is None

    def test_surrounding_whitespace_is_ignored(self, store):
        store.path.write_text("abc123\n")
        assert store.read() == "abc123"

    def test_destroy_is_idempotent(self, store):
        store.create("abc123")
        store.destroy()
        store.destroy()
        assert store.read() is None
        assert not store.path.exists()

    def test_create_fresh_discards_existing(self, store):
        store.create("old")
        assert store.create_fresh("new") == "new"
        assert store.read() == "new"

    def test_open_fresh_discards_existing(self, node_path):
        TokenStore.open(node_path).create("old")
        store = TokenStore.open(node_path, fresh=True)
        assert store.read() is None

    def test_token_lives_in_node_path(self, node_path, store):
        assert store.path == node_path / "token"

    def test_missing_directory_raises(self, tmp_path):
        store = TokenStore(tmp_path / "missing" / "token")
        with pytest.raises(OSError):
            store.create("abc123")

    @pytest.mark.skipif(hasattr(os, "geteuid") and os.geteuid() == 0, reason="root ignores permissions")
    def test_unwritable_directory_raises(self, node_path, store):
        node_path.chmod(0o500)
        try:
            with pytest.raises(PermissionError):
                store.create("abc123")
        finally:
            node_path.chmod(0o700)


class TestCrashSafety:

    def test_interrupted_create_keeps_previous_token(self, monkeypatch, node_path, store):
        store.create("previous")

        def interrupted(src, dst):
            raise KeyboardInterrupt

        monkeypatch.setattr(token_store_module.os, "replace", interrupted)
        with pytest.raises(KeyboardInterrupt):
            store.create("next")
        monkeypatch.undo()

        assert store.read() == "previous"
        assert sorted(p.name for p in node_path.iterdir()) == ["token"]

    def test_interrupted_create_keeps_absent_token(self, monkeypatch, node_path, store):
        def interrupted(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(token_store_module.os, "replace", interrupted)
        with pytest.raises(OSError):
            store.create("next")
        monkeypatch.undo()

        assert store.read() is None
        assert list(node_path.iterdir()) == []
