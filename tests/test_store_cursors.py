"""Tests for import cursor storage."""

from pathlib import Path

import pytest

from whiskerlog.models import ImportCursor
from whiskerlog.store import CommandStore


@pytest.fixture
def store(tmp_path: Path):
    """Provide a CommandStore with temporary database."""
    with CommandStore(tmp_path / "history.db") as s:
        yield s


class TestCursors:
    """Tests for cursor_get, cursor_set, cursor_reset and list_cursors."""

    def test_get_missing(self, store: CommandStore) -> None:
        assert store.cursor_get("local", "/nope") is None

    def test_set_and_get(self, store: CommandStore) -> None:
        store.cursor_set(
            ImportCursor(
                host_id="local",
                source="/home/u/.zsh_history",
                shell="zsh",
                last_offset=120,
                last_line=4,
                last_timestamp=1700000000,
                session_id="zsh-abcd1234-1699999000",
                tail_digests=["0123456789abcdef", "fedcba9876543210"],
                tail_length=11,
            )
        )

        cursor = store.cursor_get("local", "/home/u/.zsh_history")

        assert cursor is not None
        assert cursor.shell == "zsh"
        assert cursor.last_offset == 120
        assert cursor.last_line == 4
        assert cursor.last_timestamp == 1700000000
        assert cursor.session_id == "zsh-abcd1234-1699999000"
        assert cursor.tail_digests == ["0123456789abcdef", "fedcba9876543210"]
        assert cursor.tail_length == 11
        assert cursor.updated_at is not None

    def test_set_updates_existing(self, store: CommandStore) -> None:
        store.cursor_set(ImportCursor(host_id="local", source="/h", last_offset=10))
        store.cursor_set(ImportCursor(host_id="local", source="/h", last_offset=50, updated_at=1700000100))

        cursor = store.cursor_get("local", "/h")

        assert cursor.last_offset == 50
        assert cursor.updated_at == 1700000100
        assert len(store.list_cursors()) == 1

    def test_cursors_keyed_by_host(self, store: CommandStore) -> None:
        """The same path on two hosts has two cursors."""
        store.cursor_set(ImportCursor(host_id="laptop", source="/h", last_offset=10))
        store.cursor_set(ImportCursor(host_id="server", source="/h", last_offset=20))

        assert store.cursor_get("laptop", "/h").last_offset == 10
        assert store.cursor_get("server", "/h").last_offset == 20

    def test_reset(self, store: CommandStore) -> None:
        store.cursor_set(ImportCursor(host_id="local", source="/h", last_offset=10))

        assert store.cursor_reset("local", "/h") is True
        assert store.cursor_get("local", "/h") is None
        assert store.cursor_reset("local", "/h") is False

    def test_list_sorted(self, store: CommandStore) -> None:
        store.cursor_set(ImportCursor(host_id="b", source="/2"))
        store.cursor_set(ImportCursor(host_id="a", source="/9"))
        store.cursor_set(ImportCursor(host_id="a", source="/1"))

        assert [(c.host_id, c.source) for c in store.list_cursors()] == [("a", "/1"), ("a", "/9"), ("b", "/2")]
