"""Tests for the command store."""

import sqlite3
from pathlib import Path
from unittest.mock import patch

import pytest

from whiskerlog.errors import StoreIOError
from whiskerlog.models import CommandRecord, ImportCursor, PackageRef
from whiskerlog.store import CommandFilter, CommandStore, build_fts_query


def make_record(command: str = "ls -la", timestamp: int = 1700000000, **kwargs) -> CommandRecord:
    """Build a record with sensible defaults."""
    kwargs.setdefault("session_id", "bash-abcd1234-1700000000")
    kwargs.setdefault("shell", "bash")
    return CommandRecord(command=command, timestamp=timestamp, **kwargs)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Provide a temporary database path."""
    return tmp_path / "data" / "history.db"


@pytest.fixture
def store(db_path: Path):
    """Provide a CommandStore with temporary database."""
    with CommandStore(db_path) as s:
        yield s


class TestCommandStoreInit:
    """Tests for CommandStore initialization."""

    def test_creates_parent_directories(self, db_path: Path) -> None:
        """CommandStore should create parent directories for database."""
        with CommandStore(db_path):
            assert db_path.exists()

    def test_creates_schema(self, store: CommandStore, db_path: Path) -> None:
        """Tables, FTS table, triggers and dedup index should exist."""
        conn = sqlite3.connect(db_path)
        try:
            names = {row[0] for row in conn.execute("SELECT name FROM sqlite_master")}
        finally:
            conn.close()

        assert {"commands", "commands_fts", "import_cursors"} <= names
        assert {"commands_fts_insert", "commands_fts_delete", "commands_fts_update"} <= names
        assert "idx_commands_dedup" in names

    def test_reopen_keeps_data(self, db_path: Path) -> None:
        """Opening an existing database should not reset it."""
        with CommandStore(db_path) as store:
            store.upsert(make_record())

        with CommandStore(db_path) as store:
            assert store.count() == 1

    def test_unopenable_path(self, tmp_path: Path) -> None:
        """An unusable path should raise StoreIOError."""
        blocker = tmp_path / "file"
        blocker.write_text("")

        with pytest.raises(StoreIOError):
            CommandStore(blocker / "history.db")


class TestUpsert:
    """Tests for upsert and get."""

    def test_insert_and_get(self, store: CommandStore) -> None:
        """A stored record should read back unchanged."""
        record = make_record(
            "pip install requests",
            exit_code=0,
            duration_ms=5000,
            host_id="laptop",
            packages_used=["requests"],
            package_refs=[PackageRef(manager="pip", name="requests", action="install")],
            experiment_tags=["testing"],
            is_experiment=True,
            danger_reasons=["File deletion"],
            danger_score=0.6,
            host_context="ssh:deploy@web1",
        )

        record_id = store.upsert(record)
        stored = store.get(record_id)

        assert stored is not None
        assert stored.id == record_id
        assert stored.command == "pip install requests"
        assert stored.duration_ms == 5000
        assert stored.host_id == "laptop"
        assert stored.packages_used == ["requests"]
        assert stored.package_refs == [PackageRef(manager="pip", name="requests", action="install")]
        assert stored.host_context == "ssh:deploy@web1"
        assert stored.experiment_tags == ["testing"]
        assert stored.is_experiment is True
        assert stored.is_dangerous is False
        assert stored.danger_score == pytest.approx(0.6)
        assert stored.created_at is not None

    def test_duplicate_returns_existing_id(self, store: CommandStore) -> None:
        """Upserting the same dedup key twice should keep one row."""
        first = store.upsert(make_record())
        second = store.upsert(make_record(danger_score=0.5))

        assert first == second
        assert store.count() == 1

    def test_different_session_is_new_record(self, store: CommandStore) -> None:
        store.upsert(make_record())
        store.upsert(make_record(session_id="bash-abcd1234-1700009999"))

        assert store.count() == 2

    def test_empty_command_rejected(self, store: CommandStore) -> None:
        with pytest.raises(ValueError):
            store.upsert(make_record("   "))

    def test_score_out_of_range_rejected(self, store: CommandStore) -> None:
        with pytest.raises(ValueError):
            store.upsert(make_record(danger_score=1.5))

    def test_get_missing(self, store: CommandStore) -> None:
        assert store.get(999) is None


class TestCommitBatch:
    """Tests for commit_batch."""

    def test_counts_and_cursor(self, store: CommandStore) -> None:
        """A batch should report inserts and duplicates and move the cursor."""
        store.upsert(make_record("ls", 1))
        cursor = ImportCursor(host_id="local", source="/h/.bash_history", shell="bash", last_offset=20, last_line=3)

        result = store.commit_batch(
            [make_record("ls", 1), make_record("pwd", 2), make_record("whoami", 3)],
            cursor,
        )

        assert result.inserted == 2
        assert result.duplicates == 1
        assert len(result.ids) == 3
        stored = store.cursor_get("local", "/h/.bash_history")
        assert stored is not None
        assert stored.last_offset == 20
        assert stored.last_line == 3

    def test_failed_record_rolls_back_batch(self, store: CommandStore) -> None:
        """No record and no cursor should be kept when the batch fails."""
        cursor = ImportCursor(host_id="local", source="/h/.bash_history", last_offset=10)

        with pytest.raises(ValueError):
            store.commit_batch([make_record("ls", 1), make_record("", 2)], cursor)

        assert store.count() == 0
        assert store.cursor_get("local", "/h/.bash_history") is None

    def test_database_error_wrapped(self, store: CommandStore) -> None:
        """sqlite errors should surface as StoreIOError and roll back."""
        cursor = ImportCursor(host_id="local", source="/h/.bash_history", last_offset=10)

        with patch.object(store, "_write_cursor", side_effect=sqlite3.OperationalError("disk I/O error")):
            with pytest.raises(StoreIOError) as exc_info:
                store.commit_batch([make_record()], cursor)

        assert exc_info.value.source == "/h/.bash_history"
        assert "disk I/O error" in str(exc_info.value)
        assert store.count() == 0

    def test_empty_batch_moves_cursor(self, store: CommandStore) -> None:
        cursor = ImportCursor(host_id="local", source="/h/.zsh_history", shell="zsh", last_offset=5)

        result = store.commit_batch([], cursor)

        assert result.inserted == 0
        assert store.cursor_get("local", "/h/.zsh_history").last_offset == 5


class TestRecentCommands:
    """Tests for recent_commands."""

    def test_latest_of_session_oldest_first(self, store: CommandStore) -> None:
        for timestamp in (100, 200, 300):
            store.upsert(make_record(f"echo {timestamp}", timestamp, session_id="bash-s-100"))
        store.upsert(make_record("ls", 400, session_id="bash-other-400"))
        store.upsert(make_record("pwd", 500, session_id="bash-s-100", host_id="server"))

        assert store.recent_commands("local", "bash-s-100", 2) == [("echo 200", 200), ("echo 300", 300)]

    def test_unknown_session(self, store: CommandStore) -> None:
        assert store.recent_commands("local", "bash-none-1", 5) == []


class TestShadowIndex:
    """Tests for the full-text shadow index."""

    def _integrity_check(self, db_path: Path) -> None:
        conn = sqlite3.connect(db_path)
        try:
            conn.execute("INSERT INTO commands_fts(commands_fts) VALUES('integrity-check')")
        finally:
            conn.close()

    def test_search_finds_inserted(self, store: CommandStore) -> None:
        store.upsert(make_record("docker run -it ubuntu", 1))
        store.upsert(make_record("ls -la", 2))

        results = store.query(CommandFilter(search="docker"))

        assert [r.command for r in results] == ["docker run -it ubuntu"]

    def test_search_all_words_required(self, store: CommandStore) -> None:
        store.upsert(make_record("docker run ubuntu", 1))
        store.upsert(make_record("docker ps", 2))

        results = store.query(CommandFilter(search="docker ubuntu"))

        assert [r.command for r in results] == ["docker run ubuntu"]

    def test_search_working_directory(self, store: CommandStore) -> None:
        store.upsert(make_record("make", 1, working_directory="/srv/webapp"))

        assert len(store.query(CommandFilter(search="webapp"))) == 1

    def test_delete_removes_from_index(self, store: CommandStore, db_path: Path) -> None:
        """After a delete the record should no longer be searchable."""
        record_id = store.upsert(make_record("kubectl get pods", 1))
        store.upsert(make_record("kubectl logs web", 2))

        assert store.delete(record_id) is True

        results = store.query(CommandFilter(search="kubectl"))
        assert [r.command for r in results] == ["kubectl logs web"]
        assert record_id not in {r.id for r in results}
        self._integrity_check(db_path)

    def test_update_reindexes_changed_text(self, store: CommandStore, db_path: Path) -> None:
        """Updating indexed columns should replace the old index entry."""
        record_id = store.upsert(make_record("ls -la", 1, working_directory="/srv/old"))

        conn = sqlite3.connect(db_path)
        try:
            with conn:
                conn.execute(
                    "UPDATE commands SET command = ?, working_directory = ? WHERE id = ?",
                    ("git status", "/srv/new", record_id),
                )
        finally:
            conn.close()

        assert [r.id for r in store.query(CommandFilter(search="git"))] == [record_id]
        assert [r.id for r in store.query(CommandFilter(search="new"))] == [record_id]
        assert store.query(CommandFilter(search="ls")) == []
        assert store.query(CommandFilter(search="old")) == []
        self._integrity_check(db_path)

    def test_delete_missing(self, store: CommandStore) -> None:
        assert store.delete(12345) is False

    def test_index_consistent_after_batches(self, store: CommandStore, db_path: Path) -> None:
        records = [make_record(f"echo {i}", i) for i in range(1, 50)]
        store.commit_batch(records)
        store.commit_batch(records)

        self._integrity_check(db_path)
        assert store.count() == 49

    def test_search_special_characters(self, store: CommandStore) -> None:
        """Quotes and FTS operators in search text should not raise."""
        store.upsert(make_record('git commit -m "fix: NOT AND OR"', 1))

        results = store.query(CommandFilter(search='"fix: NOT'))

        assert len(results) == 1


class TestBuildFtsQuery:
    """Tests for build_fts_query function."""

    def test_quotes_terms(self) -> None:
        assert build_fts_query("docker run") == '"docker" "run"'

    def test_escapes_quotes(self) -> None:
        assert build_fts_query('say "hi"') == '"say" """hi"""'

    def test_blank(self) -> None:
        assert build_fts_query("   ") == ""


class TestQuery:
    """Tests for query filters."""

    @pytest.fixture(autouse=True)
    def populate(self, store: CommandStore) -> None:
        store.upsert(make_record("ls", 100, host_id="laptop", shell="bash"))
        store.upsert(make_record("rm -rf build", 200, host_id="laptop", shell="zsh",
                                 session_id="zsh-1-200", is_dangerous=True, danger_score=0.8))
        store.upsert(make_record("man tar", 300, host_id="server", shell="bash",
                                 is_experiment=True, experiment_tags=["learning"]))
        store.upsert(make_record("git push", 400, host_id="server", shell="fish", danger_score=0.3))

    def test_no_filter_newest_first(self, store: CommandStore) -> None:
        results = store.query()

        assert [r.timestamp for r in results] == [400, 300, 200, 100]

    def test_ascending(self, store: CommandStore) -> None:
        results = store.query(CommandFilter(ascending=True))

        assert [r.timestamp for r in results] == [100, 200, 300, 400]

    def test_host(self, store: CommandStore) -> None:
        results = store.query(CommandFilter(host_id="server"))

        assert {r.command for r in results} == {"man tar", "git push"}

    def test_session(self, store: CommandStore) -> None:
        results = store.query(CommandFilter(session_id="zsh-1-200"))

        assert [r.command for r in results] == ["rm -rf build"]

    def test_time_range(self, store: CommandStore) -> None:
        results = store.query(CommandFilter(since=200, until=300))

        assert [r.timestamp for r in results] == [300, 200]

    def test_dangerous(self, store: CommandStore) -> None:
        assert [r.command for r in store.query(CommandFilter(dangerous=True))] == ["rm -rf build"]
        assert len(store.query(CommandFilter(dangerous=False))) == 3

    def test_min_danger_score(self, store: CommandStore) -> None:
        results = store.query(CommandFilter(min_danger_score=0.3))

        assert {r.command for r in results} == {"rm -rf build", "git push"}

    def test_experiment(self, store: CommandStore) -> None:
        assert [r.command for r in store.query(CommandFilter(experiment=True))] == ["man tar"]

    def test_shell(self, store: CommandStore) -> None:
        assert [r.command for r in store.query(CommandFilter(shell="fish"))] == ["git push"]

    def test_limit_and_offset(self, store: CommandStore) -> None:
        results = store.query(CommandFilter(limit=2, offset=1))

        assert [r.timestamp for r in results] == [300, 200]

    def test_offset_without_limit(self, store: CommandStore) -> None:
        assert [r.timestamp for r in store.query(CommandFilter(offset=3))] == [100]

    def test_host_context(self, store: CommandStore) -> None:
        store.upsert(make_record("uptime", 500, host_context="ssh:ops@db1"))

        results = store.query(CommandFilter(host_context="ssh:ops@db1"))

        assert [r.command for r in results] == ["uptime"]

    def test_combined_filters(self, store: CommandStore) -> None:
        results = store.query(CommandFilter(host_id="laptop", search="build"))

        assert [r.command for r in results] == ["rm -rf build"]
