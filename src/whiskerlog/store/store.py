"""Command store with SQLite persistence and a full-text shadow index."""

import json
import sqlite3
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Self

from whiskerlog.errors import StoreIOError
from whiskerlog.logging import get_logger
from whiskerlog.models import CommandRecord, ImportCursor, load_json_list
from whiskerlog.store import aggregates
from whiskerlog.store.schema import COMMAND_COLUMNS, SCHEMA_STATEMENTS

logger = get_logger("store")


@dataclass
class CommandFilter:
    """Optional predicates for CommandStore.query().

    Unset fields do not filter. `search` is matched against the full-text
    index of command text and working directory; every word must appear.
    """

    host_id: str | None = None
    session_id: str | None = None
    shell: str | None = None
    host_context: str | None = None
    since: int | None = None
    until: int | None = None
    dangerous: bool | None = None
    min_danger_score: float | None = None
    experiment: bool | None = None
    search: str | None = None
    limit: int | None = None
    offset: int = 0
    ascending: bool = False


@dataclass
class BatchResult:
    """Outcome of committing one batch of records."""

    inserted: int = 0
    duplicates: int = 0
    ids: list[int] = field(default_factory=list)


def build_fts_query(text: str) -> str:
    """Quote each word of free text as an FTS5 string, so all must match."""
    terms = [word.replace('"', '""') for word in text.split()]
    return " ".join(f'"{term}"' for term in terms if term)


def _validate(record: CommandRecord) -> None:
    if not record.command.strip():
        raise ValueError("command must not be empty")
    if not record.session_id:
        raise ValueError("session_id must not be empty")
    if not 0.0 <= record.danger_score <= 1.0:
        raise ValueError(f"danger_score out of range: {record.danger_score}")


class CommandStore:
    """Owns the commands table, its FTS5 mirror and the import cursors.

    The shadow index is maintained by triggers on the commands table, so
    every insert or delete reaches both within the same transaction. All
    access to the connection goes through one lock, which serializes
    writers from concurrent import workers.
    """

    def __init__(self, db_path: Path) -> None:
        """Open (and create if needed) the store database.

        Args:
            db_path: Path to SQLite database file. Parent directories
                     will be created if they don't exist.

        Raises:
            StoreIOError: If the database cannot be opened or initialized
        """
        self._db_path = db_path
        self._lock = threading.RLock()
        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(db_path, check_same_thread=False)
        except (OSError, sqlite3.Error) as e:
            raise StoreIOError(f"Cannot open store at {db_path}: {e}") from e
        self._conn.row_factory = sqlite3.Row
        self.ensure_schema()

    @contextmanager
    def _guard(self, action: str, source: str | None = None) -> Iterator[None]:
        """Hold the lock and turn database failures into StoreIOError."""
        with self._lock:
            try:
                yield
            except sqlite3.Error as e:
                raise StoreIOError(f"Store {action} failed: {e}", source=source) from e

    def ensure_schema(self) -> None:
        """Create tables, indexes and triggers if they don't exist."""
        with self._guard("schema setup"):
            self._conn.execute("PRAGMA journal_mode=WAL")
            with self._conn:
                for statement in SCHEMA_STATEMENTS:
                    self._conn.execute(statement)

    def _insert(self, record: CommandRecord) -> tuple[int, bool]:
        """Insert a record unless its dedup key exists.

        Returns:
            Tuple of (record id, whether a new row was inserted)
        """
        _validate(record)
        row = record.to_row()
        placeholders = ", ".join("?" for _ in COMMAND_COLUMNS)
        cursor = self._conn.execute(
            f"""
            INSERT INTO commands ({', '.join(COMMAND_COLUMNS)})
            VALUES ({placeholders})
            ON CONFLICT(command, timestamp, session_id, host_id) DO NOTHING
            """,
            [row[column] for column in COMMAND_COLUMNS],
        )
        if cursor.rowcount == 1:
            return cursor.lastrowid, True

        existing = self._conn.execute(
            """
            SELECT id FROM commands
            WHERE command = ? AND timestamp = ? AND session_id = ? AND host_id = ?
            """,
            record.dedup_key,
        ).fetchone()
        return existing["id"], False

    def upsert(self, record: CommandRecord) -> int:
        """Insert a record, or return the id of its existing equivalent.

        Args:
            record: Classified command record (its id is ignored)

        Returns:
            Id of the stored record

        Raises:
            ValueError: If the record is missing required fields
            StoreIOError: If the database write fails
        """
        with self._guard("upsert"):
            with self._conn:
                record_id, _ = self._insert(record)
        return record_id

    def commit_batch(
        self,
        records: list[CommandRecord],
        cursor: ImportCursor | None = None,
    ) -> BatchResult:
        """Upsert a batch and then move its source cursor, atomically.

        Either every upsert and the cursor update are committed, or none
        are, so a crash leaves the cursor at the last committed batch.

        Raises:
            StoreIOError: If the transaction fails; nothing is committed
        """
        result = BatchResult()
        source = cursor.source if cursor is not None else None
        with self._guard("batch commit", source=source):
            with self._conn:
                for record in records:
                    record_id, inserted = self._insert(record)
                    result.ids.append(record_id)
                    if inserted:
                        result.inserted += 1
                    else:
                        result.duplicates += 1
                if cursor is not None:
                    self._write_cursor(cursor)

        logger.debug(
            "Committed batch: source=%s inserted=%d duplicates=%d",
            source,
            result.inserted,
            result.duplicates,
        )
        return result

    def get(self, record_id: int) -> CommandRecord | None:
        """Get a record by id."""
        with self._guard("read"):
            row = self._conn.execute("SELECT * FROM commands WHERE id = ?", (record_id,)).fetchone()
        return CommandRecord.from_row(row) if row is not None else None

    def delete(self, record_id: int) -> bool:
        """Delete a record and its shadow index entry.

        Returns:
            True if a record was deleted
        """
        with self._guard("delete"):
            with self._conn:
                cursor = self._conn.execute("DELETE FROM commands WHERE id = ?", (record_id,))
        return cursor.rowcount > 0

    def count(self) -> int:
        """Number of stored records."""
        with self._guard("read"):
            return self._conn.execute("SELECT COUNT(*) FROM commands").fetchone()[0]

    def recent_commands(self, host_id: str, session_id: str, limit: int) -> list[tuple[str, int]]:
        """Latest (command, timestamp) pairs of one session, oldest first."""
        with self._guard("read"):
            rows = self._conn.execute(
                """
                SELECT command, timestamp FROM commands
                WHERE host_id = ? AND session_id = ?
                ORDER BY timestamp DESC, id DESC
                LIMIT ?
                """,
                (host_id, session_id, limit),
            ).fetchall()
        return [(row["command"], row["timestamp"]) for row in reversed(rows)]

    def query(self, command_filter: CommandFilter | None = None) -> list[CommandRecord]:
        """Find records matching a filter.

        Args:
            command_filter: Predicates to apply (defaults to no filtering)

        Returns:
            Matching records, newest first unless the filter asks otherwise
        """
        f = command_filter or CommandFilter()
        clauses: list[str] = []
        params: list[Any] = []

        if f.host_id is not None:
            clauses.append("host_id = ?")
            params.append(f.host_id)
        if f.session_id is not None:
            clauses.append("session_id = ?")
            params.append(f.session_id)
        if f.shell is not None:
            clauses.append("shell = ?")
            params.append(f.shell)
        if f.host_context is not None:
            clauses.append("host_context = ?")
            params.append(f.host_context)
        if f.since is not None:
            clauses.append("timestamp >= ?")
            params.append(f.since)
        if f.until is not None:
            clauses.append("timestamp <= ?")
            params.append(f.until)
        if f.dangerous is not None:
            clauses.append("is_dangerous = ?")
            params.append(f.dangerous)
        if f.min_danger_score is not None:
            clauses.append("danger_score >= ?")
            params.append(f.min_danger_score)
        if f.experiment is not None:
            clauses.append("is_experiment = ?")
            params.append(f.experiment)
        if f.search:
            fts_query = build_fts_query(f.search)
            if fts_query:
                clauses.append("id IN (SELECT rowid FROM commands_fts WHERE commands_fts MATCH ?)")
                params.append(fts_query)

        sql = "SELECT * FROM commands"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        direction = "ASC" if f.ascending else "DESC"
        sql += f" ORDER BY timestamp {direction}, id {direction}"
        if f.limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params.extend([f.limit, f.offset])
        elif f.offset:
            sql += " LIMIT -1 OFFSET ?"
            params.append(f.offset)

        with self._guard("query"):
            rows = self._conn.execute(sql, params).fetchall()
        return [CommandRecord.from_row(row) for row in rows]

    def aggregate(self, kind: str, limit: int = 10) -> Any:
        """Compute a read-only statistic over the commands table.

        Args:
            kind: One of aggregates.AGGREGATE_KINDS
            limit: Maximum number of entries for ranked kinds

        Returns:
            A dict for 'summary', otherwise a list of dicts

        Raises:
            ValueError: If the kind is unknown
        """
        func = aggregates.AGGREGATES.get(kind)
        if func is None:
            raise ValueError(
                f"Unknown aggregate kind: {kind} (expected one of {', '.join(aggregates.AGGREGATE_KINDS)})"
            )
        with self._guard(f"aggregate {kind}"):
            return func(self._conn, limit)

    def _write_cursor(self, cursor: ImportCursor) -> None:
        updated_at = cursor.updated_at if cursor.updated_at is not None else int(time.time())
        self._conn.execute(
            """
            INSERT INTO import_cursors
                (host_id, source, shell, last_offset, last_line, last_timestamp, session_id,
                 tail_digests, tail_length, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(host_id, source) DO UPDATE SET
                shell = excluded.shell,
                last_offset = excluded.last_offset,
                last_line = excluded.last_line,
                last_timestamp = excluded.last_timestamp,
                session_id = excluded.session_id,
                tail_digests = excluded.tail_digests,
                tail_length = excluded.tail_length,
                updated_at = excluded.updated_at
            """,
            (
                cursor.host_id,
                cursor.source,
                cursor.shell,
                cursor.last_offset,
                cursor.last_line,
                cursor.last_timestamp,
                cursor.session_id,
                json.dumps(cursor.tail_digests),
                cursor.tail_length,
                updated_at,
            ),
        )

    def cursor_get(self, host_id: str, source: str) -> ImportCursor | None:
        """Get the import cursor of a history source.

        Returns:
            ImportCursor if the source was imported before, None otherwise
        """
        with self._guard("cursor read", source=source):
            row = self._conn.execute(
                "SELECT * FROM import_cursors WHERE host_id = ? AND source = ?",
                (host_id, source),
            ).fetchone()
        return _cursor_from_row(row) if row is not None else None

    def cursor_set(self, cursor: ImportCursor) -> None:
        """Create or update an import cursor on its own.

        Imports should use commit_batch() so the cursor moves together
        with the records it covers.
        """
        with self._guard("cursor write", source=cursor.source):
            with self._conn:
                self._write_cursor(cursor)

    def cursor_reset(self, host_id: str, source: str) -> bool:
        """Delete an import cursor so the source is read from the start again.

        Returns:
            True if a cursor was deleted
        """
        with self._guard("cursor reset", source=source):
            with self._conn:
                deleted = self._conn.execute(
                    "DELETE FROM import_cursors WHERE host_id = ? AND source = ?",
                    (host_id, source),
                )
        return deleted.rowcount > 0

    def list_cursors(self) -> list[ImportCursor]:
        """List all import cursors."""
        with self._guard("cursor read"):
            rows = self._conn.execute(
                "SELECT * FROM import_cursors ORDER BY host_id, source"
            ).fetchall()
        return [_cursor_from_row(row) for row in rows]

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    def __enter__(self) -> Self:
        """Enter context manager."""
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        """Exit context manager, closing database connection."""
        self.close()


def _cursor_from_row(row: sqlite3.Row) -> ImportCursor:
    return ImportCursor(
        host_id=row["host_id"],
        source=row["source"],
        shell=row["shell"],
        last_offset=row["last_offset"] or 0,
        last_line=row["last_line"] or 0,
        last_timestamp=row["last_timestamp"] or 0,
        session_id=row["session_id"],
        tail_digests=load_json_list(row["tail_digests"]),
        tail_length=row["tail_length"] or 0,
        updated_at=row["updated_at"],
    )
