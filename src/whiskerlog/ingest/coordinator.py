"""Import pass: history files through the parser, classifier and store."""

from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from pathlib import Path

from whiskerlog.classifier import ClassificationContext, ClassifierRules, classify, redact
from whiskerlog.errors import SourceUnavailable, StoreIOError
from whiskerlog.ingest.fingerprint import Tail, find_tail, read_tail, tail_matches
from whiskerlog.ingest.sources import HistorySource
from whiskerlog.logging import get_logger
from whiskerlog.models import SHELL_UNKNOWN, CommandRecord, ImportCursor, RawEvent, source_digest
from whiskerlog.parsers import ParserRegistry, ParseStats
from whiskerlog.store import CommandStore

logger = get_logger("ingest")

# Per-source states reported in SourceReport.state
STATE_IDLE = "idle"
STATE_READING = "reading"
STATE_CLASSIFYING = "classifying"
STATE_COMMITTING = "committing"
STATE_DONE = "done"
STATE_FAILED = "failed"

DEFAULT_BATCH_SIZE = 500
DEFAULT_SESSION_GAP_SECONDS = 30 * 60

# How many earlier commands trial-and-error detection looks back over
PREVIOUS_COMMANDS_WINDOW = 20

# Global flag for graceful shutdown
_shutdown_requested = False


def request_shutdown() -> None:
    """Request that the running import stops before its next source."""
    global _shutdown_requested
    _shutdown_requested = True


def is_shutdown_requested() -> bool:
    """Check if shutdown has been requested."""
    return _shutdown_requested


def reset_shutdown() -> None:
    """Reset shutdown flag (useful for testing)."""
    global _shutdown_requested
    _shutdown_requested = False


@dataclass
class SourceReport:
    """Progress and counts for one history source."""

    source: str
    shell: str
    host_id: str
    state: str = STATE_IDLE
    parsed: int = 0
    inserted: int = 0
    duplicates: int = 0
    skipped: int = 0
    excluded: int = 0
    cursor: ImportCursor | None = None
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.state == STATE_FAILED


@dataclass
class ImportSummary:
    """Reports of every source handled by one import pass."""

    reports: list[SourceReport] = field(default_factory=list)
    stopped: bool = False

    def _total(self, name: str) -> int:
        return sum(getattr(report, name) for report in self.reports)

    @property
    def parsed(self) -> int:
        return self._total("parsed")

    @property
    def inserted(self) -> int:
        return self._total("inserted")

    @property
    def duplicates(self) -> int:
        return self._total("duplicates")

    @property
    def skipped(self) -> int:
        return self._total("skipped")

    @property
    def excluded(self) -> int:
        return self._total("excluded")

    @property
    def failed(self) -> list[SourceReport]:
        return [report for report in self.reports if report.failed]


class SessionTracker:
    """Assigns session ids from gaps between consecutive timestamps.

    A new session starts at the first event or when an event comes more
    than `gap_seconds` after the previous one. Ids depend only on the
    source and the session's first timestamp, so re-imports reproduce them.
    """

    def __init__(
        self,
        shell: str,
        source: str,
        gap_seconds: int,
        session_id: str | None = None,
        last_timestamp: int = 0,
    ) -> None:
        self.shell = shell
        self.digest = source_digest(source)
        self.gap_seconds = gap_seconds
        self.session_id = session_id
        self.last_timestamp = last_timestamp

    def assign(self, timestamp: int) -> str:
        if self.session_id is None or timestamp - self.last_timestamp > self.gap_seconds:
            self.session_id = f"{self.shell}-{self.digest}-{timestamp}"
        self.last_timestamp = timestamp
        return self.session_id


def _resume_cursor(source: HistorySource, store: CommandStore) -> tuple[ImportCursor, bool]:
    """Load the stored cursor and check it still fits the file.

    When the lines in front of the stored offset changed, the file was
    rewritten: the cursor moves to where those lines now end, or to the
    start of the file when they are gone. The session and last timestamp
    carry over either way.

    Returns:
        Tuple of (cursor to resume from, whether it differs from the stored one)
    """
    cursor = store.cursor_get(source.host_id, source.key)
    if cursor is None:
        return ImportCursor(host_id=source.host_id, source=source.key, shell=source.shell), False

    try:
        size = source.path.stat().st_size
    except FileNotFoundError as e:
        raise SourceUnavailable(source.key, "file not found") from e
    except OSError as e:
        raise SourceUnavailable(source.key, e.strerror or str(e)) from e

    tail = Tail(digests=cursor.tail_digests, length=cursor.tail_length)
    if cursor.last_offset <= size and (not tail.digests or tail_matches(source.path, cursor.last_offset, tail)):
        return cursor, False

    found = find_tail(source.path, tail)
    if found is not None:
        offset, line_number = found
        logger.warning(
            "History file rewritten, resuming after last imported lines: path=%s old_offset=%d offset=%d",
            source.key,
            cursor.last_offset,
            offset,
        )
        return replace(cursor, last_offset=offset, last_line=line_number), True

    logger.warning(
        "History file rewritten, reading from start: path=%s old_offset=%d size=%d",
        source.key,
        cursor.last_offset,
        size,
    )
    return replace(cursor, last_offset=0, last_line=0, tail_digests=[], tail_length=0), True


def _synthetic_anchor(path: Path, end_offset: int) -> int:
    """Timestamp for the first event of a pass that carries none.

    Counts back one second per line still left in the file from the file's
    modification time, so later untimed events end up just before it.
    """
    remaining = 0
    try:
        mtime = int(path.stat().st_mtime)
        with open(path, "rb") as f:
            f.seek(end_offset)
            for chunk in iter(lambda: f.read(1 << 16), b""):
                remaining += chunk.count(b"\n")
    except FileNotFoundError as e:
        raise SourceUnavailable(str(path), "file not found") from e
    except OSError as e:
        raise SourceUnavailable(str(path), e.strerror or str(e)) from e
    return mtime - remaining - 1


def build_record(
    event: RawEvent,
    timestamp: int,
    session_id: str,
    source: HistorySource,
    rules: ClassifierRules,
    previous: tuple[tuple[str, int], ...] = (),
    redaction_enabled: bool = True,
) -> CommandRecord:
    """Classify one raw event and turn it into a storable record.

    Classification always sees the raw command; redaction applies to the
    stored command text and endpoints afterwards.
    """
    context = ClassificationContext(
        timestamp=timestamp,
        exit_code=event.exit_code,
        duration_ms=event.duration_ms,
        shell=source.shell,
        previous=previous,
    )
    result = classify(event.command, context, rules)

    command = event.command
    endpoints = result.network_endpoints
    if redaction_enabled:
        command = redact(command)
        endpoints = [redact(endpoint) for endpoint in endpoints]

    return CommandRecord(
        command=command,
        timestamp=timestamp,
        session_id=session_id,
        host_id=source.host_id,
        shell=source.shell,
        exit_code=event.exit_code,
        duration_ms=event.duration_ms,
        network_endpoints=endpoints,
        packages_used=result.packages_used,
        package_refs=result.package_refs,
        experiment_tags=result.experiment_tags,
        danger_reasons=result.danger_reasons,
        is_experiment=result.is_experiment,
        is_dangerous=result.is_dangerous,
        danger_score=result.danger_score,
        host_context=result.host_context,
    )


def import_source(
    source: HistorySource,
    store: CommandStore,
    rules: ClassifierRules,
    redaction_enabled: bool = True,
    batch_size: int = DEFAULT_BATCH_SIZE,
    session_gap_seconds: int = DEFAULT_SESSION_GAP_SECONDS,
) -> SourceReport:
    """Import new commands from one history source.

    Reads from the stored cursor, commits records in batches and moves the
    cursor past each batch in the same transaction. Events without a
    timestamp get consecutive seconds ending at the file's modification
    time. A missing or unreadable file marks the source failed without
    raising.

    Args:
        source: History file to import
        store: Command store to write to
        rules: Classifier rule tables
        redaction_enabled: Mask secrets in stored commands and endpoints
        batch_size: Records per transaction
        session_gap_seconds: Idle time that starts a new session

    Returns:
        SourceReport with counts and the final cursor

    Raises:
        StoreIOError: If a batch cannot be committed; the stored cursor
                      stays at the last committed batch
    """
    report = SourceReport(source=source.key, shell=source.shell, host_id=source.host_id)
    parser = ParserRegistry.get(source.shell) or ParserRegistry.get(SHELL_UNKNOWN)

    try:
        committed, moved = _resume_cursor(source, store)
    except SourceUnavailable as e:
        return _fail(report, e)

    stats = ParseStats(offset=committed.last_offset, line_number=committed.last_line)
    sessions = SessionTracker(
        source.shell,
        source.key,
        session_gap_seconds,
        session_id=committed.session_id,
        last_timestamp=committed.last_timestamp,
    )
    previous: deque[tuple[str, int]] = deque(maxlen=PREVIOUS_COMMANDS_WINDOW)
    if committed.session_id is not None:
        previous.extend(store.recent_commands(source.host_id, committed.session_id, PREVIOUS_COMMANDS_WINDOW))
    batch: list[CommandRecord] = []
    position = committed
    anchor: int | None = None

    def commit() -> None:
        nonlocal committed, moved
        report.state = STATE_COMMITTING
        tail = read_tail(source.path, position.last_offset)
        cursor = replace(position, tail_digests=tail.digests, tail_length=tail.length)
        try:
            result = store.commit_batch(batch, cursor)
        except StoreIOError as e:
            report.state = STATE_FAILED
            report.error = str(e)
            raise StoreIOError(
                f"Import aborted: {e.__cause__ or e}",
                source=source.key,
                last_offset=committed.last_offset,
            ) from e
        report.inserted += result.inserted
        report.duplicates += result.duplicates
        committed = cursor
        moved = False
        batch.clear()

    report.state = STATE_READING
    try:
        for event in parser.iter_events(source.path, committed.last_offset, committed.last_line, stats):
            report.parsed += 1
            if event.timestamp is not None:
                timestamp = event.timestamp
            else:
                if anchor is None:
                    anchor = _synthetic_anchor(source.path, event.end_offset)
                timestamp = max(sessions.last_timestamp + 1, anchor)
            session_id = sessions.assign(timestamp)

            report.state = STATE_CLASSIFYING
            try:
                record = build_record(
                    event,
                    timestamp,
                    session_id,
                    source,
                    rules,
                    previous=tuple(previous),
                    redaction_enabled=redaction_enabled,
                )
            except Exception:
                logger.exception(
                    "Classification failed, record excluded: path=%s line=%d",
                    source.key,
                    event.line_number,
                )
                report.excluded += 1
                record = None
            previous.append((event.command, timestamp))

            if record is not None:
                batch.append(record)
            position = replace(
                committed,
                shell=source.shell,
                last_offset=event.end_offset,
                last_line=stats.line_number,
                last_timestamp=timestamp,
                session_id=session_id,
                updated_at=None,
            )
            if len(batch) >= batch_size:
                commit()
            report.state = STATE_READING

        # Trailing skipped lines or a realigned cursor move it without adding records
        if batch or moved or stats.offset != committed.last_offset:
            position = replace(
                position,
                last_offset=stats.offset,
                last_line=stats.line_number,
                updated_at=None,
            )
            commit()
    except SourceUnavailable as e:
        return _fail(report, e)

    report.skipped = stats.skipped
    report.cursor = committed
    report.state = STATE_DONE
    logger.info(
        "Imported source: path=%s parsed=%d inserted=%d duplicates=%d skipped=%d excluded=%d",
        source.key,
        report.parsed,
        report.inserted,
        report.duplicates,
        report.skipped,
        report.excluded,
    )
    return report


def _fail(report: SourceReport, error: SourceUnavailable) -> SourceReport:
    report.state = STATE_FAILED
    report.error = str(error)
    logger.warning("Source failed: path=%s reason=%s", error.path, error.reason)
    return report


def run_import(
    sources: list[HistorySource],
    store: CommandStore,
    rules: ClassifierRules,
    redaction_enabled: bool = True,
    batch_size: int = DEFAULT_BATCH_SIZE,
    session_gap_seconds: int = DEFAULT_SESSION_GAP_SECONDS,
    max_workers: int = 1,
) -> ImportSummary:
    """Run one import pass over every source.

    Sources are independent: a failed source does not stop the others.
    With max_workers > 1 sources are imported concurrently, each by one
    thread. A shutdown request is honoured before each source starts.

    Returns:
        ImportSummary with one report per source that was started

    Raises:
        StoreIOError: If the store fails; the pass stops
    """
    summary = ImportSummary()

    def work(source: HistorySource) -> SourceReport | None:
        if is_shutdown_requested():
            return None
        return import_source(
            source,
            store,
            rules,
            redaction_enabled=redaction_enabled,
            batch_size=batch_size,
            session_gap_seconds=session_gap_seconds,
        )

    logger.info("Starting import: sources=%d workers=%d", len(sources), max_workers)

    if max_workers <= 1:
        results = [work(source) for source in sources]
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            results = list(executor.map(work, sources))

    for result in results:
        if result is None:
            summary.stopped = True
        else:
            summary.reports.append(result)

    logger.info(
        "Import complete: sources=%d inserted=%d duplicates=%d skipped=%d excluded=%d failed=%d",
        len(summary.reports),
        summary.inserted,
        summary.duplicates,
        summary.skipped,
        summary.excluded,
        len(summary.failed),
    )
    return summary
