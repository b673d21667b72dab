"""Fingerprints of the already imported part of a history file.

A cursor keeps digests of the last few lines before its offset. Shells
rewrite history files in place (bash trims the oldest lines down to
HISTFILESIZE on exit), so before resuming the digests are compared with
the bytes now in front of the offset, and when they differ the lines are
searched for in the rewritten file.
"""

import hashlib
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path

from whiskerlog.errors import SourceUnavailable
from whiskerlog.parsers.base import iter_complete_lines

TAIL_LINES = 3
TAIL_BYTES = 4096


@dataclass
class Tail:
    """Digests of the last complete lines before an offset, oldest first."""

    digests: list[str] = field(default_factory=list)
    length: int = 0  # Bytes covered by the digested lines


def line_digest(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()[:16]


def _split_lines(data: bytes) -> list[bytes]:
    """Split bytes after each newline, keeping the newlines."""
    parts = data.split(b"\n")
    lines = [part + b"\n" for part in parts[:-1]]
    if parts[-1]:
        lines.append(parts[-1])
    return lines


def _read_range(path: Path, start: int, end: int) -> bytes:
    try:
        with open(path, "rb") as f:
            f.seek(start)
            return f.read(end - start)
    except FileNotFoundError as e:
        raise SourceUnavailable(str(path), "file not found") from e
    except OSError as e:
        raise SourceUnavailable(str(path), e.strerror or str(e)) from e


def read_tail(path: Path, offset: int) -> Tail:
    """Digest up to TAIL_LINES complete lines ending at offset.

    Raises:
        SourceUnavailable: If the file cannot be read
    """
    if offset <= 0:
        return Tail()

    start = max(0, offset - TAIL_BYTES)
    lines = _split_lines(_read_range(path, start, offset))
    if start > 0:
        # The first piece may begin mid-line
        lines = lines[1:]
    lines = lines[-TAIL_LINES:]
    return Tail(digests=[line_digest(line) for line in lines], length=sum(len(line) for line in lines))


def tail_matches(path: Path, offset: int, tail: Tail) -> bool:
    """Check that the file still holds the digested lines right before offset."""
    start = offset - tail.length
    if start < 0:
        return False
    data = _read_range(path, start, offset)
    if len(data) != tail.length:
        return False
    return [line_digest(line) for line in _split_lines(data)] == tail.digests


def find_tail(path: Path, tail: Tail) -> tuple[int, int] | None:
    """Locate where the digested lines now end in a rewritten file.

    The last full occurrence of the tail lines wins. When leading lines
    were dropped so far that only some tail lines survive, a file that
    starts with those surviving lines matches too.

    Returns:
        Tuple of (offset just past the tail, its line number), or None

    Raises:
        SourceUnavailable: If the file cannot be read
    """
    size = len(tail.digests)
    if size == 0:
        return None

    window: deque[str] = deque(maxlen=size)
    full: tuple[int, int] | None = None
    partial: tuple[int, int] | None = None

    for line in iter_complete_lines(path):
        window.append(line_digest(line.data))
        if len(window) == size:
            if list(window) == tail.digests:
                full = (line.end, line.number)
        elif list(window) == tail.digests[-len(window):]:
            partial = (line.end, line.number)

    return full or partial
