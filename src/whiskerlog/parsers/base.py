"""Base parser interface and registry."""

from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

from whiskerlog.errors import SourceUnavailable
from whiskerlog.models import RawEvent

# Re-export RawEvent for convenient access from parsers
__all__ = ["HistoryParser", "Line", "ParseResult", "ParseStats", "ParserRegistry", "RawEvent"]


@dataclass
class ParseStats:
    """Running diagnostics for one parse pass.

    `offset` is the safe resume point: the byte position up to which every
    line has been either emitted as part of an event or skipped. Lines that
    belong to an event still being assembled stay after it.
    """

    offset: int = 0
    line_number: int = 0
    skipped: int = 0
    incomplete_tail: bool = False
    # Bytes of the unfinished final line, if any
    tail: bytes = b""


@dataclass
class ParseResult:
    """All events from one pass plus where the next pass should resume."""

    events: list[RawEvent] = field(default_factory=list)
    new_offset: int = 0
    last_line: int = 0
    skipped: int = 0


@dataclass
class Line:
    """One newline-terminated line of a history file."""

    number: int
    start: int
    end: int
    data: bytes

    @property
    def text(self) -> str:
        return self.data.decode("utf-8", errors="replace").rstrip("\r\n")


def iter_complete_lines(
    path: Path,
    from_offset: int = 0,
    start_line: int = 0,
    stats: ParseStats | None = None,
) -> Iterator[Line]:
    """Yield newline-terminated lines of a file starting at a byte offset.

    A final line without a newline is still being written by a live shell
    and is not yielded; `stats.incomplete_tail` records that one was seen
    and `stats.tail` holds its bytes.

    Raises:
        SourceUnavailable: If the file is missing or cannot be read
    """
    try:
        f = open(path, "rb")
    except FileNotFoundError as e:
        raise SourceUnavailable(str(path), "file not found") from e
    except IsADirectoryError as e:
        raise SourceUnavailable(str(path), "is a directory") from e
    except OSError as e:
        raise SourceUnavailable(str(path), e.strerror or str(e)) from e

    with f:
        try:
            f.seek(from_offset)
            position = from_offset
            number = start_line
            for data in f:
                if not data.endswith(b"\n"):
                    if stats is not None:
                        stats.incomplete_tail = True
                        stats.tail = data
                    return
                number += 1
                yield Line(number=number, start=position, end=position + len(data), data=data)
                position += len(data)
        except OSError as e:
            raise SourceUnavailable(str(path), e.strerror or str(e)) from e


class HistoryParser(ABC):
    """Base class for shell history parsers.

    Subclasses set `shell_name` and implement `iter_events()` for one
    on-disk framing rule. The set of parsers is closed: bash, zsh, fish.
    """

    shell_name: str

    @abstractmethod
    def iter_events(
        self,
        path: Path,
        from_offset: int = 0,
        start_line: int = 0,
        stats: ParseStats | None = None,
    ) -> Iterator[RawEvent]:
        """Lazily yield raw events in file order.

        Args:
            path: Path to the history file
            from_offset: Byte offset to resume from (an earlier safe offset)
            start_line: Number of lines before from_offset
            stats: Optional diagnostics updated as lines are consumed

        Yields:
            RawEvent for each complete command
        """

    def parse(self, path: Path, from_offset: int = 0, start_line: int = 0) -> ParseResult:
        """Parse a history file from an offset in one pass.

        Args:
            path: Path to the history file
            from_offset: Byte offset to start parsing from
            start_line: Number of lines before from_offset

        Returns:
            ParseResult with events and the offset for the next pass
        """
        stats = ParseStats(offset=from_offset, line_number=start_line)
        events = list(self.iter_events(path, from_offset, start_line, stats))
        return ParseResult(
            events=events,
            new_offset=stats.offset,
            last_line=stats.line_number,
            skipped=stats.skipped,
        )


class ParserRegistry:
    """Registry of parsers by shell tag."""

    _parsers: dict[str, HistoryParser] = {}

    @classmethod
    def register(cls, parser: HistoryParser, shell: str | None = None) -> None:
        """Register a parser, optionally under an alias shell tag."""
        cls._parsers[shell or parser.shell_name] = parser

    @classmethod
    def get(cls, shell: str) -> HistoryParser | None:
        """Get parser by shell tag."""
        return cls._parsers.get(shell)

    @classmethod
    def all_shells(cls) -> list[str]:
        """List all registered shell tags."""
        return list(cls._parsers.keys())
