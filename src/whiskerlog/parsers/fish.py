"""Parser for fish history files.

Fish stores history at ~/.local/share/fish/fish_history as YAML-like
entries:

    - cmd: git commit -m "wip"
      when: 1700000000
      paths:
        - src/main.py

Newlines and backslashes inside `cmd` are escaped as \\n and \\\\.
"""

import re
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from whiskerlog.models import SHELL_FISH
from whiskerlog.parsers.base import HistoryParser, Line, ParseStats, RawEvent, iter_complete_lines

CMD_PREFIX = "- cmd:"
WHEN_RE = re.compile(r"^\s+when:\s*(\S*)\s*$")
PATHS_RE = re.compile(r"^\s+paths:\s*$")
PATH_ITEM_RE = re.compile(r"^\s+-\s")
ESCAPE_RE = re.compile(r"\\(.)")


def unescape(value: str) -> str:
    """Decode fish's escapes for newlines and backslashes."""

    def replace(match: re.Match[str]) -> str:
        char = match.group(1)
        if char == "n":
            return "\n"
        if char == "\\":
            return "\\"
        return match.group(0)

    return ESCAPE_RE.sub(replace, value)


@dataclass
class _Entry:
    first: Line
    last: Line
    command: str
    timestamp: int | None = None


class FishParser(HistoryParser):
    """Parser for fish history entries."""

    shell_name = SHELL_FISH

    def iter_events(
        self,
        path: Path,
        from_offset: int = 0,
        start_line: int = 0,
        stats: ParseStats | None = None,
    ) -> Iterator[RawEvent]:
        if stats is None:
            stats = ParseStats(offset=from_offset, line_number=start_line)

        entry: _Entry | None = None

        for line in iter_complete_lines(path, from_offset, start_line, stats):
            text = line.text

            if text.startswith(CMD_PREFIX):
                # A new entry completes the previous one
                if entry is not None:
                    event = self._finish(entry, stats)
                    if event is not None:
                        yield event
                entry = _Entry(first=line, last=line, command=unescape(text[len(CMD_PREFIX):].strip()))
                continue

            if entry is None:
                stats.skipped += 1
                stats.offset = line.end
                stats.line_number = line.number
                continue

            entry.last = line
            when = WHEN_RE.match(text)
            if when:
                try:
                    entry.timestamp = int(when.group(1))
                except ValueError:
                    stats.skipped += 1
            elif not (PATHS_RE.match(text) or PATH_ITEM_RE.match(text)):
                stats.skipped += 1

        # An indented partial line may still belong to the last entry
        if entry is not None and not stats.tail[:1].isspace():
            event = self._finish(entry, stats)
            if event is not None:
                yield event

    def _finish(self, entry: _Entry, stats: ParseStats) -> RawEvent | None:
        stats.offset = entry.last.end
        stats.line_number = entry.last.number
        if not entry.command.strip():
            stats.skipped += 1
            return None
        return RawEvent(
            command=entry.command,
            line_number=entry.first.number,
            end_offset=entry.last.end,
            timestamp=entry.timestamp,
        )
