"""Parser for zsh history files.

With EXTENDED_HISTORY set, zsh prefixes each entry with its start time
and elapsed seconds:

    : 1700000000:5;make test

Commands spanning several lines are written with a trailing backslash on
every line but the last. Bytes that zsh considers special are "metafied":
stored as 0x83 followed by the original byte XOR 0x20.
"""

import re
from collections.abc import Iterator
from pathlib import Path

from whiskerlog.models import SHELL_ZSH
from whiskerlog.parsers.base import HistoryParser, Line, ParseStats, RawEvent, iter_complete_lines

EXTENDED_RE = re.compile(r"^: *(\d+):(\d+);(.*)$", re.DOTALL)
# Starts like an extended entry but lacks the command separator
MALFORMED_EXTENDED_RE = re.compile(r"^: *\d+:\d*$")

META = 0x83


def unmetafy(data: bytes) -> bytes:
    """Undo zsh's metafication of history bytes."""
    if META not in data:
        return data

    out = bytearray()
    escaped = False
    for byte in data:
        if escaped:
            out.append(byte ^ 0x20)
            escaped = False
        elif byte == META:
            escaped = True
        else:
            out.append(byte)
    return bytes(out)


class ZshParser(HistoryParser):
    """Parser for plain and extended zsh history."""

    shell_name = SHELL_ZSH

    def iter_events(
        self,
        path: Path,
        from_offset: int = 0,
        start_line: int = 0,
        stats: ParseStats | None = None,
    ) -> Iterator[RawEvent]:
        if stats is None:
            stats = ParseStats(offset=from_offset, line_number=start_line)

        # Lines of a multi-line entry collected so far
        parts: list[str] = []
        first: Line | None = None

        for line in iter_complete_lines(path, from_offset, start_line, stats):
            text = unmetafy(line.data).decode("utf-8", errors="replace").rstrip("\r\n")

            if first is None:
                first = line
            if text.endswith("\\"):
                parts.append(text[:-1])
                continue
            parts.append(text)

            entry = "\n".join(parts)
            start = first
            parts = []
            first = None

            stats.offset = line.end
            stats.line_number = line.number

            event = self._parse_entry(entry, start, line)
            if event is None:
                stats.skipped += 1
                continue
            yield event

    def _parse_entry(self, entry: str, first: Line, last: Line) -> RawEvent | None:
        """Turn one logical entry into an event, or None if it is unusable."""
        match = EXTENDED_RE.match(entry)
        if match:
            command = match.group(3)
            if not command.strip():
                return None
            return RawEvent(
                command=command,
                line_number=first.number,
                end_offset=last.end,
                timestamp=int(match.group(1)),
                duration_ms=int(match.group(2)) * 1000,
            )

        if not entry.strip() or MALFORMED_EXTENDED_RE.match(entry):
            return None

        return RawEvent(command=entry, line_number=first.number, end_offset=last.end)
