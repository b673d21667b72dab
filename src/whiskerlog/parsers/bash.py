"""Parser for bash history files.

Bash writes one command per line to ~/.bash_history. With HISTTIMEFORMAT
set, each command is preceded by a comment line holding its start time:

    #1700000000
    git status
"""

import re
from collections.abc import Iterator
from pathlib import Path

from whiskerlog.models import SHELL_BASH
from whiskerlog.parsers.base import HistoryParser, Line, ParseStats, RawEvent, iter_complete_lines

TIMESTAMP_MARKER_RE = re.compile(r"^#(\d{1,12})\s*$")


class BashParser(HistoryParser):
    """Parser for plain and timestamped bash history."""

    shell_name = SHELL_BASH

    def iter_events(
        self,
        path: Path,
        from_offset: int = 0,
        start_line: int = 0,
        stats: ParseStats | None = None,
    ) -> Iterator[RawEvent]:
        if stats is None:
            stats = ParseStats(offset=from_offset, line_number=start_line)

        # Marker waiting for its command line
        pending: tuple[Line, int] | None = None

        for line in iter_complete_lines(path, from_offset, start_line, stats):
            text = line.text
            marker = TIMESTAMP_MARKER_RE.match(text)

            if marker:
                if pending is not None:
                    # Two markers in a row: the first one has no command
                    stats.skipped += 1
                pending = (line, int(marker.group(1)))
                continue

            if not text.strip():
                stats.skipped += 1
                if pending is None:
                    stats.offset = line.end
                    stats.line_number = line.number
                continue

            timestamp = pending[1] if pending is not None else None
            pending = None
            stats.offset = line.end
            stats.line_number = line.number
            yield RawEvent(
                command=text,
                line_number=line.number,
                end_offset=line.end,
                timestamp=timestamp,
            )
