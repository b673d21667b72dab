"""Error taxonomy for whiskerlog.

Parse-level anomalies are never raised; parsers count skipped lines instead.
"""


class WhiskerlogError(Exception):
    """Base class for whiskerlog errors."""


class ConfigError(WhiskerlogError):
    """Invalid configuration, rejected before any ingestion starts."""


class SourceUnavailable(WhiskerlogError):
    """A history source file is missing or unreadable."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"History source unavailable: {path} ({reason})")
        self.path = path
        self.reason = reason


class StoreIOError(WhiskerlogError):
    """Disk or database failure while reading or writing the store.

    Carries the source being imported and the last committed cursor offset
    (when known) so the caller can report and retry.
    """

    def __init__(
        self,
        message: str,
        source: str | None = None,
        last_offset: int | None = None,
    ) -> None:
        details = []
        if source is not None:
            details.append(f"source={source}")
        if last_offset is not None:
            details.append(f"last_offset={last_offset}")
        if details:
            message = f"{message} ({' '.join(details)})"
        super().__init__(message)
        self.source = source
        self.last_offset = last_offset
