"""Configuration loading and management."""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from whiskerlog.errors import ConfigError
from whiskerlog.ingest.sources import HistorySource, discover_default_sources, infer_shell
from whiskerlog.models import DEFAULT_HOST_ID, SHELLS

DEFAULT_DATABASE_PATH = Path.home() / ".local" / "share" / "whiskerlog" / "history.db"
DEFAULT_DANGER_THRESHOLD = 0.7
DEFAULT_BATCH_SIZE = 500
DEFAULT_SESSION_GAP_SECONDS = 30 * 60


@dataclass
class Config:
    database_path: Path = field(default_factory=lambda: DEFAULT_DATABASE_PATH)
    history_paths: list[HistorySource] = field(default_factory=list)
    redaction_enabled: bool = True
    auto_import: bool = True
    danger_threshold: float = DEFAULT_DANGER_THRESHOLD
    experiment_detection: bool = True
    host_id: str = DEFAULT_HOST_ID
    batch_size: int = DEFAULT_BATCH_SIZE
    session_gap_seconds: int = DEFAULT_SESSION_GAP_SECONDS
    max_workers: int = 1
    log_dir: Path | None = None


def expand_env_var(value: str) -> str:
    """Expand environment variables in string (e.g. ${VAR})."""
    if value.startswith("${") and value.endswith("}"):
        env_var = value[2:-1]
        return os.environ.get(env_var, value)
    return value


def expand_path(path_str: str) -> Path:
    """Expand ~ and environment variables in path."""
    return Path(os.path.expandvars(os.path.expanduser(path_str)))


def parse_history_paths(entries: list[Any], host_id: str) -> list[HistorySource]:
    """Build history sources from the `history_paths` config entries.

    Each entry is either a path string (shell inferred from the filename)
    or a mapping with `path` and optional `shell` and `host_id` keys.
    """
    sources = []
    for entry in entries:
        if isinstance(entry, str):
            path = expand_path(entry)
            sources.append(HistorySource(path, infer_shell(path), host_id))
        elif isinstance(entry, dict):
            if not entry.get("path"):
                raise ConfigError(f"history_paths entry is missing 'path': {entry!r}")
            path = expand_path(str(entry["path"]))
            shell = str(entry.get("shell") or infer_shell(path))
            sources.append(
                HistorySource(path, shell, expand_env_var(str(entry.get("host_id", host_id))))
            )
        else:
            raise ConfigError(f"Invalid history_paths entry: {entry!r}")
    return sources


def validate_config(config: Config) -> None:
    """Reject invalid settings before any ingestion starts.

    Raises:
        ConfigError: If a threshold, size or path setting is invalid
    """
    if isinstance(config.danger_threshold, bool) or not isinstance(
        config.danger_threshold, (int, float)
    ):
        raise ConfigError(f"danger_threshold must be a number: {config.danger_threshold!r}")
    if not 0.0 <= config.danger_threshold <= 1.0:
        raise ConfigError(f"danger_threshold must be within [0, 1]: {config.danger_threshold}")
    if config.batch_size <= 0:
        raise ConfigError(f"batch_size must be positive: {config.batch_size}")
    if config.session_gap_seconds <= 0:
        raise ConfigError(f"session_gap_seconds must be positive: {config.session_gap_seconds}")
    if config.max_workers <= 0:
        raise ConfigError(f"max_workers must be positive: {config.max_workers}")
    if not str(config.database_path).strip():
        raise ConfigError("database_path must not be empty")
    if not config.host_id:
        raise ConfigError("host_id must not be empty")

    for source in config.history_paths:
        if not str(source.path).strip() or source.path == Path("."):
            raise ConfigError("history_paths entries must not be empty")
        if source.shell not in SHELLS:
            raise ConfigError(f"Unknown shell tag for {source.path}: {source.shell}")
        if not source.host_id:
            raise ConfigError(f"host_id must not be empty for {source.path}")


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from a TOML file.

    Raises:
        ConfigError: If the file cannot be parsed or holds invalid values
    """
    if config_path is None:
        # Look for config in standard locations
        search_paths = [
            Path.cwd() / "config.toml",
            Path.home() / ".config" / "whiskerlog" / "config.toml",
            Path("/etc/whiskerlog/config.toml"),
        ]
        for path in search_paths:
            if path.exists():
                config_path = path
                break

    if config_path is None or not config_path.exists():
        config = Config(history_paths=discover_default_sources())
        validate_config(config)
        return config

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Cannot parse config file {config_path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read config file {config_path}: {e}") from e

    host_id = expand_env_var(str(data.get("host_id", DEFAULT_HOST_ID)))

    if "history_paths" in data:
        history_paths = parse_history_paths(data.get("history_paths") or [], host_id)
    else:
        history_paths = discover_default_sources(host_id)

    log_dir = data.get("log_dir")

    try:
        config = Config(
            database_path=expand_path(str(data.get("database_path", DEFAULT_DATABASE_PATH))),
            history_paths=history_paths,
            redaction_enabled=bool(data.get("redaction_enabled", True)),
            auto_import=bool(data.get("auto_import", True)),
            danger_threshold=data.get("danger_threshold", DEFAULT_DANGER_THRESHOLD),
            experiment_detection=bool(data.get("experiment_detection", True)),
            host_id=host_id,
            batch_size=int(data.get("batch_size", DEFAULT_BATCH_SIZE)),
            session_gap_seconds=int(data.get("session_gap_seconds", DEFAULT_SESSION_GAP_SECONDS)),
            max_workers=int(data.get("max_workers", 1)),
            log_dir=expand_path(str(log_dir)) if log_dir else None,
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value in config file {config_path}: {e}") from e

    validate_config(config)
    return config
