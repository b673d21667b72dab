"""Canonical data models."""

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any

# Shell tags, one per parser strategy
SHELL_BASH = "bash"
SHELL_ZSH = "zsh"
SHELL_FISH = "fish"
SHELL_UNKNOWN = "unknown"

SHELLS = (SHELL_BASH, SHELL_ZSH, SHELL_FISH, SHELL_UNKNOWN)

DEFAULT_HOST_ID = "local"


def source_digest(source: str) -> str:
    """Short stable digest of a history source path, used in session ids."""
    return hashlib.sha256(source.encode()).hexdigest()[:8]


@dataclass
class RawEvent:
    """A single command as framed by a history parser, before classification."""

    command: str
    line_number: int  # 1-based line where the command starts
    end_offset: int  # Byte offset just past the event
    timestamp: int | None = None
    duration_ms: int | None = None
    exit_code: int | None = None


@dataclass(frozen=True)
class PackageRef:
    """One package touched by a package-manager command."""

    manager: str
    name: str
    action: str  # install, remove, update, download or run

    def to_dict(self) -> dict[str, str]:
        return {"manager": self.manager, "name": self.name, "action": self.action}


def load_package_refs(value: str | None) -> list[PackageRef]:
    if not value:
        return []
    try:
        loaded = json.loads(value)
    except json.JSONDecodeError:
        return []
    if not isinstance(loaded, list):
        return []
    return [
        PackageRef(manager=str(item["manager"]), name=str(item["name"]), action=str(item["action"]))
        for item in loaded
        if isinstance(item, dict) and {"manager", "name", "action"} <= item.keys()
    ]


@dataclass
class CommandRecord:
    """A classified shell command, the unit of storage."""

    command: str
    timestamp: int  # Unix timestamp (seconds)
    session_id: str
    host_id: str = DEFAULT_HOST_ID
    shell: str = SHELL_UNKNOWN
    exit_code: int | None = None
    duration_ms: int | None = None
    working_directory: str | None = None
    network_endpoints: list[str] = field(default_factory=list)
    packages_used: list[str] = field(default_factory=list)
    package_refs: list[PackageRef] = field(default_factory=list)
    experiment_tags: list[str] = field(default_factory=list)
    danger_reasons: list[str] = field(default_factory=list)
    is_experiment: bool = False
    is_dangerous: bool = False
    danger_score: float = 0.0
    host_context: str | None = None  # Where the command ran, e.g. ssh:user@host
    id: int | None = None
    created_at: str | None = None

    @property
    def dedup_key(self) -> tuple[str, int, str, str]:
        """Fields identifying one logical command occurrence."""
        return (self.command, self.timestamp, self.session_id, self.host_id)

    def to_row(self) -> dict[str, Any]:
        """Convert to column values for the commands table."""
        return {
            "command": self.command,
            "timestamp": self.timestamp,
            "exit_code": self.exit_code,
            "duration": self.duration_ms,
            "working_directory": self.working_directory,
            "session_id": self.session_id,
            "host_id": self.host_id,
            "network_endpoints": json.dumps(self.network_endpoints),
            "packages_used": json.dumps(self.packages_used),
            "is_experiment": self.is_experiment,
            "experiment_tags": json.dumps(self.experiment_tags),
            "is_dangerous": self.is_dangerous,
            "danger_score": self.danger_score,
            "danger_reasons": json.dumps(self.danger_reasons),
            "shell": self.shell,
            "package_refs": json.dumps([ref.to_dict() for ref in self.package_refs]),
            "host_context": self.host_context,
        }

    @classmethod
    def from_row(cls, row: Any) -> "CommandRecord":
        """Build a record from a sqlite3.Row of the commands table."""
        return cls(
            id=row["id"],
            command=row["command"],
            timestamp=row["timestamp"],
            exit_code=row["exit_code"],
            duration_ms=row["duration"],
            working_directory=row["working_directory"],
            session_id=row["session_id"],
            host_id=row["host_id"],
            network_endpoints=load_json_list(row["network_endpoints"]),
            packages_used=load_json_list(row["packages_used"]),
            is_experiment=bool(row["is_experiment"]),
            experiment_tags=load_json_list(row["experiment_tags"]),
            is_dangerous=bool(row["is_dangerous"]),
            danger_score=row["danger_score"] or 0.0,
            danger_reasons=load_json_list(row["danger_reasons"]),
            shell=row["shell"],
            package_refs=load_package_refs(row["package_refs"]),
            host_context=row["host_context"],
            created_at=row["created_at"],
        )


@dataclass
class ImportCursor:
    """How far a history source has been consumed for one host."""

    host_id: str
    source: str
    shell: str = SHELL_UNKNOWN
    last_offset: int = 0
    last_line: int = 0
    last_timestamp: int = 0
    session_id: str | None = None
    # Digests of the last lines before last_offset, oldest first
    tail_digests: list[str] = field(default_factory=list)
    tail_length: int = 0
    updated_at: int | None = None


def load_json_list(value: str | None) -> list[str]:
    if not value:
        return []
    try:
        loaded = json.loads(value)
    except json.JSONDecodeError:
        return []
    return [str(item) for item in loaded] if isinstance(loaded, list) else []
