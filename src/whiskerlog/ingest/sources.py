"""History source discovery and shell tagging."""

from dataclasses import dataclass
from pathlib import Path

from whiskerlog.logging import get_logger
from whiskerlog.models import (
    DEFAULT_HOST_ID,
    SHELL_BASH,
    SHELL_FISH,
    SHELL_UNKNOWN,
    SHELL_ZSH,
)

logger = get_logger("sources")


@dataclass(frozen=True)
class HistorySource:
    """One configured history file plus its shell format tag."""

    path: Path
    shell: str
    host_id: str = DEFAULT_HOST_ID

    @property
    def key(self) -> str:
        """Cursor key for this source."""
        return str(self.path)


def infer_shell(path: Path) -> str:
    """Guess the shell format of a history file from its name.

    Recognizes .bash_history, .zsh_history/.zhistory/.histfile and
    fish_history. Anything else is tagged 'unknown' and read line by line.
    """
    name = path.name.lower()
    if "fish" in name:
        return SHELL_FISH
    if "zsh" in name or name in (".zhistory", ".histfile"):
        return SHELL_ZSH
    if "bash" in name:
        return SHELL_BASH
    return SHELL_UNKNOWN


def get_bash_history_paths() -> list[Path]:
    """Location: ~/.bash_history"""
    path = Path.home() / ".bash_history"
    return [path] if path.exists() else []


def get_zsh_history_paths() -> list[Path]:
    """Locations: ~/.zsh_history, ~/.zhistory"""
    candidates = [Path.home() / ".zsh_history", Path.home() / ".zhistory"]
    return [path for path in candidates if path.exists()]


def get_fish_history_paths() -> list[Path]:
    """Location: ~/.local/share/fish/fish_history"""
    path = Path.home() / ".local" / "share" / "fish" / "fish_history"
    return [path] if path.exists() else []


def discover_default_sources(host_id: str = DEFAULT_HOST_ID) -> list[HistorySource]:
    """Discover the shell history files present in the home directory.

    Missing files are left out; only explicitly configured paths are
    reported as unavailable at import time.
    """
    sources = [
        *(HistorySource(path, SHELL_BASH, host_id) for path in get_bash_history_paths()),
        *(HistorySource(path, SHELL_ZSH, host_id) for path in get_zsh_history_paths()),
        *(HistorySource(path, SHELL_FISH, host_id) for path in get_fish_history_paths()),
    ]

    logger.debug(
        "Discovered sources: bash=%d zsh=%d fish=%d",
        sum(1 for s in sources if s.shell == SHELL_BASH),
        sum(1 for s in sources if s.shell == SHELL_ZSH),
        sum(1 for s in sources if s.shell == SHELL_FISH),
    )

    return sources
