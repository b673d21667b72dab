"""Alias suggestions for long commands that are typed often.

Commands are normalized first (bare numbers become `N`, paths to text,
log and config files become `/FILE`) so that runs differing only in such
details count together. A suggestion is worth making when the command is
frequent and long enough, and its alias saves at least three characters.
"""

import shlex
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

# Only the most recent commands are analyzed
ANALYSIS_WINDOW = 1000
MAX_SUGGESTIONS = 25
MIN_CHARS_SAVED = 3
SCRIPT_ALIASES = 10

FILE_SUFFIXES = (".txt", ".log", ".json", ".yaml", ".yml")

# Aliases by program, then by subcommand
SUBCOMMAND_ALIASES: dict[str, dict[str, str]] = {
    "git": {
        "status": "gs",
        "checkout": "gco",
        "branch": "gb",
        "diff": "gd",
        "merge": "gm",
        "rebase": "gr",
        "stash": "gst",
        "remote": "grem",
    },
    "docker": {"ps": "dps", "images": "di", "run": "dr", "exec": "de", "build": "db", "compose": "dc"},
    "kubectl": {
        "get": "kg",
        "describe": "kd",
        "apply": "ka",
        "delete": "kdel",
        "logs": "kl",
        "exec": "ke",
        "port-forward": "kpf",
    },
    "npm": {"install": "ni", "start": "ns", "test": "nt", "run": "nr", "build": "nb"},
    "yarn": {"install": "yi", "start": "ys", "test": "yt", "build": "yb", "add": "ya"},
    "cargo": {"build": "cb", "run": "cr", "test": "ct", "check": "cc", "clippy": "ccl"},
    "systemctl": {
        "status": "scs",
        "start": "scst",
        "stop": "scsp",
        "restart": "scr",
        "enable": "sce",
        "disable": "scd",
    },
}

# Prefix for subcommands without their own alias
PROGRAM_PREFIXES = {
    "git": "g",
    "docker": "d",
    "kubectl": "k",
    "npm": "n",
    "yarn": "y",
    "cargo": "c",
    "systemctl": "sc",
}

TOOL_WEIGHTS = {"docker": 2, "kubectl": 3, "git": 1, "npm": 1, "yarn": 1}


@dataclass
class AliasSuggestion:
    command: str
    alias: str
    frequency: int
    chars_saved: int  # Per use

    @property
    def total_saved(self) -> int:
        return self.chars_saved * self.frequency

    def to_dict(self) -> dict[str, Any]:
        return {
            "command": self.command,
            "alias": self.alias,
            "frequency": self.frequency,
            "chars_saved": self.chars_saved,
            "total_saved": self.total_saved,
        }


def normalize_command(command: str) -> str:
    words = []
    for word in command.split():
        if word.isdigit():
            words.append("N")
        elif "/" in word and word.endswith(FILE_SUFFIXES):
            words.append("/FILE")
        else:
            words.append(word)
    return " ".join(words)


def _git_alias(parts: list[str]) -> str:
    subcommand = parts[1]
    if subcommand == "add":
        return "gaa" if parts[2:3] == ["."] else "ga"
    if subcommand == "commit":
        if "-m" in parts:
            return "gcm"
        return "gca" if "--amend" in parts else "gc"
    if subcommand == "push":
        return "gpo" if "origin" in parts else "gp"
    if subcommand == "pull":
        return "glo" if "origin" in parts else "gl"
    if subcommand == "log":
        return "glog1" if "--oneline" in parts else "glog"
    return SUBCOMMAND_ALIASES["git"].get(subcommand, "g" + subcommand[0])


def alias_name(command: str) -> str | None:
    """Propose a short alias for a command, or None when there is no good one."""
    parts = command.split()
    if not parts:
        return None
    program = parts[0]

    if program in PROGRAM_PREFIXES:
        if len(parts) == 1:
            return PROGRAM_PREFIXES[program]
        if program == "git":
            return _git_alias(parts)
        return SUBCOMMAND_ALIASES[program].get(parts[1], PROGRAM_PREFIXES[program] + parts[1][0])

    if program == "ls":
        if "-la" in command or "-al" in command:
            return "ll"
        return "l" if "-l" in command else None

    if len(command) > 15:
        # Initials of the first three words
        alias = "".join(word[0] for word in parts[:3])
        if 2 <= len(alias) <= 5:
            return alias
    return None


def complexity(command: str) -> int:
    """Rough effort of typing a command: words, options and tool weight."""
    score = len(command.split()) + command.count("--") + command.count(" -")
    score += sum(weight for tool, weight in TOOL_WEIGHTS.items() if tool in command)
    return score


def suggest_aliases(commands: Iterable[str], limit: int = MAX_SUGGESTIONS) -> list[AliasSuggestion]:
    """Rank alias suggestions for a list of commands.

    Args:
        commands: Command texts, oldest first; only the last ANALYSIS_WINDOW count
        limit: Maximum suggestions returned

    Returns:
        Suggestions ordered by frequency times characters saved times complexity
    """
    recent = list(commands)[-ANALYSIS_WINDOW:]
    counts = Counter(normalize_command(command) for command in recent)

    suggestions: list[AliasSuggestion] = []
    for command, frequency in counts.items():
        min_frequency = 2 if "git" in command or "docker" in command else 3
        min_length = 8 if len(command.split()) > 3 else 12
        if frequency < min_frequency or len(command) <= min_length:
            continue

        alias = alias_name(command)
        if alias is None:
            continue
        chars_saved = len(command) - len(alias)
        if chars_saved < MIN_CHARS_SAVED:
            continue
        suggestions.append(AliasSuggestion(command, alias, frequency, chars_saved))

    suggestions.sort(key=lambda s: (-s.frequency * s.chars_saved * complexity(s.command), s.command))
    return suggestions[:limit]


def generate_shell_aliases(suggestions: list[dict[str, Any]], shell: str) -> str:
    """Render the top suggestions as alias definitions for a shell.

    Args:
        suggestions: Rows as returned by AliasSuggestion.to_dict()
        shell: Shell tag the script is for

    Raises:
        ValueError: If the shell has no alias syntax here
    """
    if shell in ("bash", "zsh"):
        template = "alias {alias}={command}"
    elif shell == "fish":
        template = "alias {alias} {command}"
    else:
        raise ValueError(f"Alias generation not supported for shell: {shell}")

    lines = ["# Generated aliases by whiskerlog"]
    for suggestion in suggestions[:SCRIPT_ALIASES]:
        lines.append(template.format(alias=suggestion["alias"], command=shlex.quote(suggestion["command"])))
    return "\n".join(lines) + "\n"
