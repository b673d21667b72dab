"""Rule tables for command classification.

Provides:
- DANGER_RULES: (pattern, weight, reason) rules for risky commands
- EXPERIMENT_PATTERNS: (tag, pattern) rules for learning behaviour
- PACKAGE_MANAGERS: install-like invocations of package managers
- load_rules: build the immutable ClassifierRules used by classify()

Weights are in [0, 1]. A command's danger score is the highest weight
among the rules it matches.
"""

import re
from dataclasses import dataclass

# Start of a simple command: line start or after a chain/pipe operator
_CMD = r"(?:^|[;&|(]\s*|\bsudo\s+)"
# Option words before the interesting one
_OPTS = r"(?:-\S+\s+)*"

RM_RECURSIVE_FORCE = (
    rf"\brm\s+{_OPTS}(?:"
    r"-[a-z]*(?:r[a-z]*f|f[a-z]*r)[a-z]*"
    rf"|(?:-r|--recursive)\s+{_OPTS}(?:-f|--force)"
    rf"|(?:-f|--force)\s+{_OPTS}(?:-r|--recursive)"
    r")(?=\s|$)"
)

# Format: (pattern, weight, reason)
DANGER_RULES: list[tuple[str, float, str]] = [
    # === Destructive filesystem operations ===
    (
        rf"\brm\s+{_OPTS}-[a-z]*r[a-z]*\s+{_OPTS}(?:/|/\*|~/?|\$HOME/?)(?=\s|$)",
        1.0,
        "Destructive deletion: recursive delete from root or home",
    ),
    (r"--no-preserve-root", 1.0, "Destructive deletion: root protection disabled"),
    (RM_RECURSIVE_FORCE, 0.8, "Destructive deletion: recursive forced remove"),
    (r"\bsudo\s+rm\b", 0.7, "Privileged file deletion"),
    (r"\bdd\s+.*\bof=/dev/", 0.9, "Direct disk write"),
    (r">\s*/dev/(?:sd[a-z]|nvme\d|hd[a-z]|disk\d)", 0.9, "Direct disk write"),
    (r"\bmkfs(?:\.\w+)?\b", 0.9, "Filesystem creation"),
    (r"\bwipefs\b|\bshred\s+", 0.8, "Destructive deletion: secure erase"),
    (r":\(\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:", 1.0, "Fork bomb"),
    (r"\bfind\s+.*\s-delete\b", 0.6, "Destructive deletion: find with -delete"),
    # === Remote code execution ===
    (r"\b(?:curl|wget)\b[^|]*\|\s*(?:sudo\s+)?(?:ba|z|da)?sh\b", 0.8, "Pipe to shell execution"),
    (r"\b(?:curl|wget)\b[^|]*\|\s*(?:sudo\s+)?python[0-9.]*\b", 0.8, "Pipe to interpreter execution"),
    (r"\b(?:eval|source)\s+[\"']?\$\(\s*(?:curl|wget)\b", 0.8, "Remote script evaluation"),
    # === Permission and privilege changes ===
    (r"\bchmod\s+(?:-\S+\s+)*0?777\b", 0.8, "Overly permissive permissions"),
    (r"\bchmod\s+(?:-\S+\s+)*[ugoa]*\+s\b", 0.7, "Setuid bit change"),
    (r"\bchown\s+(?:-\S+\s+)*-R\s+root\b", 0.7, "Recursive ownership change to root"),
    (r"/etc/sudoers|\bvisudo\b", 0.8, "Privilege configuration change"),
    (r"\bsu\s+-(?:\s|$)|\bsudo\s+(?:-i|-s|su)\b", 0.6, "Switch to root shell"),
    (rf"{_CMD}sudo\s+", 0.5, "Privileged execution"),
    # === Irreversible data operations ===
    (r"\bdrop\s+(?:database|table|schema)\b", 0.9, "Irreversible data operation: SQL DROP"),
    (r"\btruncate\s+table\b", 0.8, "Irreversible data operation: SQL TRUNCATE"),
    (r"\bdelete\s+from\s+\w+\s*(?:;|\"|'|$)", 0.7, "Irreversible data operation: DELETE without WHERE"),
    (r"\bflushall\b|\bflushdb\b", 0.8, "Irreversible data operation: cache flush"),
    (r"\bgit\s+push\s+.*(?:--force\b|-f\b)", 0.6, "Irreversible data operation: force push"),
    (r"\bgit\s+reset\s+--hard\b", 0.6, "Irreversible data operation: hard reset"),
    (r"\bgit\s+clean\s+-[a-z]*f", 0.6, "Irreversible data operation: clean untracked files"),
    (r"\bcrontab\s+-r\b", 0.7, "Irreversible data operation: crontab removal"),
    (r"\bterraform\s+destroy\b", 0.8, "Irreversible data operation: infrastructure destroy"),
    (r"\bkubectl\s+delete\b", 0.6, "Irreversible data operation: cluster resource deletion"),
    (r"\bdocker\s+(?:system|volume)\s+prune\b", 0.6, "Irreversible data operation: docker prune"),
    (r"\biptables\s+(?:-F|--flush)\b", 0.7, "Firewall rules flushed"),
    (r"\bhistory\s+-c\b", 0.5, "Shell history cleared"),
    # === Credential exposure ===
    (
        r"(?:\b|_)(?:password|passwd|pwd|pass|secret|token|api[_-]?key|access[_-]?key)\s*=\s*['\"]?[^\s'\"$]+",
        0.7,
        "Credential exposure: secret in command line",
    ),
    (
        r"\bauthorization:\s*(?:bearer|basic|token)\s+\S+|\bbearer\s+[a-z0-9._~+/=-]{8,}",
        0.7,
        "Credential exposure: authorization header",
    ),
    (r"\b[a-z][a-z0-9+.-]*://[^\s/:@]+:[^\s/@]+@", 0.7, "Credential exposure: password in URL"),
    (r"\bmysql(?:dump)?\b.*\s-p[^\s-]\S*", 0.7, "Credential exposure: database password argument"),
    (r"\bsshpass\s+-p\s*\S+", 0.7, "Credential exposure: ssh password argument"),
    (r"\b(?:AKIA|ASIA)[0-9A-Z]{16}\b", 0.7, "Credential exposure: AWS access key"),
    (r"/etc/shadow\b", 0.7, "Credential exposure: shadow file access"),
    # === Single risky verbs ===
    (rf"{_CMD}rm\s", 0.6, "File deletion"),
    (rf"{_CMD}rmdir\s", 0.5, "Directory deletion"),
    (rf"{_CMD}chmod\s", 0.4, "Permission change"),
    (rf"{_CMD}chown\s", 0.4, "Ownership change"),
    (rf"{_CMD}kill(?:all)?\s+-(?:9|KILL)\b", 0.4, "Forced process kill"),
    (rf"{_CMD}mv\s", 0.3, "File movement"),
    (rf"{_CMD}cp\s", 0.2, "File copying"),
]

# Commands whose only purpose is reading documentation
LEARNING_COMMANDS = frozenset(
    {"man", "help", "tldr", "info", "which", "type", "whatis", "apropos", "cheat"}
)

# Tools people often run bare just to see their usage
EXPLORATION_TOOLS = frozenset(
    {"jq", "ffmpeg", "docker", "kubectl", "git", "curl", "grep", "awk", "sed", "npm", "pip", "cargo", "go"}
)

# Format: (tag, pattern); a tag is emitted once even if several patterns match
EXPERIMENT_PATTERNS: list[tuple[str, str]] = [
    ("help-seeking", r"(?:^|\s)(?:--help|-h|--usage|-\?)(?=\s|$)"),
    ("version-check", r"(?:^|\s)(?:--version|-V)(?=\s|$)|^\s*\S+\s+version\s*$"),
    (
        "package-search",
        r"\b(?:pip3?\s+(?:search|show|index\s+versions)|apt(?:-cache)?\s+(?:search|show|policy)"
        r"|npm\s+(?:search|view|info|show)|yarn\s+info|brew\s+(?:search|info)|cargo\s+search"
        r"|gem\s+(?:search|list\s+-r)|dnf\s+(?:search|info)|yum\s+(?:search|info)"
        r"|conda\s+search|pacman\s+-Ss)\b",
    ),
    ("testing", r"\b(?:test|try|trying|play|playground|sandbox|experiment|scratch|demo)\b"),
    ("tutorial", r"\b(?:hello[-_]?world|tutorial|getting[-_]started|example|examples)\b"),
]

# Format: (command words, manager name, install-like subcommands)
PACKAGE_MANAGERS: list[tuple[tuple[str, ...], str, frozenset[str]]] = [
    (("pip",), "pip", frozenset({"install", "uninstall", "download"})),
    (("pip3",), "pip", frozenset({"install", "uninstall", "download"})),
    (("python", "-m", "pip"), "pip", frozenset({"install", "uninstall", "download"})),
    (("python3", "-m", "pip"), "pip", frozenset({"install", "uninstall", "download"})),
    (("pipx",), "pipx", frozenset({"install", "uninstall", "run"})),
    (("uv", "pip"), "uv", frozenset({"install", "uninstall"})),
    (("uv",), "uv", frozenset({"add", "remove"})),
    (("poetry",), "poetry", frozenset({"add", "remove"})),
    (("npm",), "npm", frozenset({"install", "i", "add", "uninstall", "remove", "rm", "update"})),
    (("yarn",), "yarn", frozenset({"add", "remove", "upgrade"})),
    (("yarn", "global"), "yarn", frozenset({"add", "remove"})),
    (("pnpm",), "pnpm", frozenset({"add", "install", "i", "remove", "rm", "update"})),
    (("apt",), "apt", frozenset({"install", "remove", "purge", "reinstall"})),
    (("apt-get",), "apt", frozenset({"install", "remove", "purge", "reinstall"})),
    (("brew",), "brew", frozenset({"install", "uninstall", "reinstall", "upgrade"})),
    (("brew", "cask"), "brew", frozenset({"install", "uninstall"})),
    (("cargo",), "cargo", frozenset({"install", "uninstall", "add", "remove"})),
    (("gem",), "gem", frozenset({"install", "uninstall"})),
    (("go",), "go", frozenset({"get", "install"})),
    (("dnf",), "dnf", frozenset({"install", "remove", "reinstall"})),
    (("yum",), "yum", frozenset({"install", "remove", "reinstall"})),
    (("conda",), "conda", frozenset({"install", "remove", "uninstall"})),
    (("snap",), "snap", frozenset({"install", "remove"})),
]

# Flags whose next word is a value, not a package
VALUE_FLAGS = frozenset(
    {
        "-r", "--requirement", "-c", "--constraint", "-t", "--target", "-i", "--index-url",
        "--extra-index-url", "--prefix", "--root", "--find-links", "--python",
        "--registry", "-C", "--path", "--version", "--vers", "--git", "--branch",
        "-n", "--name", "-p", "--channel", "--only-binary", "--no-binary", "--platform",
        "--target-dir", "-o",
    }
)

REPEAT_WINDOW_SECONDS = 120
SIMILARITY_THRESHOLD = 0.8


@dataclass(frozen=True)
class DangerRule:
    """A compiled danger pattern with its weight and reason."""

    pattern: re.Pattern[str]
    weight: float
    reason: str


@dataclass(frozen=True)
class PackageManager:
    """An install-like package manager invocation."""

    words: tuple[str, ...]
    name: str
    subcommands: frozenset[str]


@dataclass(frozen=True)
class ClassifierRules:
    """Immutable rule tables and settings, built once at startup."""

    danger_rules: tuple[DangerRule, ...]
    experiment_patterns: tuple[tuple[str, re.Pattern[str]], ...]
    package_managers: tuple[PackageManager, ...]
    learning_commands: frozenset[str] = LEARNING_COMMANDS
    exploration_tools: frozenset[str] = EXPLORATION_TOOLS
    value_flags: frozenset[str] = VALUE_FLAGS
    danger_threshold: float = 0.7
    experiment_detection: bool = True
    repeat_window_seconds: int = REPEAT_WINDOW_SECONDS
    similarity_threshold: float = SIMILARITY_THRESHOLD


def load_rules(danger_threshold: float = 0.7, experiment_detection: bool = True) -> ClassifierRules:
    """Compile the rule tables into a ClassifierRules instance.

    Args:
        danger_threshold: Score at or above which a command is dangerous
        experiment_detection: Whether experiment tags are produced at all

    Returns:
        ClassifierRules ready to pass to classify()
    """
    danger_rules = tuple(
        DangerRule(re.compile(pattern, re.IGNORECASE), min(1.0, max(0.0, weight)), reason)
        for pattern, weight, reason in DANGER_RULES
    )
    experiment_patterns = tuple(
        (tag, re.compile(pattern, re.IGNORECASE)) for tag, pattern in EXPERIMENT_PATTERNS
    )
    # Longest invocation first so `python -m pip` wins over `python`
    package_managers = tuple(
        PackageManager(words, name, subcommands)
        for words, name, subcommands in sorted(PACKAGE_MANAGERS, key=lambda m: -len(m[0]))
    )
    return ClassifierRules(
        danger_rules=danger_rules,
        experiment_patterns=experiment_patterns,
        package_managers=package_managers,
        danger_threshold=danger_threshold,
        experiment_detection=experiment_detection,
    )
