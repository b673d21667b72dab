"""Package reference extraction from package-manager invocations."""

import re
import shlex

from whiskerlog.classifier.rules import ClassifierRules
from whiskerlog.models import PackageRef

CHAIN_OPERATORS = frozenset({"&&", "||", ";", "|", "&", ";;", "|&"})
ENV_ASSIGNMENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*=")
PRIVILEGE_WRAPPERS = frozenset({"sudo", "doas", "command", "nohup", "time"})
REDIRECTION_CHARS = frozenset("<>")

# Subcommand words by the action they take on a package
ACTIONS = {
    "install": "install",
    "i": "install",
    "add": "install",
    "get": "install",
    "reinstall": "install",
    "uninstall": "remove",
    "remove": "remove",
    "rm": "remove",
    "purge": "remove",
    "update": "update",
    "upgrade": "update",
    "download": "download",
    "run": "run",
}


def split_commands(command: str) -> list[list[str]]:
    """Split command text into the word lists of its simple commands.

    Falls back to whitespace splitting when the text has unbalanced quotes,
    which is common for history entries typed by mistake.
    """
    lexer = shlex.shlex(command, posix=True, punctuation_chars=True)
    lexer.whitespace_split = True
    try:
        tokens = list(lexer)
    except ValueError:
        tokens = command.split()

    segments: list[list[str]] = [[]]
    for token in tokens:
        if token in CHAIN_OPERATORS or set(token) <= set(";&|"):
            segments.append([])
        else:
            segments[-1].append(token)
    return [segment for segment in segments if segment]


def strip_prefixes(words: list[str]) -> list[str]:
    """Drop leading VAR=value assignments and sudo-like wrappers."""
    index = 0
    while index < len(words):
        word = words[index]
        if ENV_ASSIGNMENT_RE.match(word) or word in PRIVILEGE_WRAPPERS:
            index += 1
        elif index > 0 and words[index - 1] in PRIVILEGE_WRAPPERS and word.startswith("-"):
            # Options of the wrapper itself, e.g. `sudo -E`
            index += 1
        else:
            break
    return words[index:]


def extract_package_refs(command: str, rules: ClassifierRules) -> list[PackageRef]:
    """Find packages passed to package-manager commands, with manager and action.

    Args:
        command: Raw command text
        rules: Classifier rules holding the package manager table

    Returns:
        PackageRefs in order of appearance, flags and flag values excluded
    """
    refs: list[PackageRef] = []

    for segment in split_commands(command):
        words = strip_prefixes(segment)
        for manager in rules.package_managers:
            size = len(manager.words)
            if tuple(words[:size]) != manager.words:
                continue

            # Global flags may sit between the manager and its subcommand
            rest = words[size:]
            while rest and rest[0].startswith("-"):
                rest = rest[1:]
            if not rest or rest[0] not in manager.subcommands:
                continue
            action = ACTIONS.get(rest[0], rest[0])

            skip_next = False
            for word in rest[1:]:
                if skip_next:
                    skip_next = False
                    continue
                if word.startswith("-"):
                    skip_next = word in rules.value_flags
                    continue
                if set(word) <= REDIRECTION_CHARS:
                    # Redirection target follows
                    skip_next = True
                    continue
                ref = PackageRef(manager=manager.name, name=word, action=action)
                if ref not in refs:
                    refs.append(ref)
            break

    return refs


def extract_packages(command: str, rules: ClassifierRules) -> list[str]:
    """Package names from extract_package_refs(), each listed once."""
    names: list[str] = []
    for ref in extract_package_refs(command, rules):
        if ref.name not in names:
            names.append(ref.name)
    return names
