"""Experiment and learning-behaviour detection."""

import difflib

from whiskerlog.classifier.network import URL_RE
from whiskerlog.classifier.rules import ClassifierRules

TAG_LEARNING = "learning"
TAG_TOOL_EXPLORATION = "tool-exploration"
TAG_TRIAL_AND_ERROR = "trial-and-error"


def _similar(a: str, b: str, threshold: float) -> bool:
    if a == b:
        return True
    return difflib.SequenceMatcher(None, a, b).ratio() >= threshold


def detect_experiment(
    command: str,
    rules: ClassifierRules,
    timestamp: int | None = None,
    exit_code: int | None = None,
    previous: tuple[tuple[str, int], ...] = (),
) -> list[str]:
    """Tag a command with the kinds of trial-and-error behaviour it shows.

    Args:
        command: Raw command text
        rules: Classifier rules and settings
        timestamp: When the command ran, used for the repeat window
        exit_code: Exit status when the history format recorded one
        previous: (command, timestamp) pairs that ran just before, oldest first

    Returns:
        Tags in a fixed order; empty when detection is disabled
    """
    if not rules.experiment_detection:
        return []

    tags: list[str] = []
    words = command.split()
    first_word = words[0] if words else ""

    if first_word in rules.learning_commands:
        tags.append(TAG_LEARNING)

    # Keyword rules look at the command without its URLs
    text = URL_RE.sub(" ", command)
    for tag, pattern in rules.experiment_patterns:
        if tag not in tags and pattern.search(text):
            tags.append(tag)

    if len(words) == 1 and first_word in rules.exploration_tools:
        tags.append(TAG_TOOL_EXPLORATION)

    if exit_code not in (None, 0):
        tags.append(TAG_TRIAL_AND_ERROR)
    elif timestamp is not None:
        for prev_command, prev_timestamp in reversed(previous):
            if timestamp - prev_timestamp > rules.repeat_window_seconds:
                break
            if _similar(command, prev_command, rules.similarity_threshold):
                tags.append(TAG_TRIAL_AND_ERROR)
                break

    return tags
