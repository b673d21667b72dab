"""Command classification: danger, experiments, endpoints, packages, host context."""

from dataclasses import dataclass, field

from whiskerlog.classifier.danger import assess_danger
from whiskerlog.classifier.experiment import detect_experiment
from whiskerlog.classifier.hosts import LOCAL, detect_host_context
from whiskerlog.classifier.network import extract_endpoints
from whiskerlog.classifier.packages import extract_package_refs
from whiskerlog.classifier.rules import ClassifierRules
from whiskerlog.models import PackageRef


@dataclass(frozen=True)
class ClassificationContext:
    """The record's own fields, plus the commands run just before it."""

    timestamp: int | None = None
    exit_code: int | None = None
    duration_ms: int | None = None
    working_directory: str | None = None
    shell: str | None = None
    previous: tuple[tuple[str, int], ...] = ()


@dataclass
class ClassificationResult:
    """Everything the classifier derives from one command."""

    danger_score: float = 0.0
    danger_reasons: list[str] = field(default_factory=list)
    is_dangerous: bool = False
    experiment_tags: list[str] = field(default_factory=list)
    is_experiment: bool = False
    network_endpoints: list[str] = field(default_factory=list)
    packages_used: list[str] = field(default_factory=list)
    package_refs: list[PackageRef] = field(default_factory=list)
    host_context: str = LOCAL


def classify(
    command: str,
    context: ClassificationContext,
    rules: ClassifierRules,
) -> ClassificationResult:
    """Classify one command.

    The analyses are independent: a command can be dangerous, an
    experiment, and mention both endpoints and packages at once.

    Args:
        command: Raw (unredacted) command text
        context: Fields of the record being classified
        rules: Rule tables loaded at startup

    Returns:
        ClassificationResult for the command
    """
    danger = assess_danger(command, rules)
    tags = detect_experiment(
        command,
        rules,
        timestamp=context.timestamp,
        exit_code=context.exit_code,
        previous=context.previous,
    )
    package_refs = extract_package_refs(command, rules)

    return ClassificationResult(
        danger_score=danger.score,
        danger_reasons=danger.reasons,
        is_dangerous=danger.score >= rules.danger_threshold,
        experiment_tags=tags,
        is_experiment=bool(tags),
        network_endpoints=extract_endpoints(command),
        packages_used=list(dict.fromkeys(ref.name for ref in package_refs)),
        package_refs=package_refs,
        host_context=detect_host_context(command),
    )
