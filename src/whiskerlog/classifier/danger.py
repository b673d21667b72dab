"""Danger scoring for shell commands."""

from dataclasses import dataclass, field

from whiskerlog.classifier.rules import ClassifierRules


@dataclass
class DangerAssessment:
    """Score and reasons produced by the danger rules."""

    score: float = 0.0
    reasons: list[str] = field(default_factory=list)


def assess_danger(command: str, rules: ClassifierRules) -> DangerAssessment:
    """Score a command against the danger rule table.

    The score is the highest weight among matching rules. Every matching
    rule contributes its reason, in table order, whether or not it set the
    score.
    """
    score = 0.0
    reasons: list[str] = []

    for rule in rules.danger_rules:
        if not rule.pattern.search(command):
            continue
        if rule.weight > score:
            score = rule.weight
        if rule.reason not in reasons:
            reasons.append(rule.reason)

    return DangerAssessment(score=min(1.0, max(0.0, score)), reasons=reasons)
