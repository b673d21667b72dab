"""Command classification against static rule tables."""

from .danger import DangerAssessment, assess_danger
from .engine import ClassificationContext, ClassificationResult, classify
from .experiment import detect_experiment
from .hosts import detect_host_context
from .network import extract_endpoints
from .packages import extract_package_refs, extract_packages, split_commands
from .redaction import redact
from .rules import ClassifierRules, DangerRule, PackageManager, load_rules

__all__ = [
    "ClassificationContext",
    "ClassificationResult",
    "ClassifierRules",
    "DangerAssessment",
    "DangerRule",
    "PackageManager",
    "assess_danger",
    "classify",
    "detect_experiment",
    "detect_host_context",
    "extract_endpoints",
    "extract_package_refs",
    "extract_packages",
    "load_rules",
    "redact",
    "split_commands",
]
