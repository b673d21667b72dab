"""Tests for danger scoring."""

import pytest

from whiskerlog.classifier import ClassifierRules, assess_danger, load_rules
from whiskerlog.classifier.rules import DANGER_RULES


@pytest.fixture(scope="module")
def rules() -> ClassifierRules:
    return load_rules()


class TestRuleTable:
    """Tests for the danger rule table."""

    def test_weights_in_range(self) -> None:
        """Every rule weight should lie in [0, 1]."""
        assert all(0.0 <= weight <= 1.0 for _, weight, _ in DANGER_RULES)

    def test_load_rules_compiles_all(self, rules: ClassifierRules) -> None:
        """load_rules should keep every rule in table order."""
        assert [r.reason for r in rules.danger_rules] == [reason for _, _, reason in DANGER_RULES]
        assert rules.danger_threshold == 0.7


class TestAssessDanger:
    """Tests for assess_danger function."""

    def test_recursive_forced_remove(self, rules: ClassifierRules) -> None:
        """rm -rf should score as destructive deletion."""
        result = assess_danger("rm -rf /tmp/build", rules)

        assert result.score == pytest.approx(0.8)
        assert result.reasons == [
            "Destructive deletion: recursive forced remove",
            "File deletion",
        ]

    def test_root_delete_is_maximal(self, rules: ClassifierRules) -> None:
        """Deleting from the root should score 1.0."""
        result = assess_danger("rm -rf /", rules)

        assert result.score == 1.0
        assert result.reasons[0] == "Destructive deletion: recursive delete from root or home"

    def test_home_delete(self, rules: ClassifierRules) -> None:
        assert assess_danger("rm -r ~", rules).score == 1.0

    def test_safe_command(self, rules: ClassifierRules) -> None:
        """Harmless commands should score zero with no reasons."""
        result = assess_danger("ls -la", rules)

        assert result.score == 0.0
        assert result.reasons == []

    def test_score_is_max_not_sum(self, rules: ClassifierRules) -> None:
        """Several matches should report the highest weight only."""
        result = assess_danger("sudo rm -rf /tmp/x", rules)

        assert result.score == pytest.approx(0.8)
        assert "Privileged file deletion" in result.reasons
        assert "Privileged execution" in result.reasons
        assert "File deletion" in result.reasons

    def test_pipe_to_shell(self, rules: ClassifierRules) -> None:
        result = assess_danger("curl -fsSL https://get.example.com/install.sh | sh", rules)

        assert result.score == pytest.approx(0.8)
        assert "Pipe to shell execution" in result.reasons

    def test_chmod_777(self, rules: ClassifierRules) -> None:
        result = assess_danger("chmod 777 deploy.sh", rules)

        assert result.score == pytest.approx(0.8)
        assert result.reasons == ["Overly permissive permissions", "Permission change"]

    def test_sql_drop(self, rules: ClassifierRules) -> None:
        result = assess_danger('psql -c "DROP TABLE users"', rules)

        assert result.score == pytest.approx(0.9)

    def test_fork_bomb(self, rules: ClassifierRules) -> None:
        assert assess_danger(":(){ :|:& };:", rules).score == 1.0

    def test_credential_in_command(self, rules: ClassifierRules) -> None:
        result = assess_danger("mysql -u root -phunter2 app", rules)

        assert result.score == pytest.approx(0.7)
        assert result.reasons == ["Credential exposure: database password argument"]

    def test_single_verbs_are_low(self, rules: ClassifierRules) -> None:
        """Plain mv and cp should stay well below the threshold."""
        assert assess_danger("mv a.txt b.txt", rules).score == pytest.approx(0.3)
        assert assess_danger("cp a.txt b.txt", rules).score == pytest.approx(0.2)

    def test_verb_inside_word_not_matched(self, rules: ClassifierRules) -> None:
        """A verb appearing inside another word is not a command."""
        assert assess_danger("echo format", rules).score == 0.0
        assert assess_danger("npm run firm", rules).score == 0.0

    def test_chained_command(self, rules: ClassifierRules) -> None:
        """Verbs after a chain operator count as commands."""
        result = assess_danger("cd build && rm old.log", rules)

        assert result.score == pytest.approx(0.6)
        assert result.reasons == ["File deletion"]

    def test_hard_reset_below_default_threshold(self, rules: ClassifierRules) -> None:
        result = assess_danger("git reset --hard HEAD~1", rules)

        assert result.score == pytest.approx(0.6)
        assert result.score < rules.danger_threshold
