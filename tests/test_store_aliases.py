"""Tests for alias suggestions."""

import pytest

from whiskerlog.store.aliases import (
    alias_name,
    complexity,
    generate_shell_aliases,
    normalize_command,
    suggest_aliases,
)


class TestNormalizeCommand:
    """Tests for normalize_command function."""

    def test_numbers_and_files(self) -> None:
        assert normalize_command("tail -n 100 /var/log/app.log") == "tail -n N /FILE"

    def test_other_words_kept(self) -> None:
        assert normalize_command("cat  src/main.py") == "cat src/main.py"


class TestAliasName:
    """Tests for alias_name function."""

    @pytest.mark.parametrize(
        "command,expected",
        [
            ("git status", "gs"),
            ("git add .", "gaa"),
            ("git add src", "ga"),
            ("git commit -m wip", "gcm"),
            ("git commit --amend", "gca"),
            ("git push origin main", "gpo"),
            ("git log --oneline", "glog1"),
            ("git fetch --all", "gf"),
            ("git", "g"),
            ("docker compose up -d", "dc"),
            ("kubectl port-forward svc/web 8080:80", "kpf"),
            ("cargo clippy", "ccl"),
            ("systemctl restart nginx", "scr"),
            ("ls -la", "ll"),
            ("ls -l", "l"),
            ("ls", None),
            ("terraform apply tfplan", "tat"),
            ("make test", None),
        ],
    )
    def test_names(self, command: str, expected: str | None) -> None:
        assert alias_name(command) == expected


class TestComplexity:
    """Tests for complexity function."""

    def test_words_options_and_tools(self) -> None:
        # 4 words, one "--", one " -" and the kubectl weight
        assert complexity("kubectl get pods --watch") == 4 + 1 + 1 + 3

    def test_single_word(self) -> None:
        assert complexity("ls") == 1


class TestSuggestAliases:
    """Tests for suggest_aliases function."""

    def test_frequent_long_command(self) -> None:
        suggestions = suggest_aliases(["docker compose up -d"] * 2 + ["ls"] * 10)

        assert [(s.command, s.alias, s.frequency) for s in suggestions] == [("docker compose up -d", "dc", 2)]
        assert suggestions[0].chars_saved == len("docker compose up -d") - 2
        assert suggestions[0].total_saved == 2 * suggestions[0].chars_saved

    def test_thresholds(self) -> None:
        """Non-git commands need three uses and more than twelve characters."""
        commands = ["systemctl restart nginx"] * 2 + ["npm run build"] * 3 + ["ls -la"] * 5

        assert [s.alias for s in suggest_aliases(commands)] == ["nr"]

    def test_normalized_commands_count_together(self) -> None:
        commands = [f"kubectl logs web-{n} --tail 100" for n in range(3)]
        commands += ["git log -n 5 --oneline", "git log -n 10 --oneline"]

        suggestions = suggest_aliases(commands)

        assert [(s.command, s.frequency) for s in suggestions] == [("git log -n N --oneline", 2)]

    def test_ranked_by_impact(self) -> None:
        commands = ["git status --short"] * 2 + ["kubectl get pods --all-namespaces"] * 3

        suggestions = suggest_aliases(commands)

        assert [s.alias for s in suggestions] == ["kg", "gs"]

    def test_limit(self) -> None:
        commands = ["git status --short"] * 2 + ["git diff --staged"] * 2

        assert len(suggest_aliases(commands, limit=1)) == 1

    def test_only_recent_window(self) -> None:
        commands = ["git status --short"] * 2 + ["echo"] * 1000

        assert suggest_aliases(commands) == []


class TestGenerateShellAliases:
    """Tests for generate_shell_aliases function."""

    ROWS = [
        {"alias": "gs", "command": "git status --short"},
        {"alias": "gcm", "command": "git commit -m 'wip'"},
    ]

    def test_bash(self) -> None:
        script = generate_shell_aliases(self.ROWS, "bash")

        assert script.splitlines() == [
            "# Generated aliases by whiskerlog",
            "alias gs='git status --short'",
            "alias gcm='git commit -m '\"'\"'wip'\"'\"''",
        ]

    def test_fish(self) -> None:
        script = generate_shell_aliases(self.ROWS[:1], "fish")

        assert script == "# Generated aliases by whiskerlog\nalias gs 'git status --short'\n"

    def test_top_ten_only(self) -> None:
        rows = [{"alias": f"a{n}", "command": f"command number {n}"} for n in range(15)]

        assert len(generate_shell_aliases(rows, "zsh").splitlines()) == 11

    def test_unsupported_shell(self) -> None:
        with pytest.raises(ValueError):
            generate_shell_aliases(self.ROWS, "tcsh")
