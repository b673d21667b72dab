"""Tests for history source discovery."""

from pathlib import Path
from unittest.mock import patch

import pytest

from whiskerlog.ingest.sources import (
    HistorySource,
    discover_default_sources,
    get_bash_history_paths,
    get_fish_history_paths,
    get_zsh_history_paths,
    infer_shell,
)


class TestInferShell:
    """Tests for infer_shell function."""

    @pytest.mark.parametrize(
        ("name", "shell"),
        [
            (".bash_history", "bash"),
            (".zsh_history", "zsh"),
            (".zhistory", "zsh"),
            (".histfile", "zsh"),
            ("fish_history", "fish"),
            ("commands.txt", "unknown"),
        ],
    )
    def test_by_filename(self, name: str, shell: str) -> None:
        assert infer_shell(Path("/home/user") / name) == shell

    def test_ignores_directory_names(self) -> None:
        """Only the file name decides the shell."""
        assert infer_shell(Path("/home/zsh-fan/.bash_history")) == "bash"


class TestHistorySource:
    """Tests for HistorySource dataclass."""

    def test_defaults(self) -> None:
        source = HistorySource(Path("/h/.bash_history"), "bash")

        assert source.host_id == "local"
        assert source.key == "/h/.bash_history"


class TestDefaultPaths:
    """Tests for default history path discovery."""

    def test_nothing_when_missing(self, tmp_path: Path) -> None:
        with patch.object(Path, "home", return_value=tmp_path):
            assert get_bash_history_paths() == []
            assert get_zsh_history_paths() == []
            assert get_fish_history_paths() == []
            assert discover_default_sources() == []

    def test_discovers_existing_files(self, tmp_path: Path) -> None:
        (tmp_path / ".bash_history").touch()
        (tmp_path / ".zsh_history").touch()
        fish_dir = tmp_path / ".local" / "share" / "fish"
        fish_dir.mkdir(parents=True)
        (fish_dir / "fish_history").touch()

        with patch.object(Path, "home", return_value=tmp_path):
            sources = discover_default_sources("laptop")

        assert [(s.path.name, s.shell) for s in sources] == [
            (".bash_history", "bash"),
            (".zsh_history", "zsh"),
            ("fish_history", "fish"),
        ]
        assert all(s.host_id == "laptop" for s in sources)
