"""Tests for termrelay.workspace."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from termrelay.exception import ValidationError
from termrelay.workspace import list_repos, validate_working_directory


class TestValidateWorkingDirectory:
    def test_absolute_inside_root(self, repo_root: Path) -> None:
        path = str(repo_root / "projA")
        assert validate_working_directory(str(repo_root), path) == path

    def test_root_itself_allowed(self, repo_root: Path) -> None:
        assert validate_working_directory(str(repo_root), str(repo_root)) == str(repo_root)

    def test_relative_and_dotted(self, repo_root: Path) -> None:
        got = validate_working_directory(str(repo_root), "projB/../projA/.")
        assert got == str(repo_root / "projA")

    @pytest.mark.parametrize("path", ["/", "/etc", "..", "../"])
    def test_outside_root(self, repo_root: Path, path: str) -> None:
        with pytest.raises(ValidationError):
            validate_working_directory(str(repo_root), path)

    def test_sibling_with_common_prefix(self, repo_root: Path) -> None:
        sibling = Path(str(repo_root) + "-evil")
        sibling.mkdir()
        with pytest.raises(ValidationError):
            validate_working_directory(str(repo_root), str(sibling))

    def test_symlink_escape(self, repo_root: Path, tmp_path_factory: pytest.TempPathFactory) -> None:
        outside = tmp_path_factory.mktemp("outside")
        os.symlink(outside, repo_root / "link")
        with pytest.raises(ValidationError):
            validate_working_directory(str(repo_root), "link")

    def test_missing_directory(self, repo_root: Path) -> None:
        with pytest.raises(ValidationError):
            validate_working_directory(str(repo_root), "nope")

    def test_empty(self, repo_root: Path) -> None:
        with pytest.raises(ValidationError):
            validate_working_directory(str(repo_root), "  ")

    def test_embedded_nul(self, repo_root: Path) -> None:
        with pytest.raises(ValidationError):
            validate_working_directory(str(repo_root), "proj\x00A")


class TestListRepos:
    def test_lists_directories_only(self, repo_root: Path) -> None:
        (repo_root / "file.txt").write_text("x")
        repos = list_repos(str(repo_root))
        assert [r["name"] for r in repos] == ["projA", "projB"]
        assert repos[0]["isGit"] is True
        assert repos[1]["isGit"] is False
        assert repos[0]["relativePath"] == "projA"
        assert repos[0]["path"] == str(repo_root / "projA")
