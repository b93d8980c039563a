"""Integration tests for git inspection.

These tests create real git repositories in temporary directories.
"""

from __future__ import annotations

from pathlib import Path

import git
import pytest

from shipline.config import GitConfig
from shipline.errors import VcsUnavailable
from shipline.pipeline.git_ops import DETACHED_HEAD, CommitInfo, RepositoryInspector


def _inspector(path: Path) -> RepositoryInspector:
    return RepositoryInspector(GitConfig(repo_path=path))


def test_reads_branch_and_commit(make_repo) -> None:
    """Test that branch name and full HEAD sha are returned."""
    repo = make_repo("production")

    info = _inspector(Path(repo.working_dir)).inspect()

    assert info == CommitInfo(branch="production", commit=repo.head.commit.hexsha)
    assert len(info.commit) == 40


def test_reports_latest_commit(make_repo) -> None:
    """Test that a new commit is reflected on the next inspection."""
    repo = make_repo("main")
    work = Path(repo.working_dir)
    (work / "app.rb").write_text("puts 'hi'\n")
    repo.index.add(["app.rb"])
    latest = repo.index.commit("Add app")

    info = _inspector(work).inspect()

    assert info.commit == latest.hexsha


def test_reads_checked_out_feature_branch(make_repo) -> None:
    """Test that the checked-out branch, not the default, is reported."""
    repo = make_repo("main")
    repo.create_head("feature-x").checkout()

    assert _inspector(Path(repo.working_dir)).inspect().branch == "feature-x"


def test_subdirectory_of_checkout(make_repo) -> None:
    """Test that a path inside the checkout resolves to the repository."""
    repo = make_repo("production")
    sub = Path(repo.working_dir) / "config"
    sub.mkdir()

    assert _inspector(sub).inspect().branch == "production"


def test_detached_head(make_repo) -> None:
    """Test that a detached HEAD is reported as HEAD."""
    repo = make_repo("production")
    repo.git.checkout(repo.head.commit.hexsha)

    info = _inspector(Path(repo.working_dir)).inspect()

    assert info.branch == DETACHED_HEAD
    assert info.commit == repo.head.commit.hexsha


def test_not_a_repository(tmp_path: Path) -> None:
    """Test that a plain directory raises VcsUnavailable."""
    plain = tmp_path / "plain"
    plain.mkdir()

    with pytest.raises(VcsUnavailable, match="Not a git repository"):
        _inspector(plain).inspect()


def test_missing_path(tmp_path: Path) -> None:
    """Test that a missing path raises VcsUnavailable."""
    with pytest.raises(VcsUnavailable):
        _inspector(tmp_path / "does-not-exist").inspect()


def test_repository_without_commits(empty_repo: git.Repo) -> None:
    """Test that an unborn branch raises VcsUnavailable."""
    with pytest.raises(VcsUnavailable, match="no commits"):
        _inspector(Path(empty_repo.working_dir)).inspect()


def test_inspection_is_read_only(make_repo) -> None:
    """Test that inspecting leaves HEAD and the index untouched."""
    repo = make_repo("production")
    before = repo.head.commit.hexsha

    _inspector(Path(repo.working_dir)).inspect()

    assert repo.head.commit.hexsha == before
    assert not repo.is_dirty(untracked_files=True)
