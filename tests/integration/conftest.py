"""Pytest fixtures for integration tests.

Provides real temporary git repositories; Docker and Kubernetes clients are
mocked in the individual test modules.
"""

from __future__ import annotations

from pathlib import Path

import git
import pytest


def _init_repo(path: Path, branch: str) -> git.Repo:
    path.mkdir(parents=True, exist_ok=True)
    repo = git.Repo.init(path, initial_branch=branch)
    repo.config_writer().set_value("user", "name", "Test User").release()
    repo.config_writer().set_value("user", "email", "test@example.com").release()
    return repo


@pytest.fixture
def make_repo(tmp_path: Path):
    """Factory creating a repository with one commit on the given branch.

    Returns:
        Callable ``(branch="main") -> git.Repo``
    """

    def factory(branch: str = "main") -> git.Repo:
        repo = _init_repo(tmp_path / f"repo-{branch}", branch)
        readme = Path(repo.working_dir) / "README.md"
        readme.write_text("# Legal App\n")
        repo.index.add(["README.md"])
        repo.index.commit("Initial commit")
        return repo

    return factory


@pytest.fixture
def empty_repo(tmp_path: Path) -> git.Repo:
    """Create a repository with no commits."""
    return _init_repo(tmp_path / "empty", "main")
