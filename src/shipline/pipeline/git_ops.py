"""Read-only git inspection for Shipline.

This module reads the checked-out branch and the latest commit of a local
checkout using GitPython. It never modifies the repository.

Example usage:
    >>> from pathlib import Path
    >>> from shipline.config import GitConfig
    >>> from shipline.pipeline.git_ops import RepositoryInspector
    >>>
    >>> inspector = RepositoryInspector(GitConfig(repo_path=Path(".")))
    >>> info = inspector.inspect()
    >>> print(info.branch, info.commit)
"""

from __future__ import annotations

import git
from git import GitCommandError, InvalidGitRepositoryError, NoSuchPathError
from pydantic import BaseModel, Field

from shipline.config import GitConfig
from shipline.errors import VcsUnavailable
from shipline.logging import get_logger

# Name reported when HEAD does not point at a branch (e.g. CI checkouts of a sha).
DETACHED_HEAD = "HEAD"


class CommitInfo(BaseModel):
    """Branch and commit of a checkout.

    Attributes:
        branch: Checked-out branch name, or ``HEAD`` when detached
        commit: Full hexsha of the ``HEAD`` commit
    """

    model_config = {"frozen": True}

    branch: str = Field(description="Current branch name")
    commit: str = Field(description="Latest commit identifier")


class RepositoryInspector:
    """Reads branch and commit information from a git checkout.

    Attributes:
        config: Git configuration from PipelineConfig
        logger: Structured logger instance
    """

    def __init__(self, config: GitConfig) -> None:
        self.config = config
        self.logger = get_logger(__name__)

    def _open_repo(self) -> git.Repo:
        try:
            return git.Repo(self.config.repo_path, search_parent_directories=True)
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            self.logger.error(
                "git_repository_unavailable",
                repo_path=str(self.config.repo_path),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise VcsUnavailable(
                f"Not a git repository: {self.config.repo_path}"
            ) from e

    def inspect(self) -> CommitInfo:
        """Return the current branch name and latest commit identifier.

        Returns:
            CommitInfo for the checkout

        Raises:
            VcsUnavailable: If the path is not a repository, git cannot be
                invoked, or the repository has no commits yet
        """
        repo = self._open_repo()
        try:
            if repo.head.is_detached:
                branch = DETACHED_HEAD
                self.logger.warning(
                    "git_head_detached",
                    repo_path=str(self.config.repo_path),
                )
            else:
                branch = repo.active_branch.name
            commit = repo.head.commit.hexsha
        except ValueError as e:
            # GitPython raises ValueError when HEAD points at an unborn branch.
            self.logger.error(
                "git_repository_has_no_commits",
                repo_path=str(self.config.repo_path),
                error=str(e),
            )
            raise VcsUnavailable(
                f"Repository has no commits: {self.config.repo_path}"
            ) from e
        except GitCommandError as e:
            self.logger.error(
                "git_command_failed",
                repo_path=str(self.config.repo_path),
                error=str(e),
            )
            raise VcsUnavailable(f"git could not be invoked: {e}") from e
        finally:
            repo.close()

        self.logger.info(
            "git_checkout_inspected",
            branch=branch,
            commit=commit[:12],
        )
        return CommitInfo(branch=branch, commit=commit)
