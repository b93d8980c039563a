"""Pipeline error taxonomy.

Components report failures as result models; the controller raises one of
these when a stage fails, and the CLI maps it to the process exit code.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base exception for a failed pipeline run.

    Attributes:
        stage: Name of the stage that failed
        exit_code: Process exit code the CLI terminates with
    """

    stage: str = "pipeline"
    exit_code: int = 1

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class VcsUnavailable(PipelineError):
    """Raised when the checkout cannot be read as a git repository."""

    stage = "vcs"


class TestFailure(PipelineError):
    """Raised when the test command exits non-zero or cannot be started."""

    __test__ = False
    stage = "test"


class BuildFailure(PipelineError):
    """Raised when the image build fails."""

    stage = "build"


class PushFailure(PipelineError):
    """Raised when the image cannot be pushed to the registry."""

    stage = "push"


class DeployFailure(PipelineError):
    """Raised when the cluster rejects the deployment."""

    stage = "deploy"


class InvalidInvocation(PipelineError):
    """Raised when the CLI is invoked without an action."""

    stage = "cli"
