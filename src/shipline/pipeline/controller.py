"""Pipeline sequencing for Shipline.

The controller reads the checkout, then runs stages according to a fixed
policy:

    test                      -> tests
    deploy on production      -> tests -> build -> push -> deploy
    anything else             -> skip (success)

Stages run strictly one after another. The first failed stage raises the
matching ``PipelineError`` and no later stage starts. The controller never
exits the process; that is left to the CLI.

Example usage:
    >>> from shipline.config import load_config
    >>> from shipline.pipeline.controller import PipelineController
    >>>
    >>> controller = PipelineController(load_config())
    >>> report = await controller.run("deploy")
    >>> print(report.outcome, report.image_ref)
"""

from __future__ import annotations

import time
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from shipline.config import PipelineConfig
from shipline.errors import (
    BuildFailure,
    DeployFailure,
    PushFailure,
    TestFailure,
)
from shipline.logging import bind_run_context, get_logger
from shipline.pipeline.deploy import DeploymentApplier
from shipline.pipeline.docker_ops import DockerBuildClient, derive_tag, image_reference
from shipline.pipeline.git_ops import RepositoryInspector
from shipline.pipeline.registry import RegistryClient
from shipline.pipeline.test_runner import TestRunner

SKIP_MESSAGE = "Invalid action or not on production branch. Skipping deployment."


class PipelineAction(str, Enum):
    """Actions the pipeline recognises."""

    TEST = "test"
    DEPLOY = "deploy"


class RunOutcome(str, Enum):
    """Terminal state of a run that did not fail."""

    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"


class PipelineContext(BaseModel):
    """Identity of a single pipeline run. Immutable once created.

    Attributes:
        action: Action string as given on the command line
        branch: Checked-out branch name
        commit: Commit identifier being built
    """

    model_config = ConfigDict(frozen=True)

    action: str
    branch: str
    commit: str


class StageRecord(BaseModel):
    """Summary of one completed stage."""

    name: str
    success: bool
    duration_seconds: float = Field(default=0.0, ge=0.0)
    detail: str | None = None


class PipelineReport(BaseModel):
    """Summary of a run that succeeded or was skipped.

    Attributes:
        context: Run identity
        outcome: Whether stages ran or the run was skipped
        stages: Completed stages in execution order
        image_ref: Image pushed and deployed in this run, if any
    """

    context: PipelineContext
    outcome: RunOutcome
    stages: list[StageRecord] = Field(default_factory=list)
    image_ref: str | None = None


class PipelineController:
    """Sequences the pipeline stages for one run.

    Components default to instances built from ``config``; tests pass
    their own.

    Attributes:
        config: Root configuration for the run
        logger: Structured logger instance
    """

    def __init__(
        self,
        config: PipelineConfig,
        inspector: RepositoryInspector | None = None,
        test_runner: TestRunner | None = None,
        builder: DockerBuildClient | None = None,
        registry: RegistryClient | None = None,
        applier: DeploymentApplier | None = None,
    ) -> None:
        self.config = config
        self.logger = get_logger(__name__)
        self.inspector = inspector or RepositoryInspector(config.git)
        self.test_runner = test_runner or TestRunner(config.test, config.git.repo_path)
        self.builder = builder or DockerBuildClient(config.docker)
        self.registry = registry or RegistryClient(config.docker)
        self.applier = applier or DeploymentApplier(config.kubernetes)

    async def run(self, action: str) -> PipelineReport:
        """Run the pipeline for an action.

        Args:
            action: ``test``, ``deploy``, or any other string (skipped)

        Returns:
            PipelineReport for a successful or skipped run

        Raises:
            VcsUnavailable: If the checkout cannot be read
            TestFailure: If the test command fails
            BuildFailure: If the image build fails
            PushFailure: If the image push fails
            DeployFailure: If the cluster rejects the Deployment
        """
        commit_info = self.inspector.inspect()
        context = PipelineContext(
            action=action,
            branch=commit_info.branch,
            commit=commit_info.commit,
        )
        bind_run_context(action=action, branch=context.branch, commit=context.commit)

        self.logger.info("pipeline_started")
        stages: list[StageRecord] = []

        try:
            if action == PipelineAction.TEST.value:
                stages.append(await self._run_tests())
                return self._finish(context, RunOutcome.SUCCEEDED, stages)

            if (
                action == PipelineAction.DEPLOY.value
                and context.branch == self.config.git.production_branch
            ):
                stages.append(await self._run_tests())
                build_stage, image_ref = await self._build_image(context)
                stages.append(build_stage)
                stages.append(await self._push_image(image_ref))
                stages.append(await self._deploy(image_ref))
                return self._finish(context, RunOutcome.SUCCEEDED, stages, image_ref)

            self.logger.info(
                "pipeline_skipped",
                reason=SKIP_MESSAGE,
                production_branch=self.config.git.production_branch,
            )
            return self._finish(context, RunOutcome.SKIPPED, stages)
        finally:
            await self.builder.close()
            await self.registry.close()

    def _finish(
        self,
        context: PipelineContext,
        outcome: RunOutcome,
        stages: list[StageRecord],
        image_ref: str | None = None,
    ) -> PipelineReport:
        self.logger.info(
            "pipeline_finished",
            outcome=outcome.value,
            stages=[stage.name for stage in stages],
        )
        return PipelineReport(
            context=context,
            outcome=outcome,
            stages=stages,
            image_ref=image_ref,
        )

    async def _run_tests(self) -> StageRecord:
        result = await self.test_runner.run()
        if not result.passed:
            raise TestFailure(f"Unit tests failed: {result.error}")
        return StageRecord(
            name="test",
            success=True,
            duration_seconds=result.duration_seconds,
        )

    async def _build_image(self, context: PipelineContext) -> tuple[StageRecord, str]:
        docker_config = self.config.docker
        tag = derive_tag(
            context.branch,
            context.commit,
            production_branch=self.config.git.production_branch,
        )
        image_ref = image_reference(docker_config.registry, docker_config.image_name, tag)

        health = await self.builder.check_docker_health()
        if not health.available:
            raise BuildFailure(f"Docker daemon unavailable: {health.error}")

        # Relative build contexts resolve against the checkout, not the cwd.
        build_context = docker_config.build_context
        if not build_context.is_absolute():
            build_context = self.config.git.repo_path / build_context

        start_time = time.monotonic()
        result = await self.builder.build_image(build_context, docker_config.include, image_ref)
        if not result.success:
            raise BuildFailure(f"Docker build failed: {result.error}")
        return (
            StageRecord(
                name="build",
                success=True,
                duration_seconds=time.monotonic() - start_time,
                detail=result.image_id or None,
            ),
            result.image_ref,
        )

    async def _push_image(self, image_ref: str) -> StageRecord:
        result = await self.registry.push_image(image_ref)
        if not result.success:
            raise PushFailure(f"Docker push failed: {result.error}")
        return StageRecord(
            name="push",
            success=True,
            duration_seconds=result.duration_seconds,
            detail=result.digest,
        )

    async def _deploy(self, image_ref: str) -> StageRecord:
        result = await self.applier.apply(image_ref)
        if not result.success:
            raise DeployFailure(f"K8s deployment failed: {result.error}")
        return StageRecord(
            name="deploy",
            success=True,
            duration_seconds=result.duration_seconds,
            detail=f"{result.namespace}/{result.deployment_name}",
        )
