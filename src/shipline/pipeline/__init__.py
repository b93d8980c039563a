"""Pipeline stages for Shipline.

This package implements read-only git inspection, test execution, Docker
image build and push, Kubernetes deployment, and the controller that
sequences them.
"""

from __future__ import annotations

from shipline.pipeline.controller import (
    PipelineAction,
    PipelineContext,
    PipelineController,
    PipelineReport,
    RunOutcome,
    StageRecord,
)
from shipline.pipeline.deploy import (
    DeploymentApplier,
    DeployResult,
    DeployStatus,
    build_deployment_manifest,
)
from shipline.pipeline.docker_ops import (
    BuildResult,
    BuildStatus,
    DockerBuildClient,
    DockerHealth,
    collect_context_files,
    derive_tag,
    image_reference,
)
from shipline.pipeline.git_ops import CommitInfo, RepositoryInspector
from shipline.pipeline.registry import (
    PushResult,
    PushStatus,
    RegistryAuth,
    RegistryClient,
)
from shipline.pipeline.test_runner import TestRunner, TestRunResult, TestStatus

__all__ = [
    # Controller
    "PipelineAction",
    "PipelineContext",
    "PipelineController",
    "PipelineReport",
    "RunOutcome",
    "StageRecord",
    # Version control
    "CommitInfo",
    "RepositoryInspector",
    # Tests
    "TestRunner",
    "TestRunResult",
    "TestStatus",
    # Docker build
    "BuildResult",
    "BuildStatus",
    "DockerBuildClient",
    "DockerHealth",
    "collect_context_files",
    "derive_tag",
    "image_reference",
    # Registry operations
    "PushResult",
    "PushStatus",
    "RegistryAuth",
    "RegistryClient",
    # Kubernetes deployment
    "DeploymentApplier",
    "DeployResult",
    "DeployStatus",
    "build_deployment_manifest",
]
