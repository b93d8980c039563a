"""Docker image building and tagging for Shipline.

This module provides an async interface to Docker image builds using docker-py.
Only an explicit allowlist of files from the build context is sent to the
daemon, and the build's progress stream is drained to completion before a
result is returned.

Image tags are derived from the branch and commit being built:
    production branch -> prod-<commit>
    any other branch  -> dev-<commit>

Example usage:
    >>> from shipline.config import DockerConfig
    >>> from shipline.pipeline.docker_ops import DockerBuildClient, derive_tag, image_reference
    >>>
    >>> config = DockerConfig(registry="reg.example.com")
    >>> client = DockerBuildClient(config)
    >>> ref = image_reference(config.registry, config.image_name, derive_tag("production", sha))
    >>> result = await client.build_image(config.build_context, config.include, ref)
    >>> if result.success:
    ...     print(f"Built image: {result.image_id}")
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable
from enum import Enum
from pathlib import Path
from typing import IO, Any

from docker.errors import APIError, BuildError, DockerException
from docker.utils.build import create_archive
from pydantic import BaseModel, Field

import docker
from shipline.config import DockerConfig
from shipline.logging import get_logger

PRODUCTION_TAG_PREFIX = "prod-"
DEVELOPMENT_TAG_PREFIX = "dev-"


def derive_tag(branch: str, commit: str, production_branch: str = "production") -> str:
    """Derive the image tag for a branch and commit.

    Args:
        branch: Branch being built
        commit: Commit identifier being built, used verbatim
        production_branch: Branch name that receives the production prefix

    Returns:
        ``prod-<commit>`` for the production branch, ``dev-<commit>`` otherwise
    """
    prefix = PRODUCTION_TAG_PREFIX if branch == production_branch else DEVELOPMENT_TAG_PREFIX
    return f"{prefix}{commit}"


def image_reference(registry: str, image_name: str, tag: str) -> str:
    """Compose a fully qualified image reference ``<registry>/<name>:<tag>``."""
    return f"{registry}/{image_name}:{tag}"


class BuildStatus(str, Enum):
    """Lifecycle of a single image build.

    Attributes:
        PENDING: Build has not started
        SUCCEEDED: Stream ended without an error event
        FAILED: Context, daemon, or Dockerfile step failed
    """

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class BuildResult(BaseModel):
    """Outcome of building one image reference.

    Attributes:
        image_ref: Fully qualified reference the image was tagged with
        image_id: Docker image ID reported by the daemon
        build_log: Collected build output lines
        duration_seconds: Wall-clock time spent building
        success: True when the image was built and tagged
        error: Failure reason, None on success
        status: Current build status
    """

    image_ref: str = Field(default="", description="Image reference")
    image_id: str = Field(default="", description="Docker image ID")
    build_log: list[str] = Field(default_factory=list, description="Build log lines")
    duration_seconds: float = Field(default=0.0, ge=0.0, description="Build duration")
    success: bool = Field(default=False, description="Build success flag")
    error: str | None = Field(default=None, description="Error message if failed")
    status: BuildStatus = Field(default=BuildStatus.PENDING, description="Build status")


class DockerHealth(BaseModel):
    """Result of the preflight daemon check.

    Attributes:
        available: True when the daemon answered a version request
        version: Docker engine version string
        api_version: Docker API version string
        error: Connection error when the daemon is unavailable
    """

    available: bool = Field(default=False, description="Daemon availability")
    version: str | None = Field(default=None, description="Docker version")
    api_version: str | None = Field(default=None, description="API version")
    error: str | None = Field(default=None, description="Health check error")


def collect_context_files(context: Path, include: Iterable[str]) -> list[str]:
    """Expand the allowlist into the relative file paths to archive.

    Directory entries contribute every file beneath them; file entries are
    taken as-is.

    Args:
        context: Build context root
        include: Allowlisted files and directories, relative to ``context``

    Returns:
        Sorted, de-duplicated POSIX paths relative to ``context``

    Raises:
        FileNotFoundError: If an allowlisted entry does not exist
    """
    files: set[str] = set()
    for entry in include:
        entry_path = context / entry.rstrip("/")
        if not entry_path.exists():
            raise FileNotFoundError(f"Build context entry not found: {entry}")
        if entry_path.is_dir():
            for child in entry_path.rglob("*"):
                if child.is_file():
                    files.add(child.relative_to(context).as_posix())
        else:
            files.add(entry_path.relative_to(context).as_posix())
    return sorted(files)


class DockerBuildClient:
    """Async Docker build client using docker-py.

    Attributes:
        config: Docker configuration from PipelineConfig
        logger: Structured logger instance
    """

    def __init__(
        self, config: DockerConfig, client: docker.DockerClient | None = None
    ) -> None:
        """Create a client; the daemon connection is opened lazily.

        Args:
            config: Docker configuration settings
            client: Optional pre-built docker-py client; when omitted the
                connection is made from the environment on first use
        """
        self.config = config
        self.logger = get_logger(__name__)
        self._client: docker.DockerClient | None = client

    def _get_client(self) -> docker.DockerClient:
        """Return the daemon client, connecting from the environment on first use.

        Raises:
            DockerException: If the daemon cannot be reached
        """
        if self._client is None:
            try:
                self._client = docker.DockerClient.from_env()
                self.logger.info("docker_client_connected")
            except DockerException as e:
                self.logger.error(
                    "docker_client_connection_failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise
        return self._client

    async def check_docker_health(self) -> DockerHealth:
        """Check Docker daemon reachability and version.

        Returns:
            DockerHealth; never raises
        """
        try:
            client = await asyncio.to_thread(self._get_client)
            version_info: dict[str, Any] = await asyncio.to_thread(client.version)
        except (DockerException, OSError) as e:
            self.logger.warning(
                "docker_health_check_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return DockerHealth(available=False, error=str(e))

        health = DockerHealth(
            available=True,
            version=str(version_info.get("Version", "")),
            api_version=str(version_info.get("ApiVersion", "")),
        )
        self.logger.info(
            "docker_health_check_passed",
            version=health.version,
            api_version=health.api_version,
        )
        return health

    def _build_sync(self, fileobj: IO[bytes], image_ref: str) -> tuple[str, list[str]]:
        """Run the build and drain its progress stream.

        Returns:
            Tuple of (image id, build log lines)

        Raises:
            BuildError: If the stream reports an error event
        """
        client = self._get_client()
        stream = client.api.build(
            fileobj=fileobj,
            custom_context=True,
            tag=image_ref,
            rm=True,
            decode=True,
        )

        image_id = ""
        build_log: list[str] = []
        for chunk in stream:
            if not isinstance(chunk, dict):
                continue
            if "error" in chunk:
                detail = chunk.get("errorDetail") or {}
                raise BuildError(detail.get("message") or chunk["error"], build_log)
            line = chunk.get("stream")
            if line and line.strip():
                build_log.append(line.strip())
                self.logger.debug("docker_build_output", line=line.strip())
            aux = chunk.get("aux")
            if isinstance(aux, dict) and aux.get("ID"):
                image_id = str(aux["ID"])
        return image_id, build_log

    async def build_image(
        self,
        context: Path,
        include: list[str],
        image_ref: str,
    ) -> BuildResult:
        """Build an image from the allowlisted part of a build context.

        Args:
            context: Build context root directory
            include: Files and directories to send to the daemon
            image_ref: Fully qualified reference to tag the image with

        Returns:
            BuildResult with image ID, logs, and status
        """
        start_time = time.monotonic()

        self.logger.info(
            "docker_build_started",
            context=str(context),
            include=include,
            image_ref=image_ref,
        )

        if not context.is_dir():
            self.logger.error("docker_build_context_not_found", context=str(context))
            return BuildResult(
                image_ref=image_ref,
                success=False,
                error=f"Build context path does not exist: {context}",
                status=BuildStatus.FAILED,
                duration_seconds=time.monotonic() - start_time,
            )

        try:
            files = collect_context_files(context, include)
        except FileNotFoundError as e:
            self.logger.error("docker_build_entry_not_found", error=str(e))
            return BuildResult(
                image_ref=image_ref,
                success=False,
                error=str(e),
                status=BuildStatus.FAILED,
                duration_seconds=time.monotonic() - start_time,
            )

        archive: IO[bytes] | None = None
        try:
            archive = create_archive(root=str(context), files=files)
            image_id, build_log = await asyncio.to_thread(self._build_sync, archive, image_ref)
        except (BuildError, APIError) as e:
            duration = time.monotonic() - start_time
            self.logger.error(
                "docker_build_failed",
                image_ref=image_ref,
                error=str(e),
                duration_seconds=round(duration, 2),
            )
            return BuildResult(
                image_ref=image_ref,
                duration_seconds=duration,
                success=False,
                error=str(e),
                status=BuildStatus.FAILED,
            )
        except (DockerException, OSError) as e:
            duration = time.monotonic() - start_time
            self.logger.error(
                "docker_build_client_error",
                image_ref=image_ref,
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=round(duration, 2),
            )
            return BuildResult(
                image_ref=image_ref,
                duration_seconds=duration,
                success=False,
                error=str(e),
                status=BuildStatus.FAILED,
            )
        finally:
            if archive is not None:
                archive.close()

        duration = time.monotonic() - start_time
        self.logger.info(
            "docker_build_succeeded",
            image_ref=image_ref,
            image_id=image_id[:20],
            duration_seconds=round(duration, 2),
            log_lines=len(build_log),
            context_files=len(files),
        )
        return BuildResult(
            image_ref=image_ref,
            image_id=image_id,
            build_log=build_log,
            duration_seconds=duration,
            success=True,
            status=BuildStatus.SUCCEEDED,
        )

    async def close(self) -> None:
        """Release the daemon connection, if one was opened.

        Idempotent.
        """
        if self._client is not None:
            try:
                await asyncio.to_thread(self._client.close)
                self.logger.info("docker_client_closed")
            except Exception as e:
                self.logger.warning(
                    "docker_client_close_error",
                    error=str(e),
                )
            finally:
                self._client = None
