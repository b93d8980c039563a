"""Docker registry push operations for Shipline.

This module pushes a built image to its registry with docker-py, passing the
registry credentials with the push request and draining the push event
stream to completion. Pushes are attempted exactly once.

Example usage:
    >>> from shipline.config import DockerConfig
    >>> from shipline.pipeline.registry import RegistryClient
    >>>
    >>> config = DockerConfig(registry="reg.example.com", username="ci", password="secret")
    >>> client = RegistryClient(config)
    >>> result = await client.push_image("reg.example.com/legal-app:prod-a1b2c3")
    >>> if result.success:
    ...     print(f"Pushed with digest: {result.digest}")
"""

from __future__ import annotations

import asyncio
import re
import time
from enum import Enum
from typing import Any

from docker.errors import APIError, DockerException
from pydantic import BaseModel, Field

import docker
from shipline.config import DockerConfig
from shipline.logging import get_logger

# Older daemons only report the digest inside the final status line.
_DIGEST_PATTERN = re.compile(r"digest:\s*(sha256:[a-f0-9]{64})")


class PushStatus(str, Enum):
    """Lifecycle of a single push.

    Attributes:
        PENDING: Push has not started
        SUCCEEDED: Every layer and the manifest were accepted
        FAILED: Registry or daemon rejected the push
    """

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class RegistryAuth(BaseModel):
    """Credentials sent along with a push.

    Attributes:
        registry: Registry address the credentials are for
        username: Registry username
        password: Registry password or access token
    """

    registry: str = Field(description="Registry URL")
    username: str = Field(description="Registry username")
    password: str = Field(default="", description="Registry password or token")

    @classmethod
    def from_config(cls, config: DockerConfig) -> RegistryAuth | None:
        """Build credentials from configuration, or None if no username is set."""
        if not config.username:
            return None
        return cls(
            registry=config.registry,
            username=config.username,
            password=config.password or "",
        )

    def to_auth_config(self) -> dict[str, str]:
        """Render the credentials in the shape docker-py's push expects."""
        return {
            "username": self.username,
            "password": self.password,
            "serveraddress": self.registry,
        }


class PushResult(BaseModel):
    """Outcome of pushing one image reference.

    Attributes:
        success: True when the stream ended without an error event
        image_ref: Full image reference that was pushed
        digest: Manifest digest reported by the registry, if any
        push_log: Status lines from the push stream
        duration_seconds: Wall-clock time spent pushing
        error: Failure reason, None on success
        status: Final push status
    """

    success: bool = Field(default=False, description="Push success flag")
    image_ref: str = Field(description="Image reference pushed")
    digest: str | None = Field(default=None, description="Image digest from registry")
    push_log: list[str] = Field(default_factory=list, description="Push log lines")
    duration_seconds: float = Field(default=0.0, ge=0.0, description="Push duration")
    error: str | None = Field(default=None, description="Error message if failed")
    status: PushStatus = Field(default=PushStatus.PENDING, description="Push status")


def split_image_reference(image_ref: str) -> tuple[str, str]:
    """Split ``repo:tag`` into its repository and tag parts.

    The split is on the last colon after the last slash, so registry ports
    (``host:5000/app:tag``) stay with the repository.
    """
    repository, sep, tag = image_ref.rpartition(":")
    if not sep or "/" in tag:
        return image_ref, "latest"
    return repository, tag


class RegistryClient:
    """Async Docker registry client using docker-py.

    Attributes:
        config: Docker configuration from PipelineConfig
        logger: Structured logger instance
    """

    def __init__(
        self,
        config: DockerConfig,
        auth: RegistryAuth | None = None,
        client: docker.DockerClient | None = None,
    ) -> None:
        """Create a client; no daemon connection is made until the first push.

        Args:
            config: Docker configuration settings
            auth: Credentials to push with; defaults to those in ``config``
            client: Optional pre-built docker-py client
        """
        self.config = config
        self.logger = get_logger(__name__)
        self._client: docker.DockerClient | None = client
        self._auth: RegistryAuth | None = auth if auth is not None else RegistryAuth.from_config(config)

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

    def _push_sync(self, repository: str, tag: str) -> tuple[str | None, list[str]]:
        """Push and drain the event stream.

        Returns:
            Tuple of (digest or None, push log lines)

        Raises:
            APIError: If the stream reports an error event
        """
        client = self._get_client()
        push_kwargs: dict[str, Any] = {
            "repository": repository,
            "tag": tag,
            "stream": True,
            "decode": True,
        }
        if self._auth is not None:
            push_kwargs["auth_config"] = self._auth.to_auth_config()

        push_log: list[str] = []
        digest: str | None = None
        for log_entry in client.images.push(**push_kwargs):
            if not isinstance(log_entry, dict):
                continue

            if "error" in log_entry:
                error_msg = log_entry["error"]
                push_log.append(f"ERROR: {error_msg}")
                raise APIError(error_msg)

            status_msg = log_entry.get("status", "")
            progress_msg = log_entry.get("progress", "")
            if status_msg:
                push_log.append(f"{status_msg} {progress_msg}".strip())

            aux = log_entry.get("aux")
            if isinstance(aux, dict):
                digest = aux.get("Digest") or aux.get("digest") or digest
            elif status_msg:
                match = _DIGEST_PATTERN.search(status_msg)
                if match:
                    digest = match.group(1)

        return digest, push_log

    async def push_image(self, image_ref: str) -> PushResult:
        """Push an already-built image reference once.

        Args:
            image_ref: Full image reference to push (e.g. 'reg.example.com/app:prod-abc')

        Returns:
            PushResult; failures are reported here rather than raised
        """
        start_time = time.monotonic()
        repository, tag = split_image_reference(image_ref)

        if self._auth is None:
            self.logger.warning(
                "no_registry_auth_provided",
                registry=self.config.registry,
            )

        self.logger.info(
            "docker_push_started",
            image_ref=image_ref,
            registry=self._auth.registry if self._auth else self.config.registry,
        )

        try:
            digest, push_log = await asyncio.to_thread(self._push_sync, repository, tag)
        except APIError as e:
            duration = time.monotonic() - start_time
            self.logger.error(
                "docker_push_api_error",
                image_ref=image_ref,
                error=str(e),
                status_code=e.status_code,
                duration_seconds=round(duration, 2),
            )
            return PushResult(
                success=False,
                image_ref=image_ref,
                duration_seconds=duration,
                error=str(e),
                status=PushStatus.FAILED,
            )
        except (DockerException, OSError) as e:
            duration = time.monotonic() - start_time
            self.logger.error(
                "docker_push_error",
                image_ref=image_ref,
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=round(duration, 2),
            )
            return PushResult(
                success=False,
                image_ref=image_ref,
                duration_seconds=duration,
                error=str(e),
                status=PushStatus.FAILED,
            )

        duration = time.monotonic() - start_time
        self.logger.info(
            "docker_push_succeeded",
            image_ref=image_ref,
            digest=digest,
            duration_seconds=round(duration, 2),
            log_lines=len(push_log),
        )
        return PushResult(
            success=True,
            image_ref=image_ref,
            digest=digest,
            push_log=push_log,
            duration_seconds=duration,
            status=PushStatus.SUCCEEDED,
        )

    async def close(self) -> None:
        """Release the daemon connection, if one was opened.

        Idempotent.
        """
        if self._client is not None:
            try:
                await asyncio.to_thread(self._client.close)
                self.logger.info("registry_client_closed")
            except Exception as e:
                self.logger.warning(
                    "registry_client_close_error",
                    error=str(e),
                )
            finally:
                self._client = None
