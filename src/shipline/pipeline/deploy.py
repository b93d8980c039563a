"""Kubernetes deployment for Shipline.

Builds an ``apps/v1`` Deployment manifest for a freshly pushed image and
submits it to the cluster with the official kubernetes client. The cluster
connection comes from the default kubeconfig location.

Every deploy issues a create request; an existing Deployment of the same
name is not read, patched, or replaced, so the cluster answers 409 Conflict
and the deploy fails.

Example usage:
    >>> from shipline.config import KubernetesConfig
    >>> from shipline.pipeline.deploy import DeploymentApplier
    >>>
    >>> applier = DeploymentApplier(KubernetesConfig())
    >>> result = await applier.apply("reg.example.com/legal-app:prod-a1b2c3")
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Any

from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from pydantic import BaseModel, Field
from urllib3.exceptions import HTTPError as TransportError

from shipline.config import KubernetesConfig
from shipline.logging import get_logger

HTTP_CONFLICT = 409


class DeployStatus(str, Enum):
    """Status of a deployment request."""

    PENDING = "pending"
    CREATED = "created"
    FAILED = "failed"


class DeployResult(BaseModel):
    """Result of submitting a Deployment to the cluster.

    Attributes:
        success: Whether the cluster accepted the Deployment
        namespace: Namespace the Deployment was submitted to
        deployment_name: Name of the Deployment
        image_ref: Image the Deployment runs
        duration_seconds: Time spent on the API call
        error: Error message if the request failed, None otherwise
        status: Current deployment status
    """

    success: bool = Field(default=False, description="Deploy success flag")
    namespace: str = Field(description="Target namespace")
    deployment_name: str = Field(description="Deployment name")
    image_ref: str = Field(description="Deployed image reference")
    duration_seconds: float = Field(default=0.0, ge=0.0, description="Request duration")
    error: str | None = Field(default=None, description="Error message if failed")
    status: DeployStatus = Field(default=DeployStatus.PENDING, description="Deploy status")


def build_deployment_manifest(image_ref: str, config: KubernetesConfig) -> dict[str, Any]:
    """Build the Deployment manifest for an image.

    Args:
        image_ref: Fully qualified image reference the container runs
        config: Kubernetes configuration describing the Deployment shape

    Returns:
        Deployment manifest as a plain dict, ready for the API
    """
    labels = {"app": config.app_label}
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {
            "name": config.deployment_name,
            "namespace": config.namespace,
        },
        "spec": {
            "replicas": config.replicas,
            "selector": {"matchLabels": dict(labels)},
            "template": {
                "metadata": {"labels": dict(labels)},
                "spec": {
                    "containers": [
                        {
                            "name": config.container_name,
                            "image": image_ref,
                            "ports": [{"containerPort": config.container_port}],
                            "env": [
                                {"name": name, "value": value}
                                for name, value in config.env.items()
                            ],
                        }
                    ],
                },
            },
        },
    }


class DeploymentApplier:
    """Submits Deployment manifests to the cluster control plane.

    Attributes:
        config: Kubernetes configuration from PipelineConfig
        logger: Structured logger instance
    """

    def __init__(
        self, config: KubernetesConfig, api: k8s_client.AppsV1Api | None = None
    ) -> None:
        """Initialize DeploymentApplier.

        Args:
            config: Kubernetes configuration settings
            api: Optional pre-built AppsV1Api; when omitted the default
                kubeconfig is loaded on first use
        """
        self.config = config
        self.logger = get_logger(__name__)
        self._api: k8s_client.AppsV1Api | None = api

    def _get_api(self) -> k8s_client.AppsV1Api:
        """Get or create the AppsV1 API client.

        The default kubeconfig is tried first, then the in-cluster service
        account of a pod.

        Raises:
            ConfigException: If neither configuration is available
        """
        if self._api is None:
            try:
                k8s_config.load_kube_config()
            except ConfigException:
                k8s_config.load_incluster_config()
                self.logger.info("kubernetes_incluster_config_loaded")
            self._api = k8s_client.AppsV1Api()
            self.logger.info("kubernetes_client_configured")
        return self._api

    def _create_sync(self, manifest: dict[str, Any]) -> None:
        api = self._get_api()
        api.create_namespaced_deployment(namespace=self.config.namespace, body=manifest)

    async def apply(self, image_ref: str) -> DeployResult:
        """Create the Deployment for an image.

        Args:
            image_ref: Image reference produced by the build in this run

        Returns:
            DeployResult describing whether the cluster accepted it
        """
        start_time = time.monotonic()
        manifest = build_deployment_manifest(image_ref, self.config)

        self.logger.info(
            "deployment_create_started",
            namespace=self.config.namespace,
            deployment=self.config.deployment_name,
            image_ref=image_ref,
            replicas=self.config.replicas,
        )

        try:
            await asyncio.to_thread(self._create_sync, manifest)
        except ApiException as e:
            duration = time.monotonic() - start_time
            if e.status == HTTP_CONFLICT:
                error_msg = (
                    f"Deployment '{self.config.deployment_name}' already exists "
                    f"in namespace '{self.config.namespace}'"
                )
            else:
                error_msg = f"Kubernetes API error ({e.status}): {e.reason}"
            self.logger.error(
                "deployment_create_failed",
                namespace=self.config.namespace,
                deployment=self.config.deployment_name,
                status_code=e.status,
                error=error_msg,
            )
            return DeployResult(
                namespace=self.config.namespace,
                deployment_name=self.config.deployment_name,
                image_ref=image_ref,
                duration_seconds=duration,
                error=error_msg,
                status=DeployStatus.FAILED,
            )
        except (ConfigException, TransportError, OSError) as e:
            duration = time.monotonic() - start_time
            self.logger.error(
                "deployment_client_error",
                error=str(e),
                error_type=type(e).__name__,
            )
            return DeployResult(
                namespace=self.config.namespace,
                deployment_name=self.config.deployment_name,
                image_ref=image_ref,
                duration_seconds=duration,
                error=str(e),
                status=DeployStatus.FAILED,
            )

        duration = time.monotonic() - start_time
        self.logger.info(
            "deployment_created",
            namespace=self.config.namespace,
            deployment=self.config.deployment_name,
            duration_seconds=round(duration, 2),
        )
        return DeployResult(
            success=True,
            namespace=self.config.namespace,
            deployment_name=self.config.deployment_name,
            image_ref=image_ref,
            duration_seconds=duration,
            status=DeployStatus.CREATED,
        )
