"""Configuration management for Shipline.

This module defines the configuration schema using Pydantic settings,
supporting TOML files, environment variables, and programmatic overrides.

Configuration loading priority (highest to lowest):
1. Programmatic overrides (passed to PipelineConfig constructor)
2. Environment variables (SHIPLINE_* prefix, plus the CI variables below)
3. TOML configuration file
4. Default values defined in this module

The registry and cluster settings also honour the plain variables CI tools
already export:
    DOCKER_REGISTRY, DOCKER_USERNAME, DOCKER_PASSWORD, K8S_NAMESPACE

Example TOML configuration:
    [docker]
    image_name = "legal-app"
    include = ["Dockerfile", "app/"]

    [kubernetes]
    replicas = 5
"""

from __future__ import annotations

import shlex
from pathlib import Path
from typing import Any

import tomli
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Files and directories sent to the Docker daemon for a Rails application.
DEFAULT_BUILD_INCLUDE = [
    "Dockerfile",
    "Gemfile",
    "Gemfile.lock",
    "app/",
    "config/",
    "db/",
    "lib/",
]


class DockerConfig(BaseSettings):
    """Image build and registry configuration.

    Attributes:
        registry: Registry host the image is tagged for and pushed to
        username: Registry username
        password: Registry password or access token
        image_name: Repository name of the image within the registry
        build_context: Root directory of the build context
        include: Explicit allowlist of files/directories sent to the daemon
    """

    model_config = SettingsConfigDict(
        env_prefix="SHIPLINE_DOCKER__",
        extra="forbid",
        populate_by_name=True,
    )

    registry: str = Field(
        default="your-registry.com",
        validation_alias="DOCKER_REGISTRY",
    )
    username: str | None = Field(
        default=None,
        validation_alias="DOCKER_USERNAME",
    )
    password: str | None = Field(
        default=None,
        validation_alias="DOCKER_PASSWORD",
    )
    image_name: str = Field(default="legal-app")
    build_context: Path = Field(default=Path("."))
    include: list[str] = Field(default_factory=lambda: list(DEFAULT_BUILD_INCLUDE))

    @field_validator("include")
    @classmethod
    def validate_include(cls, v: list[str]) -> list[str]:
        """Reject an empty allowlist; the daemon needs at least a Dockerfile."""
        if not v:
            raise ValueError("Build context allowlist must not be empty")
        return v


class KubernetesConfig(BaseSettings):
    """Cluster deployment configuration.

    The cluster connection itself always comes from the default kubeconfig
    location; only the deployment shape is configurable here.

    Attributes:
        namespace: Namespace the Deployment is created in
        deployment_name: Name of the Deployment object
        container_name: Name of the single application container
        app_label: Value of the ``app`` label used by selector and template
        replicas: Desired replica count
        container_port: Port exposed by the application container
        env: Environment variables set on the container
    """

    model_config = SettingsConfigDict(
        env_prefix="SHIPLINE_KUBERNETES__",
        extra="forbid",
        populate_by_name=True,
    )

    namespace: str = Field(
        default="default",
        validation_alias="K8S_NAMESPACE",
    )
    deployment_name: str = Field(default="legal-app-deployment")
    container_name: str = Field(default="legal-app")
    app_label: str = Field(default="legal-app")
    replicas: int = Field(default=3, ge=1, le=100)
    container_port: int = Field(default=3000, ge=1, le=65535)
    env: dict[str, str] = Field(default_factory=lambda: {"RAILS_ENV": "production"})


class TestConfig(BaseSettings):
    """Test runner configuration.

    Attributes:
        command: Shell-style command line that runs the project's test suite
    """

    __test__ = False

    model_config = SettingsConfigDict(
        env_prefix="SHIPLINE_TEST__",
        extra="forbid",
    )

    command: str = Field(default="bundle exec rails test")

    @field_validator("command")
    @classmethod
    def validate_command(cls, v: str) -> str:
        """Validate the command is not blank and splits into arguments."""
        if not v.strip():
            raise ValueError("Test command must not be empty")
        try:
            shlex.split(v)
        except ValueError as e:
            raise ValueError(f"Test command cannot be parsed: {e}") from e
        return v


class GitConfig(BaseSettings):
    """Version control configuration.

    Attributes:
        repo_path: Path to the checkout the pipeline runs against
        production_branch: Branch whose deploys are allowed to ship
    """

    model_config = SettingsConfigDict(
        env_prefix="SHIPLINE_GIT__",
        extra="forbid",
    )

    repo_path: Path = Field(default=Path("."))
    production_branch: str = Field(default="production")


class LoggingConfig(BaseSettings):
    """Logging configuration.

    Attributes:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Log format (json or console)
        file: Optional log file path (None for stdout only)
        rotation_size_mb: Log file rotation size in megabytes
        retention_count: Number of rotated log files to keep
    """

    model_config = SettingsConfigDict(
        env_prefix="SHIPLINE_LOGGING__",
        extra="forbid",
    )

    level: str = Field(default="INFO")
    format: str = Field(default="console")
    file: Path | None = Field(default=None)
    rotation_size_mb: int = Field(default=50, ge=1, le=1000)
    retention_count: int = Field(default=10, ge=1, le=100)

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level is recognized."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format is recognized."""
        valid_formats = {"json", "console"}
        v_lower = v.lower()
        if v_lower not in valid_formats:
            raise ValueError(f"Invalid log format: {v}. Must be one of {valid_formats}")
        return v_lower


class PipelineConfig(BaseSettings):
    """Root configuration for Shipline.

    Aggregates all section configurations. Each section reads its own
    environment variables:
        SHIPLINE_<SECTION>__<KEY>=value

    Example:
        SHIPLINE_TEST__COMMAND="bin/rails test"
        SHIPLINE_KUBERNETES__REPLICAS=5
    """

    model_config = SettingsConfigDict(
        env_prefix="SHIPLINE_",
        extra="forbid",
    )

    docker: DockerConfig = Field(default_factory=DockerConfig)
    kubernetes: KubernetesConfig = Field(default_factory=KubernetesConfig)
    test: TestConfig = Field(default_factory=TestConfig)
    git: GitConfig = Field(default_factory=GitConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: Path | None = None) -> PipelineConfig:
    """Load configuration from TOML file with environment variable overrides.

    Configuration search order (first found is used):
    1. config_path if explicitly provided
    2. ./shipline.toml (current directory)
    3. ~/.config/shipline/config.toml (user config directory)

    Args:
        config_path: Explicit path to TOML config file. If None, searches
                    default locations.

    Returns:
        PipelineConfig: Fully resolved configuration instance.

    Raises:
        FileNotFoundError: If config_path is explicitly provided but doesn't exist.
        ValueError: If TOML file contains invalid configuration.
    """
    toml_data: dict[str, Any] = {}

    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        selected_path: Path | None = config_path
    else:
        search_paths = [
            Path.cwd() / "shipline.toml",
            Path.home() / ".config" / "shipline" / "config.toml",
        ]
        selected_path = None
        for path in search_paths:
            if path.exists():
                selected_path = path
                break

    if selected_path is not None:
        with open(selected_path, "rb") as f:
            toml_data = tomli.load(f)

    try:
        return PipelineConfig(**_merge_sections(toml_data))
    except Exception as e:
        if selected_path:
            raise ValueError(f"Invalid configuration in {selected_path}: {e}") from e
        else:
            raise ValueError(f"Invalid configuration: {e}") from e


def _merge_sections(toml_data: dict[str, Any]) -> dict[str, Any]:
    """Build each TOML section with environment values layered on top.

    A nested settings model validated from a plain dict never consults the
    environment, so values the environment provides for a section are read
    separately and win over the TOML values key by key.
    """
    sections: dict[str, Any] = {}
    for name, value in toml_data.items():
        field = PipelineConfig.model_fields.get(name)
        if field is None or not isinstance(value, dict):
            # Let PipelineConfig report the unknown key or bad type.
            sections[name] = value
            continue
        section_cls = field.annotation
        env_values = section_cls().model_dump(exclude_unset=True)
        sections[name] = section_cls(**{**value, **env_values})
    return sections
