"""Test command execution for Shipline.

Runs the project's test command as a child process that inherits the
console and environment, so the suite's output streams straight through.
Pass/fail comes from the exit status.
"""

from __future__ import annotations

import asyncio
import shlex
import time
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

from shipline.config import TestConfig
from shipline.logging import get_logger

# Conventional shell exit status for "command not found".
COMMAND_NOT_FOUND = 127


class TestStatus(str, Enum):
    """Outcome of a test command run."""

    __test__ = False

    PASSED = "passed"
    FAILED = "failed"
    NOT_STARTED = "not_started"


class TestRunResult(BaseModel):
    """Result of running the test command.

    Attributes:
        command: Argument vector that was executed
        passed: Whether the command exited with status 0
        return_code: Exit status of the command
        duration_seconds: Wall-clock duration of the run
        error: Error message if the run failed, None otherwise
        status: Outcome of the run
    """

    __test__ = False

    command: list[str] = Field(default_factory=list, description="Executed argv")
    passed: bool = Field(default=False, description="Test success flag")
    return_code: int | None = Field(default=None, description="Process exit status")
    duration_seconds: float = Field(default=0.0, ge=0.0, description="Run duration")
    error: str | None = Field(default=None, description="Error message if failed")
    status: TestStatus = Field(default=TestStatus.NOT_STARTED, description="Run status")


class TestRunner:
    """Runs the configured test command in a working directory.

    Attributes:
        config: Test configuration from PipelineConfig
        workdir: Directory the command runs in
        logger: Structured logger instance
    """

    __test__ = False

    def __init__(self, config: TestConfig, workdir: Path) -> None:
        self.config = config
        self.workdir = workdir
        self.logger = get_logger(__name__)

    async def run(self) -> TestRunResult:
        """Run the test command and wait for it to exit.

        stdout and stderr are inherited rather than piped. There is no
        timeout: a hanging suite hangs the pipeline.

        Returns:
            TestRunResult with the exit status and timing
        """
        cmd_parts = shlex.split(self.config.command)
        start_time = time.monotonic()

        self.logger.info(
            "tests_started",
            command=cmd_parts,
            workdir=str(self.workdir),
        )

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd_parts,
                cwd=str(self.workdir),
            )
            return_code = await process.wait()
        except FileNotFoundError:
            duration = time.monotonic() - start_time
            self.logger.error(
                "test_command_not_found",
                command=cmd_parts,
            )
            return TestRunResult(
                command=cmd_parts,
                passed=False,
                return_code=COMMAND_NOT_FOUND,
                duration_seconds=duration,
                error=f"Test command not found: {cmd_parts[0]}",
                status=TestStatus.FAILED,
            )
        except OSError as e:
            duration = time.monotonic() - start_time
            self.logger.error(
                "test_command_os_error",
                command=cmd_parts,
                error=str(e),
            )
            return TestRunResult(
                command=cmd_parts,
                passed=False,
                duration_seconds=duration,
                error=f"Test command could not be started: {e}",
                status=TestStatus.FAILED,
            )

        duration = time.monotonic() - start_time
        passed = return_code == 0

        if passed:
            self.logger.info(
                "tests_passed",
                duration_seconds=round(duration, 2),
            )
            return TestRunResult(
                command=cmd_parts,
                passed=True,
                return_code=return_code,
                duration_seconds=duration,
                status=TestStatus.PASSED,
            )

        self.logger.error(
            "tests_failed",
            return_code=return_code,
            duration_seconds=round(duration, 2),
        )
        return TestRunResult(
            command=cmd_parts,
            passed=False,
            return_code=return_code,
            duration_seconds=duration,
            error=f"Command failed with exit code {return_code}",
            status=TestStatus.FAILED,
        )
