"""Cross-compilation of service binaries with the Go toolchain."""

from collections.abc import Mapping
import os
from pathlib import Path
import time
from typing import Protocol

import structlog

from deploy_cli.errors import BuildError
from deploy_cli.services import ServiceDefinition
from deploy_cli.shell import CommandError, CommandRunner
from deploy_cli.source_control import VersionStamp

logger = structlog.get_logger(__name__)

BUILD_TIMEOUT = 600


class Builder(Protocol):
    def build(self, service: ServiceDefinition, stamp: VersionStamp) -> Path: ...


class GoBuilder:
    """Builds `<project_root>/<source_dir>` into a single static binary."""

    def __init__(
        self,
        project_root: Path,
        runner: CommandRunner | None = None,
        base_env: Mapping[str, str] | None = None,
    ):
        self.project_root = project_root
        self.runner = runner or CommandRunner(timeout=BUILD_TIMEOUT)
        self.base_env = base_env

    def build(self, service: ServiceDefinition, stamp: VersionStamp) -> Path:
        """Build the service and return the artifact path.

        Raises:
            BuildError: On any toolchain failure or a missing artifact.
        """
        build_dir = self.project_root / service.source_dir
        output = build_dir / service.artifact_name
        env = dict(os.environ if self.base_env is None else self.base_env)
        env.update(GOOS=service.target_os, GOARCH=service.target_arch)
        argv = ["go", "build", "-ldflags", stamp.ldflags(), "-o", str(output), "."]

        logger.info(
            "build_start",
            target_service=service.name,
            goos=service.target_os,
            goarch=service.target_arch,
            commit=stamp.commit,
        )
        start = time.time()
        try:
            self.runner.run(argv, cwd=build_dir, env=env)
        except CommandError as e:
            logger.error("build_failed", target_service=service.name, exit_code=e.returncode)
            raise BuildError(service.name, f"build failed: {e}", output=e.output) from e

        if not output.is_file():
            raise BuildError(service.name, f"build output not found: {output}")

        size_mb = output.stat().st_size / (1024 * 1024)
        logger.info(
            "build_complete",
            target_service=service.name,
            artifact=str(output),
            size_mb=round(size_mb, 1),
            duration_sec=round(time.time() - start, 2),
        )
        return output
