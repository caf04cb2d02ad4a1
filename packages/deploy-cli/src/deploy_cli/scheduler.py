"""Nomad cluster scheduler access through the nomad CLI."""

import os
from pathlib import Path
from typing import Protocol

import structlog

from deploy_cli.shell import CommandRunner

logger = structlog.get_logger(__name__)

DEFAULT_NOMAD_ADDR = "http://dev02:4646"
RUNNING = "running"


class Scheduler(Protocol):
    def submit(self, job_spec_path: Path) -> None: ...

    def job_status(self, job_name: str) -> str | None:
        """Short-form job status (e.g. "running", "pending", "dead")."""
        ...


def parse_job_status(output: str) -> str | None:
    """Extract the `Status = ...` field from `nomad job status -short` output."""
    for line in output.splitlines():
        key, sep, value = line.partition("=")
        if sep and key.strip().lower() == "status":
            return value.strip().lower() or None
    return None


class NomadScheduler:
    def __init__(self, address: str = DEFAULT_NOMAD_ADDR, runner: CommandRunner | None = None):
        self.address = address
        self.runner = runner or CommandRunner(timeout=120)

    def _env(self) -> dict[str, str]:
        return {**os.environ, "NOMAD_ADDR": self.address}

    def submit(self, job_spec_path: Path) -> None:
        """Enqueue the job spec; returns once `nomad job run -detach` exits."""
        self.runner.run(["nomad", "job", "run", "-detach", str(job_spec_path)], env=self._env())
        logger.info("job_submitted", job_spec=str(job_spec_path), nomad_addr=self.address)

    def job_status(self, job_name: str) -> str | None:
        result = self.runner.run(["nomad", "job", "status", "-short", job_name], env=self._env())
        return parse_job_status(result.stdout)
