"""Remote host access over ssh/scp, and the backup/upload/swap sequence."""

from collections.abc import Sequence
from pathlib import Path
import shlex
from typing import Protocol

import structlog

from deploy_cli.errors import TransportError
from deploy_cli.services import ServiceDefinition
from deploy_cli.shell import CommandError, CommandRunner

logger = structlog.get_logger(__name__)

DEFAULT_SSH_OPTIONS = ("-o", "BatchMode=yes", "-o", "ConnectTimeout=10")
REMOTE_TIMEOUT = 300


class RemoteHost(Protocol):
    def run(self, host: str, command: str) -> str:
        """Run a shell command on host and return its stdout."""
        ...

    def copy(self, local_path: Path, host: str, remote_path: str) -> None: ...


class SSHRemoteHost:
    """RemoteHost backed by the ssh and scp CLIs.

    Host aliases, users and keys come from the operator's ~/.ssh/config.
    """

    def __init__(
        self,
        runner: CommandRunner | None = None,
        ssh_options: Sequence[str] = DEFAULT_SSH_OPTIONS,
    ):
        self.runner = runner or CommandRunner(timeout=REMOTE_TIMEOUT)
        self.ssh_options = list(ssh_options)

    def run(self, host: str, command: str) -> str:
        result = self.runner.run(["ssh", *self.ssh_options, host, command])
        return result.stdout

    def copy(self, local_path: Path, host: str, remote_path: str) -> None:
        self.runner.run(["scp", *self.ssh_options, str(local_path), f"{host}:{remote_path}"])


class TransferManager:
    """Preserves the live binary and atomically installs the new one."""

    def __init__(self, remote: RemoteHost):
        self.remote = remote

    def _run(self, operation: str, service: ServiceDefinition, host: str, command: str) -> None:
        try:
            self.remote.run(host, command)
        except CommandError as e:
            logger.error(f"{operation}_failed", target_service=service.name, host=host, error=str(e))
            raise TransportError(
                f"{service.name}@{host}", f"{operation} failed: {e}", operation=operation
            ) from e

    def backup(self, service: ServiceDefinition, host: str) -> None:
        """Copy the live binary to `.prev`; a missing binary (first deploy) is fine."""
        live = shlex.quote(service.install_path)
        prev = shlex.quote(service.backup_path)
        self._run("backup", service, host, f"[ -f {live} ] && cp {live} {prev} || true")
        logger.info("backup_complete", target_service=service.name, host=host)

    def upload(self, service: ServiceDefinition, host: str, artifact: Path) -> None:
        try:
            self.remote.copy(artifact, host, service.staging_path)
        except CommandError as e:
            logger.error("upload_failed", target_service=service.name, host=host, error=str(e))
            raise TransportError(
                f"{service.name}@{host}", f"scp failed: {e}", operation="upload"
            ) from e
        logger.info("upload_complete", target_service=service.name, host=host)

    def swap(self, service: ServiceDefinition, host: str) -> None:
        """chmod the staged file and rename it over the live path."""
        live = shlex.quote(service.install_path)
        new = shlex.quote(service.staging_path)
        self._run("swap", service, host, f"chmod +x {new} && mv {new} {live}")
        logger.info("binary_swapped", target_service=service.name, host=host)

    def restore(self, service: ServiceDefinition, host: str) -> None:
        """Rename `.prev` back over the live path; fails when no backup exists."""
        live = shlex.quote(service.install_path)
        prev = shlex.quote(service.backup_path)
        self._run("restore", service, host, f"[ -f {prev} ] && mv {prev} {live}")
        logger.info("binary_restored", target_service=service.name, host=host)
