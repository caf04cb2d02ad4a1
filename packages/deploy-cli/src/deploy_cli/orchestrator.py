"""Fleet orchestration: Build -> Transfer -> Activate -> Verify, per service.

The pipeline is strictly sequential. A stage failure aborts the service; a
service failure aborts the fleet run.
"""

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
import os
import uuid

import structlog

from deploy_cli.activation import ActivationBackend, select_backend
from deploy_cli.builder import Builder
from deploy_cli.errors import DeployError, FleetDeployError, VerificationError
from deploy_cli.remote import TransferManager
from deploy_cli.rollback import RollbackController
from deploy_cli.services import (
    DEPLOY_ORDER,
    SERVICES,
    ActivationKind,
    ServiceDefinition,
    get_service,
)
from deploy_cli.shell import CommandError
from deploy_cli.source_control import UNKNOWN_COMMIT, SourceControl, stamp_version
from shared.logging_config import bind_context, unbind_context

logger = structlog.get_logger(__name__)

STAGES = 4


@dataclass
class DeploymentAttempt:
    """Progress of one single-service deploy. Never persisted."""

    service: str
    host: str = ""
    expected_commit: str = UNKNOWN_COMMIT
    backup_taken: bool = False
    activated: bool = False
    verified: bool = False
    rolled_back: bool = False


@dataclass(frozen=True)
class ServiceStatus:
    service: str
    host: str
    manager: str
    status: str


def _silent(message: str) -> None:
    pass


class Orchestrator:
    def __init__(
        self,
        source_control: SourceControl,
        builder: Builder,
        transfer: TransferManager,
        backends: Mapping[ActivationKind, ActivationBackend],
        rollback: RollbackController,
        services: Mapping[str, ServiceDefinition] = SERVICES,
        order: Sequence[str] = DEPLOY_ORDER,
        environ: Mapping[str, str] | None = None,
        progress: Callable[[str], None] = _silent,
    ):
        self.source_control = source_control
        self.builder = builder
        self.transfer = transfer
        self.backends = backends
        self.rollback = rollback
        self.services = services
        self.order = tuple(order)
        self.environ = os.environ if environ is None else environ
        self.progress = progress

    def get_service(self, name: str) -> ServiceDefinition:
        return get_service(name, self.services)

    def deploy(self, name: str) -> DeploymentAttempt:
        """Deploy one service end to end.

        Raises:
            DeployError: The first stage failure, with `attempt` attached.
        """
        service = self.get_service(name)
        host = service.resolve_host(self.environ)
        backend = select_backend(service, self.backends)
        attempt = DeploymentAttempt(service=service.name, host=host)

        bind_context(deploy_id=uuid.uuid4().hex[:12], target_service=service.name)
        try:
            self._run_pipeline(service, host, backend, attempt)
        except DeployError as e:
            e.attempt = attempt
            raise
        finally:
            unbind_context("deploy_id", "target_service")
        return attempt

    def _run_pipeline(
        self,
        service: ServiceDefinition,
        host: str,
        backend: ActivationBackend,
        attempt: DeploymentAttempt,
    ) -> None:
        self.progress(f"=== Deploying {service.display_name} ({service.manager}) ===")
        logger.info("deploy_start", host=host, manager=service.manager)

        self.progress(
            f"[1/{STAGES}] Building {service.display_name} "
            f"({service.target_os}/{service.target_arch})..."
        )
        stamp = stamp_version(self.source_control)
        attempt.expected_commit = stamp.commit
        artifact = self.builder.build(service, stamp)

        self.progress(f"[2/{STAGES}] Backing up and uploading to {host}:{service.install_path}...")
        self.transfer.backup(service, host)
        attempt.backup_taken = True
        self.transfer.upload(service, host, artifact)
        self.transfer.swap(service, host)

        self.progress(f"[3/{STAGES}] Activating {service.display_name} via {service.manager}...")
        backend.activate(service, host)
        attempt.activated = True

        self.progress(
            f"[4/{STAGES}] Waiting for {service.display_name} to be healthy "
            f"(commit {stamp.commit})..."
        )
        try:
            backend.verify(service, host, stamp.commit)
        except VerificationError as e:
            if not backend.supports_rollback:
                logger.error("verification_failed", host=host, error=str(e), rollback=False)
                raise
            self.progress("  Verification failed, rolling back...")
            rolled_back = self.rollback.rollback(service, host, e)
            attempt.rolled_back = True
            raise rolled_back from e

        attempt.verified = True
        logger.info("deploy_complete", host=host, commit=stamp.commit)
        self.progress(f"=== {service.display_name} deployed successfully ===")

    def deploy_all(self) -> list[DeploymentAttempt]:
        """Deploy every service in dependency order, stopping at the first failure.

        Raises:
            FleetDeployError: Names the failing service and those already deployed.
        """
        attempts: list[DeploymentAttempt] = []
        for name in self.order:
            try:
                attempts.append(self.deploy(name))
            except DeployError as e:
                completed = [attempt.service for attempt in attempts]
                logger.error("fleet_deploy_aborted", failed=name, completed=completed)
                raise FleetDeployError(name, e, completed) from e
        logger.info("fleet_deploy_complete", services=list(self.order))
        self.progress("=== All services deployed ===")
        return attempts

    def status(self) -> list[ServiceStatus]:
        """One row per known service; a failing probe renders as unavailable."""
        rows = []
        for name in self.order:
            service = self.get_service(name)
            host = service.resolve_host(self.environ)
            backend = select_backend(service, self.backends)
            try:
                status = backend.status(service, host)
            except (CommandError, DeployError) as e:
                logger.warning("status_probe_failed", target_service=name, host=host, error=str(e))
                status = backend.unavailable_status
            rows.append(ServiceStatus(service.display_name, host, service.manager, status))
        return rows
