"""Activation backends: bring a freshly installed binary into service.

A service's activation variant decides its backend. The native backend
restarts through the host's process supervisor and supports rollback; the
scheduled backend submits a job to Nomad and leaves lifecycle to the scheduler.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
import shlex
from typing import ClassVar, Protocol

import structlog

from deploy_cli.errors import ActivationError, ConfigurationError
from deploy_cli.health import NATIVE_TIMEOUT, SCHEDULED_TIMEOUT, HealthVerifier
from deploy_cli.remote import RemoteHost
from deploy_cli.scheduler import Scheduler
from deploy_cli.services import (
    ActivationKind,
    NativeActivation,
    ProcessManager,
    ScheduledActivation,
    ServiceDefinition,
)
from deploy_cli.shell import CommandError

logger = structlog.get_logger(__name__)


class ActivationBackend(Protocol):
    kind: ClassVar[ActivationKind]
    supports_rollback: ClassVar[bool]
    unavailable_status: ClassVar[str]

    def activate(self, service: ServiceDefinition, host: str) -> None: ...

    def verify(self, service: ServiceDefinition, host: str, expected_commit: str) -> None: ...

    def status(self, service: ServiceDefinition, host: str) -> str:
        """Current status string. Raises CommandError when the probe fails."""
        ...


def restart_command(activation: NativeActivation) -> str:
    unit = shlex.quote(activation.unit_name)
    if activation.process_manager is ProcessManager.LAUNCHD:
        return f"sudo launchctl kickstart -k {unit}"
    return f"sudo systemctl restart {unit}"


def status_command(activation: NativeActivation) -> str:
    unit = shlex.quote(activation.unit_name)
    if activation.process_manager is ProcessManager.LAUNCHD:
        return f"sudo launchctl print {unit} 2>/dev/null | grep 'state' | awk '{{print $NF}}'"
    return f"systemctl is-active {unit} 2>/dev/null"


def _native(service: ServiceDefinition) -> NativeActivation:
    if not isinstance(service.activation, NativeActivation):
        raise ConfigurationError(service.name, "not a natively supervised service")
    return service.activation


def _scheduled(service: ServiceDefinition) -> ScheduledActivation:
    if not isinstance(service.activation, ScheduledActivation):
        raise ConfigurationError(service.name, "not a scheduler-managed service")
    return service.activation


@dataclass
class NativeBackend:
    """Synchronous restart over ssh; verified via /health and /version."""

    remote: RemoteHost
    verifier: HealthVerifier
    timeout: float = NATIVE_TIMEOUT

    kind: ClassVar[ActivationKind] = ActivationKind.NATIVE
    supports_rollback: ClassVar[bool] = True
    unavailable_status: ClassVar[str] = "not running"

    def activate(self, service: ServiceDefinition, host: str) -> None:
        activation = _native(service)
        logger.info(
            "activation_start",
            target_service=service.name,
            host=host,
            manager=activation.manager,
        )
        try:
            self.remote.run(host, restart_command(activation))
        except CommandError as e:
            raise ActivationError(
                f"{service.name}@{host}", f"restart via {activation.manager} failed: {e}"
            ) from e
        logger.info("service_restarted", target_service=service.name, host=host)

    def verify(self, service: ServiceDefinition, host: str, expected_commit: str) -> None:
        self.verifier.wait_for_healthy(service, host, expected_commit, self.timeout)

    def status(self, service: ServiceDefinition, host: str) -> str:
        output = self.remote.run(host, status_command(_native(service))).strip()
        return output or self.unavailable_status


@dataclass
class ScheduledBackend:
    """Declarative job submission; verified via the scheduler's job status."""

    scheduler: Scheduler
    verifier: HealthVerifier
    project_root: Path
    timeout: float = SCHEDULED_TIMEOUT

    kind: ClassVar[ActivationKind] = ActivationKind.SCHEDULED
    supports_rollback: ClassVar[bool] = False
    unavailable_status: ClassVar[str] = "not found"

    def activate(self, service: ServiceDefinition, host: str) -> None:
        activation = _scheduled(service)
        job_spec = self.project_root / activation.job_spec_path
        logger.info(
            "activation_start",
            target_service=service.name,
            host=host,
            manager=activation.manager,
            job=activation.job_name,
        )
        try:
            self.scheduler.submit(job_spec)
        except CommandError as e:
            raise ActivationError(
                f"{service.name}@{host}", f"job submission {activation.job_name} failed: {e}"
            ) from e

    def verify(self, service: ServiceDefinition, host: str, expected_commit: str) -> None:
        job_name = _scheduled(service).job_name
        self.verifier.wait_for_job_running(service, self.scheduler, job_name, self.timeout)

    def status(self, service: ServiceDefinition, host: str) -> str:
        return self.scheduler.job_status(_scheduled(service).job_name) or self.unavailable_status


def select_backend(
    service: ServiceDefinition, backends: Mapping[ActivationKind, ActivationBackend]
) -> ActivationBackend:
    """The backend matching the service's activation variant."""
    try:
        return backends[service.activation.kind]
    except KeyError:
        raise ConfigurationError(
            service.name, f"no {service.activation.kind.value} activation backend configured"
        ) from None
