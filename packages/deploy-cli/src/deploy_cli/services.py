"""Compiled-in service definitions and the fleet deploy order."""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from graphlib import TopologicalSorter
import os
from typing import ClassVar

from deploy_cli.errors import UnknownServiceError


class ActivationKind(str, Enum):
    NATIVE = "native"
    SCHEDULED = "scheduled"


class ProcessManager(str, Enum):
    SYSTEMD = "systemd"
    LAUNCHD = "launchd"


@dataclass(frozen=True)
class NativeActivation:
    """Restart through the host's own process supervisor."""

    process_manager: ProcessManager
    unit_name: str

    kind: ClassVar[ActivationKind] = ActivationKind.NATIVE

    @property
    def manager(self) -> str:
        return self.process_manager.value


@dataclass(frozen=True)
class ScheduledActivation:
    """Submit a job specification to the cluster scheduler."""

    job_spec_path: str
    job_name: str

    kind: ClassVar[ActivationKind] = ActivationKind.SCHEDULED

    @property
    def manager(self) -> str:
        return "nomad"


Activation = NativeActivation | ScheduledActivation


@dataclass(frozen=True)
class ServiceDefinition:
    name: str
    display_name: str
    target_os: str
    target_arch: str
    source_dir: str
    artifact_name: str
    host: str
    host_env_override: str
    install_path: str
    activation: Activation
    health_port: int

    def __post_init__(self):
        if not isinstance(self.activation, NativeActivation | ScheduledActivation):
            raise TypeError(f"{self.name}: activation must be native or scheduled")
        if self.health_port <= 0:
            raise ValueError(f"{self.name}: health_port must be a positive TCP port")

    @property
    def backup_path(self) -> str:
        return f"{self.install_path}.prev"

    @property
    def staging_path(self) -> str:
        return f"{self.install_path}.new"

    @property
    def manager(self) -> str:
        return self.activation.manager

    def resolve_host(self, environ: Mapping[str, str] | None = None) -> str:
        """Deploy target host; the override env var wins when set and non-empty."""
        environ = os.environ if environ is None else environ
        return environ.get(self.host_env_override) or self.host


SERVICES: dict[str, ServiceDefinition] = {
    "gateway": ServiceDefinition(
        name="gateway",
        display_name="gateway",
        target_os="linux",
        target_arch="amd64",
        source_dir="services/gateway",
        artifact_name="gateway-linux",
        host="dev02",
        host_env_override="GATEWAY_HOST",
        install_path="/opt/penfold/bin/penfold-gateway",
        activation=NativeActivation(ProcessManager.SYSTEMD, "penfold-gateway"),
        health_port=8080,
    ),
    "worker": ServiceDefinition(
        name="worker",
        display_name="worker",
        target_os="darwin",
        target_arch="arm64",
        source_dir="services/worker",
        artifact_name="worker-darwin-arm64",
        host="dev01",
        host_env_override="WORKER_HOST",
        install_path="/opt/penfold/bin/penfold-worker",
        activation=NativeActivation(ProcessManager.LAUNCHD, "system/com.penfold.worker"),
        health_port=8085,
    ),
    "ai": ServiceDefinition(
        name="ai",
        display_name="ai-coordinator",
        target_os="linux",
        target_arch="amd64",
        source_dir="services/ai",
        artifact_name="ai-coordinator-linux",
        host="dev02",
        host_env_override="AI_HOST",
        install_path="/opt/penfold/bin/penfold-ai-coordinator",
        activation=ScheduledActivation(
            job_spec_path="deploy/nomad/ai-coordinator.nomad.hcl",
            job_name="penfold-ai-coordinator",
        ),
        health_port=8090,
    ),
}

# Each service lists the services that must already be running the new
# version before it is deployed.
DEPLOY_DEPENDENCIES: dict[str, set[str]] = {
    "gateway": set(),
    "worker": {"gateway"},
    "ai": {"worker"},
}


def resolve_deploy_order(dependencies: Mapping[str, set[str]]) -> tuple[str, ...]:
    """Total deploy order honouring every dependency edge."""
    return tuple(TopologicalSorter(dependencies).static_order())


DEPLOY_ORDER: tuple[str, ...] = resolve_deploy_order(DEPLOY_DEPENDENCIES)


def get_service(
    name: str, services: Mapping[str, ServiceDefinition] = SERVICES
) -> ServiceDefinition:
    try:
        return services[name]
    except KeyError:
        raise UnknownServiceError(name, [*services, "all"]) from None
