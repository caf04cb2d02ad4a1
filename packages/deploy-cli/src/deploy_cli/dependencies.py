"""Factories wiring real collaborators (git, go, ssh, nomad, httpx, Postgres)."""

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from pathlib import Path

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from deploy_cli.activation import NativeBackend, ScheduledBackend
from deploy_cli.builder import GoBuilder
from deploy_cli.config import Settings, resolve_operator
from deploy_cli.health import HealthVerifier, HttpHealthProbe
from deploy_cli.ledger import DeployLedger
from deploy_cli.orchestrator import Orchestrator
from deploy_cli.remote import SSHRemoteHost, TransferManager
from deploy_cli.rollback import RollbackController
from deploy_cli.scheduler import NomadScheduler
from deploy_cli.services import ActivationKind
from deploy_cli.source_control import GitSourceControl
from shared.notifications import TelegramNotifier


def build_orchestrator(
    settings: Settings,
    project_root: Path,
    progress: Callable[[str], None] | None = None,
) -> Orchestrator:
    remote = SSHRemoteHost()
    transfer = TransferManager(remote)
    verifier = HealthVerifier(HttpHealthProbe(), interval=settings.poll_interval)
    native = NativeBackend(remote, verifier, timeout=settings.deploy_health_timeout)
    scheduled = ScheduledBackend(
        NomadScheduler(settings.nomad_addr),
        verifier,
        project_root,
        timeout=settings.scheduler_health_timeout,
    )
    kwargs = {"progress": progress} if progress else {}
    return Orchestrator(
        source_control=GitSourceControl(cwd=project_root),
        builder=GoBuilder(project_root),
        transfer=transfer,
        backends={ActivationKind.NATIVE: native, ActivationKind.SCHEDULED: scheduled},
        rollback=RollbackController(transfer, native),
        **kwargs,
    )


@asynccontextmanager
async def open_ledger(settings: Settings) -> AsyncIterator[DeployLedger]:
    """A ledger bound to PENFOLD_DB_URL; the engine is disposed on exit.

    Raises:
        ConfigurationError: PENFOLD_DB_URL is not set.
    """
    engine = create_async_engine(settings.require_database_url(), echo=False)
    try:
        yield DeployLedger(
            session_maker=async_sessionmaker(engine, expire_on_commit=False),
            source_control=GitSourceControl(cwd=settings.project_root),
            notifier=TelegramNotifier(settings.telegram_bot_token, settings.deploy_notify_chat_id),
            operator_lookup=lambda: resolve_operator(settings),
        )
    finally:
        await engine.dispose()
