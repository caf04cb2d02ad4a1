"""Deployment ledger: append-only deploy history plus an advisory notification.

The ledger is written by automation once a deployment is confirmed; it is
not part of the build/transfer/activate/verify pipeline.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from deploy_cli.config import DEFAULT_OPERATOR
from deploy_cli.errors import LedgerError
from deploy_cli.source_control import SourceControl
from shared.models import DeployHistory
from shared.notifications import NotificationError

logger = structlog.get_logger(__name__)


class DeployNotifier(Protocol):
    async def send_deploy_notification(
        self,
        service_name: str,
        commit: str,
        previous_commit: str,
        version: str,
        changes: str,
    ) -> None: ...


@dataclass
class RecordRequest:
    service_name: str
    commit: str
    previous_commit: str | None = None
    deployed_by: str | None = None
    version: str | None = None
    changes: str | None = None
    shard_ids: list[str] = field(default_factory=list)
    notify: bool = True


@dataclass
class RecordOutcome:
    """The inserted row and what happened to its notification."""

    entry: DeployHistory
    notified: bool = False
    notification_error: str | None = None


def parse_shard_ids(raw: str | None) -> list[str]:
    """Split a comma-separated list, dropping blanks."""
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


class DeployLedger:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        source_control: SourceControl,
        notifier: DeployNotifier | None = None,
        operator_lookup: Callable[[], str | None] = lambda: None,
    ):
        self.session_maker = session_maker
        self.source_control = source_control
        self.notifier = notifier
        self.operator_lookup = operator_lookup

    def resolve_version(self, request: RecordRequest) -> str | None:
        return request.version or self.source_control.describe(dirty=False)

    def resolve_changes(self, request: RecordRequest) -> str:
        """Explicit changes, else the commit-range log, else a one-line default."""
        if request.changes:
            return request.changes
        if request.previous_commit:
            log = self.source_control.log_range(request.previous_commit, request.commit)
            if log:
                return log
        return f"Deploy {request.commit}"

    def resolve_operator(self, request: RecordRequest) -> str:
        return request.deployed_by or self.operator_lookup() or DEFAULT_OPERATOR

    async def record(self, request: RecordRequest) -> RecordOutcome:
        """Insert one immutable history row, then notify (best effort).

        Raises:
            LedgerError: The insert failed. Notification failures never raise.
        """
        if not request.commit:
            raise LedgerError(request.service_name, "commit is required")

        version = self.resolve_version(request)
        changes = self.resolve_changes(request)
        entry = DeployHistory(
            service_name=request.service_name,
            commit=request.commit,
            previous_commit=request.previous_commit or None,
            version=version or None,
            deployed_by=self.resolve_operator(request),
            changes=changes,
            shard_ids=list(request.shard_ids) or None,
        )

        try:
            async with self.session_maker() as session:
                session.add(entry)
                await session.commit()
                await session.refresh(entry)
        except SQLAlchemyError as e:
            logger.error("ledger_insert_failed", target_service=request.service_name, error=str(e))
            raise LedgerError(request.service_name, f"failed to insert deploy record: {e}") from e

        logger.info(
            "ledger_recorded",
            entry_id=entry.id,
            target_service=entry.service_name,
            commit=entry.commit,
            previous_commit=entry.previous_commit,
            deployed_by=entry.deployed_by,
        )

        outcome = RecordOutcome(entry)
        if request.notify and self.notifier is not None:
            await self._notify(outcome)
        return outcome

    async def _notify(self, outcome: RecordOutcome) -> None:
        entry = outcome.entry
        try:
            await self.notifier.send_deploy_notification(
                service_name=entry.service_name,
                commit=entry.commit,
                previous_commit=entry.previous_commit or "unknown",
                version=entry.version or "",
                changes=entry.changes or "",
            )
        except NotificationError as e:
            logger.warning(
                "deploy_notification_failed", target_service=entry.service_name, error=str(e)
            )
            outcome.notification_error = str(e)
            return
        outcome.notified = True
        logger.info("deploy_notification_sent", target_service=entry.service_name)

    async def history(
        self, service_name: str | None = None, last: int | None = None
    ) -> list[DeployHistory]:
        """Rows newest first, optionally filtered by service and capped to `last`."""
        stmt = select(DeployHistory)
        if service_name:
            stmt = stmt.where(DeployHistory.service_name == service_name)
        stmt = stmt.order_by(DeployHistory.deployed_at.desc(), DeployHistory.id.desc())
        if last and last > 0:
            stmt = stmt.limit(last)

        try:
            async with self.session_maker() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise LedgerError(
                service_name or "deploy_history",
                f"failed to query deploy history: {e}",
                operation="history",
            ) from e
