"""Rollback of a natively supervised service to its `.prev` binary."""

import structlog

from deploy_cli.activation import NativeBackend
from deploy_cli.errors import DeployError, RollbackError, RolledBackError
from deploy_cli.remote import TransferManager
from deploy_cli.services import ServiceDefinition

logger = structlog.get_logger(__name__)


class RollbackController:
    def __init__(self, transfer: TransferManager, backend: NativeBackend):
        self.transfer = transfer
        self.backend = backend

    def rollback(
        self, service: ServiceDefinition, host: str, failure: DeployError
    ) -> RolledBackError:
        """Restore the backup and restart it.

        Returns the error the deploy should report (the attempted version never
        went live). Raises RollbackError, carrying both causes, if the restore
        or the restart fails.
        """
        logger.warning(
            "rollback_start", target_service=service.name, host=host, reason=str(failure)
        )
        try:
            self.transfer.restore(service, host)
            self.backend.activate(service, host)
        except DeployError as e:
            logger.error(
                "rollback_failed",
                target_service=service.name,
                host=host,
                error=str(e),
                original_error=str(failure),
            )
            raise RollbackError(service.name, failure, e) from e

        logger.info("rollback_complete", target_service=service.name, host=host)
        return RolledBackError(service.name, failure)
