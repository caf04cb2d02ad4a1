"""Typed errors raised by the deploy pipeline.

Every error names the operation and the target (service or service@host) it
occurred in, so a failure inside a fleet run identifies the failing service.
"""


class DeployError(Exception):
    """Base class for all deploy failures."""

    operation = "deploy"

    def __init__(self, target: str, message: str, *, operation: str | None = None):
        if operation:
            self.operation = operation
        self.target = target
        self.message = message
        # Filled in by the orchestrator once a DeploymentAttempt exists.
        self.attempt = None
        super().__init__(f"{self.operation} {target}: {message}")


class ConfigurationError(DeployError):
    """Missing environment variable, unknown service, unresolvable path."""

    operation = "configure"


class UnknownServiceError(ConfigurationError):
    def __init__(self, name: str, valid: list[str]):
        self.valid = valid
        super().__init__(
            name, f"unknown service (valid: {', '.join(valid)})", operation="resolve"
        )


class BuildError(DeployError):
    """Toolchain failure. Never retried."""

    operation = "build"

    def __init__(self, target: str, message: str, output: str = ""):
        self.output = output
        super().__init__(target, message)


class TransportError(DeployError):
    """Remote copy or remote shell failure during backup/upload/swap/restore."""

    operation = "transfer"


class ActivationError(DeployError):
    """Restart or job submission failure."""

    operation = "activate"


class VerificationError(DeployError):
    """The new version could not be confirmed as serving."""

    operation = "verify"


class HealthTimeoutError(VerificationError):
    def __init__(self, target: str, timeout: float, waiting_for: str = "become healthy"):
        self.timeout = timeout
        super().__init__(target, f"failed to {waiting_for} within {timeout:g}s")


class VersionMismatchError(VerificationError):
    def __init__(self, target: str, expected: str, running: str):
        self.expected = expected
        self.running = running
        super().__init__(
            target, f"version mismatch: expected commit {expected}, running {running}"
        )


class RolledBackError(DeployError):
    """Verification failed; the previous binary was restored and restarted."""

    operation = "verify"

    def __init__(self, target: str, original: DeployError):
        self.original = original
        super().__init__(target, f"{original.message}; rolled back to previous binary")


class RollbackError(DeployError):
    """Verification failed AND the rollback failed. Needs manual intervention."""

    operation = "rollback"

    def __init__(self, target: str, original: DeployError, cause: Exception):
        self.original = original
        self.cause = cause
        super().__init__(
            target,
            f"deployment failed AND rollback failed: {original} (rollback: {cause})",
        )


class FleetDeployError(DeployError):
    """A service failed during `deploy all`; later services were not attempted."""

    def __init__(self, target: str, cause: DeployError, completed: list[str]):
        self.cause = cause
        self.completed = completed
        super().__init__(target, f"failed: {cause}")


class LedgerError(DeployError):
    """Deploy history insert or query failure."""

    operation = "record"
