"""Verification that a freshly activated service is serving the new build."""

from collections.abc import Callable
from http import HTTPStatus
import time
from typing import Any, Protocol

import httpx
import structlog

from deploy_cli.errors import HealthTimeoutError, VersionMismatchError
from deploy_cli.scheduler import RUNNING, Scheduler
from deploy_cli.services import ServiceDefinition
from deploy_cli.shell import CommandError
from deploy_cli.source_control import UNKNOWN_COMMIT

logger = structlog.get_logger(__name__)

POLL_INTERVAL = 1.0
NATIVE_TIMEOUT = 30.0
SCHEDULED_TIMEOUT = 60.0


class HealthProbe(Protocol):
    def get_status(self, url: str) -> int | None:
        """HTTP status code, or None when the endpoint is unreachable."""
        ...

    def get_json(self, url: str) -> Any | None:
        """Decoded JSON body of a 2xx response, or None."""
        ...


class HttpHealthProbe:
    def __init__(self, client: httpx.Client | None = None, timeout: float = 5.0):
        self.client = client
        self.timeout = timeout

    def _get(self, url: str) -> httpx.Response:
        if self.client is not None:
            return self.client.get(url)
        return httpx.get(url, timeout=self.timeout)

    def get_status(self, url: str) -> int | None:
        try:
            return self._get(url).status_code
        except httpx.HTTPError as e:
            logger.debug("health_probe_unreachable", url=url, error=str(e))
            return None

    def get_json(self, url: str) -> Any | None:
        try:
            response = self._get(url)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.debug("version_probe_failed", url=url, error=str(e))
            return None


def should_verify_commit(expected_commit: str | None) -> bool:
    return bool(expected_commit) and expected_commit != UNKNOWN_COMMIT


class HealthVerifier:
    """Fixed-interval polling bounded by an absolute deadline.

    `clock` and `sleep` are injectable so tests can run the loop without waiting.
    """

    def __init__(
        self,
        probe: HealthProbe,
        interval: float = POLL_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.probe = probe
        self.interval = interval
        self.clock = clock
        self.sleep = sleep

    def _poll_until(self, check: Callable[[], bool], timeout: float) -> bool:
        deadline = self.clock() + timeout
        while self.clock() < deadline:
            if check():
                return True
            self.sleep(self.interval)
        return False

    def _running_commit(self, version_url: str) -> str | None:
        body = self.probe.get_json(version_url)
        if isinstance(body, dict) and isinstance(body.get("commit"), str):
            return body["commit"]
        return None

    def wait_for_healthy(
        self,
        service: ServiceDefinition,
        host: str,
        expected_commit: str | None,
        timeout: float = NATIVE_TIMEOUT,
    ) -> None:
        """Wait for /health to return 200 and /version to report expected_commit.

        A readable /version reporting any other commit fails immediately: the
        health check is answering from a stale process. An unreadable /version
        keeps the poll going.

        Raises:
            VersionMismatchError: Serving commit differs from expected_commit.
            HealthTimeoutError: Nothing conclusive within timeout.
        """
        base_url = f"http://{host}:{service.health_port}"
        health_url = f"{base_url}/health"
        version_url = f"{base_url}/version"
        verify_commit = should_verify_commit(expected_commit)

        def check() -> bool:
            if self.probe.get_status(health_url) != HTTPStatus.OK:
                return False
            logger.info("health_check_passed", target_service=service.name, host=host)
            if not verify_commit:
                return True
            running = self._running_commit(version_url)
            if running is None:
                logger.warning("version_unreadable", target_service=service.name, url=version_url)
                return False
            if running != expected_commit:
                raise VersionMismatchError(service.name, expected_commit, running)
            logger.info("commit_verified", target_service=service.name, commit=running)
            return True

        if not self._poll_until(check, timeout):
            logger.error("health_check_timeout", target_service=service.name, timeout=timeout)
            raise HealthTimeoutError(service.name, timeout)

    def wait_for_job_running(
        self,
        service: ServiceDefinition,
        scheduler: Scheduler,
        job_name: str,
        timeout: float = SCHEDULED_TIMEOUT,
    ) -> None:
        """Wait for the scheduler to report job_name as running.

        Raises:
            HealthTimeoutError: Job not running within timeout.
        """

        def check() -> bool:
            try:
                status = scheduler.job_status(job_name)
            except CommandError as e:
                logger.debug("job_status_failed", job=job_name, error=str(e))
                return False
            logger.debug("job_status", job=job_name, status=status)
            return status == RUNNING

        if not self._poll_until(check, timeout):
            logger.error("job_status_timeout", target_service=service.name, job=job_name)
            raise HealthTimeoutError(service.name, timeout, waiting_for=f"report job {job_name} running")
        logger.info("job_running", target_service=service.name, job=job_name)
