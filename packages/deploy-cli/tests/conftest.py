"""In-memory collaborators for the deploy pipeline.

The fakes stand in for git, the Go toolchain, ssh/scp, Nomad, the HTTP
health endpoints and the wall clock, so the orchestrator's sequencing can be
exercised without any process or network access.
"""

from pathlib import Path
import re

import pytest

from deploy_cli.activation import NativeBackend, ScheduledBackend
from deploy_cli.errors import BuildError
from deploy_cli.health import HealthVerifier
from deploy_cli.orchestrator import Orchestrator
from deploy_cli.remote import TransferManager
from deploy_cli.rollback import RollbackController
from deploy_cli.services import ActivationKind
from deploy_cli.shell import CommandError

BACKUP_RE = re.compile(r"\[ -f (\S+) \] && cp (\S+) (\S+) \|\| true")
SWAP_RE = re.compile(r"chmod \+x (\S+) && mv (\S+) (\S+)")
RESTORE_RE = re.compile(r"\[ -f (\S+) \] && mv (\S+) (\S+)")
RESTART_RE = re.compile(r"sudo (?:systemctl restart|launchctl kickstart -k) (\S+)")

COMMIT = "abc1234"
VERSION = "v1.4.0-3-gabc1234"


class FakeRemoteHost:
    """Keeps remote files in a dict and interprets the transfer/restart commands."""

    def __init__(self):
        self.files: dict[tuple[str, str], bytes] = {}
        self.commands: list[tuple[str, str]] = []
        self.restarts: list[tuple[str, str]] = []
        self.status_output: dict[str, str] = {}
        self._failures: list[tuple[str | None, str]] = []

    def fail_on(self, fragment: str, host: str | None = None) -> None:
        self._failures.append((host, fragment))

    def _maybe_fail(self, host: str, text: str) -> None:
        for fail_host, fragment in self._failures:
            if fragment in text and fail_host in (None, host):
                raise CommandError(["ssh", host, text], 1, "remote command failed")

    def run(self, host: str, command: str) -> str:
        self.commands.append((host, command))
        self._maybe_fail(host, command)

        match = BACKUP_RE.fullmatch(command)
        if match:
            live, prev = match.group(2), match.group(3)
            if (host, live) in self.files:
                self.files[(host, prev)] = self.files[(host, live)]
            return ""

        match = SWAP_RE.fullmatch(command)
        if match:
            new, live = match.group(2), match.group(3)
            self.files[(host, live)] = self.files.pop((host, new))
            return ""

        match = RESTORE_RE.fullmatch(command)
        if match:
            prev, live = match.group(2), match.group(3)
            if (host, prev) not in self.files:
                raise CommandError(["ssh", host, command], 1, "")
            self.files[(host, live)] = self.files.pop((host, prev))
            return ""

        match = RESTART_RE.match(command)
        if match:
            self.restarts.append((host, match.group(1)))
            return ""

        return self.status_output.get(host, "")

    def copy(self, local_path: Path, host: str, remote_path: str) -> None:
        self.commands.append((host, f"scp {local_path} {remote_path}"))
        self._maybe_fail(host, f"scp {remote_path}")
        self.files[(host, remote_path)] = Path(local_path).read_bytes()


class FakeBuilder:
    def __init__(self, out_dir: Path):
        self.out_dir = out_dir
        self.built: list[str] = []
        self.fail_for: set[str] = set()

    def build(self, service, stamp) -> Path:
        self.built.append(service.name)
        if service.name in self.fail_for:
            raise BuildError(service.name, "build failed: exit status 1", output="syntax error")
        artifact = self.out_dir / service.artifact_name
        artifact.write_bytes(f"{service.name}@{stamp.commit}".encode())
        return artifact


class FakeSourceControl:
    def __init__(self, version: str | None = VERSION, commit: str | None = COMMIT):
        self.version = version
        self.commit = commit
        self.log: str | None = None
        self.log_calls: list[tuple[str, str]] = []

    def describe(self, dirty: bool = True) -> str | None:
        return self.version

    def short_commit(self) -> str | None:
        return self.commit

    def log_range(self, previous: str, commit: str) -> str | None:
        self.log_calls.append((previous, commit))
        return self.log


class FakeHealthProbe:
    """`status` is an int/None, or a list consumed one per poll (last one sticks)."""

    def __init__(self, status=200, commit: str | None = COMMIT):
        self.status = status
        self.commit = commit
        self.calls: list[str] = []

    def get_status(self, url: str) -> int | None:
        self.calls.append(url)
        if isinstance(self.status, list):
            return self.status.pop(0) if len(self.status) > 1 else self.status[0]
        return self.status

    def get_json(self, url: str):
        self.calls.append(url)
        if self.commit is None:
            return None
        return {"commit": self.commit, "version": VERSION}


class FakeScheduler:
    def __init__(self, status: str | None = "running"):
        self.status = status
        self.submitted: list[Path] = []
        self.status_calls: list[str] = []
        self.fail_submit = False
        self.fail_status = False

    def submit(self, job_spec_path: Path) -> None:
        self.submitted.append(job_spec_path)
        if self.fail_submit:
            raise CommandError(["nomad", "job", "run", str(job_spec_path)], 1, "Error submitting job")

    def job_status(self, job_name: str) -> str | None:
        self.status_calls.append(job_name)
        if self.fail_status:
            raise CommandError(["nomad", "job", "status", job_name], 1, "No job(s) found")
        return self.status


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def remote():
    return FakeRemoteHost()


@pytest.fixture
def builder(tmp_path):
    out_dir = tmp_path / "artifacts"
    out_dir.mkdir()
    return FakeBuilder(out_dir)


@pytest.fixture
def source_control():
    return FakeSourceControl()


@pytest.fixture
def probe():
    return FakeHealthProbe()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def verifier(probe, clock):
    return HealthVerifier(probe, interval=1.0, clock=clock, sleep=clock.sleep)


@pytest.fixture
def native_backend(remote, verifier):
    return NativeBackend(remote, verifier, timeout=30)


@pytest.fixture
def scheduled_backend(scheduler, verifier, tmp_path):
    return ScheduledBackend(scheduler, verifier, tmp_path, timeout=60)


@pytest.fixture
def make_orchestrator(source_control, builder, remote, native_backend, scheduled_backend):
    def factory(**overrides) -> Orchestrator:
        transfer = TransferManager(remote)
        kwargs = {
            "source_control": source_control,
            "builder": builder,
            "transfer": transfer,
            "backends": {
                ActivationKind.NATIVE: native_backend,
                ActivationKind.SCHEDULED: scheduled_backend,
            },
            "rollback": RollbackController(transfer, native_backend),
            "environ": {},
        }
        kwargs.update(overrides)
        return Orchestrator(**kwargs)

    return factory
