"""Version stamping from the local git working tree.

Nothing here aborts a deploy: every git failure degrades to a placeholder.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

import structlog

from deploy_cli.shell import CommandError, CommandRunner

logger = structlog.get_logger(__name__)

DEFAULT_VERSION = "dev"
UNKNOWN_COMMIT = "unknown"
BUILD_TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Go package whose string variables the server binaries report on /version
BUILDINFO_PACKAGE = "github.com/otherjamesbrown/penfold/pkg/buildinfo"


@dataclass(frozen=True)
class VersionStamp:
    version: str
    commit: str
    build_time: str

    def ldflags(self, package: str = BUILDINFO_PACKAGE) -> str:
        """Render the stamp as linker -X overrides."""
        values = (
            ("Version", self.version),
            ("Commit", self.commit),
            ("BuildTime", self.build_time),
        )
        return " ".join(f"-X {package}.{name}={value}" for name, value in values)


class SourceControl(Protocol):
    def describe(self, dirty: bool = True) -> str | None: ...

    def short_commit(self) -> str | None: ...

    def log_range(self, previous: str, commit: str) -> str | None: ...


class GitSourceControl:
    """Queries the git CLI; returns None instead of raising."""

    def __init__(self, runner: CommandRunner | None = None, cwd: Path | None = None):
        self.runner = runner or CommandRunner(timeout=30)
        self.cwd = cwd

    def _git(self, *args: str) -> str | None:
        try:
            result = self.runner.run(["git", *args], cwd=self.cwd)
        except CommandError as e:
            logger.warning("git_command_failed", args=list(args), error=str(e))
            return None
        return result.stdout.strip() or None

    def describe(self, dirty: bool = True) -> str | None:
        args = ["describe", "--tags", "--always"]
        if dirty:
            args.append("--dirty")
        return self._git(*args)

    def short_commit(self) -> str | None:
        return self._git("rev-parse", "--short", "HEAD")

    def log_range(self, previous: str, commit: str) -> str | None:
        return self._git("log", "--oneline", f"{previous}..{commit}")


def stamp_version(source_control: SourceControl, now: datetime | None = None) -> VersionStamp:
    now = now or datetime.now(timezone.utc)
    stamp = VersionStamp(
        version=source_control.describe() or DEFAULT_VERSION,
        commit=source_control.short_commit() or UNKNOWN_COMMIT,
        build_time=now.astimezone(timezone.utc).strftime(BUILD_TIME_FORMAT),
    )
    logger.info(
        "version_stamped",
        version=stamp.version,
        commit=stamp.commit,
        build_time=stamp.build_time,
    )
    return stamp
