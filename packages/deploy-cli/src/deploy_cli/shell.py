"""Subprocess execution for the external CLIs the pipeline drives.

git, go, ssh, scp and nomad are all invoked through CommandRunner so that
callers can substitute a fake runner in tests.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
import subprocess
import time

import structlog

logger = structlog.get_logger(__name__)

MAX_LOG_LENGTH = 1000


class CommandError(Exception):
    """An external command exited non-zero, timed out or was not found."""

    def __init__(self, argv: Sequence[str], returncode: int, output: str = ""):
        self.argv = list(argv)
        self.returncode = returncode
        self.output = output
        message = f"{self.argv[0]} exited with status {returncode}"
        tail = output.strip()[-MAX_LOG_LENGTH:]
        if tail:
            message += f": {tail}"
        super().__init__(message)


@dataclass
class CommandResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


class CommandRunner:
    """Runs commands synchronously, capturing output."""

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout

    def run(
        self,
        argv: Sequence[str],
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        timeout: float | None = None,
    ) -> CommandResult:
        """Run argv and return its result.

        Raises:
            CommandError: On a non-zero exit (when check is set), a timeout,
                or a missing executable.
        """
        argv = [str(arg) for arg in argv]
        start = time.time()
        try:
            process = subprocess.run(  # noqa: S603
                argv,
                cwd=cwd,
                env=dict(env) if env is not None else None,
                capture_output=True,
                text=True,
                timeout=timeout or self.timeout,
            )
        except FileNotFoundError as e:
            raise CommandError(argv, 127, str(e)) from e
        except subprocess.TimeoutExpired as e:
            raise CommandError(argv, -1, f"timed out after {e.timeout}s") from e

        logger.debug(
            "command_complete",
            command=argv[0],
            exit_code=process.returncode,
            duration_sec=round(time.time() - start, 2),
        )
        if process.stderr:
            logger.debug("command_stderr", command=argv[0], output=process.stderr[:MAX_LOG_LENGTH])

        result = CommandResult(argv, process.returncode, process.stdout, process.stderr)
        if check and process.returncode != 0:
            raise CommandError(argv, process.returncode, result.output)
        return result
