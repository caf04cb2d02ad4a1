"""structlog setup shared by the deploy tooling.

penf-deploy logs one snake_case event per pipeline step. Operators get the
console renderer; automation sets LOG_FORMAT=json. The CLI hands in stderr as
the stream so stdout carries only command output (tables, --json).

Each single-service deploy binds a `deploy_id` for the duration of the run:

    bind_context(deploy_id="3f9c2a1b7d0e", target_service="gateway")
    ...
    unbind_context("deploy_id", "target_service")
"""

import logging
import os
import sys
from typing import Literal, TextIO

import structlog
from structlog.types import Processor


def _renderer(log_format: str) -> Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer(sort_keys=False)
    return structlog.dev.ConsoleRenderer(
        colors=True,
        exception_formatter=structlog.dev.plain_traceback,
    )


def setup_logging(
    service_name: str | None = None,
    log_format: Literal["json", "console"] | None = None,
    log_level: str | None = None,
    stream: TextIO | None = None,
) -> None:
    """Route structlog through stdlib logging at the requested level.

    Unset arguments fall back to SERVICE_NAME, LOG_FORMAT (console) and
    LOG_LEVEL (INFO). `stream` defaults to stdout.
    """
    service_name = service_name or os.getenv("SERVICE_NAME", "unknown")
    log_format = log_format or os.getenv("LOG_FORMAT", "console")
    log_level = log_level or os.getenv("LOG_LEVEL", "INFO")
    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=stream or sys.stdout,
        level=level,
        force=True,
    )

    processors: list[Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.contextvars.merge_contextvars,
        structlog.processors.CallsiteParameterAdder(
            {
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            }
        ),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _renderer(log_format),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=service_name)

    structlog.get_logger(__name__).debug(
        "logging_initialized",
        log_format=log_format,
        log_level=log_level,
    )


def bind_context(**values: str) -> None:
    """Attach values to every event logged from the current context."""
    structlog.contextvars.bind_contextvars(**values)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)
