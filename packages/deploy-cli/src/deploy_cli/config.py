"""penf-deploy configuration.

Everything is read from the environment (or `.env`). PENFOLD_DB_URL is only
required by the ledger commands, so it is optional here and enforced with
`require_database_url()` where it is used.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import SettingsConfigDict
import structlog
import yaml

from deploy_cli.errors import ConfigurationError
from deploy_cli.health import NATIVE_TIMEOUT, POLL_INTERVAL, SCHEDULED_TIMEOUT
from deploy_cli.scheduler import DEFAULT_NOMAD_ADDR
from shared.config import BaseSettings, database_url_field, telegram_token_field

logger = structlog.get_logger(__name__)

DEFAULT_OPERATOR = "agent-mycroft"
PROJECT_MARKER = "go.mod"
ASYNC_DRIVER = "postgresql+asyncpg"


class Settings(BaseSettings):
    """penf-deploy settings."""

    model_config = SettingsConfigDict(populate_by_name=True)

    service_name: str = Field(default="penf-deploy")

    project_root: Path | None = Field(
        default=None,
        alias="PENF_PROJECT_ROOT",
        description="Source tree to build from (default: nearest parent containing go.mod)",
    )
    nomad_addr: str = Field(
        default=DEFAULT_NOMAD_ADDR,
        alias="NOMAD_ADDR",
        description="Nomad API address for scheduler-managed services",
    )
    database_url: str | None = database_url_field(required=False, alias="PENFOLD_DB_URL")

    deploy_health_timeout: float = Field(default=NATIVE_TIMEOUT, gt=0)
    scheduler_health_timeout: float = Field(
        default=SCHEDULED_TIMEOUT, gt=0, alias="DEPLOY_SCHEDULER_TIMEOUT"
    )
    poll_interval: float = Field(default=POLL_INTERVAL, gt=0, alias="DEPLOY_POLL_INTERVAL")

    penf_config_dir: Path = Field(
        default=Path("~/.penf"),
        description="Directory holding the operator's config.yaml",
    )
    deploy_operator: str | None = Field(
        default=None,
        alias="PENF_CONTEXT_PALACE_AGENT",
        description="Operator identity recorded in the ledger",
    )

    telegram_bot_token: str = telegram_token_field(required=False)
    deploy_notify_chat_id: str = Field(default="", description="Telegram chat for deploy notices")

    def resolve_project_root(self) -> Path:
        if self.project_root is not None:
            return self.project_root
        return find_project_root(Path.cwd())

    def require_database_url(self) -> str:
        if not self.database_url:
            raise ConfigurationError("PENFOLD_DB_URL", "environment variable not set")
        return normalize_database_url(self.database_url)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def find_project_root(start: Path) -> Path:
    """Nearest directory at or above start that contains go.mod."""
    start = start.resolve()
    for directory in (start, *start.parents):
        if (directory / PROJECT_MARKER).is_file():
            return directory
    raise ConfigurationError(str(start), f"cannot find project root (no {PROJECT_MARKER} found)")


def normalize_database_url(url: str) -> str:
    """Point libpq-style postgres URLs at the asyncpg driver."""
    for prefix in ("postgresql://", "postgres://"):
        if url.startswith(prefix):
            return f"{ASYNC_DRIVER}://{url[len(prefix):]}"
    return url


def load_operator_from_config(config_dir: Path) -> str | None:
    """`context_palace.agent` from <config_dir>/config.yaml, if present."""
    path = config_dir.expanduser() / "config.yaml"
    if not path.is_file():
        return None
    try:
        data = yaml.safe_load(path.read_text()) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("operator_config_unreadable", path=str(path), error=str(e))
        return None
    context_palace = data.get("context_palace") if isinstance(data, dict) else None
    if isinstance(context_palace, dict) and context_palace.get("agent"):
        return str(context_palace["agent"])
    return None


def resolve_operator(settings: Settings) -> str | None:
    return settings.deploy_operator or load_operator_from_config(settings.penf_config_dir)
