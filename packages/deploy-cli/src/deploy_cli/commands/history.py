import asyncio
import json as json_lib

import click
from rich.console import Console
from rich.table import Table
import typer
from typer.core import TyperCommand

from deploy_cli.config import Settings, get_settings
from deploy_cli.dependencies import open_ledger
from deploy_cli.errors import DeployError
from deploy_cli.ledger import RecordOutcome, RecordRequest, parse_shard_ids
from shared.models import DeployHistory

console = Console()

COMMIT_WIDTH = 10
CHANGES_WIDTH = 50
TRUTHY = {"true", "1", "yes", "y", "on"}
FALSY = {"false", "0", "no", "n", "off"}
NOTIFY_HELP = "Send deploy notification (bare --notify, or --notify=true|false)"


class RecordCommand(TyperCommand):
    """`record` whose --notify takes an optional value: bare means true."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.params = [
            _notify_option() if param.name == "notify" else param for param in self.params
        ]


def _notify_option() -> click.Option:
    return click.Option(
        ["--notify"],
        is_flag=False,
        flag_value="true",
        default="true",
        show_default=True,
        help=NOTIFY_HELP,
    )


def parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in TRUTHY:
        return True
    if lowered in FALSY:
        return False
    raise typer.BadParameter(f"expected true or false, got {value!r}")


def truncate(text: str, width: int) -> str:
    if len(text) <= width:
        return text
    return text[: width - 3] + "..."


async def record_deploy_command(settings: Settings, request: RecordRequest) -> RecordOutcome:
    async with open_ledger(settings) as ledger:
        return await ledger.record(request)


async def history_command(
    settings: Settings, service: str | None, last: int | None
) -> list[DeployHistory]:
    async with open_ledger(settings) as ledger:
        return await ledger.history(service_name=service, last=last)


def history(
    service: str | None = typer.Argument(None, help="Only show this service"),
    last: int = typer.Option(0, "--last", min=0, help="Limit to last N deployments"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show deployment history (requires PENFOLD_DB_URL)."""
    try:
        entries = asyncio.run(history_command(get_settings(), service, last or None))
    except DeployError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1) from None

    if json_output:
        typer.echo(json_lib.dumps([entry.to_dict() for entry in entries], indent=2, default=str))
        return

    if not entries:
        console.print("No deployment history found.")
        return

    table = Table(title="Deployment history")
    table.add_column("Deployed at", style="cyan")
    table.add_column("Service")
    table.add_column("Commit", style="magenta")
    table.add_column("Changes")
    table.add_column("By")
    for entry in entries:
        table.add_row(
            entry.deployed_at.strftime("%Y-%m-%d %H:%M") if entry.deployed_at else "-",
            entry.service_name,
            entry.commit[:COMMIT_WIDTH],
            truncate(entry.changes or "", CHANGES_WIDTH),
            entry.deployed_by or "-",
        )
    console.print(table)


def record(
    service: str = typer.Argument(..., help="Service name as recorded in deploy_history"),
    commit: str = typer.Option(..., "--commit", help="New commit hash"),
    previous_commit: str | None = typer.Option(
        None, "--previous-commit", help="Previous commit hash"
    ),
    deployed_by: str | None = typer.Option(
        None, "--deployed-by", help="Who deployed (default: from operator config)"
    ),
    version: str | None = typer.Option(None, "--version", help="Version tag (default: git describe)"),
    changes: str | None = typer.Option(
        None, "--changes", help="Changelog (default: git log between commits)"
    ),
    shard_ids: str | None = typer.Option(
        None, "--shard-ids", help="Comma-separated cross-reference IDs"
    ),
    notify: str = typer.Option("true", "--notify", help=NOTIFY_HELP),
):
    """Append one deployment to deploy_history (requires PENFOLD_DB_URL)."""
    request = RecordRequest(
        service_name=service,
        commit=commit,
        previous_commit=previous_commit,
        deployed_by=deployed_by,
        version=version,
        changes=changes,
        shard_ids=parse_shard_ids(shard_ids),
        notify=parse_bool(notify),
    )
    settings = get_settings()
    try:
        outcome = asyncio.run(record_deploy_command(settings, request))
    except DeployError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1) from None

    entry = outcome.entry
    previous = entry.previous_commit or "unknown"
    console.print(f"Recorded: {entry.service_name} {previous} -> {entry.commit}")
    if outcome.notified:
        console.print(f"Notification sent to {settings.deploy_notify_chat_id}")
    elif outcome.notification_error:
        console.print(
            f"[yellow]Warning:[/yellow] failed to send deploy notification: "
            f"{outcome.notification_error}"
        )
