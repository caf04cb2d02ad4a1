from dataclasses import asdict
import json as json_lib
from pathlib import Path

from rich.console import Console
from rich.table import Table
import typer

from deploy_cli.config import get_settings
from deploy_cli.dependencies import build_orchestrator
from deploy_cli.errors import DeployError
from deploy_cli.services import DEPLOY_ORDER, SERVICES

console = Console()


def _fail(error: DeployError) -> None:
    console.print(f"[bold red]Error:[/bold red] {error}")
    raise typer.Exit(code=1) from None


def deploy_service(name: str) -> None:
    """Run the full pipeline for one service."""
    settings = get_settings()
    try:
        orchestrator = build_orchestrator(
            settings, settings.resolve_project_root(), progress=console.print
        )
        orchestrator.deploy(name)
    except DeployError as e:
        _fail(e)


def deploy_all() -> None:
    """Deploy gateway, worker and ai-coordinator in dependency order."""
    settings = get_settings()
    try:
        orchestrator = build_orchestrator(
            settings, settings.resolve_project_root(), progress=console.print
        )
        orchestrator.deploy_all()
    except DeployError as e:
        _fail(e)


def show_status(json_output: bool = False) -> None:
    """Print the activation status of every known service."""
    settings = get_settings()
    orchestrator = build_orchestrator(settings, settings.project_root or Path.cwd())
    rows = orchestrator.status()

    if json_output:
        typer.echo(json_lib.dumps([asdict(row) for row in rows], indent=2))
        return

    table = Table(title="Service status")
    table.add_column("Service", style="cyan")
    table.add_column("Host")
    table.add_column("Manager")
    table.add_column("Status", style="green")
    for row in rows:
        table.add_row(row.service, row.host, row.manager, row.status)
    console.print(table)


def _service_command(name: str):
    def command() -> None:
        deploy_service(name)

    command.__doc__ = (
        f"Build and deploy {SERVICES[name].display_name} "
        f"to {SERVICES[name].host} ({SERVICES[name].manager})."
    )
    return command


def register(app: typer.Typer) -> None:
    """Add one command per known service, plus `all`."""
    for name in DEPLOY_ORDER:
        app.command(name)(_service_command(name))
    app.command("all")(deploy_all)
