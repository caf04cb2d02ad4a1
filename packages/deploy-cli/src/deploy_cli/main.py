import sys

from rich.console import Console
import typer

from deploy_cli.commands import history, pipeline
from deploy_cli.config import get_settings
from shared.logging_config import setup_logging

app = typer.Typer(
    name="penf-deploy",
    help="Build, upload, and deploy Penfold services",
    add_completion=False,
)
console = Console()


@app.callback(invoke_without_command=True)
def callback(
    ctx: typer.Context,
    status: bool = typer.Option(False, "--status", help="Show service status for all services"),
    json_output: bool = typer.Option(False, "--json", help="Output --status as JSON"),
):
    """
    Build, upload, and deploy Penfold services.

    Each service is cross-compiled, uploaded via scp and activated either by
    the host's process manager (systemd/launchd) or by Nomad.
    """
    settings = get_settings()
    setup_logging(
        service_name=settings.service_name,
        log_format=settings.log_format,
        log_level=settings.log_level,
        stream=sys.stderr,
    )
    if status:
        pipeline.show_status(json_output=json_output)
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit()


pipeline.register(app)
app.command()(history.history)
app.command(cls=history.RecordCommand)(history.record)


if __name__ == "__main__":
    app()
