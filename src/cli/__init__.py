"""CLI commands: one module per mode (serve, subscriptions, transcripts)."""

from typer import Typer

from src.cli import subscription_mode, transcripts_mode, webhook_mode
from src.utils.tracing import init_tracing

init_tracing()

app = Typer(help="Teams transcript change-notification trigger")


def register_commands() -> None:
    """Register all CLI commands on the global app."""
    app.command()(webhook_mode.serve)
    app.command()(subscription_mode.activate)
    app.command()(subscription_mode.deactivate)
    app.command()(subscription_mode.subscriptions)
    app.command()(transcripts_mode.transcripts)
    app.command(name="transcript-content")(transcripts_mode.transcript_content)


register_commands()
