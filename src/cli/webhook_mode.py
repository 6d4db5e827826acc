"""Serve mode: run the FastAPI listener for Graph transcript change notifications."""

import sys

import typer
import uvicorn

from src.config import WEBHOOK_PATH, WEBHOOK_PORT, WEBHOOK_URL
from src.webhook.server import create_app

from .shared import console, logger, require_credentials


def serve(
    port: int = typer.Option(WEBHOOK_PORT, "--port", "-p", help="Port for the webhook server"),
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Bind host"),
    webhook_url: str = typer.Option(
        WEBHOOK_URL,
        "--webhook-url",
        "-u",
        help="Public HTTPS base URL Graph can reach (defaults to WEBHOOK_URL)",
    ),
    activate: bool = typer.Option(
        False,
        "--activate",
        "-a",
        help="Reuse or create the Graph subscriptions once the server is up",
    ),
    deactivate_on_exit: bool = typer.Option(
        False,
        "--deactivate-on-exit",
        help="Delete the stored subscriptions on shutdown",
    ),
) -> None:
    """Start the webhook listener; optionally activate the transcript subscriptions."""
    log = logger.bind(command="serve", port=port)
    log.info("serve.start")
    require_credentials("serve")

    if activate and not webhook_url:
        console.print("[red]--activate requires --webhook-url or WEBHOOK_URL in .env[/red]")
        log.warning("serve.activate_missing_url")
        raise typer.Exit(1)
    if activate:
        console.print(
            "[yellow]Ensure your tunnel forwards %s to port %s; Graph validates the URL during activation.[/yellow]"
            % (webhook_url, port)
        )

    app = create_app(
        webhook_base_url=webhook_url,
        activate_on_startup=activate,
        deactivate_on_shutdown=deactivate_on_exit,
    )

    console.print(f"[green]Starting webhook server on http://{host}:{port}[/green]")
    console.print(f"[dim]Endpoints: GET/POST {WEBHOOK_PATH}, GET {WEBHOOK_PATH}/subscriptions, GET /health[/dim]")
    try:
        uvicorn.run(
            app,
            host=host,
            port=port,
            log_level="info",
            timeout_graceful_shutdown=15,
        )
    except KeyboardInterrupt:
        console.print("\n[dim]Shutting down...[/dim]")
        sys.exit(0)
