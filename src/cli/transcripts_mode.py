"""Transcript commands: list transcripts and download transcript content."""

import asyncio
from pathlib import Path

import typer
from rich.table import Table

from src.config import OUTPUT_DIR, USER_ID
from src.errors import GraphApiError
from src.graph import transcripts as graph_transcripts

from .shared import console, graph_client, logger, require_credentials


def transcripts(
    user_id: str = typer.Option(USER_ID, "--user-id", help="Meeting organizer (id or UPN)"),
    meeting_id: str | None = typer.Option(None, "--meeting-id", "-m", help="Only this meeting"),
    filter: str | None = typer.Option(None, "--filter", "-f", help="OData $filter"),
    limit: int | None = typer.Option(None, "--limit", "-l", help="Return at most this many (single page)"),
) -> None:
    """List transcripts of a user's meetings, or of one meeting."""
    log = logger.bind(command="transcripts", user_id=user_id, meeting_id=meeting_id)
    if not user_id:
        console.print("[red]Provide --user-id or set USER_ID in .env[/red]")
        raise typer.Exit(1)
    require_credentials("transcripts")

    async def _run():
        async with graph_client() as client:
            if meeting_id:
                return await graph_transcripts.list_meeting_transcripts(
                    client, user_id, meeting_id, filter=filter, limit=limit
                )
            return await graph_transcripts.list_user_transcripts(
                client, user_id, filter=filter, limit=limit
            )

    try:
        items = asyncio.run(_run())
    except GraphApiError as e:
        console.print(f"[red]{e}[/red]")
        log.error("transcripts.failed", error=str(e))
        raise typer.Exit(1)

    table = Table(title="Transcripts")
    table.add_column("Transcript ID", style="cyan")
    table.add_column("Meeting ID", style="green")
    table.add_column("Created")
    for item in items:
        table.add_row(
            str(item.get("id", "")),
            str(item.get("meetingId", meeting_id or "")),
            str(item.get("createdDateTime", "")),
        )
    console.print(table)
    log.info("transcripts.done", count=len(items))


def transcript_content(
    transcript_id: str = typer.Argument(..., help="Transcript id"),
    meeting_id: str = typer.Option(..., "--meeting-id", "-m", help="Meeting id"),
    user_id: str = typer.Option(USER_ID, "--user-id", help="Meeting organizer (id or UPN)"),
    fmt: str = typer.Option("vtt", "--format", help="vtt | text"),
    output_dir: Path = typer.Option(OUTPUT_DIR, "--output", "-o", help="Directory to write the file to"),
) -> None:
    """Download a transcript as WebVTT or plain text."""
    log = logger.bind(command="transcript-content", transcript_id=transcript_id)
    if fmt not in ("vtt", "text"):
        console.print("[red]--format must be 'vtt' or 'text'[/red]")
        raise typer.Exit(2)
    if not user_id:
        console.print("[red]Provide --user-id or set USER_ID in .env[/red]")
        raise typer.Exit(1)
    require_credentials("transcript-content")

    async def _run():
        async with graph_client() as client:
            return await graph_transcripts.get_transcript_content(
                client, user_id, meeting_id, transcript_id, fmt=fmt
            )

    try:
        content = asyncio.run(_run())
    except GraphApiError as e:
        console.print(f"[red]{e}[/red]")
        log.error("transcript_content.failed", error=str(e))
        raise typer.Exit(1)

    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / content.file_name
    path.write_text(content.content, encoding="utf-8")
    console.print(f"[green]Wrote {path}[/green]")
    log.info("transcript_content.written", path=str(path), mime_type=content.mime_type)
