"""Read-only Teams meeting and transcript lookups (application permissions)."""

from typing import Any, Literal

from pydantic import BaseModel

from src.graph.client import GraphClient
from src.utils.logger import get_logger

logger = get_logger("teams_transcripts.graph.transcripts")

TranscriptFormat = Literal["vtt", "text"]

_MIME_TYPES: dict[str, str] = {"vtt": "text/vtt", "text": "text/plain"}
_EXTENSIONS: dict[str, str] = {"vtt": "vtt", "text": "txt"}


class TranscriptContent(BaseModel):
    """Downloaded transcript body with the metadata needed to save it."""

    transcript_id: str
    meeting_id: str
    format: TranscriptFormat
    mime_type: str
    file_name: str
    content: str


async def _list(
    client: GraphClient,
    endpoint: str,
    filter: str | None,
    limit: int | None,
) -> list[dict[str, Any]]:
    query: dict[str, Any] = {}
    if filter:
        query["$filter"] = filter
    if limit:
        query["$top"] = limit
        page = await client.request("GET", endpoint, query=query)
        return list((page or {}).get("value") or [])
    return await client.request_all_pages("value", "GET", endpoint, query=query)


async def get_meeting(client: GraphClient, user_id: str, meeting_id: str) -> dict[str, Any]:
    return await client.request("GET", f"/users/{user_id}/onlineMeetings/{meeting_id}")


async def list_meeting_transcripts(
    client: GraphClient,
    user_id: str,
    meeting_id: str,
    filter: str | None = None,
    limit: int | None = None,
) -> list[dict[str, Any]]:
    """Transcripts of one meeting. With ``limit`` only the first page is fetched."""
    return await _list(
        client,
        f"/users/{user_id}/onlineMeetings/{meeting_id}/transcripts",
        filter,
        limit,
    )


async def list_user_transcripts(
    client: GraphClient,
    user_id: str,
    filter: str | None = None,
    limit: int | None = None,
) -> list[dict[str, Any]]:
    """Transcripts of every meeting organized by ``user_id``."""
    return await _list(
        client,
        f"/users/{user_id}/onlineMeetings/getAllTranscripts",
        filter,
        limit,
    )


async def get_transcript(
    client: GraphClient,
    user_id: str,
    meeting_id: str,
    transcript_id: str,
) -> dict[str, Any]:
    return await client.request(
        "GET",
        f"/users/{user_id}/onlineMeetings/{meeting_id}/transcripts/{transcript_id}",
    )


async def get_transcript_content(
    client: GraphClient,
    user_id: str,
    meeting_id: str,
    transcript_id: str,
    fmt: TranscriptFormat = "vtt",
) -> TranscriptContent:
    """Download transcript content as WebVTT (default) or plain text."""
    mime_type = _MIME_TYPES[fmt]
    content = await client.request(
        "GET",
        f"/users/{user_id}/onlineMeetings/{meeting_id}/transcripts/{transcript_id}/content",
        query={"$format": mime_type},
        headers={"Accept": mime_type},
    )
    if isinstance(content, bytes):
        content = content.decode("utf-8")
    logger.info(
        "transcripts.content.fetched",
        transcript_id=transcript_id,
        meeting_id=meeting_id,
        format=fmt,
        length=len(content or ""),
    )
    return TranscriptContent(
        transcript_id=transcript_id,
        meeting_id=meeting_id,
        format=fmt,
        mime_type=mime_type,
        file_name=f"transcript_{transcript_id}.{_EXTENSIONS[fmt]}",
        content=content or "",
    )


async def list_users(client: GraphClient, prefix: str | None = None) -> list[dict[str, Any]]:
    """Tenant users, optionally narrowed by displayName/userPrincipalName prefix."""
    query: dict[str, Any] = {}
    if prefix:
        escaped = prefix.replace("'", "''")
        query["$filter"] = (
            f"startsWith(displayName,'{escaped}') or startsWith(userPrincipalName,'{escaped}')"
        )
    return await client.request_all_pages("value", "GET", "/users", query=query)
