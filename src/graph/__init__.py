"""Microsoft Graph REST access: client, pagination and transcript lookups."""

from src.graph.client import GraphClient, NEXT_LINK_FIELD

__all__ = [
    "GraphClient",
    "NEXT_LINK_FIELD",
]
