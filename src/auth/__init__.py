"""Application (client credentials) authentication for Graph API access."""

from src.auth.app_credential import (
    GRAPH_DEFAULT_SCOPE,
    get_app_credential,
)

__all__ = [
    "GRAPH_DEFAULT_SCOPE",
    "get_app_credential",
]
