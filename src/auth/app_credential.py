"""MSAL application credential (client credentials grant) for app-only Graph access.

Change-notification subscriptions on transcripts require application
permissions (OnlineMeetingTranscript.Read.All), so there is no signed-in user:
tokens come from the tenant's token endpoint with the app's client secret.
MSAL keeps the token in its in-memory cache and only refreshes it near expiry.
"""

import time
from typing import Any

from azure.core.credentials import AccessToken, TokenCredential
import msal

GRAPH_DEFAULT_SCOPE = "https://graph.microsoft.com/.default"


class MSALAppCredential(TokenCredential):
    """TokenCredential backed by msal.ConfidentialClientApplication."""

    def __init__(self, tenant_id: str, client_id: str, client_secret: str):
        self._tenant_id = tenant_id
        self._client_id = client_id
        authority = f"https://login.microsoftonline.com/{tenant_id}"
        self._app = msal.ConfidentialClientApplication(
            client_id=client_id,
            client_credential=client_secret,
            authority=authority,
        )

    def get_token(self, *scopes: str, **kwargs: Any) -> AccessToken:
        scopes_list = list(scopes) if scopes else [GRAPH_DEFAULT_SCOPE]
        # Served from MSAL's cache until the token is close to expiry
        result = self._app.acquire_token_for_client(scopes=scopes_list)
        if "access_token" not in result:
            raise RuntimeError(
                result.get("error_description", result.get("error", "Client credentials flow failed"))
            )
        expires_on = int(time.time()) + int(result.get("expires_in", 0))
        return AccessToken(token=result["access_token"], expires_on=expires_on)


def get_app_credential(tenant_id: str, client_id: str, client_secret: str) -> TokenCredential:
    """Return a TokenCredential for the given app registration (use with GraphClient)."""
    return MSALAppCredential(
        tenant_id=tenant_id,
        client_id=client_id,
        client_secret=client_secret,
    )
