"""Async Microsoft Graph REST client: authenticated requests and @odata.nextLink pagination."""

import asyncio
import time
from typing import Any

import httpx
from azure.core.credentials import AccessToken, TokenCredential

from src.auth import GRAPH_DEFAULT_SCOPE
from src.config import GRAPH_BASE_URL, GRAPH_PAGE_SIZE, GRAPH_TIMEOUT_SECONDS
from src.errors import GraphApiError
from src.utils.logger import BoundLogger, get_logger

NEXT_LINK_FIELD = "@odata.nextLink"
PAGE_SIZE_PARAM = "$top"

# Refresh the bearer token this many seconds before it expires
_TOKEN_REFRESH_MARGIN_SECONDS = 60


def _error_details(response: httpx.Response) -> tuple[str | None, str, Any]:
    """Extract (code, message, body) from a Graph error response."""
    try:
        body = response.json()
    except ValueError:
        text = response.text
        return None, text or response.reason_phrase, text
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("code"), error.get("message") or response.reason_phrase, body
    return None, response.reason_phrase, body


class GraphClient:
    """Thin Graph client over httpx.AsyncClient.

    Every failure, HTTP status or network fault, surfaces as GraphApiError.
    """

    def __init__(
        self,
        credential: TokenCredential | None = None,
        *,
        base_url: str = GRAPH_BASE_URL,
        http_client: httpx.AsyncClient | None = None,
        page_size: int = GRAPH_PAGE_SIZE,
        logger: BoundLogger | None = None,
    ):
        self._credential = credential
        self._base_url = base_url.rstrip("/")
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(GRAPH_TIMEOUT_SECONDS),
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
        )
        self._page_size = page_size
        self._token: AccessToken | None = None
        self._token_lock = asyncio.Lock()
        self._logger = logger or get_logger("teams_transcripts.graph.client")

    @property
    def base_url(self) -> str:
        return self._base_url

    async def _authorization_header(self) -> dict[str, str]:
        if self._credential is None:
            return {}
        async with self._token_lock:
            now = int(time.time())
            if self._token is None or self._token.expires_on - _TOKEN_REFRESH_MARGIN_SECONDS <= now:
                # MSAL performs blocking network I/O
                self._token = await asyncio.to_thread(
                    self._credential.get_token, GRAPH_DEFAULT_SCOPE
                )
            return {"Authorization": f"Bearer {self._token.token}"}

    async def request(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
        query: dict[str, Any] | None = None,
        override_uri: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Send one request and return parsed JSON, text for non-JSON bodies, or None when empty."""
        url = override_uri or f"{self._base_url}{path}"
        request_headers = {"Content-Type": "application/json"}
        request_headers.update(headers or {})
        try:
            request_headers.update(await self._authorization_header())
        except Exception as e:
            self._logger.error("graph.request.auth_error", method=method, url=url, error=str(e))
            raise GraphApiError(
                f"Could not acquire access token: {e}",
                method=method,
                url=url,
            ) from e

        try:
            response = await self._http.request(
                method,
                url,
                params=query or None,
                json=body if body else None,
                headers=request_headers,
            )
        except httpx.HTTPError as e:
            self._logger.error(
                "graph.request.transport_error",
                method=method,
                url=url,
                error=str(e) or repr(e),
                error_type=type(e).__name__,
            )
            raise GraphApiError(
                str(e) or type(e).__name__,
                method=method,
                url=url,
            ) from e

        if response.is_error:
            code, message, error_body = _error_details(response)
            log = self._logger.warning if response.status_code == 404 else self._logger.error
            log(
                "graph.request.error",
                method=method,
                url=url,
                status_code=response.status_code,
                code=code,
                error=message,
            )
            raise GraphApiError(
                message,
                status_code=response.status_code,
                code=code,
                method=method,
                url=url,
                body=error_body,
            )

        self._logger.debug(
            "graph.request.ok",
            method=method,
            url=url,
            status_code=response.status_code,
        )
        if response.status_code == 204 or not response.content:
            return None
        content_type = response.headers.get("content-type", "")
        if "json" in content_type:
            return response.json()
        return response.text

    async def request_all_pages(
        self,
        collection_field: str,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
        query: dict[str, Any] | None = None,
    ) -> list[Any]:
        """Follow @odata.nextLink until exhausted, concatenating ``collection_field`` of every page.

        The page-size hint only goes on the first request; a server cursor
        already encodes paging state and is requested as-is.
        """
        items: list[Any] = []
        first_query = dict(query or {})
        first_query[PAGE_SIZE_PARAM] = self._page_size
        next_link: str | None = None
        pages = 0
        while True:
            if next_link is None:
                page = await self.request(method, path, body, first_query)
            else:
                page = await self.request(method, path, body, None, override_uri=next_link)
            pages += 1
            page = page if isinstance(page, dict) else {}
            items.extend(page.get(collection_field) or [])
            next_link = page.get(NEXT_LINK_FIELD)
            if not next_link:
                break
        self._logger.debug(
            "graph.request_all_pages.done",
            path=path,
            pages=pages,
            count=len(items),
        )
        return items

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()

    async def __aenter__(self) -> "GraphClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
