"""Static page retrieval over HTTP.

Institutions whose rates are present in server-rendered markup are fetched
with a single GET through httpx. Servers vary rate content by user agent and
bot detection, so every request carries a realistic browser User-Agent and an
HTML Accept header.

The fetcher performs exactly one request per call. Retry policy belongs to
the aggregator, which retries NetworkError only.
"""

from types import TracebackType
from typing import Self
from urllib.parse import urlsplit

import httpx

from config.settings import GlobalConfig, get_config
from ratewatch.exceptions import BadUrlError, DecodeError, NetworkError
from ratewatch.logger import get_logger

log = get_logger(__name__)


def _check_url(url: str) -> None:
    """Reject URLs httpx would fail on before any I/O happens.

    Raises:
        BadUrlError: If the scheme is not http(s) or the host is missing.
    """
    try:
        parts = urlsplit(url)
    except ValueError as exc:
        raise BadUrlError(url=url, reason=str(exc)) from exc

    if parts.scheme not in ("http", "https"):
        raise BadUrlError(url=url, reason=f"Unsupported scheme '{parts.scheme}'")
    if not parts.netloc:
        raise BadUrlError(url=url, reason="Missing host")


class StaticPageFetcher:
    """Fetches HTML documents with browser-like headers.

    Attributes:
        config: GlobalConfig instance for timeouts and headers.

    Example:
        async with StaticPageFetcher() as fetcher:
            html = await fetcher.fetch("https://example.com/rates")
    """

    def __init__(
        self,
        config: GlobalConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            config: Optional GlobalConfig. Uses singleton if not provided.
            client: Optional preconfigured client. When given, the caller
                owns it and `close()` leaves it open.
        """
        self.config = config or get_config()
        self._client = client
        self._owns_client = client is None

    @property
    def default_headers(self) -> dict[str, str]:
        """Headers sent with every request unless the caller overrides them."""
        return {
            "User-Agent": self.config.user_agent,
            "Accept": self.config.accept_header,
        }

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.config.request_timeout_ms / 1000,
                follow_redirects=True,
            )
        return self._client

    async def fetch(self, url: str, headers: dict[str, str] | None = None) -> str:
        """Retrieve a page as decoded HTML text.

        Args:
            url: Absolute http(s) URL.
            headers: Optional headers merged over the defaults.

        Returns:
            The response body decoded as UTF-8.

        Raises:
            BadUrlError: If the URL is malformed.
            NetworkError: On transport failure, timeout, or HTTP status >= 400.
            DecodeError: If the body is not valid UTF-8.
        """
        _check_url(url)

        request_headers = {**self.default_headers, **(headers or {})}
        log.debug("Fetching static page", url=url)

        try:
            response = await self._get_client().get(url, headers=request_headers)
        except httpx.InvalidURL as exc:
            raise BadUrlError(url=url, reason=str(exc)) from exc
        except httpx.HTTPError as exc:
            raise NetworkError(url=url, reason=f"{type(exc).__name__}: {exc}") from exc

        if response.status_code >= 400:
            raise NetworkError(
                url=url,
                reason=f"HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            html = response.content.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(url=url, reason=str(exc)) from exc

        log.info(
            "Static page fetched",
            url=url,
            status_code=response.status_code,
            size=len(html),
        )
        return html

    async def close(self) -> None:
        """Close the underlying client if this fetcher created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()
