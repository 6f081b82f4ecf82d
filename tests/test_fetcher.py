"""Tests for the static HTTP fetcher.

Requests are served by an in-process httpx.MockTransport; nothing leaves
the test process.
"""

from collections.abc import Callable

import httpx
import pytest

from config.settings import GlobalConfig
from ratewatch.exceptions import BadUrlError, DecodeError, NetworkError, StaticFetchError
from ratewatch.fetcher import StaticPageFetcher


def make_fetcher(
    config: GlobalConfig,
    handler: Callable[[httpx.Request], httpx.Response],
) -> StaticPageFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return StaticPageFetcher(config, client=client)


class TestStaticFetchSuccess:
    """Test suite for successful retrieval."""

    @pytest.mark.asyncio
    async def test_returns_decoded_body(self, mock_config: GlobalConfig) -> None:
        fetcher = make_fetcher(
            mock_config,
            lambda request: httpx.Response(200, content="<h2>VA Loan Rates – 5.375%</h2>".encode()),
        )

        html = await fetcher.fetch("https://rates.test/page")

        assert html == "<h2>VA Loan Rates – 5.375%</h2>"

    @pytest.mark.asyncio
    async def test_sends_mobile_user_agent_and_accept_header(
        self, mock_config: GlobalConfig
    ) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text="ok")

        await make_fetcher(mock_config, handler).fetch("https://rates.test/page")

        (request,) = seen
        assert request.headers["User-Agent"] == mock_config.user_agent
        assert "iPhone" in request.headers["User-Agent"]
        assert request.headers["Accept"] == mock_config.accept_header

    @pytest.mark.asyncio
    async def test_caller_headers_override_defaults(self, mock_config: GlobalConfig) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text="ok")

        await make_fetcher(mock_config, handler).fetch(
            "https://rates.test/page", headers={"User-Agent": "custom/1.0", "X-Extra": "1"}
        )

        assert seen[0].headers["User-Agent"] == "custom/1.0"
        assert seen[0].headers["X-Extra"] == "1"
        assert seen[0].headers["Accept"] == mock_config.accept_header


class TestStaticFetchErrors:
    """Test suite for error mapping."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "url",
        ["", "not a url", "ftp://rates.test/file", "https://", "mailto:rates@bank.test"],
    )
    async def test_bad_url_rejected_without_request(
        self, mock_config: GlobalConfig, url: str
    ) -> None:
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200)

        with pytest.raises(BadUrlError):
            await make_fetcher(mock_config, handler).fetch(url)

        assert calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 403, 404, 500, 503])
    async def test_error_status_raises_network_error(
        self, mock_config: GlobalConfig, status: int
    ) -> None:
        fetcher = make_fetcher(mock_config, lambda request: httpx.Response(status, text="nope"))

        with pytest.raises(NetworkError) as exc_info:
            await fetcher.fetch("https://rates.test/page")

        assert exc_info.value.status_code == status
        assert exc_info.value.context["status_code"] == status

    @pytest.mark.asyncio
    async def test_transport_failure_raises_network_error(self, mock_config: GlobalConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(NetworkError) as exc_info:
            await make_fetcher(mock_config, handler).fetch("https://rates.test/page")

        assert exc_info.value.status_code is None
        assert "ConnectError" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_timeout_raises_network_error(self, mock_config: GlobalConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(NetworkError):
            await make_fetcher(mock_config, handler).fetch("https://rates.test/page")

    @pytest.mark.asyncio
    async def test_non_utf8_body_raises_decode_error(self, mock_config: GlobalConfig) -> None:
        fetcher = make_fetcher(
            mock_config, lambda request: httpx.Response(200, content=b"\xff\xfe\xfa rates")
        )

        with pytest.raises(DecodeError):
            await fetcher.fetch("https://rates.test/page")

    @pytest.mark.asyncio
    async def test_all_errors_share_static_base(self, mock_config: GlobalConfig) -> None:
        fetcher = make_fetcher(mock_config, lambda request: httpx.Response(500))

        with pytest.raises(StaticFetchError):
            await fetcher.fetch("https://rates.test/page")


class TestClientLifecycle:
    """Test suite for client ownership."""

    @pytest.mark.asyncio
    async def test_injected_client_not_closed(self, mock_config: GlobalConfig) -> None:
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))

        async with StaticPageFetcher(mock_config, client=client):
            pass

        assert not client.is_closed
        await client.aclose()

    @pytest.mark.asyncio
    async def test_owned_client_created_lazily_and_closed(self, mock_config: GlobalConfig) -> None:
        fetcher = StaticPageFetcher(mock_config)
        client = fetcher._get_client()

        assert fetcher._get_client() is client
        assert client.timeout.read == mock_config.request_timeout_ms / 1000
        assert client.follow_redirects

        await fetcher.close()
        assert client.is_closed
