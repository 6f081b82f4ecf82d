"""Pytest configuration and shared fixtures for the RateWatch test suite.

This module provides hermetic test infrastructure with the following guarantees:
- No external network requests (httpx.MockTransport, mocked Playwright pages)
- No waiting (grace intervals and backoff delays are zero)
- Isolated state (no cross-test contamination)

Design Rationale:
    Factory fixtures over static fixtures enable dynamic test case generation
    without code duplication. The mock_config fixture overrides the singleton
    GlobalConfig to prevent state leakage between tests.
"""

import json
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
from pytest_mock import MockerFixture

from config.settings import GlobalConfig
from ratewatch.models import Institution


@pytest.fixture
def mock_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> GlobalConfig:
    """Provide isolated GlobalConfig with safe test defaults.

    Overrides the lru_cache singleton to prevent state leakage between tests.
    Uses tmp_path for all file operations to avoid polluting the filesystem.

    Example:
        def test_something(mock_config: GlobalConfig) -> None:
            assert mock_config.settle_delay_sec == 0  # No waiting in tests
    """
    # Clear the lru_cache to force fresh instantiation
    from config.settings import get_config

    get_config.cache_clear()

    log_dir = tmp_path / "logs"
    log_dir.mkdir()

    # Override environment variables for test isolation
    test_env = {
        "APP_NAME": "RateWatch-Test",
        "ENVIRONMENT": "test",
        "DEBUG": "false",
        "HEADLESS": "true",
        "LOG_LEVEL": "DEBUG",
        "LOG_DIR": str(log_dir),
        "LOG_ROTATION": "1 day",
        "LOG_RETENTION": "1 day",
        "HISTORY_PATH": str(tmp_path / "history" / "rate_history.csv"),
        "REQUEST_TIMEOUT_MS": "5000",
        "NAVIGATION_TIMEOUT_MS": "5000",
        "SCRIPT_TIMEOUT_MS": "1000",
        "SETTLE_DELAY_SEC": "0",
        "RECALC_DELAY_SEC": "0",
        "MAX_CONCURRENT_INSTITUTIONS": "3",
        "INSTITUTION_TIMEOUT_SEC": "5",
        "FRESHNESS_WINDOW_SEC": "300",
        "RETRY_MAX_ATTEMPTS": "2",
        "RETRY_BASE_DELAY_SEC": "0",
        "RETRY_MAX_DELAY_SEC": "0",
        "CANONICAL_SOURCE_URL": "https://rates.test/mortgage-rates",
    }

    for key, value in test_env.items():
        monkeypatch.setenv(key, value)

    config = get_config()

    yield config

    # Cleanup: clear cache again after test
    get_config.cache_clear()


@pytest.fixture
def rate_table_html_factory() -> Callable[..., str]:
    """Factory fixture for server-rendered rate table pages.

    Each section becomes a `div.ratesTable` with an `h2` heading and a
    table whose body rows are (loan type, rate, points, APR).

    Example:
        html = rate_table_html_factory({"VA Loan Rates": [("30-year VA", "5.375%", "0.500", "5.789%")]})
    """

    def _generate_html(
        sections: dict[str, Iterable[tuple[str, ...]]],
        extra_body: str = "",
    ) -> str:
        blocks = []
        for heading, rows in sections.items():
            body = "".join(
                "<tr><th>{}</th>{}</tr>".format(
                    row[0], "".join(f"<td>{cell}</td>" for cell in row[1:])
                )
                for row in rows
            )
            blocks.append(
                f"""
                <div class="ratesTable">
                    <h2>{heading}</h2>
                    <table>
                        <thead><tr><th>Term</th><th>Rate</th><th>Points</th><th>APR</th></tr></thead>
                        <tbody>{body}</tbody>
                    </table>
                </div>
                """
            )

        return f"""
        <!DOCTYPE html>
        <html>
        <head><title>Mortgage Rates</title></head>
        <body>
            {"".join(blocks)}
            {extra_body}
        </body>
        </html>
        """

    return _generate_html


@pytest.fixture
def institution_factory() -> Callable[..., Institution]:
    """Factory fixture for catalog institutions with an optional selection."""

    def _create(
        name: str = "Test Bank",
        mortgage_types: list[str] | None = None,
        selected: Iterable[str] | None = None,
        url: str = "https://bank.test/rates",
    ) -> Institution:
        institution = Institution(
            name=name,
            url=url,
            mortgageTypes=mortgage_types or ["30-year Fixed", "15-year Fixed"],
            fields=[{"name": "interestRate", "label": "Interest Rate"}],
        )
        if selected is not None:
            institution.select(*selected)
        return institution

    return _create


@pytest.fixture
def catalog_file_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory fixture writing a catalog JSON file under tmp_path."""

    def _write(payload: Any, name: str = "institutions.json") -> Path:
        path = tmp_path / name
        text = payload if isinstance(payload, str) else json.dumps(payload)
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def mock_page(mocker: MockerFixture) -> MagicMock:
    """Provide mocked Playwright Page object.

    `evaluate` is an AsyncMock; tests set its side_effect to script the
    fill and extraction payloads in call order.
    """
    page = mocker.MagicMock()
    page.url = "https://bank.test/rates"
    page.goto = mocker.AsyncMock(return_value=mocker.MagicMock(status=200))
    page.evaluate = mocker.AsyncMock()
    page.close = mocker.AsyncMock()
    return page


@pytest.fixture
def mock_browser_manager(mocker: MockerFixture, mock_page: MagicMock) -> MagicMock:
    """Provide a mocked BrowserManager handing out `mock_page`."""
    manager = mocker.MagicMock()
    manager.new_page = mocker.AsyncMock(return_value=mock_page)
    manager.navigate = mocker.AsyncMock()
    return manager


# Pytest configuration
def pytest_configure(config: Any) -> None:
    """Configure pytest with custom markers and settings.

    Args:
        config: Pytest config object.
    """
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests requiring full stack",
    )
