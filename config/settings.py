"""Global configuration management using pydantic-settings.

This module implements the 12-factor app methodology for configuration,
loading values from environment variables with strict type validation.
The Singleton pattern ensures consistent configuration state across the application.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CATALOG_PATH = Path(__file__).resolve().parent.parent / "ratewatch" / "data" / "institutions.json"


class GlobalConfig(BaseSettings):
    """Centralized configuration with environment variable binding.

    All configuration values are loaded from environment variables,
    with sensible defaults for development. Production deployments
    should override these via .env or environment injection.

    Attributes:
        app_name: Application identifier for logging.
        environment: Deployment environment.
        debug: Enable verbose debugging output.
        headless: Run the scripted browser without a window.
        log_level: Minimum log level for output filtering.
        log_dir: Directory path for structured JSON log files.
        log_rotation: Log file rotation interval.
        log_retention: Log file retention period.
        catalog_path: JSON institution catalog loaded at startup.
        history_path: Append-only CSV of canonical-source rate history.
        request_timeout_ms: Static HTTP request timeout.
        navigation_timeout_ms: Scripted browser navigation timeout.
        script_timeout_ms: Timeout for each injected script evaluation.
        settle_delay_sec: Grace interval between page load and form fill.
        recalc_delay_sec: Grace interval between form submit and extraction.
        max_concurrent_institutions: Semaphore limit for the fan-out.
        institution_timeout_sec: Ceiling for a single institution fetch.
        freshness_window_sec: Age below which a cached snapshot is reused.
        retry_max_attempts: Attempts for static fetches failing on the network.
        retry_base_delay_sec: Base delay for exponential backoff.
        retry_max_delay_sec: Maximum delay cap for backoff.
        user_agent: Mobile user agent sent by both fetch paths.
        accept_header: Accept header sent with static fetches.
        default_purchase_price: Purchase price text used by the CLI run.
        default_down_payment: Down payment text used by the CLI run.
        default_zip_code: ZIP code text used by the CLI run.
        canonical_source_url: Page scraped by the periodic history refresh.
        canonical_source_heading: Heading phrase selecting the history table.
        selected_institutions: Institutions opted in for the CLI run (empty = all).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Metadata
    app_name: str = Field(default="RateWatch", description="Application identifier")
    environment: Literal["development", "staging", "production", "test"] = Field(
        default="development", description="Deployment environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # Browser Configuration
    headless: bool = Field(default=True, description="Run browser in headless mode")

    # Logging Configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Minimum log level"
    )
    log_dir: Path = Field(default=Path("logs"), description="Log output directory")
    log_rotation: str = Field(default="1 week", description="Log rotation interval")
    log_retention: str = Field(default="1 month", description="Log retention period")

    # Catalog & History
    catalog_path: Path = Field(
        default=DEFAULT_CATALOG_PATH, description="Institution catalog JSON"
    )
    history_path: Path = Field(
        default=Path("data/rate_history.csv"), description="Rate history CSV"
    )

    # Timeouts
    request_timeout_ms: int = Field(
        default=30000, ge=1000, le=120000, description="Static request timeout in milliseconds"
    )
    navigation_timeout_ms: int = Field(
        default=30000, ge=1000, le=120000, description="Browser navigation timeout in milliseconds"
    )
    script_timeout_ms: int = Field(
        default=10000, ge=500, le=60000, description="Injected script timeout in milliseconds"
    )

    # Grace Intervals
    settle_delay_sec: float = Field(
        default=2.0, ge=0.0, le=30.0, description="Wait after load before filling the form"
    )
    recalc_delay_sec: float = Field(
        default=3.0, ge=0.0, le=30.0, description="Wait after submit before extracting"
    )

    # Fan-Out
    max_concurrent_institutions: int = Field(
        default=5, ge=1, le=20, description="Async semaphore limit"
    )
    institution_timeout_sec: float = Field(
        default=60.0, ge=1.0, le=600.0, description="Per-institution fetch ceiling"
    )

    # Snapshot Cache
    freshness_window_sec: float = Field(
        default=300.0, ge=0.0, le=86400.0, description="Snapshot freshness window"
    )

    # Resilience Parameters
    retry_max_attempts: int = Field(
        default=2, ge=1, le=10, description="Maximum attempts for static fetches"
    )
    retry_base_delay_sec: float = Field(
        default=1.0, ge=0.0, le=10.0, description="Base delay for exponential backoff"
    )
    retry_max_delay_sec: float = Field(
        default=10.0, ge=0.0, le=300.0, description="Maximum backoff delay"
    )

    # Request Headers - one mobile user agent for both fetch paths
    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
        ),
        min_length=1,
        description="User agent sent by the static fetcher and the scripted browser",
    )
    accept_header: str = Field(
        default="text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        description="Accept header for static fetches",
    )

    # Loan Parameter Defaults (validated like user input)
    default_purchase_price: str = Field(default="250000", description="Purchase price")
    default_down_payment: str = Field(default="50000", description="Down payment")
    default_zip_code: str = Field(default="95464", description="ZIP code")

    # Canonical Source (periodic history refresh)
    canonical_source_url: str = Field(
        default="https://www.navyfederal.org/loans-cards/mortgage/mortgage-rates.html",
        description="Canonical rate table page",
    )
    canonical_source_heading: str = Field(
        default="VA Loan Rates", description="Heading phrase of the tracked table"
    )

    # Selection
    selected_institutions: list[str] = Field(
        default_factory=list, description="Institutions to fetch (empty = all)"
    )

    @field_validator("log_dir", "catalog_path", "history_path", mode="before")
    @classmethod
    def ensure_path(cls, value: str | Path) -> Path:
        """Convert string paths to Path objects."""
        return Path(value) if isinstance(value, str) else value

    @field_validator("canonical_source_url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        """Reject canonical source URLs without an http(s) scheme."""
        if not value.startswith(("http://", "https://")):
            raise ValueError("canonical_source_url must start with http:// or https://")
        return value


@lru_cache(maxsize=1)
def get_config() -> GlobalConfig:
    """Retrieve the singleton GlobalConfig instance.

    Uses LRU cache to ensure single instantiation across the application lifecycle.

    Returns:
        GlobalConfig: The validated configuration instance.
    """
    return GlobalConfig()
