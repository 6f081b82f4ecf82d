"""RateWatch Entry Point.

This module serves as the bootstrap and orchestration layer.
It contains NO business logic - all functional code resides in /ratewatch.

Responsibilities:
    1. Load and validate configuration
    2. Initialize logging infrastructure (fail-fast on error)
    3. Validate the loan parameters for this run
    4. Run one aggregation cycle and the canonical history refresh
    5. Handle top-level exceptions with graceful shutdown

Usage:
    python main.py
    # or, once installed
    ratewatch
"""

import asyncio
import sys
from typing import NoReturn

from loguru import logger

from config.settings import GlobalConfig, get_config
from ratewatch.exceptions import (
    CatalogLoadError,
    LoanParameterError,
    LoggingInitializationError,
    RateWatchError,
)
from ratewatch.logger import configure_logging
from ratewatch.models import Institution, LoanParameters, load_catalog
from ratewatch.validator import validate


def _load_parameters(config: GlobalConfig) -> LoanParameters:
    """Validate the configured loan values before any network work.

    Raises:
        SystemExit: With code 2 if the values are rejected.
    """
    try:
        parameters = validate(
            config.default_purchase_price,
            config.default_down_payment,
            config.default_zip_code,
        )
    except LoanParameterError as exc:
        logger.critical(
            "Invalid loan parameters - fix DEFAULT_PURCHASE_PRICE, "
            "DEFAULT_DOWN_PAYMENT or DEFAULT_ZIP_CODE",
            error_type=type(exc).__name__,
            message=exc.message,
            context=exc.context,
        )
        sys.exit(2)

    logger.debug(
        "Loan parameters validated",
        purchase_price=parameters.purchase_price,
        down_payment=parameters.down_payment,
        zip_code=parameters.zip_code,
        loan_amount=parameters.loan_amount,
    )
    return parameters


def _select_institutions(config: GlobalConfig, catalog: list[Institution]) -> list[Institution]:
    """Opt in to every mortgage type of the configured institutions."""
    wanted = set(config.selected_institutions)
    unknown = wanted - {institution.name for institution in catalog}
    if unknown:
        logger.warning("Selected institutions not in catalog", unknown=sorted(unknown))

    for institution in catalog:
        if not wanted or institution.name in wanted:
            institution.select_all()
    return catalog


async def _run_pipeline(config: GlobalConfig, parameters: LoanParameters) -> int:
    """Execute one aggregation cycle followed by the history refresh.

    Args:
        config: The validated GlobalConfig instance.
        parameters: Validated loan parameters.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    from ratewatch.aggregator import RateAggregator
    from ratewatch.fetcher import StaticPageFetcher
    from ratewatch.history import CanonicalRateTracker, HistoryStore

    catalog = _select_institutions(config, load_catalog(config.catalog_path))

    logger.info(
        "Pipeline execution started",
        app_name=config.app_name,
        environment=config.environment,
        institutions=sum(1 for institution in catalog if institution.has_selection),
    )

    # Phase 1: Fan-out aggregation
    aggregator = RateAggregator(config)
    aggregator.bind(catalog)
    snapshot = await aggregator.aggregate(catalog, parameters, force_fetch=True)

    for bank_name in snapshot.bank_names:
        quotes = snapshot.rates_for(bank_name)
        logger.info(
            "Bank rates",
            bank=bank_name,
            quotes=len(quotes),
            types=[quote.mortgage_type for quote in quotes],
        )

    summary = aggregator.get_fetch_summary()
    logger.info("Fetch summary", counts=summary["counts"], total_quotes=summary["total_quotes"])

    # Phase 2: Canonical history refresh (non-fatal)
    async with StaticPageFetcher(config) as fetcher:
        tracker = CanonicalRateTracker(fetcher, HistoryStore(config.history_path), config)
        try:
            records = await tracker.refresh()
            logger.info("History updated", records=len(records), path=str(config.history_path))
        except RateWatchError as exc:
            logger.error(
                "History refresh failed",
                error_type=type(exc).__name__,
                message=exc.message,
            )

    if snapshot.quote_count == 0:
        logger.warning("No rates collected from any institution")

    logger.info("Pipeline execution completed successfully")
    return 0


def _handle_fatal_error(exc: Exception) -> NoReturn:
    """Handle fatal errors with structured logging and graceful exit.

    Args:
        exc: The exception that caused the fatal error.
    """
    if isinstance(exc, CatalogLoadError):
        logger.critical(
            "Institution catalog could not be loaded",
            message=exc.message,
            context=exc.context,
        )
        sys.exit(1)

    if isinstance(exc, RateWatchError):
        logger.critical(
            "Fatal application error",
            error_type=type(exc).__name__,
            message=exc.message,
            context=exc.context,
        )
        sys.exit(1)

    # Unexpected error - log full traceback
    logger.exception("Unexpected fatal error", error=str(exc))
    sys.exit(1)


def main() -> int:
    """Application entry point.

    Bootstraps the logging infrastructure, validates configuration and
    loan parameters, and runs the async pipeline.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    # Step 1: Load configuration (validates via Pydantic)
    try:
        config = get_config()
    except Exception as exc:
        # Cannot log yet - print to stderr
        print(f"FATAL: Configuration loading failed: {exc}", file=sys.stderr)
        return 1

    # Step 2: Initialize logging (fail-fast)
    try:
        configure_logging(config)
    except LoggingInitializationError as exc:
        print(f"FATAL: {exc}", file=sys.stderr)
        return 1

    # Step 3: Validate loan parameters
    parameters = _load_parameters(config)

    # Step 4: Execute async pipeline
    try:
        return asyncio.run(_run_pipeline(config, parameters))
    except KeyboardInterrupt:
        logger.warning("Pipeline interrupted by user (Ctrl+C)")
        return 130  # Standard Unix SIGINT exit code
    except Exception as exc:
        _handle_fatal_error(exc)


if __name__ == "__main__":
    sys.exit(main())
