"""Custom exception hierarchy for RateWatch.

This module defines domain-specific exceptions that provide semantic clarity
and enable targeted error handling throughout the application. Each exception
includes contextual information to aid debugging and observability.

Propagation:
    - LoanParameterError subclasses are user-facing and reach the caller.
    - Fetch, script and registry errors are raised inside a single
      institution's fetch and stop at the aggregator's institution boundary.
    - Infrastructure errors (logging, catalog, history) are startup or
      collaborator failures handled by the entry point.
"""

from datetime import UTC, datetime
from typing import Any


class RateWatchError(Exception):
    """Base exception for all RateWatch errors.

    Attributes:
        message: Human-readable error description.
        context: Optional dictionary with additional debugging information.
        timestamp: UTC timestamp when the exception was raised.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.message = message
        self.context = context or {}
        self.timestamp = datetime.now(UTC)
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format exception message with context for logging."""
        base = f"[{self.timestamp.isoformat()}] {self.message}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{base} | Context: {context_str}"
        return base


# ---------------------------------------------------------------------------
# Loan parameter validation (user-facing)
# ---------------------------------------------------------------------------


class LoanParameterError(RateWatchError):
    """Base class for rejected borrower inputs.

    These are the only pipeline errors surfaced directly to the caller,
    so the message is written to be shown to a user.
    """


class InvalidNumberError(LoanParameterError):
    """Raised when a price field does not parse as an integer."""

    def __init__(self, field: str, value: str) -> None:
        super().__init__(
            message=f"{field.replace('_', ' ').capitalize()} must be a whole number, got '{value}'",
            context={"field": field, "value": value},
        )
        self.field = field
        self.value = value


class NonPositivePriceError(LoanParameterError):
    """Raised when the purchase price is zero or negative."""

    def __init__(self, purchase_price: int) -> None:
        super().__init__(
            message=f"Purchase price must be greater than zero, got {purchase_price}",
            context={"purchase_price": purchase_price},
        )
        self.purchase_price = purchase_price


class NegativeDownPaymentError(LoanParameterError):
    """Raised when the down payment is negative."""

    def __init__(self, down_payment: int) -> None:
        super().__init__(
            message=f"Down payment cannot be negative, got {down_payment}",
            context={"down_payment": down_payment},
        )
        self.down_payment = down_payment


class InvalidZipError(LoanParameterError):
    """Raised when the ZIP code is not exactly five digits."""

    def __init__(self, zip_code: str) -> None:
        super().__init__(
            message=f"ZIP code must be exactly 5 digits, got '{zip_code}'",
            context={"zip_code": zip_code},
        )
        self.zip_code = zip_code


# ---------------------------------------------------------------------------
# Static fetch (recoverable per institution)
# ---------------------------------------------------------------------------


class StaticFetchError(RateWatchError):
    """Base class for static page retrieval failures."""


class BadUrlError(StaticFetchError):
    """Raised when a URL is malformed or uses an unsupported scheme."""

    def __init__(self, url: str, reason: str = "Malformed URL") -> None:
        super().__init__(
            message=f"Cannot fetch '{url}': {reason}",
            context={"url": url, "reason": reason},
        )
        self.url = url


class NetworkError(StaticFetchError):
    """Raised on transport failure or an HTTP error status.

    This is the only error the aggregator retries.
    """

    def __init__(self, url: str, reason: str, status_code: int | None = None) -> None:
        super().__init__(
            message=f"Request to '{url}' failed: {reason}",
            context={"url": url, "reason": reason, "status_code": status_code},
        )
        self.url = url
        self.status_code = status_code


class DecodeError(StaticFetchError):
    """Raised when a response body is not decodable as UTF-8 text."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(
            message=f"Response from '{url}' is not UTF-8 text: {reason}",
            context={"url": url, "reason": reason},
        )
        self.url = url


# ---------------------------------------------------------------------------
# Dynamic fetch (recoverable per institution)
# ---------------------------------------------------------------------------


class DynamicFetchError(RateWatchError):
    """Base class for scripted browser failures."""


class BrowserInitializationError(DynamicFetchError):
    """Raised when browser instance fails to initialize.

    Common causes include missing Playwright browsers, resource constraints,
    or conflicting browser processes.
    """

    def __init__(self, reason: str, browser_type: str = "chromium") -> None:
        super().__init__(
            message=f"Failed to initialize {browser_type} browser: {reason}",
            context={"browser_type": browser_type, "reason": reason},
        )


class NavigationError(DynamicFetchError):
    """Raised when page navigation fails or returns an error status."""

    def __init__(self, url: str, reason: str, status_code: int | None = None) -> None:
        super().__init__(
            message=f"Navigation to '{url}' failed: {reason}",
            context={"url": url, "reason": reason, "status_code": status_code},
        )
        self.url = url
        self.status_code = status_code


class NavigationTimeoutError(NavigationError):
    """Raised when the navigation-finished signal does not arrive in time."""

    def __init__(self, url: str, timeout_ms: int) -> None:
        super().__init__(url=url, reason=f"Navigation timeout after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


class FormFieldNotFoundError(DynamicFetchError):
    """Raised when no candidate selector matches a form field.

    A soft failure: the institution contributes zero rates.
    """

    def __init__(self, institution: str, fields: list[str]) -> None:
        super().__init__(
            message=f"Form fields not found for {institution}: {', '.join(fields) or 'none matched'}",
            context={"institution": institution, "fields": fields},
        )
        self.institution = institution
        self.fields = fields


class ScriptExecutionError(DynamicFetchError):
    """Raised when an injected script throws, times out or returns garbage."""

    def __init__(self, institution: str, stage: str, reason: str) -> None:
        super().__init__(
            message=f"Script failed during {stage} for {institution}: {reason}",
            context={"institution": institution, "stage": stage, "reason": reason},
        )
        self.institution = institution
        self.stage = stage


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class UnsupportedInstitutionError(RateWatchError):
    """Raised when no extraction strategy is registered for an institution."""

    def __init__(self, institution: str) -> None:
        super().__init__(
            message=f"No extraction strategy registered for '{institution}'",
            context={"institution": institution},
        )
        self.institution = institution


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


class CatalogLoadError(RateWatchError):
    """Raised when the institution catalog cannot be read or validated."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(
            message=f"Failed to load institution catalog '{path}': {reason}",
            context={"path": path, "reason": reason},
        )


class HistoryWriteError(RateWatchError):
    """Raised when historical records cannot be appended."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(
            message=f"Failed to append rate history at '{path}': {reason}",
            context={"path": path, "reason": reason},
        )


class LoggingInitializationError(RateWatchError):
    """Raised when the logging system fails to initialize.

    This is a startup-blocking error - the application cannot proceed
    without a functioning logging infrastructure.
    """

    def __init__(self, log_dir: str, reason: str) -> None:
        super().__init__(
            message=f"Failed to initialize logging at '{log_dir}': {reason}",
            context={"log_dir": log_dir, "reason": reason},
        )
