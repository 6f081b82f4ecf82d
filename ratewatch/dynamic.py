"""Scripted form filling and rate extraction for JavaScript-rendered pages.

Some institutions only show rates after their client-side calculator has
run with the borrower's numbers. For those, DynamicPageFetcher drives a
Playwright page through four explicit stages:

    LOAD     navigate to the rate page and wait for the load event
    SETTLE   wait `settle_delay_sec` for the frontend framework to paint
    FILL     inject FILL_FORM_JS: locate fields by prioritized selector
             candidates, set values, dispatch input/change/blur, click the
             recalculate control
    EXTRACT  wait `recalc_delay_sec`, then inject the profile's extraction
             script and read back raw rows

The grace intervals are configuration, not constants, because they are
the most fragile assumption in this path.

Failure policy:
    - Navigation errors propagate to the aggregator's institution boundary.
    - FormFieldNotFoundError and ScriptExecutionError are soft: they are
      logged and the institution contributes zero rates.
    - The page is closed on every exit path, including cancellation.

Scripts receive their inputs through Playwright's evaluate argument rather
than string interpolation, so loan values never need JavaScript escaping.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from urllib.parse import urlsplit, urlunsplit

from playwright.async_api import Page
from pydantic import ValidationError

from config.settings import GlobalConfig, get_config
from ratewatch.browser import BrowserManager
from ratewatch.exceptions import FormFieldNotFoundError, ScriptExecutionError
from ratewatch.extractors import build_quotes
from ratewatch.logger import get_logger
from ratewatch.models import BankRate, Institution, LoanParameters, RawRate
from ratewatch.normalizer import NormalizeTable

log = get_logger(__name__)


# ---------------------------------------------------------------------------
# Injected scripts
# ---------------------------------------------------------------------------

# Diagnostics only: collects percentage-looking text so a selector drift can
# be diagnosed from the logs. It never produces rate rows.
_PERCENT_SCAN_JS = """
    const scanPercentages = () => {
        const pattern = /\\d+\\.\\d+%/;
        const samples = [];
        for (const el of document.body ? document.body.querySelectorAll('*') : []) {
            if (el.children.length > 0) continue;
            const text = (el.textContent || '').trim();
            const match = text.match(pattern);
            if (!match) continue;
            let context = '';
            let parent = el.parentElement;
            while (parent && parent !== document.body) {
                const parentText = parent.textContent || '';
                if (parentText.includes('Fixed') || parentText.includes('ARM')) {
                    context = parentText.trim().replace(/\\s+/g, ' ').substring(0, 100);
                    break;
                }
                parent = parent.parentElement;
            }
            samples.push({ rate: match[0], context: context || text.substring(0, 50) });
            if (samples.length >= 10) break;
        }
        return samples;
    };
"""

FILL_FORM_JS = """
async ({ fields, submitSelectors, submitTexts, submitDelayMs }) => {
    const query = (selector) => {
        try {
            return document.querySelector(selector);
        } catch (error) {
            return null;
        }
    };

    const setValue = (element, value) => {
        const proto = Object.getPrototypeOf(element);
        const descriptor = proto ? Object.getOwnPropertyDescriptor(proto, 'value') : null;
        if (descriptor && descriptor.set) {
            descriptor.set.call(element, value);
        } else {
            element.value = value;
        }
        ['input', 'change', 'blur'].forEach((type) => {
            element.dispatchEvent(new Event(type, { bubbles: true }));
        });
    };

    const filled = [];
    const missing = [];
    for (const field of fields) {
        let element = null;
        let matched = null;
        for (const selector of field.selectors) {
            element = query(selector);
            if (element) {
                matched = selector;
                break;
            }
        }
        if (!element) {
            missing.push(field.name);
            continue;
        }
        element.focus();
        setValue(element, field.value);
        filled.push({ name: field.name, selector: matched });
    }

    let submitted = null;
    if (filled.length > 0) {
        if (submitDelayMs > 0) {
            await new Promise((resolve) => setTimeout(resolve, submitDelayMs));
        }
        for (const selector of submitSelectors) {
            const button = query(selector);
            if (button) {
                button.click();
                submitted = selector;
                break;
            }
        }
        if (!submitted && submitTexts.length > 0) {
            const candidates = document.querySelectorAll('button, input[type="submit"], a[role="button"]');
            for (const button of candidates) {
                const label = (button.textContent || button.value || '').trim();
                if (submitTexts.some((text) => label.includes(text))) {
                    button.click();
                    submitted = 'text:' + label;
                    break;
                }
            }
        }
    }

    return { filled, missing, submitted };
}
"""

EXTRACT_ROWS_JS = """
({ rowSelectors, nameAttribute, rateSelectors, aprSelectors, pointsSelectors, placeholder }) => {
/*PERCENT_SCAN*/
    const firstText = (row, selectors) => {
        for (const selector of selectors) {
            let element = null;
            try {
                element = row.querySelector(selector);
            } catch (error) {
                continue;
            }
            if (element && element.textContent.trim()) {
                return element.textContent.trim();
            }
        }
        return placeholder;
    };

    let rows = [];
    let strategy = null;
    for (const selector of rowSelectors) {
        try {
            rows = Array.from(document.querySelectorAll(selector));
        } catch (error) {
            rows = [];
        }
        if (rows.length > 0) {
            strategy = selector;
            break;
        }
    }

    if (rows.length === 0) {
        return { rates: [], strategy: null, debug: { percentages: scanPercentages() } };
    }

    const rates = [];
    for (const row of rows) {
        const productName = row.getAttribute(nameAttribute) || 'Unknown';
        const interestRate = firstText(row, rateSelectors);
        const apr = firstText(row, aprSelectors);
        const points = firstText(row, pointsSelectors);
        if (interestRate === placeholder && apr === placeholder && points === placeholder) {
            continue;
        }
        rates.push({ productName, interestRate, apr, points });
    }
    return { rates, strategy, debug: { rows: rows.length } };
}
""".replace("/*PERCENT_SCAN*/", _PERCENT_SCAN_JS)

EXTRACT_TABLE_JS = """
({ includeKeywords, headerKeywords, minCells, placeholder }) => {
/*PERCENT_SCAN*/
    const rates = [];
    const tableRows = document.querySelectorAll('tr');
    for (const row of tableRows) {
        const rowText = (row.textContent || '').trim();
        if (!rowText || headerKeywords.some((keyword) => rowText.includes(keyword))) {
            continue;
        }
        if (!includeKeywords.some((keyword) => rowText.includes(keyword))) {
            continue;
        }
        const cells = row.querySelectorAll('td');
        if (cells.length < minCells) {
            continue;
        }
        rates.push({
            productName: cells[0].textContent.trim(),
            interestRate: cells[1].textContent.trim(),
            apr: cells[2].textContent.trim(),
            points: placeholder,
        });
    }

    if (rates.length === 0) {
        return { rates: [], strategy: null, debug: { percentages: scanPercentages() } };
    }
    return { rates, strategy: 'tr', debug: { rows: tableRows.length } };
}
""".replace("/*PERCENT_SCAN*/", _PERCENT_SCAN_JS)


# ---------------------------------------------------------------------------
# Form profiles
# ---------------------------------------------------------------------------

PLACEHOLDER = "N/A"


class FetchStage(StrEnum):
    """Stages of one scripted fetch, in order."""

    LOAD = "load"
    SETTLE = "settle"
    FILL = "fill"
    EXTRACT = "extract"
    DONE = "done"


@dataclass(frozen=True)
class FormField:
    """One calculator input.

    Attributes:
        name: LoanParameters attribute supplying the value.
        selectors: Candidate CSS selectors, first match wins.
        required: Whether a missing field aborts the fill.
    """

    name: str
    selectors: tuple[str, ...]
    required: bool = False


@dataclass(frozen=True)
class RowExtraction:
    """Extraction from repeated row elements carrying a product attribute."""

    row_selectors: tuple[str, ...]
    rate_selectors: tuple[str, ...]
    apr_selectors: tuple[str, ...]
    points_selectors: tuple[str, ...]
    name_attribute: str = "data-product-name"

    @property
    def script(self) -> str:
        return EXTRACT_ROWS_JS

    def script_arg(self) -> dict[str, Any]:
        return {
            "rowSelectors": list(self.row_selectors),
            "nameAttribute": self.name_attribute,
            "rateSelectors": list(self.rate_selectors),
            "aprSelectors": list(self.apr_selectors),
            "pointsSelectors": list(self.points_selectors),
            "placeholder": PLACEHOLDER,
        }


@dataclass(frozen=True)
class TableExtraction:
    """Extraction from plain table rows: name, rate, APR columns."""

    include_keywords: tuple[str, ...] = ("Fixed", "FHA", "ARM", "Jumbo")
    header_keywords: tuple[str, ...] = ("Product", "Interest Rate", "APR")
    min_cells: int = 3

    @property
    def script(self) -> str:
        return EXTRACT_TABLE_JS

    def script_arg(self) -> dict[str, Any]:
        return {
            "includeKeywords": list(self.include_keywords),
            "headerKeywords": list(self.header_keywords),
            "minCells": self.min_cells,
            "placeholder": PLACEHOLDER,
        }


@dataclass(frozen=True)
class FormProfile:
    """Everything the dynamic fetcher needs to know about one calculator.

    Attributes:
        fields: Inputs to fill, in order.
        extraction: How to read rows back after recalculation.
        submit_selectors: Candidate selectors for the recalculate control.
        submit_texts: Button labels tried when no submit selector matches.
        submit_delay_ms: In-page wait between filling and clicking.
        query_template: Replaces the base URL's query string when set;
            formatted with the LoanParameters fields.
    """

    fields: tuple[FormField, ...]
    extraction: RowExtraction | TableExtraction
    submit_selectors: tuple[str, ...] = ()
    submit_texts: tuple[str, ...] = ()
    submit_delay_ms: int = 0
    query_template: str | None = None

    def navigation_url(self, base_url: str, parameters: LoanParameters) -> str:
        """URL to load for these parameters."""
        if self.query_template is None:
            return base_url
        parts = urlsplit(base_url)
        query = self.query_template.format(**parameters.model_dump())
        return urlunsplit((parts.scheme, parts.netloc, parts.path, query, ""))

    def fill_arg(self, parameters: LoanParameters) -> dict[str, Any]:
        """Argument passed to FILL_FORM_JS."""
        values = parameters.model_dump()
        return {
            "fields": [
                {"name": f.name, "selectors": list(f.selectors), "value": str(values[f.name])}
                for f in self.fields
            ],
            "submitSelectors": list(self.submit_selectors),
            "submitTexts": list(self.submit_texts),
            "submitDelayMs": self.submit_delay_ms,
        }


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------


@dataclass
class _StageTracker:
    institution: str
    stage: FetchStage = FetchStage.LOAD
    history: list[FetchStage] = field(default_factory=list)

    def enter(self, stage: FetchStage) -> None:
        self.stage = stage
        self.history.append(stage)
        log.debug("Dynamic fetch stage", institution=self.institution, stage=stage.value)


class DynamicPageFetcher:
    """Runs the LOAD → SETTLE → FILL → EXTRACT protocol on a shared browser.

    Attributes:
        browser: Initialized BrowserManager; one page is opened per call.
        config: GlobalConfig with grace intervals and script timeout.

    Example:
        async with BrowserManager.create() as browser:
            fetcher = DynamicPageFetcher(browser)
            quotes = await fetcher.fetch_via_scripted_form(
                institution, parameters, BANK_OF_AMERICA_PROFILE, table
            )
    """

    def __init__(
        self,
        browser: BrowserManager,
        config: GlobalConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.browser = browser
        self.config = config or get_config()
        self._clock = clock or (lambda: datetime.now(UTC))
        self.last_stages: list[FetchStage] = []

    async def fetch_via_scripted_form(
        self,
        institution: Institution,
        parameters: LoanParameters,
        profile: FormProfile,
        normalize_table: NormalizeTable,
    ) -> list[BankRate]:
        """Fill the institution's calculator and read back selected quotes.

        Args:
            institution: Institution to fetch; its selection filters results.
            parameters: Loan values typed into the form.
            profile: The institution's form and extraction description.
            normalize_table: The institution's product-name table.

        Returns:
            Quotes for selected mortgage types (empty on soft failure).

        Raises:
            NavigationTimeoutError: If the page does not finish loading.
            NavigationError: If the page cannot be loaded.
            BrowserInitializationError: If the browser context is gone.
        """
        tracker = _StageTracker(institution=institution.name)
        self.last_stages = tracker.history
        page = await self.browser.new_page(institution.name)

        try:
            tracker.enter(FetchStage.LOAD)
            url = profile.navigation_url(institution.base_url, parameters)
            await self.browser.navigate(page, url, institution=institution.name)

            tracker.enter(FetchStage.SETTLE)
            await asyncio.sleep(self.config.settle_delay_sec)

            try:
                tracker.enter(FetchStage.FILL)
                await self._fill_form(page, institution, parameters, profile)

                tracker.enter(FetchStage.EXTRACT)
                await asyncio.sleep(self.config.recalc_delay_sec)
                rows = await self._extract_rows(page, institution, profile)

            except FormFieldNotFoundError as exc:
                log.warning(
                    "Form fields not found - no rates for institution",
                    institution=institution.name,
                    missing=exc.fields,
                )
                return []
            except ScriptExecutionError as exc:
                log.warning(
                    "Script execution failed - no rates for institution",
                    institution=institution.name,
                    stage=exc.stage,
                    error=exc.message,
                )
                return []

            quotes = build_quotes(institution, rows, normalize_table, self._clock())
            tracker.enter(FetchStage.DONE)

            log.info(
                "Dynamic fetch complete",
                institution=institution.name,
                extracted=len(rows),
                selected=len(quotes),
            )
            return quotes

        finally:
            await self._close_page(page, institution.name)

    async def _run_script(
        self,
        page: Page,
        institution: Institution,
        stage: FetchStage,
        script: str,
        arg: dict[str, Any],
    ) -> Any:
        """Evaluate a script with the per-stage timeout.

        Raises:
            ScriptExecutionError: If the script throws or times out.
        """
        timeout = self.config.script_timeout_ms / 1000
        try:
            return await asyncio.wait_for(page.evaluate(script, arg), timeout=timeout)
        except TimeoutError as exc:
            raise ScriptExecutionError(
                institution=institution.name,
                stage=stage.value,
                reason=f"Timed out after {self.config.script_timeout_ms}ms",
            ) from exc
        except Exception as exc:
            raise ScriptExecutionError(
                institution=institution.name,
                stage=stage.value,
                reason=f"{type(exc).__name__}: {exc}",
            ) from exc

    async def _fill_form(
        self,
        page: Page,
        institution: Institution,
        parameters: LoanParameters,
        profile: FormProfile,
    ) -> None:
        """Fill and submit the calculator.

        Raises:
            FormFieldNotFoundError: If a required field is missing or no field matched.
            ScriptExecutionError: If the script fails or returns garbage.
        """
        log.info(
            "Filling rate form",
            institution=institution.name,
            purchase_price=parameters.purchase_price,
            down_payment=parameters.down_payment,
            zip_code=parameters.zip_code,
        )
        result = await self._run_script(
            page, institution, FetchStage.FILL, FILL_FORM_JS, profile.fill_arg(parameters)
        )

        if not isinstance(result, dict):
            raise ScriptExecutionError(
                institution=institution.name,
                stage=FetchStage.FILL.value,
                reason=f"Unexpected fill result: {result!r}",
            )

        filled = [entry.get("name") for entry in result.get("filled") or [] if isinstance(entry, dict)]
        missing = list(result.get("missing") or [])
        required = {f.name for f in profile.fields if f.required}
        missing_required = [name for name in missing if name in required]

        if not filled or missing_required:
            raise FormFieldNotFoundError(
                institution=institution.name,
                fields=missing_required or missing,
            )

        log.info(
            "Form filled",
            institution=institution.name,
            filled=filled,
            missing=missing,
            submitted=result.get("submitted"),
        )

    async def _extract_rows(
        self,
        page: Page,
        institution: Institution,
        profile: FormProfile,
    ) -> list[RawRate]:
        """Run the extraction script and convert its payload to RawRate rows.

        Raises:
            ScriptExecutionError: If the script fails or returns a non-object.
        """
        extraction = profile.extraction
        payload = await self._run_script(
            page, institution, FetchStage.EXTRACT, extraction.script, extraction.script_arg()
        )

        if not isinstance(payload, dict):
            raise ScriptExecutionError(
                institution=institution.name,
                stage=FetchStage.EXTRACT.value,
                reason=f"Unexpected extraction result: {type(payload).__name__}",
            )

        debug = payload.get("debug")
        raw_rows = payload.get("rates")
        if not isinstance(raw_rows, list):
            log.warning("Extraction returned no rates array", institution=institution.name, debug=debug)
            return []

        if not raw_rows:
            log.warning(
                "No structured rate rows found",
                institution=institution.name,
                debug=debug,
            )
            return []

        rows: list[RawRate] = []
        for entry in raw_rows:
            try:
                rows.append(
                    RawRate(
                        product_name=entry["productName"],
                        interest_rate=entry["interestRate"],
                        apr=entry["apr"],
                        points=entry["points"],
                    )
                )
            except (KeyError, TypeError, ValidationError):
                log.debug("Skipping incomplete rate row", institution=institution.name, row=entry)

        log.debug(
            "Rate rows extracted",
            institution=institution.name,
            strategy=payload.get("strategy"),
            rows=len(rows),
        )
        return rows

    async def _close_page(self, page: Page, institution_name: str) -> None:
        try:
            await page.close()
        except Exception as exc:
            log.warning("Error closing page", institution=institution_name, error=str(exc))
