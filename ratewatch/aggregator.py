"""Concurrent fan-out across institutions with a barrier merge.

One aggregation cycle:
    1. Serve the cached snapshot when it is fresh and no refresh is forced.
    2. Publish a loading snapshot (previous rates, is_loading=True).
    3. Dispatch one task per institution with a non-empty selection,
       bounded by a semaphore and individually capped by a deadline.
    4. Wait for every task to settle, then build ONE new snapshot and swap
       it in. Readers never observe a partially merged state.

Each institution is an isolation boundary: any failure below it becomes
an empty contribution plus a logged, summarized outcome. Only
cancellation crosses it, in which case the browser is still shut down and
the previous snapshot is restored.

NetworkError is the only retried failure. Scripted form fills are not
idempotent enough to replay blindly, and validation errors never
improve on retry.
"""

import asyncio
import time
from collections import Counter
from collections.abc import Callable, Iterable
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from config.settings import GlobalConfig, get_config
from ratewatch.cache import SnapshotCache
from ratewatch.exceptions import NetworkError, UnsupportedInstitutionError
from ratewatch.fetcher import StaticPageFetcher
from ratewatch.logger import get_logger
from ratewatch.models import BankRate, Institution, LoanParameters, RateSnapshot
from ratewatch.registry import (
    BrowserFactory,
    FetchResources,
    StrategyBundle,
    StrategyRegistry,
    build_default_registry,
)

log = get_logger(__name__)

SnapshotListener = Callable[[RateSnapshot], None]


class FetchOutcome(StrEnum):
    OK = "ok"
    EMPTY = "empty"
    FAILED = "failed"
    UNSUPPORTED = "unsupported"


@dataclass
class InstitutionResult:
    """What one institution contributed to the last cycle."""

    institution: str
    outcome: FetchOutcome
    quotes: list[BankRate] = field(default_factory=list)
    error: str | None = None
    attempts: int = 0
    elapsed_sec: float = 0.0


class RateAggregator:
    """Fetches all selected institutions concurrently and publishes snapshots.

    Attributes:
        config: GlobalConfig for concurrency, deadlines and retry policy.
        registry: Strategy registry used to resolve institutions.
        cache: Holder of the current snapshot.

    Example:
        aggregator = RateAggregator()
        aggregator.bind(catalog)
        snapshot = await aggregator.aggregate(catalog, LoanParameters.default())
    """

    def __init__(
        self,
        config: GlobalConfig | None = None,
        registry: StrategyRegistry | None = None,
        static_fetcher: StaticPageFetcher | None = None,
        browser_factory: BrowserFactory | None = None,
        cache: SnapshotCache | None = None,
    ) -> None:
        """Initialize the aggregator.

        Args:
            config: Optional GlobalConfig. Uses singleton if not provided.
            registry: Optional registry. Defaults to the packaged wiring.
            static_fetcher: Optional shared fetcher; created per cycle otherwise.
            browser_factory: Optional browser context factory for scripted fetches.
            cache: Optional snapshot cache (for injecting a clock in tests).
        """
        self.config = config or get_config()
        self.registry = registry or build_default_registry()
        self.cache = cache or SnapshotCache(self.config.freshness_window_sec)
        self._static_fetcher = static_fetcher
        self._browser_factory = browser_factory
        self._bindings: dict[str, StrategyBundle] = {}
        self._listeners: list[SnapshotListener] = []
        self._results: dict[str, InstitutionResult] = {}
        self._lock = asyncio.Lock()

    @property
    def snapshot(self) -> RateSnapshot:
        return self.cache.snapshot

    def bind(self, catalog: Iterable[Institution]) -> None:
        """Resolve strategies for a freshly loaded catalog."""
        self._bindings = self.registry.bind(catalog)

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Register a snapshot listener.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, snapshot: RateSnapshot) -> None:
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as exc:
                log.error(
                    "Snapshot listener failed",
                    listener=getattr(listener, "__name__", repr(listener)),
                    error=str(exc),
                )

    def _bundle_for(self, institution: Institution) -> StrategyBundle:
        bundle = self._bindings.get(institution.name)
        if bundle is None:
            bundle = self.registry.resolve(institution.name)
            if not bundle.is_supported:
                log.warning("No fetch strategy for institution", institution=institution.name)
            self._bindings[institution.name] = bundle
        return bundle

    async def aggregate(
        self,
        institutions: Iterable[Institution],
        parameters: LoanParameters,
        force_fetch: bool = False,
    ) -> RateSnapshot:
        """Run one aggregation cycle.

        Args:
            institutions: Catalog institutions, with selections applied.
            parameters: Validated loan parameters for parameterized strategies.
            force_fetch: Ignore the freshness window.

        Returns:
            The published snapshot. When served from cache, the identical
            cached object.

        Raises:
            asyncio.CancelledError: If the cycle is cancelled. The previous
                snapshot is restored first.
        """
        async with self._lock:
            if not force_fetch and self.cache.is_fresh():
                log.info(
                    "Serving cached snapshot",
                    last_fetch_date=self.cache.snapshot.last_fetch_date,
                )
                return self.cache.snapshot

            institutions = list(institutions)
            dispatch = [i for i in institutions if i.has_selection]

            log.info(
                "Aggregation started",
                institutions=len(dispatch),
                skipped=len(institutions) - len(dispatch),
                force_fetch=force_fetch,
            )

            previous = self.cache.snapshot
            self._publish(self.cache.mark_loading())
            started = time.monotonic()

            try:
                results = await self._fan_out(dispatch, parameters)
            except BaseException:
                self.cache.replace(previous)
                self._publish(previous)
                log.warning("Aggregation aborted - previous snapshot restored")
                raise

            quotes = [quote for result in results for quote in result.quotes]
            snapshot = RateSnapshot.from_quotes(quotes, self.cache.now())
            self.cache.replace(snapshot)
            self._results = {result.institution: result for result in results}

            counts = Counter(result.outcome.value for result in results)
            log.info(
                "Aggregation complete",
                banks=len(snapshot.rates),
                quotes=snapshot.quote_count,
                elapsed_sec=round(time.monotonic() - started, 2),
                **{f"outcome_{name}": count for name, count in counts.items()},
            )

            self._publish(snapshot)
            return snapshot

    async def _fan_out(
        self,
        institutions: list[Institution],
        parameters: LoanParameters,
    ) -> list[InstitutionResult]:
        semaphore = asyncio.Semaphore(self.config.max_concurrent_institutions)

        async with AsyncExitStack() as stack:
            resources = FetchResources(
                self.config,
                stack,
                static_fetcher=self._static_fetcher,
                browser_factory=self._browser_factory,
                clock=self.cache.now,
            )
            return await asyncio.gather(
                *(
                    self._fetch_institution(institution, parameters, resources, semaphore)
                    for institution in institutions
                )
            )

    async def _fetch_institution(
        self,
        institution: Institution,
        parameters: LoanParameters,
        resources: FetchResources,
        semaphore: asyncio.Semaphore,
    ) -> InstitutionResult:
        """Fetch one institution; never raises except on cancellation."""
        bundle = self._bundle_for(institution)
        result = InstitutionResult(institution=institution.name, outcome=FetchOutcome.FAILED)

        async def limited() -> list[BankRate]:
            async with semaphore:
                return await self._fetch_with_retry(
                    bundle, institution, parameters, resources, result
                )

        # The deadline covers time queued behind the concurrency limit.
        started = time.monotonic()
        try:
            result.quotes = await asyncio.wait_for(
                limited(), timeout=self.config.institution_timeout_sec
            )
            result.outcome = FetchOutcome.OK if result.quotes else FetchOutcome.EMPTY

        except UnsupportedInstitutionError as exc:
            result.outcome = FetchOutcome.UNSUPPORTED
            result.error = exc.message
            log.warning("Institution not supported", institution=institution.name)

        except TimeoutError:
            result.error = f"Timed out after {self.config.institution_timeout_sec}s"
            log.error(
                "Institution fetch timed out",
                institution=institution.name,
                timeout_sec=self.config.institution_timeout_sec,
            )

        except Exception as exc:
            result.error = f"{type(exc).__name__}: {exc}"
            log.error(
                "Institution fetch failed",
                institution=institution.name,
                strategy=bundle.fetch_strategy.name,
                error_type=type(exc).__name__,
                error=str(exc),
            )

        result.elapsed_sec = round(time.monotonic() - started, 3)

        if result.outcome is FetchOutcome.EMPTY:
            log.warning("Institution returned no selected rates", institution=institution.name)
        return result

    async def _fetch_with_retry(
        self,
        bundle: StrategyBundle,
        institution: Institution,
        parameters: LoanParameters,
        resources: FetchResources,
        result: InstitutionResult,
    ) -> list[BankRate]:
        """Run the bundle, retrying NetworkError with capped exponential backoff."""
        while True:
            result.attempts += 1
            try:
                return await bundle.fetch(institution, parameters, resources)
            except NetworkError as exc:
                if result.attempts >= self.config.retry_max_attempts:
                    raise
                delay = min(
                    self.config.retry_base_delay_sec * 2 ** (result.attempts - 1),
                    self.config.retry_max_delay_sec,
                )
                log.warning(
                    "Network error - retrying",
                    institution=institution.name,
                    attempt=result.attempts,
                    delay_sec=delay,
                    error=str(exc),
                )
                await asyncio.sleep(delay)

    def get_fetch_summary(self) -> dict[str, Any]:
        """Per-institution outcomes of the last completed cycle.

        Returns:
            Dictionary with per-institution details, outcome counts, and
            snapshot totals.
        """
        counts = Counter(result.outcome.value for result in self._results.values())
        snapshot = self.cache.snapshot
        return {
            "institutions": {
                name: {
                    "outcome": result.outcome.value,
                    "quotes": len(result.quotes),
                    "attempts": result.attempts,
                    "elapsed_sec": result.elapsed_sec,
                    "error": result.error,
                }
                for name, result in self._results.items()
            },
            "counts": {outcome.value: counts.get(outcome.value, 0) for outcome in FetchOutcome},
            "total_quotes": snapshot.quote_count,
            "last_fetch_date": (
                snapshot.last_fetch_date.isoformat() if snapshot.last_fetch_date else None
            ),
        }
