"""Institution → fetch strategy registry.

Each catalog institution is bound once, at catalog-load time, to a
StrategyBundle: how its rates are acquired plus which product-name table
normalizes them. The aggregator never branches on institution names.
Names with no registered bundle resolve to UnsupportedStrategy, which the
aggregator records as an "unsupported" outcome.

Adding an institution means registering one bundle here and one entry in
the catalog JSON.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from contextlib import AbstractAsyncContextManager, AsyncExitStack
from dataclasses import dataclass, field
from datetime import UTC, datetime

from config.settings import GlobalConfig
from ratewatch import rate_tables
from ratewatch.browser import BrowserManager
from ratewatch.dynamic import DynamicPageFetcher, FormProfile
from ratewatch.exceptions import UnsupportedInstitutionError
from ratewatch.extractors import DocumentExtractor, TableDrivenExtractor, build_quotes
from ratewatch.fetcher import StaticPageFetcher
from ratewatch.logger import get_logger
from ratewatch.models import BankRate, Institution, LoanParameters
from ratewatch.normalizer import PRODUCT_NAME_TABLES, NormalizeTable
from ratewatch.profiles import BANK_OF_AMERICA_PROFILE, CHASE_PROFILE

log = get_logger(__name__)

BrowserFactory = Callable[[GlobalConfig], AbstractAsyncContextManager[BrowserManager]]


class FetchResources:
    """Shared, lazily created fetchers for one aggregation cycle.

    The browser is only launched when the first scripted strategy asks for
    it, and at most once even when several ask concurrently. Everything
    created here is registered on the cycle's exit stack, so it is torn
    down when the cycle ends or is cancelled.

    Attributes:
        config: GlobalConfig for the cycle.
        clock: Source of fetch timestamps.
    """

    def __init__(
        self,
        config: GlobalConfig,
        stack: AsyncExitStack,
        static_fetcher: StaticPageFetcher | None = None,
        browser_factory: BrowserFactory | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config
        self.clock = clock or (lambda: datetime.now(UTC))
        self._stack = stack
        self._static_fetcher = static_fetcher
        self._browser_factory = browser_factory or BrowserManager.create
        self._dynamic_fetcher: DynamicPageFetcher | None = None
        self._browser_lock = asyncio.Lock()

    @property
    def browser_started(self) -> bool:
        return self._dynamic_fetcher is not None

    async def static_fetcher(self) -> StaticPageFetcher:
        if self._static_fetcher is None:
            self._static_fetcher = StaticPageFetcher(self.config)
            self._stack.push_async_callback(self._static_fetcher.close)
        return self._static_fetcher

    async def dynamic_fetcher(self) -> DynamicPageFetcher:
        async with self._browser_lock:
            if self._dynamic_fetcher is None:
                browser = await self._stack.enter_async_context(
                    self._browser_factory(self.config)
                )
                self._dynamic_fetcher = DynamicPageFetcher(browser, self.config, clock=self.clock)
        return self._dynamic_fetcher


class FetchStrategy(ABC):
    """How one institution's rates are acquired."""

    requires_browser: bool = False

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    async def fetch(
        self,
        institution: Institution,
        parameters: LoanParameters,
        resources: FetchResources,
        normalize_table: NormalizeTable,
    ) -> list[BankRate]:
        """Acquire quotes for the institution's selected mortgage types."""
        ...


class TableDrivenStrategy(FetchStrategy):
    """Serves a fixed table without any network I/O."""

    def __init__(self, extractor: TableDrivenExtractor) -> None:
        self.extractor = extractor

    @property
    def name(self) -> str:
        return "table-driven"

    async def fetch(self, institution, parameters, resources, normalize_table):
        rows = self.extractor.extract()
        return build_quotes(institution, rows, normalize_table, resources.clock())


class StaticScrapeStrategy(FetchStrategy):
    """GETs the rate page and runs a document extractor over it.

    Attributes:
        extractor: Parses the fetched HTML.
        url: Page to fetch; defaults to the institution's base URL.
    """

    def __init__(self, extractor: DocumentExtractor, url: str | None = None) -> None:
        self.extractor = extractor
        self.url = url

    @property
    def name(self) -> str:
        return f"static-scrape[{self.extractor.name}]"

    async def fetch(self, institution, parameters, resources, normalize_table):
        fetcher = await resources.static_fetcher()
        html = await fetcher.fetch(self.url or institution.base_url)
        rows = self.extractor.extract(html)
        return build_quotes(institution, rows, normalize_table, resources.clock())


class ScriptedFormStrategy(FetchStrategy):
    """Drives the institution's calculator in the shared browser."""

    requires_browser = True

    def __init__(self, profile: FormProfile) -> None:
        self.profile = profile

    @property
    def name(self) -> str:
        return "scripted-form"

    async def fetch(self, institution, parameters, resources, normalize_table):
        fetcher = await resources.dynamic_fetcher()
        return await fetcher.fetch_via_scripted_form(
            institution, parameters, self.profile, normalize_table
        )


class UnsupportedStrategy(FetchStrategy):
    """Placeholder for institutions with no acquisition strategy."""

    @property
    def name(self) -> str:
        return "unsupported"

    async def fetch(self, institution, parameters, resources, normalize_table):
        raise UnsupportedInstitutionError(institution=institution.name)


@dataclass(frozen=True)
class StrategyBundle:
    """Acquisition strategy plus normalization table for one institution."""

    fetch_strategy: FetchStrategy
    normalize_table: NormalizeTable = field(default_factory=dict)

    @property
    def is_supported(self) -> bool:
        return not isinstance(self.fetch_strategy, UnsupportedStrategy)

    async def fetch(
        self,
        institution: Institution,
        parameters: LoanParameters,
        resources: FetchResources,
    ) -> list[BankRate]:
        return await self.fetch_strategy.fetch(
            institution, parameters, resources, self.normalize_table
        )


UNSUPPORTED = StrategyBundle(UnsupportedStrategy())


class StrategyRegistry:
    """Maps institution names to strategy bundles."""

    def __init__(self) -> None:
        self._bundles: dict[str, StrategyBundle] = {}

    def register(self, name: str, bundle: StrategyBundle) -> None:
        """Register (or replace) the bundle for an institution name."""
        if name in self._bundles:
            log.debug("Replacing strategy bundle", institution=name)
        self._bundles[name] = bundle

    def resolve(self, name: str) -> StrategyBundle:
        """Bundle for a name; unknown names get the unsupported bundle."""
        return self._bundles.get(name, UNSUPPORTED)

    def bind(self, catalog: Iterable[Institution]) -> dict[str, StrategyBundle]:
        """Resolve every catalog institution once.

        Returns:
            Institution name → bundle, in catalog order.
        """
        bound: dict[str, StrategyBundle] = {}
        for institution in catalog:
            bundle = self.resolve(institution.name)
            if not bundle.is_supported:
                log.warning("No fetch strategy for institution", institution=institution.name)
            bound[institution.name] = bundle

        log.info(
            "Strategies bound",
            institutions=len(bound),
            unsupported=sum(1 for b in bound.values() if not b.is_supported),
        )
        return bound

    @staticmethod
    def requires_browser(bundle: StrategyBundle) -> bool:
        return bundle.fetch_strategy.requires_browser

    def __contains__(self, name: object) -> bool:
        return name in self._bundles

    def __len__(self) -> int:
        return len(self._bundles)


def _table_bundle(name: str, rows, points_aliases=None) -> StrategyBundle:
    return StrategyBundle(
        TableDrivenStrategy(TableDrivenExtractor(rows, points_aliases)),
        PRODUCT_NAME_TABLES.get(name, {}),
    )


def build_default_registry() -> StrategyRegistry:
    """Registry wired for the packaged institution catalog."""
    registry = StrategyRegistry()

    registry.register(
        "Bank of America",
        StrategyBundle(
            ScriptedFormStrategy(BANK_OF_AMERICA_PROFILE),
            PRODUCT_NAME_TABLES["Bank of America"],
        ),
    )
    registry.register(
        "Chase",
        StrategyBundle(ScriptedFormStrategy(CHASE_PROFILE), PRODUCT_NAME_TABLES["Chase"]),
    )

    registry.register(
        "Charles Schwab",
        _table_bundle("Charles Schwab", rate_tables.CHARLES_SCHWAB_RATES, {"--": "-"}),
    )
    registry.register("Citi", _table_bundle("Citi", rate_tables.CITI_RATES))
    registry.register("HSBC USA", _table_bundle("HSBC USA", rate_tables.HSBC_RATES))
    registry.register(
        "Navy Federal Credit Union",
        _table_bundle("Navy Federal Credit Union", rate_tables.NAVY_FEDERAL_RATES),
    )
    registry.register("U.S. Bank", _table_bundle("U.S. Bank", rate_tables.US_BANK_RATES))
    registry.register("Wells Fargo", _table_bundle("Wells Fargo", rate_tables.WELLS_FARGO_RATES))

    return registry
