"""Shared Playwright browser for the scripted form path.

The bank calculators are driven through their mobile layouts: the form
selectors in `ratewatch.profiles` target the phone-sized markup, and the
sites serve that markup to a phone user agent. The browser context
therefore emulates a phone (touch, device scale, narrow viewport) and
sends the same user agent as the static fetcher.

One BrowserManager serves a whole aggregation cycle. It is started lazily
by the first scripted institution and closed with the cycle. Each
institution gets its own page inside the shared context, so concurrent
form fills never see each other's DOM.

Anti-Bot Measures:
    - Hides navigator.webdriver and fills in the phone navigator fields
    - Picks the viewport from a small set of real phone sizes
    - Waits a short random interval before each navigation
"""

import asyncio
import random
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Self

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    async_playwright,
)
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from config.settings import GlobalConfig, get_config
from ratewatch.exceptions import (
    BrowserInitializationError,
    NavigationError,
    NavigationTimeoutError,
)
from ratewatch.logger import get_logger

log = get_logger(__name__)

# CSS pixel sizes of common phones (width, height).
PHONE_VIEWPORTS: tuple[tuple[int, int], ...] = (
    (375, 812),
    (390, 844),
    (393, 852),
    (414, 896),
    (430, 932),
)

LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-infobars",
]

STEALTH_JS = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'platform', { get: () => 'iPhone' });
Object.defineProperty(navigator, 'maxTouchPoints', { get: () => 5 });
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
"""


class BrowserManager:
    """Owns the Playwright process, browser and phone-emulating context.

    Attributes:
        config: Timeouts, headless flag and user agent.
        user_agent: User agent sent by every page of this session.
        viewport: Phone viewport used by every page of this session.
        pages_opened: Number of pages handed out so far.

    Example:
        async with BrowserManager.create() as browser:
            page = await browser.new_page("Chase")
            await browser.navigate(page, "https://www.chase.com/...")
    """

    def __init__(self, config: GlobalConfig) -> None:
        """Prepare a manager without starting anything.

        Use `create()`; it starts the browser and guarantees shutdown.
        """
        self.config = config
        self.user_agent = config.user_agent
        width, height = random.choice(PHONE_VIEWPORTS)
        self.viewport = {"width": width, "height": height}
        self.pages_opened = 0
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None

    @classmethod
    @asynccontextmanager
    async def create(
        cls, config: GlobalConfig | None = None
    ) -> AsyncGenerator[Self, None]:
        """Start a browser session and shut it down on exit.

        Shutdown runs on normal exit, on error and on task cancellation,
        so an abandoned aggregation never leaks a browser process.

        Args:
            config: Optional GlobalConfig. Uses singleton if not provided.

        Yields:
            A started BrowserManager.

        Raises:
            BrowserInitializationError: If the browser cannot be started.
        """
        instance = cls(config or get_config())
        try:
            await instance._start()
            yield instance
        finally:
            await instance._shutdown()

    async def _start(self) -> None:
        log.info(
            "Starting scripted browser",
            headless=self.config.headless,
            viewport=self.viewport,
        )

        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.config.headless,
                args=LAUNCH_ARGS,
            )
            self._context = await self._browser.new_context(
                user_agent=self.user_agent,
                viewport=self.viewport,
                device_scale_factor=3,
                is_mobile=True,
                has_touch=True,
                locale="en-US",
                timezone_id="America/Los_Angeles",
            )
            await self._context.add_init_script(STEALTH_JS)
        except Exception as exc:
            await self._shutdown()
            raise BrowserInitializationError(reason=str(exc), browser_type="chromium") from exc

        log.info("Scripted browser ready", user_agent=self.user_agent[:50] + "...")

    async def new_page(self, institution: str | None = None) -> Page:
        """Open a page in the shared context with the configured timeouts.

        Raises:
            BrowserInitializationError: If the session has not been started.
        """
        if self._context is None:
            raise BrowserInitializationError(
                reason="Browser context not initialized", browser_type="chromium"
            )

        page = await self._context.new_page()
        page.set_default_timeout(self.config.script_timeout_ms)
        page.set_default_navigation_timeout(self.config.navigation_timeout_ms)

        self.pages_opened += 1
        log.debug("Page opened", institution=institution, pages_opened=self.pages_opened)
        return page

    async def navigate(
        self,
        page: Page,
        url: str,
        wait_until: str = "load",
        institution: str | None = None,
    ) -> None:
        """Load `url` and wait until the page reports it finished loading.

        Raises:
            NavigationTimeoutError: If the load does not finish in time.
            NavigationError: If the load fails or the status is >= 400.
        """
        await asyncio.sleep(random.uniform(0.1, 0.5))

        log.debug("Navigating", institution=institution, url=url, wait_until=wait_until)

        try:
            response = await page.goto(
                url,
                wait_until=wait_until,
                timeout=self.config.navigation_timeout_ms,
            )
        except (PlaywrightTimeoutError, TimeoutError) as exc:
            raise NavigationTimeoutError(
                url=url, timeout_ms=self.config.navigation_timeout_ms
            ) from exc
        except Exception as exc:
            raise NavigationError(url=url, reason=str(exc)) from exc

        if response is None:
            raise NavigationError(url=url, reason="No response received")
        if response.status >= 400:
            raise NavigationError(
                url=url, reason=f"HTTP {response.status}", status_code=response.status
            )

        log.info("Page loaded", institution=institution, url=url, status_code=response.status)

    async def _shutdown(self) -> None:
        """Close context, browser and Playwright, in that order.

        Each step runs even if an earlier one failed.
        """
        steps = (
            ("context", self._context, "close"),
            ("browser", self._browser, "close"),
            ("playwright", self._playwright, "stop"),
        )
        for resource_name, resource, method in steps:
            if resource is None:
                continue
            try:
                await getattr(resource, method)()
            except Exception as exc:
                log.warning(
                    "Error releasing browser resource",
                    resource=resource_name,
                    error=str(exc),
                )

        self._context = None
        self._browser = None
        self._playwright = None
        log.info("Scripted browser closed", pages_opened=self.pages_opened)

    @property
    def is_initialized(self) -> bool:
        """Whether the session is started and can open pages."""
        return self._context is not None
