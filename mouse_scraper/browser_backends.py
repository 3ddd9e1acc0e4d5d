"""Browser backends used to establish credentialed sessions

A backend owns one process-wide browser, launched lazily and shared by all
destinations. Every refresh gets its own isolated context so cookies from one
destination never leak into another.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
from loguru import logger

from .config import (
    CONSENT_CLICK_TIMEOUT,
    DEFAULT_CDP_ENDPOINT,
    DEFAULT_USER_AGENT,
    DEFAULT_VIEWPORT,
)
from .exceptions import BrowserBackendError


class BrowserContextHandle:
    """Navigation, cookie and local-storage primitives over one isolated context"""

    def __init__(self, context, page):
        self.context = context
        self.page = page

    async def goto(self, url: str, timeout: float) -> None:
        await self.page.goto(url, wait_until="domcontentloaded", timeout=timeout * 1000)

    async def pause(self, seconds: float) -> None:
        await self.page.wait_for_timeout(seconds * 1000)

    async def click_first(
        self, selectors: Sequence[str], timeout: float = CONSENT_CLICK_TIMEOUT
    ) -> Optional[str]:
        """Click the first selector present on the page; None if none match"""
        for selector in selectors:
            try:
                element = await self.page.query_selector(selector)
                if element:
                    await element.click(timeout=timeout * 1000)
                    return selector
            except Exception as e:
                logger.debug(f"   Selector {selector!r} not clickable: {e}")
                continue
        return None

    async def cookies(self) -> List[Dict[str, Any]]:
        return await self.context.cookies()

    async def local_storage(self) -> List[Tuple[str, str]]:
        state = await self.context.storage_state()
        return [
            (item["name"], item["value"])
            for origin in state.get("origins", [])
            for item in origin.get("localStorage", [])
        ]

    async def close(self) -> None:
        await self.context.close()


class BrowserBackend(ABC):
    """Launches (once) and hands out isolated contexts on a shared browser"""

    name = "base"

    def __init__(self):
        self._playwright = None
        self._browser = None
        self.lock = asyncio.Lock()

    @property
    def is_launched(self) -> bool:
        return self._browser is not None

    @abstractmethod
    async def _start_browser(self):
        """Create the browser on self._playwright and return it"""

    async def launch(self) -> None:
        """Launch the shared browser if it is not running yet"""
        async with self.lock:
            if self._browser is not None:
                return

            from playwright.async_api import async_playwright

            self._playwright = await async_playwright().start()
            try:
                self._browser = await self._start_browser()
            except Exception as e:
                await self._playwright.stop()
                self._playwright = None
                raise BrowserBackendError(f"{self.name} launch failed: {e}") from e

    async def new_context(
        self,
        locale: str,
        timezone_id: str,
        user_agent: Optional[str] = DEFAULT_USER_AGENT,
        viewport: Optional[Dict[str, int]] = None,
    ) -> BrowserContextHandle:
        await self.launch()

        options: Dict[str, Any] = {
            "viewport": viewport or DEFAULT_VIEWPORT,
            "locale": locale,
            "timezone_id": timezone_id,
        }
        if user_agent:
            options["user_agent"] = user_agent

        context = await self._browser.new_context(**options)
        page = await context.new_page()
        return BrowserContextHandle(context, page)

    async def close(self) -> None:
        async with self.lock:
            if self._browser is not None:
                try:
                    await self._browser.close()
                finally:
                    self._browser = None
                logger.info(f"{self.name} browser closed")
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None

    @abstractmethod
    async def is_available(self) -> bool:
        """Whether this backend can be used on this machine"""


class CamoufoxBackend(BrowserBackend):
    """Stealth Firefox (Camoufox) launched locally - the default backend"""

    name = "camoufox"

    def __init__(self, headless: bool = True):
        super().__init__()
        self.headless = headless

    async def _start_browser(self):
        from camoufox.async_api import AsyncNewBrowser

        logger.info(f"🦊 Launching Camoufox (headless={self.headless})")
        return await AsyncNewBrowser(self._playwright, headless=self.headless)

    async def is_available(self) -> bool:
        try:
            import camoufox  # noqa: F401
        except ImportError:
            return False
        return True


class CDPBackend(BrowserBackend):
    """External browser (e.g. Lightpanda) reached over the DevTools protocol"""

    name = "cdp"

    def __init__(self, endpoint: str = DEFAULT_CDP_ENDPOINT):
        super().__init__()
        self.endpoint = endpoint

    async def _start_browser(self):
        logger.info(f"🔌 Connecting to CDP browser at {self.endpoint}")
        browser = await self._playwright.chromium.connect_over_cdp(
            self.endpoint, timeout=10000
        )
        logger.info(f"   Connected ({browser.version})")
        return browser

    async def is_available(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=2.0) as client:
                response = await client.get(f"{self.endpoint}/json/version")
        except httpx.HTTPError:
            logger.debug(f"CDP browser not reachable at {self.endpoint}")
            return False

        if response.status_code != 200:
            return False

        logger.debug(f"CDP browser available: {response.json().get('Browser')}")
        return True


def create_browser_backend(
    kind: str = "camoufox",
    cdp_endpoint: str = DEFAULT_CDP_ENDPOINT,
    headless: bool = True,
) -> BrowserBackend:
    """Create a backend by name ("camoufox" or "cdp")"""
    if kind in ("cdp", "lightpanda"):
        logger.info("Creating CDP backend")
        return CDPBackend(cdp_endpoint)

    if kind != "camoufox":
        logger.warning(f"Unknown browser backend {kind!r}, using camoufox")
    logger.info("Creating Camoufox backend")
    return CamoufoxBackend(headless=headless)


async def create_auto_backend(
    cdp_endpoint: str = DEFAULT_CDP_ENDPOINT,
    headless: bool = True,
) -> BrowserBackend:
    """Prefer a running CDP browser, otherwise launch Camoufox"""
    cdp = CDPBackend(cdp_endpoint)
    if await cdp.is_available():
        logger.info("Auto-detected CDP browser, using it as backend")
        return cdp

    logger.info("No CDP browser reachable, using Camoufox")
    return CamoufoxBackend(headless=headless)
