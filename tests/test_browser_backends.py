import pytest

import mouse_scraper.browser_backends as backends
from mouse_scraper.browser_backends import (
    BrowserContextHandle,
    CamoufoxBackend,
    CDPBackend,
    create_auto_backend,
    create_browser_backend,
)


class FakeElement:
    def __init__(self, fail=False):
        self.fail = fail
        self.clicked = False

    async def click(self, timeout=None):
        if self.fail:
            raise RuntimeError("element detached")
        self.clicked = True


class FakePage:
    def __init__(self, elements):
        self.elements = elements
        self.waits = []

    async def query_selector(self, selector):
        return self.elements.get(selector)

    async def wait_for_timeout(self, ms):
        self.waits.append(ms)


class FakeContext:
    def __init__(self, page=None):
        self.page = page
        self.options = None
        self.closed = False

    async def new_page(self):
        return self.page

    async def cookies(self):
        return [{"name": "SWID", "value": "{x}"}]

    async def storage_state(self):
        return {
            "cookies": [],
            "origins": [
                {
                    "origin": "https://disneyworld.disney.go.com",
                    "localStorage": [{"name": "authToken", "value": "t"}],
                }
            ],
        }

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self):
        self.context = FakeContext(FakePage({}))
        self.closed = False

    async def new_context(self, **options):
        self.context.options = options
        return self.context

    async def close(self):
        self.closed = True


@pytest.mark.parametrize(
    "kind,expected",
    [
        ("camoufox", CamoufoxBackend),
        ("cdp", CDPBackend),
        ("lightpanda", CDPBackend),
        ("chrome", CamoufoxBackend),
    ],
)
def test_factory_selects_backend(kind, expected):
    assert isinstance(create_browser_backend(kind), expected)


def test_factory_passes_options():
    assert create_browser_backend("cdp", "http://10.0.0.5:9222").endpoint == "http://10.0.0.5:9222"
    assert create_browser_backend("camoufox", headless=False).headless is False


@pytest.mark.asyncio
@pytest.mark.parametrize("reachable,expected", [(True, CDPBackend), (False, CamoufoxBackend)])
async def test_auto_backend_prefers_reachable_cdp(monkeypatch, reachable, expected):
    async def fake_is_available(self):
        return reachable

    monkeypatch.setattr(backends.CDPBackend, "is_available", fake_is_available)

    assert isinstance(await create_auto_backend(), expected)


@pytest.mark.asyncio
async def test_click_first_skips_missing_and_broken_selectors():
    good = FakeElement()
    page = FakePage({"#broken": FakeElement(fail=True), "#accept": good})
    handle = BrowserContextHandle(FakeContext(page), page)

    clicked = await handle.click_first(["#missing", "#broken", "#accept"])

    assert clicked == "#accept"
    assert good.clicked
    assert await handle.click_first(["#missing"]) is None


@pytest.mark.asyncio
async def test_handle_reads_cookies_and_local_storage():
    context = FakeContext()
    handle = BrowserContextHandle(context, FakePage({}))

    assert (await handle.cookies())[0]["name"] == "SWID"
    assert await handle.local_storage() == [("authToken", "t")]

    await handle.close()
    assert context.closed


@pytest.mark.asyncio
async def test_new_context_uses_shared_browser():
    backend = CamoufoxBackend()
    browser = FakeBrowser()
    backend._browser = browser

    handle = await backend.new_context(locale="en-US", timezone_id="America/Los_Angeles")

    assert handle.context is browser.context
    assert browser.context.options["locale"] == "en-US"
    assert browser.context.options["timezone_id"] == "America/Los_Angeles"
    assert "Firefox" in browser.context.options["user_agent"]

    await backend.close()
    assert browser.closed
    assert not backend.is_launched
