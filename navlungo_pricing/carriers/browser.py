"""
Shared Navlungo Browser

One Chromium instance per client, owned explicitly (open/close) rather than
kept in a module global. Every operation borrows a tab through `page()`,
which holds the browser lock for the duration - two operations never drive
the browser at the same time, they queue.

Uses a persistent context so the portal session (cookies, localStorage,
IndexedDB) survives between operations and between runs when
NAVLUNGO_USER_DATA_DIR is set.
"""

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from playwright.async_api import BrowserContext, Page, Playwright, async_playwright

from navlungo_pricing.config import Settings


LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--disable-gpu",
    "--window-size=1920,1080",
    "--disable-blink-features=AutomationControlled",
    "--disable-infobars",
    "--lang=tr-TR",
]

# Runs before any page script. Hides the usual automation tells that the
# portal's Cloudflare check looks at.
STEALTH_SCRIPT = """
(() => {
  Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
  Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
  Object.defineProperty(navigator, 'languages', { get: () => %s });
  window.chrome = { runtime: {} };
})();
"""


def build_stealth_script(languages) -> str:
    quoted = ", ".join(f"'{lang}'" for lang in languages)
    return STEALTH_SCRIPT % f"[{quoted}]"


class NavlungoBrowser:
    """Owns the Playwright Chromium used for login and scraping."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._playwright: Optional[Playwright] = None
        self._context: Optional[BrowserContext] = None
        self._headless: Optional[bool] = None
        self._lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._context is not None

    @property
    def cdp_url(self) -> str:
        """DevTools endpoint (only listening when autofill is enabled)."""
        return f"http://127.0.0.1:{self.settings.cdp_port}"

    async def __aenter__(self) -> "NavlungoBrowser":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def open(self, headful: bool = False) -> BrowserContext:
        """Launch Chromium if needed. Relaunches headful when a visible window is required."""
        headless = False if headful else self.settings.headless

        if self._context is not None:
            if self._headless and not headless:
                print("[Browser] Relaunching in headful mode...")
                await self.close()
            else:
                return self._context

        print(f"[Browser] Starting browser in {'headless' if headless else 'headful'} mode...")

        args = list(LAUNCH_ARGS)
        if self.settings.autofill:
            args.append(f"--remote-debugging-port={self.settings.cdp_port}")

        user_data_dir = str(self.settings.user_data_dir) if self.settings.user_data_dir else ""

        if self._playwright is not None:
            # Left behind when the operator closed the window
            await self._playwright.stop()
            self._playwright = None

        self._playwright = await async_playwright().start()
        self._context = await self._playwright.chromium.launch_persistent_context(
            user_data_dir,
            headless=headless,
            slow_mo=self.settings.slow_mo_ms,
            args=args,
            ignore_default_args=["--enable-automation"],
            viewport={"width": 1920, "height": 1080},
            user_agent=self.settings.user_agent,
            locale=self.settings.languages[0],
        )
        await self._context.add_init_script(script=build_stealth_script(self.settings.languages))
        self._context.on("close", self._forget_context)
        self._headless = headless
        return self._context

    def _forget_context(self, context: BrowserContext) -> None:
        if context is self._context:
            print("[Browser] Browser window closed, relaunching on next use")
            self._context = None
            self._headless = None

    async def close(self) -> None:
        """Close the browser and stop Playwright. Safe to call repeatedly."""
        context, playwright = self._context, self._playwright
        self._context = None
        self._playwright = None
        self._headless = None

        try:
            if context is not None:
                await context.close()
                print("[Browser] Browser closed")
        finally:
            if playwright is not None:
                await playwright.stop()

    @asynccontextmanager
    async def page(self, headful: bool = False):
        """
        Borrow a fresh tab for one operation.

        Holds the browser lock until the block exits; the tab is always
        closed, on success and on error.
        """
        async with self._lock:
            context = await self.open(headful=headful)
            page = await context.new_page()
            try:
                yield page
            finally:
                try:
                    await page.close()
                except Exception as e:
                    print(f"[Browser] WARNING: could not close page: {e}")

    async def screenshot(self, page: Page, name: str) -> Optional[Path]:
        """Write a debug screenshot. Best effort - never raises."""
        path = Path(self.settings.screenshot_dir) / f"navlungo-{name}.png"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            await page.screenshot(path=str(path))
            print(f"[Browser] Screenshot saved: {path}")
            return path
        except Exception as e:
            print(f"[Browser] Screenshot {name} failed: {e}")
            return None
