"""
Navlungo Price Calculator Scraper

Fallback for when the quote API is unavailable. Instead of calling the API
ourselves we open the portal's own price calculator and listen to the JSON
responses the page receives from its backend.

Two modes:
- scrape_price_calculator: automated - load the page, wait, collect
- interactive_price_fetch: visible browser, a human fills the form; we
  collect from network responses and from the rendered DOM for up to 5
  minutes (or until cancelled)
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional

from playwright.async_api import Error as PlaywrightError

from navlungo_pricing.carriers.authenticator import wait_for_login
from navlungo_pricing.carriers.normalizer import add_unique, extract_prices_deep, parse_quote_response
from navlungo_pricing.config import Settings
from navlungo_pricing.errors import AuthenticationError
from navlungo_pricing.event_logger import get_logger
from navlungo_pricing.models import PriceQuote, PriceRequest, QuoteResponse

CAPTURE_KEYWORDS = ("quote", "price", "rate", "calculate")
INTERACTIVE_KEYWORDS = CAPTURE_KEYWORDS + ("search",)

NO_QUOTES_MESSAGE = "No quotes captured. Page may require manual interaction."

# Price-looking text in result cards/rows, with carrier detection from
# text or logo images
DOM_PRICES_JS = """
() => {
  const results = [];
  const selectors = [
    '[class*="price"]', '[class*="quote"]', '[class*="rate"]', '[class*="carrier"]',
    '[class*="result"]', '[class*="shipping"]', '[data-testid*="price"]',
    '[data-testid*="quote"]', 'table tr', '.card', '[class*="Card"]',
  ];
  const carriers = ['DHL', 'UPS', 'FedEx', 'TNT', 'USPS', 'Aramex', 'EMS', 'PostNL', 'Royal Mail'];

  for (const selector of selectors) {
    for (const el of document.querySelectorAll(selector)) {
      const text = el.textContent || '';
      const match = text.match(/[\\$€£]?\\s*(\\d+[.,]\\d{2})\\s*(USD|EUR|TRY|GBP)?/i);
      if (!match) continue;

      let carrier = 'Unknown';
      const haystacks = [text.toLowerCase()];
      for (const img of el.querySelectorAll('img')) {
        haystacks.push((img.src || '').toLowerCase(), (img.alt || '').toLowerCase());
      }
      for (const name of carriers) {
        if (haystacks.some((h) => h.includes(name.toLowerCase()))) {
          carrier = name;
          break;
        }
      }

      results.push({
        carrier,
        service: 'Standard',
        price: parseFloat(match[1].replace(',', '.')),
        currency: (match[2] || 'USD').toUpperCase(),
      });
    }
  }
  return results;
}
"""


class ResponseCapture:
    """Collects quotes from network responses whose URL looks quote-related."""

    def __init__(self, keywords: tuple, deep: bool = False):
        self.keywords = keywords
        self.deep = deep
        self.quotes: list = []
        self.captured_urls: list = []

    def matches(self, url: str) -> bool:
        return any(keyword in url for keyword in self.keywords)

    def add_payload(self, url: str, data) -> int:
        """Normalize one decoded response body; returns how many new quotes it added."""
        found = []
        parsed = parse_quote_response(data)
        if parsed.success:
            # Unrelated "rate"/"price" endpoints normalize to zero-price rows
            found = [quote for quote in parsed.quotes if quote.price > 0]
        if not found and self.deep:
            found = extract_prices_deep(data)

        added = sum(1 for quote in found if add_unique(self.quotes, quote))
        self.captured_urls.append(url)
        get_logger().log_captured_response(url, added)

        if added:
            print(f"[Scraper] Captured {added} quote(s) from: {url[:80]}")
        return added

    async def handle(self, response) -> None:
        url = response.url
        if not self.matches(url):
            return
        try:
            data = await response.json()
        except (PlaywrightError, ValueError):
            # Not a JSON body (images, HTML, redirects)
            return
        self.add_payload(url, data)


class QuoteScraper:
    """Harvests quotes from the portal's price calculator page."""

    def __init__(
        self,
        settings: Settings,
        browser,
        token_manager,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
    ):
        self.settings = settings
        self.browser = browser
        self.token_manager = token_manager
        self._clock = clock
        self._sleep = sleep

    async def scrape_price_calculator(
        self,
        request: PriceRequest,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> QuoteResponse:
        """
        Load the price calculator and collect the quotes its backend returns.

        Args:
            request: Shipment to price (used by the optional autofill)
            cancel_event: Abandons a login this call has to wait for

        Returns:
            QuoteResponse: captured quotes, or a failure envelope. Never raises.
        """
        print("[Scraper] Scraping prices from Price Calculator...")

        try:
            # The browser context is assumed authenticated once a token exists
            await self.token_manager.get_access_token(cancel_event=cancel_event)
        except AuthenticationError as e:
            return QuoteResponse.failure(str(e))
        except Exception as e:
            print(f"[Scraper] Could not obtain token: {e}")
            return QuoteResponse.failure(str(e))

        capture = ResponseCapture(CAPTURE_KEYWORDS)
        handler = capture.handle

        try:
            async with self.browser.page() as page:
                context = page.context
                context.on("response", handler)
                try:
                    print("[Scraper] Navigating to Price Calculator...")
                    await page.goto(
                        self.settings.price_calculator_url,
                        wait_until="networkidle",
                        timeout=self.settings.navigation_timeout * 1000,
                    )
                    await self.browser.screenshot(page, "price-calc-1")

                    await self._sleep(self.settings.form_load_delay)

                    if self.settings.autofill:
                        await self._autofill(request)

                    await self.browser.screenshot(page, "price-calc-2")

                    print("[Scraper] Waiting for API responses...")
                    await self._sleep(self.settings.capture_wait)

                except Exception as e:
                    print(f"[Scraper] Price Calculator scraping error: {e}")
                    await self.browser.screenshot(page, "price-calc-error")
                    return QuoteResponse.failure(str(e))
                finally:
                    context.remove_listener("response", handler)

        except Exception as e:
            print(f"[Scraper] Browser error: {e}")
            return QuoteResponse.failure(str(e))

        if capture.quotes:
            print(f"[Scraper] Captured {len(capture.quotes)} quotes")
            return QuoteResponse(success=True, quotes=list(capture.quotes))

        return QuoteResponse.failure(NO_QUOTES_MESSAGE)

    async def interactive_price_fetch(self, cancel_event: Optional[asyncio.Event] = None) -> QuoteResponse:
        """
        Open the calculator for a human and collect whatever prices appear.

        Keeps the page open for settings.interactive_timeout seconds, or until
        cancel_event is set.
        """
        print("[Scraper] ========================================")
        print("[Scraper] A browser window will open")
        print("[Scraper] Please fill the form and get prices")
        print("[Scraper] The prices will be captured automatically")
        print("[Scraper] ========================================")

        capture = ResponseCapture(INTERACTIVE_KEYWORDS, deep=True)
        handler = capture.handle

        try:
            async with self.browser.page(headful=True) as page:
                context = page.context
                context.on("response", handler)
                try:
                    await self._open_calculator(page, cancel_event)

                    print("[Scraper] Page loaded. Waiting for you to interact with the form...")
                    print(f"[Scraper] Cancel or wait {self.settings.interactive_timeout:.0f}s for timeout.")

                    await self._watch_page(page, capture, cancel_event)
                finally:
                    context.remove_listener("response", handler)

        except Exception as e:
            print(f"[Scraper] Interactive capture error: {e}")
            return QuoteResponse(success=False, quotes=list(capture.quotes), error=str(e))

        if capture.quotes:
            return QuoteResponse(success=True, quotes=list(capture.quotes))
        return QuoteResponse.failure("No quotes captured")

    async def _open_calculator(self, page, cancel_event: Optional[asyncio.Event]) -> None:
        await page.goto(
            self.settings.price_calculator_url,
            wait_until="networkidle",
            timeout=self.settings.navigation_timeout * 2000,
        )

        if "/login" in page.url:
            print("[Scraper] Login required. Please login in the browser window.")
            await wait_for_login(
                page,
                timeout=self.settings.login_timeout,
                cancel_event=cancel_event,
                clock=self._clock,
                sleep=self._sleep,
            )
            print("[Scraper] Login successful!")
            await page.goto(
                self.settings.price_calculator_url,
                wait_until="networkidle",
                timeout=self.settings.navigation_timeout * 1000,
            )

        await self.browser.screenshot(page, "interactive-1")

    async def _watch_page(self, page, capture: ResponseCapture, cancel_event: Optional[asyncio.Event]) -> None:
        deadline = self._clock() + self.settings.interactive_timeout

        while self._clock() < deadline:
            if cancel_event is not None and cancel_event.is_set():
                print("[Scraper] Capture ended by operator")
                return
            await self._collect_dom_prices(page, capture)
            await self._sleep(1.0)

        print("[Scraper] Interactive capture timed out")

    async def _collect_dom_prices(self, page, capture: ResponseCapture) -> None:
        try:
            rows = await page.evaluate(DOM_PRICES_JS)
        except PlaywrightError as e:
            print(f"[Scraper] DOM check skipped: {e}")
            return

        for row in rows or []:
            quote = PriceQuote(
                carrier=row.get("carrier", "Unknown"),
                service=row.get("service", "Standard"),
                price=float(row.get("price", 0)),
                currency=row.get("currency", "USD"),
            )
            if quote.price > 0 and add_unique(capture.quotes, quote):
                print(f"[Scraper] DOM: {quote.carrier} {quote.service} - {quote.price} {quote.currency}")

    async def _autofill(self, request: PriceRequest) -> None:
        from navlungo_pricing.carriers.autofill import fill_price_calculator

        result = await fill_price_calculator(
            request,
            cdp_url=self.browser.cdp_url,
            calculator_url=self.settings.price_calculator_url,
            model=self.settings.autofill_model,
        )
        if not result.get("success"):
            print(f"[Scraper] Autofill did not complete: {result.get('error')}")
