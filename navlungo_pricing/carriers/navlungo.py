"""
Navlungo Pricing Client

Entry point for everything Navlungo: owns the shared browser and wires the
token manager, the quote API and the price calculator scraper together.

Pricing strategy for get_prices_with_fallback:
1. Quote API with the cached Firebase token (fast)
2. Price calculator scrape if the API envelope comes back as a failure
"""

import asyncio
from typing import Optional

import httpx

from navlungo_pricing.carriers.authenticator import InteractiveAuthenticator
from navlungo_pricing.carriers.browser import NavlungoBrowser
from navlungo_pricing.carriers.quotes import QuoteRequester
from navlungo_pricing.carriers.scraper import QuoteScraper
from navlungo_pricing.carriers.token_manager import TokenManager, TokenStore
from navlungo_pricing.config import Settings
from navlungo_pricing.errors import AuthenticationError
from navlungo_pricing.event_logger import get_logger
from navlungo_pricing.models import PriceRequest, QuoteResponse
from navlungo_pricing.observability import observe_step


class NavlungoClient:
    """Navlungo shipping price lookups."""

    def __init__(
        self,
        settings: Settings,
        browser: NavlungoBrowser,
        authenticator: InteractiveAuthenticator,
        token_manager: TokenManager,
        requester: QuoteRequester,
        scraper: QuoteScraper,
    ):
        self.settings = settings
        self.browser = browser
        self.authenticator = authenticator
        self.token_manager = token_manager
        self.requester = requester
        self.scraper = scraper
        self._cancel_event: Optional[asyncio.Event] = None

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "NavlungoClient":
        """Build a client with its own browser from settings (env by default)."""
        settings = settings or Settings.from_env()
        browser = NavlungoBrowser(settings)
        authenticator = InteractiveAuthenticator(settings, browser)
        token_manager = TokenManager(authenticator, TokenStore(settings.token_file))
        return cls(
            settings=settings,
            browser=browser,
            authenticator=authenticator,
            token_manager=token_manager,
            requester=QuoteRequester(settings, token_manager, transport=transport),
            scraper=QuoteScraper(settings, browser, token_manager),
        )

    async def __aenter__(self) -> "NavlungoClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _new_cancel_event(self) -> asyncio.Event:
        self._cancel_event = asyncio.Event()
        return self._cancel_event

    def _record(self, source: str, response: QuoteResponse) -> QuoteResponse:
        get_logger().log_quote_result(source, response.success, len(response.quotes), response.error)
        return response

    # =========================================================================
    # Pricing
    # =========================================================================

    @observe_step
    async def get_prices(self, request: PriceRequest) -> QuoteResponse:
        """Quotes from the quote API."""
        print(f"[Navlungo] Getting prices: {request.origin_country} -> {request.destination_country}, "
              f"{request.weight}kg")
        cancel_event = self._new_cancel_event()
        return self._record("api", await self.requester.get_prices(request, cancel_event=cancel_event))

    @observe_step
    async def scrape_price_calculator(self, request: PriceRequest) -> QuoteResponse:
        """Quotes captured from the price calculator page."""
        cancel_event = self._new_cancel_event()
        response = await self.scraper.scrape_price_calculator(request, cancel_event=cancel_event)
        return self._record("scraper", response)

    @observe_step
    async def get_prices_with_fallback(self, request: PriceRequest) -> QuoteResponse:
        """
        Try the quote API, then fall back to the price calculator.

        Returns the API envelope when it succeeds (even with zero quotes),
        otherwise the scraper's envelope.
        """
        result = await self.get_prices(request)
        if result.success:
            return result

        print(f"[Navlungo] API path failed ({result.error}), falling back to Price Calculator")
        return await self.scrape_price_calculator(request)

    @observe_step
    async def interactive_price_fetch(self) -> QuoteResponse:
        """Visible browser; a human fills the calculator while we capture prices."""
        cancel_event = self._new_cancel_event()
        return self._record("interactive", await self.scraper.interactive_price_fetch(cancel_event))

    # =========================================================================
    # Session
    # =========================================================================

    @observe_step
    async def test_connection(self) -> dict:
        """
        Make sure we hold a usable token, logging in if needed.

        Returns:
            dict: {success, message, tokenInfo?: {expiresAt, userId}}

        Raises:
            ConfigurationError: credentials not configured
        """
        cancel_event = self._new_cancel_event()
        try:
            await self.token_manager.get_access_token(cancel_event=cancel_event)
            credential = self.token_manager.current_credential
            return {
                "success": True,
                "message": "Successfully connected to Navlungo",
                "tokenInfo": {
                    "expiresAt": credential.expires_at_datetime.isoformat(),
                    "userId": credential.user_id,
                },
            }
        except AuthenticationError as e:
            return {"success": False, "message": str(e)}

    def token_status(self) -> dict:
        """Token metadata without the token itself."""
        credential = self.token_manager.current_credential or self.token_manager.store.load()
        if credential is None:
            return {"hasToken": False}
        return {
            "hasToken": True,
            "expiresAt": credential.expires_at_datetime.isoformat(),
            "userId": credential.user_id,
            "usable": self.token_manager.is_usable(credential),
            "loginState": self.authenticator.state.value,
        }

    def cancel_login(self) -> bool:
        """Abandon a pending human wait (login or interactive capture)."""
        if self._cancel_event is None or self._cancel_event.is_set():
            return False
        print("[Navlungo] Cancelling pending browser wait")
        self._cancel_event.set()
        return True

    async def close(self) -> None:
        if self._cancel_event is not None:
            self._cancel_event.set()
        try:
            await self.browser.close()
        finally:
            get_logger().end_session("Navlungo client closed")
