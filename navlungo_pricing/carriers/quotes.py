"""
Navlungo Quote API

Direct call to the quote-search API with the portal's Firebase token.
Faster than scraping, but depends on an API the portal does not document.
"""

import asyncio
from typing import Optional

import httpx

from navlungo_pricing.carriers.normalizer import parse_quote_response
from navlungo_pricing.config import Settings
from navlungo_pricing.models import PriceRequest, QuoteResponse

AUTH_REJECTED = (401, 403)


class QuoteRequester:
    """Fetches quotes over HTTP, re-authenticating once if the token is rejected."""

    def __init__(
        self,
        settings: Settings,
        token_manager,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.token_manager = token_manager
        self._transport = transport

    @property
    def quotes_url(self) -> str:
        return f"{self.settings.quote_search_url}/quotes"

    def _headers(self, token: str) -> dict:
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Origin": self.settings.portal_origin,
            "Referer": f"{self.settings.portal_origin}/",
        }

    async def _post(self, client: httpx.AsyncClient, token: str, payload: dict) -> httpx.Response:
        return await client.post(self.quotes_url, headers=self._headers(token), json=payload)

    async def get_prices(
        self,
        request: PriceRequest,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> QuoteResponse:
        """
        Fetch quotes for a shipment from the quote API.

        Args:
            request: Shipment to price
            cancel_event: Abandons a login this call has to wait for

        Returns:
            QuoteResponse: normalized quotes, or a failure envelope. Never raises.
        """
        payload = request.to_api_payload()

        try:
            token = await self.token_manager.get_access_token(cancel_event=cancel_event)

            async with httpx.AsyncClient(
                timeout=self.settings.http_timeout,
                transport=self._transport,
            ) as client:
                response = await self._post(client, token, payload)

                if response.status_code in AUTH_REJECTED:
                    print("[Navlungo] Token rejected, clearing cache and retrying...")
                    self.token_manager.invalidate()
                    token = await self.token_manager.get_access_token(
                        force_refresh=True,
                        cancel_event=cancel_event,
                    )
                    response = await self._post(client, token, payload)

                if not response.is_success:
                    return QuoteResponse.failure(f"Navlungo API error: {response.status_code}")

                return parse_quote_response(response.json())

        except httpx.TimeoutException:
            print("[Navlungo] Quote request timed out")
            return QuoteResponse.failure("Navlungo request timed out")
        except Exception as e:
            print(f"[Navlungo] Error fetching prices: {e}")
            return QuoteResponse.failure(str(e) or e.__class__.__name__)
