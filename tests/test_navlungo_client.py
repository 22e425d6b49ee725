"""
Tests for the NavlungoClient facade: fallback strategy, connection test,
cancellation and step instrumentation.
"""

import asyncio

import httpx
import pytest
from playwright.async_api import Error as PlaywrightError

from fakes import FakeBrowser, FakePage
from navlungo_pricing.carriers.authenticator import InteractiveAuthenticator, LoginState
from navlungo_pricing.carriers.navlungo import NavlungoClient
from navlungo_pricing.carriers.quotes import QuoteRequester
from navlungo_pricing.carriers.token_manager import TokenManager, TokenStore
from navlungo_pricing.errors import ConfigurationError, LoginCancelledError
from navlungo_pricing.event_logger import get_logger
from navlungo_pricing.models import CachedCredential, PriceQuote, PriceRequest, QuoteResponse, now_ms

REQUEST = PriceRequest(origin_country="TR", destination_country="US", weight=1)
HOUR = 60 * 60 * 1000


class StubAuthenticator:
    def __init__(self, result=None):
        self.result = result
        self.state = LoginState.IDLE
        self.cancel_events = []

    async def login(self, cancel_event=None):
        self.cancel_events.append(cancel_event)
        if isinstance(self.result, Exception):
            raise self.result
        if self.result == "wait":
            await cancel_event.wait()
            raise LoginCancelledError("Login wait cancelled")
        return self.result


class StubPath:
    """Quote path returning a fixed envelope and counting calls."""

    def __init__(self, response):
        self.response = response
        self.calls = []
        self.cancel_events = []

    async def get_prices(self, request, cancel_event=None):
        self.calls.append(request)
        self.cancel_events.append(cancel_event)
        return self.response

    async def scrape_price_calculator(self, request, cancel_event=None):
        self.calls.append(request)
        self.cancel_events.append(cancel_event)
        return self.response

    async def interactive_price_fetch(self, cancel_event=None):
        self.calls.append(cancel_event)
        return self.response


def make_client(settings, api=None, scraper=None, login_result=None):
    authenticator = StubAuthenticator(login_result)
    token_manager = TokenManager(authenticator, TokenStore(settings.token_file))
    return NavlungoClient(
        settings=settings,
        browser=FakeBrowser(),
        authenticator=authenticator,
        token_manager=token_manager,
        requester=api or StubPath(QuoteResponse.failure("unused")),
        scraper=scraper or StubPath(QuoteResponse.failure("unused")),
    )


def fresh_credential():
    return CachedCredential("tok", "ref", now_ms() + HOUR, user_id="uid-42")


# ============================================================================
# Pricing strategy
# ============================================================================

@pytest.mark.asyncio
async def test_fallback_uses_api_result_when_it_succeeds(settings):
    api = StubPath(QuoteResponse(success=True, quotes=[]))
    scraper = StubPath(QuoteResponse(success=True, quotes=[PriceQuote("DHL", "Express", 50.0, "USD")]))
    client = make_client(settings, api=api, scraper=scraper)

    response = await client.get_prices_with_fallback(REQUEST)

    assert response is api.response
    assert scraper.calls == []


@pytest.mark.asyncio
async def test_fallback_scrapes_when_api_fails(settings):
    api = StubPath(QuoteResponse.failure("Navlungo API error: 500"))
    scraper = StubPath(QuoteResponse(success=True, quotes=[PriceQuote("DHL", "Express", 50.0, "USD")]))
    client = make_client(settings, api=api, scraper=scraper)

    response = await client.get_prices_with_fallback(REQUEST)

    assert response is scraper.response
    assert api.calls == [REQUEST]
    assert scraper.calls == [REQUEST]


@pytest.mark.asyncio
async def test_steps_are_traced_and_logged(settings, spans):
    api = StubPath(QuoteResponse(success=True, quotes=[PriceQuote("UPS", "Express", 45.5, "USD")]))
    client = make_client(settings, api=api)

    await client.get_prices(REQUEST)

    assert [s.name for s in spans] == ["NavlungoClient.get_prices"]
    assert "input" in spans[0].updates[0]

    events = get_logger().current_events()
    step = next(e for e in events if e["event"] == "step")
    assert step["step"] == "NavlungoClient.get_prices"
    assert step["success"] is True
    result = next(e for e in events if e["event"] == "quote_result")
    assert (result["source"], result["success"], result["quotes"]) == ("api", True, 1)


# ============================================================================
# Connection test
# ============================================================================

@pytest.mark.asyncio
async def test_connection_reports_token_info(settings):
    client = make_client(settings, login_result=fresh_credential())

    result = await client.test_connection()

    assert result["success"] is True
    assert result["message"] == "Successfully connected to Navlungo"
    assert result["tokenInfo"]["userId"] == "uid-42"
    assert result["tokenInfo"]["expiresAt"].endswith("+00:00")


@pytest.mark.asyncio
async def test_connection_login_failure_is_reported(settings):
    client = make_client(settings, login_result=LoginCancelledError("Login wait cancelled"))

    result = await client.test_connection()

    assert result == {"success": False, "message": "Login wait cancelled"}


@pytest.mark.asyncio
async def test_connection_configuration_error_propagates(settings, spans):
    client = make_client(settings, login_result=ConfigurationError("Missing required environment variables: NAVLUNGO_EMAIL"))

    with pytest.raises(ConfigurationError):
        await client.test_connection()

    assert spans[0].updates[-1] == {"error": "Missing required environment variables: NAVLUNGO_EMAIL"}
    assert any(e["event"] == "step_error" for e in get_logger().current_events())


@pytest.mark.asyncio
async def test_cancel_login_releases_pending_wait(settings):
    client = make_client(settings, login_result="wait")
    assert client.cancel_login() is False

    pending = asyncio.create_task(client.test_connection())
    await asyncio.sleep(0)

    assert client.cancel_login() is True
    result = await pending

    assert result["success"] is False
    assert client.cancel_login() is False


@pytest.mark.asyncio
async def test_cancel_login_releases_wait_started_by_get_prices(settings):
    api_calls = []

    def handler(request):
        api_calls.append(request)
        return httpx.Response(200, json=[])

    client = make_client(settings, login_result="wait")
    client.requester = QuoteRequester(settings, client.token_manager, transport=httpx.MockTransport(handler))

    pending = asyncio.create_task(client.get_prices(REQUEST))
    while not client.authenticator.cancel_events:
        await asyncio.sleep(0)

    assert client.cancel_login() is True
    response = await pending

    assert response.success is False
    assert response.error == "Login wait cancelled"
    assert api_calls == []
    assert client.token_manager.current_credential is None


@pytest.mark.asyncio
async def test_each_pricing_path_gets_its_own_cancel_event(settings):
    api = StubPath(QuoteResponse.failure("Navlungo API error: 500"))
    scraper = StubPath(QuoteResponse.failure("No quotes captured"))
    client = make_client(settings, api=api, scraper=scraper)

    await client.get_prices_with_fallback(REQUEST)

    (api_event,) = api.cancel_events
    (scraper_event,) = scraper.cancel_events
    assert isinstance(api_event, asyncio.Event)
    assert isinstance(scraper_event, asyncio.Event)
    assert api_event is not scraper_event
    assert client.cancel_login() is True
    assert scraper_event.is_set()


@pytest.mark.asyncio
async def test_connection_browser_failure_is_reported(settings):
    async def navigation_times_out(page, url):
        raise PlaywrightError("Timeout 30000ms exceeded")

    client = make_client(settings)
    client.authenticator = InteractiveAuthenticator(settings, FakeBrowser(FakePage(on_goto=navigation_times_out)))
    client.token_manager.authenticator = client.authenticator

    result = await client.test_connection()

    assert result == {"success": False, "message": "Timeout 30000ms exceeded"}
    assert client.authenticator.state == LoginState.FAILURE


# ============================================================================
# Token status and shutdown
# ============================================================================

def test_token_status_never_exposes_the_token(settings):
    client = make_client(settings)
    assert client.token_status() == {"hasToken": False}

    TokenStore(settings.token_file).save(fresh_credential())
    status = client.token_status()

    assert status["hasToken"] is True
    assert status["usable"] is True
    assert status["userId"] == "uid-42"
    assert status["loginState"] == "idle"
    assert "tok" not in status.values()


@pytest.mark.asyncio
async def test_interactive_gets_a_fresh_cancel_event(settings):
    scraper = StubPath(QuoteResponse.failure("No quotes captured"))
    client = make_client(settings, scraper=scraper)

    await client.interactive_price_fetch()
    await client.interactive_price_fetch()

    first, second = scraper.calls
    assert isinstance(first, asyncio.Event)
    assert first is not second


@pytest.mark.asyncio
async def test_close_closes_browser_and_ends_log_session(settings):
    client = make_client(settings, api=StubPath(QuoteResponse(success=True, quotes=[])))
    await client.get_prices(REQUEST)
    logger = get_logger()
    session_file = str(logger.current_session_file.relative_to(logger.storage_dir))

    await client.close()

    assert client.browser.closed is True
    last = logger.read_session(session_file)[-1]
    assert (last["event"], last["summary"]) == ("session_end", "Navlungo client closed")
    assert logger.current_session_id is None
