"""
Tests for the command line entry point.
"""

import json

import pytest

from navlungo_pricing.errors import ConfigurationError
from navlungo_pricing.main import parse_args, print_quotes, run_command, save_results
from navlungo_pricing.models import PriceQuote, QuoteResponse


class StubClient:
    def __init__(self, settings, response=None, connection=None):
        self.settings = settings
        self.response = response or QuoteResponse(success=True, quotes=[
            PriceQuote("DHL", "Express", 52.0, "USD"),
            PriceQuote("UPS", "Express", 45.5, "USD", transit_days=3),
        ])
        self.connection = connection
        self.calls = []
        self.closed = False

    async def get_prices(self, request):
        self.calls.append("prices")
        return self.response

    async def scrape_price_calculator(self, request):
        self.calls.append("scrape")
        return self.response

    async def get_prices_with_fallback(self, request):
        self.calls.append("fallback")
        return self.response

    async def interactive_price_fetch(self):
        self.calls.append("interactive")
        return self.response

    async def test_connection(self):
        self.calls.append("login")
        if isinstance(self.connection, Exception):
            raise self.connection
        return self.connection

    async def close(self):
        self.closed = True


# ============================================================================
# Argument parsing
# ============================================================================

def test_defaults_to_istanbul_new_york_one_kilo():
    command, request, save = parse_args(["prices"])

    assert command == "prices"
    assert save is False
    assert (request.origin_country, request.origin_city) == ("TR", "Istanbul")
    assert (request.destination_country, request.destination_city, request.destination_postal_code) == (
        "US", "New York", "10001",
    )
    assert request.weight == 1.0
    assert request.dimensions == (20, 15, 10)


def test_destination_weight_and_save():
    command, request, save = parse_args(["scrape", "de", "2.5", "--save"])

    assert command == "scrape"
    assert save is True
    assert request.destination_country == "DE"
    assert request.destination_city is None
    assert request.weight == 2.5


@pytest.mark.parametrize("argv", [[], ["quote"], ["prices", "US", "heavy"]])
def test_bad_arguments(argv):
    with pytest.raises(ValueError):
        parse_args(argv)


# ============================================================================
# Output
# ============================================================================

def test_quotes_printed_cheapest_first(capsys):
    print_quotes(QuoteResponse(success=True, quotes=[
        PriceQuote("DHL", "Express", 52.0, "USD"),
        PriceQuote("UPS", "Express", 45.5, "USD", transit_days=3),
    ]))

    out = capsys.readouterr().out
    assert "Found 2 shipping options" in out
    assert out.index("UPS") < out.index("DHL")
    assert "Cheapest: UPS Express - 45.50 USD" in out


def test_failure_printed(capsys):
    print_quotes(QuoteResponse.failure("No quotes captured"))

    assert "Failed: No quotes captured" in capsys.readouterr().out


def test_save_results(tmp_path):
    _, request, _ = parse_args(["prices", "US", "1"])
    response = QuoteResponse(success=True, quotes=[PriceQuote("UPS", "Express", 45.5, "USD")])

    path = save_results(response, request, tmp_path)

    assert path.name == "navlungo-prices-US-1kg.json"
    saved = json.loads(path.read_text())
    assert saved["success"] is True
    assert saved["quotes"][0]["carrier"] == "UPS"
    assert saved["request"]["destination"]["postalCode"] == "10001"


# ============================================================================
# Commands
# ============================================================================

@pytest.mark.asyncio
@pytest.mark.parametrize("command", ["prices", "scrape", "fallback", "interactive"])
async def test_quote_commands(settings, command):
    client = StubClient(settings)
    _, request, _ = parse_args([command])

    exit_code = await run_command(client, command, request, save=False)

    assert exit_code == 0
    assert client.calls == [command]
    assert client.closed is True


@pytest.mark.asyncio
async def test_save_writes_next_to_screenshots(settings):
    client = StubClient(settings)
    _, request, _ = parse_args(["prices", "US", "1", "--save"])

    await run_command(client, "prices", request, save=True)

    assert (settings.screenshot_dir / "navlungo-prices-US-1kg.json").exists()


@pytest.mark.asyncio
async def test_failed_lookup_exits_nonzero(settings):
    client = StubClient(settings, response=QuoteResponse.failure("Navlungo API error: 500"))
    _, request, _ = parse_args(["prices"])

    assert await run_command(client, "prices", request, save=False) == 1


@pytest.mark.asyncio
async def test_login_command(settings, capsys):
    client = StubClient(settings, connection={
        "success": True,
        "message": "Successfully connected to Navlungo",
        "tokenInfo": {"expiresAt": "2026-01-01T00:00:00+00:00", "userId": "uid-42"},
    })
    _, request, _ = parse_args(["login"])

    assert await run_command(client, "login", request, save=False) == 0
    assert "User: uid-42" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_configuration_error_is_reported(settings, capsys):
    client = StubClient(settings, connection=ConfigurationError("Missing required environment variables: NAVLUNGO_EMAIL"))
    _, request, _ = parse_args(["login"])

    assert await run_command(client, "login", request, save=False) == 1
    assert "NAVLUNGO_EMAIL" in capsys.readouterr().out
    assert client.closed is True
