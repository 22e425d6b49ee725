"""
Navlungo Pricing - Command Line

Manual testing against the live portal.

Usage:
    navlungo-pricing login                      # Test login and token extraction
    navlungo-pricing prices [DEST] [WEIGHT]     # Quote API
    navlungo-pricing scrape [DEST] [WEIGHT]     # Price calculator scrape
    navlungo-pricing fallback [DEST] [WEIGHT]   # Quote API, then scrape
    navlungo-pricing interactive                # Fill the calculator yourself

Add --save to write the quotes as JSON next to the screenshots.
Ctrl+C ends a pending login wait / interactive capture; press again to abort.
"""

import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Optional

from navlungo_pricing.carriers.navlungo import NavlungoClient
from navlungo_pricing.config import Settings
from navlungo_pricing.errors import NavlungoError
from navlungo_pricing.event_logger import configure_logger
from navlungo_pricing.models import PriceRequest, QuoteResponse

COMMANDS = ("login", "prices", "scrape", "fallback", "interactive")


def build_request(destination: str = "US", weight: float = 1.0) -> PriceRequest:
    """Sample shipment from Istanbul; New York 10001 when shipping to the US."""
    destination = destination.upper()
    is_us = destination == "US"
    return PriceRequest(
        origin_country="TR",
        origin_city="Istanbul",
        destination_country=destination,
        destination_city="New York" if is_us else None,
        destination_postal_code="10001" if is_us else None,
        weight=weight,
        length=20,
        width=15,
        height=10,
        package_count=1,
    )


def parse_args(argv: list) -> tuple:
    """Returns (command, request, save). Raises ValueError on bad input."""
    save = "--save" in argv
    args = [a for a in argv if a != "--save"]

    if not args or args[0] not in COMMANDS:
        raise ValueError(f"Unknown command. Use one of: {', '.join(COMMANDS)}")

    command = args[0]
    destination = args[1] if len(args) > 1 else "US"
    try:
        weight = float(args[2]) if len(args) > 2 else 1.0
    except ValueError:
        raise ValueError(f"WEIGHT must be a number, got {args[2]!r}")

    return command, build_request(destination, weight), save


def print_quotes(response: QuoteResponse) -> None:
    """Print quotes as a table, cheapest first."""
    if not response.success:
        print(f"\nFailed: {response.error}")
        return
    if not response.quotes:
        print("\nNo quotes returned")
        return

    quotes = sorted(response.quotes, key=lambda q: q.price)

    print(f"\n{'=' * 60}")
    print(f"Found {len(quotes)} shipping options:")
    print("=" * 60)
    for i, quote in enumerate(quotes, 1):
        transit = f"  ({quote.transit_days} days)" if quote.transit_days else ""
        print(f"{i:>2}. {quote.carrier:<12} {quote.service:<24} {quote.price:>10.2f} {quote.currency}{transit}")
    print("=" * 60)

    cheapest = quotes[0]
    print(f"Cheapest: {cheapest.carrier} {cheapest.service} - {cheapest.price:.2f} {cheapest.currency}")


def save_results(response: QuoteResponse, request: PriceRequest, directory: Path) -> Path:
    """Write the envelope to <directory>/navlungo-prices-<CC>-<w>kg.json."""
    path = Path(directory) / f"navlungo-prices-{request.destination_country}-{request.weight:g}kg.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(
            {"request": request.to_api_payload(), **response.to_dict()},
            f,
            indent=2,
            ensure_ascii=False,
        )
    print(f"\nResults saved to: {path}")
    return path


async def run_command(client: NavlungoClient, command: str, request: PriceRequest, save: bool) -> int:
    """Run one CLI command. Returns the process exit code."""
    try:
        if command == "login":
            print("Testing Navlungo login...")
            result = await client.test_connection()
            print(f"\n{result['message']}")
            if result.get("tokenInfo"):
                print(f"Token expires: {result['tokenInfo']['expiresAt']}")
                print(f"User: {result['tokenInfo']['userId']}")
            return 0 if result["success"] else 1

        print(f"Shipment: {request.origin_country} -> {request.destination_country}, "
              f"{request.weight}kg, {request.length}x{request.width}x{request.height}cm")

        if command == "prices":
            response = await client.get_prices(request)
        elif command == "scrape":
            response = await client.scrape_price_calculator(request)
        elif command == "fallback":
            response = await client.get_prices_with_fallback(request)
        else:
            response = await client.interactive_price_fetch()

        print_quotes(response)
        if save and response.quotes:
            save_results(response, request, client.settings.screenshot_dir)
        return 0 if response.success else 1

    except NavlungoError as e:
        print(f"\nError: {e}")
        return 1
    finally:
        await client.close()


def main(argv: Optional[list] = None) -> None:
    """Main entry point."""
    try:
        command, request, save = parse_args(sys.argv[1:] if argv is None else argv)
        settings = Settings.from_env()
    except (ValueError, NavlungoError) as e:
        print(f"Error: {e}")
        print(__doc__)
        sys.exit(2)

    configure_logger(settings.log_dir)
    client = NavlungoClient.from_settings(settings)

    loop = asyncio.new_event_loop()
    task = loop.create_task(run_command(client, command, request, save))

    def interrupt():
        # First signal ends a pending human wait, the next one aborts
        if not client.cancel_login():
            print("\nAborting...")
            task.cancel()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, interrupt)
        except NotImplementedError:
            # Windows event loops
            pass

    try:
        exit_code = loop.run_until_complete(task)
    except asyncio.CancelledError:
        print("Interrupted")
        exit_code = 130
    finally:
        loop.close()

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
