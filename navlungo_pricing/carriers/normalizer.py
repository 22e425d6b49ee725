"""
Navlungo Response Normalizer

Turns the JSON shapes the portal returns into PriceQuote records.

Accepted shapes (checked in this order):
- a bare list of quote objects
- {"quotes": [...]}
- {"data": {...}} or {"data": [...]} (an empty {"data": {}} is one blank quote)

A shape that matches none of these yields an empty *successful* response -
the portal uses the same result for "no quotes for this lane", and we can't
tell the two apart.
"""

import re
from typing import Any, Optional

from navlungo_pricing.models import PriceQuote, QuoteResponse


def _first(item: dict, *keys: str, default: Any = None) -> Any:
    """Return the first truthy value among keys (falsy values fall through)."""
    for key in keys:
        value = item.get(key)
        if value:
            return value
    return default


def _present(value: Any) -> bool:
    """Containers count as present even when empty; scalars by truthiness."""
    return isinstance(value, (dict, list)) or bool(value)


def _to_quote(item: Any) -> PriceQuote:
    if not isinstance(item, dict):
        raise TypeError(f"quote item must be an object, got {type(item).__name__}")

    return PriceQuote(
        carrier=_first(item, "carrier", "providerName", default="Unknown"),
        service=_first(item, "service", "serviceName", default="Standard"),
        price=_as_price(_first(item, "price", "totalPrice", default=0)) or 0,
        currency=_first(item, "currency", default="USD"),
        transit_days=_first(item, "transitDays", "estimatedDays"),
        transit_time=item.get("transitTime"),
    )


def parse_quote_response(data: Any) -> QuoteResponse:
    """
    Normalize a quote API payload.

    Args:
        data: Decoded JSON from the quote API or a captured page response

    Returns:
        QuoteResponse: success with the quotes found, or a failure envelope
            if a recognized shape held malformed items. Never raises.
    """
    try:
        if data is None:
            raise TypeError("empty payload")

        if isinstance(data, list):
            items = data
        elif isinstance(data, dict) and data.get("quotes") is not None:
            items = data["quotes"]
        elif isinstance(data, dict) and _present(data.get("data")):
            nested = data["data"]
            items = nested if isinstance(nested, list) else [nested]
        else:
            items = []

        quotes = [_to_quote(item) for item in items]
        return QuoteResponse(success=True, quotes=quotes)

    except Exception:
        return QuoteResponse.failure("Failed to parse response")


# ===========================================================================
# Deep extraction (interactive capture)
# ===========================================================================

LIST_KEYS = ("quotes", "rates", "results", "data", "prices", "carriers", "options", "services")
PRICE_FIELDS = ("price", "totalPrice", "total", "amount", "cost", "rate", "charge")
CARRIER_FIELDS = ("carrier", "carrierName", "provider", "providerName", "company", "name")
SERVICE_FIELDS = ("service", "serviceName", "serviceType", "type", "product", "productName")
CURRENCY_FIELDS = ("currency", "currencyCode", "curr")
TRANSIT_FIELDS = ("transitTime", "transitDays", "deliveryDays", "estimatedDays", "eta")

_NUMBER_RE = re.compile(r"^\s*-?\d+(?:\.\d+)?")


def _as_price(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = _NUMBER_RE.match(value)
        if match:
            return float(match.group(0))
    return None


def extract_single_price(item: Any) -> Optional[PriceQuote]:
    """
    Pull one quote out of an arbitrary object using wide field-name synonyms.

    Only accepts items with a positive price and at least a carrier or
    service name.
    """
    if not isinstance(item, dict):
        return None

    price = None
    for key in PRICE_FIELDS:
        if item.get(key) is not None:
            price = _as_price(item[key])
            if price is not None:
                break

    carrier = _first(item, *CARRIER_FIELDS)
    service = _first(item, *SERVICE_FIELDS)
    currency = _first(item, *CURRENCY_FIELDS, default="USD")
    transit = _first(item, *TRANSIT_FIELDS)

    if price is None or price <= 0 or not (carrier or service):
        return None

    return PriceQuote(
        carrier=str(carrier) if carrier else "Unknown",
        service=str(service) if service else "Standard",
        price=price,
        currency=str(currency),
        transit_time=str(transit) if transit else None,
    )


def add_unique(quotes: list, candidate: PriceQuote) -> bool:
    """Append candidate unless an equivalent offer is already present."""
    if any(existing.same_offer(candidate) for existing in quotes):
        return False
    quotes.append(candidate)
    return True


def extract_prices_deep(data: Any, results: Optional[list] = None) -> list:
    """
    Recursively collect quotes from any nesting of lists and objects.

    Args:
        data: Decoded JSON of unknown shape
        results: Existing list to extend (duplicates are skipped)

    Returns:
        list: The results list
    """
    if results is None:
        results = []

    if isinstance(data, list):
        for item in data:
            quote = extract_single_price(item)
            if quote:
                add_unique(results, quote)
            elif isinstance(item, (dict, list)):
                extract_prices_deep(item, results)
    elif isinstance(data, dict):
        for key in LIST_KEYS:
            if isinstance(data.get(key), list):
                for item in data[key]:
                    quote = extract_single_price(item)
                    if quote:
                        add_unique(results, quote)
        for value in data.values():
            if isinstance(value, (dict, list)):
                extract_prices_deep(value, results)

    return results
