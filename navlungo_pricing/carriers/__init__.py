"""
Navlungo Carrier Integration

Shipping price lookups against the Navlungo portal:
- quote API with a Firebase token harvested from a human-assisted login
- price calculator scraping as the fallback

v2: optional browser-use autofill for the calculator form.
"""

from .navlungo import NavlungoClient
from .normalizer import parse_quote_response, extract_prices_deep
from .token_manager import TokenManager, TokenStore

__all__ = [
    "NavlungoClient",
    "parse_quote_response",
    "extract_prices_deep",
    "TokenManager",
    "TokenStore",
]
