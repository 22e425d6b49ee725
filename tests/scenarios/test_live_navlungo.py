"""
Scenario tests against the live Navlungo portal.

NOTE: These tests require:
- NAVLUNGO_EMAIL / NAVLUNGO_PASSWORD
- Playwright Chromium installed (`playwright install chromium`)
- A human to solve the CAPTCHA in the browser window that opens

Skipped automatically when the credentials are not set.
"""

import os

import pytest
from dotenv import load_dotenv

# Load environment variables for tests
load_dotenv()

from navlungo_pricing.carriers.navlungo import NavlungoClient
from navlungo_pricing.config import Settings
from navlungo_pricing.main import build_request

pytestmark = [
    pytest.mark.integration,
    pytest.mark.slow,
    pytest.mark.skipif(
        not (os.getenv("NAVLUNGO_EMAIL") and os.getenv("NAVLUNGO_PASSWORD")),
        reason="Missing required environment variables: NAVLUNGO_EMAIL, NAVLUNGO_PASSWORD",
    ),
]


# ============================================================================
# TEST 1: Login
# ============================================================================

@pytest.mark.asyncio
async def test_login_and_token_extraction():
    """
    Integration test: human-assisted login yields a usable token.

    Validates:
    - Browser opens on the login page with the form filled
    - Token is extracted after the human completes the CAPTCHA
    - Token file is written
    """
    settings = Settings.from_env()
    async with NavlungoClient.from_settings(settings) as client:
        result = await client.test_connection()

    assert result["success"] is True, result["message"]
    assert result["tokenInfo"]["expiresAt"]
    assert settings.token_file.exists()


# ============================================================================
# TEST 2: Prices (API with fallback)
# ============================================================================

@pytest.mark.asyncio
async def test_istanbul_to_new_york_prices():
    """
    Integration test: TR -> US, 1kg, 20x15x10cm returns at least one quote.
    """
    async with NavlungoClient.from_settings() as client:
        response = await client.get_prices_with_fallback(build_request("US", 1.0))

    assert response.success is True, response.error
    assert response.quotes
    assert all(q.price > 0 for q in response.quotes)
