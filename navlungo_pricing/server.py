"""
HTTP Server for Navlungo Pricing

Handles:
- Quote lookups (API, scraper, API-with-fallback)
- Interactive login / connection test and cancelling a pending login wait
- Token status (metadata only, never the token)
- Debug endpoints over the JSONL event log
"""

import os
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

import langwatch
from navlungo_pricing.carriers.navlungo import NavlungoClient
from navlungo_pricing.config import Settings
from navlungo_pricing.errors import ConfigurationError
from navlungo_pricing.event_logger import configure_logger, get_logger
from navlungo_pricing.models import PriceRequest, QuoteResponse

# Load environment variables
load_dotenv()

# Initialize LangWatch
langwatch.api_key = os.getenv("LANGWATCH_API_KEY")


_client: Optional[NavlungoClient] = None


def get_client() -> NavlungoClient:
    """Get or create the shared Navlungo client."""
    global _client
    if _client is None:
        settings = Settings.from_env(load_env_file=False)
        configure_logger(settings.log_dir)
        _client = NavlungoClient.from_settings(settings)
    return _client


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    global _client
    print("[Server] Starting Navlungo Pricing Server...")
    yield
    print("[Server] Shutting down...")
    if _client is not None:
        await _client.close()
        _client = None


app = FastAPI(
    title="Navlungo Pricing Server",
    description="Shipping price lookups against the Navlungo portal",
    lifespan=lifespan,
)

# CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class PriceRequestBody(BaseModel):
    """Quote request body (camelCase, as the portal uses)."""

    originCountry: str = Field(min_length=2)
    destinationCountry: str = Field(min_length=2)
    weight: float = Field(gt=0)
    originCity: Optional[str] = None
    originPostalCode: Optional[str] = None
    destinationCity: Optional[str] = None
    destinationPostalCode: Optional[str] = None
    length: Optional[float] = Field(default=None, gt=0)
    width: Optional[float] = Field(default=None, gt=0)
    height: Optional[float] = Field(default=None, gt=0)
    packageCount: Optional[int] = Field(default=None, ge=1)
    declaredValue: Optional[float] = Field(default=None, ge=0)
    currency: Optional[str] = None

    def to_request(self) -> PriceRequest:
        return PriceRequest.from_dict(self.model_dump())


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    print(f"[Server] Configuration error: {exc}")
    get_logger().log_error(str(exc), context={"path": request.url.path})
    return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})


@langwatch.trace()
async def run_quote(operation: str, body: PriceRequestBody, call: Callable[[PriceRequest], Awaitable[QuoteResponse]]) -> dict:
    """
    Run one quote lookup and return the envelope as JSON.

    Failed lookups are still 200 responses with success: false.
    """
    trace = langwatch.get_current_trace()
    if trace:
        trace.update(input={"operation": operation, "request": body.model_dump(exclude_none=True)})

    response = await call(body.to_request())
    result = response.to_dict()

    if trace:
        trace.update(output=result)

    print(f"[Server] {operation}: success={response.success}, quotes={len(response.quotes)}")
    return result


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "browserOpen": _client is not None and _client.browser.is_open,
    }


# =========================================================================
# Pricing
# =========================================================================

@app.post("/navlungo/prices")
async def navlungo_prices(body: PriceRequestBody, client: NavlungoClient = Depends(get_client)):
    """Quotes from the quote API."""
    return await run_quote("prices", body, client.get_prices)


@app.post("/navlungo/prices/fallback")
async def navlungo_prices_fallback(body: PriceRequestBody, client: NavlungoClient = Depends(get_client)):
    """Quote API first, price calculator if that fails."""
    return await run_quote("prices_fallback", body, client.get_prices_with_fallback)


@app.post("/navlungo/prices/scrape")
async def navlungo_prices_scrape(body: PriceRequestBody, client: NavlungoClient = Depends(get_client)):
    """Quotes captured from the price calculator page."""
    return await run_quote("prices_scrape", body, client.scrape_price_calculator)


# =========================================================================
# Session
# =========================================================================

@app.post("/navlungo/login")
async def navlungo_login(client: NavlungoClient = Depends(get_client)):
    """
    Test the connection, logging in if needed.

    Blocks while a human solves the CAPTCHA in the browser window
    (up to NAVLUNGO_LOGIN_TIMEOUT seconds).
    """
    return await client.test_connection()


@app.post("/navlungo/login/cancel")
async def navlungo_login_cancel(client: NavlungoClient = Depends(get_client)):
    """Abandon a pending login wait."""
    return {"cancelled": client.cancel_login()}


@app.get("/navlungo/token")
async def navlungo_token(client: NavlungoClient = Depends(get_client)):
    """Token metadata (expiry, user). The token itself is never returned."""
    return client.token_status()


# =========================================================================
# Debug API Endpoints
# =========================================================================

@app.get("/debug/recent-events")
async def debug_recent_events(limit: int = 50):
    """
    Get recent events from the current session.

    - curl http://localhost:8765/debug/recent-events?limit=20
    """
    logger = get_logger()
    events = logger.current_events()
    if not events:
        return {"events": [], "total": 0, "note": "No active session"}
    return {"events": events[-limit:], "total": len(events)}


@app.get("/debug/errors")
async def debug_errors(limit: int = 50):
    """
    Get recent errors from the event log.

    Returns step_error and error events from recent sessions.
    """
    errors = get_logger().get_errors(limit)
    return {"errors": errors, "count": len(errors)}


def main():
    """Run the server."""
    import uvicorn
    uvicorn.run(
        "navlungo_pricing.server:app",
        host=os.getenv("NAVLUNGO_SERVER_HOST", "0.0.0.0"),
        port=int(os.getenv("NAVLUNGO_SERVER_PORT", "8765")),
        log_level="info"
    )


if __name__ == "__main__":
    main()
