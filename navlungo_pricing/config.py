"""
Configuration for the Navlungo pricing service.

Values come from environment variables (a local .env is loaded first).
Portal credentials have no defaults - login fails fast without them.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from navlungo_pricing.errors import ConfigurationError


# Portal endpoints discovered from navlungo's frontend
LOGIN_URL = "https://ship.navlungo.com/login"
PRICE_CALCULATOR_URL = "https://ship.navlungo.com/ship/priceCalculator"
QUOTE_SEARCH_URL = "https://quote-search-api.navlungo.com"
PORTAL_ORIGIN = "https://ship.navlungo.com"

DEFAULT_TOKEN_FILE = Path(__file__).parent / "carriers" / ".navlungo-token.json"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {value!r}")


@dataclass
class Settings:
    """Runtime settings for the quote flow."""

    email: Optional[str] = None
    password: Optional[str] = None

    login_url: str = LOGIN_URL
    price_calculator_url: str = PRICE_CALCULATOR_URL
    quote_search_url: str = QUOTE_SEARCH_URL
    portal_origin: str = PORTAL_ORIGIN

    token_file: Path = DEFAULT_TOKEN_FILE
    user_data_dir: Optional[Path] = None
    screenshot_dir: Path = Path("/tmp")
    log_dir: Path = Path("logs/navlungo")

    headless: bool = False  # login needs a visible window for the CAPTCHA
    slow_mo_ms: float = 50
    user_agent: str = DEFAULT_USER_AGENT
    languages: tuple = ("tr-TR", "tr", "en-US", "en")

    # Seconds
    login_timeout: float = 120.0
    login_settle_delay: float = 3.0
    navigation_timeout: float = 30.0
    http_timeout: float = 30.0
    form_load_delay: float = 2.0
    capture_wait: float = 5.0
    interactive_timeout: float = 300.0

    autofill: bool = False
    autofill_model: str = "claude-sonnet-4-0"
    cdp_port: int = 9222

    @classmethod
    def from_env(cls, load_env_file: bool = True) -> "Settings":
        """Build settings from environment variables."""
        if load_env_file:
            load_dotenv()

        user_data_dir = os.getenv("NAVLUNGO_USER_DATA_DIR")

        return cls(
            email=os.getenv("NAVLUNGO_EMAIL") or None,
            password=os.getenv("NAVLUNGO_PASSWORD") or None,
            login_url=os.getenv("NAVLUNGO_LOGIN_URL", LOGIN_URL),
            price_calculator_url=os.getenv("NAVLUNGO_PRICE_CALCULATOR_URL", PRICE_CALCULATOR_URL),
            quote_search_url=os.getenv("NAVLUNGO_QUOTE_SEARCH_URL", QUOTE_SEARCH_URL).rstrip("/"),
            token_file=Path(os.getenv("NAVLUNGO_TOKEN_FILE", str(DEFAULT_TOKEN_FILE))),
            user_data_dir=Path(user_data_dir) if user_data_dir else None,
            screenshot_dir=Path(os.getenv("NAVLUNGO_SCREENSHOT_DIR", "/tmp")),
            log_dir=Path(os.getenv("NAVLUNGO_LOG_DIR", "logs/navlungo")),
            headless=_env_bool("NAVLUNGO_HEADLESS", False),
            slow_mo_ms=_env_float("NAVLUNGO_SLOW_MO_MS", 50),
            login_timeout=_env_float("NAVLUNGO_LOGIN_TIMEOUT", 120.0),
            http_timeout=_env_float("NAVLUNGO_HTTP_TIMEOUT", 30.0),
            interactive_timeout=_env_float("NAVLUNGO_INTERACTIVE_TIMEOUT", 300.0),
            autofill=_env_bool("NAVLUNGO_AUTOFILL", False),
            autofill_model=os.getenv("NAVLUNGO_AUTOFILL_MODEL", "claude-sonnet-4-0"),
            cdp_port=int(_env_float("NAVLUNGO_CDP_PORT", 9222)),
        )

    def require_credentials(self) -> tuple[str, str]:
        """Return (email, password) or raise if either is missing."""
        missing = []
        if not self.email:
            missing.append("NAVLUNGO_EMAIL")
        if not self.password:
            missing.append("NAVLUNGO_PASSWORD")
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}"
            )
        return self.email, self.password
