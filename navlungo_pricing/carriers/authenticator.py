"""
Navlungo Interactive Login

The portal sits behind a Cloudflare Turnstile check, so login can't be fully
automated. Flow:
1. Open the login page in a visible browser
2. Type the credentials
3. Wait for a human to solve the CAPTCHA and press "Giriş Yap"
4. Detect the logged-in state (URL leaves /login, or a Firebase auth key appears)
5. Read the Firebase token out of client-side storage

States: IDLE -> BROWSER_LAUNCHED -> FORM_FILLED -> WAITING_FOR_HUMAN ->
LOGIN_DETECTED -> TOKEN_EXTRACTION -> SUCCESS | FAILURE
"""

import asyncio
import time
from enum import Enum
from typing import Awaitable, Callable, Optional

from playwright.async_api import Error as PlaywrightError

from navlungo_pricing.config import Settings
from navlungo_pricing.errors import (
    AuthenticationError,
    LoginCancelledError,
    LoginTimeoutError,
    NavlungoError,
    TokenExtractionError,
)
from navlungo_pricing.event_logger import get_logger
from navlungo_pricing.models import CachedCredential


EMAIL_SELECTOR = 'input[type="email"], input[name="email"]'
PASSWORD_SELECTOR = 'input[type="password"], input[name="password"]'

LOGIN_DETECTED_JS = """
() => {
  if (!window.location.pathname.includes('/login')) {
    return true;
  }
  return Object.keys(localStorage).some((key) => key.includes('firebase:authUser'));
}
"""

# Firebase keeps the signed-in user under "firebase:authUser:<apiKey>:<app>"
STORAGE_TOKEN_JS = """
() => {
  for (const key of Object.keys(localStorage)) {
    if (key.includes('firebase:authUser') || key.includes('firebaseLocalStorageDb')) {
      try {
        const parsed = JSON.parse(localStorage.getItem(key) || 'null');
        if (parsed && parsed.stsTokenManager) {
          return {
            accessToken: parsed.stsTokenManager.accessToken,
            refreshToken: parsed.stsTokenManager.refreshToken,
            expirationTime: parsed.stsTokenManager.expirationTime,
            userId: parsed.uid,
          };
        }
      } catch (e) {}
    }
  }
  for (const key of Object.keys(sessionStorage)) {
    if (key.includes('auth') || key.includes('token')) {
      try {
        const parsed = JSON.parse(sessionStorage.getItem(key) || 'null');
        if (parsed) {
          return parsed;
        }
      } catch (e) {}
    }
  }
  return null;
}
"""

INDEXED_DB_TOKEN_JS = """
() => new Promise((resolve) => {
  const request = indexedDB.open('firebaseLocalStorageDb');
  request.onerror = () => resolve(null);
  request.onsuccess = () => {
    try {
      const db = request.result;
      const store = db.transaction('firebaseLocalStorage', 'readonly').objectStore('firebaseLocalStorage');
      const getAll = store.getAll();
      getAll.onerror = () => resolve(null);
      getAll.onsuccess = () => {
        for (const item of getAll.result) {
          if (item.value && item.value.stsTokenManager) {
            resolve({
              accessToken: item.value.stsTokenManager.accessToken,
              refreshToken: item.value.stsTokenManager.refreshToken,
              expirationTime: item.value.stsTokenManager.expirationTime,
              userId: item.value.uid,
            });
            return;
          }
        }
        resolve(null);
      };
    } catch (e) {
      resolve(null);
    }
  };
})
"""


class LoginState(str, Enum):
    IDLE = "idle"
    BROWSER_LAUNCHED = "browser_launched"
    FORM_FILLED = "form_filled"
    WAITING_FOR_HUMAN = "waiting_for_human"
    LOGIN_DETECTED = "login_detected"
    TOKEN_EXTRACTION = "token_extraction"
    SUCCESS = "success"
    FAILURE = "failure"


def _credential_from(data) -> Optional[CachedCredential]:
    if not isinstance(data, dict):
        return None
    try:
        return CachedCredential.from_dict(data)
    except (ValueError, TypeError):
        return None


async def wait_for_login(
    page,
    timeout: float,
    cancel_event: Optional[asyncio.Event] = None,
    poll_interval: float = 0.5,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable] = asyncio.sleep,
) -> None:
    """
    Suspend until the page shows a logged-in state.

    Raises:
        LoginCancelledError: cancel_event was set before login was detected
        LoginTimeoutError: timeout seconds passed without login
    """
    deadline = clock() + timeout

    while True:
        if cancel_event is not None and cancel_event.is_set():
            raise LoginCancelledError("Login wait cancelled")

        try:
            if await page.evaluate(LOGIN_DETECTED_JS):
                return
        except PlaywrightError as e:
            # Execution context is torn down while the form submits
            print(f"[Navlungo] Login check skipped during navigation: {e}")

        if clock() >= deadline:
            raise LoginTimeoutError(f"Login not completed within {timeout:.0f}s")

        await sleep(poll_interval)


class InteractiveAuthenticator:
    """Human-assisted login against the Navlungo portal."""

    def __init__(
        self,
        settings: Settings,
        browser,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
        poll_interval: float = 0.5,
    ):
        self.settings = settings
        self.browser = browser
        self.state = LoginState.IDLE
        self._clock = clock
        self._sleep = sleep
        self._poll_interval = poll_interval

    def _set_state(self, state: LoginState, detail: Optional[str] = None) -> None:
        self.state = state
        get_logger().log_login_state(state.value, detail)

    async def login(self, cancel_event: Optional[asyncio.Event] = None) -> CachedCredential:
        """
        Run one interactive login and return the harvested credential.

        Args:
            cancel_event: Set it to abandon the wait for the human

        Returns:
            CachedCredential: the Firebase session token

        Raises:
            ConfigurationError: credentials not configured
            LoginTimeoutError, LoginCancelledError, TokenExtractionError
            AuthenticationError: the browser failed (navigation timeout, window closed)
        """
        email, password = self.settings.require_credentials()
        self._set_state(LoginState.IDLE)

        print("[Navlungo] Starting login process...")
        print("[Navlungo] A browser window will open. Please solve the CAPTCHA manually if prompted.")

        try:
            async with self.browser.page(headful=True) as page:
                self._set_state(LoginState.BROWSER_LAUNCHED)
                print("[Navlungo] Navigating to login page...")
                await page.goto(
                    self.settings.login_url,
                    wait_until="networkidle",
                    timeout=self.settings.navigation_timeout * 1000,
                )
                await self.browser.screenshot(page, "1-login-page")

                await page.wait_for_selector(EMAIL_SELECTOR, timeout=10000)
                print("[Navlungo] Filling login form...")
                await page.locator(EMAIL_SELECTOR).first.press_sequentially(email, delay=50)
                await page.locator(PASSWORD_SELECTOR).first.press_sequentially(password, delay=50)
                self._set_state(LoginState.FORM_FILLED)

                print("[Navlungo] ========================================")
                print("[Navlungo] Please solve the CAPTCHA in the browser window")
                print("[Navlungo] Then click the 'Giriş Yap' (Login) button")
                print("[Navlungo] ========================================")
                print(f"[Navlungo] Waiting for you to complete login (up to {self.settings.login_timeout:.0f}s)...")

                self._set_state(LoginState.WAITING_FOR_HUMAN)
                await wait_for_login(
                    page,
                    timeout=self.settings.login_timeout,
                    cancel_event=cancel_event,
                    poll_interval=self._poll_interval,
                    clock=self._clock,
                    sleep=self._sleep,
                )

                self._set_state(LoginState.LOGIN_DETECTED)
                print("[Navlungo] Login detected!")

                # Firebase writes the token shortly after the redirect
                await self._sleep(self.settings.login_settle_delay)
                await self.browser.screenshot(page, "2-after-login")

                self._set_state(LoginState.TOKEN_EXTRACTION)
                credential = await self.extract_token(page)

        except NavlungoError as e:
            self._set_state(LoginState.FAILURE, str(e))
            print(f"[Navlungo] Login failed: {e}")
            raise
        except Exception as e:
            # Browser failures (navigation timeout, closed window) surface as login failures
            self._set_state(LoginState.FAILURE, str(e))
            print(f"[Navlungo] Login failed: {e}")
            raise AuthenticationError(str(e) or e.__class__.__name__) from e

        self._set_state(LoginState.SUCCESS)
        print("[Navlungo] Login successful, token extracted")
        return credential

    async def extract_token(self, page) -> CachedCredential:
        """Search localStorage/sessionStorage, then IndexedDB, for the auth token."""
        print("[Navlungo] Extracting token from localStorage...")
        credential = _credential_from(await page.evaluate(STORAGE_TOKEN_JS))
        if credential:
            return credential

        print("[Navlungo] Not in localStorage, trying IndexedDB...")
        credential = _credential_from(await page.evaluate(INDEXED_DB_TOKEN_JS))
        if credential:
            print("[Navlungo] Token extracted from IndexedDB")
            return credential

        raise TokenExtractionError("Failed to extract Firebase token")
