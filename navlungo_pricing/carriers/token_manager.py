"""
Navlungo Token Manager

Hands out a valid bearer token, hiding whether that took a memory hit, a
read of the token file, or a fresh interactive login.

A token is only handed out while it has more than 5 minutes left.
"""

import asyncio
import json
from pathlib import Path
from typing import Callable, Optional

from navlungo_pricing.models import CachedCredential, now_ms


class TokenStore:
    """Reads and writes the token file ({accessToken, refreshToken, expiresAt, userId})."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Optional[CachedCredential]:
        """Return the stored credential, or None if missing or unreadable."""
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return CachedCredential.from_dict(json.load(f))
        except (OSError, ValueError, TypeError, AttributeError) as e:
            print(f"[TokenManager] Could not load token from file: {e}")
            return None

    def save(self, credential: CachedCredential) -> None:
        """Overwrite the file with credential. Write failures are logged, not raised."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(credential.to_dict(), f, indent=2)
            print("[TokenManager] Token saved to file")
        except OSError as e:
            print(f"[TokenManager] Could not save token to file: {e}")


class TokenManager:
    """
    Supplies bearer tokens for the quote API.

    Lookup order: memory, token file, interactive login. Logins are
    serialised - concurrent callers wait for the one in flight.
    """

    def __init__(
        self,
        authenticator,
        store: TokenStore,
        clock: Callable[[], int] = now_ms,
    ):
        self.authenticator = authenticator
        self.store = store
        self._clock = clock
        self._credential: Optional[CachedCredential] = None
        self._rejected_token: Optional[str] = None
        self._lock = asyncio.Lock()

    @property
    def current_credential(self) -> Optional[CachedCredential]:
        return self._credential

    def is_usable(self, credential: Optional[CachedCredential]) -> bool:
        return credential is not None and credential.is_usable(self._clock())

    async def get_access_token(
        self,
        force_refresh: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> str:
        """
        Return a usable access token.

        Args:
            force_refresh: Skip memory and the token file; always log in once
            cancel_event: Passed through to the interactive login wait

        Returns:
            str: bearer token

        Raises:
            AuthenticationError / ConfigurationError from the login
        """
        credential = await self.get_credential(force_refresh=force_refresh, cancel_event=cancel_event)
        return credential.access_token

    async def get_credential(
        self,
        force_refresh: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> CachedCredential:
        if not force_refresh and self.is_usable(self._credential):
            return self._credential

        async with self._lock:
            # Another caller may have logged in while we waited for the lock
            if not force_refresh and self.is_usable(self._credential):
                return self._credential

            if self._credential is not None:
                print("[TokenManager] Token expired or expiring soon, refreshing...")

            if not force_refresh:
                stored = self.store.load()
                if self.is_usable(stored) and stored.access_token != self._rejected_token:
                    print("[TokenManager] Loaded valid token from file")
                    self._credential = stored
                    return stored
                if stored is not None:
                    print("[TokenManager] Token from file is expired or was rejected")

            credential = await self.authenticator.login(cancel_event=cancel_event)
            self._credential = credential
            self._rejected_token = None
            self.store.save(credential)
            return credential

    def invalidate(self) -> None:
        """Drop the in-memory token after the API rejected it. The file is left alone."""
        if self._credential is not None:
            self._rejected_token = self._credential.access_token
        self._credential = None
