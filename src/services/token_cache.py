"""
Access token cache for the parliament API
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from models.parliament import AccessToken
from utils.errors import AuthenticationFailure

logger = logging.getLogger(__name__)


class AccessTokenCache:
    """
    Holds the single bearer token used for every call to the parliament API.

    The token is refreshed lazily once it expires. A failed refresh caches
    the empty token for a short error window so callers don't hammer the
    token endpoint.
    """

    def __init__(
        self,
        fetch_token: Callable[[], Awaitable[Optional[AccessToken]]],
        expiry_margin: int = 30,
        error_expire_time: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._fetch_token = fetch_token
        self._expiry_margin = expiry_margin
        self._error_expire_time = error_expire_time
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    async def get_token(self) -> str:
        """
        Return a valid access token

        Raises:
            AuthenticationFailure: if no token could be fetched (now or within the error window)
        """
        async with self._lock:
            if self._clock() > self._expires_at:
                await self._refresh()

            if not self._token:
                raise AuthenticationFailure()
            return self._token

    async def _refresh(self):
        try:
            token = await self._fetch_token()
        except Exception as e:
            logger.error(f"Requesting access token failed: {e}")
            token = None

        now = self._clock()
        if token:
            self._token = token.access_token
            self._expires_at = now + max(token.expires_in - self._expiry_margin, 0)
            logger.info("Access token successfully retrieved")
        else:
            self._token = None
            self._expires_at = now + self._error_expire_time
            logger.warning(f"No access token available, retrying in {self._error_expire_time}s at the earliest")

    def invalidate(self):
        """Drop the cached token, the next call fetches a fresh one"""
        self._token = None
        self._expires_at = 0.0
