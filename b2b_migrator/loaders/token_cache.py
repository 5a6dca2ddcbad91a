"""Single-flight token cache for target authentication."""

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from ..exceptions import AuthenticationError
from ..models.artifact import utcnow
from ..models.config import TargetCredentials
from .base import Token

logger = logging.getLogger(__name__)


@dataclass
class _CacheEntry:
    token: Token
    expires_at: datetime


class TokenCache:
    """
    Caches one token per credential identity.

    A valid entry is returned without a network call. On a miss, the first
    caller fetches while concurrent callers for the same identity wait on a
    shared future, so there is at most one outbound call per refresh. Failures
    are shared by all waiters and never cached.
    """

    def __init__(
        self,
        fetch: Callable[[TargetCredentials], Token],
        expiry_margin: float = 60.0,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize the cache.

        Args:
            fetch: Performs the credential exchange (e.g. ``loader.authenticate``)
            expiry_margin: Seconds before expiry at which a token is refreshed
            clock: Returns the current time; injectable for tests
        """
        self._fetch = fetch
        self.expiry_margin = expiry_margin
        self._clock = clock or utcnow
        self._lock = threading.Lock()
        self._entries: Dict[str, _CacheEntry] = {}
        self._in_flight: Dict[str, Future] = {}

    def get(self, credentials: TargetCredentials) -> Token:
        """
        Get a valid token for the credentials.

        Raises:
            AuthenticationError: If the credential exchange fails
        """
        key = credentials.identity

        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and self._clock() < entry.expires_at:
                return entry.token

            future = self._in_flight.get(key)
            leader = future is None
            if leader:
                future = Future()
                self._in_flight[key] = future

        if not leader:
            logger.debug(f"Waiting on in-flight token request for {credentials.client_id}")
            return future.result()

        try:
            token = self._fetch_token(credentials)
        except AuthenticationError as e:
            with self._lock:
                del self._in_flight[key]
            future.set_exception(e)
            raise

        with self._lock:
            expires_at = self._clock() + timedelta(seconds=max(token.expires_in - self.expiry_margin, 0))
            self._entries[key] = _CacheEntry(token=token, expires_at=expires_at)
            del self._in_flight[key]
        future.set_result(token)
        return token

    def _fetch_token(self, credentials: TargetCredentials) -> Token:
        logger.info(f"Requesting access token for client {credentials.client_id}")
        try:
            return self._fetch(credentials)
        except AuthenticationError:
            raise
        except Exception as e:
            raise AuthenticationError(f"Token request failed: {e}") from e

    def invalidate(self, credentials: TargetCredentials) -> None:
        """Drop the cached token for the credentials."""
        with self._lock:
            self._entries.pop(credentials.identity, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
