"""
Isolated token cache for the test-infrastructure identity.

Each provider owns one TokenCache. It is never handed to any other token
consumer, so tokens acquired for Key Vault access cannot show up in the cache
used by the application under test.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, NamedTuple, Optional

from keyvault_automation.common.logging.setup import get_logger
from keyvault_automation.common.logging.utilities import log_with_context

logger = get_logger(__name__)

# Reuse a token only while it has more than this many seconds left
TOKEN_REFRESH_BUFFER_SECS = 300


class TokenCacheKey(NamedTuple):
    """(authority, resource, identity) a token was issued for."""

    authority: str
    resource: str
    identity: str


@dataclass(frozen=True)
class TokenResult:
    """Access token returned by the identity provider."""

    access_token: str
    expires_on: int  # POSIX timestamp (seconds)


@dataclass
class CachedToken:
    """Token with expiry and acquisition timestamp."""

    value: str
    expires_on: int
    acquired_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def is_valid(self, buffer_secs: int = TOKEN_REFRESH_BUFFER_SECS) -> bool:
        """Check if token is still valid with buffer."""
        return self.expires_on - time.time() > buffer_secs


class TokenCache:
    """
    Thread-safe token cache keyed by authority, resource and identity.

    Also hands out one acquisition lock per key so concurrent first callers
    wait for a single acquisition instead of racing to the identity provider.
    """

    def __init__(self) -> None:
        self._tokens: Dict[TokenCacheKey, CachedToken] = {}
        self._acquisition_locks: Dict[TokenCacheKey, threading.Lock] = {}
        self._lock = threading.Lock()

    def get(self, key: TokenCacheKey) -> Optional[str]:
        """Get cached token if still valid."""
        with self._lock:
            cached = self._tokens.get(key)
        if cached and cached.is_valid():
            return cached.value
        return None

    def set(self, key: TokenCacheKey, result: TokenResult) -> None:
        """Cache a token."""
        with self._lock:
            self._tokens[key] = CachedToken(
                value=result.access_token, expires_on=result.expires_on
            )

    def acquisition_lock(self, key: TokenCacheKey) -> threading.Lock:
        """Lock serializing token acquisition for one key."""
        with self._lock:
            lock = self._acquisition_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._acquisition_locks[key] = lock
            return lock

    def clear(self, key: Optional[TokenCacheKey] = None) -> None:
        """Clear one or all cached tokens."""
        with self._lock:
            if key:
                self._tokens.pop(key, None)
            else:
                self._tokens.clear()
        if key:
            log_with_context(
                logger,
                logging.DEBUG,
                "Cleared token cache entry",
                authority=key.authority,
                resource=key.resource,
            )
        else:
            log_with_context(logger, logging.DEBUG, "Cleared all cached tokens")

    def get_age(self, key: TokenCacheKey) -> Optional[timedelta]:
        """Get age of cached token (for diagnostics)."""
        with self._lock:
            cached = self._tokens.get(key)
        if cached:
            return datetime.now(timezone.utc) - cached.acquired_at
        return None

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)
