"""Authority-bound authentication context over the isolated token cache."""

import logging
import time
from typing import Callable, Optional

from keyvault_automation.auth.token_cache import TokenCache, TokenCacheKey, TokenResult
from keyvault_automation.common.logging.setup import get_logger
from keyvault_automation.common.logging.utilities import log_with_context

logger = get_logger(__name__)


class AuthenticationContext:
    """
    Token acquisition bound to one authority and one TokenCache.

    Checks the cache before calling the identity provider and writes newly
    acquired tokens back. Strategies only supply the acquisition function;
    they never read or write the cache themselves.
    """

    def __init__(self, authority: str, cache: TokenCache):
        self.authority = authority
        self._cache = cache

    def acquire_token(
        self,
        resource: str,
        identity: str,
        acquire: Callable[[], Optional[TokenResult]],
    ) -> Optional[str]:
        """
        Return a cached token for (authority, resource, identity) or acquire one.

        Acquisition for a key is serialized: a caller that waited on the lock
        re-checks the cache before calling the identity provider.

        Args:
            resource: Target resource identifier
            identity: Identity the token is issued to (client id, thumbprint)
            acquire: Calls the identity provider; may return None

        Returns:
            Access token string, or None if the identity provider issued none
        """
        key = TokenCacheKey(self.authority, resource, identity)

        cached = self._cache.get(key)
        if cached:
            log_with_context(
                logger,
                logging.DEBUG,
                "Using cached token",
                authority=self.authority,
                resource=resource,
            )
            return cached

        with self._cache.acquisition_lock(key):
            cached = self._cache.get(key)
            if cached:
                return cached

            log_with_context(
                logger,
                logging.DEBUG,
                "Acquiring token",
                authority=self.authority,
                resource=resource,
            )
            start = time.monotonic()
            result = acquire()
            duration_ms = round((time.monotonic() - start) * 1000, 1)

            if result is None or not result.access_token:
                log_with_context(
                    logger,
                    logging.WARNING,
                    "Identity provider returned no token",
                    authority=self.authority,
                    resource=resource,
                    duration_ms=duration_ms,
                )
                return None

            self._cache.set(key, result)
            log_with_context(
                logger,
                logging.INFO,
                "Acquired token",
                authority=self.authority,
                resource=resource,
                duration_ms=duration_ms,
                cache_size=len(self._cache),
            )
            return result.access_token
