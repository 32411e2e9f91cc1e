"""
Authentication module.

Components:
    - TokenCache: isolated, thread-safe token cache keyed by
      (authority, resource, identity)
    - AuthenticationContext: authority-bound, cache-first token acquisition
    - AuthStrategy: CertificateAssertionStrategy / UserCredentialStrategy
    - IdentityProvider / AzureIdentityProvider: token acquisition via azure-identity
    - CertificateStore / DirectoryCertificateStore: thumbprint lookup
"""

from .certificates import Certificate, CertificateStore, DirectoryCertificateStore
from .context import AuthenticationContext
from .identity import (
    AzureIdentityProvider,
    CertificateAssertionCredential,
    IdentityProvider,
)
from .strategies import (
    AuthStrategy,
    CertificateAssertionStrategy,
    UserCredentialStrategy,
    create_strategy,
)
from .token_cache import (
    TOKEN_REFRESH_BUFFER_SECS,
    CachedToken,
    TokenCache,
    TokenCacheKey,
    TokenResult,
)

__all__ = [
    "AuthStrategy",
    "AuthenticationContext",
    "AzureIdentityProvider",
    "CachedToken",
    "Certificate",
    "CertificateAssertionCredential",
    "CertificateAssertionStrategy",
    "CertificateStore",
    "DirectoryCertificateStore",
    "IdentityProvider",
    "TOKEN_REFRESH_BUFFER_SECS",
    "TokenCache",
    "TokenCacheKey",
    "TokenResult",
    "UserCredentialStrategy",
    "create_strategy",
]
