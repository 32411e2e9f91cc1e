"""
Key Vault secrets provider for test infrastructure.

Fetches secrets on behalf of a test suite, authenticating with its own
identity and its own token cache. The application under test may run in the
same process and use its own token cache; tokens acquired here must never end
up there, so every provider owns a private TokenCache.

Usage:
    provider = KeyVaultSecretsProvider()
    provider.initialize(load_config(Path("config.yaml")))
    bundle = provider.get_secret("https://myvault.vault.azure.net/secrets/lab-password")

or through the module-level default provider:
    initialize(section)
    get_secret(secret_url)
"""

import asyncio
import logging
import threading
from typing import Any, Dict, Mapping, Optional

from keyvault_automation.auth.certificates import (
    CertificateStore,
    DirectoryCertificateStore,
)
from keyvault_automation.auth.context import AuthenticationContext
from keyvault_automation.auth.identity import AzureIdentityProvider, IdentityProvider
from keyvault_automation.auth.strategies import (
    AuthStrategy,
    CertificateAssertionStrategy,
    create_strategy,
)
from keyvault_automation.auth.token_cache import TokenCache
from keyvault_automation.common.exceptions import ConfigurationError
from keyvault_automation.common.logging.audit import AuditEventType, get_audit_logger
from keyvault_automation.common.logging.setup import get_logger
from keyvault_automation.common.logging.utilities import log_exception, log_with_context
from keyvault_automation.config import KeyVaultConfig
from keyvault_automation.keyvault.secret_store import (
    KeyVaultSecretStore,
    SecretBundle,
    SecretStoreClient,
    SecretStoreFactory,
)

logger = get_logger(__name__)
audit = get_audit_logger()


class KeyVaultSecretsProvider:
    """
    Secrets provider: configuration holder, authentication callback and
    secret fetch façade.

    Collaborators can be injected for tests; by default the provider uses
    azure-identity, a directory certificate store from config, and
    azure-keyvault-secrets.
    """

    def __init__(
        self,
        identity_provider: Optional[IdentityProvider] = None,
        certificate_store: Optional[CertificateStore] = None,
        secret_store_factory: Optional[SecretStoreFactory] = None,
        token_cache: Optional[TokenCache] = None,
    ):
        self._identity_provider = identity_provider
        self._certificate_store = certificate_store
        self._secret_store_factory: SecretStoreFactory = (
            secret_store_factory or KeyVaultSecretStore
        )
        self._cache = token_cache or TokenCache()

        self._config: Optional[KeyVaultConfig] = None
        self._secret_store: Optional[SecretStoreClient] = None
        self._strategy: Optional[AuthStrategy] = None
        self._contexts: Dict[str, AuthenticationContext] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def config(self) -> Optional[KeyVaultConfig]:
        return self._config

    @property
    def is_initialized(self) -> bool:
        return self._secret_store is not None

    def initialize(self, section: Optional[Mapping[str, Any]]) -> None:
        """
        Initialize from the "keyVault" configuration section.

        An unsupported authType is not rejected here; it fails on the first
        authentication attempt.

        Args:
            section: Parsed configuration section

        Raises:
            ConfigurationError: If section is None or the provider was
                already initialized
        """
        if section is None:
            raise ConfigurationError("Key Vault configuration section is required")

        with self._lock:
            if self._secret_store is not None:
                raise ConfigurationError(
                    "Key Vault secrets provider is already initialized"
                )
            config = KeyVaultConfig.from_section(section)
            self._secret_store = self._secret_store_factory(self.authenticate, config)
            self._config = config

        log_with_context(
            logger,
            logging.INFO,
            "Initialized Key Vault secrets provider",
            auth_mode=config.auth_type,
            client_id=config.client_id,
        )
        audit.log_auth_event(
            event_type=AuditEventType.CONFIG_INITIALIZED,
            auth_mode=config.auth_type,
            success=True,
            client_id=config.client_id,
        )

    def _require_config(self) -> KeyVaultConfig:
        if self._config is None:
            raise ConfigurationError(
                "Key Vault secrets provider is not initialized; call initialize() first"
            )
        return self._config

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def _get_identity_provider(self) -> IdentityProvider:
        if self._identity_provider is None:
            self._identity_provider = AzureIdentityProvider()
        return self._identity_provider

    def _get_certificate_store(self, config: KeyVaultConfig) -> CertificateStore:
        if self._certificate_store is None:
            self._certificate_store = DirectoryCertificateStore(config.cert_store_path)
        return self._certificate_store

    def _get_strategy(self) -> AuthStrategy:
        if self._strategy is not None:
            return self._strategy

        config = self._require_config()
        with self._lock:
            if self._strategy is None:
                self._strategy = create_strategy(
                    config,
                    self._get_identity_provider(),
                    self._get_certificate_store(config),
                )
            return self._strategy

    def _get_context(self, authority: str) -> AuthenticationContext:
        with self._lock:
            context = self._contexts.get(authority)
            if context is None:
                context = AuthenticationContext(authority, self._cache)
                self._contexts[authority] = context
            return context

    def authenticate(
        self, authority: str, resource: str, scope: Optional[str] = None
    ) -> Optional[str]:
        """
        Authentication callback handed to the secret store.

        Args:
            authority: Identity provider authority URL
            resource: Resource the token is for (the secret store)
            scope: Scope requested by the store, if any

        Returns:
            Access token, or None if the identity provider issued none

        Raises:
            ConfigurationError: Unsupported authType or missing settings
            CertificateNotFoundError: Thumbprint matches no certificate
            AuthenticationError: Identity provider rejected the request
        """
        context = self._get_context(authority)
        strategy = self._get_strategy()
        return strategy.acquire_token(context, resource)

    # ------------------------------------------------------------------
    # Secret fetch
    # ------------------------------------------------------------------

    def get_secret(self, address: str, timeout: Optional[float] = None) -> SecretBundle:
        """
        Fetch the current secret bundle. Blocks until the fetch, including
        any authentication round trip it triggers, completes.

        Nothing is retried; every failure propagates to the caller.

        Args:
            address: Fully qualified secret id
                ("https://{vault}/secrets/{name}[/{version}]")
            timeout: Seconds allowed for the store request
                (default: config requestTimeout)

        Returns:
            SecretBundle for the address
        """
        config = self._require_config()
        store = self._secret_store
        if timeout is None:
            timeout = config.request_timeout

        try:
            return store.fetch_secret(address, timeout=timeout)
        except Exception as e:
            log_exception(
                logger,
                e,
                "Failed to get secret",
                include_traceback=False,
                secret_url=address,
                auth_mode=config.auth_type,
            )
            raise

    def get_secret_value(self, address: str, timeout: Optional[float] = None) -> Optional[str]:
        """Fetch a secret and return only its value."""
        return self.get_secret(address, timeout=timeout).value

    async def get_secret_async(
        self, address: str, timeout: Optional[float] = None
    ) -> SecretBundle:
        """
        Awaitable get_secret. The blocking fetch runs in a worker thread and
        the whole operation is bounded by timeout.
        """
        return await asyncio.wait_for(
            asyncio.to_thread(self.get_secret, address, timeout), timeout
        )

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def clear_cache(self) -> None:
        """Drop every cached token held by this provider."""
        self._cache.clear()
        audit.log_auth_event(
            event_type=AuditEventType.AUTH_CACHE_CLEARED,
            auth_mode=self._config.auth_type if self._config else "none",
            success=True,
        )

    def get_diagnostics(self) -> Dict[str, Any]:
        """Get provider state for health checks / debugging."""
        config = self._config
        diag: Dict[str, Any] = {
            "initialized": self.is_initialized,
            "auth_type": config.auth_type if config else None,
            "auth_mode_supported": bool(config and config.auth_mode),
            "client_id": config.client_id if config else None,
            "cached_tokens": len(self._cache),
            "authorities": sorted(self._contexts),
        }
        if isinstance(self._strategy, CertificateAssertionStrategy):
            diag["certificate_loaded"] = self._strategy.is_materialized
        return diag


# Module-level default instance
_provider_instance: Optional[KeyVaultSecretsProvider] = None
_provider_lock = threading.Lock()


def get_provider() -> KeyVaultSecretsProvider:
    """Get or create the default provider instance."""
    global _provider_instance
    if _provider_instance is None:
        with _provider_lock:
            if _provider_instance is None:
                _provider_instance = KeyVaultSecretsProvider()
    return _provider_instance


def reset_provider() -> None:
    """Discard the default provider (primarily for testing)."""
    global _provider_instance
    with _provider_lock:
        _provider_instance = None


# Convenience functions (delegate to default provider)
def initialize(section: Optional[Mapping[str, Any]]) -> None:
    """Initialize the default provider."""
    get_provider().initialize(section)


def get_secret(address: str, timeout: Optional[float] = None) -> SecretBundle:
    """Fetch a secret through the default provider."""
    return get_provider().get_secret(address, timeout=timeout)
