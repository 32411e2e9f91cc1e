"""
Authentication strategies.

One class per authentication mode, each implementing acquire_token() on top
of an AuthenticationContext. Adding a mode means adding a class and a
STRATEGIES entry.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional, Type

from keyvault_automation.auth.certificates import CertificateStore
from keyvault_automation.auth.context import AuthenticationContext
from keyvault_automation.auth.identity import (
    CertificateAssertionCredential,
    IdentityProvider,
)
from keyvault_automation.common.exceptions import (
    CertificateNotFoundError,
    ConfigurationError,
    UnsupportedAuthModeError,
)
from keyvault_automation.common.logging.audit import AuditEventType, get_audit_logger
from keyvault_automation.common.logging.setup import get_logger
from keyvault_automation.common.logging.utilities import log_with_context
from keyvault_automation.config import AuthType, KeyVaultConfig

logger = get_logger(__name__)
audit = get_audit_logger()


class AuthStrategy(ABC):
    """Produces bearer tokens for one authentication mode."""

    auth_type: AuthType

    def __init__(self, config: KeyVaultConfig, identity_provider: IdentityProvider):
        self.config = config
        self.identity_provider = identity_provider

    @classmethod
    def create(
        cls,
        config: KeyVaultConfig,
        identity_provider: IdentityProvider,
        certificate_store: CertificateStore,
    ) -> "AuthStrategy":
        """Build the strategy from the shared set of collaborators."""
        return cls(config, identity_provider)

    @property
    @abstractmethod
    def identity(self) -> str:
        """Identity component of the token cache key."""

    @abstractmethod
    def acquire_token(
        self, context: AuthenticationContext, resource: str
    ) -> Optional[str]:
        """Return an access token for resource, or None if none was issued."""


class CertificateAssertionStrategy(AuthStrategy):
    """
    App-only authentication with a certificate-signed client assertion.

    The assertion credential is built on first use and reused for the
    lifetime of the strategy. If the thumbprint matches no certificate the
    failure is remembered and re-raised without another store lookup.
    """

    auth_type = AuthType.CLIENT_CERTIFICATE

    def __init__(
        self,
        config: KeyVaultConfig,
        identity_provider: IdentityProvider,
        certificate_store: CertificateStore,
    ):
        super().__init__(config, identity_provider)
        if not config.normalized_thumbprint:
            raise ConfigurationError(
                "certThumbprint is required for ClientCertificate authentication"
            )
        self.certificate_store = certificate_store
        self._credential: Optional[CertificateAssertionCredential] = None
        self._lookup_error: Optional[CertificateNotFoundError] = None
        self._credential_lock = threading.Lock()

    @classmethod
    def create(
        cls,
        config: KeyVaultConfig,
        identity_provider: IdentityProvider,
        certificate_store: CertificateStore,
    ) -> "CertificateAssertionStrategy":
        return cls(config, identity_provider, certificate_store)

    @property
    def identity(self) -> str:
        return f"{self.config.client_id}:{self.config.normalized_thumbprint}"

    @property
    def is_materialized(self) -> bool:
        return self._credential is not None

    def get_assertion_credential(self) -> CertificateAssertionCredential:
        """Materialize (once) the certificate assertion credential."""
        if self._credential is not None:
            return self._credential

        with self._credential_lock:
            if self._credential is not None:
                return self._credential
            if self._lookup_error is not None:
                raise CertificateNotFoundError(
                    self._lookup_error.thumbprint,
                    self._lookup_error.store_location,
                    cause=self._lookup_error,
                )

            thumbprint = self.config.normalized_thumbprint
            try:
                certificate = self.certificate_store.find_by_thumbprint(thumbprint)
            except CertificateNotFoundError as e:
                self._lookup_error = e
                log_with_context(
                    logger,
                    logging.ERROR,
                    "Certificate not found",
                    thumbprint=thumbprint,
                    store_location=e.store_location,
                )
                audit.log_certificate_event(
                    event_type=AuditEventType.CERT_NOT_FOUND,
                    thumbprint=thumbprint,
                    success=False,
                    store_location=e.store_location,
                )
                raise

            self._credential = CertificateAssertionCredential(
                client_id=self.config.client_id, certificate=certificate
            )
            log_with_context(
                logger,
                logging.INFO,
                "Loaded assertion certificate",
                thumbprint=thumbprint,
                client_id=self.config.client_id,
                store_location=certificate.source,
            )
            audit.log_certificate_event(
                event_type=AuditEventType.CERT_LOADED,
                thumbprint=thumbprint,
                success=True,
                store_location=certificate.source,
            )
            return self._credential

    def acquire_token(
        self, context: AuthenticationContext, resource: str
    ) -> Optional[str]:
        credential = self.get_assertion_credential()
        return context.acquire_token(
            resource,
            self.identity,
            lambda: self.identity_provider.acquire_token_with_certificate(
                context.authority, resource, credential
            ),
        )


class UserCredentialStrategy(AuthStrategy):
    """
    Delegated authentication as an end user.

    The identity provider handles the interactive prompt, or serves the
    token silently when a session already exists.
    """

    auth_type = AuthType.USER_CREDENTIAL

    @property
    def identity(self) -> str:
        return self.config.client_id

    def acquire_token(
        self, context: AuthenticationContext, resource: str
    ) -> Optional[str]:
        return context.acquire_token(
            resource,
            self.identity,
            lambda: self.identity_provider.acquire_token_with_user_credential(
                context.authority, resource, self.config.client_id
            ),
        )


STRATEGIES: Dict[AuthType, Type[AuthStrategy]] = {
    AuthType.CLIENT_CERTIFICATE: CertificateAssertionStrategy,
    AuthType.USER_CREDENTIAL: UserCredentialStrategy,
}


def create_strategy(
    config: KeyVaultConfig,
    identity_provider: IdentityProvider,
    certificate_store: CertificateStore,
) -> AuthStrategy:
    """
    Build the strategy for the configured mode.

    Raises:
        UnsupportedAuthModeError: If authType is not a recognized mode
        ConfigurationError: If the mode's required settings are missing
    """
    auth_mode = config.auth_mode
    if auth_mode is None:
        raise UnsupportedAuthModeError(config.auth_type)

    if not config.client_id:
        raise ConfigurationError(f"clientId is required for {auth_mode.value} authentication")

    return STRATEGIES[auth_mode].create(config, identity_provider, certificate_store)
