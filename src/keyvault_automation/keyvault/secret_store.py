"""
Secret store boundary and its Azure Key Vault implementation.

The secret store is constructed with an authentication callback:

    auth_callback(authority, resource, scope) -> token or None

and fetches a secret bundle by its fully qualified id. KeyVaultSecretStore
adapts the callback to an azure-core TokenCredential so azure-keyvault-secrets
drives the challenge and hands us the authority tenant and resource scope.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Protocol, runtime_checkable
from urllib.parse import urlparse

from azure.core.credentials import AccessToken
from azure.core.exceptions import AzureError, HttpResponseError, ResourceNotFoundError
from azure.keyvault.secrets import KeyVaultSecret, KeyVaultSecretIdentifier, SecretClient

from keyvault_automation.auth.identity import (
    authority_host_for_resource,
    build_authority,
    scope_to_resource,
)
from keyvault_automation.auth.token_cache import TOKEN_REFRESH_BUFFER_SECS
from keyvault_automation.common.exceptions import (
    AuthenticationError,
    SecretNotFoundError,
    SecretStoreError,
)
from keyvault_automation.common.logging.setup import get_logger
from keyvault_automation.common.logging.utilities import log_exception, log_with_context
from keyvault_automation.common.security import sanitize_error_message, sanitize_url
from keyvault_automation.config import DEFAULT_AUTHORITY_HOST, DEFAULT_TENANT, KeyVaultConfig

logger = get_logger(__name__)

AuthCallback = Callable[[str, str, Optional[str]], Optional[str]]

# Lifetime reported to the azure-core pipeline. The pipeline refreshes once fewer
# than TOKEN_REFRESH_BUFFER_SECS remain, so it only holds a token briefly and
# then asks the callback again, which is served by the provider's token cache.
PIPELINE_TOKEN_TTL_SECS = TOKEN_REFRESH_BUFFER_SECS + 60


@dataclass(frozen=True)
class SecretAddress:
    """Fully qualified secret id split into vault, name and optional version."""

    vault_url: str
    name: str
    version: Optional[str] = None

    @classmethod
    def parse(cls, address: str) -> "SecretAddress":
        """
        Parse "https://{vault}/secrets/{name}[/{version}]".

        Raises:
            SecretStoreError: If the address is not a secret id
        """
        try:
            segments = urlparse(address).path.strip("/").split("/")
            if segments[0] != "secrets" or len(segments) not in (2, 3):
                raise ValueError(f"not a secret id (path {'/'.join(segments)!r})")
            identifier = KeyVaultSecretIdentifier(address)
        except (ValueError, TypeError, AttributeError) as e:
            raise SecretStoreError(
                f"Invalid secret address: {sanitize_url(str(address))}",
                cause=e,
            ) from e
        return cls(
            vault_url=identifier.vault_url,
            name=identifier.name,
            version=identifier.version or None,
        )

    @property
    def id(self) -> str:
        base = f"{self.vault_url.rstrip('/')}/secrets/{self.name}"
        return f"{base}/{self.version}" if self.version else base


@dataclass(frozen=True)
class SecretBundle:
    """Secret value plus the attributes the store returned with it."""

    id: str
    name: str
    value: Optional[str] = field(repr=False)
    version: Optional[str] = None
    content_type: Optional[str] = None
    enabled: Optional[bool] = None
    tags: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_keyvault_secret(cls, secret: KeyVaultSecret) -> "SecretBundle":
        properties = secret.properties
        return cls(
            id=secret.id or "",
            name=secret.name or "",
            value=secret.value,
            version=properties.version,
            content_type=properties.content_type,
            enabled=properties.enabled,
            tags=dict(properties.tags or {}),
        )


@runtime_checkable
class SecretStoreClient(Protocol):
    """Fetches secret bundles, authenticating through its auth callback."""

    def fetch_secret(
        self, address: str, timeout: Optional[float] = None
    ) -> SecretBundle:
        """Fetch the current bundle for a fully qualified secret id."""
        ...


SecretStoreFactory = Callable[[AuthCallback, KeyVaultConfig], SecretStoreClient]


def require_bearer_token(
    auth_callback: AuthCallback,
    authority: str,
    resource: str,
    scope: Optional[str] = None,
) -> str:
    """
    Invoke the auth callback and insist on a token.

    Raises:
        AuthenticationError: If the callback produced no token
    """
    token = auth_callback(authority, resource, scope)
    if not token:
        raise AuthenticationError(
            f"No access token issued for {resource}",
            context={"authority": authority, "resource": resource},
        )
    return token


class CallbackCredential:
    """
    azure-core TokenCredential over an authentication callback.

    Maps the ".default" scope back to a resource and the challenge tenant to
    an authority URL. The challenge carries only the tenant, so the login host
    is the configured one or, when none is configured, the host of the cloud
    the resource belongs to.
    """

    def __init__(
        self,
        auth_callback: AuthCallback,
        default_tenant: str = DEFAULT_TENANT,
        authority_host: Optional[str] = None,
    ):
        self._auth_callback = auth_callback
        self._default_tenant = default_tenant
        self._authority_host = authority_host

    def get_token(
        self,
        *scopes: str,
        claims: Optional[str] = None,
        tenant_id: Optional[str] = None,
        **kwargs: Any,
    ) -> AccessToken:
        if not scopes:
            raise AuthenticationError("No scope requested by the secret store")
        scope = scopes[0]
        resource = scope_to_resource(scope)
        host = (
            self._authority_host
            or authority_host_for_resource(resource)
            or DEFAULT_AUTHORITY_HOST
        )
        authority = build_authority(tenant_id or self._default_tenant, host)
        token = require_bearer_token(self._auth_callback, authority, resource, scope)
        return AccessToken(token, int(time.time()) + PIPELINE_TOKEN_TTL_SECS)


class KeyVaultSecretStore:
    """
    SecretStoreClient backed by azure-keyvault-secrets.

    One SecretClient per vault URL, created on first fetch from that vault.
    Secret values are never cached; every fetch is a fresh GET.
    """

    def __init__(
        self,
        auth_callback: AuthCallback,
        config: Optional[KeyVaultConfig] = None,
        **client_kwargs: Any,
    ):
        self._credential = CallbackCredential(
            auth_callback,
            default_tenant=config.tenant_id if config else DEFAULT_TENANT,
            authority_host=config.authority_host if config else None,
        )
        self._client_kwargs = client_kwargs
        self._clients: Dict[str, SecretClient] = {}
        self._lock = threading.Lock()

    def _get_client(self, vault_url: str) -> SecretClient:
        with self._lock:
            client = self._clients.get(vault_url)
            if client is None:
                client = SecretClient(
                    vault_url=vault_url, credential=self._credential, **self._client_kwargs
                )
                self._clients[vault_url] = client
            return client

    def fetch_secret(
        self, address: str, timeout: Optional[float] = None
    ) -> SecretBundle:
        secret_address = SecretAddress.parse(address)
        client = self._get_client(secret_address.vault_url)

        request_kwargs: Dict[str, Any] = {}
        if timeout is not None:
            request_kwargs["timeout"] = timeout

        start = time.monotonic()
        try:
            secret = client.get_secret(
                secret_address.name, secret_address.version, **request_kwargs
            )
        except ResourceNotFoundError as e:
            log_with_context(
                logger,
                logging.ERROR,
                "Secret not found",
                vault_url=secret_address.vault_url,
                secret_name=secret_address.name,
                secret_version=secret_address.version,
                http_status=404,
            )
            raise SecretNotFoundError(
                f"Secret not found: {secret_address.id}",
                status_code=404,
                cause=e,
            ) from e
        except HttpResponseError as e:
            log_exception(
                logger,
                e,
                "Secret fetch failed",
                include_traceback=False,
                vault_url=secret_address.vault_url,
                secret_name=secret_address.name,
                http_status=e.status_code,
            )
            raise SecretStoreError(
                f"Secret fetch failed for {secret_address.id}: "
                f"{sanitize_error_message(e.message or str(e), max_length=200)}",
                status_code=e.status_code,
                cause=e,
            ) from e
        except AzureError as e:
            log_exception(
                logger,
                e,
                "Secret store request failed",
                include_traceback=False,
                vault_url=secret_address.vault_url,
                secret_name=secret_address.name,
            )
            raise SecretStoreError(
                f"Secret store request failed for {secret_address.id}",
                cause=e,
            ) from e

        log_with_context(
            logger,
            logging.DEBUG,
            "Fetched secret",
            vault_url=secret_address.vault_url,
            secret_name=secret_address.name,
            secret_version=secret.properties.version,
            duration_ms=round((time.monotonic() - start) * 1000, 1),
        )
        return SecretBundle.from_keyvault_secret(secret)

    def close(self) -> None:
        """Close the underlying HTTP pipelines."""
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            client.close()
