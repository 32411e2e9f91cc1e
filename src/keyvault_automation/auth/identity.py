"""
Identity provider boundary and its azure-identity implementation.

The identity provider turns identity material into access tokens. It knows
nothing about caching policy; the AuthenticationContext in front of it checks
the provider-owned TokenCache first.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Tuple, runtime_checkable
from urllib.parse import urlparse

from azure.core.exceptions import AzureError
from azure.identity import (
    AzureAuthorityHosts,
    CertificateCredential,
    InteractiveBrowserCredential,
    TokenCachePersistenceOptions,
)

from keyvault_automation.auth.certificates import Certificate
from keyvault_automation.auth.token_cache import TokenResult
from keyvault_automation.common.exceptions import AuthenticationError, ConfigurationError
from keyvault_automation.common.logging.audit import AuditEventType, get_audit_logger
from keyvault_automation.common.logging.setup import get_logger
from keyvault_automation.common.logging.utilities import log_with_context
from keyvault_automation.common.security import sanitize_error_message
from keyvault_automation.config import DEFAULT_AUTHORITY_HOST

logger = get_logger(__name__)
audit = get_audit_logger()


@dataclass(frozen=True)
class CertificateAssertionCredential:
    """Client id plus the certificate used to sign client assertions."""

    client_id: str
    certificate: Certificate

    @property
    def thumbprint(self) -> str:
        return self.certificate.thumbprint


@runtime_checkable
class IdentityProvider(Protocol):
    """Acquires access tokens from the identity platform."""

    def acquire_token_with_certificate(
        self,
        authority: str,
        resource: str,
        credential: CertificateAssertionCredential,
    ) -> Optional[TokenResult]:
        """Acquire an app-only token by signing an assertion with a certificate."""
        ...

    def acquire_token_with_user_credential(
        self,
        authority: str,
        resource: str,
        client_id: str,
    ) -> Optional[TokenResult]:
        """Acquire a delegated token for the signed-in (or prompted) user."""
        ...


def parse_authority(authority: str) -> Tuple[str, str]:
    """
    Split an authority URL into (host URL, tenant).

    "https://login.microsoftonline.com/contoso.onmicrosoft.com"
        -> ("https://login.microsoftonline.com", "contoso.onmicrosoft.com")
    """
    parsed = urlparse(authority)
    if not parsed.scheme or not parsed.netloc:
        raise AuthenticationError(f"Invalid authority URL: {authority!r}")
    host = f"{parsed.scheme}://{parsed.netloc}"
    tenant = parsed.path.strip("/").split("/")[0] if parsed.path.strip("/") else ""
    return host, tenant


def build_authority(tenant: str, host: str = DEFAULT_AUTHORITY_HOST) -> str:
    """Compose an authority URL from host and tenant."""
    return f"{host.rstrip('/')}/{tenant}"


def resource_to_scope(resource: str) -> str:
    """v1 resource identifier -> v2 ".default" scope."""
    if resource.endswith("/.default"):
        return resource
    return f"{resource.rstrip('/')}/.default"


def scope_to_resource(scope: str) -> str:
    """v2 ".default" scope -> v1 resource identifier."""
    if scope.endswith("/.default"):
        return scope[: -len("/.default")]
    return scope


# Key Vault resource host -> login host of the cloud it lives in
_CLOUD_AUTHORITY_HOSTS = {
    "vault.azure.net": AzureAuthorityHosts.AZURE_PUBLIC_CLOUD,
    "vault.azure.cn": AzureAuthorityHosts.AZURE_CHINA,
    "vault.usgovcloudapi.net": AzureAuthorityHosts.AZURE_GOVERNMENT,
}


def authority_host_for_resource(resource: str) -> Optional[str]:
    """
    Login host for the cloud a resource belongs to, or None if unknown.

    "https://vault.azure.cn" -> "https://login.chinacloudapi.cn"
    """
    hostname = (urlparse(resource).hostname or "").lower()
    for suffix, login_host in _CLOUD_AUTHORITY_HOSTS.items():
        if hostname == suffix or hostname.endswith(f".{suffix}"):
            return f"https://{login_host}"
    return None


class AzureIdentityProvider:
    """
    IdentityProvider built on azure-identity.

    - Certificate mode uses CertificateCredential with the certificate bytes.
    - User mode uses InteractiveBrowserCredential, which prompts once and then
      serves tokens silently from its own session for the process lifetime.

    Credential objects are created once per (authority, client, certificate)
    and kept private to this instance. When persistent_cache_name is given,
    azure-identity persists its cache under that dedicated name, never the
    shared default cache.
    """

    def __init__(self, persistent_cache_name: Optional[str] = None):
        self._persistent_cache_name = persistent_cache_name
        self._credentials: Dict[Tuple[str, ...], Any] = {}
        self._lock = threading.Lock()

    def _credential_kwargs(self, host: str) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"authority": host}
        if self._persistent_cache_name:
            kwargs["cache_persistence_options"] = TokenCachePersistenceOptions(
                name=self._persistent_cache_name
            )
        return kwargs

    def _get_certificate_credential(
        self, authority: str, credential: CertificateAssertionCredential
    ) -> CertificateCredential:
        host, tenant = parse_authority(authority)
        key = ("certificate", host, tenant, credential.client_id, credential.thumbprint)
        with self._lock:
            azure_credential = self._credentials.get(key)
            if azure_credential is None:
                try:
                    azure_credential = CertificateCredential(
                        tenant_id=tenant,
                        client_id=credential.client_id,
                        certificate_data=credential.certificate.data,
                        password=credential.certificate.password,
                        **self._credential_kwargs(host),
                    )
                except (TypeError, ValueError) as e:
                    log_with_context(
                        logger,
                        logging.ERROR,
                        "Certificate cannot sign client assertions",
                        thumbprint=credential.thumbprint,
                        store_location=credential.certificate.source,
                        error_message=sanitize_error_message(str(e), max_length=200),
                    )
                    raise ConfigurationError(
                        f"Certificate {credential.thumbprint} cannot be used for "
                        "client assertions",
                        cause=e,
                        context={
                            "thumbprint": credential.thumbprint,
                            "store_location": credential.certificate.source,
                        },
                    ) from e
                self._credentials[key] = azure_credential
        return azure_credential

    def _get_user_credential(
        self, authority: str, client_id: str
    ) -> InteractiveBrowserCredential:
        host, tenant = parse_authority(authority)
        key = ("user", host, tenant, client_id)
        with self._lock:
            azure_credential = self._credentials.get(key)
            if azure_credential is None:
                azure_credential = InteractiveBrowserCredential(
                    tenant_id=tenant,
                    client_id=client_id,
                    **self._credential_kwargs(host),
                )
                self._credentials[key] = azure_credential
        return azure_credential

    def acquire_token_with_certificate(
        self,
        authority: str,
        resource: str,
        credential: CertificateAssertionCredential,
    ) -> Optional[TokenResult]:
        azure_credential = self._get_certificate_credential(authority, credential)
        return self._get_token(
            azure_credential,
            auth_mode="ClientCertificate",
            authority=authority,
            resource=resource,
            client_id=credential.client_id,
        )

    def acquire_token_with_user_credential(
        self,
        authority: str,
        resource: str,
        client_id: str,
    ) -> Optional[TokenResult]:
        azure_credential = self._get_user_credential(authority, client_id)
        return self._get_token(
            azure_credential,
            auth_mode="UserCredential",
            authority=authority,
            resource=resource,
            client_id=client_id,
        )

    def _get_token(
        self,
        azure_credential: Any,
        auth_mode: str,
        authority: str,
        resource: str,
        client_id: str,
    ) -> Optional[TokenResult]:
        scope = resource_to_scope(resource)
        try:
            access_token = azure_credential.get_token(scope)
        except AzureError as e:
            error_message = sanitize_error_message(str(e), max_length=200)
            log_with_context(
                logger,
                logging.ERROR,
                "Token acquisition failed",
                auth_mode=auth_mode,
                authority=authority,
                resource=resource,
                client_id=client_id,
                error_message=error_message,
            )
            audit.log_auth_event(
                event_type=AuditEventType.AUTH_LOGIN_FAILURE,
                auth_mode=auth_mode,
                success=False,
                resource=resource,
                client_id=client_id,
                error_message=error_message,
            )
            raise AuthenticationError(
                f"Token acquisition failed for {resource}",
                cause=e,
                context={"authority": authority, "auth_mode": auth_mode},
            ) from e

        if not access_token or not access_token.token:
            return None

        audit.log_auth_event(
            event_type=AuditEventType.AUTH_TOKEN_ACQUIRED,
            auth_mode=auth_mode,
            success=True,
            resource=resource,
            client_id=client_id,
        )
        return TokenResult(
            access_token=access_token.token, expires_on=int(access_token.expires_on)
        )
