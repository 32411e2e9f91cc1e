"""
Key Vault authentication configuration.

The "keyVault" section should define, for certificate authentication
(an Entra ID "Web app / API" application with a certificate credential and an
access policy on the target vault):

    authType: ClientCertificate
    clientId: <client id>
    certThumbprint: <certificate thumbprint>

and for user credential authentication (a "Native" application with delegated
access to Azure Key Vault; the signed-in user needs an access policy on the
vault, directly or through a group):

    authType: UserCredential
    clientId: <client id>

Optional keys: tenantId, authorityHost, certStorePath, requestTimeout.
"""

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from keyvault_automation.common.exceptions import ConfigurationError

# Default config file location
DEFAULT_CONFIG_PATH = Path("config.yaml")
DEFAULT_SECTION = "keyVault"

DEFAULT_AUTHORITY_HOST = "https://login.microsoftonline.com"
DEFAULT_TENANT = "organizations"
DEFAULT_CERT_STORE_PATH = "certs"


class AuthType(Enum):
    """Supported Key Vault authentication modes."""

    CLIENT_CERTIFICATE = "ClientCertificate"
    USER_CREDENTIAL = "UserCredential"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["AuthType"]:
        """Map a configured authType string to a mode, or None if unrecognized."""
        if not value:
            return None
        return _AUTH_TYPE_ALIASES.get(value.strip().lower())


_AUTH_TYPE_ALIASES = {
    "clientcertificate": AuthType.CLIENT_CERTIFICATE,
    "certificateassertion": AuthType.CLIENT_CERTIFICATE,
    "usercredential": AuthType.USER_CREDENTIAL,
}

# Section key -> dataclass field. snake_case field names are accepted as-is.
_SECTION_KEYS = {
    "authType": "auth_type",
    "clientId": "client_id",
    "certThumbprint": "cert_thumbprint",
    "tenantId": "tenant_id",
    "authorityHost": "authority_host",
    "certStorePath": "cert_store_path",
    "requestTimeout": "request_timeout",
}

_ENV_OVERRIDES = {
    "KEYVAULT_AUTH_TYPE": "auth_type",
    "KEYVAULT_CLIENT_ID": "client_id",
    "KEYVAULT_CERT_THUMBPRINT": "cert_thumbprint",
    "KEYVAULT_TENANT_ID": "tenant_id",
    "KEYVAULT_CERT_STORE_PATH": "cert_store_path",
}


@dataclass(frozen=True)
class KeyVaultConfig:
    """
    Immutable Key Vault authentication settings.

    auth_type keeps the configured string as-is; it is resolved to an AuthType
    only when a token is first needed, so an unsupported value does not fail
    at load time.
    """

    auth_type: str
    client_id: str = ""
    cert_thumbprint: str = ""
    tenant_id: str = DEFAULT_TENANT
    # Empty means the login host of the vault's cloud
    authority_host: str = ""
    cert_store_path: str = DEFAULT_CERT_STORE_PATH
    request_timeout: Optional[float] = None

    @property
    def auth_mode(self) -> Optional[AuthType]:
        """Parsed authentication mode, or None if unrecognized."""
        return AuthType.parse(self.auth_type)

    @property
    def normalized_thumbprint(self) -> str:
        """Thumbprint without whitespace/colons, uppercased."""
        return normalize_thumbprint(self.cert_thumbprint)

    @classmethod
    def from_section(cls, section: Mapping[str, Any]) -> "KeyVaultConfig":
        """
        Build configuration from a parsed config section.

        Environment variables override section values:
            KEYVAULT_AUTH_TYPE, KEYVAULT_CLIENT_ID, KEYVAULT_CERT_THUMBPRINT,
            KEYVAULT_TENANT_ID, KEYVAULT_CERT_STORE_PATH

        Args:
            section: Mapping with authType/clientId/certThumbprint keys

        Returns:
            KeyVaultConfig instance

        Raises:
            ConfigurationError: If requestTimeout is not a number
        """
        values: Dict[str, Any] = {}
        for key, value in section.items():
            field_name = _SECTION_KEYS.get(key, key)
            if field_name in _FIELD_NAMES and value is not None:
                values[field_name] = value

        for env_var, field_name in _ENV_OVERRIDES.items():
            env_value = os.getenv(env_var)
            if env_value:
                values[field_name] = env_value

        timeout = values.get("request_timeout")
        if timeout is not None:
            try:
                values["request_timeout"] = float(timeout)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(
                    f"requestTimeout must be a number, got {timeout!r}", cause=e
                ) from e

        for name in ("auth_type", "client_id", "cert_thumbprint", "tenant_id"):
            if name in values:
                values[name] = str(values[name]).strip()

        values.setdefault("auth_type", "")
        return cls(**values)


_FIELD_NAMES = set(KeyVaultConfig.__dataclass_fields__)


def normalize_thumbprint(thumbprint: Optional[str]) -> str:
    """Normalize a certificate thumbprint for comparison."""
    if not thumbprint:
        return ""
    # Thumbprints copied from certificate viewers often carry a leading U+200E
    return "".join(ch for ch in thumbprint if ch not in " :\t\u200e").upper()


def load_config(
    config_path: Optional[Path] = None,
    section: str = DEFAULT_SECTION,
) -> Optional[Dict[str, Any]]:
    """
    Load a named section from a YAML config file.

    Args:
        config_path: Path to YAML config file (default: ./config.yaml)
        section: Top-level key to return (default: "keyVault")

    Returns:
        Section mapping, or None if the file or section is missing or the
        top level is not a mapping

    Raises:
        yaml.YAMLError: If config file is invalid YAML
    """
    config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    if not config_path.exists():
        return None

    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict):
        return None
    value = data.get(section)
    if not isinstance(value, dict):
        return None
    return value
