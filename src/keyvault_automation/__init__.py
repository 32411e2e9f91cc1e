"""
Key Vault secrets provider for test automation.

Retrieves secrets for a test suite using a dedicated identity and a private
token cache, so test-infrastructure tokens never mix with the tokens of the
application under test.
"""

from keyvault_automation.common.exceptions import (
    AuthenticationError,
    CertificateNotFoundError,
    ConfigurationError,
    SecretNotFoundError,
    SecretsProviderError,
    SecretStoreError,
    UnsupportedAuthModeError,
)
from keyvault_automation.config import AuthType, KeyVaultConfig, load_config
from keyvault_automation.keyvault.provider import (
    KeyVaultSecretsProvider,
    get_provider,
    get_secret,
    initialize,
    reset_provider,
)
from keyvault_automation.keyvault.secret_store import SecretAddress, SecretBundle

__version__ = "0.1.0"

__all__ = [
    "AuthType",
    "AuthenticationError",
    "CertificateNotFoundError",
    "ConfigurationError",
    "KeyVaultConfig",
    "KeyVaultSecretsProvider",
    "SecretAddress",
    "SecretBundle",
    "SecretNotFoundError",
    "SecretStoreError",
    "SecretsProviderError",
    "UnsupportedAuthModeError",
    "get_provider",
    "get_secret",
    "initialize",
    "load_config",
    "reset_provider",
]
