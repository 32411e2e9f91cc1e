"""
Key Vault access for test infrastructure.

Import from sub-modules:
    from keyvault_automation.keyvault.provider import KeyVaultSecretsProvider
    from keyvault_automation.keyvault.secret_store import KeyVaultSecretStore, SecretBundle
"""
