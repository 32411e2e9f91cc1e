"""
pytest configuration for keyvault_automation tests.

Adds src directory to Python path for imports and provides in-memory
collaborators (identity provider, certificate store, secret store) so no test
reaches the network or a real certificate store.
"""

import os
import sys
import threading
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))

from keyvault_automation.auth.certificates import Certificate  # noqa: E402
from keyvault_automation.auth.token_cache import TokenResult  # noqa: E402
from keyvault_automation.common.exceptions import (  # noqa: E402
    CertificateNotFoundError,
    SecretNotFoundError,
)
from keyvault_automation.keyvault.provider import reset_provider  # noqa: E402
from keyvault_automation.keyvault.secret_store import (  # noqa: E402
    SecretAddress,
    SecretBundle,
    require_bearer_token,
)

AUTHORITY = "https://login.microsoftonline.com/T1"


class FakeIdentityProvider:
    """Records every acquisition and returns a configurable token."""

    def __init__(self, token: Optional[str] = "token-1", lifetime_secs: int = 3600):
        self.token = token
        self.lifetime_secs = lifetime_secs
        self.delay_secs = 0.0
        self.certificate_calls: List[Tuple[str, str, object]] = []
        self.user_calls: List[Tuple[str, str, str]] = []
        self._lock = threading.Lock()

    @property
    def call_count(self) -> int:
        return len(self.certificate_calls) + len(self.user_calls)

    def _result(self) -> Optional[TokenResult]:
        if self.delay_secs:
            time.sleep(self.delay_secs)
        if self.token is None:
            return None
        return TokenResult(
            access_token=self.token, expires_on=int(time.time()) + self.lifetime_secs
        )

    def acquire_token_with_certificate(self, authority, resource, credential):
        with self._lock:
            self.certificate_calls.append((authority, resource, credential))
        return self._result()

    def acquire_token_with_user_credential(self, authority, resource, client_id):
        with self._lock:
            self.user_calls.append((authority, resource, client_id))
        return self._result()


class FakeCertificateStore:
    """Holds certificates by thumbprint and counts lookups."""

    def __init__(self, certificates: Optional[Dict[str, Certificate]] = None):
        self.certificates = certificates or {}
        self.lookups: List[str] = []

    def find_by_thumbprint(self, thumbprint: str) -> Certificate:
        self.lookups.append(thumbprint)
        certificate = self.certificates.get(thumbprint)
        if certificate is None:
            raise CertificateNotFoundError(thumbprint, "fake-store")
        return certificate


class FakeSecretStore:
    """
    In-memory secret store that authenticates like the real one.

    Every fetch asks the auth callback for a token first and records the
    request only once a token was issued.
    """

    def __init__(self, auth_callback, config, authority: str = AUTHORITY):
        self.auth_callback = auth_callback
        self.config = config
        self.authority = authority
        self.secrets: Dict[str, str] = {}
        self.requests: List[Tuple[str, str, Optional[float]]] = []

    def fetch_secret(self, address: str, timeout: Optional[float] = None) -> SecretBundle:
        secret_address = SecretAddress.parse(address)
        parsed = urlparse(secret_address.vault_url)
        resource = f"{parsed.scheme}://{parsed.netloc}/"
        token = require_bearer_token(self.auth_callback, self.authority, resource)
        self.requests.append((address, token, timeout))

        if secret_address.name not in self.secrets:
            raise SecretNotFoundError(f"Secret not found: {address}", status_code=404)
        return SecretBundle(
            id=secret_address.id,
            name=secret_address.name,
            value=self.secrets[secret_address.name],
            version=secret_address.version or "v1",
            enabled=True,
        )


class SecretStoreRecorder:
    """secret_store_factory that keeps the stores it built."""

    def __init__(self, secrets: Optional[Dict[str, str]] = None):
        self.secrets = secrets if secrets is not None else {"foo": "bar"}
        self.stores: List[FakeSecretStore] = []

    def __call__(self, auth_callback, config) -> FakeSecretStore:
        store = FakeSecretStore(auth_callback, config)
        store.secrets.update(self.secrets)
        self.stores.append(store)
        return store

    @property
    def store(self) -> FakeSecretStore:
        return self.stores[-1]


def make_self_signed(common_name: str = "keyvault-automation-test"):
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=5))
        .not_valid_after(now + timedelta(days=30))
        .sign(key, hashes.SHA256())
    )
    return key, cert


def make_certificate(thumbprint: str = "DEADBEEF") -> Certificate:
    return Certificate(
        thumbprint=thumbprint,
        subject="CN=keyvault-automation-test",
        not_valid_after=datetime.now(timezone.utc) + timedelta(days=30),
        data=b"-----BEGIN CERTIFICATE-----fake",
        source="fake-store",
    )


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep KEYVAULT_* overrides and the default provider out of every test."""
    for name in list(os.environ):
        if name.startswith("KEYVAULT_"):
            monkeypatch.delenv(name, raising=False)
    reset_provider()
    yield
    reset_provider()


@pytest.fixture(scope="session")
def key_and_cert():
    """Real RSA key and self-signed certificate, generated once per run."""
    return make_self_signed()


@pytest.fixture(scope="session")
def unencrypted_pem(key_and_cert):
    """Certificate plus unencrypted PKCS8 private key, as PEM bytes."""
    key, cert = key_and_cert
    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    return cert.public_bytes(serialization.Encoding.PEM) + key_pem


@pytest.fixture
def identity_provider():
    return FakeIdentityProvider()


@pytest.fixture
def certificate():
    return make_certificate()


@pytest.fixture
def certificate_store(certificate):
    return FakeCertificateStore({certificate.thumbprint: certificate})


@pytest.fixture
def secret_stores():
    return SecretStoreRecorder()


@pytest.fixture
def empty_certificate_store():
    return FakeCertificateStore()
