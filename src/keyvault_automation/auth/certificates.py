"""
Certificate lookup by thumbprint.

Provides:
- Certificate: loaded certificate with the bytes needed for an assertion
- CertificateStore: protocol for thumbprint lookup
- DirectoryCertificateStore: PEM / PKCS12 files in a local directory
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional, Protocol, Tuple, runtime_checkable

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.serialization import pkcs12

from keyvault_automation.common.exceptions import CertificateNotFoundError
from keyvault_automation.common.logging.setup import get_logger
from keyvault_automation.common.logging.utilities import log_with_context
from keyvault_automation.config import normalize_thumbprint

logger = get_logger(__name__)

PEM_SUFFIXES = (".pem", ".crt", ".cer")
PKCS12_SUFFIXES = (".pfx", ".p12")

# Password for protected PKCS12 files and encrypted PEM keys in the store
CERT_PASSWORD_ENV = "KEYVAULT_CERT_PASSWORD"


@dataclass(frozen=True)
class Certificate:
    """
    A certificate with its private key material.

    data holds the original file bytes (PEM or PKCS12) so it can be passed
    straight to azure-identity's CertificateCredential.
    """

    thumbprint: str
    subject: str
    not_valid_after: datetime
    data: bytes = field(repr=False)
    password: Optional[bytes] = field(default=None, repr=False)
    source: Optional[str] = None


@runtime_checkable
class CertificateStore(Protocol):
    """Protocol for looking up a certificate by thumbprint."""

    def find_by_thumbprint(self, thumbprint: str) -> Certificate:
        """
        Find a certificate by its SHA-1 thumbprint.

        Raises:
            CertificateNotFoundError: If no certificate matches
        """
        ...


def compute_thumbprint(cert: x509.Certificate) -> str:
    """Uppercase hex SHA-1 of the DER encoding."""
    return cert.fingerprint(hashes.SHA1()).hex().upper()


class DirectoryCertificateStore:
    """
    Certificate store backed by a directory of certificate files.

    Searches *.pem/*.crt/*.cer files that also carry a private key, and
    *.pfx/*.p12 bundles. Files that fail to parse are skipped.

    Usage:
        store = DirectoryCertificateStore("certs")
        cert = store.find_by_thumbprint("DEADBEEF...")
    """

    def __init__(self, path: str, password: Optional[str] = None):
        self.path = Path(path).expanduser()
        password = password if password is not None else os.getenv(CERT_PASSWORD_ENV)
        self._password = password.encode("utf-8") if password else None

    def find_by_thumbprint(self, thumbprint: str) -> Certificate:
        wanted = normalize_thumbprint(thumbprint)
        if not wanted:
            raise CertificateNotFoundError(thumbprint, str(self.path))

        for cert_path, loaded in self._iter_certificates():
            x509_cert, data, password = loaded
            if compute_thumbprint(x509_cert) != wanted:
                continue

            log_with_context(
                logger,
                logging.DEBUG,
                "Found certificate by thumbprint",
                thumbprint=wanted,
                store_location=str(cert_path),
            )
            return Certificate(
                thumbprint=wanted,
                subject=x509_cert.subject.rfc4514_string(),
                not_valid_after=x509_cert.not_valid_after_utc,
                data=data,
                password=password,
                source=str(cert_path),
            )

        raise CertificateNotFoundError(wanted, str(self.path))

    def _iter_certificates(
        self,
    ) -> Iterator[Tuple[Path, Tuple[x509.Certificate, bytes, Optional[bytes]]]]:
        if not self.path.is_dir():
            log_with_context(
                logger,
                logging.WARNING,
                "Certificate store directory does not exist",
                store_location=str(self.path),
            )
            return

        for cert_path in sorted(self.path.iterdir()):
            suffix = cert_path.suffix.lower()
            if suffix not in PEM_SUFFIXES + PKCS12_SUFFIXES:
                continue
            try:
                data = cert_path.read_bytes()
                if suffix in PKCS12_SUFFIXES:
                    loaded = self._load_pkcs12(data)
                else:
                    loaded = self._load_pem(data)
            except (OSError, ValueError) as e:
                log_with_context(
                    logger,
                    logging.DEBUG,
                    "Skipping unreadable certificate file",
                    store_location=str(cert_path),
                    error_message=str(e)[:200],
                )
                continue
            if loaded is not None:
                yield cert_path, loaded

    def _load_pem(
        self, data: bytes
    ) -> Optional[Tuple[x509.Certificate, bytes, Optional[bytes]]]:
        # Assertions need the private key alongside the certificate
        if b"PRIVATE KEY-----" not in data:
            return None
        # An unencrypted key must be loaded without a password
        encrypted = b"ENCRYPTED PRIVATE KEY-----" in data or b"Proc-Type: 4,ENCRYPTED" in data
        password = self._password if encrypted else None
        return x509.load_pem_x509_certificate(data), data, password

    def _load_pkcs12(
        self, data: bytes
    ) -> Optional[Tuple[x509.Certificate, bytes, Optional[bytes]]]:
        key, cert, _ = pkcs12.load_key_and_certificates(data, self._password)
        if key is None or cert is None:
            return None
        return cert, data, self._password
