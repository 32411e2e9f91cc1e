"""Tests for exception types and error classification."""

import pytest
from azure.core.exceptions import ClientAuthenticationError, ServiceRequestError

from keyvault_automation.common.exceptions import (
    AuthenticationError,
    CertificateNotFoundError,
    ConfigurationError,
    ErrorCategory,
    SecretNotFoundError,
    SecretsProviderError,
    SecretStoreError,
    UnsupportedAuthModeError,
    classify_exception,
    classify_http_status,
)


class TestHierarchy:
    @pytest.mark.parametrize(
        "exc, category",
        [
            (ConfigurationError("bad"), ErrorCategory.PERMANENT),
            (UnsupportedAuthModeError("Kerberos"), ErrorCategory.PERMANENT),
            (CertificateNotFoundError("DEADBEEF"), ErrorCategory.PERMANENT),
            (AuthenticationError("no token"), ErrorCategory.AUTH),
            (SecretsProviderError("?"), ErrorCategory.UNKNOWN),
        ],
    )
    def test_categories(self, exc, category):
        assert isinstance(exc, SecretsProviderError)
        assert exc.category == category

    def test_unsupported_mode_is_configuration_error(self):
        exc = UnsupportedAuthModeError("Kerberos")

        assert isinstance(exc, ConfigurationError)
        assert exc.auth_type == "Kerberos"
        assert "Kerberos" in str(exc)

    def test_certificate_not_found_message(self):
        exc = CertificateNotFoundError("DEADBEEF", "certs")

        assert exc.thumbprint == "DEADBEEF"
        assert exc.store_location == "certs"
        assert str(exc) == "No certificate found with thumbprint DEADBEEF in certs"

    def test_str_includes_cause(self):
        exc = AuthenticationError("Token acquisition failed", cause=ValueError("nope"))

        assert str(exc) == "Token acquisition failed | Caused by: nope"

    def test_retryable(self):
        assert SecretStoreError("busy", status_code=503).is_retryable
        assert not SecretStoreError("forbidden", status_code=403).is_retryable
        assert not ConfigurationError("bad").is_retryable


class TestSecretStoreError:
    def test_category_from_status(self):
        assert SecretStoreError("x", status_code=401).category == ErrorCategory.AUTH
        assert SecretNotFoundError("x", status_code=404).category == ErrorCategory.PERMANENT

    def test_category_from_cause(self):
        exc = SecretStoreError("x", cause=ServiceRequestError("connection reset"))

        assert exc.category == ErrorCategory.TRANSIENT

    def test_category_defaults_to_unknown(self):
        assert SecretStoreError("x").category == ErrorCategory.UNKNOWN


class TestClassifyHttpStatus:
    @pytest.mark.parametrize(
        "status, category",
        [
            (200, ErrorCategory.UNKNOWN),
            (400, ErrorCategory.PERMANENT),
            (401, ErrorCategory.AUTH),
            (403, ErrorCategory.PERMANENT),
            (404, ErrorCategory.PERMANENT),
            (408, ErrorCategory.TRANSIENT),
            (429, ErrorCategory.TRANSIENT),
            (500, ErrorCategory.TRANSIENT),
            (503, ErrorCategory.TRANSIENT),
        ],
    )
    def test_classify(self, status, category):
        assert classify_http_status(status) == category


class TestClassifyException:
    def test_provider_error_keeps_category(self):
        assert classify_exception(AuthenticationError("x")) == ErrorCategory.AUTH

    def test_status_code_attribute(self):
        exc = Exception("throttled")
        exc.status_code = 429

        assert classify_exception(exc) == ErrorCategory.TRANSIENT

    def test_client_authentication_error(self):
        assert classify_exception(ClientAuthenticationError("denied")) == ErrorCategory.AUTH

    @pytest.mark.parametrize(
        "exc, category",
        [
            (ConnectionError("reset"), ErrorCategory.TRANSIENT),
            (TimeoutError("timed out"), ErrorCategory.TRANSIENT),
            (Exception("401 Unauthorized"), ErrorCategory.AUTH),
            (Exception("403 Forbidden"), ErrorCategory.PERMANENT),
            (Exception("something odd"), ErrorCategory.UNKNOWN),
        ],
    )
    def test_by_message(self, exc, category):
        assert classify_exception(exc) == category
