"""Tests for logging setup, formatters and the audit trail."""

import json
import logging

import pytest

from keyvault_automation.common.exceptions import CertificateNotFoundError, SecretStoreError
from keyvault_automation.common.logging.audit import (
    AUDIT_LOGGER_NAME,
    AuditEventType,
    configure_audit,
    get_audit_logger,
)
from keyvault_automation.common.logging.context import (
    clear_log_context,
    get_log_context,
    set_log_context,
)
from keyvault_automation.common.logging.formatters import ConsoleFormatter, JSONFormatter
from keyvault_automation.common.logging.setup import (
    NOISY_LOGGERS,
    get_log_file_path,
    get_logger,
    setup_logging,
)
from keyvault_automation.common.logging.utilities import log_exception, log_with_context


def _record(msg="hello", level=logging.INFO, **extra):
    record = logging.LogRecord(
        name="keyvault_automation.test",
        level=level,
        pathname=__file__,
        lineno=10,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestLogContext:
    @pytest.fixture(autouse=True)
    def cleanup(self):
        clear_log_context()
        yield
        clear_log_context()

    def test_set_and_get(self):
        set_log_context(test_run_id="run-1", vault="vault.example")

        assert get_log_context() == {
            "test_run_id": "run-1",
            "component": None,
            "vault": "vault.example",
        }

    def test_partial_update(self):
        set_log_context(test_run_id="run-1")
        set_log_context(component="keyvault")

        ctx = get_log_context()
        assert ctx["test_run_id"] == "run-1"
        assert ctx["component"] == "keyvault"


class TestFormatters:
    @pytest.fixture(autouse=True)
    def cleanup(self):
        clear_log_context()
        yield
        clear_log_context()

    def test_json_includes_extras_and_context(self):
        set_log_context(test_run_id="run-1")

        entry = json.loads(
            JSONFormatter().format(
                _record(resource="https://vault.example/", auth_mode="UserCredential", ignored="x")
            )
        )

        assert entry["msg"] == "hello"
        assert entry["level"] == "INFO"
        assert entry["test_run_id"] == "run-1"
        assert entry["resource"] == "https://vault.example/"
        assert entry["auth_mode"] == "UserCredential"
        assert "ignored" not in entry
        assert "file" not in entry

    def test_json_sanitizes_secret_url(self):
        entry = json.loads(
            JSONFormatter().format(
                _record(secret_url="https://vault.example/secrets/foo?sig=abc")
            )
        )

        assert entry["secret_url"] == "https://vault.example/secrets/foo?[REDACTED]"

    def test_json_error_has_location(self):
        entry = json.loads(JSONFormatter().format(_record(level=logging.ERROR)))

        assert entry["file"].endswith(":10")

    def test_console_format(self):
        set_log_context(component="keyvault")

        line = ConsoleFormatter().format(_record(resource="https://vault.example/"))

        assert "INFO - [keyvault] - hello (resource=https://vault.example/)" in line


class TestLogUtilities:
    def test_log_with_context_passes_extras(self, caplog):
        logger = get_logger("keyvault_automation.test")

        with caplog.at_level(logging.INFO, logger="keyvault_automation.test"):
            log_with_context(logger, logging.INFO, "Acquired token", resource="r", duration_ms=1.5)

        record = caplog.records[-1]
        assert record.resource == "r"
        assert record.duration_ms == 1.5

    def test_log_exception_adds_category_and_redacts(self, caplog):
        logger = get_logger("keyvault_automation.test")
        exc = SecretStoreError("failed with Bearer abc123", status_code=503)

        with caplog.at_level(logging.ERROR, logger="keyvault_automation.test"):
            log_exception(logger, exc, "Fetch failed", include_traceback=False)

        record = caplog.records[-1]
        assert record.error_category == "transient"
        assert record.http_status == 503
        assert "abc123" not in record.error_message
        assert record.exc_info is None

    def test_log_exception_copies_error_context(self, caplog):
        logger = get_logger("keyvault_automation.test")
        exc = CertificateNotFoundError("DEADBEEF", "certs")

        with caplog.at_level(logging.ERROR, logger="keyvault_automation.test"):
            log_exception(logger, exc, "Lookup failed", store_location="override")

        record = caplog.records[-1]
        assert record.thumbprint == "DEADBEEF"
        assert record.store_location == "override"
        assert record.error_category == "permanent"
        assert record.exc_info is not None


class TestSetupLogging:
    @pytest.fixture(autouse=True)
    def cleanup(self):
        clear_log_context()
        root_logger = logging.getLogger()
        saved_handlers = list(root_logger.handlers)
        saved_level = root_logger.level
        yield
        clear_log_context()
        for handler in root_logger.handlers:
            handler.close()
        root_logger.handlers[:] = saved_handlers
        root_logger.setLevel(saved_level)

    def test_console_only_by_default(self):
        setup_logging()

        handlers = logging.getLogger().handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0].formatter, ConsoleFormatter)

    def test_file_handler_writes_json(self, tmp_path):
        logger = setup_logging(log_dir=tmp_path, log_to_file=True, test_run_id="run-7")
        logger.info("hello file")
        for handler in logging.getLogger().handlers:
            handler.flush()

        log_file = get_log_file_path(tmp_path, "keyvault_automation")
        assert log_file.exists()
        lines = [json.loads(line) for line in log_file.read_text().splitlines()]
        assert any(
            line["msg"] == "hello file" and line["test_run_id"] == "run-7" for line in lines
        )

    def test_repeated_setup_does_not_duplicate_handlers(self):
        setup_logging()
        setup_logging()

        assert len(logging.getLogger().handlers) == 1

    def test_suppresses_noisy_loggers(self):
        setup_logging()

        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_log_file_path_structure(self, tmp_path):
        path = get_log_file_path(tmp_path, "suite")

        assert path.parent.parent == tmp_path
        assert path.name.startswith("suite_")
        assert path.suffix == ".log"


class TestAuditLogger:
    @pytest.fixture(autouse=True)
    def disable_afterwards(self):
        yield
        configure_audit(enabled=False)

    def test_singleton(self):
        assert get_audit_logger() is get_audit_logger()

    def test_disabled_by_default_writes_nothing(self, tmp_path):
        audit = configure_audit(enabled=False, audit_log_path=str(tmp_path / "audit.log"))

        audit.log_auth_event(
            event_type=AuditEventType.AUTH_TOKEN_ACQUIRED,
            auth_mode="UserCredential",
            success=True,
        )

        assert not (tmp_path / "audit.log").exists()

    def test_writes_json_records(self, tmp_path):
        path = tmp_path / "audit" / "audit.log"
        audit = configure_audit(enabled=True, audit_log_path=str(path))

        audit.log_auth_event(
            event_type=AuditEventType.AUTH_LOGIN_FAILURE,
            auth_mode="ClientCertificate",
            success=False,
            resource="https://vault.example/",
            client_id="abc",
            error_message="rejected",
        )
        audit.log_certificate_event(
            event_type=AuditEventType.CERT_NOT_FOUND,
            thumbprint="DEADBEEF",
            success=False,
        )
        configure_audit(enabled=False)

        records = [json.loads(line) for line in path.read_text().splitlines()]
        assert [r["event_type"] for r in records] == ["auth.login.failure", "cert.not_found"]
        assert records[0]["client_id"] == "abc"
        assert records[0]["success"] is False
        assert records[1]["thumbprint"] == "DEADBEEF"
        assert "store_location" not in records[1]

    def test_audit_does_not_propagate(self):
        get_audit_logger()

        assert logging.getLogger(AUDIT_LOGGER_NAME).propagate is False
