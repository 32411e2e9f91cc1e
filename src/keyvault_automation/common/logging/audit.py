"""
Audit logging for authentication against Key Vault.

Provides a structured audit trail for:
- Token acquisition (certificate assertion and user credential)
- Certificate lookups
- Authentication failures
- Token cache clears

Audit records go to a dedicated logger that does not propagate to the root
logger, written as single-line JSON. Disabled until configure_audit() turns it on.
"""

import json
import logging
import threading
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

AUDIT_LOGGER_NAME = "keyvault_automation.audit"


class AuditEventType(Enum):
    """Types of auditable security events."""

    AUTH_TOKEN_ACQUIRED = "auth.token.acquired"
    AUTH_LOGIN_FAILURE = "auth.login.failure"
    AUTH_CACHE_CLEARED = "auth.cache.cleared"
    CERT_LOADED = "cert.loaded"
    CERT_NOT_FOUND = "cert.not_found"
    CONFIG_INITIALIZED = "config.initialized"


class AuditLogger:
    """
    Audit logger for security-sensitive operations.

    Usage:
        audit = get_audit_logger()
        audit.log_auth_event(
            event_type=AuditEventType.AUTH_TOKEN_ACQUIRED,
            auth_mode="ClientCertificate",
            resource="https://vault.azure.net",
            success=True,
        )
    """

    def __init__(self) -> None:
        self.enabled = False
        self.audit_log_path: Optional[str] = None
        self._handler: Optional[logging.Handler] = None
        self._logger = logging.getLogger(AUDIT_LOGGER_NAME)
        self._logger.setLevel(logging.INFO)
        self._logger.propagate = False

    def configure(self, enabled: bool, audit_log_path: Optional[str] = None) -> None:
        """Enable or disable the audit file. Replaces any previous handler."""
        if self._handler is not None:
            self._logger.removeHandler(self._handler)
            self._handler.close()
            self._handler = None

        self.enabled = enabled
        self.audit_log_path = audit_log_path

        if enabled and audit_log_path:
            Path(audit_log_path).parent.mkdir(parents=True, exist_ok=True)
            handler = logging.FileHandler(audit_log_path, encoding="utf-8")
            handler.setLevel(logging.INFO)
            handler.setFormatter(logging.Formatter("%(message)s"))
            self._logger.addHandler(handler)
            self._handler = handler

    def _create_audit_record(
        self, event_type: AuditEventType, success: bool, **kwargs: Any
    ) -> Dict[str, Any]:
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type.value,
            "success": success,
            "component": "keyvault_automation",
        }
        for key, value in kwargs.items():
            if value is not None:
                record[key] = value
        return record

    def _log_record(self, record: Dict[str, Any]) -> None:
        if not self.enabled:
            return
        self._logger.info(json.dumps(record))

    def log_auth_event(
        self,
        event_type: AuditEventType,
        auth_mode: str,
        success: bool,
        resource: Optional[str] = None,
        client_id: Optional[str] = None,
        error_message: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        """
        Log authentication event.

        Args:
            event_type: Type of auth event
            auth_mode: Authentication mode (ClientCertificate, UserCredential)
            success: Whether operation succeeded
            resource: Resource the token is for (optional)
            client_id: Application client id (optional)
            error_message: Error message if failed (optional)
            **kwargs: Additional context
        """
        record = self._create_audit_record(
            event_type=event_type,
            success=success,
            auth_mode=auth_mode,
            resource=resource,
            client_id=client_id,
            error_message=error_message,
            **kwargs,
        )
        self._log_record(record)

    def log_certificate_event(
        self,
        event_type: AuditEventType,
        thumbprint: str,
        success: bool,
        store_location: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        """Log certificate lookup event."""
        record = self._create_audit_record(
            event_type=event_type,
            success=success,
            thumbprint=thumbprint,
            store_location=store_location,
            **kwargs,
        )
        self._log_record(record)


_audit_instance: Optional[AuditLogger] = None
_audit_lock = threading.Lock()


def get_audit_logger() -> AuditLogger:
    """Get the singleton audit logger instance."""
    global _audit_instance
    if _audit_instance is None:
        with _audit_lock:
            if _audit_instance is None:
                _audit_instance = AuditLogger()
    return _audit_instance


def configure_audit(enabled: bool, audit_log_path: Optional[str] = None) -> AuditLogger:
    """Turn the audit trail on or off."""
    audit = get_audit_logger()
    audit.configure(enabled, audit_log_path)
    return audit
