"""Log formatters for JSON and console output."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from keyvault_automation.common.logging.context import get_log_context
from keyvault_automation.common.security import sanitize_url


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter with context injection.

    Produces one JSON object per line for easy parsing with jq/grep.
    Secret addresses are sanitized before they are written.
    """

    # Fields to extract from LogRecord extras
    EXTRA_FIELDS = [
        "authority",
        "resource",
        "scope",
        "auth_mode",
        "client_id",
        "thumbprint",
        "secret_url",
        "vault_url",
        "secret_name",
        "secret_version",
        "duration_ms",
        "http_status",
        "error_category",
        "error_message",
        "cache_size",
        "store_location",
    ]

    # Fields that contain URLs and should be sanitized
    URL_FIELDS = ["secret_url", "vault_url"]

    def _sanitize_value(self, key: str, value: Any) -> Any:
        if key in self.URL_FIELDS and isinstance(value, str):
            return sanitize_url(value)
        return value

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3]
            + "Z",
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        ctx = get_log_context()
        for key, value in ctx.items():
            if value:
                log_entry[key] = value

        if record.levelno in (logging.DEBUG, logging.ERROR, logging.CRITICAL):
            log_entry["file"] = f"{record.filename}:{record.lineno}"

        for field in self.EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = self._sanitize_value(field, value)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable console formatter.

    Includes the component and the resource being authenticated against
    when available.
    """

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_log_context()

        parts = [
            datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            record.levelname,
        ]
        if ctx["component"]:
            parts.append(f"[{ctx['component']}]")

        prefix = " - ".join(parts)

        resource = getattr(record, "resource", None)
        if resource:
            return f"{prefix} - {record.getMessage()} (resource={resource})"

        return f"{prefix} - {record.getMessage()}"
