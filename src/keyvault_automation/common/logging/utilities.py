"""Structured logging helpers."""

import logging
from typing import Any, Dict

from keyvault_automation.common.security import sanitize_error_message

# SecretsProviderError.context keys that map onto JSONFormatter fields
_CONTEXT_FIELDS = ("authority", "resource", "auth_mode", "thumbprint", "store_location")


def log_with_context(
    logger: logging.Logger,
    level: int,
    msg: str,
    **kwargs: Any,
) -> None:
    """
    Log with structured fields picked up by JSONFormatter.

    Example:
        log_with_context(
            logger, logging.DEBUG, "Using cached token",
            authority=authority,
            resource=resource,
        )
    """
    logger.log(level, msg, extra=kwargs)


def _error_fields(exc: Exception) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}

    category = getattr(exc, "category", None)
    if category is not None:
        fields["error_category"] = getattr(category, "value", str(category))

    status_code = getattr(exc, "status_code", None)
    if isinstance(status_code, int):
        fields["http_status"] = status_code

    context = getattr(exc, "context", None)
    if isinstance(context, dict):
        for key in _CONTEXT_FIELDS:
            if context.get(key) is not None:
                fields[key] = context[key]

    fields["error_message"] = sanitize_error_message(str(exc))
    return fields


def log_exception(
    logger: logging.Logger,
    exc: Exception,
    msg: str,
    level: int = logging.ERROR,
    include_traceback: bool = True,
    **kwargs: Any,
) -> None:
    """
    Log an exception with its category, status and context fields.

    Fields carried by SecretsProviderError (category, status_code, context)
    are added to the record; explicit kwargs win. The message is redacted
    before it is logged.

    Args:
        logger: Logger instance
        exc: Exception to log
        msg: Context message
        level: Log level (default: ERROR)
        include_traceback: Include full traceback (default: True)
        **kwargs: Additional context fields
    """
    extra = _error_fields(exc)
    extra.update({k: v for k, v in kwargs.items() if v is not None})

    logger.log(level, msg, exc_info=exc if include_traceback else None, extra=extra)
