"""
Redaction helpers for anything that may reach a log line.

Provides:
- Secret address sanitization (query string removal)
- Error message sanitization (bearer tokens, assertions, keys)
"""

import re
from urllib.parse import urlparse, urlunparse


def sanitize_url(url: str) -> str:
    """
    Drop query string and fragment from a URL.

    Secret ids never need a query string, so anything there is
    treated as sensitive.
    """
    if not url:
        return url

    try:
        parsed = urlparse(url)
    except ValueError:
        return url

    if not parsed.query and not parsed.fragment:
        return url

    return urlunparse(parsed._replace(query="[REDACTED]" if parsed.query else "", fragment=""))


# Patterns that may contain sensitive data in error messages
SENSITIVE_PATTERNS = [
    (re.compile(r"bearer\s+[a-zA-Z0-9\-_.~+/=]+", re.IGNORECASE), "bearer [REDACTED]"),
    (re.compile(r"eyJ[a-zA-Z0-9\-_]+\.[a-zA-Z0-9\-_]+\.[a-zA-Z0-9\-_]*"), "[REDACTED_JWT]"),
    (
        re.compile(r'client_assertion=[^&\s"\']+', re.IGNORECASE),
        "client_assertion=[REDACTED]",
    ),
    (re.compile(r'access_token["\']?\s*[=:]\s*["\']?[^&\s"\',}]+', re.IGNORECASE), "access_token=[REDACTED]"),
    (re.compile(r'password=[^&\s"\']+', re.IGNORECASE), "password=[REDACTED]"),
    (re.compile(r'secret=[^&\s"\']+', re.IGNORECASE), "secret=[REDACTED]"),
    (
        re.compile(
            r"-----BEGIN [A-Z ]*PRIVATE KEY-----.*?-----END [A-Z ]*PRIVATE KEY-----",
            re.DOTALL,
        ),
        "[REDACTED_PRIVATE_KEY]",
    ),
]


def sanitize_error_message(msg: str, max_length: int = 500) -> str:
    """
    Remove potentially sensitive data from error messages.

    Applies pattern-based redaction and truncates to max_length.

    Args:
        msg: Error message that may contain sensitive data
        max_length: Maximum length of returned message

    Returns:
        Sanitized and truncated error message
    """
    if not msg:
        return msg

    for pattern, replacement in SENSITIVE_PATTERNS:
        msg = pattern.sub(replacement, msg)

    url_pattern = re.compile(r'https?://[^\s"\'<>]+')
    for match in url_pattern.finditer(msg):
        original_url = match.group(0)
        sanitized = sanitize_url(original_url)
        if sanitized != original_url:
            msg = msg.replace(original_url, sanitized)

    if len(msg) > max_length:
        msg = msg[: max_length - 3] + "..."

    return msg
