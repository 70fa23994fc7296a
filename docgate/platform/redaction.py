"""
Secret redaction for logs.

Session tokens, Google refresh credentials and Stripe keys must never reach
log output. SecretRedactingFilter is installed on the root handlers by
main.py; redact_secrets() can be used directly before logging payloads.

Usage:
    from docgate.platform.redaction import redact_secrets

    logger.info("Token response", extra=redact_secrets(response_body))
"""

import logging
import re
from typing import Any

# Key names that likely hold a secret
SECRET_PATTERNS = [
    re.compile(r"(api[_-]?key)", re.IGNORECASE),
    re.compile(r"(secret[_-]?key)", re.IGNORECASE),
    re.compile(r"(access[_-]?token)", re.IGNORECASE),
    re.compile(r"(refresh[_-]?token)", re.IGNORECASE),
    re.compile(r"(refresh[_-]?credential)", re.IGNORECASE),
    re.compile(r"(id[_-]?token)", re.IGNORECASE),
    re.compile(r"(jwt[_-]?token)", re.IGNORECASE),
    re.compile(r"(session[_-]?token)", re.IGNORECASE),
    re.compile(r"(client[_-]?secret)", re.IGNORECASE),
    re.compile(r"(nonce[_-]?secret)", re.IGNORECASE),
    re.compile(r"(jwt[_-]?secret)", re.IGNORECASE),
    re.compile(r"(encryption[_-]?key)", re.IGNORECASE),
    re.compile(r"(webhook[_-]?secret)", re.IGNORECASE),
    re.compile(r"(authorization)", re.IGNORECASE),
    re.compile(r"(database[_-]?url)", re.IGNORECASE),
    re.compile(r"(password)", re.IGNORECASE),
]

# Secret-looking values embedded in free text
SECRET_VALUE_PATTERNS = [
    re.compile(r"(Bearer\s+[a-zA-Z0-9._-]+)"),
    re.compile(r"(sk_(?:live|test)_[a-zA-Z0-9]{10,})"),  # Stripe secret keys
    re.compile(r"(rk_(?:live|test)_[a-zA-Z0-9]{10,})"),  # Stripe restricted keys
    re.compile(r"(whsec_[a-zA-Z0-9]{10,})"),  # Stripe webhook secrets
    re.compile(r"(1//[a-zA-Z0-9._-]{10,})"),  # Google refresh tokens
    re.compile(r"(ya29\.[a-zA-Z0-9._-]{10,})"),  # Google access tokens
    re.compile(r"(eyJ[a-zA-Z0-9_-]{5,}\.[a-zA-Z0-9_-]{5,}\.[a-zA-Z0-9_-]*)"),  # JWTs
]

REDACTED_VALUE = "[REDACTED]"


def is_secret_key(key: str) -> bool:
    return any(pattern.search(key) for pattern in SECRET_PATTERNS)


def redact_value(value: Any) -> Any:
    """Replace secret-looking substrings in a string value."""
    if not isinstance(value, str):
        return value

    result = value
    for pattern in SECRET_VALUE_PATTERNS:
        result = pattern.sub(REDACTED_VALUE, result)

    return result


def redact_secrets(data: Any, _depth: int = 0) -> Any:
    """
    Recursively redact secrets from a data structure.

    Dictionary values under secret-looking keys are replaced wholesale;
    strings elsewhere are scanned for secret-looking values.
    """
    if _depth > 10:
        return data

    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            if isinstance(key, str) and is_secret_key(key):
                result[key] = REDACTED_VALUE
            else:
                result[key] = redact_secrets(value, _depth + 1)
        return result

    if isinstance(data, (list, tuple)):
        return [redact_secrets(item, _depth + 1) for item in data]

    if isinstance(data, str):
        return redact_value(data)

    return data


class SecretRedactingFilter(logging.Filter):
    """
    Logging filter that redacts secrets from log records.

    Usage:
        handler.addFilter(SecretRedactingFilter())
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact_value(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = redact_secrets(record.args)
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    redact_value(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )

        for key in list(record.__dict__.keys()):
            if is_secret_key(key):
                setattr(record, key, REDACTED_VALUE)

        return True


def install_redacting_filter(logger: logging.Logger = None) -> None:
    """Attach SecretRedactingFilter to every handler of the given (root) logger."""
    target = logger or logging.getLogger()
    for handler in target.handlers:
        if not any(isinstance(f, SecretRedactingFilter) for f in handler.filters):
            handler.addFilter(SecretRedactingFilter())
