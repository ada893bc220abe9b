"""
batchcommit logging utilities.

Provides configurable logging for HTTP requests/responses and credential
operations. Ensures no sensitive data (private keys, app assertions,
installation tokens) is logged.
"""

import logging
import re
from typing import Any

# Create package-specific loggers
_pkg_logger = logging.getLogger("batchcommit")
_http_logger = logging.getLogger("batchcommit.http")
_credentials_logger = logging.getLogger("batchcommit.credentials")

# Patterns for sensitive data that should be masked
_SENSITIVE_PATTERNS = [
    # Private key patterns (PEM format)
    (re.compile(r"-----BEGIN[^-]*PRIVATE KEY-----.*?-----END[^-]*PRIVATE KEY-----", re.DOTALL), "[PRIVATE_KEY_REDACTED]"),
    # Bearer credentials in headers
    (re.compile(r"\bBearer\s+[A-Za-z0-9_\-.=]+"), "Bearer [REDACTED]"),
    # JWT assertions (three base64url segments)
    (re.compile(r"eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+"), "[JWT_REDACTED]"),
    # Host-issued access tokens (installation, user, OAuth, refresh)
    (re.compile(r"\bgh[supor]_[A-Za-z0-9]{16,}\b"), "[TOKEN_REDACTED]"),
    # Secret/token patterns
    (re.compile(r"(secret|token|password|api_key|apikey|service_role_key)['\"]?\s*[:=]\s*['\"][^'\"]+['\"]", re.IGNORECASE), r"\1: [REDACTED]"),
]

_DEFAULT_SENSITIVE_KEYS = {
    "token",
    "secret",
    "password",
    "api_key",
    "apikey",
    "authorization",
    "private_key",
    "privatekey",
    "jwt",
}

_DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Characters of a token shown on either side when truncating
_TOKEN_PREVIEW_LENGTH = 4


def configure_logging(
    level: int = logging.INFO,
    http_level: int | None = None,
    credentials_level: int | None = None,
    handler: logging.Handler | None = None,
    format_string: str | None = None,
) -> None:
    """
    Attach one handler to the ``batchcommit`` logger and set levels.

    Safe to call repeatedly: the handler installed by a previous call is
    replaced, not stacked.

    Args:
        level: Level for the package logger
        http_level: Level for ``batchcommit.http`` (request/response lines);
            defaults to ``level``
        credentials_level: Level for ``batchcommit.credentials``; defaults to
            ``level``
        handler: Handler to attach (default: stderr)
        format_string: Record format

    Example:
        ```python
        configure_logging(level=logging.INFO, http_level=logging.DEBUG)
        ```
    """
    handler = handler or logging.StreamHandler()
    handler.setFormatter(logging.Formatter(format_string or _DEFAULT_FORMAT))

    _pkg_logger.setLevel(level)
    # Repeated configuration (app factory called per test) must not stack handlers
    for existing in list(_pkg_logger.handlers):
        if getattr(existing, "_batchcommit_handler", False):
            _pkg_logger.removeHandler(existing)
    handler._batchcommit_handler = True  # type: ignore[attr-defined]
    _pkg_logger.addHandler(handler)

    _http_logger.setLevel(http_level if http_level is not None else level)
    _credentials_logger.setLevel(credentials_level if credentials_level is not None else level)


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Get a batchcommit logger.

    Args:
        name: Logger name suffix (e.g., "http", "orchestrator"). If None, returns the package logger.

    Returns:
        Logger instance
    """
    if name is None:
        return _pkg_logger
    return logging.getLogger(f"batchcommit.{name}")


def mask_sensitive_data(text: str) -> str:
    """Redact PEM keys, app assertions, host tokens and ``key: "value"`` secrets in ``text``."""
    for pattern, replacement in _SENSITIVE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def truncate_token(token: str) -> str:
    """
    Shorten a credential to its first and last few characters.

    Values too short to hide anything are replaced outright.
    """
    if len(token) <= _TOKEN_PREVIEW_LENGTH * 4:
        return "[TOKEN_REDACTED]"

    return f"{token[:_TOKEN_PREVIEW_LENGTH]}...{token[-_TOKEN_PREVIEW_LENGTH:]}"


def _redact(value: Any, sensitive_keys: set[str]) -> Any:
    if isinstance(value, dict):
        return safe_log_dict(value, sensitive_keys)
    if isinstance(value, (list, tuple)):
        return [_redact(item, sensitive_keys) for item in value]
    if isinstance(value, str):
        return mask_sensitive_data(value)
    return value


def safe_log_dict(data: dict[str, Any], sensitive_keys: set[str] | None = None) -> dict[str, Any]:
    """
    Copy ``data`` for logging.

    Values under keys containing any of ``sensitive_keys`` (default: token,
    secret, authorization, private_key, jwt, ...) become "[REDACTED]";
    nested dicts and lists are walked and strings are passed through
    mask_sensitive_data().
    """
    keys = _DEFAULT_SENSITIVE_KEYS if sensitive_keys is None else sensitive_keys
    return {
        key: "[REDACTED]" if any(fragment in str(key).lower() for fragment in keys) else _redact(value, keys)
        for key, value in data.items()
    }


def log_http_request(
    method: str,
    url: str,
    headers: dict[str, str] | None = None,
    body: dict[str, Any] | None = None,
) -> None:
    """Debug-log an outgoing request on ``batchcommit.http``; credentials are masked."""
    if not _http_logger.isEnabledFor(logging.DEBUG):
        return

    line = f"{method} {url}"
    if headers:
        line += f" | headers={safe_log_dict(headers)}"
    if body:
        line += f" | body={safe_log_dict(body)}"
    _http_logger.debug(line)


def log_http_response(
    status_code: int,
    url: str,
    body: Any = None,
    elapsed_ms: float | None = None,
) -> None:
    """
    Debug-log a response on ``batchcommit.http``.

    Token issuance responses carry the installation token in ``body``; it is
    masked like every other credential.
    """
    if not _http_logger.isEnabledFor(logging.DEBUG):
        return

    line = f"{status_code} <- {url}"
    if elapsed_ms is not None:
        line += f" ({elapsed_ms:.0f}ms)"
    if body:
        line += f" | body={_redact(body, _DEFAULT_SENSITIVE_KEYS)}"
    _http_logger.debug(line)


def log_credential_operation(
    operation: str,
    app_id: str,
    installation_id: int | None = None,
    expires_at: str | None = None,
) -> None:
    """
    Debug-log an app assertion or token mint on ``batchcommit.credentials``.

    Only identifiers and expiry are accepted; token values never reach this
    function.
    """
    if not _credentials_logger.isEnabledFor(logging.DEBUG):
        return

    fields = [f"app_id={app_id}"]
    if installation_id is not None:
        fields.append(f"installation_id={installation_id}")
    if expires_at:
        fields.append(f"expires_at={expires_at}")
    _credentials_logger.debug("%s: %s", operation, " ".join(fields))


__all__ = [
    "configure_logging",
    "get_logger",
    "mask_sensitive_data",
    "truncate_token",
    "safe_log_dict",
    "log_http_request",
    "log_http_response",
    "log_credential_operation",
]
