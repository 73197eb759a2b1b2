"""Shared-secret authorization for write operations.

Deploys, backups and module publishing all require the ``authorization``
header to equal the configured API_KEY exactly. There is no "Bearer" prefix
handling and no per-tenant credential.

Security Model:
    1. An empty API_KEY disables every authenticated operation
    2. The comparison is constant-time
    3. The check runs before any filesystem access
"""

from __future__ import annotations

import hmac
import logging

from .config import Settings
from .errors import Unauthorized

_LOG = logging.getLogger(__name__)


def is_configured(settings: Settings) -> bool:
    """Check if a deploy secret is configured.

    Returns:
        True if API_KEY is non-empty.
    """
    return bool(settings.api_key)


def verify_token(settings: Settings, token: str | None) -> bool:
    """Compare a supplied token with the shared secret.

    Uses constant-time comparison to prevent timing attacks.

    Args:
        settings: Service configuration holding the secret.
        token: Raw ``authorization`` header value, if any.

    Returns:
        True if the token matches byte-for-byte.
    """
    if not is_configured(settings) or token is None:
        return False
    return hmac.compare_digest(token.encode("utf-8"), settings.api_key.encode("utf-8"))


def require_token(settings: Settings, token: str | None, action: str) -> None:
    """Raise Unauthorized unless ``token`` matches the shared secret.

    Args:
        settings: Service configuration holding the secret.
        token: Raw ``authorization`` header value, if any.
        action: What was attempted, for the log line.

    Raises:
        Unauthorized: The token is missing or wrong.
    """
    if verify_token(settings, token):
        return
    if not is_configured(settings):
        _LOG.error("Rejected %s: API_KEY is not configured", action)
    else:
        _LOG.warning("Rejected %s: %s authorization header", action, "missing" if token is None else "invalid")
    raise Unauthorized(action)
