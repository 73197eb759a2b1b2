"""Runtime configuration for sitehost.

All settings are read once from the process environment when the service
starts and carried around as an immutable ``Settings`` object. Nothing else in
the package reads ``os.environ``.

Environment Variables:
    API_KEY: Shared secret required in the ``authorization`` header for
        deploys, backups and module publishing.
    BASE_DOMAIN: Public base domain (e.g. ``sites.example.com``). Used to
        strip tenant subdomains and to build URLs in responses.
    DATA_PATH: Directory holding content directories, alias files and
        registry packages (default: /data/sites).
    ARCHIVE_TIMEOUT: Seconds a single tar invocation may run (default: 60).
    MAX_UPLOAD_SIZE: Maximum deploy archive size in bytes (default: 50 MB).
    CACHE_MAX_AGE: max-age in seconds for static file responses
        (default: 86400).
    HOST / PORT: Address uvicorn binds to (default: 0.0.0.0:8080).
    LOG_LEVEL: Logging level name (default: INFO).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

# =============================================================================
# Defaults
# =============================================================================

DEFAULT_DATA_PATH: str = "/data/sites"
"""Directory where deployed content lives when DATA_PATH is unset."""

DEFAULT_BASE_DOMAIN: str = "localhost"
"""Base domain used when BASE_DOMAIN is unset."""

DEFAULT_ARCHIVE_TIMEOUT: float = 60.0
"""Seconds before a hung tar process is killed."""

DEFAULT_MAX_UPLOAD_SIZE: int = 50 * 1024 * 1024
"""Maximum upload size in bytes (50 MB)."""

DEFAULT_CACHE_MAX_AGE: int = 86400
"""Cache lifetime for static files (one day)."""


@dataclass(frozen=True, slots=True)
class Settings:
    """Immutable service configuration.

    Attributes:
        api_key: Shared secret compared byte-for-byte with the authorization
            header. An empty key refuses every authenticated call.
        base_domain: Public base domain, lowercase, without a leading dot.
        data_dir: Root data directory.
        archive_timeout: Seconds a single archiver call may take.
        max_upload_size: Largest accepted deploy archive in bytes.
        cache_max_age: max-age for static file responses.
        host: Interface the HTTP server binds to.
        port: Port the HTTP server binds to.
        log_level: Logging level name.
    """

    api_key: str
    base_domain: str
    data_dir: Path
    archive_timeout: float = DEFAULT_ARCHIVE_TIMEOUT
    max_upload_size: int = DEFAULT_MAX_UPLOAD_SIZE
    cache_max_age: int = DEFAULT_CACHE_MAX_AGE
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> Settings:
        """Build settings from environment variables.

        Args:
            environ: Mapping to read from. Defaults to ``os.environ``.

        Returns:
            A populated Settings instance.

        Raises:
            ValueError: A numeric variable could not be parsed.
        """
        env = os.environ if environ is None else environ
        return cls(
            api_key=env.get("API_KEY", ""),
            base_domain=env.get("BASE_DOMAIN", DEFAULT_BASE_DOMAIN).strip().strip(".").lower(),
            data_dir=Path(env.get("DATA_PATH", DEFAULT_DATA_PATH)),
            archive_timeout=float(env.get("ARCHIVE_TIMEOUT", DEFAULT_ARCHIVE_TIMEOUT)),
            max_upload_size=int(env.get("MAX_UPLOAD_SIZE", DEFAULT_MAX_UPLOAD_SIZE)),
            cache_max_age=int(env.get("CACHE_MAX_AGE", DEFAULT_CACHE_MAX_AGE)),
            host=env.get("HOST", "0.0.0.0"),
            port=int(env.get("PORT", "8080")),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )

    def site_url(self, name: str) -> str:
        """Public URL for a tenant subdomain."""
        return f"https://{name}.{self.base_domain}"
