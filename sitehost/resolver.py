"""Request resolution: hostname + path -> file inside a tenant directory.

Resolution happens in two steps:

1. **Tenant derivation** - the leftmost label of the hostname (with the base
   domain stripped) names a directory under the data directory. A label that
   starts with ``--`` stands for ``@`` so scoped package names can be used as
   subdomains. When no such directory exists, ``{label}.alias`` is followed
   once.

2. **Candidate search** - ``candidate_paths()`` turns the request path into an
   ordered list of relative paths. The first one that is a regular file inside
   the tenant directory wins.

Candidate Rules:
    /                     -> /index.html, /index.htm, /index.mjs, /index.js
    /favicon.ico          -> itself only
    /pkg@1.0.0            -> also /pkg/1.0.0 (version marker rewrite)
    /pkg@latest           -> also /pkg/0.0.0
    /foo (no extension)   -> /foo.html, /foo.mjs, ... /foo/index.html,
                             /foo/0.0.0.mjs, /foo/latest.mjs, ...
    /app.js (known ext)   -> literal and version-rewritten forms only

Every candidate is normalized against "/" before it is joined under the tenant
directory, so ``..`` segments can never climb out of it.
"""

from __future__ import annotations

import logging
import posixpath
import re
from pathlib import Path

from . import paths
from .aliases import AliasIndex
from .config import Settings

_LOG = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

CONTENT_TYPES: dict[str, str] = {
    "css": "text/css",
    "html": "text/html",
    "htm": "text/html",
    "js": "text/javascript",
    "mjs": "text/javascript",
    "json": "application/json",
    "map": "application/json",
    "svg": "image/svg+xml",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "webp": "image/webp",
    "ico": "image/x-icon",
    "txt": "text/plain",
    "wasm": "application/wasm",
}
"""Content type by file extension."""

DEFAULT_CONTENT_TYPE: str = "text/plain"
"""Content type for extensions missing from CONTENT_TYPES."""

INDEX_EXTENSIONS: tuple[str, ...] = ("html", "htm", "mjs", "js")
"""Extensions tried for the index file of "/", in order of preference."""

RESOLVE_EXTENSIONS: tuple[str, ...] = ("html", "mjs", "js", "css", "json")
"""Extensions appended to extension-less request paths, in order."""

FAVICON_PATH: str = "/favicon.ico"

LATEST_VERSION: str = "latest"
DEFAULT_VERSION: str = "0.0.0"

ROOT_TENANT: str = "."
"""Tenant name used when the request targets the bare base domain."""

VERSION_MARKER = re.compile(r"(?P<name>[^/@]+)@(?P<version>[^/@]+)")
"""``name@version`` inside one path segment. A leading ``@`` (scope) is not a marker."""

CORS_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, HEAD, OPTIONS, POST",
}


# =============================================================================
# Candidate Generation
# =============================================================================


def normalize_path(pathname: str) -> str:
    """Collapse ``.``/``..`` segments and duplicate slashes against "/".

    >>> normalize_path("/a/../../etc/passwd")
    '/etc/passwd'
    """
    return posixpath.normpath("/" + pathname.lstrip("/"))


def rewrite_version(path: str, latest_as: str | None = None) -> str:
    """Turn ``name@version`` segments into ``name/version``.

    Args:
        path: Normalized request path.
        latest_as: If given, a ``latest`` version is replaced with this value.

    Returns:
        The rewritten path (unchanged if it has no version marker).
    """

    def replace(match: re.Match) -> str:
        version = match.group("version")
        if latest_as is not None and (version == LATEST_VERSION or version.startswith(LATEST_VERSION + ".")):
            version = latest_as + version[len(LATEST_VERSION):]
        return f"{match.group('name')}/{version}"

    return VERSION_MARKER.sub(replace, path)


def extension_of(path: str | Path) -> str:
    """Lowercase extension of the last path segment, without the dot."""
    return posixpath.splitext(posixpath.basename(str(path)))[1].lstrip(".").lower()


def has_known_extension(path: str) -> bool:
    """True if the last segment ends in an extension from CONTENT_TYPES."""
    return extension_of(path) in CONTENT_TYPES


def _unique(candidates: list[str]) -> list[str]:
    """Normalize each candidate and drop duplicates, keeping order."""
    seen: dict[str, None] = {}
    for candidate in candidates:
        seen.setdefault(normalize_path(candidate), None)
    return list(seen)


def candidate_paths(pathname: str) -> list[str]:
    """Ordered list of tenant-relative paths to try for a request path.

    Pure function; touches no filesystem.

    Args:
        pathname: Decoded request path (e.g. "/docs", "/widget@1.2.0").

    Returns:
        Absolute-looking, normalized paths ("/..."), most specific first.
    """
    path = normalize_path(pathname)

    if path == "/":
        return [f"/index.{ext}" for ext in INDEX_EXTENSIONS]

    if path == FAVICON_PATH:
        return [FAVICON_PATH]

    rewritten = rewrite_version(path)
    pinned = rewrite_version(path, latest_as=DEFAULT_VERSION)

    if has_known_extension(path):
        return _unique([path, rewritten, pinned])

    bases = [
        path,
        rewritten,
        pinned,
        f"{rewritten}/index",
        f"{rewritten}/{DEFAULT_VERSION}",
        f"{rewritten}/{LATEST_VERSION}",
    ]
    candidates = [path, rewritten]
    for base in bases:
        for ext in RESOLVE_EXTENSIONS:
            candidates.append(f"{base}.{ext}")
    return _unique(candidates)


# =============================================================================
# Tenant Derivation
# =============================================================================


def tenant_token(hostname: str, base_domain: str) -> str | None:
    """Derive the tenant name from a request hostname.

    Args:
        hostname: Host header value, possibly with a port.
        base_domain: Configured public base domain.

    Returns:
        ROOT_TENANT for the bare base domain, the tenant name for a
        subdomain, or None when the label is empty or malformed.
    """
    host = hostname.strip().lower().split(":", 1)[0].rstrip(".")
    if not host:
        return None
    if host == base_domain:
        return ROOT_TENANT

    if host.endswith("." + base_domain):
        host = host[: -len(base_domain) - 1]

    token = host.split(".", 1)[0]
    if token.startswith("--"):
        token = "@" + token[2:]

    if not paths.validate_name(token):
        return None
    return token


def locate_tenant(data_dir: Path, aliases: AliasIndex, token: str) -> tuple[str, Path] | None:
    """Find the directory for a tenant name, following at most one alias.

    Args:
        data_dir: Root data directory.
        aliases: Alias index to consult when no directory matches.
        token: Tenant name from ``tenant_token()``.

    Returns:
        (resolved name, directory) or None if nothing exists.
    """
    if token == ROOT_TENANT:
        return (ROOT_TENANT, data_dir) if data_dir.is_dir() else None

    if not paths.validate_name(token):
        return None

    directory = paths.content_dir(data_dir, token)
    if directory.is_dir():
        return token, directory

    target = aliases.resolve(token)
    if target is None or not paths.validate_name(target):
        return None

    directory = paths.content_dir(data_dir, target)
    if not directory.is_dir():
        _LOG.debug("Alias %s points at missing directory %s", token, target)
        return None
    return target, directory


# =============================================================================
# Resolver
# =============================================================================


def content_type_for(path: str | Path) -> str:
    """Content type for a file, from its extension."""
    return CONTENT_TYPES.get(extension_of(path), DEFAULT_CONTENT_TYPE)


def static_headers(path: str | Path, nocache: bool, max_age: int) -> dict[str, str]:
    """Response headers for a served static file.

    Args:
        path: Matched file.
        nocache: Caller opted out of caching (``?nocache``).
        max_age: Cache lifetime in seconds.
    """
    headers = dict(CORS_HEADERS)
    headers["Content-Type"] = content_type_for(path)
    if not nocache:
        headers["Cache-Control"] = f"max-age={max_age}"
    return headers


class PathResolver:
    """Maps (hostname, path) to files under the data directory.

    Attributes:
        settings: Service configuration.
        aliases: Alias index used for tenant indirection.
    """

    def __init__(self, settings: Settings, aliases: AliasIndex) -> None:
        self.settings = settings
        self.aliases = aliases

    def tenant(self, hostname: str) -> tuple[str, Path] | None:
        """Resolved (name, directory) for a request hostname."""
        token = tenant_token(hostname, self.settings.base_domain)
        if token is None:
            return None
        return locate_tenant(self.settings.data_dir, self.aliases, token)

    def resolve(self, hostname: str, pathname: str) -> Path | None:
        """Find the file a request refers to.

        Args:
            hostname: Request hostname.
            pathname: Decoded request path.

        Returns:
            Path of the first matching regular file, or None.
        """
        located = self.tenant(hostname)
        if located is None:
            return None

        name, root = located
        root_real = root.resolve()
        for candidate in candidate_paths(pathname):
            if name == ROOT_TENANT and paths.is_internal(candidate):
                continue

            file = root / candidate.lstrip("/")
            if not file.is_file():
                continue

            if not file.resolve().is_relative_to(root_real):
                _LOG.warning("Ignoring %s: resolves outside tenant %s", candidate, name)
                continue
            return file
        return None
