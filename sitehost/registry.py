"""npm-compatible registry emulation over stored module files.

Published modules live as one file per version::

    {DATA_PATH}/@scope/name/1.0.0.mjs
    {DATA_PATH}/@scope/name/latest.mjs

Nothing else is stored. The registry document and the tarballs an npm client
asks for are generated on each request:

    GET /:npm/@scope/name          -> registry document (all versions)
    GET /:npm/@scope/name/1.0.0    -> tarball with package/package.json and
                                      package/index.mjs
    PUT /:npm/@scope/name/1.0.0    -> store a new version file (authorized)

Point a client at it with ``npm config set @scope:registry https://{BASE_DOMAIN}/:npm/``.
"""

from __future__ import annotations

import io
import json
import logging
import os
import re
import tarfile
import tempfile
from datetime import UTC, datetime
from pathlib import Path

from . import auth, paths
from .config import Settings

_LOG = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

REGISTRY_PREFIX: str = "/:npm"
"""URL prefix all registry routes live under."""

MODULE_SUFFIX: str = ".mjs"
"""Suffix of stored version files."""

ENTRY_NAME: str = "index.mjs"
"""Name the stored module gets inside generated tarballs."""

LATEST_VERSION: str = "latest"

SCOPE_PATTERN = re.compile(r"^@[a-z0-9][a-z0-9._-]*$")
NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9._-]*$")
VERSION_PATTERN = re.compile(r"^[0-9A-Za-z][0-9A-Za-z.+_-]*$")

IMMUTABLE_CACHE: str = "public, max-age=31536000, immutable"
"""Cache-Control for pinned versions, which never change."""

NO_CACHE: str = "no-cache"
"""Cache-Control for documents that change on every publish."""


def is_valid_package(scope: str, name: str) -> bool:
    """Validate a scope/name pair before it is used as a path."""
    return bool(SCOPE_PATTERN.match(scope) and NAME_PATTERN.match(name))


def is_valid_version(version: str) -> bool:
    """Validate a version string before it is used as a file name."""
    return len(version) <= 128 and bool(VERSION_PATTERN.match(version))


def cache_control_for(version: str) -> str:
    """Pinned versions are immutable; ``latest`` may move."""
    return NO_CACHE if version == LATEST_VERSION else IMMUTABLE_CACHE


class RegistryEmulator:
    """Builds registry documents and tarballs from stored version files.

    Attributes:
        settings: Service configuration.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def _package_dir(self, scope: str, name: str) -> Path | None:
        if not is_valid_package(scope, name):
            return None
        return paths.package_dir(self.settings.data_dir, scope, name)

    def _version_file(self, scope: str, name: str, version: str) -> Path | None:
        directory = self._package_dir(scope, name)
        if directory is None or not is_valid_version(version):
            return None
        return directory / f"{version}{MODULE_SUFFIX}"

    def tarball_url(self, scope: str, name: str, version: str) -> str:
        """Public download URL for one version."""
        return f"https://{self.settings.base_domain}{REGISTRY_PREFIX}/{scope}/{name}/{version}"

    def versions(self, scope: str, name: str) -> dict[str, float]:
        """Stored versions of a package with their modification times.

        Returns:
            Mapping of version -> mtime (epoch seconds), sorted by version.
            Empty for unknown or invalid packages.
        """
        directory = self._package_dir(scope, name)
        if directory is None or not directory.is_dir():
            return {}

        found = {}
        for entry in directory.iterdir():
            if entry.suffix != MODULE_SUFFIX or not entry.is_file():
                continue
            version = entry.name[: -len(MODULE_SUFFIX)]
            if is_valid_version(version):
                found[version] = entry.stat().st_mtime
        return dict(sorted(found.items()))

    def manifest(self, scope: str, name: str) -> dict | None:
        """Registry document for ``scope/name``.

        Returns:
            The document, or None if the package has no stored versions.
        """
        versions = self.versions(scope, name)
        if not versions:
            return None

        package = f"{scope}/{name}"
        return {
            "name": package,
            "dist-tags": {"latest": LATEST_VERSION},
            "versions": {
                version: {
                    "name": package,
                    "version": version,
                    "dist": {"tarball": self.tarball_url(scope, name, version)},
                }
                for version in versions
            },
            "time": {
                version: datetime.fromtimestamp(mtime, UTC).isoformat().replace("+00:00", "Z")
                for version, mtime in versions.items()
            },
        }

    def tarball(self, scope: str, name: str, version: str) -> bytes | None:
        """Build the npm tarball for one stored version.

        The archive holds ``package/package.json`` (generated) and
        ``package/index.mjs`` (the stored module).

        Returns:
            Gzipped tar bytes, or None if the version doesn't exist.
        """
        source = self._version_file(scope, name, version)
        if source is None or not source.is_file():
            return None

        module = source.read_bytes()
        mtime = source.stat().st_mtime
        package_json = json.dumps(
            {
                "name": f"{scope}/{name}",
                "version": version,
                "type": "module",
                "main": ENTRY_NAME,
                "exports": {".": f"./{ENTRY_NAME}"},
            },
            indent=2,
        ).encode("utf-8")

        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
            for member, data in (("package.json", package_json), (ENTRY_NAME, module)):
                info = tarfile.TarInfo(f"package/{member}")
                info.size = len(data)
                info.mtime = int(mtime)
                info.mode = 0o644
                tar.addfile(info, io.BytesIO(data))
        return buffer.getvalue()

    def publish(self, scope: str, name: str, version: str, source: bytes, auth_token: str | None) -> str | None:
        """Store a module file as a new version.

        Args:
            scope: Package scope including the leading "@".
            name: Package name.
            version: Version string (or "latest").
            source: Module source.
            auth_token: Value of the ``authorization`` header.

        Returns:
            Tarball URL of the stored version, or None if the coordinates are
            invalid.

        Raises:
            Unauthorized: Bad or missing token.
        """
        auth.require_token(self.settings, auth_token, "publish")
        target = self._version_file(scope, name, version)
        if target is None:
            return None

        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".publish-", suffix=".tmp", dir=target.parent)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(source)
            os.chmod(tmp, 0o644)
            os.replace(tmp, target)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

        _LOG.info("Published %s/%s@%s (%d bytes)", scope, name, version, len(source))
        return self.tarball_url(scope, name, version)
