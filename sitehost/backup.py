"""Backup export: a tenant's current tree as a gzipped tarball.

The caller names the tenant with the last segment of a request path. The name
goes through the same one-hop alias lookup as subdomain requests, so backing
up ``site-a`` returns the content directory ``site-a.alias`` points at.
"""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass

from . import auth
from .aliases import AliasIndex
from .archiver import Archiver
from .config import Settings
from .errors import ArchiverError, ExportFailed, NotFound
from .resolver import locate_tenant

_LOG = logging.getLogger(__name__)


@dataclass(slots=True)
class BackupArchive:
    """A finished backup.

    Attributes:
        name: Resolved tenant directory name.
        data: Gzipped tar bytes.
    """

    name: str
    data: bytes

    @property
    def filename(self) -> str:
        """Suggested download file name."""
        return f"{self.name}.tgz"


def tenant_from_path(path: str) -> str:
    """Reduce a request path to the tenant name it ends with.

    >>> tenant_from_path("/backups/../site-a/")
    'site-a'
    """
    normalized = posixpath.normpath("/" + path.lstrip("/"))
    name = posixpath.basename(normalized)
    if name.startswith("--"):
        name = "@" + name[2:]
    return name


class BackupExporter:
    """Packs tenant directories for download.

    Attributes:
        settings: Service configuration.
        aliases: Alias index for name lookup.
        archiver: Archive tool used to pack the tree.
    """

    def __init__(self, settings: Settings, aliases: AliasIndex, archiver: Archiver) -> None:
        self.settings = settings
        self.aliases = aliases
        self.archiver = archiver

    async def export(self, path: str, auth_token: str | None) -> BackupArchive:
        """Archive the tenant named by the last segment of ``path``.

        Args:
            path: Request path, e.g. "/site-a".
            auth_token: Value of the ``authorization`` header.

        Returns:
            BackupArchive with the resolved name and archive bytes.

        Raises:
            Unauthorized: Bad or missing token.
            NotFound: No directory or alias for the name.
            ExportFailed: tar failed; details are only logged.
        """
        auth.require_token(self.settings, auth_token, "backup")

        name = tenant_from_path(path)
        located = locate_tenant(self.settings.data_dir, self.aliases, name) if name else None
        if located is None:
            raise NotFound(name)

        resolved, directory = located
        try:
            data = await self.archiver.create(directory)
        except ArchiverError as e:
            _LOG.error("Backup of %s failed: %s", resolved, e.detail)
            raise ExportFailed(resolved) from e

        _LOG.info("Exported backup of %s (%d bytes)", resolved, len(data))
        return BackupArchive(name=resolved, data=data)
