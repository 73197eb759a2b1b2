"""Content-addressed storage of deployed trees.

Every upload is identified by a short SHA-256 fingerprint of its bytes and
extracted to ``{DATA_PATH}/{id}/``. Extraction happens in a staging directory
that is renamed into place, so a tree is either fully present or absent and
re-deploys never mix files from two extractions.
"""

from __future__ import annotations

import hashlib
import logging
import shutil
import tempfile
import uuid
from pathlib import Path

from . import paths
from .archiver import Archiver
from .errors import ArchiverError, ExtractFailed
from .locks import KeyedLock

_LOG = logging.getLogger(__name__)

CONTENT_ID_LENGTH: int = 8
"""Number of hex digits kept from the SHA-256 digest."""


def compute_id(data: bytes) -> str:
    """Fingerprint an upload.

    Args:
        data: Raw archive bytes.

    Returns:
        First 8 lowercase hex digits of the SHA-256 digest.
    """
    return hashlib.sha256(data).hexdigest()[:CONTENT_ID_LENGTH]


class ContentStore:
    """Owns content directories and upload archives under the data directory.

    Attributes:
        data_dir: Root data directory.
        archiver: Archive tool used for extraction.
    """

    def __init__(self, data_dir: Path, archiver: Archiver) -> None:
        self.data_dir = data_dir
        self.archiver = archiver
        self._swaps = KeyedLock()

    def store(self, data: bytes) -> Path:
        """Write an upload to its fixed archive path.

        Identical uploads map to the same file, so concurrent identical
        deploys overwrite each other harmlessly.

        Returns:
            Path of the written archive.
        """
        self.data_dir.mkdir(parents=True, exist_ok=True)
        archive = paths.archive_path(self.data_dir, compute_id(data))
        archive.write_bytes(data)
        return archive

    async def extract(self, archive: Path, dest_dir: Path) -> None:
        """Extract ``archive`` and swap the result in as ``dest_dir``.

        Args:
            archive: Uploaded archive on disk.
            dest_dir: Final location of the tree.

        Raises:
            ExtractFailed: The archiver reported an error; ``dest_dir`` is left
                as it was.
        """
        staging_root = paths.staging_dir(self.data_dir)
        staging_root.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=f"{dest_dir.name}-", dir=staging_root))
        staging.chmod(0o755)

        try:
            try:
                await self.archiver.extract(archive, staging)
            except ArchiverError as e:
                _LOG.error("Extraction of %s failed: %s", archive.name, e.detail)
                raise ExtractFailed(e.detail) from e

            async with self._swaps.hold(dest_dir.name):
                self._swap(staging, dest_dir)
        finally:
            # Gone already when the swap succeeded
            shutil.rmtree(staging, ignore_errors=True)

    def _swap(self, staging: Path, dest_dir: Path) -> None:
        """Rename a finished extraction into place, retiring any old tree."""
        if not dest_dir.exists():
            staging.rename(dest_dir)
            return

        _LOG.info("Content %s already deployed, replacing tree", dest_dir.name)
        retired = paths.staging_dir(self.data_dir) / f"{dest_dir.name}-retired-{uuid.uuid4().hex[:8]}"
        dest_dir.rename(retired)
        staging.rename(dest_dir)
        shutil.rmtree(retired, ignore_errors=True)

    def release(self, archive: Path) -> None:
        """Delete an upload archive if it is still there."""
        archive.unlink(missing_ok=True)

    def remove(self, name: str) -> bool:
        """Delete a content directory, best effort.

        Failures are logged and swallowed: the directory may already be gone.

        Args:
            name: Content id or tenant directory name.

        Returns:
            True if the directory was removed.
        """
        if not paths.validate_name(name):
            _LOG.warning("Refusing to remove suspicious content name %r", name)
            return False

        target = paths.content_dir(self.data_dir, name)
        try:
            shutil.rmtree(target)
        except FileNotFoundError:
            return False
        except OSError as e:
            _LOG.warning("Failed to remove %s: %s", target, e)
            return False
        _LOG.info("Removed superseded content %s", name)
        return True

    def count(self) -> int:
        """Number of deployed content directories."""
        if not self.data_dir.is_dir():
            return 0
        return sum(
            1
            for entry in self.data_dir.iterdir()
            if entry.is_dir() and not entry.name.startswith((".", "@"))
        )
