"""Archive extraction and creation through the external ``tar`` tool.

The rest of the package only sees the ``Archiver`` protocol, so tests can swap
in an implementation that never spawns a process.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Protocol

from .errors import ArchiverError

_LOG = logging.getLogger(__name__)

TAR_BINARY: str = "tar"
"""Executable used for all archive operations."""


class Archiver(Protocol):
    """Capability to unpack and pack gzipped tarballs."""

    async def extract(self, archive: Path, dest_dir: Path) -> None:
        """Extract ``archive`` into ``dest_dir``, overwriting existing files."""
        ...

    async def create(self, directory: Path) -> bytes:
        """Return a gzipped tarball of everything below ``directory``."""
        ...


class TarArchiver:
    """Archiver backed by a ``tar`` subprocess.

    Attributes:
        timeout: Seconds a single tar run may take before it is killed.
    """

    def __init__(self, timeout: float = 60.0) -> None:
        self.timeout = timeout

    async def _run(self, *args: str) -> bytes:
        """Run tar with ``args`` and return its stdout.

        Raises:
            ArchiverError: tar exited nonzero, could not be started, or timed out.
        """
        _LOG.debug("Running %s %s", TAR_BINARY, " ".join(args))
        try:
            proc = await asyncio.create_subprocess_exec(
                TAR_BINARY,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ArchiverError(f"could not start {TAR_BINARY}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except TimeoutError:
            proc.kill()
            await proc.wait()
            raise ArchiverError(f"{TAR_BINARY} timed out after {self.timeout:g}s") from None

        if proc.returncode:
            detail = stderr.decode("utf-8", errors="replace").strip()
            raise ArchiverError(detail or f"{TAR_BINARY} exited with code {proc.returncode}")
        return stdout

    async def extract(self, archive: Path, dest_dir: Path) -> None:
        dest_dir.mkdir(parents=True, exist_ok=True)
        await self._run("-xzf", str(archive), "--overwrite", "--directory", str(dest_dir))

    async def create(self, directory: Path) -> bytes:
        return await self._run("-czf", "-", "-C", str(directory), ".")
