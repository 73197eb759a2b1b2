"""Shared test fixtures for sitehost."""

import asyncio
import io
import json
import sys
import tarfile
from pathlib import Path

import pytest

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from sitehost.config import Settings
from sitehost.errors import ArchiverError

TOKEN = "secret-token"
BASE_DOMAIN = "sites.test"


def make_archive(files: dict[str, str | bytes], links: dict[str, str] | None = None) -> bytes:
    """Build a gzipped tarball from a {path: content} mapping.

    ``links`` adds symlink members as {path: link target}.
    """
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for name, content in files.items():
            data = content.encode() if isinstance(content, str) else content
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
        for name, target in (links or {}).items():
            info = tarfile.TarInfo(name)
            info.type = tarfile.SYMTYPE
            info.linkname = target
            tar.addfile(info)
    return buffer.getvalue()


def site_archive(name: str | None = None, index: str = "<h1>hello</h1>", **extra: str) -> bytes:
    """Tarball with an index.html and, optionally, a package.json naming it."""
    files: dict[str, str | bytes] = {"index.html": index}
    if name is not None:
        files["package.json"] = json.dumps({"name": name, "version": "1.0.0"})
    files.update(extra)
    return make_archive(files)


class FakeArchiver:
    """Archiver that uses tarfile in-process instead of spawning tar.

    Attributes:
        fail_with: When set, every call raises ArchiverError with this detail.
        extracted: Archive paths seen by extract(), in order.
        extract_filter: tarfile extraction filter. "fully_trusted" keeps
            absolute symlinks the way GNU tar does.
        delay: Seconds extract() yields to the event loop before unpacking.
        peak: Highest number of extractions that were in flight at once.
    """

    def __init__(self) -> None:
        self.fail_with: str | None = None
        self.extracted: list[Path] = []
        self.extract_filter = "data"
        self.delay = 0.0
        self.peak = 0
        self._active = 0

    async def extract(self, archive: Path, dest_dir: Path) -> None:
        self.extracted.append(archive)
        if self.fail_with is not None:
            raise ArchiverError(self.fail_with)
        assert archive.exists(), "archive must be on disk while extracting"
        self._active += 1
        self.peak = max(self.peak, self._active)
        try:
            await asyncio.sleep(self.delay)
            dest_dir.mkdir(parents=True, exist_ok=True)
            with tarfile.open(archive, "r:gz") as tar:
                tar.extractall(dest_dir, filter=self.extract_filter)
        except (tarfile.TarError, OSError) as e:
            raise ArchiverError(str(e)) from e
        finally:
            self._active -= 1

    async def create(self, directory: Path) -> bytes:
        if self.fail_with is not None:
            raise ArchiverError(self.fail_with)
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
            tar.add(str(directory), arcname=".")
        return buffer.getvalue()


def read_archive(data: bytes) -> dict[str, bytes]:
    """Regular files inside a gzipped tarball, keyed by member name."""
    with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as tar:
        return {
            member.name: tar.extractfile(member).read()
            for member in tar.getmembers()
            if member.isfile()
        }


@pytest.fixture
def data_dir(tmp_path):
    """Empty data directory."""
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def settings(data_dir):
    """Settings pointing at the temporary data directory."""
    return Settings(api_key=TOKEN, base_domain=BASE_DOMAIN, data_dir=data_dir)


@pytest.fixture
def archiver():
    """In-process archiver."""
    return FakeArchiver()
