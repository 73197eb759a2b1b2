"""Unit tests for sitehost/store.py."""

import hashlib

import pytest

from conftest import make_archive
from sitehost.errors import ExtractFailed
from sitehost.store import ContentStore, compute_id


class TestComputeId:
    """Tests for compute_id."""

    def test_deterministic(self):
        """Same bytes should always give the same id."""
        data = b"some archive bytes"
        assert compute_id(data) == compute_id(data)

    def test_is_sha256_prefix(self):
        """Id should be the first 8 hex digits of the SHA-256 digest."""
        data = b"abc"
        assert compute_id(data) == hashlib.sha256(data).hexdigest()[:8]

    def test_shape(self):
        """Id should be 8 lowercase hex characters."""
        content_id = compute_id(b"\x00\x01\x02")
        assert len(content_id) == 8
        assert content_id == content_id.lower()
        int(content_id, 16)

    def test_different_content(self):
        """Different bytes should (practically) give different ids."""
        assert compute_id(b"one") != compute_id(b"two")


class TestStoreAndRelease:
    """Tests for ContentStore.store and release."""

    @pytest.fixture
    def store(self, data_dir, archiver):
        return ContentStore(data_dir, archiver)

    def test_store_writes_fixed_path(self, store, data_dir):
        """Archive should land at {data_dir}/{id}.tgz."""
        data = b"payload"
        path = store.store(data)
        assert path == data_dir / f"{compute_id(data)}.tgz"
        assert path.read_bytes() == data

    def test_store_same_content_same_path(self, store):
        """Identical uploads should overwrite the same file."""
        assert store.store(b"x") == store.store(b"x")

    def test_release_removes_archive(self, store):
        """release should delete the archive."""
        path = store.store(b"payload")
        store.release(path)
        assert not path.exists()

    def test_release_missing_is_noop(self, store, data_dir):
        """release should not fail when the archive is already gone."""
        store.release(data_dir / "missing.tgz")


class TestExtract:
    """Tests for ContentStore.extract."""

    @pytest.fixture
    def store(self, data_dir, archiver):
        return ContentStore(data_dir, archiver)

    @pytest.mark.asyncio
    async def test_extract_creates_directory(self, store, data_dir):
        """Extraction should produce the tree at the destination."""
        archive = store.store(make_archive({"index.html": "<p>hi</p>", "js/app.js": "1"}))
        dest = data_dir / "abcd1234"

        await store.extract(archive, dest)

        assert (dest / "index.html").read_text() == "<p>hi</p>"
        assert (dest / "js" / "app.js").read_text() == "1"

    @pytest.mark.asyncio
    async def test_extract_replaces_existing_tree(self, store, data_dir):
        """A second extraction should not leave files from the first one."""
        dest = data_dir / "abcd1234"
        await store.extract(store.store(make_archive({"old.html": "old", "index.html": "1"})), dest)
        await store.extract(store.store(make_archive({"index.html": "2"})), dest)

        assert (dest / "index.html").read_text() == "2"
        assert not (dest / "old.html").exists()

    @pytest.mark.asyncio
    async def test_extract_failure_raises(self, store, data_dir, archiver):
        """Archiver errors should surface as ExtractFailed with the detail."""
        archiver.fail_with = "gzip: stdin: not in gzip format"
        archive = store.store(b"not a tarball")

        with pytest.raises(ExtractFailed) as exc_info:
            await store.extract(archive, data_dir / "abcd1234")

        assert "not in gzip format" in exc_info.value.detail
        assert not (data_dir / "abcd1234").exists()

    @pytest.mark.asyncio
    async def test_extract_failure_keeps_existing_tree(self, store, data_dir, archiver):
        """A failed re-extraction should leave the live tree untouched."""
        dest = data_dir / "abcd1234"
        await store.extract(store.store(make_archive({"index.html": "live"})), dest)

        archiver.fail_with = "boom"
        with pytest.raises(ExtractFailed):
            await store.extract(store.store(b"garbage"), dest)

        assert (dest / "index.html").read_text() == "live"

    @pytest.mark.asyncio
    async def test_staging_is_cleaned(self, store, data_dir, archiver):
        """No staging leftovers after success or failure."""
        await store.extract(store.store(make_archive({"a.txt": "a"})), data_dir / "aaaa0000")
        archiver.fail_with = "boom"
        with pytest.raises(ExtractFailed):
            await store.extract(store.store(b"garbage"), data_dir / "bbbb1111")

        assert list((data_dir / ".staging").iterdir()) == []


class TestRemove:
    """Tests for ContentStore.remove."""

    @pytest.fixture
    def store(self, data_dir, archiver):
        return ContentStore(data_dir, archiver)

    def test_remove_directory(self, store, data_dir):
        """Should delete the directory recursively."""
        (data_dir / "abcd1234" / "sub").mkdir(parents=True)
        (data_dir / "abcd1234" / "sub" / "f.txt").write_text("x")

        assert store.remove("abcd1234") is True
        assert not (data_dir / "abcd1234").exists()

    def test_remove_missing_is_best_effort(self, store):
        """Missing directories should not raise."""
        assert store.remove("deadbeef") is False

    def test_remove_refuses_traversal(self, store, tmp_path):
        """Names that are not one safe segment should be refused."""
        victim = tmp_path / "victim"
        victim.mkdir()

        assert store.remove("../victim") is False
        assert victim.exists()

    def test_count_ignores_internal_entries(self, store, data_dir):
        """count should skip staging and registry scopes."""
        (data_dir / "abcd1234").mkdir()
        (data_dir / ".staging").mkdir()
        (data_dir / "@scope").mkdir()
        (data_dir / "site.alias").write_text("abcd1234")

        assert store.count() == 1
