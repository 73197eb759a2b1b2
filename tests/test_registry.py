"""Unit tests for sitehost/registry.py."""

import json

import pytest

from conftest import BASE_DOMAIN, TOKEN, read_archive
from sitehost.errors import Unauthorized
from sitehost.registry import (
    IMMUTABLE_CACHE,
    NO_CACHE,
    RegistryEmulator,
    cache_control_for,
    is_valid_package,
    is_valid_version,
)


@pytest.fixture
def registry(settings):
    return RegistryEmulator(settings)


@pytest.fixture
def widget(data_dir):
    """@acme/widget with versions 1.0.0 and latest."""
    package = data_dir / "@acme" / "widget"
    package.mkdir(parents=True)
    (package / "1.0.0.mjs").write_text("export default 1;")
    (package / "latest.mjs").write_text("export default 2;")
    (package / "notes.txt").write_text("ignored")
    return package


class TestValidation:
    """Tests for coordinate validation."""

    @pytest.mark.parametrize("scope,name", [("@acme", "widget"), ("@a.b", "c-d_e")])
    def test_valid_packages(self, scope, name):
        assert is_valid_package(scope, name)

    @pytest.mark.parametrize(
        "scope,name",
        [("acme", "widget"), ("@acme", "Widget"), ("@..", "x"), ("@acme", ".."), ("@acme", "a/b"), ("@", "x")],
    )
    def test_invalid_packages(self, scope, name):
        assert not is_valid_package(scope, name)

    @pytest.mark.parametrize("version", ["1.0.0", "latest", "0.0.0", "2.0.0-beta.1", "1.0.0+build"])
    def test_valid_versions(self, version):
        assert is_valid_version(version)

    @pytest.mark.parametrize("version", ["", "..", ".hidden", "1/2", "a" * 200])
    def test_invalid_versions(self, version):
        assert not is_valid_version(version)

    def test_cache_control(self):
        assert cache_control_for("1.0.0") == IMMUTABLE_CACHE
        assert cache_control_for("latest") == NO_CACHE


class TestManifest:
    """Tests for RegistryEmulator.manifest."""

    def test_lists_versions(self, registry, widget):
        document = registry.manifest("@acme", "widget")

        assert document["name"] == "@acme/widget"
        assert document["dist-tags"] == {"latest": "latest"}
        assert set(document["versions"]) == {"1.0.0", "latest"}
        assert set(document["time"]) == {"1.0.0", "latest"}

    def test_distinct_tarball_urls(self, registry, widget):
        versions = registry.manifest("@acme", "widget")["versions"]
        urls = {v["dist"]["tarball"] for v in versions.values()}

        assert len(urls) == 2
        assert versions["1.0.0"]["dist"]["tarball"] == f"https://{BASE_DOMAIN}/:npm/@acme/widget/1.0.0"

    def test_times_are_iso(self, registry, widget):
        stamp = registry.manifest("@acme", "widget")["time"]["1.0.0"]
        assert stamp.endswith("Z")
        assert "T" in stamp

    def test_unknown_package(self, registry):
        assert registry.manifest("@acme", "missing") is None

    def test_invalid_package(self, registry, widget):
        assert registry.manifest("acme", "widget") is None

    def test_empty_package(self, registry, data_dir):
        (data_dir / "@acme" / "empty").mkdir(parents=True)
        assert registry.manifest("@acme", "empty") is None


class TestTarball:
    """Tests for RegistryEmulator.tarball."""

    def test_contents(self, registry, widget):
        files = read_archive(registry.tarball("@acme", "widget", "1.0.0"))

        assert set(files) == {"package/package.json", "package/index.mjs"}
        package_json = json.loads(files["package/package.json"])
        assert package_json["name"] == "@acme/widget"
        assert package_json["version"] == "1.0.0"
        assert package_json["exports"] == {".": "./index.mjs"}
        assert files["package/index.mjs"] == b"export default 1;"

    def test_latest(self, registry, widget):
        files = read_archive(registry.tarball("@acme", "widget", "latest"))
        assert json.loads(files["package/package.json"])["version"] == "latest"
        assert files["package/index.mjs"] == b"export default 2;"

    def test_missing_version(self, registry, widget):
        assert registry.tarball("@acme", "widget", "9.9.9") is None

    def test_traversal_version(self, registry, widget):
        assert registry.tarball("@acme", "widget", "../widget/1.0.0") is None


class TestPublish:
    """Tests for RegistryEmulator.publish."""

    def test_publish_creates_version(self, registry, data_dir):
        url = registry.publish("@acme", "widget", "1.2.0", b"export const x = 1;", TOKEN)

        assert url == f"https://{BASE_DOMAIN}/:npm/@acme/widget/1.2.0"
        assert (data_dir / "@acme" / "widget" / "1.2.0.mjs").read_bytes() == b"export const x = 1;"
        assert list(registry.versions("@acme", "widget")) == ["1.2.0"]

    def test_publish_overwrites_latest(self, registry, widget):
        registry.publish("@acme", "widget", "latest", b"export default 3;", TOKEN)
        assert (widget / "latest.mjs").read_bytes() == b"export default 3;"

    def test_publish_requires_token(self, registry, data_dir):
        with pytest.raises(Unauthorized):
            registry.publish("@acme", "widget", "1.0.0", b"x", "wrong")
        assert not (data_dir / "@acme").exists()

    def test_publish_invalid_coordinates(self, registry, data_dir):
        assert registry.publish("acme", "widget", "1.0.0", b"x", TOKEN) is None
        assert registry.publish("@acme", "widget", "..", b"x", TOKEN) is None
        assert list(data_dir.iterdir()) == []
