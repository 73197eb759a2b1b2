"""Deploy pipeline: publish an uploaded archive as a new content version.

Flow:
    authorize -> fingerprint -> buffer archive -> extract (staging + swap)
    -> release archive -> read package.json -> move alias -> retire old version

A deploy whose ``package.json`` declares a ``name`` moves the alias
``{name}.alias`` to the new content id and deletes the directory it pointed at
before, unless another alias still refers to it. The resolve/set/delete
sequence for one name runs under that name's lock, so two concurrent deploys
of the same package can't delete each other's tree. The last one to take the
lock wins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError

from . import auth, paths
from .aliases import AliasIndex
from .config import Settings
from .errors import MalformedManifest, PayloadTooLarge
from .store import ContentStore, compute_id

_LOG = logging.getLogger(__name__)

MANIFEST_NAME: str = "package.json"
"""Manifest file looked up at the top of an extracted tree."""


class PackageManifest(BaseModel):
    """The part of a deployed package.json the host cares about.

    Attributes:
        name: Alias to publish the deploy under, if any.
    """

    model_config = ConfigDict(extra="ignore")

    name: str | None = None


@dataclass(slots=True)
class DeployResult:
    """Outcome of a successful deploy.

    Attributes:
        id: Content id of the deployed archive.
        url: Canonical URL of the content.
        name: Alias name set by this deploy, if any.
        alias: Public URL of the alias, if any.
    """

    id: str
    url: str
    name: str | None = None
    alias: str | None = None

    def to_response(self) -> dict:
        """JSON body for the HTTP response."""
        body = {"status": "success", "id": self.id, "url": self.url}
        if self.alias:
            body["alias"] = self.alias
        return body


def load_manifest(directory: Path) -> PackageManifest | None:
    """Read the package.json at the top of a deployed tree.

    The manifest must be a regular file inside ``directory``; symlinks are
    never followed.

    Args:
        directory: Extracted content directory.

    Returns:
        The parsed manifest, or None if the tree has none.

    Raises:
        MalformedManifest: The file exists but isn't a usable JSON object, or
            it is a symlink. The message never includes file contents.
    """
    manifest = directory / MANIFEST_NAME
    if manifest.is_symlink():
        raise MalformedManifest("manifest is a symlink")
    if not manifest.is_file():
        return None
    if not manifest.resolve().is_relative_to(directory.resolve()):
        raise MalformedManifest("manifest resolves outside the deployed tree")

    try:
        return PackageManifest.model_validate_json(manifest.read_bytes())
    except ValidationError as e:
        problems = ", ".join(
            f"{err['type']} at {'.'.join(map(str, err['loc'])) or 'root'}"
            for err in e.errors(include_url=False, include_context=False, include_input=False)
        )
        raise MalformedManifest(problems) from e
    except OSError as e:
        raise MalformedManifest(f"unreadable ({e.strerror})") from e


def upload_limit_message(limit: int) -> str:
    """Human-readable rejection for uploads over ``limit`` bytes."""
    if limit >= 1024 * 1024:
        return f"Upload too large. Maximum size is {limit // (1024 * 1024)} MB"
    return f"Upload too large. Maximum size is {limit} bytes"


class DeployPipeline:
    """Publishes uploads through the content store and alias index.

    Attributes:
        settings: Service configuration.
        store: Content store holding extracted trees.
        aliases: Alias index updated by named deploys.
    """

    def __init__(self, settings: Settings, store: ContentStore, aliases: AliasIndex) -> None:
        self.settings = settings
        self.store = store
        self.aliases = aliases

    async def deploy(self, archive: bytes, auth_token: str | None) -> DeployResult:
        """Deploy a gzipped tarball.

        Args:
            archive: Raw request body.
            auth_token: Value of the ``authorization`` header.

        Returns:
            DeployResult with the content URL and, for named packages, the
            alias URL.

        Raises:
            Unauthorized: Bad or missing token. Nothing was written.
            PayloadTooLarge: Archive exceeds MAX_UPLOAD_SIZE.
            ExtractFailed: tar rejected the archive.
        """
        auth.require_token(self.settings, auth_token, "deploy")

        limit = self.settings.max_upload_size
        if len(archive) > limit:
            raise PayloadTooLarge(upload_limit_message(limit))

        content_id = compute_id(archive)
        _LOG.info("Deploying %s (%d bytes)", content_id, len(archive))

        archive_file = self.store.store(archive)
        try:
            await self.store.extract(archive_file, paths.content_dir(self.settings.data_dir, content_id))
        finally:
            self.store.release(archive_file)

        name = await self._publish_alias(content_id)

        result = DeployResult(
            id=content_id,
            url=self.settings.site_url(content_id),
            name=name,
            alias=self.settings.site_url(name) if name else None,
        )
        _LOG.info("Deployed %s at %s%s", content_id, result.url, f" as {name}" if name else "")
        return result

    async def _publish_alias(self, content_id: str) -> str | None:
        """Point the manifest's alias at ``content_id`` and retire the old target.

        Returns:
            The alias name, or None if the deploy stays unaliased.
        """
        directory = paths.content_dir(self.settings.data_dir, content_id)
        try:
            manifest = load_manifest(directory)
        except MalformedManifest as e:
            _LOG.warning("Ignoring malformed %s in %s: %s", MANIFEST_NAME, content_id, e)
            return None

        if manifest is None or not manifest.name:
            return None

        name = manifest.name.strip()
        if not paths.validate_name(name):
            _LOG.warning("Ignoring unusable package name %r in %s", manifest.name, content_id)
            return None

        async with self.aliases.lock(name):
            previous = self.aliases.set(name, content_id)
            if previous and previous != content_id:
                still_used = self.aliases.referrers(previous)
                if still_used:
                    _LOG.info("Keeping %s, still referenced by %s", previous, ", ".join(still_used))
                else:
                    self.store.remove(previous)
        return name
