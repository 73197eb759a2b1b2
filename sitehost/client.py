"""HTTP client for a sitehost server.

Usage:
    from sitehost.client import SiteClient

    with SiteClient("https://sites.example.com", token) as client:
        result = client.deploy_directory(Path("dist"))
        print(result["url"], result.get("alias"))
"""

from __future__ import annotations

import io
import tarfile
from pathlib import Path

import httpx

from .errors import SiteHostError

DEFAULT_TIMEOUT: float = 60.0
"""Seconds to wait for the server (deploys include extraction time)."""


class ClientError(SiteHostError):
    """The server rejected a request.

    Attributes:
        status_code: HTTP status returned by the server.
    """

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"HTTP {status_code}: {message}")
        self.status_code = status_code


def pack_directory(directory: Path) -> bytes:
    """Build a gzipped tarball of a local directory.

    Hidden files and directories are skipped. Entries are stored relative to
    ``directory`` so ``index.html`` lands at the top of the deployed tree.

    Raises:
        ValueError: ``directory`` is not a directory.
    """
    if not directory.is_dir():
        raise ValueError(f"Not a directory: {directory}")

    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for child in sorted(directory.rglob("*")):
            relative = child.relative_to(directory)
            if any(part.startswith(".") for part in relative.parts):
                continue
            if child.is_dir():
                continue
            tar.add(str(child), arcname=relative.as_posix())
    return buffer.getvalue()


class SiteClient:
    """Thin synchronous wrapper around the sitehost HTTP surface.

    Attributes:
        server_url: Base URL of the server, e.g. "https://sites.example.com".
    """

    def __init__(
        self,
        server_url: str,
        token: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.server_url = server_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.server_url,
            headers={"authorization": token},
            timeout=timeout,
            transport=transport,
        )

    def __enter__(self) -> SiteClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def _check(response: httpx.Response) -> httpx.Response:
        if response.is_success:
            return response
        try:
            body = response.json()
        except ValueError:
            body = None
        # Proxies in front of the server may answer with any JSON shape
        message = (body.get("error") if isinstance(body, dict) else None) or response.text
        raise ClientError(response.status_code, message or response.reason_phrase)

    def deploy(self, archive: bytes) -> dict:
        """Upload a gzipped tarball.

        Returns:
            The server's JSON response (``url``, ``id`` and maybe ``alias``).

        Raises:
            ClientError: The deploy was rejected.
        """
        response = self._client.post(
            "/:deploy",
            content=archive,
            headers={"content-type": "application/gzip"},
        )
        return self._check(response).json()

    def deploy_directory(self, directory: Path) -> dict:
        """Pack a local directory and deploy it."""
        return self.deploy(pack_directory(directory))

    def backup(self, name: str) -> bytes:
        """Download the current tree of a tenant as a gzipped tarball."""
        response = self._client.request("COPY", f"/{name}")
        return self._check(response).content

    def publish(self, scope: str, name: str, version: str, source: bytes) -> str:
        """Publish a module file as ``scope/name@version``.

        Returns:
            Tarball URL of the stored version.
        """
        response = self._client.put(
            f"/:npm/{scope}/{name}/{version}",
            content=source,
            headers={"content-type": "text/javascript"},
        )
        return self._check(response).json()["tarball"]
