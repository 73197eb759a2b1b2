"""Exception types raised by sitehost components.

Components raise these instead of HTTP errors; ``sitehost.main`` maps them to
responses.
"""

from __future__ import annotations


class SiteHostError(Exception):
    """Base exception for sitehost errors."""
    pass


class Unauthorized(SiteHostError):
    """The authorization header did not match the shared secret."""
    pass


class NotFound(SiteHostError):
    """Unknown tenant, alias, package or file."""
    pass


class ArchiverError(SiteHostError):
    """The external archive tool failed or timed out.

    Attributes:
        detail: Diagnostic output of the tool (usually its stderr).
    """

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class DeployError(SiteHostError):
    """Base exception for failed deploys."""
    pass


class ExtractFailed(DeployError):
    """The uploaded archive could not be extracted."""

    def __init__(self, detail: str) -> None:
        super().__init__(f"Failed to extract files: {detail}")
        self.detail = detail


class PayloadTooLarge(DeployError):
    """The uploaded archive exceeds the configured size limit."""
    pass


class ExportFailed(SiteHostError):
    """Creating a backup archive failed."""
    pass


class MalformedManifest(SiteHostError):
    """A deployed package.json could not be parsed."""
    pass
