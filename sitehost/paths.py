"""On-disk layout of the data directory.

All paths are derived from the configured data directory so the whole store
can be relocated by changing DATA_PATH.

Directory Structure:
    {DATA_PATH}/
    +-- 1a2b3c4d/              # Content directory (extracted deploy)
    |   +-- index.html
    |   +-- package.json       # Optional, declares the alias name
    +-- 1a2b3c4d.tgz           # Uploaded archive (only during a deploy)
    +-- site-a.alias           # Alias file, contents: "1a2b3c4d"
    +-- @scope/                # Registry scope
    |   +-- widget/
    |       +-- 1.0.0.mjs      # One file per published version
    |       +-- latest.mjs
    +-- .staging/              # Extractions in progress
"""

from __future__ import annotations

import re
from pathlib import Path

# =============================================================================
# Naming Rules
# =============================================================================

NAME_PATTERN = re.compile(r"^@?[a-z0-9][a-z0-9._-]*$")
"""Tenant directory names and alias names: one flat path segment."""

ALIAS_SUFFIX: str = ".alias"
"""Suffix of alias pointer files."""

ARCHIVE_SUFFIX: str = ".tgz"
"""Suffix of transient upload archives."""

STAGING_DIR_NAME: str = ".staging"
"""Directory under the data root holding extractions in progress."""


def validate_name(name: str) -> bool:
    """Check that a tenant or alias name is a safe single path segment.

    Args:
        name: Candidate name.

    Returns:
        True if the name can be used directly under the data directory.
    """
    if not name or len(name) > 214:
        return False
    return bool(NAME_PATTERN.match(name))


# =============================================================================
# Path Functions
# =============================================================================


def content_dir(data_dir: Path, name: str) -> Path:
    """Directory holding a deployed tree (by content id or tenant name)."""
    return data_dir / name


def archive_path(data_dir: Path, content_id: str) -> Path:
    """Where an uploaded archive is buffered while it is extracted."""
    return data_dir / f"{content_id}{ARCHIVE_SUFFIX}"


def alias_path(data_dir: Path, name: str) -> Path:
    """Alias pointer file for ``name``."""
    return data_dir / f"{name}{ALIAS_SUFFIX}"


def staging_dir(data_dir: Path) -> Path:
    """Scratch area for extractions that are not live yet."""
    return data_dir / STAGING_DIR_NAME


def package_dir(data_dir: Path, scope: str, name: str) -> Path:
    """Directory holding the version files of ``@scope/name``."""
    return data_dir / scope / name


def is_internal(relative: str) -> bool:
    """Tell whether a root-relative path points at bookkeeping files.

    Only matters for the root tenant, whose directory is the data directory
    itself.

    Args:
        relative: Path relative to the data directory, "/"-separated.

    Returns:
        True for hidden entries (staging, alias temp files), alias files
        and upload archives.
    """
    first = relative.lstrip("/").split("/", 1)[0]
    return (
        first.startswith(".")
        or first.endswith(ALIAS_SUFFIX)
        or first.endswith(ARCHIVE_SUFFIX)
    )
