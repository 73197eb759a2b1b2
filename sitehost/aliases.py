"""Alias index: human-readable names pointing at content directories.

Each alias is a file ``{DATA_PATH}/{name}.alias`` whose contents are the target
directory name. Writes go through a temporary file and ``os.replace`` so
readers always see a complete pointer. Writers for the same name serialize on
``AliasIndex.lock(name)``; readers never lock.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from . import paths
from .locks import KeyedLock

_LOG = logging.getLogger(__name__)


class AliasIndex:
    """Name -> target mapping persisted as one file per alias.

    Attributes:
        data_dir: Directory holding the alias files.
    """

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = data_dir
        self._locks = KeyedLock()

    def resolve(self, name: str) -> str | None:
        """Return the trimmed target of ``name``, or None if there is no alias.

        A single hop: the target is returned as stored, never chased further.
        """
        if not paths.validate_name(name):
            return None
        try:
            target = paths.alias_path(self.data_dir, name).read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            _LOG.warning("Could not read alias %s: %s", name, e)
            return None
        return target or None

    def set(self, name: str, target: str) -> str | None:
        """Point ``name`` at ``target``.

        Callers mutating an alias that other tasks may also write should hold
        ``lock(name)`` around the resolve/set pair.

        Args:
            name: Alias name.
            target: Content directory name to point at.

        Returns:
            The previous target, or None if the alias is new.

        Raises:
            ValueError: ``name`` is not a valid alias name.
        """
        if not paths.validate_name(name):
            raise ValueError(f"Invalid alias name: {name!r}")

        previous = self.resolve(name)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=f".{name}-", suffix=".tmp", dir=self.data_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(target)
            os.chmod(tmp, 0o644)
            os.replace(tmp, paths.alias_path(self.data_dir, name))
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

        _LOG.info("Alias %s -> %s (was %s)", name, target, previous)
        return previous

    def names(self) -> list[str]:
        """All alias names, sorted."""
        if not self.data_dir.is_dir():
            return []
        return sorted(
            entry.name[: -len(paths.ALIAS_SUFFIX)]
            for entry in self.data_dir.glob(f"*{paths.ALIAS_SUFFIX}")
            if entry.is_file()
        )

    def referrers(self, target: str) -> list[str]:
        """Alias names whose current target is ``target``."""
        return [name for name in self.names() if self.resolve(name) == target]

    @asynccontextmanager
    async def lock(self, name: str) -> AsyncIterator[None]:
        """Serialize writers of one alias name."""
        async with self._locks.hold(name):
            yield
