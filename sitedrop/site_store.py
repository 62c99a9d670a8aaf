"""Filesystem layer for site directories.

Sites live in one of two roots: the active root, served to visitors, and the
deleted root, where soft-deleted sites wait to be restored. A slug's
directory is the only place its files exist.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from .errors import Conflict

_LOG = logging.getLogger(__name__)


class SiteStore:
    """Directory operations over the active and deleted roots.

    Attributes:
        sites_dir: Active root.
        deleted_dir: Deleted root.
    """

    def __init__(self, sites_dir: Path, deleted_dir: Path) -> None:
        self.sites_dir = Path(sites_dir)
        self.deleted_dir = Path(deleted_dir)
        self.sites_dir.mkdir(parents=True, exist_ok=True)
        self.deleted_dir.mkdir(parents=True, exist_ok=True)

    def active_dir(self, slug: str) -> Path:
        return self.sites_dir / slug

    def deleted_dir_for(self, slug: str) -> Path:
        return self.deleted_dir / slug

    def create_site_dir(self, slug: str) -> Path:
        """Create a fresh active directory for a slug.

        Raises:
            Conflict: A directory already exists for this slug.
        """
        site_dir = self.active_dir(slug)
        try:
            site_dir.mkdir(parents=True)
        except FileExistsError:
            raise Conflict("Site with this name already exists") from None
        return site_dir

    @staticmethod
    def recursive_size(directory: Path) -> int:
        """Sum file sizes across the whole subtree. Missing directory is 0."""
        directory = Path(directory)
        if not directory.is_dir():
            return 0
        total = 0
        for path in directory.rglob("*"):
            if path.is_file() and not path.is_symlink():
                total += path.stat().st_size
        return total

    @staticmethod
    def recursive_delete(directory: Path) -> None:
        """Remove a directory and all descendants. No-op if absent."""
        directory = Path(directory)
        if not directory.exists() and not directory.is_symlink():
            return
        if directory.is_dir() and not directory.is_symlink():
            shutil.rmtree(directory)
        else:
            directory.unlink()

    def move(self, src: Path, dst: Path) -> None:
        """Relocate src to dst, destroying any existing dst first.

        Not atomic. Callers must hold the slug lock. shutil.move falls back
        to copy-then-remove when the roots sit on different filesystems.
        """
        src, dst = Path(src), Path(dst)
        if not src.exists():
            _LOG.warning("Move source %s does not exist, skipping", src)
            return
        if dst.exists():
            _LOG.warning("Move destination %s exists, replacing it", dst)
            self.recursive_delete(dst)
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(src), str(dst))
        _LOG.info("Moved %s -> %s", src, dst)

    @staticmethod
    def list_entries(directory: Path) -> list[str]:
        """Sorted names of a directory's immediate entries."""
        return sorted(p.name for p in Path(directory).iterdir())
