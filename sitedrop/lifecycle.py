"""Soft delete, restore and usage accounting.

Delete moves a site's directory from the active root to the deleted root
and flips its status; restore does the reverse. Both run under the slug
lock, and a failed status update moves the directory back so the row and
the directory always agree.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .errors import InternalError, NotFound
from .locks import Cancellation, SlugLocks
from .registry import Site, SiteRegistry, SiteStatus
from .site_store import SiteStore
from .slugs import lookup_slug

_LOG = logging.getLogger(__name__)


@dataclass
class Usage:
    total_sites: int
    total_storage: int

    @property
    def total_storage_formatted(self) -> str:
        return format_megabytes(self.total_storage)


def format_megabytes(size_bytes: int) -> str:
    """Format a byte count as megabytes with two decimals ("1.50 MB")."""
    return f"{size_bytes / 1024 / 1024:.2f} MB"


class SiteLifecycle:
    """Delete/restore operations plus registry-wide listing and usage."""

    def __init__(self, store: SiteStore, registry: SiteRegistry, locks: SlugLocks) -> None:
        self.store = store
        self.registry = registry
        self.locks = locks

    def delete(self, raw_slug: str, cancellation: Cancellation | None = None) -> Site:
        """Soft-delete a site.

        Raises:
            NotFound: Unknown slug, or its directory is missing.
            OperationTimeout: Cancelled before anything moved.
            InternalError: The move or status update failed.
        """
        return self._transition(raw_slug, SiteStatus.DELETED, cancellation or Cancellation())

    def restore(self, raw_slug: str, cancellation: Cancellation | None = None) -> Site:
        """Bring a soft-deleted site back.

        Raises:
            NotFound: Unknown slug, or its directory is missing.
            OperationTimeout: Cancelled before anything moved.
            InternalError: The move or status update failed.
        """
        return self._transition(raw_slug, SiteStatus.ACTIVE, cancellation or Cancellation())

    def _transition(self, raw_slug: str, target: SiteStatus, cancellation: Cancellation) -> Site:
        slug = lookup_slug(raw_slug)

        with self.locks.hold(slug):
            cancellation.check()
            site = self.registry.get(slug)
            if site is None:
                raise NotFound("Site not found")

            if target is SiteStatus.DELETED:
                src, dst = self.store.active_dir(slug), self.store.deleted_dir_for(slug)
            else:
                src, dst = self.store.deleted_dir_for(slug), self.store.active_dir(slug)

            if site.status == target.value and dst.is_dir():
                return site

            moved = False
            if src.is_dir():
                cancellation.commit()
                try:
                    self.store.move(src, dst)
                except OSError as exc:
                    _LOG.exception("Could not move %s to %s", src, dst)
                    raise InternalError() from exc
                moved = True
            elif not dst.is_dir():
                _LOG.error("Site %s has a registry row but no directory", slug)
                raise NotFound("Site directory not found")
            else:
                cancellation.commit()

            try:
                self.registry.set_status(slug, target)
            except Exception as exc:
                _LOG.exception("Status update failed for %s, reverting move", slug)
                if moved:
                    self.store.move(dst, src)
                raise InternalError() from exc

            site = self.registry.get(slug)

        _LOG.info("Site %s is now %s", slug, target.value)
        return site

    def list_sites(self) -> list[Site]:
        return self.registry.list_all()

    def usage(self) -> Usage:
        """Count and total size of active sites."""
        return Usage(
            total_sites=self.registry.count_active(),
            total_storage=self.registry.sum_active_bytes(),
        )
