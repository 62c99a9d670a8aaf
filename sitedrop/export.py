"""Zip export of a stored site."""

from __future__ import annotations

import io
import logging
import zipfile
from dataclasses import dataclass

from .errors import NotFound
from .locks import SlugLocks
from .registry import SiteRegistry, SiteStatus
from .site_store import SiteStore
from .slugs import lookup_slug

_LOG = logging.getLogger(__name__)


@dataclass
class ExportResult:
    data: bytes
    filename: str


class ArchiveExporter:
    """Bundles a site's directory tree into a zip archive.

    Deleted sites stay exportable: the archive is read from whichever root
    matches the row's status.
    """

    def __init__(self, store: SiteStore, registry: SiteRegistry, locks: SlugLocks) -> None:
        self.store = store
        self.registry = registry
        self.locks = locks

    def export(self, raw_slug: str) -> ExportResult:
        """Build the archive for a site.

        Raises:
            NotFound: No row, or no directory for the row's status.
        """
        slug = lookup_slug(raw_slug)

        with self.locks.hold(slug):
            site = self.registry.get(slug)
            if site is None:
                raise NotFound("Site not found")

            if site.status == SiteStatus.DELETED.value:
                site_dir = self.store.deleted_dir_for(slug)
            else:
                site_dir = self.store.active_dir(slug)
            if not site_dir.is_dir():
                raise NotFound("Site directory not found")

            buffer = io.BytesIO()
            count = 0
            with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
                for path in sorted(site_dir.rglob("*")):
                    if path.is_symlink():
                        continue
                    arcname = path.relative_to(site_dir).as_posix()
                    if path.is_dir():
                        archive.writestr(f"{arcname}/", b"")
                    else:
                        archive.write(path, arcname)
                        count += 1

        _LOG.info("Exported site %s (%d files, %d bytes)", slug, count, buffer.tell())
        return ExportResult(data=buffer.getvalue(), filename=f"{slug}.zip")
