"""Request-time resolution of slugs into content.

Two entry points:
    - resolve_view: the primary page for a site (index.html, a lone file,
      or a generated listing).
    - resolve_asset: a specific file under the site, used for the CSS, JS
      and images an index.html references.

Both are gated by registry status: a deleted site is invisible on every
path, even while its files are being moved.
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote

from .errors import NotFound
from .registry import Site, SiteRegistry
from .site_store import SiteStore
from .slugs import lookup_slug

_LOG = logging.getLogger(__name__)

INDEX_FILE = "index.html"

ASSET_MOUNT = "/sites"
"""URL prefix of the static asset mount."""


@dataclass
class ViewResult:
    """What to send for a view request: a file on disk or generated HTML.

    Attributes:
        site: The active site being viewed.
        file_path: File to send, if the view resolved to a file.
        html: Listing page markup otherwise.
    """

    site: Site
    file_path: Path | None = None
    html: str | None = None


class SiteServer:
    """Read-only resolver over the store and registry."""

    def __init__(self, store: SiteStore, registry: SiteRegistry) -> None:
        self.store = store
        self.registry = registry

    def _active_site(self, raw_slug: str) -> tuple[Site, Path]:
        slug = lookup_slug(raw_slug)

        site_dir = self.store.active_dir(slug)
        if not site_dir.is_dir():
            raise NotFound("Site not found")

        site = self.registry.get_active(slug)
        if site is None:
            raise NotFound("Site not found or deleted")
        return site, site_dir

    def resolve_view(self, raw_slug: str) -> ViewResult:
        """Resolve the primary page of a site.

        Raises:
            NotFound: Unknown slug, missing directory, or site not active.
        """
        site, site_dir = self._active_site(raw_slug)

        index_path = site_dir / INDEX_FILE
        if index_path.is_file():
            return ViewResult(site=site, file_path=index_path)

        entries = self.store.list_entries(site_dir)
        if len(entries) == 1 and (site_dir / entries[0]).is_file():
            return ViewResult(site=site, file_path=site_dir / entries[0])

        return ViewResult(site=site, html=render_listing(site, entries))

    def resolve_asset(self, raw_slug: str, path: str) -> Path:
        """Resolve a file inside an active site's directory.

        A directory path resolves to its index.html.

        Raises:
            NotFound: Site not visible, path escapes the site, or no file.
        """
        site, site_dir = self._active_site(raw_slug)

        root = site_dir.resolve()
        file_path = (root / path.lstrip("/")).resolve()
        if not file_path.is_relative_to(root):
            _LOG.warning("Blocked asset path traversal on %s: %s", site.slug, path)
            raise NotFound("File not found")

        if file_path.is_dir():
            file_path = file_path / INDEX_FILE
        if not file_path.is_file():
            raise NotFound("File not found")
        return file_path


def render_listing(site: Site, entries: list[str]) -> str:
    """Minimal HTML page linking each entry into the asset mount."""
    items = "".join(
        f'<li><a href="{ASSET_MOUNT}/{quote(site.slug)}/{quote(entry)}">{html.escape(entry)}</a></li>'
        for entry in entries
    )
    return f"<h1>Site: {html.escape(site.name)}</h1><ul>{items}</ul>"
