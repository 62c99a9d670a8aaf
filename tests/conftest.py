"""Shared fixtures for SiteDrop tests."""

import io
import zipfile

import pytest

from sitedrop.export import ArchiveExporter
from sitedrop.ingest import UploadEntry, UploadIngestor
from sitedrop.lifecycle import SiteLifecycle
from sitedrop.locks import SlugLocks
from sitedrop.registry import SiteRegistry
from sitedrop.server import SiteServer
from sitedrop.site_store import SiteStore


def make_zip(files: dict[str, bytes]) -> bytes:
    """Build an in-memory zip from a name -> contents mapping."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, data in files.items():
            archive.writestr(name, data)
    return buffer.getvalue()


def read_tree(root) -> dict[str, bytes]:
    """Map every file under root to its contents, keyed by relative POSIX path."""
    return {
        path.relative_to(root).as_posix(): path.read_bytes()
        for path in sorted(root.rglob("*"))
        if path.is_file()
    }


@pytest.fixture
def store(tmp_path):
    """SiteStore rooted in a temporary directory."""
    sites_dir = tmp_path / "sites"
    return SiteStore(sites_dir, sites_dir / ".deleted")


@pytest.fixture
def registry(tmp_path):
    """SiteRegistry backed by a temporary database."""
    reg = SiteRegistry(tmp_path / "sitedrop.db")
    yield reg
    reg.close()


@pytest.fixture
def locks():
    return SlugLocks()


@pytest.fixture
def ingestor(store, registry, locks):
    return UploadIngestor(store, registry, locks)


@pytest.fixture
def server(store, registry):
    return SiteServer(store, registry)


@pytest.fixture
def exporter(store, registry, locks):
    return ArchiveExporter(store, registry, locks)


@pytest.fixture
def lifecycle(store, registry, locks):
    return SiteLifecycle(store, registry, locks)


@pytest.fixture
def sample_site(ingestor):
    """A stored site with an index page, a stylesheet and a nested image."""
    archive = make_zip({
        "index.html": b"<html><link href='css/style.css'></html>",
        "css/style.css": b"body { color: red; }",
        "img/deep/logo.png": b"\x89PNG fake",
    })
    return ingestor.ingest("Sample Site", [UploadEntry("site.zip", archive)])
