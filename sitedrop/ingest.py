"""Upload ingestion: validate, materialize and register a new site.

An upload either becomes a complete site (directory populated and registry
row written) or leaves nothing behind. Every failure after the site
directory is created deletes that directory before the error propagates.

Archive safety:
    - Every archive entry is checked against the deny-list before anything
      is extracted, at any nesting depth.
    - Every entry path is resolved against the site directory; an entry that
      would land outside it (zip-slip) rejects the whole upload.
"""

from __future__ import annotations

import io
import logging
import shutil
import zipfile
import zlib
from dataclasses import dataclass
from pathlib import Path, PurePosixPath, PureWindowsPath

from werkzeug.utils import secure_filename

from .errors import (
    BadUpload,
    Conflict,
    ForbiddenContent,
    InternalError,
    InvalidName,
    NotAllowed,
    PayloadTooLarge,
    SiteError,
    UnsafeArchive,
)
from .locks import Cancellation, SlugLocks
from .paths import MAX_UPLOAD_SIZE, is_allowed, is_archive, is_forbidden
from .registry import Site, SiteRegistry
from .site_store import SiteStore
from .slugs import slugify

_LOG = logging.getLogger(__name__)


@dataclass
class UploadEntry:
    """One uploaded file. May itself be an archive.

    Attributes:
        file_name: Name as supplied by the client.
        data: Raw (already decoded) bytes.
    """

    file_name: str
    data: bytes


@dataclass
class IngestResult:
    slug: str
    site: Site


class UploadIngestor:
    """Turns an upload into a stored, registered site.

    Attributes:
        store: Filesystem layer.
        registry: Site metadata store.
        locks: Per-slug locks shared with the other mutating components.
        max_upload_size: Limit on the summed size of all entries.
    """

    def __init__(
        self,
        store: SiteStore,
        registry: SiteRegistry,
        locks: SlugLocks,
        max_upload_size: int = MAX_UPLOAD_SIZE,
    ) -> None:
        self.store = store
        self.registry = registry
        self.locks = locks
        self.max_upload_size = max_upload_size

    def ingest(
        self,
        name: str,
        entries: list[UploadEntry],
        cancellation: Cancellation | None = None,
    ) -> IngestResult:
        """Store an upload as a new active site.

        Args:
            name: Display name; the slug is derived from it.
            entries: Uploaded files in order.
            cancellation: Lets a timed-out request abandon the upload. The
                site is registered only if the request is still waiting.

        Returns:
            IngestResult with the slug and stored Site.

        Raises:
            InvalidName, BadUpload, PayloadTooLarge, Conflict,
            ForbiddenContent, NotAllowed: Upload rejected, nothing stored.
            OperationTimeout: Cancelled before registration, nothing stored.
            InternalError: Unexpected failure, partial state cleaned up.
        """
        cancellation = cancellation or Cancellation()
        name = (name or "").strip()
        if not name:
            raise InvalidName("Missing siteName")
        self._validate_entries(entries)
        slug = slugify(name)

        with self.locks.hold(slug):
            cancellation.check()
            if self.registry.get(slug) is not None:
                raise self._reject(slug, Conflict("Site with this name already exists"))

            try:
                site_dir = self.store.create_site_dir(slug)
            except Conflict as exc:
                raise self._reject(slug, exc) from None
            except OSError as exc:
                _LOG.exception("Could not create directory for %s", slug)
                raise InternalError() from exc

            try:
                for entry in entries:
                    cancellation.check()
                    self._materialize(entry, site_dir, cancellation)
                size_bytes = self.store.recursive_size(site_dir)
                cancellation.commit()
                site = self.registry.insert(name, slug, size_bytes)
            except SiteError as exc:
                self._rollback(site_dir)
                raise self._reject(slug, exc) from None
            except Exception as exc:
                _LOG.exception("Upload of %s failed unexpectedly", slug)
                self._rollback(site_dir)
                raise InternalError() from exc

        _LOG.info("Created site %s (%d files, %d bytes)", slug, len(entries), size_bytes)
        return IngestResult(slug=slug, site=site)

    def _validate_entries(self, entries: list[UploadEntry]) -> None:
        if not entries:
            raise BadUpload("No files provided")
        total = 0
        for entry in entries:
            if not entry.file_name or not entry.data:
                raise BadUpload("Invalid file data")
            total += len(entry.data)
        if total > self.max_upload_size:
            raise PayloadTooLarge(
                f"Upload too large. Maximum size is {self.max_upload_size // (1024 * 1024)} MB"
            )

    @staticmethod
    def _reject(slug: str, exc: SiteError) -> SiteError:
        _LOG.info("Rejected upload %s: %s", slug, exc.message)
        return exc

    def _rollback(self, site_dir: Path) -> None:
        try:
            self.store.recursive_delete(site_dir)
            _LOG.info("Rolled back partial site directory %s", site_dir)
        except OSError:
            _LOG.exception("Failed to roll back %s", site_dir)

    # =========================================================================
    # Materialization
    # =========================================================================

    def _materialize(self, entry: UploadEntry, site_dir: Path, cancellation: Cancellation) -> None:
        """Write one entry into the site directory, by extension."""
        if is_forbidden(entry.file_name):
            raise ForbiddenContent(f"Forbidden file type detected: {entry.file_name}")

        if is_archive(entry.file_name):
            self._extract_archive(entry, site_dir, cancellation)
            return

        if not is_allowed(entry.file_name):
            raise NotAllowed(f"File type not allowed: {entry.file_name}")

        safe_name = secure_filename(entry.file_name)
        if not safe_name or not is_allowed(safe_name):
            raise NotAllowed(f"File type not allowed: {entry.file_name}")
        (site_dir / safe_name).write_bytes(entry.data)

    def _extract_archive(
        self, entry: UploadEntry, site_dir: Path, cancellation: Cancellation
    ) -> None:
        """Extract a zip archive after vetting every member."""
        try:
            archive = zipfile.ZipFile(io.BytesIO(entry.data))
        except (zipfile.BadZipFile, zipfile.LargeZipFile) as exc:
            _LOG.warning("Could not open archive %s: %s", entry.file_name, exc)
            raise BadUpload("Failed to extract ZIP file") from None

        root = site_dir.resolve()
        with archive:
            members = archive.infolist()

            for info in members:
                if is_forbidden(info.filename):
                    raise ForbiddenContent(f"Forbidden file type detected: {info.filename}")

            targets = [(info, self._safe_target(root, info.filename)) for info in members]

            try:
                for info, target in targets:
                    cancellation.check()
                    if target is None:
                        continue
                    if info.is_dir():
                        target.mkdir(parents=True, exist_ok=True)
                        continue
                    target.parent.mkdir(parents=True, exist_ok=True)
                    with archive.open(info) as src, open(target, "wb") as dst:
                        shutil.copyfileobj(src, dst)
            except (zipfile.BadZipFile, zlib.error, EOFError) as exc:
                _LOG.warning("Corrupt member in archive %s: %s", entry.file_name, exc)
                raise BadUpload("Failed to extract ZIP file") from None

    @staticmethod
    def _safe_target(root: Path, member_name: str) -> Path | None:
        """Resolve an archive member path inside root.

        Returns:
            Destination path, or None for entries naming the root itself.

        Raises:
            UnsafeArchive: Absolute path, drive letter, or escapes root.
        """
        normalized = member_name.replace("\\", "/")
        if PurePosixPath(normalized).is_absolute() or PureWindowsPath(member_name).drive:
            raise UnsafeArchive(f"Archive contains absolute path: {member_name}")

        target = (root / normalized).resolve()
        if target == root:
            return None
        if not target.is_relative_to(root):
            raise UnsafeArchive(f"Archive contains path traversal: {member_name}")
        return target
