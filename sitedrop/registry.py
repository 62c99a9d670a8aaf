"""SQLite registry of stored sites.

One row per slug, ever. Rows are never removed; soft delete only flips the
status column. The slug column is UNIQUE across both statuses, so a deleted
slug can never be taken by a new upload.

Thread-safe access uses one connection per thread, like the rest of the
service's SQLite code.

Usage:
    registry = SiteRegistry(db_path)

    registry.insert(name, slug, size_bytes) -> Site
    registry.get(slug) -> Site | None
    registry.get_active(slug) -> Site | None
    registry.set_status(slug, SiteStatus.DELETED)
    registry.list_all() -> list[Site]
    registry.count_active() -> int
    registry.sum_active_bytes() -> int
    registry.close()
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from .errors import Conflict, InternalError

_LOG = logging.getLogger(__name__)


class SiteStatus(str, Enum):
    ACTIVE = "active"
    DELETED = "deleted"


@dataclass
class Site:
    """A stored site's metadata.

    Attributes:
        id: Auto-incremented primary key.
        name: Display name as supplied by the uploader.
        slug: Unique canonical identifier.
        size_bytes: Directory size measured at ingestion.
        status: 'active' or 'deleted'.
        created_at: SQLite timestamp of row creation.
    """

    id: int
    name: str
    slug: str
    size_bytes: int
    status: str
    created_at: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class SiteRegistry:
    """Thread-safe SQLite site registry.

    Uses a connection per thread with proper locking around schema setup.
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize the registry.

        Args:
            db_path: Path to the SQLite database file. Created if missing.
        """
        self.db_path = Path(db_path)
        self._local = threading.local()
        self._lock = threading.Lock()
        self._initialized = False
        self._connections: list[sqlite3.Connection] = []

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create a connection for the current thread."""
        if getattr(self._local, "conn", None) is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                self.db_path,
                check_same_thread=False,
                timeout=30.0,
            )
            conn.row_factory = sqlite3.Row
            # Enable WAL mode for better concurrent access
            conn.execute("PRAGMA journal_mode=WAL")
            self._local.conn = conn
            with self._lock:
                self._connections.append(conn)

        if not self._initialized:
            with self._lock:
                if not self._initialized:
                    self._init_schema(self._local.conn)
                    self._initialized = True

        return self._local.conn

    def _init_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS sites (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                slug TEXT UNIQUE NOT NULL,
                size_bytes INTEGER DEFAULT 0,
                status TEXT DEFAULT 'active',
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP
            );

            CREATE INDEX IF NOT EXISTS idx_sites_status ON sites(status);
        """)
        conn.commit()
        _LOG.info("Site registry schema initialized at %s", self.db_path)

    @staticmethod
    def _row_to_site(row: sqlite3.Row) -> Site:
        return Site(
            id=row["id"],
            name=row["name"],
            slug=row["slug"],
            size_bytes=row["size_bytes"] or 0,
            status=row["status"],
            created_at=str(row["created_at"]),
        )

    # =========================================================================
    # Lookups
    # =========================================================================

    def get(self, slug: str) -> Site | None:
        """Get a site by slug in any status."""
        row = self._get_conn().execute(
            "SELECT * FROM sites WHERE slug = ?",
            (slug,)
        ).fetchone()
        return self._row_to_site(row) if row else None

    def get_active(self, slug: str) -> Site | None:
        """Get a site by slug only if it is active."""
        row = self._get_conn().execute(
            "SELECT * FROM sites WHERE slug = ? AND status = ?",
            (slug, SiteStatus.ACTIVE.value)
        ).fetchone()
        return self._row_to_site(row) if row else None

    def list_all(self) -> list[Site]:
        """All sites, newest first."""
        rows = self._get_conn().execute(
            "SELECT * FROM sites ORDER BY created_at DESC, id DESC"
        ).fetchall()
        return [self._row_to_site(row) for row in rows]

    # =========================================================================
    # Mutations
    # =========================================================================

    def insert(self, name: str, slug: str, size_bytes: int) -> Site:
        """Insert a new active site.

        Args:
            name: Display name.
            slug: Canonical slug.
            size_bytes: Measured directory size.

        Returns:
            The stored Site.

        Raises:
            Conflict: The slug exists in any status.
            InternalError: The new row could not be read back.
        """
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                """
                INSERT INTO sites (name, slug, size_bytes, status)
                VALUES (?, ?, ?, ?)
                """,
                (name, slug, size_bytes, SiteStatus.ACTIVE.value)
            )
            conn.commit()
        except sqlite3.IntegrityError:
            conn.rollback()
            raise Conflict("Site with this name already exists") from None

        row = conn.execute(
            "SELECT * FROM sites WHERE id = ?",
            (cursor.lastrowid,)
        ).fetchone()
        if row is None:
            _LOG.error("Inserted site %s (id=%s) could not be read back", slug, cursor.lastrowid)
            raise InternalError()

        _LOG.info("Registered site %s (%d bytes, id=%d)", slug, size_bytes, cursor.lastrowid)
        return self._row_to_site(row)

    def set_status(self, slug: str, status: SiteStatus) -> bool:
        """Set a site's status.

        Returns:
            True if a row was updated.
        """
        conn = self._get_conn()
        cursor = conn.execute(
            "UPDATE sites SET status = ? WHERE slug = ?",
            (SiteStatus(status).value, slug)
        )
        conn.commit()
        return cursor.rowcount > 0

    # =========================================================================
    # Aggregates
    # =========================================================================

    def count_active(self) -> int:
        row = self._get_conn().execute(
            "SELECT COUNT(*) AS count FROM sites WHERE status = ?",
            (SiteStatus.ACTIVE.value,)
        ).fetchone()
        return row["count"]

    def sum_active_bytes(self) -> int:
        row = self._get_conn().execute(
            "SELECT SUM(size_bytes) AS total FROM sites WHERE status = ?",
            (SiteStatus.ACTIVE.value,)
        ).fetchone()
        return row["total"] or 0

    def close(self) -> None:
        """Close every connection opened by any thread."""
        with self._lock:
            connections, self._connections = self._connections, []
        for conn in connections:
            conn.close()
        self._local = threading.local()
        _LOG.info("Site registry closed (%d connections)", len(connections))
