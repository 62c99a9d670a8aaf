"""Centralized path and limit definitions for SiteDrop.

All filesystem locations are derived from SITEDROP_DATA_DIR so the whole
data directory can be relocated with one environment variable.

Directory Structure:
    <data>/
    +-- sites/                 # Active root, one directory per slug
    |   +-- my-portfolio/
    |   |   +-- index.html
    |   +-- .deleted/          # Deleted root, same layout
    |       +-- old-site/
    +-- sitedrop.db            # SQLite registry

Usage:
    from sitedrop.paths import SITES_DIR, DELETED_DIR, DB_PATH

    site = SITES_DIR / "my-portfolio"
"""

from __future__ import annotations

import os
from pathlib import Path

# =============================================================================
# Base Paths
# =============================================================================

DATA_DIR: Path = Path(os.getenv("SITEDROP_DATA_DIR", "./data"))
"""Root directory for all SiteDrop data."""

SITES_DIR: Path = Path(os.getenv("SITEDROP_SITES_DIR", str(DATA_DIR / "sites")))
"""Active root: directory holding every active site."""

DELETED_DIR: Path = SITES_DIR / ".deleted"
"""Deleted root: soft-deleted sites wait here until restored."""

DB_PATH: Path = Path(os.getenv("SITEDROP_DB_PATH", str(DATA_DIR / "sitedrop.db")))
"""Path to the SQLite registry database."""

# =============================================================================
# Limits
# =============================================================================

MAX_UPLOAD_SIZE: int = 50 * 1024 * 1024
"""Maximum decoded upload size in bytes (50 MB)."""

WORKER_THREADS: int = int(os.getenv("SITEDROP_WORKERS", "4"))
"""Size of the worker pool running filesystem-heavy operations."""

REQUEST_TIMEOUT: float = float(os.getenv("SITEDROP_REQUEST_TIMEOUT", "30"))
"""Seconds a request waits for its worker before giving up."""

BASE_URL: str = os.getenv("SITEDROP_BASE_URL", "")
"""Public base URL for view links. Empty means derive from the request."""

# =============================================================================
# Upload Policy
# =============================================================================

ARCHIVE_EXTENSIONS: frozenset[str] = frozenset({".zip"})
"""Extensions treated as archives and extracted into the site."""

ALLOWED_EXTENSIONS: frozenset[str] = frozenset({
    ".zip", ".html", ".css", ".js", ".png", ".jpg", ".jpeg",
    ".svg", ".gif", ".webp", ".ico", ".txt", ".json",
})
"""Extensions accepted for directly uploaded files."""

FORBIDDEN_EXTENSIONS: frozenset[str] = frozenset({
    ".php", ".py", ".sh", ".env", ".exe", ".dll", ".bat", ".cmd",
})
"""Extensions always rejected, including inside archives."""


def extension_of(filename: str) -> str:
    """Return the lower-cased extension of the last path component.

    Dotfiles such as ".env" count as having that extension, so they are
    caught by the deny-list.
    """
    base = filename.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1].lower()
    if base.startswith(".") and base.count(".") == 1:
        return base
    return os.path.splitext(base)[1]


def is_forbidden(filename: str) -> bool:
    """Check a file name against the deny-list."""
    return extension_of(filename) in FORBIDDEN_EXTENSIONS


def is_allowed(filename: str) -> bool:
    """Check a file name against the allow-list."""
    return extension_of(filename) in ALLOWED_EXTENSIONS


def is_archive(filename: str) -> bool:
    """Check whether a file name denotes a supported archive."""
    return extension_of(filename) in ARCHIVE_EXTENSIONS
