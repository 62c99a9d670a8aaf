"""Slug derivation for site names.

A slug is the canonical identifier of a site: it names the site's directory
and appears in every URL, so it must be both filesystem- and URL-safe.
"""

from __future__ import annotations

import re

from werkzeug.utils import secure_filename

from .errors import InvalidName, NotFound

SLUG_PATTERN: re.Pattern = re.compile(r"^[a-z0-9-]+$")
"""Shape every stored slug matches."""

MAX_SLUG_BYTES: int = 255
"""Longest identifier a single directory name can hold."""

RESERVED_NAME_PATTERN: re.Pattern = re.compile(
    r"^(con|prn|aux|nul|com[0-9]|lpt[0-9])(\..*)?$", re.IGNORECASE
)
"""Device names reserved on Windows, refused on every platform."""

_WHITESPACE_RE = re.compile(r"\s+")
_UNSAFE_CHARS_RE = re.compile(r"[^a-z0-9-]")


def sanitize_identifier(raw: str) -> str:
    """Make an externally supplied identifier safe to join onto a root path.

    Strips path separators, traversal sequences and reserved device names,
    and truncates to MAX_SLUG_BYTES. The result may be empty.
    """
    cleaned = secure_filename(raw or "")
    if RESERVED_NAME_PATTERN.match(cleaned):
        return ""
    encoded = cleaned.encode("utf-8")
    if len(encoded) > MAX_SLUG_BYTES:
        cleaned = encoded[:MAX_SLUG_BYTES].decode("utf-8", errors="ignore")
    return cleaned


def slugify(name: str) -> str:
    """Derive a slug from a free-text site name.

    Args:
        name: Display name as typed by the user.

    Returns:
        Lower-case slug of letters, digits and hyphens.

    Raises:
        InvalidName: The name yields an empty slug.
    """
    slug = _WHITESPACE_RE.sub("-", (name or "").strip().lower())
    slug = _UNSAFE_CHARS_RE.sub("", slug)
    slug = sanitize_identifier(slug)
    if not is_valid_slug(slug):
        raise InvalidName("Invalid site name")
    return slug


def lookup_slug(raw: str) -> str:
    """Sanitize a slug taken from a URL before looking it up.

    Identifiers that could never have been stored (too long, or not slug
    shaped after sanitizing) are reported as unknown without touching the
    filesystem.

    Raises:
        NotFound: The identifier cannot name a stored site.
    """
    if len((raw or "").encode("utf-8")) > MAX_SLUG_BYTES:
        raise NotFound("Site not found")
    slug = sanitize_identifier(raw)
    if not is_valid_slug(slug):
        raise NotFound("Site not found")
    return slug


def is_valid_slug(slug: str) -> bool:
    """Check that a slug has the stored shape and fits in a directory name."""
    return bool(SLUG_PATTERN.match(slug or "")) and len(slug) <= MAX_SLUG_BYTES
