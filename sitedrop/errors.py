"""Error taxonomy shared by every SiteDrop component.

Each error carries the HTTP status the transport adapter should answer with
and a message that is safe to show to the caller.
"""

from __future__ import annotations


class SiteError(Exception):
    """Base class for all expected SiteDrop failures."""

    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidName(SiteError):
    """Site name is empty or sanitizes to nothing."""

    status_code = 400


class BadUpload(SiteError):
    """Upload body is malformed (no files, empty entry, corrupt archive)."""

    status_code = 400


class ForbiddenContent(SiteError):
    """A deny-listed file type was found, possibly inside an archive."""

    status_code = 400


class UnsafeArchive(ForbiddenContent):
    """An archive entry would land outside the extraction directory."""


class NotAllowed(SiteError):
    """File extension is neither allow-listed nor an archive."""

    status_code = 400


class PayloadTooLarge(SiteError):
    """Decoded upload exceeds the configured size limit."""

    status_code = 413


class Conflict(SiteError):
    """Slug already taken by an active or deleted site."""

    status_code = 409


class NotFound(SiteError):
    """Unknown slug, or its directory is missing."""

    status_code = 404


class InternalError(SiteError):
    """Unexpected filesystem or database failure.

    The message is generic; the real cause is logged where it was caught.
    """

    status_code = 500

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(message)


class OperationTimeout(SiteError):
    """Worker did not finish within the request timeout. Safe to retry."""

    status_code = 503
    retryable = True

    def __init__(self, message: str = "Operation timed out, please retry") -> None:
        super().__init__(message)
