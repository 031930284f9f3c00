"""Exception hierarchy shared by the sync core and the managers.

Plain lookups signal "not found" by returning ``None``; the exceptions below
are for inputs that cannot be acted on at all.
"""


class StarshelfError(Exception):
    """Base class for every error raised on purpose by starshelf."""


class ValidationError(StarshelfError):
    """Malformed input, rejected before anything is written."""


class ConflictError(StarshelfError):
    """The requested state already exists (duplicate slug, tag, entry)."""


class NotFoundError(StarshelfError):
    """An operation references something the caller does not own."""


class UnauthorizedError(StarshelfError):
    """No identity or no upstream credential available."""


class UpstreamError(StarshelfError):
    """GitHub could not be reached or answered with an error status."""

    def __init__(self, message: str, status: int | None = None):
        self.status = status
        super().__init__(message)


class SyncError(StarshelfError):
    """A sync pass failed; membership was left untouched."""
