"""Typed errors raised by the page composition services.

Each error carries an HTTP status code so the web layer can translate it
without a lookup table of its own.
"""


class PagecraftError(Exception):
    """Base class for all domain errors."""

    status_code = 500

    def __init__(self, message: str, **context) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class NotFoundError(PagecraftError):
    """Unknown or deleted page, component or version."""

    status_code = 404


class InvalidError(PagecraftError):
    """Bad placement, order, type or patch."""

    status_code = 400


class LockedError(PagecraftError):
    """Structural edit attempted on a locked component."""

    status_code = 423


class ConflictError(PagecraftError):
    """Stale concurrency token or cyclic reparent."""

    status_code = 409


class IntegrityViolationError(PagecraftError):
    """Tree integrity would be broken (live dependents, referenced rows)."""

    status_code = 422


class TokenRequiredError(PagecraftError):
    """Mutating designer call made without a concurrency token."""

    status_code = 428


__all__ = [
    "ConflictError",
    "IntegrityViolationError",
    "InvalidError",
    "LockedError",
    "NotFoundError",
    "PagecraftError",
    "TokenRequiredError",
]
