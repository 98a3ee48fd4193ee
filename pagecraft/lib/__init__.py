"""Pure helpers and shared infrastructure for pagecraft."""

from pagecraft.lib.errors import (
    ConflictError,
    IntegrityViolationError,
    InvalidError,
    LockedError,
    NotFoundError,
    PagecraftError,
    TokenRequiredError,
)

__all__ = [
    "ConflictError",
    "IntegrityViolationError",
    "InvalidError",
    "LockedError",
    "NotFoundError",
    "PagecraftError",
    "TokenRequiredError",
]
