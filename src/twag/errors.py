"""Error taxonomy for tap resolution."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from twag.ids import TagId


class TwagError(Exception):
    """Base class for all twag errors."""


class InvalidTagId(TwagError, ValueError):
    """Raised when text is not a 14-character hexadecimal tag identifier."""


class InvalidPageRef(TwagError, ValueError):
    """Raised when text does not contain exactly one content-system page id."""


class MalformedTap(TwagError, ValueError):
    """Raised when a tap slug does not match the tap descriptor pattern.

    When only the counter suffix is broken, ``tag`` holds the identifier so
    callers can still redirect.
    """

    def __init__(self, message: str, *, tag: TagId | None = None) -> None:
        super().__init__(message)
        self.tag = tag


class ContentLookupError(TwagError, RuntimeError):
    """Raised when a read from the content system fails."""


class PageNotFound(ContentLookupError):
    """Raised when the content system has no page for an identifier."""


class MutationFailure(TwagError, RuntimeError):
    """Raised when a write to the content system fails."""
