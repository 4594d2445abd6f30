"""Identifier types.

``TagId`` and ``PageRef`` are the only places where raw text is normalized.
Everything past these constructors can rely on the canonical form.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urlsplit

from twag.errors import InvalidPageRef, InvalidTagId

TAG_ID_LENGTH = 14

_HEX_DIGITS = frozenset("0123456789ABCDEF")
_CANONICAL_TAG = re.compile(r"[0-9A-F]{14}")

_BARE_PAGE = re.compile(r"[0-9a-f]{32}", re.IGNORECASE)
_HYPHENATED_PAGE = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE
)
# A page id embedded in a URL must not be glued to more hex digits.
_EMBEDDED_PAGE = re.compile(
    r"(?<![0-9a-f])"
    r"([0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}|[0-9a-f]{32})"
    r"(?![0-9a-f])",
    re.IGNORECASE,
)
_CANONICAL_PAGE = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"
)


@dataclass(frozen=True, slots=True)
class TagId:
    """A 14-character uppercase hexadecimal tag identifier."""

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or not _CANONICAL_TAG.fullmatch(self.value):
            raise InvalidTagId(f"Not a canonical tag id: {self.value!r}")

    @classmethod
    def parse(cls, text: str) -> TagId:
        """Normalize case and validate. Accepts hex digits in any case."""
        if not isinstance(text, str):
            raise InvalidTagId(f"Expected text, got {type(text).__name__}")
        if not text.isascii():
            bad = next(c for c in text if not c.isascii())
            raise InvalidTagId(f"Invalid character: expected hex digit, found {bad!r}")
        normalized = text.upper()
        if len(normalized) != TAG_ID_LENGTH:
            raise InvalidTagId(
                f"Invalid length: expected {TAG_ID_LENGTH} characters, got {len(normalized)}"
            )
        for char in normalized:
            if char not in _HEX_DIGITS:
                raise InvalidTagId(f"Invalid character: expected hex digit, found {char!r}")
        return cls(normalized)

    def __str__(self) -> str:
        return self.value


def _hyphenate(digits: str) -> str:
    digits = digits.replace("-", "").lower()
    return f"{digits[:8]}-{digits[8:12]}-{digits[12:16]}-{digits[16:20]}-{digits[20:]}"


@dataclass(frozen=True, slots=True)
class PageRef:
    """A content-system page id in lowercase 8-4-4-4-12 form."""

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or not _CANONICAL_PAGE.fullmatch(self.value):
            raise InvalidPageRef(f"Not a canonical page id: {self.value!r}")

    @classmethod
    def parse(cls, text: str) -> PageRef:
        """Accept a bare 32-hex id, a hyphenated id, or a URL containing one.

        For URLs, every hex run of identifier shape in the path and query is a
        candidate; the last one wins, but only if all candidates name the same
        page. Zero candidates, or two different ones, is an error.
        """
        if not isinstance(text, str):
            raise InvalidPageRef(f"Expected text, got {type(text).__name__}")
        if _BARE_PAGE.fullmatch(text) or _HYPHENATED_PAGE.fullmatch(text):
            return cls(_hyphenate(text))

        parts = urlsplit(text)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise InvalidPageRef(f"Not a page id or page URL: {text!r}")

        haystack = f"{parts.path}?{parts.query}"
        candidates = [_hyphenate(m) for m in _EMBEDDED_PAGE.findall(haystack)]
        if not candidates:
            raise InvalidPageRef(f"No page id found in URL: {text!r}")
        if len(set(candidates)) > 1:
            raise InvalidPageRef(f"Ambiguous page id in URL: {text!r}")
        return cls(candidates[-1])

    @property
    def compact(self) -> str:
        """The 32-hex-digit form, as used in content-system URLs."""
        return self.value.replace("-", "")

    def __str__(self) -> str:
        return self.value
