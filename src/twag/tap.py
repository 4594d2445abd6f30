"""Tap descriptor parsing.

A tap slug is a 14-digit hex tag id, optionally followed by ``x`` and the
decimal tap counter the tag mirrors into its URL::

    AABBCCDDEE0011
    AABBCCDDEE0011x42
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from twag.errors import MalformedTap
from twag.ids import TagId

COUNTER_SEPARATOR = "x"

# The only definition of the tap slug shape. ``junk`` captures a broken
# counter suffix so the identifier can still be recovered. Counters longer
# than 18 digits do not fit a 64-bit column and count as broken.
TAP_PATTERN = re.compile(
    r"(?P<id>[0-9A-Fa-f]{14})"
    rf"(?:{COUNTER_SEPARATOR}(?:(?P<counter>[0-9]{{1,18}})|(?P<junk>[^/\s]*)))?"
)


@dataclass(frozen=True, slots=True)
class TagDescriptor:
    """A parsed tap: which tag, and the hardware counter if present."""

    id: TagId
    counter: int | None = None


def parse_tap(slug: str) -> TagDescriptor:
    """Parse a tap slug into a descriptor.

    Raises MalformedTap for anything else, including surrounding whitespace
    or extra path segments. When just the counter is bad the exception's
    ``tag`` is set.
    """
    match = TAP_PATTERN.fullmatch(slug)
    if match is None:
        raise MalformedTap(f"Invalid tag id format: {slug!r}")

    tag = TagId.parse(match["id"])
    if match["junk"] is not None:
        raise MalformedTap(f"Invalid tap counter in {slug!r}", tag=tag)

    counter = match["counter"]
    return TagDescriptor(id=tag, counter=int(counter) if counter is not None else None)


def format_tap(descriptor: TagDescriptor) -> str:
    """Inverse of parse_tap, in canonical case."""
    if descriptor.counter is None:
        return str(descriptor.id)
    return f"{descriptor.id}{COUNTER_SEPARATOR}{descriptor.counter}"
