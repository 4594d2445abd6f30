"""Replay guard for hardware tap counters."""

from twag.types import ReplayVerdict


def check(last_seen: int | None, observed: int | None) -> ReplayVerdict:
    """Classify an observed tap counter against the last one seen.

    Never fails: counters that wrap or reset just read as stale, which
    only costs the tap its mutation, never its redirect.
    """
    if observed is None:
        return ReplayVerdict.NO_COUNTER
    if last_seen is None or observed > last_seen:
        return ReplayVerdict.FRESH
    return ReplayVerdict.STALE


def advance(last_seen: int | None, observed: int | None) -> int | None:
    """The ``last_seen`` value to store after a tap."""
    if check(last_seen, observed) is ReplayVerdict.FRESH:
        return observed
    return last_seen


def allows_mutation(verdict: ReplayVerdict) -> bool:
    return verdict is not ReplayVerdict.STALE
