"""Shared pytest fixtures."""

import pytest

from twag import (
    AsyncMemoryCacheStore,
    AsyncMemoryContentSystem,
    AsyncMemorySessionStore,
    PageInfo,
    PageRef,
    TagId,
    TagKind,
    TapEngine,
)

BELONGING_TAG = TagId("AABBCCDDEE0011")
CONTAINER_TAG = TagId("0123456789ABCD")
OTHER_CONTAINER_TAG = TagId("FEDCBA98765432")

BELONGING_PAGE = PageRef("11223344-5566-7788-99aa-bbccddeeff00")
CONTAINER_PAGE = PageRef("aaaaaaaa-bbbb-cccc-dddd-eeeeeeeeeeee")
OTHER_CONTAINER_PAGE = PageRef("00000000-1111-2222-3333-444444444444")
SHELF_PAGE = PageRef("99999999-8888-7777-6666-555555555555")


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, now: int = 1_700_000_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    """A clock starting at a fixed instant."""
    return FakeClock()


@pytest.fixture
def cache() -> AsyncMemoryCacheStore:
    """Create a fresh AsyncMemoryCacheStore for each test."""
    return AsyncMemoryCacheStore()


@pytest.fixture
def sessions() -> AsyncMemorySessionStore:
    """Create a fresh AsyncMemorySessionStore for each test."""
    return AsyncMemorySessionStore()


@pytest.fixture
def content() -> AsyncMemoryContentSystem:
    """A content system with one belonging (on a shelf) and two containers."""
    system = AsyncMemoryContentSystem()
    system.add_page(
        PageInfo(
            page=BELONGING_PAGE,
            url="https://www.notion.so/112233445566778899aabbccddeeff00",
            kind=TagKind.BELONGING,
        ),
        tag=BELONGING_TAG,
        container=SHELF_PAGE,
    )
    system.add_page(
        PageInfo(
            page=CONTAINER_PAGE,
            url="https://www.notion.so/aaaaaaaabbbbccccddddeeeeeeeeeeee",
            kind=TagKind.CONTAINER,
        ),
        tag=CONTAINER_TAG,
    )
    system.add_page(
        PageInfo(
            page=OTHER_CONTAINER_PAGE,
            url="https://www.notion.so/00000000111122223333444444444444",
            kind=TagKind.CONTAINER,
        ),
        tag=OTHER_CONTAINER_TAG,
    )
    return system


@pytest.fixture
def engine(
    cache: AsyncMemoryCacheStore,
    sessions: AsyncMemorySessionStore,
    content: AsyncMemoryContentSystem,
    clock: FakeClock,
) -> TapEngine:
    """An engine over in-memory collaborators and a fake clock."""
    return TapEngine(
        cache=cache,
        sessions=sessions,
        content=content,
        window="2m",
        lookup_timeout="1s",
        dispatch_timeout="1s",
        clock=clock,
    )
