"""Tests for the cursor-listing Service and its events."""

import pytest

from portastore.errors import HookError, NotFoundError
from portastore.events import EventBus, Signal
from portastore.service import Service
from portastore.testing import HookedRecord, User


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def received(bus):
    events = []
    for signal in Signal:
        bus.subscribe(signal, events.append)
    return events


@pytest.fixture
def users(collection_provider, bus):
    return Service(collection_provider, User, events=bus)


class TestServiceCrud:
    """Tests for get/set/delete/exists/count."""

    async def test_round_trip(self, users):
        await users.set("u1", User(id="u1", name="Ada"))
        assert (await users.get("u1")).name == "Ada"
        assert await users.exists("u1")
        assert await users.count() == 1

    async def test_delete(self, users):
        await users.set("u1", User(id="u1"))
        await users.delete("u1")
        assert not await users.exists("u1")
        assert await users.count() == 0
        with pytest.raises(NotFoundError):
            await users.delete("u1")

    async def test_hooks(self, collection_provider):
        svc = Service(collection_provider, HookedRecord)
        await svc.set("h", HookedRecord(id="h"))
        await svc.get("h")
        await svc.delete("h")
        assert [p for p, _ in HookedRecord.calls] == [
            "before_save", "after_save", "after_load", "before_delete", "after_delete",
        ]


class TestServiceList:
    """Tests for cursor pagination."""

    async def test_pages_cover_every_key_once(self, users):
        keys = [f"k{i:02d}" for i in range(7)]
        for key in reversed(keys):
            await users.set(key, User(id=key))

        seen = []
        cursor = ""
        pages = 0
        while True:
            page, cursor = await users.list(cursor, limit=3)
            seen.extend(page)
            pages += 1
            if not cursor:
                break

        assert seen == keys
        assert pages == 3

    async def test_unbounded(self, users):
        for key in ("a", "b"):
            await users.set(key, User(id=key))
        page, cursor = await users.list()
        assert page == ["a", "b"]
        assert cursor == ""

    async def test_exact_page_boundary_ends(self, users):
        for key in ("a", "b"):
            await users.set(key, User(id=key))
        page, cursor = await users.list(limit=2)
        assert page == ["a", "b"]
        assert cursor == ""

    async def test_empty_collection(self, users):
        assert await users.list(limit=10) == ([], "")

    async def test_insert_between_pages(self, users):
        for key in ("a", "c", "e"):
            await users.set(key, User(id=key))
        page, cursor = await users.list(limit=2)
        assert page == ["a", "c"]

        await users.set("b", User(id="b"))
        await users.set("d", User(id="d"))
        page, cursor = await users.list(cursor, limit=2)
        assert page == ["d", "e"]


class TestServiceEvents:
    """Tests for emitted signals."""

    async def test_set_and_get_signals(self, users, received):
        await users.set("u1", User(id="u1"))
        await users.get("u1")

        signals = [e.signal for e in received]
        assert signals == [
            Signal.SET_STARTED, Signal.SET_COMPLETED,
            Signal.GET_STARTED, Signal.GET_COMPLETED,
        ]
        completed = received[1]
        assert completed.key == "u1"
        assert completed.record_type.endswith(".User")
        assert completed.duration_ms >= 0
        assert completed.fields["size"] > 0
        assert received[0].duration_ms is None

    async def test_failure_signal_carries_error(self, users, received):
        with pytest.raises(NotFoundError):
            await users.get("missing")

        assert [e.signal for e in received] == [Signal.GET_STARTED, Signal.GET_FAILED]
        assert isinstance(received[1].error, NotFoundError)

    async def test_hook_failure_signal(self, collection_provider, bus, received):
        svc = Service(collection_provider, HookedRecord, events=bus)
        HookedRecord.fail.add("before_save")
        with pytest.raises(HookError):
            await svc.set("h", HookedRecord(id="h"))
        assert received[-1].signal is Signal.SET_FAILED
        assert isinstance(received[-1].error, HookError)

    async def test_list_and_count_fields(self, users, received):
        await users.set("a", User(id="a"))
        received.clear()

        await users.list(limit=5)
        await users.count()
        await users.exists("a")

        assert received[0].signal is Signal.LIST_COMPLETED
        assert received[0].fields == {"cursor": "", "keys": 1, "next_cursor": ""}
        assert received[1].fields == {"count": 1}
        assert received[2].fields == {"exists": True}

    async def test_no_bus_no_events(self, collection_provider):
        svc = Service(collection_provider, User)
        await svc.set("a", User(id="a"))
        assert await svc.exists("a")
