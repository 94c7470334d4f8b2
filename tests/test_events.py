"""Tests for the event bus."""

from portastore.events import Event, EventBus, Signal


class TestEventBus:
    """Tests for subscribe/unsubscribe/emit."""

    async def test_sync_and_async_handlers(self):
        bus = EventBus()
        got = []

        async def async_handler(event):
            got.append(("async", event.key))

        bus.subscribe(Signal.GET_COMPLETED, lambda e: got.append(("sync", e.key)))
        bus.subscribe(Signal.GET_COMPLETED, async_handler)

        await bus.emit(Event(Signal.GET_COMPLETED, key="k"))
        assert got == [("sync", "k"), ("async", "k")]

    async def test_only_matching_signal(self):
        bus = EventBus()
        got = []
        bus.subscribe(Signal.SET_COMPLETED, got.append)
        await bus.emit(Event(Signal.GET_COMPLETED))
        assert got == []

    async def test_failing_handler_is_skipped(self, caplog):
        bus = EventBus()
        got = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(Signal.DELETE_FAILED, broken)
        bus.subscribe(Signal.DELETE_FAILED, got.append)

        await bus.emit(Event(Signal.DELETE_FAILED))
        assert len(got) == 1
        assert "boom" in caplog.text

    async def test_unsubscribe(self):
        bus = EventBus()
        got = []
        bus.subscribe(Signal.COUNT_COMPLETED, got.append)
        bus.unsubscribe(Signal.COUNT_COMPLETED, got.append)
        bus.unsubscribe(Signal.COUNT_COMPLETED, got.append)
        await bus.emit(Event(Signal.COUNT_COMPLETED))
        assert got == []

    def test_signal_names(self):
        assert Signal.LIST_COMPLETED.value == "portastore.list.completed"
