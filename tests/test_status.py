"""Status tracking and change-triggered notification."""

import pytest

from commlink.status import AnyChangePolicy, CodeChangePolicy, StatusTracker


class RecordingNotifier:
    def __init__(self, ready: bool = True):
        self.ready = ready
        self.calls = []

    async def __call__(self, tracker):
        if not self.ready:
            return False
        self.calls.append((tracker.code, tracker.message))
        return True


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def tracker(notifier):
    t = StatusTracker()
    t.attach(notifier)
    return t


def test_defaults():
    tracker = StatusTracker()
    assert tracker.code == 0
    assert tracker.message == ""
    assert tracker.details == {}
    assert isinstance(tracker.policy, CodeChangePolicy)


def test_as_values():
    values = StatusTracker(code=2, message="warming up").as_values()
    assert values["StatusCode"] == 2
    assert values["StatusMessage"] == "warming up"
    assert values["StatusDetails"] == {}
    assert values["ServerTime"].endswith("+00:00")


class TestCodeChangePolicy:
    @pytest.mark.asyncio
    async def test_same_code_never_notifies(self, tracker, notifier):
        assert await tracker.set_code(0) is False
        assert notifier.calls == []

    @pytest.mark.asyncio
    async def test_one_notification_per_distinct_change(self, tracker, notifier):
        assert await tracker.set_code(1) is True
        assert await tracker.set_code(1) is False
        assert await tracker.set_code(2) is True
        assert await tracker.set_code(1) is True
        assert [code for code, _ in notifier.calls] == [1, 2, 1]

    @pytest.mark.asyncio
    async def test_message_and_details_alone_do_not_notify(self, tracker, notifier):
        assert await tracker.set_message("busy") is False
        assert await tracker.update_details(queue=3) is False
        assert tracker.message == "busy"
        assert tracker.details == {"queue": 3}
        assert notifier.calls == []

    @pytest.mark.asyncio
    async def test_combined_write_carries_new_message(self, tracker, notifier):
        assert await tracker.set_status(code=5, message="degraded", details={"disk": "full"}) is True
        assert notifier.calls == [(5, "degraded")]
        assert tracker.details == {"disk": "full"}

    @pytest.mark.asyncio
    async def test_not_ready_skips_without_queueing(self, tracker, notifier):
        notifier.ready = False
        assert await tracker.set_code(1) is False
        notifier.ready = True
        assert await tracker.set_code(1) is False
        assert notifier.calls == []
        assert tracker.code == 1


class TestAnyChangePolicy:
    @pytest.mark.asyncio
    async def test_message_change_notifies(self, notifier):
        tracker = StatusTracker(AnyChangePolicy())
        tracker.attach(notifier)
        assert await tracker.set_message("busy") is True
        assert await tracker.set_message("busy") is False
        assert await tracker.update_details(queue=1) is True
        assert len(notifier.calls) == 2


class TestChangeHandlers:
    @pytest.mark.asyncio
    async def test_local_change_event(self, tracker):
        seen = []
        remove = tracker.add_change_handler(lambda t, previous: seen.append((previous, t.code)))
        await tracker.set_code(3)
        await tracker.set_code(3)
        await tracker.set_message("no code change")
        remove()
        await tracker.set_code(4)
        assert seen == [(0, 3)]

    @pytest.mark.asyncio
    async def test_async_handler_and_failures_are_contained(self, tracker, notifier):
        seen = []

        async def record(t, previous):
            seen.append(t.code)

        def broken(t, previous):
            raise RuntimeError("observer bug")

        tracker.add_change_handler(broken)
        tracker.add_change_handler(record)
        assert await tracker.set_code(7) is True
        assert seen == [7]

    @pytest.mark.asyncio
    async def test_without_notifier(self):
        tracker = StatusTracker()
        assert await tracker.set_code(9) is False
        assert tracker.code == 9
