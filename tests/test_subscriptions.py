"""
Tests for shared per-key polling.
"""
import threading
import time

import pytest

from livemetro.sync import RepeatingTask, SubscriptionManager


class ManualTask:
    """Scheduler stand-in fired by the test instead of a timer."""

    instances = []

    def __init__(self, interval, fn, name):
        self.interval = interval
        self.fn = fn
        self.name = name
        self.started = False
        self.cancelled = False
        ManualTask.instances.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.fn()


def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return False


@pytest.fixture
def fetches():
    return []


@pytest.fixture
def manager(fetches):
    ManualTask.instances = []

    def fetch(key):
        fetches.append(key)
        return f"{key}-{len(fetches)}"

    mgr = SubscriptionManager(fetch, scheduler=ManualTask)
    yield mgr
    mgr.shutdown()


def test_first_subscriber_gets_immediate_delivery(manager):
    received = []
    manager.subscribe("Gangnam", 30, received.append)
    assert wait_until(lambda: len(received) == 1)
    assert received[0].startswith("Gangnam-")


def test_subscribers_share_one_timer(manager, fetches):
    a, b = [], []
    manager.subscribe("Gangnam", 30, a.append)
    manager.subscribe("Gangnam", 30, b.append)
    assert wait_until(lambda: len(a) == 1 and len(b) == 1)

    assert len(ManualTask.instances) == 1
    task = ManualTask.instances[0]
    assert task.started

    before = len(fetches)
    task.fire()
    assert len(fetches) == before + 1
    assert a[-1] == b[-1]


def test_last_unsubscribe_stops_polling(manager):
    first = manager.subscribe("Gangnam", 30, lambda data: None)
    second = manager.subscribe("Gangnam", 30, lambda data: None)
    task = ManualTask.instances[0]

    first()
    assert not task.cancelled
    assert manager.subscriber_count("Gangnam") == 1

    second()
    assert task.cancelled
    assert manager.active_keys() == []


def test_unsubscribe_is_idempotent(manager):
    keep = manager.subscribe("Gangnam", 30, lambda data: None)
    leave = manager.subscribe("Gangnam", 30, lambda data: None)
    leave()
    leave()
    assert manager.subscriber_count("Gangnam") == 1
    keep()


def test_first_interval_wins(manager):
    manager.subscribe("Gangnam", 30, lambda data: None)
    manager.subscribe("Gangnam", 10, lambda data: None)
    assert len(ManualTask.instances) == 1
    assert ManualTask.instances[0].interval == 30


def test_failing_callback_does_not_block_others(manager):
    received = []

    def broken(data):
        raise ValueError("listener crashed")

    manager.subscribe("Gangnam", 30, broken)
    manager.subscribe("Gangnam", 30, received.append)
    assert wait_until(lambda: len(received) == 1)

    ManualTask.instances[0].fire()
    assert len(received) == 2


def test_tick_after_unsubscribe_delivers_nothing(manager, fetches):
    received = []
    unsubscribe = manager.subscribe("Gangnam", 30, received.append)
    assert wait_until(lambda: len(received) == 1)
    task = ManualTask.instances[0]
    unsubscribe()

    before = len(fetches)
    task.fire()
    assert len(fetches) == before
    assert len(received) == 1


def test_keys_poll_independently(manager):
    manager.subscribe("Gangnam", 30, lambda data: None)
    manager.subscribe("Yeoksam", 15, lambda data: None)
    assert sorted(manager.active_keys()) == ["Gangnam", "Yeoksam"]
    assert manager.get_stats()["active_keys"] == 2


# =============================================================================
# RepeatingTask
# =============================================================================

def test_repeating_task_ticks_until_cancelled():
    ticks = []
    task = RepeatingTask(0.01, lambda: ticks.append(1), name="test-poll")
    task.start()
    try:
        assert wait_until(lambda: len(ticks) >= 3)
        assert task.is_running
    finally:
        task.cancel()
    assert not task.is_running


def test_repeating_task_survives_errors():
    calls = []

    def flaky():
        calls.append(1)
        raise RuntimeError("tick failed")

    task = RepeatingTask(0.01, flaky)
    task.start()
    try:
        assert wait_until(lambda: len(calls) >= 2)
    finally:
        task.cancel()


def test_repeating_task_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        RepeatingTask(0, lambda: None)


def test_subscribe_after_shutdown_is_ignored(fetches):
    mgr = SubscriptionManager(lambda key: fetches.append(key), scheduler=ManualTask)
    mgr.shutdown()

    unsubscribe = mgr.subscribe("Gangnam", 30, lambda data: None)
    unsubscribe()

    assert mgr.active_keys() == []
    assert fetches == []
