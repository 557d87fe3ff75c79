"""
Tests for the ordered write-back queue.
"""
import threading

import pytest

from livemetro.sync import SyncQueue, SyncTask


@pytest.fixture
def queue():
    q = SyncQueue()
    yield q
    q.shutdown()


def test_tasks_run_in_enqueue_order(queue):
    order = []
    for i in range(10):
        queue.enqueue(SyncTask(f"task-{i}", lambda i=i: order.append(i)))
    assert queue.wait_idle(2)
    assert order == list(range(10))
    assert queue.get_stats()["completed"] == 10


def test_failure_is_reported_and_queue_continues():
    errors = []
    queue = SyncQueue(on_error=errors.append)
    done = []

    def boom():
        raise RuntimeError("replica write refused")

    try:
        queue.enqueue(SyncTask("write Gangnam", boom))
        queue.enqueue(SyncTask("write Yeoksam", lambda: done.append("Yeoksam")))
        assert queue.wait_idle(2)
    finally:
        queue.shutdown()

    assert done == ["Yeoksam"]
    assert len(errors) == 1
    assert "write Gangnam" in errors[0]
    assert "replica write refused" in errors[0]
    assert queue.get_stats()["failed"] == 1


def test_tasks_never_overlap(queue):
    running = []
    overlaps = []
    lock = threading.Lock()

    def task():
        with lock:
            running.append(1)
            if len(running) > 1:
                overlaps.append(True)
        threading.Event().wait(0.005)
        with lock:
            running.pop()

    for i in range(5):
        queue.enqueue(SyncTask(f"task-{i}", task))
    assert queue.wait_idle(2)
    assert overlaps == []


def test_pending_count_includes_running_task(queue):
    started = threading.Event()
    release = threading.Event()

    def blocking():
        started.set()
        release.wait(5)

    queue.enqueue(SyncTask("blocking", blocking))
    queue.enqueue(SyncTask("next", lambda: None))
    assert started.wait(2)
    assert queue.pending_count == 2

    release.set()
    assert queue.wait_idle(2)
    assert queue.pending_count == 0


def test_enqueue_during_drain_extends_it(queue):
    order = []

    def first():
        order.append("first")
        queue.enqueue(SyncTask("second", lambda: order.append("second")))

    queue.enqueue(SyncTask("first", first))
    assert queue.wait_idle(2)
    assert order == ["first", "second"]


def test_closed_queue_drops_tasks():
    queue = SyncQueue()
    queue.shutdown()
    ran = []
    queue.enqueue(SyncTask("late", lambda: ran.append(1)))
    assert ran == []
    assert queue.get_stats()["enqueued"] == 0


def test_failing_error_callback_does_not_stall_queue():
    def broken_reporter(message):
        raise RuntimeError("reporter crashed")

    queue = SyncQueue(on_error=broken_reporter)
    done = []

    def boom():
        raise RuntimeError("write refused")

    try:
        queue.enqueue(SyncTask("failing", boom))
        queue.enqueue(SyncTask("after", lambda: done.append("after")))
        assert queue.wait_idle(2)
        queue.enqueue(SyncTask("later", lambda: done.append("later")))
        assert queue.wait_idle(2)
    finally:
        queue.shutdown()

    assert done == ["after", "later"]
    assert queue.get_stats()["draining"] is False
