from castmint.health import HealthMonitor, HealthReporter, WorkerStatus
from tests.helpers import make_item


class BrokenQueue:
    def size(self):
        raise RuntimeError("unexpected")

    def failed_size(self):
        return 0


def test_new_monitor_is_starting(health):
    snapshot = health.snapshot()
    assert snapshot.status == WorkerStatus.STARTING
    assert snapshot.started_at is not None
    assert snapshot.recent_errors == []
    assert snapshot.last_error is None


def test_idle_worker_with_empty_queue(reporter, health):
    health.mark_idle(queue_size=0)

    state = reporter.get_health()

    assert state.status == WorkerStatus.IDLE
    assert state.current_queue_size == 0
    assert state.failed_count == 0


def test_reporter_refreshes_counts_from_the_store(reporter, queue, health):
    queue.enqueue(make_item(target_hash="0x1"))
    queue.enqueue(make_item(target_hash="0x2"))
    queue.add_failed(make_item(target_hash="0x3"), "boom")

    state = reporter.get_health()

    assert state.current_queue_size == 2
    assert state.failed_count == 1
    assert health.snapshot().current_queue_size == 2


def test_reporter_returns_last_known_state_when_store_is_down(reporter, queue, health, fake_redis):
    queue.enqueue(make_item())
    reporter.get_health()
    fake_redis.down = True

    state = reporter.get_health()

    assert state.current_queue_size == 1
    assert state.read_error
    assert "readError" in state.to_dict()


def test_reporter_survives_unexpected_errors(health):
    state = HealthReporter(health, BrokenQueue()).get_health()
    assert state.read_error == "unexpected"


def test_recent_errors_are_bounded():
    monitor = HealthMonitor(max_errors=3)
    for i in range(5):
        monitor.record_error(f"error {i}")

    snapshot = monitor.snapshot()

    assert snapshot.recent_errors == ["error 2", "error 3", "error 4"]
    assert snapshot.last_error == "error 4"


def test_failure_then_success_returns_to_idle(health):
    health.mark_processing()
    health.mark_failure("boom")
    assert health.status == WorkerStatus.ERROR

    health.mark_processing()
    health.mark_success()

    snapshot = health.snapshot()
    assert snapshot.status == WorkerStatus.IDLE
    assert snapshot.failed_count == 1
    assert snapshot.last_error == "boom"


def test_shutting_down_is_not_overridden(health):
    health.mark_processing()
    health.mark_shutting_down()
    health.mark_success()
    health.mark_idle(0)
    assert health.status == WorkerStatus.SHUTTING_DOWN

    health.mark_stopped()
    assert health.status == WorkerStatus.STOPPED


def test_to_dict_uses_wire_names(health):
    data = health.snapshot().to_dict()
    assert set(data) == {
        "status",
        "currentQueueSize",
        "failedCount",
        "lastProcessedAt",
        "recentErrors",
        "lastError",
        "startedAt",
    }
