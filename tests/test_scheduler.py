import threading
import time
from unittest.mock import MagicMock

from intake.sync.engine import USERS_FROM_SHEET, StreamResult
from intake.sync.scheduler import SyncScheduler


def test_failed_pass_is_logged_and_swallowed(caplog):
    engine = MagicMock()
    engine.run_full_pass.side_effect = RuntimeError("sheets down")
    scheduler = SyncScheduler(engine, interval_minutes=40)

    assert scheduler.run_once() is None
    assert "Sync error" in caplog.text


def test_next_pass_runs_after_a_failure():
    engine = MagicMock()
    engine.run_full_pass.side_effect = [RuntimeError("boom"), "report"]
    scheduler = SyncScheduler(engine, interval_minutes=40)

    assert scheduler.run_once() is None
    assert scheduler.run_once() == "report"


def test_trigger_refused_while_running():
    engine = MagicMock()
    engine.try_acquire.return_value = False
    scheduler = SyncScheduler(engine, interval_minutes=40)

    assert scheduler.trigger_now() is False
    engine.run_full_pass.assert_not_called()


def test_trigger_runs_pass_in_background():
    engine = MagicMock()
    engine.try_acquire.return_value = True
    scheduler = SyncScheduler(engine, interval_minutes=40)

    assert scheduler.trigger_now() is True
    deadline = time.time() + 2
    while not engine.run_full_pass.called and time.time() < deadline:
        time.sleep(0.01)
    engine.run_full_pass.assert_called_once_with(acquired=True)


def test_interval_job_is_registered_and_stopped():
    engine = MagicMock()
    scheduler = SyncScheduler(engine, interval_minutes=40, poll_seconds=0.01)

    scheduler.start()
    try:
        assert scheduler.thread.is_alive()
        jobs = scheduler.scheduler.get_jobs()
        assert len(jobs) == 1
        assert jobs[0].interval == 40
        assert jobs[0].unit == "minutes"
    finally:
        scheduler.stop()

    assert not scheduler.thread.is_alive()
    assert scheduler.scheduler.get_jobs() == []
    engine.run_full_pass.assert_not_called()


def test_real_engine_overlap_is_skipped(engine):
    scheduler = SyncScheduler(engine, interval_minutes=40)
    engine._lock.acquire()
    try:
        assert scheduler.trigger_now() is False
        assert scheduler.run_once() is None
    finally:
        engine._lock.release()


def test_manual_trigger_holds_lock_before_returning(engine, mocker):
    release = threading.Event()

    def slow_pass():
        release.wait(2)
        return StreamResult(USERS_FROM_SHEET)

    mocker.patch.object(engine, "sync_users_from_sheet", side_effect=slow_pass)
    scheduler = SyncScheduler(engine, interval_minutes=40)

    assert scheduler.trigger_now() is True
    # the worker may not have started yet, the engine is already reserved
    assert engine.is_running
    assert scheduler.trigger_now() is False
    release.set()
    deadline = time.time() + 2
    while engine.is_running and time.time() < deadline:
        time.sleep(0.01)
    assert not engine.is_running


def test_concurrent_triggers_start_one_pass():
    engine = MagicMock()
    lock = threading.Lock()
    engine.try_acquire.side_effect = lambda: lock.acquire(blocking=False)
    scheduler = SyncScheduler(engine, interval_minutes=40)

    answers = []
    threads = [threading.Thread(target=lambda: answers.append(scheduler.trigger_now())) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert answers.count(True) == 1
    assert answers.count(False) == 7
