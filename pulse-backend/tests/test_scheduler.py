import threading

from app.core.config import settings
from app.services.scheduler import PeriodicTask, build_scheduled_tasks


def test_periodic_task_runs_until_stopped():
    ran = threading.Event()
    calls = []

    def job():
        calls.append(1)
        ran.set()

    task = PeriodicTask("probe", job, interval_seconds=0.01)
    task.start()
    assert ran.wait(timeout=2)
    task.stop()

    assert not task.running
    assert len(calls) >= 1


def test_failing_run_does_not_stop_the_schedule():
    attempts = []
    second_run = threading.Event()

    def job():
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("boom")
        second_run.set()

    task = PeriodicTask("flaky", job, interval_seconds=0.01)
    task.start()
    try:
        assert second_run.wait(timeout=2)
    finally:
        task.stop()


def test_reconciler_is_always_scheduled_and_worker_only_when_queued(monkeypatch):
    monkeypatch.setattr(settings, "ingestion_mode", "direct")
    assert [task.name for task in build_scheduled_tasks()] == ["receipt-reconciler"]

    monkeypatch.setattr(settings, "ingestion_mode", "queued")
    assert [task.name for task in build_scheduled_tasks()] == ["receipt-reconciler", "ingestion-worker"]
