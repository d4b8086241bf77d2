import logging
import threading
from collections.abc import Callable
from typing import Any

from app.core.config import settings
from app.core.observability import log_event, request_id_ctx
from app.db.session import SessionLocal
from app.services.ingestion_service import process_pending_jobs
from app.services.receipt_service import ReceiptReconciler, receipt_buffer

logger = logging.getLogger("pulse.scheduler")


class PeriodicTask:
    """Runs ``func`` every ``interval_seconds`` on a daemon thread until stopped.

    A failing run is logged and the schedule continues.
    """

    def __init__(self, name: str, func: Callable[[], Any], interval_seconds: float):
        self.name = name
        self._func = func
        self._interval_seconds = interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name=f"pulse-{self.name}", daemon=True)
        self._thread.start()
        log_event(
            logger,
            logging.INFO,
            "scheduler_task_started",
            task=self.name,
            interval_seconds=self._interval_seconds,
        )

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
        self._thread = None
        log_event(logger, logging.INFO, "scheduler_task_stopped", task=self.name)

    def run_once(self) -> Any:
        return self._func()

    def _run(self) -> None:
        request_id_ctx.set(f"task:{self.name}")
        while not self._stop_event.wait(self._interval_seconds):
            try:
                self.run_once()
            except Exception as exc:
                log_event(
                    logger,
                    logging.ERROR,
                    "scheduler_task_failed",
                    exc_info=True,
                    task=self.name,
                    error=str(exc),
                )


def run_ingestion_worker() -> None:
    db = SessionLocal()
    try:
        process_pending_jobs(db)
    finally:
        db.close()


def build_scheduled_tasks() -> list[PeriodicTask]:
    reconciler = ReceiptReconciler(receipt_buffer, SessionLocal)
    tasks = [
        PeriodicTask("receipt-reconciler", reconciler.tick, settings.receipt_reconcile_interval_seconds),
    ]
    if settings.ingestion_mode == "queued":
        tasks.append(
            PeriodicTask("ingestion-worker", run_ingestion_worker, settings.ingestion_worker_interval_seconds)
        )
    return tasks


def start_tasks(tasks: list[PeriodicTask]) -> None:
    for task in tasks:
        task.start()


def stop_tasks(tasks: list[PeriodicTask]) -> None:
    for task in tasks:
        task.stop()
