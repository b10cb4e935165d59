from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Any, TextIO
from uuid import uuid4
from zoneinfo import ZoneInfo

from structlog.contextvars import bind_contextvars, reset_contextvars

from backend.app.services.ingestion_service import NewsIngestionService
from backend.app.telemetry import TelemetryClient

LOGGER = logging.getLogger("newsdesk.scheduler")

GENERAL_FETCH_HOURS: frozenset[int] = frozenset({0, 6, 12, 18})
BUSINESS_FETCH_HOURS: frozenset[int] = frozenset({9, 11, 13, 15, 17, 19, 21})
RETENTION_SWEEP_HOURS: frozenset[int] = frozenset({2})
FETCH_NOW_DEFAULT_LIMIT = 10
SCHEDULER_THREAD_NAME = "newsdesk-scheduler"

try:
    import fcntl
except ImportError:  # pragma: no cover - non-POSIX fallback
    fcntl = None


@dataclass(frozen=True)
class ScheduledTask:
    """A job that fires once at minute 0 of each listed hour."""

    name: str
    hours: frozenset[int]
    run: Callable[[], Any]

    def slot_for(self, moment: datetime) -> str | None:
        if moment.hour not in self.hours:
            return None
        return moment.strftime("%Y-%m-%dT%H")


class NewsScheduler:
    """Runs the fetch and retention jobs on one daemon thread.

    Each started thread gets its own stop event, so a thread still finishing
    a run after `stop()` can never be revived by a later `start()`. The
    single-instance file lock belongs to the thread and is released only
    when that thread exits.
    """

    def __init__(
        self,
        ingestion: NewsIngestionService,
        *,
        fetch_page_size: int = 5,
        poll_interval_seconds: float = 30,
        timezone_name: str = "UTC",
        telemetry: TelemetryClient | None = None,
        lock_path: Path | None = None,
        clock: Callable[[tzinfo], datetime] | None = None,
        stop_timeout_seconds: float = 10.0,
    ) -> None:
        self._ingestion = ingestion
        self._fetch_page_size = max(1, fetch_page_size)
        self._poll_interval_seconds = max(0.01, poll_interval_seconds)
        self._timezone = ZoneInfo(timezone_name)
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()
        self._clock = clock if clock is not None else datetime.now
        self._stop_timeout_seconds = max(0.0, stop_timeout_seconds)
        self._tasks: tuple[ScheduledTask, ...] = (
            ScheduledTask(
                name="fetch_general",
                hours=GENERAL_FETCH_HOURS,
                run=lambda: self._ingestion.fetch_and_save("tech", self._fetch_page_size),
            ),
            ScheduledTask(
                name="fetch_business",
                hours=BUSINESS_FETCH_HOURS,
                run=lambda: self._ingestion.fetch_and_save("business", self._fetch_page_size),
            ),
            ScheduledTask(
                name="retention_sweep",
                hours=RETENTION_SWEEP_HOURS,
                run=self._ingestion.sweep_retention,
            ),
        )
        self._last_fired: dict[str, str] = {}
        self._slots_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock_path = lock_path

    @property
    def tasks(self) -> tuple[ScheduledTask, ...]:
        return self._tasks

    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive() and not self._stop_event.is_set()

    def start(self) -> bool:
        with self._state_lock:
            previous = self._thread
            if previous is not None and previous.is_alive():
                if self._stop_event.is_set():
                    LOGGER.warning("news scheduler start refused; previous run still finishing")
                return False

            lock_file = self._acquire_process_lock()
            if lock_file is False:
                return False

            stop_event = threading.Event()
            # Slots already current at start time do not fire retroactively.
            now = self._now()
            with self._slots_lock:
                self._last_fired = {
                    task.name: slot
                    for task in self._tasks
                    if (slot := task.slot_for(now)) is not None
                }
            self._stop_event = stop_event
            self._thread = threading.Thread(
                target=self._run_loop,
                args=(stop_event, lock_file),
                name=SCHEDULER_THREAD_NAME,
                daemon=True,
            )
            self._thread.start()
        LOGGER.info("news scheduler started timezone=%s", self._timezone.key)
        self._telemetry.emit("scheduler.start", timezone=self._timezone.key)
        return True

    def stop(self) -> bool:
        with self._state_lock:
            was_running = self.is_running()
            self._stop_event.set()
            thread = self._thread
            if thread is not None:
                thread.join(timeout=self._stop_timeout_seconds)
                if thread.is_alive():
                    LOGGER.warning("news scheduler thread still finishing a run after stop")
                else:
                    self._thread = None
        if was_running:
            LOGGER.info("news scheduler stopped")
            self._telemetry.emit("scheduler.stop")
        return was_running

    def trigger_now(
        self,
        category: str | None = "tech",
        limit: int = FETCH_NOW_DEFAULT_LIMIT,
    ) -> dict[str, Any]:
        try:
            result = self._ingestion.fetch_and_save(category, limit)
        except Exception as exc:
            LOGGER.warning("manual news fetch failed category=%s", category, exc_info=True)
            return {"success": False, "error": str(exc)}
        return {
            "success": True,
            "saved_count": result.saved_count,
            "saved_posts": [
                {
                    "id": post.post_id,
                    "title": post.title,
                    "slug": post.slug,
                    "source": post.source,
                }
                for post in result.saved_posts
            ],
            "total_fetched": result.total_fetched,
            "errors": [{"title": error.title, "error": error.error} for error in result.errors],
        }

    def run_due_tasks(
        self,
        now: datetime | None = None,
        *,
        stop_event: threading.Event | None = None,
    ) -> list[str]:
        event = stop_event if stop_event is not None else self._stop_event
        moment = now if now is not None else self._now()
        fired: list[str] = []
        for task in self._tasks:
            if event.is_set():
                break
            slot = task.slot_for(moment)
            with self._slots_lock:
                if slot is None or self._last_fired.get(task.name) == slot:
                    continue
                self._last_fired[task.name] = slot
            self._run_task(task)
            fired.append(task.name)
        return fired

    def _now(self) -> datetime:
        return self._clock(self._timezone)

    def _run_loop(self, stop_event: threading.Event, lock_file: TextIO | None) -> None:
        try:
            while not stop_event.wait(self._poll_interval_seconds):
                self.run_due_tasks(stop_event=stop_event)
        finally:
            if lock_file is not None:
                # Closing the descriptor drops the flock.
                lock_file.close()

    def _run_task(self, task: ScheduledTask) -> None:
        tick_id = uuid4().hex
        tick_tokens = bind_contextvars(scheduler_tick_id=tick_id, scheduler_task=task.name)
        try:
            LOGGER.info("scheduled task starting task=%s", task.name)
            with self._telemetry.span("scheduler.tick", tick_id=tick_id, task=task.name):
                task.run()
        except Exception:
            # The next slot retries; a failed run must not end the loop.
            LOGGER.warning("scheduled task failed task=%s", task.name, exc_info=True)
        finally:
            reset_contextvars(**tick_tokens)

    def _acquire_process_lock(self) -> TextIO | None | bool:
        """Return the locked file, None when no lock applies, or False if held elsewhere."""
        if self._lock_path is None or fcntl is None:
            return None

        self._lock_path.parent.mkdir(parents=True, exist_ok=True)
        lock_file = self._lock_path.open("a+", encoding="utf-8")
        try:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            lock_file.close()
            LOGGER.info("scheduler start skipped; lock held path=%s", self._lock_path)
            return False

        lock_file.truncate(0)
        lock_file.write(f"{os.getpid()}\n")
        lock_file.flush()
        return lock_file
