# Overview: Housekeeping jobs (file retention sweep, session cleanup) and the periodic sweeper.

from __future__ import annotations

import threading
from datetime import timedelta

from flask import Flask, current_app

from .session_service import cleanup_expired_sessions
from .storage_service import BlobStore, get_blob_store


def sweep_expired_files(*, max_age: timedelta | None = None, store: BlobStore | None = None) -> int:
    """
    Delete uploaded files older than FILE_RETENTION_HOURS.

    Storage hygiene only: order rows keep their file_reference even when the
    blob is gone.
    """
    if max_age is None:
        max_age = timedelta(hours=int(current_app.config["FILE_RETENTION_HOURS"]))
    store = store or get_blob_store()
    return store.sweep_expired(max_age)


def cleanup_sessions() -> int:
    deleted = cleanup_expired_sessions()
    current_app.logger.info("Removed %d expired or revoked session(s)", deleted)
    return deleted


class RetentionSweeper:
    """
    Runs sweep_expired_files every FILE_SWEEP_INTERVAL_SECONDS on a daemon thread.

    Each pass pushes its own app context. A failed pass is logged and the
    loop keeps going.
    """

    def __init__(self, app: Flask, interval_seconds: float | None = None):
        self.app = app
        self.interval = float(interval_seconds or app.config["FILE_SWEEP_INTERVAL_SECONDS"])
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            self.app.logger.warning("Retention sweeper already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="RetentionSweeper", daemon=True)
        self._thread.start()
        self.app.logger.info("Retention sweeper started (every %ss)", self.interval)

    def stop(self, timeout: float = 5) -> None:
        if not self._thread:
            return
        self._stop_event.set()
        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            self.app.logger.warning("Retention sweeper did not stop within timeout")
        self._thread = None

    def run_once(self) -> int:
        with self.app.app_context():
            return sweep_expired_files()

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception:
                self.app.logger.exception("Retention sweep failed")
            self._stop_event.wait(timeout=self.interval)
