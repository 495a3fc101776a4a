from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Optional

from market_sync.config import SyncSettings
from market_sync.coordinator import SyncCoordinator
from market_sync.models import utc_now_iso
from market_sync.storage import SQLiteStore


logger = logging.getLogger("msync.scheduler")

IDLE = "idle"
RUNNING = "running"
DONE = "done"
ERROR = "error"


class BackgroundSync:
    """Single-flight background runner for ``evaluate_and_sync``.

    The store is opened inside the worker thread, since a sqlite3 connection
    may not cross threads. ``start`` while a run is in flight is a no-op that
    returns False.
    """

    def __init__(
        self,
        settings: Optional[SyncSettings] = None,
        *,
        store_factory: Optional[Callable[[], Any]] = None,
        coordinator_kwargs: Optional[Dict[str, Any]] = None,
    ):
        self.settings = settings or SyncSettings()
        self.store_factory = store_factory or (
            lambda: SQLiteStore(self.settings.db_path, chunk_size=self.settings.write_chunk_size)
        )
        self.coordinator_kwargs = dict(coordinator_kwargs or {})
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._cancel = threading.Event()
        self.state = IDLE
        self.started_at: Optional[str] = None
        self.finished_at: Optional[str] = None
        self.last_report: Optional[Dict[str, Any]] = None
        self.last_error: Optional[str] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        with self._lock:
            if self.running:
                return False
            self._cancel = threading.Event()
            self.state = RUNNING
            self.started_at = utc_now_iso()
            self.finished_at = None
            self.last_error = None
            self._thread = threading.Thread(target=self._run, name="msync-sync", daemon=True)
            self._thread.start()
            return True

    def cancel(self) -> bool:
        if not self.running:
            return False
        self._cancel.set()
        return True

    def join(self, timeout: Optional[float] = None) -> None:
        t = self._thread
        if t is not None:
            t.join(timeout)

    def _run(self) -> None:
        store = None
        try:
            store = self.store_factory()
            coordinator = SyncCoordinator(
                store, settings=self.settings, cancel_event=self._cancel, **self.coordinator_kwargs
            )
            self.last_report = coordinator.evaluate_and_sync().to_dict()
            self.state = DONE
        except Exception as e:
            self.last_error = str(e)
            self.state = ERROR
            logger.exception("background sync failed")
        finally:
            if store is not None:
                store.close()
            self.finished_at = utc_now_iso()

    def status(self) -> Dict[str, Any]:
        return {
            "state": RUNNING if self.running else self.state,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "cancel_requested": self._cancel.is_set(),
            "last_error": self.last_error,
            "last_report": self.last_report,
        }
