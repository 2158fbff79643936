"""Telemetry for the MemOS Cloud plugin.

Keeps a bounded in-memory log of recent events plus aggregate counters, and
persists the counters together with dashboard config overrides to a JSON
snapshot so they survive restarts. Memory content is never persisted.
"""

import atexit
import copy
import json
import logging
import os
import signal
import threading
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional, Union

from .models import EventKind, StatEvent, StatsCounters

logger = logging.getLogger(__name__)

MAX_LOG_ENTRIES = 200
PERSIST_INTERVAL_SECONDS = 60.0

SHUTDOWN_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGTERM", "SIGINT") if hasattr(signal, name)
)

LOG_FILTERS = ("all", "heartbeat", "error", "normal")


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class StatsCollector:
    """Ring buffer, counters and snapshot persistence.

    All public methods are safe to call from hook code and from the
    persistence thread at the same time.
    """

    def __init__(
        self,
        state_path: Union[str, Path],
        max_entries: int = MAX_LOG_ENTRIES,
        persist_interval: float = PERSIST_INTERVAL_SECONDS
    ):
        self._state_path = Path(state_path).expanduser()
        self._persist_interval = persist_interval
        # Reentrant: the shutdown signal handler may interrupt a holder on the main thread
        self._lock = threading.RLock()
        self._persist_lock = threading.RLock()
        self._counters = StatsCounters()
        self._log: Deque[StatEvent] = deque(maxlen=max_entries)
        self._next_id = 1
        self._overrides: Dict[str, Any] = {}
        self._started = False
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._previous_handlers: Dict[int, Any] = {}

    @property
    def state_path(self) -> Path:
        return self._state_path

    # ==================== Persistence ====================

    def _read_state(self) -> Optional[Dict[str, Any]]:
        try:
            with open(self._state_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.debug("[memos-cloud] Ignoring unreadable state file %s: %s", self._state_path, e)
            return None
        return data if isinstance(data, dict) else None

    def _snapshot(self) -> str:
        with self._lock:
            state = {
                "configOverrides": dict(self._overrides),
                "stats": self._counters.to_dict(),
            }
        return json.dumps(state, indent=2, ensure_ascii=False)

    def persist(self) -> bool:
        """Write the snapshot atomically (temp file + rename).

        Falls back to a direct write when the rename fails. Disk errors are
        logged and swallowed. Concurrent callers are serialized so the last
        snapshot taken is the last one written.

        Returns:
            True if the snapshot reached disk.
        """
        with self._persist_lock:
            payload = self._snapshot()
            tmp_path = self._state_path.with_name(self._state_path.name + ".tmp")
            try:
                self._state_path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path.write_text(payload, encoding="utf-8")
                os.replace(tmp_path, self._state_path)
                return True
            except OSError as e:
                logger.debug("[memos-cloud] Atomic state write failed (%s), writing directly", e)
            try:
                self._state_path.write_text(payload, encoding="utf-8")
                return True
            except OSError as e:
                logger.debug("[memos-cloud] State write failed: %s", e)
                return False

    flush = persist

    def _run_persist_loop(self) -> None:
        while not self._stop_event.wait(self._persist_interval):
            self.persist()

    # ==================== Shutdown signals ====================

    def _handle_shutdown_signal(self, signum: int, frame: Any) -> None:
        """Flush, then hand the signal to whatever handler was installed before."""
        self.persist()
        previous = self._previous_handlers.get(signum, signal.SIG_DFL)
        if callable(previous):
            previous(signum, frame)
        elif previous == signal.SIG_DFL:
            signal.signal(signum, signal.SIG_DFL)
            signal.raise_signal(signum)

    def _install_signal_handlers(self) -> None:
        # signal.signal only works from the main thread
        if threading.current_thread() is not threading.main_thread():
            return
        for signum in SHUTDOWN_SIGNALS:
            try:
                self._previous_handlers[signum] = signal.getsignal(signum)
                signal.signal(signum, self._handle_shutdown_signal)
            except (OSError, ValueError) as e:
                logger.debug("[memos-cloud] Cannot install handler for signal %s: %s", signum, e)

    def _restore_signal_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            return
        for signum, previous in self._previous_handlers.items():
            if signal.getsignal(signum) != self._handle_shutdown_signal:
                continue
            try:
                signal.signal(signum, previous if previous is not None else signal.SIG_DFL)
            except (OSError, ValueError) as e:
                logger.debug("[memos-cloud] Cannot restore handler for signal %s: %s", signum, e)
        self._previous_handlers.clear()

    # ==================== Lifecycle ====================

    def start(self) -> None:
        """Restore the snapshot and begin periodic persistence.

        Counters are restored except ``startedAt``, which is set to now.
        Calling start twice has no further effect.
        """
        with self._lock:
            if self._started:
                return
            self._started = True

        saved = self._read_state()
        with self._lock:
            if saved:
                stats = saved.get("stats")
                if isinstance(stats, dict):
                    self._counters.restore(stats)
                overrides = saved.get("configOverrides")
                if isinstance(overrides, dict):
                    self._overrides = dict(overrides)
            self._counters.started_at = _utc_timestamp()

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_persist_loop,
            name="memos-cloud-stats",
            daemon=True,
        )
        self._thread.start()
        atexit.register(self.persist)
        self._install_signal_handlers()

    def stop(self) -> None:
        """Stop periodic persistence and write a final snapshot."""
        with self._lock:
            was_started = self._started
            self._started = False
        if not was_started:
            return
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=1.0)
        self._thread = None
        atexit.unregister(self.persist)
        self._restore_signal_handlers()
        self.persist()

    @property
    def is_running(self) -> bool:
        return self._started

    # ==================== Recording ====================

    def record(
        self,
        kind: Union[EventKind, str],
        prompt_preview: str = "",
        duration_ms: Optional[int] = None,
        error: Optional[str] = None,
        debug: Optional[Dict[str, Any]] = None,
        action: Optional[str] = None
    ) -> StatEvent:
        """Record one pipeline event.

        Args:
            kind: EventKind or its string value.
            prompt_preview: Short cleaned preview of the prompt.
            duration_ms: Latency of the remote call, if any.
            error: Error message for failure kinds.
            debug: Heartbeat debug snapshot.
            action: Display label; defaults to the kind's value.

        Returns:
            The appended StatEvent.
        """
        kind = EventKind(kind)
        with self._lock:
            self._counters.total_events += 1
            if kind is EventKind.HEARTBEAT_FILTERED:
                self._counters.heartbeats_filtered += 1
            elif kind is EventKind.SEARCH:
                self._counters.search_calls += 1
            elif kind is EventKind.ADD:
                self._counters.add_calls += 1
            elif kind.is_error:
                self._counters.errors += 1

            entry = StatEvent(
                id=self._next_id,
                timestamp=_utc_timestamp(),
                kind=kind,
                prompt_preview=prompt_preview or "",
                action=action,
                duration_ms=duration_ms,
                error=error,
                debug=copy.deepcopy(debug),
            )
            self._next_id += 1
            self._log.append(entry)
        return entry

    # ==================== Queries ====================

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return self._counters.to_dict()

    def get_logs(self, type_filter: str = "all", limit: int = 50) -> List[Dict[str, Any]]:
        """Return log entries newest first.

        Args:
            type_filter: "all", "heartbeat", "error" or "normal"; unknown
                values behave like "all".
            limit: Maximum number of entries (the most recent ones).
        """
        with self._lock:
            entries = list(self._log)

        if type_filter == "heartbeat":
            entries = [e for e in entries if e.kind is EventKind.HEARTBEAT_FILTERED]
        elif type_filter == "error":
            entries = [e for e in entries if e.kind.is_error]
        elif type_filter == "normal":
            entries = [
                e for e in entries
                if e.kind is not EventKind.HEARTBEAT_FILTERED and not e.kind.is_error
            ]

        if limit <= 0:
            return []
        return [e.to_dict() for e in reversed(entries[-limit:])]

    def __len__(self) -> int:
        with self._lock:
            return len(self._log)

    # ==================== Config overrides ====================

    def get_config_overrides(self) -> Dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._overrides)

    def set_config_overrides(self, values: Dict[str, Any]) -> None:
        with self._lock:
            self._overrides = copy.deepcopy(values)
        self.persist()

    def clear_config_overrides(self) -> None:
        with self._lock:
            self._overrides = {}
        self.persist()
