"""Periodic re-registration of announced addresses."""

import logging
import threading
from typing import Callable, Dict, Hashable, Optional, Tuple

logger = logging.getLogger(__name__)


class Heartbeat:
    """One armed heartbeat: calls ``callback(address)`` every *period* seconds."""

    def __init__(self, kind: str, address, callback: Callable, period: float):
        self.kind = kind
        self.address = address
        self.period = period
        self.beats = 0
        self._callback = callback
        self._cancelled = threading.Event()
        self._thread = threading.Thread(
            target=self._run,
            name=f"herald-heartbeat-{kind}-{address}",
            daemon=True,
        )

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def start(self) -> None:
        self._thread.start()

    def cancel(self, timeout: Optional[float] = None) -> None:
        self._cancelled.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def _run(self) -> None:
        # wait() returns True once cancelled
        while not self._cancelled.wait(self.period):
            try:
                self._callback(self.address)
                self.beats += 1
            except Exception as exc:
                logger.warning("[heartbeat] %s %s failed: %s", self.kind, self.address, exc)


class HeartbeatScheduler:
    """Keeps at most one heartbeat per ``(kind, address)``."""

    def __init__(self, period: float = 60.0, enabled: bool = True):
        if period <= 0:
            raise ValueError("heartbeat period must be positive")
        self.period = period
        self.enabled = enabled
        self._lock = threading.Lock()
        self._beats: Dict[Tuple[str, Hashable], Heartbeat] = {}

    def schedule(self, kind: str, address, callback: Callable) -> Optional[Heartbeat]:
        """Arm a heartbeat, or return the one already armed for this address."""
        if not self.enabled:
            logger.debug("[heartbeat] disabled, not scheduling %s %s", kind, address)
            return None
        with self._lock:
            existing = self._beats.get((kind, address))
            if existing is not None:
                return existing
            beat = Heartbeat(kind, address, callback, self.period)
            self._beats[(kind, address)] = beat
        beat.start()
        logger.debug("[heartbeat] %s %s every %ss", kind, address, self.period)
        return beat

    def cancel(self, kind: str, address) -> bool:
        with self._lock:
            beat = self._beats.pop((kind, address), None)
        if beat is None:
            return False
        beat.cancel()
        return True

    def cancel_all(self) -> None:
        with self._lock:
            beats = list(self._beats.values())
            self._beats.clear()
        for beat in beats:
            beat.cancel()

    def is_scheduled(self, kind: str, address) -> bool:
        with self._lock:
            return (kind, address) in self._beats
