from threading import Lock
from typing import Dict, List, NamedTuple, Optional, Tuple

from app.platform.logger import get_logger

logger = get_logger("rate_limit")


class WindowState(NamedTuple):
    allowed: bool
    count: int
    oldest: float


class MemoryCounterStore:
    """
    In-process sliding log of request timestamps per key.

    Only correct for a single server process: every worker keeps its own
    counters, so N instances let through up to N times the configured limit.
    Use RedisCounterStore for anything multi-instance.
    """

    def __init__(self, sweep_interval: float = 900):
        self._requests: Dict[str, Tuple[float, List[float]]] = {}
        self._lock = Lock()
        self._sweep_interval = sweep_interval
        self._last_sweep: Optional[float] = None

    async def hit(self, key: str, limit: int, window: float, now: float) -> WindowState:
        return self.hit_sync(key, limit, window, now)

    def hit_sync(self, key: str, limit: int, window: float, now: float) -> WindowState:
        with self._lock:
            self._maybe_sweep(now)

            # Remove old timestamps outside window
            cutoff = now - window
            _, timestamps = self._requests.get(key, (window, []))
            timestamps = [ts for ts in timestamps if ts > cutoff]

            if len(timestamps) >= limit:
                self._requests[key] = (window, timestamps)
                return WindowState(False, len(timestamps), timestamps[0])

            timestamps.append(now)
            self._requests[key] = (window, timestamps)
            return WindowState(True, len(timestamps), timestamps[0])

    def _maybe_sweep(self, now: float) -> None:
        if self._last_sweep is None:
            self._last_sweep = now
            return
        if now - self._last_sweep < self._sweep_interval:
            return
        stale = [
            key
            for key, (window, timestamps) in self._requests.items()
            if not timestamps or timestamps[-1] <= now - window
        ]
        for key in stale:
            del self._requests[key]
        self._last_sweep = now
        if stale:
            logger.info(f"Swept {len(stale)} expired rate limit keys")

    def __len__(self) -> int:
        return len(self._requests)
