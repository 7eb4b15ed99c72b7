from abc import ABC, abstractmethod
import math
import threading
import time
from typing import Callable

from redis import Redis


class CounterStore(ABC):
    """
    Fixed-window hit counters shared by every policy.

    `increment` is the single mutation point per key: it opens a new window
    when the previous one has elapsed and returns the post-increment count
    together with the epoch time (seconds) at which the window resets.
    """

    @abstractmethod
    def increment(self, key: str, window_ms: int) -> tuple[int, float]:
        ...

    @abstractmethod
    def decrement(self, key: str, reset_at: float) -> None:
        """
        Give back one hit, provided the window ending at `reset_at` is still
        the current one.
        """

    @abstractmethod
    def reset(self, key: str) -> None:
        ...


class MemoryCounterStore(CounterStore):
    """
    In-process store. Only correct for a single worker process.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: dict[str, tuple[float, int]] = {}  # key -> (reset_at, count)

    def increment(self, key: str, window_ms: int) -> tuple[int, float]:
        window = window_ms / 1000.0
        with self._lock:
            now = self._clock()
            reset_at, count = self._windows.get(key, (now + window, 0))
            if now >= reset_at:
                reset_at, count = now + window, 0
            count += 1
            self._windows[key] = (reset_at, count)
            self._evict_expired(now)
            return count, reset_at

    def decrement(self, key: str, reset_at: float) -> None:
        with self._lock:
            current = self._windows.get(key)
            if current is not None and current[0] == reset_at:
                self._windows[key] = (reset_at, max(current[1] - 1, 0))

    def reset(self, key: str) -> None:
        with self._lock:
            self._windows.pop(key, None)

    def _evict_expired(self, now: float) -> None:
        # Keeps the map from growing with one entry per client ever seen
        if len(self._windows) < 10_000:
            return
        stale = [k for k, (reset_at, _) in self._windows.items() if now >= reset_at]
        for k in stale:
            del self._windows[k]


# Decrements only while the key is still in the window that was counted:
# ARGV[1] is the longest TTL (ms) that window can have left.
DECREMENT_IN_WINDOW = """
local ttl = redis.call('PTTL', KEYS[1])
if ttl < 0 or ttl > tonumber(ARGV[1]) then
    return 0
end
if redis.call('DECR', KEYS[1]) < 0 then
    redis.call('SET', KEYS[1], 0, 'KEEPTTL')
end
return 1
"""

# Slack for the TTL read back in `increment` and clock drift between workers
WINDOW_TOLERANCE_MS = 1000


class RedisCounterStore(CounterStore):
    """
    Shared store for multi-instance deployments. INCR is atomic in Redis and
    the expiry is only set when the key is created, so the window is fixed.
    """

    def __init__(self, client: Redis, prefix: str = "aura:ratelimit:"):
        self.client = client
        self.prefix = prefix
        self._decrement = client.register_script(DECREMENT_IN_WINDOW)

    @classmethod
    def from_url(cls, url: str) -> "RedisCounterStore":
        return cls(Redis.from_url(url))

    def increment(self, key: str, window_ms: int) -> tuple[int, float]:
        name = self.prefix + key
        pipe = self.client.pipeline()
        pipe.incr(name)
        pipe.pexpire(name, window_ms, nx=True)
        pipe.pttl(name)
        count, _, ttl_ms = pipe.execute()
        if ttl_ms is None or ttl_ms < 0:
            ttl_ms = window_ms
        return int(count), time.time() + ttl_ms / 1000.0

    def decrement(self, key: str, reset_at: float) -> None:
        max_ttl_ms = int((reset_at - time.time()) * 1000) + WINDOW_TOLERANCE_MS
        self._decrement(keys=[self.prefix + key], args=[max_ttl_ms])

    def reset(self, key: str) -> None:
        self.client.delete(self.prefix + key)


def create_counter_store(storage_url: str | None) -> CounterStore:
    if storage_url and storage_url.startswith(("redis://", "rediss://", "unix://")):
        return RedisCounterStore.from_url(storage_url)
    return MemoryCounterStore()


def seconds_until(reset_at: float, now: float | None = None) -> int:
    now = time.time() if now is None else now
    return max(math.ceil(reset_at - now), 0)
