from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable


@dataclass
class _Attempt:
    count: int
    last_attempt: float
    locked_until: float = 0.0


class LoginAttemptLimiter:
    """Failed-login counter with lockout, keyed by ``client:account``.

    Entries expire ``entry_ttl`` seconds after their last failure (or when
    their lockout ends, whichever is later) and the map never holds more
    than ``max_entries`` keys; the least recently touched key is evicted
    first when it is full.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        lockout_seconds: float = 15 * 60,
        max_entries: int = 10000,
        entry_ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_attempts = max_attempts
        self.lockout_seconds = float(lockout_seconds)
        self.max_entries = max_entries
        self.entry_ttl = float(entry_ttl if entry_ttl is not None else lockout_seconds)
        self._clock = clock
        self._entries: "OrderedDict[str, _Attempt]" = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def make_key(client: str | None, account: str | None) -> str:
        return f"{client or 'unknown'}:{(account or '').strip().lower()}"

    def __len__(self) -> int:
        return len(self._entries)

    def _expired(self, attempt: _Attempt, now: float) -> bool:
        return now >= max(attempt.last_attempt + self.entry_ttl, attempt.locked_until)

    def _evict(self, now: float) -> None:
        for key in [k for k, a in self._entries.items() if self._expired(a, now)]:
            del self._entries[key]
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def locked_for(self, key: str) -> float:
        """Seconds left on the lockout for ``key`` (0 when not locked)."""
        now = self._clock()
        with self._lock:
            self._evict(now)
            attempt = self._entries.get(key)
            if attempt is None or attempt.locked_until <= now:
                return 0.0
            return attempt.locked_until - now

    def record_failure(self, key: str) -> tuple[bool, int]:
        """Count a failed attempt.

        Returns ``(locked, attempts_remaining)``. Reaching ``max_attempts``
        locks the key for ``lockout_seconds`` and starts a fresh count once
        the lockout is over.
        """
        now = self._clock()
        with self._lock:
            self._evict(now)
            attempt = self._entries.get(key)
            if attempt is None:
                attempt = _Attempt(count=0, last_attempt=now)
                self._entries[key] = attempt
            attempt.count += 1
            attempt.last_attempt = now
            self._entries.move_to_end(key)
            if attempt.count >= self.max_attempts:
                attempt.locked_until = now + self.lockout_seconds
                attempt.count = 0
                self._evict(now)
                return True, 0
            self._evict(now)
            return False, self.max_attempts - attempt.count

    def reset(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)
