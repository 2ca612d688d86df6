"""Short-lived record of dispatched notifications.

A notification is identified by its Fingerprint. Records expire after the
retention window and are evicted lazily by PresenceJanitor via sweep().

The fingerprint carries the emission time in milliseconds, so only repeats
emitted within the same millisecond collide. Identical payloads sent a few
milliseconds apart are both delivered.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple
import hashlib
import heapq
import json
import threading
import time

DEFAULT_RETENTION_SECONDS = 300
DIGEST_LENGTH = 16


def payload_digest(payload: Any) -> str:
    serial = json.dumps(payload, sort_keys=True, default=str, ensure_ascii=False).encode()
    return hashlib.sha256(serial).hexdigest()[:DIGEST_LENGTH]


@dataclass(frozen=True)
class Fingerprint:
    event: str
    user_id: int
    digest: str
    emitted_at_ms: int

    @classmethod
    def build(cls, event: str, user_id: int, payload: Any, now: float) -> "Fingerprint":
        return cls(event=event, user_id=user_id, digest=payload_digest(payload), emitted_at_ms=int(now * 1000))

    def __str__(self) -> str:
        return f"{self.event}:{self.user_id}:{self.digest}:{self.emitted_at_ms}"


class DedupCache:
    def __init__(self, retention_seconds: float = DEFAULT_RETENTION_SECONDS, clock: Callable[[], float] = time.time) -> None:
        self.retention_seconds = retention_seconds
        self._clock = clock
        # fingerprint -> expires_at; the heap indexes the same records by expiry
        self._expiry: Dict[Fingerprint, float] = {}
        self._heap: List[Tuple[float, int, Fingerprint]] = []
        self._seq = 0
        self._lock = threading.Lock()

    def try_mark(self, fingerprint: Fingerprint, now: Optional[float] = None) -> bool:
        """Record the fingerprint; False if it is already held within the window."""
        now = self._clock() if now is None else now
        with self._lock:
            expires_at = self._expiry.get(fingerprint)
            if expires_at is not None and expires_at > now:
                return False
            expires_at = now + self.retention_seconds
            self._expiry[fingerprint] = expires_at
            self._seq += 1
            heapq.heappush(self._heap, (expires_at, self._seq, fingerprint))
            return True

    def release(self, fingerprint: Fingerprint) -> None:
        """Forget a fingerprint whose dispatch did not go through."""
        with self._lock:
            self._expiry.pop(fingerprint, None)

    def sweep(self, now: Optional[float] = None) -> int:
        """Evict every record with expires_at <= now. Returns the number evicted."""
        now = self._clock() if now is None else now
        evicted = 0
        with self._lock:
            while self._heap and self._heap[0][0] <= now:
                expires_at, _, fingerprint = heapq.heappop(self._heap)
                # Stale heap entries (released or re-marked) are skipped
                if self._expiry.get(fingerprint) == expires_at:
                    del self._expiry[fingerprint]
                    evicted += 1
            if not self._expiry:
                self._heap.clear()
        return evicted

    def __contains__(self, fingerprint: object) -> bool:
        with self._lock:
            return fingerprint in self._expiry

    def __len__(self) -> int:
        with self._lock:
            return len(self._expiry)
