"""WebSearch session store: in-memory map of sessionId → conversation handle.

Constructed once per app and shared by every request thread.  A single lock
guards the map.  Entries are bounded by ``max_sessions`` (least recently used
goes first) and, when ``ttl_s`` is positive, expire after that many idle
seconds.  Nothing is persisted.
"""

from __future__ import annotations

import threading
import time
import uuid
from collections import OrderedDict
from typing import Any, Callable, Optional, Tuple


class SessionStore:
    def __init__(
        self,
        max_sessions: int = 1000,
        ttl_s: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_sessions < 1:
            raise ValueError("max_sessions must be at least 1")
        self.max_sessions = max_sessions
        self.ttl_s = ttl_s
        self._clock = clock
        self._lock = threading.Lock()
        # session_id -> (handle, last_used)
        self._entries: "OrderedDict[str, Tuple[Any, float]]" = OrderedDict()

    def _new_id(self) -> str:
        while True:
            session_id = uuid.uuid4().hex
            if session_id not in self._entries:
                return session_id

    def _expired(self, last_used: float, now: float) -> bool:
        return self.ttl_s > 0 and now - last_used > self.ttl_s

    def _purge_expired(self, now: float) -> None:
        if self.ttl_s <= 0:
            return
        # oldest first, so stop at the first live entry
        while self._entries:
            session_id, (_, last_used) = next(iter(self._entries.items()))
            if not self._expired(last_used, now):
                break
            del self._entries[session_id]

    def create(self, handle: Any) -> Tuple[str, Any]:
        """Register *handle* under a fresh sessionId and return both."""
        with self._lock:
            now = self._clock()
            self._purge_expired(now)
            session_id = self._new_id()
            self._entries[session_id] = (handle, now)
            while len(self._entries) > self.max_sessions:
                self._entries.popitem(last=False)
            return session_id, handle

    def get(self, session_id: str) -> Optional[Any]:
        """Return the handle for *session_id*, or None if unknown or expired."""
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is None:
                return None
            handle, last_used = entry
            now = self._clock()
            if self._expired(last_used, now):
                del self._entries[session_id]
                return None
            self._entries[session_id] = (handle, now)
            self._entries.move_to_end(session_id)
            return handle

    def discard(self, session_id: str) -> None:
        with self._lock:
            self._entries.pop(session_id, None)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
