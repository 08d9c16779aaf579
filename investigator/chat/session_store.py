from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Callable, List, Optional, Tuple

from investigator.models import LlmMessage


class SessionStore:
    """
    Conversation history keyed by session id.

    Eviction policy: an entry expires ``ttl_seconds`` after its last write, and
    once more than ``max_sessions`` entries exist the least recently used one
    is dropped. Reads refresh recency but not the TTL. Reads and writes copy
    the message list, so callers never share a cached list.
    """

    def __init__(
        self,
        ttl_seconds: float = 3600.0,
        max_sessions: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_sessions < 1:
            raise ValueError("max_sessions must be >= 1")
        self.ttl_seconds = ttl_seconds
        self.max_sessions = max_sessions
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, List[LlmMessage]]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, session_id: str) -> Optional[List[LlmMessage]]:
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is None:
                return None

            written_at, messages = entry
            if self._clock() - written_at > self.ttl_seconds:
                del self._entries[session_id]
                return None

            self._entries.move_to_end(session_id)
            return list(messages)

    def set(self, session_id: str, messages: List[LlmMessage]) -> None:
        with self._lock:
            self._entries[session_id] = (self._clock(), list(messages))
            self._entries.move_to_end(session_id)
            while len(self._entries) > self.max_sessions:
                self._entries.popitem(last=False)

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._entries.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._entries)
