"""Per-run shared state: response cache, registry call counter, error counter."""

from __future__ import annotations

import threading
from typing import Any, List, Optional, Tuple

from registry.cache import MemoryResponseCache


class RunContext:
    """Process-scoped state threaded through the client and the engine.

    Several runs in one process (tests, library use) each get their own
    context and therefore never share counters or an in-memory cache.
    """

    def __init__(self, cache: Optional[Any] = None):
        self.cache = cache if cache is not None else MemoryResponseCache()
        self._lock = threading.Lock()
        self._registry_calls = 0
        self._errors: List[Tuple[str, str]] = []

    @property
    def registry_calls(self) -> int:
        """Number of network fetches issued so far."""
        with self._lock:
            return self._registry_calls

    def count_registry_call(self) -> int:
        with self._lock:
            self._registry_calls += 1
            return self._registry_calls

    @property
    def error_count(self) -> int:
        with self._lock:
            return len(self._errors)

    @property
    def errors(self) -> List[Tuple[str, str]]:
        """(subject, message) pairs for every recorded hard failure."""
        with self._lock:
            return list(self._errors)

    def record_error(self, subject: str, error: BaseException) -> None:
        with self._lock:
            self._errors.append((subject, str(error)))

    def close(self) -> None:
        close = getattr(self.cache, "close", None)
        if close is not None:
            close()
