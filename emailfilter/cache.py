"""Short-lived in-process cache for burst protection."""

from __future__ import annotations

import hashlib
import threading
import time
from collections import OrderedDict
from typing import Optional, Sequence, Tuple

from .models import EvaluationResult

CACHE_TTL = 300  # seconds
CACHE_PREFIX = "email_filter:"


def fingerprint(email: str, fast: bool, enforce_score: bool, allowed_tlds: Sequence[str]) -> str:
    raw = "|".join([email, str(int(fast)), str(int(enforce_score)), "|".join(allowed_tlds)])
    return CACHE_PREFIX + hashlib.md5(raw.encode("utf-8")).hexdigest()


class ResultCache:
    """Thread-safe TTL cache of final evaluation results."""

    def __init__(self, ttl: float = CACHE_TTL, max_items: int = 10000):
        self.ttl = ttl
        self.max_items = max_items
        self._lock = threading.Lock()
        self._store: "OrderedDict[str, Tuple[float, EvaluationResult]]" = OrderedDict()

    def get(self, key: str) -> Optional[EvaluationResult]:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            expires_at, result = entry
            if time.monotonic() >= expires_at:
                del self._store[key]
                return None
            return result

    def set(self, key: str, result: EvaluationResult) -> None:
        with self._lock:
            self._store.pop(key, None)
            while len(self._store) >= self.max_items:
                self._store.popitem(last=False)
            self._store[key] = (time.monotonic() + self.ttl, result)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)


DEFAULT_CACHE = ResultCache()
