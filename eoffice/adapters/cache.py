# eoffice/adapters/cache.py
from __future__ import annotations

import logging
from threading import Lock
from typing import Any, Dict, Optional

from cachetools import TTLCache

from eoffice.models import LetterType, Profile

logger = logging.getLogger(__name__)


class CachedStorage:
    """
    Wraps a storage adapter and caches the reference lookups (profiles and
    letter types) the workflow repeats on every submit/approve.

    Letters and counters always go straight to the wrapped adapter.
    """

    def __init__(self, inner: Any, *, maxsize: int = 512, ttl: float = 60):
        self._inner = inner
        self._profiles: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl)
        self._types: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl)
        self._lock = Lock()
        self.hits = 0
        self.misses = 0

    def __getattr__(self, name: str) -> Any:
        return getattr(self._inner, name)

    def _cached(self, cache: TTLCache, key: str, load):
        with self._lock:
            if key in cache:
                self.hits += 1
                return cache[key]
        self.misses += 1
        value = load(key)
        if value is not None:
            with self._lock:
                cache[key] = value
        return value

    def get_profile(self, uid: str) -> Optional[Profile]:
        return self._cached(self._profiles, uid, self._inner.get_profile)

    def get_letter_type(self, code: str) -> Optional[LetterType]:
        return self._cached(self._types, code, self._inner.get_letter_type)

    def upsert_user(self, uid: str, record: Dict[str, Any]) -> None:
        self._inner.upsert_user(uid, record)
        with self._lock:
            self._profiles.pop(uid, None)

    def upsert_letter_type(self, record: Dict[str, Any]) -> LetterType:
        lt = self._inner.upsert_letter_type(record)
        with self._lock:
            self._types.pop(lt.code, None)
        return lt
