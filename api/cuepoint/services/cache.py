from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from cuepoint.core.config import get_settings


@dataclass(slots=True)
class _CacheEntry:
    value: Any
    stored_at: float
    tags: frozenset[str]


class TTLCache:
    """Small in-process read cache with tag invalidation.

    Expired entries are dropped when read. When full, the oldest insertion is
    evicted first.
    """

    def __init__(self, ttl_seconds: float, max_entries: int, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max(1, max_entries)
        self._clock = clock
        self._entries: OrderedDict[Hashable, _CacheEntry] = OrderedDict()

    def get(self, key: Hashable) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self.ttl_seconds:
            del self._entries[key]
            return None
        return entry.value

    def set(self, key: Hashable, value: Any, *, tags: set[str] | None = None) -> None:
        self._entries.pop(key, None)
        self._entries[key] = _CacheEntry(value=value, stored_at=self._clock(), tags=frozenset(tags or ()))
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def invalidate_tag(self, tag: str) -> int:
        stale_keys = [key for key, entry in self._entries.items() if tag in entry.tags]
        for key in stale_keys:
            del self._entries[key]
        return len(stale_keys)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def company_jobs_tag(company_account_id: str) -> str:
    return f"company-jobs-{company_account_id}"


def company_groups_tag(company_account_id: str) -> str:
    return f"company-groups-{company_account_id}"


@lru_cache
def get_company_groups_cache() -> TTLCache:
    settings = get_settings()
    return TTLCache(
        ttl_seconds=settings.company_groups_cache_ttl_seconds,
        max_entries=settings.company_groups_cache_max_entries,
    )


@lru_cache
def get_company_jobs_cache() -> TTLCache:
    settings = get_settings()
    return TTLCache(
        ttl_seconds=settings.company_jobs_cache_ttl_seconds,
        max_entries=settings.company_jobs_cache_max_entries,
    )
