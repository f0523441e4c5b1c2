"""Read-through TTL cache for the public room listing."""
from __future__ import annotations

from typing import Callable, Generic, Optional, TypeVar

from cachetools import TTLCache

T = TypeVar("T")


class SimpleTTLCache(Generic[T]):
    """Holds a handful of computed listings; any room mutation clears it."""

    def __init__(self, ttl: int, maxsize: int = 16) -> None:
        self._cache: TTLCache[str, T] = TTLCache(maxsize=maxsize, ttl=ttl)
        self.enabled = ttl > 0

    def get(self, key: str) -> Optional[T]:
        return self._cache.get(key)

    def set(self, key: str, value: T) -> None:
        if self.enabled:
            self._cache[key] = value

    def get_or_load(self, key: str, loader: Callable[[], T]) -> T:
        value = self.get(key)
        if value is None:
            value = loader()
            self.set(key, value)
        return value

    def clear(self) -> None:
        self._cache.clear()
