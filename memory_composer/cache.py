"""Optional decode cache shared by renders of the same memories.

The engine keeps no state between renders, so there is no module level
cache.  A caller that re-renders the same references (a preview refreshed
on every slider move, say) creates one :class:`ImageCache` and hands it to
:class:`~memory_composer.loader.ResourceLoader`; the cache lives exactly as
long as the caller keeps it.

Entries are keyed by :meth:`ImageReference.digest`.  Cached bitmaps are
never mutated: the compositor only reads them and the effect pipeline
always returns new images.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from threading import RLock
from typing import Dict, Optional, Tuple

from PIL import Image

from . import config


@dataclass(frozen=True, slots=True)
class CacheEntry:
    image: Image.Image
    size: Tuple[int, int]
    mode: str


class ImageCache:
    """Thread-safe least-recently-used store of decoded bitmaps.

    Once the entry count reaches ``max_size * cleanup_threshold`` the oldest
    entries are dropped until the cache is back at half capacity, so bursts
    of new references do not evict one entry per insert.
    """

    def __init__(
        self,
        max_size: int = config.MAX_CACHE_SIZE,
        cleanup_threshold: float = config.CACHE_CLEANUP_THRESHOLD,
    ) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        if not 0 < cleanup_threshold <= 1:
            raise ValueError("cleanup_threshold must be in (0, 1]")
        self.max_size = max_size
        self.cleanup_threshold = cleanup_threshold
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = RLock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the entry for ``key`` and mark it most recently used."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return entry

    def put(self, key: str, image: Image.Image) -> CacheEntry:
        entry = CacheEntry(image, image.size, image.mode)
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
            elif len(self._entries) >= self.max_size * self.cleanup_threshold:
                self._evict()
            self._entries[key] = entry
        return entry

    def _evict(self) -> None:
        keep = max(self.max_size // 2, 1)
        while len(self._entries) > keep:
            self._entries.popitem(last=False)

    def cleanup(self) -> None:
        """Drop least recently used entries down to half capacity."""
        with self._lock:
            self._evict()

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = self.misses = 0

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {"entries": len(self._entries), "hits": self.hits, "misses": self.misses}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries


__all__ = ["CacheEntry", "ImageCache"]
