"""Tests for the caller-owned decode cache."""
from __future__ import annotations

import threading

import pytest
from PIL import Image

from memory_composer.cache import ImageCache


def _img(colour="red") -> Image.Image:
    return Image.new("RGB", (2, 3), colour)


def test_miss_then_hit() -> None:
    cache = ImageCache()
    assert cache.get("nope") is None
    image = _img()
    cache.put("k", image)
    entry = cache.get("k")
    assert entry.image is image
    assert (entry.size, entry.mode) == ((2, 3), "RGB")
    assert cache.stats() == {"entries": 1, "hits": 1, "misses": 1}


def test_least_recently_used_is_evicted_first() -> None:
    cache = ImageCache(max_size=2, cleanup_threshold=1.0)
    cache.put("a", _img("red"))
    cache.put("b", _img("green"))
    cache.get("a")
    cache.put("c", _img("blue"))

    assert "b" not in cache
    assert "a" in cache and "c" in cache


def test_burst_eviction_keeps_half() -> None:
    cache = ImageCache(max_size=10, cleanup_threshold=0.8)
    for i in range(9):
        cache.put(str(i), _img())
    # the 9th insert found 8 entries and trimmed back to 5 first
    assert len(cache) == 6
    assert "0" not in cache and "8" in cache


def test_cleanup_and_clear() -> None:
    cache = ImageCache(max_size=10, cleanup_threshold=1.0)
    for i in range(8):
        cache.put(str(i), _img())
    cache.cleanup()
    assert len(cache) == 5
    assert "7" in cache and "2" not in cache
    cache.clear()
    assert cache.stats() == {"entries": 0, "hits": 0, "misses": 0}


@pytest.mark.parametrize("kwargs", [{"max_size": 0}, {"cleanup_threshold": 0}, {"cleanup_threshold": 1.5}])
def test_invalid_settings(kwargs) -> None:
    with pytest.raises(ValueError):
        ImageCache(**kwargs)


def test_thread_safety() -> None:
    """Concurrent puts and gets stay bounded by ``max_size``."""

    cache = ImageCache(max_size=10)
    image = _img()

    def worker(start: int) -> None:
        for i in range(start, start + 5):
            cache.put(str(i), image)
            cache.get(str(i))

    threads = [threading.Thread(target=worker, args=(n * 5,)) for n in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(cache) <= cache.max_size
