#!/usr/bin/env python3
"""
Bounded cache for compiled grok patterns and raw compiled regexes.

Key Features:
- Lock-free reads; one writer lock keeps the size bound under concurrent puts
- LRU eviction by last access time (ties evict the most recently inserted)
- Values held through weak references: a reclaimed value reads as a miss
- Memory-pressure admission control (emergency clear, insertion skipped)
- Background sweep of stale or reclaimed entries

A miss is always safe: the compiler simply recompiles.
"""
from __future__ import annotations

import gc
import itertools
import threading
import time
import weakref
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Optional, Tuple, TypeVar

import psutil

from ..core.config import ConfigLoader, setup_logging
from .grok import CompiledPattern, RegexHandle

logger = setup_logging(__name__)

T = TypeVar("T")

DEFAULT_MAX_SIZE = 500
HARD_LIMIT = 2000
DEFAULT_MEMORY_THRESHOLD = 0.10
CLEANUP_INTERVAL_SECONDS = 300.0
STALE_AFTER_SECONDS = 30 * 60.0
SHUTDOWN_TIMEOUT_SECONDS = 5.0

MemoryReader = Callable[[], Tuple[int, int]]

_process: Optional[psutil.Process] = None


def process_memory() -> Tuple[int, int]:
    """(resident bytes of this process, total physical memory bytes)"""
    global _process
    if _process is None:
        _process = psutil.Process()
    return _process.memory_info().rss, psutil.virtual_memory().total


@dataclass
class CacheStats:
    """Statistics for cache monitoring."""
    entry_count: int
    regex_entry_count: int
    capacity: int
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    used_memory: int = 0
    max_memory: int = 0
    memory_usage_fraction: float = 0.0

    @property
    def hit_ratio(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def __str__(self) -> str:
        return (
            f"CacheStats(grok={self.entry_count}, regex={self.regex_entry_count}, max={self.capacity}, "
            f"memory={self.memory_usage_fraction:.1%} "
            f"({self.used_memory // (1024 * 1024)}MB/{self.max_memory // (1024 * 1024)}MB))"
        )


class CacheEntry(Generic[T]):
    """A reclaimable hold on a cached value plus its last access time."""

    __slots__ = ("_ref", "last_access", "sequence")

    def __init__(self, value: T, sequence: int, now: float, weak: bool = True):
        if weak:
            self._ref: Callable[[], Optional[T]] = weakref.ref(value)
        else:
            self._ref = lambda: value
        self.last_access = now
        self.sequence = sequence

    @property
    def value(self) -> Optional[T]:
        return self._ref()

    def touch(self, now: float) -> None:
        self.last_access = now


class GrokCache:
    """Thread-safe bounded cache keyed by source pattern text."""

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        *,
        hard_limit: int = HARD_LIMIT,
        memory_threshold: float = DEFAULT_MEMORY_THRESHOLD,
        cleanup_interval: float = CLEANUP_INTERVAL_SECONDS,
        stale_after: float = STALE_AFTER_SECONDS,
        shutdown_timeout: float = SHUTDOWN_TIMEOUT_SECONDS,
        weak_values: bool = True,
        memory_reader: Optional[MemoryReader] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.hard_limit = max(1, min(hard_limit, HARD_LIMIT))
        self.max_size = max(1, min(max_size, self.hard_limit))
        if self.max_size != max_size:
            logger.debug(f"Cache size {max_size} clamped to {self.max_size}")
        self.memory_threshold = memory_threshold
        self.cleanup_interval = cleanup_interval
        self.stale_after = stale_after
        self.shutdown_timeout = shutdown_timeout
        self.weak_values = weak_values
        self._memory_reader = memory_reader or process_memory
        self._clock = clock

        self._compiled: Dict[str, CacheEntry[CompiledPattern]] = {}
        self._regexes: Dict[str, CacheEntry[RegexHandle]] = {}
        self._sequence = itertools.count()
        self._lock = threading.Lock()

        self._hits = 0
        self._misses = 0
        self._evictions = 0

        self._stop = threading.Event()
        self._cleanup_thread: Optional[threading.Thread] = None
        self._closed = False

    @classmethod
    def from_config(cls, config: ConfigLoader, **overrides) -> "GrokCache":
        options = dict(
            max_size=config.cache_max_size,
            hard_limit=config.cache_hard_limit,
            memory_threshold=config.cache_memory_threshold,
            cleanup_interval=config.cache_cleanup_interval,
            stale_after=config.cache_stale_after,
            shutdown_timeout=config.cache_shutdown_timeout,
            weak_values=config.cache_weak_values,
        )
        options.update(overrides)
        return cls(**options)

    # ------------------------------------------------------------------ API

    def get(self, source_text: str) -> Optional[CompiledPattern]:
        """Cached CompiledPattern for source_text, or None."""
        return self._get(self._compiled, source_text)

    def put(self, source_text: str, value: CompiledPattern) -> bool:
        """Cache a compiled pattern; returns False if the insertion was skipped."""
        return self._put(self._compiled, source_text, value)

    def get_regex(self, regex_text: str) -> Optional[RegexHandle]:
        return self._get(self._regexes, regex_text)

    def put_regex(self, regex_text: str, handle: RegexHandle) -> bool:
        return self._put(self._regexes, regex_text, handle)

    def stats(self) -> CacheStats:
        used, total = self._read_memory()
        return CacheStats(
            entry_count=self._live_count(self._compiled),
            regex_entry_count=self._live_count(self._regexes),
            capacity=self.max_size,
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
            used_memory=used,
            max_memory=total,
            memory_usage_fraction=used / total if total else 0.0,
        )

    def clear(self) -> None:
        """Clear all cached patterns."""
        with self._lock:
            self._compiled.clear()
            self._regexes.clear()

    def cleanup(self) -> int:
        """Remove entries unused for stale_after seconds or already reclaimed."""
        expire_before = self._clock() - self.stale_after
        removed = 0
        with self._lock:
            for mapping in (self._compiled, self._regexes):
                for key, entry in list(mapping.items()):
                    if entry.last_access < expire_before or entry.value is None:
                        del mapping[key]
                        removed += 1
        if removed:
            logger.debug(f"Cache sweep removed {removed} entries")
        return removed

    def shutdown(self) -> None:
        """Stop the background sweep (bounded wait) and drop every entry."""
        self._closed = True
        self._stop.set()
        thread = self._cleanup_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(self.shutdown_timeout)
            if thread.is_alive():
                # Daemon thread: abandoned rather than blocking shutdown
                logger.warning(f"Cache cleanup thread did not stop within {self.shutdown_timeout}s")
        self._cleanup_thread = None
        self.clear()

    def __len__(self) -> int:
        """Live compiled patterns; reclaimed entries awaiting a purge are not counted."""
        return self._live_count(self._compiled)

    def __contains__(self, source_text: object) -> bool:
        entry = self._compiled.get(source_text)  # type: ignore[arg-type]
        return entry is not None and entry.value is not None

    # ------------------------------------------------------------ internals

    def _live_count(self, mapping: Dict[str, CacheEntry[T]]) -> int:
        with self._lock:
            entries = list(mapping.values())
        return sum(1 for entry in entries if entry.value is not None)

    def _get(self, mapping: Dict[str, CacheEntry[T]], key: str) -> Optional[T]:
        entry = mapping.get(key)
        if entry is None:
            self._misses += 1
            return None

        value = entry.value
        if value is None:
            # Reclaimed: behaves as a miss and the stale entry is purged
            with self._lock:
                if mapping.get(key) is entry:
                    del mapping[key]
            self._misses += 1
            return None

        entry.touch(self._clock())
        self._hits += 1
        return value

    def _put(self, mapping: Dict[str, CacheEntry[T]], key: str, value: T) -> bool:
        if self._closed:
            return False

        if self._memory_pressure_high():
            self._emergency_cleanup()
            return False

        self._ensure_cleanup_thread()
        with self._lock:
            if key not in mapping and len(mapping) >= self.max_size:
                self._evict(mapping)
            mapping[key] = CacheEntry(value, next(self._sequence), self._clock(), self.weak_values)
        return True

    def _evict(self, mapping: Dict[str, CacheEntry[T]]) -> None:
        """Make room for one entry. Caller holds the writer lock."""
        reclaimed = [key for key, entry in mapping.items() if entry.value is None]
        for key in reclaimed:
            del mapping[key]
        if len(mapping) < self.max_size:
            return

        oldest_key = min(mapping, key=lambda k: (mapping[k].last_access, -mapping[k].sequence))
        del mapping[oldest_key]
        self._evictions += 1
        logger.debug(f"Evicted least recently used cache entry ({len(mapping)} remain)")

    def _read_memory(self) -> Tuple[int, int]:
        try:
            return self._memory_reader()
        except (psutil.Error, OSError) as e:
            logger.debug(f"Memory reading failed: {e}")
            return 0, 0

    def _memory_pressure_high(self) -> bool:
        used, total = self._read_memory()
        return total > 0 and used > total * self.memory_threshold

    def _emergency_cleanup(self) -> None:
        with self._lock:
            dropped = len(self._compiled) + len(self._regexes)
            self._compiled.clear()
            self._regexes.clear()
        gc.collect()
        logger.warning(f"Memory pressure high; cleared {dropped} cache entries and skipped caching")

    def _ensure_cleanup_thread(self) -> None:
        if self._cleanup_thread is not None or self.cleanup_interval <= 0:
            return
        with self._lock:
            if self._cleanup_thread is None and not self._closed:
                thread = threading.Thread(target=self._cleanup_loop, name="GrokCache-Cleanup", daemon=True)
                self._cleanup_thread = thread
                thread.start()

    def _cleanup_loop(self) -> None:
        while not self._stop.wait(self.cleanup_interval):
            try:
                self.cleanup()
            except Exception:
                logger.exception("Cache cleanup failed")
