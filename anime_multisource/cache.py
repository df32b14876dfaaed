#!/usr/bin/env python3
"""
Per-catalog response caches with a shared durable snapshot

Each source client owns one ResponseCache (its own TTL). All caches register
with a single PersistentCache which:
1. Lazily loads provider-cache.json the first time any cache is read
2. Re-writes the whole snapshot after every successful store

Cached values must be JSON-native (dicts, lists, strings, numbers). Clients
store raw catalog payloads and build dataclasses on read, so the snapshot never
interprets what it holds.
"""

import json
import logging
import os
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from anime_multisource.constants import PERSISTENT_CACHE_MAX_AGE

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    cached_at: float
    data: Any


class ResponseCache:
    """TTL-bounded key/value cache for one catalog (thread-safe per key)"""

    def __init__(self, name: str, ttl: float, clock: Callable[[], float] = time.time):
        self.name = name
        self.ttl = ttl
        self.clock = clock
        self.persistent: Optional['PersistentCache'] = None
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self.cache_hits = 0
        self.cache_misses = 0

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value if younger than the TTL, else None"""
        if self.persistent:
            self.persistent.ensure_loaded()

        now = self.clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                age = now - entry.cached_at
                if age < self.ttl:
                    self.cache_hits += 1
                    logger.debug(f"{self.name} cache hit for {key} (age: {age / 60:.1f} minutes)")
                    return entry.data
                # Expired: drop so snapshots stop carrying it
                del self._entries[key]
            self.cache_misses += 1
        return None

    def put(self, key: str, value: Any):
        """Store a successful result and persist all caches (best effort)"""
        with self._lock:
            self._entries[key] = CacheEntry(self.clock(), value)
        logger.debug(f"{self.name} cache stored for {key}")
        if self.persistent:
            self.persistent.save()

    def invalidate(self, key: str):
        with self._lock:
            self._entries.pop(key, None)

    def snapshot(self, max_age: float) -> Dict[str, Dict]:
        """Live entries younger than max_age, ready for JSON"""
        now = self.clock()
        with self._lock:
            return {
                key: {'cached_at': entry.cached_at, 'data': entry.data}
                for key, entry in self._entries.items()
                if now - entry.cached_at < min(max_age, self.ttl)
            }

    def restore(self, entries: Dict[str, Dict], max_age: float) -> int:
        """Load snapshot entries younger than max_age; returns count restored"""
        now = self.clock()
        restored = 0
        with self._lock:
            for key, raw in entries.items():
                try:
                    cached_at = float(raw['cached_at'])
                except (KeyError, TypeError, ValueError):
                    continue
                if now - cached_at < max_age:
                    self._entries[key] = CacheEntry(cached_at, raw.get('data'))
                    restored += 1
        return restored

    def __len__(self) -> int:
        return len(self._entries)

    def get_cache_stats(self) -> Dict:
        """Get cache performance statistics"""
        total = self.cache_hits + self.cache_misses
        hit_rate = (self.cache_hits / total * 100) if total > 0 else 0

        return {
            'hits': self.cache_hits,
            'misses': self.cache_misses,
            'total_queries': total,
            'hit_rate': hit_rate,
            'cache_size': len(self._entries)
        }


class PersistentCache:
    """Durable snapshot of every registered ResponseCache"""

    def __init__(self, path: Path, max_age: float = PERSISTENT_CACHE_MAX_AGE):
        self.path = Path(path)
        self.max_age = max_age
        self.caches: Dict[str, ResponseCache] = {}
        self._loaded = False
        self._load_lock = threading.Lock()
        self._write_lock = threading.Lock()

    def register(self, cache: ResponseCache) -> ResponseCache:
        self.caches[cache.name] = cache
        cache.persistent = self
        return cache

    def ensure_loaded(self):
        """Load the snapshot once per process; missing/corrupt files are ignored"""
        if self._loaded:
            return

        with self._load_lock:
            if self._loaded:
                return
            try:
                self._load()
            finally:
                self._loaded = True

    def _load(self):
        if not self.path.exists():
            logger.debug(f"No persistent cache file found at {self.path}")
            return

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                snapshot = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not load persistent cache from {self.path}: {e}. Starting fresh.")
            return

        if not isinstance(snapshot, dict):
            logger.warning(f"Persistent cache at {self.path} is not a JSON object, ignoring")
            return

        total = 0
        for name, cache in self.caches.items():
            entries = snapshot.get(name)
            if isinstance(entries, dict):
                total += cache.restore(entries, self.max_age)

        logger.info(f"Persistent cache loaded from {self.path} ({total} entries)")

    def save(self):
        """Serialize all live entries; failures are logged, memory stays authoritative"""
        snapshot = {name: cache.snapshot(self.max_age) for name, cache in self.caches.items()}

        try:
            with self._write_lock:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path = self.path.with_suffix(self.path.suffix + '.tmp')
                with open(tmp_path, 'w', encoding='utf-8') as f:
                    json.dump(snapshot, f, ensure_ascii=False, separators=(',', ':'))
                os.replace(tmp_path, self.path)
            logger.debug(f"Persistent cache saved to {self.path}")
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Failed to persist caches to {self.path}: {e}")
