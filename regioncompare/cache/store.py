"""TTL-bounded, hash-verified cache for upstream API responses."""
import hashlib
import json
import logging
import os
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from ..errors import CacheIntegrityError
from ..regions import canonical_region

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 86400


def _canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def content_hash(payload: Any) -> str:
    """SHA-256 of the canonical JSON encoding of a payload."""
    return hashlib.sha256(_canonical_json(payload).encode("utf-8")).hexdigest()


def make_cache_key(namespace: str, api_version: str, region: str,
                   params: Optional[Dict[str, Any]] = None) -> str:
    """Build a stable cache key for a logical upstream query.

    The key depends only on the query's content, so identical parameters map
    to the same entry across process restarts.

    Args:
        namespace: Provider namespace or synthetic provider id.
        api_version: Primary API version the entry answers for.
        region: Azure location; canonicalized before hashing.
        params: Optional extra query parameters.

    Returns:
        str: Hex digest usable as a file name.
    """
    logical = {
        "namespace": namespace.lower(),
        "api_version": api_version,
        "region": canonical_region(region),
        "params": params or {},
    }
    return content_hash(logical)


@dataclass(frozen=True)
class CacheEntry:
    """A stored payload plus the data needed to validate it."""
    key: str
    timestamp: float
    content_hash: str
    payload: Any

    @classmethod
    def create(cls, key: str, payload: Any, timestamp: float) -> "CacheEntry":
        return cls(key, timestamp, content_hash(payload), payload)

    def verify(self) -> None:
        """Raise CacheIntegrityError if the payload does not match its hash."""
        if content_hash(self.payload) != self.content_hash:
            raise CacheIntegrityError(f"Content hash mismatch for cache entry {self.key}")

    def is_fresh(self, now: float, ttl_seconds: float) -> bool:
        return now - self.timestamp < ttl_seconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "timestamp": self.timestamp,
            "content_hash": self.content_hash,
            "payload": self.payload,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheEntry":
        try:
            return cls(
                key=data["key"],
                timestamp=float(data["timestamp"]),
                content_hash=data["content_hash"],
                payload=data["payload"],
            )
        except (KeyError, TypeError, ValueError) as e:
            raise CacheIntegrityError(f"Malformed cache entry: {e}") from e


class CacheStore(ABC):
    """Cache contract shared by the file and in-memory stores.

    ``get`` returns None on a miss: absent, expired, or failing its hash check.
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS,
                 clock: Callable[[], float] = time.time):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    def get(self, key: str) -> Optional[Any]:
        """Return the cached payload for key, or None on a miss."""
        try:
            entry = self._read(key)
        except CacheIntegrityError as e:
            logger.warning("Discarding unreadable cache entry %s: %s", key, e)
            return None
        if entry is None:
            logger.debug("Cache miss: %s", key)
            return None
        if not entry.is_fresh(self.clock(), self.ttl_seconds):
            logger.debug("Cache expired: %s (age %.0fs, TTL %ss)",
                         key, self.clock() - entry.timestamp, self.ttl_seconds)
            return None
        try:
            entry.verify()
        except CacheIntegrityError as e:
            logger.warning("%s; treating as miss", e)
            return None
        logger.debug("Cache hit: %s", key)
        return entry.payload

    def put(self, key: str, payload: Any) -> None:
        """Store payload under key, fully replacing any previous entry."""
        if payload is None:
            raise ValueError("Cannot cache a None payload")
        entry = CacheEntry.create(key, payload, self.clock())
        self._write(entry)
        logger.debug("Cached data: %s", key)

    @abstractmethod
    def invalidate(self, key: str) -> bool:
        """Remove a single entry. Returns True if something was removed."""

    @abstractmethod
    def clear(self) -> int:
        """Remove every entry. Returns the number of entries removed."""

    @abstractmethod
    def stats(self) -> Dict[str, int]:
        """Entry count and approximate size in bytes."""

    @abstractmethod
    def _read(self, key: str) -> Optional[CacheEntry]:
        pass

    @abstractmethod
    def _write(self, entry: CacheEntry) -> None:
        pass


class FileCacheStore(CacheStore):
    """Cache persisted as one JSON file per key under a directory."""

    def __init__(self, cache_dir: str = ".cache", ttl_seconds: float = DEFAULT_TTL_SECONDS,
                 clock: Callable[[], float] = time.time):
        """Initialize the store.

        Args:
            cache_dir: Directory holding the entries; created if missing.
            ttl_seconds: Maximum entry age before it is treated as a miss.
            clock: Time source, injectable for tests.
        """
        super().__init__(ttl_seconds, clock)
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        logger.debug("File cache at %s, TTL %ss", self.cache_dir, ttl_seconds)

    def _path(self, key: str) -> Path:
        return self.cache_dir / f"{key}.json"

    def _read(self, key: str) -> Optional[CacheEntry]:
        path = self._path(key)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            raise CacheIntegrityError(f"Cannot read {path}: {e}") from e
        if not isinstance(data, dict):
            raise CacheIntegrityError(f"Unexpected cache file content in {path}")
        return CacheEntry.from_dict(data)

    def _write(self, entry: CacheEntry) -> None:
        # Readers only ever see a complete entry.
        fd, tmp_path = tempfile.mkstemp(dir=self.cache_dir, prefix=".tmp-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(entry.to_dict(), f, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._path(entry.key))
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def invalidate(self, key: str) -> bool:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            return False
        logger.info("Invalidated cache entry %s", key)
        return True

    def clear(self) -> int:
        removed = 0
        for path in self.cache_dir.glob("*.json"):
            path.unlink()
            removed += 1
        logger.info("Cleared %d cache entries from %s", removed, self.cache_dir)
        return removed

    def stats(self) -> Dict[str, int]:
        files = list(self.cache_dir.glob("*.json"))
        return {
            "entries": len(files),
            "bytes": sum(p.stat().st_size for p in files),
        }


class MemoryCacheStore(CacheStore):
    """In-process cache with the same validation rules as FileCacheStore."""

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS,
                 clock: Callable[[], float] = time.time):
        super().__init__(ttl_seconds, clock)
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()

    def _read(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def _write(self, entry: CacheEntry) -> None:
        # Stored as a JSON round-tripped copy, detached from the caller.
        stored = CacheEntry(entry.key, entry.timestamp, entry.content_hash,
                            json.loads(_canonical_json(entry.payload)))
        with self._lock:
            self._entries[entry.key] = stored

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()
        return removed

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "entries": len(self._entries),
                "bytes": sum(len(_canonical_json(e.to_dict())) for e in self._entries.values()),
            }
