"""
Report Cache

Tag-based memoization for report data and metric results.

- Entries are registered under one or more tags; revalidate(tags) drops
  every entry carrying any of them and leaves the rest alone
- Two policies: INDEFINITE (until revalidated) or a short TTL; expired
  entries are swept on every miss
- No lock around population: concurrent misses may both compute, the
  last result written wins. Computations are pure, so this only costs work
- The backing store is injected (MemoryCacheStore by default)
"""

import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Iterable, List, Optional, Protocol, Set, Tuple, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachePolicy:
    """How long an entry lives; ttl_seconds=None means until revalidated"""
    ttl_seconds: Optional[float] = None

    @classmethod
    def ttl(cls, seconds: float) -> "CachePolicy":
        if seconds <= 0:
            raise ValueError("TTL must be positive")
        return cls(ttl_seconds=float(seconds))

    @property
    def is_indefinite(self) -> bool:
        return self.ttl_seconds is None


CachePolicy.INDEFINITE = CachePolicy()


@dataclass
class CacheEntry:
    value: Any
    tags: FrozenSet[str]
    expires_at: Optional[float] = None
    created_at: float = field(default=0.0)

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class CacheStore(Protocol):
    """Key-value backend with a tag index"""

    def get(self, key: str) -> Optional[CacheEntry]: ...

    def set(self, key: str, entry: CacheEntry) -> None: ...

    def delete(self, key: str) -> bool: ...

    def keys_for_tag(self, tag: str) -> Set[str]: ...

    def items(self) -> List[Tuple[str, CacheEntry]]: ...

    def clear(self) -> None: ...

    def __len__(self) -> int: ...


class MemoryCacheStore:
    """In-process store; one per ReportCache"""

    def __init__(self):
        self._entries: Dict[str, CacheEntry] = {}
        self._tag_index: Dict[str, Set[str]] = {}

    def get(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def set(self, key: str, entry: CacheEntry) -> None:
        # Re-registering a key replaces its old tag memberships
        self.delete(key)
        self._entries[key] = entry
        for tag in entry.tags:
            self._tag_index.setdefault(tag, set()).add(key)

    def delete(self, key: str) -> bool:
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        for tag in entry.tags:
            keys = self._tag_index.get(tag)
            if keys is not None:
                keys.discard(key)
                if not keys:
                    del self._tag_index[tag]
        return True

    def keys_for_tag(self, tag: str) -> Set[str]:
        return set(self._tag_index.get(tag, ()))

    def items(self) -> List[Tuple[str, CacheEntry]]:
        return list(self._entries.items())

    def clear(self) -> None:
        self._entries.clear()
        self._tag_index.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries


ComputeFn = Callable[[], Union[Any, Awaitable[Any]]]


class ReportCache:
    """Explicit cache service shared by every report caller"""

    def __init__(
        self,
        store: Optional[CacheStore] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store if store is not None else MemoryCacheStore()
        self._clock = clock
        self.hits = 0
        self.misses = 0

    async def get_or_compute(
        self,
        key: str,
        tags: Iterable[str],
        policy: CachePolicy,
        compute_fn: ComputeFn,
    ) -> Any:
        """
        Return the cached value for key, computing and storing it on a miss.

        Args:
            key: Cache key (include every input that changes the result)
            tags: Tags the entry is invalidated by
            policy: CachePolicy.INDEFINITE or CachePolicy.ttl(seconds)
            compute_fn: Sync or async zero-argument callable

        Exceptions from compute_fn propagate and nothing is stored.
        """
        now = self._clock()
        entry = self.store.get(key)
        if entry is not None and not entry.is_expired(now):
            self.hits += 1
            logger.debug(f"[ReportCache] hit {key}")
            return entry.value

        if entry is not None:
            logger.debug(f"[ReportCache] expired {key}")
            self.store.delete(key)

        self.misses += 1
        logger.debug(f"[ReportCache] miss {key}")
        self.purge_expired()

        value = compute_fn()
        if inspect.isawaitable(value):
            value = await value

        stored_at = self._clock()
        expires_at = None if policy.is_indefinite else stored_at + policy.ttl_seconds
        self.store.set(key, CacheEntry(
            value=value,
            tags=frozenset(tags),
            expires_at=expires_at,
            created_at=stored_at,
        ))
        return value

    def peek(self, key: str) -> Optional[Any]:
        """Cached value without computing, None when absent or expired"""
        entry = self.store.get(key)
        if entry is None or entry.is_expired(self._clock()):
            return None
        return entry.value

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns count removed."""
        now = self._clock()
        expired = [key for key, entry in self.store.items() if entry.is_expired(now)]
        return sum(1 for key in expired if self.store.delete(key))

    def revalidate(self, tags: Iterable[str]) -> int:
        """Drop every entry registered under any of the tags. Returns count removed."""
        tag_list = [t for t in tags if t]
        keys: Set[str] = set()
        for tag in tag_list:
            keys |= self.store.keys_for_tag(tag)

        removed = sum(1 for key in keys if self.store.delete(key))
        logger.info(f"[ReportCache] Revalidated tags={sorted(set(tag_list))} removed={removed}")
        return removed

    def clear(self) -> None:
        self.store.clear()
        self.hits = 0
        self.misses = 0

    def stats(self) -> Dict[str, int]:
        return {"entries": len(self.store), "hits": self.hits, "misses": self.misses}
