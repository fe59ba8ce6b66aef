"""
In-process cache of resolved permission sets, keyed by user id.

Entries expire lazily: a read past the TTL drops the entry and reports a miss.
There is no background sweep; memory is bounded by the number of distinct
users ever checked.
"""
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from authz.utils import get_logger


log = get_logger(__name__)

DEFAULT_TTL_SECONDS = 300.0


@dataclass(frozen=True)
class CacheEntry:
    permissions: frozenset[str]
    timestamp: float


class PermissionCache:
    """
    Thread-safe TTL cache mapping user id -> frozenset of "resource:action".

    A loader takes `generation(user_id)` before it goes to the store and passes
    it back to `put`. The generation moves when that user is invalidated or
    when the whole cache is flushed, so a slow load cannot resurrect grants
    that a mutation just revoked. Invalidating one user leaves loads for every
    other user alone.
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._global_generation = 0
        self._user_generations: Dict[str, int] = {}
        self._lock = threading.Lock()

    def generation(self, user_id: str) -> Tuple[int, int]:
        with self._lock:
            return self._generation_locked(user_id)

    def _generation_locked(self, user_id: str) -> Tuple[int, int]:
        return self._global_generation, self._user_generations.get(user_id, 0)

    def get(self, user_id: str) -> Optional[frozenset[str]]:
        """Return the fresh permission set for `user_id`, or None on a miss."""
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                return None
            if self._clock() - entry.timestamp >= self.ttl_seconds:
                del self._entries[user_id]
                return None
            return entry.permissions

    def put(self, user_id: str, permissions, generation: Optional[Tuple[int, int]] = None) -> bool:
        """
        Store `permissions` for `user_id`, overwriting any previous entry.

        Returns False without writing when `generation` is given and `user_id`
        has been invalidated since it was taken.
        """
        with self._lock:
            if generation is not None and generation != self._generation_locked(user_id):
                log.debug("Discarding permission load for user %s started before an invalidation", user_id)
                return False
            self._entries[user_id] = CacheEntry(frozenset(permissions), self._clock())
            return True

    def invalidate(self, user_id: str) -> None:
        with self._lock:
            self._entries.pop(user_id, None)
            self._user_generations[user_id] = self._user_generations.get(user_id, 0) + 1
        log.debug("Invalidated permission cache for user %s", user_id)

    def invalidate_all(self) -> None:
        with self._lock:
            self._entries.clear()
            # The global bump alone stales every outstanding generation
            self._user_generations.clear()
            self._global_generation += 1
        log.debug("Invalidated permission cache for all users")

    def invalidate_role(self, role_id: str) -> None:
        """
        Invalidate every user whose grants may come from `role_id`.

        There is no role -> users index, so this flushes the whole cache.
        Correct, but every user pays a reload after any role edit.
        """
        log.debug("Role %s changed", role_id)
        self.invalidate_all()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, user_id: str) -> bool:
        return self.get(user_id) is not None
