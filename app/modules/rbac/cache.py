"""
Decision cache in front of the resolution engine.

Entries are keyed on (user_id, scope_id) where scope_id is "board:<id>" or
"workspace:<id>". Every user also has a generation counter that each eviction
bumps; a put carrying the generation observed before the store reads is
dropped when an eviction happened in between, so a slow resolution can never
repopulate the cache with a decision computed from pre-mutation rows.
"""

import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, Optional, Set, Tuple

import redis

from app.modules.rbac.exceptions import CacheUnavailableError

logger = logging.getLogger(__name__)


def board_scope(board_id: str) -> str:
    return f"board:{board_id}"


def workspace_scope(workspace_id: str) -> str:
    return f"workspace:{workspace_id}"


@dataclass(frozen=True)
class CachedDecision:
    """Resolved access of one user on one scope"""

    effective_role: Optional[str] = None
    board_role: Optional[str] = None
    workspace_role: Optional[str] = None
    permissions: FrozenSet[str] = field(default_factory=frozenset)

    def to_dict(self) -> dict:
        return {
            "effective_role": self.effective_role,
            "board_role": self.board_role,
            "workspace_role": self.workspace_role,
            "permissions": sorted(self.permissions),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CachedDecision":
        return cls(
            effective_role=data.get("effective_role"),
            board_role=data.get("board_role"),
            workspace_role=data.get("workspace_role"),
            permissions=frozenset(data.get("permissions") or []),
        )


class DecisionCache(ABC):
    @abstractmethod
    def get(self, user_id: str, scope_id: str) -> Optional[CachedDecision]:
        """Cached decision, or None on a miss."""
        pass

    @abstractmethod
    def put(self, user_id: str, scope_id: str, decision: CachedDecision, generation: Optional[int] = None) -> bool:
        """Store a decision. Returns False when the put was dropped as stale."""
        pass

    @abstractmethod
    def evict(self, user_id: str, scope_id: str) -> None:
        pass

    @abstractmethod
    def evict_user(self, user_id: str) -> None:
        """Drop every cached decision of a user, across all scopes."""
        pass

    @abstractmethod
    def generation(self, user_id: str) -> int:
        pass


class NullDecisionCache(DecisionCache):
    def get(self, user_id: str, scope_id: str) -> Optional[CachedDecision]:
        return None

    def put(self, user_id: str, scope_id: str, decision: CachedDecision, generation: Optional[int] = None) -> bool:
        return False

    def evict(self, user_id: str, scope_id: str) -> None:
        pass

    def evict_user(self, user_id: str) -> None:
        pass

    def generation(self, user_id: str) -> int:
        return 0


class InMemoryDecisionCache(DecisionCache):
    """
    Process-local cache with TTL expiry and no sweeper thread.

    Expired entries are dropped when read, and a put sweeps the whole store at
    most once per TTL period. Generations come from one counter shared by all
    users. A sweep forgets the generations of users with no live entries and
    raises the floor that unknown users report to the highest one forgotten,
    so a put that observed a forgotten generation is still rejected.
    """

    def __init__(self, ttl_seconds: float = 300, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[Tuple[str, str], Tuple[CachedDecision, float]] = {}
        self._scopes_by_user: Dict[str, Set[str]] = {}
        self._generations: Dict[str, int] = {}
        self._counter = 0
        self._floor = 0
        self._next_sweep = clock() + ttl_seconds
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, user_id: str, scope_id: str) -> Optional[CachedDecision]:
        key = (user_id, scope_id)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            decision, expires_at = entry
            if self._clock() >= expires_at:
                self._drop(key)
                return None
            return decision

    def put(self, user_id: str, scope_id: str, decision: CachedDecision, generation: Optional[int] = None) -> bool:
        with self._lock:
            if generation is not None and generation != self._generations.get(user_id, self._floor):
                return False
            now = self._clock()
            if now >= self._next_sweep:
                self._sweep(now)
            self._entries[(user_id, scope_id)] = (decision, now + self.ttl_seconds)
            self._scopes_by_user.setdefault(user_id, set()).add(scope_id)
            return True

    def evict(self, user_id: str, scope_id: str) -> None:
        with self._lock:
            self._bump(user_id)
            self._drop((user_id, scope_id))

    def evict_user(self, user_id: str) -> None:
        with self._lock:
            self._bump(user_id)
            for scope_id in self._scopes_by_user.pop(user_id, set()):
                self._entries.pop((user_id, scope_id), None)

    def generation(self, user_id: str) -> int:
        with self._lock:
            return self._generations.get(user_id, self._floor)

    # Helpers below expect the caller to hold the lock

    def _bump(self, user_id: str) -> None:
        self._counter += 1
        self._generations[user_id] = self._counter

    def _sweep(self, now: float) -> None:
        expired = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            self._drop(key)
        idle = [user_id for user_id in self._generations if user_id not in self._scopes_by_user]
        for user_id in idle:
            self._floor = max(self._floor, self._generations.pop(user_id))
        self._next_sweep = now + self.ttl_seconds
        if expired or idle:
            logger.debug(f"Decision cache sweep dropped {len(expired)} entries and {len(idle)} generations")

    def _drop(self, key: Tuple[str, str]) -> None:
        self._entries.pop(key, None)
        scopes = self._scopes_by_user.get(key[0])
        if scopes is not None:
            scopes.discard(key[1])
            if not scopes:
                del self._scopes_by_user[key[0]]


class RedisDecisionCache(DecisionCache):
    """
    Shared cache for multi-process deployments.

    Key layout:
    - `{prefix}:{user_id}:{scope_id}` - JSON encoded CachedDecision, expires after ttl
    - `{prefix}-gen:{user_id}` - eviction generation of the user
    """

    def __init__(self, client: redis.Redis, ttl_seconds: int = 300, prefix: str = "rbac"):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix

    def _key(self, user_id: str, scope_id: str) -> str:
        return f"{self.prefix}:{user_id}:{scope_id}"

    def _generation_key(self, user_id: str) -> str:
        return f"{self.prefix}-gen:{user_id}"

    def get(self, user_id: str, scope_id: str) -> Optional[CachedDecision]:
        try:
            raw = self.client.get(self._key(user_id, scope_id))
        except redis.RedisError as e:
            raise CacheUnavailableError(f"Redis get failed: {e}") from e
        if raw is None:
            return None
        try:
            return CachedDecision.from_dict(json.loads(raw))
        except (TypeError, ValueError):
            logger.warning(f"Discarding malformed cache entry for user {user_id} on {scope_id}")
            return None

    def put(self, user_id: str, scope_id: str, decision: CachedDecision, generation: Optional[int] = None) -> bool:
        key = self._key(user_id, scope_id)
        payload = json.dumps(decision.to_dict())
        generation_key = self._generation_key(user_id)
        try:
            with self.client.pipeline() as pipe:
                pipe.watch(generation_key)
                current = int(pipe.get(generation_key) or 0)
                if generation is not None and current != generation:
                    pipe.unwatch()
                    return False
                pipe.multi()
                pipe.set(key, payload, ex=self.ttl_seconds)
                pipe.execute()
                return True
        except redis.WatchError:
            # An eviction bumped the generation while we were writing
            return False
        except redis.RedisError as e:
            raise CacheUnavailableError(f"Redis put failed: {e}") from e

    def evict(self, user_id: str, scope_id: str) -> None:
        try:
            pipe = self.client.pipeline()
            pipe.incr(self._generation_key(user_id))
            pipe.delete(self._key(user_id, scope_id))
            pipe.execute()
        except redis.RedisError as e:
            raise CacheUnavailableError(f"Redis evict failed: {e}") from e

    def evict_user(self, user_id: str) -> None:
        try:
            keys = list(self.client.scan_iter(match=f"{self.prefix}:{user_id}:*", count=500))
            pipe = self.client.pipeline()
            pipe.incr(self._generation_key(user_id))
            if keys:
                pipe.delete(*keys)
            pipe.execute()
        except redis.RedisError as e:
            raise CacheUnavailableError(f"Redis evict_user failed: {e}") from e

    def generation(self, user_id: str) -> int:
        try:
            return int(self.client.get(self._generation_key(user_id)) or 0)
        except redis.RedisError as e:
            raise CacheUnavailableError(f"Redis generation read failed: {e}") from e
