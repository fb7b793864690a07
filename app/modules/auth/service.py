import hashlib
import logging
import threading
import time
from supabase import Client
from fastapi import HTTPException
from app.config import settings
from typing import Any, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class TokenCache:
    """
    Verified identities keyed by token digest, so bursts of requests with the
    same bearer token make one Supabase auth call.

    Bounded: when full, expired identities go first, then the oldest one.
    """

    def __init__(self, ttl_seconds: float = 60, max_size: int = 500, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._identities: Dict[str, Tuple[Dict[str, Any], float]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._identities)

    @staticmethod
    def _digest(token: str) -> str:
        return hashlib.sha256(token.encode()).hexdigest()

    def get(self, token: str) -> Optional[Dict[str, Any]]:
        key = self._digest(token)
        with self._lock:
            entry = self._identities.get(key)
            if entry is None:
                return None
            identity, expires_at = entry
            if self._clock() >= expires_at:
                del self._identities[key]
                return None
            return identity

    def put(self, token: str, identity: Dict[str, Any]):
        key = self._digest(token)
        with self._lock:
            now = self._clock()
            if key not in self._identities and len(self._identities) >= self.max_size:
                self._make_room(now)
            self._identities[key] = (identity, now + self.ttl_seconds)

    def clear(self):
        with self._lock:
            self._identities.clear()

    def _make_room(self, now: float):
        expired = [key for key, (_, expires_at) in self._identities.items() if now >= expires_at]
        for key in expired:
            del self._identities[key]
        if len(self._identities) >= self.max_size:
            # dicts keep insertion order; the first key is the oldest
            del self._identities[next(iter(self._identities))]


token_cache = TokenCache(settings.auth_cache_ttl_seconds, settings.auth_cache_max_size)


class AuthService:
    def __init__(self, supabase: Client, cache: Optional[TokenCache] = None):
        self.supabase = supabase
        self.cache = cache if cache is not None else token_cache

    def get_current_user(self, token: str) -> Dict[str, Any]:
        """Resolve a bearer token to the caller's identity, raising 401 when Supabase rejects it"""
        identity = self.cache.get(token)
        if identity is not None:
            return identity

        try:
            user_response = self.supabase.auth.get_user(jwt=token)
        except Exception as e:
            error_msg = str(e)
            logger.info(f"Token validation failed: {error_msg}")
            if "JWT" in error_msg or "expired" in error_msg.lower() or "invalid" in error_msg.lower():
                raise HTTPException(status_code=401, detail="Invalid or expired token")
            raise HTTPException(status_code=401, detail="Authentication failed")

        user = user_response.user
        if not user:
            raise HTTPException(status_code=401, detail="Invalid or expired token")
        identity = {
            "id": user.id,
            "email": user.email,
            "user_metadata": user.user_metadata or {},
            "app_metadata": user.app_metadata or {},
        }
        self.cache.put(token, identity)
        return identity

    def identify(self, token: Optional[str], tolerate_invalid: bool = False) -> Optional[Dict[str, Any]]:
        """
        Identity behind an optional bearer token.

        No token means an anonymous caller. With tolerate_invalid, a token
        Supabase rejects is also treated as anonymous instead of raising 401.
        """
        if not token:
            return None
        if not tolerate_invalid:
            return self.get_current_user(token)
        try:
            return self.get_current_user(token)
        except HTTPException as e:
            logger.info(f"Ignoring rejected token on an anonymous-capable route: {e.detail}")
            return None


def clear_auth_cache():
    token_cache.clear()
