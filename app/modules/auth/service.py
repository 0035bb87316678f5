import hashlib
import logging
import threading
import time
from supabase import Client
from fastapi import HTTPException
from typing import Dict, Any, Optional, Tuple

logger = logging.getLogger(__name__)

_CACHE_TTL_SEC = 60
_CACHE_MAX_SIZE = 500


class _SessionCache:
    """Short-lived token -> user mapping. The deployment page polls with the same token every few seconds."""

    def __init__(self, ttl: float = _CACHE_TTL_SEC, max_size: int = _CACHE_MAX_SIZE):
        self.ttl = ttl
        self.max_size = max_size
        self._entries: Dict[str, Tuple[Dict[str, Any], float]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(token: str) -> str:
        return hashlib.sha256(token.encode()).hexdigest()

    def get(self, token: str) -> Optional[Dict[str, Any]]:
        key = self._key(token)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            user, expires = entry
            if time.monotonic() >= expires:
                del self._entries[key]
                return None
            return user

    def put(self, token: str, user: Dict[str, Any]) -> None:
        now = time.monotonic()
        with self._lock:
            if len(self._entries) >= self.max_size:
                expired = [key for key, (_, expires) in self._entries.items() if now >= expires]
                for key in expired:
                    del self._entries[key]
            if len(self._entries) < self.max_size:
                self._entries[self._key(token)] = (user, now + self.ttl)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


session_cache = _SessionCache()


class AuthService:
    """Resolves Supabase session tokens. Sign-in and provider linking happen in the frontend."""

    def __init__(self, supabase: Client, cache: _SessionCache = session_cache):
        self.supabase = supabase
        self.cache = cache

    def get_current_user(self, token: str) -> Dict[str, Any]:
        cached = self.cache.get(token)
        if cached is not None:
            return cached

        try:
            response = self.supabase.auth.get_user(jwt=token)
        except Exception as e:
            logger.warning(f"Supabase rejected session token: {e}")
            raise HTTPException(status_code=401, detail="Invalid or expired token")

        if not response or not response.user:
            raise HTTPException(status_code=401, detail="Invalid or expired token")

        user = response.user
        user_data = {
            "id": user.id,
            "email": user.email,
            "user_metadata": user.user_metadata or {},
            "app_metadata": user.app_metadata or {},
            "created_at": user.created_at,
            "updated_at": user.updated_at,
        }
        self.cache.put(token, user_data)
        return user_data
