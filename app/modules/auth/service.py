import hashlib
import threading
import time
from supabase import Client
from fastapi import HTTPException
from typing import Dict, Any

# Short-lived cache of validated tokens to avoid one Supabase Auth round-trip per request
_AUTH_USER_CACHE: Dict[str, tuple] = {}
_AUTH_CACHE_LOCK = threading.Lock()
_AUTH_CACHE_TTL_SEC = 60
_AUTH_CACHE_MAX_SIZE = 500


class AuthService:
    """Bearer-token validation against Supabase Auth. Token issuance lives outside this service."""

    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_current_user(self, token: str) -> Dict[str, Any]:
        """Get current user details from Supabase Auth token. Uses short TTL cache to reduce auth API calls."""
        cache_key = hashlib.sha256(token.encode()).hexdigest()
        now = time.monotonic()
        with _AUTH_CACHE_LOCK:
            cached = _AUTH_USER_CACHE.get(cache_key)
            if cached is not None:
                user_data, expiry = cached
                if now < expiry:
                    return user_data
                del _AUTH_USER_CACHE[cache_key]
        try:
            user_response = self.supabase.auth.get_user(jwt=token)
        except Exception as e:
            error_msg = str(e)
            if "JWT" in error_msg or "expired" in error_msg.lower() or "invalid" in error_msg.lower():
                raise HTTPException(status_code=401, detail="Invalid or expired token")
            raise HTTPException(status_code=401, detail="Authentication failed")

        if not user_response or not user_response.user:
            raise HTTPException(status_code=401, detail="Invalid or expired token")
        user = user_response.user
        user_data = {
            "id": user.id,
            "email": user.email,
            "app_metadata": user.app_metadata or {},
        }
        with _AUTH_CACHE_LOCK:
            if len(_AUTH_USER_CACHE) < _AUTH_CACHE_MAX_SIZE:
                _AUTH_USER_CACHE[cache_key] = (user_data, now + _AUTH_CACHE_TTL_SEC)
        return user_data
