import threading
from typing import Dict
from supabase import create_client, Client
from app.config import settings

ANON = "anon"
SERVICE_ROLE = "service_role"


class SupabaseClient:
    """Process-wide Supabase clients, one per API key.

    Request handlers use the anon key. Pollers and the ``accounts`` lookups use
    the service-role key: they run without the user's JWT, so RLS would hide
    the rows. Without a configured service-role key both share the anon client.
    """
    _clients: Dict[str, Client] = {}
    _lock = threading.Lock()

    @classmethod
    def _key_for(cls, role: str) -> str:
        if role == SERVICE_ROLE and settings.supabase_service_role_key:
            return settings.supabase_service_role_key
        return settings.supabase_key

    @classmethod
    def get(cls, role: str = ANON) -> Client:
        key = cls._key_for(role)
        with cls._lock:
            if key not in cls._clients:
                cls._clients[key] = create_client(settings.supabase_url, key)
            return cls._clients[key]

    @classmethod
    def reset(cls) -> None:
        with cls._lock:
            cls._clients.clear()


def get_supabase() -> Client:
    return SupabaseClient.get(ANON)


def get_service_supabase() -> Client:
    return SupabaseClient.get(SERVICE_ROLE)
