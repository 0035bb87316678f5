from supabase import Client
from app.modules.connections.schemas import ConnectionStatusResponse
from typing import Optional, Dict, Any
import time
import logging

logger = logging.getLogger(__name__)

GITHUB = "github"
VERCEL = "vercel"


class ConnectionService:
    """Read access to OAuth account connections stored in the ``accounts`` table."""

    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_account(self, user_id: str, provider: str) -> Optional[Dict[str, Any]]:
        if not user_id:
            logger.warning(f"No user ID provided for {provider} account lookup")
            return None
        try:
            result = self.supabase.table("accounts")\
                .select("*")\
                .eq("user_id", user_id)\
                .eq("provider", provider)\
                .limit(1)\
                .execute()
        except Exception as e:
            logger.error(f"Error getting {provider} account for user {user_id}: {str(e)}")
            return None
        return result.data[0] if result.data else None

    def get_access_token(self, user_id: str, provider: str) -> Optional[str]:
        """Return the stored access token, or None when missing or expired."""
        account = self.get_account(user_id, provider)
        if not account or not account.get("access_token"):
            logger.info(f"No {provider} access token found for user {user_id}")
            return None

        expires_at = account.get("expires_at")
        if expires_at and int(expires_at) < int(time.time()):
            logger.warning(f"{provider} access token for user {user_id} expired at {expires_at}")
            return None
        return account["access_token"]

    def connection_status(self, user_id: str) -> ConnectionStatusResponse:
        return ConnectionStatusResponse(
            github=self.get_access_token(user_id, GITHUB) is not None,
            vercel=self.get_access_token(user_id, VERCEL) is not None,
        )
