"""
Request-level dependencies: who is calling.

Everything below the route layer takes the user id as a plain argument, so
only these functions know about bearer tokens.
"""

from fastapi import Depends, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.database.supabase_client import get_supabase
from app.modules.auth.service import AuthService
from supabase import Client
from typing import Dict, Any

security = HTTPBearer()


def get_auth_service(supabase: Client = Depends(get_supabase)) -> AuthService:
    return AuthService(supabase)


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Security(security),
    auth_service: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    return auth_service.get_current_user(credentials.credentials)


def get_current_user_id(user: Dict[str, Any] = Depends(get_current_user)) -> str:
    return user["id"]
