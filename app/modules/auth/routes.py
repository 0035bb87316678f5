from fastapi import APIRouter, Depends
from app.modules.auth.schemas import CurrentUser
from app.core.dependencies import get_current_user
from typing import Dict

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/me", response_model=CurrentUser)
async def me(user: Dict = Depends(get_current_user)):
    """The signed-in user, as Supabase knows them."""
    return user
