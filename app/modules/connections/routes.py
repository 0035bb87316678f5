from fastapi import APIRouter, Depends
from app.database.supabase_client import get_service_supabase
from app.modules.connections.schemas import ConnectionStatusResponse
from app.modules.connections.service import ConnectionService
from app.core.dependencies import get_current_user_id
from supabase import Client

router = APIRouter(prefix="/connections", tags=["connections"])


def get_connection_service(supabase: Client = Depends(get_service_supabase)) -> ConnectionService:
    # accounts holds provider tokens and is not readable with the anon key
    return ConnectionService(supabase)


@router.get("", response_model=ConnectionStatusResponse)
async def get_connection_status(
    user_id: str = Depends(get_current_user_id),
    service: ConnectionService = Depends(get_connection_service),
):
    """Whether the user has linked GitHub and Vercel accounts."""
    return service.connection_status(user_id)
