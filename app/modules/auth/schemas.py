from pydantic import BaseModel
from typing import Any, Dict, Optional


class CurrentUser(BaseModel):
    """The acting user, as resolved from the Supabase session token."""
    id: str
    email: Optional[str] = None
    user_metadata: Dict[str, Any] = {}
    app_metadata: Dict[str, Any] = {}
    created_at: Optional[Any] = None
    updated_at: Optional[Any] = None
