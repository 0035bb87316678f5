from pydantic import BaseModel
from typing import List, Optional


class CreatedRepository(BaseModel):
    repo_url: str
    clone_url: str
    full_name: str
    default_branch: Optional[str] = None


class TemplateRepository(BaseModel):
    id: int
    name: str
    full_name: str
    description: Optional[str] = None
    html_url: str
    is_private: bool = False
    updated_at: Optional[str] = None
    topics: List[str] = []
