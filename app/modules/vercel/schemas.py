from pydantic import BaseModel
from typing import List, Literal


class GitRepository(BaseModel):
    type: Literal["github", "gitlab", "bitbucket"] = "github"
    repo: str  # "owner/name"


class EnvironmentVariable(BaseModel):
    key: str
    value: str
    target: List[Literal["production", "preview", "development"]] = ["production", "preview"]


class CreatedProject(BaseModel):
    project_id: str
    project_url: str
