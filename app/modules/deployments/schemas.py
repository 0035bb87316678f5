from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime

from app.modules.github.schemas import TemplateRepository
from app.modules.vercel.schemas import EnvironmentVariable


class DeploymentStatus(str, Enum):
    DEPLOYING = "deploying"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"


class LinkOutcome(str, Enum):
    """How the Vercel project ended up attached to the new repository."""
    BOUND = "bound"
    UNBOUND_THEN_CONNECTED = "unbound_then_connected"
    UNBOUND_UNCONNECTED = "unbound_unconnected"


class DeploymentCreate(BaseModel):
    project_name: str
    description: Optional[str] = None
    status: DeploymentStatus = DeploymentStatus.DEPLOYING


class DeploymentUpdate(BaseModel):
    description: Optional[str] = None
    source_repo_url: Optional[str] = None
    source_repo_name: Optional[str] = None
    hosting_project_id: Optional[str] = None
    hosting_project_url: Optional[str] = None
    hosting_deployment_url: Optional[str] = None
    status: Optional[DeploymentStatus] = None
    error: Optional[str] = None


class DeploymentResponse(BaseModel):
    id: str
    user_id: str
    project_name: str
    description: Optional[str] = None
    source_repo_url: Optional[str] = None
    source_repo_name: Optional[str] = None
    hosting_project_id: Optional[str] = None
    hosting_project_url: Optional[str] = None
    hosting_deployment_url: Optional[str] = None
    status: DeploymentStatus
    error: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DeployRequest(BaseModel):
    project_name: str
    template_repo: Optional[str] = None  # "owner/repo"; defaults to settings.default_template_repo
    description: Optional[str] = None
    environment_variables: List[EnvironmentVariable] = []
    github_token: Optional[str] = None  # used only when no GitHub connection is stored
    deployment_id: Optional[str] = None  # continue an existing record instead of creating one


class InitiateDeploymentRequest(BaseModel):
    project_name: str


class SourceRepoInfo(BaseModel):
    url: str
    name: str
    clone_url: str


class HostingProjectInfo(BaseModel):
    project_id: str
    project_url: str
    deployment_url: Optional[str] = None
    link_outcome: Optional[LinkOutcome] = None


class DeploymentResultData(BaseModel):
    deployment_id: Optional[str] = None
    source_repo: Optional[SourceRepoInfo] = None
    hosting_project: Optional[HostingProjectInfo] = None
    step: Optional[str] = None
    requires_manual_import: bool = False


class DeploymentResult(BaseModel):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    data: DeploymentResultData = Field(default_factory=DeploymentResultData)


class ProviderAvailability(BaseModel):
    available: bool = False
    error: Optional[str] = None


class NameAvailabilityResponse(BaseModel):
    github: ProviderAvailability
    vercel: ProviderAvailability


class TemplateRepositoriesResponse(BaseModel):
    success: bool
    repositories: List[TemplateRepository] = []
    error: Optional[str] = None


class LiveStatusResponse(BaseModel):
    deployment_id: str
    status: str
    url: Optional[str] = None
    created_at: Optional[int] = None
    message: Optional[str] = None
