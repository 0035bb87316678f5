from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import JSONResponse
from app.database.supabase_client import get_supabase, get_service_supabase
from app.modules.connections.resolver import CredentialResolver
from app.modules.connections.routes import get_connection_service
from app.modules.connections.service import ConnectionService
from app.modules.deployments.schemas import (
    DeploymentResponse,
    DeploymentResult,
    DeployRequest,
    InitiateDeploymentRequest,
    LiveStatusResponse,
    NameAvailabilityResponse,
    TemplateRepositoriesResponse,
)
from app.modules.deployments.service import DeploymentService
from app.modules.deployments.pipeline import (
    DeploymentPipeline,
    STEP_CANCELED,
    STEP_NOT_FOUND,
    STEP_GITHUB_CREDENTIALS,
    STEP_RECORD,
    STEP_VERCEL_CREDENTIALS,
)
from app.modules.deployments.lookup import DeploymentLookupService
from app.core.dependencies import get_current_user_id
from app.core.exceptions import NotFoundError
from supabase import Client
from typing import List, Optional

router = APIRouter(prefix="/deployments", tags=["deployments"])

_FAILURE_STATUS = {
    STEP_GITHUB_CREDENTIALS: 400,
    STEP_VERCEL_CREDENTIALS: 400,
    STEP_CANCELED: 409,
    STEP_NOT_FOUND: 404,
    STEP_RECORD: 500,
}


def get_deployment_service(supabase: Client = Depends(get_supabase)) -> DeploymentService:
    return DeploymentService(supabase)


def get_credential_resolver(
    connections: ConnectionService = Depends(get_connection_service),
) -> CredentialResolver:
    return CredentialResolver(connections)


def get_deployment_pipeline(
    service: DeploymentService = Depends(get_deployment_service),
    resolver: CredentialResolver = Depends(get_credential_resolver),
    service_supabase: Client = Depends(get_service_supabase),
) -> DeploymentPipeline:
    return DeploymentPipeline(service, resolver, poller_service=DeploymentService(service_supabase))


def get_lookup_service(
    service: DeploymentService = Depends(get_deployment_service),
    resolver: CredentialResolver = Depends(get_credential_resolver),
) -> DeploymentLookupService:
    return DeploymentLookupService(service, resolver)


def _result_response(result: DeploymentResult) -> JSONResponse:
    if result.success:
        status_code = 202
    else:
        status_code = _FAILURE_STATUS.get(result.data.step, 502)
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


# Handlers that call GitHub/Vercel are sync so FastAPI runs them in its threadpool


@router.post("", response_model=DeploymentResult, status_code=202)
def create_deployment(
    request: DeployRequest,
    user_id: str = Depends(get_current_user_id),
    pipeline: DeploymentPipeline = Depends(get_deployment_pipeline),
):
    """
    Create a repository from the template and a Vercel project for it.
    Returns once the project exists; the first build is tracked in the background.
    """
    return _result_response(pipeline.deploy(user_id, request))


@router.post("/initiate", response_model=DeploymentResult, status_code=202)
async def initiate_deployment(
    request: InitiateDeploymentRequest,
    user_id: str = Depends(get_current_user_id),
    pipeline: DeploymentPipeline = Depends(get_deployment_pipeline),
):
    """One-click deploy of the default template. Returns as soon as the record exists."""
    return _result_response(pipeline.initiate(user_id, request.project_name))


@router.get("", response_model=List[DeploymentResponse])
async def list_deployments(
    user_id: str = Depends(get_current_user_id),
    service: DeploymentService = Depends(get_deployment_service),
):
    """List the current user's deployments, newest first. Stale in-progress ones are timed out first."""
    return service.list_deployments_by_user(user_id)


@router.get("/availability", response_model=NameAvailabilityResponse)
def check_name_availability(
    repo_name: Optional[str] = Query(None),
    project_name: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user_id),
    lookup: DeploymentLookupService = Depends(get_lookup_service),
):
    """Check whether a GitHub repository name and a Vercel project name are free."""
    return lookup.check_name_availability(user_id, repo_name, project_name)


@router.get("/templates", response_model=TemplateRepositoriesResponse)
def list_template_repositories(
    org: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user_id),
    lookup: DeploymentLookupService = Depends(get_lookup_service),
):
    """Template repositories of the user (or of ``org``)."""
    return lookup.list_template_repositories(user_id, org)


@router.get("/{deployment_id}", response_model=DeploymentResponse)
async def get_deployment(
    deployment_id: str,
    user_id: str = Depends(get_current_user_id),
    service: DeploymentService = Depends(get_deployment_service),
):
    """Get deployment by ID (only the owner can see it)"""
    return service.get_deployment_or_404(deployment_id, user_id)


@router.get("/{deployment_id}/status", response_model=LiveStatusResponse)
def get_live_status(
    deployment_id: str,
    user_id: str = Depends(get_current_user_id),
    lookup: DeploymentLookupService = Depends(get_lookup_service),
):
    """Latest Vercel build state for the deployment's project. Does not modify the record."""
    return lookup.get_live_status(user_id, deployment_id)


@router.post("/{deployment_id}/cancel", response_model=DeploymentResponse)
async def cancel_deployment(
    deployment_id: str,
    user_id: str = Depends(get_current_user_id),
    service: DeploymentService = Depends(get_deployment_service),
):
    """Cancel an in-progress deployment. The repository and Vercel project are left in place."""
    return service.cancel_deployment(deployment_id, user_id)


@router.delete("/{deployment_id}", status_code=204)
async def delete_deployment(
    deployment_id: str,
    user_id: str = Depends(get_current_user_id),
    service: DeploymentService = Depends(get_deployment_service),
):
    """Delete the deployment record. External resources are not touched."""
    if not service.delete_deployment(deployment_id, user_id):
        raise NotFoundError("Deployment not found")
    return Response(status_code=204)
