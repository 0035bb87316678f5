"""Read-only provider queries used by the deploy form and the deployment page."""

import logging
from typing import Callable, Optional

import httpx

from app.core.exceptions import CredentialError, ProviderError
from app.modules.connections.resolver import CredentialResolver
from app.modules.deployments.schemas import (
    LiveStatusResponse,
    NameAvailabilityResponse,
    ProviderAvailability,
    TemplateRepositoriesResponse,
)
from app.modules.deployments.service import DeploymentService
from app.modules.github.client import GitHubClient
from app.modules.vercel.client import VercelClient

logger = logging.getLogger(__name__)

NO_HOSTING_PROJECT = "No Vercel project associated with this deployment"
NO_BUILDS_YET = "No deployments found"
NAME_CHECK_FAILED = "Failed to check availability"
TEMPLATES_FAILED = "Failed to fetch template repositories"


class DeploymentLookupService:
    def __init__(
        self,
        deployment_service: DeploymentService,
        credential_resolver: CredentialResolver,
        github_client_factory: Callable[[str], GitHubClient] = GitHubClient,
        vercel_client_factory: Callable[[str], VercelClient] = VercelClient,
    ):
        self.deployments = deployment_service
        self.credentials = credential_resolver
        self.github_client_factory = github_client_factory
        self.vercel_client_factory = vercel_client_factory

    def check_name_availability(
        self,
        user_id: str,
        repo_name: Optional[str] = None,
        project_name: Optional[str] = None,
    ) -> NameAvailabilityResponse:
        """Check each provider independently; one failing does not hide the other's answer."""
        response = NameAvailabilityResponse(github=ProviderAvailability(), vercel=ProviderAvailability())

        if repo_name:
            try:
                token = self.credentials.resolve_github_token(user_id)
                with self.github_client_factory(token) as github:
                    owner = github.get_current_user()
                    response.github.available = github.is_repository_name_available(owner, repo_name)
            except CredentialError as e:
                response.github.error = e.message
            except (ProviderError, httpx.HTTPError) as e:
                logger.warning(f"GitHub name check for {repo_name} failed: {e}")
                response.github.error = NAME_CHECK_FAILED

        if project_name:
            try:
                token = self.credentials.resolve_vercel_token(user_id)
                with self.vercel_client_factory(token) as vercel:
                    response.vercel.available = vercel.is_project_name_available(project_name)
            except CredentialError as e:
                response.vercel.error = e.message
            except httpx.HTTPError as e:
                logger.warning(f"Vercel name check for {project_name} failed: {e}")
                response.vercel.error = NAME_CHECK_FAILED

        return response

    def list_template_repositories(
        self, user_id: str, org: Optional[str] = None
    ) -> TemplateRepositoriesResponse:
        try:
            token = self.credentials.resolve_github_token(user_id)
        except CredentialError as e:
            return TemplateRepositoriesResponse(success=False, error=e.message)

        try:
            with self.github_client_factory(token) as github:
                repositories = github.list_template_repositories(org)
        except (ProviderError, httpx.HTTPError) as e:
            logger.error(f"Error fetching template repositories for user {user_id}: {e}")
            return TemplateRepositoriesResponse(success=False, error=TEMPLATES_FAILED)
        return TemplateRepositoriesResponse(success=True, repositories=repositories)

    def get_live_status(self, user_id: str, deployment_id: str) -> LiveStatusResponse:
        """Latest Vercel build of the deployment's project, straight from the provider.

        Read-only: the stored record is never changed here.
        """
        deployment = self.deployments.get_deployment_or_404(deployment_id, user_id)
        if not deployment.hosting_project_id:
            return LiveStatusResponse(
                deployment_id=deployment.id, status="unknown", message=NO_HOSTING_PROJECT
            )

        token = self.credentials.resolve_vercel_token(user_id)
        with self.vercel_client_factory(token) as vercel:
            builds = vercel.get_deployments(deployment.hosting_project_id, limit=1)

        if not builds:
            return LiveStatusResponse(deployment_id=deployment.id, status="pending", message=NO_BUILDS_YET)

        latest = builds[0]
        url = latest.get("url")
        return LiveStatusResponse(
            deployment_id=deployment.id,
            status=(latest.get("readyState") or latest.get("state") or "unknown").upper(),
            url=f"https://{url}" if url else deployment.hosting_deployment_url,
            created_at=latest.get("createdAt") or latest.get("created"),
        )
