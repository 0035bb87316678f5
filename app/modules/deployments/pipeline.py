"""
Deployment orchestration: template repository -> GitHub repository -> Vercel project.

``DeploymentPipeline.deploy`` runs synchronously up to the point where the
Vercel project exists, hands the build tracking to the background poller and
returns. From the moment a record exists, every failure is written to it
before returning; the record is what the UI reads to learn the outcome.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

import httpx

from app.config import settings
from app.core.exceptions import ConfigValidationError, CredentialError, ProviderError, ThrottledError
from app.core.rate_limit import RateLimiter, get_rate_limiter
from app.modules.connections.resolver import CredentialResolver
from app.modules.deployments import task_runner
from app.modules.deployments.errors import classify_error
from app.modules.deployments.poller import predicted_deployment_url, run_poller
from app.modules.deployments.schemas import (
    DeploymentCreate,
    DeploymentResult,
    DeploymentResultData,
    DeploymentStatus,
    DeploymentUpdate,
    DeployRequest,
    HostingProjectInfo,
    LinkOutcome,
    SourceRepoInfo,
)
from app.modules.deployments.service import DeploymentService
from app.modules.deployments.validation import validate_deployment_config
from app.modules.github.client import GitHubClient
from app.modules.vercel.client import VercelClient
from app.modules.vercel.schemas import CreatedProject, EnvironmentVariable, GitRepository

logger = logging.getLogger(__name__)

RATE_LIMIT_BUCKET = "deployment:create"

STEP_RECORD = "deployment-record"
STEP_NOT_FOUND = "deployment-not-found"
STEP_REJECTED = "deployment-rejected"
STEP_GITHUB_CREDENTIALS = "github-credentials"
STEP_VERCEL_CREDENTIALS = "vercel-credentials"
STEP_GITHUB_USER = "github-user-lookup"
STEP_GITHUB_REPO = "github-repo-creation"
STEP_VERCEL_PROJECT = "vercel-project-creation"
STEP_CANCELED = "deployment-canceled"
STEP_UNEXPECTED = "deployment-error"

RECORD_CREATE_FAILED = "Failed to create deployment record"
NO_LONGER_IN_PROGRESS = "Deployment is no longer in progress"
DEPLOYMENT_NOT_FOUND = "Deployment not found"

# Failures of a single provider call: formatted API errors and transport errors
PROVIDER_FAILURES = (ProviderError, httpx.HTTPError)


class _Attempt:
    """Identifiers of one deployment attempt, carried through the steps and into logs."""

    def __init__(self, deployment_id: str, user_id: str, project_name: str, template_repo: str):
        self.deployment_id = deployment_id
        self.user_id = user_id
        self.project_name = project_name
        self.template_repo = template_repo

    def describe(self) -> str:
        return (
            f"deployment_id={self.deployment_id} user_id={self.user_id} "
            f"project_name={self.project_name} template={self.template_repo} "
            f"timestamp={datetime.now(timezone.utc).isoformat()}"
        )


class DeploymentPipeline:
    def __init__(
        self,
        deployment_service: DeploymentService,
        credential_resolver: CredentialResolver,
        poller_service: Optional[DeploymentService] = None,
        rate_limiter: Optional[RateLimiter] = None,
        github_client_factory: Callable[[str], GitHubClient] = GitHubClient,
        vercel_client_factory: Callable[[str], VercelClient] = VercelClient,
        spawn: Callable = task_runner.submit,
    ):
        self.deployments = deployment_service
        self.credentials = credential_resolver
        # Pollers write after the request is gone, so they get their own (service-role) store
        self.poller_service = poller_service or deployment_service
        self.rate_limiter = rate_limiter or get_rate_limiter()
        self.github_client_factory = github_client_factory
        self.vercel_client_factory = vercel_client_factory
        self.spawn = spawn

    def deploy(self, user_id: str, request: DeployRequest, enforce_rate_limit: bool = True) -> DeploymentResult:
        """Create the repository and the Vercel project, then start the poller.

        Raises ThrottledError / ConfigValidationError; when continuing an
        existing record, that record is marked failed first. Every later
        failure comes back as an unsuccessful result.

        A supplied ``deployment_id`` must name one of the user's records that
        is still ``deploying``; otherwise nothing is created anywhere.
        """
        deployment_id = request.deployment_id
        template_repo = request.template_repo or settings.default_template_repo
        if deployment_id:
            existing = self.deployments.get_deployment(deployment_id, user_id)
            if existing is None:
                return DeploymentResult(
                    success=False,
                    error=DEPLOYMENT_NOT_FOUND,
                    data=DeploymentResultData(deployment_id=deployment_id, step=STEP_NOT_FOUND),
                )
            if existing.status != DeploymentStatus.DEPLOYING:
                return DeploymentResult(
                    success=False,
                    error=NO_LONGER_IN_PROGRESS,
                    data=DeploymentResultData(deployment_id=deployment_id, step=STEP_CANCELED),
                )

        try:
            if enforce_rate_limit:
                self.rate_limiter.check_limit(user_id, RATE_LIMIT_BUCKET, settings.deployment_create_rate_limit)
            template_owner, template_name, project_name = validate_deployment_config(
                template_repo, request.project_name
            )
        except (ThrottledError, ConfigValidationError) as e:
            if deployment_id:
                self._abort(
                    _Attempt(deployment_id, user_id, request.project_name, template_repo), STEP_REJECTED, e.message
                )
            raise
        description = request.description or f"Deployment of {project_name}"

        if not deployment_id:
            try:
                deployment_id = self.deployments.create_deployment(
                    DeploymentCreate(project_name=project_name, description=description), user_id
                ).id
            except Exception as e:
                logger.error(f"Failed to create deployment record for {project_name} (user {user_id}): {str(e)}")
                return DeploymentResult(
                    success=False,
                    error=RECORD_CREATE_FAILED,
                    data=DeploymentResultData(step=STEP_RECORD),
                )

        attempt = _Attempt(deployment_id, user_id, project_name, template_repo)
        try:
            return self._run(attempt, template_owner, template_name, request)
        except Exception as e:
            logger.exception(f"[Deployment Error] {attempt.describe()} error={e!r}")
            return self._abort(attempt, STEP_UNEXPECTED, classify_error(e))

    def initiate(self, user_id: str, project_name: str) -> DeploymentResult:
        """One-click deploy of the default template.

        Only the record is created in the request; the whole pipeline then runs
        on the task runner and reports through the record.
        """
        self.rate_limiter.check_limit(user_id, RATE_LIMIT_BUCKET, settings.deployment_create_rate_limit)
        template_repo = settings.default_template_repo
        _, _, name = validate_deployment_config(template_repo, project_name)
        description = f"Deployment of {name}"

        deployment = self.deployments.create_deployment(
            DeploymentCreate(project_name=name, description=description), user_id
        )
        request = DeployRequest(
            project_name=name,
            template_repo=template_repo,
            description=description,
            deployment_id=deployment.id,
        )
        self.spawn(deployment.id, self._run_initiated, user_id, request)
        return DeploymentResult(
            success=True,
            message="Deployment initiated successfully! You can monitor the progress on this page.",
            data=DeploymentResultData(deployment_id=deployment.id),
        )

    def _run_initiated(self, user_id: str, request: DeployRequest) -> DeploymentResult:
        try:
            result = self.deploy(user_id, request, enforce_rate_limit=False)
        except Exception as e:
            logger.exception(f"Deployment failed for {request.project_name}: {e}")
            attempt = _Attempt(request.deployment_id, user_id, request.project_name, request.template_repo)
            return self._abort(attempt, STEP_UNEXPECTED, classify_error(e))
        logger.info(f"Deployment process completed for {request.project_name}: success={result.success}")
        return result

    def _run(
        self,
        attempt: _Attempt,
        template_owner: str,
        template_name: str,
        request: DeployRequest,
    ) -> DeploymentResult:
        try:
            github_token = self.credentials.resolve_github_credential(attempt.user_id, request.github_token)
        except CredentialError as e:
            return self._abort(attempt, STEP_GITHUB_CREDENTIALS, e.message)

        try:
            vercel_token = self.credentials.resolve_vercel_token(attempt.user_id)
        except CredentialError as e:
            return self._abort(attempt, STEP_VERCEL_CREDENTIALS, e.message)

        with self.github_client_factory(github_token) as github:
            try:
                username = github.get_current_user()
            except PROVIDER_FAILURES as e:
                return self._provider_failure(attempt, STEP_GITHUB_USER, e)

            try:
                repo = github.create_from_template(
                    template_owner=template_owner,
                    template_repo=template_name,
                    new_owner=username,
                    new_name=attempt.project_name,
                    description=request.description or f"Deployed from {attempt.template_repo} template",
                    private=False,  # public, so Vercel can read it without extra grants
                )
            except PROVIDER_FAILURES as e:
                return self._provider_failure(attempt, STEP_GITHUB_REPO, e)

            try:
                github.set_upstream_topics(username, attempt.project_name, template_owner, template_name)
            except PROVIDER_FAILURES as e:
                logger.warning(f"Could not add upstream topics to {username}/{attempt.project_name}: {e}")

            try:
                github.add_sync_instructions(username, attempt.project_name, template_owner, template_name)
            except PROVIDER_FAILURES as e:
                logger.warning(f"Could not add sync instructions to {username}/{attempt.project_name}: {e}")

        source_repo = SourceRepoInfo(url=repo.repo_url, name=attempt.project_name, clone_url=repo.clone_url)
        recorded = self.deployments.update_deployment(
            attempt.deployment_id,
            attempt.user_id,
            DeploymentUpdate(source_repo_url=source_repo.url, source_repo_name=source_repo.name),
        )
        if recorded is None:
            return self._stopped(attempt, source_repo)

        vercel = self.vercel_client_factory(vercel_token)
        try:
            git_repo = GitRepository(type="github", repo=f"{username}/{attempt.project_name}")
            try:
                project, outcome = self._create_hosting_project(
                    vercel, attempt, git_repo, request.environment_variables
                )
            except PROVIDER_FAILURES as e:
                vercel.close()
                result = self._provider_failure(attempt, STEP_VERCEL_PROJECT, e)
                result.data.source_repo = source_repo
                result.data.requires_manual_import = True
                return result

            deployment_url = predicted_deployment_url(attempt.project_name)
            recorded = self.deployments.update_deployment(
                attempt.deployment_id,
                attempt.user_id,
                DeploymentUpdate(
                    hosting_project_id=project.project_id,
                    hosting_project_url=project.project_url,
                    hosting_deployment_url=deployment_url,
                ),
            )
            if recorded is None:
                vercel.close()
                return self._stopped(attempt, source_repo)

            # The poller owns the Vercel client from here on and closes it
            self.spawn(
                attempt.deployment_id,
                run_poller,
                attempt.deployment_id,
                attempt.user_id,
                project.project_id,
                attempt.project_name,
                self.poller_service,
                vercel,
            )
        except Exception:
            vercel.close()
            raise

        logger.info(f"Deployment {attempt.deployment_id} handed to poller (link: {outcome.value})")
        return DeploymentResult(
            success=True,
            message=(
                f"Successfully created project {attempt.project_name} on Vercel. "
                "The initial deployment will begin shortly."
            ),
            data=DeploymentResultData(
                deployment_id=attempt.deployment_id,
                source_repo=source_repo,
                hosting_project=HostingProjectInfo(
                    project_id=project.project_id,
                    project_url=project.project_url,
                    deployment_url=deployment_url,
                    link_outcome=outcome,
                ),
            ),
        )

    def _create_hosting_project(
        self,
        vercel: VercelClient,
        attempt: _Attempt,
        git_repo: GitRepository,
        environment_variables: List[EnvironmentVariable],
    ) -> Tuple[CreatedProject, LinkOutcome]:
        """Create the project bound to the repository, falling back to create-then-link.

        Raises the provider error only when the unbound creation fails too.
        """
        env = environment_variables or None
        try:
            project = vercel.create_project(
                attempt.project_name, git_repository=git_repo, framework=settings.default_framework,
                environment_variables=env,
            )
            return project, LinkOutcome.BOUND
        except PROVIDER_FAILURES as e:
            logger.warning(f"Vercel project creation with git binding failed, retrying without: {e}")

        project = vercel.create_project(
            attempt.project_name, framework=settings.default_framework, environment_variables=env,
        )
        try:
            vercel.connect_git_repository(project.project_id, git_repo)
        except PROVIDER_FAILURES as e:
            # The project exists; the user can still link the repository by hand
            logger.warning(f"Failed to connect {git_repo.repo} to Vercel project {project.project_id}: {e}")
            return project, LinkOutcome.UNBOUND_UNCONNECTED
        return project, LinkOutcome.UNBOUND_THEN_CONNECTED

    def _provider_failure(self, attempt: _Attempt, step: str, error: Exception) -> DeploymentResult:
        if isinstance(error, ProviderError):
            error.step = step
        logger.error(
            f"[Deployment Error] step={step} {attempt.describe()} "
            f"error={error!r} raw={getattr(error, 'raw', None)}"
        )
        return self._abort(attempt, step, classify_error(error))

    def _abort(self, attempt: _Attempt, step: str, message: str) -> DeploymentResult:
        """Write ``failed`` with a user-safe message, then build the failure result."""
        try:
            self.deployments.update_deployment(
                attempt.deployment_id,
                attempt.user_id,
                DeploymentUpdate(status=DeploymentStatus.FAILED, error=message),
            )
        except Exception as e:
            logger.error(f"Failed to record failure of deployment {attempt.deployment_id}: {str(e)}")
        return DeploymentResult(
            success=False,
            error=message,
            data=DeploymentResultData(deployment_id=attempt.deployment_id, step=step),
        )

    def _stopped(self, attempt: _Attempt, source_repo: SourceRepoInfo) -> DeploymentResult:
        logger.info(f"Deployment {attempt.deployment_id} left 'deploying' mid-pipeline; stopping")
        return DeploymentResult(
            success=False,
            error=NO_LONGER_IN_PROGRESS,
            data=DeploymentResultData(
                deployment_id=attempt.deployment_id, step=STEP_CANCELED, source_repo=source_repo
            ),
        )
