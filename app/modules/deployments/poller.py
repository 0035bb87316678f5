"""
Background poller that follows the first Vercel build of a new project and
finalizes the deployment record.

Runs on the task runner, after the HTTP response has been sent. All writes go
through DeploymentService.update_deployment, which ignores rows that already
left ``deploying`` (e.g. cancelled by the user meanwhile).
"""

import time
import logging
from typing import Callable, Optional, Tuple

from app.config import settings
from app.core.exceptions import DeploymentTimeoutError
from app.modules.deployments.schemas import DeploymentStatus, DeploymentUpdate
from app.modules.deployments.service import DeploymentService
from app.modules.vercel.client import VercelClient

logger = logging.getLogger(__name__)

READY = "READY"
ERROR = "ERROR"
CANCELED = "CANCELED"
TERMINAL_PROVIDER_STATES = {READY, ERROR, CANCELED}

BUILD_FAILED_ERROR = "Vercel deployment failed"
BUILD_CANCELED_ERROR = "Vercel deployment was canceled"
POLL_TIMEOUT_ERROR = "Deployment status check timed out. The deployment may still be running in Vercel."
POLL_CRASHED_ERROR = "Unable to verify deployment status. Please check the Vercel dashboard."


def predicted_deployment_url(project_name: str) -> str:
    return f"https://{project_name}.{settings.hosting_domain}"


def _latest_deployment(vercel_client: VercelClient, project_id: str) -> Optional[dict]:
    project = vercel_client.get_project(project_id)
    latest = project.get("latestDeployments") or []
    return latest[0] if latest else None


def _poll_until_terminal(
    deployment_id: str,
    project_id: str,
    vercel_client: VercelClient,
    attempts: int,
    interval: float,
    sleep: Callable[[float], None],
) -> Tuple[str, Optional[str]]:
    """Return (provider_state, url) of the first terminal build seen.

    Raises DeploymentTimeoutError once every attempt has been used.
    """
    for attempt in range(1, attempts + 1):
        sleep(interval)
        try:
            latest = _latest_deployment(vercel_client, project_id)
        except Exception as e:
            logger.warning(f"Deployment {deployment_id} poll attempt {attempt}/{attempts} failed: {e}")
            continue
        if not latest:
            continue
        state = (latest.get("readyState") or latest.get("state") or "").upper()
        logger.debug(f"Deployment {deployment_id} poll attempt {attempt}/{attempts}: {state or 'no state'}")
        if state in TERMINAL_PROVIDER_STATES:
            return state, latest.get("url")
    raise DeploymentTimeoutError(POLL_TIMEOUT_ERROR)


def poll_deployment_status(
    deployment_id: str,
    user_id: str,
    project_id: str,
    project_name: str,
    deployment_service: DeploymentService,
    vercel_client: VercelClient,
    attempts: Optional[int] = None,
    interval: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> DeploymentStatus:
    """Poll Vercel until the build settles, then write the terminal status."""
    attempts = attempts if attempts is not None else settings.deployment_poll_attempts
    interval = interval if interval is not None else settings.deployment_poll_interval_seconds

    try:
        state, url = _poll_until_terminal(deployment_id, project_id, vercel_client, attempts, interval, sleep)
    except DeploymentTimeoutError as e:
        logger.warning(f"Deployment {deployment_id} not settled after {attempts} attempts")
        deployment_service.update_deployment(
            deployment_id, user_id,
            DeploymentUpdate(status=DeploymentStatus.TIMEOUT, error=e.message),
        )
        return DeploymentStatus.TIMEOUT

    if state == READY:
        update = DeploymentUpdate(status=DeploymentStatus.COMPLETED)
    else:
        update = DeploymentUpdate(
            status=DeploymentStatus.FAILED,
            error=BUILD_FAILED_ERROR if state == ERROR else BUILD_CANCELED_ERROR,
        )
    update.hosting_deployment_url = f"https://{url}" if url else predicted_deployment_url(project_name)

    deployment_service.update_deployment(deployment_id, user_id, update)
    logger.info(f"Deployment {deployment_id} finished with Vercel state {state}")
    return update.status


def run_poller(
    deployment_id: str,
    user_id: str,
    project_id: str,
    project_name: str,
    deployment_service: DeploymentService,
    vercel_client: VercelClient,
    **poll_kwargs,
) -> Optional[DeploymentStatus]:
    """Task runner entry point: never lets a record stay ``deploying`` because the poller died."""
    try:
        return poll_deployment_status(
            deployment_id, user_id, project_id, project_name,
            deployment_service, vercel_client, **poll_kwargs,
        )
    except Exception as e:
        logger.exception(f"Failed to poll deployment status for {deployment_id}: {e}")
        try:
            deployment_service.update_deployment(
                deployment_id, user_id,
                DeploymentUpdate(status=DeploymentStatus.TIMEOUT, error=POLL_CRASHED_ERROR),
            )
        except Exception as update_error:
            logger.error(f"Failed to update deployment status for {deployment_id}: {str(update_error)}")
        return DeploymentStatus.TIMEOUT
    finally:
        vercel_client.close()
