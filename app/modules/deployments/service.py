from supabase import Client
from app.core.exceptions import InvalidTransitionError, NotFoundError
from app.modules.deployments.schemas import (
    DeploymentCreate, DeploymentUpdate, DeploymentResponse, DeploymentStatus
)
from app.config import settings
from typing import List, Optional
from datetime import datetime, timedelta, timezone
import logging

logger = logging.getLogger(__name__)

STALE_DEPLOYMENT_ERROR = "Deployment timed out - the deployment process did not complete in the expected time"
CANCELED_ERROR = "Deployment was canceled by user"
CANCEL_NOT_ALLOWED = "Can only cancel deployments that are in progress"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DeploymentService:
    """Owner-scoped CRUD over the ``deployments`` table.

    Every operation takes ``user_id`` explicitly so request handlers and
    background pollers (which have no session) call it the same way. A row
    owned by someone else behaves exactly like a missing row.
    """

    def __init__(self, supabase: Client, stale_after: Optional[timedelta] = None):
        self.supabase = supabase
        self.stale_after = stale_after or timedelta(minutes=settings.stale_deployment_minutes)

    def create_deployment(self, deployment_data: DeploymentCreate, user_id: str) -> DeploymentResponse:
        """Create a new deployment record"""
        now = _now()
        result = self.supabase.table("deployments").insert({
            "user_id": user_id,
            "project_name": deployment_data.project_name,
            "description": deployment_data.description or f"Deployment of {deployment_data.project_name}",
            "status": deployment_data.status.value,
            "created_at": now,
            "updated_at": now,
        }).execute()

        if not result.data:
            raise RuntimeError("Failed to create deployment: no row returned")
        deployment = DeploymentResponse(**result.data[0])
        logger.info(f"Created deployment {deployment.id} ({deployment.project_name}) for user {user_id}")
        return deployment

    def get_deployment(self, deployment_id: str, user_id: str) -> Optional[DeploymentResponse]:
        result = self.supabase.table("deployments")\
            .select("*")\
            .eq("id", deployment_id)\
            .eq("user_id", user_id)\
            .limit(1)\
            .execute()
        return DeploymentResponse(**result.data[0]) if result.data else None

    def get_deployment_or_404(self, deployment_id: str, user_id: str) -> DeploymentResponse:
        deployment = self.get_deployment(deployment_id, user_id)
        if deployment is None:
            raise NotFoundError("Deployment not found")
        return deployment

    def update_deployment(
        self,
        deployment_id: str,
        user_id: str,
        update: DeploymentUpdate,
    ) -> Optional[DeploymentResponse]:
        """Apply a partial update while the row is still ``deploying``.

        The status filter is part of the UPDATE itself, so a row that already
        reached completed/failed/timeout (or was cancelled) is left untouched
        and None is returned, same as for a missing or foreign row.
        """
        update_data = update.model_dump(exclude_none=True, mode="json")
        update_data["updated_at"] = _now()

        result = self.supabase.table("deployments")\
            .update(update_data)\
            .eq("id", deployment_id)\
            .eq("user_id", user_id)\
            .eq("status", DeploymentStatus.DEPLOYING.value)\
            .execute()

        if not result.data:
            logger.info(f"Update of deployment {deployment_id} ignored: not found or no longer deploying")
            return None
        return DeploymentResponse(**result.data[0])

    def delete_deployment(self, deployment_id: str, user_id: str) -> bool:
        result = self.supabase.table("deployments")\
            .delete()\
            .eq("id", deployment_id)\
            .eq("user_id", user_id)\
            .execute()
        return bool(result.data)

    def cancel_deployment(self, deployment_id: str, user_id: str) -> DeploymentResponse:
        """Mark an in-progress deployment as cancelled (failed). External resources are kept."""
        existing = self.get_deployment_or_404(deployment_id, user_id)
        if existing.status != DeploymentStatus.DEPLOYING:
            raise InvalidTransitionError(CANCEL_NOT_ALLOWED)

        cancelled = self.update_deployment(
            deployment_id,
            user_id,
            DeploymentUpdate(status=DeploymentStatus.FAILED, error=CANCELED_ERROR),
        )
        if cancelled is None:
            # The poller or reaper finalized the row between the read and the write
            raise InvalidTransitionError(CANCEL_NOT_ALLOWED)
        logger.info(f"Deployment {deployment_id} cancelled by user {user_id}")
        return cancelled

    def list_deployments_by_user(self, user_id: str) -> List[DeploymentResponse]:
        """List the user's deployments newest first, timing out stale ones first."""
        self.mark_stale_deployments_as_timed_out(user_id)
        result = self.supabase.table("deployments")\
            .select("*")\
            .eq("user_id", user_id)\
            .order("created_at", desc=True)\
            .execute()
        return [DeploymentResponse(**deployment) for deployment in result.data]

    def mark_stale_deployments_as_timed_out(self, user_id: str) -> int:
        """Move the user's ``deploying`` rows older than the threshold to ``timeout``.

        Never raises: a failure here must not break the listing it runs in front of.
        """
        threshold = (datetime.now(timezone.utc) - self.stale_after).isoformat()
        try:
            result = self.supabase.table("deployments")\
                .update({
                    "status": DeploymentStatus.TIMEOUT.value,
                    "error": STALE_DEPLOYMENT_ERROR,
                    "updated_at": _now(),
                })\
                .eq("user_id", user_id)\
                .eq("status", DeploymentStatus.DEPLOYING.value)\
                .lt("created_at", threshold)\
                .execute()
        except Exception as e:
            logger.error(f"Failed to mark stale deployments as timed out for user {user_id}: {str(e)}")
            return 0
        reaped = len(result.data or [])
        if reaped:
            logger.info(f"Timed out {reaped} stale deployment(s) for user {user_id}")
        return reaped
