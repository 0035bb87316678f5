"""
Vercel REST client: project creation, git linking and deployment status.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from app.config import settings
from app.core.exceptions import VercelAPIError
from app.modules.vercel.schemas import CreatedProject, EnvironmentVariable, GitRepository

logger = logging.getLogger(__name__)


class VercelClient:
    def __init__(
        self,
        token: str,
        team_id: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.team_id = team_id if team_id is not None else settings.vercel_team_id
        self._client = httpx.Client(
            base_url=(base_url or settings.vercel_api_url).rstrip("/"),
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            },
            timeout=timeout or settings.http_timeout_seconds,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "VercelClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        params = dict(params or {})
        if self.team_id:
            params["teamId"] = self.team_id
        response = self._client.request(method, path, params=params, **kwargs)
        if response.is_error:
            raise self._error_from_response(response)
        return response.json()

    def create_project(
        self,
        name: str,
        git_repository: Optional[GitRepository] = None,
        framework: Optional[str] = None,
        environment_variables: Optional[List[EnvironmentVariable]] = None,
    ) -> CreatedProject:
        payload: Dict[str, Any] = {
            "name": name,
            "framework": framework or settings.default_framework,
        }
        if git_repository is not None:
            payload["gitRepository"] = git_repository.model_dump()
        if environment_variables:
            payload["environmentVariables"] = [
                {"key": env.key, "value": env.value, "type": "encrypted", "target": list(env.target)}
                for env in environment_variables
            ]

        logger.info(f"Creating Vercel project {name} (git bound: {git_repository is not None})")
        data = self._request("POST", "/v10/projects", json=payload)
        return CreatedProject(
            project_id=data["id"],
            project_url=f"https://vercel.com/{data.get('accountId', '')}/{data.get('name', name)}",
        )

    def connect_git_repository(self, project_id: str, git_repository: GitRepository) -> Dict[str, Any]:
        return self._request(
            "POST", f"/v9/projects/{project_id}/link", json=git_repository.model_dump()
        )

    def get_project(self, project_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/v10/projects/{project_id}")

    def get_deployments(self, project_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        data = self._request("GET", "/v6/deployments", params={"projectId": project_id, "limit": limit})
        return data.get("deployments") or []

    def list_projects(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/v10/projects").get("projects") or []

    def is_project_name_available(self, name: str) -> bool:
        try:
            projects = self.list_projects()
        except VercelAPIError as e:
            logger.warning(f"Could not list Vercel projects for name check: {e.message}")
            return False
        return not any((p.get("name") or "").lower() == name.lower() for p in projects)

    @staticmethod
    def _error_from_response(response: httpx.Response) -> VercelAPIError:
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        error = payload.get("error") if isinstance(payload, dict) else None
        error = error if isinstance(error, dict) else {}
        status = response.status_code

        if status == 400:
            if error.get("code") == "missing_github_integration":
                message = (
                    "GitHub integration not connected to your Vercel account. "
                    "Please connect GitHub in your Vercel dashboard first."
                )
            elif error.get("message"):
                message = f"Vercel API Error: {error['message']}"
            else:
                message = "Invalid request to Vercel API. Please check your configuration."
        elif status == 401:
            message = "Vercel authentication failed. Please check your access token."
        elif status == 403:
            message = "Insufficient permissions for Vercel operation."
        elif status == 404:
            message = "Vercel project or resource not found."
        elif status == 409:
            message = "A project with this name already exists."
        elif status == 422:
            message = error.get("message") or "Invalid project configuration."
        elif status == 429:
            message = "Vercel API rate limit exceeded. Please try again later."
        else:
            message = f"Vercel API error: {status}"
        return VercelAPIError(message, status=status, raw=response.text)
