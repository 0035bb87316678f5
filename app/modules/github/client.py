"""
GitHub REST client used by the deployment pipeline.

Creates repositories from template repositories, identifies the token owner
and reports the OAuth scopes granted to a token.
"""

import base64
import logging
import re
from typing import Any, Dict, List, Optional

import httpx

from app.config import settings
from app.core.exceptions import GitHubAPIError
from app.modules.github.schemas import CreatedRepository, TemplateRepository

logger = logging.getLogger(__name__)

SYNC_INSTRUCTIONS_PATH = "SYNC_UPSTREAM.md"
SYNC_INSTRUCTIONS = """# Syncing with upstream

This repository was created from the
[{upstream_owner}/{upstream_repo}](https://github.com/{upstream_owner}/{upstream_repo}) template.

To pull in later changes from the template:

```bash
git remote add upstream https://github.com/{upstream_owner}/{upstream_repo}.git
git fetch upstream
git merge upstream/main --allow-unrelated-histories
git push origin main
```

Or compare in the browser:
https://github.com/{owner}/{repo}/compare/main...{upstream_owner}:{upstream_repo}:main
"""


class GitHubClient:
    """Thin synchronous wrapper over the GitHub REST v3 API."""

    def __init__(
        self,
        token: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.token = token
        self._client = httpx.Client(
            base_url=(base_url or settings.github_api_url).rstrip("/"),
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "User-Agent": settings.github_user_agent,
            },
            timeout=timeout or settings.http_timeout_seconds,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "GitHubClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        response = self._client.request(method, path, **kwargs)
        if response.is_error:
            raise self._error_from_response(response)
        return response

    def get_current_user(self) -> str:
        """Return the login of the token owner."""
        return self._request("GET", "/user").json()["login"]

    def check_scopes(self) -> Optional[List[str]]:
        """Return the scopes granted to the token.

        ``None`` means GitHub did not report scopes (fine-grained tokens send
        no ``X-OAuth-Scopes`` header). Transport errors propagate as
        ``httpx.TransportError``.
        """
        response = self._request("GET", "/user")
        header = response.headers.get("x-oauth-scopes")
        if header is None:
            return None
        return [scope.strip() for scope in header.split(",") if scope.strip()]

    def get_repository(self, owner: str, repo: str) -> Dict[str, Any]:
        return self._request("GET", f"/repos/{owner}/{repo}").json()

    def create_from_template(
        self,
        template_owner: str,
        template_repo: str,
        new_owner: str,
        new_name: str,
        description: Optional[str] = None,
        private: bool = True,
        include_all_branches: bool = False,
    ) -> CreatedRepository:
        logger.info(f"Creating repository {new_owner}/{new_name} from template {template_owner}/{template_repo}")
        self._verify_template_access(template_owner, template_repo)

        data = self._request(
            "POST",
            f"/repos/{template_owner}/{template_repo}/generate",
            json={
                "owner": new_owner,
                "name": new_name,
                "description": description or f"Deployed from {template_repo} template",
                "private": private,
                "include_all_branches": include_all_branches,
            },
        ).json()
        logger.info(f"Created repository {data.get('html_url')}")
        return CreatedRepository(
            repo_url=data["html_url"],
            clone_url=data.get("clone_url") or data["html_url"],
            full_name=data.get("full_name") or f"{new_owner}/{new_name}",
            default_branch=data.get("default_branch"),
        )

    def _verify_template_access(self, owner: str, repo: str) -> None:
        try:
            data = self.get_repository(owner, repo)
        except GitHubAPIError as e:
            if e.status == 404:
                raise GitHubAPIError(
                    f"Template repository {owner}/{repo} not found or not accessible",
                    status=404,
                    raw=e.raw,
                )
            raise
        if not data.get("is_template"):
            raise GitHubAPIError(f"Repository {owner}/{repo} is not configured as a template repository")

    def set_upstream_topics(self, owner: str, repo: str, upstream_owner: str, upstream_repo: str) -> None:
        """Tag the new repository with the template it was generated from."""
        upstream = re.sub(r"[^a-z0-9-]", "-", f"upstream-{upstream_owner}-{upstream_repo}".lower())
        self._request("PUT", f"/repos/{owner}/{repo}/topics", json={"names": ["shipkit", upstream]})

    def add_sync_instructions(self, owner: str, repo: str, upstream_owner: str, upstream_repo: str) -> None:
        """Commit SYNC_UPSTREAM.md explaining how to pull later template changes."""
        content = SYNC_INSTRUCTIONS.format(
            owner=owner, repo=repo, upstream_owner=upstream_owner, upstream_repo=upstream_repo
        )
        self._request(
            "PUT",
            f"/repos/{owner}/{repo}/contents/{SYNC_INSTRUCTIONS_PATH}",
            json={
                "message": "Add upstream sync instructions",
                "content": base64.b64encode(content.encode()).decode(),
            },
        )

    def list_template_repositories(self, org: Optional[str] = None) -> List[TemplateRepository]:
        query = f"org:{org} is:template" if org else f"user:{self.get_current_user()} is:template"
        data = self._request(
            "GET",
            "/search/repositories",
            params={"q": query, "sort": "updated", "order": "desc", "per_page": 50},
        ).json()
        return [
            TemplateRepository(
                id=item["id"],
                name=item["name"],
                full_name=item["full_name"],
                description=item.get("description"),
                html_url=item["html_url"],
                is_private=item.get("private", False),
                updated_at=item.get("updated_at"),
                topics=item.get("topics") or [],
            )
            for item in data.get("items", [])
        ]

    def is_repository_name_available(self, owner: str, repo_name: str) -> bool:
        try:
            self.get_repository(owner, repo_name)
            return False
        except GitHubAPIError as e:
            if e.status == 404:
                return True
            raise

    @staticmethod
    def _error_from_response(response: httpx.Response) -> GitHubAPIError:
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        upstream_message = payload.get("message") if isinstance(payload, dict) else None
        status = response.status_code
        if status == 401:
            message = "GitHub authentication failed. Please check your access token."
        elif status == 403:
            message = "GitHub API rate limit exceeded or insufficient permissions."
        elif status == 404:
            message = "Repository not found or not accessible."
        elif status == 422:
            message = upstream_message or "Invalid repository configuration."
        else:
            message = f"GitHub API error: {status}"
        return GitHubAPIError(message, status=status, raw=response.text)
