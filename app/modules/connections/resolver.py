"""
Credential resolution for the deployment pipeline.

GitHub: a stored OAuth connection wins over a token supplied with the request;
the chosen token must then carry the ``repo`` and ``workflow`` scopes.
Vercel: only a stored, unexpired connection is accepted.
"""

import logging
import re
from typing import Callable, List, Optional

import httpx

from app.core.exceptions import (
    CredentialMissing,
    GitHubAPIError,
    HostingNotConnected,
    InsufficientScope,
    InvalidCredentialFormat,
)
from app.modules.connections.service import GITHUB, VERCEL, ConnectionService
from app.modules.github.client import GitHubClient

logger = logging.getLogger(__name__)

REQUIRED_GITHUB_SCOPES = ["repo", "workflow"]

GITHUB_TOKEN_PATTERN = re.compile(r"^(ghp_[a-zA-Z0-9]{36}|github_pat_[a-zA-Z0-9]{22}_[a-zA-Z0-9]{59})$")

GITHUB_NOT_CONNECTED = (
    "GitHub account not connected. Please connect your GitHub account first or provide an access token."
)
INVALID_GITHUB_TOKEN = "Invalid GitHub token format. Please provide a valid personal access token."
VERCEL_NOT_CONNECTED = "Vercel account not connected. Please connect your Vercel account in Settings first."


class CredentialResolver:
    def __init__(
        self,
        connection_service: ConnectionService,
        github_client_factory: Callable[[str], GitHubClient] = GitHubClient,
    ):
        self.connections = connection_service
        self.github_client_factory = github_client_factory

    def resolve_github_token(self, user_id: str, supplied_token: Optional[str] = None) -> str:
        token = self.connections.get_access_token(user_id, GITHUB)
        if token:
            return token

        if supplied_token:
            if not GITHUB_TOKEN_PATTERN.match(supplied_token):
                raise InvalidCredentialFormat(INVALID_GITHUB_TOKEN)
            return supplied_token

        raise CredentialMissing(GITHUB_NOT_CONNECTED)

    def verify_github_scopes(self, token: str, user_id: Optional[str] = None) -> None:
        """Raise InsufficientScope when GitHub reports the token lacks a required scope.

        A transport failure leaves the scopes unverified; later GitHub calls
        fail on their own if the permissions really are missing.
        """
        client = self.github_client_factory(token)
        try:
            granted = client.check_scopes()
        except httpx.TransportError as e:
            logger.warning(f"Could not verify GitHub token scopes for user {user_id}: {e}")
            return
        except GitHubAPIError as e:
            logger.error(f"GitHub scope check rejected for user {user_id}: {e.status} {e.raw}")
            granted = []
        finally:
            client.close()

        if granted is None:
            logger.info(f"GitHub did not report scopes for user {user_id}; treating as unverified")
            return

        missing = missing_scopes(granted)
        if missing:
            logger.error(f"GitHub token missing required scopes for user {user_id}: {missing}")
            raise InsufficientScope(
                f"GitHub token missing required permissions: {', '.join(missing)}. "
                "Please ensure your token has 'repo' and 'workflow' scopes.",
                missing_scopes=missing,
            )

    def resolve_github_credential(self, user_id: str, supplied_token: Optional[str] = None) -> str:
        token = self.resolve_github_token(user_id, supplied_token)
        self.verify_github_scopes(token, user_id)
        return token

    def resolve_vercel_token(self, user_id: str) -> str:
        token = self.connections.get_access_token(user_id, VERCEL)
        if not token:
            raise HostingNotConnected(VERCEL_NOT_CONNECTED)
        return token


def missing_scopes(granted: List[str]) -> List[str]:
    return [scope for scope in REQUIRED_GITHUB_SCOPES if scope not in granted]
