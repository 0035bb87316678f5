"""
Error taxonomy for the deployment pipeline.

Every error carries a user-safe ``message`` and the HTTP status the API layer
answers with. Provider errors additionally keep the raw upstream text for
server-side logs only.
"""

from typing import List, Optional


class DeploymentError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigValidationError(DeploymentError):
    """Bad project name or template format. Raised before any record exists."""

    status_code = 400


class ThrottledError(DeploymentError):
    """Per-user rate limit exceeded."""

    status_code = 429


class CredentialError(DeploymentError):
    status_code = 400


class CredentialMissing(CredentialError):
    pass


class InvalidCredentialFormat(CredentialError):
    pass


class InsufficientScope(CredentialError):
    def __init__(self, message: str, missing_scopes: List[str]):
        super().__init__(message)
        self.missing_scopes = missing_scopes


class HostingNotConnected(CredentialError):
    pass


class ProviderError(DeploymentError):
    """A GitHub or Vercel call failed.

    ``message`` is already formatted for display; ``raw`` holds the upstream
    payload text and ``step`` names the pipeline step that issued the call.
    """

    status_code = 502
    provider = "provider"

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        raw: Optional[str] = None,
        step: Optional[str] = None,
    ):
        super().__init__(message)
        self.status = status
        self.raw = raw
        self.step = step


class GitHubAPIError(ProviderError):
    provider = "github"


class VercelAPIError(ProviderError):
    provider = "vercel"


class DeploymentTimeoutError(DeploymentError):
    """Success could not be confirmed within the polling budget."""

    status_code = 504


class NotFoundError(DeploymentError):
    status_code = 404


class InvalidTransitionError(DeploymentError):
    status_code = 409
