import httpx
import pytest

from app.core.exceptions import GitHubAPIError, VercelAPIError
from app.modules.deployments.errors import (
    AUTH_FAILED,
    GENERIC_FAILURE,
    NAME_TAKEN,
    NETWORK_ERROR,
    RATE_LIMITED,
    classify_error,
)


@pytest.mark.parametrize("error, expected", [
    (GitHubAPIError("GitHub API rate limit exceeded or insufficient permissions.", status=403), RATE_LIMITED),
    (VercelAPIError("Vercel authentication failed. Please check your access token.", status=401), AUTH_FAILED),
    (VercelAPIError("A project with this name already exists.", status=409), NAME_TAKEN),
    (httpx.ConnectTimeout("timed out"), NETWORK_ERROR),
    (RuntimeError("something odd"), GENERIC_FAILURE),
])
def test_messages_by_text(error, expected):
    assert classify_error(error) == expected


def test_raw_upstream_text_is_searched():
    error = GitHubAPIError("Invalid repository configuration.", status=422,
                           raw='{"message":"Repository creation failed.","errors":["name already exists on this account"]}')
    assert classify_error(error) == NAME_TAKEN


def test_status_is_used_when_text_says_nothing():
    assert classify_error(VercelAPIError("Vercel API error: 429", status=429)) == RATE_LIMITED
    assert classify_error(GitHubAPIError("GitHub API error: 409", status=409)) == NAME_TAKEN


def test_unknown_status_falls_back_to_generic():
    assert classify_error(GitHubAPIError("GitHub API error: 500", status=500)) == GENERIC_FAILURE
