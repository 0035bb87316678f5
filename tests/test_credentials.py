import time

import httpx
import pytest

from app.core.exceptions import (
    CredentialMissing,
    GitHubAPIError,
    HostingNotConnected,
    InsufficientScope,
    InvalidCredentialFormat,
)
from app.modules.connections.resolver import (
    GITHUB_NOT_CONNECTED,
    INVALID_GITHUB_TOKEN,
    VERCEL_NOT_CONNECTED,
    missing_scopes,
)
from app.modules.connections.service import ConnectionService

from conftest import GITHUB_TOKEN, USER_ID, VERCEL_TOKEN

VALID_PAT = "ghp_" + "a" * 36


def test_stored_token_wins_over_supplied(credential_resolver, connected_accounts):
    assert credential_resolver.resolve_github_token(USER_ID, VALID_PAT) == GITHUB_TOKEN


def test_supplied_token_used_when_not_connected(credential_resolver):
    assert credential_resolver.resolve_github_token(USER_ID, VALID_PAT) == VALID_PAT


def test_fine_grained_token_format_is_accepted(credential_resolver):
    token = "github_pat_" + "A" * 22 + "_" + "b" * 59
    assert credential_resolver.resolve_github_token(USER_ID, token) == token


def test_malformed_supplied_token(credential_resolver):
    with pytest.raises(InvalidCredentialFormat) as exc:
        credential_resolver.resolve_github_token(USER_ID, "not-a-token")
    assert exc.value.message == INVALID_GITHUB_TOKEN


def test_no_token_at_all(credential_resolver):
    with pytest.raises(CredentialMissing) as exc:
        credential_resolver.resolve_github_token(USER_ID)
    assert exc.value.message == GITHUB_NOT_CONNECTED


def test_expired_connection_is_ignored(credential_resolver, supabase):
    supabase.tables["accounts"] = [
        {"user_id": USER_ID, "provider": "github", "access_token": GITHUB_TOKEN,
         "expires_at": int(time.time()) - 60},
    ]
    with pytest.raises(CredentialMissing):
        credential_resolver.resolve_github_token(USER_ID)


def test_missing_scopes_are_reported(credential_resolver, github):
    github.scopes = ["repo"]
    with pytest.raises(InsufficientScope) as exc:
        credential_resolver.resolve_github_credential(USER_ID, VALID_PAT)
    assert exc.value.missing_scopes == ["workflow"]
    assert "workflow" in exc.value.message
    assert github.closed


def test_unreported_scopes_are_treated_as_unverified(credential_resolver, github):
    github.scopes = None
    assert credential_resolver.resolve_github_credential(USER_ID, VALID_PAT) == VALID_PAT


def test_rejected_scope_check_means_all_scopes_missing(credential_resolver, github, monkeypatch):
    def reject():
        raise GitHubAPIError("GitHub authentication failed. Please check your access token.", status=401)
    monkeypatch.setattr(github, "check_scopes", reject)

    with pytest.raises(InsufficientScope) as exc:
        credential_resolver.verify_github_scopes(VALID_PAT, USER_ID)
    assert exc.value.missing_scopes == ["repo", "workflow"]


def test_network_failure_during_scope_check_proceeds(credential_resolver, github, monkeypatch):
    def unreachable():
        raise httpx.ConnectError("connection refused")
    monkeypatch.setattr(github, "check_scopes", unreachable)

    credential_resolver.verify_github_scopes(VALID_PAT, USER_ID)


def test_vercel_token(credential_resolver, connected_accounts):
    assert credential_resolver.resolve_vercel_token(USER_ID) == VERCEL_TOKEN


def test_vercel_not_connected(credential_resolver):
    with pytest.raises(HostingNotConnected) as exc:
        credential_resolver.resolve_vercel_token(USER_ID)
    assert exc.value.message == VERCEL_NOT_CONNECTED


def test_missing_scopes_helper():
    assert missing_scopes(["repo", "workflow", "gist"]) == []
    assert missing_scopes([]) == ["repo", "workflow"]


def test_connection_status(supabase, connected_accounts):
    service = ConnectionService(supabase)
    status = service.connection_status(USER_ID)
    assert status.github is True and status.vercel is True
    assert service.connection_status("nobody").model_dump() == {"github": False, "vercel": False}


def test_store_errors_read_as_not_connected(supabase, connected_accounts):
    supabase.failing.add(("accounts", "select"))
    assert ConnectionService(supabase).get_access_token(USER_ID, "github") is None
