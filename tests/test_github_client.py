import base64
import json

import httpx
import pytest

from app.core.exceptions import GitHubAPIError
from app.modules.github.client import GitHubClient


def make_client(handler):
    return GitHubClient("gho_token", base_url="https://github.test", transport=httpx.MockTransport(handler))


def test_requests_carry_bearer_token_and_user_agent():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["authorization"]
        seen["agent"] = request.headers["user-agent"]
        return httpx.Response(200, json={"login": "octocat"})

    with make_client(handler) as client:
        assert client.get_current_user() == "octocat"
    assert seen["auth"] == "Bearer gho_token"
    assert seen["agent"] == "Shipdeck-Deploy/1.0.0"


def test_check_scopes_parses_header():
    client = make_client(lambda request: httpx.Response(
        200, json={"login": "octocat"}, headers={"X-OAuth-Scopes": "repo, workflow, gist"}
    ))
    assert client.check_scopes() == ["repo", "workflow", "gist"]


def test_check_scopes_without_header_is_unknown():
    client = make_client(lambda request: httpx.Response(200, json={"login": "octocat"}))
    assert client.check_scopes() is None


def test_create_from_template_verifies_template_then_generates():
    calls = []

    def handler(request):
        calls.append((request.method, request.url.path))
        if request.url.path == "/repos/lacymorrow/shipkit":
            return httpx.Response(200, json={"is_template": True})
        body = json.loads(request.content)
        assert body == {
            "owner": "octocat",
            "name": "my-app",
            "description": "Deployed from lacymorrow/shipkit template",
            "private": False,
            "include_all_branches": False,
        }
        return httpx.Response(201, json={
            "html_url": "https://github.com/octocat/my-app",
            "clone_url": "https://github.com/octocat/my-app.git",
            "full_name": "octocat/my-app",
            "default_branch": "main",
        })

    repo = make_client(handler).create_from_template(
        "lacymorrow", "shipkit", "octocat", "my-app",
        description="Deployed from lacymorrow/shipkit template", private=False,
    )

    assert calls == [("GET", "/repos/lacymorrow/shipkit"), ("POST", "/repos/lacymorrow/shipkit/generate")]
    assert repo.repo_url == "https://github.com/octocat/my-app"
    assert repo.clone_url.endswith(".git")


def test_non_template_repository_is_rejected():
    client = make_client(lambda request: httpx.Response(200, json={"is_template": False}))
    with pytest.raises(GitHubAPIError) as exc:
        client.create_from_template("octocat", "plain", "octocat", "my-app")
    assert "not configured as a template" in exc.value.message


def test_missing_template():
    client = make_client(lambda request: httpx.Response(404, json={"message": "Not Found"}))
    with pytest.raises(GitHubAPIError) as exc:
        client.create_from_template("octocat", "gone", "octocat", "my-app")
    assert exc.value.status == 404
    assert "not found or not accessible" in exc.value.message


@pytest.mark.parametrize("status, message", [
    (401, "GitHub authentication failed. Please check your access token."),
    (403, "GitHub API rate limit exceeded or insufficient permissions."),
    (500, "GitHub API error: 500"),
])
def test_error_messages_by_status(status, message):
    client = make_client(lambda request: httpx.Response(status, json={"message": "upstream detail"}))
    with pytest.raises(GitHubAPIError) as exc:
        client.get_current_user()
    assert exc.value.message == message
    assert exc.value.status == status
    assert "upstream detail" in exc.value.raw


def test_unprocessable_keeps_upstream_message():
    client = make_client(lambda request: httpx.Response(422, json={"message": "name already exists on this account"}))
    with pytest.raises(GitHubAPIError) as exc:
        client.get_repository("octocat", "my-app")
    assert exc.value.message == "name already exists on this account"


def test_repository_name_availability():
    def handler(request):
        if request.url.path == "/repos/octocat/taken":
            return httpx.Response(200, json={"name": "taken"})
        return httpx.Response(404, json={"message": "Not Found"})

    client = make_client(handler)
    assert client.is_repository_name_available("octocat", "taken") is False
    assert client.is_repository_name_available("octocat", "free") is True


def test_upstream_topics():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={})

    make_client(handler).set_upstream_topics("octocat", "my-app", "lacymorrow", "shipkit")
    assert seen["path"] == "/repos/octocat/my-app/topics"
    assert seen["body"] == {"names": ["shipkit", "upstream-lacymorrow-shipkit"]}


def test_list_template_repositories_for_org():
    def handler(request):
        assert request.url.params["q"] == "org:acme is:template"
        return httpx.Response(200, json={"items": [{
            "id": 1, "name": "starter", "full_name": "acme/starter", "description": None,
            "html_url": "https://github.com/acme/starter", "private": True, "updated_at": "2024-01-01T00:00:00Z",
        }]})

    repos = make_client(handler).list_template_repositories("acme")
    assert [r.full_name for r in repos] == ["acme/starter"]
    assert repos[0].is_private is True
    assert repos[0].topics == []


def test_sync_instructions_are_committed():
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"content": {"path": "SYNC_UPSTREAM.md"}})

    make_client(handler).add_sync_instructions("octocat", "my-app", "lacymorrow", "shipkit")

    assert seen["method"] == "PUT"
    assert seen["path"] == "/repos/octocat/my-app/contents/SYNC_UPSTREAM.md"
    assert seen["body"]["message"] == "Add upstream sync instructions"
    content = base64.b64decode(seen["body"]["content"]).decode()
    assert "https://github.com/lacymorrow/shipkit.git" in content
    assert "octocat/my-app" in content
