import uuid
from datetime import datetime
from types import SimpleNamespace

import pytest

from app.core.exceptions import GitHubAPIError
from app.core.rate_limit import RateLimiter
from app.modules.connections.resolver import CredentialResolver
from app.modules.connections.service import ConnectionService
from app.modules.deployments.service import DeploymentService
from app.modules.github.schemas import CreatedRepository
from app.modules.vercel.schemas import CreatedProject

USER_ID = "user-1"
OTHER_USER_ID = "user-2"
GITHUB_TOKEN = "gho_stored_github_token"
VERCEL_TOKEN = "vercel_stored_token"


def _comparable(value):
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return value
    return value


class FakeQuery:
    """In-memory stand-in for the supabase-py query builder (the subset the services use)."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.op = None
        self.payload = None
        self.filters = []
        self.order_by = None
        self.row_limit = None

    def select(self, *columns):
        self.op = "select"
        return self

    def insert(self, payload):
        self.op = "insert"
        self.payload = payload
        return self

    def update(self, payload):
        self.op = "update"
        self.payload = payload
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def lt(self, column, value):
        self.filters.append(
            lambda row: row.get(column) is not None and _comparable(row[column]) < _comparable(value)
        )
        return self

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self

    def limit(self, count):
        self.row_limit = count
        return self

    def _matches(self, row):
        return all(f(row) for f in self.filters)

    def execute(self):
        if (self.table_name, self.op) in self.db.failing:
            raise RuntimeError(f"{self.table_name} {self.op} unavailable")
        rows = self.db.tables.setdefault(self.table_name, [])

        if self.op == "insert":
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = []
            for item in payload:
                row = {"id": str(uuid.uuid4()), **item}
                rows.append(row)
                inserted.append(dict(row))
            return SimpleNamespace(data=inserted)

        matched = [row for row in rows if self._matches(row)]

        if self.op == "update":
            for row in matched:
                row.update(self.payload)
            return SimpleNamespace(data=[dict(row) for row in matched])

        if self.op == "delete":
            self.db.tables[self.table_name] = [row for row in rows if not self._matches(row)]
            return SimpleNamespace(data=[dict(row) for row in matched])

        if self.order_by:
            column, desc = self.order_by
            matched = sorted(matched, key=lambda row: _comparable(row.get(column)), reverse=desc)
        if self.row_limit is not None:
            matched = matched[: self.row_limit]
        return SimpleNamespace(data=[dict(row) for row in matched])


class FakeSupabase:
    def __init__(self):
        self.tables = {}
        self.failing = set()

    def table(self, name):
        return FakeQuery(self, name)

    def rows(self, name):
        return self.tables.get(name, [])


class FakeGitHubClient:
    def __init__(self, login="octocat", scopes=("repo", "workflow")):
        self.login = login
        self.scopes = list(scopes) if scopes is not None else None
        self.user_error = None
        self.create_error = None
        self.topics_error = None
        self.sync_error = None
        self.on_create = None
        self.taken_names = set()
        self.templates = []
        self.created = []
        self.topics = []
        self.sync_files = []
        self.closed = False

    def __call__(self, token):
        self.token = token
        return self

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self):
        self.closed = True

    def get_current_user(self):
        if self.user_error:
            raise self.user_error
        return self.login

    def check_scopes(self):
        return self.scopes

    def create_from_template(self, template_owner, template_repo, new_owner, new_name,
                             description=None, private=True, include_all_branches=False):
        if self.create_error:
            raise self.create_error
        self.created.append({
            "template": f"{template_owner}/{template_repo}",
            "owner": new_owner,
            "name": new_name,
            "description": description,
            "private": private,
        })
        if self.on_create:
            self.on_create()
        return CreatedRepository(
            repo_url=f"https://github.com/{new_owner}/{new_name}",
            clone_url=f"https://github.com/{new_owner}/{new_name}.git",
            full_name=f"{new_owner}/{new_name}",
            default_branch="main",
        )

    def set_upstream_topics(self, owner, repo, upstream_owner, upstream_repo):
        if self.topics_error:
            raise self.topics_error
        self.topics.append((owner, repo, upstream_owner, upstream_repo))

    def add_sync_instructions(self, owner, repo, upstream_owner, upstream_repo):
        if self.sync_error:
            raise self.sync_error
        self.sync_files.append((owner, repo, upstream_owner, upstream_repo))

    def is_repository_name_available(self, owner, repo_name):
        return repo_name not in self.taken_names

    def list_template_repositories(self, org=None):
        if self.user_error:
            raise self.user_error
        return self.templates


class FakeVercelClient:
    def __init__(self, states=None):
        self.bound_error = None
        self.unbound_error = None
        self.connect_error = None
        self.projects = []
        self.connected = []
        self.states = list(states or [])
        self.state_errors = {}
        self.builds = []
        self.taken_names = set()
        self.polls = 0
        self.closed = False

    def __call__(self, token):
        self.token = token
        return self

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self):
        self.closed = True

    def create_project(self, name, git_repository=None, framework=None, environment_variables=None):
        error = self.bound_error if git_repository is not None else self.unbound_error
        if error:
            raise error
        self.projects.append({
            "name": name,
            "git_repository": git_repository,
            "framework": framework,
            "environment_variables": environment_variables,
        })
        return CreatedProject(project_id="prj_123", project_url=f"https://vercel.com/team/{name}")

    def connect_git_repository(self, project_id, git_repository):
        if self.connect_error:
            raise self.connect_error
        self.connected.append((project_id, git_repository.repo))
        return {}

    def get_project(self, project_id):
        self.polls += 1
        if self.polls in self.state_errors:
            raise self.state_errors[self.polls]
        state = self.states.pop(0) if self.states else "BUILDING"
        return {"id": project_id, "latestDeployments": [{"readyState": state, "url": "my-app-abc.vercel.app"}]}

    def get_deployments(self, project_id, limit=10):
        return self.builds[:limit]

    def is_project_name_available(self, name):
        return name not in self.taken_names


class Spawner:
    """Records background submissions instead of running them on threads."""

    def __init__(self):
        self.calls = []

    def __call__(self, deployment_id, fn, *args, **kwargs):
        self.calls.append((deployment_id, fn, args, kwargs))

    def run_all(self):
        calls, self.calls = self.calls, []
        return [fn(*args, **kwargs) for _, fn, args, kwargs in calls]


@pytest.fixture
def supabase():
    return FakeSupabase()


@pytest.fixture
def deployment_service(supabase):
    return DeploymentService(supabase)


@pytest.fixture
def connected_accounts(supabase):
    supabase.tables["accounts"] = [
        {"user_id": USER_ID, "provider": "github", "access_token": GITHUB_TOKEN, "expires_at": None},
        {"user_id": USER_ID, "provider": "vercel", "access_token": VERCEL_TOKEN, "expires_at": None},
    ]
    return supabase.tables["accounts"]


@pytest.fixture
def github():
    return FakeGitHubClient()


@pytest.fixture
def vercel():
    return FakeVercelClient()


@pytest.fixture
def credential_resolver(supabase, github):
    return CredentialResolver(ConnectionService(supabase), github_client_factory=github)


@pytest.fixture
def rate_limiter():
    return RateLimiter("memory://")


@pytest.fixture
def spawner():
    return Spawner()


@pytest.fixture
def github_error():
    def make(message="GitHub API error: 500", status=500, raw=None):
        return GitHubAPIError(message, status=status, raw=raw)
    return make
