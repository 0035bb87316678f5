"""Pure checks on deployment input. No I/O; run before any record or network call."""

import re
from typing import Tuple

from app.core.exceptions import ConfigValidationError

PROJECT_NAME_PATTERN = re.compile(r"^[a-z0-9-]+$")
PROJECT_NAME_MIN_LENGTH = 3
PROJECT_NAME_MAX_LENGTH = 100

# Names GitHub refuses for repositories, plus Windows device names
RESERVED_NAMES = frozenset(
    [".git", ".github", "api", "www", "admin", "root", "master", "main", "undefined", "null",
     "con", "prn", "aux", "nul"]
    + [f"com{i}" for i in range(1, 10)]
    + [f"lpt{i}" for i in range(1, 10)]
)

TEMPLATE_FORMAT_ERROR = "Template repository must be in format 'owner/repo-name'"


def validate_project_name(project_name: str) -> str:
    """Return the trimmed project name or raise ConfigValidationError."""
    name = (project_name or "").strip()
    if len(name) < PROJECT_NAME_MIN_LENGTH:
        raise ConfigValidationError("Project name must be at least 3 characters long")
    if len(name) > PROJECT_NAME_MAX_LENGTH:
        raise ConfigValidationError("Project name must be between 3 and 100 characters")
    if not PROJECT_NAME_PATTERN.match(name):
        raise ConfigValidationError("Project name can only contain lowercase letters, numbers, and hyphens")
    if name in RESERVED_NAMES:
        raise ConfigValidationError("This project name is reserved and cannot be used")
    return name


def parse_template_repo(template_repo: str) -> Tuple[str, str]:
    """Split "owner/repo" into its parts; exactly one slash, both sides non-empty."""
    parts = (template_repo or "").strip().split("/")
    if len(parts) != 2 or not all(parts):
        raise ConfigValidationError(TEMPLATE_FORMAT_ERROR)
    return parts[0], parts[1]


def validate_deployment_config(template_repo: str, project_name: str) -> Tuple[str, str, str]:
    """Validate both inputs; returns (template_owner, template_name, project_name)."""
    owner, repo = parse_template_repo(template_repo)
    return owner, repo, validate_project_name(project_name)
