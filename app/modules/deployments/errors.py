"""Collapse raw provider failures into the small set of messages users may see."""

from typing import Optional

RATE_LIMITED = "Rate limit exceeded. Please wait a few minutes and try again."
AUTH_FAILED = "Authentication failed. Please check your account connections."
NAME_TAKEN = "A project with this name already exists. Please choose a different name."
NETWORK_ERROR = "Network error occurred. Please check your connection and try again."
GENERIC_FAILURE = "Deployment failed. Please try again or contact support."

_RULES = (
    (("rate limit", "too many requests"), RATE_LIMITED),
    (("authentication", "unauthorized", "bad credentials"), AUTH_FAILED),
    (("already exists", "name already", "name is taken"), NAME_TAKEN),
    (("network", "timeout", "timed out", "connection"), NETWORK_ERROR),
)

_STATUS_RULES = {
    429: RATE_LIMITED,
    401: AUTH_FAILED,
    409: NAME_TAKEN,
}


def classify_error(error: BaseException) -> str:
    """Map an exception to one of the user-safe messages above.

    Text is checked first (GitHub reports rate limits as 403), then the
    upstream HTTP status when the error carries one.
    """
    text = " ".join(
        part for part in (str(error), getattr(error, "raw", None) or "") if part
    ).lower()
    for needles, message in _RULES:
        if any(needle in text for needle in needles):
            return message
    status: Optional[int] = getattr(error, "status", None)
    if status in _STATUS_RULES:
        return _STATUS_RULES[status]
    return GENERIC_FAILURE
