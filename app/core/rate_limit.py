"""Per-user rate limit buckets on top of the `limits` library (slowapi's engine).

slowapi covers the app-wide, per-IP default. Deployment creation needs a quota
keyed by the acting user instead, and has to be callable outside a request
(e.g. from the pipeline), so it talks to `limits` directly.
"""

import logging
import threading
from typing import Optional

from limits import parse
from limits.storage import storage_from_string
from limits.strategies import MovingWindowRateLimiter

from app.config import settings
from app.core.exceptions import ThrottledError

logger = logging.getLogger(__name__)

THROTTLED_MESSAGE = "Too many deployment attempts. Please wait before trying again."


class RateLimiter:
    def __init__(self, storage_uri: str = "memory://"):
        self.storage = storage_from_string(storage_uri)
        self.strategy = MovingWindowRateLimiter(self.storage)

    def check_limit(self, user_id: str, bucket: str, policy: str) -> None:
        """Count one hit against ``bucket`` for ``user_id``; raise ThrottledError when over ``policy``.

        ``hit`` tests and increments in one step, so concurrent requests from
        the same user cannot both slip under the limit.
        """
        item = parse(policy)
        if not self.strategy.hit(item, bucket, user_id):
            logger.warning(f"Rate limit exceeded for user {user_id} on {bucket} ({policy})")
            raise ThrottledError(THROTTLED_MESSAGE)

    def reset(self) -> None:
        self.storage.reset()


_limiter: Optional[RateLimiter] = None
_lock = threading.Lock()


def get_rate_limiter() -> RateLimiter:
    global _limiter
    with _lock:
        if _limiter is None:
            _limiter = RateLimiter(settings.rate_limit_storage_uri)
        return _limiter
