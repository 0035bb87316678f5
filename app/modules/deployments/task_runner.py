"""Thread pool for work that outlives the request, with a thread-safe deployment_id -> Future registry."""
import threading
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

from app.config import settings

logger = logging.getLogger(__name__)
_lock = threading.Lock()
_registry: dict[str, Future] = {}
_executor: Optional[ThreadPoolExecutor] = None


def _get_executor() -> ThreadPoolExecutor:
    global _executor
    with _lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(
                max_workers=settings.poller_max_workers,
                thread_name_prefix="deployment-worker",
            )
        return _executor


def submit(deployment_id: str, fn: Callable[..., Any], *args, **kwargs) -> Future:
    """Run ``fn`` in the background and track it under ``deployment_id``.

    ``fn`` is expected to own its error handling (it must leave the record in a
    terminal state); anything that still escapes is logged here.
    """
    executor = _get_executor()
    with _lock:
        future = executor.submit(fn, *args, **kwargs)
        _registry[deployment_id] = future
        logger.debug(f"Registered background task for deployment {deployment_id}")
    future.add_done_callback(lambda f: _on_done(deployment_id, f))
    return future


def _on_done(deployment_id: str, future: Future) -> None:
    unregister(deployment_id, future)
    if future.cancelled():
        logger.warning(f"Background task for deployment {deployment_id} was cancelled")
        return
    exc = future.exception()
    if exc is not None:
        logger.error(f"Background task for deployment {deployment_id} crashed: {exc!r}")


def unregister(deployment_id: str, future: Optional[Future] = None) -> None:
    with _lock:
        if future is None or _registry.get(deployment_id) is future:
            _registry.pop(deployment_id, None)
            logger.debug(f"Unregistered deployment {deployment_id}")


def get_task(deployment_id: str) -> Future | None:
    with _lock:
        return _registry.get(deployment_id)


def is_running(deployment_id: str) -> bool:
    future = get_task(deployment_id)
    return future is not None and not future.done()


def shutdown(wait: bool = False) -> None:
    """Stop accepting work. Pending pollers are dropped; the reaper times their records out."""
    global _executor
    with _lock:
        executor, _executor = _executor, None
        _registry.clear()
    if executor is not None:
        executor.shutdown(wait=wait, cancel_futures=not wait)
