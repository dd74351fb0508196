from typing import Any, Callable

from fastapi import BackgroundTasks

from app.logging_config import get_logger

logger = get_logger("dispatch")


class BackgroundDispatcher:
    """Enqueue work to run after the HTTP response has been sent.

    Thin wrapper over FastAPI's BackgroundTasks: enqueue never blocks, and work
    still queued when the process stops is lost.
    """

    def __init__(self, background_tasks: BackgroundTasks):
        self._background_tasks = background_tasks

    def enqueue(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        self._background_tasks.add_task(func, *args, **kwargs)
        logger.debug(f"Enqueued background job {getattr(func, '__name__', func)!r}")


def get_dispatcher(background_tasks: BackgroundTasks) -> BackgroundDispatcher:
    """FastAPI dependency."""
    return BackgroundDispatcher(background_tasks)
