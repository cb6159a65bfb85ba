# aliyundrive/utils.py
import asyncio
import posixpath
from typing import Awaitable, Callable, Optional


def normalize_path(value: str) -> str:
    """
    Normalizes a drive path to an absolute POSIX path without a trailing slash.
    An empty path is the root.
    """
    if not value:
        return "/"
    normalized = posixpath.normpath("/" + value.replace("\\", "/"))
    return "/" + normalized.lstrip("/")


def split_path(value: str) -> list:
    return [part for part in normalize_path(value).split("/") if part]


class SingleFlight:
    """
    Runs at most one instance of an operation at a time.
    Callers arriving while it is in flight await the same task and share its outcome;
    once the task settles the next call starts a fresh attempt.
    """

    def __init__(self):
        self._task: Optional[asyncio.Task] = None

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run(self, factory: Callable[[], Awaitable]):
        task = self._task
        if task is None or task.done():
            task = self._task = asyncio.ensure_future(factory())
            task.add_done_callback(self._clear)
        return await asyncio.shield(task)

    def _clear(self, task: asyncio.Task):
        if self._task is task:
            self._task = None
