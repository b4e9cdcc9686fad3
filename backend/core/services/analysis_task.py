"""
Analysis Tasks

Runs CPU-bound analysis off the event loop and gives the caller a handle
to follow progress and cancel it.

- CancellationToken: checked by the worker between frames
- ProgressReporter: thread-safe, never lets the percentage go backwards
- AnalysisTask: one run on a worker thread (asyncio.to_thread)
- AnalysisSession: at most one active task; starting a new one cancels
  the previous task and waits for it before the new one begins
"""

import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Generic, Optional, TypeVar

from ..domain.errors import AnalysisCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")

ProgressCallback = Callable[[int, str], None]


class CancellationToken:
    """Cooperative cancellation flag shared between the caller and a worker thread."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise AnalysisCancelled("Analysis was cancelled")


@dataclass(frozen=True)
class ProgressUpdate:
    percent: int
    message: str


class ProgressReporter:
    """
    Progress callback handed to the worker.

    Called from the worker thread; updates are delivered to an asyncio
    queue on the event loop. Percentages are clamped to [0, 100] and
    never decrease. Nothing is reported once the task is cancelled.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        queue: "asyncio.Queue[ProgressUpdate]",
        token: Optional[CancellationToken] = None,
    ):
        self._loop = loop
        self._queue = queue
        self._token = token
        self._lock = threading.Lock()
        self._last = 0

    @property
    def last_percent(self) -> int:
        return self._last

    def __call__(self, percent: int, message: str) -> None:
        if self._token is not None and self._token.cancelled:
            return
        with self._lock:
            percent = max(self._last, min(100, int(percent)))
            self._last = percent
        self._loop.call_soon_threadsafe(self._queue.put_nowait, ProgressUpdate(percent, message))


class AnalysisTask(Generic[T]):
    """
    Handle for one analysis running on a worker thread.

    The work function receives the cancellation token and a progress
    callback. A cancelled run never produces a result.

    Usage:
        task = AnalysisTask(lambda token, progress: analyzer.analyze_frames(
            frames, fps, token=token, progress=progress)).start()
        async for update in task.progress_updates():
            print(update.percent, update.message)
        outcome = await task.result()
    """

    def __init__(
        self,
        work: Callable[[CancellationToken, ProgressCallback], T],
        task_id: Optional[str] = None,
    ):
        self.id = task_id or str(uuid.uuid4())
        self.token = CancellationToken()
        self._work = work
        self._queue: Optional[asyncio.Queue] = None
        self._future: Optional[asyncio.Task] = None

    def start(self) -> "AnalysisTask[T]":
        """Schedule the work on a worker thread. Must be called from a running loop."""
        if self._future is not None:
            raise RuntimeError(f"Task {self.id} already started")
        loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        reporter = ProgressReporter(loop, self._queue, self.token)
        self._future = loop.create_task(asyncio.to_thread(self._work, self.token, reporter))
        logger.debug(f"Analysis task {self.id} started")
        return self

    def cancel(self) -> None:
        """Ask the worker to stop at its next checkpoint."""
        if not self.token.cancelled:
            logger.info(f"Cancelling analysis task {self.id}")
        self.token.cancel()

    @property
    def started(self) -> bool:
        return self._future is not None

    @property
    def done(self) -> bool:
        return self._future is not None and self._future.done()

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    async def wait(self) -> None:
        """Wait for the worker to stop without raising its error."""
        if self._future is None:
            return
        await asyncio.wait({self._future})

    async def result(self) -> Optional[T]:
        """
        The work's return value, or None if the task was cancelled.

        Errors raised by the work propagate, except AnalysisCancelled.
        """
        if self._future is None:
            raise RuntimeError(f"Task {self.id} was never started")
        try:
            value = await self._future
        except AnalysisCancelled:
            logger.info(f"Analysis task {self.id} cancelled; discarding partial results")
            return None
        if self.token.cancelled:
            return None
        return value

    async def progress_updates(self) -> AsyncIterator[ProgressUpdate]:
        """Yield progress updates until the worker finishes."""
        if self._future is None or self._queue is None:
            return
        while True:
            getter = asyncio.ensure_future(self._queue.get())
            done, _ = await asyncio.wait({getter, self._future}, return_when=asyncio.FIRST_COMPLETED)
            if getter in done:
                yield getter.result()
                continue
            getter.cancel()
            while not self._queue.empty():
                yield self._queue.get_nowait()
            return


class AnalysisSession:
    """
    Single-attempt discipline for one capture session.

    Starting a new analysis cancels the running one and waits for its
    worker to stop. A result is only returned for the newest task;
    anything a superseded task produces is dropped.
    """

    def __init__(self):
        self._current: Optional[AnalysisTask] = None
        self._lock = asyncio.Lock()

    @property
    def current(self) -> Optional[AnalysisTask]:
        return self._current

    def is_current(self, task: AnalysisTask) -> bool:
        return self._current is task

    async def start(self, work: Callable[[CancellationToken, ProgressCallback], T]) -> AnalysisTask[T]:
        async with self._lock:
            previous = self._current
            if previous is not None and not previous.done:
                logger.info(f"New analysis supersedes task {previous.id}")
                previous.cancel()
                await previous.wait()
            task = AnalysisTask(work).start()
            self._current = task
            return task

    async def result(self, task: AnalysisTask[T]) -> Optional[T]:
        """Result of task, or None if it was cancelled or superseded."""
        value = await task.result()
        if not self.is_current(task):
            logger.info(f"Discarding result of superseded task {task.id}")
            return None
        return value

    async def cancel(self) -> None:
        """Cancel the running task, if any, and wait for it to stop."""
        task = self._current
        if task is not None and not task.done:
            task.cancel()
            await task.wait()

    async def close(self) -> None:
        await self.cancel()
        self._current = None
