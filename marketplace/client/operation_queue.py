"""Single-worker FIFO queue for operations that must never overlap"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from marketplace.core.exceptions import CollaboratorError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]


class OperationQueue:
    """
    Runs submitted operations one at a time, in submission order.

    `submit` enqueues synchronously and returns a future, so callers that
    fire several operations without awaiting still get FIFO execution.
    A failed operation fails only its own future; the next one still runs.
    """

    def __init__(self, name: str = "operations"):
        self.name = name
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._unfinished = 0
        self._closed = False

    @property
    def pending(self) -> int:
        """Operations submitted and not finished yet, including the running one"""
        return self._unfinished

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(self, operation: Operation) -> "asyncio.Future[T]":
        if self._closed:
            raise CollaboratorError(f"{self.name} queue is closed")

        loop = asyncio.get_running_loop()
        if self._queue is None:
            self._queue = asyncio.Queue()

        future = loop.create_future()
        self._queue.put_nowait((operation, future))
        self._unfinished += 1

        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._run(), name=f"{self.name}-worker")
        return future

    async def _run(self) -> None:
        while True:
            operation, future = await self._queue.get()
            try:
                await self._execute(operation, future)
            finally:
                self._unfinished -= 1
                self._queue.task_done()

    @staticmethod
    async def _execute(operation: Operation, future: asyncio.Future) -> None:
        if future.done():
            # Caller gave up before the operation started
            return
        try:
            result = await operation()
        except asyncio.CancelledError:
            if not future.done():
                future.set_exception(CollaboratorError("Operation cancelled"))
            raise
        except Exception as e:
            if not future.done():
                future.set_exception(e)
        else:
            if not future.done():
                future.set_result(result)

    async def join(self) -> None:
        """Wait until every submitted operation has finished"""
        if self._queue is not None:
            await self._queue.join()

    async def aclose(self) -> None:
        """Stop the worker and fail whatever is still queued"""
        self._closed = True

        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None

        dropped = 0
        while self._queue is not None and not self._queue.empty():
            _, future = self._queue.get_nowait()
            self._queue.task_done()
            self._unfinished -= 1
            if not future.done():
                future.set_exception(CollaboratorError(f"{self.name} queue is closed"))
                dropped += 1
        if dropped:
            logger.info(f"{self.name} queue closed with {dropped} operations dropped")
