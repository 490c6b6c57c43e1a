"""
Outbound write queue to the repository.

The graph store applies every mutation to its in-memory graph first and then
submits the matching durable write here. Writes are fire-and-forget: when an
event loop is running each one is dispatched as its own task right away, so
the editor never blocks on durability. Without a running loop the writes stay
queued until `drain()` is awaited.

Calls inside one write run in order (a node before its options before its
edges); separate writes may land in any order.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from itertools import count
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from flowgraph.errors import RepositoryFailure

logger = logging.getLogger(__name__)

PENDING = 'pending'
IN_FLIGHT = 'in_flight'
DONE = 'done'
FAILED = 'failed'
ABANDONED = 'abandoned'


@dataclass
class WriteCall:
    method: str
    args: Tuple[Any, ...] = ()


@dataclass
class PendingWrite:
    """One logical durable write (possibly several repository calls)."""
    id: int
    description: str
    calls: List[WriteCall]
    status: str = PENDING
    error: Optional[RepositoryFailure] = None
    generation: int = 0
    on_success: Optional[Callable[['PendingWrite'], None]] = field(default=None, repr=False)


class WriteQueue:
    """Dispatches repository writes without blocking local edits."""

    def __init__(self, repository, timeout_seconds: Optional[float] = None):
        self._repository = repository
        self._timeout = timeout_seconds
        self._ids = count(1)
        self._queued: List[PendingWrite] = []
        self._tasks: Set[asyncio.Task] = set()
        self._generation = 0
        self.failures: List[RepositoryFailure] = []
        self._callbacks: Dict[str, List[Callable]] = {
            'success': [],
            'failure': [],
        }

    @property
    def repository(self):
        return self._repository

    @property
    def pending_count(self) -> int:
        """Writes not yet acknowledged (queued or in flight)."""
        return len(self._queued) + len(self._tasks)

    def on(self, event: str, callback: Callable) -> None:
        """
        Register a callback.

        Event types:
        - 'success': called with the PendingWrite once every call succeeded
        - 'failure': called with (PendingWrite, RepositoryFailure)
        """
        if event not in self._callbacks:
            raise ValueError(f"Unknown write queue event '{event}'")
        self._callbacks[event].append(callback)

    def off(self, event: str, callback: Callable) -> None:
        if event in self._callbacks and callback in self._callbacks[event]:
            self._callbacks[event].remove(callback)

    def _emit(self, event: str, *args) -> None:
        for callback in self._callbacks.get(event, []):
            try:
                callback(*args)
            except Exception as e:
                logger.error(f"Error in write queue callback for {event}: {e}")

    def submit(self, description: str, calls: List[WriteCall],
               on_success: Optional[Callable[[PendingWrite], None]] = None) -> PendingWrite:
        """Queue a write and dispatch it immediately if an event loop is running."""
        write = PendingWrite(id=next(self._ids), description=description,
                             calls=list(calls), on_success=on_success,
                             generation=self._generation)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is None:
            self._queued.append(write)
        else:
            self._dispatch(loop, write)
        logger.debug(f"Submitted write #{write.id}: {description}")
        return write

    def _dispatch(self, loop: asyncio.AbstractEventLoop, write: PendingWrite) -> None:
        task = loop.create_task(self._run(write))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> List[PendingWrite]:
        """Dispatch every queued write and wait for all outstanding ones."""
        queued, self._queued = self._queued, []
        loop = asyncio.get_running_loop()
        for write in queued:
            self._dispatch(loop, write)
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        return queued

    def abandon(self) -> int:
        """
        Forget every write not yet acknowledged.

        In-flight requests are neither awaited nor rolled back; queued ones
        are dropped. Whatever the in-flight ones end with is not reported:
        no success handler, no failure record, no callback. Returns how many
        writes were abandoned.
        """
        dropped = len(self._queued) + len(self._tasks)
        for write in self._queued:
            write.status = ABANDONED
        self._generation += 1
        self._queued = []
        self._tasks = set()
        if dropped:
            logger.warning(f"Abandoned {dropped} unacknowledged repository write(s)")
        return dropped

    def clear_failures(self) -> None:
        self.failures = []

    async def _call(self, call: WriteCall) -> Any:
        method = getattr(self._repository, call.method)
        pending = asyncio.to_thread(method, *call.args)
        if self._timeout:
            return await asyncio.wait_for(pending, self._timeout)
        return await pending

    def _is_stale(self, write: PendingWrite) -> bool:
        if write.generation == self._generation:
            return False
        write.status = ABANDONED
        return True

    async def _run(self, write: PendingWrite) -> None:
        write.status = IN_FLIGHT
        for call in write.calls:
            try:
                await self._call(call)
            except asyncio.TimeoutError:
                self._fail(write, call, f"timed out after {self._timeout}s", None)
                return
            except Exception as e:
                self._fail(write, call, str(e), e)
                return

        if self._is_stale(write):
            logger.debug(f"Abandoned write #{write.id} ({write.description}) completed")
            return
        write.status = DONE
        if write.on_success:
            try:
                write.on_success(write)
            except Exception as e:
                logger.error(f"Error in success handler of write #{write.id}: {e}")
        self._emit('success', write)

    def _fail(self, write: PendingWrite, call: WriteCall, message: str,
              cause: Optional[BaseException]) -> None:
        failure = RepositoryFailure(call.method, message, cause)
        if self._is_stale(write):
            write.error = failure
            logger.warning(f"Abandoned write #{write.id} ({write.description}) failed: {failure}")
            return
        write.status = FAILED
        write.error = failure
        self.failures.append(failure)
        logger.error(f"Write #{write.id} ({write.description}) failed: {failure}")
        self._emit('failure', write, failure)
