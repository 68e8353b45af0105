"""
Operation task: one tracked request across all of its attempts.

State machine::

    DISPATCHED --failure, budget left--> RETRYING --relaunch--> DISPATCHED
    DISPATCHED --success / budget spent--> COMPLETED
    any non-terminal --cancel--> CANCELLED
"""

import logging
import threading
import uuid
from collections import deque
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional

from .response import Result

if TYPE_CHECKING:
    from .classifier import ResponseMeta
    from .descriptor import RequestDescriptor
    from .encoder import WireRequest
    from .transport import TransportHandle

logger = logging.getLogger(__name__)

CompletionHandler = Callable[[Result], Any]
ProgressHandler = Callable[[float], Any]


@dataclass(frozen=True)
class TaskCallbacks:
    """
    Callbacks attached to a request at build time.

    Attributes:
        completion: Called once with the final Result
        progress: Called with fractions in [0.0, 1.0], last call is exactly 1.0
        callback_executor: Where callbacks run (engine default if None)
        retry_count: How many times a failed request is re-issued
    """

    completion: Optional[CompletionHandler] = None
    progress: Optional[ProgressHandler] = None
    callback_executor: Optional[Executor] = None
    retry_count: int = 0

    def __post_init__(self):
        if self.retry_count < 0:
            raise ValueError("retry_count must be non-negative")


class TaskState(str, Enum):
    DISPATCHED = "dispatched"
    RETRYING = "retrying"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OperationTask:
    """
    One request in flight.

    The transport handle is replaced on every retry; the task itself, its
    callbacks and its ``future`` stay the same.

    Callbacks of one task run one at a time, in the order they were
    queued, whatever the number of workers in the callback executor.
    """

    def __init__(
        self,
        descriptor: 'RequestDescriptor',
        wire_request: 'WireRequest',
        handle: 'TransportHandle',
        callbacks: TaskCallbacks,
        callback_executor: Executor,
    ):
        self.descriptor = descriptor
        self.wire_request = wire_request
        self.handle = handle
        self.callbacks = callbacks
        self.request_id = str(uuid.uuid4())
        self.future: Future = Future()

        self.remaining_retries = callbacks.retry_count
        self.attempt = 0
        self.buffer = bytearray()
        self.response: Optional['ResponseMeta'] = None
        self.error: Optional[BaseException] = None
        self.state = TaskState.DISPATCHED

        self._callback_executor = callbacks.callback_executor or callback_executor
        self._last_progress = 0.0
        self._lock = threading.Lock()
        self._pending: deque = deque()
        self._draining = False

    def __repr__(self) -> str:
        return (
            f"<OperationTask {self.request_id} {self.wire_request.method} "
            f"{self.wire_request.url} state={self.state.value} "
            f"retries_left={self.remaining_retries}>"
        )

    # ==================== Transport events ====================

    def set_response(self, meta: 'ResponseMeta') -> None:
        self.response = meta

    def append(self, data: bytes) -> None:
        self.buffer.extend(data)

    def replace_buffer(self, data: bytes) -> None:
        self.buffer = bytearray(data)

    def record_error(self, error: BaseException) -> None:
        """Local failure of the current attempt (e.g. unreadable download)."""
        if self.error is None:
            self.error = error

    def progress(self, value: float) -> None:
        """
        Report progress to the caller.

        Values are clamped to [0, 1]; a value below the last reported one is
        dropped, so the caller only ever sees a non-decreasing sequence.
        """
        value = min(max(float(value), 0.0), 1.0)
        handler = self.callbacks.progress
        with self._lock:
            if value < self._last_progress or self.finished:
                return
            self._last_progress = value
            start_drain = handler is not None and self._enqueue((handler, value))

        if start_drain:
            self._schedule_drain()

    # ==================== Lifecycle ====================

    def begin_retry(self) -> bool:
        """
        Spend one retry and clear the state of the failed attempt.

        Returns:
            False if the task already finished (cancelled meanwhile)
        """
        with self._lock:
            if self.finished:
                return False
            self.remaining_retries -= 1
            self.attempt += 1
            self.buffer = bytearray()
            self.response = None
            self.error = None
            self.state = TaskState.RETRYING
        return True

    def relaunched(self, handle: 'TransportHandle', wire_request: 'WireRequest') -> None:
        with self._lock:
            if self.finished:
                return
            self.handle = handle
            self.wire_request = wire_request
            self.state = TaskState.DISPATCHED

    def complete(self, result: Result) -> None:
        """Deliver the final result, then progress 1.0, then resolve ``future``."""
        jobs = []
        if self.callbacks.completion is not None:
            jobs.append((self.callbacks.completion, result))
        if self.callbacks.progress is not None:
            jobs.append((self.callbacks.progress, 1.0))
        jobs.append((self._resolve, result))

        with self._lock:
            if self.finished:
                return
            self.state = TaskState.COMPLETED
            self._last_progress = 1.0
            start_drain = self._enqueue(*jobs)

        if start_drain:
            self._schedule_drain()

    def cancel(self) -> bool:
        """Mark cancelled; the completion callback is never called afterwards."""
        with self._lock:
            if self.state in (TaskState.COMPLETED, TaskState.CANCELLED):
                return False
            self.state = TaskState.CANCELLED
        self.future.cancel()
        return True

    @property
    def finished(self) -> bool:
        return self.state in (TaskState.COMPLETED, TaskState.CANCELLED)

    # ==================== Internals ====================

    def _resolve(self, result: Result) -> None:
        if not self.future.done():
            self.future.set_result(result)

    def _enqueue(self, *jobs) -> bool:
        """Queue callback jobs; True if the caller must schedule a drain. Needs ``_lock``."""
        self._pending.extend(jobs)
        if self._draining:
            return False
        self._draining = True
        return True

    def _schedule_drain(self) -> None:
        try:
            self._callback_executor.submit(self._drain)
        except RuntimeError:
            # Executor already shut down (engine closed, interpreter exit): run inline.
            self._drain()

    def _drain(self) -> None:
        """Run queued jobs in order until the queue is empty."""
        while True:
            with self._lock:
                if not self._pending:
                    self._draining = False
                    return
                fn, arg = self._pending.popleft()
            self._run_callback(fn, arg)

    def _run_callback(self, fn: Callable, *args) -> None:
        try:
            fn(*args)
        except Exception:
            logger.exception(f"Callback {fn!r} failed for task {self.request_id}")
