"""
Thread-safe registry of in-flight tasks.

Two views over the same data:
- transport handle -> task (event correlation, O(1))
- scan by wire request value (cancel by descriptor)
"""

import threading
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

if TYPE_CHECKING:
    from .encoder import WireRequest
    from .task import OperationTask
    from .transport import TransportHandle


class TaskRegistry:
    """
    Lock-guarded mapping of live transport handles to tasks.

    Invariants:
        - at most one task per handle
        - a handle is never mapped to two different tasks
        - ``replace`` swaps a task's handle in one step

    Example:
        >>> registry = TaskRegistry()
        >>> registry.add(handle, task)
        >>> registry.get(handle) is task
        True
        >>> registry.pop(handle) is task
        True
        >>> len(registry)
        0
    """

    def __init__(self):
        self._tasks: Dict['TransportHandle', 'OperationTask'] = {}
        self._lock = threading.RLock()

    def add(self, handle: 'TransportHandle', task: 'OperationTask') -> None:
        with self._lock:
            existing = self._tasks.get(handle)
            if existing is not None and existing is not task:
                raise ValueError(f"Transport handle {handle!r} is already registered")
            self._tasks[handle] = task

    def get(self, handle: 'TransportHandle') -> Optional['OperationTask']:
        with self._lock:
            return self._tasks.get(handle)

    def pop(self, handle: 'TransportHandle') -> Optional['OperationTask']:
        """Remove and return the task for ``handle`` (None if not registered)."""
        with self._lock:
            return self._tasks.pop(handle, None)

    def replace(
        self,
        old_handle: 'TransportHandle',
        new_handle: 'TransportHandle',
        task: 'OperationTask',
    ) -> bool:
        """
        Move ``task`` from ``old_handle`` to ``new_handle``.

        Returns False (and changes nothing) when ``old_handle`` no longer maps
        to ``task``, i.e. the task was cancelled meanwhile.
        """
        with self._lock:
            if self._tasks.get(old_handle) is not task:
                return False
            if new_handle in self._tasks:
                raise ValueError(f"Transport handle {new_handle!r} is already registered")
            del self._tasks[old_handle]
            self._tasks[new_handle] = task
            return True

    def take_matching(
        self, wire_request: 'WireRequest'
    ) -> Optional[Tuple['TransportHandle', 'OperationTask']]:
        """
        Remove and return the first task (in registration order) whose
        current wire request equals ``wire_request``.
        """
        with self._lock:
            for handle, task in self._tasks.items():
                if task.wire_request == wire_request:
                    del self._tasks[handle]
                    return handle, task
            return None

    def tasks(self) -> List['OperationTask']:
        with self._lock:
            return list(self._tasks.values())

    def clear(self) -> List['OperationTask']:
        with self._lock:
            tasks = list(self._tasks.values())
            self._tasks.clear()
            return tasks

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    def __contains__(self, handle: object) -> bool:
        with self._lock:
            return handle in self._tasks
