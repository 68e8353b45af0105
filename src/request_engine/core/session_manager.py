# src/request_engine/core/session_manager.py
"""
Thread-local requests.Session storage for the transport workers.

requests.Session is not guaranteed to be thread-safe, so every worker thread
of the transport gets its own session built by the same factory.
"""
import logging
import threading
import weakref
from typing import Callable, Set

import requests

logger = logging.getLogger(__name__)


class ThreadSafeSessionManager:
    """
    Hands out one lazily created requests.Session per thread.

    Example:
        >>> manager = ThreadSafeSessionManager(session_factory)
        >>> session = manager.get_session()  # session of the current worker
        >>> manager.close_all()              # closes sessions of all workers
    """

    def __init__(self, session_factory: Callable[[], requests.Session]):
        """
        Args:
            session_factory: Callable that creates and configures a new Session
        """
        self._session_factory = session_factory
        self._local = threading.local()

        # Weak references so sessions of finished threads can be collected
        self._all_sessions: Set[weakref.ref] = set()
        self._sessions_lock = threading.Lock()
        self._closed = False

    def get_session(self) -> requests.Session:
        """Session of the calling thread, created on first use."""
        session = getattr(self._local, 'session', None)
        if session is None:
            session = self._session_factory()
            self._local.session = session
            with self._sessions_lock:
                self._all_sessions.add(weakref.ref(session, self._forget))
                self._closed = False
        return session

    def _forget(self, ref: weakref.ref) -> None:
        with self._sessions_lock:
            self._all_sessions.discard(ref)

    def close_all(self) -> None:
        """
        Close the sessions of every thread.

        Safe to call multiple times; threads that keep working afterwards
        get a fresh session.
        """
        with self._sessions_lock:
            refs = list(self._all_sessions)
            self._all_sessions.clear()
            self._closed = True

        for ref in refs:
            session = ref()
            if session is None:
                continue
            try:
                session.close()
            except Exception as e:
                logger.debug(f"Error while closing session: {e}")

        self._local = threading.local()

    def get_active_sessions_count(self) -> int:
        """Number of sessions that are still alive."""
        with self._sessions_lock:
            return sum(1 for ref in self._all_sessions if ref() is not None)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close_all()
        return False
