"""
Pytest configuration and fixtures for request-engine tests.
"""

import os
import tempfile
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import pytest
import responses as responses_lib

from request_engine.core.classifier import ResponseMeta
from request_engine.core.descriptor import RequestKind
from request_engine.core.engine import RequestEngine
from request_engine.core.logging.config import LoggingConfig
from request_engine.core.transport import Transport, TransportHandle


class InlineExecutor(Executor):
    """Runs submitted callables immediately in the calling thread."""

    def __init__(self):
        self.submitted = 0

    def submit(self, fn, *args, **kwargs):
        self.submitted += 1
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


@dataclass
class Outcome:
    """What one scripted attempt does."""

    status: Optional[int] = 200
    body: bytes = b"ok"
    error: Optional[BaseException] = None
    headers: Dict[str, str] = field(default_factory=dict)
    sent: Sequence[Tuple[int, int]] = ()


class MockHandle(TransportHandle):
    def __init__(self, transport: 'MockTransport', wire_request, kind, destination=None):
        super().__init__(wire_request, kind, destination)
        self._transport = transport
        self._cancelled = threading.Event()
        self.resumed = False

    def resume(self):
        if self.resumed or self.cancelled:
            return
        self.resumed = True
        self._transport._on_resume(self)

    def cancel(self):
        self._cancelled.set()

    @property
    def cancelled(self):
        return self._cancelled.is_set()


class MockTransport(Transport):
    """
    Transport that plays scripted outcomes instead of doing I/O.

    Each resumed handle takes the next outcome; the last one repeats.

    Modes:
        - auto (default): outcome is played synchronously inside ``resume``
        - threaded: outcome is played on a worker thread
        - manual (auto=False): handles wait in ``pending`` until ``play()``
    """

    def __init__(self, outcomes: Sequence[Outcome] = (), auto: bool = True, threaded: bool = False):
        super().__init__()
        self.outcomes: List[Outcome] = list(outcomes) or [Outcome()]
        self.auto = auto
        self.handles: List[MockHandle] = []
        self.pending: List[MockHandle] = []
        self.closed = False
        self._lock = threading.Lock()
        self._pool = ThreadPoolExecutor(max_workers=16) if threaded else None

    def create_handle(self, wire_request, kind, destination=None):
        handle = MockHandle(self, wire_request, kind, destination)
        with self._lock:
            self.handles.append(handle)
        return handle

    def next_outcome(self) -> Outcome:
        with self._lock:
            if len(self.outcomes) > 1:
                return self.outcomes.pop(0)
            return self.outcomes[0]

    def _on_resume(self, handle: MockHandle):
        if not self.auto:
            with self._lock:
                self.pending.append(handle)
            return
        outcome = self.next_outcome()
        if self._pool is not None:
            self._pool.submit(self.play, handle, outcome)
        else:
            self.play(handle, outcome)

    def play(self, handle: MockHandle, outcome: Optional[Outcome] = None):
        outcome = outcome or self.next_outcome()
        delegate = self.delegate
        if handle.cancelled:
            return

        for sent, total in outcome.sent:
            delegate.on_bytes_sent(handle, sent, total)

        if outcome.error is None:
            delegate.on_response(handle, ResponseMeta(
                status_code=outcome.status,
                headers=outcome.headers,
                url=handle.wire_request.url,
            ))
            if handle.kind is RequestKind.DOWNLOAD:
                self._download(handle, outcome.body)
            elif outcome.body:
                delegate.on_data(handle, outcome.body)

        delegate.on_complete(handle, outcome.error)

    def _download(self, handle: MockHandle, body: bytes):
        path = handle.destination
        if path is None:
            fd, path = tempfile.mkstemp(prefix="mock-download-")
            os.close(fd)
        with open(path, 'wb') as f:
            f.write(body)
        self.delegate.on_download_progress(handle, len(body), len(body))
        self.delegate.on_download_finished(handle, path)
        if handle.destination is None:
            os.remove(path)

    def close(self):
        self.closed = True
        if self._pool is not None:
            self._pool.shutdown(wait=True)


class Recorder:
    """Collects completion and progress callbacks in call order."""

    def __init__(self):
        self.events: List[Tuple[str, object]] = []
        self.done = threading.Event()
        self._lock = threading.Lock()

    def completion(self, result):
        with self._lock:
            self.events.append(("completion", result))
        self.done.set()

    def progress(self, value):
        with self._lock:
            self.events.append(("progress", value))

    @property
    def results(self):
        return [value for kind, value in self.events if kind == "completion"]

    @property
    def progress_values(self):
        return [value for kind, value in self.events if kind == "progress"]


@pytest.fixture
def base_url():
    """Base URL for testing."""
    return "https://api.example.com"


@pytest.fixture
def mock_responses():
    """Mock HTTP responses using responses library."""
    with responses_lib.RequestsMock() as rsps:
        yield rsps


@pytest.fixture
def inline_executor():
    return InlineExecutor()


@pytest.fixture
def mock_transport():
    return MockTransport()


@pytest.fixture
def engine(mock_transport, inline_executor):
    """Engine over the scripted transport; callbacks run inline."""
    engine = RequestEngine(transport=mock_transport, callback_executor=inline_executor)
    yield engine
    engine.close()


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def logging_config_with_file(tmp_path):
    """LoggingConfig writing JSON lines to a temporary file."""
    return LoggingConfig.create(
        level="DEBUG",
        format="json",
        enable_console=False,
        enable_file=True,
        file_path=str(tmp_path / "engine.log"),
    )


@pytest.fixture
def make_engine(inline_executor):
    """
    Factory: ``make_engine(outcomes, auto=True, threaded=False, config=None, executor=...)``.

    Returns ``(engine, transport)``; every engine is closed after the test.
    """
    created = []

    def factory(outcomes=(), auto=True, threaded=False, config=None, executor=inline_executor):
        transport = MockTransport(outcomes, auto=auto, threaded=threaded)
        engine = RequestEngine(config=config, transport=transport, callback_executor=executor)
        created.append(engine)
        return engine, transport

    yield factory

    for engine in created:
        engine.close()


@pytest.fixture
def outcome():
    """The Outcome class, for scripting MockTransport attempts."""
    return Outcome
