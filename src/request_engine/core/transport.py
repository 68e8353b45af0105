"""
Транспорт: выполнение WireRequest поверх requests.

Включает:
- TransportHandle / Transport / TransportDelegate - контракт между движком и транспортом
- ProgressReader - file-like тело запроса с отчётом об отправленных байтах
- RequestsTransport - пул воркеров + один поток доставки событий

События одного handle доставляются делегату строго по порядку:
on_response -> on_data / on_bytes_sent / on_download_progress ->
on_download_finished -> on_complete.
"""

import io
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import BinaryIO, Callable, Optional

import requests
from requests.adapters import HTTPAdapter

from .classifier import ResponseMeta
from .config import EngineConfig
from .descriptor import RequestKind
from .encoder import WireRequest
from .session_manager import ThreadSafeSessionManager

logger = logging.getLogger(__name__)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# CONTRACT
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class TransportHandle(ABC):
    """
    Одна попытка выполнения запроса.

    Сравнивается по identity: движок использует handle как ключ реестра.
    """

    def __init__(
        self,
        wire_request: WireRequest,
        kind: RequestKind,
        destination: Optional[str] = None,
    ):
        self.wire_request = wire_request
        self.kind = RequestKind(kind)
        self.destination = destination

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} {self.wire_request.method} "
            f"{self.wire_request.url} kind={self.kind.value}>"
        )

    @abstractmethod
    def resume(self) -> None:
        """Запустить выполнение (повторный вызов игнорируется)."""

    @abstractmethod
    def cancel(self) -> None:
        """Прервать выполнение; on_complete после этого не приходит."""

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        ...


class TransportDelegate:
    """
    Получатель событий транспорта.

    Все методы по умолчанию ничего не делают.
    """

    def on_response(self, handle: TransportHandle, meta: ResponseMeta) -> None:
        pass

    def on_data(self, handle: TransportHandle, chunk: bytes) -> None:
        pass

    def on_bytes_sent(self, handle: TransportHandle, sent: int, expected: int) -> None:
        pass

    def on_download_progress(self, handle: TransportHandle, written: int, expected: int) -> None:
        pass

    def on_download_finished(self, handle: TransportHandle, path: str) -> None:
        pass

    def on_complete(self, handle: TransportHandle, error: Optional[BaseException]) -> None:
        pass


class Transport(ABC):
    """Фабрика handle'ов, общая для всех задач движка."""

    def __init__(self):
        self._delegate: TransportDelegate = TransportDelegate()

    def set_delegate(self, delegate: TransportDelegate) -> None:
        self._delegate = delegate

    @property
    def delegate(self) -> TransportDelegate:
        return self._delegate

    @abstractmethod
    def create_handle(
        self,
        wire_request: WireRequest,
        kind: RequestKind,
        destination: Optional[str] = None,
    ) -> TransportHandle:
        """Создать handle в состоянии "не запущен"."""

    def close(self) -> None:
        pass


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# UPLOAD BODY
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class ProgressReader:
    """
    File-like обёртка над телом запроса.

    requests читает тело через ``read``; каждый прочитанный блок
    считается отправленным и передаётся в ``on_progress(sent, total)``.

    Example:
        >>> reader = ProgressReader(io.BytesIO(b"abc"), 3, print)
        >>> reader.read()
        3 3
        b'abc'
    """

    def __init__(
        self,
        source: BinaryIO,
        total: int,
        on_progress: Callable[[int, int], None],
        chunk_size: int = 8192,
    ):
        self._source = source
        self._total = total
        self._on_progress = on_progress
        self._chunk_size = chunk_size
        self.sent = 0

    @classmethod
    def for_wire(
        cls,
        wire_request: WireRequest,
        on_progress: Callable[[int, int], None],
        chunk_size: int = 8192,
    ) -> Optional['ProgressReader']:
        """Reader для тела запроса или None если тела нет."""
        if wire_request.body_file is not None:
            total = os.path.getsize(wire_request.body_file)
            return cls(open(wire_request.body_file, 'rb'), total, on_progress, chunk_size)
        if wire_request.body:
            body = wire_request.body
            return cls(io.BytesIO(body), len(body), on_progress, chunk_size)
        return None

    def read(self, size: int = -1) -> bytes:
        data = self._source.read(size)
        if data:
            self.sent += len(data)
            self._on_progress(self.sent, self._total)
        return data

    def __iter__(self):
        while True:
            chunk = self.read(self._chunk_size)
            if not chunk:
                return
            yield chunk

    def __len__(self) -> int:
        return self._total

    def close(self) -> None:
        self._source.close()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# REQUESTS TRANSPORT
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class RequestsHandle(TransportHandle):
    """Handle транспорта на requests."""

    def __init__(self, transport: 'RequestsTransport', wire_request, kind, destination=None):
        super().__init__(wire_request, kind, destination)
        self._transport = transport
        self._cancel_event = threading.Event()
        self._started = False
        self._lock = threading.Lock()

    def resume(self) -> None:
        with self._lock:
            if self._started or self._cancel_event.is_set():
                return
            self._started = True
        self._transport._submit(self)

    def cancel(self) -> None:
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()


class RequestsTransport(Transport):
    """
    Транспорт поверх requests.

    Блокирующие вызовы requests выполняются в пуле воркеров
    (``pool.max_workers``), у каждого воркера своя Session. События
    делегату доставляются из одного потока, поэтому события одной
    попытки приходят в том порядке, в котором произошли.

    Example:
        >>> transport = RequestsTransport(EngineConfig())
        >>> transport.set_delegate(engine)
        >>> handle = transport.create_handle(wire, RequestKind.DATA)
        >>> handle.resume()
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        super().__init__()
        self._config = config or EngineConfig()
        self._sessions = ThreadSafeSessionManager(self._create_session)
        self._workers = ThreadPoolExecutor(
            max_workers=self._config.pool.max_workers,
            thread_name_prefix="request-engine-io",
        )
        self._delivery = ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix="request-engine-delivery",
        )

    def _create_session(self) -> requests.Session:
        """Create configured session."""
        session = requests.Session()

        adapter = HTTPAdapter(
            pool_connections=self._config.pool.pool_connections,
            pool_maxsize=self._config.pool.pool_maxsize,
            pool_block=self._config.pool.pool_block,
            max_retries=0  # Повторы делает движок
        )
        session.mount('http://', adapter)
        session.mount('https://', adapter)
        return session

    def create_handle(self, wire_request, kind, destination=None) -> RequestsHandle:
        return RequestsHandle(self, wire_request, kind, destination)

    def close(self) -> None:
        """Дождаться воркеров, доставить оставшиеся события, закрыть сессии."""
        self._workers.shutdown(wait=True)
        self._delivery.shutdown(wait=True)
        self._sessions.close_all()

    # ==================== Internals ====================

    def _submit(self, handle: RequestsHandle) -> None:
        try:
            self._workers.submit(self._run, handle)
        except RuntimeError as e:
            # Пул уже закрыт
            self._deliver(self.delegate.on_complete, handle, e)

    def _deliver(self, fn: Callable, *args) -> None:
        try:
            self._delivery.submit(self._safe_call, fn, *args)
        except RuntimeError:
            self._safe_call(fn, *args)

    @staticmethod
    def _safe_call(fn: Callable, *args) -> None:
        try:
            fn(*args)
        except Exception:
            logger.exception(f"Transport delegate {fn!r} failed")

    def _run(self, handle: RequestsHandle) -> None:
        delegate = self.delegate
        wire = handle.wire_request
        error: Optional[BaseException] = None
        response: Optional[requests.Response] = None
        body: Optional[ProgressReader] = None

        def sent(count: int, total: int) -> None:
            self._deliver(delegate.on_bytes_sent, handle, count, total)

        try:
            body = ProgressReader.for_wire(wire, sent, self._config.pool.chunk_size)
            session = self._sessions.get_session()
            response = session.request(
                wire.method,
                wire.url,
                headers=wire.headers_dict,
                data=body,
                stream=True,
                timeout=self._config.timeout.as_tuple(),
                verify=self._config.security.verify_ssl,
                allow_redirects=self._config.security.allow_redirects,
            )
            if handle.cancelled:
                return

            self._deliver(delegate.on_response, handle, ResponseMeta.from_requests(response))

            if handle.kind is RequestKind.DOWNLOAD:
                self._download(handle, response)
            else:
                for chunk in response.iter_content(chunk_size=self._config.pool.chunk_size):
                    if handle.cancelled:
                        return
                    if chunk:
                        self._deliver(delegate.on_data, handle, chunk)

        except Exception as e:
            logger.debug(f"Request {wire.method} {wire.url} failed: {type(e).__name__}: {e}")
            error = e

        finally:
            if response is not None:
                response.close()
            if body is not None:
                body.close()

        if handle.cancelled:
            return
        self._deliver(delegate.on_complete, handle, error)

    def _download(self, handle: RequestsHandle, response: requests.Response) -> None:
        delegate = self.delegate
        expected = _content_length(response)

        temporary = handle.destination is None
        if temporary:
            fd, path = tempfile.mkstemp(prefix="request-engine-", suffix=".download")
            target = os.fdopen(fd, 'wb')
        else:
            path = handle.destination
            target = open(path, 'wb')

        written = 0
        try:
            with target:
                for chunk in response.iter_content(chunk_size=self._config.pool.chunk_size):
                    if handle.cancelled:
                        break
                    if not chunk:  # keep-alive
                        continue
                    target.write(chunk)
                    written += len(chunk)
                    self._deliver(delegate.on_download_progress, handle, written, expected)
        except Exception:
            _discard(path)
            raise

        if handle.cancelled:
            if temporary:
                _discard(path)
            return

        self._deliver(delegate.on_download_finished, handle, path)
        if temporary:
            # После того как движок прочитал файл
            self._deliver(_discard, path)


def _content_length(response: requests.Response) -> int:
    try:
        return max(int(response.headers.get('Content-Length', 0)), 0)
    except (TypeError, ValueError):
        return 0


def _discard(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Cannot remove temporary file {path}: {e}")
