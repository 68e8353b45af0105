"""
RequestEngine: запуск, корреляция событий транспорта, retry и отмена.

Жизненный цикл задачи:
- start: кодирование -> handle -> регистрация -> resume
- события транспорта находят задачу по handle (неизвестный handle = no-op)
- on_complete: классификация -> retry (новый handle, та же задача)
  или доставка результата
- cancel: задача снимается с реестра, completion не вызывается
"""

import atexit
import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any, ClassVar, Optional, Set

from ..utils.sanitizer import mask_url
from .classifier import ResponseClassifier, ResponseMeta
from .config import EngineConfig
from .descriptor import RequestDescriptor
from .encoder import WireRequest, encode_descriptor
from .exceptions import EngineClosedError, FatalError, StatusCodeError
from .logging import EngineLogger
from .registry import TaskRegistry
from .response import Result
from .retry_engine import RetryEngine
from .task import OperationTask, TaskCallbacks, TaskState
from .transport import RequestsTransport, Transport, TransportDelegate, TransportHandle

logger = logging.getLogger(__name__)


class RequestEngine(TransportDelegate):
    """
    Исполнитель запросов.

    Все задачи делят один транспорт (и его пул соединений). Результат
    доставляется в completion callback и в ``Future``, возвращаемый ``start``.

    Examples:
        >>> engine = RequestEngine()
        >>> future = engine.start(
        ...     RequestDescriptor.plain("https://api.example.com/users"),
        ...     TaskCallbacks(retry_count=2),
        ... )
        >>> result = future.result(timeout=10)
        >>> result.unwrap().json()

        >>> with RequestEngine(EngineConfig.create(max_workers=4)) as engine:
        ...     engine.start(descriptor, TaskCallbacks(completion=print))
    """

    _shared_instance: ClassVar[Optional['RequestEngine']] = None
    _shared_lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        transport: Optional[Transport] = None,
        classifier: Optional[ResponseClassifier] = None,
        callback_executor: Optional[Executor] = None,
    ):
        """
        Args:
            config: Конфигурация (по умолчанию EngineConfig())
            transport: Транспорт (по умолчанию RequestsTransport)
            classifier: Классификатор ответов
            callback_executor: Где выполняются callback'и, если задача
                не указала свой (по умолчанию пул из ``config.callback_workers``)
        """
        self.config = config or EngineConfig()
        self._registry = TaskRegistry()
        self._classifier = classifier or ResponseClassifier()
        self._retry = RetryEngine(self.config.retry)

        self._owns_executor = callback_executor is None
        self._callback_threads: Set[int] = set()
        self._callback_executor = callback_executor or ThreadPoolExecutor(
            max_workers=self.config.callback_workers,
            thread_name_prefix="request-engine-callback",
            initializer=self._register_callback_thread,
        )

        self._transport = transport or RequestsTransport(self.config)
        self._transport.set_delegate(self)

        self._lifecycle: Optional[EngineLogger] = None
        if self.config.logging is not None:
            self._lifecycle = EngineLogger(self.config.logging)

        self._timers: Set[threading.Timer] = set()
        self._timers_lock = threading.Lock()
        self._closed = False

    @classmethod
    def shared(cls) -> 'RequestEngine':
        """
        Общий движок процесса.

        Создаётся при первом обращении, закрывается при выходе интерпретатора.
        """
        with cls._shared_lock:
            engine = cls._shared_instance
            if engine is None or engine._closed:
                engine = cls()
                atexit.register(engine.close)
                cls._shared_instance = engine
            return engine

    # ==================== Public API ====================

    def start(
        self,
        descriptor: RequestDescriptor,
        callbacks: Optional[TaskCallbacks] = None,
    ) -> 'Future[Result]':
        """
        Запустить запрос.

        Возвращается сразу. Ошибка кодирования (невалидный URL, не
        сериализуемые параметры, нет файла) доставляется как failure без
        попыток retry. Закрытый движок ничего не отправляет: Result с
        EngineClosedError.

        Args:
            descriptor: Что отправить
            callbacks: completion / progress / executor / retry_count

        Returns:
            Future с итоговым Result
        """
        callbacks = callbacks or TaskCallbacks()
        if self._closed:
            return self._fail_fast(descriptor, callbacks, EngineClosedError())

        try:
            wire = encode_descriptor(descriptor)
        except FatalError as e:
            return self._fail_fast(descriptor, callbacks, e)

        handle = self._transport.create_handle(wire, descriptor.kind, descriptor.destination)
        task = OperationTask(descriptor, wire, handle, callbacks, self._callback_executor)
        self._registry.add(handle, task)

        self._log(
            logging.INFO, "Request started", task,
            kind=descriptor.kind.value,
            retries_left=task.remaining_retries,
        )
        handle.resume()
        return task.future

    def cancel(self, descriptor: RequestDescriptor) -> bool:
        """
        Отменить запрос, совпадающий с дескриптором.

        Сравнение по закодированному запросу; при нескольких совпадениях
        отменяется самый ранний. Completion callback отменённой задачи не
        вызывается, её Future отменяется.

        Returns:
            True если задача найдена и отменена
        """
        try:
            wire = encode_descriptor(descriptor)
        except FatalError:
            return False

        match = self._registry.take_matching(wire)
        if match is None:
            logger.debug(f"Cancel: no active task for {wire.method} {mask_url(wire.url)}")
            return False

        handle, task = match
        task.cancel()
        handle.cancel()
        self._log(logging.INFO, "Request cancelled", task, attempt=task.attempt)
        return True

    @property
    def active_count(self) -> int:
        """Сколько задач сейчас в реестре."""
        return len(self._registry)

    @property
    def transport(self) -> Transport:
        return self._transport

    def close(self) -> None:
        """
        Отменить активные задачи и освободить ресурсы.

        Идемпотентен. Можно вызывать из callback'а: тогда пул callback'ов
        не ждёт сам себя, оставшиеся callback'и дорабатывают в фоне.
        """
        if self._closed:
            return
        self._closed = True

        with self._timers_lock:
            timers = list(self._timers)
            self._timers.clear()
        for timer in timers:
            timer.cancel()

        for task in self._registry.clear():
            task.cancel()
            if task.handle is not None:
                task.handle.cancel()

        self._transport.close()
        if self._owns_executor:
            on_callback_thread = threading.get_ident() in self._callback_threads
            self._callback_executor.shutdown(wait=not on_callback_thread)
        if self._lifecycle is not None:
            self._lifecycle.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    # ==================== Transport delegate ====================

    def on_response(self, handle: TransportHandle, meta: ResponseMeta) -> None:
        task = self._registry.get(handle)
        if task is not None:
            task.set_response(meta)

    def on_data(self, handle: TransportHandle, chunk: bytes) -> None:
        task = self._registry.get(handle)
        if task is not None:
            task.append(chunk)

    def on_bytes_sent(self, handle: TransportHandle, sent: int, expected: int) -> None:
        task = self._registry.get(handle)
        if task is not None and expected > 0:
            task.progress(sent / expected)

    def on_download_progress(self, handle: TransportHandle, written: int, expected: int) -> None:
        task = self._registry.get(handle)
        if task is not None and expected > 0:
            task.progress(written / expected)

    def on_download_finished(self, handle: TransportHandle, path: str) -> None:
        task = self._registry.get(handle)
        if task is None:
            return
        try:
            with open(path, 'rb') as f:
                task.replace_buffer(f.read())
        except OSError as e:
            logger.warning(f"Cannot read downloaded file {path}: {e}")
            task.record_error(e)

    def on_complete(self, handle: TransportHandle, error: Optional[BaseException]) -> None:
        task = self._registry.get(handle)
        if task is None:
            return

        result = self._classifier.classify(
            task.buffer,
            task.response,
            error or task.error,
            url=task.wire_request.url,
        )

        if self._retry.should_retry(result, task.remaining_retries):
            self._schedule_retry(handle, task, result)
            return

        # Задачу забирает тот, кто первым снял её с реестра (complete или cancel)
        if self._registry.pop(handle) is not task:
            return
        self._log_outcome(task, result)
        task.complete(result)

    # ==================== Retry ====================

    def _schedule_retry(self, handle: TransportHandle, task: OperationTask, result: Result) -> None:
        wait = self._retry.get_wait_time(task.attempt, task.response)
        if not task.begin_retry():
            return

        self._log(
            logging.WARNING, "Request retrying", task,
            attempt=task.attempt,
            retries_left=task.remaining_retries,
            wait_seconds=round(wait, 3),
            error=str(result.error),
        )

        if wait <= 0:
            self._relaunch(handle, task)
            return

        timer = threading.Timer(wait, self._fire_timer, args=(handle, task))
        timer.daemon = True
        with self._timers_lock:
            if self._closed:
                return
            self._timers.add(timer)
        timer.start()

    def _fire_timer(self, handle: TransportHandle, task: OperationTask) -> None:
        with self._timers_lock:
            self._timers.discard(threading.current_thread())
        self._relaunch(handle, task)

    def _relaunch(self, old_handle: TransportHandle, task: OperationTask) -> None:
        """Выпустить новую попытку той же задачи на новом handle."""
        if task.state is TaskState.CANCELLED or self._closed:
            return

        try:
            wire = encode_descriptor(task.descriptor)
        except FatalError as e:
            # Например, файл для upload удалён между попытками
            if self._registry.pop(old_handle) is task:
                result = Result.failure(e)
                self._log_outcome(task, result)
                task.complete(result)
            return

        new_handle = self._transport.create_handle(
            wire, task.descriptor.kind, task.descriptor.destination
        )
        if not self._registry.replace(old_handle, new_handle, task):
            logger.debug(f"Task {task.request_id} was cancelled before relaunch")
            return

        task.relaunched(new_handle, wire)
        new_handle.resume()

    # ==================== Internals ====================

    def _register_callback_thread(self) -> None:
        self._callback_threads.add(threading.get_ident())

    def _fail_fast(
        self,
        descriptor: RequestDescriptor,
        callbacks: TaskCallbacks,
        error: FatalError,
    ) -> 'Future[Result]':
        wire = WireRequest(method=descriptor.method.value, url=str(descriptor.url))
        task = OperationTask(descriptor, wire, None, callbacks, self._callback_executor)
        result = Result.failure(error)
        self._log_outcome(task, result)
        task.complete(result)
        return task.future

    def _log_outcome(self, task: OperationTask, result: Result) -> None:
        if result.ok:
            meta = result.value.meta
            self._log(
                logging.INFO, "Request completed", task,
                status_code=meta.status_code if meta is not None else None,
                attempt=task.attempt,
                size=len(result.value),
            )
            return

        error = result.error
        fields: dict = {
            'attempt': task.attempt,
            'error_type': type(error).__name__,
            'error': str(error),
        }
        if isinstance(error, StatusCodeError):
            fields['status_code'] = error.status_code
        self._log(logging.ERROR, "Request failed", task, **fields)

    def _log(self, level: int, message: str, task: OperationTask, **fields: Any) -> None:
        wire = task.wire_request
        url = mask_url(wire.url)

        logger.debug(f"{message}: {wire.method} {url} [{task.request_id}]")

        if self._lifecycle is not None:
            self._lifecycle.log(
                level, message,
                correlation_id=task.request_id,
                method=wire.method,
                url=url,
                **fields
            )
