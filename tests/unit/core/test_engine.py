"""Тесты RequestEngine: доставка, retry, отмена, прогресс."""

import json
import threading
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor

import pytest
import requests

from request_engine.core.config import EngineConfig, RetryConfig
from request_engine.core.descriptor import RequestDescriptor
from request_engine.core.encoder import RequestEncoder
from request_engine.core.engine import RequestEngine
from request_engine.core.exceptions import (
    ConnectionError,
    EncodingError,
    EngineClosedError,
    MissingDataError,
    StatusCodeError,
    UnknownError,
    URLConversionError,
)
from request_engine.core.multipart import MultipartFormData
from request_engine.core.task import TaskCallbacks

URL = "https://api.example.com/items"


def callbacks_for(recorder, retry_count=0):
    return TaskCallbacks(
        completion=recorder.completion,
        progress=recorder.progress,
        retry_count=retry_count,
    )


# ==================== Delivery ====================

class TestDelivery:
    """Итоговый результат и порядок callback'ов."""

    def test_success_resolves_future_and_completion(self, engine, recorder):
        """Успешный ответ попадает и в completion, и в Future."""
        future = engine.start(RequestDescriptor.plain(URL), callbacks_for(recorder))

        result = future.result(timeout=1)
        assert result.ok
        assert result.value.data == b"ok"
        assert result.value.meta.status_code == 200
        assert recorder.results == [result]
        assert engine.active_count == 0

    def test_completion_then_final_progress(self, engine, recorder):
        """Completion приходит до финального progress 1.0, и только один раз."""
        engine.start(RequestDescriptor.plain(URL), callbacks_for(recorder))

        kinds = [kind for kind, _ in recorder.events]
        assert kinds == ["completion", "progress"]
        assert recorder.events[-1] == ("progress", 1.0)

    def test_final_progress_even_on_failure(self, make_engine, outcome, recorder):
        """progress 1.0 приходит и при ошибке."""
        engine, _ = make_engine([outcome(status=500, body=b"boom")])

        engine.start(RequestDescriptor.plain(URL), callbacks_for(recorder))

        assert recorder.progress_values == [1.0]
        assert isinstance(recorder.results[0].error, StatusCodeError)

    def test_start_without_callbacks(self, engine):
        """Callbacks необязательны, Future работает всегда."""
        result = engine.start(RequestDescriptor.plain(URL)).result(timeout=1)
        assert result.ok

    def test_empty_body_is_missing_data(self, make_engine, outcome):
        """204 без тела = MissingDataError."""
        engine, _ = make_engine([outcome(status=204, body=b"")])

        result = engine.start(RequestDescriptor.plain(URL)).result(timeout=1)
        assert isinstance(result.error, MissingDataError)

    def test_transport_error_wins(self, make_engine, outcome):
        """Ошибка транспорта важнее статуса."""
        engine, _ = make_engine([outcome(error=requests.exceptions.ConnectionError("refused"))])

        result = engine.start(RequestDescriptor.plain(URL)).result(timeout=1)
        assert isinstance(result.error, ConnectionError)
        assert isinstance(result.error.__cause__, requests.exceptions.ConnectionError)

    def test_failing_callback_does_not_block_future(self, engine):
        """Исключение в completion логируется, Future всё равно разрешается."""
        def broken(result):
            raise RuntimeError("callback bug")

        future = engine.start(RequestDescriptor.plain(URL), TaskCallbacks(completion=broken))
        assert future.result(timeout=1).ok

    def test_task_executor_overrides_default(self, engine, inline_executor):
        """callback_executor задачи используется вместо движкового."""
        class Counting(Executor):
            def __init__(self):
                self.calls = 0

            def submit(self, fn, *args, **kwargs):
                self.calls += 1
                future = Future()
                future.set_result(fn(*args, **kwargs))
                return future

        executor = Counting()
        engine.start(
            RequestDescriptor.plain(URL),
            TaskCallbacks(completion=lambda r: None, callback_executor=executor),
        )

        assert executor.calls == 1  # одна очередь на задачу
        assert inline_executor.submitted == 0

    @pytest.mark.parametrize("per_task_executor", [False, True])
    def test_order_kept_on_multi_worker_executor(self, make_engine, outcome, per_task_executor):
        """Медленный progress не обгоняется: completion, 1.0, затем Future."""
        events = []

        def slow_progress(value):
            if value < 1.0:
                time.sleep(0.2)
            events.append(("progress", value))

        pool = ThreadPoolExecutor(max_workers=4) if per_task_executor else None
        engine, _ = make_engine(
            [outcome(sent=[(50, 100)])],
            executor=None,
            config=EngineConfig(callback_workers=4),
        )
        try:
            future = engine.start(
                RequestDescriptor.upload_data(b"x" * 100, URL),
                TaskCallbacks(
                    completion=lambda result: events.append(("completion", result.ok)),
                    progress=slow_progress,
                    callback_executor=pool,
                ),
            )

            assert future.result(timeout=5).ok
            assert events == [("progress", 0.5), ("completion", True), ("progress", 1.0)]
        finally:
            if pool is not None:
                pool.shutdown(wait=True)

    def test_download_materialises_file(self, make_engine, outcome, recorder):
        """Скачанный файл попадает в Response целиком."""
        engine, _ = make_engine([outcome(body=b"file-content")])

        future = engine.start(RequestDescriptor.download(URL), callbacks_for(recorder))

        assert future.result(timeout=1).value.data == b"file-content"
        assert recorder.progress_values[-1] == 1.0

    def test_download_to_destination(self, make_engine, outcome, tmp_path):
        """Файл остаётся по указанному пути."""
        engine, _ = make_engine([outcome(body=b"saved")])
        target = tmp_path / "out.bin"

        result = engine.start(RequestDescriptor.download(URL, destination=str(target))).result(1)

        assert result.value.data == b"saved"
        assert target.read_bytes() == b"saved"


# ==================== Fatal encoding errors ====================

class TestEncodingFailures:
    """Ошибки построения запроса доставляются сразу и без retry."""

    def test_invalid_url(self, make_engine, recorder):
        engine, transport = make_engine()

        future = engine.start(
            RequestDescriptor.plain("not a url"),
            callbacks_for(recorder, retry_count=3),
        )

        result = future.result(timeout=1)
        assert isinstance(result.error, URLConversionError)
        assert transport.handles == []
        assert len(recorder.results) == 1
        assert recorder.progress_values == [1.0]
        assert engine.active_count == 0

    def test_json_not_serializable(self, make_engine):
        engine, transport = make_engine()
        descriptor = RequestDescriptor.plain(
            URL, method="POST", parameters={"when": object()}, encoder=RequestEncoder.JSON
        )

        result = engine.start(descriptor, TaskCallbacks(retry_count=2)).result(timeout=1)

        assert isinstance(result.error, EncodingError)
        assert transport.handles == []

    def test_missing_upload_file(self, make_engine, tmp_path):
        engine, transport = make_engine()
        descriptor = RequestDescriptor.upload_file(tmp_path / "nope.bin", URL)

        result = engine.start(descriptor).result(timeout=1)

        assert isinstance(result.error, EncodingError)
        assert transport.handles == []


# ==================== Retry ====================

class TestRetry:
    """Повторы: не больше retry_count, та же задача."""

    def test_retry_until_success(self, make_engine, outcome, recorder):
        engine, transport = make_engine([
            outcome(status=503, body=b"busy"),
            outcome(status=503, body=b"busy"),
            outcome(status=200, body=b"done"),
        ])

        future = engine.start(RequestDescriptor.plain(URL), callbacks_for(recorder, retry_count=2))

        assert future.result(timeout=1).value.data == b"done"
        assert len(transport.handles) == 3
        assert len(recorder.results) == 1

    def test_retry_budget_exhausted(self, make_engine, outcome):
        """retry_count=N -> ровно N повторных отправок."""
        engine, transport = make_engine([outcome(status=500, body=b"err")])

        result = engine.start(RequestDescriptor.plain(URL), TaskCallbacks(retry_count=2)).result(1)

        assert isinstance(result.error, StatusCodeError)
        assert result.error.status_code == 500
        assert len(transport.handles) == 3

    def test_no_retry_by_default(self, make_engine, outcome):
        engine, transport = make_engine([outcome(status=500, body=b"err")])

        engine.start(RequestDescriptor.plain(URL)).result(timeout=1)

        assert len(transport.handles) == 1

    def test_retry_does_not_mix_bodies(self, make_engine, outcome):
        """Буфер неудачной попытки не попадает в следующую."""
        engine, _ = make_engine([
            outcome(status=500, body=b"first-"),
            outcome(status=200, body=b"second"),
        ])

        result = engine.start(RequestDescriptor.plain(URL), TaskCallbacks(retry_count=1)).result(1)

        assert result.value.data == b"second"

    def test_multipart_retry_reuses_body(self, make_engine, outcome):
        """Повтор multipart отправляет те же байты (тот же boundary)."""
        engine, transport = make_engine([outcome(status=500), outcome(status=200)])
        form = MultipartFormData().append(b"payload", "doc", "doc.json")

        engine.start(RequestDescriptor.multipart(form, URL), TaskCallbacks(retry_count=1)).result(1)

        first, second = transport.handles
        assert first.wire_request == second.wire_request
        assert first.wire_request.body == form.encode()

    def test_missing_data_is_retried(self, make_engine, outcome):
        """Пустой 2xx ответ ретраится как временная ошибка."""
        engine, transport = make_engine([outcome(status=200, body=b""), outcome(body=b"late")])

        result = engine.start(RequestDescriptor.plain(URL), TaskCallbacks(retry_count=1)).result(1)

        assert result.value.data == b"late"
        assert len(transport.handles) == 2

    def test_non_retryable_error_delivered_at_once(self, make_engine, outcome, recorder):
        """Ошибка с retryable=False не расходует бюджет."""
        engine, transport = make_engine([outcome(error=UnknownError("unexpected"))])

        future = engine.start(RequestDescriptor.plain(URL), callbacks_for(recorder, retry_count=3))

        assert isinstance(future.result(timeout=1).error, UnknownError)
        assert len(transport.handles) == 1
        assert len(recorder.results) == 1

    def test_reencoding_failure_on_retry(self, make_engine, outcome, recorder, tmp_path):
        """Файл удалён между попытками: EncodingError доставляется один раз."""
        source = tmp_path / "upload.bin"
        source.write_bytes(b"payload")
        engine, transport = make_engine(auto=False)

        future = engine.start(
            RequestDescriptor.upload_file(source, URL),
            callbacks_for(recorder, retry_count=2),
        )
        source.unlink()
        transport.play(transport.pending[0], outcome(status=503))

        result = future.result(timeout=1)
        assert isinstance(result.error, EncodingError)
        assert recorder.results == [result]
        assert recorder.progress_values == [1.0]
        assert len(transport.handles) == 1
        assert engine.active_count == 0

    def test_retry_with_backoff(self, make_engine, outcome):
        """С backoff повтор запускается по таймеру."""
        config = EngineConfig(retry=RetryConfig(backoff_base=0.01))
        engine, transport = make_engine([outcome(status=500), outcome(status=200)], config=config)

        result = engine.start(RequestDescriptor.plain(URL), TaskCallbacks(retry_count=1)).result(5)

        assert result.ok
        assert len(transport.handles) == 2


# ==================== Cancel ====================

class TestCancel:
    """Отмена по дескриптору."""

    def test_cancel_running_request(self, make_engine, recorder):
        engine, transport = make_engine(auto=False)
        descriptor = RequestDescriptor.plain(URL, parameters={"q": "x"})

        future = engine.start(descriptor, callbacks_for(recorder))
        assert engine.active_count == 1

        assert engine.cancel(descriptor) is True

        handle = transport.handles[0]
        assert handle.cancelled
        assert future.cancelled()
        assert engine.active_count == 0

        # Поздние события транспорта игнорируются
        engine.on_data(handle, b"late")
        engine.on_complete(handle, None)
        assert recorder.events == []

    def test_cancel_equal_descriptor(self, make_engine):
        """Отменяет и равный по значению, но другой объект дескриптора."""
        engine, _ = make_engine(auto=False)
        engine.start(RequestDescriptor.plain(URL, parameters={"q": "x"}))

        assert engine.cancel(RequestDescriptor.plain(URL, parameters={"q": "x"})) is True

    def test_cancel_without_match_is_noop(self, make_engine):
        engine, transport = make_engine(auto=False)
        engine.start(RequestDescriptor.plain(URL, parameters={"q": "x"}))

        assert engine.cancel(RequestDescriptor.plain(URL, parameters={"q": "y"})) is False
        assert engine.cancel(RequestDescriptor.plain("not a url")) is False
        assert engine.active_count == 1
        assert not transport.handles[0].cancelled

    def test_cancel_after_completion_is_noop(self, engine):
        descriptor = RequestDescriptor.plain(URL)
        engine.start(descriptor).result(timeout=1)

        assert engine.cancel(descriptor) is False

    def test_cancel_picks_earliest_match(self, make_engine):
        """Из двух одинаковых запросов отменяется первый."""
        engine, transport = make_engine(auto=False)
        descriptor = RequestDescriptor.plain(URL)
        first = engine.start(descriptor)
        second = engine.start(descriptor)

        assert engine.cancel(descriptor) is True

        assert first.cancelled()
        assert not second.done()
        assert transport.handles[0].cancelled
        assert not transport.handles[1].cancelled
        assert engine.active_count == 1

    def test_cancel_during_backoff_stops_retry(self, make_engine, outcome, recorder):
        """Отмена во время паузы перед повтором: новая попытка не выпускается."""
        config = EngineConfig(retry=RetryConfig(backoff_base=0.2))
        engine, transport = make_engine([outcome(status=500), outcome(status=200)], config=config)
        descriptor = RequestDescriptor.plain(URL)

        engine.start(descriptor, callbacks_for(recorder, retry_count=1))
        assert engine.cancel(descriptor) is True

        time.sleep(0.4)
        assert len(transport.handles) == 1
        assert recorder.events == []

    def test_close_cancels_active(self, make_engine):
        engine, transport = make_engine(auto=False)
        future = engine.start(RequestDescriptor.plain(URL))

        engine.close()

        assert future.cancelled()
        assert transport.handles[0].cancelled
        assert transport.closed

    def test_start_after_close(self, make_engine, recorder):
        """Закрытый движок не бросает исключение, а доставляет failure."""
        engine, transport = make_engine()
        engine.close()

        future = engine.start(RequestDescriptor.plain(URL), callbacks_for(recorder, retry_count=2))

        result = future.result(timeout=1)
        assert isinstance(result.error, EngineClosedError)
        assert recorder.results == [result]
        assert transport.handles == []


# ==================== Progress ====================

class TestProgress:
    """Прогресс монотонен и заканчивается на 1.0."""

    def test_upload_progress_monotonic(self, make_engine, outcome, recorder):
        engine, _ = make_engine([outcome(sent=[(50, 100), (30, 100), (75, 100)])])

        engine.start(RequestDescriptor.upload_data(b"x" * 100, URL), callbacks_for(recorder))

        values = recorder.progress_values
        assert values == [0.5, 0.75, 1.0]
        assert values == sorted(values)

    def test_unknown_total_is_ignored(self, make_engine, outcome, recorder):
        engine, _ = make_engine([outcome(sent=[(10, 0)])])

        engine.start(RequestDescriptor.upload_data(b"data", URL), callbacks_for(recorder))

        assert recorder.progress_values == [1.0]

    def test_progress_not_reset_by_retry(self, make_engine, outcome, recorder):
        """Повтор не откатывает уже показанный прогресс."""
        engine, _ = make_engine([
            outcome(status=500, sent=[(80, 100)]),
            outcome(status=200, sent=[(40, 100), (100, 100)]),
        ])

        engine.start(
            RequestDescriptor.upload_data(b"x" * 100, URL),
            callbacks_for(recorder, retry_count=1),
        )

        assert recorder.progress_values == [0.8, 1.0, 1.0]


# ==================== Misc ====================

class TestEngineMisc:

    def test_unknown_handle_events_are_ignored(self, engine):
        stray = object()
        engine.on_response(stray, None)
        engine.on_data(stray, b"x")
        engine.on_bytes_sent(stray, 1, 2)
        engine.on_download_progress(stray, 1, 2)
        engine.on_download_finished(stray, "/nonexistent")
        engine.on_complete(stray, None)

    def test_shared_engine_is_singleton(self):
        first = RequestEngine.shared()
        try:
            assert RequestEngine.shared() is first
        finally:
            first.close()

        second = RequestEngine.shared()
        try:
            assert second is not first
        finally:
            second.close()

    def test_close_from_completion_callback(self, make_engine):
        """close() из callback'а на собственном пуле движка не падает."""
        engine, transport = make_engine(executor=None)
        closed = threading.Event()

        def close_engine(result):
            engine.close()
            closed.set()

        future = engine.start(RequestDescriptor.plain(URL), TaskCallbacks(completion=close_engine))

        assert future.result(timeout=5).ok
        assert closed.wait(5)
        assert transport.closed

    def test_context_manager_closes(self, mock_transport, inline_executor):
        with RequestEngine(transport=mock_transport, callback_executor=inline_executor) as engine:
            engine.start(RequestDescriptor.plain(URL)).result(timeout=1)
        assert mock_transport.closed

    def test_lifecycle_logging(self, make_engine, outcome, logging_config_with_file):
        """При EngineConfig.logging события пишутся в лог с correlation_id."""
        config = EngineConfig(logging=logging_config_with_file)
        engine, _ = make_engine([outcome(status=500), outcome(status=200)], config=config)

        future = engine.start(
            RequestDescriptor.plain(URL + "?api_key=secret"),
            TaskCallbacks(retry_count=1),
        )
        future.result(timeout=1)
        engine.close()

        with open(logging_config_with_file.file_path, encoding="utf-8") as f:
            records = [json.loads(line) for line in f if line.strip()]

        messages = [record["message"] for record in records]
        assert messages == ["Request started", "Request retrying", "Request completed"]
        assert len({record["correlation_id"] for record in records}) == 1
        assert all("secret" not in record["url"] for record in records)

    def test_concurrent_start_from_threads(self, make_engine):
        """start из разных потоков не теряет задачи."""
        engine, transport = make_engine(threaded=True)
        futures = []
        lock = threading.Lock()

        def worker(n):
            future = engine.start(RequestDescriptor.plain(f"{URL}/{n}"))
            with lock:
                futures.append(future)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert all(future.result(timeout=5).ok for future in futures)
        assert len(transport.handles) == 20
