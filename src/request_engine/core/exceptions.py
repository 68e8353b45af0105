"""
Иерархия исключений Request Engine.

Классификация:
- FatalError (fatal=True) - ошибки построения запроса, НЕ расходуют retry
- TemporaryError (retryable=True) - ошибки после отправки, ретраятся в пределах бюджета
- UnknownError - всё остальное
"""

from typing import TYPE_CHECKING, Optional

import requests

if TYPE_CHECKING:
    from .classifier import ResponseMeta

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# BASE
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class RequestEngineError(Exception):
    """Базовое исключение Request Engine."""

    retryable: bool = False
    fatal: bool = False

    def __init__(self, message: str, **kwargs):
        self.message = message
        super().__init__(message)

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# ФАТАЛЬНЫЕ ОШИБКИ (fatal=True)
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class FatalError(RequestEngineError):
    """
    Фатальная ошибка - запрос не может быть построен.

    Доставляется сразу, без попыток retry.
    """
    fatal = True

class URLConversionError(FatalError):
    """
    Строка не является валидным URL.

    Args:
        value: Исходное значение
        reason: Причина (опционально)
    """

    def __init__(self, value: object, reason: str = ""):
        self.value = value
        msg = f"Cannot convert {value!r} to URL"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)

class EncodingError(FatalError):
    """
    Ошибка построения payload.

    Примеры:
    - параметры не сериализуются в JSON
    - файл для upload не существует
    """
    pass

class ConfigurationError(FatalError):
    """Ошибка конфигурации."""
    pass

class EngineClosedError(FatalError):
    """Движок уже закрыт, запрос не отправлен."""

    def __init__(self, message: str = "RequestEngine is closed"):
        super().__init__(message)

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# ВРЕМЕННЫЕ ОШИБКИ (retryable=True)
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class TemporaryError(RequestEngineError):
    """
    Ошибка после отправки запроса - ретраится пока есть бюджет.
    """
    retryable = True

class TransportError(TemporaryError):
    """
    Сетевая ошибка транспорта.

    Args:
        message: Сообщение об ошибке
        url: URL запроса
        original: Исходное исключение транспорта
    """

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        original: Optional[BaseException] = None
    ):
        self.url = url
        self.original = original
        full_message = message
        if url:
            full_message += f" (url: {url})"
        super().__init__(full_message)

class InvalidURLError(TransportError):
    """Транспорт отклонил URL как некорректный."""
    pass

class TimeoutError(TransportError):
    """Таймаут подключения или чтения."""
    pass

class ConnectionError(TransportError):
    """
    Ошибка подключения.

    Примеры:
    - Connection refused
    - Connection reset
    - Network unreachable
    """
    pass

class StatusCodeError(TemporaryError):
    """
    Ответ со статусом вне диапазона 200-299.

    Args:
        status_code: HTTP статус код
        url: URL
        meta: Метаданные ответа (опционально)
    """

    def __init__(
        self,
        status_code: int,
        url: Optional[str] = None,
        meta: Optional['ResponseMeta'] = None
    ):
        self.status_code = status_code
        self.url = url
        self.meta = meta

        msg = f"HTTP {status_code} error"
        if url:
            msg += f" for {url}"

        super().__init__(msg)

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# ПРОЧИЕ
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class UnknownError(RequestEngineError):
    """Неизвестная ошибка (catch-all)."""
    pass

class MissingDataError(UnknownError):
    """
    Успешный статус, но тела ответа нет.

    2xx без тела (включая 204) тоже считается ошибкой.
    """
    retryable = True

    def __init__(self, url: Optional[str] = None):
        self.url = url
        msg = "Response contains no data"
        if url:
            msg += f" for {url}"
        super().__init__(msg)

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# УТИЛИТЫ
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

_MALFORMED_URL_EXCEPTIONS = (
    requests.exceptions.InvalidURL,
    requests.exceptions.MissingSchema,
    requests.exceptions.InvalidSchema,
)

def classify_transport_exception(
    exc: BaseException,
    url: Optional[str] = None
) -> RequestEngineError:
    """
    Конвертировать ошибку транспорта в наше исключение.

    Наши исключения возвращаются как есть. Исходная ошибка сохраняется
    в ``original`` и ``__cause__``.

    Args:
        exc: Исключение из requests (или OSError)
        url: URL запроса

    Returns:
        Наше исключение с правильной классификацией

    Examples:
        >>> exc = requests.exceptions.ConnectTimeout()
        >>> our_exc = classify_transport_exception(exc, "https://example.com")
        >>> assert isinstance(our_exc, TimeoutError)
        >>> assert our_exc.retryable == True
    """
    if isinstance(exc, RequestEngineError):
        return exc

    if isinstance(exc, _MALFORMED_URL_EXCEPTIONS):
        error: RequestEngineError = InvalidURLError("Malformed URL", url, original=exc)

    elif isinstance(exc, requests.exceptions.Timeout):
        error = TimeoutError("Request timeout", url, original=exc)

    elif isinstance(exc, requests.exceptions.ConnectionError):
        error = ConnectionError("Connection error", url, original=exc)

    elif isinstance(exc, (requests.exceptions.RequestException, OSError)):
        error = TransportError(f"Transport error: {exc}", url, original=exc)

    else:
        # Неизвестная ошибка - оборачиваем
        error = UnknownError(str(exc) or type(exc).__name__)

    error.__cause__ = exc
    return error
