"""
Кодирование запроса в wire-формат.

Включает:
- WireRequest - value-сравнимое представление HTTP запроса
- RequestEncoder - стратегии query / body / json / auto
- encode_descriptor - построение WireRequest из RequestDescriptor
"""

import json
import os
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Iterator, List, Optional, Tuple
from urllib.parse import urlencode, urlsplit, urlunsplit

from .descriptor import (
    DataPayload,
    FilePayload,
    HTTPParameters,
    MultipartPayload,
    RequestDescriptor,
    RequestKind,
    as_url,
)
from .exceptions import EncodingError
from .multipart import content_type_for, encode_multipart

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded; charset=utf-8"
JSON_CONTENT_TYPE = "application/json"


@dataclass(frozen=True)
class WireRequest:
    """
    Готовый к отправке HTTP запрос.

    Сравнивается по значению (method, url, headers, body), поэтому два
    независимых кодирования одного дескриптора дают равные объекты.

    Args:
        method: HTTP метод
        url: Полный URL (включая query)
        headers: Заголовки в порядке добавления
        body: Тело запроса в памяти
        body_file: Путь к файлу с телом (upload из файла)
    """
    method: str
    url: str
    headers: Tuple[Tuple[str, str], ...] = ()
    body: Optional[bytes] = None
    body_file: Optional[str] = None

    def header(self, name: str) -> Optional[str]:
        """Значение заголовка (без учёта регистра) или None."""
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return None

    def with_header(self, name: str, value: str) -> 'WireRequest':
        """Копия с установленным заголовком (заменяет существующий)."""
        lowered = name.lower()
        headers = tuple((k, v) for k, v in self.headers if k.lower() != lowered)
        return replace(self, headers=headers + ((name, value),))

    def with_body(self, body: Optional[bytes]) -> 'WireRequest':
        return replace(self, body=body, body_file=None)

    def with_body_file(self, path: str) -> 'WireRequest':
        return replace(self, body=None, body_file=path)

    def with_url(self, url: str) -> 'WireRequest':
        return replace(self, url=url)

    @property
    def headers_dict(self) -> dict:
        return dict(self.headers)

    def content_length(self) -> Optional[int]:
        """Размер тела в байтах (None если тела нет)."""
        if self.body is not None:
            return len(self.body)
        if self.body_file is not None:
            return os.path.getsize(self.body_file)
        return None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# PARAMETER ENCODING
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def display_string(value: Any) -> str:
    """
    Строковое представление значения параметра.

    Examples:
        >>> display_string(True)
        'true'
        >>> display_string(None)
        ''
        >>> display_string(3.5)
        '3.5'
    """
    if value is True:
        return "true"
    if value is False:
        return "false"
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode('utf-8', errors='replace')
    return str(value)


def _pairs(parameters: HTTPParameters) -> Iterator[Tuple[str, str]]:
    for key, value in parameters.items():
        if isinstance(value, (list, tuple)):
            for item in value:
                yield str(key), display_string(item)
        else:
            yield str(key), display_string(value)


def query_string(parameters: HTTPParameters) -> str:
    """Percent-encoded ``key=value&...`` string."""
    return urlencode(list(_pairs(parameters)))


class Destination(Enum):
    """Куда кладутся параметры."""
    METHOD_DEPENDENT = "auto"
    QUERY = "query"
    BODY = "body"
    JSON = "json"


class RequestEncoder:
    """
    Стратегия кодирования параметров.

    Используйте готовые экземпляры:
    - RequestEncoder.AUTO - query для GET, body для остальных методов
    - RequestEncoder.QUERY - всегда в query
    - RequestEncoder.BODY - form-urlencoded тело
    - RequestEncoder.JSON - JSON тело

    Examples:
        >>> wire = WireRequest("GET", "https://example.com/search")
        >>> RequestEncoder.QUERY.encode(wire, {"q": "python"}).url
        'https://example.com/search?q=python'
    """

    AUTO: 'RequestEncoder'
    QUERY: 'RequestEncoder'
    BODY: 'RequestEncoder'
    JSON: 'RequestEncoder'

    def __init__(self, destination: Destination):
        self.destination = Destination(destination)

    def __repr__(self) -> str:
        return f"RequestEncoder({self.destination.name})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, RequestEncoder):
            return NotImplemented
        return self.destination is other.destination

    def __hash__(self) -> int:
        return hash(self.destination)

    def encode(self, request: WireRequest, parameters: Optional[HTTPParameters]) -> WireRequest:
        """
        Вернуть копию запроса с закодированными параметрами.

        Args:
            request: Исходный запрос (не изменяется)
            parameters: Параметры (None = вернуть запрос как есть)

        Returns:
            Новый WireRequest

        Raises:
            EncodingError: Параметры не сериализуются
        """
        if parameters is None:
            return request

        destination = self.destination
        if destination is Destination.METHOD_DEPENDENT:
            destination = Destination.QUERY if request.method == "GET" else Destination.BODY

        if destination is Destination.QUERY:
            return self._encode_query(request, parameters)
        if destination is Destination.BODY:
            return self._encode_body(request, parameters)
        return self._encode_json(request, parameters)

    @staticmethod
    def _encode_query(request: WireRequest, parameters: HTTPParameters) -> WireRequest:
        query = query_string(parameters)
        if not query:
            return request

        parts = urlsplit(request.url)
        merged = f"{parts.query}&{query}" if parts.query else query
        return request.with_url(urlunsplit(parts._replace(query=merged)))

    @staticmethod
    def _encode_body(request: WireRequest, parameters: HTTPParameters) -> WireRequest:
        if request.header("Content-Type") is None:
            request = request.with_header("Content-Type", FORM_CONTENT_TYPE)
        return request.with_body(query_string(parameters).encode('utf-8'))

    @staticmethod
    def _encode_json(request: WireRequest, parameters: HTTPParameters) -> WireRequest:
        try:
            body = json.dumps(dict(parameters)).encode('utf-8')
        except (TypeError, ValueError) as e:
            raise EncodingError(f"Parameters are not JSON serializable: {e}") from e

        if request.header("Content-Type") is None:
            request = request.with_header("Content-Type", JSON_CONTENT_TYPE)
        return request.with_body(body)


RequestEncoder.AUTO = RequestEncoder(Destination.METHOD_DEPENDENT)
RequestEncoder.QUERY = RequestEncoder(Destination.QUERY)
RequestEncoder.BODY = RequestEncoder(Destination.BODY)
RequestEncoder.JSON = RequestEncoder(Destination.JSON)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# DESCRIPTOR -> WIRE
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def encode_descriptor(descriptor: RequestDescriptor) -> WireRequest:
    """
    Построить WireRequest из дескриптора.

    Один и тот же дескриптор всегда кодируется в равный WireRequest:
    на этом держатся retry и cancel по значению.

    Raises:
        URLConversionError: Невалидный URL
        EncodingError: Не удалось построить payload
    """
    url = as_url(descriptor.url)

    headers: List[Tuple[str, str]] = []
    if descriptor.headers:
        headers = [(str(k), str(v)) for k, v in descriptor.headers.items()]

    request = WireRequest(method=descriptor.method.value, url=url, headers=tuple(headers))

    encoder = descriptor.encoder or RequestEncoder.AUTO
    request = encoder.encode(request, descriptor.parameters)

    if descriptor.kind is RequestKind.UPLOAD:
        request = _encode_upload(request, descriptor)
    elif descriptor.kind is RequestKind.MULTIPART:
        request = _encode_multipart(request, descriptor.payload)

    return request


def _encode_upload(request: WireRequest, descriptor: RequestDescriptor) -> WireRequest:
    request = request.with_header("Content-Type", descriptor.mime_type)
    request = request.with_header(
        "Content-Disposition", f'attachment; filename="{descriptor.file_name}"'
    )

    payload = descriptor.payload
    if isinstance(payload, FilePayload):
        if not os.path.isfile(payload.path):
            raise EncodingError(f"Upload file not found: {payload.path}")
        return request.with_body_file(payload.path)
    if isinstance(payload, DataPayload):
        return request.with_body(payload.data)

    raise EncodingError(f"Unsupported upload payload: {type(payload).__name__}")


def _encode_multipart(request: WireRequest, payload: MultipartPayload) -> WireRequest:
    try:
        body = encode_multipart(payload.parts, payload.boundary)
    except (TypeError, UnicodeEncodeError) as e:
        raise EncodingError(f"Cannot encode multipart body: {e}") from e

    request = request.with_header("Content-Type", content_type_for(payload.boundary))
    return request.with_body(body)
