"""Request descriptors: what to send, before it is encoded."""

from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple, Union
from urllib.parse import urlsplit

from .exceptions import URLConversionError
from .multipart import BodyPart, MultipartFormData, choose_boundary, default_file_name


HTTPParameters = Mapping[str, Any]
HTTPHeaders = Mapping[str, str]


class HTTPMethod(str, Enum):
    """HTTP methods."""
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"


class RequestKind(str, Enum):
    """Transport operation used to execute the request."""
    DATA = "data"
    DOWNLOAD = "download"
    UPLOAD = "upload"
    MULTIPART = "multipart"


# Payload sources: exactly one per upload/multipart request.

@dataclass(frozen=True)
class FilePayload:
    path: str


@dataclass(frozen=True)
class DataPayload:
    data: bytes

    def __post_init__(self):
        if isinstance(self.data, str):
            object.__setattr__(self, 'data', self.data.encode('utf-8'))
        elif not isinstance(self.data, bytes):
            object.__setattr__(self, 'data', bytes(self.data))


@dataclass(frozen=True)
class MultipartPayload:
    parts: Tuple[BodyPart, ...] = ()
    boundary: str = field(default_factory=choose_boundary)

    @classmethod
    def from_form(cls, form: MultipartFormData) -> 'MultipartPayload':
        return cls(parts=form.parts, boundary=form.boundary)


Payload = Union[FilePayload, DataPayload, MultipartPayload]


def as_url(value: Any) -> str:
    """
    Coerce ``value`` into an absolute URL string.

    Raises:
        URLConversionError: if the value is not a string or lacks scheme/host
    """
    if isinstance(value, bytes):
        try:
            value = value.decode('utf-8')
        except UnicodeDecodeError:
            raise URLConversionError(value, "not valid UTF-8")
    if not isinstance(value, str):
        raise URLConversionError(value, "expected a string")

    url = value.strip()
    try:
        parts = urlsplit(url)
    except ValueError as e:
        raise URLConversionError(value, str(e)) from e

    if not parts.scheme or not parts.netloc:
        raise URLConversionError(value, "scheme and host are required")
    if any(ch.isspace() for ch in url):
        raise URLConversionError(value, "whitespace is not allowed")
    return url


def _freeze(mapping: Optional[Mapping]) -> Optional[Mapping]:
    if mapping is None:
        return None
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class RequestDescriptor:
    """
    Immutable description of one request.

    Attributes:
        url: Target URL (validated when the request is encoded)
        method: HTTP method
        parameters: Parameters for the encoder (None = no parameters)
        headers: Request headers
        encoder: Parameter encoding strategy (``RequestEncoder.AUTO`` if None)
        kind: Transport operation
        payload: Payload source for upload and multipart requests
        file_name: File name announced for raw uploads
        mime_type: Content type of a raw upload
        destination: Where a download is stored (temporary file if None)
    """

    url: str
    method: HTTPMethod = HTTPMethod.GET
    parameters: Optional[HTTPParameters] = None
    headers: Optional[HTTPHeaders] = None
    encoder: Optional[Any] = None
    kind: RequestKind = RequestKind.DATA
    payload: Optional[Payload] = None
    file_name: str = field(default_factory=default_file_name)
    mime_type: str = "application/json"
    destination: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'method', HTTPMethod(self.method))
        object.__setattr__(self, 'kind', RequestKind(self.kind))
        object.__setattr__(self, 'parameters', _freeze(self.parameters))
        object.__setattr__(self, 'headers', _freeze(self.headers))

        if self.kind is RequestKind.UPLOAD:
            if not isinstance(self.payload, (FilePayload, DataPayload)):
                raise ValueError("upload request needs exactly one file or data payload")
        elif self.kind is RequestKind.MULTIPART:
            if not isinstance(self.payload, MultipartPayload):
                raise ValueError("multipart request needs a multipart payload")
        elif self.payload is not None:
            raise ValueError(f"{self.kind.value} request cannot carry a payload")

    # Convenience constructors for the four request variants

    @classmethod
    def plain(cls, url: str, method: HTTPMethod = HTTPMethod.GET, **kwargs) -> 'RequestDescriptor':
        return cls(url=url, method=method, **kwargs)

    @classmethod
    def download(cls, url: str, destination: Optional[str] = None, **kwargs) -> 'RequestDescriptor':
        return cls(url=url, kind=RequestKind.DOWNLOAD, destination=destination, **kwargs)

    @classmethod
    def upload_file(cls, path: str, to: str, **kwargs) -> 'RequestDescriptor':
        kwargs.setdefault('method', HTTPMethod.POST)
        return cls(url=to, kind=RequestKind.UPLOAD, payload=FilePayload(str(path)), **kwargs)

    @classmethod
    def upload_data(cls, data: Union[bytes, str], to: str, **kwargs) -> 'RequestDescriptor':
        kwargs.setdefault('method', HTTPMethod.POST)
        return cls(url=to, kind=RequestKind.UPLOAD, payload=DataPayload(data), **kwargs)

    @classmethod
    def multipart(cls, form: MultipartFormData, to: str, **kwargs) -> 'RequestDescriptor':
        kwargs.setdefault('method', HTTPMethod.POST)
        return cls(
            url=to,
            kind=RequestKind.MULTIPART,
            payload=MultipartPayload.from_form(form),
            **kwargs
        )

    def evolve(self, **changes) -> 'RequestDescriptor':
        """Copy with ``changes`` applied."""
        return replace(self, **changes)
