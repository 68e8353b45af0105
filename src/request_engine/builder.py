"""
Fluent builder over RequestEngine.

Example:
    >>> (Request.plain("https://api.example.com/users")
    ...     .parameters({"page": 2})
    ...     .headers({"Accept": "application/json"})
    ...     .retry(3)
    ...     .completion(lambda result: print(result.ok))
    ...     .perform())
"""

from concurrent.futures import Executor, Future
from typing import Any, Callable, Dict, Optional, Union

from .core.descriptor import (
    HTTPHeaders,
    HTTPMethod,
    HTTPParameters,
    RequestDescriptor,
    RequestKind,
)
from .core.encoder import RequestEncoder
from .core.engine import RequestEngine
from .core.multipart import MultipartFormData
from .core.response import Result
from .core.task import CompletionHandler, ProgressHandler, TaskCallbacks

MultipartPreparation = Callable[[MultipartFormData], Any]


def _merge(current: Optional[Dict], new: Dict, rewrite: bool) -> Dict:
    # rewrite=True drops what was set before; otherwise new keys win on conflict
    if current is None or rewrite:
        return dict(new)
    merged = dict(current)
    merged.update(new)
    return merged


class Request:
    """
    Mutable request builder.

    Build with one of the constructors, chain setters, then ``perform()``.
    The descriptor is sealed at ``perform()``; setters called afterwards do
    not affect the running request.
    """

    def __init__(self, kind: RequestKind, url: Any, **fields: Any):
        self._kind = RequestKind(kind)
        self._url = url
        self._fields: Dict[str, Any] = fields
        self._method: Optional[HTTPMethod] = None
        self._parameters: Optional[Dict[str, Any]] = None
        self._headers: Optional[Dict[str, str]] = None
        self._encoder: Optional[RequestEncoder] = None
        self._file_name: Optional[str] = None
        self._mime_type: Optional[str] = None

        self._completion: Optional[CompletionHandler] = None
        self._progress: Optional[ProgressHandler] = None
        self._callback_executor: Optional[Executor] = None
        self._retry_count = 0

        self._engine: Optional[RequestEngine] = None
        self._descriptor: Optional[RequestDescriptor] = None
        self._future: Optional[Future] = None

    def __repr__(self) -> str:
        return f"<Request {self._kind.value} {self._url!r}>"

    # ==================== Constructors ====================

    @classmethod
    def plain(cls, url: Any) -> 'Request':
        """Basic data request (GET unless ``method()`` says otherwise)."""
        return cls(RequestKind.DATA, url)

    @classmethod
    def download(cls, url: Any, to: Optional[str] = None) -> 'Request':
        """Download to ``to`` or to a temporary file; the body is also in the Response."""
        return cls(RequestKind.DOWNLOAD, url, destination=None if to is None else str(to))

    @classmethod
    def upload_file(cls, path: Any, to: Any) -> 'Request':
        return cls(RequestKind.UPLOAD, to, path=str(path))

    @classmethod
    def upload_data(cls, data: Union[bytes, str], to: Any) -> 'Request':
        return cls(RequestKind.UPLOAD, to, data=data)

    @classmethod
    def multipart(cls, prepare: MultipartPreparation, to: Any) -> 'Request':
        """
        Multipart request; ``prepare`` fills the form once, at ``perform()``.

        Example:
            >>> Request.multipart(
            ...     lambda form: form.append(image, "avatar", "avatar.jpeg", "image/jpeg"),
            ...     to="https://api.example.com/upload",
            ... ).perform()
        """
        return cls(RequestKind.MULTIPART, to, prepare=prepare)

    # ==================== Request fields ====================

    def method(self, method: Union[HTTPMethod, str]) -> 'Request':
        self._method = HTTPMethod(method)
        return self

    def parameters(self, parameters: HTTPParameters, rewrite: bool = False) -> 'Request':
        """Add parameters; ``rewrite=True`` replaces the ones set before."""
        self._parameters = _merge(self._parameters, dict(parameters), rewrite)
        return self

    def headers(self, headers: HTTPHeaders, rewrite: bool = False) -> 'Request':
        """Add headers; ``rewrite=True`` replaces the ones set before."""
        self._headers = _merge(self._headers, dict(headers), rewrite)
        return self

    def encoding(self, encoder: RequestEncoder) -> 'Request':
        self._encoder = encoder
        return self

    def file_name(self, file_name: str) -> 'Request':
        self._require_upload("file_name")
        self._file_name = file_name
        return self

    def mime_type(self, mime_type: str) -> 'Request':
        self._require_upload("mime_type")
        self._mime_type = mime_type
        return self

    def _require_upload(self, setter: str) -> None:
        if self._kind is not RequestKind.UPLOAD:
            raise TypeError(f"{setter}() applies to upload requests only")

    # ==================== Callbacks ====================

    def retry(self, retry_count: int) -> 'Request':
        if retry_count < 0:
            raise ValueError("retry_count must be non-negative")
        self._retry_count = retry_count
        return self

    def callback_executor(self, executor: Executor) -> 'Request':
        """Executor for progress/completion callbacks of this request."""
        self._callback_executor = executor
        return self

    def progress(self, handler: ProgressHandler) -> 'Request':
        self._progress = handler
        return self

    def completion(self, handler: CompletionHandler) -> 'Request':
        self._completion = handler
        return self

    # ==================== Execution ====================

    def build(self) -> RequestDescriptor:
        """Seal the current state into a RequestDescriptor."""
        common: Dict[str, Any] = {
            'parameters': self._parameters,
            'headers': self._headers,
            'encoder': self._encoder,
        }
        if self._method is not None:
            common['method'] = self._method

        if self._kind is RequestKind.DATA:
            return RequestDescriptor.plain(self._url, **common)

        if self._kind is RequestKind.DOWNLOAD:
            return RequestDescriptor.download(
                self._url, destination=self._fields.get('destination'), **common
            )

        if self._kind is RequestKind.UPLOAD:
            if self._file_name is not None:
                common['file_name'] = self._file_name
            if self._mime_type is not None:
                common['mime_type'] = self._mime_type
            if 'path' in self._fields:
                return RequestDescriptor.upload_file(self._fields['path'], self._url, **common)
            return RequestDescriptor.upload_data(self._fields['data'], self._url, **common)

        form = MultipartFormData()
        self._fields['prepare'](form)
        return RequestDescriptor.multipart(form, self._url, **common)

    def perform(self, engine: Optional[RequestEngine] = None) -> 'Request':
        """
        Start the request on ``engine`` (the shared engine by default).

        Returns self, so ``result()`` / ``cancel()`` can be chained.
        """
        self._engine = engine or RequestEngine.shared()
        self._descriptor = self.build()
        self._future = self._engine.start(
            self._descriptor,
            TaskCallbacks(
                completion=self._completion,
                progress=self._progress,
                callback_executor=self._callback_executor,
                retry_count=self._retry_count,
            ),
        )
        return self

    def cancel(self) -> bool:
        """Cancel the performed request; False if it is not running."""
        if self._engine is None or self._descriptor is None:
            return False
        return self._engine.cancel(self._descriptor)

    @property
    def future(self) -> Optional['Future[Result]']:
        return self._future

    def result(self, timeout: Optional[float] = None) -> Result:
        """
        Wait for the final Result.

        Raises:
            RuntimeError: ``perform()`` was not called
            concurrent.futures.CancelledError: the request was cancelled
            concurrent.futures.TimeoutError: no result within ``timeout``
        """
        if self._future is None:
            raise RuntimeError("Request was not performed")
        return self._future.result(timeout=timeout)
