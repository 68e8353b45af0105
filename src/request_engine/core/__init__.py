"""Core Request Engine модули."""

from .classifier import ResponseClassifier, ResponseMeta
from .config import (
    ConnectionPoolConfig,
    EngineConfig,
    RetryConfig,
    SecurityConfig,
    TimeoutConfig,
)
from .descriptor import (
    DataPayload,
    FilePayload,
    HTTPMethod,
    MultipartPayload,
    RequestDescriptor,
    RequestKind,
    as_url,
)
from .encoder import RequestEncoder, WireRequest, encode_descriptor
from .engine import RequestEngine
from .exceptions import (
    ConfigurationError,
    ConnectionError,
    EncodingError,
    FatalError,
    InvalidURLError,
    MissingDataError,
    RequestEngineError,
    StatusCodeError,
    TemporaryError,
    TimeoutError,
    TransportError,
    UnknownError,
    URLConversionError,
    classify_transport_exception,
)
from .multipart import BodyPart, MultipartFormData, PartPosition, encode_multipart
from .registry import TaskRegistry
from .response import Response, Result, handle
from .retry_engine import RetryEngine
from .task import OperationTask, TaskCallbacks, TaskState
from .transport import (
    ProgressReader,
    RequestsTransport,
    Transport,
    TransportDelegate,
    TransportHandle,
)

__all__ = [
    # Config
    "TimeoutConfig",
    "RetryConfig",
    "ConnectionPoolConfig",
    "SecurityConfig",
    "EngineConfig",
    # Descriptor / encoding
    "HTTPMethod",
    "RequestKind",
    "RequestDescriptor",
    "FilePayload",
    "DataPayload",
    "MultipartPayload",
    "as_url",
    "RequestEncoder",
    "WireRequest",
    "encode_descriptor",
    "BodyPart",
    "PartPosition",
    "MultipartFormData",
    "encode_multipart",
    # Execution
    "RequestEngine",
    "TaskRegistry",
    "OperationTask",
    "TaskCallbacks",
    "TaskState",
    "RetryEngine",
    "Transport",
    "TransportHandle",
    "TransportDelegate",
    "RequestsTransport",
    "ProgressReader",
    # Results
    "ResponseClassifier",
    "ResponseMeta",
    "Response",
    "Result",
    "handle",
    # Exceptions
    "RequestEngineError",
    "FatalError",
    "URLConversionError",
    "EncodingError",
    "ConfigurationError",
    "TemporaryError",
    "TransportError",
    "InvalidURLError",
    "TimeoutError",
    "ConnectionError",
    "StatusCodeError",
    "UnknownError",
    "MissingDataError",
    "classify_transport_exception",
]
