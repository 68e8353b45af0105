"""Request Engine - asynchronous HTTP request execution with retry, cancellation and progress."""

import logging
from importlib.metadata import PackageNotFoundError, version

from .builder import Request
from .core.classifier import ResponseClassifier, ResponseMeta
from .core.config import (
    ConnectionPoolConfig,
    EngineConfig,
    RetryConfig,
    SecurityConfig,
    TimeoutConfig,
)
from .core.descriptor import HTTPMethod, RequestDescriptor, RequestKind, as_url
from .core.encoder import RequestEncoder
from .core.engine import RequestEngine
from .core.env_config import ConfigFileLoader, load_from_env
from .core.exceptions import (
    ConfigurationError,
    ConnectionError,
    EncodingError,
    EngineClosedError,
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
)
from .core.logging import LoggingConfig
from .core.multipart import MultipartFormData
from .core.response import Response, Result, handle
from .core.task import TaskCallbacks

# NullHandler: no "No handler found" warnings; configure via logging.getLogger('request_engine')
logging.getLogger('request_engine').addHandler(logging.NullHandler())

try:
    __version__ = version("request-engine")
except PackageNotFoundError:
    # Package is not installed (development mode)
    __version__ = "0.0.0-dev"

__all__ = [
    # Builder / engine
    "Request",
    "RequestEngine",
    "TaskCallbacks",
    "RequestDescriptor",
    "RequestKind",
    "HTTPMethod",
    "RequestEncoder",
    "MultipartFormData",
    "as_url",
    # Results
    "Response",
    "Result",
    "ResponseMeta",
    "ResponseClassifier",
    "handle",
    # Config
    "EngineConfig",
    "TimeoutConfig",
    "RetryConfig",
    "ConnectionPoolConfig",
    "SecurityConfig",
    "LoggingConfig",
    "load_from_env",
    "ConfigFileLoader",
    # Exceptions
    "RequestEngineError",
    "FatalError",
    "URLConversionError",
    "EncodingError",
    "EngineClosedError",
    "ConfigurationError",
    "TemporaryError",
    "TransportError",
    "InvalidURLError",
    "TimeoutError",
    "ConnectionError",
    "StatusCodeError",
    "UnknownError",
    "MissingDataError",
]
