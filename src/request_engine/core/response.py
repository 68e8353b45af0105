"""Response payload and the success/failure Result."""

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Type, TypeVar

from pydantic import TypeAdapter, ValidationError

if TYPE_CHECKING:
    from .classifier import ResponseMeta

T = TypeVar("T")


@dataclass(frozen=True)
class Response:
    """
    Immutable wrapper over the received bytes.

    Attributes:
        data: Response body
        meta: Transport metadata of the final attempt (status, headers, url)

    Example:
        >>> response = Response(b'{"id": 1}')
        >>> response.json()
        {'id': 1}
    """

    data: bytes
    meta: Optional['ResponseMeta'] = field(default=None, compare=False, repr=False)

    def text(self, encoding: str = "utf-8") -> Optional[str]:
        """Decode body as text, None if it is not valid ``encoding``."""
        try:
            return self.data.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            return None

    def _load(self) -> Any:
        try:
            return json.loads(self.data)
        except (ValueError, UnicodeDecodeError):
            return None

    def json(self) -> Optional[Dict[str, Any]]:
        """Body as a JSON object, None if it is not one."""
        value = self._load()
        return value if isinstance(value, dict) else None

    def array(self) -> Optional[List[Dict[str, Any]]]:
        """Body as a JSON array of objects, None otherwise."""
        value = self._load()
        if isinstance(value, list) and all(isinstance(item, dict) for item in value):
            return value
        return None

    def to_object(self, type_: Type[T]) -> Optional[T]:
        """
        Decode body into ``type_`` (pydantic model, dataclass, TypedDict, ...).

        Returns None when the body does not validate.

        Example:
            >>> class User(BaseModel):
            ...     id: int
            >>> Response(b'{"id": 1}').to_object(User)
            User(id=1)
        """
        try:
            return TypeAdapter(type_).validate_json(self.data)
        except ValidationError:
            return None

    def __len__(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class Result:
    """
    Outcome of a request: exactly one of ``value`` or ``error``.

    Example:
        >>> result = Result.success(Response(b"ok"))
        >>> result.ok
        True
        >>> result.unwrap().data
        b'ok'
    """

    value: Optional[Response] = None
    error: Optional[BaseException] = None

    def __post_init__(self):
        if (self.value is None) == (self.error is None):
            raise ValueError("Result must carry exactly one of value or error")

    @classmethod
    def success(cls, value: Response) -> 'Result':
        return cls(value=value)

    @classmethod
    def failure(cls, error: BaseException) -> 'Result':
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Response:
        """Return the response or raise the error."""
        if self.error is not None:
            raise self.error
        return self.value


def handle(
    result: Result,
    on_success: Optional[Callable[[Response], Any]] = None,
    on_error: Optional[Callable[[BaseException], Any]] = None,
) -> None:
    """Dispatch ``result`` to the matching callback."""
    if result.error is not None:
        if on_error is not None:
            on_error(result.error)
    elif on_success is not None:
        on_success(result.value)
