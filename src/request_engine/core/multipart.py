"""
multipart/form-data encoding.

Body parts are framed with a per-request boundary token::

    --BOUNDARY\\r\\n                      (first part only)
    \\r\\n--BOUNDARY\\r\\n                  (every following part)
    Content-Disposition: form-data; name="<field>"; filename="<file>"\\r\\n
    Content-Type: <mime>\\r\\n\\r\\n
    <bytes>
    \\r\\n--BOUNDARY--\\r\\n                (after the last part)

The CRLF in front of a delimiter belongs to the delimiter (RFC 2046), so a
single part encodes as ``--B\\r\\n<headers>\\r\\n\\r\\n<bytes>\\r\\n--B--\\r\\n``.
"""

import binascii
import enum
import os
import time
from dataclasses import dataclass, field, replace
from io import BytesIO
from typing import Iterable, List, Optional, Sequence, Tuple, Union

CRLF = b"\r\n"

DEFAULT_FIELD_NAME = "userfile"
DEFAULT_MIME_TYPE = "application/json"


def default_file_name() -> str:
    """File name used when the caller gives none: current unix timestamp."""
    return str(int(time.time()))


def choose_boundary() -> str:
    """Random boundary token, unique per multipart body."""
    return "Boundary-" + binascii.hexlify(os.urandom(16)).decode()


class PartPosition(enum.Flag):
    """Where a part sits in the body; a lone part is ``INITIAL | FINAL``."""

    ENCAPSULATED = 0
    INITIAL = enum.auto()
    FINAL = enum.auto()


@dataclass(frozen=True)
class BodyPart:
    """One named part of a multipart body."""

    data: bytes
    field_name: str = DEFAULT_FIELD_NAME
    file_name: str = field(default_factory=default_file_name)
    mime_type: str = DEFAULT_MIME_TYPE
    position: PartPosition = PartPosition.ENCAPSULATED

    def __post_init__(self):
        if isinstance(self.data, str):
            object.__setattr__(self, 'data', self.data.encode('utf-8'))
        elif isinstance(self.data, (bytearray, memoryview)):
            object.__setattr__(self, 'data', bytes(self.data))
        elif not isinstance(self.data, bytes):
            raise TypeError(
                f"BodyPart data must be bytes or str, got {type(self.data).__name__}"
            )

    def render_headers(self) -> bytes:
        disposition = (
            f'Content-Disposition: form-data; name="{_quote(self.field_name)}"; '
            f'filename="{_quote(self.file_name)}"'
        )
        content_type = f"Content-Type: {self.mime_type}"
        return disposition.encode('utf-8') + CRLF + content_type.encode('utf-8') + CRLF + CRLF

    def write(self, body: BytesIO, boundary: str) -> None:
        """Write this part, including its boundary lines, to ``body``."""
        delimiter = f"--{boundary}".encode('latin-1')

        if PartPosition.INITIAL in self.position:
            body.write(delimiter + CRLF)
        else:
            body.write(CRLF + delimiter + CRLF)

        body.write(self.render_headers())
        body.write(self.data)

        if PartPosition.FINAL in self.position:
            body.write(CRLF + delimiter + b"--" + CRLF)


def _quote(value: str) -> str:
    # Same escaping browsers apply to form-data names.
    return value.replace('\r', '%0D').replace('\n', '%0A').replace('"', '%22')


def seal_parts(parts: Sequence[BodyPart]) -> Tuple[BodyPart, ...]:
    """
    Return copies of ``parts`` with boundary positions assigned.

    The first part is tagged INITIAL, the last FINAL, the rest ENCAPSULATED.
    Positions already set on the input are ignored.
    """
    sealed = []
    last = len(parts) - 1
    for index, part in enumerate(parts):
        position = PartPosition.ENCAPSULATED
        if index == 0:
            position |= PartPosition.INITIAL
        if index == last:
            position |= PartPosition.FINAL
        sealed.append(replace(part, position=position))
    return tuple(sealed)


def encode_multipart(parts: Sequence[BodyPart], boundary: str) -> bytes:
    """
    Encode ``parts`` into a multipart/form-data body.

    An empty part list yields an empty body.
    """
    body = BytesIO()
    for part in seal_parts(parts):
        part.write(body, boundary)
    return body.getvalue()


def content_type_for(boundary: str) -> str:
    return f"multipart/form-data; boundary={boundary}"


class MultipartFormData:
    """
    Ordered collection of body parts with its own boundary.

    Example:
        >>> form = MultipartFormData()
        >>> form.append(b"...", field_name="avatar", file_name="avatar.jpeg", mime_type="image/jpeg")
        >>> form.append(b"...", field_name="manual", file_name="manual.pdf", mime_type="application/pdf")
        >>> body = form.encode()
    """

    def __init__(self, boundary: Optional[str] = None, parts: Iterable[BodyPart] = ()):
        self.boundary = boundary or choose_boundary()
        self._parts: List[BodyPart] = list(parts)

    def append(
        self,
        data: Union[bytes, str],
        field_name: str = DEFAULT_FIELD_NAME,
        file_name: Optional[str] = None,
        mime_type: str = DEFAULT_MIME_TYPE,
    ) -> 'MultipartFormData':
        part = BodyPart(
            data=data,
            field_name=field_name,
            file_name=file_name if file_name is not None else default_file_name(),
            mime_type=mime_type,
        )
        self._parts.append(part)
        return self

    @property
    def parts(self) -> Tuple[BodyPart, ...]:
        return tuple(self._parts)

    @property
    def content_type(self) -> str:
        return content_type_for(self.boundary)

    def encode(self) -> bytes:
        return encode_multipart(self._parts, self.boundary)

    def __len__(self) -> int:
        return len(self._parts)
