"""
Message Parts
Read-only content tree of a message, modelled as a closed variant

A part is either a LeafPart (text, markup or binary payload) or a
CompositePart (ordered children). Content access never raises: it returns a
ContentAccess value the walker branches on.

MAINTENANCE WISDOM: Keep the email package behind this module. The walker
and renderers only see LeafPart/CompositePart, which makes them testable with
hand-built trees and no RFC822 parsing at all.
"""

from dataclasses import dataclass, field
from email import policy
from email.charset import UNKNOWN8BIT
from email.header import Header, decode_header, make_header
from email.message import Message
from enum import Enum
from typing import Any, Callable, Optional, Tuple, Union

from .content_classifier import encoding_hint


class AccessStatus(Enum):
    """Outcome of a content access call"""
    OK = "ok"
    NOT_APPLICABLE = "not-applicable"
    FAILED = "failed"


@dataclass(frozen=True)
class ContentAccess:
    """Result of reading a part's content"""
    status: AccessStatus
    value: Any = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, value: Any) -> "ContentAccess":
        return cls(AccessStatus.OK, value)

    @classmethod
    def not_applicable(cls, reason: str) -> "ContentAccess":
        return cls(AccessStatus.NOT_APPLICABLE, error=reason)

    @classmethod
    def failed(cls, error: str) -> "ContentAccess":
        return cls(AccessStatus.FAILED, error=error)

    @property
    def succeeded(self) -> bool:
        return self.status is AccessStatus.OK


def _guarded(loader: Callable[[], Any]) -> ContentAccess:
    try:
        return ContentAccess.ok(loader())
    except Exception as e:
        return ContentAccess.failed(f"{type(e).__name__}: {e}")


@dataclass(frozen=True)
class LeafPart:
    """A part with no sub-parts"""
    media_type: str
    loader: Callable[[], bytes] = field(repr=False, compare=False)
    disposition: Optional[str] = None
    file_name: Optional[str] = None

    def raw_bytes(self) -> ContentAccess:
        """Transfer-decoded payload bytes"""
        access = _guarded(self.loader)
        if access.succeeded and access.value is None:
            return ContentAccess.ok(b"")
        if access.succeeded and isinstance(access.value, str):
            return ContentAccess.ok(access.value.encode("utf-8"))
        return access

    def sub_parts(self) -> ContentAccess:
        return ContentAccess.not_applicable("leaf part has no sub-parts")


@dataclass(frozen=True)
class CompositePart:
    """A part holding an ordered sequence of further parts"""
    media_type: str
    children: Tuple["MessagePart", ...] = ()
    disposition: Optional[str] = None
    file_name: Optional[str] = None
    serializer: Optional[Callable[[], bytes]] = field(default=None, repr=False, compare=False)

    def raw_bytes(self) -> ContentAccess:
        """The whole serialized part, used when it is saved as an attachment"""
        if self.serializer is None:
            return ContentAccess.not_applicable("composite part has no serialized form")
        return _guarded(self.serializer)

    def sub_parts(self) -> ContentAccess:
        return ContentAccess.ok(self.children)


MessagePart = Union[LeafPart, CompositePart]


def text_part(text: str, media_type: str = "text/plain; charset=utf-8") -> LeafPart:
    """Build an in-memory leaf holding text, encoded with its declared charset"""
    payload = text.encode(encoding_hint(media_type))
    return LeafPart(media_type=media_type, loader=lambda: payload)


def binary_part(
    data: bytes,
    file_name: str,
    media_type: str = "application/octet-stream",
    disposition: Optional[str] = "attachment"
) -> LeafPart:
    """Build an in-memory attachment leaf"""
    return LeafPart(
        media_type=media_type,
        loader=lambda: data,
        disposition=disposition,
        file_name=file_name,
    )


def _eight_bit_charset(chunk: bytes) -> str:
    try:
        chunk.decode("utf-8")
        return "utf-8"
    except UnicodeDecodeError:
        return "latin-1"


def decode_header_value(value: Union[str, Header, None]) -> str:
    """
    Decode an RFC 2047 encoded header value, falling back to the raw value

    Raw 8-bit header bytes (RFC 6532) reach us as unknown-8bit chunks; they
    are read as UTF-8, or as Latin-1 when they are not valid UTF-8.
    """
    if not value:
        return ""
    try:
        chunks = [
            (chunk, _eight_bit_charset(chunk) if charset == UNKNOWN8BIT else charset)
            for chunk, charset in decode_header(value)
        ]
        return str(make_header(chunks))
    except Exception:
        return str(value)


def _file_name(msg: Message) -> Optional[str]:
    """
    The part's file name, decoded

    Message.get_filename() renders 8-bit header bytes as U+FFFD, so such
    headers are decoded first and their parameters parsed from the text.
    """
    for header, param in (("Content-Disposition", "filename"), ("Content-Type", "name")):
        raw = msg.get(header)
        if isinstance(raw, Header):
            parsed = policy.default.header_factory(header, decode_header_value(raw))
            if parsed.params.get(param):
                return parsed.params[param]

    return decode_header_value(msg.get_filename()) or None


def part_from_message(msg: Message) -> MessagePart:
    """
    Wrap an email.message.Message (or one of its sub-parts) as a MessagePart

    The declared media type keeps its parameters so the classifier can find the
    charset. A missing Content-Type defaults to text/plain, as RFC 2045 says.
    """
    media_type = str(msg.get("Content-Type") or "text/plain")
    disposition = msg.get_content_disposition()
    file_name = _file_name(msg)

    if msg.is_multipart():
        payload = msg.get_payload()
        children = tuple(part_from_message(child) for child in payload)
        return CompositePart(
            media_type=media_type,
            children=children,
            disposition=disposition,
            file_name=file_name,
            serializer=msg.as_bytes,
        )

    return LeafPart(
        media_type=media_type,
        loader=lambda: msg.get_payload(decode=True),
        disposition=disposition,
        file_name=file_name,
    )
