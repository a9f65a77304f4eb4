"""HTTP responses, wire objects and handler plumbing of the accessory server."""

from __future__ import annotations

import enum
import inspect
import json
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Protocol

from .storage import Storage
from .tlv import ErrorContainer, encode_items

__all__ = [
    "ContentType",
    "EventObject",
    "HttpStatusError",
    "ReadResponseObject",
    "RequestContext",
    "Response",
    "Status",
    "WriteObject",
    "WriteResponseObject",
    "event_response",
    "json_handler_response",
    "json_response",
    "status_response",
    "tlv_handler_response",
    "tlv_response",
]

logger = logging.getLogger(__name__)


class Status(enum.IntEnum):
    """Status codes reported per characteristic."""

    SUCCESS = 0
    INSUFFICIENT_PRIVILEGES = -70401
    SERVICE_COMMUNICATION_FAILURE = -70402
    RESOURCE_BUSY = -70403
    READ_ONLY_CHARACTERISTIC = -70404
    WRITE_ONLY_CHARACTERISTIC = -70405
    NOTIFICATION_NOT_SUPPORTED = -70406
    OUT_OF_RESOURCE = -70407
    OPERATION_TIMED_OUT = -70408
    RESOURCE_DOES_NOT_EXIST = -70409
    INVALID_VALUE_IN_REQUEST = -70410


class ContentType(str, enum.Enum):
    """Content types of response bodies."""

    PAIRING_TLV8 = "application/pairing+tlv8"
    HAP_JSON = "application/hap+json"


class HttpStatusError(Exception):
    """A request failed with a specific HTTP status."""

    def __init__(self, status: int) -> None:
        self.status = HTTPStatus(status)
        super().__init__(f"{self.status.value} {self.status.phrase}")


def _jsonable(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


_READ_KEYS = (
    ("iid", "iid"),
    ("aid", "aid"),
    ("hap_type", "type"),
    ("format", "format"),
    ("perms", "perms"),
    ("ev", "ev"),
    ("value", "value"),
    ("unit", "unit"),
    ("max_value", "maxValue"),
    ("min_value", "minValue"),
    ("step_value", "minStep"),
    ("max_len", "maxLen"),
    ("status", "status"),
)


@dataclass
class ReadResponseObject:
    """The result of reading one characteristic."""

    iid: int
    aid: int
    hap_type: Any = None
    format: Any = None
    perms: list[Any] | None = None
    ev: bool | None = None
    value: Any = None
    unit: Any = None
    max_value: Any = None
    min_value: Any = None
    step_value: Any = None
    max_len: int | None = None
    status: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """The JSON object for this result; unset fields are left out."""
        return {
            key: _jsonable(value)
            for attr, key in _READ_KEYS
            if (value := getattr(self, attr)) is not None
        }


def _optional(data: dict[str, Any], key: str, kind: type) -> Any:
    value = data.get(key)
    if value is not None and not isinstance(value, kind):
        raise ValueError(f"{key!r} must be {kind.__name__}, got {value!r}")
    return value


def _unsigned(data: dict[str, Any], key: str) -> int:
    if key not in data:
        raise ValueError(f"missing {key!r}")
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{key!r} must be an unsigned integer, got {value!r}")
    return value


@dataclass
class WriteObject:
    """One characteristic write requested by a controller."""

    iid: int
    aid: int
    ev: bool | None = None
    value: Any = None
    auth_data: str | None = None
    remote: bool | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WriteObject:
        """Build a write request from its JSON object; ValueError if malformed."""
        if not isinstance(data, dict):
            raise ValueError(f"write object must be a JSON object, got {data!r}")
        return cls(
            iid=_unsigned(data, "iid"),
            aid=_unsigned(data, "aid"),
            ev=_optional(data, "ev", bool),
            value=data.get("value"),
            auth_data=_optional(data, "authData", str),
            remote=_optional(data, "remote", bool),
        )


@dataclass
class WriteResponseObject:
    """The result of one characteristic write."""

    iid: int
    aid: int
    status: int

    def to_dict(self) -> dict[str, Any]:
        return {"iid": self.iid, "aid": self.aid, "status": int(self.status)}


@dataclass
class EventObject:
    """A characteristic value change to notify a controller of."""

    iid: int
    aid: int
    value: Any

    def to_dict(self) -> dict[str, Any]:
        return {"iid": self.iid, "aid": self.aid, "value": _jsonable(self.value)}


@dataclass
class Response:
    """An HTTP response: status, headers and body."""

    status: HTTPStatus
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.status = HTTPStatus(self.status)
        self.body = bytes(self.body)


@dataclass
class RequestContext:
    """Everything a handler may need about the connection and the server."""

    controller_id: uuid.UUID | None = None
    event_subscriptions: list[tuple[int, int]] = field(default_factory=list)
    config: Any = None
    storage: Storage | None = None
    accessory_list: Any = None
    event_emitter: Any = None


def _response(body: bytes, status: int, content_type: ContentType) -> Response:
    body = bytes(body)
    return Response(
        status=HTTPStatus(status),
        body=body,
        headers={"Content-Type": content_type.value, "Content-Length": str(len(body))},
    )


def tlv_response(body: bytes, status: int) -> Response:
    """A response carrying TLV8 pairing data."""
    return _response(body, status, ContentType.PAIRING_TLV8)


def json_response(body: bytes, status: int) -> Response:
    """A response carrying HAP JSON."""
    return _response(body, status, ContentType.HAP_JSON)


def status_response(status: int) -> Response:
    """A response with a status and no body."""
    return Response(status=HTTPStatus(status))


def event_response(event_objects: list[EventObject]) -> bytes:
    """The raw bytes of an ``EVENT/1.0`` notification message."""
    body = json.dumps(
        {"characteristics": [e.to_dict() for e in event_objects]},
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")
    head = (
        f"EVENT/1.0 200 OK\nContent-Type: {ContentType.HAP_JSON.value}\n"
        f"Content-Length: {len(body)}\n\n"
    )
    return head.encode("utf-8") + body


async def json_handler_response(call: Callable[[], Awaitable[Response] | Response]) -> Response:
    """Run a JSON handler, turning its failures into status responses.

    An HttpStatusError becomes a response with that status; any other error
    becomes 500 Internal Server Error.
    """
    try:
        result = call()
        if inspect.isawaitable(result):
            result = await result
        return result
    except HttpStatusError as error:
        return status_response(error.status)
    except Exception:
        logger.exception("handler failed")
        return status_response(HTTPStatus.INTERNAL_SERVER_ERROR)


class _TlvHandler(Protocol):
    async def parse(self, body: bytes) -> Any: ...

    async def handle(self, step: Any, context: RequestContext) -> Any: ...


async def tlv_handler_response(
    handler: _TlvHandler, body: bytes, context: RequestContext
) -> Response:
    """Run a TLV handler: parse the body, handle the step, encode the answer.

    ``handle`` returns ``(type, value)`` items. An ErrorContainer raised by
    either stage is encoded as the answer. The status is always 200 OK.
    """
    try:
        step = await handler.parse(body)
        items = await handler.handle(step, context)
    except ErrorContainer as error:
        payload = error.encode()
    else:
        payload = encode_items(items)
    return tlv_response(payload, HTTPStatus.OK)