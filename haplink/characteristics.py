"""Handlers for the accessory database, characteristic reads and writes, and identify."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from http import HTTPStatus
from urllib.parse import parse_qsl

from .accessory_list import ACCESSORY_INFORMATION_TYPE, IDENTIFY_TYPE
from .http import (
    HttpStatusError,
    ReadResponseObject,
    RequestContext,
    Response,
    Status,
    WriteObject,
    WriteResponseObject,
    json_response,
    status_response,
)

__all__ = [
    "Accessories",
    "GetCharacteristics",
    "Identify",
    "UpdateCharacteristics",
    "check_flags",
]

_UNSIGNED = re.compile(r"\+?[0-9]+")
_U64_LIMIT = 1 << 64


def _dumps(document: object) -> bytes:
    return json.dumps(document, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def _parse_u64(text: str) -> int:
    if not _UNSIGNED.fullmatch(text):
        raise ValueError(f"invalid id component: {text!r}")
    number = int(text)
    if number >= _U64_LIMIT:
        raise ValueError(f"id component out of range: {text!r}")
    return number


def check_flags(queries: Mapping[str, str]) -> tuple[bool, bool, bool, bool]:
    """Return the ``meta``, ``perms``, ``type`` and ``ev`` flags of a query."""
    return tuple(queries.get(name) == "1" for name in ("meta", "perms", "type", "ev"))  # type: ignore[return-value]


class GetCharacteristics:
    """Handles ``GET /characteristics``."""

    async def handle(self, query: str | None, context: RequestContext) -> Response:
        """Read the characteristics named by the ``id`` query parameter.

        Raises HttpStatusError(400) for a missing or malformed ``id`` and
        ValueError for ids that are not unsigned numbers.
        """
        if not query:
            return status_response(HTTPStatus.BAD_REQUEST)
        queries = dict(parse_qsl(query, keep_blank_values=True))
        meta, perms, hap_type, ev = check_flags(queries)
        if "id" not in queries:
            raise HttpStatusError(HTTPStatus.BAD_REQUEST)

        results: list[ReadResponseObject] = []
        some_err = False
        for pair in queries["id"].split(","):
            parts = pair.split(".")
            if len(parts) != 2:
                raise HttpStatusError(HTTPStatus.BAD_REQUEST)
            aid, iid = _parse_u64(parts[0]), _parse_u64(parts[1])
            try:
                result = await context.accessory_list.read_characteristic(
                    aid, iid, meta, perms, hap_type, ev
                )
            except Exception:
                some_err = True
                result = ReadResponseObject(
                    iid=iid, aid=aid, status=int(Status.SERVICE_COMMUNICATION_FAILURE)
                )
            else:
                if result.status != 0:
                    some_err = True
                    result.value = None
            results.append(result)

        if some_err:
            body = _dumps({"characteristics": [r.to_dict() for r in results]})
            return json_response(body, HTTPStatus.MULTI_STATUS)
        for result in results:
            result.status = None
        body = _dumps({"characteristics": [r.to_dict() for r in results]})
        return json_response(body, HTTPStatus.OK)


class UpdateCharacteristics:
    """Handles ``PUT /characteristics``."""

    async def handle(self, body: bytes, context: RequestContext) -> Response:
        """Apply the writes in a JSON body; ValueError if the body is malformed."""
        document = json.loads(body)
        if not isinstance(document, dict) or not isinstance(document.get("characteristics"), list):
            raise ValueError("body must be an object with a 'characteristics' list")
        writes = [WriteObject.from_dict(entry) for entry in document["characteristics"]]

        results: list[WriteResponseObject] = []
        some_err = False
        all_err = True
        for write in writes:
            try:
                result = await context.accessory_list.write_characteristic(
                    write, context.event_subscriptions
                )
            except Exception:
                some_err = True
                result = WriteResponseObject(
                    iid=write.iid,
                    aid=write.aid,
                    status=int(Status.SERVICE_COMMUNICATION_FAILURE),
                )
            else:
                if result.status != 0:
                    some_err = True
                else:
                    all_err = False
            results.append(result)

        if all_err:
            payload = _dumps({"characteristics": [r.to_dict() for r in results]})
            return json_response(payload, HTTPStatus.BAD_REQUEST)
        if some_err:
            payload = _dumps({"characteristics": [r.to_dict() for r in results]})
            return json_response(payload, HTTPStatus.MULTI_STATUS)
        return status_response(HTTPStatus.NO_CONTENT)


class Accessories:
    """Handles ``GET /accessories``."""

    async def handle(self, context: RequestContext) -> Response:
        """Return the accessory database as JSON."""
        return json_response(context.accessory_list.to_json(), HTTPStatus.OK)


class Identify:
    """Handles ``POST /identify``, allowed only while the server is unpaired."""

    async def handle(self, context: RequestContext) -> Response:
        """Trigger the identify routine of every accessory.

        Raises LookupError for an accessory without an information service
        or identify characteristic.
        """
        if await context.storage.count_pairings() > 0:
            body = _dumps({"status": int(Status.INSUFFICIENT_PRIVILEGES)})
            return json_response(body, HTTPStatus.BAD_REQUEST)

        for accessory in context.accessory_list.accessories:
            service = accessory.service(ACCESSORY_INFORMATION_TYPE)
            if service is None:
                raise LookupError(f"accessory {accessory.id} has no accessory information service")
            characteristic = service.characteristic(IDENTIFY_TYPE)
            if characteristic is None:
                raise LookupError(f"accessory {accessory.id} has no identify characteristic")
            await characteristic.set_value(True)

        return status_response(HTTPStatus.NO_CONTENT)