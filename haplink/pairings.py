"""Handler for ``POST /pairings``: adding, removing and listing controller pairings."""

from __future__ import annotations

import inspect
import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from .http import RequestContext
from .storage import Pairing
from .tlv import ErrorContainer, Method, Permissions, TlvErrorCode, Type, decode

__all__ = [
    "AddPairing",
    "ControllerPaired",
    "ControllerUnpaired",
    "ListPairings",
    "Pairings",
    "RemovePairing",
    "check_admin",
    "handle_add",
    "handle_list",
    "handle_remove",
]

logger = logging.getLogger(__name__)

_STEP_UNKNOWN = 0
_STEP_RES = 2
_REQUEST_STATE = b"\x01"


@dataclass(frozen=True)
class ControllerPaired:
    """A controller was paired, or its pairing was updated."""

    id: uuid.UUID


@dataclass(frozen=True)
class ControllerUnpaired:
    """A controller's pairing was removed."""

    id: uuid.UUID


@dataclass(frozen=True)
class AddPairing:
    """A request to add or update a pairing."""

    pairing_id: bytes
    ltpk: bytes
    permissions: Permissions


@dataclass(frozen=True)
class RemovePairing:
    """A request to remove a pairing."""

    pairing_id: bytes


@dataclass(frozen=True)
class ListPairings:
    """A request to list every pairing."""


PairingsRequest = Union[AddPairing, RemovePairing, ListPairings]


def _fail(error: TlvErrorCode, step: int = _STEP_RES) -> ErrorContainer:
    return ErrorContainer(step, error)


async def _emit(emitter: Any, event: object) -> None:
    if emitter is None:
        return
    result = emitter.emit(event)
    if inspect.isawaitable(result):
        await result


def _max_peers(config: Any) -> int | None:
    if config is None:
        return None
    if isinstance(config, Mapping):
        return config.get("max_peers")
    return getattr(config, "max_peers", None)


def _parse_uuid(pairing_id: bytes) -> uuid.UUID:
    try:
        return uuid.UUID(bytes(pairing_id).decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        raise _fail(TlvErrorCode.UNKNOWN) from None


def _ed25519_raw(key: bytes) -> bytes:
    try:
        public_key = Ed25519PublicKey.from_public_bytes(bytes(key))
    except ValueError:
        raise _fail(TlvErrorCode.AUTHENTICATION) from None
    return public_key.public_bytes(Encoding.Raw, PublicFormat.Raw)


class Pairings:
    """Parses and handles pairing management requests."""

    async def parse(self, body: bytes) -> PairingsRequest:
        """Turn a TLV request body into a pairing request.

        Raises ErrorContainer for a body that is not a valid request.
        """
        logger.debug("received body: %r", body)
        try:
            decoded = decode(body)
        except ValueError:
            raise _fail(TlvErrorCode.UNKNOWN, _STEP_UNKNOWN) from None
        if decoded.get(Type.STATE) != _REQUEST_STATE:
            raise _fail(TlvErrorCode.UNKNOWN, _STEP_UNKNOWN)
        method = decoded.get(Type.METHOD)
        if not method:
            raise _fail(TlvErrorCode.UNKNOWN, _STEP_UNKNOWN)

        def required(kind: Type) -> bytes:
            value = decoded.get(kind)
            if value is None:
                raise _fail(TlvErrorCode.UNKNOWN)
            return value

        if method[0] == Method.ADD_PAIRING:
            pairing_id = required(Type.IDENTIFIER)
            ltpk = required(Type.PUBLIC_KEY)
            perms = required(Type.PERMISSIONS)
            try:
                permissions = Permissions.from_byte(perms[0])
            except (ValueError, IndexError):
                raise _fail(TlvErrorCode.UNKNOWN) from None
            return AddPairing(pairing_id=pairing_id, ltpk=ltpk, permissions=permissions)
        if method[0] == Method.REMOVE_PAIRING:
            return RemovePairing(pairing_id=required(Type.IDENTIFIER))
        if method[0] == Method.LIST_PAIRINGS:
            return ListPairings()
        raise _fail(TlvErrorCode.UNKNOWN, _STEP_UNKNOWN)

    async def handle(
        self, step: PairingsRequest, context: RequestContext
    ) -> list[tuple[Type, Any]]:
        """Carry out a parsed request and return the TLV items of the answer."""
        match step:
            case AddPairing(pairing_id=pairing_id, ltpk=ltpk, permissions=permissions):
                return await handle_add(context, pairing_id, ltpk, permissions)
            case RemovePairing(pairing_id=pairing_id):
                return await handle_remove(context, pairing_id)
            case ListPairings():
                return await handle_list(context)
        raise _fail(TlvErrorCode.UNKNOWN)


async def handle_add(
    context: RequestContext, pairing_id: bytes, ltpk: bytes, permissions: Permissions
) -> list[tuple[Type, Any]]:
    """Add a pairing, or update the permissions of an existing one."""
    logger.info("pairings M1: received add pairing request")
    await check_admin(context)

    pairing_uuid = _parse_uuid(pairing_id)
    storage = context.storage
    try:
        existing: Pairing | None = await storage.load_pairing(pairing_uuid)
    except Exception:
        existing = None

    try:
        if existing is not None:
            if _ed25519_raw(existing.public_key) != _ed25519_raw(ltpk):
                raise _fail(TlvErrorCode.UNKNOWN)
            existing.permissions = Permissions(permissions)
            await storage.save_pairing(existing)
            pairing = existing
        else:
            max_peers = _max_peers(context.config)
            if max_peers is not None and await storage.count_pairings() + 1 > max_peers:
                raise _fail(TlvErrorCode.MAX_PEERS)
            pairing = Pairing(id=pairing_uuid, permissions=permissions, public_key=ltpk)
            await storage.save_pairing(pairing)
    except ErrorContainer:
        raise
    except Exception:
        logger.exception("adding pairing failed")
        raise _fail(TlvErrorCode.UNKNOWN) from None

    await _emit(context.event_emitter, ControllerPaired(id=pairing.id))

    logger.info("pairings M2: sending add pairing response")
    return [(Type.STATE, _STEP_RES)]


async def handle_remove(context: RequestContext, pairing_id: bytes) -> list[tuple[Type, Any]]:
    """Remove a pairing."""
    logger.info("pairings M1: received remove pairing request")
    await check_admin(context)

    pairing_uuid = _parse_uuid(pairing_id)
    try:
        await context.storage.delete_pairing(pairing_uuid)
    except Exception:
        logger.exception("removing pairing failed")
        raise _fail(TlvErrorCode.UNKNOWN) from None

    await _emit(context.event_emitter, ControllerUnpaired(id=pairing_uuid))

    logger.info("pairings M2: sending remove pairing response")
    return [(Type.STATE, _STEP_RES)]


async def handle_list(context: RequestContext) -> list[tuple[Type, Any]]:
    """List every pairing, each followed by a separator."""
    logger.info("pairings M1: received list pairings request")
    await check_admin(context)

    try:
        pairings = await context.storage.list_pairings()
    except Exception:
        logger.exception("listing pairings failed")
        raise _fail(TlvErrorCode.UNKNOWN) from None

    items: list[tuple[Type, Any]] = [(Type.STATE, _STEP_RES)]
    for pairing in pairings:
        items.append((Type.IDENTIFIER, str(pairing.id)))
        items.append((Type.PUBLIC_KEY, pairing.public_key))
        items.append((Type.PERMISSIONS, pairing.permissions))
        items.append((Type.SEPARATOR, None))

    logger.info("pairings M2: sending list pairings response")
    return items


async def check_admin(context: RequestContext) -> None:
    """Raise ErrorContainer unless the connected controller is a paired admin."""
    if context.controller_id is None:
        raise _fail(TlvErrorCode.AUTHENTICATION)
    try:
        controller = await context.storage.load_pairing(context.controller_id)
    except Exception:
        raise _fail(TlvErrorCode.AUTHENTICATION) from None
    if controller.permissions is not Permissions.ADMIN:
        raise _fail(TlvErrorCode.AUTHENTICATION)