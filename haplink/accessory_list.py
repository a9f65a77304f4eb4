"""Accessories, services and characteristics served by the accessory server."""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from .http import ReadResponseObject, Status, WriteObject, WriteResponseObject

__all__ = [
    "ACCESSORY_INFORMATION_TYPE",
    "IDENTIFY_TYPE",
    "AccessoryList",
    "AccessoryNotFoundError",
    "HapAccessory",
    "HapCharacteristic",
    "HapService",
    "Perm",
]

logger = logging.getLogger(__name__)

ACCESSORY_INFORMATION_TYPE = "3E"
IDENTIFY_TYPE = "14"


class Perm(str, enum.Enum):
    """Permissions of a characteristic."""

    PAIRED_READ = "pr"
    PAIRED_WRITE = "pw"
    EVENTS = "ev"
    ADDITIONAL_AUTHORIZATION = "aa"
    TIMED_WRITE = "tw"
    HIDDEN = "hd"
    WRITE_RESPONSE = "wr"


class AccessoryNotFoundError(LookupError):
    """The accessory is not part of the accessory list."""


@dataclass(eq=False)
class HapCharacteristic:
    """A characteristic of a service.

    ``get_value`` and ``set_value`` are the points where subclasses reach the
    device behind the characteristic; by default the value is kept in memory.
    """

    id: int
    hap_type: str
    format: str
    perms: list[Perm] = field(default_factory=list)
    value: Any = None
    unit: str | None = None
    max_value: Any = None
    min_value: Any = None
    step_value: Any = None
    max_len: int | None = None
    event_notifications: bool | None = None
    event_emitter: Any = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self.perms = [Perm(p) for p in self.perms]

    async def get_value(self) -> Any:
        """Return the current value."""
        return self.value

    async def set_value(self, value: Any) -> None:
        """Change the value."""
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        """The JSON object describing this characteristic."""
        document: dict[str, Any] = {
            "iid": self.id,
            "type": self.hap_type,
            "format": self.format,
            "perms": [p.value for p in self.perms],
        }
        if Perm.PAIRED_READ in self.perms:
            document["value"] = self.value
        optional = (
            ("ev", self.event_notifications),
            ("unit", self.unit),
            ("maxValue", self.max_value),
            ("minValue", self.min_value),
            ("minStep", self.step_value),
            ("maxLen", self.max_len),
        )
        document.update((key, value) for key, value in optional if value is not None)
        return document


@dataclass(eq=False)
class HapService:
    """A service of an accessory, grouping characteristics."""

    id: int
    hap_type: str
    hidden: bool = False
    primary: bool = False
    characteristics: list[HapCharacteristic] = field(default_factory=list)

    def characteristic(self, hap_type: str) -> HapCharacteristic | None:
        """Return the characteristic of the given type, if the service has one."""
        return next((c for c in self.characteristics if c.hap_type == hap_type), None)

    def to_dict(self) -> dict[str, Any]:
        """The JSON object describing this service."""
        return {
            "iid": self.id,
            "type": self.hap_type,
            "hidden": self.hidden,
            "primary": self.primary,
            "characteristics": [c.to_dict() for c in self.characteristics],
        }


@dataclass(eq=False)
class HapAccessory:
    """An accessory: an id and its services."""

    id: int
    services: list[HapService] = field(default_factory=list)

    def service(self, hap_type: str) -> HapService | None:
        """Return the service of the given type, if the accessory has one."""
        return next((s for s in self.services if s.hap_type == hap_type), None)

    def set_event_emitter_on_characteristics(self, event_emitter: Any) -> None:
        """Point every characteristic at the given event emitter."""
        for service in self.services:
            for characteristic in service.characteristics:
                characteristic.event_emitter = event_emitter

    def to_dict(self) -> dict[str, Any]:
        """The JSON object describing this accessory."""
        return {"aid": self.id, "services": [s.to_dict() for s in self.services]}


class AccessoryList:
    """The accessories a server exposes."""

    def __init__(self, event_emitter: Any) -> None:
        self.accessories: list[HapAccessory] = []
        self._event_emitter = event_emitter

    def add_accessory(self, accessory: HapAccessory) -> HapAccessory:
        """Add an accessory and return it."""
        accessory.set_event_emitter_on_characteristics(self._event_emitter)
        self.accessories.append(accessory)
        return accessory

    def remove_accessory(self, accessory: HapAccessory) -> None:
        """Remove the accessory with the same id; AccessoryNotFoundError if none."""
        for index, candidate in enumerate(self.accessories):
            if candidate.id == accessory.id:
                candidate.set_event_emitter_on_characteristics(None)
                del self.accessories[index]
                return
        raise AccessoryNotFoundError(f"accessory {accessory.id} not found")

    def _find(self, aid: int, iid: int) -> HapCharacteristic | None:
        return next(
            (
                characteristic
                for accessory in self.accessories
                if accessory.id == aid
                for service in accessory.services
                for characteristic in service.characteristics
                if characteristic.id == iid
            ),
            None,
        )

    async def read_characteristic(
        self, aid: int, iid: int, meta: bool, perms: bool, hap_type: bool, ev: bool
    ) -> ReadResponseObject:
        """Read one characteristic, adding the metadata the flags ask for."""
        result = ReadResponseObject(iid=iid, aid=aid, status=int(Status.SUCCESS))
        characteristic = self._find(aid, iid)
        if characteristic is None:
            return result
        if Perm.PAIRED_READ not in characteristic.perms:
            result.status = int(Status.WRITE_ONLY_CHARACTERISTIC)
            return result
        result.value = await characteristic.get_value()
        if meta:
            result.format = characteristic.format
            result.unit = characteristic.unit
            result.max_value = characteristic.max_value
            result.min_value = characteristic.min_value
            result.step_value = characteristic.step_value
            result.max_len = characteristic.max_len
        if perms:
            result.perms = list(characteristic.perms)
        if hap_type:
            result.hap_type = characteristic.hap_type
        if ev:
            result.ev = characteristic.event_notifications
        return result

    async def write_characteristic(
        self, write_object: WriteObject, event_subscriptions: list[tuple[int, int]]
    ) -> WriteResponseObject:
        """Apply one write request, updating ``event_subscriptions`` in place."""
        result = WriteResponseObject(
            iid=write_object.iid, aid=write_object.aid, status=int(Status.SUCCESS)
        )
        characteristic = self._find(write_object.aid, write_object.iid)
        if characteristic is None:
            return result
        if write_object.ev is not None:
            if Perm.EVENTS in characteristic.perms:
                characteristic.event_notifications = write_object.ev
                subscription = (write_object.aid, write_object.iid)
                if write_object.ev and subscription not in event_subscriptions:
                    event_subscriptions.append(subscription)
                elif not write_object.ev and subscription in event_subscriptions:
                    event_subscriptions.remove(subscription)
            else:
                result.status = int(Status.NOTIFICATION_NOT_SUPPORTED)
        if write_object.value is not None:
            if Perm.PAIRED_WRITE in characteristic.perms:
                await characteristic.set_value(write_object.value)
            else:
                result.status = int(Status.READ_ONLY_CHARACTERISTIC)
        return result

    def to_json(self) -> bytes:
        """The accessory database as JSON bytes."""
        document = {"accessories": [a.to_dict() for a in self.accessories]}
        text = json.dumps(document, separators=(",", ":"), ensure_ascii=False)
        logger.debug("accessory list JSON: %s", text)
        return text.encode("utf-8")