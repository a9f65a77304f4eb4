"""Persistent storage of the server configuration, its state and pairings."""

from __future__ import annotations

import abc
import asyncio
import enum
import json
import os
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .tlv import Permissions

__all__ = [
    "BonjourFeatureFlag",
    "BonjourStatusFlag",
    "FileStorage",
    "Pairing",
    "ServerPersistence",
    "Storage",
]

_SUFFIX = ".json"
_CONFIG_KEY = "config"
_PERSISTENCE_KEY = "server_persistence"
_RESERVED_KEYS = frozenset({_CONFIG_KEY, _PERSISTENCE_KEY})
_PUBLIC_KEY_LENGTH = 32


class BonjourFeatureFlag(enum.IntEnum):
    """Bonjour feature flag advertised by the server."""

    ZERO = 0
    MFI_COMPLIANT = 1


class BonjourStatusFlag(enum.IntEnum):
    """Bonjour status flag advertised by the server."""

    ZERO = 0
    NOT_PAIRED = 1
    WIFI_NOT_CONFIGURED = 2
    PROBLEM_DETECTED = 3


@dataclass
class Pairing:
    """A paired controller: its identifier, permissions and long-term public key."""

    id: uuid.UUID
    permissions: Permissions
    public_key: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.id, uuid.UUID):
            self.id = uuid.UUID(str(self.id))
        self.permissions = Permissions(self.permissions)
        self.public_key = bytes(self.public_key)
        if len(self.public_key) != _PUBLIC_KEY_LENGTH:
            raise ValueError(
                f"public key must be {_PUBLIC_KEY_LENGTH} bytes, got {len(self.public_key)}"
            )

    def to_bytes(self) -> bytes:
        """Serialize the pairing as JSON."""
        document = {
            "id": str(self.id),
            "permissions": self.permissions.as_byte(),
            "public_key": list(self.public_key),
        }
        return json.dumps(document).encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes) -> Pairing:
        """Parse a pairing serialized by :meth:`to_bytes`; ValueError if malformed."""
        try:
            document = json.loads(data)
            return cls(
                id=uuid.UUID(document["id"]),
                permissions=Permissions.from_byte(document["permissions"]),
                public_key=bytes(document["public_key"]),
            )
        except (KeyError, TypeError, AttributeError) as exc:
            raise ValueError(f"malformed pairing: {exc}") from exc


@dataclass
class ServerPersistence:
    """State the server keeps between runs."""

    added_accessory_ids: list[uuid.UUID] = field(default_factory=list)


def _persistence_to_bytes(persistence: ServerPersistence) -> bytes:
    document = {"added_accessory_ids": [str(i) for i in persistence.added_accessory_ids]}
    return json.dumps(document).encode("utf-8")


def _persistence_from_bytes(data: bytes) -> ServerPersistence:
    try:
        document = json.loads(data)
        ids = [uuid.UUID(i) for i in document["added_accessory_ids"]]
    except (KeyError, TypeError, AttributeError) as exc:
        raise ValueError(f"malformed server persistence: {exc}") from exc
    return ServerPersistence(added_accessory_ids=ids)


class Storage(abc.ABC):
    """Where the server keeps its configuration, persistence and pairings."""

    @abc.abstractmethod
    async def load_config(self) -> Any:
        """Load the configuration."""

    @abc.abstractmethod
    async def save_config(self, config: Any) -> None:
        """Save the configuration."""

    @abc.abstractmethod
    async def delete_config(self) -> None:
        """Delete the configuration."""

    @abc.abstractmethod
    async def load_server_persistence(self) -> ServerPersistence:
        """Load the server persistence."""

    @abc.abstractmethod
    async def save_server_persistence(self, server_persistence: ServerPersistence) -> None:
        """Save the server persistence."""

    @abc.abstractmethod
    async def delete_server_persistence(self) -> None:
        """Delete the server persistence."""

    @abc.abstractmethod
    async def load_pairing(self, id: uuid.UUID) -> Pairing:
        """Load the pairing with the given controller id."""

    @abc.abstractmethod
    async def save_pairing(self, pairing: Pairing) -> None:
        """Insert or replace a pairing."""

    @abc.abstractmethod
    async def delete_pairing(self, id: uuid.UUID) -> None:
        """Delete the pairing with the given controller id."""

    @abc.abstractmethod
    async def list_pairings(self) -> list[Pairing]:
        """Load every pairing."""

    @abc.abstractmethod
    async def count_pairings(self) -> int:
        """Count the stored pairings."""


class FileStorage(Storage):
    """Storage that keeps each record as a JSON file in one directory.

    The configuration is stored as any JSON-serializable value; missing files
    raise FileNotFoundError.
    """

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self._directory = Path(directory)
        self._directory.mkdir(parents=True, exist_ok=True)

    @classmethod
    def current_dir(cls) -> FileStorage:
        """Create a storage in ``data`` below the current working directory."""
        return cls(Path.cwd() / "data")

    @property
    def directory(self) -> Path:
        """The directory the records live in."""
        return self._directory

    def _path(self, file_name: str) -> Path:
        return self._directory / file_name

    async def _read_bytes(self, key: str) -> bytes:
        return await asyncio.to_thread(self._path(key + _SUFFIX).read_bytes)

    async def _write_bytes(self, key: str, value: bytes) -> None:
        await asyncio.to_thread(self._path(key + _SUFFIX).write_bytes, value)

    async def _remove(self, key: str) -> None:
        await asyncio.to_thread(self._path(key + _SUFFIX).unlink)

    async def _pairing_keys(self) -> list[str]:
        def scan() -> list[str]:
            return sorted(
                entry.stem
                for entry in self._directory.iterdir()
                if entry.suffix == _SUFFIX and entry.stem not in _RESERVED_KEYS
            )

        return await asyncio.to_thread(scan)

    async def load_config(self) -> Any:
        return json.loads(await self._read_bytes(_CONFIG_KEY))

    async def save_config(self, config: Any) -> None:
        await self._write_bytes(_CONFIG_KEY, json.dumps(config).encode("utf-8"))

    async def delete_config(self) -> None:
        await self._remove(_CONFIG_KEY)

    async def load_server_persistence(self) -> ServerPersistence:
        return _persistence_from_bytes(await self._read_bytes(_PERSISTENCE_KEY))

    async def save_server_persistence(self, server_persistence: ServerPersistence) -> None:
        await self._write_bytes(_PERSISTENCE_KEY, _persistence_to_bytes(server_persistence))

    async def delete_server_persistence(self) -> None:
        await self._remove(_PERSISTENCE_KEY)

    async def load_pairing(self, id: uuid.UUID) -> Pairing:
        return Pairing.from_bytes(await self._read_bytes(str(id)))

    async def save_pairing(self, pairing: Pairing) -> None:
        await self._write_bytes(str(pairing.id), pairing.to_bytes())

    async def delete_pairing(self, id: uuid.UUID) -> None:
        await self._remove(str(id))

    async def list_pairings(self) -> list[Pairing]:
        return [
            Pairing.from_bytes(await self._read_bytes(key))
            for key in await self._pairing_keys()
        ]

    async def count_pairings(self) -> int:
        return len(await self._pairing_keys())