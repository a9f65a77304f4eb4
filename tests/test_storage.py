import uuid

import pytest

from haplink.storage import (
    BonjourStatusFlag,
    FileStorage,
    Pairing,
    ServerPersistence,
)
from haplink.tlv import Permissions


def _pairing(seed: int, permissions=Permissions.ADMIN) -> Pairing:
    return Pairing(
        id=uuid.UUID(int=seed),
        permissions=permissions,
        public_key=bytes([seed % 256]) * 32,
    )


@pytest.mark.asyncio
async def test_shorten_config(tmp_path):
    storage = FileStorage(tmp_path)
    config = {"name": "A rather long accessory name", "status_flag": BonjourStatusFlag.NOT_PAIRED}
    await storage.save_config(config)
    config = {"status_flag": BonjourStatusFlag.ZERO}
    await storage.save_config(config)

    loaded = await storage.load_config()
    assert BonjourStatusFlag(loaded["status_flag"]) is BonjourStatusFlag.ZERO
    assert loaded == {"status_flag": 0}


@pytest.mark.asyncio
async def test_delete_config(tmp_path):
    storage = FileStorage(tmp_path)
    await storage.save_config({"port": 32000})
    await storage.delete_config()
    with pytest.raises(FileNotFoundError):
        await storage.load_config()


def test_creates_directory(tmp_path):
    target = tmp_path / "nested" / "dir"
    storage = FileStorage(target)
    assert target.is_dir()
    assert storage.directory == target


def test_current_dir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    storage = FileStorage.current_dir()
    assert storage.directory == tmp_path / "data"
    assert (tmp_path / "data").is_dir()


def test_pairing_bytes_round_trip():
    pairing = _pairing(7, Permissions.USER)
    assert Pairing.from_bytes(pairing.to_bytes()) == pairing


def test_pairing_rejects_short_public_key():
    with pytest.raises(ValueError):
        Pairing(id=uuid.UUID(int=1), permissions=Permissions.ADMIN, public_key=b"\x01" * 31)


@pytest.mark.parametrize("data", [b"not json", b"[]", b'{"id": "x"}'])
def test_pairing_from_bytes_rejects_garbage(data):
    with pytest.raises(ValueError):
        Pairing.from_bytes(data)


@pytest.mark.asyncio
async def test_pairing_save_load_delete(tmp_path):
    storage = FileStorage(tmp_path)
    pairing = _pairing(3)
    await storage.save_pairing(pairing)
    assert await storage.load_pairing(pairing.id) == pairing

    await storage.delete_pairing(pairing.id)
    with pytest.raises(FileNotFoundError):
        await storage.load_pairing(pairing.id)


@pytest.mark.asyncio
async def test_save_pairing_replaces_permissions(tmp_path):
    storage = FileStorage(tmp_path)
    pairing = _pairing(4, Permissions.USER)
    await storage.save_pairing(pairing)
    pairing.permissions = Permissions.ADMIN
    await storage.save_pairing(pairing)
    loaded = await storage.load_pairing(pairing.id)
    assert loaded.permissions is Permissions.ADMIN
    assert await storage.count_pairings() == 1


@pytest.mark.asyncio
async def test_list_and_count_skip_config_and_persistence(tmp_path):
    storage = FileStorage(tmp_path)
    await storage.save_config({"name": "bridge"})
    await storage.save_server_persistence(ServerPersistence())
    pairings = [_pairing(1), _pairing(2, Permissions.USER)]
    for pairing in pairings:
        await storage.save_pairing(pairing)

    assert await storage.count_pairings() == 2
    listed = await storage.list_pairings()
    assert sorted(listed, key=lambda p: p.id) == pairings


@pytest.mark.asyncio
async def test_empty_storage_has_no_pairings(tmp_path):
    storage = FileStorage(tmp_path)
    assert await storage.count_pairings() == 0
    assert await storage.list_pairings() == []


@pytest.mark.asyncio
async def test_server_persistence_round_trip(tmp_path):
    storage = FileStorage(tmp_path)
    persistence = ServerPersistence(added_accessory_ids=[uuid.UUID(int=9), uuid.UUID(int=10)])
    await storage.save_server_persistence(persistence)
    assert await storage.load_server_persistence() == persistence

    await storage.delete_server_persistence()
    with pytest.raises(FileNotFoundError):
        await storage.load_server_persistence()