# haplink

Building blocks for HomeKit Accessory Protocol (HAP) servers over TCP/IP,
written for asyncio.

## Modules

- `haplink.pin`: the eight-digit setup `Pin`. It rejects sequential codes
  and codes made of one repeated digit with `PinTooEasyError`, and anything
  that is not eight digits from 0 to 9 with `InvalidPinError`.
  `str(Pin.default())` is `"111-22-333"`.
- `haplink.tlv`: TLV8 `encode` / `decode`. Values longer than 255 bytes are
  split into fragments and joined again. The module also has the protocol's
  `Type`, `Method` and `TlvErrorCode` enums and `Permissions` (`USER`, `ADMIN`).
  `item` / `encode_items` turn typed values into TLV items. `ErrorContainer`
  is an exception that encodes as a `STATE` + `ERROR` reply.
- `haplink.session`: the ChaCha20-Poly1305 framing used once a `Session`
  (controller id and shared secret) exists. Each frame is a 2-byte
  little-endian length, the ciphertext and a 16-byte tag. The module has
  `SessionCipher` (`encrypt`, `feed`) and `EncryptedStream`, which wraps an
  asyncio reader/writer pair and switches to encryption at the first read
  after `set_session`. It also has the HKDF-SHA512 helpers
  `hkdf_extract_and_expand`, `compute_read_key` and `compute_write_key`, and
  `encrypt_chunk` / `decrypt_chunk`.
- `haplink.storage`: the abstract `Storage` interface and `FileStorage`.
  `FileStorage` keeps the configuration (any JSON value), the
  `ServerPersistence` and one JSON file per `Pairing` in a directory. All of
  its methods are coroutines. The module also has the `BonjourStatusFlag` and
  `BonjourFeatureFlag` enums.
- `haplink.http`: the per-characteristic `Status` codes and `Response`.
  Responses are built with `tlv_response`, `json_response` and
  `status_response`. `event_response` builds the raw `EVENT/1.0` message.
  The module also has the wire objects `ReadResponseObject`, `WriteObject`,
  `WriteResponseObject` and `EventObject`, and the `RequestContext` handed to
  handlers. `json_handler_response` runs a handler and turns an
  `HttpStatusError` into that status and any other error into 500.
  `tlv_handler_response` runs a parse/handle TLV handler and encodes its
  items, or the `ErrorContainer` it raised.
- `haplink.accessory_list`: in-memory `HapAccessory`, `HapService` and
  `HapCharacteristic` with `Perm` permissions, and `AccessoryList`.
  `AccessoryList` adds and removes accessories, reads and writes
  characteristics, keeps the event subscription list up to date and
  serializes the accessory database with `to_json`.
- `haplink.characteristics`: handlers for `GET /accessories`
  (`Accessories`), `GET /characteristics` (`GetCharacteristics`),
  `PUT /characteristics` (`UpdateCharacteristics`) and `POST /identify`
  (`Identify`).
- `haplink.pairings`: the `POST /pairings` handler (`Pairings`) for adding,
  removing and listing controller pairings. Only a paired admin controller
  may use it. It reports changes to the context's event emitter as
  `ControllerPaired` / `ControllerUnpaired`.

## Install

```
pip install haplink
```

For running the tests:

```
pip install "haplink[test]"
pytest
```

## Examples

```python
from haplink import tlv
from haplink.pin import Pin

print(Pin([1, 1, 1, 2, 2, 3, 3, 3]))   # 111-22-333

data = tlv.encode([(tlv.Type.STATE, b"\x01"), (tlv.Type.METHOD, b"\x05")])
assert tlv.decode(data) == {tlv.Type.STATE: b"\x01", tlv.Type.METHOD: b"\x05"}
```

Listing pairings through the pairings handler:

```python
import asyncio
import uuid

from haplink.http import RequestContext, tlv_handler_response
from haplink.pairings import Pairings
from haplink.storage import FileStorage, Pairing
from haplink.tlv import Method, Permissions, Type, decode, encode_items


async def main():
    storage = FileStorage("data")
    admin = Pairing(id=uuid.uuid4(), permissions=Permissions.ADMIN, public_key=bytes(32))
    await storage.save_pairing(admin)

    context = RequestContext(controller_id=admin.id, storage=storage)
    body = encode_items([(Type.STATE, 1), (Type.METHOD, Method.LIST_PAIRINGS)])
    response = await tlv_handler_response(Pairings(), body, context)
    print(response.status, decode(response.body)[Type.STATE])   # 200 OK, b'\x02'


asyncio.run(main())
```

## What it does not do

haplink has the pieces a HAP accessory server is built from, but not the
server itself. It has no TCP listener or HTTP request parsing and routing, no
mDNS/Bonjour announcement and no pair-setup or pair-verify exchange. It also
has no event emitter and no ready-made accessory or service definitions
beyond the generic `HapAccessory`, `HapService` and `HapCharacteristic`.
Wiring these together is left to the application.