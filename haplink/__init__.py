"""Building blocks for HomeKit Accessory Protocol servers: TLV8, setup pins,
encrypted sessions, file storage, accessory lists and HTTP handlers."""

__version__ = "0.1.0"

__all__ = [
    "accessory_list",
    "characteristics",
    "http",
    "pairings",
    "pin",
    "session",
    "storage",
    "tlv",
]