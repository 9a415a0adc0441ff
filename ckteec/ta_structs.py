"""Fixed-layout structures exchanged with the PKCS#11 trusted application.

All integers are 32-bit little-endian. Byte arrays are kept as raw bytes.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import ClassVar

SLOT_DESC_SIZE = 64
SLOT_MANUFACTURER_SIZE = 32
TOKEN_LABEL_SIZE = 32
TOKEN_MANUFACTURER_SIZE = 32
TOKEN_MODEL_SIZE = 16
TOKEN_SERIALNUM_SIZE = 16
TOKEN_UTC_TIME_SIZE = 16

_SLOT_INFO = struct.Struct(f"<{SLOT_DESC_SIZE}s{SLOT_MANUFACTURER_SIZE}sI2B2B")
_TOKEN_INFO = struct.Struct(
    f"<{TOKEN_LABEL_SIZE}s{TOKEN_MANUFACTURER_SIZE}s{TOKEN_MODEL_SIZE}s"
    f"{TOKEN_SERIALNUM_SIZE}s11I4B{TOKEN_UTC_TIME_SIZE}s"
)
_SESSION_INFO = struct.Struct("<4I")
_MECHANISM_INFO = struct.Struct("<3I")
_HEAD = struct.Struct("<2I")


def _check_size(name: str, data: bytes, expected: int) -> None:
    if len(data) != expected:
        raise ValueError(f"{name} needs {expected} bytes, got {len(data)}")


def _unpack_head(layout: struct.Struct, name: str, buffer, offset: int) -> tuple:
    if offset < 0:
        raise ValueError("offset must not be negative")
    try:
        return layout.unpack_from(buffer, offset)
    except struct.error as exc:
        raise ValueError(f"buffer too short for {name} at offset {offset}") from exc


@dataclass(frozen=True)
class Version:
    """A major/minor version pair."""

    major: int
    minor: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"


@dataclass(frozen=True)
class SlotInfo:
    """Slot information as returned by the SLOT_INFO command."""

    SIZE: ClassVar[int] = _SLOT_INFO.size

    slot_description: bytes
    manufacturer_id: bytes
    flags: int
    hardware_version: Version
    firmware_version: Version

    @classmethod
    def from_bytes(cls, data: bytes) -> SlotInfo:
        """Decode a slot information structure of exactly SIZE bytes."""
        _check_size("slot info", data, cls.SIZE)
        desc, manuf, flags, hw_maj, hw_min, fw_maj, fw_min = _SLOT_INFO.unpack(data)
        return cls(
            slot_description=desc,
            manufacturer_id=manuf,
            flags=flags,
            hardware_version=Version(hw_maj, hw_min),
            firmware_version=Version(fw_maj, fw_min),
        )


@dataclass(frozen=True)
class TokenInfo:
    """Token information as returned by the TOKEN_INFO command."""

    SIZE: ClassVar[int] = _TOKEN_INFO.size

    label: bytes
    manufacturer_id: bytes
    model: bytes
    serial_number: bytes
    flags: int
    max_session_count: int
    session_count: int
    max_rw_session_count: int
    rw_session_count: int
    max_pin_len: int
    min_pin_len: int
    total_public_memory: int
    free_public_memory: int
    total_private_memory: int
    free_private_memory: int
    hardware_version: Version
    firmware_version: Version
    utc_time: bytes

    @classmethod
    def from_bytes(cls, data: bytes) -> TokenInfo:
        """Decode a token information structure of exactly SIZE bytes."""
        _check_size("token info", data, cls.SIZE)
        fields = _TOKEN_INFO.unpack(data)
        label, manuf, model, serial = fields[0:4]
        counters = fields[4:15]
        hw_maj, hw_min, fw_maj, fw_min = fields[15:19]
        utc_time = fields[19]
        return cls(
            label,
            manuf,
            model,
            serial,
            *counters,
            hardware_version=Version(hw_maj, hw_min),
            firmware_version=Version(fw_maj, fw_min),
            utc_time=utc_time,
        )


@dataclass(frozen=True)
class SessionInfo:
    """Session information as returned by the SESSION_INFO command."""

    SIZE: ClassVar[int] = _SESSION_INFO.size

    slot_id: int
    state: int
    flags: int
    device_error: int

    @classmethod
    def from_bytes(cls, data: bytes) -> SessionInfo:
        """Decode a session information structure of exactly SIZE bytes."""
        _check_size("session info", data, cls.SIZE)
        return cls(*_SESSION_INFO.unpack(data))


@dataclass(frozen=True)
class MechanismInfo:
    """Mechanism information as returned by the MECHANISM_INFO command."""

    SIZE: ClassVar[int] = _MECHANISM_INFO.size

    min_key_size: int
    max_key_size: int
    flags: int

    @classmethod
    def from_bytes(cls, data: bytes) -> MechanismInfo:
        """Decode a mechanism information structure of exactly SIZE bytes."""
        _check_size("mechanism info", data, cls.SIZE)
        return cls(*_MECHANISM_INFO.unpack(data))


@dataclass(frozen=True)
class ObjectHead:
    """Header of a serialized object: byte size and count of its attributes."""

    SIZE: ClassVar[int] = _HEAD.size

    attrs_size: int
    attrs_count: int

    @classmethod
    def unpack_from(cls, buffer, offset: int = 0) -> ObjectHead:
        """Read a header from ``buffer`` at ``offset``."""
        return cls(*_unpack_head(_HEAD, "object head", buffer, offset))

    def pack(self) -> bytes:
        """Encode the header."""
        return _HEAD.pack(self.attrs_size, self.attrs_count)


@dataclass(frozen=True)
class AttributeHead:
    """Header of a serialized attribute: its identifier and value byte size."""

    SIZE: ClassVar[int] = _HEAD.size

    id: int
    size: int

    @classmethod
    def unpack_from(cls, buffer, offset: int = 0) -> AttributeHead:
        """Read a header from ``buffer`` at ``offset``."""
        return cls(*_unpack_head(_HEAD, "attribute head", buffer, offset))

    def pack(self) -> bytes:
        """Encode the header."""
        return _HEAD.pack(self.id, self.size)