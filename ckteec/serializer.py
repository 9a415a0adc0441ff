"""Growable byte buffer for building serialized trusted application arguments."""

from __future__ import annotations

import struct

from ckteec.ta_structs import ObjectHead

_U32 = struct.Struct("<I")
_U32_MASK = 0xFFFFFFFF


class Serializer:
    """Accumulates serialized data, optionally behind an object head.

    With ``with_head`` the buffer starts with a zeroed object head that
    ``finalize`` fills with the byte size and count of what follows.
    """

    def __init__(self, with_head: bool = True) -> None:
        self.with_head = with_head
        self.item_count = 0
        self.object_class = 0
        self.object_type = 0
        self._buffer = bytearray()
        if with_head:
            self._buffer += ObjectHead(0, 0).pack()

    @property
    def size(self) -> int:
        """Current byte size of the buffer."""
        return len(self._buffer)

    def __len__(self) -> int:
        return len(self._buffer)

    def add_bytes(self, data: bytes) -> None:
        """Append raw bytes."""
        self._buffer += data

    def add_u32(self, value: int) -> None:
        """Append an unsigned 32-bit value."""
        if not 0 <= value <= _U32_MASK:
            raise ValueError(f"value {value} does not fit in 32 bits")
        self._buffer += _U32.pack(value)

    def add_ck_ulong(self, value: int) -> None:
        """Append a CK_ULONG value, carried as its low 32 bits."""
        if value < 0:
            raise ValueError("CK_ULONG value must not be negative")
        self._buffer += _U32.pack(value & _U32_MASK)

    def finalize(self) -> None:
        """Write the object head from the current size and item count."""
        if not self.with_head:
            raise ValueError("serializer has no object head to finalize")
        head = ObjectHead(self.size - ObjectHead.SIZE, self.item_count)
        self._buffer[: ObjectHead.SIZE] = head.pack()

    def getvalue(self) -> bytes:
        """Return the serialized bytes."""
        return bytes(self._buffer)