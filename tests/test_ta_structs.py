import struct

import pytest

from ckteec.ta_structs import (
    AttributeHead,
    MechanismInfo,
    ObjectHead,
    SessionInfo,
    SlotInfo,
    TokenInfo,
    Version,
)


def _slot_bytes():
    desc = b"slot".ljust(64, b" ")
    manuf = b"maker".ljust(32, b" ")
    return struct.pack("<64s32sI4B", desc, manuf, 5, 1, 2, 3, 4)


def test_slot_info_decodes_fields():
    info = SlotInfo.from_bytes(_slot_bytes())
    assert info.slot_description == b"slot".ljust(64, b" ")
    assert info.manufacturer_id == b"maker".ljust(32, b" ")
    assert info.flags == 5
    assert info.hardware_version == Version(1, 2)
    assert info.firmware_version == Version(3, 4)


def test_slot_info_size_matches_layout():
    assert SlotInfo.SIZE == len(_slot_bytes())
    info = SlotInfo.from_bytes(bytes(SlotInfo.SIZE))
    assert info.flags == 0
    assert info.slot_description == bytes(64)
    assert info.firmware_version == Version(0, 0)


def test_slot_info_wrong_size_raises():
    with pytest.raises(ValueError):
        SlotInfo.from_bytes(_slot_bytes()[:-1])


def test_token_info_decodes_fields():
    counters = list(range(10, 21))
    data = struct.pack(
        "<32s32s16s16s11I4B16s",
        b"label".ljust(32, b" "),
        b"maker".ljust(32, b" "),
        b"model".ljust(16, b" "),
        b"serial".ljust(16, b" "),
        *counters,
        7,
        8,
        9,
        6,
        b"time".ljust(16, b"0"),
    )
    info = TokenInfo.from_bytes(data)
    assert TokenInfo.SIZE == len(data)
    assert info.label.rstrip() == b"label"
    assert info.serial_number.rstrip() == b"serial"
    assert info.flags == 10
    assert info.max_session_count == 11
    assert info.free_private_memory == 20
    assert info.hardware_version == Version(7, 8)
    assert info.firmware_version == Version(9, 6)
    assert info.utc_time == b"time".ljust(16, b"0")


def test_token_info_wrong_size_raises():
    with pytest.raises(ValueError):
        TokenInfo.from_bytes(b"\x00" * 10)


def test_session_info_decodes():
    info = SessionInfo.from_bytes(struct.pack("<4I", 1, 3, 6, 0))
    assert info == SessionInfo(slot_id=1, state=3, flags=6, device_error=0)


def test_mechanism_info_decodes():
    info = MechanismInfo.from_bytes(struct.pack("<3I", 128, 256, 0x300))
    assert info == MechanismInfo(min_key_size=128, max_key_size=256, flags=0x300)


def test_mechanism_info_wrong_size_raises():
    with pytest.raises(ValueError):
        MechanismInfo.from_bytes(struct.pack("<4I", 0, 0, 0, 0))


def test_object_head_pack_is_little_endian():
    assert ObjectHead(3, 1).pack() == b"\x03\x00\x00\x00\x01\x00\x00\x00"


def test_object_head_round_trip_with_offset():
    buffer = b"\xaa\xbb" + ObjectHead(100, 7).pack() + b"tail"
    assert ObjectHead.unpack_from(buffer, 2) == ObjectHead(100, 7)


def test_attribute_head_round_trip():
    head = AttributeHead(0x40000600, 12)
    assert AttributeHead.unpack_from(head.pack()) == head
    assert len(head.pack()) == AttributeHead.SIZE


def test_attribute_head_short_buffer_raises():
    with pytest.raises(ValueError):
        AttributeHead.unpack_from(b"\x00" * 6)


def test_unpack_negative_offset_raises():
    with pytest.raises(ValueError):
        ObjectHead.unpack_from(ObjectHead(1, 1).pack(), -1)