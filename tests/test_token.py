import struct

import pytest

from ckteec.serialize_ck import CK_UNAVAILABLE_INFORMATION
from ckteec.ta_abi import Pkcs11Error, ReturnCode, SessionFlag, TaCommand, UserType
from ckteec.ta_structs import MechanismInfo, SessionInfo, SlotInfo, TokenInfo, Version
from ckteec.token import TokenClient, get_info, maybe_unavailable


class FakeTa:
    def __init__(self):
        self.calls = []
        self.handlers = {}

    def __call__(self, command, ctrl, data=None, out_size=None):
        self.calls.append((command, ctrl, data, out_size))
        return self.handlers[command](ctrl, data, out_size)


def _list_handler(ids):
    blob = b"".join(struct.pack("<I", i) for i in ids)

    def handler(ctrl, data, out_size):
        if out_size < len(blob):
            return ReturnCode.BUFFER_TOO_SMALL, len(blob), b""
        return ReturnCode.OK, len(blob), blob

    return handler


def _ok(ctrl, data, out_size):
    return ReturnCode.OK, 0, b""


@pytest.fixture
def ta():
    return FakeTa()


@pytest.fixture
def client(ta):
    return TokenClient(ta)


def test_get_info_values():
    info = get_info()
    assert info.cryptoki_version == Version(2, 40)
    assert info.manufacturer_id == b"Linaro" + b" " * 26
    assert info.library_description.rstrip(b" ") == b"OP-TEE PKCS11 Cryptoki library"
    assert len(info.library_description) == 32
    assert info.flags == 0
    assert info.library_version == Version(0, 1)


def test_maybe_unavailable():
    assert maybe_unavailable(0xFFFFFFFF) == CK_UNAVAILABLE_INFORMATION
    assert maybe_unavailable(7) == 7


def test_slot_list_retries_on_small_buffer(ta, client):
    ta.handlers[TaCommand.SLOT_LIST] = _list_handler([0, 3, 9])
    assert client.get_slot_list() == [0, 3, 9]
    assert ta.calls[0][3] == 0
    assert ta.calls[-1][3] == 12


def test_mechanism_list_sends_slot(ta, client):
    ta.handlers[TaCommand.MECHANISM_IDS] = _list_handler([0x1081, 0x1082])
    assert client.get_mechanism_list(2) == [0x1081, 0x1082]
    assert ta.calls[0][1] == b"\x02\x00\x00\x00"


def test_list_error_raises(ta, client):
    ta.handlers[TaCommand.SLOT_LIST] = lambda c, d, s: (ReturnCode.GENERAL_ERROR, 0, b"")
    with pytest.raises(Pkcs11Error) as exc:
        client.get_slot_list()
    assert exc.value.rv == ReturnCode.GENERAL_ERROR


def test_slot_info(ta, client):
    raw = b"desc".ljust(64, b" ") + b"maker".ljust(32, b" ") + struct.pack("<I", 1) + bytes([1, 2, 3, 4])
    ta.handlers[TaCommand.SLOT_INFO] = lambda c, d, s: (ReturnCode.OK, len(raw), raw)
    info = client.get_slot_info(0)
    assert info == SlotInfo.from_bytes(raw)
    assert info.hardware_version == Version(1, 2)
    assert ta.calls[0][3] == SlotInfo.SIZE


def test_fixed_out_size_mismatch_is_device_error(ta, client):
    ta.handlers[TaCommand.SLOT_INFO] = lambda c, d, s: (ReturnCode.OK, 3, b"abc")
    with pytest.raises(Pkcs11Error) as exc:
        client.get_slot_info(0)
    assert exc.value.rv == ReturnCode.DEVICE_ERROR


def test_mechanism_info(ta, client):
    raw = struct.pack("<3I", 16, 32, 0x300)
    ta.handlers[TaCommand.MECHANISM_INFO] = lambda c, d, s: (ReturnCode.OK, 12, raw)
    info = client.get_mechanism_info(1, 0x1082)
    assert info == MechanismInfo(16, 32, 0x300)
    assert ta.calls[0][1] == struct.pack("<II", 1, 0x1082)


def test_open_session(ta, client):
    ta.handlers[TaCommand.OPEN_SESSION] = lambda c, d, s: (ReturnCode.OK, 4, struct.pack("<I", 42))
    flags = SessionFlag.RW_SESSION | SessionFlag.SERIAL_SESSION
    assert client.open_session(1, flags) == 42
    assert ta.calls[0][1] == b"\x01\x00\x00\x00\x06\x00\x00\x00"


def test_open_session_bad_flags(ta, client):
    with pytest.raises(Pkcs11Error) as exc:
        client.open_session(0, 1)
    assert exc.value.rv == ReturnCode.ARGUMENTS_BAD
    assert ta.calls == []


def test_close_session_and_all(ta, client):
    ta.handlers[TaCommand.CLOSE_SESSION] = _ok
    ta.handlers[TaCommand.CLOSE_ALL_SESSIONS] = _ok
    assert client.close_session(7) is None
    assert client.close_all_sessions(3) is None
    assert [(c[0], c[1]) for c in ta.calls] == [
        (TaCommand.CLOSE_SESSION, struct.pack("<I", 7)),
        (TaCommand.CLOSE_ALL_SESSIONS, struct.pack("<I", 3)),
    ]


def test_close_session_error(ta, client):
    ta.handlers[TaCommand.CLOSE_SESSION] = lambda c, d, s: (ReturnCode.SESSION_HANDLE_INVALID, 0, b"")
    with pytest.raises(Pkcs11Error) as exc:
        client.close_session(1)
    assert exc.value.rv == ReturnCode.SESSION_HANDLE_INVALID


def test_session_info(ta, client):
    raw = struct.pack("<4I", 0, 3, 6, 0)
    ta.handlers[TaCommand.SESSION_INFO] = lambda c, d, s: (ReturnCode.OK, 16, raw)
    assert client.get_session_info(5) == SessionInfo(0, 3, 6, 0)


def test_init_token_layout(ta, client):
    ta.handlers[TaCommand.INIT_TOKEN] = _ok
    label = b"my token".ljust(32, b" ")
    assert client.init_token(0, "1234", label) is None
    assert ta.calls[0][1] == struct.pack("<II", 0, 4) + label + b"1234"


def test_init_token_rejects_bad_label(client):
    with pytest.raises(Pkcs11Error) as exc:
        client.init_token(0, b"1234", b"short")
    assert exc.value.rv == ReturnCode.ARGUMENTS_BAD
    with pytest.raises(Pkcs11Error):
        client.init_token(0, b"1234", None)


def test_init_pin_set_pin_login_logout(ta, client):
    for cmd in (TaCommand.INIT_PIN, TaCommand.SET_PIN, TaCommand.LOGIN, TaCommand.LOGOUT):
        ta.handlers[cmd] = _ok
    results = [
        client.init_pin(9, b"1111"),
        client.set_pin(9, b"1111", b"22"),
        client.login(9, UserType.USER, b"22"),
        client.logout(9),
    ]
    assert results == [None, None, None, None]
    ctrls = [c[1] for c in ta.calls]
    assert ctrls[0] == struct.pack("<II", 9, 4) + b"1111"
    assert ctrls[1] == struct.pack("<III", 9, 4, 2) + b"111122"
    assert ctrls[2] == struct.pack("<III", 9, 1, 2) + b"22"
    assert ctrls[3] == struct.pack("<I", 9)


def test_login_failure(ta, client):
    ta.handlers[TaCommand.LOGIN] = lambda c, d, s: (ReturnCode.PIN_INCORRECT, 0, b"")
    with pytest.raises(Pkcs11Error) as exc:
        client.login(1, UserType.SO, None)
    assert exc.value.rv == ReturnCode.PIN_INCORRECT
    assert ta.calls[0][1] == struct.pack("<III", 1, 0, 0)


def test_seed_random(ta, client):
    ta.handlers[TaCommand.SEED_RANDOM] = _ok
    assert client.seed_random(2, None) is None
    assert ta.calls == []
    assert client.seed_random(2, b"seed") is None
    assert ta.calls[0][2] == b"seed"


def test_seed_random_error(ta, client):
    ta.handlers[TaCommand.SEED_RANDOM] = lambda c, d, s: (ReturnCode.RANDOM_SEED_NOT_SUPPORTED, 0, b"")
    with pytest.raises(Pkcs11Error) as exc:
        client.seed_random(2, b"seed")
    assert exc.value.rv == ReturnCode.RANDOM_SEED_NOT_SUPPORTED


def test_generate_random(ta, client):
    ta.handlers[TaCommand.GENERATE_RANDOM] = lambda c, d, s: (ReturnCode.OK, s, b"\xaa" * s)
    assert client.generate_random(1, 5) == b"\xaa" * 5
    assert client.generate_random(1, 0) == b""
    assert len(ta.calls) == 1
    with pytest.raises(Pkcs11Error):
        client.generate_random(1, -1)