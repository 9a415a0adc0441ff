"""Slot, token and session operations carried over the PKCS#11 TA ABI.

A :class:`TokenClient` builds the control arguments of each command and
hands them to an ``invoke`` callable that talks to the trusted
application. The callable is called as::

    invoke(command, ctrl, data=None, out_size=None) -> (rv, size, output)

``ctrl`` is the serialized control argument (memref 0), ``data`` the
optional input buffer (memref 1) and ``out_size`` the byte capacity of the
output buffer (memref 2), or None when the command has no output. The
callable returns the TA return code, the output byte size reported by the
TA (the required size when the return code is BUFFER_TOO_SMALL) and the
output bytes.
"""

from __future__ import annotations

import dataclasses
import struct
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Union

from ckteec.serialize_ck import CK_UNAVAILABLE_INFORMATION
from ckteec.ta_abi import Pkcs11Error, ReturnCode, SessionFlag, TaCommand, check_rv
from ckteec.ta_ids import (
    PKCS11_CK_UNAVAILABLE_INFORMATION,
    TA_VERSION_MAJOR,
    TA_VERSION_MINOR,
)
from ckteec.ta_structs import (
    MechanismInfo,
    SessionInfo,
    SlotInfo,
    TokenInfo,
    Version,
)

CK_PKCS11_VERSION_MAJOR = 2
CK_PKCS11_VERSION_MINOR = 40

LIB_MANUFACTURER = "Linaro"
LIB_DESCRIPTION = "OP-TEE PKCS11 Cryptoki library"

TOKEN_LABEL_SIZE = 32
_INFO_TEXT_SIZE = 32

_U32 = struct.Struct("<I")
_U32_MASK = 0xFFFFFFFF

InvokeResult = Tuple[int, int, bytes]
Invoke = Callable[..., InvokeResult]
PinLike = Optional[Union[bytes, bytearray, str]]


def maybe_unavailable(value: int) -> int:
    """Map the TA's 32-bit "unavailable information" value to the CK_ULONG one."""
    if value == PKCS11_CK_UNAVAILABLE_INFORMATION:
        return CK_UNAVAILABLE_INFORMATION
    return value


def _blank_padded(text: str, size: int) -> bytes:
    return text.encode("utf-8")[:size].ljust(size, b" ")


@dataclass(frozen=True)
class LibraryInfo:
    """General information about the Cryptoki library."""

    cryptoki_version: Version
    manufacturer_id: bytes
    flags: int
    library_description: bytes
    library_version: Version


def get_info() -> LibraryInfo:
    """Return the library information, text fields padded with blanks."""
    return LibraryInfo(
        cryptoki_version=Version(CK_PKCS11_VERSION_MAJOR, CK_PKCS11_VERSION_MINOR),
        manufacturer_id=_blank_padded(LIB_MANUFACTURER, _INFO_TEXT_SIZE),
        flags=0,
        library_description=_blank_padded(LIB_DESCRIPTION, _INFO_TEXT_SIZE),
        library_version=Version(TA_VERSION_MAJOR, TA_VERSION_MINOR),
    )


def _u32(value: int) -> bytes:
    return _U32.pack(int(value) & _U32_MASK)


def _pin_bytes(pin: PinLike) -> bytes:
    if pin is None:
        return b""
    if isinstance(pin, str):
        return pin.encode("utf-8")
    if isinstance(pin, (bytes, bytearray, memoryview)):
        return bytes(pin)
    raise Pkcs11Error(ReturnCode.ARGUMENTS_BAD)


_UNAVAILABLE_FIELDS = (
    "max_session_count",
    "session_count",
    "max_rw_session_count",
    "rw_session_count",
    "total_public_memory",
    "free_public_memory",
    "total_private_memory",
    "free_private_memory",
)


class TokenClient:
    """Slot, token and session commands of the PKCS#11 trusted application."""

    def __init__(self, invoke: Invoke) -> None:
        self._invoke = invoke

    def _ctrl(self, command: TaCommand, ctrl: bytes, data: bytes | None = None) -> None:
        rv, _size, _out = self._invoke(command, ctrl, data, None)
        check_rv(rv)

    def _fixed_out(self, command: TaCommand, ctrl: bytes, size: int) -> bytes:
        rv, out_size, out = self._invoke(command, ctrl, None, size)
        check_rv(rv)
        if out_size != size or len(out) < size:
            raise Pkcs11Error(ReturnCode.DEVICE_ERROR)
        return bytes(out[:size])

    def _id_list(self, command: TaCommand, ctrl: bytes) -> list[int]:
        capacity = 0
        while True:
            rv, out_size, out = self._invoke(command, ctrl, None, capacity)
            if rv == ReturnCode.BUFFER_TOO_SMALL and out_size > capacity:
                capacity = out_size
                continue
            check_rv(rv)
            count = out_size // _U32.size
            return [v for (v,) in _U32.iter_unpack(bytes(out[: count * _U32.size]))]

    def get_slot_list(self) -> list[int]:
        """Return the IDs of the slots reported by the TA; all are present."""
        return self._id_list(TaCommand.SLOT_LIST, b"")

    def get_slot_info(self, slot: int) -> SlotInfo:
        """Return information on a slot."""
        out = self._fixed_out(TaCommand.SLOT_INFO, _u32(slot), SlotInfo.SIZE)
        return SlotInfo.from_bytes(out)

    def get_token_info(self, slot: int) -> TokenInfo:
        """Return information on the token of a slot."""
        out = self._fixed_out(TaCommand.TOKEN_INFO, _u32(slot), TokenInfo.SIZE)
        info = TokenInfo.from_bytes(out)
        changes = {
            name: maybe_unavailable(getattr(info, name)) for name in _UNAVAILABLE_FIELDS
        }
        return dataclasses.replace(info, **changes)

    def get_mechanism_list(self, slot: int) -> list[int]:
        """Return the mechanism IDs supported by the token of a slot."""
        return self._id_list(TaCommand.MECHANISM_IDS, _u32(slot))

    def get_mechanism_info(self, slot: int, mechanism: int) -> MechanismInfo:
        """Return information on a mechanism of the token of a slot."""
        ctrl = _u32(slot) + _u32(mechanism)
        out = self._fixed_out(TaCommand.MECHANISM_INFO, ctrl, MechanismInfo.SIZE)
        return MechanismInfo.from_bytes(out)

    def open_session(self, slot: int, flags: int) -> int:
        """Open a session on a slot and return its handle."""
        allowed = SessionFlag.RW_SESSION | SessionFlag.SERIAL_SESSION
        if int(flags) & ~int(allowed):
            raise Pkcs11Error(ReturnCode.ARGUMENTS_BAD)
        ctrl = _u32(slot) + _u32(flags)
        out = self._fixed_out(TaCommand.OPEN_SESSION, ctrl, _U32.size)
        (handle,) = _U32.unpack(out)
        return handle

    def close_session(self, session: int) -> None:
        """Close a session."""
        self._ctrl(TaCommand.CLOSE_SESSION, _u32(session))

    def close_all_sessions(self, slot: int) -> None:
        """Close all sessions of the client on a slot."""
        self._ctrl(TaCommand.CLOSE_ALL_SESSIONS, _u32(slot))

    def get_session_info(self, session: int) -> SessionInfo:
        """Return information on a session."""
        out = self._fixed_out(TaCommand.SESSION_INFO, _u32(session), SessionInfo.SIZE)
        return SessionInfo.from_bytes(out)

    def init_token(self, slot: int, pin: PinLike, label: bytes | str) -> None:
        """Initialize the token of a slot with a SO PIN and a 32-byte label."""
        if label is None:
            raise Pkcs11Error(ReturnCode.ARGUMENTS_BAD)
        label_bytes = _pin_bytes(label)
        if len(label_bytes) != TOKEN_LABEL_SIZE:
            raise Pkcs11Error(ReturnCode.ARGUMENTS_BAD)
        pin_bytes = _pin_bytes(pin)
        ctrl = _u32(slot) + _u32(len(pin_bytes)) + label_bytes + pin_bytes
        self._ctrl(TaCommand.INIT_TOKEN, ctrl)

    def init_pin(self, session: int, pin: PinLike) -> None:
        """Initialize the user PIN."""
        pin_bytes = _pin_bytes(pin)
        ctrl = _u32(session) + _u32(len(pin_bytes)) + pin_bytes
        self._ctrl(TaCommand.INIT_PIN, ctrl)

    def set_pin(self, session: int, old_pin: PinLike, new_pin: PinLike) -> None:
        """Change the PIN of the logged-in user."""
        old = _pin_bytes(old_pin)
        new = _pin_bytes(new_pin)
        ctrl = _u32(session) + _u32(len(old)) + _u32(len(new)) + old + new
        self._ctrl(TaCommand.SET_PIN, ctrl)

    def login(self, session: int, user_type: int, pin: PinLike) -> None:
        """Log a user into the token of a session."""
        pin_bytes = _pin_bytes(pin)
        ctrl = _u32(session) + _u32(user_type) + _u32(len(pin_bytes)) + pin_bytes
        self._ctrl(TaCommand.LOGIN, ctrl)

    def logout(self, session: int) -> None:
        """Log out from the token of a session."""
        self._ctrl(TaCommand.LOGOUT, _u32(session))

    def seed_random(self, session: int, seed: bytes | None) -> None:
        """Feed seed material into the token's random generator."""
        if seed is None:
            return
        if not isinstance(seed, (bytes, bytearray, memoryview)):
            raise Pkcs11Error(ReturnCode.ARGUMENTS_BAD)
        self._ctrl(TaCommand.SEED_RANDOM, _u32(session), bytes(seed))

    def generate_random(self, session: int, length: int) -> bytes:
        """Return ``length`` random bytes generated by the token."""
        if length < 0:
            raise Pkcs11Error(ReturnCode.ARGUMENTS_BAD)
        if length == 0:
            return b""
        rv, out_size, out = self._invoke(
            TaCommand.GENERATE_RANDOM, _u32(session), None, length
        )
        check_rv(rv)
        return bytes(out[: min(out_size, length)])