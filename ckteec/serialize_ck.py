"""Serialization of PKCS#11 attributes and mechanism parameters for the TA ABI.

An attribute list becomes an object head followed by one entry per
attribute: a 32-bit identifier, a 32-bit value byte size and the value
bytes. CK_ULONG values always travel as 32-bit little-endian integers.
A mechanism becomes its 32-bit identifier, the 32-bit byte size of its
parameter blob and the blob itself.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Callable, Sequence, Union

from ckteec.serializer import Serializer
from ckteec.ta_abi import Pkcs11Error, ReturnCode
from ckteec.ta_ids import (
    PKCS11_CK_UNAVAILABLE_INFORMATION,
    PKCS11_UNDEFINED_ID,
    AttributeId,
    MechanismId,
    ObjectClass,
    is_ulong_attribute,
)
from ckteec.ta_structs import AttributeHead, ObjectHead

CK_ULONG_SIZE = 8
CK_UNAVAILABLE_INFORMATION = (1 << 64) - 1

_U32 = struct.Struct("<I")
_U32_MASK = 0xFFFFFFFF

_TEMPLATE_ATTRIBUTES = frozenset(
    {
        AttributeId.WRAP_TEMPLATE,
        AttributeId.UNWRAP_TEMPLATE,
        AttributeId.DERIVE_TEMPLATE,
    }
)

AttributeValue = Union[bytes, int, bool, list, None]


@dataclass
class Attribute:
    """One attribute of a template.

    ``value`` holds bytes for plain attributes, an int for CK_ULONG
    attributes, a list of mechanism IDs for ALLOWED_MECHANISMS and a list
    of Attribute for the WRAP/UNWRAP/DERIVE templates. ``value_len`` is the
    caller's buffer size; when unset it is derived from ``value``.
    """

    type: int
    value: AttributeValue = None
    value_len: int | None = None

    @property
    def length(self) -> int:
        """Byte capacity of the value as seen by the caller."""
        if self.value_len is not None:
            return self.value_len
        value = self.value
        if value is None:
            return 0
        if int(self.type) in _TEMPLATE_ATTRIBUTES:
            return len(serialize_ck_attributes(value))
        if isinstance(value, list):
            return CK_ULONG_SIZE * len(value)
        if isinstance(value, bool) and not is_ulong_attribute(int(self.type)):
            return 1
        if isinstance(value, int):
            return CK_ULONG_SIZE
        return len(value)


@dataclass(frozen=True)
class Mechanism:
    """A mechanism identifier with its optional parameter."""

    mechanism: int
    parameter: object = None


@dataclass(frozen=True)
class AesCtrParams:
    """Parameters of AES-CTR: counter bit size and 16-byte counter block."""

    counter_bits: int
    cb: bytes


@dataclass(frozen=True)
class GcmParams:
    """Parameters of AES-GCM."""

    iv: bytes | None
    aad: bytes | None = None
    tag_bits: int = 0
    iv_bits: int = 0


@dataclass(frozen=True)
class KeyDerivationStringData:
    """Data string used by ECB encrypt-data key derivation."""

    data: bytes


@dataclass(frozen=True)
class EcdhDeriveParams:
    """Parameters of ECDH1 (cofactor) derivation."""

    kdf: int
    public_data: bytes
    shared_data: bytes = b""


@dataclass(frozen=True)
class AesCbcEncryptDataParams:
    """Parameters of CBC encrypt-data key derivation."""

    iv: bytes
    data: bytes


@dataclass(frozen=True)
class RsaPkcsPssParams:
    """Parameters of RSA PSS signatures."""

    hash_alg: int
    mgf: int
    salt_len: int


@dataclass(frozen=True)
class RsaPkcsOaepParams:
    """Parameters of RSA OAEP encryption."""

    hash_alg: int
    mgf: int
    source: int
    source_data: bytes = b""


@dataclass(frozen=True)
class RsaAesKeyWrapParams:
    """Parameters of RSA-AES key wrapping."""

    aes_key_bits: int
    oaep_params: RsaPkcsOaepParams


@dataclass(frozen=True)
class EddsaParams:
    """Parameters of EdDSA (RFC 8032)."""

    ph_flag: int
    context_data: bytes = b""


def _fail(rv: ReturnCode) -> Pkcs11Error:
    return Pkcs11Error(rv)


def _encode_value(attr: Attribute) -> bytes:
    """Return the serialized value bytes of one attribute."""
    attr_type = int(attr.type)
    if attr_type & _U32_MASK == PKCS11_UNDEFINED_ID:
        raise _fail(ReturnCode.ATTRIBUTE_TYPE_INVALID)

    value = attr.value
    if attr_type in _TEMPLATE_ATTRIBUTES:
        return serialize_ck_attributes(value or [])

    if attr_type == AttributeId.ALLOWED_MECHANISMS:
        encoded = bytearray()
        for mech in value or []:
            mech32 = int(mech) & _U32_MASK
            if mech32 == PKCS11_UNDEFINED_ID:
                raise _fail(ReturnCode.MECHANISM_INVALID)
            encoded += _U32.pack(mech32)
        return bytes(encoded)

    if value is None:
        return b""

    if is_ulong_attribute(attr_type):
        if not isinstance(value, int) or attr.length < CK_ULONG_SIZE:
            raise _fail(ReturnCode.ATTRIBUTE_VALUE_INVALID)
        return _U32.pack(value & _U32_MASK)

    if isinstance(value, bool):
        return bytes([int(value)])
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    raise _fail(ReturnCode.ATTRIBUTE_VALUE_INVALID)


def serialize_ck_attributes(attributes: Sequence[Attribute]) -> bytes:
    """Serialize an attribute template into an object head plus entries."""
    ser = Serializer(with_head=True)
    for attr in attributes:
        payload = _encode_value(attr)
        ser.add_ck_ulong(int(attr.type))
        ser.add_u32(len(payload))
        ser.add_bytes(payload)
        ser.item_count += 1
    ser.finalize()
    return ser.getvalue()


def _deserialize_one(
    head: AttributeHead, buffer: bytes, start: int, template: Attribute
) -> Attribute:
    attr_type = head.id

    if head.size == PKCS11_CK_UNAVAILABLE_INFORMATION:
        return Attribute(attr_type, None, CK_UNAVAILABLE_INFORMATION)

    if template.value is None and is_ulong_attribute(attr_type):
        return Attribute(attr_type, None, CK_ULONG_SIZE)

    capacity = template.length
    if capacity < head.size:
        return Attribute(attr_type, None, head.size)

    if template.value is None:
        return Attribute(attr_type, None, capacity)

    payload = buffer[start : start + head.size]
    if len(payload) < head.size:
        raise ValueError("serialized attribute value is truncated")

    if is_ulong_attribute(attr_type):
        if capacity < CK_ULONG_SIZE:
            raise _fail(ReturnCode.ATTRIBUTE_VALUE_INVALID)
        if head.size < _U32.size:
            raise ValueError("CK_ULONG attribute carries fewer than 4 bytes")
        (value,) = _U32.unpack_from(payload)
        if (
            attr_type == AttributeId.KEY_GEN_MECHANISM
            and value == PKCS11_CK_UNAVAILABLE_INFORMATION
        ):
            value = CK_UNAVAILABLE_INFORMATION
        return Attribute(attr_type, value, CK_ULONG_SIZE)

    if attr_type in _TEMPLATE_ATTRIBUTES:
        nested = deserialize_ck_attributes(payload, template.value)
        return Attribute(attr_type, nested, capacity)

    if attr_type == AttributeId.ALLOWED_MECHANISMS:
        count = head.size // _U32.size
        mechs = [value for (value,) in _U32.iter_unpack(payload[: count * _U32.size])]
        return Attribute(attr_type, mechs, count * CK_ULONG_SIZE)

    return Attribute(attr_type, payload, head.size)


def deserialize_ck_attributes(
    data: bytes, attributes: Sequence[Attribute]
) -> list[Attribute]:
    """Decode a TA-filled attribute object against the caller's template.

    The template gives the layout of the serialized buffer (it is the one
    sent to the TA) and the caller's buffer capacities. A new list of
    attributes is returned with the values and value lengths found.
    """
    buffer = bytes(data)
    ObjectHead.unpack_from(buffer, 0)
    offset = ObjectHead.SIZE
    result: list[Attribute] = []
    for template in attributes:
        head = AttributeHead.unpack_from(buffer, offset)
        start = offset + AttributeHead.SIZE
        result.append(_deserialize_one(head, buffer, start, template))
        advance = len(_encode_value(template)) if template.value is not None else 0
        offset = start + advance
    return result


def _require(param: object, cls: type, rv: ReturnCode):
    if not isinstance(param, cls):
        raise _fail(rv)
    return param


def _as_bytes(data: object, rv: ReturnCode) -> bytes:
    if data is None:
        return b""
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise _fail(rv)
    return bytes(data)


def _body_no_param(param: object, body: Serializer) -> None:
    if param is not None and param != b"":
        raise _fail(ReturnCode.MECHANISM_PARAM_INVALID)


def _body_aes_iv(param: object, body: Serializer) -> None:
    body.add_bytes(_as_bytes(param, ReturnCode.MECHANISM_PARAM_INVALID))


def _body_aes_ctr(param: object, body: Serializer) -> None:
    params = _require(param, AesCtrParams, ReturnCode.MECHANISM_PARAM_INVALID)
    cb = _as_bytes(params.cb, ReturnCode.MECHANISM_PARAM_INVALID)
    if len(cb) != 16:
        raise _fail(ReturnCode.MECHANISM_PARAM_INVALID)
    body.add_ck_ulong(params.counter_bits)
    body.add_bytes(cb)


def _body_aes_gcm(param: object, body: Serializer) -> None:
    params = _require(param, GcmParams, ReturnCode.MECHANISM_PARAM_INVALID)
    if params.iv is None:
        raise _fail(ReturnCode.MECHANISM_PARAM_INVALID)
    iv = _as_bytes(params.iv, ReturnCode.MECHANISM_PARAM_INVALID)
    aad = _as_bytes(params.aad, ReturnCode.MECHANISM_PARAM_INVALID)
    body.add_ck_ulong(len(iv))
    body.add_bytes(iv)
    body.add_ck_ulong(len(aad))
    body.add_bytes(aad)
    body.add_ck_ulong(params.tag_bits)


def _body_key_deriv_str(param: object, body: Serializer) -> None:
    params = _require(param, KeyDerivationStringData, ReturnCode.MECHANISM_PARAM_INVALID)
    data = _as_bytes(params.data, ReturnCode.MECHANISM_PARAM_INVALID)
    body.add_ck_ulong(len(data))
    body.add_bytes(data)


def _body_ecdh1_derive(param: object, body: Serializer) -> None:
    params = _require(param, EcdhDeriveParams, ReturnCode.MECHANISM_PARAM_INVALID)
    shared = _as_bytes(params.shared_data, ReturnCode.MECHANISM_PARAM_INVALID)
    public = _as_bytes(params.public_data, ReturnCode.MECHANISM_PARAM_INVALID)
    body.add_ck_ulong(params.kdf)
    body.add_u32(len(shared))
    body.add_bytes(shared)
    body.add_u32(len(public))
    body.add_bytes(public)


def _body_aes_cbc_encrypt_data(param: object, body: Serializer) -> None:
    params = _require(param, AesCbcEncryptDataParams, ReturnCode.MECHANISM_PARAM_INVALID)
    iv = _as_bytes(params.iv, ReturnCode.MECHANISM_PARAM_INVALID)
    if len(iv) != 16:
        raise _fail(ReturnCode.MECHANISM_PARAM_INVALID)
    data = _as_bytes(params.data, ReturnCode.MECHANISM_PARAM_INVALID)
    body.add_bytes(iv)
    body.add_ck_ulong(len(data))
    body.add_bytes(data)


def _body_rsa_pss(param: object, body: Serializer) -> None:
    params = _require(param, RsaPkcsPssParams, ReturnCode.ARGUMENTS_BAD)
    body.add_ck_ulong(params.hash_alg)
    body.add_ck_ulong(params.mgf)
    body.add_ck_ulong(params.salt_len)


def _add_oaep(params: RsaPkcsOaepParams, body: Serializer) -> None:
    source_data = _as_bytes(params.source_data, ReturnCode.ARGUMENTS_BAD)
    body.add_ck_ulong(params.hash_alg)
    body.add_ck_ulong(params.mgf)
    body.add_ck_ulong(params.source)
    body.add_ck_ulong(len(source_data))
    body.add_bytes(source_data)


def _body_rsa_oaep(param: object, body: Serializer) -> None:
    _add_oaep(_require(param, RsaPkcsOaepParams, ReturnCode.ARGUMENTS_BAD), body)


def _body_rsa_aes_key_wrap(param: object, body: Serializer) -> None:
    params = _require(param, RsaAesKeyWrapParams, ReturnCode.ARGUMENTS_BAD)
    oaep = _require(params.oaep_params, RsaPkcsOaepParams, ReturnCode.ARGUMENTS_BAD)
    body.add_ck_ulong(params.aes_key_bits)
    _add_oaep(oaep, body)


def _body_eddsa(param: object, body: Serializer) -> None:
    params = _require(param, EddsaParams, ReturnCode.MECHANISM_PARAM_INVALID)
    context = _as_bytes(params.context_data, ReturnCode.MECHANISM_PARAM_INVALID)
    body.add_u32(int(params.ph_flag) & 0xFF)
    body.add_u32(len(context))
    body.add_bytes(context)


def _body_mac_general(param: object, body: Serializer) -> None:
    if isinstance(param, bool) or not isinstance(param, int):
        raise _fail(ReturnCode.ARGUMENTS_BAD)
    body.add_ck_ulong(param)


_NO_PARAM_MECHANISMS = (
    MechanismId.GENERIC_SECRET_KEY_GEN,
    MechanismId.AES_KEY_GEN,
    MechanismId.AES_ECB,
    MechanismId.AES_CMAC,
    MechanismId.MD5,
    MechanismId.SHA_1,
    MechanismId.SHA224,
    MechanismId.SHA256,
    MechanismId.SHA384,
    MechanismId.SHA512,
    MechanismId.MD5_HMAC,
    MechanismId.SHA_1_HMAC,
    MechanismId.SHA224_HMAC,
    MechanismId.SHA256_HMAC,
    MechanismId.SHA384_HMAC,
    MechanismId.SHA512_HMAC,
    MechanismId.EC_KEY_PAIR_GEN,
    MechanismId.ECDSA,
    MechanismId.ECDSA_SHA1,
    MechanismId.ECDSA_SHA224,
    MechanismId.ECDSA_SHA256,
    MechanismId.ECDSA_SHA384,
    MechanismId.ECDSA_SHA512,
    MechanismId.RSA_PKCS_KEY_PAIR_GEN,
    MechanismId.RSA_PKCS,
    MechanismId.MD5_RSA_PKCS,
    MechanismId.SHA1_RSA_PKCS,
    MechanismId.SHA224_RSA_PKCS,
    MechanismId.SHA256_RSA_PKCS,
    MechanismId.SHA384_RSA_PKCS,
    MechanismId.SHA512_RSA_PKCS,
)

# Edwards curve key pair generation (PKCS#11 v3.1), absent from the TA enum.
CKM_EC_EDWARDS_KEY_PAIR_GEN = 0x01055

_BodyWriter = Callable[[object, Serializer], None]

_HANDLERS: dict[int, _BodyWriter] = {
    **{int(mech): _body_no_param for mech in _NO_PARAM_MECHANISMS},
    CKM_EC_EDWARDS_KEY_PAIR_GEN: _body_no_param,
    MechanismId.EDDSA: _body_eddsa,
    MechanismId.AES_CBC: _body_aes_iv,
    MechanismId.AES_CBC_PAD: _body_aes_iv,
    MechanismId.AES_CTS: _body_aes_iv,
    MechanismId.AES_CTR: _body_aes_ctr,
    MechanismId.AES_GCM: _body_aes_gcm,
    MechanismId.AES_ECB_ENCRYPT_DATA: _body_key_deriv_str,
    MechanismId.AES_CBC_ENCRYPT_DATA: _body_aes_cbc_encrypt_data,
    MechanismId.ECDH1_DERIVE: _body_ecdh1_derive,
    MechanismId.ECDH1_COFACTOR_DERIVE: _body_ecdh1_derive,
    MechanismId.RSA_PKCS_PSS: _body_rsa_pss,
    MechanismId.SHA1_RSA_PKCS_PSS: _body_rsa_pss,
    MechanismId.SHA256_RSA_PKCS_PSS: _body_rsa_pss,
    MechanismId.SHA384_RSA_PKCS_PSS: _body_rsa_pss,
    MechanismId.SHA512_RSA_PKCS_PSS: _body_rsa_pss,
    MechanismId.SHA224_RSA_PKCS_PSS: _body_rsa_pss,
    MechanismId.RSA_PKCS_OAEP: _body_rsa_oaep,
    MechanismId.AES_CMAC_GENERAL: _body_mac_general,
    MechanismId.MD5_HMAC_GENERAL: _body_mac_general,
    MechanismId.SHA_1_HMAC_GENERAL: _body_mac_general,
    MechanismId.SHA224_HMAC_GENERAL: _body_mac_general,
    MechanismId.SHA256_HMAC_GENERAL: _body_mac_general,
    MechanismId.SHA384_HMAC_GENERAL: _body_mac_general,
    MechanismId.SHA512_HMAC_GENERAL: _body_mac_general,
    MechanismId.RSA_AES_KEY_WRAP: _body_rsa_aes_key_wrap,
}


def serialize_ck_mecha_params(mechanism: Mechanism) -> bytes:
    """Serialize a mechanism as [type][param byte size][param blob]."""
    mech_type = int(mechanism.mechanism)
    if mech_type < 0 or mech_type & _U32_MASK == PKCS11_UNDEFINED_ID:
        raise _fail(ReturnCode.MECHANISM_INVALID)

    writer = _HANDLERS.get(mech_type)
    if writer is None:
        raise _fail(ReturnCode.MECHANISM_INVALID)

    body = Serializer(with_head=False)
    writer(mechanism.parameter, body)
    blob = body.getvalue()

    ser = Serializer(with_head=False)
    ser.object_class = ObjectClass.MECHANISM
    ser.object_type = mech_type & _U32_MASK
    ser.add_ck_ulong(mech_type)
    ser.add_u32(len(blob))
    ser.add_bytes(blob)
    return ser.getvalue()