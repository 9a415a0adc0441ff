# ckteec

Client-side helpers for a PKCS#11 trusted application (TA) that runs in a
trusted execution environment. The package builds and parses the byte
layouts of the TA command interface. It also provides the slot, token and
session commands on top of a transport that you supply. It has no
dependencies outside the standard library.

## Installation

```
pip install .
```

To install the test dependencies and run the tests:

```
pip install .[test]
pytest
```

## Modules

- `ckteec.ta_ids`: identifiers used on the wire. These are `AttributeId`,
  `ObjectClass`, `KeyType`, `CertificateType`, `CertificateCategory`,
  `MechanismId` and `MgfId`, all `IntEnum`s. `is_ulong_attribute(id)`
  returns True for the attributes whose value is a CK_ULONG that travels
  as a 32-bit integer.
- `ckteec.ta_abi`: the TA commands are in `TaCommand` and the return
  codes in `ReturnCode`. It also holds `UserType`, `SessionState` and the
  flag sets `SlotFlag`, `TokenFlag`, `SessionFlag` and `MechanismFlag`.
  `check_rv(rv)` raises `Pkcs11Error` for any code other than
  `ReturnCode.OK`. The `rv` attribute of the error holds the code.
- `ckteec.ta_structs`: frozen dataclasses for the fixed-layout records
  that the TA returns. These are `SlotInfo`, `TokenInfo`, `SessionInfo` and
  `MechanismInfo`, each with `from_bytes()` and a `SIZE`, plus `Version`.
  The module also has the 8-byte headers `ObjectHead` and `AttributeHead`,
  with `unpack_from()` and `pack()`. All integers are 32-bit
  little-endian.
- `ckteec.serializer`: `Serializer` is an append-only byte builder.
  - It has `add_bytes()`, `add_u32()` and `add_ck_ulong()`.
  - With `with_head=True` the buffer starts with an object head.
    `finalize()` fills that head with the byte size and `item_count`.
  - `getvalue()` returns the bytes.
- `ckteec.serialize_ck`: converts between PKCS#11 attributes and the
  serialized form that the TA uses.
  - `serialize_ck_attributes(attributes)` turns a list of `Attribute` into
    an object head followed by `[id][size][value]` entries.
  - `deserialize_ck_attributes(data, template)` decodes a TA-filled buffer
    against the template that was sent. It returns new `Attribute`s with
    the values and lengths that were found.
  - `serialize_ck_mecha_params(mechanism)` encodes a `Mechanism` as
    `[type][param size][param blob]`.
  - The parameter types are `AesCtrParams`, `GcmParams`,
    `KeyDerivationStringData`, `EcdhDeriveParams`,
    `AesCbcEncryptDataParams`, `RsaPkcsPssParams`, `RsaPkcsOaepParams`,
    `RsaAesKeyWrapParams` and `EddsaParams`.
  - An unknown mechanism or a bad parameter raises `Pkcs11Error`.
- `ckteec.token`: `get_info()` returns the `LibraryInfo` of the library.
  Its text fields are padded with blanks. `TokenClient` wraps these
  commands:
  - `get_slot_list`, `get_slot_info` and `get_token_info`
  - `get_mechanism_list` and `get_mechanism_info`
  - `open_session`, `close_session`, `close_all_sessions` and
    `get_session_info`
  - `init_token`, `init_pin`, `set_pin`, `login` and `logout`
  - `seed_random` and `generate_random`

  `maybe_unavailable()` maps the TA's 32-bit "unavailable" value to the
  64-bit one.
- `ckteec.teeacl`: group helpers for POSIX systems.
  - `gid_from_name()` returns a group id and raises `LookupError` for an
    unknown group name.
  - `group_acl_uuid(gid)` returns the `group:<uuid>` login string.
  - `user_is_member_of()` and `current_user_is_member_of()` return a
    `GroupMembership`.

## The transport

`TokenClient(invoke)` calls `invoke` like this:

```python
rv, size, output = invoke(command, ctrl, data, out_size)
```

- `command` is a `TaCommand`.
- `ctrl` is the control argument as bytes.
- `data` is an optional input buffer, or None.
- `out_size` is the capacity of the output buffer, or None when the
  command has no output.

The callable returns three values:

- `rv` is the TA return code.
- `size` is the output size reported by the TA. When `rv` is
  `BUFFER_TOO_SMALL`, it is the required size.
- `output` is the output bytes.

## Examples

Serialize an attribute template:

```python
from ckteec.serialize_ck import Attribute, serialize_ck_attributes
from ckteec.ta_ids import AttributeId, ObjectClass

blob = serialize_ck_attributes([
    Attribute(AttributeId.CLASS, ObjectClass.SECRET_KEY),
    Attribute(AttributeId.LABEL, b"my-key"),
])
```

Build a group login string:

```python
from ckteec.teeacl import group_acl_uuid

print(group_acl_uuid(1000))   # "group:<uuid>"
```

## What the package does not do

- It does not open a connection to a TEE. You must supply the `invoke`
  callable that passes commands to the TA.
- `TokenClient` covers only slot, token, session, PIN, login and random
  number commands. It has no methods for the object, key, encryption,
  signature or digest commands listed in `TaCommand`.
- There is no Cryptoki `C_*` function layer and no command-line tool.