"""Commands, return codes and flag values of the PKCS#11 trusted application ABI."""

from __future__ import annotations

from enum import IntEnum, IntFlag


class TaCommand(IntEnum):
    """Command identifiers understood by the PKCS#11 trusted application."""

    PING = 0
    SLOT_LIST = 1
    SLOT_INFO = 2
    TOKEN_INFO = 3
    MECHANISM_IDS = 4
    MECHANISM_INFO = 5
    OPEN_SESSION = 6
    CLOSE_SESSION = 7
    CLOSE_ALL_SESSIONS = 8
    SESSION_INFO = 9
    INIT_TOKEN = 10
    INIT_PIN = 11
    SET_PIN = 12
    LOGIN = 13
    LOGOUT = 14
    CREATE_OBJECT = 15
    DESTROY_OBJECT = 16
    ENCRYPT_INIT = 17
    DECRYPT_INIT = 18
    ENCRYPT_UPDATE = 19
    DECRYPT_UPDATE = 20
    ENCRYPT_FINAL = 21
    DECRYPT_FINAL = 22
    ENCRYPT_ONESHOT = 23
    DECRYPT_ONESHOT = 24
    SIGN_INIT = 25
    VERIFY_INIT = 26
    SIGN_UPDATE = 27
    VERIFY_UPDATE = 28
    SIGN_FINAL = 29
    VERIFY_FINAL = 30
    SIGN_ONESHOT = 31
    VERIFY_ONESHOT = 32
    GENERATE_KEY = 33
    FIND_OBJECTS_INIT = 34
    FIND_OBJECTS = 35
    FIND_OBJECTS_FINAL = 36
    GET_OBJECT_SIZE = 37
    GET_ATTRIBUTE_VALUE = 38
    SET_ATTRIBUTE_VALUE = 39
    COPY_OBJECT = 40
    SEED_RANDOM = 41
    GENERATE_RANDOM = 42
    DERIVE_KEY = 43
    RELEASE_ACTIVE_PROCESSING = 44
    DIGEST_INIT = 45
    DIGEST_KEY = 46
    DIGEST_UPDATE = 47
    DIGEST_FINAL = 48
    DIGEST_ONESHOT = 49
    GENERATE_KEY_PAIR = 50
    WRAP_KEY = 51
    UNWRAP_KEY = 52


class ReturnCode(IntEnum):
    """Return codes of trusted application commands (mirroring CKR_ values)."""

    OK = 0
    CANCEL = 0x0001
    SLOT_ID_INVALID = 0x0003
    GENERAL_ERROR = 0x0005
    FUNCTION_FAILED = 0x0006
    ARGUMENTS_BAD = 0x0007
    ATTRIBUTE_READ_ONLY = 0x0010
    ATTRIBUTE_SENSITIVE = 0x0011
    ATTRIBUTE_TYPE_INVALID = 0x0012
    ATTRIBUTE_VALUE_INVALID = 0x0013
    ACTION_PROHIBITED = 0x001B
    DATA_INVALID = 0x0020
    DATA_LEN_RANGE = 0x0021
    DEVICE_ERROR = 0x0030
    DEVICE_MEMORY = 0x0031
    DEVICE_REMOVED = 0x0032
    ENCRYPTED_DATA_INVALID = 0x0040
    ENCRYPTED_DATA_LEN_RANGE = 0x0041
    KEY_HANDLE_INVALID = 0x0060
    KEY_SIZE_RANGE = 0x0062
    KEY_TYPE_INCONSISTENT = 0x0063
    KEY_INDIGESTIBLE = 0x0067
    KEY_FUNCTION_NOT_PERMITTED = 0x0068
    KEY_NOT_WRAPPABLE = 0x0069
    KEY_UNEXTRACTABLE = 0x006A
    MECHANISM_INVALID = 0x0070
    MECHANISM_PARAM_INVALID = 0x0071
    OBJECT_HANDLE_INVALID = 0x0082
    OPERATION_ACTIVE = 0x0090
    OPERATION_NOT_INITIALIZED = 0x0091
    PIN_INCORRECT = 0x00A0
    PIN_INVALID = 0x00A1
    PIN_LEN_RANGE = 0x00A2
    PIN_EXPIRED = 0x00A3
    PIN_LOCKED = 0x00A4
    SESSION_CLOSED = 0x00B0
    SESSION_COUNT = 0x00B1
    SESSION_HANDLE_INVALID = 0x00B3
    SESSION_PARALLEL_NOT_SUPPORTED = 0x00B4
    SESSION_READ_ONLY = 0x00B5
    SESSION_EXISTS = 0x00B6
    SESSION_READ_ONLY_EXISTS = 0x00B7
    SESSION_READ_WRITE_SO_EXISTS = 0x00B8
    SIGNATURE_INVALID = 0x00C0
    SIGNATURE_LEN_RANGE = 0x00C1
    TEMPLATE_INCOMPLETE = 0x00D0
    TEMPLATE_INCONSISTENT = 0x00D1
    TOKEN_NOT_PRESENT = 0x00E0
    TOKEN_NOT_RECOGNIZED = 0x00E1
    TOKEN_WRITE_PROTECTED = 0x00E2
    UNWRAPPING_KEY_HANDLE_INVALID = 0x00F0
    UNWRAPPING_KEY_SIZE_RANGE = 0x00F1
    UNWRAPPING_KEY_TYPE_INCONSISTENT = 0x00F2
    USER_ALREADY_LOGGED_IN = 0x0100
    USER_NOT_LOGGED_IN = 0x0101
    USER_PIN_NOT_INITIALIZED = 0x0102
    USER_TYPE_INVALID = 0x0103
    USER_ANOTHER_ALREADY_LOGGED_IN = 0x0104
    USER_TOO_MANY_TYPES = 0x0105
    WRAPPED_KEY_INVALID = 0x0110
    WRAPPED_KEY_LEN_RANGE = 0x0112
    WRAPPING_KEY_HANDLE_INVALID = 0x0113
    WRAPPING_KEY_SIZE_RANGE = 0x0114
    WRAPPING_KEY_TYPE_INCONSISTENT = 0x0115
    RANDOM_SEED_NOT_SUPPORTED = 0x0120
    RANDOM_NO_RNG = 0x0121
    DOMAIN_PARAMS_INVALID = 0x0130
    CURVE_NOT_SUPPORTED = 0x0140
    BUFFER_TOO_SMALL = 0x0150
    SAVED_STATE_INVALID = 0x0160
    INFORMATION_SENSITIVE = 0x0170
    STATE_UNSAVEABLE = 0x0180
    PIN_TOO_WEAK = 0x01B8
    PUBLIC_KEY_INVALID = 0x01B9
    FUNCTION_REJECTED = 0x0200
    # Vendor specific codes, not returned to the client.
    NOT_FOUND = 0x80000000
    NOT_IMPLEMENTED = 0x80000001


class Pkcs11Error(Exception):
    """Raised when a PKCS#11 operation ends with a non-OK return code."""

    def __init__(self, rv: int, message: str | None = None) -> None:
        try:
            code: int = ReturnCode(rv)
        except ValueError:
            code = int(rv)
        self.rv = code
        if message is None:
            name = code.name if isinstance(code, ReturnCode) else "UNKNOWN"
            message = f"{name} (0x{int(code):08x})"
        self.message = message
        super().__init__(message)


def check_rv(rv: int) -> None:
    """Raise Pkcs11Error unless ``rv`` is the OK return code."""
    if int(rv) != ReturnCode.OK:
        raise Pkcs11Error(rv)


class UserType(IntEnum):
    """User identities for login."""

    SO = 0x000
    USER = 0x001
    CONTEXT_SPECIFIC = 0x002


class SessionState(IntEnum):
    """Session states reported in session information."""

    RO_PUBLIC_SESSION = 0
    RO_USER_FUNCTIONS = 1
    RW_PUBLIC_SESSION = 2
    RW_USER_FUNCTIONS = 3
    RW_SO_FUNCTIONS = 4


class SlotFlag(IntFlag):
    """Slot information flags."""

    TOKEN_PRESENT = 1 << 0
    REMOVABLE_DEVICE = 1 << 1
    HW_SLOT = 1 << 2


class TokenFlag(IntFlag):
    """Token information flags."""

    RNG = 1 << 0
    WRITE_PROTECTED = 1 << 1
    LOGIN_REQUIRED = 1 << 2
    USER_PIN_INITIALIZED = 1 << 3
    RESTORE_KEY_NOT_NEEDED = 1 << 5
    CLOCK_ON_TOKEN = 1 << 6
    PROTECTED_AUTHENTICATION_PATH = 1 << 8
    DUAL_CRYPTO_OPERATIONS = 1 << 9
    TOKEN_INITIALIZED = 1 << 10
    SECONDARY_AUTHENTICATION = 1 << 11
    USER_PIN_COUNT_LOW = 1 << 16
    USER_PIN_FINAL_TRY = 1 << 17
    USER_PIN_LOCKED = 1 << 18
    USER_PIN_TO_BE_CHANGED = 1 << 19
    SO_PIN_COUNT_LOW = 1 << 20
    SO_PIN_FINAL_TRY = 1 << 21
    SO_PIN_LOCKED = 1 << 22
    SO_PIN_TO_BE_CHANGED = 1 << 23
    ERROR_STATE = 1 << 24


class SessionFlag(IntFlag):
    """Session flags for opening sessions and session information."""

    RW_SESSION = 1 << 1
    SERIAL_SESSION = 1 << 2


class MechanismFlag(IntFlag):
    """Mechanism information flags."""

    HW = 1 << 0
    ENCRYPT = 1 << 8
    DECRYPT = 1 << 9
    DIGEST = 1 << 10
    SIGN = 1 << 11
    SIGN_RECOVER = 1 << 12
    VERIFY = 1 << 13
    VERIFY_RECOVER = 1 << 14
    GENERATE = 1 << 15
    GENERATE_KEY_PAIR = 1 << 16
    WRAP = 1 << 17
    UNWRAP = 1 << 18
    DERIVE = 1 << 19
    EC_F_P = 1 << 20
    EC_F_2M = 1 << 21
    EC_ECPARAMETERS = 1 << 22
    EC_NAMEDCURVE = 1 << 23
    EC_UNCOMPRESS = 1 << 24
    EC_COMPRESS = 1 << 25


# Keywords of the protected authentication path PIN syntax.
AUTH_TEE_IDENTITY_PUBLIC = "public"
AUTH_TEE_IDENTITY_USER = "user:"
AUTH_TEE_IDENTITY_GROUP = "group:"