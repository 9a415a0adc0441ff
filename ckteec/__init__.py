"""Serialization, token commands and ACL helpers for a PKCS#11 trusted application client."""

__version__ = "0.1.0"
__all__ = ["serialize_ck", "serializer", "ta_abi", "ta_ids", "ta_structs", "teeacl", "token"]