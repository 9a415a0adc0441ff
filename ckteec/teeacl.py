"""Access-control helpers for group based TEE login methods."""

from __future__ import annotations

import grp
import os
import pwd
import uuid
from enum import IntEnum

KERNEL_NAMESPACE = uuid.UUID("58ac9ca0-2086-4683-a1b8-ec4bc08e01b6")

TEEACL_L_UUID = 48

_GROUP_PREFIX = "group:"


class GroupMembership(IntEnum):
    """Outcome of a group membership check."""

    NOT_MEMBER = 0
    IS_MEMBER = 1
    E_MEMORY = 2
    E_GROUPLIST = 3


def gid_from_name(group_name: str) -> int:
    """Return the group id of ``group_name``; raise LookupError if unknown."""
    try:
        return grp.getgrnam(group_name).gr_gid
    except KeyError as exc:
        raise LookupError(f"no group named {group_name!r}") from exc


def group_acl_uuid(group: int) -> str:
    """Return the ``group:<uuid>`` login string for a group id."""
    if group < 0:
        raise ValueError("group id must not be negative")
    name = f"gid={group:x}"
    if len(name) >= TEEACL_L_UUID:
        raise ValueError("group id too large")
    return _GROUP_PREFIX + str(uuid.uuid5(KERNEL_NAMESPACE, name))


def user_is_member_of(user: str, group: int) -> GroupMembership:
    """Check whether ``user`` is a member of ``group``."""
    try:
        groups = os.getgrouplist(user, group)
    except MemoryError:
        return GroupMembership.E_MEMORY
    except OSError:
        return GroupMembership.E_GROUPLIST
    if group in groups:
        return GroupMembership.IS_MEMBER
    return GroupMembership.NOT_MEMBER


def _effective_user_name() -> str:
    try:
        return pwd.getpwuid(os.geteuid()).pw_name
    except KeyError:
        return ""


def current_user_is_member_of(group: int) -> GroupMembership:
    """Check whether the effective user of the process is in ``group``."""
    return user_is_member_of(_effective_user_name(), group)