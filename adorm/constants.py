"""
Bit flags and enumerations Active Directory stores as integers.
"""

import enum


class UserAccountControl(enum.IntFlag):
    """Flags in the ``userAccountControl`` attribute."""

    ACCOUNT_DISABLED = 0x0002
    LOCKOUT = 0x0010
    PASSWORD_NOT_REQUIRED = 0x0020
    NORMAL_ACCOUNT = 0x0200
    WORKSTATION_TRUST_ACCOUNT = 0x1000
    PASSWORD_NEVER_EXPIRES = 0x10000
    PASSWORD_EXPIRED = 0x800000


class GroupType(enum.IntFlag):
    """Flags in the ``groupType`` attribute."""

    BUILTIN_LOCAL_GROUP = 0x00000001
    ACCOUNT_GROUP = 0x00000002
    RESOURCE_GROUP = 0x00000004
    UNIVERSAL_GROUP = 0x00000008
    APP_BASIC_GROUP = 0x00000010
    APP_QUERY_GROUP = 0x00000020
    SECURITY_ENABLED = 0x80000000


class SamAccountType(enum.IntEnum):
    """Values of the ``sAMAccountType`` attribute."""

    DOMAIN_OBJECT = 0x0
    GROUP_OBJECT = 0x10000000
    NON_SECURITY_GROUP_OBJECT = 0x10000001
    ALIAS_OBJECT = 0x20000000
    NON_SECURITY_ALIAS_OBJECT = 0x20000001
    NORMAL_USER_ACCOUNT = 0x30000000
    MACHINE_ACCOUNT = 0x30000001
    TRUST_ACCOUNT = 0x30000002
    APP_BASIC_GROUP = 0x40000000
    APP_QUERY_GROUP = 0x40000001
    ACCOUNT_TYPE_MAX = 0x7FFFFFFF

    #: ``USER_OBJECT`` shares its value with ``NORMAL_USER_ACCOUNT``
    USER_OBJECT = 0x30000000
