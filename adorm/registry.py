"""
The table of Active Directory attributes that need special encoding.

Most attributes are plain text and pass through ``adorm`` untouched.  The
ones listed here are stored in an AD-specific binary or numeric format, or
hold references to other entries, and are converted by the codec registered
for their :py:class:`FieldType`.
"""

import enum
from typing import TYPE_CHECKING, Optional

from .fields import (
    BinaryCodec,
    Codec,
    DateCodec,
    DnArrayCodec,
    GroupDnArrayCodec,
    MemberDnArrayCodec,
    PasswordCodec,
    TimestampCodec,
    UserDnArrayCodec,
)

if TYPE_CHECKING:
    from .directory import Directory


class EntityClass(enum.Enum):
    """The kinds of directory object ``adorm`` knows how to type."""

    BASE = "base"
    USER = "user"
    GROUP = "group"
    COMPUTER = "computer"


class FieldType(enum.Enum):
    """Semantic type tags for specially encoded attributes."""

    BINARY = "binary"
    DATE = "date"
    TIMESTAMP = "timestamp"
    PASSWORD = "password"
    DN_ARRAY = "dn_array"
    USER_DN_ARRAY = "user_dn_array"
    GROUP_DN_ARRAY = "group_dn_array"
    MEMBER_DN_ARRAY = "member_dn_array"


#: The codec class for each field type.
CODECS: dict[FieldType, type[Codec]] = {
    FieldType.BINARY: BinaryCodec,
    FieldType.DATE: DateCodec,
    FieldType.TIMESTAMP: TimestampCodec,
    FieldType.PASSWORD: PasswordCodec,
    FieldType.DN_ARRAY: DnArrayCodec,
    FieldType.USER_DN_ARRAY: UserDnArrayCodec,
    FieldType.GROUP_DN_ARRAY: GroupDnArrayCodec,
    FieldType.MEMBER_DN_ARRAY: MemberDnArrayCodec,
}

#: Field types whose values are lists of DNs resolved to entities.
DN_ARRAY_TYPES = frozenset(
    {
        FieldType.DN_ARRAY,
        FieldType.USER_DN_ARRAY,
        FieldType.GROUP_DN_ARRAY,
        FieldType.MEMBER_DN_ARRAY,
    }
)

#: The default special fields.  Keys are lower case attribute names.
SPECIAL_FIELDS: dict[EntityClass, dict[str, FieldType]] = {
    EntityClass.BASE: {
        "objectguid": FieldType.BINARY,
        "whencreated": FieldType.DATE,
        "whenchanged": FieldType.DATE,
        "memberof": FieldType.DN_ARRAY,
    },
    EntityClass.USER: {
        "objectguid": FieldType.BINARY,
        "objectsid": FieldType.BINARY,
        "msexchmailboxguid": FieldType.BINARY,
        "msexchmailboxsecuritydescriptor": FieldType.BINARY,
        "whencreated": FieldType.DATE,
        "whenchanged": FieldType.DATE,
        "lastlogontimestamp": FieldType.TIMESTAMP,
        "lastlogon": FieldType.TIMESTAMP,
        "pwdlastset": FieldType.TIMESTAMP,
        "accountexpires": FieldType.TIMESTAMP,
        "lockouttime": FieldType.TIMESTAMP,
        "badpasswordtime": FieldType.TIMESTAMP,
        "unicodepwd": FieldType.PASSWORD,
        "directreports": FieldType.USER_DN_ARRAY,
        "memberof": FieldType.MEMBER_DN_ARRAY,
    },
    EntityClass.GROUP: {
        "objectguid": FieldType.BINARY,
        "objectsid": FieldType.BINARY,
        "whencreated": FieldType.DATE,
        "whenchanged": FieldType.DATE,
        "memberof": FieldType.GROUP_DN_ARRAY,
        "member": FieldType.MEMBER_DN_ARRAY,
    },
    EntityClass.COMPUTER: {
        "objectguid": FieldType.BINARY,
        "objectsid": FieldType.BINARY,
        "whencreated": FieldType.DATE,
        "whenchanged": FieldType.DATE,
        "lastlogontimestamp": FieldType.TIMESTAMP,
        "pwdlastset": FieldType.TIMESTAMP,
        "memberof": FieldType.GROUP_DN_ARRAY,
        "member": FieldType.MEMBER_DN_ARRAY,
    },
}


class FieldTypeRegistry:
    """
    Looks up the :py:class:`FieldType` of an attribute for an entity class.

    Lookup tries the entity class's own table first and falls back to the
    :py:attr:`EntityClass.BASE` table.  Attributes in neither table have no
    type, and their values are used as they come from the directory.

    Keyword Args:
        fields: the special fields table to use instead of
            :py:data:`SPECIAL_FIELDS`

    """

    def __init__(
        self, fields: dict[EntityClass, dict[str, FieldType]] | None = None
    ) -> None:
        if fields is None:
            fields = SPECIAL_FIELDS
        self.fields: dict[EntityClass, dict[str, FieldType]] = {
            entity_class: {name.lower(): tag for name, tag in table.items()}
            for entity_class, table in fields.items()
        }
        self._binary_names: frozenset[str] | None = None

    def type_of(self, entity_class: EntityClass, name: str) -> FieldType | None:
        """
        Return the field type for ``name`` on ``entity_class``, or ``None``.

        Args:
            entity_class: the class of entity the attribute belongs to
            name: the attribute name, in any case

        """
        name = name.lower()
        tag = self.fields.get(entity_class, {}).get(name)
        if tag is None:
            tag = self.fields.get(EntityClass.BASE, {}).get(name)
        return tag

    def binary_attribute_names(self) -> frozenset[str]:
        """
        Return the lower case names of every attribute tagged
        :py:attr:`FieldType.BINARY` on any entity class.  Values of these
        attributes are hex encoded as soon as they leave the directory client.
        """
        if self._binary_names is None:
            self._binary_names = frozenset(
                name
                for table in self.fields.values()
                for name, tag in table.items()
                if tag is FieldType.BINARY
            )
        return self._binary_names

    def codec_for(
        self,
        entity_class: EntityClass,
        name: str,
        directory: Optional["Directory"] = None,
    ) -> Codec | None:
        """
        Return a codec instance for ``name`` on ``entity_class``, or ``None``
        if the attribute has no special type.

        Args:
            entity_class: the class of entity the attribute belongs to
            name: the attribute name

        Keyword Args:
            directory: the directory DN-array codecs resolve references in

        """
        tag = self.type_of(entity_class, name)
        if tag is None:
            return None
        return CODECS[tag](directory=directory)
