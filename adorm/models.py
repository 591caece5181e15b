"""
Typed Active Directory entities.

An entity wraps either a :py:class:`RawEntry` read from the directory or,
for records that have not been saved yet, a dict of pending attribute
values.  Attribute values are decoded lazily, through the codec registered
for the attribute, every time they are read.
"""

import datetime
import logging
from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, cast

import pytz

from .constants import GroupType, UserAccountControl
from .exceptions import InvalidAttribute, UsageError
from .fields import Codec
from .ldap import dn2str, escape_dn_chars, str2dn
from .options import Options
from .registry import DN_ARRAY_TYPES, EntityClass, FieldType
from .sid import decode_sid
from .typing import LDAPData, Operations

if TYPE_CHECKING:
    from .directory import Directory

logger = logging.getLogger("django-adorm")


class RawEntry:
    """
    A directory entry exactly as we received it: a DN plus a read-only map of
    lower case attribute name to a tuple of values.

    Args:
        dn: the entry's distinguished name
        attributes: attribute name to values

    """

    __slots__ = ("_attributes", "dn")

    def __init__(self, dn: str, attributes: Mapping[str, Iterable[Any]]) -> None:
        self.dn = dn
        self._attributes: Mapping[str, tuple[Any, ...]] = MappingProxyType(
            {name.lower(): tuple(values) for name, values in attributes.items()}
        )

    @classmethod
    def from_ldap(cls, data: LDAPData, binary_names: frozenset[str]) -> "RawEntry":
        """
        Build a :py:class:`RawEntry` from a python-ldap ``(dn, attrs)`` tuple.

        Values of the attributes in ``binary_names`` are hex encoded; all
        other values are decoded as UTF-8, and left as bytes if they are not
        valid UTF-8.

        Args:
            data: the search result
            binary_names: lower case names of the binary attributes

        """
        dn, attrs = data
        attributes: dict[str, tuple[Any, ...]] = {}
        for name, values in attrs.items():
            if name.lower() in binary_names:
                attributes[name] = tuple(
                    bytes(v).hex() if isinstance(v, (bytes, bytearray)) else v
                    for v in values
                )
            else:
                attributes[name] = tuple(cls._to_text(v) for v in values)
        return cls(dn, attributes)

    @staticmethod
    def _to_text(value: Any) -> Any:
        if not isinstance(value, (bytes, bytearray)):
            return value
        try:
            return bytes(value).decode("utf-8")
        except UnicodeDecodeError:
            return bytes(value)

    def get(self, name: str) -> tuple[Any, ...]:
        return self._attributes.get(name.lower(), ())

    def names(self) -> list[str]:
        return list(self._attributes.keys())

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._attributes

    def __setattr__(self, name: str, value: Any) -> None:
        if hasattr(self, "_attributes"):
            msg = "RawEntry is immutable"
            raise AttributeError(msg)
        super().__setattr__(name, value)

    def __repr__(self) -> str:
        return f"<RawEntry: {self.dn}>"


def is_empty(value: Any) -> bool:
    """Return ``True`` for values that mean "remove this attribute"."""
    if value is None:
        return True
    return isinstance(value, (str, bytes, list, tuple, set)) and not value


class EntityBase(type):
    """
    Metaclass for entities: builds ``_meta`` from the ``Meta`` inner class.
    """

    def __new__(cls, name, bases, attrs, **kwargs):
        new_class = super().__new__(cls, name, bases, attrs, **kwargs)
        Options(attrs.get("Meta")).contribute_to_class(new_class, "_meta")
        return new_class


class Entity(metaclass=EntityBase):
    """
    An entry in the directory of no particular class.

    Entities are normally produced by an :py:class:`~adorm.managers.EntityManager`.
    Build one yourself with ``attributes`` and ``dn`` to create a new record,
    then call :py:meth:`save`.

    Args:
        directory: the directory this entity lives in

    Keyword Args:
        entry: the entry read from the directory
        attributes: pending attribute values for a new record
        dn: the DN a new record will be created at

    """

    class Meta:
        entity_class = EntityClass.BASE
        objectclasses = ["top"]

    _meta: Options

    def __init__(
        self,
        directory: "Directory",
        entry: RawEntry | None = None,
        attributes: dict[str, Any] | None = None,
        dn: str | None = None,
    ) -> None:
        self.directory = directory
        self._entry: RawEntry | None = entry
        self._pending: dict[str, Any] = {
            name.lower(): value for name, value in (attributes or {}).items()
        }
        self._dn: str | None = entry.dn if entry is not None else dn
        self._memo: dict[Any, Any] = {}

    # -----------------------
    # Reading attributes
    # -----------------------

    @property
    def dn(self) -> str | None:
        return self._dn

    @property
    def new_record(self) -> bool:
        """``True`` if this entity has not been read from the directory."""
        return self._entry is None

    @property
    def entity_class(self) -> EntityClass:
        return self._meta.entity_class

    def field_type(self, name: str) -> FieldType | None:
        return self.directory.registry.type_of(self.entity_class, name)

    def codec_for(self, name: str) -> Codec | None:
        return self.directory.registry.codec_for(
            self.entity_class, name, directory=self.directory
        )

    def has_attribute(self, name: str) -> bool:
        """
        Return ``True`` if the entry (or the pending attributes of a new
        record) has a value for ``name``.
        """
        if name.lower() in self._pending:
            return True
        return self._entry is not None and name in self._entry

    def raw_values(self, name: str) -> tuple[Any, ...]:
        """
        Return the undecoded values of ``name``.  Binary attributes are hex
        strings.  A missing attribute has no values.
        """
        key = name.lower()
        if key in self._pending:
            value = self._pending[key]
            if value is None:
                return ()
            if isinstance(value, (list, tuple, set)):
                return tuple(value)
            return (value,)
        if self._entry is None:
            return ()
        return self._entry.get(key)

    def get_attr(self, name: str) -> Any:
        """
        Return the decoded value of attribute ``name``.

        DN list attributes always come back as a list of resolved entities.
        Otherwise attributes with one value come back as that value, and
        attributes with several as a list.  Binary attributes are returned as
        hex strings.

        Args:
            name: the attribute name, in any case

        Returns:
            The decoded value, or ``None`` if the attribute is not set.

        """
        key = name.lower()
        if key in self._pending:
            return self._pending[key]
        values = self.raw_values(key)
        tag = self.field_type(key)
        if tag in DN_ARRAY_TYPES:
            return cast("Codec", self.codec_for(key)).decode(list(values))
        if not values:
            return None
        if tag is not None and tag is not FieldType.BINARY:
            codec = cast("Codec", self.codec_for(key))
            decoded = [codec.decode(value) for value in values]
        else:
            decoded = list(values)
        return decoded[0] if len(decoded) == 1 else decoded

    def __getitem__(self, name: str) -> Any:
        return self.get_attr(name)

    def __getattr__(self, name: str) -> Any:
        # Only called for names that are not real attributes of the object.
        if name.startswith("_") or "directory" not in self.__dict__:
            raise AttributeError(name)
        if self.has_attribute(name) or self.field_type(name) in DN_ARRAY_TYPES:
            return self.get_attr(name)
        msg = f"{self.__class__.__name__} {self.dn} has no attribute '{name}'"
        raise InvalidAttribute(msg)

    @property
    def sid(self) -> str:
        """
        The canonical ``S-...`` form of ``objectSid``.

        Raises:
            InvalidAttribute: the entry has no ``objectSid``
            CodecError: the ``objectSid`` value is malformed

        """
        values = self.raw_values("objectsid")
        if not values:
            msg = f"{self.__class__.__name__} {self.dn} has no objectSid"
            raise InvalidAttribute(msg)
        return decode_sid(values[0])

    # -----------------------
    # Writing attributes
    # -----------------------

    def set_attr(self, name: str, value: Any) -> bool:
        """
        Set attribute ``name``.  New records keep the value until
        :py:meth:`save`; existing records are updated in the directory
        immediately.
        """
        if self.new_record:
            self._pending[name.lower()] = value
            return True
        return self.update_attribute(name, value)

    def encode_values(self, name: str, value: Any) -> list[Any]:
        """
        Encode ``value`` for attribute ``name`` as a list of wire values.
        """
        if not isinstance(value, (list, tuple, set)):
            value = [value]
        codec = self.codec_for(name)
        if codec is None:
            return list(value)
        if self.field_type(name) in DN_ARRAY_TYPES:
            return codec.encode(list(value))
        return [codec.encode(v) for v in value]

    def _operation(self, name: str, value: Any) -> tuple[str, str, Any]:
        if is_empty(value):
            return ("delete", name, None)
        # unicodePwd can never be read back, so it is always replaced
        if self.field_type(name) is FieldType.PASSWORD or self.has_attribute(name):
            op = "replace"
        else:
            op = "add"
        return (op, name, self.encode_values(name, value))

    def update_attribute(self, name: str, value: Any) -> bool:
        return self.update_attributes({name: value})

    def update_attributes(self, attributes: dict[str, Any]) -> bool:
        """
        Write ``attributes`` to the directory and reload.

        Each attribute becomes an ``add`` operation if the entry has no value
        for it yet, a ``replace`` if it has, and a ``delete`` if the new value
        is ``None`` or empty.  Passwords are always a ``replace``.
        Changing ``cn`` also sets ``sAMAccountName``
        and renames the entry to ``cn=<new value>`` in the same container.

        Args:
            attributes: attribute name to new value

        Returns:
            ``False`` if the directory rejected any of the changes.

        """
        if not attributes:
            return True
        if self.new_record:
            for name, value in attributes.items():
                self._pending[name.lower()] = value
            return True
        new_cn: str | None = None
        operations: Operations = []
        for name, value in attributes.items():
            if name.lower() == "cn":
                new_cn = value
            else:
                operations.append(self._operation(name, value))
        client = self.directory.client
        dn = cast("str", self.dn)
        if operations and not client.modify(dn, operations):
            return False
        if new_cn is not None:
            if not client.modify(dn, [self._operation("sAMAccountName", new_cn)]):
                return False
            new_rdn = f"cn={escape_dn_chars(new_cn)}"
            if not client.rename(dn, new_rdn, True):  # noqa: FBT003
                return False
            self.directory.cache.invalidate(dn)
            parent = dn2str(str2dn(dn)[1:])
            self._dn = f"{new_rdn},{parent}" if parent else new_rdn
        return self.reload()

    # -----------------------
    # Persistence
    # -----------------------

    def reload(self) -> bool:
        """
        Re-read this entity from the directory and forget memoised
        relationships.

        Returns:
            ``False`` for new records, or if the entry no longer exists.

        """
        if self.new_record or self.dn is None:
            return False
        entry = self.directory.manager(type(self)).fetch_entry(self.dn)
        self._memo.clear()
        if entry is None:
            return False
        self._entry = entry
        self._dn = entry.dn
        self._pending.clear()
        if type(self) is not Entity:
            self.directory.cache.store(entry.dn, self)
        return True

    def save(self) -> bool:
        """
        Create this record in the directory with its pending attributes and
        the objectClasses of its entity class.

        Raises:
            UsageError: the record has no DN to be created at

        Returns:
            ``True`` on success.  Saving an existing record does nothing and
            returns ``True``.

        """
        if not self.new_record:
            return True
        if not self.dn:
            msg = f"A new {self.__class__.__name__} needs a dn to be saved"
            raise UsageError(msg)
        attributes: dict[str, list[Any]] = {}
        for name, value in self._pending.items():
            if is_empty(value):
                continue
            attributes[name] = self.encode_values(name, value)
        if "objectclass" not in attributes:
            attributes["objectClass"] = list(self._meta.objectclasses)
        if not self.directory.client.add(self.dn, attributes):
            return False
        self._entry = RawEntry(self.dn, {})
        return self.reload()

    def delete(self) -> bool:
        """
        Delete this entry from the directory, and from the cache.
        """
        if self.new_record or self.dn is None:
            return False
        if not self.directory.client.delete(self.dn):
            return False
        self.directory.cache.invalidate(self.dn)
        return True

    # -----------------------
    # Identity
    # -----------------------

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Entity):
            return NotImplemented
        guid = self.raw_values("objectguid")
        if not guid:
            return self is other
        return guid == other.raw_values("objectguid")

    def __hash__(self) -> int:
        guid = self.raw_values("objectguid")
        if not guid:
            return id(self)
        return hash(guid)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self.dn}>"


class MemberMixin:
    """
    Helpers for entities that can be members of groups.
    """

    def groups(self) -> list["Group"]:
        """
        Return the groups this entity directly belongs to.  Memoised until
        :py:meth:`~Entity.reload`.
        """
        entity = cast("Entity", self)
        if "groups" not in entity._memo:
            entity._memo["groups"] = entity.directory.membership.groups(entity)
        return entity._memo["groups"]

    def is_member_of(self, group: "Entity") -> bool:
        """
        Return ``True`` if ``group``'s DN is in our ``memberOf``.
        """
        entity = cast("Entity", self)
        return entity.directory.membership.is_member(group, entity)


class User(MemberMixin, Entity):
    """
    A user account.
    """

    class Meta:
        entity_class = EntityClass.USER
        objectclasses = ["top", "person", "organizationalPerson", "user"]

    def authenticate(self, password: str) -> bool:
        """
        Try to bind as this user with ``password``.

        Returns:
            ``True`` if the directory accepted the password.  An empty
            password is always ``False``.

        """
        if not password:
            return False
        values = self.raw_values("samaccountname")
        if not values:
            return False
        builder = self.directory.manager(type(self)).builder
        return self.directory.client.bind_as(
            builder.leaf("sAMAccountName", values[0]), password
        )

    def change_password(self, password: str) -> bool:
        """
        Set this user's password.  The directory only accepts this over an
        encrypted connection.
        """
        if not self.update_attribute("unicodePwd", password):
            return False
        logger.info("adorm.password.changed dn=%s", self.dn)
        return True

    @property
    def user_account_control(self) -> UserAccountControl:
        values = self.raw_values("useraccountcontrol")
        return UserAccountControl(int(values[0]) if values else 0)

    @property
    def lockout_time(self) -> datetime.datetime | None:
        """When the account was locked out, or ``None``."""
        if not self.has_attribute("lockouttime"):
            return None
        return self.get_attr("lockouttime")

    @property
    def locked(self) -> bool:
        return self.lockout_time is not None

    @property
    def disabled(self) -> bool:
        return UserAccountControl.ACCOUNT_DISABLED in self.user_account_control

    @property
    def expired(self) -> bool:
        """``True`` if ``accountExpires`` is set and in the past."""
        if not self.has_attribute("accountexpires"):
            return False
        expires = self.get_attr("accountexpires")
        return expires is not None and expires <= datetime.datetime.now(tz=pytz.utc)

    @property
    def password_never_expires(self) -> bool:
        return UserAccountControl.PASSWORD_NEVER_EXPIRES in self.user_account_control

    @property
    def can_login(self) -> bool:
        """``True`` if the account is neither disabled nor locked out."""
        return not self.disabled and not self.locked


class Group(MemberMixin, Entity):
    """
    A security or distribution group.
    """

    class Meta:
        entity_class = EntityClass.GROUP
        objectclasses = ["top", "group"]

    @property
    def group_type(self) -> GroupType:
        """
        The ``groupType`` flags.  AD stores these as a signed 32-bit integer.
        """
        values = self.raw_values("grouptype")
        return GroupType(int(values[0]) & 0xFFFFFFFF if values else 0)

    @property
    def security_enabled(self) -> bool:
        return GroupType.SECURITY_ENABLED in self.group_type

    def member_users(self, recursive: bool = False) -> list[User]:
        """
        Return the users in this group.  With ``recursive``, users of nested
        groups are included too.
        """
        key = ("member_users", recursive)
        if key not in self._memo:
            self._memo[key] = self.directory.membership.member_users(
                self, recursive=recursive
            )
        return self._memo[key]

    def member_groups(self, recursive: bool = False) -> list["Group"]:
        """
        Return the groups in this group.  With ``recursive``, nested groups of
        those are included too.
        """
        key = ("member_groups", recursive)
        if key not in self._memo:
            self._memo[key] = self.directory.membership.member_groups(
                self, recursive=recursive
            )
        return self._memo[key]

    def is_member(self, entity: Entity) -> bool:
        """
        Return ``True`` if ``entity`` is a direct member of this group,
        judged by ``entity``'s own ``memberOf``.
        """
        return self.directory.membership.is_member(self, entity)


class Computer(MemberMixin, Entity):
    """
    A computer account.
    """

    class Meta:
        entity_class = EntityClass.COMPUTER
        objectclasses = [
            "top",
            "person",
            "organizationalPerson",
            "user",
            "computer",
        ]
