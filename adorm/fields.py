"""
Codecs for Active Directory attribute formats.

Each codec converts one kind of specially encoded attribute between the
value the directory stores (``encode`` produces it, ``decode`` consumes it)
and the value Python code works with.  The registry in
:py:mod:`adorm.registry` decides which codec applies to which attribute.
"""

import datetime
import re
from typing import TYPE_CHECKING, Any, Optional

import pytz

from .exceptions import CodecError, UsageError

if TYPE_CHECKING:
    from .directory import Directory
    from .managers import EntityManager
    from .models import Entity


class Codec:
    """
    Base class for attribute codecs.

    The base codec passes values through unchanged.

    Keyword Args:
        directory: the directory to resolve DN references in.  Only the
            DN-array codecs use it.

    """

    def __init__(self, directory: Optional["Directory"] = None) -> None:
        self.directory = directory

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"

    def encode(self, value: Any) -> Any:
        """
        Convert a Python value to the form the directory stores.

        Args:
            value: the value to convert

        """
        return value

    def decode(self, value: Any) -> Any:
        """
        Convert a value read from the directory to its Python form.

        Args:
            value: the value to convert

        """
        return value


class BinaryCodec(Codec):
    """
    Binary attributes such as ``objectGUID``.

    Python code sees these as lower case hex strings; the directory stores the
    raw bytes.
    """

    def encode(self, value: str) -> bytes:
        """
        Pack a hex string into bytes, high nibble first.

        Raises:
            CodecError: ``value`` is not a valid hex string

        """
        try:
            return bytes.fromhex(value)
        except (TypeError, ValueError) as e:
            msg = f"'{value}' is not a valid hex string"
            raise CodecError(msg) from e

    def decode(self, value: bytes | bytearray) -> str:
        """
        Unpack raw bytes to a lower case hex string.

        Raises:
            CodecError: ``value`` is not bytes

        """
        if not isinstance(value, (bytes, bytearray)):
            msg = f"Binary values must be bytes, not {type(value).__name__}"
            raise CodecError(msg)
        return bytes(value).hex()


class DateCodec(Codec):
    """
    Generalized-time attributes such as ``whenCreated``.

    Active Directory writes these in UTC as ``YYYYMMDDHHMMSS.0Z``.
    """

    #: strftime format used when encoding
    LDAP_DATETIME_FORMAT: str = "%Y%m%d%H%M%S.0Z"
    #: what we accept when decoding: 14 digits, an optional fraction, then Z
    LDAP_DATETIME_RE = re.compile(r"^(?P<stamp>\d{14})(?:\.\d+)?Z$")

    def encode(self, value: datetime.datetime) -> str:
        """
        Format a datetime as AD generalized time.  Naive datetimes are taken
        to be UTC already.
        """
        if not isinstance(value, datetime.datetime):
            msg = f"Date values must be datetimes, not {type(value).__name__}"
            raise CodecError(msg)
        if value.tzinfo is not None:
            value = value.astimezone(pytz.utc)
        return value.strftime(self.LDAP_DATETIME_FORMAT)

    def decode(self, value: str | bytes) -> datetime.datetime:
        """
        Parse AD generalized time into a timezone aware UTC datetime.

        Raises:
            CodecError: ``value`` is not in ``YYYYMMDDHHMMSS[.f]Z`` format

        """
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        match = self.LDAP_DATETIME_RE.match(str(value))
        if not match:
            msg = f"'{value}' is not an LDAP generalized time"
            raise CodecError(msg)
        try:
            dt = datetime.datetime.strptime(match.group("stamp"), "%Y%m%d%H%M%S")
        except ValueError as e:
            msg = f"'{value}' is not a valid date"
            raise CodecError(msg) from e
        return pytz.utc.localize(dt)


class TimestampCodec(Codec):
    """
    Windows FILETIME attributes such as ``lastLogonTimestamp``.

    The stored value is the number of 100-nanosecond intervals since
    1601-01-01 00:00:00 UTC.  ``0`` and the largest 64-bit values mean "never"
    and decode to ``None``.
    """

    #: The Active Directory epoch (January 1, 1601 UTC).
    AD_EPOCH: datetime.datetime = datetime.datetime(1601, 1, 1, tzinfo=pytz.utc)
    #: The number of 100-nanosecond intervals per microsecond.
    INTERVALS_PER_MICROSECOND: int = 10
    #: Values that mean "never" or "not set".
    NEVER: frozenset[int] = frozenset({0, 0x7FFFFFFFFFFFFFFF, 0xFFFFFFFFFFFFFFFF})

    def encode(self, value: datetime.datetime | int | str | None) -> int:
        """
        Convert a datetime to a FILETIME integer.  ``None`` encodes to ``0``.
        Integers and numeric strings are taken to be FILETIME values already,
        so ``lockoutTime=0`` unlocks an account.

        Raises:
            CodecError: ``value`` is neither a datetime nor a non-negative
                integer

        """
        if value is None:
            return 0
        if isinstance(value, (int, str, bytes)) and not isinstance(value, bool):
            if isinstance(value, bytes):
                value = value.decode("utf-8")
            try:
                ticks = int(value)
            except ValueError as e:
                msg = f"'{value}' is not a Windows timestamp"
                raise CodecError(msg) from e
            if ticks < 0:
                msg = f"'{value}' is not a valid Windows timestamp"
                raise CodecError(msg)
            return ticks
        if not isinstance(value, datetime.datetime):
            msg = f"Timestamp values must be datetimes, not {type(value).__name__}"
            raise CodecError(msg)
        value = pytz.utc.localize(value) if value.tzinfo is None else value
        delta = value - self.AD_EPOCH
        microseconds = (
            delta.days * 86_400_000_000 + delta.seconds * 1_000_000 + delta.microseconds
        )
        return microseconds * self.INTERVALS_PER_MICROSECOND

    def decode(self, value: int | str | bytes) -> datetime.datetime | None:
        """
        Convert a FILETIME value to a timezone aware UTC datetime.

        Raises:
            CodecError: ``value`` is not an integer, or is out of range

        """
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        try:
            ticks = int(value)
        except (TypeError, ValueError) as e:
            msg = f"'{value}' is not a Windows timestamp"
            raise CodecError(msg) from e
        if ticks in self.NEVER:
            return None
        if ticks < 0:
            msg = f"'{value}' is not a valid Windows timestamp"
            raise CodecError(msg)
        try:
            return self.AD_EPOCH + datetime.timedelta(
                microseconds=ticks // self.INTERVALS_PER_MICROSECOND
            )
        except OverflowError as e:
            msg = f"'{value}' is outside the supported date range"
            raise CodecError(msg) from e


class PasswordCodec(Codec):
    """
    The ``unicodePwd`` attribute.

    Active Directory wants the new password wrapped in double quotes and
    encoded as UTF-16LE.  Passwords can never be read back, so ``decode``
    always returns ``None``.
    """

    def encode(self, value: str) -> bytes:
        return f'"{value}"'.encode("utf-16-le")

    def decode(self, value: Any) -> None:  # noqa: ARG002
        return None


class DnArrayCodec(Codec):
    """
    Attributes that hold a list of DNs of other entries.

    Encoding maps entities to their DNs.  Decoding looks the DNs up in the
    directory; this codec resolves them as untyped entries, the subclasses as
    a particular entity class.
    """

    def encode(self, value: Any) -> list[str]:
        if value is None:
            return []
        if not isinstance(value, (list, tuple, set)):
            value = [value]
        return [getattr(item, "dn", item) for item in value]

    def decode(self, value: str | list[str] | None) -> list["Entity"]:
        if not value:
            return []
        if isinstance(value, (str, bytes)):
            value = [value]
        dns = [dn.decode("utf-8") if isinstance(dn, bytes) else dn for dn in value]
        results: list[Entity] = []
        for manager in self.get_managers():
            found = manager.all(distinguishedname=dns)
            if found:
                results.extend(found)
        return results

    def get_managers(self) -> list["EntityManager"]:
        """
        Return the managers to resolve DNs with, in result order.

        Raises:
            UsageError: this codec was built without a directory

        """
        return [self.require_directory().entries]

    def require_directory(self) -> "Directory":
        if self.directory is None:
            msg = f"{self.__class__.__name__} needs a directory to resolve DNs"
            raise UsageError(msg)
        return self.directory


class UserDnArrayCodec(DnArrayCodec):
    """DN lists that only reference users."""

    def get_managers(self) -> list["EntityManager"]:
        return [self.require_directory().users]


class GroupDnArrayCodec(DnArrayCodec):
    """DN lists that only reference groups."""

    def get_managers(self) -> list["EntityManager"]:
        return [self.require_directory().groups]


class MemberDnArrayCodec(DnArrayCodec):
    """
    DN lists that reference users and groups, like a group's ``member``.
    Users come first, then groups; an entry matching both is returned once.
    """

    def get_managers(self) -> list["EntityManager"]:
        directory = self.require_directory()
        return [directory.users, directory.groups]

    def decode(self, value: str | list[str] | None) -> list["Entity"]:
        seen: set[str] = set()
        results: list[Entity] = []
        for entity in super().decode(value):
            key = entity.dn.lower()
            if key not in seen:
                seen.add(key)
                results.append(entity)
        return results
