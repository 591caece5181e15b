"""
Security identifiers.

A SID is stored in ``objectSid`` as a small binary structure::

    byte 0       revision
    byte 1       sub-authority count N
    bytes 2-7    identifier authority, 48-bit big-endian
    bytes 8-     N sub-authorities, 32-bit little-endian each

The first sub-authority is the domain identifier (``21`` for domain
accounts), and the last one is usually the RID.
"""

import struct

from .exceptions import CodecError

#: revision, sub-authority count and the 6 authority bytes
HEADER_SIZE = 8
SUB_AUTHORITY_SIZE = 4


class SID:
    """
    A parsed security identifier.

    Args:
        revision: the SID revision, always 1 in practice
        authority: the identifier authority (5 is ``NT AUTHORITY``)
        sub_authorities: the domain identifier followed by the remaining
            sub-authorities

    """

    def __init__(
        self, revision: int, authority: int, sub_authorities: tuple[int, ...]
    ) -> None:
        self.revision = revision
        self.authority = authority
        self.sub_authorities = tuple(sub_authorities)

    @classmethod
    def from_bytes(cls, data: bytes | bytearray) -> "SID":
        """
        Parse a binary SID.

        Args:
            data: the raw ``objectSid`` value

        Raises:
            CodecError: ``data`` is shorter than its sub-authority count needs

        """
        data = bytes(data)
        if len(data) < HEADER_SIZE:
            msg = f"SID must be at least {HEADER_SIZE} bytes, got {len(data)}"
            raise CodecError(msg)
        revision, count = data[0], data[1]
        authority = int.from_bytes(data[2:HEADER_SIZE], "big")
        needed = HEADER_SIZE + SUB_AUTHORITY_SIZE * count
        if len(data) < needed:
            msg = (
                f"SID with {count} sub-authorities needs {needed} bytes, "
                f"got {len(data)}"
            )
            raise CodecError(msg)
        sub_authorities = struct.unpack_from(f"<{count}I", data, HEADER_SIZE)
        return cls(revision, authority, sub_authorities)

    @classmethod
    def from_hex(cls, value: str) -> "SID":
        """
        Parse a hex encoded binary SID, as binary attributes are represented
        once they leave the directory client.

        Raises:
            CodecError: ``value`` is not valid hex, or not a valid SID

        """
        try:
            data = bytes.fromhex(value)
        except ValueError as e:
            msg = f"'{value}' is not a hex encoded SID"
            raise CodecError(msg) from e
        return cls.from_bytes(data)

    @property
    def domain_identifier(self) -> int | None:
        return self.sub_authorities[0] if self.sub_authorities else None

    @property
    def rid(self) -> int | None:
        """The relative identifier: the last sub-authority."""
        return self.sub_authorities[-1] if self.sub_authorities else None

    def to_bytes(self) -> bytes:
        return (
            bytes([self.revision, len(self.sub_authorities)])
            + self.authority.to_bytes(6, "big")
            + struct.pack(f"<{len(self.sub_authorities)}I", *self.sub_authorities)
        )

    def __str__(self) -> str:
        parts = [str(self.revision), str(self.authority)]
        parts.extend(str(sub) for sub in self.sub_authorities)
        return "S-" + "-".join(parts)

    def __repr__(self) -> str:
        return f"<SID: {self}>"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SID):
            return NotImplemented
        return str(self) == str(other)

    def __hash__(self) -> int:
        return hash(str(self))


def decode_sid(value: bytes | bytearray | str) -> str:
    """
    Return the canonical ``S-...`` form of a SID given either its raw bytes or
    their hex encoding.

    Raises:
        CodecError: the value is not a valid SID

    """
    if isinstance(value, str):
        return str(SID.from_hex(value))
    return str(SID.from_bytes(value))
