"""
Exceptions raised by ``adorm``.

Codec and usage errors are programmer errors and are always raised.  Errors
reported by the directory server are recorded on the client instead, and
only become :py:class:`DirectoryOperationError` when a caller asks for that
via :py:meth:`adorm.directory.Directory.raise_for_error`.
"""


class ADError(Exception):
    """Base class for everything ``adorm`` raises."""


class CodecError(ADError, ValueError):
    """
    Raised when a value cannot be converted to or from its Active Directory
    wire format, e.g. a SID buffer that is too short or a malformed
    generalized-time string.
    """


class UsageError(ADError):
    """Raised when ``adorm`` is called incorrectly."""


class InvalidFinder(UsageError, ValueError):
    """
    Raised for a finder cardinality other than ``"all"`` or ``"first"``, or a
    dynamic finder name that cannot be parsed.
    """


class FinderArityError(UsageError, TypeError):
    """
    Raised when a dynamic finder is called with a different number of
    arguments than it names attributes.
    """


class InvalidAttribute(UsageError, AttributeError):
    """Raised when an entity is asked for an attribute it does not carry."""


class DirectoryOperationError(ADError):
    """
    A non-zero result code from the directory server.

    Args:
        code: the LDAP result code
        message: the server's description of the error

    """

    def __init__(self, code: int, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}")
