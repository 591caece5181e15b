"""
The directory client: the part of ``adorm`` that actually talks LDAP.

:py:class:`DirectoryClient` is the contract the rest of the package relies
on, and :py:class:`LdapDirectory` implements it with python-ldap.  Anything
else that implements the protocol (an in-memory fake in tests, say) can be
handed to :py:class:`adorm.directory.Directory` instead.
"""

import logging
import threading
from collections.abc import Callable
from functools import wraps
from pathlib import Path
from typing import TYPE_CHECKING, Any, NamedTuple, Protocol, cast

from ldap.controls import SimplePagedResultsControl

from adorm import ldap

from .typing import AddModlist, LDAPData, ModifyModList, Operations

if TYPE_CHECKING:
    from ldap_filter import Filter

logger = logging.getLogger("django-adorm")

#: Map our operation names to python-ldap's modify operation codes.
MOD_OPS: dict[str, int] = {
    "add": ldap.MOD_ADD,  # type: ignore[attr-defined]
    "replace": ldap.MOD_REPLACE,  # type: ignore[attr-defined]
    "delete": ldap.MOD_DELETE,  # type: ignore[attr-defined]
}


class OperationResult(NamedTuple):
    """The outcome of the last directory operation."""

    code: int
    message: str


#: The result of an operation that succeeded.
SUCCESS = OperationResult(0, "Success")

#: Result codes meaning the server could not be reached.  libldap reports
#: ``SERVER_DOWN`` and ``CONNECT_ERROR`` as -1 and -11, older releases as 81
#: and 91.
CONNECTIVITY_CODES = frozenset({-1, -11, 81, 91})


class DirectoryClient(Protocol):
    """
    What ``adorm`` needs from a directory client.
    """

    #: the base DN searches default to
    basedn: str
    #: the outcome of the most recent operation
    last_result: OperationResult

    def bind(self) -> bool: ...

    def search(
        self,
        searchfilter: "Filter | str",
        basedn: str | None = None,
        scope: int = ...,
    ) -> list[LDAPData]: ...

    def modify(self, dn: str, operations: Operations) -> bool: ...

    def rename(self, old_dn: str, new_rdn: str, delete_old: bool = True) -> bool: ...

    def add(self, dn: str, attributes: dict[str, list[Any]]) -> bool: ...

    def delete(self, dn: str) -> bool: ...

    def bind_as(self, searchfilter: "Filter | str", password: str) -> bool: ...


def atomic(key: str = "read", failure: Any = False) -> Callable:
    """
    Decorator for :py:class:`LdapDirectory` methods that need a connection.

    Binds a connection for the current thread before calling the method and
    unbinds it afterwards, unless the thread already holds one.  If the
    server can't be reached the failure is recorded in ``last_result`` and
    the method returns ``failure`` instead of running.

    Args:
        key: ``"read"`` or ``"write"``; which server configuration to bind to
        failure: what to return when we can't connect.  Callables are called
            to make a fresh value.

    """

    def real_decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(self, *args, **kwargs) -> Any:
            if self.has_connection():
                return func(self, *args, **kwargs)
            try:
                self.connect(key)
            except (ldap.SERVER_DOWN, ldap.CONNECT_ERROR) as e:  # type: ignore[attr-defined]
                self._fail("connect", e, key=key)
                return failure() if callable(failure) else failure
            try:
                retval = func(self, *args, **kwargs)
            finally:
                # Unbind no matter what happens in ``func()``.
                self.disconnect()
            return retval

        return wrapper

    return real_decorator


def to_bytes(values: Any) -> list[bytes]:
    """
    Normalize an attribute value to the list of bytes python-ldap wants.
    """
    if values is None:
        return []
    if not isinstance(values, (list, tuple)):
        values = [values]
    cleaned = []
    for item in values:
        if isinstance(item, (bytes, bytearray)):
            cleaned.append(bytes(item))
        else:
            cleaned.append(str(item).encode("utf-8"))
    return cleaned


def result_from_error(error: Exception) -> OperationResult:
    """
    Extract the result code and message from a python-ldap exception.
    """
    info: dict[str, Any] = {}
    if error.args and isinstance(error.args[0], dict):
        info = error.args[0]
    # python-ldap exception classes carry their result code as ``errnum``
    code = info.get("result", getattr(error, "errnum", -1))
    message = info.get("desc", str(error))
    if info.get("info"):
        message = f"{message} ({info['info']})"
    return OperationResult(int(code), str(message))


class LdapDirectory:
    """
    A :py:class:`DirectoryClient` backed by python-ldap.

    Connections are made per thread, because python-ldap connection objects
    are not thread-safe, and only live for the duration of one operation.

    Errors the server reports are not raised.  They are logged, recorded in
    :py:attr:`last_result`, and reported as an empty search result or a
    ``False`` return from a write.

    Args:
        config: the server configuration, shaped like one entry of
            ``settings.LDAP_SERVERS``: ``basedn``, ``read`` and ``write``
            connection settings, and optionally ``ldap_options`` and
            ``pagesize``.

    """

    def __init__(self, config: dict[str, Any]) -> None:
        self.logger = logger
        self.config = config
        self.basedn: str = config.get("basedn", "")
        self.ldap_options: list[str] = list(config.get("ldap_options", []))
        self.pagesize: int = int(config.get("pagesize", 1000))
        self.last_result: OperationResult = SUCCESS
        # keys in this dictionary get manipulated by .connect() and .disconnect()
        self._ldap_objects: dict[threading.Thread, ldap.ldapobject.LDAPObject] = {}  # type: ignore[name-defined]

    # -----------------------
    # Connections
    # -----------------------

    def _connect(  # noqa: PLR0912
        self, key: str, dn: str | None = None, password: str | None = None
    ) -> ldap.ldapobject.LDAPObject:  # type: ignore[name-defined]
        """
        Create, configure and bind a new LDAP connection object.

        Args:
            key: ``"read"`` or ``"write"``

        Keyword Args:
            dn: bind as this DN instead of the configured user
            password: the password for ``dn``

        Raises:
            ValueError: the ``tls_verify`` value in the configuration is invalid
            OSError: a configured certificate or key file is missing

        """
        config = self.config[key]
        if not dn:
            dn = config["user"]
            password = config["password"]
        ldap_object = ldap.initialize(config["url"])  # type: ignore[attr-defined]
        if config.get("follow_referrals", False):
            ldap_object.set_option(ldap.OPT_REFERRALS, 1)  # type: ignore[attr-defined]
        else:
            # AD hands out referrals that python-ldap would otherwise chase
            # with the wrong credentials
            ldap_object.set_option(ldap.OPT_REFERRALS, 0)  # type: ignore[attr-defined]
        timeout = config.get("timeout", 15.0)
        ldap_object.set_option(ldap.OPT_NETWORK_TIMEOUT, float(timeout))  # type: ignore[attr-defined]
        sizelimit = config.get("sizelimit", None)
        if sizelimit:
            ldap_object.set_option(ldap.OPT_SIZELIMIT, int(sizelimit))  # type: ignore[attr-defined]
        tls_verify = config.get("tls_verify", "never")
        if tls_verify == "never":
            ldap_object.set_option(ldap.OPT_X_TLS_REQUIRE_CERT, ldap.OPT_X_TLS_NEVER)  # type: ignore[attr-defined]
        elif tls_verify == "always":
            ldap_object.set_option(ldap.OPT_X_TLS_REQUIRE_CERT, ldap.OPT_X_TLS_DEMAND)  # type: ignore[attr-defined]
        else:
            msg = f"Invalid tls_verify value: {tls_verify}"
            raise ValueError(msg)
        for setting, option in (
            ("tls_ca_certfile", ldap.OPT_X_TLS_CACERTFILE),  # type: ignore[attr-defined]
            ("tls_certfile", ldap.OPT_X_TLS_CERTFILE),  # type: ignore[attr-defined]
            ("tls_keyfile", ldap.OPT_X_TLS_KEYFILE),  # type: ignore[attr-defined]
        ):
            if path := config.get(setting, None):
                if not Path(path).is_file():
                    msg = f"{setting} does not exist or is not a file: {path}"
                    raise OSError(msg)
                ldap_object.set_option(option, path)
        ldap_object.set_option(ldap.OPT_X_TLS_NEWCTX, 0)  # type: ignore[attr-defined]
        if config.get("use_starttls", True):
            ldap_object.start_tls_s()
        ldap_object.simple_bind_s(dn, password)
        return ldap_object

    def connect(
        self, key: str, dn: str | None = None, password: str | None = None
    ) -> None:
        """
        Set the per-thread LDAP connection object.  Used by :py:func:`atomic`.
        """
        self._ldap_objects[threading.current_thread()] = self._connect(
            key, dn=dn, password=password
        )

    def disconnect(self) -> None:
        """Unbind and forget the current thread's connection."""
        try:
            self.connection.unbind_s()
        finally:
            self.remove_connection()

    def has_connection(self) -> bool:
        return threading.current_thread() in self._ldap_objects

    def remove_connection(self) -> None:
        del self._ldap_objects[threading.current_thread()]

    @property
    def connection(self) -> ldap.ldapobject.LDAPObject:  # type: ignore[name-defined]
        """The current thread's LDAP connection object."""
        return self._ldap_objects[threading.current_thread()]

    def bind(self) -> bool:
        """
        Check that we can bind to the read server.

        Returns:
            ``True`` if the bind succeeded, ``False`` otherwise.

        """
        try:
            connection = self._connect("read")
        except ldap.LDAPError as e:  # type: ignore[attr-defined]
            self._fail("bind", e)
            return False
        connection.unbind_s()
        self.last_result = SUCCESS
        return True

    def _fail(self, operation: str, error: Exception, **context: Any) -> None:
        self.last_result = result_from_error(error)
        extra = " ".join(f"{k}={v}" for k, v in context.items())
        self.logger.warning(
            "adorm.%s.failed code=%s message=%s %s",
            operation,
            self.last_result.code,
            self.last_result.message,
            extra,
        )

    # -----------------------
    # Reads
    # -----------------------

    def _get_pctrls(self, serverctrls):
        """
        Return the paged results controls among ``serverctrls``.
        """
        return [
            c
            for c in serverctrls
            if c.controlType == SimplePagedResultsControl.controlType
        ]

    def _paged_search(
        self,
        basedn: str,
        searchfilter: str,
        scope: int,
        attrlist: list[str] | None = None,
    ) -> list[LDAPData]:
        """
        Search with the simple paged results control, so that we get past
        AD's ``MaxPageSize`` limit.
        """
        # The cookie starts out empty on the first page.
        paging = SimplePagedResultsControl(True, size=self.pagesize, cookie="")  # noqa: FBT003
        results: list[LDAPData] = []
        while True:
            msgid = self.connection.search_ext(
                basedn, scope, searchfilter, attrlist, serverctrls=[paging]
            )
            _, rdata, _, serverctrls = self.connection.result3(msgid)
            # AD appends search references, which have no attribute dict
            results.extend((dn, attrs) for dn, attrs in rdata if isinstance(attrs, dict))
            paged_controls = self._get_pctrls(serverctrls)
            if not paged_controls or not paged_controls[0].cookie:
                break
            paging.cookie = paged_controls[0].cookie
        return results

    @atomic(key="read", failure=list)
    def search(
        self,
        searchfilter: "Filter | str",
        basedn: str | None = None,
        scope: int = ldap.SCOPE_SUBTREE,  # type: ignore[attr-defined]
        attributes: list[str] | None = None,
    ) -> list[LDAPData]:
        """
        Search the directory.

        Args:
            searchfilter: an :py:class:`ldap_filter.Filter` or filter string

        Keyword Args:
            basedn: where to search from; defaults to :py:attr:`basedn`
            scope: the python-ldap search scope
            attributes: restrict the attributes returned

        Returns:
            ``(dn, attrs)`` tuples; an empty list when nothing matches or the
            search failed.

        """
        if not isinstance(searchfilter, str):
            searchfilter = searchfilter.to_string()
        if basedn is None:
            basedn = self.basedn
        try:
            if "paged_search" in self.ldap_options:
                data = self._paged_search(basedn, searchfilter, scope, attributes)
            else:
                data = self.connection.search_s(
                    basedn, scope, filterstr=searchfilter, attrlist=attributes
                )
        except ldap.NO_SUCH_OBJECT:  # type: ignore[attr-defined]
            self.last_result = SUCCESS
            return []
        except ldap.LDAPError as e:  # type: ignore[attr-defined]
            self._fail("search", e, filter=searchfilter, basedn=basedn)
            return []
        self.last_result = SUCCESS
        # Filter out the search references AD puts in
        return [obj for obj in data if isinstance(obj[1], dict)]

    def bind_as(self, searchfilter: "Filter | str", password: str) -> bool:
        """
        Find the entry matching ``searchfilter`` and try to bind as it.

        Returns:
            ``True`` if exactly one entry matched and the bind succeeded.

        """
        if not password:
            return False
        objects = self.search(searchfilter)
        if len(objects) != 1:
            self.logger.warning(
                "adorm.auth.no_such_user filter=%s matches=%d", searchfilter, len(objects)
            )
            return False
        dn = objects[0][0]
        try:
            connection = self._connect("read", dn=dn, password=password)
        except ldap.INVALID_CREDENTIALS as e:  # type: ignore[attr-defined]
            self.last_result = result_from_error(e)
            self.logger.warning("adorm.auth.invalid_credentials dn=%s", dn)
            return False
        except ldap.LDAPError as e:  # type: ignore[attr-defined]
            self._fail("auth", e, dn=dn)
            return False
        connection.unbind_s()
        self.last_result = SUCCESS
        self.logger.info("adorm.auth.success dn=%s", dn)
        return True

    # -----------------------
    # Writes
    # -----------------------

    def _get_modlist(self, operations: Operations) -> ModifyModList:
        """
        Convert ``(op, attribute, values)`` operations into a python-ldap
        modlist.
        """
        _modlist: ModifyModList = []
        for op, attribute, values in operations:
            try:
                modtype = MOD_OPS[op]
            except KeyError as e:
                msg = f"Unknown modify operation: {op}"
                raise ValueError(msg) from e
            if modtype == MOD_OPS["delete"]:
                _modlist.append((modtype, attribute, to_bytes(values) or None))
            else:
                _modlist.append((modtype, attribute, to_bytes(values)))
        return _modlist

    @atomic(key="write")
    def modify(self, dn: str, operations: Operations) -> bool:
        """
        Apply ``operations`` to the entry at ``dn``.
        """
        _modlist = self._get_modlist(operations)
        if not _modlist:
            self.logger.debug("adorm.modify.no-changes dn=%s", dn)
            return True
        try:
            self.connection.modify_s(dn, _modlist)
        except ldap.LDAPError as e:  # type: ignore[attr-defined]
            self._fail("modify", e, dn=dn)
            return False
        self.last_result = SUCCESS
        return True

    @atomic(key="write")
    def rename(self, old_dn: str, new_rdn: str, delete_old: bool = True) -> bool:
        """
        Give the entry at ``old_dn`` a new RDN, keeping it in the same
        container.
        """
        try:
            self.connection.rename_s(old_dn, new_rdn, None, int(delete_old))
        except ldap.LDAPError as e:  # type: ignore[attr-defined]
            self._fail("rename", e, dn=old_dn, newrdn=new_rdn)
            return False
        self.last_result = SUCCESS
        return True

    @atomic(key="write")
    def add(self, dn: str, attributes: dict[str, list[Any]]) -> bool:
        """
        Create a new entry at ``dn``.  Empty attributes are left out.
        """
        _modlist: AddModlist = [
            (key, to_bytes(value))
            for key, value in attributes.items()
            if to_bytes(value)
        ]
        try:
            self.connection.add_s(dn, _modlist)
        except ldap.LDAPError as e:  # type: ignore[attr-defined]
            self._fail("add", e, dn=dn)
            return False
        self.last_result = SUCCESS
        return True

    @atomic(key="write")
    def delete(self, dn: str) -> bool:
        """Delete the entry at ``dn``."""
        try:
            self.connection.delete_s(dn)
        except ldap.LDAPError as e:  # type: ignore[attr-defined]
            self._fail("delete", e, dn=dn)
            return False
        self.last_result = SUCCESS
        return True

    def __repr__(self) -> str:
        return f"<LdapDirectory: {cast('dict', self.config.get('read', {})).get('url')}>"
