"""
The :py:class:`Directory` context object.

A :py:class:`Directory` ties together everything one Active Directory
connection needs: the directory client, the field type registry, the entity
cache and one manager per entity class.  Nothing in ``adorm`` is process
global; two directories never share state.

Example::

    from adorm import Directory

    directory = Directory("default")
    user = directory.users.find_by_samaccountname("jhunt")
    if user and user.can_login:
        print([group.cn for group in user.groups()])
"""

import logging
from typing import Any

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.utils.functional import cached_property

from .cache import EntityCache
from .client import CONNECTIVITY_CODES, DirectoryClient, LdapDirectory
from .exceptions import DirectoryOperationError
from .managers import EntityManager
from .membership import MembershipResolver
from .models import Computer, Entity, Group, User
from .registry import FieldTypeRegistry

logger = logging.getLogger("django-adorm")


def get_server_config(server: str) -> dict[str, Any]:
    """
    Return ``settings.LDAP_SERVERS[server]``.

    Raises:
        ImproperlyConfigured: the setting or the key is missing, or the
            configuration has no ``basedn`` or ``read`` entry

    """
    try:
        config = settings.LDAP_SERVERS[server]
    except AttributeError as e:
        msg = "settings.LDAP_SERVERS does not exist!"
        raise ImproperlyConfigured(msg) from e
    except KeyError as e:
        msg = f"settings.LDAP_SERVERS has no key '{server}'"
        raise ImproperlyConfigured(msg) from e
    for key in ("basedn", "read"):
        if key not in config:
            msg = f"settings.LDAP_SERVERS['{server}'] has no '{key}' key"
            raise ImproperlyConfigured(msg)
    if "write" not in config:
        config = {**config, "write": config["read"]}
    return config


class Directory:
    """
    One Active Directory domain.

    Keyword Args:
        server: the key into ``settings.LDAP_SERVERS`` to configure an
            :py:class:`~adorm.client.LdapDirectory` from.  Ignored if
            ``client`` is given.
        client: the directory client to use
        basedn: the base DN for searches; defaults to the client's
        caching: whether lookups by DN may be answered from the cache.
            Defaults to the ``cache`` key of the server configuration, or
            ``True``.
        registry: the special fields registry; defaults to the built in table
        max_depth: how many levels of nested groups recursive membership
            walks follow; ``None`` for no limit

    """

    def __init__(
        self,
        server: str = "default",
        client: DirectoryClient | None = None,
        basedn: str | None = None,
        caching: bool | None = None,
        registry: FieldTypeRegistry | None = None,
        max_depth: int | None = None,
    ) -> None:
        if client is None:
            config = get_server_config(server)
            client = LdapDirectory(config)
            if caching is None:
                caching = bool(config.get("cache", True))
        self.client: DirectoryClient = client
        self.basedn: str = basedn if basedn is not None else client.basedn
        self.registry = registry or FieldTypeRegistry()
        self.cache = EntityCache()
        self._caching = True if caching is None else caching
        self._connected = False
        self._managers: dict[type[Entity], EntityManager] = {}
        self.membership = MembershipResolver(self, max_depth=max_depth)

    # -----------------------
    # Status
    # -----------------------

    def connected(self) -> bool:
        """
        Return ``True`` if we can bind to the directory.  A successful bind
        is remembered until an operation reports the server unreachable; a
        failed one is retried on the next call.
        """
        if self._connected and self.client.last_result.code in CONNECTIVITY_CODES:
            logger.warning("adorm.connect.lost error=%s", self.error())
            self._connected = False
        if not self._connected:
            self._connected = self.client.bind()
            if not self._connected:
                logger.warning("adorm.connect.failed error=%s", self.error())
        return self._connected

    def error(self) -> str:
        """The last operation's result as ``"code: message"``."""
        result = self.client.last_result
        return f"{result.code}: {result.message}"

    def error_code(self) -> int:
        return self.client.last_result.code

    def has_error(self) -> bool:
        return self.client.last_result.code != 0

    def raise_for_error(self) -> None:
        """
        Raise :py:exc:`~adorm.exceptions.DirectoryOperationError` if the last
        operation failed.
        """
        if self.has_error():
            result = self.client.last_result
            raise DirectoryOperationError(result.code, result.message)

    # -----------------------
    # Caching
    # -----------------------

    @property
    def cache_enabled(self) -> bool:
        return self._caching

    def enable_cache(self) -> None:
        self._caching = True

    def disable_cache(self) -> None:
        self._caching = False

    def clear_cache(self) -> None:
        self.cache.clear()

    # -----------------------
    # Managers
    # -----------------------

    def manager(self, model: type[Entity]) -> EntityManager:
        """
        Return the manager for ``model``, creating it on first use.
        """
        if model not in self._managers:
            manager_class = model._meta.manager_class or EntityManager
            self._managers[model] = manager_class(self, model)
        return self._managers[model]

    @cached_property
    def entries(self) -> EntityManager:
        """Finders for entries of any class."""
        return self.manager(Entity)

    @cached_property
    def users(self) -> EntityManager:
        return self.manager(User)

    @cached_property
    def groups(self) -> EntityManager:
        return self.manager(Group)

    @cached_property
    def computers(self) -> EntityManager:
        return self.manager(Computer)

    def __repr__(self) -> str:
        return f"<Directory: {self.basedn}>"
