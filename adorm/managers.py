"""
Finding entities.

:py:class:`EntityManager` is the query interface for one entity class in one
:py:class:`~adorm.directory.Directory`.  It compiles attribute maps into
search filters, runs them through the directory client, and hands the results
to an :py:class:`EntityResolver` to be turned into entities and cached.
"""

import logging
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any, cast

from adorm import ldap

from .exceptions import InvalidFinder
from .filters import FilterBuilder
from .finders import CARDINALITIES, is_finder_name, parse_finder_spec
from .models import Entity, RawEntry
from .typing import FilterMap, LDAPData

if TYPE_CHECKING:
    from .directory import Directory

logger = logging.getLogger("django-adorm")

#: The filter key that marks a lookup by exact DN.
DN_KEY = "distinguishedname"


class EntityResolver:
    """
    Turns search results into entities of one class.

    Every entity produced is stored in the directory's cache, except plain
    :py:class:`~adorm.models.Entity` instances: an untyped result must not
    stand in for a typed one later.

    Args:
        directory: the directory the entities belong to
        model: the entity class to produce

    """

    def __init__(self, directory: "Directory", model: type[Entity]) -> None:
        self.directory = directory
        self.model = model

    def entry(self, data: LDAPData) -> RawEntry:
        return RawEntry.from_ldap(data, self.directory.registry.binary_attribute_names())

    def resolve(self, data: Iterable[LDAPData]) -> list[Entity]:
        """
        Build an entity of our class for each search result.
        """
        entities = []
        for item in data:
            entity = self.model(self.directory, entry=self.entry(item))
            if self.model is not Entity:
                self.directory.cache.store(cast("str", entity.dn), entity)
            entities.append(entity)
        return entities

    def resolve_one(self, data: list[LDAPData]) -> Entity | None:
        """
        Build an entity from the first search result, or return ``None`` if
        there are no results.
        """
        if not data:
            return None
        return self.resolve(data[:1])[0]


class EntityManager:
    """
    Finders for one entity class.

    Besides :py:meth:`find` and its shortcuts, the manager answers dynamic
    finder names::

        directory.users.find_by_samaccountname("jhunt")
        directory.users.find_all_by_sn_and_givenname("Hunt", "James")
        directory.groups.find_first_by_cn("Admins")

    Attribute values may contain ``*`` wildcards.

    Args:
        directory: the directory to search
        model: the entity class to produce

    """

    def __init__(self, directory: "Directory", model: type[Entity]) -> None:
        self.logger = logger
        self.directory = directory
        self.model = model
        self.builder = FilterBuilder(
            directory.registry,
            model._meta.entity_class,
            class_filter=model._meta.class_filter,
        )
        self.resolver = EntityResolver(directory, model)

    def basedn(self, container: str | None = None) -> str:
        """
        Return the search base: ``container`` (an RDN sequence such as
        ``ou=Staff``) prepended to the directory's base DN.
        """
        return ",".join(p for p in (container, self.directory.basedn) if p)

    def find_cached(self, cardinality: str, filters: FilterMap) -> Any:
        """
        Answer a lookup by exact DN from the cache.

        Only a filter whose single key is ``distinguishedName`` qualifies, and
        only when every DN asked for is cached as an instance of our class.

        Returns:
            The cached result, or ``None`` if the directory must be searched.

        """
        if not self.directory.cache_enabled:
            return None
        if len(filters) != 1:
            return None
        key, value = next(iter(filters.items()))
        if key.lower() != DN_KEY:
            return None
        dns = list(value) if isinstance(value, (list, tuple)) else [value]
        if not all(isinstance(dn, str) for dn in dns):
            return None
        entities = self.directory.cache.lookup_all(dns, self.model)
        if entities is None:
            return None
        self.logger.debug(
            "adorm.cache.hit model=%s dns=%d", self.model.__name__, len(dns)
        )
        if cardinality == "first":
            return entities[0] if entities else None
        return entities

    def find(
        self,
        cardinality: str,
        filters: FilterMap | None = None,
        in_: str | None = None,
        **kwargs: Any,
    ) -> Any:
        """
        Search for entities of our class.

        Args:
            cardinality: ``"all"`` for a list of every match, ``"first"`` for
                the first match or ``None``
            filters: attribute name to expected value, or list of acceptable
                values.  An ``in`` key is taken as ``in_``.

        Keyword Args:
            in_: the container to search, relative to the base DN
            **kwargs: more attribute filters

        Raises:
            InvalidFinder: ``cardinality`` is neither ``"all"`` nor ``"first"``

        Returns:
            The result, or ``False`` if the directory is not connected.

        """
        if cardinality not in CARDINALITIES:
            msg = f"Invalid specifier '{cardinality}' passed to find() (not 'all', and not 'first')"
            raise InvalidFinder(msg)
        if not self.directory.connected():
            return False
        attributes: dict[str, Any] = dict(filters or {})
        attributes.update(kwargs)
        container = attributes.pop("in", None) or in_

        cached = self.find_cached(cardinality, attributes)
        if cached is not None:
            return cached
        if self._is_empty_dn_lookup(attributes):
            return [] if cardinality == "all" else None

        expression = self.builder.build_for_class(attributes)
        data = self.directory.client.search(expression, self.basedn(container))
        if cardinality == "first":
            return self.resolver.resolve_one(data)
        return self.resolver.resolve(data)

    @staticmethod
    def _is_empty_dn_lookup(attributes: dict[str, Any]) -> bool:
        if len(attributes) != 1:
            return False
        key, value = next(iter(attributes.items()))
        return key.lower() == DN_KEY and isinstance(value, (list, tuple)) and not value

    def all(self, filters: FilterMap | None = None, **kwargs: Any) -> Any:
        return self.find("all", filters, **kwargs)

    def first(self, filters: FilterMap | None = None, **kwargs: Any) -> Any:
        return self.find("first", filters, **kwargs)

    def exists(
        self, filters: FilterMap | None = None, in_: str | None = None, **kwargs: Any
    ) -> bool:
        """
        Return ``True`` if any entry of our class matches the filters.
        """
        if not self.directory.connected():
            return False
        attributes: dict[str, Any] = dict(filters or {})
        attributes.update(kwargs)
        container = attributes.pop("in", None) or in_
        expression = self.builder.build_for_class(attributes)
        return bool(self.directory.client.search(expression, self.basedn(container)))

    def fetch_entry(self, dn: str) -> RawEntry | None:
        """
        Read the entry at ``dn`` with a base scoped search, bypassing the
        cache.
        """
        data = self.directory.client.search(
            self.builder.build_for_class(None),
            dn,
            scope=ldap.SCOPE_BASE,  # type: ignore[attr-defined]
        )
        if not data:
            return None
        return self.resolver.entry(data[0])

    def get_by_dn(self, dn: str) -> Entity | None:
        """
        Return the entity at ``dn``, from the cache if possible.

        Returns:
            The entity, or ``None`` if there is no such entry.

        """
        cached = self.find_cached("first", {DN_KEY: dn})
        if cached is not None:
            return cached
        entry = self.fetch_entry(dn)
        if entry is None:
            return None
        entity = self.model(self.directory, entry=entry)
        if self.model is not Entity:
            self.directory.cache.store(cast("str", entity.dn), entity)
        return entity

    def create(self, dn: str, attributes: dict[str, Any]) -> Entity | None:
        """
        Create a new entry of our class.

        Args:
            dn: where to create it
            attributes: its initial attribute values

        Returns:
            The new entity, or ``None`` if the directory refused it.

        """
        entity = self.model(self.directory, attributes=attributes, dn=dn)
        if not entity.save():
            self.logger.warning(
                "adorm.create.failed dn=%s error=%s", dn, self.directory.error()
            )
            return None
        return entity

    def __getattr__(self, name: str) -> Callable[..., Any]:
        if not is_finder_name(name):
            raise AttributeError(name)
        spec = parse_finder_spec(name)

        def finder(*args: Any) -> Any:
            return self.find(spec.cardinality, spec.bind(args))

        finder.__name__ = name
        return finder

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self.model.__name__}>"
