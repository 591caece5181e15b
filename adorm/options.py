"""
Entity class metadata.

Every :py:class:`~adorm.models.Entity` subclass has an :py:class:`Options`
instance as ``_meta``, built from its ``Meta`` inner class by the
:py:class:`~adorm.models.EntityBase` metaclass.
"""

from typing import TYPE_CHECKING

from django.utils.functional import cached_property
from django.utils.text import camel_case_to_spaces

from .filters import CLASS_FILTERS
from .registry import EntityClass

if TYPE_CHECKING:
    from ldap_filter import Filter

    from .managers import EntityManager
    from .models import Entity

#: The attributes a ``Meta`` class may set.
DEFAULT_NAMES = (
    "entity_class",
    "objectclasses",
    "manager_class",
    "verbose_name",
    "verbose_name_plural",
)


class Options:
    """
    Metadata for an entity class.

    ``Meta`` classes are merged in MRO order, so a subclass only needs to
    declare what it changes.

    Args:
        meta: the ``Meta`` class from the entity class definition

    """

    def __init__(self, meta) -> None:
        #: Which row of the special fields table applies, and which class
        #: filter scopes searches.
        self.entity_class: EntityClass = EntityClass.BASE
        #: The objectClass values written when a new record is saved.
        self.objectclasses: list[str] = ["top"]
        #: The manager class :py:class:`~adorm.directory.Directory` builds for
        #: this entity class.  ``None`` means
        #: :py:class:`~adorm.managers.EntityManager`.
        self.manager_class: type[EntityManager] | None = None
        self.verbose_name: str | None = None
        self.verbose_name_plural: str | None = None

        #: These are set up by :py:meth:`contribute_to_class`.
        self.model_name: str | None = None
        self.object_name: str | None = None
        self.model: type[Entity] | None = None
        self.meta = meta

    def contribute_to_class(self, cls: type["Entity"], name: str) -> None:
        """
        Attach ourselves to ``cls`` as ``name`` and apply ``Meta`` settings,
        walking the MRO so that parent ``Meta`` classes are inherited.

        Raises:
            TypeError: a ``Meta`` class sets an attribute we do not know about

        """
        cls._meta = self  # type: ignore[assignment]
        self.model = cls
        self.object_name = cls.__name__
        self.model_name = self.object_name.lower()
        self.verbose_name = camel_case_to_spaces(self.object_name)

        metas = []
        for klass in reversed(cls.__mro__):
            meta = klass.__dict__.get("Meta")
            if meta is not None:
                metas.append(meta)
        for meta in metas:
            for attr_name, value in meta.__dict__.items():
                if attr_name.startswith("_"):
                    continue
                if attr_name not in DEFAULT_NAMES:
                    msg = f"'class Meta' got invalid attribute(s): {attr_name}"
                    raise TypeError(msg)
                setattr(self, attr_name, value)
        if self.verbose_name_plural is None:
            self.verbose_name_plural = f"{self.verbose_name}s"

    @cached_property
    def class_filter(self) -> "Filter":
        """The filter ANDed into every search for this entity class."""
        return CLASS_FILTERS[self.entity_class]

    def __repr__(self) -> str:
        return f"<Options for {self.object_name}>"
