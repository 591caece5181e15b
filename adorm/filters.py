"""
Building LDAP search filters from attribute maps.

Finders take a mapping of attribute name to expected value (or list of
acceptable values).  :py:class:`FilterBuilder` turns that into an
:py:class:`ldap_filter.Filter` tree, passing every value through the
attribute's codec first so that, for example, an ``objectGUID`` given as hex
is searched for as the bytes AD actually stores.
"""

from typing import Any

from ldap_filter import Filter

from .registry import EntityClass, FieldTypeRegistry

#: A filter that matches every entry with a ``cn``.  Used wherever a filter is
#: required but nothing should be filtered out.
NIL_FILTER = Filter.attribute("cn").present()

#: Matches nothing.  An empty list of acceptable values compiles to this.
EMPTY_FILTER = Filter.NOT(NIL_FILTER)

#: The objectClass filter ANDed into every search for an entity class.
CLASS_FILTERS = {
    EntityClass.BASE: NIL_FILTER,
    EntityClass.USER: Filter.AND(
        [
            Filter.attribute("objectClass").equal_to("user"),
            Filter.NOT(Filter.attribute("objectClass").equal_to("computer")),
        ]
    ),
    EntityClass.GROUP: Filter.attribute("objectClass").equal_to("group"),
    EntityClass.COMPUTER: Filter.attribute("objectClass").equal_to("computer"),
}

# Characters that would break the filter syntax.  ``*`` is left alone so that
# wildcards in values reach the server.
_ESCAPES = {"\\": r"\5c", "(": r"\28", ")": r"\29", "\x00": r"\00"}


def escape_value(value: Any) -> str:
    """
    Render a value for use in an equality filter.

    Bytes are written entirely as ``\\xx`` escapes.  Strings keep ``*``
    wildcards and only have ``\\``, ``(``, ``)`` and NUL escaped.

    Args:
        value: the already encoded value

    Returns:
        The filter-safe string.

    """
    if isinstance(value, (bytes, bytearray)):
        return "".join(f"\\{b:02x}" for b in value)
    return "".join(_ESCAPES.get(c, c) for c in str(value))


def is_nil(expression: Filter) -> bool:
    """Return ``True`` if ``expression`` is the neutral filter."""
    return expression is NIL_FILTER or (
        expression.to_string() == NIL_FILTER.to_string()
    )


class FilterBuilder:
    """
    Compiles attribute maps into filter expressions for one entity class.

    Args:
        registry: where to look up attribute codecs
        entity_class: the entity class whose codecs apply

    Keyword Args:
        class_filter: the filter :py:meth:`build_for_class` ANDs in; defaults
            to the one in :py:data:`CLASS_FILTERS` for ``entity_class``

    """

    def __init__(
        self,
        registry: FieldTypeRegistry,
        entity_class: EntityClass = EntityClass.BASE,
        class_filter: Filter | None = None,
    ) -> None:
        self.registry = registry
        self.entity_class = entity_class
        self.class_filter: Filter = (
            class_filter if class_filter is not None else CLASS_FILTERS[entity_class]
        )

    def encode(self, name: str, value: Any) -> Any:
        """
        Encode ``value`` with the codec for ``name``, if it has one.
        """
        codec = self.registry.codec_for(self.entity_class, name)
        if codec is None:
            return value
        return codec.encode(value)

    def leaf(self, name: str, value: Any) -> Filter:
        """
        Build a single ``(name=value)`` equality filter.  DN-array codecs
        encode a single value to a one element list, which is unwrapped here.
        """
        encoded = self.encode(name, value)
        if isinstance(encoded, list):
            if len(encoded) != 1:
                return self.any_of(name, encoded, encoded=True)
            encoded = encoded[0]
        return Filter.attribute(name).raw(escape_value(encoded))

    def any_of(self, name: str, values: Any, encoded: bool = False) -> Filter:
        """
        Build the OR of an equality filter for each of ``values``.
        """
        if encoded:
            leaves = [Filter.attribute(name).raw(escape_value(v)) for v in values]
        else:
            leaves = [self.leaf(name, v) for v in values]
        if not leaves:
            return EMPTY_FILTER
        if len(leaves) == 1:
            return leaves[0]
        return Filter.OR(leaves)

    def make_filter(self, name: str, value: Any) -> Filter:
        """
        Build the sub-filter for one attribute: an OR of its values if
        ``value`` is a list, otherwise a single equality filter.
        """
        if isinstance(value, (list, tuple, set, frozenset)):
            return self.any_of(name, list(value))
        return self.leaf(name, value)

    def build(self, attributes: dict[str, Any] | None) -> Filter:
        """
        Compile an attribute map into a filter.

        Every attribute's sub-filter is ANDed onto :py:data:`NIL_FILTER`, so
        an empty or missing map produces exactly :py:data:`NIL_FILTER`.

        Args:
            attributes: attribute name to value or list of values

        Returns:
            The filter expression.

        """
        if not attributes:
            return NIL_FILTER
        return Filter.AND(
            [NIL_FILTER]
            + [self.make_filter(name, value) for name, value in attributes.items()]
        )

    @staticmethod
    def scope(expression: Filter, class_filter: Filter) -> Filter:
        """
        AND ``class_filter`` onto ``expression`` unless it is the neutral
        filter.
        """
        if is_nil(class_filter):
            return expression
        return Filter.AND([expression, class_filter])

    def build_for_class(self, attributes: dict[str, Any] | None) -> Filter:
        """
        :py:meth:`build` followed by :py:meth:`scope` with the builder's
        class filter.
        """
        return self.scope(self.build(attributes), self.class_filter)
