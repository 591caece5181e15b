"""
Parsing dynamic finder names.

Managers answer calls such as ``users.find_first_by_sn_and_givenname("Hunt",
"James")`` by parsing the method name into a :py:class:`FinderSpec`.
"""

import re
from typing import Any, NamedTuple

from .exceptions import FinderArityError, InvalidFinder

#: The cardinalities a finder can have.
CARDINALITIES = ("all", "first")

FINDER_RE = re.compile(r"^find_(?:(?P<cardinality>[a-z]+)_)?by_(?P<attributes>.+)$")


class FinderSpec(NamedTuple):
    """A parsed finder name."""

    #: ``"all"`` or ``"first"``
    cardinality: str
    #: attribute names, in the order the finder's arguments must follow
    attributes: tuple[str, ...]

    def bind(self, args: tuple[Any, ...] | list[Any]) -> dict[str, Any]:
        """
        Pair the finder's attributes with call arguments.

        Args:
            args: positional arguments of the finder call

        Raises:
            FinderArityError: the number of arguments does not match

        Returns:
            An attribute filter map.

        """
        if len(args) != len(self.attributes):
            msg = (
                f"find: Wrong number of arguments ({len(args)} for "
                f"{len(self.attributes)})"
            )
            raise FinderArityError(msg)
        return dict(zip(self.attributes, args, strict=True))


def is_finder_name(name: str) -> bool:
    return name.startswith("find_")


def parse_finder_spec(name: str) -> FinderSpec:
    """
    Parse ``find_{all|first}_by_{attr}_and_{attr}...``.  ``find_by_...`` is
    shorthand for ``find_first_by_...``.

    Args:
        name: the method name

    Raises:
        InvalidFinder: ``name`` is not a finder name, or names an unknown
            cardinality

    """
    match = FINDER_RE.match(name)
    if not match:
        msg = f"'{name}' is not a finder name"
        raise InvalidFinder(msg)
    cardinality = match.group("cardinality") or "first"
    if cardinality not in CARDINALITIES:
        msg = f"Invalid specifier '{cardinality}' (not 'all', and not 'first')"
        raise InvalidFinder(msg)
    attributes = tuple(match.group("attributes").split("_and_"))
    if any(not attribute for attribute in attributes):
        msg = f"'{name}' names an empty attribute"
        raise InvalidFinder(msg)
    return FinderSpec(cardinality, attributes)
