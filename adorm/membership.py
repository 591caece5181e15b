"""
Walking group membership.

Groups list their members in ``member``, and every member lists the groups it
belongs to in ``memberOf``.  :py:class:`MembershipResolver` follows those
edges, optionally through nested groups.  Nested walks remember which groups
they have visited, so a group that (directly or indirectly) contains itself
does not loop forever.
"""

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .directory import Directory
    from .managers import EntityManager
    from .models import Entity, Group, User

logger = logging.getLogger("django-adorm")


def dedupe(entities: Iterable["Entity"]) -> list[Any]:
    """
    Drop entities whose DN we have already seen, keeping first-seen order.
    """
    seen: set[str] = set()
    results = []
    for entity in entities:
        key = (entity.dn or "").lower()
        if key in seen:
            continue
        seen.add(key)
        results.append(entity)
    return results


class MembershipResolver:
    """
    Computes direct and nested group relationships.

    Args:
        directory: the directory to resolve DNs in

    Keyword Args:
        max_depth: how many levels of nested groups recursive walks follow.
            ``None`` means no limit.

    """

    def __init__(self, directory: "Directory", max_depth: int | None = None) -> None:
        self.directory = directory
        self.max_depth = max_depth

    def _find(self, manager: "EntityManager", dns: Iterable[Any]) -> list[Any]:
        dns = [str(dn) for dn in dns]
        if not dns:
            return []
        return manager.all(distinguishedname=dns) or []

    def direct_member_groups(self, group: "Entity") -> list["Group"]:
        return dedupe(self._find(self.directory.groups, group.raw_values("member")))

    def nested_groups(self, group: "Entity") -> list["Group"]:
        """
        Return every group nested in ``group``, depth first, each once.
        ``group`` itself is never included.
        """
        visited = {(group.dn or "").lower()}
        results: list[Group] = []
        stack: list[tuple[Entity, int]] = [(group, 0)]
        while stack:
            current, depth = stack.pop()
            if self.max_depth is not None and depth >= self.max_depth:
                continue
            children = []
            for child in self.direct_member_groups(current):
                key = (child.dn or "").lower()
                if key in visited:
                    logger.debug(
                        "adorm.membership.revisit group=%s child=%s", current.dn, child.dn
                    )
                    continue
                visited.add(key)
                results.append(child)
                children.append((child, depth + 1))
            # reversed so that the first child is walked first
            stack.extend(reversed(children))
        return results

    def member_groups(self, group: "Entity", recursive: bool = False) -> list["Group"]:
        """
        Return the groups that are members of ``group``.

        Args:
            group: the group to look in

        Keyword Args:
            recursive: also return the groups nested in those groups

        """
        if not recursive:
            return self.direct_member_groups(group)
        return self.nested_groups(group)

    def member_users(self, group: "Entity", recursive: bool = False) -> list["User"]:
        """
        Return the users that are members of ``group``.

        Args:
            group: the group to look in

        Keyword Args:
            recursive: also return the users of the groups nested in ``group``

        Returns:
            Users, each once, in the order first found.

        """
        users = list(self._find(self.directory.users, group.raw_values("member")))
        if recursive:
            for subgroup in self.nested_groups(group):
                users.extend(
                    self._find(self.directory.users, subgroup.raw_values("member"))
                )
        return dedupe(users)

    def groups(self, entity: "Entity") -> list["Group"]:
        """
        Return the groups ``entity`` directly belongs to, from its
        ``memberOf``.
        """
        return dedupe(self._find(self.directory.groups, entity.raw_values("memberof")))

    def is_member(self, group: "Entity", entity: "Entity") -> bool:
        """
        Return ``True`` if ``entity`` is a direct member of ``group``.

        The answer comes from ``entity``'s ``memberOf``, not from ``group``'s
        ``member``, so no search is needed.
        """
        if group.dn is None:
            return False
        target = group.dn.lower()
        return any(str(dn).lower() == target for dn in entity.raw_values("memberof"))
