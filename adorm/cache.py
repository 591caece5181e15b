"""
The DN-keyed entity cache.

Resolved entities are remembered by DN so that repeated lookups by exact DN,
which membership traversal does a lot of, do not go back to the directory.
The cache has no TTL and never evicts; call :py:meth:`EntityCache.clear` or
:py:meth:`EntityCache.invalidate` when entries must be re-read.
"""

import logging
import threading
from collections.abc import Iterable
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .models import Entity

logger = logging.getLogger("django-adorm")


class EntityCache:
    """
    A thread-safe DN → entity map.  DNs are compared case-insensitively.
    """

    def __init__(self) -> None:
        self._entries: dict[str, Entity] = {}
        self._lock = threading.RLock()

    @staticmethod
    def key(dn: str) -> str:
        return dn.lower()

    def lookup(self, dn: str) -> Optional["Entity"]:
        """
        Return the entity cached for ``dn``, or ``None``.
        """
        with self._lock:
            return self._entries.get(self.key(dn))

    def lookup_all(
        self, dns: Iterable[str], expected_type: type["Entity"]
    ) -> list["Entity"] | None:
        """
        Return the cached entities for every DN in ``dns``, in order, if and
        only if each one is cached and is an instance of ``expected_type``.
        Otherwise return ``None``: partial hits are not served.
        """
        results = []
        with self._lock:
            for dn in dns:
                entity = self._entries.get(self.key(dn))
                if entity is None or not isinstance(entity, expected_type):
                    return None
                results.append(entity)
        return results

    def store(self, dn: str, entity: "Entity") -> None:
        with self._lock:
            self._entries[self.key(dn)] = entity

    def invalidate(self, dn: str) -> None:
        """Forget the entity cached for ``dn``, if any."""
        with self._lock:
            self._entries.pop(self.key(dn), None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.debug("adorm.cache.cleared")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, dn: object) -> bool:
        if not isinstance(dn, str):
            return False
        with self._lock:
            return self.key(dn) in self._entries
