"""
Type aliases for the data that moves between ``adorm`` and the directory.
"""

#: A search result as python-ldap returns it: ``(dn, {attribute: [values]})``
LDAPData = tuple[str, dict[str, list[bytes]]]
#: One modify operation: ``("add" | "replace" | "delete", attribute, values)``
Operation = tuple[str, str, list[bytes | str] | None]
Operations = list[Operation]
#: python-ldap modlist entries
ModifyModList = list[tuple[int, str, list[bytes] | None]]
AddModlist = list[tuple[str, list[bytes]]]
#: An attribute filter map as accepted by the finders
FilterMap = dict[str, object]
