import unittest

from adorm import ldap
from adorm.directory import Directory
from adorm.exceptions import FinderArityError, InvalidFinder
from adorm.models import Computer, Entity, Group, User

from .fakes import (
    ADMINS,
    ASMITH,
    BHUNT,
    JHUNT,
    JHUNT_GUID,
    OPS,
    WS01,
    FakeDirectoryClient,
    populate,
)


class ManagerTestCase(unittest.TestCase):
    def setUp(self):
        self.client = populate(FakeDirectoryClient())
        self.directory = Directory(client=self.client)


class TestFind(ManagerTestCase):
    def test_find_all(self):
        users = self.directory.users.find("all", {"sn": "Hunt"})
        self.assertEqual(sorted(u.dn for u in users), sorted([JHUNT, BHUNT]))
        self.assertTrue(all(isinstance(u, User) for u in users))

    def test_find_first(self):
        user = self.directory.users.find("first", {"samaccountname": "jhunt"})
        self.assertIsInstance(user, User)
        self.assertEqual(user.dn, JHUNT)

    def test_find_first_no_match(self):
        self.assertIsNone(self.directory.users.first(samaccountname="nobody"))
        self.assertEqual(self.directory.users.all(samaccountname="nobody"), [])

    def test_kwargs_and_filters_combine(self):
        users = self.directory.users.all({"sn": "Hunt"}, givenName="Bob")
        self.assertEqual([u.dn for u in users], [BHUNT])

    def test_list_values(self):
        users = self.directory.users.all(sn=["Hunt", "Smith"])
        self.assertEqual(len(users), 3)

    def test_wildcards(self):
        users = self.directory.users.all(givenName="J*")
        self.assertEqual([u.dn for u in users], [JHUNT])

    def test_binary_values_are_encoded(self):
        user = self.directory.users.first(objectGUID=JHUNT_GUID)
        self.assertEqual(user.dn, JHUNT)

    def test_class_filters(self):
        self.assertEqual(
            sorted(u.dn for u in self.directory.users.all()),
            sorted([JHUNT, ASMITH, BHUNT]),
        )
        self.assertEqual(
            sorted(g.dn for g in self.directory.groups.all()), sorted([ADMINS, OPS])
        )
        computers = self.directory.computers.all()
        self.assertEqual([c.dn for c in computers], [WS01])
        self.assertIsInstance(computers[0], Computer)
        self.assertEqual(len(self.directory.entries.all()), 6)

    def test_search_text(self):
        self.directory.users.all(sn=["Hunt", "Smith"])
        text, base, scope = self.client.searches[-1]
        self.assertEqual(
            text,
            "(&(&(cn=*)(|(sn=Hunt)(sn=Smith)))"
            "(&(objectClass=user)(!(objectClass=computer))))",
        )
        self.assertEqual(base, "dc=example,dc=com")
        self.assertEqual(scope, ldap.SCOPE_SUBTREE)

    def test_in_container(self):
        users = self.directory.users.all(sn="Hunt", in_="ou=Staff")
        self.assertEqual([u.dn for u in users], [JHUNT])
        self.assertEqual(self.client.searches[-1][1], "ou=staff,dc=example,dc=com")

    def test_in_key(self):
        users = self.directory.users.find("all", {"sn": "Hunt", "in": "ou=Contractors"})
        self.assertEqual([u.dn for u in users], [BHUNT])
        self.assertNotIn("(in=", self.client.searches[-1][0])

    def test_invalid_cardinality(self):
        with self.assertRaises(InvalidFinder):
            self.directory.users.find("some", {"sn": "Hunt"})

    def test_not_connected(self):
        directory = Directory(client=FakeDirectoryClient(bind_ok=False))
        self.assertIs(directory.users.find("all", {"sn": "Hunt"}), False)
        self.assertIs(directory.users.first(sn="Hunt"), False)
        self.assertFalse(directory.users.exists(sn="Hunt"))
        self.assertEqual(directory.error(), "-1: Can't contact LDAP server")

    def test_connection_is_remembered(self):
        self.directory.users.all()
        self.directory.users.all()
        self.assertEqual(self.client.binds, 1)

    def test_exists(self):
        self.assertTrue(self.directory.users.exists(sn="Hunt"))
        self.assertFalse(self.directory.users.exists({"sn": "Nobody"}))
        self.assertFalse(self.directory.groups.exists(samaccountname="jhunt"))

    def test_exists_in_container(self):
        self.assertTrue(self.directory.users.exists(sn="Hunt", in_="ou=Contractors"))
        text, base, _ = self.client.searches[-1]
        self.assertEqual(base, "ou=contractors,dc=example,dc=com")
        self.assertNotIn("in_=", text)
        self.assertFalse(self.directory.users.exists(sn="Smith", in_="ou=Contractors"))

    def test_builder_uses_meta_class_filter(self):
        self.assertIs(self.directory.users.builder.class_filter, User._meta.class_filter)
        self.assertIs(
            self.directory.groups.builder.class_filter, Group._meta.class_filter
        )

    def test_lost_connection(self):
        self.assertTrue(self.directory.users.exists(sn="Hunt"))
        self.client.server_down = True
        self.assertEqual(self.directory.users.all(sn="Hunt"), [])
        self.assertEqual(self.directory.error(), "-1: Can't contact LDAP server")
        self.assertIs(self.directory.users.all(sn="Hunt"), False)
        self.assertFalse(self.directory.connected())
        self.client.server_down = False
        self.assertEqual(len(self.directory.users.all(sn="Hunt")), 2)
        self.assertEqual(self.client.binds, 4)

    def test_empty_dn_list(self):
        self.assertEqual(self.directory.users.all(distinguishedname=[]), [])
        self.assertEqual(self.client.searches, [])


class TestCaching(ManagerTestCase):
    def test_results_are_cached(self):
        self.directory.users.all(sn="Hunt")
        self.assertIn(JHUNT, self.directory.cache)
        self.assertIn(BHUNT, self.directory.cache)

    def test_base_entities_are_not_cached(self):
        self.directory.entries.all()
        self.assertEqual(len(self.directory.cache), 0)

    def test_dn_lookup_served_from_cache(self):
        self.directory.users.all(sn="Hunt")
        self.client.reset_calls()
        users = self.directory.users.all(distinguishedname=[JHUNT, BHUNT])
        self.assertEqual([u.dn for u in users], [JHUNT, BHUNT])
        user = self.directory.users.first(distinguishedName=JHUNT)
        self.assertEqual(user.dn, JHUNT)
        self.assertEqual(self.client.searches, [])

    def test_partial_hit_goes_to_directory(self):
        cached = self.directory.users.first(samaccountname="jhunt")
        self.client.reset_calls()
        users = self.directory.users.all(distinguishedname=[JHUNT, ASMITH])
        self.assertEqual(len(self.client.searches), 1)
        self.assertIn("distinguishedname=" + JHUNT, self.client.searches[0][0])
        self.assertIn("distinguishedname=" + ASMITH, self.client.searches[0][0])
        self.assertEqual(sorted(u.dn for u in users), sorted([JHUNT, ASMITH]))
        self.assertIsNot(users[0], cached)

    def test_wrong_type_goes_to_directory(self):
        self.directory.users.first(samaccountname="jhunt")
        self.client.reset_calls()
        self.assertEqual(self.directory.groups.all(distinguishedname=[JHUNT]), [])
        self.assertEqual(len(self.client.searches), 1)

    def test_base_manager_accepts_typed_cache_entries(self):
        self.directory.users.first(samaccountname="jhunt")
        self.client.reset_calls()
        entries = self.directory.entries.all(distinguishedname=[JHUNT])
        self.assertIsInstance(entries[0], User)
        self.assertEqual(self.client.searches, [])

    def test_other_filters_bypass_cache(self):
        self.directory.users.first(samaccountname="jhunt")
        self.client.reset_calls()
        self.directory.users.all(distinguishedname=JHUNT, sn="Hunt")
        self.assertEqual(len(self.client.searches), 1)

    def test_disabled_cache(self):
        self.directory.users.first(samaccountname="jhunt")
        self.directory.disable_cache()
        self.assertFalse(self.directory.cache_enabled)
        self.client.reset_calls()
        self.directory.users.all(distinguishedname=[JHUNT])
        self.assertEqual(len(self.client.searches), 1)
        self.directory.enable_cache()
        self.directory.users.all(distinguishedname=[JHUNT])
        self.assertEqual(len(self.client.searches), 1)

    def test_clear_cache(self):
        self.directory.users.all()
        self.directory.clear_cache()
        self.assertEqual(len(self.directory.cache), 0)

    def test_get_by_dn(self):
        group = self.directory.groups.get_by_dn(ADMINS)
        self.assertIsInstance(group, Group)
        self.assertEqual(self.client.searches[-1][1:], (ADMINS.lower(), ldap.SCOPE_BASE))
        self.client.reset_calls()
        self.assertIs(self.directory.groups.get_by_dn(ADMINS.upper()), group)
        self.assertEqual(self.client.searches, [])

    def test_get_by_dn_missing_or_wrong_class(self):
        self.assertIsNone(self.directory.groups.get_by_dn("cn=Nope,dc=example,dc=com"))
        self.assertIsNone(self.directory.groups.get_by_dn(JHUNT))


class TestDynamicFinders(ManagerTestCase):
    def test_find_by(self):
        user = self.directory.users.find_by_samaccountname("jhunt")
        self.assertEqual(user.dn, JHUNT)

    def test_find_all_by(self):
        users = self.directory.users.find_all_by_sn_and_givenname("Hunt", "Bob")
        self.assertEqual([u.dn for u in users], [BHUNT])

    def test_find_first_by(self):
        group = self.directory.groups.find_first_by_cn("Ops")
        self.assertEqual(group.dn, OPS)

    def test_arity(self):
        with self.assertRaises(FinderArityError):
            self.directory.users.find_first_by_sn_and_givenname("Hunt")
        self.assertEqual(self.client.searches, [])

    def test_bad_cardinality(self):
        with self.assertRaises(InvalidFinder):
            self.directory.users.find_some_by_sn("Hunt")

    def test_other_names_are_attribute_errors(self):
        with self.assertRaises(AttributeError):
            self.directory.users.frobnicate  # noqa: B018
        self.assertFalse(hasattr(self.directory.users, "search_by_sn"))


class TestCreate(ManagerTestCase):
    def test_create(self):
        dn = "cn=New Person,ou=Staff,dc=example,dc=com"
        user = self.directory.users.create(dn, {"sAMAccountName": "newp", "sn": "Person"})
        self.assertIsInstance(user, User)
        self.assertFalse(user.new_record)
        self.assertEqual(user.sn, "Person")
        self.assertEqual(self.client.added, [dn])
        self.assertEqual(
            self.client.entries[dn.lower()][1]["objectclass"],
            [b"top", b"person", b"organizationalPerson", b"user"],
        )
        self.assertEqual(self.directory.users.find_by_samaccountname("newp").dn, dn)

    def test_create_failure(self):
        self.assertIsNone(self.directory.users.create(JHUNT, {"sn": "Again"}))
        self.assertTrue(self.directory.has_error())


class TestResolver(ManagerTestCase):
    def test_resolve(self):
        resolver = self.directory.users.resolver
        data = self.client.search("(sAMAccountName=jhunt)")
        entities = resolver.resolve(data)
        self.assertEqual(len(entities), 1)
        self.assertIs(self.directory.cache.lookup(JHUNT), entities[0])

    def test_resolve_one(self):
        resolver = self.directory.groups.resolver
        self.assertIsNone(resolver.resolve_one([]))

    def test_resolve_untyped(self):
        resolver = self.directory.entries.resolver
        entities = resolver.resolve(self.client.search("(cn=*)"))
        self.assertEqual(len(entities), 6)
        self.assertTrue(all(type(e) is Entity for e in entities))
        self.assertEqual(len(self.directory.cache), 0)
