import threading
import unittest

from adorm.cache import EntityCache
from adorm.directory import Directory
from adorm.models import Entity, Group, RawEntry, User

from .fakes import FakeDirectoryClient


class TestEntityCache(unittest.TestCase):
    def setUp(self):
        self.directory = Directory(client=FakeDirectoryClient())
        self.cache = EntityCache()
        self.user = User(self.directory, entry=RawEntry("cn=A,dc=example,dc=com", {}))
        self.group = Group(self.directory, entry=RawEntry("cn=G,dc=example,dc=com", {}))

    def test_lookup_is_case_insensitive(self):
        self.cache.store("cn=A,dc=example,dc=com", self.user)
        self.assertIs(self.cache.lookup("CN=a,DC=Example,DC=com"), self.user)
        self.assertIn("cn=a,dc=example,dc=com", self.cache)
        self.assertIsNone(self.cache.lookup("cn=B,dc=example,dc=com"))

    def test_lookup_all(self):
        self.cache.store(self.user.dn, self.user)
        self.cache.store(self.group.dn, self.group)
        self.assertEqual(
            self.cache.lookup_all([self.user.dn, self.group.dn], Entity),
            [self.user, self.group],
        )

    def test_lookup_all_is_all_or_nothing(self):
        self.cache.store(self.user.dn, self.user)
        self.assertIsNone(
            self.cache.lookup_all([self.user.dn, "cn=B,dc=example,dc=com"], User)
        )

    def test_lookup_all_checks_type(self):
        self.cache.store(self.user.dn, self.user)
        self.cache.store(self.group.dn, self.group)
        self.assertIsNone(self.cache.lookup_all([self.user.dn, self.group.dn], User))

    def test_invalidate_and_clear(self):
        self.cache.store(self.user.dn, self.user)
        self.cache.store(self.group.dn, self.group)
        self.cache.invalidate("CN=A,DC=EXAMPLE,DC=COM")
        self.assertEqual(len(self.cache), 1)
        self.cache.invalidate("cn=nothing")
        self.cache.clear()
        self.assertEqual(len(self.cache), 0)

    def test_concurrent_stores(self):
        def store(n):
            for i in range(200):
                dn = f"cn=user{n}-{i},dc=example,dc=com"
                self.cache.store(dn, User(self.directory, entry=RawEntry(dn, {})))

        threads = [threading.Thread(target=store, args=(n,)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        self.assertEqual(len(self.cache), 800)
