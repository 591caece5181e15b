import unittest

from adorm.directory import Directory
from adorm.membership import dedupe
from adorm.models import Entity, RawEntry

from .fakes import ADMINS, ASMITH, BHUNT, JHUNT, OPS, FakeDirectoryClient, populate

ALPHA = "cn=Alpha,ou=Groups,dc=example,dc=com"
BRAVO = "cn=Bravo,ou=Groups,dc=example,dc=com"
CHARLIE = "cn=Charlie,ou=Groups,dc=example,dc=com"


class MembershipTestCase(unittest.TestCase):
    def setUp(self):
        self.client = populate(FakeDirectoryClient())
        self.directory = Directory(client=self.client)

    def group(self, cn):
        return self.directory.groups.find_by_cn(cn)

    def user(self, sam):
        return self.directory.users.find_by_samaccountname(sam)


class TestDedupe(unittest.TestCase):
    def test_keeps_first_seen(self):
        directory = Directory(client=FakeDirectoryClient())
        a = Entity(directory, entry=RawEntry("cn=A,dc=example,dc=com", {}))
        b = Entity(directory, entry=RawEntry("cn=B,dc=example,dc=com", {}))
        again = Entity(directory, entry=RawEntry("CN=a,DC=example,DC=com", {}))
        self.assertEqual(dedupe([a, b, again, b]), [a, b])


class TestDirectMembership(MembershipTestCase):
    def test_member_users(self):
        self.assertEqual([u.dn for u in self.group("Admins").member_users()], [JHUNT])
        self.assertEqual(
            sorted(u.dn for u in self.group("Ops").member_users()),
            sorted([JHUNT, ASMITH]),
        )

    def test_member_groups(self):
        self.assertEqual([g.dn for g in self.group("Admins").member_groups()], [OPS])
        self.assertEqual(self.group("Ops").member_groups(), [])

    def test_groups(self):
        self.assertEqual(
            sorted(g.dn for g in self.user("jhunt").groups()), sorted([ADMINS, OPS])
        )
        self.assertEqual([g.dn for g in self.group("Ops").groups()], [ADMINS])

    def test_no_groups(self):
        self.client.reset_calls()
        bob = self.user("bhunt")
        self.assertEqual(bob.groups(), [])
        self.assertEqual(len(self.client.searches), 1)


class TestRecursiveMembership(MembershipTestCase):
    def test_member_users(self):
        users = self.group("Admins").member_users(recursive=True)
        self.assertEqual([u.dn for u in users], [JHUNT, ASMITH])

    def test_member_groups(self):
        self.assertEqual(
            [g.dn for g in self.group("Admins").member_groups(recursive=True)], [OPS]
        )

    def test_cycle(self):
        self.client.entries[OPS.lower()][1]["member"].append(ADMINS.encode("utf-8"))
        admins = self.group("Admins")
        self.assertEqual([g.dn for g in admins.member_groups(recursive=True)], [OPS])
        self.assertEqual(
            [g.dn for g in self.group("Ops").member_groups(recursive=True)], [ADMINS]
        )
        self.assertEqual(
            [u.dn for u in admins.member_users(recursive=True)], [JHUNT, ASMITH]
        )

    def test_self_membership(self):
        self.client.entries[OPS.lower()][1]["member"].append(OPS.encode("utf-8"))
        self.assertEqual(self.group("Ops").member_groups(recursive=True), [])


class TestMaxDepth(unittest.TestCase):
    def setUp(self):
        self.client = populate(FakeDirectoryClient())
        self.client.add_group(ALPHA, member=[JHUNT, BRAVO])
        self.client.add_group(BRAVO, member=[ASMITH, CHARLIE], memberOf=[ALPHA])
        self.client.add_group(CHARLIE, member=[BHUNT], memberOf=[BRAVO])

    def test_unlimited(self):
        directory = Directory(client=self.client)
        alpha = directory.groups.find_by_cn("Alpha")
        self.assertEqual(
            [g.dn for g in alpha.member_groups(recursive=True)], [BRAVO, CHARLIE]
        )
        self.assertEqual(
            [u.dn for u in alpha.member_users(recursive=True)], [JHUNT, ASMITH, BHUNT]
        )

    def test_limited(self):
        directory = Directory(client=self.client, max_depth=1)
        alpha = directory.groups.find_by_cn("Alpha")
        self.assertEqual([g.dn for g in alpha.member_groups(recursive=True)], [BRAVO])
        self.assertEqual(
            [u.dn for u in alpha.member_users(recursive=True)], [JHUNT, ASMITH]
        )

    def test_zero_depth(self):
        directory = Directory(client=self.client, max_depth=0)
        alpha = directory.groups.find_by_cn("Alpha")
        self.assertEqual(alpha.member_groups(recursive=True), [])
        self.assertEqual([u.dn for u in alpha.member_users(recursive=True)], [JHUNT])


class TestIsMember(MembershipTestCase):
    def test_group_is_member(self):
        admins = self.group("Admins")
        ops = self.group("Ops")
        self.assertTrue(admins.is_member(self.user("jhunt")))
        self.assertFalse(admins.is_member(self.user("asmith")))
        self.assertTrue(ops.is_member(self.user("asmith")))
        self.assertTrue(admins.is_member(ops))
        self.assertFalse(ops.is_member(admins))

    def test_is_member_of(self):
        jhunt = self.user("jhunt")
        self.assertTrue(jhunt.is_member_of(self.group("Admins")))
        self.assertFalse(self.user("bhunt").is_member_of(self.group("Admins")))

    def test_agrees_with_member_users(self):
        ops = self.group("Ops")
        for user in ops.member_users():
            with self.subTest(user=user.dn):
                self.assertTrue(ops.is_member(user))

    def test_case_insensitive(self):
        self.client.entries[BHUNT.lower()][1]["memberof"] = [ADMINS.upper().encode("utf-8")]
        self.assertTrue(self.group("Admins").is_member(self.user("bhunt")))

    def test_no_search_needed(self):
        admins = self.group("Admins")
        jhunt = self.user("jhunt")
        self.client.reset_calls()
        admins.is_member(jhunt)
        self.assertEqual(self.client.searches, [])

    def test_unsaved_group(self):
        group = self.directory.groups.model(self.directory, attributes={"cn": "New"})
        self.assertFalse(group.is_member(self.user("jhunt")))


class TestMemoisation(MembershipTestCase):
    def test_groups_are_memoised(self):
        jhunt = self.user("jhunt")
        groups = jhunt.groups()
        self.assertIs(jhunt.groups(), groups)
        jhunt.reload()
        self.assertIsNot(jhunt.groups(), groups)

    def test_members_are_memoised_per_flag(self):
        admins = self.group("Admins")
        direct = admins.member_users()
        nested = admins.member_users(recursive=True)
        self.assertIs(admins.member_users(), direct)
        self.assertIs(admins.member_users(recursive=True), nested)
        self.assertIsNot(direct, nested)
        self.client.reset_calls()
        admins.member_groups(recursive=True)
        admins.member_groups(recursive=True)
        searches = len(self.client.searches)
        admins.member_groups(recursive=True)
        self.assertEqual(len(self.client.searches), searches)

    def test_update_forgets_members(self):
        ops = self.group("Ops")
        self.assertEqual(len(ops.member_users()), 2)
        self.assertTrue(ops.update_attribute("member", [JHUNT, ASMITH, BHUNT]))
        self.assertEqual(len(ops.member_users()), 3)
