"""Effective permission resolution: role grants, direct grants, and revokes."""

from __future__ import annotations

from datetime import timedelta

from django.test import RequestFactory, TestCase
from django.utils import timezone

from access_control.models import DataScope, Location, Permission, RolePermission, UserRole
from access_control.resolver import LocationScope, PermissionResolver, get_request_permissions
from tests.utils import create_role, create_user, deny, grant, link_location


class PermissionResolverTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.editor_role = create_role("Wiki Editor", 2, ["wiki.edit", "wiki.view"])
        cls.user = create_user("u@example.com", roles=[cls.editor_role])

    def setUp(self):
        self.resolver = PermissionResolver()

    def test_role_grants_are_effective(self):
        self.assertEqual(self.resolver.resolve(self.user.pk), {"wiki.edit", "wiki.view"})

    def test_role_plus_direct_grant(self):
        grant(self.user, "wiki.delete")

        resolved = self.resolver.resolve(self.user.pk)

        self.assertIn("wiki.edit", resolved)
        self.assertIn("wiki.delete", resolved)

    def test_explicit_revoke_overrides_role_grant(self):
        grant(self.user, "wiki.delete")
        deny(self.user, "wiki.edit")

        resolved = self.resolver.resolve(self.user.pk)

        self.assertNotIn("wiki.edit", resolved)
        self.assertIn("wiki.delete", resolved)
        self.assertFalse(self.resolver.has_permission(self.user.pk, "wiki.edit"))

    def test_revoke_wins_even_when_expired(self):
        revoke = deny(self.user, "wiki.edit")
        revoke.expires_at = timezone.now() - timedelta(days=1)
        revoke.save(update_fields=["expires_at"])

        self.assertNotIn("wiki.edit", self.resolver.resolve(self.user.pk))

    def test_expired_direct_grant_contributes_nothing(self):
        grant(self.user, "wiki.delete", expires_at=timezone.now() - timedelta(minutes=1))

        self.assertNotIn("wiki.delete", self.resolver.resolve(self.user.pk))

    def test_unexpired_direct_grant_counts(self):
        grant(self.user, "wiki.delete", expires_at=timezone.now() + timedelta(hours=1))

        self.assertIn("wiki.delete", self.resolver.resolve(self.user.pk))

    def test_inactive_role_contributes_nothing(self):
        self.editor_role.is_active = False
        self.editor_role.save(update_fields=["is_active"])

        self.assertEqual(self.resolver.resolve(self.user.pk), frozenset())

    def test_inactive_assignment_contributes_nothing(self):
        UserRole.objects.filter(user=self.user).update(is_active=False)

        self.assertEqual(self.resolver.resolve(self.user.pk), frozenset())

    def test_inactive_permission_is_not_granted(self):
        Permission.objects.filter(pk="wiki.edit").update(is_active=False)

        self.assertEqual(self.resolver.resolve(self.user.pk), {"wiki.view"})

    def test_role_permission_switched_off_is_not_granted(self):
        RolePermission.objects.filter(role=self.editor_role, permission_id="wiki.edit").update(granted=False)

        self.assertEqual(self.resolver.resolve(self.user.pk), {"wiki.view"})

    def test_unknown_or_malformed_user_resolves_empty(self):
        self.assertEqual(self.resolver.resolve(None), frozenset())
        self.assertEqual(self.resolver.resolve("not-a-uuid"), frozenset())

    def test_inactive_user_resolves_empty(self):
        self.user.is_active = False
        self.user.save(update_fields=["is_active"])

        self.assertEqual(self.resolver.resolve(self.user.pk), frozenset())

    def test_changes_are_visible_immediately(self):
        self.assertFalse(self.resolver.has_permission(self.user.pk, "wiki.delete"))

        grant(self.user, "wiki.delete")

        self.assertTrue(self.resolver.has_permission(self.user.pk, "wiki.delete"))

    def test_any_and_all_helpers(self):
        self.assertTrue(self.resolver.has_any_permission(self.user.pk, ["wiki.delete", "wiki.view"]))
        self.assertFalse(self.resolver.has_all_permissions(self.user.pk, ["wiki.delete", "wiki.view"]))
        self.assertTrue(self.resolver.has_all_permissions(self.user.pk, ["wiki.edit", "wiki.view"]))

    def test_users_with_permission_honours_revokes(self):
        other = create_user("other@example.com", roles=[self.editor_role])
        direct = create_user("direct@example.com")
        grant(direct, "wiki.edit")
        deny(other, "wiki.edit")

        holders = {u.pk for u in self.resolver.users_with_permission("wiki.edit")}

        self.assertEqual(holders, {self.user.pk, direct.pk})

    def test_request_permissions_are_memoised_per_request(self):
        request = RequestFactory().get("/")
        request.user = self.user

        first = get_request_permissions(request)
        grant(self.user, "wiki.delete")

        self.assertIs(get_request_permissions(request), first)
        fresh = RequestFactory().get("/")
        fresh.user = self.user
        self.assertIn("wiki.delete", get_request_permissions(fresh))


class LocationScopeTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.self_role = create_role("Volunteer", 3, ["wiki.view"])
        cls.branch_role = create_role("Branch Staff", 3, ["wiki.view"], data_scope=DataScope.LOCATION)
        cls.regional_role = create_role("Regional Lead", 1, ["wiki.view"], data_scope=DataScope.ALL_LOCATIONS)
        cls.main = Location.objects.create(name="Main Clinic")
        cls.north = Location.objects.create(name="Northside Clinic")
        cls.south = Location.objects.create(name="Southside Clinic")

    def setUp(self):
        self.resolver = PermissionResolver()

    def test_scope_defaults_to_self(self):
        user = create_user("self@example.com", roles=[self.self_role])

        self.assertEqual(self.resolver.data_scope(user.pk), DataScope.SELF)

    def test_user_without_roles_is_self_scoped(self):
        user = create_user("nobody@example.com")

        self.assertEqual(self.resolver.data_scope(user.pk), DataScope.SELF)

    def test_widest_scope_across_roles_wins(self):
        user = create_user("multi@example.com", roles=[self.branch_role, self.regional_role])

        self.assertEqual(self.resolver.data_scope(user.pk), DataScope.ALL_LOCATIONS)

    def test_inactive_role_assignment_does_not_widen_scope(self):
        user = create_user("multi@example.com", roles=[self.branch_role])
        UserRole.objects.create(user=user, role=self.regional_role, is_active=False)

        self.assertEqual(self.resolver.data_scope(user.pk), DataScope.LOCATION)

    def test_location_ids_combine_links_and_role_locations(self):
        user = create_user("branch@example.com", roles=[self.branch_role])
        link_location(user, "Main Clinic")
        UserRole.objects.filter(user=user).update(location=self.north)

        self.assertEqual(self.resolver.location_ids(user.pk), {self.main.pk, self.north.pk})

    def test_inactive_links_and_locations_are_ignored(self):
        user = create_user("branch@example.com", roles=[self.branch_role])
        link_location(user, "Main Clinic", is_active=False)
        UserRole.objects.filter(user=user).update(location=self.north)
        Location.objects.filter(pk=self.north.pk).update(is_active=False)

        self.assertEqual(self.resolver.location_ids(user.pk), frozenset())

    def test_location_scope_is_limited_to_own_locations(self):
        user = create_user("branch@example.com", roles=[self.branch_role])
        link_location(user, "Main Clinic")

        scope = self.resolver.location_scope(user.pk)

        self.assertFalse(scope.all_locations)
        self.assertTrue(self.resolver.can_access_location(user.pk, self.main.pk))
        self.assertFalse(self.resolver.can_access_location(user.pk, self.north.pk))

    def test_all_locations_scope_reaches_everywhere(self):
        user = create_user("lead@example.com", roles=[self.regional_role])

        self.assertTrue(self.resolver.location_scope(user.pk).all_locations)
        self.assertTrue(self.resolver.can_access_location(user.pk, self.south.pk))

    def test_self_scope_reaches_no_location(self):
        user = create_user("self@example.com", roles=[self.self_role])
        link_location(user, "Main Clinic")

        self.assertFalse(self.resolver.can_access_location(user.pk, self.main.pk))

    def test_scope_filter_narrows_querysets(self):
        user = create_user("branch@example.com", roles=[self.branch_role])
        link_location(user, "Northside Clinic")

        visible = Location.objects.filter(self.resolver.location_scope(user.pk).as_q("pk"))

        self.assertEqual([location.name for location in visible], ["Northside Clinic"])

    def test_unrestricted_filter_matches_everything(self):
        visible = Location.objects.filter(LocationScope.everywhere().as_q("pk"))

        self.assertEqual(visible.count(), 3)

    def test_empty_scope_filter_matches_nothing(self):
        scope = LocationScope(all_locations=False, location_ids=frozenset())

        self.assertFalse(Location.objects.filter(scope.as_q("pk")).exists())
