"""RBAC models: user types (hierarchy), roles, permissions, and grants.

Three authority sources feed every decision:

- ``RolePermission`` rows reached through active ``UserRole`` assignments;
- direct ``UserPermission`` grants, optionally time-bounded, where
  ``granted=False`` is an explicit revoke;
- ``UserType.hierarchy_level`` of the user's roles (0 = highest authority).

Location authority sits beside them: ``Role.data_scope`` says how far a role
reaches (own records, linked locations, every location, or everything), and
``UserLocation`` links plus location-bound ``UserRole`` rows say which
locations a LOCATION-scoped user is linked to.
"""

from django.conf import settings
from django.db import models
from django.db.models import Q


class DataScope(models.TextChoices):
    SELF = "SELF"
    LOCATION = "LOCATION"
    ALL_LOCATIONS = "ALL_LOCATIONS"
    GLOBAL = "GLOBAL"


# Wider scopes win when a user holds several roles.
DATA_SCOPE_PRIORITY = {
    DataScope.SELF: 0,
    DataScope.LOCATION: 1,
    DataScope.ALL_LOCATIONS: 2,
    DataScope.GLOBAL: 3,
}
UNRESTRICTED_SCOPES = frozenset({DataScope.ALL_LOCATIONS, DataScope.GLOBAL})


class UserType(models.Model):
    """Named rank; lower ``hierarchy_level`` means more authority."""

    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    hierarchy_level = models.PositiveIntegerField()
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["hierarchy_level", "name"]
        constraints = [
            models.CheckConstraint(
                condition=Q(hierarchy_level__gte=0), name="usertype_hierarchy_level_non_negative"
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.name} ({self.hierarchy_level})"


class Role(models.Model):
    """Bundle of permissions belonging to one user type."""

    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    user_type = models.ForeignKey(UserType, on_delete=models.PROTECT, related_name="roles")
    is_active = models.BooleanField(default=True)
    data_scope = models.CharField(max_length=20, choices=DataScope.choices, default=DataScope.SELF)
    # Protected roles keep their permission set; nobody edits it through the API.
    is_protected = models.BooleanField(default=False)
    display_order = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["user_type__hierarchy_level", "display_order", "name"]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.name


class Location(models.Model):
    """A clinic site that users and location-scoped roles are tied to."""

    name = models.CharField(max_length=150, unique=True)
    address = models.CharField(max_length=255, blank=True)
    city = models.CharField(max_length=100, blank=True)
    phone = models.CharField(max_length=30, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.name


class UserLocation(models.Model):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="user_locations"
    )
    location = models.ForeignKey(Location, on_delete=models.CASCADE, related_name="user_links")
    is_primary = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ("user", "location")
        ordering = ["-is_primary", "location__name"]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.user} @ {self.location}"


class Permission(models.Model):
    """Stable permission id such as ``wiki.edit``."""

    id = models.CharField(max_length=100, primary_key=True)
    category = models.CharField(max_length=50, blank=True)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["category", "id"]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.id


class RolePermission(models.Model):
    role = models.ForeignKey(Role, on_delete=models.CASCADE, related_name="role_permissions")
    permission = models.ForeignKey(Permission, on_delete=models.CASCADE, related_name="role_links")
    granted = models.BooleanField(default=True)

    class Meta:
        unique_together = ("role", "permission")

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.role.name} -> {self.permission_id} ({'grant' if self.granted else 'off'})"


class UserRole(models.Model):
    """Assignment of a role to a user; inactive rows contribute nothing."""

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="user_roles")
    role = models.ForeignKey(Role, on_delete=models.CASCADE, related_name="user_roles")
    is_active = models.BooleanField(default=True)
    location = models.ForeignKey(
        Location,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="role_assignments",
    )
    assigned_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="roles_assigned",
    )
    assigned_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ("user", "role")
        ordering = ["-assigned_at"]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.user} - {self.role}"


class UserPermission(models.Model):
    """Direct grant (``granted=True``) or explicit revoke (``granted=False``).

    ``expires_at`` only bounds grants; a revoke stays in force until the row
    is deleted.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="direct_permissions"
    )
    permission = models.ForeignKey(Permission, on_delete=models.CASCADE, related_name="user_grants")
    granted = models.BooleanField(default=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    granted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="permissions_granted",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ("user", "permission")

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.user} {'+' if self.granted else '-'}{self.permission_id}"


__all__ = [
    "DATA_SCOPE_PRIORITY",
    "DataScope",
    "Location",
    "Permission",
    "Role",
    "RolePermission",
    "UNRESTRICTED_SCOPES",
    "UserLocation",
    "UserPermission",
    "UserRole",
    "UserType",
]
