"""Hierarchy enforcement for user and role management.

A user's effective hierarchy is the minimum ``UserType.hierarchy_level``
across their active roles; lower numbers carry more authority. An actor may
manage a target only from a strictly lower level, unless the actor holds one
of ``settings.HIERARCHY_EXEMPT_PERMISSIONS``. A user without active roles has
no level: anyone with a role can manage them, and they manage no one.

Two more fences sit beside the level check. Location-bound assignments are
limited to locations the actor can manage (every location for ALL_LOCATIONS
and GLOBAL scopes, otherwise the actor's linked locations). Role permission
edits are limited to unprotected roles strictly below the actor, and only
with permissions the actor holds.
"""

import logging
from typing import Optional

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db.models import Min

from core.exceptions import Forbidden
from .models import UNRESTRICTED_SCOPES, Location, Role, UserRole, UserType
from .resolver import LocationScope, PermissionResolver

logger = logging.getLogger(__name__)


class HierarchyGate:
    def __init__(self, resolver: Optional[PermissionResolver] = None):
        self.resolver = resolver or PermissionResolver()

    def effective_hierarchy(self, user_id) -> Optional[int]:
        """Most-privileged level across active roles, or None without any."""
        if user_id is None:
            return None
        try:
            level = UserRole.objects.filter(
                user_id=user_id,
                user__is_active=True,
                is_active=True,
                role__is_active=True,
            ).aggregate(level=Min("role__user_type__hierarchy_level"))["level"]
        except (DjangoValidationError, ValueError, TypeError):
            return None
        return level

    def is_exempt(self, user_id) -> bool:
        exempt = getattr(settings, "HIERARCHY_EXEMPT_PERMISSIONS", [])
        return bool(exempt) and self.resolver.has_any_permission(user_id, exempt)

    def can_manage(self, actor_id, target_id) -> bool:
        if self.is_exempt(actor_id):
            return True

        actor_level = self.effective_hierarchy(actor_id)
        if actor_level is None:
            return False

        target_level = self.effective_hierarchy(target_id)
        if target_level is None:
            return True

        return actor_level < target_level

    def manageable_user_types(self, actor_id):
        """Active user types strictly below the actor (all of them if exempt)."""
        user_types = UserType.objects.filter(is_active=True)
        if self.is_exempt(actor_id):
            return user_types
        actor_level = self.effective_hierarchy(actor_id)
        if actor_level is None:
            return user_types.none()
        return user_types.filter(hierarchy_level__gt=actor_level)

    def manageable_locations(self, actor_id) -> LocationScope:
        """Locations where ``actor_id`` may place users and location-bound roles."""
        if self.is_exempt(actor_id) or self.resolver.data_scope(actor_id) in UNRESTRICTED_SCOPES:
            return LocationScope.everywhere()
        return LocationScope(all_locations=False, location_ids=self.resolver.location_ids(actor_id))

    def allowed_assignments(self, actor_id) -> dict:
        """User types, roles, and locations ``actor_id`` may hand out."""
        user_types = self.manageable_user_types(actor_id)
        roles = Role.objects.filter(is_active=True, user_type__in=user_types).select_related("user_type")
        locations = Location.objects.filter(is_active=True).filter(self.manageable_locations(actor_id).as_q("pk"))
        return {
            "hierarchy_level": self.effective_hierarchy(actor_id),
            "user_types": list(user_types),
            "roles": list(roles),
            "locations": list(locations),
        }

    def check_role_assignment(self, actor_id, target_id, role: Role, location: Optional[Location] = None) -> None:
        """Raise ``Forbidden`` unless ``actor_id`` may give ``role`` (at ``location``) to ``target_id``."""
        if str(actor_id) == str(target_id) and not self.is_exempt(actor_id):
            raise Forbidden("You cannot change your own role assignments.")

        if not self.can_manage(actor_id, target_id):
            logger.info("Hierarchy denied: %s cannot manage %s", actor_id, target_id)
            raise Forbidden("You can only manage users with lower authority than your own.")

        if not self.manageable_user_types(actor_id).filter(pk=role.user_type_id).exists():
            raise Forbidden(
                f'You cannot assign roles from user type "{role.user_type.name}". '
                "You can only manage user types with lower authority than your own."
            )

        if location is not None and not self.manageable_locations(actor_id).allows(location.pk):
            logger.info("Location denied: %s cannot assign at location %s", actor_id, location.pk)
            raise Forbidden("You can only assign users to locations you have access to.")

    def check_location_link(self, actor_id, target_id, location: Location) -> None:
        """Raise ``Forbidden`` unless ``actor_id`` may link ``target_id`` to ``location``."""
        if str(actor_id) != str(target_id) and not self.can_manage(actor_id, target_id):
            raise Forbidden("You can only manage users with lower authority than your own.")
        if not self.manageable_locations(actor_id).allows(location.pk):
            raise Forbidden("You do not have permission to assign users to this location.")

    def check_role_edit(self, actor_id, role: Role) -> None:
        """Raise ``Forbidden`` unless ``actor_id`` may change the permissions of ``role``."""
        if role.is_protected:
            raise Forbidden("Cannot modify permissions for a protected role.")
        if self.is_exempt(actor_id):
            return
        actor_level = self.effective_hierarchy(actor_id)
        if actor_level is None or role.user_type.hierarchy_level <= actor_level:
            logger.info("Role edit denied: %s cannot edit role %s", actor_id, role.pk)
            raise Forbidden("You can only modify roles with lower authority than your own.")

    def check_permission_grant(self, actor_id, permission_ids) -> None:
        """Raise ``Forbidden`` when a non-exempt actor grants a permission it does not hold."""
        if self.is_exempt(actor_id):
            return
        missing = set(permission_ids) - self.resolver.resolve(actor_id)
        if missing:
            raise Forbidden(f"You cannot grant permissions you do not hold: {', '.join(sorted(missing))}.")


__all__ = ["HierarchyGate"]
