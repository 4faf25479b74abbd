"""Effective permission resolution.

The effective set for a user is::

    (role grants ∪ unexpired direct grants) − direct revokes

Role grants come from ``RolePermission(granted=True)`` rows of active roles
reached through active assignments. A direct revoke (``granted=False``) wins
over everything, whatever its ``expires_at``; an expired direct grant is
simply absent. Nothing is cached between calls: every decision reads the
current rows.

Location reach is resolved the same way: the widest ``Role.data_scope`` over
active roles decides whether a user sees every location or only the ones they
are linked to, and ``LocationScope.as_q`` turns that into a query predicate.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db.models import Q
from django.utils import timezone

from .models import (
    DATA_SCOPE_PRIORITY,
    UNRESTRICTED_SCOPES,
    DataScope,
    RolePermission,
    UserLocation,
    UserPermission,
    UserRole,
)

logger = logging.getLogger(__name__)

User = get_user_model()

_REQUEST_CACHE_ATTR = "_resolved_permissions"


@dataclass(frozen=True)
class LocationScope:
    """Locations whose data a user may reach; ``all_locations`` lifts the limit."""

    all_locations: bool
    location_ids: frozenset

    @classmethod
    def everywhere(cls) -> "LocationScope":
        return cls(all_locations=True, location_ids=frozenset())

    def allows(self, location_id) -> bool:
        return self.all_locations or location_id in self.location_ids

    def as_q(self, field: str = "location") -> Q:
        """Predicate restricting ``field`` to reachable locations (no-op when unrestricted)."""
        if self.all_locations:
            return Q()
        return Q(**{f"{field}__in": sorted(self.location_ids)})


class PermissionResolver:
    """Compute effective permission sets from roles and direct grants."""

    def resolve(self, user_id) -> frozenset[str]:
        """Return the effective permission ids for ``user_id``.

        Unknown, malformed, or inactive users resolve to the empty set.
        """
        if not self._is_active_user(user_id):
            return frozenset()

        role_grants = set(
            RolePermission.objects.filter(
                granted=True,
                permission__is_active=True,
                role__is_active=True,
                role__user_roles__user_id=user_id,
                role__user_roles__is_active=True,
            ).values_list("permission_id", flat=True)
        )

        now = timezone.now()
        direct_allow: set[str] = set()
        direct_deny: set[str] = set()
        rows = UserPermission.objects.filter(user_id=user_id).values_list(
            "permission_id", "granted", "expires_at", "permission__is_active"
        )
        for permission_id, granted, expires_at, permission_active in rows:
            if not granted:
                direct_deny.add(permission_id)
            elif permission_active and (expires_at is None or expires_at > now):
                direct_allow.add(permission_id)

        return frozenset((role_grants | direct_allow) - direct_deny)

    def has_permission(self, user_id, permission_id: str) -> bool:
        return permission_id in self.resolve(user_id)

    def has_any_permission(self, user_id, permission_ids: Iterable[str]) -> bool:
        resolved = self.resolve(user_id)
        return any(pid in resolved for pid in permission_ids)

    def has_all_permissions(self, user_id, permission_ids: Iterable[str]) -> bool:
        resolved = self.resolve(user_id)
        return all(pid in resolved for pid in permission_ids)

    def active_role_ids(self, user_id) -> frozenset[int]:
        """Ids of the active roles held through active assignments."""
        if not self._is_active_user(user_id):
            return frozenset()
        return frozenset(
            UserRole.objects.filter(user_id=user_id, is_active=True, role__is_active=True).values_list(
                "role_id", flat=True
            )
        )

    def data_scope(self, user_id) -> str:
        """Widest data scope across active roles; SELF without any."""
        if not self._is_active_user(user_id):
            return DataScope.SELF
        scopes = UserRole.objects.filter(user_id=user_id, is_active=True, role__is_active=True).values_list(
            "role__data_scope", flat=True
        )
        return max(scopes, key=lambda scope: DATA_SCOPE_PRIORITY.get(scope, 0), default=DataScope.SELF)

    def location_ids(self, user_id) -> frozenset[int]:
        """Active locations linked to the user directly or through an active role assignment."""
        if not self._is_active_user(user_id):
            return frozenset()
        linked = UserLocation.objects.filter(
            user_id=user_id, is_active=True, location__is_active=True
        ).values_list("location_id", flat=True)
        assigned = UserRole.objects.filter(
            user_id=user_id, is_active=True, role__is_active=True, location__is_active=True
        ).values_list("location_id", flat=True)
        return frozenset(linked) | frozenset(assigned)

    def location_scope(self, user_id) -> LocationScope:
        """ALL_LOCATIONS and GLOBAL reach everywhere, LOCATION reaches linked sites, SELF none."""
        scope = self.data_scope(user_id)
        if scope in UNRESTRICTED_SCOPES:
            return LocationScope.everywhere()
        if scope == DataScope.LOCATION:
            return LocationScope(all_locations=False, location_ids=self.location_ids(user_id))
        return LocationScope(all_locations=False, location_ids=frozenset())

    def can_access_location(self, user_id, location_id) -> bool:
        return self.location_scope(user_id).allows(location_id)

    def users_with_permission(self, permission_id: str):
        """Active users whose effective set contains ``permission_id``.

        Candidates are narrowed in SQL (role or direct grant), then each one
        is resolved in full so explicit revokes are honoured.
        """
        now = timezone.now()
        candidates = (
            User.objects.filter(is_active=True)
            .filter(
                Q(
                    user_roles__is_active=True,
                    user_roles__role__is_active=True,
                    user_roles__role__role_permissions__permission_id=permission_id,
                    user_roles__role__role_permissions__granted=True,
                )
                | Q(
                    Q(direct_permissions__expires_at__isnull=True) | Q(direct_permissions__expires_at__gt=now),
                    direct_permissions__permission_id=permission_id,
                    direct_permissions__granted=True,
                )
            )
            .distinct()
        )
        return [user for user in candidates if self.has_permission(user.pk, permission_id)]

    @staticmethod
    def _is_active_user(user_id) -> bool:
        if user_id is None:
            return False
        try:
            return User.objects.filter(pk=user_id, is_active=True).exists()
        except (DjangoValidationError, ValueError, TypeError):
            logger.debug("Malformed user id %r resolved to no permissions", user_id)
            return False


def get_request_permissions(request, resolver: Optional[PermissionResolver] = None) -> frozenset[str]:
    """Resolve the caller's permissions once per request.

    The result lives on the request object only, so it never outlives the
    request that computed it.
    """
    cached = getattr(request, _REQUEST_CACHE_ATTR, None)
    if cached is not None:
        return cached

    user = getattr(request, "user", None)
    if user is None or not getattr(user, "is_authenticated", False):
        resolved: frozenset[str] = frozenset()
    else:
        resolved = (resolver or PermissionResolver()).resolve(user.pk)
    setattr(request, _REQUEST_CACHE_ATTR, resolved)
    return resolved


__all__ = ["LocationScope", "PermissionResolver", "get_request_permissions"]
