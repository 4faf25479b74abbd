"""Role-scoped visibility for restricted content such as courses.

Content with ``restrict_by_role=False`` is visible to holders of the base
view permission. Content with ``restrict_by_role=True`` is visible only when
the user's active role ids intersect the item's ``allowed_roles``; the base
view permission does not widen that.

Listing endpoints never fetch and then discard rows: ``scope_for`` computes
the caller's eligibility once, and ``VisibilityScope.as_q`` turns it into a
query predicate applied before any row is read.
"""

from dataclasses import dataclass
from typing import Optional

from django.db.models import Q

from .resolver import PermissionResolver


@dataclass(frozen=True)
class VisibilityScope:
    """What one user may see: base-view flag plus active role ids."""

    can_view_unrestricted: bool
    role_ids: frozenset

    def allows(self, restrict_by_role: bool, allowed_role_ids) -> bool:
        if not restrict_by_role:
            return self.can_view_unrestricted
        return bool(self.role_ids & frozenset(allowed_role_ids))

    def as_q(self, restrict_field: str = "restrict_by_role", roles_field: str = "allowed_roles") -> Q:
        """Predicate selecting exactly the rows this scope allows."""
        predicate = Q(pk__in=[])
        if self.can_view_unrestricted:
            predicate |= Q(**{restrict_field: False})
        if self.role_ids:
            predicate |= Q(**{restrict_field: True, f"{roles_field}__in": sorted(self.role_ids)})
        return predicate


class ContentAccessFilter:
    def __init__(self, view_permission: str, resolver: Optional[PermissionResolver] = None):
        self.view_permission = view_permission
        self.resolver = resolver or PermissionResolver()

    def scope_for(self, user_id, permissions: Optional[frozenset] = None) -> VisibilityScope:
        """Build the caller's scope; pass ``permissions`` when already resolved."""
        if permissions is None:
            permissions = self.resolver.resolve(user_id)
        return VisibilityScope(
            can_view_unrestricted=self.view_permission in permissions,
            role_ids=self.resolver.active_role_ids(user_id),
        )

    def is_visible(self, user_id, item, scope: Optional[VisibilityScope] = None) -> bool:
        scope = scope or self.scope_for(user_id)
        allowed_role_ids = ()
        if item.restrict_by_role:
            allowed_role_ids = item.allowed_roles.values_list("pk", flat=True)
        return scope.allows(item.restrict_by_role, allowed_role_ids)

    def filter_queryset(self, queryset, user_id, scope: Optional[VisibilityScope] = None):
        scope = scope or self.scope_for(user_id)
        # The role join can match several allowed roles per row.
        return queryset.filter(scope.as_q()).distinct()


__all__ = ["ContentAccessFilter", "VisibilityScope"]
