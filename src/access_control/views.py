"""Endpoints for the caller's permissions, the role and permission catalogues,
role permission administration, role assignment, and location links."""

import logging
from typing import Any

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Count
from rest_framework import status

from core.exceptions import NotFound
from core.response import BaseAPIView, BaseReadOnlyViewSet, api_response
from .constants import AdminPermissions
from .hierarchy import HierarchyGate
from .models import Location, Permission, Role, RolePermission, UserLocation, UserRole
from .permissions import AUTHENTICATED, RBACPermission
from .resolver import PermissionResolver, get_request_permissions
from .serializers import (
    LocationSerializer,
    PermissionSerializer,
    RoleAssignmentSerializer,
    RolePermissionReplaceSerializer,
    RolePermissionSerializer,
    RolePermissionToggleSerializer,
    RoleSerializer,
    UserLocationInputSerializer,
    UserLocationSerializer,
    UserRoleSerializer,
    UserTypeSerializer,
)

User = get_user_model()
logger = logging.getLogger(__name__)


class MyPermissionsView(BaseAPIView):
    """Effective permissions, active roles, hierarchy level, and location reach of the caller."""

    permission_classes = [RBACPermission]
    required_permissions = {"GET": AUTHENTICATED}

    # noinspection PyMethodMayBeStatic
    def get(self, request):
        resolver = PermissionResolver()
        gate = HierarchyGate(resolver)
        user_id = request.user.pk
        role_ids = resolver.active_role_ids(user_id)
        return api_response(
            {
                "permissions": sorted(get_request_permissions(request)),
                "roles": list(Role.objects.filter(pk__in=role_ids).values_list("name", flat=True)),
                "hierarchy_level": gate.effective_hierarchy(user_id),
                "data_scope": resolver.data_scope(user_id),
                "location_ids": sorted(resolver.location_ids(user_id)),
            }
        )


class PermissionCatalogueView(BaseAPIView):
    """All permission ids with per-category counts; ``?category=`` and ``?is_active=`` filter."""

    permission_classes = [RBACPermission]
    required_permissions = {"GET": AdminPermissions.VIEW_ROLES}

    # noinspection PyMethodMayBeStatic
    def get(self, request):
        permissions = Permission.objects.all()
        category = request.query_params.get("category")
        if category:
            permissions = permissions.filter(category=category)
        is_active = request.query_params.get("is_active")
        if is_active is not None:
            permissions = permissions.filter(is_active=is_active.lower() == "true")

        categories = (
            Permission.objects.filter(is_active=True)
            .values("category")
            .annotate(count=Count("id"))
            .order_by("category")
        )
        return api_response(
            {
                "permissions": PermissionSerializer(permissions, many=True).data,
                "categories": [{"name": row["category"], "count": row["count"]} for row in categories],
            }
        )


class RoleViewSet(BaseReadOnlyViewSet):
    """Read-only role catalogue."""

    serializer_class = RoleSerializer
    permission_classes = [RBACPermission]
    required_permissions = {
        "list": AdminPermissions.VIEW_ROLES,
        "retrieve": AdminPermissions.VIEW_ROLES,
    }
    queryset = Role.objects.filter(is_active=True).select_related("user_type").prefetch_related(
        "role_permissions"
    )


class RolePermissionsView(BaseAPIView):
    """List, replace, or toggle the permissions a role grants.

    Edits go through ``HierarchyGate``: protected roles are frozen, a role at
    or above the caller's level is out of reach, and a caller cannot hand out
    permissions it does not hold itself.
    """

    permission_classes = [RBACPermission]
    required_permissions: dict[str, Any] = {
        "GET": AdminPermissions.VIEW_ROLES,
        "PUT": AdminPermissions.MANAGE_ROLE_PERMISSIONS,
        "POST": AdminPermissions.MANAGE_ROLE_PERMISSIONS,
    }

    def get(self, request, role_id):
        role = _get_role_or_404(role_id)
        return api_response(RolePermissionSerializer(_role_links(role), many=True).data)

    def put(self, request, role_id):
        role = _get_role_or_404(role_id)
        serializer = RolePermissionReplaceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        permission_ids = sorted({permission.pk for permission in serializer.validated_data["permission_ids"]})

        gate = HierarchyGate()
        gate.check_role_edit(request.user.pk, role)
        gate.check_permission_grant(request.user.pk, permission_ids)

        with transaction.atomic():
            RolePermission.objects.filter(role=role).delete()
            RolePermission.objects.bulk_create(
                [RolePermission(role=role, permission_id=pid, granted=True) for pid in permission_ids]
            )

        logger.info("User %s replaced permissions of role %s: %s", request.user.pk, role.name, permission_ids)
        return api_response(RolePermissionSerializer(_role_links(role), many=True).data)

    def post(self, request, role_id):
        role = _get_role_or_404(role_id)
        serializer = RolePermissionToggleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        permission = serializer.validated_data["permission"]
        granted = serializer.validated_data["granted"]

        gate = HierarchyGate()
        gate.check_role_edit(request.user.pk, role)
        if granted:
            gate.check_permission_grant(request.user.pk, [permission.pk])

        link, created = RolePermission.objects.update_or_create(
            role=role, permission=permission, defaults={"granted": granted}
        )
        logger.info(
            "User %s %s %s on role %s",
            request.user.pk,
            "granted" if granted else "switched off",
            permission.pk,
            role.name,
        )
        return api_response(
            RolePermissionSerializer(link).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )


class AllowedAssignmentsView(BaseAPIView):
    """User types, roles, and locations the caller may assign to others."""

    permission_classes = [RBACPermission]
    required_permissions = {"GET": AUTHENTICATED}

    # noinspection PyMethodMayBeStatic
    def get(self, request):
        allowed = HierarchyGate().allowed_assignments(request.user.pk)
        return api_response(
            {
                "hierarchy_level": allowed["hierarchy_level"],
                "user_types": UserTypeSerializer(allowed["user_types"], many=True).data,
                "roles": RoleSerializer(allowed["roles"], many=True).data,
                "locations": LocationSerializer(allowed["locations"], many=True).data,
            }
        )


class UserRoleAssignmentView(BaseAPIView):
    """List, grant, and revoke a user's roles, gated by the hierarchy."""

    permission_classes = [RBACPermission]
    required_permissions: dict[str, Any] = {
        "GET": AdminPermissions.MANAGE_USER_ROLES,
        "POST": AdminPermissions.MANAGE_USER_ROLES,
        "DELETE": AdminPermissions.MANAGE_USER_ROLES,
    }

    def get(self, request, user_id):
        target = _get_user_or_404(user_id)
        assignments = (
            UserRole.objects.filter(user=target)
            .select_related("role__user_type")
            .prefetch_related("role__role_permissions")
        )
        return api_response(UserRoleSerializer(assignments, many=True).data)

    def post(self, request, user_id):
        target = _get_user_or_404(user_id)
        serializer = RoleAssignmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        role = serializer.validated_data["role"]
        location = serializer.validated_data.get("location")

        HierarchyGate().check_role_assignment(request.user.pk, target.pk, role, location)

        assignment, created = UserRole.objects.get_or_create(
            user=target, role=role, defaults={"assigned_by": request.user, "location": location}
        )
        if not created and (not assignment.is_active or assignment.location_id != getattr(location, "pk", None)):
            assignment.is_active = True
            assignment.location = location
            assignment.assigned_by = request.user
            assignment.save(update_fields=["is_active", "location", "assigned_by", "updated_at"])

        logger.info("User %s assigned role %s to %s", request.user.pk, role.name, target.pk)
        return api_response(
            UserRoleSerializer(assignment).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )

    def delete(self, request, user_id, assignment_id=None):
        target = _get_user_or_404(user_id)
        assignment = (
            UserRole.objects.select_related("role__user_type", "location")
            .filter(pk=assignment_id, user=target)
            .first()
        )
        if assignment is None:
            raise NotFound("Role assignment not found.")

        HierarchyGate().check_role_assignment(request.user.pk, target.pk, assignment.role, assignment.location)

        if assignment.is_active:
            assignment.is_active = False
            assignment.save(update_fields=["is_active", "updated_at"])
            logger.info("User %s revoked role %s from %s", request.user.pk, assignment.role.name, target.pk)
        return api_response(UserRoleSerializer(assignment).data)


class LocationViewSet(BaseReadOnlyViewSet):
    """Active locations within the caller's data scope."""

    serializer_class = LocationSerializer
    permission_classes = [RBACPermission]
    required_permissions = {
        "list": AUTHENTICATED,
        "retrieve": AUTHENTICATED,
    }

    def get_queryset(self):
        scope = PermissionResolver().location_scope(self.request.user.pk)
        return Location.objects.filter(is_active=True).filter(scope.as_q("pk"))


class UserLocationView(BaseAPIView):
    """List, add, and remove a user's location links."""

    permission_classes = [RBACPermission]
    required_permissions: dict[str, Any] = {
        "GET": AdminPermissions.MANAGE_USER_LOCATIONS,
        "POST": AdminPermissions.MANAGE_USER_LOCATIONS,
        "DELETE": AdminPermissions.MANAGE_USER_LOCATIONS,
    }

    def get(self, request, user_id):
        target = _get_user_or_404(user_id)
        links = UserLocation.objects.filter(user=target).select_related("location")
        return api_response(UserLocationSerializer(links, many=True).data)

    def post(self, request, user_id):
        target = _get_user_or_404(user_id)
        serializer = UserLocationInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        location = serializer.validated_data["location"]
        is_primary = serializer.validated_data["is_primary"]

        HierarchyGate().check_location_link(request.user.pk, target.pk, location)

        with transaction.atomic():
            if is_primary:
                UserLocation.objects.filter(user=target, is_primary=True).exclude(location=location).update(
                    is_primary=False
                )
            link, created = UserLocation.objects.update_or_create(
                user=target, location=location, defaults={"is_active": True, "is_primary": is_primary}
            )

        logger.info("User %s linked %s to location %s", request.user.pk, target.pk, location.pk)
        return api_response(
            UserLocationSerializer(link).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )

    def delete(self, request, user_id, location_id=None):
        target = _get_user_or_404(user_id)
        link = UserLocation.objects.select_related("location").filter(user=target, location_id=location_id).first()
        if link is None:
            raise NotFound("Location link not found.")

        HierarchyGate().check_location_link(request.user.pk, target.pk, link.location)

        if link.is_active:
            link.is_active = False
            link.is_primary = False
            link.save(update_fields=["is_active", "is_primary"])
            logger.info("User %s unlinked %s from location %s", request.user.pk, target.pk, link.location_id)
        return api_response(UserLocationSerializer(link).data)


def _get_user_or_404(user_id):
    try:
        return User.objects.get(pk=user_id)
    except (User.DoesNotExist, DjangoValidationError):
        raise NotFound("User not found.")


def _get_role_or_404(role_id) -> Role:
    role = Role.objects.select_related("user_type").filter(pk=role_id).first()
    if role is None:
        raise NotFound("Role not found.")
    return role


def _role_links(role: Role):
    return RolePermission.objects.filter(role=role).select_related("permission").order_by("permission_id")


__all__ = [
    "AllowedAssignmentsView",
    "LocationViewSet",
    "MyPermissionsView",
    "PermissionCatalogueView",
    "RolePermissionsView",
    "RoleViewSet",
    "UserLocationView",
    "UserRoleAssignmentView",
]
