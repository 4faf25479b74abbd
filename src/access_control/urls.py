"""Routing for permission introspection, role administration, and location endpoints."""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import (
    AllowedAssignmentsView,
    LocationViewSet,
    MyPermissionsView,
    PermissionCatalogueView,
    RolePermissionsView,
    RoleViewSet,
    UserLocationView,
    UserRoleAssignmentView,
)

router = DefaultRouter()
router.register(r"roles", RoleViewSet, basename="role")
router.register(r"locations", LocationViewSet, basename="location")

urlpatterns = [
    path("me/permissions/", MyPermissionsView.as_view(), name="me-permissions"),
    path("permissions/", PermissionCatalogueView.as_view(), name="permission-catalogue"),
    path("roles/<int:role_id>/permissions/", RolePermissionsView.as_view(), name="role-permissions"),
    path("users/allowed-assignments/", AllowedAssignmentsView.as_view(), name="allowed-assignments"),
    path("users/<uuid:user_id>/roles/", UserRoleAssignmentView.as_view(), name="user-roles"),
    path(
        "users/<uuid:user_id>/roles/<int:assignment_id>/",
        UserRoleAssignmentView.as_view(),
        name="user-role-detail",
    ),
    path("users/<uuid:user_id>/locations/", UserLocationView.as_view(), name="user-locations"),
    path(
        "users/<uuid:user_id>/locations/<int:location_id>/",
        UserLocationView.as_view(),
        name="user-location-detail",
    ),
    path("", include(router.urls)),
]
