"""Serializers for roles, permissions, locations, and assignments."""

from rest_framework import serializers

from .models import Location, Permission, Role, RolePermission, UserLocation, UserRole, UserType


class UserTypeSerializer(serializers.ModelSerializer):
    class Meta:
        model = UserType
        fields = ["id", "name", "description", "hierarchy_level"]
        read_only_fields = fields


class PermissionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Permission
        fields = ["id", "category", "description", "is_active"]
        read_only_fields = fields


class RoleSerializer(serializers.ModelSerializer):
    """Role with its user type rank and the permission ids it grants."""

    user_type = serializers.CharField(source="user_type.name", read_only=True)
    hierarchy_level = serializers.IntegerField(source="user_type.hierarchy_level", read_only=True)
    permissions = serializers.SerializerMethodField()

    class Meta:
        model = Role
        fields = [
            "id",
            "name",
            "description",
            "user_type",
            "hierarchy_level",
            "data_scope",
            "is_protected",
            "display_order",
            "permissions",
        ]
        read_only_fields = fields

    @staticmethod
    def get_permissions(role) -> list[str]:
        return sorted(link.permission_id for link in role.role_permissions.all() if link.granted)


class RolePermissionSerializer(serializers.ModelSerializer):
    permission = serializers.CharField(source="permission_id", read_only=True)
    category = serializers.CharField(source="permission.category", read_only=True)
    description = serializers.CharField(source="permission.description", read_only=True)

    class Meta:
        model = RolePermission
        fields = ["id", "permission", "category", "description", "granted"]
        read_only_fields = fields


class RolePermissionReplaceSerializer(serializers.Serializer):
    """Input for ``PUT /roles/{id}/permissions/``: the full set of granted ids."""

    permission_ids = serializers.PrimaryKeyRelatedField(
        queryset=Permission.objects.filter(is_active=True), many=True, allow_empty=True
    )


class RolePermissionToggleSerializer(serializers.Serializer):
    """Input for ``POST /roles/{id}/permissions/``: grant or switch off one permission."""

    permission = serializers.PrimaryKeyRelatedField(queryset=Permission.objects.filter(is_active=True))
    granted = serializers.BooleanField(default=True)


class LocationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Location
        fields = ["id", "name", "address", "city", "phone"]
        read_only_fields = fields


class UserLocationSerializer(serializers.ModelSerializer):
    location = LocationSerializer(read_only=True)

    class Meta:
        model = UserLocation
        fields = ["id", "location", "is_primary", "is_active", "created_at"]
        read_only_fields = fields


class UserLocationInputSerializer(serializers.Serializer):
    """Input for ``POST /users/{id}/locations/``."""

    location = serializers.PrimaryKeyRelatedField(queryset=Location.objects.filter(is_active=True))
    is_primary = serializers.BooleanField(default=False)


class UserRoleSerializer(serializers.ModelSerializer):
    role = RoleSerializer(read_only=True)
    location = serializers.PrimaryKeyRelatedField(read_only=True)
    assigned_by = serializers.PrimaryKeyRelatedField(read_only=True)

    class Meta:
        model = UserRole
        fields = ["id", "role", "location", "is_active", "assigned_by", "assigned_at"]
        read_only_fields = fields


class RoleAssignmentSerializer(serializers.Serializer):
    """Input for ``POST /users/{id}/roles/``."""

    role = serializers.PrimaryKeyRelatedField(
        queryset=Role.objects.filter(is_active=True).select_related("user_type")
    )
    location = serializers.PrimaryKeyRelatedField(
        queryset=Location.objects.filter(is_active=True), required=False, allow_null=True
    )


__all__ = [
    "LocationSerializer",
    "PermissionSerializer",
    "RoleAssignmentSerializer",
    "RolePermissionReplaceSerializer",
    "RolePermissionSerializer",
    "RolePermissionToggleSerializer",
    "RoleSerializer",
    "UserLocationInputSerializer",
    "UserLocationSerializer",
    "UserRoleSerializer",
    "UserTypeSerializer",
]
