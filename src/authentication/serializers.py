"""Serializers for authentication flows (login, profile)."""

from django.contrib.auth import get_user_model
from rest_framework import serializers
from rest_framework.exceptions import AuthenticationFailed

from .managers import UserManager

User = get_user_model()


class LoginSerializer(serializers.Serializer):
    """Authenticate a user via email/password using bcrypt verification."""

    email = serializers.EmailField()
    password = serializers.CharField(write_only=True)

    def validate(self, attrs):
        """Authenticate credentials and attach the user to validated_data."""
        try:
            user = User.objects.get(email__iexact=attrs.get("email"))
        except User.DoesNotExist:
            raise AuthenticationFailed("Invalid credentials")

        if not user.is_active:
            raise AuthenticationFailed("User is inactive")

        if not UserManager.verify_password(user, attrs.get("password")):
            raise AuthenticationFailed("Invalid credentials")

        attrs["user"] = user
        return attrs


class UserDetailSerializer(serializers.ModelSerializer):
    """Read-only profile payload including the names of active roles."""

    roles = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ["id", "email", "name", "roles"]
        read_only_fields = fields

    @staticmethod
    def get_roles(user) -> list[str]:
        return list(
            user.user_roles.filter(is_active=True, role__is_active=True)
            .order_by("role__user_type__hierarchy_level", "role__display_order")
            .values_list("role__name", flat=True)
        )


class ProfileUpdateSerializer(serializers.ModelSerializer):
    """Patchable fields for /auth/me updates."""

    class Meta:
        model = User
        fields = ["name"]
        extra_kwargs = {"name": {"required": False, "allow_blank": True}}

    def validate(self, attrs):
        """Reject attempts to change email through the profile endpoint."""
        if "email" in getattr(self, "initial_data", {}):
            raise serializers.ValidationError("Email cannot be updated via this endpoint")
        return super().validate(attrs)


__all__ = ["LoginSerializer", "ProfileUpdateSerializer", "UserDetailSerializer"]
