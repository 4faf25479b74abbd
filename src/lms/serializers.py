from rest_framework import serializers

from .models import Course


class CourseSerializer(serializers.ModelSerializer):
    allowed_roles = serializers.PrimaryKeyRelatedField(many=True, read_only=True)

    class Meta:
        model = Course
        fields = [
            "id",
            "title",
            "slug",
            "description",
            "is_published",
            "restrict_by_role",
            "allowed_roles",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


__all__ = ["CourseSerializer"]
