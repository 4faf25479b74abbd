"""Read-only course catalogue filtered by role-scoped visibility."""

from django.conf import settings

from access_control.permissions import AUTHENTICATED, RBACPermission
from access_control.resolver import get_request_permissions
from access_control.visibility import ContentAccessFilter
from core.response import BaseReadOnlyViewSet
from .models import Course
from .serializers import CourseSerializer


class CourseViewSet(BaseReadOnlyViewSet):
    serializer_class = CourseSerializer
    permission_classes = [RBACPermission]
    # Restricted courses are reachable through role membership alone, so the
    # visibility filter, not the permission class, decides what is listed.
    required_permissions = {
        "list": AUTHENTICATED,
        "retrieve": AUTHENTICATED,
    }

    def get_queryset(self):
        access = ContentAccessFilter(settings.COURSE_VIEW_PERMISSION)
        user_id = self.request.user.pk
        scope = access.scope_for(user_id, permissions=get_request_permissions(self.request))
        queryset = Course.objects.filter(is_published=True).prefetch_related("allowed_roles")
        return access.filter_queryset(queryset, user_id, scope=scope)


__all__ = ["CourseViewSet"]
