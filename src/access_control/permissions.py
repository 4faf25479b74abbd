"""DRF permission class mapping view actions to permission ids."""

from rest_framework import permissions

from .resolver import get_request_permissions

AUTHENTICATED = None
"""Marker for actions that only need a logged-in user; guards run downstream."""


class RBACPermission(permissions.BasePermission):
    """Check the caller's effective permissions for the current view action.

    Views declare ``required_permissions``: a mapping from viewset action
    (``list``, ``retrieve``, ``create``, custom ``@action`` names) or HTTP
    method (for plain API views) to a permission id, or to ``AUTHENTICATED``
    when the action only needs a logged-in user. Unmapped actions are denied.

    Actions listed in ``owner_actions`` are also allowed for the object's
    owner (``owner_field``, default ``author``) without the mapped permission.
    """

    message = "You do not have permission to perform this action on this resource."

    def has_permission(self, request, view) -> bool:
        user = getattr(request, "user", None)
        if not user or not getattr(user, "is_authenticated", False):
            return False

        found, required = self._required(request, view)
        if not found:
            return False
        if required is AUTHENTICATED:
            return True
        if required in get_request_permissions(request):
            return True
        # Owner-only paths are settled by has_object_permission.
        return self._action(request, view) in getattr(view, "owner_actions", ())

    def has_object_permission(self, request, view, obj) -> bool:
        found, required = self._required(request, view)
        if not found:
            return False
        if required is AUTHENTICATED or required in get_request_permissions(request):
            return True
        if self._action(request, view) in getattr(view, "owner_actions", ()):
            return self._is_owner(obj, request, getattr(view, "owner_field", "author"))
        return False

    @staticmethod
    def _action(request, view) -> str:
        return getattr(view, "action", None) or request.method

    def _required(self, request, view) -> tuple[bool, str | None]:
        mapping = getattr(view, "required_permissions", None) or {}
        key = self._action(request, view)
        if key in mapping:
            return True, mapping[key]
        if request.method in mapping:
            return True, mapping[request.method]
        return False, None

    @staticmethod
    def _is_owner(obj, request, owner_field: str) -> bool:
        owner_id = getattr(obj, f"{owner_field}_id", None)
        return owner_id is not None and owner_id == request.user.pk


__all__ = ["AUTHENTICATED", "RBACPermission"]
