"""App configuration for the access_control Django application.

Registers the RBAC system checks when Django starts.
"""

from django.apps import AppConfig


class AccessControlConfig(AppConfig):
    """Roles, user types, permissions, grants, and the resolvers over them."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "access_control"

    def ready(self) -> None:
        from . import checks  # noqa: F401
