"""App configuration for authentication components."""

from django.apps import AppConfig


class AuthenticationConfig(AppConfig):
    """Identity provider: the User model, password hashing, and JWT tokens."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "authentication"
